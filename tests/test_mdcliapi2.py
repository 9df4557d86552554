import uuid

import pytest
import zmq

from zguide.mdcliapi2 import AsyncMajordomoClient
from zguide.mdp import MDPC_CLIENT, MDPError


@pytest.fixture
def ctx():
    context = zmq.Context()
    yield context
    context.destroy(linger=0)


@pytest.fixture
def broker(ctx):
    endpoint = f"inproc://mdcli2-{uuid.uuid4().hex}"
    sock = ctx.socket(zmq.ROUTER)
    sock.bind(endpoint)
    yield endpoint, sock
    sock.close(linger=0)


def receive(sock):
    assert sock.poll(5000)
    return sock.recv_multipart()


def test_send_puts_empty_frame_and_header(ctx, broker):
    endpoint, sock = broker
    with AsyncMajordomoClient(endpoint, context=ctx) as client:
        client.send("echo", "hi")
        frames = receive(sock)
        assert frames[1:] == [b"", MDPC_CLIENT, b"echo", b"hi"]
        sock.send_multipart([frames[0], b"", MDPC_CLIENT, b"echo", b"hi"])
        reply = client.recv()
    assert reply == [b"hi"]


def test_many_requests_then_replies(ctx, broker):
    endpoint, sock = broker
    with AsyncMajordomoClient(endpoint, context=ctx) as client:
        for body in (b"a", b"b", b"c"):
            client.send(b"echo", body)
        for _ in range(3):
            identity, empty, header, service, *body = receive(sock)
            sock.send_multipart([identity, b"", header, service, *body])
        replies = [client.recv() for _ in range(3)]
    assert replies == [[b"a"], [b"b"], [b"c"]]


def test_recv_timeout_raises(ctx, broker):
    endpoint, _sock = broker
    with AsyncMajordomoClient(endpoint, context=ctx) as client:
        client.timeout = 0.05
        with pytest.raises(MDPError, match="abandoning"):
            client.recv()


def test_recv_wrong_header_raises(ctx, broker):
    endpoint, sock = broker
    with AsyncMajordomoClient(endpoint, context=ctx) as client:
        client.send("echo", "hi")
        identity = receive(sock)[0]
        sock.send_multipart([identity, b"", b"BOGUS", b"echo", b"hi"])
        with pytest.raises(MDPError, match="header"):
            client.recv()


def test_recv_short_reply_raises(ctx, broker):
    endpoint, sock = broker
    with AsyncMajordomoClient(endpoint, context=ctx) as client:
        client.send("echo", "hi")
        identity = receive(sock)[0]
        sock.send_multipart([identity, b"", MDPC_CLIENT])
        with pytest.raises(MDPError, match="too short"):
            client.recv()


def test_closed_client_raises(ctx, broker):
    endpoint, _sock = broker
    client = AsyncMajordomoClient(endpoint, context=ctx)
    client.close()
    client.close()
    assert client.client is None
    with pytest.raises(MDPError):
        client.send("echo", "x")