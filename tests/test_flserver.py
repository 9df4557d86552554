import threading

import pytest
import zmq

from zguide.flserver import ok_reply, router_reply, serve_echo, serve_ok, serve_router


@pytest.fixture
def context():
    ctx = zmq.Context()
    yield ctx
    ctx.destroy(linger=0)


def _start_client(context, endpoint, socket_type, requests):
    """Send each request from a client thread and collect the replies."""
    replies = []

    def run():
        client = context.socket(socket_type)
        client.rcvtimeo = 2000
        client.connect(endpoint)
        try:
            for frames in requests:
                client.send_multipart(frames)
                replies.append(client.recv_multipart())
        finally:
            client.close(linger=0)

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    return thread, replies


def test_ok_reply_keeps_sequence():
    assert ok_reply([b"7", b"random name"]) == [b"7", b"OK"]


def test_ok_reply_rejects_wrong_frame_count():
    with pytest.raises(ValueError):
        ok_reply([b"7", b"a", b"b"])


def test_router_reply_answers_ping():
    assert router_reply([b"client", b"PING"]) == [b"client", b"PONG"]


def test_router_reply_answers_request():
    assert router_reply([b"client", b"3", b"body"]) == [b"client", b"3", b"OK"]


def test_router_reply_rejects_short_request():
    with pytest.raises(ValueError):
        router_reply([b"client"])


def test_serve_echo_echoes_and_counts(context):
    server = context.socket(zmq.REP)
    server.rcvtimeo = 500
    server.bind("inproc://echo")
    thread, replies = _start_client(context, "inproc://echo", zmq.REQ, [[b"a", b"b"]])
    served = serve_echo(server)
    thread.join(5)
    server.close(linger=0)
    assert served == 1
    assert replies == [[b"a", b"b"]]


def test_serve_ok_answers_ok(context):
    server = context.socket(zmq.REP)
    server.rcvtimeo = 500
    server.bind("inproc://ok")
    thread, replies = _start_client(context, "inproc://ok", zmq.REQ, [[b"1", b"x"]])
    served = serve_ok(server)
    thread.join(5)
    server.close(linger=0)
    assert served == 1
    assert replies == [[b"1", b"OK"]]


def test_serve_router_answers_ping_and_request(context):
    server = context.socket(zmq.ROUTER)
    server.rcvtimeo = 500
    server.bind("inproc://router")
    thread, replies = _start_client(
        context, "inproc://router", zmq.DEALER, [[b"PING"], [b"5", b"body"]]
    )
    served = serve_router(server, False)
    thread.join(5)
    server.close(linger=0)
    assert served == 2
    assert replies == [[b"PONG"], [b"5", b"OK"]]