import threading

import pytest
import zmq

from zguide.mdexamples import (
    lookup_service,
    run_async_echo_client,
    run_echo_client,
    run_echo_worker,
)
from zguide.mdp import MDPC_CLIENT, MDPW_WORKER, WorkerCommand


@pytest.fixture
def router_factory():
    sockets = []

    def make(endpoint):
        sock = zmq.Context.instance().socket(zmq.ROUTER)
        sock.bind(endpoint)
        sockets.append(sock)
        return sock

    yield make
    for sock in sockets:
        sock.close(linger=0)


def _serve(router, count, seen, answer=None):
    for _ in range(count):
        if not router.poll(5000):
            return
        ident, empty, *rest = router.recv_multipart()
        seen.append(rest)
        reply = rest if answer is None else [rest[0], rest[1], answer]
        router.send_multipart([ident, empty, *reply])


def _start(target, *args):
    thread = threading.Thread(target=target, args=args, daemon=True)
    thread.start()
    return thread


def test_echo_client_counts_replies(router_factory):
    endpoint = "inproc://mdex-client"
    router = router_factory(endpoint)
    seen = []
    server = _start(_serve, router, 5, seen)
    assert run_echo_client(endpoint, 5, False) == 5
    server.join(5)
    assert seen == [[MDPC_CLIENT, b"echo", b"Hello world"]] * 5


def test_async_echo_client_counts_replies(router_factory):
    endpoint = "inproc://mdex-async"
    router = router_factory(endpoint)
    seen = []
    server = _start(_serve, router, 4, seen)
    assert run_async_echo_client(endpoint, 4, False) == 4
    server.join(5)
    assert len(seen) == 4
    assert all(request == [MDPC_CLIENT, b"echo", b"Hello world"] for request in seen)


def test_lookup_service_returns_status(router_factory):
    endpoint = "inproc://mdex-mmi"
    router = router_factory(endpoint)
    seen = []
    server = _start(_serve, router, 1, seen, b"200")
    assert lookup_service(endpoint, "echo", False) == "200"
    server.join(5)
    assert seen == [[MDPC_CLIENT, b"mmi.service", b"echo"]]


def _recv_command(router):
    while True:
        assert router.poll(5000)
        msg = router.recv_multipart()
        if msg[3] != WorkerCommand.HEARTBEAT:
            return msg


def test_echo_worker_echoes_and_stops_on_bad_message(router_factory):
    endpoint = "inproc://mdex-worker"
    router = router_factory(endpoint)
    result = {}
    worker = _start(lambda: result.setdefault("served", run_echo_worker(endpoint, False)))

    ready = _recv_command(router)
    identity = ready[0]
    assert ready[1:] == [b"", MDPW_WORKER, WorkerCommand.READY, b"echo"]

    router.send_multipart([identity, b"", MDPW_WORKER, WorkerCommand.REQUEST, b"C1", b"", b"ping"])
    reply = _recv_command(router)
    assert reply[1:] == [b"", MDPW_WORKER, WorkerCommand.REPLY, b"C1", b"", b"ping"]

    router.send_multipart([identity, b"", b"BOGUS", b"x"])
    worker.join(5)
    assert not worker.is_alive()
    assert result["served"] == 1