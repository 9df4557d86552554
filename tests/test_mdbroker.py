import pytest
import zmq

from zguide.mdbroker import Broker
from zguide.mdp import MDPC_CLIENT, MDPW_WORKER, MDPError, WorkerCommand

ENDPOINT = "inproc://mdbroker-test"


@pytest.fixture
def context():
    ctx = zmq.Context()
    yield ctx
    ctx.destroy(linger=0)


@pytest.fixture
def broker(context):
    b = Broker(context=context)
    b.bind(ENDPOINT)
    yield b
    b.close()


def _dealer(context, identity):
    sock = context.socket(zmq.DEALER)
    sock.setsockopt(zmq.IDENTITY, identity)
    sock.connect(ENDPOINT)
    return sock


def _pump(broker):
    assert broker.socket.poll(2000)
    broker.handle_message(broker.socket.recv_multipart())


def _recv(sock):
    assert sock.poll(2000)
    return sock.recv_multipart()


def _ready(broker, context, identity=b"W1", service=b"echo"):
    worker = _dealer(context, identity)
    worker.send_multipart([b"", MDPW_WORKER, WorkerCommand.READY, service])
    _pump(broker)
    return worker


def test_ready_registers_worker_and_service(broker, context):
    _ready(broker, context)
    worker = broker.workers[b"W1"]
    assert worker.service is broker.services[b"echo"]
    assert broker.waiting == [worker]
    assert broker.services[b"echo"].waiting == [worker]


def test_request_and_reply_round_trip(broker, context):
    worker = _ready(broker, context)
    client = _dealer(context, b"C1")
    client.send_multipart([b"", MDPC_CLIENT, b"echo", b"hello"])
    _pump(broker)
    assert _recv(worker) == [b"", MDPW_WORKER, WorkerCommand.REQUEST, b"C1", b"", b"hello"]
    assert broker.waiting == []

    worker.send_multipart([b"", MDPW_WORKER, WorkerCommand.REPLY, b"C1", b"", b"hello"])
    _pump(broker)
    assert _recv(client) == [b"", MDPC_CLIENT, b"echo", b"hello"]
    assert broker.waiting == [broker.workers[b"W1"]]


def test_request_queued_until_worker_ready(broker, context):
    client = _dealer(context, b"C1")
    client.send_multipart([b"", MDPC_CLIENT, b"echo", b"queued"])
    _pump(broker)
    assert list(broker.services[b"echo"].requests) == [[b"C1", b"", b"queued"]]

    worker = _ready(broker, context)
    assert _recv(worker) == [b"", MDPW_WORKER, WorkerCommand.REQUEST, b"C1", b"", b"queued"]
    assert not broker.services[b"echo"].requests


def test_mmi_service_lookup(broker, context):
    _ready(broker, context)
    client = _dealer(context, b"C1")
    client.send_multipart([b"", MDPC_CLIENT, b"mmi.service", b"echo"])
    _pump(broker)
    assert _recv(client) == [b"", MDPC_CLIENT, b"mmi.service", b"200"]

    client.send_multipart([b"", MDPC_CLIENT, b"mmi.service", b"nothing"])
    _pump(broker)
    assert _recv(client) == [b"", MDPC_CLIENT, b"mmi.service", b"404"]


def test_mmi_unknown_request(broker, context):
    client = _dealer(context, b"C1")
    client.send_multipart([b"", MDPC_CLIENT, b"mmi.other", b"x"])
    _pump(broker)
    assert _recv(client) == [b"", MDPC_CLIENT, b"mmi.other", b"501"]


def test_second_ready_disconnects_worker(broker, context):
    worker = _ready(broker, context)
    worker.send_multipart([b"", MDPW_WORKER, WorkerCommand.READY, b"echo"])
    _pump(broker)
    assert _recv(worker) == [b"", MDPW_WORKER, WorkerCommand.DISCONNECT]
    assert b"W1" not in broker.workers
    assert broker.waiting == []
    assert broker.services[b"echo"].waiting == []


def test_heartbeat_from_unknown_worker_disconnects(broker, context):
    worker = _dealer(context, b"W9")
    worker.send_multipart([b"", MDPW_WORKER, WorkerCommand.HEARTBEAT])
    _pump(broker)
    assert _recv(worker) == [b"", MDPW_WORKER, WorkerCommand.DISCONNECT]
    assert b"W9" not in broker.workers


def test_disconnect_removes_worker_silently(broker, context):
    worker = _ready(broker, context)
    worker.send_multipart([b"", MDPW_WORKER, WorkerCommand.DISCONNECT])
    _pump(broker)
    assert broker.workers == {}
    assert broker.waiting == []
    assert worker.poll(100) == 0


def test_purge_removes_expired_workers(broker, context):
    _ready(broker, context)
    broker.workers[b"W1"].expiry = 0.0
    broker.purge()
    assert broker.waiting == []
    assert broker.workers == {}


def test_send_heartbeats_reaches_idle_workers(broker, context):
    worker = _ready(broker, context)
    broker.send_heartbeats()
    assert _recv(worker) == [b"", MDPW_WORKER, WorkerCommand.HEARTBEAT]
    assert broker.waiting == [broker.workers[b"W1"]]


def test_malformed_messages_raise(broker):
    with pytest.raises(MDPError):
        broker.worker_msg(b"W1", [])
    with pytest.raises(MDPError):
        broker.client_msg(b"C1", [b"echo"])
    with pytest.raises(MDPError):
        broker.handle_message([b"C1", b""])


def test_unknown_header_is_ignored(broker):
    broker.handle_message([b"X", b"", b"BOGUS", b"a"])
    assert broker.services == {}
    assert broker.workers == {}