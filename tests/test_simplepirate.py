import threading

import zmq

from zguide.simplepirate import WORKER_READY, random_identity, run_queue

HEX_DIGITS = set("0123456789ABCDEF")


def test_random_identity_format():
    for _ in range(20):
        identity = random_identity()
        assert len(identity) == 9
        assert identity[4] == "-"
        assert set(identity[:4] + identity[5:]) <= HEX_DIGITS


def test_random_identity_varies():
    assert len({random_identity() for _ in range(50)}) > 1


def test_queue_routes_request_to_worker_and_back():
    context = zmq.Context()

    def run():
        frontend = context.socket(zmq.ROUTER)
        backend = context.socket(zmq.ROUTER)
        frontend.bind("inproc://sp-frontend")
        backend.bind("inproc://sp-backend")
        try:
            run_queue(frontend, backend)
        finally:
            frontend.close(linger=0)
            backend.close(linger=0)

    thread = threading.Thread(target=run, daemon=True)
    thread.start()

    worker = context.socket(zmq.REQ)
    worker.rcvtimeo = 2000
    worker.connect("inproc://sp-backend")
    worker.send(WORKER_READY)

    client_identity = random_identity().encode()
    client = context.socket(zmq.REQ)
    client.rcvtimeo = 2000
    client.identity = client_identity
    client.connect("inproc://sp-frontend")
    client.send(b"HELLO")

    request = worker.recv_multipart()
    worker.send_multipart(request[:-1] + [b"OK"])
    reply = client.recv_multipart()

    worker.close(linger=0)
    client.close(linger=0)
    context.term()
    thread.join(timeout=5)

    assert request == [client_identity, b"", b"HELLO"]
    assert reply == [b"OK"]
    assert not thread.is_alive()