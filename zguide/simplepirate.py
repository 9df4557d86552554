"""Simple Pirate: a load-balancing queue and a worker that sometimes fails."""

from __future__ import annotations

import random
import sys
import time
from collections import deque
from typing import Sequence

import zmq

from zguide.zhelpers import unwrap

__all__ = ["WORKER_READY", "random_identity", "run_queue", "queue_main", "worker_main"]

WORKER_READY = b"\x01"  # signals worker is ready


def random_identity() -> str:
    """Return a printable random identity such as '0A3F-BE71'."""
    return f"{random.randrange(0x10000):04X}-{random.randrange(0x10000):04X}"


def run_queue(frontend: zmq.Socket, backend: zmq.Socket) -> None:
    """Route client requests to ready workers until interrupted.

    Clients talk to ``frontend`` and workers to ``backend``; the
    frontend is only polled while a worker is available.
    """
    workers: deque[bytes] = deque()
    backend_only = zmq.Poller()
    backend_only.register(backend, zmq.POLLIN)
    both = zmq.Poller()
    both.register(backend, zmq.POLLIN)
    both.register(frontend, zmq.POLLIN)

    try:
        while True:
            poller = both if workers else backend_only
            events = dict(poller.poll())
            if backend in events:
                identity, body = unwrap(backend.recv_multipart())
                workers.append(identity)
                if body and body[0] != WORKER_READY:
                    frontend.send_multipart(body)
            if frontend in events and workers:
                msg = frontend.recv_multipart()
                backend.send_multipart([workers.popleft(), b"", *msg])
    except (zmq.ZMQError, KeyboardInterrupt):
        pass


def queue_main(argv: Sequence[str] | None = None) -> int:
    """Run the queue with clients on port 5555 and workers on port 5556."""
    context = zmq.Context.instance()
    frontend = context.socket(zmq.ROUTER)
    backend = context.socket(zmq.ROUTER)
    try:
        frontend.bind("tcp://*:5555")
        backend.bind("tcp://*:5556")
        run_queue(frontend, backend)
    finally:
        frontend.close(linger=0)
        backend.close(linger=0)
    return 0


def worker_main(argv: Sequence[str] | None = None) -> int:
    """Serve echo requests from the queue, crashing or stalling now and then."""
    rng = random.Random()
    worker = zmq.Context.instance().socket(zmq.REQ)
    identity = random_identity()
    try:
        worker.identity = identity.encode("ascii")
        worker.connect("tcp://localhost:5556")
        print(f"I: ({identity}) worker ready")
        worker.send(WORKER_READY)
        cycles = 0
        while True:
            msg = worker.recv_multipart()
            cycles += 1
            if cycles > 3 and rng.randrange(5) == 0:
                print(f"I: ({identity}) simulating a crash")
                break
            if cycles > 3 and rng.randrange(5) == 0:
                print(f"I: ({identity}) simulating CPU overload")
                time.sleep(3)
            print(f"I: ({identity}) normal reply")
            time.sleep(1)
            worker.send_multipart(msg)
    except (zmq.ZMQError, KeyboardInterrupt):
        pass
    finally:
        worker.close(linger=0)
    return 0


if __name__ == "__main__":
    sys.exit(queue_main())