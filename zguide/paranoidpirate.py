"""Paranoid Pirate: a heartbeating load-balancing queue and its worker."""

from __future__ import annotations

import random
import sys
import time
from collections import OrderedDict
from typing import Iterator, Sequence

import zmq

from zguide.zhelpers import unwrap

__all__ = [
    "HEARTBEAT_LIVENESS",
    "HEARTBEAT_INTERVAL",
    "INTERVAL_INIT",
    "INTERVAL_MAX",
    "PPP_READY",
    "PPP_HEARTBEAT",
    "WorkerQueue",
    "worker_socket",
    "queue_main",
    "worker_main",
]

HEARTBEAT_LIVENESS = 3  # 3-5 is reasonable
HEARTBEAT_INTERVAL = 1.0  # seconds
INTERVAL_INIT = 1.0  # initial reconnect delay, seconds
INTERVAL_MAX = 32.0  # reconnect delay cap after exponential backoff

PPP_READY = b"\x01"  # signals worker is ready
PPP_HEARTBEAT = b"\x02"  # signals worker heartbeat

QUEUE_FRONTEND = "tcp://*:5555"
QUEUE_BACKEND = "tcp://*:5556"
WORKER_ENDPOINT = "tcp://localhost:5556"


class WorkerQueue:
    """Ready workers, oldest first, each with an expiry time.

    ``expiry`` is the number of seconds a worker stays alive after its
    last sign of life.
    """

    def __init__(self, expiry: float = HEARTBEAT_INTERVAL * HEARTBEAT_LIVENESS) -> None:
        self.expiry = expiry
        self._workers: OrderedDict[bytes, float] = OrderedDict()

    def ready(self, identity: bytes) -> None:
        """Put a worker at the end of the ready list with a fresh expiry."""
        identity = bytes(identity)
        self._workers.pop(identity, None)
        self._workers[identity] = time.monotonic() + self.expiry

    def purge(self) -> list[bytes]:
        """Drop expired workers from the front; return the ones dropped."""
        now = time.monotonic()
        dropped = []
        while self._workers:
            identity, expire = next(iter(self._workers.items()))
            if now < expire:
                break
            del self._workers[identity]
            dropped.append(identity)
        return dropped

    def next(self) -> bytes:
        """Remove and return the longest-waiting worker.

        Raises IndexError when no worker is ready.
        """
        if not self._workers:
            raise IndexError("no workers available")
        identity, _ = self._workers.popitem(last=False)
        return identity

    def __len__(self) -> int:
        return len(self._workers)

    def __iter__(self) -> Iterator[bytes]:
        return iter(list(self._workers))


def worker_socket(
    context: zmq.Context | None = None, endpoint: str = WORKER_ENDPOINT
) -> tuple[zmq.Socket, zmq.Poller]:
    """Open a DEALER connected to the queue, announce READY and return it with a poller."""
    ctx = context if context is not None else zmq.Context.instance()
    worker = ctx.socket(zmq.DEALER)
    worker.connect(endpoint)
    print("I: worker ready")
    worker.send(PPP_READY)
    poller = zmq.Poller()
    poller.register(worker, zmq.POLLIN)
    return worker, poller


def _run_queue(frontend: zmq.Socket, backend: zmq.Socket) -> None:
    workers = WorkerQueue()
    backend_only = zmq.Poller()
    backend_only.register(backend, zmq.POLLIN)
    both = zmq.Poller()
    both.register(backend, zmq.POLLIN)
    both.register(frontend, zmq.POLLIN)
    heartbeat_at = time.monotonic() + HEARTBEAT_INTERVAL
    timeout = int(HEARTBEAT_INTERVAL * 1000)

    try:
        while True:
            poller = both if len(workers) else backend_only
            events = dict(poller.poll(timeout))

            if backend in events:
                identity, msg = unwrap(backend.recv_multipart())
                workers.ready(identity)
                if len(msg) == 1:
                    if msg[0] not in (PPP_READY, PPP_HEARTBEAT):
                        print("E: invalid message from worker", msg)
                else:
                    frontend.send_multipart(msg)

            if frontend in events and len(workers):
                msg = frontend.recv_multipart()
                backend.send_multipart([workers.next(), *msg])

            now = time.monotonic()
            if now >= heartbeat_at:
                for identity in workers:
                    backend.send_multipart([identity, PPP_HEARTBEAT])
                heartbeat_at = now + HEARTBEAT_INTERVAL
            workers.purge()
    except (zmq.ZMQError, KeyboardInterrupt):
        pass


def queue_main(argv: Sequence[str] | None = None) -> int:
    """Run the queue with clients on port 5555 and workers on port 5556."""
    context = zmq.Context.instance()
    frontend = context.socket(zmq.ROUTER)
    backend = context.socket(zmq.ROUTER)
    try:
        frontend.bind(QUEUE_FRONTEND)
        backend.bind(QUEUE_BACKEND)
        _run_queue(frontend, backend)
    finally:
        frontend.close(linger=0)
        backend.close(linger=0)
    return 0


def worker_main(argv: Sequence[str] | None = None) -> int:
    """Serve echo requests with heartbeating, crashing or stalling now and then."""
    rng = random.Random()
    context = zmq.Context.instance()
    worker, poller = worker_socket(context, WORKER_ENDPOINT)
    liveness = HEARTBEAT_LIVENESS
    interval = INTERVAL_INIT
    heartbeat_at = time.monotonic() + HEARTBEAT_INTERVAL
    cycles = 0

    try:
        while True:
            events = dict(poller.poll(int(HEARTBEAT_INTERVAL * 1000)))
            if worker in events:
                msg = worker.recv_multipart()
                if len(msg) == 3:
                    cycles += 1
                    if cycles > 3 and rng.randrange(5) == 0:
                        print("I: simulating a crash")
                        break
                    if cycles > 3 and rng.randrange(5) == 0:
                        print("I: simulating CPU overload")
                        time.sleep(3)
                    print("I: normal reply")
                    worker.send_multipart(msg)
                    liveness = HEARTBEAT_LIVENESS
                    time.sleep(1)
                elif len(msg) == 1 and msg[0] == PPP_HEARTBEAT:
                    liveness = HEARTBEAT_LIVENESS
                else:
                    print(f"E: invalid message: {msg!r}")
                interval = INTERVAL_INIT
            else:
                liveness -= 1
                if liveness == 0:
                    print("W: heartbeat failure, can't reach queue")
                    print(f"W: reconnecting in {interval:g}s")
                    time.sleep(interval)
                    if interval < INTERVAL_MAX:
                        interval *= 2
                    worker.close(linger=0)
                    worker, poller = worker_socket(context, WORKER_ENDPOINT)
                    liveness = HEARTBEAT_LIVENESS

            now = time.monotonic()
            if now > heartbeat_at:
                heartbeat_at = now + HEARTBEAT_INTERVAL
                print("I: worker heartbeat")
                worker.send(PPP_HEARTBEAT)
    except (zmq.ZMQError, KeyboardInterrupt):
        pass
    finally:
        worker.close(linger=0)
    return 0


if __name__ == "__main__":
    sys.exit(queue_main())