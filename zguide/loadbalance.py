"""Load-balancing broker with in-process clients and workers."""

from __future__ import annotations

import sys
import threading
import time
from collections import deque
from typing import Sequence

import zmq

from zguide.zhelpers import unwrap

__all__ = [
    "NBR_CLIENTS",
    "NBR_WORKERS",
    "WORKER_READY",
    "client_task",
    "worker_task",
    "LBBroker",
    "main",
]

NBR_CLIENTS = 10
NBR_WORKERS = 3
WORKER_READY = b"\x01"  # signals worker is ready

FRONTEND_ENDPOINT = "ipc://frontend.ipc"
BACKEND_ENDPOINT = "ipc://backend.ipc"


def client_task(
    context: zmq.Context | None = None,
    endpoint: str = FRONTEND_ENDPOINT,
    count: int | None = None,
) -> list[list[bytes]]:
    """Send HELLO requests over a REQ socket and return the replies.

    Sends ``count`` requests, or keeps going until an empty reply or an
    error when ``count`` is None; waits a second between requests.
    """
    ctx = context if context is not None else zmq.Context.instance()
    client = ctx.socket(zmq.REQ)
    replies: list[list[bytes]] = []
    try:
        client.connect(endpoint)
        while count is None or len(replies) < count:
            if replies:
                time.sleep(1)
            client.send(b"HELLO")
            reply = client.recv_multipart()
            if not reply:
                break
            replies.append(reply)
            print("Client:", "\n\t".join(frame.decode("utf-8", errors="replace") for frame in reply))
    except zmq.ZMQError:
        pass
    finally:
        client.close(linger=0)
    return replies


def worker_task(context: zmq.Context | None = None, endpoint: str = BACKEND_ENDPOINT) -> int:
    """Announce READY, then answer each request with OK until interrupted.

    Returns the number of requests answered.
    """
    ctx = context if context is not None else zmq.Context.instance()
    worker = ctx.socket(zmq.REQ)
    answered = 0
    try:
        worker.connect(endpoint)
        worker.send(WORKER_READY)
        while True:
            msg = worker.recv_multipart()
            if not msg:
                continue
            msg[-1] = b"OK"
            worker.send_multipart(msg)
            answered += 1
    except zmq.ZMQError:
        pass
    finally:
        worker.close(linger=0)
    return answered


class LBBroker:
    """Routes client requests on a ROUTER frontend to ready workers on a ROUTER backend.

    The frontend is only read while at least one worker is ready.
    """

    def __init__(self, frontend: zmq.Socket, backend: zmq.Socket) -> None:
        self.frontend = frontend
        self.backend = backend
        self.workers: deque[bytes] = deque()

    def handle_frontend(self) -> None:
        """Take one client request and route it to the first ready worker.

        Raises RuntimeError when no worker is ready.
        """
        if not self.workers:
            raise RuntimeError("no worker available")
        msg = self.frontend.recv_multipart()
        self.backend.send_multipart([self.workers.popleft(), b"", *msg])

    def handle_backend(self) -> bool:
        """Take one worker message, queue the worker and forward any reply.

        Returns True when a reply was forwarded to a client.
        """
        identity, msg = unwrap(self.backend.recv_multipart())
        self.workers.append(identity)
        if msg and msg[0] != WORKER_READY:
            self.frontend.send_multipart(msg)
            return True
        return False

    def run(self, timeout: float | None = None) -> int:
        """Route messages until interrupted, or until ``timeout`` seconds pass quietly.

        Returns the number of replies forwarded to clients.
        """
        backend_only = zmq.Poller()
        backend_only.register(self.backend, zmq.POLLIN)
        both = zmq.Poller()
        both.register(self.backend, zmq.POLLIN)
        both.register(self.frontend, zmq.POLLIN)
        wait = None if timeout is None else int(timeout * 1000)
        forwarded = 0
        try:
            while True:
                poller = both if self.workers else backend_only
                events = dict(poller.poll(wait))
                if not events:
                    break
                if self.backend in events and self.handle_backend():
                    forwarded += 1
                if self.frontend in events and self.workers:
                    self.handle_frontend()
        except (zmq.ZMQError, KeyboardInterrupt):
            pass
        return forwarded


def main(argv: Sequence[str] | None = None) -> int:
    """Start clients and workers in threads and run the broker between them."""
    context = zmq.Context.instance()
    frontend = context.socket(zmq.ROUTER)
    backend = context.socket(zmq.ROUTER)
    try:
        frontend.bind(FRONTEND_ENDPOINT)
        backend.bind(BACKEND_ENDPOINT)
        for _ in range(NBR_CLIENTS):
            threading.Thread(
                target=client_task, args=(context, FRONTEND_ENDPOINT, None), daemon=True
            ).start()
        for _ in range(NBR_WORKERS):
            threading.Thread(
                target=worker_task, args=(context, BACKEND_ENDPOINT), daemon=True
            ).start()
        LBBroker(frontend, backend).run(None)
    finally:
        frontend.close(linger=0)
        backend.close(linger=0)
    time.sleep(0.1)
    return 0


if __name__ == "__main__":
    sys.exit(main())