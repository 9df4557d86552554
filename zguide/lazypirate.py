"""Lazy Pirate: a client that polls for replies and reconnects, and a flaky server."""

from __future__ import annotations

import logging
import random
import sys
import time
from typing import Sequence

import zmq

__all__ = [
    "REQUEST_TIMEOUT",
    "REQUEST_RETRIES",
    "SERVER_ENDPOINT",
    "LazyPirateClient",
    "client_main",
    "server_main",
]

log = logging.getLogger(__name__)

REQUEST_TIMEOUT = 2.5  # seconds, more than one
REQUEST_RETRIES = 3  # before we abandon
SERVER_ENDPOINT = "tcp://localhost:5555"


def _as_int(frame: bytes) -> int | None:
    try:
        return int(frame)
    except ValueError:
        return None


class LazyPirateClient:
    """A REQ client that resends a request on a fresh socket after a timeout.

    ``timeout`` is in seconds; ``retries`` is the number of attempts for
    each request.
    """

    def __init__(
        self,
        endpoint: str = SERVER_ENDPOINT,
        timeout: float = REQUEST_TIMEOUT,
        retries: int = REQUEST_RETRIES,
        context: zmq.Context | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.timeout = timeout
        self.retries = retries
        self._context = context if context is not None else zmq.Context.instance()
        self.socket: zmq.Socket | None = None
        self._connect()

    def _connect(self) -> None:
        self.close()
        self.socket = self._context.socket(zmq.REQ)
        self.socket.connect(self.endpoint)

    def request(self, sequence: int) -> list[bytes]:
        """Send a sequence number and return the reply that echoes it.

        Replies with another number are reported and ignored. Raises
        TimeoutError when all attempts have gone unanswered.
        """
        if self.socket is None:
            self._connect()
        frame = str(sequence).encode("ascii")
        self.socket.send_multipart([frame])
        retries_left = self.retries
        while True:
            if self.socket.poll(int(self.timeout * 1000), zmq.POLLIN):
                reply = self.socket.recv_multipart()
                if reply and _as_int(reply[0]) == sequence:
                    return reply
                log.error("E: malformed reply from server: %r", reply)
                continue
            retries_left -= 1
            if retries_left <= 0:
                raise TimeoutError("server seems to be offline")
            log.warning("W: no response from server, retrying...")
            self._connect()
            self.socket.send_multipart([frame])

    def close(self) -> None:
        """Close the socket; safe to call more than once."""
        if self.socket is not None:
            self.socket.close(linger=0)
            self.socket = None

    def __enter__(self) -> LazyPirateClient:
        return self

    def __exit__(self, *args) -> None:
        self.close()


def client_main(argv: Sequence[str] | None = None) -> int:
    """Send numbered requests to the server until it stops answering."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    print("I: connecting to server...")
    with LazyPirateClient() as client:
        sequence = 0
        try:
            while True:
                sequence += 1
                reply = client.request(sequence)
                print(f"I: server replied OK ({reply[0].decode('ascii', errors='replace')})")
        except TimeoutError:
            print("E: server seems to be offline, abandoning")
        except (zmq.ZMQError, KeyboardInterrupt):
            pass
    return 0


def server_main(argv: Sequence[str] | None = None) -> int:
    """Echo requests slowly, sometimes stalling and sometimes crashing."""
    rng = random.Random()
    server = zmq.Context.instance().socket(zmq.REP)
    try:
        server.bind("tcp://*:5555")
        cycles = 0
        while True:
            cycles += 1
            if cycles > 3 and rng.randrange(3) == 0:
                print("I: simulating a crash")
                break
            if cycles > 3 and rng.randrange(3) == 0:
                print("I: simulating CPU overload")
                time.sleep(2)
            request = server.recv_multipart()
            text = " ".join(frame.decode("utf-8", errors="replace") for frame in request)
            print(f"I: normal request ([{text}])")
            time.sleep(1)
            server.send_multipart(request)
    except (zmq.ZMQError, KeyboardInterrupt):
        pass
    finally:
        server.close(linger=0)
    return 0


if __name__ == "__main__":
    sys.exit(client_main())