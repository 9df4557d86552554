"""Freelance clients.

The three models are a REQ client that tries servers one by one, a
DEALER client that sends each request to every server, and a client
built on the Freelance agent API.
"""

from __future__ import annotations

import math
import sys
import time
from typing import Sequence

import zmq

from zguide.flcliapi import FreelanceClient

__all__ = [
    "REQUEST_TIMEOUT",
    "MAX_RETRIES",
    "GLOBAL_TIMEOUT",
    "try_request",
    "FlClient",
    "model1_main",
    "model2_main",
    "model3_main",
]

REQUEST_TIMEOUT = 1.0  # seconds to wait for one echo reply
MAX_RETRIES = 3  # attempts on a single endpoint before giving up
GLOBAL_TIMEOUT = 2.5  # seconds to wait for any server to reply


def _frame(part: bytes | str) -> bytes:
    return part.encode("utf-8") if isinstance(part, str) else bytes(part)


def _args(argv: Sequence[str] | None) -> list[str]:
    return list(sys.argv[1:] if argv is None else argv)


def _duration(seconds: float) -> str:
    return f"{seconds:.6f}s"


def try_request(
    endpoint: str,
    request: Sequence[bytes | str],
    timeout: float = REQUEST_TIMEOUT,
    context: zmq.Context | None = None,
) -> list[bytes]:
    """Send a request over a fresh REQ socket and return the reply.

    Raises TimeoutError when no reply arrives within ``timeout`` seconds.
    """
    print(f"I: trying echo service at {endpoint}...")
    ctx = context if context is not None else zmq.Context.instance()
    client = ctx.socket(zmq.REQ)
    try:
        client.connect(endpoint)
        client.send_multipart([_frame(part) for part in request])
        if client.poll(int(timeout * 1000), zmq.POLLIN):
            return client.recv_multipart()
        raise TimeoutError("Time out")
    finally:
        client.close(linger=0)


class FlClient:
    """A client that sends every request to all connected servers at once.

    The first reply carrying the current sequence number wins; other
    replies are dropped. ``timeout`` is in seconds.
    """

    def __init__(self, context: zmq.Context | None = None) -> None:
        ctx = context if context is not None else zmq.Context.instance()
        self.socket: zmq.Socket = ctx.socket(zmq.DEALER)
        self.servers = 0
        self.sequence = 0
        self.timeout = GLOBAL_TIMEOUT

    def connect(self, endpoint: str) -> None:
        """Connect to one more server endpoint."""
        self.socket.connect(endpoint)
        self.servers += 1

    def request(self, *args: bytes | str) -> list[bytes]:
        """Send a request to all servers and return the body of the matching reply.

        Raises TimeoutError when no matching reply arrives in time and
        ValueError when a reply is not three frames long.
        """
        self.sequence += 1
        frames = [b"", str(self.sequence).encode("ascii"), *(_frame(part) for part in args)]
        for _ in range(self.servers):
            self.socket.send_multipart(frames)

        endtime = time.monotonic() + self.timeout
        while (remaining := endtime - time.monotonic()) > 0:
            if not self.socket.poll(max(1, math.ceil(remaining * 1000)), zmq.POLLIN):
                continue
            reply = self.socket.recv_multipart()
            if len(reply) != 3:
                raise ValueError(f"malformed reply: {len(reply)} frames")
            try:
                number = int(reply[1])
            except ValueError:
                continue
            if number == self.sequence:
                return reply[2:]
        raise TimeoutError("No reply")

    def close(self) -> None:
        """Close the DEALER socket; safe to call more than once."""
        if not self.socket.closed:
            self.socket.close(linger=0)

    def __enter__(self) -> FlClient:
        return self

    def __exit__(self, *args) -> None:
        self.close()


def model1_main(argv: Sequence[str] | None = None) -> int:
    """Query one or more echo servers; retry a lone server a few times."""
    args = _args(argv)
    request = [b"Hello world"]
    reply: list[bytes] = []

    if not args:
        print(f"I: syntax: {sys.argv[0]} <endpoint> ...")
    elif len(args) == 1:
        endpoint = args[0]
        for _ in range(MAX_RETRIES):
            try:
                reply = try_request(endpoint, request)
                break
            except TimeoutError:
                print(f"W: no response from {endpoint}, retrying...")
    else:
        for endpoint in args:
            try:
                reply = try_request(endpoint, request)
                break
            except TimeoutError:
                print("W: no response from", endpoint)

    if reply:
        print(f"Service is running OK: {reply!r}")
    return 0


def model2_main(argv: Sequence[str] | None = None) -> int:
    """Blast 10000 name requests at all given servers and time them."""
    args = _args(argv)
    if not args:
        print(f"I: syntax: {sys.argv[0]} <endpoint> ...")
        return 0
    with FlClient() as client:
        for endpoint in args:
            client.connect(endpoint)
        start = time.monotonic()
        for _ in range(10000):
            try:
                client.request("random name")
            except TimeoutError:
                print("E: name service not available, aborting")
                break
        print("Average round trip cost:", _duration(time.monotonic() - start))
    return 0


def model3_main(argv: Sequence[str] | None = None) -> int:
    """Send 1000 requests through the Freelance agent API and time them."""
    with FreelanceClient() as client:
        for endpoint in ("tcp://localhost:5555", "tcp://localhost:5556", "tcp://localhost:5557"):
            client.connect(endpoint)
        start = time.monotonic()
        for _ in range(1000):
            try:
                client.request(["random name"])
            except TimeoutError:
                print("E: name service not available, aborting")
                break
        print("Average round trip cost:", _duration((time.monotonic() - start) / 1000))
    return 0


if __name__ == "__main__":
    sys.exit(model1_main())