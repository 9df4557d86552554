"""Freelance servers: an echo service, an OK service and a ROUTER service."""

from __future__ import annotations

import sys
from typing import Callable, Sequence

import zmq

__all__ = [
    "ok_reply",
    "router_reply",
    "serve_echo",
    "serve_ok",
    "serve_router",
    "model1_main",
    "model2_main",
    "model3_main",
]


def _args(argv: Sequence[str] | None) -> list[str]:
    return list(sys.argv[1:] if argv is None else argv)


def ok_reply(request: Sequence[bytes]) -> list[bytes]:
    """Answer a [sequence, body] request with [sequence, OK]."""
    if len(request) != 2:
        raise ValueError(f"expected 2 frames, got {len(request)}")
    return [bytes(request[0]), b"OK"]


def router_reply(request: Sequence[bytes]) -> list[bytes]:
    """Answer a PING with PONG, or a [control, body] request with [control, OK].

    The first frame is the client identity and is kept on the reply.
    """
    if len(request) < 2:
        raise ValueError(f"expected at least 2 frames, got {len(request)}")
    identity, control = bytes(request[0]), bytes(request[1])
    if control == b"PING":
        return [identity, b"PONG"]
    return [identity, control, b"OK"]


def _serve(socket: zmq.Socket, handler: Callable[[list[bytes]], list[bytes]]) -> int:
    served = 0
    try:
        while True:
            request = socket.recv_multipart()
            socket.send_multipart(handler(request))
            served += 1
    except (zmq.ZMQError, KeyboardInterrupt):
        pass
    return served


def serve_echo(socket: zmq.Socket) -> int:
    """Echo every message back until interrupted; return how many were served."""
    return _serve(socket, lambda request: request)


def serve_ok(socket: zmq.Socket) -> int:
    """Answer each request with OK until interrupted; return how many were served."""
    return _serve(socket, ok_reply)


def serve_router(socket: zmq.Socket, verbose: bool = False) -> int:
    """Answer PINGs and requests on a ROUTER socket; return how many were served."""

    def handle(request: list[bytes]) -> list[bytes]:
        if verbose:
            print(request)
        reply = router_reply(request)
        if verbose:
            print(reply)
        return reply

    return _serve(socket, handle)


def _single_endpoint_main(argv, banner: str, serve: Callable[[zmq.Socket], int]) -> int:
    args = _args(argv)
    if not args:
        print(f"I: syntax: {sys.argv[0]} <endpoint>")
        return 0
    server = zmq.Context.instance().socket(zmq.REP)
    try:
        server.bind(args[0])
        print(banner, args[0])
        serve(server)
    finally:
        server.close(linger=0)
    print("W: interrupted")
    return 0


def model1_main(argv: Sequence[str] | None = None) -> int:
    """Run the trivial echo service at the given endpoint."""
    return _single_endpoint_main(argv, "I: echo service is ready at", serve_echo)


def model2_main(argv: Sequence[str] | None = None) -> int:
    """Run the OK service with sequencing at the given endpoint."""
    return _single_endpoint_main(argv, "I: service is ready at", serve_ok)


def model3_main(argv: Sequence[str] | None = None) -> int:
    """Run the ROUTER service on port 5555; '-v' prints traffic."""
    args = _args(argv)
    verbose = bool(args) and args[0] == "-v"
    bind_endpoint = "tcp://*:5555"
    connect_endpoint = "tcp://localhost:5555"
    server = zmq.Context.instance().socket(zmq.ROUTER)
    try:
        server.identity = connect_endpoint.encode("utf-8")
        server.bind(bind_endpoint)
        print("I: service is ready at", bind_endpoint)
        serve_router(server, verbose)
    finally:
        server.close(linger=0)
    print("W: interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(model1_main())