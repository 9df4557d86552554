"""Freelance client API: a front-end object and a background agent thread."""

from __future__ import annotations

import itertools
import logging
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Sequence

import zmq

__all__ = ["GLOBAL_TIMEOUT", "PING_INTERVAL", "SERVER_TTL", "FreelanceClient"]

log = logging.getLogger(__name__)

GLOBAL_TIMEOUT = 3.0  # seconds without any reply before a request fails
PING_INTERVAL = 2.0  # seconds between pings to servers thought alive
SERVER_TTL = 6.0  # seconds of silence before a server counts as dead

_STOP = b"$STOP"
_pipe_numbers = itertools.count()


def _frame(part: bytes | str) -> bytes:
    return part.encode("utf-8") if isinstance(part, str) else bytes(part)


@dataclass(eq=False)
class _Server:
    endpoint: bytes
    alive: bool = False
    ping_at: float = field(default_factory=lambda: time.monotonic() + PING_INTERVAL)
    expires: float = field(default_factory=lambda: time.monotonic() + SERVER_TTL)

    def ping(self, socket: zmq.Socket) -> None:
        now = time.monotonic()
        if now > self.ping_at:
            socket.send_multipart([self.endpoint, b"PING"])
            self.ping_at = now + PING_INTERVAL

    def tickless(self, moment: float) -> float:
        return min(moment, self.ping_at)


class _Agent:
    """Background half: talks to the servers and answers the front end."""

    def __init__(self, context: zmq.Context, pipe_endpoint: str) -> None:
        self.pipe = context.socket(zmq.PAIR)
        self.pipe.connect(pipe_endpoint)
        self.router = context.socket(zmq.ROUTER)
        self.servers: dict[bytes, _Server] = {}
        self.actives: list[_Server] = []
        self.sequence = 0
        self.request: list[bytes] = []
        self.expires = 0.0

    def control_message(self) -> bool:
        """Handle one command from the front end; False means stop."""
        msg = self.pipe.recv_multipart()
        command, body = msg[0], msg[1:]
        if command == b"CONNECT" and body:
            endpoint = body[0]
            log.info("I: connecting to %s...", endpoint.decode("utf-8", errors="replace"))
            try:
                self.router.connect(endpoint.decode("utf-8"))
            except zmq.ZMQError as exc:
                log.error("E: cannot connect to %r: %s", endpoint, exc)
                return True
            server = _Server(endpoint)
            self.servers[endpoint] = server
            self.actives.append(server)
        elif command == b"REQUEST":
            if self.request:
                self.pipe.send_multipart([b"FAILED"])
                return True
            self.sequence += 1
            self.request = [str(self.sequence).encode("ascii"), *body]
            self.expires = time.monotonic() + GLOBAL_TIMEOUT
        elif command == _STOP:
            return False
        return True

    def router_message(self) -> None:
        """Handle one reply from a server."""
        reply = self.router.recv_multipart()
        if len(reply) < 2:
            return
        endpoint, reply = reply[0], reply[1:]
        server = self.servers.get(endpoint)
        if server is None:
            log.warning("W: reply from unknown server %r", endpoint)
            return
        if not server.alive:
            self.actives.append(server)
            server.alive = True
        now = time.monotonic()
        server.ping_at = now + PING_INTERVAL
        server.expires = now + SERVER_TTL

        try:
            sequence = int(reply[0])
        except ValueError:
            return
        if self.request and sequence == self.sequence:
            self.pipe.send_multipart([b"OK", *reply[1:]])
            self.request = []

    def _dispatch(self) -> None:
        now = time.monotonic()
        if now > self.expires:
            self.pipe.send_multipart([b"FAILED"])
            self.request = []
            return
        while self.actives:
            server = self.actives[0]
            if now > server.expires:
                self.actives.pop(0)
                server.alive = False
            else:
                self.router.send_multipart([server.endpoint, *self.request])
                break

    def run(self) -> None:
        poller = zmq.Poller()
        poller.register(self.pipe, zmq.POLLIN)
        poller.register(self.router, zmq.POLLIN)
        try:
            while True:
                tickless = time.monotonic() + 3600.0
                if self.request:
                    tickless = min(tickless, self.expires)
                for server in self.servers.values():
                    tickless = server.tickless(tickless)
                timeout = max(0, math.ceil((tickless - time.monotonic()) * 1000))
                events = dict(poller.poll(timeout))
                if self.pipe in events and not self.control_message():
                    break
                if self.router in events:
                    self.router_message()
                if self.request:
                    self._dispatch()
                for server in self.servers.values():
                    server.ping(self.router)
        except zmq.ZMQError:
            pass
        finally:
            self.router.close(linger=0)
            self.pipe.close(linger=0)


def _run_agent(context: zmq.Context, pipe_endpoint: str) -> None:
    _Agent(context, pipe_endpoint).run()


class FreelanceClient:
    """Front end of the Freelance client; requests go to any live server."""

    def __init__(self, context: zmq.Context | None = None) -> None:
        self._context = context if context is not None else zmq.Context.instance()
        endpoint = f"inproc://flcliapi-{next(_pipe_numbers)}-{id(self)}"
        self.pipe: zmq.Socket | None = self._context.socket(zmq.PAIR)
        self.pipe.bind(endpoint)
        self._thread = threading.Thread(
            target=_run_agent, args=(self._context, endpoint), daemon=True
        )
        self._thread.start()

    def _require_pipe(self) -> zmq.Socket:
        if self.pipe is None:
            raise ValueError("client is closed")
        return self.pipe

    def connect(self, endpoint: str) -> None:
        """Connect to a server endpoint and give the connection time to come up."""
        self._require_pipe().send_multipart([b"CONNECT", _frame(endpoint)])
        time.sleep(0.1)

    def request(self, request: Sequence[bytes | str]) -> list[bytes]:
        """Send a request and return the reply frames.

        Raises TimeoutError when no server replies in time.
        """
        pipe = self._require_pipe()
        pipe.send_multipart([b"REQUEST", *(_frame(part) for part in request)])
        reply = pipe.recv_multipart()
        status, body = reply[0], reply[1:]
        if status == b"FAILED":
            raise TimeoutError("no server replied to the request")
        return body

    def close(self) -> None:
        """Stop the agent and close the pipe; safe to call more than once."""
        if self.pipe is None:
            return
        try:
            self.pipe.send_multipart([_STOP])
        except zmq.ZMQError:
            pass
        self._thread.join(timeout=5.0)
        self.pipe.close(linger=0)
        self.pipe = None

    def __enter__(self) -> FreelanceClient:
        return self

    def __exit__(self, *args) -> None:
        self.close()