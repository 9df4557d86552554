"""Majordomo Protocol client API, asynchronous version over DEALER."""

from __future__ import annotations

import logging

import zmq

from zguide.mdp import MDPC_CLIENT, MDPError

__all__ = ["AsyncMajordomoClient"]

log = logging.getLogger(__name__)


def _frame(part: bytes | str) -> bytes:
    return part.encode("utf-8") if isinstance(part, str) else bytes(part)


class AsyncMajordomoClient:
    """A Majordomo client that may send many requests before reading replies.

    ``timeout`` is the time in seconds that recv waits for a reply.
    """

    def __init__(self, broker: str, verbose: bool = False, context: zmq.Context | None = None) -> None:
        self.broker = broker
        self.verbose = verbose
        self.timeout = 2.5
        self._context = context if context is not None else zmq.Context.instance()
        self.client: zmq.Socket | None = None
        self.poller: zmq.Poller | None = None
        self.connect_to_broker()

    def connect_to_broker(self) -> None:
        """Connect or reconnect to the broker on a fresh DEALER socket."""
        self.close()
        self.client = self._context.socket(zmq.DEALER)
        self.poller = zmq.Poller()
        self.poller.register(self.client, zmq.POLLIN)
        if self.verbose:
            log.info("I: connecting to broker at %s...", self.broker)
        try:
            self.client.connect(self.broker)
        except zmq.ZMQError:
            if self.verbose:
                log.error("E: failed to connect to broker %s", self.broker)
            raise

    def close(self) -> None:
        """Close the socket to the broker; safe to call more than once."""
        if self.client is not None:
            self.client.close(linger=0)
            self.client = None
            self.poller = None

    def send(self, service: bytes | str, *args: bytes | str) -> None:
        """Send one request without waiting for the reply."""
        if self.client is None:
            raise MDPError("client is closed")
        request = [b"", MDPC_CLIENT, _frame(service), *(_frame(part) for part in args)]
        if self.verbose:
            log.info("I: send request to %r service: %r", _frame(service), request)
        self.client.send_multipart(request)

    def recv(self) -> list[bytes]:
        """Wait for one reply and return its body frames.

        Raises MDPError if no reply arrives within the timeout or the
        reply is malformed.
        """
        if self.client is None or self.poller is None:
            raise MDPError("client is closed")
        events = dict(self.poller.poll(int(self.timeout * 1000)))
        if self.client in events:
            msg = self.client.recv_multipart()
            if self.verbose:
                log.info("I: received reply: %r", msg)
            if len(msg) < 4:
                raise MDPError(f"reply too short: {len(msg)} frames")
            if msg[0] != b"":
                raise MDPError("reply does not start with an empty frame")
            if msg[1] != MDPC_CLIENT:
                raise MDPError(f"unexpected protocol header: {msg[1]!r}")
            return msg[3:]
        error = MDPError("permanent error, abandoning request")
        if self.verbose:
            log.warning("%s", error)
        raise error

    def __enter__(self) -> AsyncMajordomoClient:
        return self

    def __exit__(self, *args) -> None:
        self.close()