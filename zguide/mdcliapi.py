"""Majordomo Protocol client API: synchronous requests with retries."""

from __future__ import annotations

import logging
from typing import Sequence

import zmq

from zguide.mdp import MDPC_CLIENT, MDPError

__all__ = ["MajordomoClient"]

log = logging.getLogger(__name__)


def _frame(part: bytes | str) -> bytes:
    return part.encode("utf-8") if isinstance(part, str) else bytes(part)


class MajordomoClient:
    """A Majordomo client talking to a broker over a REQ socket.

    ``timeout`` is the request timeout in seconds and ``retries`` the
    number of attempts before a request is abandoned.
    """

    def __init__(self, broker: str, verbose: bool = False, context: zmq.Context | None = None) -> None:
        self.broker = broker
        self.verbose = verbose
        self.timeout = 2.5
        self.retries = 3
        self._context = context if context is not None else zmq.Context.instance()
        self.client: zmq.Socket | None = None
        self.poller: zmq.Poller | None = None
        self.connect_to_broker()

    def connect_to_broker(self) -> None:
        """Connect or reconnect to the broker on a fresh socket."""
        self.close()
        self.client = self._context.socket(zmq.REQ)
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

    def send(self, service: bytes | str, *args: bytes | str) -> list[bytes]:
        """Send a request to a service and return the reply frames.

        Retries on timeout by reconnecting; raises MDPError when no reply
        comes after all attempts or when the reply is malformed.
        """
        service_frame = _frame(service)
        request = [MDPC_CLIENT, service_frame, *(_frame(part) for part in args)]
        if self.verbose:
            log.info("I: send request to %r service: %r", service_frame, request)

        for _ in range(self.retries):
            if self.client is None or self.poller is None:
                self.connect_to_broker()
            self.client.send_multipart(request)
            events = dict(self.poller.poll(int(self.timeout * 1000)))
            if self.client in events:
                reply = self.client.recv_multipart()
                if self.verbose:
                    log.info("I: received reply: %r", reply)
                self._check_reply(reply, service_frame)
                return reply[2:]
            if self.verbose:
                log.warning("W: no reply, reconnecting...")
            self.connect_to_broker()

        if self.verbose:
            log.warning("W: permanent error, abandoning")
        raise MDPError("permanent error")

    @staticmethod
    def _check_reply(reply: Sequence[bytes], service: bytes) -> None:
        if len(reply) < 3:
            raise MDPError(f"reply too short: {len(reply)} frames")
        if reply[0] != MDPC_CLIENT:
            raise MDPError(f"unexpected protocol header: {reply[0]!r}")
        if reply[1] != service:
            raise MDPError(f"reply for wrong service: {reply[1]!r}")

    def __enter__(self) -> MajordomoClient:
        return self

    def __exit__(self, *args) -> None:
        self.close()