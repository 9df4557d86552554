"""Majordomo Protocol worker API."""

from __future__ import annotations

import logging
import time
from typing import Sequence

import zmq

from zguide.mdp import MDPW_WORKER, MDPError, WorkerCommand, command_name
from zguide.zhelpers import unwrap

__all__ = ["MajordomoWorker"]

log = logging.getLogger(__name__)

HEARTBEAT_LIVENESS = 3


def _frame(part: bytes | str) -> bytes:
    return part.encode("utf-8") if isinstance(part, str) else bytes(part)


class MajordomoWorker:
    """A Majordomo worker serving one service through a broker.

    ``heartbeat`` and ``reconnect`` are delays in seconds.
    """

    def __init__(
        self,
        broker: str,
        service: bytes | str,
        verbose: bool = False,
        context: zmq.Context | None = None,
    ) -> None:
        self.broker = broker
        self.service = _frame(service)
        self.verbose = verbose
        self.heartbeat = 2.5
        self.reconnect = 2.5
        self.liveness = HEARTBEAT_LIVENESS
        self.heartbeat_at = 0.0
        self.expect_reply = False
        self.reply_to: bytes | None = None
        self._context = context if context is not None else zmq.Context.instance()
        self.worker: zmq.Socket | None = None
        self.poller: zmq.Poller | None = None
        self.connect_to_broker()

    def send_to_broker(
        self,
        command: bytes,
        option: bytes | str | None = None,
        msg: Sequence[bytes | str] = (),
    ) -> None:
        """Send a command, an optional option frame and a payload to the broker."""
        if self.worker is None:
            raise MDPError("worker is closed")
        frames = [b"", MDPW_WORKER, bytes(command)]
        if option:
            frames.append(_frame(option))
        frames.extend(_frame(part) for part in msg)
        if self.verbose:
            log.info("I: sending %s to broker %r", command_name(command), frames)
        self.worker.send_multipart(frames)

    def connect_to_broker(self) -> None:
        """Connect or reconnect to the broker and register the service."""
        self.close()
        self.worker = self._context.socket(zmq.DEALER)
        self.worker.connect(self.broker)
        if self.verbose:
            log.info("I: connecting to broker at %s...", self.broker)
        self.poller = zmq.Poller()
        self.poller.register(self.worker, zmq.POLLIN)
        self.send_to_broker(WorkerCommand.READY, self.service)
        self.liveness = HEARTBEAT_LIVENESS
        self.heartbeat_at = time.monotonic() + self.heartbeat

    def close(self) -> None:
        """Close the socket to the broker; safe to call more than once."""
        if self.worker is not None:
            self.worker.close(linger=0)
            self.worker = None
            self.poller = None

    def recv(self, reply: Sequence[bytes | str] | None = None) -> list[bytes]:
        """Send the reply, if any, then wait for and return the next request."""
        if not reply and self.expect_reply:
            raise MDPError("no reply, expected")
        if reply:
            if not self.reply_to:
                raise MDPError("no client to reply to")
            self.send_to_broker(WorkerCommand.REPLY, None, [self.reply_to, b"", *reply])
        self.expect_reply = True

        while True:
            if self.worker is None or self.poller is None:
                raise MDPError("worker is closed")
            events = dict(self.poller.poll(int(self.heartbeat * 1000)))
            if self.worker in events:
                msg = self.worker.recv_multipart()
                if self.verbose:
                    log.info("I: received message from broker: %r", msg)
                self.liveness = HEARTBEAT_LIVENESS
                if len(msg) < 3:
                    raise MDPError(f"message too short: {len(msg)} frames")
                if msg[0] != b"":
                    raise MDPError("message does not start with an empty frame")
                if msg[1] != MDPW_WORKER:
                    raise MDPError(f"unexpected protocol header: {msg[1]!r}")
                command, body = msg[2], msg[3:]
                if command == WorkerCommand.REQUEST:
                    self.reply_to, request = unwrap(body)
                    return request
                if command == WorkerCommand.HEARTBEAT:
                    pass
                elif command == WorkerCommand.DISCONNECT:
                    self.connect_to_broker()
                else:
                    log.error("E: invalid input message %r", body)
            else:
                self.liveness -= 1
                if self.liveness == 0:
                    if self.verbose:
                        log.warning("W: disconnected from broker - retrying...")
                    time.sleep(self.reconnect)
                    self.connect_to_broker()
            if time.monotonic() > self.heartbeat_at:
                self.send_to_broker(WorkerCommand.HEARTBEAT)
                self.heartbeat_at = time.monotonic() + self.heartbeat

    def __enter__(self) -> MajordomoWorker:
        return self

    def __exit__(self, *args) -> None:
        self.close()