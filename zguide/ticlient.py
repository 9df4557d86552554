"""Titanic client: sends a request through Titanic and waits for the reply."""

from __future__ import annotations

import logging
import sys
import time
from typing import Sequence

from zguide.mdcliapi import MajordomoClient
from zguide.mdp import MDPError

__all__ = ["BROKER_ENDPOINT", "ServiceCallError", "service_call", "main"]

BROKER_ENDPOINT = "tcp://localhost:5555"

_FATAL = {
    b"400": "E: client fatal error, aborting",
    b"500": "E: server fatal error, aborting",
}


class ServiceCallError(Exception):
    """A Titanic service answered with a status other than 200."""

    def __init__(self, status: bytes) -> None:
        self.status = status
        super().__init__(f"Didn't succeed (status {status!r})")

    @property
    def fatal(self) -> bool:
        """True for the client (400) and server (500) error statuses."""
        return self.status in _FATAL


def service_call(session, service: bytes | str, *args: bytes | str) -> list[bytes]:
    """Call a Titanic service and return the reply frames after the 200 status.

    Raises ServiceCallError for any other status; errors of the session
    itself propagate.
    """
    msg = session.send(service, *args)
    if not msg:
        raise ServiceCallError(b"")
    status, body = msg[0], list(msg[1:])
    if status == b"200":
        return body
    raise ServiceCallError(status)


def main(argv: Sequence[str] | None = None) -> int:
    """Send an echo request through Titanic and print the reply."""
    args = list(sys.argv[1:] if argv is None else argv)
    verbose = bool(args) and args[0] == "-v"
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(message)s",
    )
    with MajordomoClient(BROKER_ENDPOINT, verbose) as session:
        try:
            reply = service_call(session, "titanic.request", "echo", "Hello world")
            request_id = reply[0] if reply else b""
            print("I: request UUID", request_id.decode("utf-8", errors="replace"))
            time.sleep(0.1)
            while True:
                try:
                    reply = service_call(session, "titanic.reply", request_id)
                except ServiceCallError as exc:
                    if exc.fatal:
                        raise
                    print("I: no reply yet, trying again...")
                    time.sleep(5)
                    continue
                first = reply[0] if reply else b""
                print("Reply:", first.decode("utf-8", errors="replace"))
                try:
                    service_call(session, "titanic.close", request_id)
                except ServiceCallError as exc:
                    if exc.fatal:
                        raise
                return 0
        except ServiceCallError as exc:
            if exc.fatal:
                print(_FATAL[exc.status])
                return 1
            print(exc)
            return 0
        except MDPError as exc:
            print(f"E: {exc}")
            return 0


if __name__ == "__main__":
    sys.exit(main())