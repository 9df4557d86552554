"""Majordomo example programs: echo clients, echo worker and MMI lookup."""

from __future__ import annotations

import logging
import sys
from typing import Sequence

import zmq

from zguide.mdcliapi import MajordomoClient
from zguide.mdcliapi2 import AsyncMajordomoClient
from zguide.mdp import MDPError
from zguide.mdwrkapi import MajordomoWorker

__all__ = [
    "BROKER_ENDPOINT",
    "run_echo_client",
    "run_async_echo_client",
    "run_echo_worker",
    "lookup_service",
    "client_main",
    "async_client_main",
    "worker_main",
    "mmiecho_main",
]

log = logging.getLogger(__name__)

BROKER_ENDPOINT = "tcp://localhost:5555"
_REQUEST_BODY = "Hello world"


def _verbose(argv: Sequence[str] | None) -> bool:
    args = list(sys.argv[1:] if argv is None else argv)
    verbose = bool(args) and args[0] == "-v"
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(message)s",
    )
    return verbose


def run_echo_client(broker: str = BROKER_ENDPOINT, count: int = 100000, verbose: bool = False) -> int:
    """Send up to count echo requests one by one; return how many succeeded."""
    done = 0
    with MajordomoClient(broker, verbose) as session:
        while done < count:
            try:
                session.send("echo", _REQUEST_BODY)
            except (MDPError, zmq.ZMQError, KeyboardInterrupt) as exc:
                log.error("%s", exc)
                break
            done += 1
    return done


def run_async_echo_client(
    broker: str = BROKER_ENDPOINT, count: int = 100000, verbose: bool = False
) -> int:
    """Send count echo requests, then collect replies; return how many arrived."""
    received = 0
    with AsyncMajordomoClient(broker, verbose) as session:
        for _ in range(count):
            try:
                session.send("echo", _REQUEST_BODY)
            except (MDPError, zmq.ZMQError) as exc:
                log.error("Send: %s", exc)
                break
        while received < count:
            try:
                session.recv()
            except (MDPError, zmq.ZMQError, KeyboardInterrupt) as exc:
                log.error("Recv: %s", exc)
                break
            received += 1
    return received


def run_echo_worker(broker: str = BROKER_ENDPOINT, verbose: bool = False) -> int:
    """Serve the echo service until interrupted; return the requests served."""
    served = 0
    with MajordomoWorker(broker, "echo", verbose) as session:
        reply: list[bytes] | None = None
        while True:
            try:
                request = session.recv(reply)
            except (MDPError, zmq.ZMQError, KeyboardInterrupt) as exc:
                log.error("%s", exc)
                break
            served += 1
            reply = request
    return served


def lookup_service(broker: str = BROKER_ENDPOINT, service: str = "echo", verbose: bool = False) -> str:
    """Ask the broker through MMI whether a service exists; return its status code."""
    with MajordomoClient(broker, verbose) as session:
        reply = session.send("mmi.service", service)
    return reply[0].decode("utf-8", errors="replace")


def client_main(argv: Sequence[str] | None = None) -> int:
    """Synchronous echo client; '-v' turns on tracing."""
    count = run_echo_client(BROKER_ENDPOINT, 100000, _verbose(argv))
    print(f"{count} requests/replies processed")
    return 0


def async_client_main(argv: Sequence[str] | None = None) -> int:
    """Asynchronous echo client; '-v' turns on tracing."""
    count = run_async_echo_client(BROKER_ENDPOINT, 100000, _verbose(argv))
    print(f"{count} replies received")
    return 0


def worker_main(argv: Sequence[str] | None = None) -> int:
    """Echo worker; '-v' turns on tracing."""
    run_echo_worker(BROKER_ENDPOINT, _verbose(argv))
    return 0


def mmiecho_main(argv: Sequence[str] | None = None) -> int:
    """Look up the echo service through MMI and print the result."""
    try:
        status = lookup_service(BROKER_ENDPOINT, "echo", _verbose(argv))
    except MDPError:
        print("E: no response from broker, make sure it's running")
        return 1
    print("Lookup echo service:", status)
    return 0