"""Titanic service: disconnected, persistent request-reply over Majordomo."""

from __future__ import annotations

import logging
import queue
import sys
import threading
import uuid as _uuidlib
from pathlib import Path
from typing import Callable, Sequence

import zmq

from zguide.mdcliapi import MajordomoClient
from zguide.mdp import MDPError
from zguide.mdwrkapi import MajordomoWorker

__all__ = [
    "TITANIC_DIR",
    "BROKER_ENDPOINT",
    "request_filename",
    "reply_filename",
    "store_request",
    "lookup_reply",
    "close_request",
    "pending_requests",
    "titanic_request",
    "titanic_reply",
    "titanic_close",
    "service_success",
    "main",
]

log = logging.getLogger(__name__)

TITANIC_DIR = ".titanic"
BROKER_ENDPOINT = "tcp://localhost:5555"


def _frame(part: bytes | str) -> bytes:
    return part.encode("utf-8") if isinstance(part, str) else bytes(part)


def _uuid_text(uuid: bytes | str) -> str:
    if isinstance(uuid, (bytes, bytearray)):
        return bytes(uuid).decode("utf-8", errors="surrogateescape")
    return str(uuid)


def request_filename(uuid: bytes | str, directory: str | Path = TITANIC_DIR) -> Path:
    """Path of the file holding the request with this UUID."""
    return Path(directory) / f"{_uuid_text(uuid)}req"


def reply_filename(uuid: bytes | str, directory: str | Path = TITANIC_DIR) -> Path:
    """Path of the file holding the reply for the request with this UUID."""
    return Path(directory) / f"{_uuid_text(uuid)}rep"


def store_request(request: Sequence[bytes | str], directory: str | Path = TITANIC_DIR) -> str:
    """Write a request to disk under a fresh UUID and return that UUID."""
    path = Path(directory)
    path.mkdir(mode=0o700, parents=True, exist_ok=True)
    request_id = str(_uuidlib.uuid4())
    request_filename(request_id, path).write_bytes(b"\n".join(_frame(part) for part in request))
    return request_id


def lookup_reply(uuid: bytes | str, directory: str | Path = TITANIC_DIR) -> list[bytes]:
    """Return 200 with the reply frames, 300 if still pending, or 400 if unknown."""
    try:
        data = reply_filename(uuid, directory).read_bytes()
    except OSError:
        if request_filename(uuid, directory).exists():
            return [b"300"]
        return [b"400"]
    return [b"200", *data.split(b"\n")]


def close_request(uuid: bytes | str, directory: str | Path = TITANIC_DIR) -> list[bytes]:
    """Remove the request and any reply for this UUID; safe to repeat."""
    request_filename(uuid, directory).unlink(missing_ok=True)
    reply_filename(uuid, directory).unlink(missing_ok=True)
    return [b"200"]


def pending_requests(directory: str | Path = TITANIC_DIR) -> list[str]:
    """UUIDs of stored requests that have no reply yet, in filename order."""
    path = Path(directory)
    if not path.is_dir():
        return []
    pending = []
    for entry in sorted(path.iterdir(), key=lambda item: item.name):
        if entry.name.endswith("req"):
            request_id = entry.name[: -len("req")]
            if not reply_filename(request_id, path).exists():
                pending.append(request_id)
    return pending


def _serve(broker: str, service: str, handler: Callable[[list[bytes]], list[bytes]]) -> None:
    with MajordomoWorker(broker, service) as worker:
        reply: list[bytes] | None = None
        while True:
            try:
                request = worker.recv(reply)
            except (MDPError, zmq.ZMQError):
                break
            reply = handler(request)


def titanic_request(
    broker: str = BROKER_ENDPOINT,
    queue: queue.Queue | None = None,
    directory: str | Path = TITANIC_DIR,
) -> None:
    """Serve titanic.request: store each request and answer with its UUID."""

    def handle(request: list[bytes]) -> list[bytes]:
        request_id = store_request(request, directory)
        if queue is not None:
            queue.put(request_id)
        return [b"200", request_id.encode("utf-8")]

    _serve(broker, "titanic.request", handle)


def titanic_reply(broker: str = BROKER_ENDPOINT, directory: str | Path = TITANIC_DIR) -> None:
    """Serve titanic.reply: report the stored reply for a UUID, if any."""

    def handle(request: list[bytes]) -> list[bytes]:
        if not request:
            return [b"400"]
        return lookup_reply(request[0], directory)

    _serve(broker, "titanic.reply", handle)


def titanic_close(broker: str = BROKER_ENDPOINT, directory: str | Path = TITANIC_DIR) -> None:
    """Serve titanic.close: forget the request and reply for a UUID."""

    def handle(request: list[bytes]) -> list[bytes]:
        if request:
            close_request(request[0], directory)
        return [b"200"]

    _serve(broker, "titanic.close", handle)


def service_success(
    uuid: bytes | str,
    broker: str = BROKER_ENDPOINT,
    directory: str | Path = TITANIC_DIR,
) -> bool:
    """Try to get a stored request answered by its service.

    Returns True when the request is done with (answered, already
    answered or closed) and False when it must be tried again later.
    """
    if reply_filename(uuid, directory).exists():
        return True
    try:
        data = request_filename(uuid, directory).read_bytes()
    except OSError:
        return True

    service_name, *request = data.split(b"\n")
    try:
        with MajordomoClient(broker, False) as client:
            client.timeout = 1.0
            client.retries = 1
            mmi_reply = client.send("mmi.service", service_name)
            if not mmi_reply or mmi_reply[0] != b"200":
                return False
            reply = client.send(service_name, *request)
    except (MDPError, zmq.ZMQError):
        return False

    reply_filename(uuid, directory).write_bytes(b"\n".join(reply))
    return True


def main(argv: Sequence[str] | None = None) -> int:
    """Run the three Titanic services and the dispatcher; '-v' traces."""
    args = list(sys.argv[1:] if argv is None else argv)
    verbose = bool(args) and args[0] == "-v"
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

    directory = Path(TITANIC_DIR)
    new_requests: queue.Queue[str] = queue.Queue()
    for target, target_args in (
        (titanic_request, (BROKER_ENDPOINT, new_requests, directory)),
        (titanic_reply, (BROKER_ENDPOINT, directory)),
        (titanic_close, (BROKER_ENDPOINT, directory)),
    ):
        threading.Thread(target=target, args=target_args, daemon=True).start()

    directory.mkdir(mode=0o700, parents=True, exist_ok=True)
    pending = pending_requests(directory)
    try:
        while True:
            try:
                pending.append(new_requests.get(timeout=1.0))
            except queue.Empty:
                pass
            remaining = []
            for entry in pending:
                if verbose:
                    print("I: processing request", entry)
                if not service_success(entry, BROKER_ENDPOINT, directory):
                    remaining.append(entry)
            pending = remaining
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())