"""Majordomo Protocol constants for clients and workers."""

from __future__ import annotations

from enum import Enum

__all__ = ["MDPC_CLIENT", "MDPW_WORKER", "MDPError", "WorkerCommand", "command_name"]

#: Version of MDP/Client implemented here.
MDPC_CLIENT = b"MDPC01"

#: Version of MDP/Worker implemented here.
MDPW_WORKER = b"MDPW01"


class MDPError(Exception):
    """Raised when a Majordomo exchange fails or a peer breaks the protocol."""


class WorkerCommand(bytes, Enum):
    """MDP/Worker commands as single-byte frames."""

    READY = b"\x01"
    REQUEST = b"\x02"
    REPLY = b"\x03"
    HEARTBEAT = b"\x04"
    DISCONNECT = b"\x05"


def command_name(command: bytes) -> str:
    """Return the printable name of a worker command, or '' if unknown."""
    try:
        return WorkerCommand(bytes(command)).name
    except ValueError:
        return ""