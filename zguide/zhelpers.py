"""Small helpers shared by the request-reply examples."""

from __future__ import annotations

import sys
from typing import Sequence, TextIO

__all__ = ["unwrap", "format_frame", "dump"]


def unwrap(msg: Sequence[bytes]) -> tuple[bytes, list[bytes]]:
    """Split off the first frame and an empty delimiter frame after it.

    Returns the head frame and the remaining frames.
    """
    if not msg:
        raise ValueError("cannot unwrap an empty message")
    head = msg[0]
    if len(msg) > 1 and msg[1] == b"":
        return head, list(msg[2:])
    return head, list(msg[1:])


def _is_control(byte: int) -> bool:
    return byte < 0x20 or byte == 0x7F


def format_frame(frame: bytes | str) -> str:
    """Render one frame as text, or as hex if it holds control bytes."""
    data = frame.encode("utf-8") if isinstance(frame, str) else bytes(frame)
    prefix = f"[{len(data):03d}] "
    if any(_is_control(byte) for byte in data):
        return prefix + "".join(f"{byte:02X} " for byte in data)
    return prefix + data.decode("utf-8", errors="replace")


def dump(socket, file: TextIO | None = None) -> None:
    """Receive one whole message from a socket and print all its frames."""
    out = sys.stdout if file is None else file
    print("-" * 40, file=out)
    for frame in socket.recv_multipart():
        print(format_frame(frame), file=out)