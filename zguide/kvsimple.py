"""Simple key-value message: key, sequence number and body."""

from __future__ import annotations

import struct
import sys
from typing import Iterable, MutableMapping, TextIO

__all__ = ["KVMsg"]

_SEQUENCE = struct.Struct(">q")


def _encode_sequence(sequence: int) -> bytes:
    try:
        return _SEQUENCE.pack(sequence)
    except struct.error as exc:
        raise ValueError(f"sequence out of range: {sequence!r}") from exc


def _decode_sequence(frame: bytes) -> int:
    if len(frame) < _SEQUENCE.size:
        raise ValueError(f"sequence frame too short: {len(frame)} bytes")
    return _SEQUENCE.unpack_from(frame)[0]


class KVMsg:
    """A key-value message sent on the wire as three frames.

    Frame 0 is the key, frame 1 the sequence as 8 bytes in network
    order, frame 2 the body. An attribute set to None is an absent frame.
    """

    _FRAMES = 3

    def __init__(self, sequence: int | None) -> None:
        self.key: str | None = None
        self.sequence: int | None = sequence
        self.body: bytes | None = None

    @classmethod
    def from_frames(cls, frames: Iterable[bytes]) -> KVMsg:
        """Build a message from received frames; missing frames stay absent."""
        msg = cls(None)
        parts = [bytes(frame) for frame in frames][: cls._FRAMES]
        if len(parts) > 0:
            msg.key = parts[0].decode("utf-8", errors="surrogateescape")
        if len(parts) > 1:
            msg.sequence = _decode_sequence(parts[1])
        if len(parts) > 2:
            msg.body = parts[2]
        return msg

    def to_frames(self) -> list[bytes]:
        """Return the wire frames; absent frames are sent empty."""
        key = b"" if self.key is None else self.key.encode("utf-8", errors="surrogateescape")
        sequence = b"" if self.sequence is None else _encode_sequence(self.sequence)
        body = b"" if self.body is None else bytes(self.body)
        return [key, sequence, body]

    @classmethod
    def recv(cls, socket) -> KVMsg:
        """Read one key-value message from a socket."""
        return cls.from_frames(socket.recv_multipart())

    def send(self, socket) -> None:
        """Send this message to a socket as a multi-frame message."""
        socket.send_multipart(self.to_frames())

    @property
    def size(self) -> int:
        """Size of the body, or 0 when there is none."""
        return 0 if self.body is None else len(self.body)

    def store(self, kvmap: MutableMapping[str, KVMsg]) -> None:
        """Store this message in a map under its key, if it has one."""
        if self.key is not None:
            kvmap[self.key] = self

    def dump(self, file: TextIO | None = None) -> None:
        """Print the message on one line, for tracing."""
        out = sys.stderr if file is None else file
        sequence = 0 if self.sequence is None else self.sequence
        key = "" if self.key is None else self.key
        body = (self.body or b"").hex().upper()
        print(f"[seq:{sequence}][key:{key}][size:{self.size}]{body}", file=out)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KVMsg):
            return NotImplemented
        return (self.key, self.sequence, self.body) == (other.key, other.sequence, other.body)

    def __repr__(self) -> str:
        return f"KVMsg(sequence={self.sequence!r}, key={self.key!r}, body={self.body!r})"