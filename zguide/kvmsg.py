"""Key-value message with UUID and properties."""

from __future__ import annotations

import struct
import sys
import uuid
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


def _text(frame: bytes) -> str:
    return frame.decode("utf-8", errors="surrogateescape")


def _wire(text: str) -> bytes:
    return text.encode("utf-8", errors="surrogateescape")


class KVMsg:
    """A key-value message sent on the wire as five frames.

    Frames: key, sequence (8 bytes, network order), UUID (16 bytes),
    properties (name=value lines), body. An attribute set to None is
    an absent frame.
    """

    _FRAMES = 5

    def __init__(self, sequence: int | None) -> None:
        self.key: str | None = None
        self.sequence: int | None = sequence
        self.uuid: bytes | None = None
        self.props: list[str] = []
        self.body: bytes | None = None
        self._props_present = False

    @classmethod
    def from_frames(cls, frames: Iterable[bytes]) -> KVMsg:
        """Build a message from received frames; missing frames stay absent."""
        msg = cls(None)
        parts = [bytes(frame) for frame in frames][: cls._FRAMES]
        if len(parts) > 0:
            msg.key = _text(parts[0])
        if len(parts) > 1:
            msg.sequence = _decode_sequence(parts[1])
        if len(parts) > 2:
            msg.uuid = parts[2]
        if len(parts) > 3:
            msg._props_present = True
            props = _text(parts[3]).split("\n")
            if props and props[-1] == "":
                props.pop()
            msg.props = props
        if len(parts) > 4:
            msg.body = parts[4]
        return msg

    def to_frames(self) -> list[bytes]:
        """Return the wire frames; the properties frame is always filled in."""
        self._props_present = True
        return [
            b"" if self.key is None else _wire(self.key),
            b"" if self.sequence is None else _encode_sequence(self.sequence),
            b"" if self.uuid is None else bytes(self.uuid),
            _wire("\n".join(self.props) + "\n"),
            b"" if self.body is None else bytes(self.body),
        ]

    @classmethod
    def recv(cls, socket) -> KVMsg:
        """Read one key-value message from a socket."""
        return cls.from_frames(socket.recv_multipart())

    def send(self, socket) -> None:
        """Send this message to a socket as a multi-frame message."""
        socket.send_multipart(self.to_frames())

    def dup(self) -> KVMsg:
        """Return an independent copy of this message."""
        copy = KVMsg(self.sequence)
        copy.key = self.key
        copy.uuid = self.uuid
        copy.props = list(self.props)
        copy.body = self.body
        copy._props_present = self._props_present
        return copy

    @property
    def size(self) -> int:
        """Size of the body, or 0 when there is none."""
        return 0 if self.body is None else len(self.body)

    def set_uuid(self) -> None:
        """Give the message a fresh random UUID as 16 raw bytes."""
        self.uuid = uuid.uuid4().bytes

    def get_prop(self, name: str) -> str:
        """Return the value of a property; KeyError if it is not set."""
        if not self._props_present:
            raise KeyError("no properties set")
        prefix = name + "="
        for prop in self.props:
            if prop.startswith(prefix):
                return prop[len(prefix):]
        raise KeyError(f"property not set: {name}")

    def set_prop(self, name: str, value: str) -> None:
        """Set a property, replacing any earlier value for the same name."""
        if "=" in name:
            raise ValueError("no '=' allowed in property name")
        prefix = name + "="
        for index, prop in enumerate(self.props):
            if prop.startswith(prefix):
                del self.props[index]
                break
        self.props.append(prefix + value)
        self._props_present = True

    def store(self, kvmap: MutableMapping[str, KVMsg]) -> None:
        """Store under the key, or remove the key when the body is empty."""
        if self.key is None:
            return
        if self.body:
            kvmap[self.key] = self
        else:
            kvmap.pop(self.key, None)

    def dump(self, file: TextIO | None = None) -> None:
        """Print the message with its properties on one line, for tracing."""
        out = sys.stderr if file is None else file
        sequence = 0 if self.sequence is None else self.sequence
        key = "" if self.key is None else self.key
        line = f"[seq:{sequence}][key:{key}][size:{self.size}] "
        if self.props:
            line += "[" + ";".join(self.props) + "]"
        line += (self.body or b"").hex().upper()
        print(line, file=out)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KVMsg):
            return NotImplemented
        return (self.key, self.sequence, self.uuid, self.props, self.body) == (
            other.key,
            other.sequence,
            other.uuid,
            other.props,
            other.body,
        )

    def __repr__(self) -> str:
        return (
            f"KVMsg(sequence={self.sequence!r}, key={self.key!r}, uuid={self.uuid!r}, "
            f"props={self.props!r}, body={self.body!r})"
        )