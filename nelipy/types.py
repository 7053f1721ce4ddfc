"""Errors raised while encoding or decoding, and the general purpose byte buffer."""

from __future__ import annotations

from typing import BinaryIO


class DeError(Exception):
    """Raised when bytes cannot be decoded into a netlink structure."""


class SerError(Exception):
    """Raised when a netlink structure cannot be encoded into bytes."""


class Buffer(bytearray):
    """A growable buffer of bytes used for opaque payloads."""

    @classmethod
    def read_from(cls, stream: BinaryIO, length: int) -> "Buffer":
        """Read exactly ``length`` bytes from ``stream`` into a new buffer.

        Raises DeError when ``length`` is negative or the stream holds fewer
        than ``length`` bytes; a seekable stream is then left where it was.
        """
        if length < 0:
            raise DeError(f"Invalid input: {length}")
        start = stream.tell() if stream.seekable() else None
        data = stream.read(length)
        if data is None or len(data) < length:
            if start is not None:
                stream.seek(start)
            raise DeError(f"Invalid input: {length}")
        return cls(data)

    def to_bytes(self) -> bytes:
        """Return the contents as immutable bytes."""
        return bytes(self)

    def extend_from_slice(self, data: bytes) -> None:
        """Append the bytes of ``data`` to the end of the buffer."""
        self.extend(data)

    def unpadded_size(self) -> int:
        """Size of the buffer in bytes."""
        return len(self)

    def __repr__(self) -> str:
        return f"Buffer({bytes(self)!r})"