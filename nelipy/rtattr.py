"""Routing netlink attributes, buffers of them and lookup handles."""

from __future__ import annotations

import io
import struct
from typing import Any, BinaryIO, Iterable, Iterator, Optional

from .types import Buffer, DeError, SerError

RTA_ALIGNTO = 4
_HEADER = struct.Struct("=HH")
_MAX_LEN = 0xFFFF


def _align(size: int) -> int:
    return (size + RTA_ALIGNTO - 1) & ~(RTA_ALIGNTO - 1)


def _encode_payload(payload: Any) -> Buffer:
    """Turn a payload into its binary representation."""
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return Buffer(payload)
    if isinstance(payload, str):
        return Buffer(payload.encode("utf-8") + b"\x00")
    if isinstance(payload, (bool, int)):
        raise SerError("Could not convert payload to binary representation")
    to_bytes = getattr(payload, "to_bytes", None)
    if callable(to_bytes):
        try:
            return Buffer(to_bytes())
        except (struct.error, TypeError, ValueError) as exc:
            raise SerError("Could not convert payload to binary representation") from exc
    raise SerError("Could not convert payload to binary representation")


def _restore(stream: BinaryIO, start: Optional[int]) -> None:
    if start is not None:
        stream.seek(start)


class Rtattr:
    """A routing netlink attribute: a type and an opaque payload."""

    def __init__(self, rta_type: int, rta_payload: Any) -> None:
        self.rta_type = rta_type
        self.rta_payload = _encode_payload(rta_payload)

    def rta_len(self) -> int:
        """Length of the attribute as written in its header, without padding."""
        return _HEADER.size + len(self.rta_payload)

    def unpadded_size(self) -> int:
        """Size in bytes without trailing padding."""
        return self.rta_len()

    def padded_size(self) -> int:
        """Size in bytes including padding to a 4-byte boundary."""
        return _align(self.rta_len())

    def to_bytes(self) -> bytes:
        """Encode the attribute, padded to a 4-byte boundary."""
        length = self.rta_len()
        if length > _MAX_LEN:
            raise SerError(f"Attribute length {length} does not fit in 16 bits")
        try:
            header = _HEADER.pack(length, int(self.rta_type))
        except struct.error as exc:
            raise SerError(f"Invalid attribute type {self.rta_type!r}") from exc
        return header + bytes(self.rta_payload) + bytes(_align(length) - length)

    @classmethod
    def from_bytes(cls, stream: BinaryIO) -> "Rtattr":
        """Decode one attribute from ``stream`` and skip its padding."""
        start = stream.tell() if stream.seekable() else None
        header = stream.read(_HEADER.size)
        if header is None or len(header) < _HEADER.size:
            _restore(stream, start)
            raise DeError("Unexpected end of buffer while reading attribute header")
        rta_len, rta_type = _HEADER.unpack(header)
        payload_len = rta_len - _HEADER.size
        if payload_len < 0:
            _restore(stream, start)
            raise DeError(f"Invalid input: {rta_len}")
        try:
            payload = Buffer.read_from(stream, payload_len)
        except DeError:
            _restore(stream, start)
            raise
        # Padding after the final attribute may be absent.
        stream.read(_align(rta_len) - rta_len)
        return cls(rta_type, payload)

    def nest(self, attr: "Rtattr") -> "Rtattr":
        """Append ``attr`` to this attribute's payload and return self."""
        self.rta_payload.extend_from_slice(attr.to_bytes())
        return self

    def set_payload(self, payload: Any) -> None:
        """Replace the payload."""
        self.rta_payload = _encode_payload(payload)

    def get_payload_as(self, fmt: Any) -> Any:
        """Decode the payload with a struct format, or a class with ``from_bytes``."""
        if isinstance(fmt, (str, struct.Struct)):
            layout = struct.Struct(fmt) if isinstance(fmt, str) else fmt
            try:
                values = layout.unpack_from(bytes(self.rta_payload))
            except struct.error as exc:
                raise DeError(f"Payload cannot be decoded as {layout.format!r}") from exc
            return values[0] if len(values) == 1 else values
        try:
            return fmt.from_bytes(io.BytesIO(bytes(self.rta_payload)))
        except struct.error as exc:
            raise DeError(f"Payload cannot be decoded as {fmt!r}") from exc

    def get_payload_as_with_len(self, kind: Any) -> Any:
        """Decode the whole payload as ``str``, a bytes type, or a class with
        ``from_bytes_with_input``."""
        data = bytes(self.rta_payload)
        if kind is str:
            try:
                return data.rstrip(b"\x00").decode("utf-8")
            except UnicodeDecodeError as exc:
                raise DeError("Payload is not valid UTF-8") from exc
        if isinstance(kind, type) and issubclass(kind, (bytes, bytearray)):
            return kind(data)
        return kind.from_bytes_with_input(io.BytesIO(data), len(data))

    def get_attr_handle(self) -> "RtAttrHandle":
        """Parse the payload as nested attributes."""
        data = bytes(self.rta_payload)
        return RtAttrHandle(RtBuffer.from_bytes_with_input(io.BytesIO(data), len(data)))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Rtattr):
            return NotImplemented
        return self.rta_type == other.rta_type and self.rta_payload == other.rta_payload

    def __repr__(self) -> str:
        return f"Rtattr(rta_type={self.rta_type!r}, rta_payload={bytes(self.rta_payload)!r})"


class RtBuffer(list):
    """A sequence of routing netlink attributes."""

    @classmethod
    def from_bytes_with_input(cls, stream: BinaryIO, length: int) -> "RtBuffer":
        """Decode attributes from exactly ``length`` bytes of ``stream``."""
        data = Buffer.read_from(stream, length)
        inner = io.BytesIO(bytes(data))
        attrs = cls()
        while inner.tell() < length:
            attrs.append(Rtattr.from_bytes(inner))
        return attrs

    def to_bytes(self) -> bytes:
        """Encode all attributes, each padded."""
        return b"".join(attr.to_bytes() for attr in self)

    def unpadded_size(self) -> int:
        """Total size of the attributes, each counted with its padding."""
        return sum(attr.padded_size() for attr in self)

    def get_attr_handle(self) -> "RtAttrHandle":
        """A handle for looking up attributes in this buffer."""
        return RtAttrHandle(self)


class RtAttrHandle:
    """Lookup over a parsed collection of attributes."""

    def __init__(self, attrs: Iterable[Rtattr]) -> None:
        self._attrs = list(attrs)

    def __iter__(self) -> Iterator[Rtattr]:
        return iter(self._attrs)

    def __len__(self) -> int:
        return len(self._attrs)

    def get_attribute(self, t: int) -> Optional[Rtattr]:
        """The first attribute of type ``t``, or None."""
        return next((attr for attr in self._attrs if attr.rta_type == t), None)

    def _require(self, t: int, message: str) -> Rtattr:
        attr = self.get_attribute(t)
        if attr is None:
            raise DeError(message)
        return attr

    def get_nested_attributes(self, subattr: int) -> "RtAttrHandle":
        """Parse the payload of attribute ``subattr`` as nested attributes."""
        return self._require(subattr, "Couldn't find specified attribute").get_attr_handle()

    def get_attr_payload_as(self, attr: int, fmt: Any) -> Any:
        """Decode the payload of attribute ``attr`` as in ``Rtattr.get_payload_as``."""
        return self._require(attr, "Failed to find specified attribute").get_payload_as(fmt)

    def get_attr_payload_as_with_len(self, attr: int, kind: Any) -> Any:
        """Decode the payload of ``attr`` as in ``Rtattr.get_payload_as_with_len``."""
        found = self._require(attr, "Failed to find specified attribute")
        return found.get_payload_as_with_len(kind)