"""Routing netlink message structures, laid out as described in rtnetlink(7)."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import BinaryIO, ClassVar, Optional

from .rtattr import RtBuffer
from .types import DeError, SerError

IFF_UP = 0x1
"""Interface flag marking a link as administratively up."""

_U32 = 0xFFFFFFFF


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    data = stream.read(size)
    if data is None or len(data) < size:
        raise DeError(f"Invalid input: {size}")
    return data


class _Packed:
    """Fixed layout encoding shared by the message classes."""

    _HEADER: ClassVar[struct.Struct]
    # Field names in wire order; None marks padding written as zero.
    _LAYOUT: ClassVar[tuple[Optional[str], ...]]

    @classmethod
    def header_size(cls) -> int:
        """Size of the fixed part in bytes."""
        return cls._HEADER.size

    def _pack_header(self) -> bytes:
        values = tuple(0 if name is None else int(getattr(self, name)) for name in self._LAYOUT)
        try:
            return self._HEADER.pack(*values)
        except struct.error as exc:
            raise SerError(f"Cannot encode {type(self).__name__}: {exc}") from exc

    @classmethod
    def _unpack_header(cls, data: bytes) -> dict:
        values = cls._HEADER.unpack(data)
        return {name: value for name, value in zip(cls._LAYOUT, values) if name is not None}


class _RtnlMessage(_Packed):
    """A fixed header followed by routing attributes."""

    rtattrs: RtBuffer

    def _encode(self) -> bytes:
        return self._pack_header() + self.rtattrs.to_bytes()

    def unpadded_size(self) -> int:
        """Size of the encoded message in bytes."""
        return self.header_size() + self.rtattrs.unpadded_size()

    @classmethod
    def _decode(cls, stream: BinaryIO, length: int):
        size = cls.header_size()
        if length < size:
            raise DeError(f"Invalid input: {length}")
        values = cls._unpack_header(_read_exact(stream, size))
        rtattrs = RtBuffer.from_bytes_with_input(stream, length - size)
        return cls(**values, rtattrs=rtattrs)


class _FixedStruct(_Packed):
    """A structure with only fixed-size fields."""

    def _encode(self) -> bytes:
        return self._pack_header()

    def unpadded_size(self) -> int:
        """Size of the encoded structure in bytes."""
        return self.header_size()

    @classmethod
    def _decode(cls, stream: BinaryIO):
        return cls(**cls._unpack_header(_read_exact(stream, cls.header_size())))


@dataclass(kw_only=True)
class Ifinfomsg(_RtnlMessage):
    """Interface information message."""

    _HEADER: ClassVar[struct.Struct] = struct.Struct("=BBHiII")
    _LAYOUT: ClassVar[tuple[Optional[str], ...]] = (
        "ifi_family", None, "ifi_type", "ifi_index", "ifi_flags", "ifi_change",
    )

    ifi_family: int
    ifi_type: int = 0
    ifi_index: int = 0
    ifi_flags: int = 0
    ifi_change: int = 0
    rtattrs: RtBuffer = field(default_factory=RtBuffer)

    def up(self) -> "Ifinfomsg":
        """Request the link be set up (like ``ip link set dev DEV up``)."""
        self.ifi_flags |= IFF_UP
        self.ifi_change |= IFF_UP
        return self

    def down(self) -> "Ifinfomsg":
        """Request the link be set down (like ``ip link set dev DEV down``)."""
        self.ifi_flags &= ~IFF_UP & _U32
        self.ifi_change |= IFF_UP
        return self

    def to_bytes(self) -> bytes:
        """Encode the header and its attributes."""
        return self._encode()

    @classmethod
    def from_bytes_with_input(cls, stream: BinaryIO, length: int) -> "Ifinfomsg":
        """Decode a message occupying ``length`` bytes of ``stream``."""
        return cls._decode(stream, length)


@dataclass(kw_only=True)
class Ifaddrmsg(_RtnlMessage):
    """Interface address message."""

    _HEADER: ClassVar[struct.Struct] = struct.Struct("=BBBBI")
    _LAYOUT: ClassVar[tuple[Optional[str], ...]] = (
        "ifa_family", "ifa_prefixlen", "ifa_flags", "ifa_scope", "ifa_index",
    )

    ifa_family: int
    ifa_prefixlen: int
    ifa_flags: int = 0
    ifa_scope: int
    ifa_index: int
    rtattrs: RtBuffer = field(default_factory=RtBuffer)

    def to_bytes(self) -> bytes:
        """Encode the header and its attributes."""
        return self._encode()

    @classmethod
    def from_bytes_with_input(cls, stream: BinaryIO, length: int) -> "Ifaddrmsg":
        """Decode a message occupying ``length`` bytes of ``stream``."""
        return cls._decode(stream, length)


@dataclass(kw_only=True)
class Rtgenmsg(_RtnlMessage):
    """Address family dependent request message."""

    _HEADER: ClassVar[struct.Struct] = struct.Struct("=B")
    _LAYOUT: ClassVar[tuple[Optional[str], ...]] = ("rtgen_family",)

    rtgen_family: int
    rtattrs: RtBuffer = field(default_factory=RtBuffer)

    def to_bytes(self) -> bytes:
        """Encode the header and its attributes."""
        return self._encode()

    @classmethod
    def from_bytes_with_input(cls, stream: BinaryIO, length: int) -> "Rtgenmsg":
        """Decode a message occupying ``length`` bytes of ``stream``."""
        return cls._decode(stream, length)


@dataclass(kw_only=True)
class Rtmsg(_RtnlMessage):
    """Route message."""

    _HEADER: ClassVar[struct.Struct] = struct.Struct("=BBBBBBBBI")
    _LAYOUT: ClassVar[tuple[Optional[str], ...]] = (
        "rtm_family", "rtm_dst_len", "rtm_src_len", "rtm_tos",
        "rtm_table", "rtm_protocol", "rtm_scope", "rtm_type", "rtm_flags",
    )

    rtm_family: int
    rtm_dst_len: int
    rtm_src_len: int
    rtm_tos: int
    rtm_table: int
    rtm_protocol: int
    rtm_scope: int
    rtm_type: int
    rtm_flags: int = 0
    rtattrs: RtBuffer = field(default_factory=RtBuffer)

    def to_bytes(self) -> bytes:
        """Encode the header and its attributes."""
        return self._encode()

    @classmethod
    def from_bytes_with_input(cls, stream: BinaryIO, length: int) -> "Rtmsg":
        """Decode a message occupying ``length`` bytes of ``stream``."""
        return cls._decode(stream, length)


@dataclass(kw_only=True)
class Ndmsg(_RtnlMessage):
    """Neighbour table (ARP) entry."""

    _HEADER: ClassVar[struct.Struct] = struct.Struct("=BBHiHBB")
    _LAYOUT: ClassVar[tuple[Optional[str], ...]] = (
        "ndm_family", None, None, "ndm_index", "ndm_state", "ndm_flags", "ndm_type",
    )

    ndm_family: int
    ndm_index: int
    ndm_state: int
    ndm_flags: int = 0
    ndm_type: int
    rtattrs: RtBuffer = field(default_factory=RtBuffer)

    def to_bytes(self) -> bytes:
        """Encode the header and its attributes."""
        return self._encode()

    @classmethod
    def from_bytes_with_input(cls, stream: BinaryIO, length: int) -> "Ndmsg":
        """Decode a message occupying ``length`` bytes of ``stream``."""
        return cls._decode(stream, length)


@dataclass(kw_only=True)
class NdaCacheinfo(_FixedStruct):
    """Neighbour cache information."""

    _HEADER: ClassVar[struct.Struct] = struct.Struct("=IIII")
    _LAYOUT: ClassVar[tuple[Optional[str], ...]] = (
        "ndm_confirmed", "ndm_used", "ndm_updated", "ndm_refcnt",
    )

    ndm_confirmed: int
    ndm_used: int
    ndm_updated: int
    ndm_refcnt: int

    def to_bytes(self) -> bytes:
        """Encode the structure."""
        return self._encode()

    @classmethod
    def from_bytes(cls, stream: BinaryIO) -> "NdaCacheinfo":
        """Decode the structure from ``stream``."""
        return cls._decode(stream)


@dataclass(kw_only=True)
class Tcmsg(_RtnlMessage):
    """Queuing discipline message."""

    _HEADER: ClassVar[struct.Struct] = struct.Struct("=BBHiIII")
    _LAYOUT: ClassVar[tuple[Optional[str], ...]] = (
        "tcm_family", None, None, "tcm_ifindex", "tcm_handle", "tcm_parent", "tcm_info",
    )

    tcm_family: int
    tcm_ifindex: int
    tcm_handle: int
    tcm_parent: int
    tcm_info: int
    rtattrs: RtBuffer = field(default_factory=RtBuffer)

    def to_bytes(self) -> bytes:
        """Encode the header and its attributes."""
        return self._encode()

    @classmethod
    def from_bytes_with_input(cls, stream: BinaryIO, length: int) -> "Tcmsg":
        """Decode a message occupying ``length`` bytes of ``stream``."""
        return cls._decode(stream, length)


@dataclass(kw_only=True)
class Fibmsg(_RtnlMessage):
    """Routing rule message."""

    _HEADER: ClassVar[struct.Struct] = struct.Struct("=BBBBBBBBI")
    _LAYOUT: ClassVar[tuple[Optional[str], ...]] = (
        "fib_family", "fib_dst_len", "fib_src_len", "fib_tos",
        "fib_table", None, None, "fib_action", "fib_flags",
    )

    fib_family: int
    fib_dst_len: int
    fib_src_len: int
    fib_tos: int
    fib_table: int
    fib_action: int
    fib_flags: int = 0
    rtattrs: RtBuffer = field(default_factory=RtBuffer)

    def to_bytes(self) -> bytes:
        """Encode the header and its attributes."""
        return self._encode()

    @classmethod
    def from_bytes_with_input(cls, stream: BinaryIO, length: int) -> "Fibmsg":
        """Decode a message occupying ``length`` bytes of ``stream``."""
        return cls._decode(stream, length)


@dataclass(kw_only=True)
class IflaVlanFlags(_FixedStruct):
    """VLAN flags and the mask of flags to change."""

    _HEADER: ClassVar[struct.Struct] = struct.Struct("=II")
    _LAYOUT: ClassVar[tuple[Optional[str], ...]] = ("flags", "mask")

    flags: int
    mask: int

    def to_bytes(self) -> bytes:
        """Encode the structure."""
        return self._encode()

    @classmethod
    def from_bytes(cls, stream: BinaryIO) -> "IflaVlanFlags":
        """Decode the structure from ``stream``."""
        return cls._decode(stream)


@dataclass(kw_only=True)
class IflaVlanQosMapping(_FixedStruct):
    """VLAN QoS priority mapping."""

    _HEADER: ClassVar[struct.Struct] = struct.Struct("=II")
    _LAYOUT: ClassVar[tuple[Optional[str], ...]] = ("from_", "to")

    from_: int
    to: int

    def to_bytes(self) -> bytes:
        """Encode the structure."""
        return self._encode()

    @classmethod
    def from_bytes(cls, stream: BinaryIO) -> "IflaVlanQosMapping":
        """Decode the structure from ``stream``."""
        return cls._decode(stream)