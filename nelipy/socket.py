"""Low level access to netlink sockets.

``NlSocket.send`` and ``NlSocket.recv`` do what the ``send`` and
``recvfrom`` system calls do, with very little abstraction. The other
methods cover binding, blocking mode, multicast membership and the
netlink-specific socket options.
"""

from __future__ import annotations

import os
import socket as _socket
import struct
from typing import Optional

from .utils import Groups, NetlinkBitArray

SOL_NETLINK = 270
NETLINK_ADD_MEMBERSHIP = 1
NETLINK_DROP_MEMBERSHIP = 2
NETLINK_LIST_MEMBERSHIPS = 9
NETLINK_EXT_ACK = 11
NETLINK_GET_STRICT_CHK = 12

_INT = struct.Struct("=i")
_INITIAL_MEMBERSHIP_BYTES = 4


class NlSocket:
    """A raw netlink socket for one netlink protocol.

    Failing system calls raise ``OSError``; a non-blocking receive with
    no data waiting raises ``BlockingIOError``.
    """

    def __init__(self, proto: int) -> None:
        self._sock = _socket.socket(_socket.AF_NETLINK, _socket.SOCK_RAW, int(proto))

    @classmethod
    def connect(
        cls, proto: int, pid: Optional[int] = None, groups: Optional[Groups] = None
    ) -> "NlSocket":
        """Create a socket and bind it to ``pid`` (0 lets the kernel choose) and ``groups``."""
        sock = cls(proto)
        try:
            sock.bind(pid, groups)
        except BaseException:
            sock.close()
            raise
        return sock

    def block(self) -> None:
        """Put the socket into blocking mode."""
        self._sock.setblocking(True)

    def nonblock(self) -> None:
        """Put the socket into non-blocking mode."""
        self._sock.setblocking(False)

    def is_blocking(self) -> bool:
        """True if the underlying descriptor is in blocking mode."""
        return os.get_blocking(self._sock.fileno())

    def bind(self, pid: Optional[int] = None, groups: Optional[Groups] = None) -> None:
        """Bind to a netlink port ID and join the given multicast groups."""
        self._sock.bind((0 if pid is None else pid, 0))
        self.add_mcast_membership(Groups.empty() if groups is None else groups)

    def set_recv_buffer_size(self, size: int) -> None:
        """Hint the kernel to use a receive buffer of ``size`` bytes (``SO_RCVBUF``).

        The kernel doubles the value for bookkeeping overhead and caps it
        by ``/proc/sys/net/core/rmem_max``.
        """
        self._sock.setsockopt(_socket.SOL_SOCKET, _socket.SO_RCVBUF, int(size))

    def add_mcast_membership(self, groups: Groups) -> None:
        """Join the given multicast groups."""
        for group in groups.as_groups():
            self._sock.setsockopt(SOL_NETLINK, NETLINK_ADD_MEMBERSHIP, group)

    def drop_mcast_membership(self, groups: Groups) -> None:
        """Leave the given multicast groups."""
        for group in groups.as_groups():
            self._sock.setsockopt(SOL_NETLINK, NETLINK_DROP_MEMBERSHIP, group)

    def list_mcast_membership(self) -> NetlinkBitArray:
        """Return the joined multicast groups as a bit array."""
        request = _INITIAL_MEMBERSHIP_BYTES
        data = self._sock.getsockopt(SOL_NETLINK, NETLINK_LIST_MEMBERSHIPS, request)
        if len(data) > request:
            # The kernel reports the full length it needs; ask again with that much room.
            request = len(data)
            data = self._sock.getsockopt(SOL_NETLINK, NETLINK_LIST_MEMBERSHIPS, request)
        bit_array = NetlinkBitArray.from_bytes(data[:request])
        if len(bit_array) < _INITIAL_MEMBERSHIP_BYTES:
            bit_array.resize(_INITIAL_MEMBERSHIP_BYTES)
        return bit_array

    def send(self, buf: bytes, flags: int = 0) -> int:
        """Send an encoded message and return the number of bytes sent."""
        return self._sock.send(bytes(buf), int(flags))

    def recv(self, bufsize: int, flags: int = 0) -> tuple[bytes, Groups]:
        """Receive up to ``bufsize`` bytes; return the data and the sender's groups."""
        data, address = self._sock.recvfrom(bufsize, int(flags))
        group_mask = address[1] if isinstance(address, tuple) and len(address) > 1 else 0
        return data, Groups.new_bitmask(group_mask)

    def pid(self) -> int:
        """The netlink port ID this socket is bound to."""
        return self._sock.getsockname()[0]

    def _set_flag(self, option: int, enable: bool) -> None:
        self._sock.setsockopt(SOL_NETLINK, option, 1 if enable else 0)

    def _get_flag(self, option: int) -> bool:
        raw = self._sock.getsockopt(SOL_NETLINK, option, _INT.size)
        return _INT.unpack(raw[: _INT.size].ljust(_INT.size, b"\x00"))[0] != 0

    def enable_ext_ack(self, enable: bool) -> None:
        """Enable or disable extended ACKs."""
        self._set_flag(NETLINK_EXT_ACK, enable)

    def get_ext_ack_enabled(self) -> bool:
        """True if extended ACKs are enabled."""
        return self._get_flag(NETLINK_EXT_ACK)

    def enable_strict_checking(self, enable: bool) -> None:
        """Enable or disable strict checking (route sockets, Linux 4.20 and later)."""
        self._set_flag(NETLINK_GET_STRICT_CHK, enable)

    def get_strict_checking_enabled(self) -> bool:
        """True if strict checking is enabled (route sockets, Linux 4.20 and later)."""
        return self._get_flag(NETLINK_GET_STRICT_CHK)

    def fileno(self) -> int:
        """The underlying file descriptor, or -1 once closed."""
        return self._sock.fileno()

    def close(self) -> None:
        """Close the underlying file descriptor."""
        self._sock.close()

    def __enter__(self) -> "NlSocket":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"NlSocket(fd={self.fileno()})"