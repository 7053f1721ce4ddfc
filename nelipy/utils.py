"""Bit arrays, multicast group sets and pools of receive buffers."""

from __future__ import annotations

import asyncio
import logging
import os
import struct
import threading
from typing import Iterable, Iterator, Protocol

log = logging.getLogger(__name__)

MAX_NL_LENGTH = 32768
"""Default size in bytes of a buffer used to receive netlink messages."""

_WORD_BITS = 32
_WORD_BYTES = 4
_GROUP_BITS = 32


class MsgError(Exception):
    """Raised when a message or value cannot be represented."""


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _default_buffer_len() -> int:
    return _env_int("NELI_AUTO_BUFFER_LEN", MAX_NL_LENGTH)


def _default_max_parallel() -> int:
    return _env_int("NELI_MAX_PARALLEL_READ_OPS", 3)


def _words_for_bits(bit_len: int) -> int:
    return (bit_len + _WORD_BITS - 1) // _WORD_BITS


def _words_for_bytes(nbytes: int) -> int:
    return (nbytes + _WORD_BYTES - 1) // _WORD_BYTES


class NetlinkBitArray:
    """Bit array laid out like the result of ``NETLINK_LIST_MEMBERSHIPS``.

    Bits are numbered from 1, matching netlink group numbers.
    """

    def __init__(self, bit_len: int = 0) -> None:
        self._words: list[int] = [0] * _words_for_bits(bit_len)

    @classmethod
    def from_bytes(cls, data: bytes) -> "NetlinkBitArray":
        """Build a bit array from native-endian 32-bit words, zero padding a short tail."""
        array = cls()
        padded = bytes(data) + b"\x00" * (-len(data) % _WORD_BYTES)
        count = len(padded) // _WORD_BYTES
        array._words = list(struct.unpack(f"={count}I", padded))
        return array

    def to_bytes(self) -> bytes:
        """Return the array as native-endian 32-bit words."""
        return struct.pack(f"={len(self._words)}I", *self._words)

    def _resize_words(self, count: int) -> None:
        if count < len(self._words):
            del self._words[count:]
        else:
            self._words.extend([0] * (count - len(self._words)))

    def resize_bits(self, bit_len: int) -> None:
        """Resize to hold ``bit_len`` bits, rounded up to whole 32-bit words."""
        self._resize_words(_words_for_bits(bit_len))

    def resize(self, nbytes: int) -> None:
        """Resize to hold ``nbytes`` bytes, rounded up to whole 32-bit words."""
        self._resize_words(_words_for_bytes(nbytes))

    def is_set(self, n: int) -> bool:
        """Return True if bit ``n`` (1-based) is set; bit 0 is never set."""
        if n == 0:
            return False
        index, offset = divmod(n - 1, _WORD_BITS)
        if index >= len(self._words):
            raise IndexError(f"bit {n} is outside an array of {self.len_bits()} bits")
        return bool(self._words[index] & (1 << offset))

    def set(self, n: int) -> None:
        """Set bit ``n`` (1-based); setting bit 0 does nothing."""
        if n == 0:
            return
        index, offset = divmod(n - 1, _WORD_BITS)
        if index >= len(self._words):
            raise IndexError(f"bit {n} is outside an array of {self.len_bits()} bits")
        self._words[index] |= 1 << offset

    def to_list(self) -> list[int]:
        """Return the 1-based positions of all set bits in ascending order."""
        return [
            index * _WORD_BITS + offset + 1
            for index, word in enumerate(self._words)
            for offset in range(_WORD_BITS)
            if word & (1 << offset)
        ]

    def len_bits(self) -> int:
        """Number of bits the array can hold."""
        return len(self._words) * _WORD_BITS

    def __len__(self) -> int:
        return len(self._words) * _WORD_BYTES

    def __repr__(self) -> str:
        return f"NetlinkBitArray({self.to_list()!r})"


def _mask_to_list(mask: int) -> list[int]:
    # Only bits 1..31 are considered, as the group range is half-open.
    return [i for i in range(1, _GROUP_BITS) if mask & (1 << (i - 1))]


def _list_to_mask(groups: Iterable[int]) -> int:
    mask = 0
    for group in groups:
        if group == 0:
            continue
        if group - 1 > 31:
            raise MsgError(f"Group {group} cannot be represented with a bit width of 32")
        mask |= 1 << (group - 1)
    return mask


class Groups:
    """A set of netlink multicast groups, usable as numbers or as a bitmask."""

    def __init__(self, groups: Iterable[int] = ()) -> None:
        self._groups: list[int] = [g for g in groups if g != 0]

    @classmethod
    def empty(cls) -> "Groups":
        """An empty set of groups."""
        return cls()

    @classmethod
    def new_bitmask(cls, mask: int) -> "Groups":
        """Create groups from a bitmask where each bit represents a group."""
        return cls(_mask_to_list(mask))

    @classmethod
    def new_groups(cls, groups: Iterable[int]) -> "Groups":
        """Create groups from group numbers; zero entries are dropped."""
        return cls(groups)

    def add_bitmask(self, mask: int) -> None:
        """Add every group whose bit is set in ``mask``."""
        for group in _mask_to_list(mask):
            if group not in self._groups:
                self._groups.append(group)

    def remove_bitmask(self, mask: int) -> None:
        """Remove every group whose bit is set in ``mask``."""
        removed = set(_mask_to_list(mask))
        self._groups = [g for g in self._groups if g not in removed]

    def add_groups(self, groups: Iterable[int]) -> None:
        """Add group numbers that are non-zero and not already present."""
        for group in groups:
            if group != 0 and group not in self._groups:
                self._groups.append(group)

    def remove_groups(self, groups: Iterable[int]) -> None:
        """Remove the given group numbers."""
        removed = set(groups)
        self._groups = [g for g in self._groups if g not in removed]

    def as_bitmask(self) -> int:
        """Return the groups as a 32-bit mask; raise MsgError if one does not fit."""
        return _list_to_mask(self._groups)

    def as_groups(self) -> list[int]:
        """Return a copy of the group numbers."""
        return list(self._groups)

    def is_empty(self) -> bool:
        """True when no group is set."""
        return not self._groups

    def __iter__(self) -> Iterator[int]:
        return iter(list(self._groups))

    def __len__(self) -> int:
        return len(self._groups)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Groups):
            return NotImplemented
        return self._groups == other._groups

    def __repr__(self) -> str:
        return f"Groups({self._groups!r})"


class _Releaser(Protocol):
    buffer_size: int

    def _release(self, buffer: bytearray) -> None: ...


class BufferPoolGuard:
    """A buffer borrowed from a pool; give it back with ``release`` or a ``with`` block."""

    def __init__(self, pool: _Releaser, buffer: bytearray) -> None:
        self._pool = pool
        self.buffer = buffer
        self._released = False

    def reduce_size(self, bytes_read: int) -> None:
        """Shrink the buffer to the number of bytes actually read."""
        if bytes_read > len(self.buffer):
            raise ValueError(
                f"cannot reduce a buffer of {len(self.buffer)} bytes to {bytes_read} bytes"
            )
        del self.buffer[bytes_read:]

    def reset(self) -> None:
        """Restore the buffer to the pool's buffer size."""
        _resize(self.buffer, self._pool.buffer_size)

    def release(self) -> None:
        """Return the buffer to its pool. Calling this again has no effect."""
        if self._released:
            return
        self._released = True
        buffer, self.buffer = self.buffer, bytearray()
        self._pool._release(buffer)

    def __enter__(self) -> "BufferPoolGuard":
        return self

    def __exit__(self, *args: object) -> None:
        self.release()

    async def __aenter__(self) -> "BufferPoolGuard":
        return self

    async def __aexit__(self, *args: object) -> None:
        self.release()

    def __len__(self) -> int:
        return len(self.buffer)

    def __bytes__(self) -> bytes:
        return bytes(self.buffer)


def _resize(buffer: bytearray, size: int) -> None:
    if size < len(buffer):
        del buffer[size:]
    else:
        buffer.extend(bytes(size - len(buffer)))


class BufferPool:
    """A fixed number of receive buffers shared between threads, guarded by a semaphore."""

    def __init__(self, max_parallel: int | None = None, buffer_size: int | None = None) -> None:
        self.max_parallel = _default_max_parallel() if max_parallel is None else max_parallel
        self.buffer_size = _default_buffer_len() if buffer_size is None else buffer_size
        self._pool = [bytearray(self.buffer_size) for _ in range(self.max_parallel)]
        self._count = 0
        self._condition = threading.Condition()

    @property
    def available(self) -> int:
        """Number of buffers that can be acquired without waiting."""
        with self._condition:
            return self.max_parallel - self._count

    def acquire(self) -> BufferPoolGuard:
        """Borrow a buffer, blocking until one is free."""
        with self._condition:
            self._condition.wait_for(lambda: self._count < self.max_parallel)
            self._count += 1
            buffer = self._pool.pop()
            log.debug(
                "Semaphore acquired; current count is %d, available is %d",
                self._count,
                self.max_parallel - self._count,
            )
        return BufferPoolGuard(self, buffer)

    def _release(self, buffer: bytearray) -> None:
        with self._condition:
            self._count -= 1
            _resize(buffer, self.buffer_size)
            self._pool.append(buffer)
            log.debug(
                "Semaphore released; current count is %d, available is %d",
                self._count,
                self.max_parallel - self._count,
            )
            self._condition.notify()


class AsyncBufferPool:
    """A fixed number of receive buffers shared between tasks, guarded by a semaphore."""

    def __init__(self, max_parallel: int | None = None, buffer_size: int | None = None) -> None:
        self.max_parallel = _default_max_parallel() if max_parallel is None else max_parallel
        self.buffer_size = _default_buffer_len() if buffer_size is None else buffer_size
        self._pool = [bytearray(self.buffer_size) for _ in range(self.max_parallel)]
        self._semaphore = asyncio.Semaphore(self.max_parallel)
        self._lock = threading.Lock()

    @property
    def available(self) -> int:
        """Number of buffers that can be acquired without waiting."""
        with self._lock:
            return len(self._pool)

    async def acquire(self) -> BufferPoolGuard:
        """Borrow a buffer, waiting until one is free."""
        await self._semaphore.acquire()
        with self._lock:
            buffer = self._pool.pop()
            log.debug(
                "Semaphore acquired; current count is %d, available is %d",
                self.max_parallel - len(self._pool),
                len(self._pool),
            )
        return BufferPoolGuard(self, buffer)

    def _release(self, buffer: bytearray) -> None:
        with self._lock:
            _resize(buffer, self.buffer_size)
            self._pool.append(buffer)
            log.debug(
                "Semaphore released; current count is %d, available is %d",
                self.max_parallel - len(self._pool),
                len(self._pool),
            )
        self._semaphore.release()