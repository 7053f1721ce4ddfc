import asyncio
import struct
import threading
import time

import pytest

from nelipy.utils import (
    AsyncBufferPool,
    BufferPool,
    Groups,
    MsgError,
    NetlinkBitArray,
)


def test_bit_array_basic():
    bit_array = NetlinkBitArray(7)
    assert len(bit_array) == 4
    bit_array.set(4)
    assert bit_array.to_bytes() == struct.pack("=I", 0b1000)
    assert bit_array.is_set(4)
    assert not bit_array.is_set(0)
    assert not bit_array.is_set(1)
    assert not bit_array.is_set(2)
    assert not bit_array.is_set(3)
    assert len(bit_array) == 4
    assert bit_array.len_bits() == 32


def test_bit_array_word_boundary():
    bit_array = NetlinkBitArray(33)
    bit_array.set(32)
    bit_array.set(33)
    assert bit_array.to_bytes() == struct.pack("=2I", 1 << 31, 1)
    assert bit_array.is_set(32)
    assert bit_array.is_set(33)


def test_bit_array_resize_bits():
    bit_array = NetlinkBitArray(32)
    assert len(bit_array) == 4
    bit_array.resize_bits(33)
    assert len(bit_array) == 8
    bit_array.resize_bits(1)
    assert len(bit_array) == 4


def test_bit_array_resize_bytes():
    bit_array = NetlinkBitArray(33)
    assert len(bit_array) == 8
    bit_array.resize(1)
    assert len(bit_array) == 4
    bit_array.resize(9)
    assert len(bit_array) == 12


def test_bit_array_to_list_from_words():
    bit_array = NetlinkBitArray.from_bytes(struct.pack("=3I", 8, 8, 8))
    assert bit_array.to_list() == [4, 36, 68]


def test_bit_array_doc_example():
    array = NetlinkBitArray(24)
    array.set(4)
    array.set(7)
    array.set(23)
    assert array.to_list() == [4, 7, 23]


def test_bit_array_set_zero_is_noop():
    array = NetlinkBitArray(32)
    array.set(0)
    assert array.to_list() == []


def test_bit_array_out_of_range():
    array = NetlinkBitArray(32)
    with pytest.raises(IndexError):
        array.is_set(33)
    with pytest.raises(IndexError):
        array.set(33)


def test_bit_array_bytes_round_trip():
    array = NetlinkBitArray(64)
    array.set(1)
    array.set(40)
    copy = NetlinkBitArray.from_bytes(array.to_bytes())
    assert copy.to_list() == [1, 40]
    assert len(copy) == 8


def test_groups_zero():
    assert Groups.new_groups([0, 0, 0, 0]).as_bitmask() == 0
    assert Groups.new_groups([0, 0, 0, 0]).as_groups() == []


def test_groups_empty():
    groups = Groups.empty()
    assert groups.is_empty()
    assert groups.as_bitmask() == 0


def test_groups_bitmask_round_trip():
    groups = Groups.new_bitmask(0b101)
    assert groups.as_groups() == [1, 3]
    assert groups.as_bitmask() == 0b101


def test_groups_bitmask_ignores_top_bit():
    assert Groups.new_bitmask(0x80000000).as_groups() == []


def test_groups_bitmask_too_large():
    with pytest.raises(MsgError):
        Groups.new_groups([33]).as_bitmask()
    assert Groups.new_groups([32]).as_bitmask() == 1 << 31


def test_groups_add_remove_bitmask():
    groups = Groups.new_groups([1])
    groups.add_bitmask(0b011)
    assert groups.as_groups() == [1, 2]
    groups.remove_bitmask(0b001)
    assert groups.as_groups() == [2]


def test_groups_add_remove_groups():
    groups = Groups.new_groups([3])
    groups.add_groups([0, 3, 5])
    assert groups.as_groups() == [3, 5]
    groups.remove_groups([3])
    assert groups.as_groups() == [5]
    assert not groups.is_empty()


def test_buffer_pool_threads():
    pool = BufferPool(max_parallel=3, buffer_size=16)
    errors = []

    def worker(delay_before, delay_after, value):
        time.sleep(delay_before)
        with pool.acquire() as guard:
            time.sleep(delay_after)
            guard.buffer[0] = value
            if guard.buffer[0] != value:
                errors.append(value)

    threads = [
        threading.Thread(target=worker, args=(0, 0.2, 4)),
        threading.Thread(target=worker, args=(0, 0.3, 1)),
        threading.Thread(target=worker, args=(0, 0.3, 1)),
        threading.Thread(target=worker, args=(0.1, 0, 1)),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert pool.available == 3
    guards = [pool.acquire() for _ in range(3)]
    assert [g.buffer[0] for g in guards] == [1, 1, 1]
    assert all(len(g) == 16 for g in guards)


def test_buffer_pool_blocks_until_release():
    pool = BufferPool(max_parallel=1, buffer_size=8)
    first = pool.acquire()
    acquired = threading.Event()

    def second():
        with pool.acquire():
            acquired.set()

    t = threading.Thread(target=second)
    t.start()
    assert not acquired.wait(0.1)
    first.release()
    assert acquired.wait(2)
    t.join()
    assert pool.available == 1


def test_guard_reduce_and_reset():
    pool = BufferPool(max_parallel=1, buffer_size=10)
    guard = pool.acquire()
    guard.reduce_size(4)
    assert len(guard) == 4
    with pytest.raises(ValueError):
        guard.reduce_size(5)
    guard.reset()
    assert len(guard) == 10
    guard.release()
    guard.release()
    assert pool.available == 1


def test_released_buffer_restored_to_full_size():
    pool = BufferPool(max_parallel=1, buffer_size=12)
    with pool.acquire() as guard:
        guard.reduce_size(2)
    with pool.acquire() as guard:
        assert len(guard) == 12


@pytest.mark.asyncio
async def test_async_buffer_pool():
    pool = AsyncBufferPool(max_parallel=2, buffer_size=8)
    a = await pool.acquire()
    b = await pool.acquire()
    assert pool.available == 0

    waiter = asyncio.ensure_future(pool.acquire())
    await asyncio.sleep(0.05)
    assert not waiter.done()

    a.buffer[0] = 7
    a.reduce_size(1)
    a.release()
    c = await asyncio.wait_for(waiter, 2)
    assert len(c) == 8
    assert c.buffer[0] == 7
    b.release()
    c.release()
    assert pool.available == 2