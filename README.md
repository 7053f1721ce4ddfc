# nelipy

Netlink sockets and routing netlink structures for Linux, in plain Python.

nelipy gives you:

- `nelipy.socket.NlSocket`: a low-level netlink socket. It can bind to a port ID,
  join and leave multicast groups, list group memberships, switch between
  blocking and non-blocking mode, set the receive buffer size, and turn
  extended ACKs and strict checking on or off. Failing system calls raise
  `OSError`. The socket works as a context manager and closes on exit.
- `nelipy.utils.Groups` and `nelipy.utils.NetlinkBitArray`: multicast group sets
  that you can build from group numbers or from bitmasks, and a bit array laid
  out like the result of `NETLINK_LIST_MEMBERSHIPS` (bits numbered from 1).
  `Groups.as_bitmask` raises `nelipy.utils.MsgError` for a group above 32.
- `nelipy.utils.BufferPool` and `nelipy.utils.AsyncBufferPool`: bounded pools of
  receive buffers, so that only a fixed number of reads run at the same time.
  The defaults come from the environment variables `NELI_MAX_PARALLEL_READ_OPS`
  (3) and `NELI_AUTO_BUFFER_LEN` (32768 bytes).
- `nelipy.types.Buffer`: a byte buffer used for attribute payloads, together with
  the `DeError` and `SerError` exceptions raised on decoding and encoding failures.
- `nelipy.rtattr`: routing attributes (`Rtattr`), lists of them (`RtBuffer`) and
  lookup handles (`RtAttrHandle`), with 4-byte alignment handled for you.
- `nelipy.rtnl`: the rtnetlink message headers `Ifinfomsg`, `Ifaddrmsg`,
  `Rtgenmsg`, `Rtmsg`, `Ndmsg`, `Tcmsg` and `Fibmsg`, plus the fixed-size
  structures `NdaCacheinfo`, `IflaVlanFlags` and `IflaVlanQosMapping`. Each one
  is a keyword-only dataclass with `to_bytes` and a matching decoder.

## Installation

```
pip install nelipy
```

The package uses only the standard library and needs Python 3.10 or newer.
Socket operations work only on Linux.

## Multicast groups

```python
from nelipy.utils import Groups, NetlinkBitArray

groups = Groups.new_groups([1, 3])
assert groups.as_bitmask() == 0b101

groups.add_bitmask(0b10)
assert sorted(groups.as_groups()) == [1, 2, 3]

bits = NetlinkBitArray(24)
bits.set(4)
bits.set(23)
assert bits.to_list() == [4, 23]
```

## Sockets

```python
from nelipy.socket import NlSocket
from nelipy.utils import Groups

NETLINK_GENERIC = 16

with NlSocket.connect(NETLINK_GENERIC, None, Groups.empty()) as sock:
    sock.enable_ext_ack(True)
    print(sock.pid(), sock.get_ext_ack_enabled())
```

`NlSocket.send` takes encoded bytes; `NlSocket.recv(bufsize)` returns the
received bytes and the sender's groups.

## Buffer pools

```python
from nelipy.utils import BufferPool

pool = BufferPool(max_parallel=2, buffer_size=4096)
with pool.acquire() as guard:
    guard.reduce_size(16)
    assert len(guard) == 16
assert pool.available == 2
```

`AsyncBufferPool.acquire` is a coroutine and returns the same kind of guard,
which can also be used with `async with`.

## Routing attributes

```python
import io

from nelipy.rtattr import Rtattr, RtBuffer

attr = Rtattr(1, b"\x7f\x00\x00\x01")
data = attr.to_bytes()
assert attr.rta_len() == 8
decoded = Rtattr.from_bytes(io.BytesIO(data))
assert decoded.rta_payload.to_bytes() == b"\x7f\x00\x00\x01"
```

Payloads may be bytes, a `str` (written with a trailing NUL) or any object with
a `to_bytes` method. An attribute's payload can hold nested attributes: add them
with `Rtattr.nest` and read them back through `Rtattr.get_attr_handle`.
`RtAttrHandle.get_attr_payload_as` decodes a payload with a `struct` format, and
`get_attr_payload_as_with_len` decodes it as `str`, bytes or a structure class.

## Routing messages

```python
import io

from nelipy.rtnl import Ifinfomsg

msg = Ifinfomsg(ifi_family=0, ifi_index=2).up()
data = msg.to_bytes()
again = Ifinfomsg.from_bytes_with_input(io.BytesIO(data), len(data))
assert again.ifi_flags == msg.ifi_flags
```

## What the package does not do

nelipy encodes routing netlink headers and attributes and gives you a raw
netlink socket, but it has no netlink message header type (`nlmsghdr`), no
generic netlink support, and no request/response layer that assigns sequence
numbers, matches replies to requests or checks ACKs. Family, type and flag
values are plain integers; apart from `IFF_UP` no named constants are provided.
To talk to the kernel you frame messages yourself and pass the bytes to
`NlSocket.send`.

## Running the tests

```
pip install -e ".[test]"
pytest
```