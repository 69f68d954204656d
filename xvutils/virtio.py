"""Virtio MMIO register layout and virtqueue / block request structures (legacy interface)."""

import struct
from dataclasses import dataclass, field
from enum import IntEnum, IntFlag

MMIO_BASE = 0x10001000
MAGIC_VALUE = 0x74726976
VENDOR_ID = 0x554D4551

# Number of virtio descriptors; must be a power of two.
NUM = 8

VRING_DESC_F_NEXT = 1
VRING_DESC_F_WRITE = 2

VIRTIO_BLK_T_IN = 0
VIRTIO_BLK_T_OUT = 1


class MmioRegister(IntEnum):
    MAGIC_VALUE = 0x000
    VERSION = 0x004
    DEVICE_ID = 0x008
    VENDOR_ID = 0x00C
    DEVICE_FEATURES = 0x010
    DRIVER_FEATURES = 0x020
    GUEST_PAGE_SIZE = 0x028
    QUEUE_SEL = 0x030
    QUEUE_NUM_MAX = 0x034
    QUEUE_NUM = 0x038
    QUEUE_ALIGN = 0x03C
    QUEUE_PFN = 0x040
    QUEUE_READY = 0x044
    QUEUE_NOTIFY = 0x050
    INTERRUPT_STATUS = 0x060
    INTERRUPT_ACK = 0x064
    STATUS = 0x070


class StatusBit(IntFlag):
    ACKNOWLEDGE = 1
    DRIVER = 2
    DRIVER_OK = 4
    FEATURES_OK = 8


class FeatureBit(IntEnum):
    BLK_RO = 5
    BLK_SCSI = 7
    BLK_CONFIG_WCE = 11
    BLK_MQ = 12
    ANY_LAYOUT = 27
    RING_INDIRECT_DESC = 28
    RING_EVENT_IDX = 29


_DESC = struct.Struct("<QIHH")
_AVAIL = struct.Struct(f"<HH{NUM}HH")
_USED_ELEM = struct.Struct("<II")
_USED_HEAD = struct.Struct("<HH")
_BLK_REQ = struct.Struct("<IIQ")


def _unpack(layout, data):
    data = bytes(data)
    if len(data) != layout.size:
        raise ValueError(f"expected {layout.size} bytes, got {len(data)}")
    return layout.unpack(data)


def _check_ring(ring):
    if len(ring) != NUM:
        raise ValueError(f"ring must have {NUM} entries")


@dataclass
class VirtqDesc:
    addr: int = 0
    len: int = 0
    flags: int = 0
    next: int = 0

    def pack(self):
        return _DESC.pack(self.addr, self.len, self.flags, self.next)

    @classmethod
    def unpack(cls, data):
        return cls(*_unpack(_DESC, data))


@dataclass
class VirtqAvail:
    flags: int = 0
    idx: int = 0
    ring: list = field(default_factory=lambda: [0] * NUM)
    unused: int = 0

    def pack(self):
        _check_ring(self.ring)
        return _AVAIL.pack(self.flags, self.idx, *self.ring, self.unused)

    @classmethod
    def unpack(cls, data):
        values = _unpack(_AVAIL, data)
        return cls(values[0], values[1], list(values[2:2 + NUM]), values[2 + NUM])


@dataclass
class VirtqUsedElem:
    id: int = 0
    len: int = 0

    def pack(self):
        return _USED_ELEM.pack(self.id, self.len)

    @classmethod
    def unpack(cls, data):
        return cls(*_unpack(_USED_ELEM, data))


@dataclass
class VirtqUsed:
    flags: int = 0
    idx: int = 0
    ring: list = field(default_factory=lambda: [VirtqUsedElem() for _ in range(NUM)])

    SIZE = _USED_HEAD.size + NUM * _USED_ELEM.size

    def pack(self):
        _check_ring(self.ring)
        return _USED_HEAD.pack(self.flags, self.idx) + b"".join(e.pack() for e in self.ring)

    @classmethod
    def unpack(cls, data):
        data = bytes(data)
        if len(data) != cls.SIZE:
            raise ValueError(f"expected {cls.SIZE} bytes, got {len(data)}")
        flags, idx = _USED_HEAD.unpack(data[:_USED_HEAD.size])
        body = data[_USED_HEAD.size:]
        ring = [VirtqUsedElem(*e) for e in _USED_ELEM.iter_unpack(body)]
        return cls(flags, idx, ring)


@dataclass
class VirtioBlkReq:
    type: int = VIRTIO_BLK_T_IN
    reserved: int = 0
    sector: int = 0

    def pack(self):
        return _BLK_REQ.pack(self.type, self.reserved, self.sector)

    @classmethod
    def unpack(cls, data):
        return cls(*_unpack(_BLK_REQ, data))