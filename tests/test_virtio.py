import pytest

from xvutils.virtio import (
    NUM,
    VIRTIO_BLK_T_OUT,
    VRING_DESC_F_NEXT,
    VRING_DESC_F_WRITE,
    MmioRegister,
    StatusBit,
    VirtioBlkReq,
    VirtqAvail,
    VirtqDesc,
    VirtqUsed,
    VirtqUsedElem,
)


def test_register_lookup_by_offset():
    assert MmioRegister(0x000) is MmioRegister.MAGIC_VALUE
    assert MmioRegister(0x050) is MmioRegister.QUEUE_NOTIFY
    assert MmioRegister(0x070) is MmioRegister.STATUS
    with pytest.raises(ValueError):
        MmioRegister(0x001)


def test_status_bits_from_register_value():
    status = StatusBit(7)
    assert status == StatusBit.ACKNOWLEDGE | StatusBit.DRIVER | StatusBit.DRIVER_OK
    assert StatusBit.DRIVER in status
    assert StatusBit.FEATURES_OK not in status


def test_desc_wire_bytes():
    desc = VirtqDesc(
        addr=0x1122334455667788,
        len=0x200,
        flags=VRING_DESC_F_NEXT | VRING_DESC_F_WRITE,
        next=1,
    )
    assert desc.pack() == bytes.fromhex("8877665544332211" "00020000" "0300" "0100")
    assert VirtqDesc.unpack(desc.pack()) == desc


def test_avail_round_trip():
    avail = VirtqAvail(flags=0, idx=5, ring=list(range(NUM)), unused=0)
    packed = avail.pack()
    assert len(packed) == 22
    assert VirtqAvail.unpack(packed) == avail


def test_used_round_trip():
    used = VirtqUsed(idx=3, ring=[VirtqUsedElem(id=i, len=i * 512) for i in range(NUM)])
    packed = used.pack()
    assert len(packed) == 68
    assert VirtqUsed.unpack(packed) == used


def test_blk_req_round_trip():
    req = VirtioBlkReq(type=VIRTIO_BLK_T_OUT, sector=42)
    assert VirtioBlkReq.unpack(req.pack()) == req
    assert len(req.pack()) == len(VirtqDesc().pack())


def test_wrong_ring_length():
    with pytest.raises(ValueError):
        VirtqAvail(ring=[0] * (NUM - 1)).pack()
    with pytest.raises(ValueError):
        VirtqUsed(ring=[]).pack()


def test_unpack_wrong_length():
    with pytest.raises(ValueError):
        VirtqDesc.unpack(b"\0" * 3)
    with pytest.raises(ValueError):
        VirtqUsed.unpack(b"\0" * 10)
    with pytest.raises(ValueError):
        VirtioBlkReq.unpack(b"")