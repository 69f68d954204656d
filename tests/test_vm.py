import struct

import pytest

from xvutils.vm import (
    MAXVA,
    PGSIZE,
    PTE_R,
    PTE_U,
    PTE_V,
    PTE_W,
    PTE_X,
    KernelPanic,
    PageTables,
    PhysicalMemory,
    pa2pte,
    pgrounddown,
    pgroundup,
    pte2pa,
    px,
)

BASE = 0x80000000
USER = PTE_R | PTE_W | PTE_U


@pytest.fixture
def memory():
    return PhysicalMemory(BASE, 64)


@pytest.fixture
def vm(memory):
    return PageTables(memory)


def _pte(memory, addr):
    return struct.unpack("<Q", memory.read(addr, 8))[0]


def test_rounding():
    assert pgroundup(1) == PGSIZE
    assert pgroundup(PGSIZE) == PGSIZE
    assert pgrounddown(PGSIZE + 1) == PGSIZE
    assert pgrounddown(PGSIZE - 1) == 0


def test_px_selects_nine_bit_fields():
    va = (3 << 30) | (5 << 21) | (7 << 12) | 0x123
    assert (px(2, va), px(1, va), px(0, va)) == (3, 5, 7)


def test_pte_roundtrip():
    for pa in (BASE, BASE + PGSIZE * 9):
        assert pte2pa(pa2pte(pa)) == pa
        assert pte2pa(pa2pte(pa) | PTE_V | PTE_R) == pa


def test_kalloc_and_kfree(memory):
    before = memory.free_pages
    pa = memory.kalloc()
    assert pa % PGSIZE == 0
    assert BASE <= pa < BASE + 64 * PGSIZE
    assert memory.free_pages == before - 1
    memory.kfree(pa)
    assert memory.free_pages == before
    with pytest.raises(KernelPanic, match="kfree"):
        memory.kfree(pa)


def test_kalloc_exhaustion():
    small = PhysicalMemory(BASE, 2)
    pages = {small.kalloc(), small.kalloc()}
    assert len(pages) == 2
    with pytest.raises(MemoryError):
        small.kalloc()


def test_memory_read_write(memory):
    memory.write(BASE + 10, b"hello")
    assert memory.read(BASE + 10, 5) == b"hello"
    with pytest.raises(ValueError):
        memory.read(BASE - 1, 2)


def test_walk_without_alloc_on_empty_table(vm):
    pt = vm.uvmcreate()
    assert vm.walk(pt, 0x5000, False) is None
    assert vm.walkaddr(pt, 0x5000) is None


def test_walk_above_maxva_panics(vm):
    pt = vm.uvmcreate()
    with pytest.raises(KernelPanic, match="walk"):
        vm.walk(pt, MAXVA, True)
    assert vm.walkaddr(pt, MAXVA) is None


def test_mappages_and_walkaddr(vm, memory):
    pt = vm.uvmcreate()
    page = memory.kalloc()
    vm.mappages(pt, 0x3000, PGSIZE, page, USER)
    assert vm.walkaddr(pt, 0x3000) == page
    pte = _pte(memory, vm.walk(pt, 0x3000, False))
    assert pte & (PTE_V | USER) == PTE_V | USER


def test_walkaddr_requires_user_bit(vm, memory):
    pt = vm.uvmcreate()
    page = memory.kalloc()
    vm.mappages(pt, 0, PGSIZE, page, PTE_R | PTE_W)
    assert vm.walkaddr(pt, 0) is None


def test_mappages_errors(vm, memory):
    pt = vm.uvmcreate()
    page = memory.kalloc()
    with pytest.raises(KernelPanic, match="mappages: size"):
        vm.mappages(pt, 0, 0, page, USER)
    vm.mappages(pt, 0, PGSIZE, page, USER)
    with pytest.raises(KernelPanic, match="mappages: remap"):
        vm.mappages(pt, 0, PGSIZE, page, USER)


def test_kvmmap_identity(vm):
    pt = vm.uvmcreate()
    vm.kvmmap(pt, BASE + 40 * PGSIZE, BASE + 40 * PGSIZE, 2 * PGSIZE, PTE_R | PTE_X)
    addr = vm.walk(pt, BASE + 41 * PGSIZE, False)
    pte = _pte(vm.memory, addr)
    assert pte2pa(pte) == BASE + 41 * PGSIZE
    # Kernel mappings are not user-accessible.
    assert vm.walkaddr(pt, BASE + 40 * PGSIZE) is None


def test_kvmmap_out_of_memory_panics():
    tiny = PageTables(PhysicalMemory(BASE, 1))
    pt = tiny.uvmcreate()
    with pytest.raises(KernelPanic, match="kvmmap"):
        tiny.kvmmap(pt, 0, BASE, PGSIZE, PTE_R)


def test_copyout_copyin_across_pages(vm):
    pt = vm.uvmcreate()
    assert vm.uvmalloc(pt, 0, 3 * PGSIZE) == 3 * PGSIZE
    data = bytes(range(256)) * 20
    vm.copyout(pt, PGSIZE - 100, data)
    assert vm.copyin(pt, PGSIZE - 100, len(data)) == data


def test_copy_to_unmapped_fails(vm):
    pt = vm.uvmcreate()
    vm.uvmalloc(pt, 0, PGSIZE)
    with pytest.raises(ValueError):
        vm.copyout(pt, PGSIZE - 2, b"abcd")
    with pytest.raises(ValueError):
        vm.copyin(pt, 0xFFFFFFFFFFFFFFFF, 8)


def test_uvmalloc_zeroes_and_shrinks(vm):
    pt = vm.uvmcreate()
    assert vm.uvmalloc(pt, 0, 2 * PGSIZE) == 2 * PGSIZE
    assert vm.copyin(pt, 0, 2 * PGSIZE) == bytes(2 * PGSIZE)
    assert vm.uvmalloc(pt, 2 * PGSIZE, PGSIZE) == 2 * PGSIZE
    assert vm.uvmdealloc(pt, 2 * PGSIZE, PGSIZE) == PGSIZE
    assert vm.walkaddr(pt, PGSIZE) is None
    assert vm.walkaddr(pt, 0) is not None


def test_uvmdealloc_within_page_keeps_mapping(vm):
    pt = vm.uvmcreate()
    sz = vm.uvmalloc(pt, 0, 2 * PGSIZE + 2048)
    assert vm.uvmdealloc(pt, sz, sz - 10) == sz - 10
    assert vm.walkaddr(pt, 2 * PGSIZE) is not None


def test_dealloc_then_realloc_is_zeroed(vm):
    pt = vm.uvmcreate()
    vm.uvmalloc(pt, 0, 2 * PGSIZE)
    vm.copyout(pt, 2 * PGSIZE - 1, b"\x63")
    vm.uvmdealloc(pt, 2 * PGSIZE, PGSIZE)
    vm.uvmalloc(pt, PGSIZE, 2 * PGSIZE)
    assert vm.copyin(pt, 2 * PGSIZE - 1, 1) == b"\x00"


def test_uvmfree_releases_everything(vm, memory):
    before = memory.free_pages
    pt = vm.uvmcreate()
    vm.uvmalloc(pt, 0, 5 * PGSIZE)
    assert memory.free_pages < before
    vm.uvmfree(pt, 5 * PGSIZE)
    assert memory.free_pages == before


def test_uvmalloc_out_of_memory_rolls_back():
    memory = PhysicalMemory(BASE, 8)
    vm = PageTables(memory)
    pt = vm.uvmcreate()
    with pytest.raises(MemoryError):
        vm.uvmalloc(pt, 0, 20 * PGSIZE)
    assert vm.walkaddr(pt, 0) is None
    assert vm.walkaddr(pt, PGSIZE) is None


def test_uvmcopy_copies_contents(vm):
    parent = vm.uvmcreate()
    vm.uvmalloc(parent, 0, 2 * PGSIZE)
    vm.copyout(parent, 10, b"parent data")
    child = vm.uvmcreate()
    vm.uvmcopy(parent, child, 2 * PGSIZE)
    assert vm.copyin(child, 10, 11) == b"parent data"
    vm.copyout(child, 10, b"CHILD")
    assert vm.copyin(parent, 10, 6) == b"parent"
    assert vm.walkaddr(child, 0) != vm.walkaddr(parent, 0)


def test_uvmcopy_missing_page_panics(vm):
    parent = vm.uvmcreate()
    child = vm.uvmcreate()
    with pytest.raises(KernelPanic, match="uvmcopy"):
        vm.uvmcopy(parent, child, PGSIZE)


def test_uvmcopy_out_of_memory_frees_copies():
    memory = PhysicalMemory(BASE, 12)
    vm = PageTables(memory)
    parent = vm.uvmcreate()
    vm.uvmalloc(parent, 0, 6 * PGSIZE)
    child = vm.uvmcreate()
    with pytest.raises(MemoryError):
        vm.uvmcopy(parent, child, 6 * PGSIZE)
    assert vm.walkaddr(child, 0) is None


def test_uvmunmap_errors(vm):
    pt = vm.uvmcreate()
    with pytest.raises(KernelPanic, match="not aligned"):
        vm.uvmunmap(pt, 1, 1, True)
    with pytest.raises(KernelPanic, match="uvmunmap: walk"):
        vm.uvmunmap(pt, 0, 1, True)
    vm.uvmalloc(pt, 0, PGSIZE)
    with pytest.raises(KernelPanic, match="not mapped"):
        vm.uvmunmap(pt, PGSIZE, 1, True)


def test_freewalk_with_leaf_panics(vm):
    pt = vm.uvmcreate()
    vm.uvmalloc(pt, 0, PGSIZE)
    with pytest.raises(KernelPanic, match="freewalk: leaf"):
        vm.freewalk(pt)


def test_uvmclear_removes_user_access(vm):
    pt = vm.uvmcreate()
    vm.uvmalloc(pt, 0, 2 * PGSIZE)
    vm.uvmclear(pt, 0)
    assert vm.walkaddr(pt, 0) is None
    with pytest.raises(ValueError):
        vm.copyin(pt, 0, 4)
    with pytest.raises(KernelPanic, match="uvmclear"):
        vm.uvmclear(pt, 1 << 30)


def test_uvminit(vm):
    pt = vm.uvmcreate()
    code = b"\x13\x00\x00\x00" * 4
    vm.uvminit(pt, code)
    assert vm.copyin(pt, 0, len(code)) == code
    assert vm.copyin(pt, len(code), 4) == bytes(4)
    with pytest.raises(KernelPanic, match="more than a page"):
        vm.uvminit(vm.uvmcreate(), bytes(PGSIZE))


def test_copyinstr(vm):
    pt = vm.uvmcreate()
    vm.uvmalloc(pt, 0, 2 * PGSIZE)
    vm.copyout(pt, PGSIZE - 3, b"README\0")
    assert vm.copyinstr(pt, PGSIZE - 3, 128) == b"README"
    with pytest.raises(ValueError):
        vm.copyinstr(pt, PGSIZE - 3, 4)


def test_copyinstr_runs_off_last_page(vm):
    pt = vm.uvmcreate()
    vm.uvmalloc(pt, 0, PGSIZE)
    vm.copyout(pt, PGSIZE - 1, b"x")
    with pytest.raises(ValueError):
        vm.copyinstr(pt, PGSIZE - 1, 128)
    with pytest.raises(ValueError):
        vm.copyinstr(pt, 0xFFFFFFFFFFFFFFFF, 128)