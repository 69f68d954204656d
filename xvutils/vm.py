"""Sv39 three-level page tables over a simulated physical memory."""

import struct

PGSIZE = 4096
PGSHIFT = 12
PXMASK = 0x1FF
# One bit less than the full Sv39 range, so addresses never need sign extension.
MAXVA = 1 << (9 + 9 + 9 + 12 - 1)

PTE_V = 1 << 0
PTE_R = 1 << 1
PTE_W = 1 << 2
PTE_X = 1 << 3
PTE_U = 1 << 4

_PTE_SIZE = 8
_PTE_FLAGS_MASK = 0x3FF
_PTE = struct.Struct("<Q")


class KernelPanic(Exception):
    """A violated kernel invariant that the kernel cannot recover from."""


def pgroundup(addr):
    """Round an address up to the next page boundary."""
    return (addr + PGSIZE - 1) & ~(PGSIZE - 1)


def pgrounddown(addr):
    """Round an address down to its page boundary."""
    return addr & ~(PGSIZE - 1)


def px(level, va):
    """Extract the 9-bit page-table index for ``level`` from a virtual address."""
    return (va >> (PGSHIFT + 9 * level)) & PXMASK


def pa2pte(pa):
    """Shift a physical address into the page-number field of a PTE."""
    return (pa >> 12) << 10


def pte2pa(pte):
    """Extract the physical address a PTE refers to."""
    return (pte >> 10) << 12


def _pte_flags(pte):
    return pte & _PTE_FLAGS_MASK


class PhysicalMemory:
    """Page-granular physical memory starting at ``base`` with a page allocator."""

    def __init__(self, base, npages):
        if base % PGSIZE:
            raise ValueError("physical memory base must be page aligned")
        if npages <= 0:
            raise ValueError("physical memory needs at least one page")
        self.base = base
        self.npages = npages
        self._data = bytearray(npages * PGSIZE)
        # Popping from the end hands out the lowest addresses first.
        self._free = [base + page * PGSIZE for page in reversed(range(npages))]
        self._in_use = set()

    @property
    def free_pages(self):
        """Number of pages that kalloc can still hand out."""
        return len(self._free)

    def kalloc(self):
        """Allocate one page and return its physical address."""
        if not self._free:
            raise MemoryError("out of physical memory")
        pa = self._free.pop()
        self._in_use.add(pa)
        return pa

    def kfree(self, pa):
        """Return a page obtained from kalloc."""
        if pa % PGSIZE or pa not in self._in_use:
            raise KernelPanic("kfree")
        self._in_use.remove(pa)
        self._free.append(pa)

    def _offset(self, pa, n):
        off = pa - self.base
        if off < 0 or n < 0 or off + n > len(self._data):
            raise ValueError(f"physical address {pa:#x} out of range")
        return off

    def read(self, pa, n):
        """Read ``n`` bytes at physical address ``pa``."""
        off = self._offset(pa, n)
        return bytes(self._data[off:off + n])

    def write(self, pa, data):
        """Write ``data`` at physical address ``pa``."""
        data = bytes(data)
        off = self._offset(pa, len(data))
        self._data[off:off + len(data)] = data


class PageTables:
    """Creation, walking and copying of page tables stored in ``memory``."""

    def __init__(self, memory):
        self.memory = memory

    def _load(self, addr):
        return _PTE.unpack(self.memory.read(addr, _PTE_SIZE))[0]

    def _store(self, addr, value):
        self.memory.write(addr, _PTE.pack(value))

    def _zero_page(self, pa):
        self.memory.write(pa, bytes(PGSIZE))

    def walk(self, pagetable, va, alloc=False):
        """Return the physical address of the leaf PTE for ``va``.

        Returns None when an intermediate table is missing and ``alloc`` is
        false; with ``alloc`` missing tables are created, and MemoryError is
        raised if that runs out of pages.
        """
        if va >= MAXVA:
            raise KernelPanic("walk")
        for level in (2, 1):
            addr = pagetable + _PTE_SIZE * px(level, va)
            pte = self._load(addr)
            if pte & PTE_V:
                pagetable = pte2pa(pte)
            else:
                if not alloc:
                    return None
                pagetable = self.memory.kalloc()
                self._zero_page(pagetable)
                self._store(addr, pa2pte(pagetable) | PTE_V)
        return pagetable + _PTE_SIZE * px(0, va)

    def walkaddr(self, pagetable, va):
        """Return the physical address of a user page, or None if not mapped."""
        if va >= MAXVA:
            return None
        addr = self.walk(pagetable, va, False)
        if addr is None:
            return None
        pte = self._load(addr)
        if not pte & PTE_V or not pte & PTE_U:
            return None
        return pte2pa(pte)

    def mappages(self, pagetable, va, size, pa, perm):
        """Map ``[va, va+size)`` to physical memory starting at ``pa``.

        Raises MemoryError if a page-table page cannot be allocated.
        """
        if size == 0:
            raise KernelPanic("mappages: size")
        a = pgrounddown(va)
        last = pgrounddown(va + size - 1)
        while True:
            addr = self.walk(pagetable, a, True)
            if self._load(addr) & PTE_V:
                raise KernelPanic("mappages: remap")
            self._store(addr, pa2pte(pa) | perm | PTE_V)
            if a == last:
                return
            a += PGSIZE
            pa += PGSIZE

    def kvmmap(self, pagetable, va, pa, size, perm):
        """Add a boot-time kernel mapping; any failure is a panic."""
        try:
            self.mappages(pagetable, va, size, pa, perm)
        except MemoryError as exc:
            raise KernelPanic("kvmmap") from exc

    def uvmunmap(self, pagetable, va, npages, do_free):
        """Remove ``npages`` existing mappings from page-aligned ``va``."""
        if va % PGSIZE:
            raise KernelPanic("uvmunmap: not aligned")
        for a in range(va, va + npages * PGSIZE, PGSIZE):
            addr = self.walk(pagetable, a, False)
            if addr is None:
                raise KernelPanic("uvmunmap: walk")
            pte = self._load(addr)
            if not pte & PTE_V:
                raise KernelPanic("uvmunmap: not mapped")
            if _pte_flags(pte) == PTE_V:
                raise KernelPanic("uvmunmap: not a leaf")
            if do_free:
                self.memory.kfree(pte2pa(pte))
            self._store(addr, 0)

    def uvmcreate(self):
        """Create an empty user page table."""
        pagetable = self.memory.kalloc()
        self._zero_page(pagetable)
        return pagetable

    def uvminit(self, pagetable, src):
        """Load ``src``, less than a page, at virtual address 0."""
        src = bytes(src)
        if len(src) >= PGSIZE:
            raise KernelPanic("inituvm: more than a page")
        mem = self.memory.kalloc()
        self._zero_page(mem)
        self.mappages(pagetable, 0, PGSIZE, mem, PTE_W | PTE_R | PTE_X | PTE_U)
        self.memory.write(mem, src)

    def uvmalloc(self, pagetable, oldsz, newsz):
        """Grow a process from ``oldsz`` to ``newsz`` and return the new size.

        On MemoryError the pages added by this call are released again.
        """
        if newsz < oldsz:
            return oldsz
        oldsz = pgroundup(oldsz)
        for a in range(oldsz, newsz, PGSIZE):
            try:
                mem = self.memory.kalloc()
            except MemoryError:
                self.uvmdealloc(pagetable, a, oldsz)
                raise
            self._zero_page(mem)
            try:
                self.mappages(pagetable, a, PGSIZE, mem, PTE_W | PTE_X | PTE_R | PTE_U)
            except MemoryError:
                self.memory.kfree(mem)
                self.uvmdealloc(pagetable, a, oldsz)
                raise
        return newsz

    def uvmdealloc(self, pagetable, oldsz, newsz):
        """Shrink a process from ``oldsz`` to ``newsz`` and return the new size."""
        if newsz >= oldsz:
            return oldsz
        if pgroundup(newsz) < pgroundup(oldsz):
            npages = (pgroundup(oldsz) - pgroundup(newsz)) // PGSIZE
            self.uvmunmap(pagetable, pgroundup(newsz), npages, True)
        return newsz

    def freewalk(self, pagetable):
        """Free page-table pages; every leaf mapping must already be gone."""
        page = self.memory.read(pagetable, PGSIZE)
        for index, (pte,) in enumerate(_PTE.iter_unpack(page)):
            if pte & PTE_V and not pte & (PTE_R | PTE_W | PTE_X):
                self.freewalk(pte2pa(pte))
                self._store(pagetable + _PTE_SIZE * index, 0)
            elif pte & PTE_V:
                raise KernelPanic("freewalk: leaf")
        self.memory.kfree(pagetable)

    def uvmfree(self, pagetable, sz):
        """Free a process's memory pages and then its page table."""
        if sz > 0:
            self.uvmunmap(pagetable, 0, pgroundup(sz) // PGSIZE, True)
        self.freewalk(pagetable)

    def uvmcopy(self, old, new, sz):
        """Copy page table and memory of the first ``sz`` bytes from ``old`` to ``new``.

        On MemoryError the pages already copied into ``new`` are freed.
        """
        i = 0
        try:
            for i in range(0, sz, PGSIZE):
                addr = self.walk(old, i, False)
                if addr is None:
                    raise KernelPanic("uvmcopy: pte should exist")
                pte = self._load(addr)
                if not pte & PTE_V:
                    raise KernelPanic("uvmcopy: page not present")
                mem = self.memory.kalloc()
                self.memory.write(mem, self.memory.read(pte2pa(pte), PGSIZE))
                try:
                    self.mappages(new, i, PGSIZE, mem, _pte_flags(pte))
                except MemoryError:
                    self.memory.kfree(mem)
                    raise
        except MemoryError:
            self.uvmunmap(new, 0, i // PGSIZE, True)
            raise

    def uvmclear(self, pagetable, va):
        """Mark the page at ``va`` inaccessible to user mode."""
        addr = self.walk(pagetable, va, False)
        if addr is None:
            raise KernelPanic("uvmclear")
        self._store(addr, self._load(addr) & ~PTE_U)

    def _user_page(self, pagetable, va):
        va0 = pgrounddown(va)
        pa0 = self.walkaddr(pagetable, va0)
        if pa0 is None:
            raise ValueError(f"bad user address {va:#x}")
        return va0, pa0

    def copyout(self, pagetable, dstva, src):
        """Copy bytes to user virtual address ``dstva``; raise ValueError on a bad address."""
        src = bytes(src)
        done = 0
        while done < len(src):
            va0, pa0 = self._user_page(pagetable, dstva)
            n = min(PGSIZE - (dstva - va0), len(src) - done)
            self.memory.write(pa0 + (dstva - va0), src[done:done + n])
            done += n
            dstva = va0 + PGSIZE

    def copyin(self, pagetable, srcva, n):
        """Return ``n`` bytes from user virtual address ``srcva``; raise ValueError on a bad address."""
        out = bytearray()
        while len(out) < n:
            va0, pa0 = self._user_page(pagetable, srcva)
            chunk = min(PGSIZE - (srcva - va0), n - len(out))
            out += self.memory.read(pa0 + (srcva - va0), chunk)
            srcva = va0 + PGSIZE
        return bytes(out)

    def copyinstr(self, pagetable, srcva, max):
        """Return the NUL-terminated string at ``srcva``, without the NUL.

        Raises ValueError on a bad address or when no NUL lies within ``max`` bytes.
        """
        out = bytearray()
        while max > 0:
            va0, pa0 = self._user_page(pagetable, srcva)
            n = min(PGSIZE - (srcva - va0), max)
            chunk = self.memory.read(pa0 + (srcva - va0), n)
            nul = chunk.find(0)
            if nul >= 0:
                out += chunk[:nul]
                return bytes(out)
            out += chunk
            max -= n
            srcva = va0 + PGSIZE
        raise ValueError("string not terminated within limit")