"""First-fit free-list memory allocator over a simulated program break."""

from dataclasses import dataclass, field
from typing import Optional

HEADER_SIZE = 16
MIN_CORE_UNITS = 4096


@dataclass
class _Header:
    ptr: int
    size: int


@dataclass
class Allocator:
    """Heap allocator whose break grows from ``start`` and never passes ``limit``.

    Addresses are plain integers; block sizes are counted in header units.
    """

    start: int = 0
    limit: Optional[int] = None
    brk: int = field(init=False)
    _headers: dict = field(init=False, default_factory=dict, repr=False)
    _allocated: set = field(init=False, default_factory=set, repr=False)
    _freep: Optional[int] = field(init=False, default=None, repr=False)

    def __post_init__(self):
        self.brk = self.start
        self._base = self.start - HEADER_SIZE

    def sbrk(self, n):
        """Move the break by ``n`` bytes and return the old break."""
        old = self.brk
        new = old + n
        if new < self.start or (self.limit is not None and new > self.limit):
            raise MemoryError(f"cannot move break by {n}")
        self.brk = new
        return old

    def _morecore(self, nunits):
        nunits = max(nunits, MIN_CORE_UNITS)
        addr = self.sbrk(nunits * HEADER_SIZE)
        self._headers[addr] = _Header(ptr=addr, size=nunits)
        self._allocated.add(addr)
        self.free(addr + HEADER_SIZE)
        return self._freep

    def malloc(self, nbytes):
        """Allocate ``nbytes`` and return the block's address; raise MemoryError when out."""
        if nbytes < 0:
            raise ValueError("negative allocation size")
        nunits = (nbytes + HEADER_SIZE - 1) // HEADER_SIZE + 1
        if self._freep is None:
            self._headers[self._base] = _Header(ptr=self._base, size=0)
            self._freep = self._base
        prevp = self._freep
        p = self._headers[prevp].ptr
        while True:
            hp = self._headers[p]
            if hp.size >= nunits:
                if hp.size == nunits:
                    self._headers[prevp].ptr = hp.ptr
                else:
                    hp.size -= nunits
                    p += hp.size * HEADER_SIZE
                    self._headers[p] = _Header(ptr=p, size=nunits)
                self._freep = prevp
                self._allocated.add(p)
                return p + HEADER_SIZE
            if p == self._freep:
                p = self._morecore(nunits)
            prevp, p = p, self._headers[p].ptr

    def free(self, addr):
        """Return a block obtained from malloc to the free list."""
        bp = addr - HEADER_SIZE
        if bp not in self._allocated:
            raise ValueError(f"address {addr:#x} is not an allocated block")
        self._allocated.remove(bp)
        bh = self._headers[bp]
        p = self._freep
        while not (p < bp < self._headers[p].ptr):
            nxt = self._headers[p].ptr
            if p >= nxt and (bp > p or bp < nxt):
                break
            p = nxt
        ph = self._headers[p]
        if bp + bh.size * HEADER_SIZE == ph.ptr:
            absorbed = self._headers.pop(ph.ptr)
            bh.size += absorbed.size
            bh.ptr = absorbed.ptr
        else:
            bh.ptr = ph.ptr
        if p + ph.size * HEADER_SIZE == bp:
            ph.size += bh.size
            ph.ptr = bh.ptr
            del self._headers[bp]
        else:
            ph.ptr = bp
        self._freep = p