"""A first-fit kernel heap with an address-ordered, coalescing free list."""

from __future__ import annotations

import bisect

from .pmm import PAGE_SIZE, PhysicalMemoryManager

KHEAP_BASE = 0xFFFFA00000000000
KHEAP_MAX = 64 * 1024 * 1024
HEADER_SIZE = 16
ALIGNMENT = 16
INITIAL_SIZE = 0x4000
MIN_SPLIT = HEADER_SIZE + 16


def _align16(n: int) -> int:
    return (n + ALIGNMENT - 1) & ~(ALIGNMENT - 1)


class KernelHeap:
    """Allocates 16-byte aligned blocks in a virtual heap that grows page by page.

    Pages come from ``pmm`` when one is given; the heap never grows past
    ``max_size`` bytes.
    """

    def __init__(
        self,
        pmm: PhysicalMemoryManager | None = None,
        base: int = KHEAP_BASE,
        max_size: int = KHEAP_MAX,
    ) -> None:
        self._pmm = pmm
        self._lo = base
        self._hi = base
        self._cap = base + max_size
        self._free: list[tuple[int, int]] = []
        self._allocated: dict[int, int] = {}
        self._pages: list[tuple[int, int]] = []
        self._next_frame = 0
        self._used = 0
        try:
            self._grow(INITIAL_SIZE)
        except MemoryError:
            pass

    def _frame(self) -> int:
        if self._pmm is not None:
            return self._pmm.alloc()
        frame = self._next_frame
        self._next_frame += PAGE_SIZE
        return frame

    def _grow(self, need: int) -> None:
        available = self._hi - self._lo
        if available >= need:
            return
        add = _align16(need - available)
        pages = -(-add // PAGE_SIZE)
        if self._hi + pages * PAGE_SIZE > self._cap:
            raise MemoryError("kernel heap limit reached")
        for _ in range(pages):
            self._pages.append((self._hi, self._frame()))
            self._hi += PAGE_SIZE

    def _coalesce(self) -> None:
        merged: list[tuple[int, int]] = []
        for addr, size in self._free:
            if merged and merged[-1][0] + HEADER_SIZE + merged[-1][1] == addr:
                prev_addr, prev_size = merged[-1]
                merged[-1] = (prev_addr, prev_size + HEADER_SIZE + size)
            else:
                merged.append((addr, size))
        self._free = merged

    def _take(self, n: int) -> int | None:
        for index, (addr, size) in enumerate(self._free):
            if size < n:
                continue
            remainder = size - n
            if remainder >= MIN_SPLIT:
                self._free[index] = (addr + HEADER_SIZE + n, remainder - HEADER_SIZE)
            else:
                n = size
                del self._free[index]
            payload = addr + HEADER_SIZE
            self._allocated[payload] = n
            self._used += n
            return payload
        return None

    def alloc(self, n: int) -> int:
        """Return the address of a new block of at least ``n`` bytes."""
        if n <= 0:
            raise ValueError("allocation size must be positive")
        n = _align16(n)
        while True:
            payload = self._take(n)
            if payload is not None:
                return payload
            self._grow(HEADER_SIZE + n)
            bisect.insort(self._free, (self._lo, self._hi - self._lo - HEADER_SIZE))
            self._lo = self._hi
            self._coalesce()

    def free(self, addr: int | None) -> None:
        """Release a block returned by :meth:`alloc`; None is ignored."""
        if addr is None:
            return
        try:
            size = self._allocated.pop(addr)
        except KeyError:
            raise ValueError(f"address {addr:#x} was not allocated") from None
        self._used -= size
        bisect.insort(self._free, (addr - HEADER_SIZE, size))
        self._coalesce()

    def used(self) -> int:
        """Bytes currently handed out, including alignment padding."""
        return self._used