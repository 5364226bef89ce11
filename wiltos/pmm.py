"""A physical page allocator driven by the boot memory map."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable

PAGE_SIZE = 4096
MAX_PHYS = 0x1_0000_0000
MAX_PAGES = MAX_PHYS // PAGE_SIZE
LOW_MEMORY_END = 0x100000


class MemmapType(enum.IntEnum):
    USABLE = 0
    RESERVED = 1
    ACPI_RECLAIMABLE = 2
    ACPI_NVS = 3
    BAD_MEMORY = 4
    BOOTLOADER_RECLAIMABLE = 5
    KERNEL_AND_MODULES = 6
    FRAMEBUFFER = 7


@dataclass(frozen=True)
class MemmapEntry:
    """One range of the boot memory map."""

    base: int
    length: int
    type: MemmapType = MemmapType.USABLE


def _align_up(x: int, a: int) -> int:
    return (x + a - 1) & ~(a - 1)


def _align_down(x: int, a: int) -> int:
    return x & ~(a - 1)


class PhysicalMemoryManager:
    """Hands out 4 KiB physical pages below 4 GiB.

    Only usable memory-map ranges are free; the kernel image and the first
    megabyte are always reserved.
    """

    def __init__(
        self,
        memmap: Iterable[MemmapEntry] | None = None,
        kernel_phys: int = 0,
        kernel_size: int = 0,
    ) -> None:
        self._bitmap = bytearray(b"\x01") * MAX_PAGES
        self._limit = MAX_PAGES
        self._total = 0
        self._used = self._limit
        if memmap is None:
            return

        entries = list(memmap)
        max_phys = max((e.base + e.length for e in entries), default=0)
        if max_phys < MAX_PHYS:
            self._limit = _align_up(max_phys, PAGE_SIZE) // PAGE_SIZE
        self._total = self._limit

        for entry in entries:
            if entry.type == MemmapType.USABLE:
                self._mark_free(entry.base, entry.length)
        if kernel_size:
            self._mark_used(kernel_phys, kernel_size)
        self._mark_used(0, LOW_MEMORY_END)

    def _mark_used(self, base: int, length: int) -> None:
        start = _align_down(base, PAGE_SIZE) // PAGE_SIZE
        end = min(_align_up(base + length, PAGE_SIZE) // PAGE_SIZE, self._limit)
        if start >= end:
            return
        self._used += self._bitmap[start:end].count(0)
        self._bitmap[start:end] = b"\x01" * (end - start)

    def _mark_free(self, base: int, length: int) -> None:
        start = _align_up(base, PAGE_SIZE) // PAGE_SIZE
        end = min(_align_down(base + length, PAGE_SIZE) // PAGE_SIZE, self._limit)
        if start >= end:
            return
        self._used -= self._bitmap[start:end].count(1)
        self._bitmap[start:end] = bytes(end - start)

    def alloc(self) -> int:
        """Return the physical address of the lowest free page."""
        index = self._bitmap.find(0, 0, self._limit)
        if index < 0:
            raise MemoryError("no free physical page")
        self._bitmap[index] = 1
        self._used += 1
        return index * PAGE_SIZE

    def free(self, paddr: int) -> None:
        """Return the page holding ``paddr``; addresses outside the map are ignored."""
        index = paddr // PAGE_SIZE
        if not 0 <= index < self._limit:
            return
        if self._bitmap[index]:
            self._bitmap[index] = 0
            self._used -= 1

    def total(self) -> int:
        """Bytes of physical address space the allocator manages."""
        return self._total * PAGE_SIZE

    def used(self) -> int:
        """Bytes counted as in use."""
        return self._used * PAGE_SIZE