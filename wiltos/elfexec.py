"""Loading position-independent x86-64 ELF applications into a private address range."""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Callable, NamedTuple

log = logging.getLogger(__name__)

APP_BASE = 0xFFFFC00000000000
APP_MAX_SIZE = 16 * 1024 * 1024
PAGE_SIZE = 0x1000

PT_LOAD = 1
PT_DYNAMIC = 2
PT_INTERP = 3
PT_TLS = 7
ET_DYN = 3
EM_X86_64 = 62
DT_NULL = 0
DT_NEEDED = 1
DT_PLTRELSZ = 2
DT_RELA = 7
DT_RELASZ = 8
DT_RELAENT = 9
DT_PLTREL = 20
DT_JMPREL = 23
R_X86_64_RELATIVE = 8
PF_X = 1
PF_W = 2
PF_R = 4

_MASK64 = 0xFFFFFFFFFFFFFFFF
_EHDR = struct.Struct("<16sHHIQQQIHHHHHH")
_PHDR = struct.Struct("<IIQQQQQQ")
_DYN = struct.Struct("<qQ")
_RELA = struct.Struct("<QQq")


class ElfLoadError(Exception):
    """The image cannot be loaded; ``code`` says which check failed."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"{message} (error {code})")
        self.code = code


@dataclass
class AppApi:
    """The services an application may call.

    ``getch`` returns a character code, or None when no key is waiting.
    ``write_file`` raises when the file cannot be saved. ``idle`` is called
    while an application waits for a key.
    """

    putc: Callable[[str], None]
    puts: Callable[[str], None]
    getch: Callable[[], "int | None"]
    write_file: Callable[[str, bytes], None]
    idle: Callable[[], None] = lambda: None


@dataclass
class LoadedImage:
    """An application laid out at ``base`` with relocations applied.

    ``memory`` covers ``size`` bytes starting at ``base``; ``read_only``
    holds ``(address, length)`` for every segment that is not writable.
    """

    base: int
    size: int
    entry: int
    memory: bytearray
    read_only: tuple[tuple[int, int], ...] = ()


class _Phdr(NamedTuple):
    type: int
    flags: int
    offset: int
    vaddr: int
    paddr: int
    filesz: int
    memsz: int
    align: int


def _dynamic_entries(img: bytes, phdrs: list[_Phdr]) -> list[tuple[int, int]]:
    """Return the dynamic table's ``(tag, value)`` pairs up to DT_NULL."""
    dyn = next((p for p in phdrs if p.type == PT_DYNAMIC), None)
    if dyn is None:
        return []
    if dyn.offset >= len(img) or dyn.filesz > len(img) - dyn.offset:
        raise ElfLoadError(-5, "dynamic segment lies outside the image")
    entries: list[tuple[int, int]] = []
    end = dyn.offset + dyn.filesz
    for pos in range(dyn.offset, end - _DYN.size + 1, _DYN.size):
        tag, value = _DYN.unpack_from(img, pos)
        if tag == DT_NULL:
            break
        entries.append((tag, value))
    return entries


def _apply_rela_block(
    img: bytes, memory: bytearray, offset: int, size: int, vmin: int, bias: int
) -> None:
    if not offset or not size:
        return
    if offset >= len(img) or size > len(img) - offset:
        raise ElfLoadError(-11, "relocation table lies outside the image")
    for index in range(size // _RELA.size):
        r_offset, r_info, r_addend = _RELA.unpack_from(img, offset + index * _RELA.size)
        if r_info & 0xFFFFFFFF != R_X86_64_RELATIVE:
            raise ElfLoadError(-11, "unsupported relocation type")
        target = r_offset - vmin
        if not 0 <= target <= len(memory) - 8:
            raise ElfLoadError(-11, "relocation target outside the image")
        struct.pack_into("<Q", memory, target, (bias + r_addend) & _MASK64)


def _apply_relocations(
    img: bytes, phdrs: list[_Phdr], memory: bytearray, vmin: int, bias: int
) -> None:
    tags = dict(_dynamic_entries(img, phdrs))
    _apply_rela_block(img, memory, tags.get(DT_RELA, 0), tags.get(DT_RELASZ, 0), vmin, bias)
    pltrel = tags.get(DT_PLTREL, 0)
    if pltrel not in (DT_RELA, 0):
        raise ElfLoadError(-11, "PLT relocations are not RELA")
    _apply_rela_block(
        img, memory, tags.get(DT_JMPREL, 0), tags.get(DT_PLTRELSZ, 0), vmin, bias
    )


def load_elf(image: bytes, base: int = APP_BASE) -> LoadedImage:
    """Validate a static PIE x86-64 ELF image and lay it out at ``base``."""
    img = bytes(image)
    length = len(img)
    if length < _EHDR.size:
        raise ElfLoadError(-1, "image shorter than an ELF header")
    (ident, etype, machine, _version, entry, phoff, _shoff, _flags,
     _ehsize, phentsize, phnum, _shentsize, _shnum, _shstrndx) = _EHDR.unpack_from(img)
    if ident[:4] != b"\x7fELF":
        raise ElfLoadError(-2, "bad ELF magic")
    if ident[4] != 2 or ident[5] != 1:
        raise ElfLoadError(-2, "not a 64-bit little-endian image")
    if machine != EM_X86_64:
        raise ElfLoadError(-3, "not an x86-64 image")
    if etype != ET_DYN:
        raise ElfLoadError(-4, "not a position-independent executable")
    if phoff >= length:
        raise ElfLoadError(-5, "program headers lie outside the image")
    if not phnum or phentsize != _PHDR.size:
        raise ElfLoadError(-5, "bad program header table")
    if phnum * _PHDR.size > length - phoff:
        raise ElfLoadError(-5, "program headers lie outside the image")

    phdrs = [
        _Phdr._make(_PHDR.unpack_from(img, phoff + i * _PHDR.size)) for i in range(phnum)
    ]
    has_interp = any(p.type == PT_INTERP and p.filesz for p in phdrs)
    has_tls = any(p.type == PT_TLS and p.memsz for p in phdrs)
    log.debug("ph: flags interp=%d tls=%d", has_interp, has_tls)
    if has_tls:
        raise ElfLoadError(-6, "thread-local storage is not supported")

    loads = [p for p in phdrs if p.type == PT_LOAD and p.memsz]
    if not loads:
        raise ElfLoadError(-7, "no loadable segment")
    vmin = min(p.vaddr for p in loads)
    vmax = max(p.vaddr + p.memsz for p in loads)

    dynamic = _dynamic_entries(img, phdrs)
    needed = sum(1 for tag, _ in dynamic if tag == DT_NEEDED)
    jmprel_size = dict(dynamic).get(DT_PLTRELSZ, 0)
    if needed or jmprel_size:
        raise ElfLoadError(-6, "shared libraries are not supported")

    total = (vmax - vmin + PAGE_SIZE - 1) & ~(PAGE_SIZE - 1)
    if total > APP_MAX_SIZE:
        raise ElfLoadError(-8, "image too large")
    bias = (base - vmin) & _MASK64
    memory = bytearray(total)

    for p in loads:
        if p.offset >= length or p.filesz > p.memsz:
            raise ElfLoadError(-10, "bad segment bounds")
        if p.filesz and p.offset + p.filesz > length:
            raise ElfLoadError(-10, "segment lies outside the image")
        start = p.vaddr - vmin
        memory[start:start + p.filesz] = img[p.offset:p.offset + p.filesz]
        memory[start + p.filesz:start + p.memsz] = bytes(p.memsz - p.filesz)

    try:
        _apply_relocations(img, phdrs, memory, vmin, bias)
    except ElfLoadError as exc:
        raise ElfLoadError(-11, "relocation failed") from exc

    read_only = tuple(
        ((bias + p.vaddr) & _MASK64, p.memsz) for p in loads if not p.flags & PF_W
    )
    entry_addr = (bias + entry) & _MASK64
    if not base <= entry_addr < base + total:
        raise ElfLoadError(-12, "entry point outside the image")
    return LoadedImage(base, total, entry_addr, memory, read_only)