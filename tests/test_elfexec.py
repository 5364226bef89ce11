import struct

import pytest

from wiltos.elfexec import APP_BASE, APP_MAX_SIZE, ElfLoadError, load_elf

GOOD_IDENT = b"\x7fELF\x02\x01\x01"
BODY_OFF_PLAIN = 64 + 56
BODY_OFF_DYN = 64 + 2 * 56


def _phdr(ptype, flags, offset, vaddr, filesz, memsz):
    return struct.pack("<IIQQQQQQ", ptype, flags, offset, vaddr, vaddr, filesz, memsz, 0x1000)


def make_elf(
    body=b"\x90" * 16,
    *,
    entry=None,
    bss=0,
    flags=5,
    relas=(),
    dyn_extra=(),
    extra_phdrs=(),
    load=True,
    machine=62,
    etype=3,
    ident=GOOD_IDENT,
    phentsize=56,
    pltrel=None,
):
    use_dyn = bool(relas or dyn_extra or pltrel is not None)
    phnum = int(load) + int(use_dyn) + len(extra_phdrs)
    body_off = 64 + phnum * 56
    rela_off = body_off + len(body)
    rela_bytes = b"".join(struct.pack("<QQq", off, rtype, add) for off, rtype, add in relas)
    dyn_off = rela_off + len(rela_bytes)
    dyn = list(dyn_extra)
    if relas:
        dyn += [(7, rela_off), (8, len(rela_bytes)), (9, 24)]
    if pltrel is not None:
        dyn.append((20, pltrel))
    dyn.append((0, 0))
    dyn_bytes = b"".join(struct.pack("<qQ", t, v) for t, v in dyn) if use_dyn else b""
    file_len = dyn_off + len(dyn_bytes)
    phdrs = b""
    if load:
        phdrs += _phdr(1, flags, 0, 0, file_len, file_len + bss)
    if use_dyn:
        phdrs += _phdr(2, 6, dyn_off, dyn_off, len(dyn_bytes), len(dyn_bytes))
    for ph in extra_phdrs:
        phdrs += _phdr(*ph)
    if entry is None:
        entry = body_off
    ehdr = struct.pack(
        "<16sHHIQQQIHHHHHH", ident.ljust(16, b"\0"), etype, machine, 1,
        entry, 64, 0, 0, 64, phentsize, phnum, 0, 0, 0,
    )
    return ehdr + phdrs + body + rela_bytes + dyn_bytes


def _code(elf, **kwargs):
    with pytest.raises(ElfLoadError) as exc:
        load_elf(elf, **kwargs)
    return exc.value.code


def test_segment_copied_and_bss_zeroed():
    elf = make_elf(bss=32)
    image = load_elf(elf, base=0x400000)
    assert bytes(image.memory[:len(elf)]) == elf
    assert bytes(image.memory[len(elf):len(elf) + 32]) == bytes(32)
    assert image.size % 0x1000 == 0
    assert image.size >= len(elf) + 32
    assert image.base == 0x400000


def test_entry_is_rebased():
    image = load_elf(make_elf(entry=0x80), base=0x400000)
    assert image.entry == 0x400000 + 0x80


def test_default_base():
    image = load_elf(make_elf())
    assert image.base == APP_BASE
    assert image.entry == APP_BASE + BODY_OFF_PLAIN


def test_read_only_segment_recorded():
    elf = make_elf(bss=8)
    image = load_elf(elf, base=0x400000)
    assert image.read_only == ((0x400000, len(elf) + 8),)


def test_writable_segment_not_read_only():
    image = load_elf(make_elf(flags=6), base=0x400000)
    assert image.read_only == ()


def test_relative_relocation_applied():
    image = load_elf(make_elf(relas=[(BODY_OFF_DYN, 8, 0x40)]), base=0x400000)
    value = int.from_bytes(image.memory[BODY_OFF_DYN:BODY_OFF_DYN + 8], "little")
    assert value == 0x400000 + 0x40


def test_relative_relocation_at_default_base():
    image = load_elf(make_elf(relas=[(BODY_OFF_DYN, 8, 0x10)]))
    value = int.from_bytes(image.memory[BODY_OFF_DYN:BODY_OFF_DYN + 8], "little")
    assert value == APP_BASE + 0x10


def test_too_short():
    assert _code(b"\x7fELF") == -1


@pytest.mark.parametrize("ident", [b"\x7fELG\x02\x01", b"\x7fELF\x01\x01", b"\x7fELF\x02\x02"])
def test_bad_ident(ident):
    assert _code(make_elf(ident=ident)) == -2


def test_wrong_machine():
    assert _code(make_elf(machine=3)) == -3


def test_not_pie():
    assert _code(make_elf(etype=2)) == -4


def test_bad_phentsize():
    assert _code(make_elf(phentsize=32)) == -5


def test_dynamic_outside_image():
    assert _code(make_elf(extra_phdrs=[(2, 4, 10**6, 0, 16, 16)])) == -5


def test_tls_rejected():
    assert _code(make_elf(extra_phdrs=[(7, 4, 0, 0, 0, 8)])) == -6


def test_needed_library_rejected():
    assert _code(make_elf(dyn_extra=[(1, 0)])) == -6


def test_no_loadable_segment():
    assert _code(make_elf(load=False, extra_phdrs=[(4, 4, 0, 0, 0, 0)])) == -7


def test_too_large():
    assert _code(make_elf(bss=APP_MAX_SIZE)) == -8


def test_filesz_larger_than_memsz():
    assert _code(make_elf(load=False, extra_phdrs=[(1, 4, 0, 0, 100, 50)])) == -10


def test_segment_offset_outside_image():
    assert _code(make_elf(load=False, extra_phdrs=[(1, 4, 10_000, 0, 0, 16)])) == -10


def test_unsupported_relocation_type():
    assert _code(make_elf(relas=[(BODY_OFF_DYN, 1, 0)])) == -11


def test_relocation_target_outside_image():
    assert _code(make_elf(relas=[(0x100000, 8, 0)])) == -11


def test_non_rela_plt_relocations():
    assert _code(make_elf(pltrel=17)) == -11


def test_entry_outside_image():
    assert _code(make_elf(entry=0x100000)) == -12