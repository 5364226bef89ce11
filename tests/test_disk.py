import struct

import pytest

from wiltos import block
from wiltos.block import MemoryBlockDevice
from wiltos.disk import Disk
from wiltos.fat32 import Fat32Error
from wiltos.fat32_path import is_dir_path, read_stream_path

SECTOR = 512
PART_LBA = 64
RSVD = 32
FATSZ = 520
DATA_SECTORS = 65600
TOTSEC = RSVD + FATSZ + DATA_SECTORS


def _build_image() -> bytes:
    img = bytearray((PART_LBA + TOTSEC) * SECTOR)
    entry = 446
    img[entry + 4] = 0x0C
    struct.pack_into("<II", img, entry + 8, PART_LBA, TOTSEC)
    img[510:512] = b"\x55\xaa"
    boot = PART_LBA * SECTOR
    struct.pack_into("<H", img, boot + 11, SECTOR)
    img[boot + 13] = 1
    struct.pack_into("<H", img, boot + 14, RSVD)
    img[boot + 16] = 1
    struct.pack_into("<I", img, boot + 32, TOTSEC)
    struct.pack_into("<I", img, boot + 36, FATSZ)
    struct.pack_into("<I", img, boot + 44, 2)
    fat = (PART_LBA + RSVD) * SECTOR
    struct.pack_into("<IIII", img, fat, 0x0FFFFFF8, 0x0FFFFFFF, 0x0FFFFFFF, 0x0FFFFFFF)
    root = (PART_LBA + RSVD + FATSZ) * SECTOR
    img[root:root + 32] = struct.pack(
        "<11sBBBHHHHHHHI", b"BIN        ", 0x10, 0, 0, 0, 0, 0, 0, 0, 0, 3, 0
    )
    return bytes(img)


@pytest.fixture(scope="module")
def template():
    return _build_image()


@pytest.fixture
def disk(template):
    return Disk.setup(MemoryBlockDevice(image=template))


def _read(fs, path):
    return b"".join(read_stream_path(fs, path))


def test_blank_device_is_not_mounted():
    d = Disk.setup(MemoryBlockDevice(8))
    assert d.mounted is False
    assert d.fs is None


def test_no_device_is_not_mounted():
    assert Disk.setup(None).mounted is False


def test_setup_mounts_volume(disk):
    assert disk.mounted is True
    assert disk.fs.root_clus == 2
    assert disk.fs.part_lba == PART_LBA
    assert is_dir_path(disk.fs, "BIN")


def test_setup_registers_default_device(template):
    device = MemoryBlockDevice(image=template)
    Disk.setup(device)
    assert block.get_default() is device


def test_relative_path_goes_below_disk(disk):
    disk.write_app_file("NOTE.TXT", b"hello")
    assert _read(disk.fs, "NOTE.TXT") == b"hello"


def test_disk_path_round_trip(disk):
    disk.write_app_file("/disk/BIN/DATA.TXT", b"abc" * 300)
    assert _read(disk.fs, "BIN/DATA.TXT") == b"abc" * 300


def test_absolute_path_outside_disk_is_moved_below_it(disk):
    disk.write_app_file("/BIN/A.TXT", b"x")
    assert _read(disk.fs, "BIN/A.TXT") == b"x"


def test_bare_elf_goes_to_bin(disk):
    disk.write_app_file("/disk/tool.elf", b"\x7fELF")
    assert _read(disk.fs, "BIN/TOOL.ELF") == b"\x7fELF"
    with pytest.raises(Fat32Error):
        _read(disk.fs, "TOOL.ELF")


def test_overwrite_replaces_contents(disk):
    disk.write_app_file("NOTE.TXT", b"first version")
    disk.write_app_file("NOTE.TXT", b"2nd")
    assert _read(disk.fs, "NOTE.TXT") == b"2nd"


def test_unmounted_disk_refuses_writes():
    with pytest.raises(Fat32Error):
        Disk().write_app_file("NOTE.TXT", b"x")


def test_empty_path_is_rejected(disk):
    with pytest.raises(ValueError):
        disk.write_app_file("", b"x")


def test_path_beside_disk_is_rejected(disk):
    with pytest.raises(Fat32Error):
        disk.write_app_file("/diskette", b"x")


def test_missing_parent_directory(disk):
    with pytest.raises(Fat32Error):
        disk.write_app_file("NOPE/A.TXT", b"x")