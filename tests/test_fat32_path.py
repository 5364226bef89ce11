import struct

import pytest

from wiltos.block import MemoryBlockDevice
from wiltos.fat32 import DirListing, Fat32, Fat32Error
from wiltos.fat32_path import (
    is_dir_path,
    list_path,
    name11_from_segment,
    read_stream_path,
    read_stream_root83,
    write_file_path,
)

SECTOR = 512
RSVD = 4
NFATS = 2
FATSZ = 4
ROOT = 2
DATA_LBA = RSVD + NFATS * FATSZ


def _set_fat(dev, cluster, value):
    for copy in range(NFATS):
        off = (RSVD + copy * FATSZ) * SECTOR + cluster * 4
        struct.pack_into("<I", dev.data, off, value)


def _put_entry(dev, dir_cluster, slot, name11, attr, cluster, size=0):
    off = (DATA_LBA + dir_cluster - 2) * SECTOR + slot * 32
    raw = struct.pack(
        "<11sBBBHHHHHHHI", name11, attr, 0, 0, 0, 0, 0,
        cluster >> 16, 0, 0, cluster & 0xFFFF, size,
    )
    dev.data[off:off + 32] = raw


def _read(fs, path):
    return b"".join(read_stream_path(fs, path))


def _allocated(fs):
    return sum(1 for c in range(3, 60) if fs.fat_get(c) != 0)


@pytest.fixture
def fs():
    dev = MemoryBlockDevice(DATA_LBA + 64)
    _set_fat(dev, 0, 0x0FFFFFF8)
    _set_fat(dev, 1, 0x0FFFFFFF)
    _set_fat(dev, ROOT, 0x0FFFFFFF)
    return Fat32(dev, SECTOR, 1, RSVD, NFATS, FATSZ, ROOT)


@pytest.fixture
def fs_bin(fs):
    _put_entry(fs.device, ROOT, 0, b"BIN        ", 0x10, 3)
    _set_fat(fs.device, 3, 0x0FFFFFFF)
    return fs


def test_name11_from_segment_pads_and_upcases():
    assert name11_from_segment("hello.txt") == b"HELLO   TXT"
    assert name11_from_segment("readme") == b"README     "


def test_write_then_read_round_trip_multi_cluster(fs):
    data = bytes(range(256)) * 6
    write_file_path(fs, "DATA.BIN", data)
    assert _read(fs, "DATA.BIN") == data
    assert _read(fs, "/data.bin") == data


def test_write_empty_file(fs):
    write_file_path(fs, "EMPTY.TXT", b"")
    assert _read(fs, "EMPTY.TXT") == b""
    assert list_path(fs, "/") == [DirListing("EMPTY.TXT", 0, False)]
    assert _allocated(fs) == 1


def test_nested_write_list_and_read(fs_bin):
    payload = b"\x7fELF" + b"x" * 700
    write_file_path(fs_bin, "BIN/APP.ELF", payload)
    assert _read(fs_bin, "bin/app.elf") == payload
    assert list_path(fs_bin, "BIN") == [DirListing("APP.ELF", len(payload), False)]
    assert list_path(fs_bin, "/") == [DirListing("BIN", 0, True)]


def test_is_dir_path(fs_bin):
    write_file_path(fs_bin, "BIN/APP.ELF", b"abc")
    assert is_dir_path(fs_bin, "/")
    assert is_dir_path(fs_bin, "")
    assert is_dir_path(fs_bin, "bin")
    assert is_dir_path(fs_bin, "//BIN//")
    assert not is_dir_path(fs_bin, "BIN/APP.ELF")
    assert not is_dir_path(fs_bin, "NOPE")
    assert not is_dir_path(fs_bin, None)


def test_overwrite_frees_old_chain(fs):
    write_file_path(fs, "DATA.BIN", b"a" * 1500)
    assert _allocated(fs) == 3
    write_file_path(fs, "DATA.BIN", b"x")
    assert _allocated(fs) == 1
    assert _read(fs, "DATA.BIN") == b"x"
    assert list_path(fs, "/") == [DirListing("DATA.BIN", 1, False)]


def test_both_fat_copies_match(fs):
    write_file_path(fs, "DATA.BIN", b"z" * 1200)
    fat1 = fs.device.data[RSVD * SECTOR:(RSVD + FATSZ) * SECTOR]
    fat2 = fs.device.data[(RSVD + FATSZ) * SECTOR:(RSVD + 2 * FATSZ) * SECTOR]
    assert fat1 == fat2


def test_list_skips_volume_label(fs):
    _put_entry(fs.device, ROOT, 0, b"MYVOLUME   ", 0x08, 0)
    write_file_path(fs, "NOTE.TXT", b"hi")
    assert [item.name for item in list_path(fs, "/")] == ["NOTE.TXT"]


def test_list_errors(fs_bin):
    write_file_path(fs_bin, "NOTE.TXT", b"hi")
    with pytest.raises(Fat32Error):
        list_path(fs_bin, "NOTE.TXT")
    with pytest.raises(Fat32Error):
        list_path(fs_bin, "MISSING")


def test_read_stream_path_errors(fs_bin):
    write_file_path(fs_bin, "BIN/APP.ELF", b"abc")
    with pytest.raises(Fat32Error):
        read_stream_path(fs_bin, "BIN")
    with pytest.raises(Fat32Error):
        read_stream_path(fs_bin, "BIN/NONE.ELF")
    with pytest.raises(Fat32Error):
        read_stream_path(fs_bin, "BIN/APP.ELF/X")


def test_read_stream_root83(fs_bin):
    write_file_path(fs_bin, "NOTE.TXT", b"hello world")
    assert b"".join(read_stream_root83(fs_bin, "note.txt")) == b"hello world"
    with pytest.raises(Fat32Error):
        read_stream_root83(fs_bin, "note.tx")
    with pytest.raises(Fat32Error):
        read_stream_root83(fs_bin, "")
    with pytest.raises(Fat32Error):
        read_stream_root83(fs_bin, "bin")


def test_write_errors(fs_bin):
    write_file_path(fs_bin, "NOTE.TXT", b"hi")
    with pytest.raises(Fat32Error):
        write_file_path(fs_bin, "/", b"x")
    with pytest.raises(Fat32Error):
        write_file_path(fs_bin, "NODIR/FILE.TXT", b"x")
    with pytest.raises(Fat32Error):
        write_file_path(fs_bin, "NOTE.TXT/FILE.TXT", b"x")
    assert _read(fs_bin, "NOTE.TXT") == b"hi"


def test_many_files_in_root(fs):
    names = [f"F{i}.TXT" for i in range(5)]
    for i, name in enumerate(names):
        write_file_path(fs, name, name.encode() * (i + 1))
    listed = {item.name: item.size for item in list_path(fs, "/")}
    assert listed == {name: len(name) * (i + 1) for i, name in enumerate(names)}
    for i, name in enumerate(names):
        assert _read(fs, name) == name.encode() * (i + 1)