"""FAT32 volumes: mounting, the allocation table and root-directory files."""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Iterator

from .block import BlockDevice, BlockError

log = logging.getLogger(__name__)

FAT_MASK = 0x0FFFFFFF
FAT_RESERVED_BITS = 0xF0000000
END_OF_CHAIN = 0x0FFFFFF8
CHAIN_END_MARK = 0x0FFFFFFF
MIN_FAT32_CLUSTERS = 65525
DIRENT_SIZE = 32
ATTR_VOLUME_ID = 0x08
ATTR_DIRECTORY = 0x10
ATTR_ARCHIVE = 0x20
ATTR_LONG_NAME = 0x0F
DELETED_MARK = 0xE5

_DIRENT = struct.Struct("<11sBBBHHHHHHHI")


class Fat32Error(Exception):
    """The volume is not FAT32, a name is missing, or a transfer failed."""


@dataclass(frozen=True)
class DirListing:
    """One directory entry as shown to a user."""

    name: str
    size: int
    is_dir: bool


@dataclass(frozen=True)
class _DirEntry:
    name: bytes
    attr: int
    cluster: int
    size: int

    @classmethod
    def unpack(cls, buf: bytes, offset: int) -> _DirEntry:
        fields = _DIRENT.unpack_from(buf, offset)
        return cls(fields[0], fields[1], (fields[7] << 16) | fields[10], fields[11])

    def pack(self) -> bytes:
        return _DIRENT.pack(
            self.name, self.attr, 0, 0, 0, 0, 0,
            (self.cluster >> 16) & 0xFFFF, 0, 0, self.cluster & 0xFFFF, self.size,
        )

    @property
    def is_dir(self) -> bool:
        return bool(self.attr & ATTR_DIRECTORY)


def _name11(name83: str) -> bytes:
    """Turn ``NAME.EXT`` into the padded, upper-case 11-byte directory form."""
    out = bytearray(b" " * 11)
    j = 0
    for c in name83.encode("latin-1", "replace"):
        if j >= 11:
            break
        if c == 0x2E:
            j = 8
            continue
        if 0x61 <= c <= 0x7A:
            c -= 32
        out[j] = c
        j += 1
    return bytes(out)


def _display_name(raw: bytes) -> str:
    name = (raw[:8].rstrip(b" ") + b"." + raw[8:11]).rstrip(b" ")
    if name.endswith(b"."):
        name = name[:-1]
    return name.decode("latin-1")


@dataclass
class Fat32:
    """A mounted FAT32 volume inside a partition of a block device."""

    device: BlockDevice
    bytes_per_sec: int
    sec_per_clus: int
    rsvd_secs: int
    num_fats: int
    fat_sz: int
    root_clus: int
    part_lba: int = 0

    @property
    def fat_lba(self) -> int:
        return self.rsvd_secs

    @property
    def data_lba(self) -> int:
        return self.rsvd_secs + self.num_fats * self.fat_sz

    @property
    def bytes_per_cluster(self) -> int:
        return self.bytes_per_sec * self.sec_per_clus

    @property
    def entries_per_cluster(self) -> int:
        return self.bytes_per_cluster // DIRENT_SIZE

    @classmethod
    def mount(cls, device: BlockDevice, part_lba: int) -> Fat32:
        """Read the boot sector at ``part_lba`` and return the mounted volume."""
        if device is None:
            raise Fat32Error("no block device")
        try:
            sec = device.read(part_lba, 1)
        except BlockError as exc:
            raise Fat32Error("cannot read the boot sector") from exc

        (byps,) = struct.unpack_from("<H", sec, 11)
        spc = sec[13]
        (rsvd,) = struct.unpack_from("<H", sec, 14)
        nfats = sec[16]
        (totsec16,) = struct.unpack_from("<H", sec, 19)
        (fatsz16,) = struct.unpack_from("<H", sec, 22)
        (totsec32, fatsz32) = struct.unpack_from("<II", sec, 32)
        (rootclus,) = struct.unpack_from("<I", sec, 44)

        if byps == 0 or byps & (byps - 1):
            raise Fat32Error("bytes per sector is not a power of two")
        if spc == 0:
            raise Fat32Error("zero sectors per cluster")
        fatsz = fatsz32 or fatsz16
        totsec = totsec32 or totsec16
        if not fatsz or not totsec:
            raise Fat32Error("missing FAT or volume size")

        data_sec = (totsec - (rsvd + nfats * fatsz)) & 0xFFFFFFFF
        clusters = data_sec // spc
        if clusters < MIN_FAT32_CLUSTERS:
            raise Fat32Error("volume has too few clusters to be FAT32")
        if rootclus < 2:
            rootclus = 2

        log.debug(
            "fat32: byps=%#x spc=%#x rsvd=%#x nfats=%#x fatsz=%#x totsec=%#x clusters=%#x root=%#x",
            byps, spc, rsvd, nfats, fatsz, totsec, clusters, rootclus,
        )
        return cls(device, byps, spc, rsvd, nfats, fatsz, rootclus, part_lba)

    # -- raw access -----------------------------------------------------

    def _read(self, lba: int, count: int = 1) -> bytes:
        try:
            return self.device.read(self.part_lba + lba, count)
        except (BlockError, ValueError) as exc:
            raise Fat32Error(f"read of sector {lba} failed") from exc

    def _write(self, lba: int, data: bytes) -> None:
        try:
            self.device.write(self.part_lba + lba, data)
        except (BlockError, ValueError) as exc:
            raise Fat32Error(f"write of sector {lba} failed") from exc

    def _cluster_lba(self, cluster: int) -> int:
        if cluster < 2:
            raise Fat32Error(f"invalid cluster number {cluster}")
        return self.data_lba + (cluster - 2) * self.sec_per_clus

    def _read_cluster(self, cluster: int) -> bytes:
        return self._read(self._cluster_lba(cluster), self.sec_per_clus)

    def _write_cluster(self, cluster: int, data: bytes) -> None:
        self._write(self._cluster_lba(cluster), data)

    def _fat_location(self, fat_base: int, cluster: int) -> tuple[int, int]:
        index = cluster * 4
        return fat_base + index // self.bytes_per_sec, index % self.bytes_per_sec

    # -- allocation table -----------------------------------------------

    def fat_get(self, cluster: int) -> int:
        """Return the allocation-table entry for ``cluster``."""
        lba, off = self._fat_location(self.fat_lba, cluster)
        sector = self._read(lba)
        return struct.unpack_from("<I", sector, off)[0] & FAT_MASK

    def _fat_set_one(self, fat_base: int, cluster: int, value: int) -> None:
        lba, off = self._fat_location(fat_base, cluster)
        sector = bytearray(self._read(lba))
        (old,) = struct.unpack_from("<I", sector, off)
        struct.pack_into("<I", sector, off, (old & FAT_RESERVED_BITS) | (value & FAT_MASK))
        self._write(lba, bytes(sector))

    def _fat_set(self, cluster: int, value: int) -> None:
        self._fat_set_one(self.fat_lba, cluster, value)
        if self.num_fats > 1:
            self._fat_set_one(self.fat_lba + self.fat_sz, cluster, value)

    def _find_free_cluster(self, start: int) -> int:
        entries = self.fat_sz * self.bytes_per_sec // 4
        if entries < 3:
            raise Fat32Error("allocation table too small")
        first = start if 2 <= start < entries else 2
        cached_lba, sector = -1, b""
        for cluster in range(first, entries):
            lba, off = self._fat_location(self.fat_lba, cluster)
            if lba != cached_lba:
                sector, cached_lba = self._read(lba), lba
            if struct.unpack_from("<I", sector, off)[0] & FAT_MASK == 0:
                return cluster
        raise Fat32Error("no free cluster")

    # -- directories ----------------------------------------------------

    def _iter_dir(self, cluster: int) -> Iterator[tuple[int, int, _DirEntry]]:
        """Yield ``(cluster, slot, entry)`` for live short entries of a directory chain."""
        while True:
            buf = self._read_cluster(cluster)
            for slot in range(self.entries_per_cluster):
                offset = slot * DIRENT_SIZE
                first = buf[offset]
                if first == 0x00:
                    return
                entry = _DirEntry.unpack(buf, offset)
                if first == DELETED_MARK or entry.attr == ATTR_LONG_NAME:
                    continue
                yield cluster, slot, entry
            nxt = self.fat_get(cluster)
            if nxt >= END_OF_CHAIN:
                return
            cluster = nxt

    def _find_in_dir(self, cluster: int, name11: bytes) -> tuple[_DirEntry, int, int] | None:
        for dcl, slot, entry in self._iter_dir(cluster):
            if entry.name == name11:
                return entry, dcl, slot
        return None

    def _dir_write_entry(self, cluster: int, slot: int, entry: _DirEntry) -> None:
        per_cluster = self.entries_per_cluster
        while cluster:
            buf = bytearray(self._read_cluster(cluster))
            if slot < per_cluster:
                offset = slot * DIRENT_SIZE
                buf[offset:offset + DIRENT_SIZE] = entry.pack()
                self._write_cluster(cluster, bytes(buf))
                return
            nxt = self.fat_get(cluster)
            if nxt >= END_OF_CHAIN:
                break
            cluster = nxt
            slot -= per_cluster
        raise Fat32Error("directory slot out of range")

    def _dir_find_free_slot(self, cluster: int) -> tuple[int, int]:
        while True:
            buf = self._read_cluster(cluster)
            for slot in range(self.entries_per_cluster):
                if buf[slot * DIRENT_SIZE] in (0x00, DELETED_MARK):
                    return cluster, slot
            nxt = self.fat_get(cluster)
            if nxt >= END_OF_CHAIN:
                raise Fat32Error("directory is full")
            cluster = nxt

    def _root_file(self, name83: str) -> _DirEntry:
        if name83 is None:
            raise Fat32Error("no file name")
        found = self._find_in_dir(self.root_clus, _name11(name83))
        if found is None:
            raise Fat32Error(f"not found: {name83}")
        return found[0]

    # -- files ----------------------------------------------------------

    def _stream_chain(self, cluster: int, size: int) -> Iterator[bytes]:
        left = size
        bps = self.bytes_per_sec
        while left:
            base = self._cluster_lba(cluster)
            for s in range(self.sec_per_clus):
                if not left:
                    break
                take = min(left, bps)
                yield self._read(base + s)[:take]
                left -= take
            if not left:
                break
            nxt = self.fat_get(cluster)
            if nxt < 2 or nxt >= END_OF_CHAIN:
                raise Fat32Error("cluster chain ends before the file does")
            cluster = nxt

    def read_stream(self, name83: str) -> Iterator[bytes]:
        """Return an iterator over the sectors of a root-directory file.

        The file is looked up at once; each chunk is at most one sector long.
        """
        entry = self._root_file(name83)
        return self._stream_chain(entry.cluster, entry.size)

    def read_all(self, name83: str) -> bytes:
        """Return the whole contents of a root-directory file."""
        entry = self._root_file(name83)
        cluster = entry.cluster
        left = entry.size
        cps = self.bytes_per_cluster
        parts: list[bytes] = []
        while left:
            chunk = self._read_cluster(cluster)
            take = min(left, cps)
            parts.append(chunk[:take])
            left -= take
            nxt = self.fat_get(cluster)
            if left and nxt >= END_OF_CHAIN:
                raise Fat32Error("cluster chain ends before the file does")
            cluster = nxt
        return b"".join(parts)

    def write_all_root(self, name83: str, data: bytes) -> None:
        """Create or replace a root-directory file with ``data``."""
        if name83 is None:
            raise Fat32Error("no file name")
        data = bytes(data)
        name11 = _name11(name83)
        existing = self._find_in_dir(self.root_clus, name11)

        cps = self.bytes_per_cluster
        need = max(1, -(-len(data) // cps))

        chain: list[int] = []
        for _ in range(need):
            cluster = self._find_free_cluster(chain[-1] + 1 if chain else 2)
            if chain:
                self._fat_set(chain[-1], cluster)
            chain.append(cluster)
        self._fat_set(chain[-1], CHAIN_END_MARK)

        for index, cluster in enumerate(chain):
            chunk = data[index * cps:(index + 1) * cps]
            self._write_cluster(cluster, chunk.ljust(cps, b"\0"))

        entry = _DirEntry(name11, ATTR_ARCHIVE, chain[0], len(data))
        if existing is not None:
            _, dcl, slot = existing
        else:
            dcl, slot = self._dir_find_free_slot(self.root_clus)
        self._dir_write_entry(dcl, slot, entry)

    def list_root(self) -> list[DirListing]:
        """Return the entries of the root directory."""
        log.debug("root cl=%#x data_lba=%#x", self.root_clus, self.data_lba)
        return [
            DirListing(_display_name(entry.name), entry.size, entry.is_dir)
            for _, _, entry in self._iter_dir(self.root_clus)
        ]