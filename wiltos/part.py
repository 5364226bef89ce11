"""Locating a FAT32 partition in a master boot record."""

from __future__ import annotations

import struct
from dataclasses import dataclass

from .block import BlockDevice, BlockError

MBR_SIGNATURE = b"\x55\xaa"
FAT32_PARTITION_TYPES = frozenset({0x0B, 0x0C})
_TABLE_OFFSET = 446
_ENTRY_SIZE = 16
_ENTRY_COUNT = 4


class PartitionError(Exception):
    """No usable FAT32 partition was found."""


@dataclass(frozen=True)
class Partition:
    """A partition's first sector and its length in sectors."""

    lba_start: int
    sectors: int


def find_fat32_partition(device: BlockDevice) -> Partition:
    """Return the first FAT32 entry of the MBR on ``device``."""
    try:
        sector = device.read(0, 1)
    except BlockError as exc:
        raise PartitionError("cannot read the boot sector") from exc
    if len(sector) < 512 or sector[510:512] != MBR_SIGNATURE:
        raise PartitionError("boot sector has no MBR signature")
    for index in range(_ENTRY_COUNT):
        start = _TABLE_OFFSET + index * _ENTRY_SIZE
        entry = sector[start:start + _ENTRY_SIZE]
        if entry[4] in FAT32_PARTITION_TYPES:
            lba, count = struct.unpack_from("<II", entry, 8)
            return Partition(lba, count)
    raise PartitionError("no FAT32 partition in the MBR")