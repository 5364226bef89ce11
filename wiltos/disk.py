"""The data disk: probing a block device for a FAT32 volume and writing application files."""

from __future__ import annotations

import logging

from . import block
from .block import BlockDevice
from .fat32 import Fat32, Fat32Error
from .fat32_path import write_file_path
from .part import PartitionError, find_fat32_partition
from .paths import disk_subpath

log = logging.getLogger(__name__)

DISK_ROOT = "/disk"
BIN_DIR = "/disk/BIN/"
_PATH_CAP = 255


def _ends_with_ci(s: str, suffix: str) -> bool:
    return len(suffix) <= len(s) and s[len(s) - len(suffix):].upper() == suffix.upper()


class Disk:
    """The mounted data disk, or an unmounted placeholder when no volume was found."""

    def __init__(self, fs: Fat32 | None = None) -> None:
        self.fs = fs

    @property
    def mounted(self) -> bool:
        """True when a FAT32 volume is mounted."""
        return self.fs is not None

    @classmethod
    def setup(cls, device: BlockDevice | None) -> Disk:
        """Register ``device`` and mount the first FAT32 partition on it.

        A device without a partition table or a FAT32 volume gives an
        unmounted disk rather than an error.
        """
        if device is None:
            return cls()
        block.register(device)
        try:
            partition = find_fat32_partition(device)
            fs = Fat32.mount(device, partition.lba_start)
        except (PartitionError, Fat32Error) as exc:
            log.debug("disk mounted=0 (%s)", exc)
            return cls()
        log.debug("disk mounted=1")
        return cls(fs)

    def write_app_file(self, path: str, data: bytes) -> None:
        """Save ``data`` for an application.

        Relative paths are taken below ``/disk``; absolute paths outside it
        are moved below it. A bare ``NAME.ELF`` goes into ``/disk/BIN``.
        """
        if not path or data is None:
            raise ValueError("a path and data are required")
        if self.fs is None:
            raise Fat32Error("disk not mounted")

        abs_path = path if path.startswith("/") else DISK_ROOT + "/" + path
        if not abs_path.startswith(DISK_ROOT):
            abs_path = DISK_ROOT + abs_path
        abs_path = abs_path[:_PATH_CAP]

        name = abs_path[len(DISK_ROOT):]
        if name.startswith("/"):
            name = name[1:]
        if "/" not in name and _ends_with_ci(name, ".ELF"):
            abs_path = (BIN_DIR + name)[:_PATH_CAP]

        sub = disk_subpath(abs_path)
        if sub is None:
            raise Fat32Error(f"not on the disk: {path}")
        write_file_path(self.fs, sub, data)