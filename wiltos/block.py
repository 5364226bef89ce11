"""Sector-addressed block devices and the default device registry."""

from __future__ import annotations

from typing import Callable

DEFAULT_SECTOR_SIZE = 512

Reader = Callable[[int, int], bytes]
Writer = Callable[[int, bytes], None]


class BlockError(Exception):
    """A block device could not complete a transfer."""


class BlockDevice:
    """A device addressed in whole sectors, driven by read and write callables."""

    def __init__(
        self,
        reader: Reader | None = None,
        writer: Writer | None = None,
        sector_size: int = DEFAULT_SECTOR_SIZE,
    ) -> None:
        if sector_size <= 0:
            raise ValueError("sector size must be positive")
        self._reader = reader
        self._writer = writer
        self.sector_size = sector_size

    def _sectors_in(self, data: bytes) -> int:
        if len(data) % self.sector_size:
            raise ValueError("data length is not a whole number of sectors")
        return len(data) // self.sector_size

    @staticmethod
    def _check_address(lba: int, count: int) -> None:
        if lba < 0 or count < 0:
            raise ValueError("negative sector address or count")

    def read(self, lba: int, count: int) -> bytes:
        """Read ``count`` sectors starting at ``lba``."""
        self._check_address(lba, count)
        if count == 0:
            return b""
        if self._reader is None:
            raise BlockError("device cannot read")
        data = bytes(self._reader(lba, count))
        if len(data) != count * self.sector_size:
            raise BlockError("short read from device")
        return data

    def write(self, lba: int, data: bytes) -> None:
        """Write whole sectors of ``data`` starting at ``lba``."""
        data = bytes(data)
        self._check_address(lba, self._sectors_in(data))
        if not data:
            return
        if self._writer is None:
            raise BlockError("device is read-only")
        self._writer(lba, data)


class MemoryBlockDevice(BlockDevice):
    """A block device held in memory."""

    def __init__(
        self,
        sector_count: int = 0,
        sector_size: int = DEFAULT_SECTOR_SIZE,
        *,
        image: bytes | None = None,
    ) -> None:
        super().__init__(sector_size=sector_size)
        if image is not None:
            self.data = bytearray(image)
            remainder = len(self.data) % sector_size
            if remainder:
                self.data.extend(bytes(sector_size - remainder))
        else:
            self.data = bytearray(sector_count * sector_size)

    @property
    def sector_count(self) -> int:
        return len(self.data) // self.sector_size

    def _check_range(self, lba: int, count: int) -> None:
        self._check_address(lba, count)
        if lba + count > self.sector_count:
            raise BlockError(f"sectors {lba}..{lba + count} beyond end of device")

    def read(self, lba: int, count: int) -> bytes:
        """Read ``count`` sectors starting at ``lba``."""
        self._check_range(lba, count)
        start = lba * self.sector_size
        return bytes(self.data[start:start + count * self.sector_size])

    def write(self, lba: int, data: bytes) -> None:
        """Write whole sectors of ``data`` starting at ``lba``."""
        data = bytes(data)
        self._check_range(lba, self._sectors_in(data))
        start = lba * self.sector_size
        self.data[start:start + len(data)] = data


_DEFAULT_SLOT = "default"
_devices: dict[str, BlockDevice] = {}


def register(device: BlockDevice) -> None:
    """Make ``device`` the default block device."""
    if not isinstance(device, BlockDevice):
        raise TypeError("only block devices can be registered")
    _devices[_DEFAULT_SLOT] = device


def get_default() -> BlockDevice | None:
    """Return the default block device, or None when none is registered."""
    return _devices.get(_DEFAULT_SLOT)