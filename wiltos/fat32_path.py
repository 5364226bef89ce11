"""Path-based access to FAT32 volumes: sub-directories, listing, reading and writing."""

from __future__ import annotations

from typing import Iterator

from .fat32 import (
    ATTR_ARCHIVE,
    ATTR_DIRECTORY,
    ATTR_VOLUME_ID,
    CHAIN_END_MARK,
    END_OF_CHAIN,
    DirListing,
    Fat32,
    Fat32Error,
    _DirEntry,
)

_MAX_SEGMENT = 15
_BLANK_NAME = b" " * 11


def name11_from_segment(segment: str) -> bytes:
    """Turn one path segment such as ``name.ext`` into the 11-byte directory form."""
    out = bytearray(_BLANK_NAME)
    j = 0
    for c in segment.encode("latin-1", "replace"):
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


def _segments(path: str) -> list[str]:
    return [segment for segment in path.split("/") if segment]


def _walk(fs: Fat32, path: str) -> tuple[_DirEntry, int]:
    """Return the entry ``path`` names and the cluster of the directory holding it.

    A path that ends on a directory yields a synthetic directory entry.
    """
    if path is None:
        raise Fat32Error("no path")
    cluster = fs.root_clus
    segments = _segments(path)
    for index, segment in enumerate(segments):
        found = fs._find_in_dir(cluster, name11_from_segment(segment[:_MAX_SEGMENT]))
        if found is None:
            raise Fat32Error(f"not found: {path}")
        entry = found[0]
        if entry.is_dir:
            cluster = entry.cluster
        elif index != len(segments) - 1:
            raise Fat32Error(f"not a directory in: {path}")
        else:
            return entry, cluster
    return _DirEntry(_BLANK_NAME, ATTR_DIRECTORY, cluster, 0), cluster


def is_dir_path(fs: Fat32, path: str) -> bool:
    """Return True when ``path`` names a directory; the empty path is the root."""
    if fs is None or path is None:
        return False
    segments = _segments(path)
    cluster = fs.root_clus
    try:
        for segment in segments:
            found = fs._find_in_dir(cluster, name11_from_segment(segment))
            if found is None or not found[0].is_dir:
                return False
            cluster = found[0].cluster
            if cluster < 2:
                cluster = fs.root_clus
    except Fat32Error:
        return False
    return True


def _listing_name(raw: bytes, is_dir: bool) -> str:
    name = raw[:8].rstrip(b" ")
    if not is_dir:
        name = (name + b"." + raw[8:11]).rstrip(b" ")
        if name.endswith(b"."):
            name = name[:-1]
    return name.decode("latin-1")


def list_path(fs: Fat32, path: str) -> list[DirListing]:
    """Return the entries of the directory ``path``, leaving out volume labels."""
    entry, _ = _walk(fs, path)
    if not entry.is_dir:
        raise Fat32Error(f"not a directory: {path}")
    return [
        DirListing(_listing_name(child.name, child.is_dir), child.size, child.is_dir)
        for _, _, child in fs._iter_dir(entry.cluster)
        if not child.attr & ATTR_VOLUME_ID
    ]


def read_stream_path(fs: Fat32, path: str) -> Iterator[bytes]:
    """Return an iterator over the sectors of the file ``path``.

    The file is looked up at once; each chunk is at most one sector long.
    """
    entry, _ = _walk(fs, path)
    if entry.is_dir:
        raise Fat32Error(f"is a directory: {path}")
    return fs._stream_chain(entry.cluster, entry.size)


def _split83(name83: str) -> tuple[bytes, bytes]:
    base = bytearray()
    ext = bytearray()
    seen_dot = False
    for c in name83.encode("latin-1", "replace"):
        if c == 0x2E:
            seen_dot = True
            continue
        if 0x61 <= c <= 0x7A:
            c -= 32
        if not seen_dot:
            if len(base) < 8:
                base.append(c)
        elif len(ext) < 3:
            ext.append(c)
    return bytes(base), bytes(ext)


def _upper(c: int) -> int:
    return c - 32 if 0x61 <= c <= 0x7A else c


def _field_matches(field: bytes, wanted: bytes) -> bool:
    for index, c in enumerate(field):
        if index < len(wanted):
            if c == 0x20 or _upper(c) != _upper(wanted[index]):
                return False
        elif c != 0x20:
            return False
    return True


def _matches_name83(raw: bytes, base: bytes, ext: bytes) -> bool:
    return _field_matches(raw[:8], base) and _field_matches(raw[8:11], ext)


def read_stream_root83(fs: Fat32, name83: str) -> Iterator[bytes]:
    """Return an iterator over a root-directory file matched case-insensitively by 8.3 name."""
    if fs is None or not name83:
        raise Fat32Error("no file name")
    base, ext = _split83(name83)
    for _, _, entry in fs._iter_dir(fs.root_clus):
        if entry.is_dir:
            continue
        if _matches_name83(entry.name, base, ext):
            return fs._stream_chain(entry.cluster, entry.size)
    raise Fat32Error(f"not found: {name83}")


def _parent_dir(fs: Fat32, path: str) -> tuple[int, str]:
    segments = _segments(path)
    if not segments:
        raise Fat32Error("path names no file")
    cluster = fs.root_clus
    for segment in segments[:-1]:
        found = fs._find_in_dir(cluster, name11_from_segment(segment))
        if found is None or not found[0].is_dir:
            raise Fat32Error(f"no such directory: {segment}")
        cluster = found[0].cluster or fs.root_clus
    return cluster, segments[-1]


def _free_chain(fs: Fat32, cluster: int) -> None:
    while 2 <= cluster < END_OF_CHAIN:
        nxt = fs.fat_get(cluster)
        fs._fat_set(cluster, 0)
        cluster = nxt


def _allocate_chain(fs: Fat32, count: int) -> list[int]:
    chain: list[int] = []
    for _ in range(count):
        cluster = fs._find_free_cluster(chain[-1] + 1 if chain else 2)
        if chain:
            fs._fat_set(chain[-1], cluster)
        chain.append(cluster)
    fs._fat_set(chain[-1], CHAIN_END_MARK)
    return chain


def write_file_path(fs: Fat32, path: str, data: bytes) -> None:
    """Create or replace the file ``path``; its parent directories must exist."""
    if fs is None or path is None:
        raise Fat32Error("no path")
    data = bytes(data)
    dir_cluster, base = _parent_dir(fs, path)
    name11 = name11_from_segment(base)

    found = fs._find_in_dir(dir_cluster, name11)
    existing = found if found is not None and not found[0].is_dir else None
    if existing is not None:
        _free_chain(fs, existing[0].cluster)

    cps = fs.bytes_per_cluster
    chain = _allocate_chain(fs, max(1, -(-len(data) // cps)))
    for index, cluster in enumerate(chain):
        chunk = data[index * cps:(index + 1) * cps]
        fs._write_cluster(cluster, chunk.ljust(cps, b"\0"))

    entry = _DirEntry(name11, ATTR_ARCHIVE, chain[0], len(data))
    if existing is not None:
        _, dcl, slot = existing
    else:
        dcl, slot = fs._dir_find_free_slot(dir_cluster)
    fs._dir_write_entry(dcl, slot, entry)