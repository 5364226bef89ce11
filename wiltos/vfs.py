"""An in-memory file tree populated from a ustar archive."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

MAX_NODES = 512
NAME_BUFFER_SIZE = 8192
DATA_ARENA_SIZE = 256 * 1024
MAX_CWD_DEPTH = 64
TAR_BLOCK = 512

_NAME = slice(0, 100)
_SIZE = slice(124, 136)
_TYPEFLAG = slice(156, 157)
_PREFIX = slice(345, 500)


class VfsError(Exception):
    """A path is missing, of the wrong kind, or the tree is full."""


class VType(enum.IntEnum):
    DIR = 1
    FILE = 2


@dataclass(eq=False)
class VNode:
    """A directory or file in the tree."""

    type: VType
    name: str
    parent: VNode | None = field(default=None, repr=False)
    children: list[VNode] = field(default_factory=list, repr=False)
    data: bytes = field(default=b"", repr=False)
    size: int = 0


def _cstr(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("utf-8", "surrogateescape")


def _octal(raw: bytes) -> int:
    value = 0
    for byte in raw:
        if byte == 0 or not 0x30 <= byte <= 0x37:
            break
        value = value * 8 + (byte - 0x30)
    return value


class TarVfs:
    """A tree of directories and files with a working directory."""

    def __init__(self) -> None:
        self._node_count = 0
        self._name_used = 0
        self._arena_used = 0
        self.root = self._new_node("", VType.DIR)
        self._cwd = self.root

    def _new_node(self, name: str, vtype: VType) -> VNode:
        if self._node_count >= MAX_NODES:
            raise VfsError("node table is full")
        needed = len(name.encode("utf-8", "surrogateescape")) + 1
        if self._name_used + needed > NAME_BUFFER_SIZE:
            raise VfsError("name buffer is full")
        self._node_count += 1
        self._name_used += needed
        return VNode(vtype, name)

    @staticmethod
    def _add_child(directory: VNode, node: VNode) -> VNode:
        node.parent = directory
        directory.children.insert(0, node)
        return node

    @staticmethod
    def _find_child(directory: VNode, name: str) -> VNode | None:
        return next((c for c in directory.children if c.name == name), None)

    def _child_or_new(self, directory: VNode, name: str, vtype: VType) -> VNode:
        found = self._find_child(directory, name)
        if found is None:
            found = self._add_child(directory, self._new_node(name, vtype))
        return found

    def _walk_from(self, start: VNode | None, path: str | None) -> VNode | None:
        if path and path.startswith("/"):
            cur = self.root
        else:
            cur = start or self.root
        for segment in (path or "").split("/"):
            if not segment or segment == ".":
                continue
            if segment == "..":
                if cur.parent is not None:
                    cur = cur.parent
                continue
            nxt = self._find_child(cur, segment)
            if nxt is None:
                return None
            cur = nxt
        return cur

    def _ensure_path(self, path: str) -> VNode:
        cur = self.root
        for segment in path.split("/"):
            if segment and segment != ".":
                cur = self._child_or_new(cur, segment, VType.DIR)
        return cur

    @property
    def cwd(self) -> VNode:
        return self._cwd or self.root

    def set_cwd(self, node: VNode | None) -> None:
        """Make ``node`` the working directory; anything but a directory selects the root."""
        self._cwd = node if node is not None and node.type is VType.DIR else self.root

    def lookup(self, path: str | None) -> VNode | None:
        """Find a node by path from the root, without ``.`` or ``..`` handling."""
        if path and path.startswith("/"):
            path = path[1:]
        if not path or path.startswith("/"):
            return self.root
        segments = path.split("/")
        if segments[-1] == "":
            segments.pop()
        cur = self.root
        for segment in segments:
            nxt = self._find_child(cur, segment)
            if nxt is None:
                return None
            cur = nxt
        return cur

    def lookup_at(self, base: VNode | None, path: str | None) -> VNode | None:
        """Find a node relative to ``base``, honouring ``.`` and ``..``."""
        return self._walk_from(base, path)

    @staticmethod
    def _entries(node: VNode | None) -> list[tuple[str, VType]]:
        if node is None or node.type is not VType.DIR:
            raise VfsError("not a directory")
        return [(child.name, child.type) for child in node.children]

    @staticmethod
    def _contents(node: VNode | None) -> bytes:
        if node is None or node.type is not VType.FILE:
            raise VfsError("not a file")
        return node.data

    def list(self, path: str | None) -> list[tuple[str, VType]]:
        """Return ``(name, type)`` for each entry of a directory."""
        return self._entries(self.lookup(path))

    def list_at(self, base: VNode | None, path: str | None) -> list[tuple[str, VType]]:
        """List a directory found relative to ``base``; an empty path means ``base``."""
        return self._entries(self._walk_from(base, path or "."))

    def read(self, path: str | None) -> bytes:
        """Return the contents of a file."""
        return self._contents(self.lookup(path))

    def read_at(self, base: VNode | None, path: str | None) -> bytes:
        """Return the contents of a file found relative to ``base``."""
        return self._contents(self._walk_from(base, path))

    def chdir(self, path: str) -> None:
        """Change the working directory relative to the current one."""
        node = self._walk_from(self.cwd, path)
        if node is None or node.type is not VType.DIR:
            raise VfsError(f"no such directory: {path}")
        self._cwd = node

    def getcwd(self) -> str:
        """Return the absolute path of the working directory."""
        parts: list[str] = []
        node = self.cwd
        while node.parent is not None and len(parts) < MAX_CWD_DEPTH:
            parts.append(node.name)
            node = node.parent
        return "/" + "/".join(reversed(parts))

    @staticmethod
    def _entry_name(header: bytes) -> str:
        full = ""
        prefix = _cstr(header[_PREFIX])
        if prefix:
            full = prefix[:250]
            if full and not full.endswith("/") and len(full) < 250:
                full += "/"
        name = _cstr(header[_NAME])
        if name.startswith("./"):
            name = name[2:]
        full = (full + name)[:255]
        if full.endswith("/"):
            full = full[:-1]
        return full

    def mount_tar(self, data: bytes) -> int:
        """Add every entry of a ustar archive and return how many were read."""
        archive = bytes(data)
        offset = 0
        count = 0
        while offset + TAR_BLOCK <= len(archive):
            header = archive[offset:offset + TAR_BLOCK]
            if header[0] == 0:
                break
            full = self._entry_name(header)
            size = _octal(header[_SIZE])
            payload_start = offset + TAR_BLOCK

            slash = full.rfind("/")
            dir_part, base = full[:slash + 1], full[slash + 1:]
            directory = self._ensure_path(dir_part[:255]) if dir_part else self.root

            if header[_TYPEFLAG] == b"5":
                if self._find_child(directory, base) is None:
                    self._add_child(directory, self._new_node(base, VType.DIR))
            else:
                node = self._child_or_new(directory, base, VType.FILE)
                node.data = archive[payload_start:payload_start + size]
                node.size = size

            offset = payload_start + -(-size // TAR_BLOCK) * TAR_BLOCK
            count += 1
        return count

    def _arena_alloc(self, n: int) -> None:
        aligned = (self._arena_used + 0xF) & ~0xF
        if aligned + n > DATA_ARENA_SIZE:
            raise VfsError("file data arena is full")
        self._arena_used = aligned + n

    def write_at(self, base: VNode | None, path: str, data: bytes) -> None:
        """Create or replace a file, making any missing directories on the way."""
        if not path:
            raise VfsError("empty path")
        if path.startswith("/"):
            cur = self.root
            path = path[1:]
        else:
            cur = base or self.root
        *dirs, last = path.split("/")
        for segment in dirs:
            if segment and segment != ".":
                cur = self._child_or_new(cur, segment, VType.DIR)
        if not last:
            raise VfsError("path names a directory")
        node = self._child_or_new(cur, last, VType.FILE)
        contents = bytes(data)
        self._arena_alloc(len(contents))
        node.type = VType.FILE
        node.data = contents
        node.size = len(contents)

    def write(self, path: str, data: bytes) -> None:
        """Create or replace a file relative to the root."""
        self.write_at(self.root, path, data)