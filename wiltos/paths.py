"""Path resolution against a working directory and the /disk mount point."""

from __future__ import annotations

_DISK_PREFIX = "/disk"


def _char_at(s: str, index: int) -> str:
    return s[index] if index < len(s) else ""


def path_resolve(cwd: str | None, path: str | None) -> str:
    """Combine ``cwd`` and ``path`` into a normalised absolute path.

    Repeated slashes collapse, ``.`` segments vanish, ``..`` drops the
    previous segment (never climbing above the root) and a trailing slash
    is removed except for the root itself.
    """
    if path and path.startswith("/"):
        raw = "/" + path
    else:
        raw = cwd or ""
        if not raw:
            raw = "/"
        if not raw.endswith("/"):
            raw += "/"
        raw += path or ""
    if not raw:
        raw = "/"

    out: list[str] = []
    r = 0
    while r < len(raw):
        while raw[r] == "/" and _char_at(raw, r + 1) == "/":
            r += 1
        ch = raw[r]
        if ch == "." and _char_at(raw, r + 1) in ("", "/"):
            r += 1
            if _char_at(raw, r) == "/":
                r += 1
            continue
        if ch == "." and _char_at(raw, r + 1) == "." and _char_at(raw, r + 2) in ("", "/"):
            if len(out) > 1:
                out.pop()
                while out and out[-1] != "/":
                    out.pop()
            r += 2
            if _char_at(raw, r) == "/":
                r += 1
            continue
        out.append(ch)
        r += 1

    if len(out) > 1 and out[-1] == "/":
        out.pop()
    return "".join(out)


def disk_subpath(abs_path: str | None) -> str | None:
    """Return the part of ``abs_path`` below ``/disk``, or None when outside it.

    ``/disk`` itself maps to ``/``.
    """
    if not abs_path or not abs_path.startswith(_DISK_PREFIX):
        return None
    rest = abs_path[len(_DISK_PREFIX):]
    if not rest:
        return "/"
    if rest[0] != "/":
        return None
    return rest[1:]