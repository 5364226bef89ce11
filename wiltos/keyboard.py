"""PS/2 set-1 scancode decoding into a small character queue."""

from __future__ import annotations

from collections import deque

QUEUE_SIZE = 64

_SCAN_LSHIFT = 0x2A
_SCAN_RSHIFT = 0x36
_SCAN_CAPS = 0x3A
_SCAN_EXTENDED = 0xE0
_RELEASE_BIT = 0x80


def _rows(*rows: tuple[int, str]) -> dict[int, str]:
    table: dict[int, str] = {}
    for start, chars in rows:
        for offset, ch in enumerate(chars):
            table[start + offset] = ch
    return table


_NORMAL = _rows(
    (0x02, "1234567890-="),
    (0x0E, "\b\t"),
    (0x10, "qwertyuiop[]\n"),
    (0x1E, "asdfghjkl;'`"),
    (0x2B, "\\"),
    (0x2C, "zxcvbnm,./"),
    (0x39, " "),
)

_SHIFTED = _rows(
    (0x02, "!@#$%^&*()_+"),
    (0x10, "QWERTYUIOP{}\n"),
    (0x1E, 'ASDFGHJKL:"~'),
    (0x2B, "|"),
    (0x2C, "ZXCVBNM<>?"),
    (0x39, " "),
)


class Keyboard:
    """Tracks shift and caps-lock state and queues decoded characters."""

    def __init__(self) -> None:
        self._queue: deque[int] = deque()
        self.shift = False
        self.caps = False
        self.extended = False

    def reset(self) -> None:
        """Empty the queue and clear all modifier state."""
        self._queue.clear()
        self.shift = False
        self.caps = False
        self.extended = False

    def _push(self, code: int) -> None:
        if len(self._queue) < QUEUE_SIZE - 1:
            self._queue.append(code)

    def feed_scancode(self, scancode: int) -> None:
        """Decode one scancode byte, queueing a character if it produces one."""
        sc = scancode & 0xFF
        if sc == _SCAN_EXTENDED:
            self.extended = True
            return
        released = bool(sc & _RELEASE_BIT)
        sc &= 0x7F

        if sc in (_SCAN_LSHIFT, _SCAN_RSHIFT):
            self.shift = not released
            return
        if sc == _SCAN_CAPS:
            if not released:
                self.caps = not self.caps
            return
        if released:
            return

        normal = _NORMAL.get(sc, "")
        shifted = _SHIFTED.get(sc, "")
        if "a" <= normal <= "z":
            out = normal.upper() if self.shift != self.caps else normal
        elif self.shift:
            out = shifted or normal
        else:
            out = normal
        if not out:
            return
        self._push(ord(out))
        self.extended = False

    def getch(self) -> int | None:
        """Return the next queued character code, or None when the queue is empty."""
        return self._queue.popleft() if self._queue else None