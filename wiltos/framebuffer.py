"""A text console drawn with a tiny 5x7 font into a 32-bit pixel buffer."""

from __future__ import annotations

import struct

CELL_W = 8
CELL_H = 16
BYTES_PER_PIXEL = 4
DEFAULT_FG = 0xFFFFFF
DEFAULT_BG = 0x000000

Glyph = tuple[int, int, int, int, int, int, int]

_DIGITS: tuple[Glyph, ...] = (
    (0x0E, 0x11, 0x11, 0x11, 0x11, 0x11, 0x0E),
    (0x04, 0x0C, 0x04, 0x04, 0x04, 0x04, 0x0E),
    (0x0E, 0x11, 0x01, 0x02, 0x04, 0x08, 0x1F),
    (0x1E, 0x01, 0x01, 0x0E, 0x01, 0x01, 0x1E),
    (0x12, 0x12, 0x12, 0x1F, 0x02, 0x02, 0x02),
    (0x1F, 0x10, 0x1E, 0x01, 0x01, 0x11, 0x0E),
    (0x06, 0x08, 0x10, 0x1E, 0x11, 0x11, 0x0E),
    (0x1F, 0x01, 0x02, 0x04, 0x08, 0x08, 0x08),
    (0x0E, 0x11, 0x11, 0x0E, 0x11, 0x11, 0x0E),
    (0x0E, 0x11, 0x11, 0x0F, 0x01, 0x02, 0x0C),
)

_LETTERS: tuple[Glyph, ...] = (
    (0x0E, 0x11, 0x11, 0x1F, 0x11, 0x11, 0x11),
    (0x1E, 0x11, 0x11, 0x1E, 0x11, 0x11, 0x1E),
    (0x0E, 0x11, 0x10, 0x10, 0x10, 0x11, 0x0E),
    (0x1E, 0x11, 0x11, 0x11, 0x11, 0x11, 0x1E),
    (0x1F, 0x10, 0x10, 0x1E, 0x10, 0x10, 0x1F),
    (0x1F, 0x10, 0x10, 0x1E, 0x10, 0x10, 0x10),
    (0x0E, 0x11, 0x10, 0x17, 0x11, 0x11, 0x0E),
    (0x11, 0x11, 0x11, 0x1F, 0x11, 0x11, 0x11),
    (0x0E, 0x04, 0x04, 0x04, 0x04, 0x04, 0x0E),
    (0x01, 0x01, 0x01, 0x01, 0x11, 0x11, 0x0E),
    (0x11, 0x12, 0x14, 0x18, 0x14, 0x12, 0x11),
    (0x10, 0x10, 0x10, 0x10, 0x10, 0x10, 0x1F),
    (0x11, 0x1B, 0x15, 0x15, 0x11, 0x11, 0x11),
    (0x11, 0x19, 0x15, 0x13, 0x11, 0x11, 0x11),
    (0x0E, 0x11, 0x11, 0x11, 0x11, 0x11, 0x0E),
    (0x1E, 0x11, 0x11, 0x1E, 0x10, 0x10, 0x10),
    (0x0E, 0x11, 0x11, 0x11, 0x15, 0x12, 0x0D),
    (0x1E, 0x11, 0x11, 0x1E, 0x14, 0x12, 0x11),
    (0x0F, 0x10, 0x10, 0x0E, 0x01, 0x01, 0x1E),
    (0x1F, 0x04, 0x04, 0x04, 0x04, 0x04, 0x04),
    (0x11, 0x11, 0x11, 0x11, 0x11, 0x11, 0x0E),
    (0x11, 0x11, 0x11, 0x11, 0x11, 0x0A, 0x04),
    (0x11, 0x11, 0x11, 0x15, 0x15, 0x1B, 0x11),
    (0x11, 0x11, 0x0A, 0x04, 0x0A, 0x11, 0x11),
    (0x11, 0x11, 0x0A, 0x04, 0x04, 0x04, 0x04),
    (0x1F, 0x01, 0x02, 0x04, 0x08, 0x10, 0x1F),
)

_QUESTION: Glyph = (0x0E, 0x11, 0x01, 0x02, 0x04, 0x00, 0x04)

_SYMBOLS: dict[str, Glyph] = {
    " ": (0, 0, 0, 0, 0, 0, 0),
    ">": (0x10, 0x08, 0x04, 0x02, 0x04, 0x08, 0x10),
    "<": (0x01, 0x02, 0x04, 0x08, 0x04, 0x02, 0x01),
    "=": (0x00, 0x00, 0x1F, 0x00, 0x1F, 0x00, 0x00),
    "-": (0x00, 0x00, 0x1F, 0x00, 0x00, 0x00, 0x00),
    ".": (0x00, 0x00, 0x00, 0x00, 0x00, 0x04, 0x04),
    ":": (0x00, 0x04, 0x04, 0x00, 0x00, 0x04, 0x04),
    "!": (0x04, 0x04, 0x04, 0x04, 0x04, 0x00, 0x04),
    "/": (0x00, 0x01, 0x02, 0x04, 0x08, 0x10, 0x00),
    "\\": (0x00, 0x10, 0x08, 0x04, 0x02, 0x01, 0x00),
    "[": (0x1C, 0x10, 0x10, 0x10, 0x10, 0x10, 0x1C),
    "]": (0x07, 0x01, 0x01, 0x01, 0x01, 0x01, 0x07),
}

_HEX_DIGITS = "0123456789ABCDEF"


def glyph_for(c: str) -> Glyph:
    """Return the seven 5-bit rows of the glyph for ``c``; unknown characters draw as ``?``."""
    if "a" <= c <= "z":
        c = c.upper()
    if len(c) == 1 and "0" <= c <= "9":
        return _DIGITS[ord(c) - ord("0")]
    if len(c) == 1 and "A" <= c <= "Z":
        return _LETTERS[ord(c) - ord("A")]
    return _SYMBOLS.get(c, _QUESTION)


class FramebufferConsole:
    """A scrolling text console over a linear 32-bit framebuffer."""

    def __init__(
        self,
        width: int,
        height: int,
        pitch: int | None = None,
        bpp: int = 32,
        fg: int = DEFAULT_FG,
        bg: int = DEFAULT_BG,
    ) -> None:
        if width <= 0 or height <= 0:
            raise ValueError("framebuffer dimensions must be positive")
        if pitch is None:
            pitch = width * BYTES_PER_PIXEL
        if pitch < width * BYTES_PER_PIXEL:
            raise ValueError("pitch is smaller than one row of pixels")
        self.width = width
        self.height = height
        self.pitch = pitch
        self.bpp = bpp
        self._buf = bytearray(pitch * height)
        self._fg = fg & 0xFFFFFFFF
        self._bg = bg & 0xFFFFFFFF
        self._x = 0
        self._y = 0
        self.clear()

    @property
    def cursor(self) -> tuple[int, int]:
        """The cursor position as ``(column, row)``."""
        return self._x, self._y

    @property
    def buffer(self) -> bytes:
        """A copy of the raw pixel memory."""
        return bytes(self._buf)

    def _fill_rect(self, x: int, y: int, w: int, h: int, colour: int) -> None:
        x_end = min(x + w, self.width)
        y_end = min(y + h, self.height)
        if x >= x_end or y >= y_end:
            return
        row = colour.to_bytes(BYTES_PER_PIXEL, "little") * (x_end - x)
        for yy in range(y, y_end):
            start = yy * self.pitch + x * BYTES_PER_PIXEL
            self._buf[start:start + len(row)] = row

    def _putpix(self, x: int, y: int, colour: int) -> None:
        if x >= self.width or y >= self.height:
            return
        struct.pack_into("<I", self._buf, y * self.pitch + x * BYTES_PER_PIXEL, colour)

    def _draw_glyph(self, x: int, y: int, c: str) -> None:
        self._fill_rect(x, y, CELL_W, CELL_H, self._bg)
        for ry, bits in enumerate(glyph_for(c)):
            for rx in range(5):
                if bits & (1 << (4 - rx)):
                    px = x + 1 + rx
                    py = y + 1 + ry * 2
                    self._putpix(px, py, self._fg)
                    self._putpix(px, py + 1, self._fg)

    def _scroll_up(self) -> None:
        step = CELL_H
        count = max(0, self.pitch * (self.height - step))
        src = self.pitch * step
        self._buf[0:count] = self._buf[src:src + count]
        self._fill_rect(0, self.height - step, self.width, step, self._bg)
        if self._y:
            self._y -= 1

    def _new_line(self) -> None:
        self._x = 0
        self._y += 1
        if (self._y + 1) * CELL_H > self.height:
            self._scroll_up()

    def set_colors(self, fg: int, bg: int) -> None:
        """Set the foreground and background colours for later drawing."""
        self._fg = fg & 0xFFFFFFFF
        self._bg = bg & 0xFFFFFFFF

    def clear(self) -> None:
        """Fill the screen with the background colour and home the cursor."""
        self._fill_rect(0, 0, self.width, self.height, self._bg)
        self._x = 0
        self._y = 0

    def putc(self, c: str | int) -> None:
        """Draw one character, handling newline, carriage return and backspace."""
        if isinstance(c, int):
            c = chr(c)
        if c == "\r":
            return
        if c == "\n":
            self._new_line()
            return
        if c in ("\b", "\x7f"):
            if self._x:
                self._x -= 1
                self._draw_glyph(self._x * CELL_W, self._y * CELL_H, " ")
            return
        self._draw_glyph(self._x * CELL_W, self._y * CELL_H, c)
        self._x += 1
        if (self._x + 1) * CELL_W > self.width:
            self._new_line()

    def write(self, s: str) -> None:
        """Draw every character of ``s``."""
        for c in s:
            self.putc(c)

    def hex64(self, x: int) -> None:
        """Draw ``x`` as sixteen upper-case hexadecimal digits."""
        x &= 0xFFFFFFFFFFFFFFFF
        self.write("".join(_HEX_DIGITS[(x >> shift) & 0xF] for shift in range(60, -1, -4)))

    def set_cursor(self, cx: int, cy: int) -> None:
        """Move the cursor to column ``cx`` and row ``cy``."""
        self._x = cx
        self._y = cy

    def cell_metrics(self) -> tuple[int, int, int, int]:
        """Return ``(cell width, cell height, columns, rows)``."""
        return CELL_W, CELL_H, self.width // CELL_W, self.height // CELL_H

    def pixel(self, x: int, y: int) -> int:
        """Return the colour of the pixel at ``(x, y)``."""
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"pixel ({x}, {y}) outside the framebuffer")
        return struct.unpack_from("<I", self._buf, y * self.pitch + x * BYTES_PER_PIXEL)[0]