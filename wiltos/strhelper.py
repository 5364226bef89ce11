"""Small string helpers used by the command shell."""

from __future__ import annotations

_WHITESPACE = " \t\r\n"
_BLANKS = " \t"


def compare_literal(s: str, lit: str) -> bool:
    """Return True when ``s`` is exactly ``lit``."""
    return s == lit


def begins_with(s: str, prefix: str) -> bool:
    """Return True when ``s`` starts with ``prefix``."""
    return s.startswith(prefix)


def contains(s: str, needle: str) -> bool:
    """Return True when ``needle`` occurs in ``s``; the empty needle always does."""
    return needle in s


def is_space(c: str | int) -> bool:
    """Return True for a space, tab, carriage return or newline character."""
    if isinstance(c, int):
        c = chr(c & 0xFF)
    return len(c) == 1 and c in _WHITESPACE


def ltrim(s: str) -> str:
    """Drop leading whitespace."""
    return s.lstrip(_WHITESPACE)


def rtrim(s: str) -> str:
    """Drop trailing whitespace."""
    return s.rstrip(_WHITESPACE)


def trim(s: str) -> str:
    """Drop leading and trailing whitespace."""
    return rtrim(ltrim(s))


def trim_after_prefix(s: str, prefix: str) -> str:
    """Return what follows ``prefix`` without leading whitespace, or ``s`` unchanged."""
    if not s.startswith(prefix):
        return s
    return ltrim(s[len(prefix):])


def after_first_space(s: str) -> str | None:
    """Return the text after the first word, or None when there is none.

    Leading blanks are skipped, the first word ends at a space, and blanks
    after it are skipped as well.
    """
    s = s.lstrip(_BLANKS)
    index = s.find(" ")
    if index < 0:
        return None
    rest = s[index + 1:].lstrip(_BLANKS)
    return rest or None


def first_word(s: str) -> str:
    """Return the first space-delimited word after any leading blanks."""
    return s.lstrip(_BLANKS).split(" ", 1)[0]


def has_text(s: str | None) -> bool:
    """Return True when ``s`` holds anything other than whitespace."""
    return s is not None and bool(s.strip(_WHITESPACE))