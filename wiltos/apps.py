"""The bundled applications: a greeting and a one-line file editor."""

from __future__ import annotations

from .elfexec import AppApi

EDIT_BUFFER_SIZE = 4096
ESC = 27
BACKSPACE_CODES = (8, 127)
ENTER_CODES = (ord("\r"), ord("\n"))


def _wait_key(api: AppApi) -> int:
    while True:
        ch = api.getch()
        if ch is not None and ch >= 0:
            return ch
        api.idle()


def hello_main(api: AppApi, arg: str | None = None) -> int:
    """Greet, echo ``arg`` if given, and exit after any key."""
    api.puts("[hello] start\n")
    if arg:
        api.puts("arg=")
        api.puts(arg)
        api.putc("\n")
    api.puts("[hello] press any key to exit\n")
    _wait_key(api)
    api.puts("[hello] bye\n")
    return 0


def edit_main(api: AppApi, arg: str | None = None) -> int:
    """Read one line from the keyboard and save it to the file ``arg``.

    Returns 0 when saved, 1 without a path, 2 when aborted with ESC and
    3 when the save fails.
    """
    api.puts("[edit] path required, ESC aborts\n")
    if not arg:
        api.puts("usage: edit /disk/NAME.TXT\n")
        return 1

    text: list[str] = []
    while True:
        ch = _wait_key(api)
        if ch == ESC:
            api.puts("\n[edit] abort\n")
            return 2
        if ch in ENTER_CODES:
            api.putc("\n")
            break
        if ch in BACKSPACE_CODES and text:
            text.pop()
            api.puts("\b \b")
            continue
        if 32 <= ch < 127 and len(text) < EDIT_BUFFER_SIZE - 1:
            text.append(chr(ch))
            api.putc(chr(ch))

    try:
        api.write_file(arg, "".join(text).encode("ascii"))
    except Exception:
        api.puts("[edit] save failed\n")
        return 3
    api.puts("[edit] saved\n")
    return 0