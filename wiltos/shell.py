"""The command shell: built-in commands, running applications and line editing."""

from __future__ import annotations

import argparse
import logging
import math
import sys
from typing import Callable, Mapping

from .apps import edit_main, hello_main
from .block import MemoryBlockDevice
from .disk import Disk
from .elfexec import AppApi, ElfLoadError, load_elf
from .fat32 import Fat32Error
from .fat32_path import is_dir_path, list_path, read_stream_path, read_stream_root83
from .keyboard import Keyboard
from .paths import disk_subpath, path_resolve
from .strhelper import after_first_space, compare_literal, first_word
from .vfs import TarVfs, VfsError

log = logging.getLogger(__name__)

OUT_MAX = 8192
LINE_MAX = 128
PATH_CAP = 255
ELF_SLAB_SIZE = 524288
NO_PROGRAM = -13
PROMPT = "> "

HELP_TEXT = (
    "Help:\n1> echo <arg>\n2> shutdown\n3> ls <path>\n4> cat <path>\n"
    "5> pwd <path>\n6> cd <path>\n7> run <path> [arg]\n"
)
NOT_MOUNTED = "disk not mounted\n> "
NOT_FOUND = "not found\n> "
UNKNOWN = "Non-existant command, run help for help\n"

Program = Callable[[AppApi, "str | None"], int]

DEFAULT_PROGRAMS: Mapping[str, Program] = {"hello": hello_main, "edit": edit_main}


def _hex64(x: int) -> str:
    return format(x & 0xFFFFFFFFFFFFFFFF, "016X")


def _upper_ascii(s: str) -> str:
    return "".join(c.upper() if "a" <= c <= "z" else c for c in s)


def _with_slash(s: str) -> str:
    return s if not s or s.endswith("/") else s + "/"


def _trim_arg(arg: str | None) -> str:
    return arg[:PATH_CAP].rstrip(" \r\n\t") if arg else ""


def _force_disk_abs(abs_path: str) -> str:
    if abs_path.startswith("/disk"):
        return abs_path
    prefix = "/disk" if abs_path.startswith("/") else "/disk/"
    return (prefix + abs_path)[:PATH_CAP]


def _list_candidates(sub: str) -> list[str]:
    candidates: list[str] = []
    for base in (sub, _upper_ascii(sub)):
        rooted = "/" + base
        candidates += [base or "/", _with_slash(base) or "/", rooted, _with_slash(rooted)]
    return list(dict.fromkeys(candidates))


def _program_key(path: str) -> str:
    name = path.rstrip("/").rsplit("/", 1)[-1].lower()
    return name[:-4] if name.endswith(".elf") else name


def _exit_text(code: int) -> str:
    return "exit " + chr(ord("0") + int(math.fmod(code, 10)))


class _Output:
    """Collects a response, silently cut to the shell's output limit."""

    def __init__(self) -> None:
        self._parts: list[str] = []
        self._length = 0

    def write(self, s: str) -> None:
        room = OUT_MAX - 1 - self._length
        if room <= 0:
            return
        s = s[:room]
        self._parts.append(s)
        self._length += len(s)

    def text(self) -> str:
        return "".join(self._parts)


def _no_key() -> None:
    raise EOFError("no key waiting")


class Shell:
    """Interprets command lines against the data disk and the initial ramdisk.

    ``output`` receives console text (echo and application output),
    ``getch`` supplies key codes (None when no key waits) and ``idle`` is
    called while an application waits for a key. ``programs`` maps an
    executable's file name, lower case and without ``.elf``, to the code
    that runs once its image has been loaded.
    """

    def __init__(
        self,
        disk: Disk | None = None,
        vfs: TarVfs | None = None,
        output: Callable[[str], None] | None = None,
        getch: Callable[[], "int | None"] | None = None,
        idle: Callable[[], None] | None = None,
        programs: Mapping[str, Program] | None = None,
    ) -> None:
        self.disk = disk if disk is not None else Disk()
        self.vfs = vfs
        self.keyboard = Keyboard()
        self._output = output if output is not None else sys.stdout.write
        self.programs = dict(DEFAULT_PROGRAMS if programs is None else programs)
        self.cwd = "/"
        self._line: list[str] = []
        self._api = AppApi(
            putc=self._output,
            puts=self._output,
            getch=getch if getch is not None else self.keyboard.getch,
            write_file=self._write_file,
            idle=idle if idle is not None else _no_key,
        )

    # -- helpers --------------------------------------------------------

    def _set_cwd(self, path: str) -> None:
        self.cwd = path[:PATH_CAP] or "/"

    def _write_file(self, path: str, data: bytes) -> None:
        self.disk.write_app_file(path, data)

    def _read_file(self, abs_path: str) -> bytes | None:
        sub = disk_subpath(abs_path)
        if sub is not None:
            if not self.disk.mounted:
                return None
            parts: list[bytes] = []
            got = 0
            try:
                for chunk in read_stream_path(self.disk.fs, sub):
                    got += len(chunk)
                    if got > ELF_SLAB_SIZE:
                        return None
                    parts.append(chunk)
            except Fat32Error:
                return None
            return b"".join(parts)
        if self.vfs is None:
            return None
        try:
            data = bytes(self.vfs.read(abs_path))
        except VfsError:
            return None
        return data if len(data) <= ELF_SLAB_SIZE else None

    def _exec(self, image: bytes, path: str, arg: str | None) -> str:
        try:
            load_elf(image)
        except ElfLoadError as exc:
            return "exec error " + _hex64(exc.code)
        program = self.programs.get(_program_key(path))
        if program is None:
            return "exec error " + _hex64(NO_PROGRAM)
        return _exit_text(program(self._api, arg))

    def _try_run(self, name: str, rest: str | None) -> str | None:
        candidates = [_force_disk_abs(path_resolve(self.cwd, name))]
        if "/" not in name:
            candidates += [("/disk/BIN/" + name)[:PATH_CAP], ("/bin/" + name)[:PATH_CAP]]
        for path in candidates:
            image = self._read_file(path)
            if image is not None:
                return self._exec(image, path, rest)
        return None

    # -- commands -------------------------------------------------------

    def _cd(self, arg: str | None) -> str:
        if not self.disk.mounted:
            return NOT_MOUNTED
        target = _force_disk_abs(path_resolve(self.cwd, _trim_arg(arg) or "/"))
        sub = disk_subpath(target)
        log.debug("cd abs=%s sub=%s", target, sub)
        if sub is None:
            return NOT_FOUND
        if sub.startswith("/"):
            sub = sub[1:]
        if not sub:
            self._set_cwd("/disk")
            return PROMPT
        if is_dir_path(self.disk.fs, sub):
            self._set_cwd(target)
            return PROMPT
        return NOT_FOUND

    def _ls(self, arg: str | None) -> str:
        if not self.disk.mounted:
            return NOT_MOUNTED
        wanted = _trim_arg(arg)
        abs_path = path_resolve(self.cwd, wanted) if wanted else self.cwd
        sub = disk_subpath(_force_disk_abs(abs_path))
        if sub is None:
            return NOT_FOUND
        sub = sub.lstrip("/")
        out = _Output()
        for candidate in _list_candidates(sub):
            try:
                entries = list_path(self.disk.fs, candidate)
            except Fat32Error:
                continue
            for entry in entries:
                if entry.is_dir:
                    out.write(entry.name + "/\n")
                else:
                    out.write(f"{entry.name} {_hex64(entry.size)}\n")
            out.write(PROMPT)
            return out.text()
        return NOT_FOUND

    def _cat(self, arg: str | None) -> str:
        if not arg:
            return "usage: cat PATH\n> "
        out = _Output()
        s = _trim_arg(arg)
        if not self.disk.mounted:
            return NOT_MOUNTED
        if s.startswith("/disk"):
            s = s[5:]
            if s.startswith("/"):
                s = s[1:]
        elif s.startswith("/"):
            s = s[1:]
        reader = read_stream_path if "/" in s else read_stream_root83
        try:
            for chunk in reader(self.disk.fs, s or "/"):
                out.write(chunk.decode("latin-1"))
        except Fat32Error:
            out.write(NOT_FOUND)
            return out.text()
        out.write("\n" + PROMPT)
        return out.text()

    def _run(self, arg: str | None) -> str:
        if not arg:
            return "usage: run PATH [arg]\n> "
        resolved = path_resolve(self.cwd, arg)
        rest = after_first_space(resolved)
        path = first_word(resolved)
        image = self._read_file(path)
        if image is None:
            return NOT_FOUND
        return self._exec(image, path, rest)

    def response(self, command: str, arg: str | None) -> str:
        """Return the reply to ``command`` with its argument text ``arg``."""
        if compare_literal(command, "pwd"):
            return self.cwd + "\n" + PROMPT
        if compare_literal(command, "cd"):
            return self._cd(arg)
        if compare_literal(command, "ls"):
            return self._ls(arg)
        if compare_literal(command, "cat"):
            return self._cat(arg)
        if compare_literal(command, "run"):
            return self._run(arg)
        if compare_literal(command, "echo"):
            return arg if arg else "\n"
        if compare_literal(command, "shutdown"):
            return "shutting down\n"
        if compare_literal(command, "help"):
            return HELP_TEXT
        ran = self._try_run(command, arg)
        return ran if ran is not None else UNKNOWN

    def execute(self, line: str) -> str:
        """Split ``line`` into a command and its arguments and answer it."""
        return self.response(first_word(line), after_first_space(line))

    def feed_key(self, ch: int | None) -> str | None:
        """Edit the input line with one key; return the reply once a line is entered."""
        if ch in (8, 127):
            if self._line:
                self._line.pop()
                self._output("\b")
            return None
        if ch is None or ch < 0:
            return None
        if ch in (ord("\r"), ord("\n")):
            self._output("\n")
            line = "".join(self._line)
            self._line.clear()
            reply = self.execute(line)
            log.debug("%s", reply)
            self._output(reply)
            self._output("\n" + PROMPT)
            return reply
        if len(self._line) < LINE_MAX - 1:
            self._line.append(chr(ch))
            self._output(chr(ch))
        return None


def _stdin_key() -> int:
    c = sys.stdin.read(1)
    return ord(c) if c else 27


def main(argv: list[str] | None = None) -> int:
    """Run the shell on standard input, optionally with a disk image and a ramdisk."""
    parser = argparse.ArgumentParser(prog="wiltos", description="Interactive command shell.")
    parser.add_argument("image", nargs="?", help="raw disk image holding a FAT32 partition")
    parser.add_argument("--initrd", help="ustar archive mounted as the ramdisk")
    args = parser.parse_args(argv)

    disk = Disk()
    if args.image:
        with open(args.image, "rb") as handle:
            disk = Disk.setup(MemoryBlockDevice(image=handle.read()))
    vfs = None
    if args.initrd:
        vfs = TarVfs()
        with open(args.initrd, "rb") as handle:
            vfs.mount_tar(handle.read())

    def out(s: str) -> None:
        sys.stdout.write(s)
        sys.stdout.flush()

    shell = Shell(disk=disk, vfs=vfs, output=out, getch=_stdin_key)
    out(PROMPT)
    while True:
        line = sys.stdin.readline()
        if not line:
            out("\n")
            return 0
        out(shell.execute(line.rstrip("\r\n")[:LINE_MAX - 1]))
        out("\n" + PROMPT)


if __name__ == "__main__":
    sys.exit(main())