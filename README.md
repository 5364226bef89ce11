# wiltos

The storage, console and shell layers of a small hobby operating system as
plain Python that runs anywhere. Disks are modelled as block devices held in
memory, and everything else (framebuffer, keyboard, physical pages, heap) is
simulated as well.

## Modules

- `wiltos.strhelper` – small string helpers used by the shell
  (`first_word`, `after_first_space`, `trim`, `has_text`, …).
- `wiltos.paths` – resolving a path against a working directory
  (`path_resolve`) and mapping `/disk/...` paths onto the data disk
  (`disk_subpath`).
- `wiltos.block` – sector-addressed devices: `BlockDevice` driven by read and
  write callables, `MemoryBlockDevice` backed by a `bytearray`, and a default
  device registry (`register`, `get_default`). Failures raise `BlockError`.
- `wiltos.part` – `find_fat32_partition` returns the first FAT32 entry
  (type `0x0B` or `0x0C`) of an MBR as a `Partition`, or raises
  `PartitionError`.
- `wiltos.fat32` – `Fat32.mount` reads a boot sector and checks that the
  volume really is FAT32. A mounted `Fat32` reads allocation-table entries
  (`fat_get`), lists the root directory (`list_root`, giving `DirListing`
  items), reads root files as sector chunks (`read_stream`) or whole
  (`read_all`) and creates or replaces root files (`write_all_root`).
  Errors raise `Fat32Error`.
- `wiltos.fat32_path` – path-based access: `is_dir_path`, `list_path`,
  `read_stream_path`, `read_stream_root83` (case-insensitive 8.3 match in the
  root) and `write_file_path` (parent directories must already exist).
- `wiltos.vfs` – `TarVfs`, an in-memory tree filled from a ustar archive with
  `mount_tar`, with `lookup`, `list`, `read`, `write`, their `*_at` variants
  relative to a `VNode`, and a working directory (`chdir`, `getcwd`,
  `set_cwd`). Errors raise `VfsError`.
- `wiltos.framebuffer` – `FramebufferConsole`, a scrolling text console that
  draws a 5×7 font into a 32-bit pixel buffer (`putc`, `write`, `hex64`,
  `pixel`, `cell_metrics`, …).
- `wiltos.keyboard` – `Keyboard` decodes PS/2 set-1 scancodes given to
  `feed_scancode` into a queue read with `getch`.
- `wiltos.pmm` – `PhysicalMemoryManager`, a page allocator built from a list
  of `MemmapEntry` ranges.
- `wiltos.kmem` – `KernelHeap`, a first-fit heap with a coalescing free list;
  it hands out addresses, not memory.
- `wiltos.elfexec` – `load_elf` checks a static position-independent x86-64
  ELF image, lays out its segments and applies its relative relocations,
  returning a `LoadedImage`; a rejected image raises `ElfLoadError` with a
  numeric `code`. `AppApi` is the set of services handed to applications.
- `wiltos.apps` – the two bundled applications, `hello_main` and `edit_main`.
- `wiltos.disk` – `Disk.setup` registers a device and mounts its first FAT32
  partition (an unusable device gives an unmounted `Disk`);
  `write_app_file` saves application output below `/disk`.
- `wiltos.shell` – `Shell`, the command interpreter, and `main`, the
  command-line entry point.

## Installing

```
pip install .
```

## Using the library

```python
from wiltos.paths import path_resolve, disk_subpath

path_resolve("/disk/BIN", "../DOCS/./A.TXT")   # '/disk/DOCS/A.TXT'
disk_subpath("/disk/DOCS/A.TXT")               # 'DOCS/A.TXT'
```

```python
import io, tarfile
from wiltos.vfs import TarVfs

buf = io.BytesIO()
with tarfile.open(fileobj=buf, mode="w", format=tarfile.USTAR_FORMAT) as tar:
    info = tarfile.TarInfo("bin/hello")
    info.size = 5
    tar.addfile(info, io.BytesIO(b"hello"))

vfs = TarVfs()
vfs.mount_tar(buf.getvalue())
vfs.read("/bin/hello")                         # b'hello'
```

```python
from wiltos.shell import Shell

shell = Shell()
print(shell.execute("help"))
print(shell.execute("echo hi"))                # hi
```

## The shell

The `wiltos` command starts an interactive shell that reads one command per
line from standard input:

```
wiltos [IMAGE] [--initrd ARCHIVE]
```

`IMAGE` is a raw disk image with an MBR and a FAT32 partition, mounted as
`/disk`; `--initrd` names a ustar archive used as the ramdisk. The shell
understands `echo`, `help`, `pwd`, `cd`, `ls`, `cat`, `run` and `shutdown`,
and treats any other word as the name of a program to run from the current
directory, `/disk/BIN` or `/bin`. The disk commands answer
`disk not mounted` when no FAT32 disk is present.

## What it does not do

- It never executes machine code. `run` reads an ELF file and checks it with
  `load_elf`; if the image is accepted, the program that actually runs is the
  Python function registered in `Shell.programs` under the file's name
  (lower case, without `.elf`). By default these are `hello` and `edit`.
  Any other accepted image reports `exec error` with code `-13`.
- There are no hardware drivers, interrupts, timers, serial output or boot
  process: devices are `BlockDevice` objects, the framebuffer and keyboard
  are in-memory models, and `shutdown` only prints `shutting down`.
- `KernelHeap` and `PhysicalMemoryManager` track addresses only; they do not
  provide storage.

## Running the tests

```
pip install .[test]
pytest
```