# xvutils

A small collection of the user programs and tools of a minimal Unix-like
teaching operating system, as an ordinary Python package:

- the classic command-line tools (`cat`, `echo`, `ls`, `ln`, `mkdir`, `rm`,
  `kill`, `wc`) and a tiny `grep` that understands only `^`, `.`, `*` and `$`;
- a minimal shell with pipes, lists, background markers and redirections;
- a builder for the system's on-disk file-system image;
- a model of three-level Sv39 page tables over simulated physical memory;
- the first-fit free-list allocator used by user programs;
- the little `printf` that understands `%d`, `%l`, `%x`, `%p`, `%s`, `%c`
  and `%%`;
- formatting of system-call trace lines, and the virtio block-device
  register offsets and ring structures with byte packing.

## Installation

```
pip install .
```

Python 3.10 or later is required; there are no runtime dependencies.

## Commands

Installing the package puts these commands on your path:

| Command     | What it does                                                  |
|-------------|---------------------------------------------------------------|
| `xv-cat`    | copy files (or standard input) to standard output             |
| `xv-echo`   | print its arguments separated by spaces                       |
| `xv-grep`   | print lines matching a simple pattern                         |
| `xv-wc`     | count lines, words and bytes                                  |
| `xv-ls`     | list a file, or `.`, `..` and the sorted entries of a directory |
| `xv-ln`     | make a hard link: `xv-ln old new`                             |
| `xv-mkdir`  | create directories, stopping at the first failure             |
| `xv-rm`     | remove files (and empty directories), stopping at the first failure |
| `xv-kill`   | send a kill signal to each pid given                          |
| `xv-sh`     | run the minimal shell on standard input                       |
| `xv-mkfs`   | build a file-system image from a list of files                |

Examples:

```
xv-echo hello world
xv-grep '^in.*t$' notes.txt
xv-wc notes.txt
xv-mkfs fs.img README _cat _echo _ls
```

`xv-mkfs` places every file in the root directory of the image. A leading
`user/` on a name is dropped, and so is a leading underscore, so `_cat`
becomes `cat` inside the image. The layout (1000 blocks of 1024 bytes,
200 inodes, a 30-block log) is described by `xvutils.mkfs.FsLayout`;
`make_image(path, files, layout)` builds an image from Python.

## Library use

```python
from xvutils.printf import render
from xvutils.grep import match
from xvutils.sh import parse_command

render("%d %x %s", -42, 255, "hi")   # '-42 FF hi'
match("^a.c$", "abc")                # True
parse_command("echo hi | wc")        # PipeCmd(ExecCmd(['echo', 'hi']), ExecCmd(['wc']))
```

Malformed command lines raise `xvutils.sh.ShellSyntaxError`.

The page-table model lives in `xvutils.vm`: `PhysicalMemory` hands out
page-sized frames with `kalloc` / `kfree`, and `PageTables` provides
`walk`, `walkaddr`, `mappages`, `uvmalloc`, `uvmdealloc`, `uvmcopy`,
`uvmfree`, `copyin`, `copyout`, `copyinstr` and friends. Conditions that
would stop the real kernel raise `KernelPanic`; running out of pages raises
`MemoryError`, and a bad user address raises `ValueError`.

`xvutils.umalloc.Allocator` reproduces the free-list allocator with
`malloc`, `free` and `sbrk` over a simulated program break, and
`xvutils.rand.ParkMiller` is the Park–Miller "minimal standard" generator.

## What it does not do

- There is no kernel and no process model here. The shell does not start
  other programs: a command name must be one of the package's own tools
  (`cat`, `echo`, `ls`, `ln`, `mkdir`, `rm`, `kill`, `grep`, `wc`), and
  anything else prints `exec NAME failed`. Pipeline stages run one after
  another, and commands marked with `&` run in the foreground.
- `xvutils.trace` only formats trace lines (`format_invocation`,
  `format_exit`, `usage`); it does not attach to or trace processes.
- `xvutils.virtio` describes the device's data structures; it does not
  talk to a device.

## Running the tests

```
pip install .[test]
pytest
```