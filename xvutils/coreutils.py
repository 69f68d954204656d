"""Small file utilities: cat, echo, ls, ln, mkdir, rm and kill."""

import os
import signal
import stat
import sys
from enum import IntEnum

from .printf import fprintf, printf, render
from .ulib import atoi

DIRSIZ = 14
_PATH_BUFSIZE = 512
_CHUNK = 512


class FileType(IntEnum):
    DIR = 1
    FILE = 2
    DEVICE = 3


def _file_type(mode):
    if stat.S_ISDIR(mode):
        return FileType.DIR
    if stat.S_ISREG(mode):
        return FileType.FILE
    return FileType.DEVICE


def echo(args, out):
    """Write the arguments separated by spaces and ended by a newline."""
    if args:
        out.write(" ".join(args) + "\n")


def cat(stream, out):
    """Copy a binary stream to ``out``; raise OSError on read or write failure."""
    while True:
        try:
            chunk = stream.read(_CHUNK)
        except OSError as exc:
            raise OSError("cat: read error") from exc
        if not chunk:
            return
        try:
            written = out.write(chunk)
        except OSError as exc:
            raise OSError("cat: write error") from exc
        if written is not None and written != len(chunk):
            raise OSError("cat: write error")


def fmtname(path):
    """Return the last path component, blank-padded to the directory name size."""
    name = path[path.rfind("/") + 1:]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


def ls(path, out):
    """List a file or the entries of a directory."""
    try:
        st = os.stat(path)
    except OSError:
        fprintf(sys.stderr, "ls: cannot open %s\n", path)
        return
    kind = _file_type(st.st_mode)
    if kind is FileType.FILE:
        out.write(render("%s %d %d %l\n", fmtname(path), kind, st.st_ino, st.st_size))
    elif kind is FileType.DIR:
        if len(path) + 1 + DIRSIZ + 1 > _PATH_BUFSIZE:
            out.write(render("ls: path too long\n"))
            return
        try:
            names = [".", ".."] + sorted(os.listdir(path))
        except OSError:
            fprintf(sys.stderr, "ls: cannot open %s\n", path)
            return
        for name in names:
            entry = path + "/" + name
            try:
                est = os.stat(entry)
            except OSError:
                out.write(render("ls: cannot stat %s\n", entry))
                continue
            out.write(
                render("%s %d %d %d\n", fmtname(entry), _file_type(est.st_mode), est.st_ino, est.st_size)
            )


def _args(argv):
    return sys.argv[1:] if argv is None else argv


def cat_main(argv=None):
    argv = _args(argv)
    try:
        if not argv:
            cat(sys.stdin.buffer, sys.stdout.buffer)
            return 0
        for path in argv:
            try:
                stream = open(path, "rb")
            except OSError:
                fprintf(sys.stderr, "cat: cannot open %s\n", path)
                return 1
            with stream:
                cat(stream, sys.stdout.buffer)
    except OSError as exc:
        fprintf(sys.stderr, "%s\n", str(exc))
        return 1
    return 0


def echo_main(argv=None):
    echo(_args(argv), sys.stdout)
    return 0


def ls_main(argv=None):
    argv = _args(argv)
    for path in argv or ["."]:
        ls(path, sys.stdout)
    return 0


def ln_main(argv=None):
    argv = _args(argv)
    if len(argv) != 2:
        fprintf(sys.stderr, "Usage: ln old new\n")
        return 1
    old, new = argv
    try:
        os.link(old, new)
    except OSError:
        fprintf(sys.stderr, "link %s %s: failed\n", old, new)
    return 0


def mkdir_main(argv=None):
    argv = _args(argv)
    if not argv:
        fprintf(sys.stderr, "Usage: mkdir files...\n")
        return 1
    for path in argv:
        try:
            os.mkdir(path)
        except OSError:
            fprintf(sys.stderr, "mkdir: %s failed to create\n", path)
            break
    return 0


def rm_main(argv=None):
    argv = _args(argv)
    if not argv:
        fprintf(sys.stderr, "Usage: rm files...\n")
        return 1
    for path in argv:
        try:
            if os.path.isdir(path) and not os.path.islink(path):
                os.rmdir(path)
            else:
                os.unlink(path)
        except OSError:
            fprintf(sys.stderr, "rm: %s failed to delete\n", path)
            break
    return 0


def kill_main(argv=None):
    argv = _args(argv)
    if not argv:
        fprintf(sys.stderr, "usage: kill pid...\n")
        return 1
    sig = getattr(signal, "SIGKILL", signal.SIGTERM)
    for arg in argv:
        pid = atoi(arg)
        if pid <= 0:
            continue
        try:
            os.kill(pid, sig)
        except OSError:
            pass
    return 0


def _print_usage_error(message):
    printf("%s\n", message)