"""Command shell: parses pipelines, lists, redirections and background
commands, and runs them with the package's own utilities."""

import io
import os
import sys
from contextlib import contextmanager, redirect_stderr, redirect_stdout
from dataclasses import dataclass, field
from enum import Enum

from . import coreutils, grep, wc
from .printf import fprintf
from .ulib import read_line

MAXARGS = 10
WHITESPACE = " \t\r\n\v"
SYMBOLS = "<|>&;()"
_LINE_MAX = 100


class ShellSyntaxError(Exception):
    """A command line that cannot be parsed."""

    def __init__(self, message, leftovers=None):
        super().__init__(message)
        self.message = message
        self.leftovers = leftovers


class OpenMode(Enum):
    """How a redirection opens its file."""

    READ = "<"
    WRITE = ">"
    # Writes from the start of the file without truncating it.
    APPEND = ">>"


@dataclass
class ExecCmd:
    argv: list = field(default_factory=list)


@dataclass
class RedirCmd:
    cmd: object
    file: str
    mode: OpenMode
    fd: int


@dataclass
class PipeCmd:
    left: object
    right: object


@dataclass
class ListCmd:
    left: object
    right: object


@dataclass
class BackCmd:
    cmd: object


_REDIRECTIONS = {
    "<": (OpenMode.READ, 0),
    ">": (OpenMode.WRITE, 1),
    "+": (OpenMode.APPEND, 1),
}


def _skip_space(text, pos):
    while pos < len(text) and text[pos] in WHITESPACE:
        pos += 1
    return pos


def gettoken(text, pos):
    """Read one token at ``pos``.

    Returns ``(kind, word, next_pos)``: ``kind`` is a symbol character,
    ``"+"`` for ``>>``, ``"a"`` for a word, or ``""`` at the end of input.
    Whitespace after the token is skipped.
    """
    pos = _skip_space(text, pos)
    start = pos
    if pos >= len(text) or text[pos] == "\0":
        kind = ""
    else:
        c = text[pos]
        if c in "|();&<":
            kind = c
            pos += 1
        elif c == ">":
            pos += 1
            kind = ">"
            if pos < len(text) and text[pos] == ">":
                kind = "+"
                pos += 1
        else:
            kind = "a"
            while pos < len(text) and text[pos] not in WHITESPACE and text[pos] not in SYMBOLS:
                pos += 1
    word = text[start:pos]
    return kind, word, _skip_space(text, pos)


def _peek(text, pos, toks):
    pos = _skip_space(text, pos)
    hit = pos < len(text) and text[pos] != "\0" and text[pos] in toks
    return pos, hit


def _parse_line(text, pos):
    cmd, pos = _parse_pipe(text, pos)
    while True:
        pos, hit = _peek(text, pos, "&")
        if not hit:
            break
        _, _, pos = gettoken(text, pos)
        cmd = BackCmd(cmd)
    pos, hit = _peek(text, pos, ";")
    if hit:
        _, _, pos = gettoken(text, pos)
        right, pos = _parse_line(text, pos)
        cmd = ListCmd(cmd, right)
    return cmd, pos


def _parse_pipe(text, pos):
    cmd, pos = _parse_exec(text, pos)
    pos, hit = _peek(text, pos, "|")
    if hit:
        _, _, pos = gettoken(text, pos)
        right, pos = _parse_pipe(text, pos)
        cmd = PipeCmd(cmd, right)
    return cmd, pos


def _parse_redirs(cmd, text, pos):
    while True:
        pos, hit = _peek(text, pos, "<>")
        if not hit:
            return cmd, pos
        tok, _, pos = gettoken(text, pos)
        kind, word, pos = gettoken(text, pos)
        if kind != "a":
            raise ShellSyntaxError("missing file for redirection")
        mode, fd = _REDIRECTIONS[tok]
        cmd = RedirCmd(cmd, word, mode, fd)


def _parse_block(text, pos):
    pos, hit = _peek(text, pos, "(")
    if not hit:
        raise ShellSyntaxError("parseblock")
    _, _, pos = gettoken(text, pos)
    cmd, pos = _parse_line(text, pos)
    pos, hit = _peek(text, pos, ")")
    if not hit:
        raise ShellSyntaxError("syntax - missing )")
    _, _, pos = gettoken(text, pos)
    return _parse_redirs(cmd, text, pos)


def _parse_exec(text, pos):
    pos, hit = _peek(text, pos, "(")
    if hit:
        return _parse_block(text, pos)
    exec_cmd = ExecCmd()
    ret, pos = _parse_redirs(exec_cmd, text, pos)
    while True:
        pos, hit = _peek(text, pos, "|)&;")
        if hit:
            break
        kind, word, pos = gettoken(text, pos)
        if kind == "":
            break
        if kind != "a":
            raise ShellSyntaxError("syntax")
        exec_cmd.argv.append(word)
        if len(exec_cmd.argv) >= MAXARGS:
            raise ShellSyntaxError("too many args")
        ret, pos = _parse_redirs(ret, text, pos)
    return ret, pos


def parse_command(s):
    """Parse a whole command line into a command tree."""
    cmd, pos = _parse_line(s, 0)
    pos, _ = _peek(s, pos, "")
    if pos != len(s):
        raise ShellSyntaxError("syntax", leftovers=s[pos:])
    return cmd


_PROGRAMS = {
    "cat": coreutils.cat_main,
    "echo": coreutils.echo_main,
    "ls": coreutils.ls_main,
    "ln": coreutils.ln_main,
    "mkdir": coreutils.mkdir_main,
    "rm": coreutils.rm_main,
    "kill": coreutils.kill_main,
    "grep": grep.main,
    "wc": wc.main,
}


def _text(raw):
    return io.TextIOWrapper(
        raw, encoding="utf-8", errors="surrogateescape", newline="", write_through=True
    )


def _open_redirect(path, mode):
    if mode is OpenMode.READ:
        raw = open(path, "rb")
    elif mode is OpenMode.WRITE:
        raw = open(path, "wb")
    else:
        raw = os.fdopen(os.open(path, os.O_WRONLY | os.O_CREAT, 0o666), "wb")
    return _text(raw)


@contextmanager
def _bound(streams):
    saved = sys.stdin
    sys.stdin = streams[0]
    try:
        with redirect_stdout(streams[1]), redirect_stderr(streams[2]):
            yield
    finally:
        sys.stdin = saved


def _exec(argv, streams):
    program = _PROGRAMS.get(argv[0].rsplit("/", 1)[-1])
    if program is None:
        fprintf(streams[2], "exec %s failed\n", argv[0])
        return
    streams[1].flush()
    with _bound(streams):
        program(list(argv[1:]))
    streams[1].flush()


def _run(cmd, streams):
    if isinstance(cmd, ExecCmd):
        if cmd.argv:
            _exec(cmd.argv, streams)
    elif isinstance(cmd, RedirCmd):
        try:
            stream = _open_redirect(cmd.file, cmd.mode)
        except OSError:
            fprintf(streams[2], "open %s failed\n", cmd.file)
            return
        with stream:
            bound = list(streams)
            bound[cmd.fd] = stream
            _run(cmd.cmd, tuple(bound))
    elif isinstance(cmd, ListCmd):
        _run(cmd.left, streams)
        _run(cmd.right, streams)
    elif isinstance(cmd, PipeCmd):
        sink = _text(io.BytesIO())
        _run(cmd.left, (streams[0], sink, streams[2]))
        sink.flush()
        source = _text(io.BytesIO(sink.buffer.getvalue()))
        _run(cmd.right, (source, streams[1], streams[2]))
    elif isinstance(cmd, BackCmd):
        _run(cmd.cmd, streams)
    else:
        raise TypeError(f"not a command: {cmd!r}")


def main(argv=None):
    """Read command lines from standard input and run them until end of input."""
    while True:
        fprintf(sys.stderr, "$ ")
        line = read_line(sys.stdin, _LINE_MAX)
        if not line or line[0] == "\0":
            break
        if line.startswith("cd "):
            target = line[3:-1]
            try:
                os.chdir(target)
            except OSError:
                fprintf(sys.stderr, "cannot cd %s\n", target)
            continue
        try:
            cmd = parse_command(line)
        except ShellSyntaxError as exc:
            if exc.leftovers is not None:
                fprintf(sys.stderr, "leftovers: %s\n", exc.leftovers)
            fprintf(sys.stderr, "%s\n", exc.message)
            continue
        _run(cmd, (sys.stdin, sys.stdout, sys.stderr))
    return 0


if __name__ == "__main__":
    sys.exit(main())