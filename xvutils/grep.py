"""Simple grep supporting only the ^ . * $ operators."""

import sys

from .printf import fprintf, printf

_BUFSIZE = 1024


def _matchhere(re, ri, text, ti):
    while True:
        if ri == len(re):
            return True
        if ri + 1 < len(re) and re[ri + 1] == "*":
            return _matchstar(re[ri], re, ri + 2, text, ti)
        if re[ri] == "$" and ri + 1 == len(re):
            return ti == len(text)
        if ti < len(text) and (re[ri] == "." or re[ri] == text[ti]):
            ri += 1
            ti += 1
            continue
        return False


def _matchstar(c, re, ri, text, ti):
    while True:
        if _matchhere(re, ri, text, ti):
            return True
        if ti >= len(text) or not (text[ti] == c or c == "."):
            return False
        ti += 1


def match(re, text):
    """Return True if ``re`` matches anywhere in ``text``."""
    if re.startswith("^"):
        return _matchhere(re, 1, text, 0)
    return any(_matchhere(re, 0, text, start) for start in range(len(text) + 1))


def grep(pattern, stream, out):
    """Write each complete line of ``stream`` that matches ``pattern`` to ``out``."""
    pending = ""
    while True:
        room = _BUFSIZE - 1 - len(pending)
        chunk = stream.read(room) if room > 0 else ""
        if not chunk:
            break
        pending += chunk
        *lines, pending = pending.split("\n")
        for line in lines:
            if match(pattern, line):
                out.write(line + "\n")


def main(argv=None):
    if argv is None:
        argv = sys.argv[1:]
    if not argv:
        fprintf(sys.stderr, "usage: grep pattern [file ...]\n")
        return 1
    pattern, paths = argv[0], argv[1:]
    if not paths:
        grep(pattern, sys.stdin, sys.stdout)
        return 0
    for path in paths:
        try:
            stream = open(path, encoding="utf-8", errors="surrogateescape", newline="")
        except OSError:
            printf("grep: cannot open %s\n", path)
            return 1
        with stream:
            grep(pattern, stream, sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main())