"""Count lines, words and bytes."""

import sys
from dataclasses import dataclass

from .printf import printf

_SEPARATORS = b" \r\t\n\v\0"


@dataclass(frozen=True)
class Counts:
    lines: int = 0
    words: int = 0
    chars: int = 0


def count(stream):
    """Count lines, words and bytes read from a binary stream."""
    lines = words = chars = 0
    in_word = False
    for chunk in iter(lambda: stream.read(512), b""):
        chars += len(chunk)
        lines += chunk.count(b"\n")
        for byte in chunk:
            if byte in _SEPARATORS:
                in_word = False
            elif not in_word:
                words += 1
                in_word = True
    return Counts(lines, words, chars)


def _report(counts, name):
    printf("%d %d %d %s\n", counts.lines, counts.words, counts.chars, name)


def main(argv=None):
    if argv is None:
        argv = sys.argv[1:]
    if not argv:
        try:
            _report(count(sys.stdin.buffer), "")
        except OSError:
            printf("wc: read error\n")
            return 1
        return 0
    for path in argv:
        try:
            stream = open(path, "rb")
        except OSError:
            printf("wc: cannot open %s\n", path)
            return 1
        with stream:
            try:
                counts = count(stream)
            except OSError:
                printf("wc: read error\n")
                return 1
        _report(counts, path)
    return 0


if __name__ == "__main__":
    sys.exit(main())