"""Minimal formatted output understanding %d, %l, %x, %p, %s, %c and %%."""

import sys

_MISSING = object()
_UINT32 = 0xFFFFFFFF
_UINT64 = 0xFFFFFFFFFFFFFFFF


def _integer(value, base, signed):
    x = int(value) & _UINT32
    if signed and x & 0x80000000:
        x -= 1 << 32
    if base == 10:
        return str(x)
    return format(x, "X")


def _char(value):
    if isinstance(value, str):
        return value[:1]
    return chr(int(value) & 0xFF)


def render(fmt, *args):
    """Return the text that formatting ``fmt`` with ``args`` produces."""
    pieces = []
    remaining = iter(args)

    def take():
        value = next(remaining, _MISSING)
        if value is _MISSING:
            raise TypeError("not enough arguments for format")
        return value

    in_directive = False
    for c in fmt:
        if not in_directive:
            if c == "%":
                in_directive = True
            else:
                pieces.append(c)
            continue
        in_directive = False
        if c == "d":
            pieces.append(_integer(take(), 10, signed=True))
        elif c == "l":
            pieces.append(_integer(take(), 10, signed=False))
        elif c == "x":
            pieces.append(_integer(take(), 16, signed=False))
        elif c == "p":
            pieces.append("0x" + format(int(take()) & _UINT64, "016X"))
        elif c == "s":
            value = take()
            if value is None:
                value = "(null)"
            elif isinstance(value, bytes):
                value = value.decode("utf-8", "replace")
            pieces.append(str(value))
        elif c == "c":
            pieces.append(_char(take()))
        elif c == "%":
            pieces.append("%")
        else:
            # Unknown directive: print it to draw attention.
            pieces.append("%" + c)
    return "".join(pieces)


def fprintf(stream, fmt, *args):
    """Format and write to a text stream."""
    stream.write(render(fmt, *args))


def printf(fmt, *args):
    """Format and write to standard output."""
    fprintf(sys.stdout, fmt, *args)