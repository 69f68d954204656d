"""Small string and input helpers."""


def _as_bytes(s):
    if isinstance(s, str):
        s = s.encode("utf-8")
    end = s.find(b"\0")
    return s if end < 0 else s[:end]


def atoi(s):
    """Parse leading decimal digits; anything else ends the number."""
    n = 0
    for c in s:
        if not "0" <= c <= "9":
            break
        n = n * 10 + ord(c) - ord("0")
    n &= 0xFFFFFFFF
    return n - (1 << 32) if n & 0x80000000 else n


def strcmp(p, q):
    """Compare two NUL-terminated strings, returning the byte difference."""
    a, b = _as_bytes(p), _as_bytes(q)
    for x, y in zip(a, b):
        if x != y:
            return x - y
    if len(a) == len(b):
        return 0
    return (a[len(b)] if len(a) > len(b) else 0) - (b[len(a)] if len(b) > len(a) else 0)


def memcmp(a, b, n):
    """Compare the first ``n`` bytes of two buffers as unsigned bytes."""
    for x, y in zip(bytes(a[:n]), bytes(b[:n])):
        if x != y:
            return x - y
    return 0


def read_line(stream, max):
    """Read at most ``max - 1`` characters, stopping after a newline or carriage return."""
    chars = []
    while len(chars) + 1 < max:
        c = stream.read(1)
        if not c:
            break
        chars.append(c)
        if c in ("\n", "\r", b"\n", b"\r"):
            break
    if chars and isinstance(chars[0], bytes):
        return b"".join(chars)
    return "".join(chars)