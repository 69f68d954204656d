"""Park-Miller minimal standard pseudo-random generator."""

_MASK64 = 0xFFFFFFFFFFFFFFFF


def do_rand(ctx):
    """Advance the state ``ctx`` and return the new state, which is also the result."""
    x = (ctx & _MASK64) % 0x7FFFFFFE + 1
    hi, lo = divmod(x, 127773)
    x = 16807 * lo - 2836 * hi
    if x < 0:
        x += 0x7FFFFFFF
    return x - 1


class ParkMiller:
    """Stateful generator producing values in [0, 0x7ffffffd]."""

    def __init__(self, seed=1):
        self.state = seed & _MASK64

    def next(self):
        self.state = do_rand(self.state)
        return self.state

    def __iter__(self):
        return self

    def __next__(self):
        return self.next()