"""Formatting of traced system-call invocations and results."""

from .printf import render

USAGE = "Trace system calls in a process.\nusage: trace <program> [arguments]\n"

_FORMATS = {
    "fork": "fork()",
    "exit": "exit()\n",
    "wait": "wait(%p)",
    "pipe": "pipe(%p)",
    "read": "read(%d, %p, %d)",
    "kill": "kill(%d)",
    "exec": "exec(%p, %p)",
    "fstat": "fstat(%d, %p)",
    "chdir": "chdir(%p)",
    "dup": "dup(%d)",
    "getpid": "getpid()",
    "sbrk": "sbrk()",
    "sleep": "sleep(%d)",
    "uptime": "uptime()",
    "open": "open(%p, %d)",
    "write": "write(%d, %p, %d)",
    "mknod": "mknod(%p, %d, %d)",
    "unlink": "unlink(%p)",
    "link": "link(%p, %p)",
    "mkdir": "mkdir(%p)",
    "close": "close(%d)",
    "ptrace": "ptrace(%d, %d, %p, %p)",
    "waitpid": "waitpid(%d, %p, %d)",
}

SYSCALLS = tuple(_FORMATS)


def format_invocation(name, args):
    """Describe a system call entry from its name and raw argument registers."""
    fmt = _FORMATS.get(name)
    if fmt is None:
        if isinstance(name, int):
            return render("<unknown syscall %d>()", name)
        return render("<unknown syscall %s>()", name)
    return render(fmt, *args)


def format_exit(rval):
    """Describe a system call's return value."""
    return render(" = %d\n", rval)


def usage():
    """Return the usage text."""
    return USAGE