"""Build a file system image holding a root directory and a set of files.

Disk layout:
[ boot block | super block | log | inode blocks | free bit map | data blocks ]
"""

import os
import struct
import sys
from dataclasses import dataclass, field

from .coreutils import FileType

_SUPERBLOCK = struct.Struct("<8I")
_DINODE_HEAD = struct.Struct("<hhhhI")


@dataclass(frozen=True)
class FsLayout:
    """Sizes and limits of the file system; one block is one disk sector."""

    fssize: int = 1000
    bsize: int = 1024
    ninodes: int = 200
    nlog: int = 30
    ndirect: int = 12
    dirsiz: int = 14
    magic: int = 0x10203040
    rootino: int = 1

    def __post_init__(self):
        if self.bsize % self.dinode_size:
            raise ValueError("block size must hold a whole number of inodes")
        if self.bsize % self.dirent_size:
            raise ValueError("block size must hold a whole number of directory entries")

    @property
    def dinode_size(self):
        return _DINODE_HEAD.size + 4 * (self.ndirect + 1)

    @property
    def dirent_size(self):
        return 2 + self.dirsiz

    @property
    def ipb(self):
        """Inodes per block."""
        return self.bsize // self.dinode_size

    @property
    def nindirect(self):
        return self.bsize // 4

    @property
    def maxfile(self):
        """Largest file size in blocks."""
        return self.ndirect + self.nindirect

    @property
    def nbitmap(self):
        return self.fssize // (self.bsize * 8) + 1

    @property
    def ninodeblocks(self):
        return self.ninodes // self.ipb + 1

    @property
    def nmeta(self):
        """Blocks taken by boot, super, log, inode and bitmap blocks."""
        return 2 + self.nlog + self.ninodeblocks + self.nbitmap

    @property
    def nblocks(self):
        """Number of data blocks."""
        return self.fssize - self.nmeta

    @property
    def logstart(self):
        return 2

    @property
    def inodestart(self):
        return 2 + self.nlog

    @property
    def bmapstart(self):
        return 2 + self.nlog + self.ninodeblocks

    def iblock(self, inum):
        """Block holding inode ``inum``."""
        return inum // self.ipb + self.inodestart


@dataclass
class Superblock:
    magic: int
    size: int
    nblocks: int
    ninodes: int
    nlog: int
    logstart: int
    inodestart: int
    bmapstart: int

    @classmethod
    def from_layout(cls, layout):
        return cls(
            magic=layout.magic,
            size=layout.fssize,
            nblocks=layout.nblocks,
            ninodes=layout.ninodes,
            nlog=layout.nlog,
            logstart=layout.logstart,
            inodestart=layout.inodestart,
            bmapstart=layout.bmapstart,
        )

    def pack(self):
        return _SUPERBLOCK.pack(
            self.magic, self.size, self.nblocks, self.ninodes,
            self.nlog, self.logstart, self.inodestart, self.bmapstart,
        )

    @classmethod
    def unpack(cls, data):
        data = bytes(data)
        if len(data) < _SUPERBLOCK.size:
            raise ValueError("superblock data too short")
        return cls(*_SUPERBLOCK.unpack(data[:_SUPERBLOCK.size]))


@dataclass
class DiskInode:
    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list = field(default_factory=list)

    def pack(self):
        head = _DINODE_HEAD.pack(self.type, self.major, self.minor, self.nlink, self.size)
        return head + struct.pack(f"<{len(self.addrs)}I", *self.addrs)

    @classmethod
    def unpack(cls, data):
        data = bytes(data)
        if len(data) < _DINODE_HEAD.size or (len(data) - _DINODE_HEAD.size) % 4:
            raise ValueError("inode data has the wrong length")
        type_, major, minor, nlink, size = _DINODE_HEAD.unpack(data[:_DINODE_HEAD.size])
        rest = data[_DINODE_HEAD.size:]
        addrs = list(struct.unpack(f"<{len(rest) // 4}I", rest))
        return cls(type_, major, minor, nlink, size, addrs)


class ImageWriter:
    """Writes a fresh file system into a seekable binary stream.

    Creating the writer zeroes every block and writes the superblock.
    Progress messages go to ``log`` when it is given.
    """

    def __init__(self, image, layout=None, log=None):
        self.image = image
        self.layout = layout or FsLayout()
        self.log = log
        self.superblock = Superblock.from_layout(self.layout)
        self.freeinode = 1
        self.freeblock = self.layout.nmeta
        zeroes = bytes(self.layout.bsize)
        for sec in range(self.layout.fssize):
            self._wsect(sec, zeroes)
        self._wsect(1, self.superblock.pack())

    def _wsect(self, sec, data):
        bsize = self.layout.bsize
        data = bytes(data)
        if len(data) > bsize:
            raise ValueError("sector data larger than a block")
        self.image.seek(sec * bsize)
        written = self.image.write(data.ljust(bsize, b"\0"))
        if written is not None and written != bsize:
            raise OSError("write")

    def _rsect(self, sec):
        bsize = self.layout.bsize
        self.image.seek(sec * bsize)
        data = self.image.read(bsize)
        if len(data) != bsize:
            raise OSError("read")
        return data

    def _take_block(self):
        block = self.freeblock
        self.freeblock += 1
        return block

    def _inode_slot(self, inum):
        return self.layout.iblock(inum), (inum % self.layout.ipb) * self.layout.dinode_size

    def rinode(self, inum):
        """Read inode ``inum``."""
        bn, off = self._inode_slot(inum)
        return DiskInode.unpack(self._rsect(bn)[off:off + self.layout.dinode_size])

    def winode(self, inum, inode):
        """Write inode ``inum``."""
        bn, off = self._inode_slot(inum)
        packed = inode.pack()
        if len(packed) != self.layout.dinode_size:
            raise ValueError("inode has the wrong number of block addresses")
        buf = bytearray(self._rsect(bn))
        buf[off:off + len(packed)] = packed
        self._wsect(bn, buf)

    def ialloc(self, type):
        """Allocate the next inode with the given file type and one link."""
        inum = self.freeinode
        self.freeinode += 1
        inode = DiskInode(type=int(type), nlink=1, size=0, addrs=[0] * (self.layout.ndirect + 1))
        self.winode(inum, inode)
        return inum

    def iappend(self, inum, data):
        """Append ``data`` to the end of inode ``inum``, allocating blocks as needed."""
        layout = self.layout
        bsize, ndirect = layout.bsize, layout.ndirect
        indirect_fmt = f"<{layout.nindirect}I"
        data = memoryview(bytes(data))
        din = self.rinode(inum)
        off = din.size
        pos = 0
        while pos < len(data):
            fbn = off // bsize
            if fbn >= layout.maxfile:
                raise ValueError("file too large")
            if fbn < ndirect:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._take_block()
                x = din.addrs[fbn]
            else:
                if din.addrs[ndirect] == 0:
                    din.addrs[ndirect] = self._take_block()
                ind_block = din.addrs[ndirect]
                indirect = list(struct.unpack(indirect_fmt, self._rsect(ind_block)))
                if indirect[fbn - ndirect] == 0:
                    indirect[fbn - ndirect] = self._take_block()
                    self._wsect(ind_block, struct.pack(indirect_fmt, *indirect))
                x = indirect[fbn - ndirect]
            n1 = min(len(data) - pos, (fbn + 1) * bsize - off)
            buf = bytearray(self._rsect(x))
            start = off - fbn * bsize
            buf[start:start + n1] = data[pos:pos + n1]
            self._wsect(x, buf)
            pos += n1
            off += n1
        din.size = off
        self.winode(inum, din)

    def balloc(self, used):
        """Mark the first ``used`` blocks as allocated in the bitmap."""
        bsize = self.layout.bsize
        if self.log is not None:
            self.log.write(f"balloc: first {used} blocks have been allocated\n")
        if used >= bsize * 8:
            raise ValueError("too many blocks for one bitmap block")
        bitmap = bytearray(bsize)
        for i in range(used):
            bitmap[i // 8] |= 1 << (i % 8)
        if self.log is not None:
            self.log.write(f"balloc: write bitmap block at sector {self.superblock.bmapstart}\n")
        self._wsect(self.superblock.bmapstart, bitmap)

    def _add_entry(self, dir_inum, name, inum):
        dirsiz = self.layout.dirsiz
        raw = name.encode("utf-8", "surrogateescape")[:dirsiz].ljust(dirsiz, b"\0")
        self.iappend(dir_inum, struct.pack("<H", inum) + raw)


def make_image(path, files, layout=None):
    """Write a file system image to ``path`` holding ``files`` in its root directory.

    A leading ``user/`` is dropped from each name and a leading ``_`` from
    the stored name. Progress messages go to standard output. Returns the
    writer used.
    """
    layout = layout or FsLayout()
    with open(path, "w+b") as image:
        writer = ImageWriter(image, layout, log=sys.stdout)
        root = writer.ialloc(FileType.DIR)
        if root != layout.rootino:
            raise ValueError("root directory did not get the root inode")
        writer._add_entry(root, ".", root)
        writer._add_entry(root, "..", root)

        for entry in files:
            name = os.fspath(entry)
            shortname = name[5:] if name.startswith("user/") else name
            if "/" in shortname:
                raise ValueError(f"file name may not contain '/': {shortname}")
            with open(name, "rb") as src:
                content = src.read()
            if shortname.startswith("_"):
                shortname = shortname[1:]
            inum = writer.ialloc(FileType.FILE)
            writer._add_entry(root, shortname, inum)
            writer.iappend(inum, content)

        din = writer.rinode(root)
        din.size = (din.size // layout.bsize + 1) * layout.bsize
        writer.winode(root, din)

        writer.balloc(writer.freeblock)
    return writer


def main(argv=None):
    if argv is None:
        argv = sys.argv[1:]
    if not argv:
        sys.stderr.write("Usage: mkfs fs.img files...\n")
        return 1
    layout = FsLayout()
    sys.stdout.write(
        f"nmeta {layout.nmeta} (boot, super, log blocks {layout.nlog} "
        f"inode blocks {layout.ninodeblocks}, bitmap blocks {layout.nbitmap}) "
        f"blocks {layout.nblocks} total {layout.fssize}\n"
    )
    try:
        make_image(argv[0], argv[1:], layout)
    except OSError as exc:
        where = exc.filename if exc.filename is not None else argv[0]
        sys.stderr.write(f"{where}: {exc.strerror or exc}\n")
        return 1
    except ValueError as exc:
        sys.stderr.write(f"mkfs: {exc}\n")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())