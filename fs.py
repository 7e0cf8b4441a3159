import struct
from typing import List

import attr

# Default volume geometry
BLOCK_SIZE = 4096
MAX_BLOCKS = 2560  # 10MB image
MAX_FILES = 256
MAX_FILENAME = 28  # bytes of UTF-8, terminator not included
MAX_DIRECT_BLOCKS = 12  # 48KB per file

# Fixed layout
SUPERBLOCK_BLOCK = 0
BITMAP_BLOCK = 1
INODE_TABLE_START_BLOCK = 2
INODE_TABLE_BLOCKS = 8

SUPERBLOCK_FMT = "<5i"
SUPERBLOCK_SIZE = struct.calcsize(SUPERBLOCK_FMT)


def ceil_div(a: int, b: int) -> int:
    return (a + b - 1) // b


@attr.s(auto_attribs=True, frozen=True)
class Geometry:
    """Capacity parameters of a volume; the defaults describe the standard 10MB image"""

    block_size: int = BLOCK_SIZE
    total_blocks: int = MAX_BLOCKS
    total_inodes: int = MAX_FILES
    max_filename: int = MAX_FILENAME
    max_direct_blocks: int = MAX_DIRECT_BLOCKS
    inode_table_blocks: int = INODE_TABLE_BLOCKS

    def __attrs_post_init__(self):
        if self.block_size < SUPERBLOCK_SIZE:
            raise ValueError(f"Block size {self.block_size} cannot hold the superblock")
        if self.total_blocks > self.block_size * 8:
            raise ValueError(f"Bitmap of one block cannot track {self.total_blocks} blocks")
        if self.total_blocks <= self.first_data_block:
            raise ValueError("Volume has no room for data blocks")
        if self.total_inodes <= 0 or self.max_filename <= 0 or self.max_direct_blocks <= 0:
            raise ValueError("Inode count, filename limit and pointer count must be positive")
        if self.total_inodes * self.inode_size > self.inode_table_blocks * self.block_size:
            raise ValueError(
                f"{self.total_inodes} inodes of {self.inode_size} bytes do not fit "
                f"in {self.inode_table_blocks} blocks"
            )

    @property
    def first_data_block(self) -> int:
        return INODE_TABLE_START_BLOCK + self.inode_table_blocks

    @property
    def data_blocks(self) -> int:
        return self.total_blocks - self.first_data_block

    @property
    def name_field_size(self) -> int:
        # room for the terminator, padded to keep the integers aligned
        return ceil_div(self.max_filename + 1, 4) * 4

    @property
    def inode_fmt(self) -> str:
        return f"<{self.name_field_size}sii{self.max_direct_blocks}i"

    @property
    def inode_size(self) -> int:
        return struct.calcsize(self.inode_fmt)

    @property
    def image_size(self) -> int:
        return self.total_blocks * self.block_size

    @property
    def max_file_size(self) -> int:
        return self.max_direct_blocks * self.block_size


DEFAULT_GEOMETRY = Geometry()


@attr.s(auto_attribs=True)
class Superblock:
    total_blocks: int
    block_size: int
    free_blocks: int
    total_inodes: int
    free_inodes: int

    @classmethod
    def fresh(cls, geometry: Geometry) -> "Superblock":
        return cls(
            total_blocks=geometry.total_blocks,
            block_size=geometry.block_size,
            free_blocks=geometry.data_blocks,
            total_inodes=geometry.total_inodes,
            free_inodes=geometry.total_inodes,
        )

    def matches(self, geometry: Geometry) -> bool:
        return (
            self.total_blocks == geometry.total_blocks
            and self.block_size == geometry.block_size
            and self.total_inodes == geometry.total_inodes
        )

    def pack(self) -> bytes:
        return struct.pack(
            SUPERBLOCK_FMT,
            self.total_blocks,
            self.block_size,
            self.free_blocks,
            self.total_inodes,
            self.free_inodes,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "Superblock":
        return cls(*struct.unpack(SUPERBLOCK_FMT, data[:SUPERBLOCK_SIZE]))


@attr.s(auto_attribs=True)
class Inode:
    name: str = ""
    used: int = 0
    size: int = 0
    # direct block pointers, 0 marks an unallocated slot
    blocks: List[int] = attr.ib(factory=list)

    @classmethod
    def empty(cls, geometry: Geometry) -> "Inode":
        return cls(blocks=[0] * geometry.max_direct_blocks)

    @property
    def owned_blocks(self) -> List[int]:
        return [block for block in self.blocks if block != 0]

    def pack(self, geometry: Geometry) -> bytes:
        pointers = list(self.blocks) + [0] * (geometry.max_direct_blocks - len(self.blocks))
        return struct.pack(
            geometry.inode_fmt,
            self.name.encode("utf-8"),
            self.used,
            self.size,
            *pointers,
        )

    @classmethod
    def unpack(cls, data: bytes, geometry: Geometry) -> "Inode":
        fields = struct.unpack(geometry.inode_fmt, data[: geometry.inode_size])
        raw_name = fields[0].split(b"\x00", 1)[0]
        name = raw_name.decode("utf-8", errors="replace")
        return cls(name, fields[1], fields[2], list(fields[3:]))
