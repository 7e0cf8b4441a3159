import logging
from typing import Dict, List, Optional, Union

from bitmap import BlockAllocator
from disk import BlockDevice
from errors import (
    AlreadyExistsError,
    AlreadyMountedError,
    CorruptMetadataError,
    FileTooLargeError,
    InsufficientSpaceError,
    InvalidArgumentError,
    InvalidVolumeError,
    IOFailureError,
    NoFreeInodeError,
    NotFoundError,
    NotMountedError,
)
from fs import (
    DEFAULT_GEOMETRY,
    SUPERBLOCK_BLOCK,
    SUPERBLOCK_SIZE,
    Geometry,
    Inode,
    Superblock,
    ceil_div,
)
from inodes import InodeTable

logger = logging.getLogger(__name__)


class Volume:
    """A mounted volume.

    The superblock is read once at mount and kept in memory; all counter
    updates go to that copy, which is written back to block 0 on unmount.
    Between the two the on-disk superblock is stale.
    """

    def __init__(self, device: BlockDevice, superblock: Superblock):
        self.device: Optional[BlockDevice] = device
        self.geometry = device.geometry
        self.superblock = superblock
        self.allocator = BlockAllocator(device)
        self.inodes = InodeTable(device)

    @classmethod
    def mount(cls, image_path: str, geometry: Geometry = DEFAULT_GEOMETRY) -> "Volume":
        device = BlockDevice.open(image_path, geometry)
        try:
            sb_data = device.read_at(SUPERBLOCK_BLOCK * geometry.block_size, SUPERBLOCK_SIZE)
            superblock = Superblock.unpack(sb_data)
        except IOFailureError as e:
            device.close()
            raise InvalidVolumeError(f"Cannot read superblock of {image_path}") from e

        if not superblock.matches(geometry):
            device.close()
            raise InvalidVolumeError(
                f"{image_path} is not a volume of this geometry "
                f"(blocks={superblock.total_blocks}, block_size={superblock.block_size}, "
                f"inodes={superblock.total_inodes})"
            )

        logger.info(
            "Mounted %s: %d free blocks, %d free inodes",
            image_path,
            superblock.free_blocks,
            superblock.free_inodes,
        )
        return cls(device, superblock)

    @property
    def mounted(self) -> bool:
        return self.device is not None

    def unmount(self):
        if self.device is None:
            return
        try:
            self.device.write_at(SUPERBLOCK_BLOCK * self.geometry.block_size, self.superblock.pack())
        finally:
            self.device.close()
            logger.info("Unmounted %s", self.device.image_path)
            self.device = None

    def __enter__(self) -> "Volume":
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.unmount()

    def _require_mounted(self):
        if self.device is None:
            raise NotMountedError("Volume is not mounted")

    def _check_name(self, name: str):
        if not isinstance(name, str) or not name:
            raise InvalidArgumentError(f"Invalid file name {name!r}")
        encoded = name.encode("utf-8")
        if b"\x00" in encoded or len(encoded) > self.geometry.max_filename:
            raise InvalidArgumentError(
                f"File name must be 1-{self.geometry.max_filename} bytes without NUL: {name!r}"
            )

    def _lookup(self, name: str) -> int:
        slot = self.inodes.find_by_name(name)
        if slot is None:
            raise NotFoundError(f"No such file: {name}")
        return slot

    def _check_pointer(self, name: str, block_num: int):
        if not self.geometry.first_data_block <= block_num < self.geometry.total_blocks:
            logger.warning("File %s points at block %d outside the data area", name, block_num)
            raise CorruptMetadataError(f"File {name} references invalid block {block_num}")

    def _allocate_blocks(self, count: int) -> List[int]:
        """Allocates count data blocks, returning all of them or none"""
        allocated: List[int] = []
        for _ in range(count):
            block_num = self.allocator.find_free_block()
            if block_num is None or not self.allocator.mark_used(block_num):
                logger.debug("Allocation failed after %d of %d blocks, rolling back", len(allocated), count)
                for taken in allocated:
                    self._release_block(taken)
                raise InsufficientSpaceError(f"Could not allocate {count} blocks")
            self.superblock.free_blocks -= 1
            allocated.append(block_num)
        return allocated

    def _release_block(self, block_num: int):
        if self.allocator.mark_free(block_num):
            self.superblock.free_blocks += 1

    def create(self, name: str):
        self._require_mounted()
        self._check_name(name)

        if self.inodes.find_by_name(name) is not None:
            raise AlreadyExistsError(f"File already exists: {name}")

        slot = self.inodes.find_free_slot()
        if slot is None:
            raise NoFreeInodeError("No free inodes available")

        inode = Inode.empty(self.geometry)
        inode.name = name
        inode.used = 1
        self.inodes.write(slot, inode)
        self.superblock.free_inodes -= 1
        logger.debug("Created %s in slot %d", name, slot)

    def write(self, name: str, data: bytes, size: Optional[int] = None):
        """Replace the whole content of a file with the first size bytes of data"""
        self._require_mounted()
        self._check_name(name)
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise InvalidArgumentError("Data must be a bytes-like object")
        data = bytes(data)
        if size is None:
            size = len(data)
        if not isinstance(size, int) or isinstance(size, bool) or size <= 0:
            raise InvalidArgumentError(f"Size must be a positive integer, got {size!r}")
        if size > self.geometry.max_file_size:
            raise FileTooLargeError(
                f"{size} bytes exceeds the maximum file size of {self.geometry.max_file_size}"
            )
        if size > len(data):
            raise InvalidArgumentError(f"Size {size} is larger than the {len(data)} bytes given")

        slot = self._lookup(name)
        inode = self.inodes.read(slot)
        owned = inode.owned_blocks
        for block_num in owned:
            self._check_pointer(name, block_num)

        blocks_needed = ceil_div(size, self.geometry.block_size)
        if blocks_needed > self.superblock.free_blocks + len(owned):
            raise InsufficientSpaceError(
                f"{name} needs {blocks_needed} blocks, "
                f"{self.superblock.free_blocks + len(owned)} available"
            )

        # Keep the blocks the file already has and only allocate the difference,
        # so a failed allocation leaves the old content and size intact.
        extra = self._allocate_blocks(max(0, blocks_needed - len(owned)))
        blocks = owned[:blocks_needed] + extra
        surplus = owned[blocks_needed:]

        block_size = self.geometry.block_size
        for i, block_num in enumerate(blocks):
            chunk = data[i * block_size : min((i + 1) * block_size, size)]
            self.device.write_block(block_num, chunk.ljust(block_size, b"\x00"))

        inode.size = size
        inode.blocks = blocks + [0] * (self.geometry.max_direct_blocks - len(blocks))
        self.inodes.write(slot, inode)

        for block_num in surplus:
            self._release_block(block_num)

        logger.debug("Wrote %d bytes to %s using blocks %s", size, name, blocks)

    def read(self, name: str, size: Optional[int] = None) -> bytes:
        """Read up to size bytes from the start of a file (the whole file if size is None)"""
        self._require_mounted()
        self._check_name(name)
        if size is not None and (not isinstance(size, int) or isinstance(size, bool) or size <= 0):
            raise InvalidArgumentError(f"Size must be a positive integer, got {size!r}")

        slot = self._lookup(name)
        inode = self.inodes.read(slot)
        to_read = inode.size if size is None else min(size, inode.size)
        if to_read <= 0:
            return b""

        block_size = self.geometry.block_size
        result = bytearray()
        for i in range(ceil_div(to_read, block_size)):
            block_num = inode.blocks[i] if i < len(inode.blocks) else 0
            self._check_pointer(name, block_num)
            block = self.device.read_block(block_num)
            result += block[: min(block_size, to_read - i * block_size)]
        return bytes(result)

    def delete(self, name: str):
        self._require_mounted()
        self._check_name(name)

        slot = self._lookup(name)
        inode = self.inodes.read(slot)
        for block_num in inode.owned_blocks:
            self._release_block(block_num)

        self.inodes.clear(slot)
        self.superblock.free_inodes += 1
        logger.debug("Deleted %s from slot %d", name, slot)

    def list_files(self, limit: Optional[int] = None) -> List[str]:
        """Names of in-use files in slot order, at most limit of them"""
        self._require_mounted()
        if limit is not None and (not isinstance(limit, int) or isinstance(limit, bool) or limit < 0):
            raise InvalidArgumentError(f"Invalid limit {limit!r}")

        names = []
        for _, inode in self.inodes.used():
            if limit is not None and len(names) >= limit:
                break
            names.append(inode.name)
        return names

    def stat(self, name: str) -> Dict[str, Union[int, str, List[int]]]:
        self._require_mounted()
        self._check_name(name)
        slot = self._lookup(name)
        inode = self.inodes.read(slot)
        return {
            "name": inode.name,
            "slot": slot,
            "size": inode.size,
            "blocks": inode.owned_blocks,
        }

    def statfs(self) -> Dict[str, int]:
        self._require_mounted()
        sb = self.superblock
        return {
            "block_size": sb.block_size,
            "total_blocks": sb.total_blocks,
            "data_blocks": self.geometry.data_blocks,
            "free_blocks": sb.free_blocks,
            "total_inodes": sb.total_inodes,
            "free_inodes": sb.free_inodes,
        }

    def check(self) -> List[str]:
        """Cross-check the bitmap, the inode table and the superblock counters.

        Returns a list of problems; an empty list means the volume is consistent.
        """
        self._require_mounted()
        problems = []
        geometry = self.geometry

        for block_num in range(geometry.first_data_block):
            if not self.allocator.is_used(block_num):
                problems.append(f"Reserved block {block_num} is not marked used")

        owners: Dict[int, str] = {}
        used_inodes = 0
        for slot, inode in self.inodes.used():
            used_inodes += 1
            expected = ceil_div(inode.size, geometry.block_size)
            if len(inode.owned_blocks) != expected:
                problems.append(
                    f"{inode.name}: size {inode.size} needs {expected} blocks, owns {len(inode.owned_blocks)}"
                )
            for block_num in inode.owned_blocks:
                if not geometry.first_data_block <= block_num < geometry.total_blocks:
                    problems.append(f"{inode.name}: block pointer {block_num} out of range")
                    continue
                if block_num in owners:
                    problems.append(f"Block {block_num} owned by both {owners[block_num]} and {inode.name}")
                owners[block_num] = inode.name
                if not self.allocator.is_used(block_num):
                    problems.append(f"{inode.name}: block {block_num} is not marked used")

        for block_num in range(geometry.first_data_block, geometry.total_blocks):
            if self.allocator.is_used(block_num) and block_num not in owners:
                problems.append(f"Block {block_num} is marked used but owned by no file")

        bitmap_free = geometry.total_blocks - self.allocator.count_used()
        if self.superblock.free_blocks != bitmap_free:
            problems.append(
                f"Superblock counts {self.superblock.free_blocks} free blocks, bitmap has {bitmap_free}"
            )
        if self.superblock.free_inodes != geometry.total_inodes - used_inodes:
            problems.append(
                f"Superblock counts {self.superblock.free_inodes} free inodes, "
                f"table has {geometry.total_inodes - used_inodes}"
            )

        for problem in problems:
            logger.warning("check: %s", problem)
        return problems


# Current mounted volume, there is only one mount slot
_volume: Optional[Volume] = None


def mount(image_path: str, geometry: Geometry = DEFAULT_GEOMETRY) -> Volume:
    global _volume
    if _volume is not None and _volume.mounted:
        raise AlreadyMountedError(f"A volume is already mounted from {_volume.device.image_path}")
    _volume = Volume.mount(image_path, geometry)
    return _volume


def unmount():
    global _volume
    if _volume is None:
        return
    try:
        _volume.unmount()
    finally:
        _volume = None


def get_volume() -> Volume:
    """Get the currently mounted volume"""
    if _volume is None or not _volume.mounted:
        raise NotMountedError("No volume mounted")
    return _volume


# Convenience functions that mirror the Volume API
def create(name: str):
    return get_volume().create(name)


def write(name: str, data: bytes, size: Optional[int] = None):
    return get_volume().write(name, data, size)


def read(name: str, size: Optional[int] = None) -> bytes:
    return get_volume().read(name, size)


def delete(name: str):
    return get_volume().delete(name)


def list_files(limit: Optional[int] = None) -> List[str]:
    return get_volume().list_files(limit)


def stat(name: str) -> Dict[str, Union[int, str, List[int]]]:
    return get_volume().stat(name)


def statfs() -> Dict[str, int]:
    return get_volume().statfs()


def check() -> List[str]:
    return get_volume().check()
