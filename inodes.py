"""Fixed array of inode records packed into the inode table blocks."""

from typing import Iterator, List, Optional, Tuple

from disk import BlockDevice
from errors import InvalidArgumentError
from fs import INODE_TABLE_START_BLOCK, Inode


class InodeTable:
    def __init__(self, device: BlockDevice):
        self.device = device
        self.geometry = device.geometry

    def _inode_offset(self, slot: int) -> int:
        if not 0 <= slot < self.geometry.total_inodes:
            raise InvalidArgumentError(f"Inode slot {slot} out of range")
        return INODE_TABLE_START_BLOCK * self.geometry.block_size + slot * self.geometry.inode_size

    def read(self, slot: int) -> Inode:
        data = self.device.read_at(self._inode_offset(slot), self.geometry.inode_size)
        return Inode.unpack(data, self.geometry)

    def write(self, slot: int, inode: Inode):
        self.device.write_at(self._inode_offset(slot), inode.pack(self.geometry))

    def clear(self, slot: int):
        self.write(slot, Inode.empty(self.geometry))

    def read_all(self) -> List[Inode]:
        """Loads the whole table with a single read"""
        size = self.geometry.inode_size
        data = self.device.read_at(self._inode_offset(0), size * self.geometry.total_inodes)
        return [
            Inode.unpack(data[slot * size : (slot + 1) * size], self.geometry)
            for slot in range(self.geometry.total_inodes)
        ]

    def used(self) -> Iterator[Tuple[int, Inode]]:
        """Yields (slot, inode) for in-use inodes in slot order"""
        for slot, inode in enumerate(self.read_all()):
            if inode.used:
                yield slot, inode

    def find_by_name(self, name: str) -> Optional[int]:
        for slot, inode in self.used():
            if inode.name == name:
                return slot
        return None

    def find_free_slot(self) -> Optional[int]:
        for slot, inode in enumerate(self.read_all()):
            if not inode.used:
                return slot
        return None
