"""Free-space bitmap kept in a single block; bit i set means block i is in use."""

import logging
from typing import Optional

from disk import BlockDevice
from fs import BITMAP_BLOCK

logger = logging.getLogger(__name__)


def bit_is_set(bitmap: bytes, index: int) -> bool:
    return bool(bitmap[index // 8] & (1 << (index % 8)))


def set_bit(bitmap: bytearray, index: int):
    bitmap[index // 8] |= 1 << (index % 8)


def clear_bit(bitmap: bytearray, index: int):
    bitmap[index // 8] &= ~(1 << (index % 8)) & 0xFF


class BlockAllocator:
    """First-fit allocator over the on-disk bitmap.

    Nothing is cached: every call reads the bitmap block and every change
    writes it back. The free-block counter lives in the superblock and is
    the caller's to maintain.
    """

    def __init__(self, device: BlockDevice):
        self.device = device
        self.geometry = device.geometry

    def _read_bitmap(self) -> bytearray:
        return bytearray(self.device.read_block(BITMAP_BLOCK))

    def _in_data_range(self, block_num: int) -> bool:
        return self.geometry.first_data_block <= block_num < self.geometry.total_blocks

    def find_free_block(self) -> Optional[int]:
        """Returns the lowest free data block, or None when the volume is full"""
        bitmap = self._read_bitmap()
        for block_num in range(self.geometry.first_data_block, self.geometry.total_blocks):
            if bitmap[block_num // 8] == 0xFF:
                continue
            if not bit_is_set(bitmap, block_num):
                return block_num
        return None

    def is_used(self, block_num: int) -> bool:
        if not 0 <= block_num < self.geometry.total_blocks:
            return False
        return bit_is_set(self._read_bitmap(), block_num)

    def mark_used(self, block_num: int) -> bool:
        """Sets the bit for a data block. Returns False if nothing changed."""
        if self.device.closed or not self._in_data_range(block_num):
            return False
        bitmap = self._read_bitmap()
        if bit_is_set(bitmap, block_num):
            return False
        set_bit(bitmap, block_num)
        self.device.write_block(BITMAP_BLOCK, bytes(bitmap))
        logger.debug("Block %d marked used", block_num)
        return True

    def mark_free(self, block_num: int) -> bool:
        """Clears the bit for a data block. Returns False if nothing changed."""
        if self.device.closed or not self._in_data_range(block_num):
            return False
        bitmap = self._read_bitmap()
        if not bit_is_set(bitmap, block_num):
            return False
        clear_bit(bitmap, block_num)
        self.device.write_block(BITMAP_BLOCK, bytes(bitmap))
        logger.debug("Block %d marked free", block_num)
        return True

    def count_used(self) -> int:
        bitmap = self._read_bitmap()
        return sum(1 for block_num in range(self.geometry.total_blocks) if bit_is_set(bitmap, block_num))
