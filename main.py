import logging
import sys

from bitmap import set_bit
from disk import BlockDevice
from errors import IOFailureError
from fs import (
    BITMAP_BLOCK,
    DEFAULT_GEOMETRY,
    SUPERBLOCK_BLOCK,
    Geometry,
    Inode,
    Superblock,
)
from inodes import InodeTable

logger = logging.getLogger(__name__)


def create_empty_image(image_path: str, geometry: Geometry = DEFAULT_GEOMETRY):
    """Create (or truncate) an image of total_blocks zero-filled blocks"""
    empty_block = b"\x00" * geometry.block_size
    try:
        with open(image_path, "wb") as f:
            for _ in range(geometry.total_blocks):
                if f.write(empty_block) != geometry.block_size:
                    raise IOFailureError(f"Short write while creating {image_path}")
            if f.tell() != geometry.image_size:
                raise IOFailureError(
                    f"Image {image_path} is {f.tell()} bytes, expected {geometry.image_size}"
                )
    except IOFailureError:
        raise
    except OSError as e:
        raise IOFailureError(f"Cannot create image {image_path}: {e}") from e


def mkfs(image_path: str, geometry: Geometry = DEFAULT_GEOMETRY):
    """Build a fresh, unmounted volume in the image file"""
    create_empty_image(image_path, geometry)

    with BlockDevice.open(image_path, geometry) as device:
        # Step 1: superblock
        create_superblock(device)

        # Step 2: bitmap with the metadata blocks reserved
        create_bitmap(device)

        # Step 3: empty inode table
        create_inode_table(device)

    logger.info(
        "Formatted %s: %d blocks of %d bytes, %d inodes",
        image_path,
        geometry.total_blocks,
        geometry.block_size,
        geometry.total_inodes,
    )


def create_superblock(device: BlockDevice):
    superblock = Superblock.fresh(device.geometry)
    device.write_at(SUPERBLOCK_BLOCK * device.geometry.block_size, superblock.pack())


def create_bitmap(device: BlockDevice):
    bitmap = bytearray(device.geometry.block_size)
    for block_num in range(device.geometry.first_data_block):
        set_bit(bitmap, block_num)
    device.write_block(BITMAP_BLOCK, bytes(bitmap))


def create_inode_table(device: BlockDevice):
    table = InodeTable(device)
    empty = Inode.empty(device.geometry)
    for slot in range(device.geometry.total_inodes):
        table.write(slot, empty)


def main():
    image_path = sys.argv[1] if len(sys.argv) > 1 else "fs.img"
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    mkfs(image_path)


if __name__ == "__main__":
    main()
