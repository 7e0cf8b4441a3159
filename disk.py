"""Block-level access to the image file backing a volume."""

import logging
import os
from typing import BinaryIO, Optional

from errors import IOFailureError, NotFoundError, NotMountedError
from fs import DEFAULT_GEOMETRY, Geometry

logger = logging.getLogger(__name__)


class BlockDevice:
    """Fixed-length image file addressed by block index or byte offset"""

    def __init__(self, image_path: str, geometry: Geometry = DEFAULT_GEOMETRY):
        self.image_path = image_path
        self.geometry = geometry
        self.image_file: Optional[BinaryIO] = None

    @classmethod
    def open(cls, image_path: str, geometry: Geometry = DEFAULT_GEOMETRY) -> "BlockDevice":
        device = cls(image_path, geometry)
        if not os.path.exists(image_path):
            raise NotFoundError(f"Image {image_path} not found")
        try:
            device.image_file = open(image_path, "r+b")
        except OSError as e:
            raise IOFailureError(f"Cannot open image {image_path}: {e}") from e
        logger.debug("Opened image %s", image_path)
        return device

    @property
    def closed(self) -> bool:
        return self.image_file is None

    def close(self):
        if self.image_file is not None:
            self.image_file.close()
            self.image_file = None
            logger.debug("Closed image %s", self.image_path)

    def __enter__(self) -> "BlockDevice":
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def _check_block(self, block_num: int):
        if not 0 <= block_num < self.geometry.total_blocks:
            raise IOFailureError(f"Block {block_num} is outside the image")

    def read_at(self, offset: int, size: int) -> bytes:
        if self.image_file is None:
            raise NotMountedError("No image attached")
        try:
            self.image_file.seek(offset)
            data = self.image_file.read(size)
        except OSError as e:
            raise IOFailureError(f"Read of {size} bytes at {offset} failed: {e}") from e
        if len(data) != size:
            raise IOFailureError(f"Short read at {offset}: got {len(data)} of {size} bytes")
        return data

    def write_at(self, offset: int, data: bytes):
        if self.image_file is None:
            raise NotMountedError("No image attached")
        try:
            self.image_file.seek(offset)
            written = self.image_file.write(data)
            self.image_file.flush()
        except OSError as e:
            raise IOFailureError(f"Write of {len(data)} bytes at {offset} failed: {e}") from e
        if written != len(data):
            raise IOFailureError(f"Short write at {offset}: wrote {written} of {len(data)} bytes")

    def read_block(self, block_num: int) -> bytes:
        self._check_block(block_num)
        return self.read_at(block_num * self.geometry.block_size, self.geometry.block_size)

    def write_block(self, block_num: int, data: bytes):
        self._check_block(block_num)
        if len(data) != self.geometry.block_size:
            raise IOFailureError(
                f"Block data must be exactly {self.geometry.block_size} bytes, got {len(data)}"
            )
        self.write_at(block_num * self.geometry.block_size, data)
