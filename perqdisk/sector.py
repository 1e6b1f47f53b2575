# Copyright (C) 2014 Andrea Bonomi <andrea.bonomi@gmail.com>

# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to
# deal in the Software without restriction, including without limitation the
# rights to use, copy, modify, merge, publish, distribute, sublicense, and/or
# sell copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in
# all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN
# THE SOFTWARE.

import logging
import os
import typing as t

from .geometry import DeviceGeometry, guess_geometry

__all__ = [
    "SectorStore",
]

logger = logging.getLogger(__name__)


class SectorStore:
    """
    In-memory sector image addressed by cylinder/head/sector
    or by raw (linear) sector index.

    Raw images are stored sector-linear in cylinder, head, sector
    order; sector headers are kept apart and are not part of the image.
    """

    geometry: DeviceGeometry
    data: bytearray
    headers: bytearray
    filename: t.Optional[str] = None

    def __init__(
        self,
        geometry: DeviceGeometry,
        data: t.Optional[bytes] = None,
        logger: logging.Logger = logger,
    ):
        self.geometry = geometry
        self.logger = logger
        size = geometry.size
        if data is None:
            self.data = bytearray(size)
        else:
            if len(data) < size:
                self.logger.warning("Image is %d bytes shorter than %s, padding", size - len(data), geometry)
            elif len(data) > size:
                self.logger.warning("Image is %d bytes longer than %s, truncating", len(data) - size, geometry)
            self.data = bytearray(data[:size]).ljust(size, b"\0")
        self.headers = bytearray(geometry.total_blocks * geometry.header_size)

    @classmethod
    def load(
        cls,
        filename: str,
        geometry: t.Optional[DeviceGeometry] = None,
        logger: logging.Logger = logger,
    ) -> "SectorStore":
        """
        Load a raw image file; if no geometry is given,
        guess it from the file size
        """
        with open(filename, "rb") as f:
            data = f.read()
        if geometry is None:
            name, geometry, _ = guess_geometry(len(data))[0]
            logger.debug("%s: guessed geometry %s (%s)", filename, name, geometry)
        self = cls(geometry, data, logger=logger)
        self.filename = os.path.abspath(filename)
        return self

    def save(self, filename: t.Optional[str] = None) -> None:
        """
        Write the raw image to a file
        """
        filename = filename or self.filename
        if filename is None:
            raise ValueError("No filename")
        with open(filename, "wb") as f:
            f.write(self.data)

    def to_bytes(self) -> bytes:
        return bytes(self.data)

    def validate(self, cylinder: int, head: int, sector: int) -> bool:
        """
        Check if the coordinates are within the medium
        """
        return (
            0 <= cylinder < self.geometry.cylinders
            and 0 <= head < self.geometry.heads
            and 0 <= sector < self.geometry.sectors
        )

    def sector_index(self, cylinder: int, head: int, sector: int) -> int:
        """
        Convert cylinder/head/sector to raw sector index
        """
        if not self.validate(cylinder, head, sector):
            raise ValueError(f"Sector {cylinder}/{head}/{sector} is outside {self.geometry}")
        return (cylinder * self.geometry.heads + head) * self.geometry.sectors + sector

    def read_raw(self, index: int) -> bytes:
        """
        Read a sector by raw index
        """
        if not 0 <= index < self.geometry.total_blocks:
            raise ValueError(f"Sector index {index} is outside {self.geometry}")
        position = index * self.geometry.sector_size
        return bytes(self.data[position : position + self.geometry.sector_size])

    def write_raw(self, index: int, buffer: bytes) -> None:
        """
        Write a sector by raw index, short buffers are zero padded
        """
        if not 0 <= index < self.geometry.total_blocks:
            raise ValueError(f"Sector index {index} is outside {self.geometry}")
        if len(buffer) > self.geometry.sector_size:
            raise ValueError(f"Buffer of {len(buffer)} bytes exceeds sector size {self.geometry.sector_size}")
        position = index * self.geometry.sector_size
        self.data[position : position + self.geometry.sector_size] = bytes(buffer).ljust(
            self.geometry.sector_size, b"\0"
        )

    def read_sector(self, cylinder: int, head: int, sector: int) -> bytes:
        return self.read_raw(self.sector_index(cylinder, head, sector))

    def write_sector(self, cylinder: int, head: int, sector: int, buffer: bytes) -> None:
        self.write_raw(self.sector_index(cylinder, head, sector), buffer)

    def read_header(self, cylinder: int, head: int, sector: int) -> bytes:
        size = self.geometry.header_size
        position = self.sector_index(cylinder, head, sector) * size
        return bytes(self.headers[position : position + size])

    def write_header(self, cylinder: int, head: int, sector: int, buffer: bytes) -> None:
        size = self.geometry.header_size
        if len(buffer) > size:
            raise ValueError(f"Header of {len(buffer)} bytes exceeds header size {size}")
        position = self.sector_index(cylinder, head, sector) * size
        self.headers[position : position + size] = bytes(buffer).ljust(size, b"\0")

    def __str__(self) -> str:
        return f"{self.filename or 'memory'} ({self.geometry})"
