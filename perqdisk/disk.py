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

import errno
import logging
import os
import typing as t
from abc import ABC, abstractmethod

from .commons import BLOCK_SIZE, READ_FILE_FULL
from .geometry import Address, Block, DeviceFamily, DeviceGeometry
from .sector import SectorStore

__all__ = [
    "AddressableDisk",
    "HardDisk",
    "LogicalDisk",
    "MFMDisk",
    "MicropolisDisk",
    "ShugartDisk",
]

logger = logging.getLogger(__name__)

DISK_TAG = 0xC0000000  # High bits of a hard disk LDA
FLOPPY_TAG = 0xE0000000  # High bits of a floppy LDA


class LogicalDisk(ABC):
    """
    Logical block access over a sector store,
    hiding the boot area and the sector interleave
    """

    family: DeviceFamily
    store: SectorStore
    geometry: DeviceGeometry  # Physical geometry

    def __init__(self, store: SectorStore, logger: logging.Logger = logger):
        self.store = store
        self.geometry = store.geometry
        self.logger = logger

    @property
    @abstractmethod
    def number_of_blocks(self) -> int:
        """Number of logical blocks"""

    @property
    def max_lbn(self) -> int:
        """Highest valid logical block number"""
        return self.number_of_blocks - 1

    @abstractmethod
    def read_logical_block(self, lbn: int) -> bytes:
        """Read a single 512 bytes logical block"""

    @abstractmethod
    def write_logical_block(self, lbn: int, buffer: bytes) -> None:
        """Write a single 512 bytes logical block"""

    def verify_lbn(self, lbn: int) -> None:
        if not 0 <= lbn <= self.max_lbn:
            raise ValueError(f"Logical block {lbn} is outside 0..{self.max_lbn}")

    def read_block(
        self,
        block_number: int,
        number_of_blocks: int = 1,
    ) -> bytes:
        """
        Read logical block(s)
        """
        if number_of_blocks == READ_FILE_FULL:
            number_of_blocks = self.number_of_blocks - block_number
        if block_number < 0 or number_of_blocks < 0:
            raise OSError(errno.EIO, os.strerror(errno.EIO))
        return b"".join(self.read_logical_block(lbn) for lbn in range(block_number, block_number + number_of_blocks))

    def write_block(
        self,
        buffer: bytes,
        block_number: int,
        number_of_blocks: int = 1,
    ) -> None:
        """
        Write logical block(s)
        """
        if block_number < 0 or number_of_blocks < 0:
            raise OSError(errno.EIO, os.strerror(errno.EIO))
        for i in range(number_of_blocks):
            self.write_logical_block(block_number + i, buffer[i * BLOCK_SIZE : (i + 1) * BLOCK_SIZE])

    def get_size(self) -> int:
        """
        Get the size of the logical area in bytes
        """
        return self.number_of_blocks * BLOCK_SIZE

    def __str__(self) -> str:
        return f"{self.family.value} {self.geometry}"


class AddressableDisk(LogicalDisk):
    """
    Disk addressed by logical (LDA) and physical (PDA) device addresses
    """

    boot_blocks: int  # Physical blocks reserved before logical block 0
    device_tag: int = DISK_TAG
    lbn_mask: int = 0x7FFFF  # LBN bits stored in the LDA
    lda_high_mask: int = 0x07FF  # LBN bits in the high word of the LDA

    @property
    def logical_geometry(self) -> DeviceGeometry:
        """Geometry used for logical block numbering"""
        return self.geometry

    @property
    def number_of_blocks(self) -> int:
        return self.logical_geometry.total_blocks - self.boot_blocks

    def lbn_to_lda(self, lbn: int) -> Address:
        self.verify_lbn(lbn)
        return Address(self.device_tag | ((lbn & self.lbn_mask) << 8), True)

    def lda_to_lbn(self, address: Address) -> int:
        if not address.is_logical:
            raise ValueError(f"Address {address!r} is not logical")
        return ((address.high & self.lda_high_mask) << 8) | ((address.low & 0xFF00) >> 8)

    def lbn_to_block(self, lbn: int) -> Block:
        """
        Logical block number to logical cylinder/head/sector
        """
        self.verify_lbn(lbn)
        heads = self.logical_geometry.heads
        sectors = self.logical_geometry.sectors
        cylinder = lbn // (heads * sectors)
        head = (lbn - cylinder * heads * sectors) // sectors
        sector = lbn % sectors
        return Block(cylinder, head, sector, True)

    def block_to_lbn(self, block: Block) -> int:
        """
        Logical cylinder/head/sector to logical block number
        """
        block.verify_logical()
        heads = self.logical_geometry.heads
        sectors = self.logical_geometry.sectors
        if block.cylinder < 0 or not 0 <= block.head < heads or not 0 <= block.sector < sectors:
            raise ValueError(f"Block {block!r} is outside the logical geometry")
        lbn = (block.cylinder * heads + block.head) * sectors + block.sector
        self.verify_lbn(lbn)
        return lbn

    def address_to_block(self, address: Address) -> Block:
        if address.is_logical:
            return self.lbn_to_block(self.lda_to_lbn(address))
        else:
            return self.pda_to_block(address)

    def block_to_address(self, block: Block) -> Address:
        if block.is_logical:
            return self.lbn_to_lda(self.block_to_lbn(block))
        else:
            return self.block_to_pda(block)

    def is_valid_block(self, block: Block) -> bool:
        try:
            self.block_to_address(block)
            return True
        except ValueError:
            return False

    @abstractmethod
    def pda_to_block(self, address: Address) -> Block:
        """Unpack a physical device address"""

    @abstractmethod
    def block_to_pda(self, block: Block) -> Address:
        """Pack a physical block into a physical device address"""

    @abstractmethod
    def logical_to_physical(self, block: Block) -> Block:
        """Add the boot area offset to a logical block"""

    @abstractmethod
    def physical_to_logical(self, block: Block) -> Block:
        """Remove the boot area offset from a physical block"""

    def verify_physical_block(self, block: Block) -> None:
        block.verify_physical()
        if not self.store.validate(block.cylinder, block.head, block.sector):
            raise ValueError(f"Block {block!r} is outside {self.geometry}")

    def read_physical(self, block: Block) -> bytes:
        self.verify_physical_block(block)
        return self.store.read_sector(block.cylinder, block.head, block.sector)

    def write_physical(self, block: Block, buffer: bytes) -> None:
        self.verify_physical_block(block)
        self.store.write_sector(block.cylinder, block.head, block.sector, buffer)

    def read_logical_block(self, lbn: int) -> bytes:
        return self.read_physical(self.logical_to_physical(self.lbn_to_block(lbn)))

    def write_logical_block(self, lbn: int, buffer: bytes) -> None:
        self.write_physical(self.logical_to_physical(self.lbn_to_block(lbn)), buffer)

    def get_sector(self, location: t.Union[Address, Block]) -> bytes:
        """
        Read the sector at a device address or block
        """
        block = self.address_to_block(location) if isinstance(location, Address) else location
        if block.is_logical:
            return self.read_logical_block(self.block_to_lbn(block))
        else:
            return self.read_physical(block)

    def put_sector(self, location: t.Union[Address, Block], buffer: bytes) -> None:
        """
        Write the sector at a device address or block
        """
        block = self.address_to_block(location) if isinstance(location, Address) else location
        if block.is_logical:
            self.write_logical_block(self.block_to_lbn(block), buffer)
        else:
            self.write_physical(block, buffer)


class HardDisk(AddressableDisk):
    """
    Hard disk, the boot area is a whole number of tracks
    at the start of the medium
    """

    boot_tracks: int  # Tracks reserved before logical block 0

    def __init__(self, store: SectorStore, logger: logging.Logger = logger):
        super().__init__(store, logger)
        if self.geometry.sector_size != BLOCK_SIZE:
            raise ValueError(f"Unsupported sector size {self.geometry.sector_size}")

    def logical_to_physical(self, block: Block) -> Block:
        self.block_to_lbn(block)
        head = block.head + self.boot_tracks
        cylinder = block.cylinder + head // self.geometry.heads
        head = head % self.geometry.heads
        if cylinder >= self.geometry.cylinders:
            raise ValueError(f"Block {block!r} is beyond the last cylinder")
        return Block(cylinder, head, block.sector, False)

    def physical_to_logical(self, block: Block) -> Block:
        self.verify_physical_block(block)
        track = block.cylinder * self.geometry.heads + block.head - self.boot_tracks
        if track < 0:
            raise ValueError(f"Block {block!r} is in the boot area")
        result = Block(track // self.geometry.heads, track % self.geometry.heads, block.sector, True)
        self.block_to_lbn(result)
        return result


class ShugartDisk(HardDisk):
    """
    14" Shugart SA4000, physical address in the low word:
    cylinder bits 15-8, head bits 7-5, sector bits 4-0
    """

    family = DeviceFamily.SHUGART
    boot_blocks = 30
    boot_tracks = 1

    def pda_to_block(self, address: Address) -> Block:
        if address.is_logical:
            raise ValueError(f"Address {address!r} is not physical")
        block = Block(
            (address.low & 0xFF00) >> 8,
            (address.low & 0xE0) >> 5,
            address.low & 0x1F,
            False,
        )
        self.verify_physical_block(block)
        return block

    def block_to_pda(self, block: Block) -> Address:
        self.verify_physical_block(block)
        return Address((block.cylinder & 0xFF) << 8 | (block.head & 0x7) << 5 | (block.sector & 0x1F), False)


class MicropolisDisk(HardDisk):
    """
    8" Micropolis, physical address: cylinder in the high word,
    head in the high byte and sector in the low byte of the low word
    """

    family = DeviceFamily.MICROPOLIS
    boot_blocks = 48
    boot_tracks = 1

    def pda_to_block(self, address: Address) -> Block:
        if address.is_logical:
            raise ValueError(f"Address {address!r} is not physical")
        block = Block(address.high, (address.low & 0xFF00) >> 8, address.low & 0xFF, False)
        self.verify_physical_block(block)
        return block

    def block_to_pda(self, block: Block) -> Address:
        self.verify_physical_block(block)
        return Address(block.cylinder << 16 | (block.head & 0xFF) << 8 | (block.sector & 0xFF), False)


class MFMDisk(MicropolisDisk):
    """
    5.25" MFM, same physical address layout as the Micropolis
    with a 12-bit high word in the LDA
    """

    family = DeviceFamily.MFM
    boot_blocks = 32
    boot_tracks = 2
    lbn_mask = 0xFFFFF
    lda_high_mask = 0x0FFF
