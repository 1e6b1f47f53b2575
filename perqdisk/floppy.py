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
import typing as t

from .commons import BLOCK_SIZE
from .disk import FLOPPY_TAG, AddressableDisk, LogicalDisk
from .geometry import HEADER_SIZE, Address, Block, DeviceFamily, DeviceGeometry
from .sector import SectorStore

__all__ = [
    "POSFloppy",
    "RT11Floppy",
    "SKEW_TABLE",
]

logger = logging.getLogger(__name__)

HEADER_SECTOR = 1  # Physical sector holding the headers of the track

# Physical sectors (1-based) of each logical sector, by physical sector size
SECTOR_ORDER = {
    128: [
        [3, 8, 13, 18],
        [23, 4, 9, 14],
        [19, 24, 5, 10],
        [15, 20, 25, 6],
        [11, 16, 21, 26],
        [7, 12, 17, 22],
    ],
    256: [
        [3, 8],
        [13, 18],
        [23, 4],
        [9, 14],
        [19, 24],
        [5, 10],
        [15, 20],
        [25, 6],
        [11, 16],
        [21, 26],
        [7, 12],
        [17, 22],
    ],
}

# First physical sector of each logical sector, divided by the sectors per block
DESKEW = {
    128: [0, 5, 4, 3, 2, 1],
    256: [1, 6, 11, 4, 9, 2, 7, 12, 5, 10, 3, 8],
}

# Cylinders reserved for the boot area
BOOT_CYLINDERS = {
    128: 5,
    256: 3,
}

SECTORS_PER_TRACK = 26
SKEW_TABLE_SIZE = 13
SKEW_FACTOR = 6
INTERLACE = 2
SKEW_TABLE = [(1 + i * SKEW_FACTOR) % SECTORS_PER_TRACK for i in range(SKEW_TABLE_SIZE)]


class POSFloppy(AddressableDisk):
    """
    8" floppy in POS format.

    Each logical cylinder holds 6 (single density) or 12 (double density)
    logical sectors of 512 bytes, assembled from physical sectors in
    SECTOR_ORDER; physical sector 1 of each track holds a 16 bytes header
    for each logical sector. The second side follows the first one.
    The floppy is translated once at load time, logical blocks are
    then read from the translated copy.
    """

    family = DeviceFamily.POS_FLOPPY
    device_tag = FLOPPY_TAG

    def __init__(self, store: SectorStore, logger: logging.Logger = logger):
        super().__init__(store, logger)
        sector_size = self.geometry.sector_size
        if sector_size not in SECTOR_ORDER:
            raise ValueError(f"Unsupported floppy sector size {sector_size}")
        self.sector_order = SECTOR_ORDER[sector_size]
        self.deskew = DESKEW[sector_size]
        self.boot_cylinders = BOOT_CYLINDERS[sector_size]
        self.sectors_per_block = BLOCK_SIZE // sector_size
        self._logical_geometry = DeviceGeometry(
            self.geometry.cylinders * self.geometry.heads,
            1,
            len(self.sector_order),
            BLOCK_SIZE,
            HEADER_SIZE,
        )
        self.boot_blocks = self.boot_cylinders * len(self.sector_order)
        self.blocks: t.List[bytearray] = []
        self.headers: t.List[bytes] = []
        self.load()

    @property
    def logical_geometry(self) -> DeviceGeometry:
        return self._logical_geometry

    def load(self) -> None:
        """
        Translate the whole floppy into logical blocks
        """
        self.blocks = []
        self.headers = []
        for lbn in range(self.number_of_blocks):
            block = self.lbn_to_block(lbn)
            physical = self.logical_to_physical(block)
            header = self.read_physical(physical._replace(sector=HEADER_SECTOR))
            self.headers.append(header[block.sector * HEADER_SIZE : (block.sector + 1) * HEADER_SIZE])
            data = b"".join(
                self.read_physical(physical._replace(sector=sector)) for sector in self.sector_order[block.sector]
            )
            self.blocks.append(bytearray(data))
        self.logger.debug(
            "Translated %d logical blocks, boot area %d cylinders", self.number_of_blocks, self.boot_cylinders
        )

    def read_logical_block(self, lbn: int) -> bytes:
        self.verify_lbn(lbn)
        return bytes(self.blocks[lbn])

    def write_logical_block(self, lbn: int, buffer: bytes) -> None:
        """
        Update the translated copy and write through to the physical sectors
        """
        self.verify_lbn(lbn)
        data = bytes(buffer[:BLOCK_SIZE]).ljust(BLOCK_SIZE, b"\0")
        self.blocks[lbn] = bytearray(data)
        block = self.lbn_to_block(lbn)
        physical = self.logical_to_physical(block)
        size = self.geometry.sector_size
        for i, sector in enumerate(self.sector_order[block.sector]):
            self.write_physical(physical._replace(sector=sector), data[i * size : (i + 1) * size])

    def read_logical_header(self, lbn: int) -> bytes:
        self.verify_lbn(lbn)
        return self.headers[lbn]

    def verify_physical_block(self, block: Block) -> None:
        block.verify_physical()
        if not self.store.validate(block.cylinder, block.head, block.sector - 1):
            raise ValueError(f"Block {block!r} is outside {self.geometry}")

    def read_physical(self, block: Block) -> bytes:
        self.verify_physical_block(block)
        return self.store.read_sector(block.cylinder, block.head, block.sector - 1)

    def write_physical(self, block: Block, buffer: bytes) -> None:
        self.verify_physical_block(block)
        self.store.write_sector(block.cylinder, block.head, block.sector - 1, buffer)

    def pda_to_block(self, address: Address) -> Block:
        if address.is_logical:
            raise ValueError(f"Address {address!r} is not physical")
        cylinder = address.high
        head = 0
        if cylinder >= self.geometry.cylinders:
            head = 1
            cylinder -= self.geometry.cylinders
        block = Block(cylinder, head, address.low, False)
        self.verify_physical_block(block)
        return block

    def block_to_pda(self, block: Block) -> Address:
        self.verify_physical_block(block)
        return Address(((block.cylinder + block.head * self.geometry.cylinders) << 16) + block.sector, False)

    def logical_to_physical(self, block: Block) -> Block:
        """
        Logical block to the first physical sector holding it
        """
        self.block_to_lbn(block)
        cylinder = block.cylinder + self.boot_cylinders
        head = block.head
        if cylinder >= self.geometry.cylinders:
            cylinder -= self.geometry.cylinders
            head += 1
            if cylinder >= self.geometry.cylinders:
                raise ValueError(f"Block {block!r} is beyond the last cylinder")
        if head >= self.geometry.heads:
            raise ValueError(f"Block {block!r} is beyond the last head")
        return Block(cylinder, head, self.sector_order[block.sector][0], False)

    def physical_to_logical(self, block: Block) -> Block:
        """
        First physical sector of a logical block to the logical block
        """
        self.verify_physical_block(block)
        cylinder = block.cylinder + block.head * self.geometry.cylinders - self.boot_cylinders
        if cylinder < 0:
            raise ValueError(f"Block {block!r} is in the boot area")
        try:
            sector = self.deskew.index(block.sector // self.sectors_per_block)
        except ValueError:
            raise ValueError(f"Block {block!r} is not a data sector")
        if self.sector_order[sector][0] != block.sector:
            raise ValueError(f"Block {block!r} is not the first sector of a logical block")
        result = Block(cylinder, 0, sector, True)
        self.block_to_lbn(result)
        return result


class RT11Floppy(LogicalDisk):
    """
    8" floppy in RT-11 format.

    Logical blocks are made of 4 (single density) or 2 (double density)
    physical sectors, interlaced by 2 with a per-track skew of 6.
    Track 0 is not used.
    """

    family = DeviceFamily.RT11_FLOPPY

    def __init__(self, store: SectorStore, logger: logging.Logger = logger):
        super().__init__(store, logger)
        self.density = self.geometry.sector_size // 128
        if self.density not in (1, 2) or self.geometry.sectors != SECTORS_PER_TRACK:
            raise ValueError(f"Unsupported floppy geometry {self.geometry}")
        self.sectors_per_block = 4 // self.density
        self.tracks = self.geometry.cylinders * self.geometry.heads - 1

    @property
    def number_of_blocks(self) -> int:
        return self.tracks * SECTORS_PER_TRACK // self.sectors_per_block

    def first_physical_sector(self, lbn: int) -> t.Tuple[int, int]:
        """
        Track and physical sector (1-based) of the first sector of a logical block
        """
        self.verify_lbn(lbn)
        position = lbn * self.sectors_per_block
        track = position // SECTORS_PER_TRACK
        start = SKEW_TABLE[track % SKEW_TABLE_SIZE]
        sector = start
        for _ in range(position % SECTORS_PER_TRACK):
            sector += INTERLACE
            if sector == SECTORS_PER_TRACK + 1:
                sector = 1
            elif sector > SECTORS_PER_TRACK:
                sector = 2
            if sector % 2 == 1 and sector == start:
                sector += 1
        return track, sector

    def next_physical_sector(self, track: int, sector: int) -> t.Tuple[int, int]:
        """
        Track and physical sector following the given one
        """
        start = SKEW_TABLE[track % SKEW_TABLE_SIZE]
        sector += INTERLACE
        if sector == SECTORS_PER_TRACK + 1:
            sector = 1
        elif sector > SECTORS_PER_TRACK:
            sector = 2
        if sector % 2 == 1 and sector == start:
            sector += 1
        elif sector % 2 == 0 and sector == start + 1:
            track += 1
            sector = SKEW_TABLE[track % SKEW_TABLE_SIZE]
        return track, sector

    def physical_sectors(self, lbn: int) -> t.List[t.Tuple[int, int]]:
        """
        Tracks and physical sectors of a logical block
        """
        result = [self.first_physical_sector(lbn)]
        while len(result) < self.sectors_per_block:
            result.append(self.next_physical_sector(*result[-1]))
        return result

    def track_to_cylinder_head(self, track: int) -> t.Tuple[int, int]:
        cylinder = track + 1
        head = 0
        if cylinder >= self.geometry.cylinders:
            cylinder -= self.geometry.cylinders
            head = 1
        if head >= self.geometry.heads or cylinder >= self.geometry.cylinders:
            raise ValueError(f"Track {track} is beyond the end of the floppy")
        return cylinder, head

    def read_physical(self, track: int, sector: int) -> bytes:
        cylinder, head = self.track_to_cylinder_head(track)
        return self.store.read_sector(cylinder, head, sector - 1)

    def write_physical(self, track: int, sector: int, buffer: bytes) -> None:
        if len(buffer) != self.geometry.sector_size:
            self.logger.error(
                "Write of %d bytes to track %d sector %d, expected %d",
                len(buffer),
                track,
                sector,
                self.geometry.sector_size,
            )
            return
        cylinder, head = self.track_to_cylinder_head(track)
        self.store.write_sector(cylinder, head, sector - 1, buffer)

    def read_logical_block(self, lbn: int) -> bytes:
        return b"".join(self.read_physical(track, sector) for track, sector in self.physical_sectors(lbn))

    def write_logical_block(self, lbn: int, buffer: bytes) -> None:
        data = bytes(buffer[:BLOCK_SIZE]).ljust(BLOCK_SIZE, b"\0")
        size = self.geometry.sector_size
        for i, (track, sector) in enumerate(self.physical_sectors(lbn)):
            self.write_physical(track, sector, data[i * size : (i + 1) * size])
