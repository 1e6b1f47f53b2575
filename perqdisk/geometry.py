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

import typing as t
from dataclasses import dataclass
from enum import Enum

from .commons import BLOCK_SIZE, bytes_to_dword, dword_to_bytes

__all__ = [
    "Address",
    "Block",
    "DeviceFamily",
    "DeviceGeometry",
    "GEOMETRIES",
    "guess_geometry",
]

HEADER_SIZE = 16  # Bytes of header preceding each hard disk / logical sector
FLOPPY_CYLINDERS = 77  # 8" floppy cylinders
FLOPPY_SECTORS = 26  # 8" floppy sectors per track


class Address(t.NamedTuple):
    """
    32-bit device address, either a logical device address (LDA)
    or a physical device address (PDA)
    """

    value: int
    is_logical: bool

    @classmethod
    def read(cls, buffer: bytes, position: int, is_logical: bool) -> "Address":
        return cls(bytes_to_dword(buffer, position), is_logical)

    def to_bytes(self) -> bytes:
        return dword_to_bytes(self.value)

    @property
    def high(self) -> int:
        return (self.value >> 16) & 0xFFFF

    @property
    def low(self) -> int:
        return self.value & 0xFFFF

    def __repr__(self) -> str:
        return f"{'LDA' if self.is_logical else 'PDA'} 0x{self.value:08X}"


class Block(t.NamedTuple):
    """
    Cylinder/head/sector tagged as logical (relative to the first
    block after the boot area) or physical (relative to the medium)
    """

    cylinder: int
    head: int
    sector: int
    is_logical: bool

    def verify_logical(self) -> None:
        if not self.is_logical:
            raise ValueError(f"Block {self!r} is not logical")

    def verify_physical(self) -> None:
        if self.is_logical:
            raise ValueError(f"Block {self!r} is not physical")

    def __repr__(self) -> str:
        return f"{self.cylinder}/{self.head}/{self.sector}{'L' if self.is_logical else 'P'}"


@dataclass(frozen=True)
class DeviceGeometry:
    cylinders: int  # Number of cylinders
    heads: int  # Number of heads (tracks per cylinder)
    sectors: int  # Sectors per track
    sector_size: int = BLOCK_SIZE  # Bytes per sector
    header_size: int = 0  # Header bytes per sector

    @property
    def total_blocks(self) -> int:
        """
        Total number of sectors on the medium
        """
        return self.cylinders * self.heads * self.sectors

    @property
    def size(self) -> int:
        """
        Size of the sector data in bytes, headers excluded
        """
        return self.total_blocks * self.sector_size

    def __str__(self) -> str:
        return f"{self.cylinders}/{self.heads}/{self.sectors} {self.sector_size} bytes"


class DeviceFamily(Enum):
    """
    Hardware families, each with its own address layout and boot area
    """

    SHUGART = "shugart"  # 14" Shugart SA4000
    MICROPOLIS = "micropolis"  # 8" Micropolis
    MFM = "mfm"  # 5.25" ST-506 MFM
    POS_FLOPPY = "pos_floppy"  # 8" floppy, POS format
    RT11_FLOPPY = "rt11_floppy"  # 8" floppy, RT-11 format

    @property
    def is_floppy(self) -> bool:
        return self in (DeviceFamily.POS_FLOPPY, DeviceFamily.RT11_FLOPPY)


GEOMETRIES: t.Dict[str, t.Tuple[DeviceGeometry, t.Tuple[DeviceFamily, ...]]] = {
    "SA4000-12": (DeviceGeometry(202, 4, 30, BLOCK_SIZE, HEADER_SIZE), (DeviceFamily.SHUGART,)),
    "SA4000-24": (DeviceGeometry(202, 8, 30, BLOCK_SIZE, HEADER_SIZE), (DeviceFamily.SHUGART,)),
    "M1203": (DeviceGeometry(580, 5, 24, BLOCK_SIZE, HEADER_SIZE), (DeviceFamily.MICROPOLIS,)),
    "V170": (DeviceGeometry(987, 7, 16, BLOCK_SIZE, HEADER_SIZE), (DeviceFamily.MFM,)),
    "SSSD": (
        DeviceGeometry(FLOPPY_CYLINDERS, 1, FLOPPY_SECTORS, 128),
        (DeviceFamily.POS_FLOPPY, DeviceFamily.RT11_FLOPPY),
    ),
    "DSSD": (
        DeviceGeometry(FLOPPY_CYLINDERS, 2, FLOPPY_SECTORS, 128),
        (DeviceFamily.POS_FLOPPY, DeviceFamily.RT11_FLOPPY),
    ),
    "SSDD": (
        DeviceGeometry(FLOPPY_CYLINDERS, 1, FLOPPY_SECTORS, 256),
        (DeviceFamily.POS_FLOPPY, DeviceFamily.RT11_FLOPPY),
    ),
    "DSDD": (
        DeviceGeometry(FLOPPY_CYLINDERS, 2, FLOPPY_SECTORS, 256),
        (DeviceFamily.POS_FLOPPY, DeviceFamily.RT11_FLOPPY),
    ),
}


def guess_geometry(size: int) -> t.List[t.Tuple[str, DeviceGeometry, t.Tuple[DeviceFamily, ...]]]:
    """
    Return the known geometries (and candidate families) of a raw image
    of the given size. Single sided double density and double sided
    single density floppies have the same size.
    """
    result = [
        (name, geometry, families) for name, (geometry, families) in GEOMETRIES.items() if geometry.size == size
    ]
    if not result:
        raise ValueError(f"Unknown image size: {size}")
    return result
