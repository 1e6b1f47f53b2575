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
import io
import itertools
import logging
import os
import sys
import typing as t
from datetime import date, datetime
from enum import IntEnum

from ..abstract import AbstractDirectoryEntry, AbstractFile, AbstractFilesystem
from ..commons import (
    BLOCK_SIZE,
    READ_FILE_FULL,
    bytes_to_dword,
    bytes_to_word,
    dump_struct,
    dword_to_bytes,
    filename_match,
    read_string,
    signed_word,
    splitdrive,
    word_to_bytes,
)
from ..disk import AddressableDisk
from ..floppy import POSFloppy
from ..geometry import Address

if t.TYPE_CHECKING:
    from ..disk import LogicalDisk

__all__ = [
    "DeviceCode",
    "DeviceInformationBlock",
    "FileInformationBlock",
    "FileType",
    "PartitionInformationBlock",
    "PartitionType",
    "POSDirectory",
    "POSDirectoryEntry",
    "POSDirectoryRecord",
    "POSFile",
    "POSFilesystem",
    "POSPartition",
    "SegmentKind",
    "TimeStamp",
]

logger = logging.getLogger(__name__)

TABLE_SIZE = 26  # Boot and interpreter table entries, one per boot letter
PARTITION_TABLE_SIZE = 64
NAME_SIZE = 8  # Device and partition name length
DIRECT_BLOCKS = 64
INDIRECT_BLOCKS = 32
DOUBLE_INDIRECT_BLOCKS = 2
ADDRESSES_PER_BLOCK = BLOCK_SIZE // 4
DIRECTORY_RECORD_SIZE = 32
DIRECTORY_SUFFIX = ".DR"
BLANK_FILENAME = "!!BLANK_FILENAME!!"
PATH_SEPARATOR = ">"
CHECK_VOL_THRESHOLD = 50  # Minimum weight for a valid volume

MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


class DeviceCode(IntEnum):
    WINCH12 = 0
    WINCH24 = 1
    FLOPPY_SINGLE = 2
    FLOPPY_DOUBLE = 3
    CIO_MICROP = 4
    GENERIC_5INCH = 5
    UNDEFINED0 = 6
    UNDEFINED1 = 7


class PartitionType(IntEnum):
    ROOT = 0
    UNUSED = 1
    LEAF = 2
    UNKNOWN = 3


class FileType(IntEnum):
    UNKNOWN = 0
    SEG = 1
    PAS = 2
    DIR = 3
    EX_DIR = 4
    FONT = 5
    RUN = 6
    TEXT = 7
    CURSOR = 8
    BINARY = 9
    BIN = 10
    MICRO = 11
    COM = 12
    REL = 13
    INCLUDE = 14
    SBOOT = 15
    MBOOT = 16
    SWAP = 17
    BAD = 18
    FOR = 19
    DAT = 20
    PSG = 21
    EXT = 22
    LIB = 23
    TEMP = 24


class SegmentKind(IntEnum):
    TEMPORARY = 0
    PERMANENT = 1
    BAD = 2


def read_addresses(buffer: bytes, position: int, count: int, is_logical: bool = True) -> t.List[Address]:
    return [Address.read(buffer, position + i * 4, is_logical) for i in range(count)]


def addresses_to_bytes(addresses: t.List[Address]) -> bytes:
    return b"".join(x.to_bytes() for x in addresses)


class TimeStamp:
    """
    Packed date and time

    Bits
    31-26  year - 1980
    25-22  month
    21-16  minute
    15-10  second
     9-5   day
     4-0   hour
    """

    hour: int
    day: int
    second: int
    minute: int
    month: int  # 0-11
    year: int

    @classmethod
    def from_value(cls, value: int) -> "TimeStamp":
        self = cls()
        self.hour = min(value & 0x1F, 23)
        self.day = (value >> 5) & 0x1F
        self.second = min((value >> 10) & 0x3F, 59)
        self.minute = min((value >> 16) & 0x3F, 59)
        self.month = min(max(((value >> 22) & 0x0F) - 1, 0), 11)
        self.year = ((value >> 26) & 0x3F) + 1980
        return self

    @classmethod
    def read(cls, buffer: bytes, position: int) -> "TimeStamp":
        return cls.from_value(bytes_to_dword(buffer, position))

    @classmethod
    def from_datetime(cls, val: datetime) -> "TimeStamp":
        return cls.from_value(
            (val.year - 1980) << 26
            | (val.month << 22)
            | (val.minute << 16)
            | (val.second << 10)
            | (val.day << 5)
            | val.hour
        )

    @property
    def value(self) -> int:
        return (
            (self.year - 1980) << 26
            | (self.month + 1) << 22
            | self.minute << 16
            | self.second << 10
            | self.day << 5
            | self.hour
        )

    def to_bytes(self) -> bytes:
        return dword_to_bytes(self.value)

    def to_datetime(self) -> t.Optional[datetime]:
        try:
            return datetime(self.year, self.month + 1, self.day, self.hour, self.minute, self.second)
        except ValueError:
            return None

    def __str__(self) -> str:
        return (
            f"{self.day:02}-{MONTHS[self.month]}-{self.year} "
            f"{self.hour:02}:{self.minute:02}:{self.second:02}"
        )


class DeviceInformationBlock:
    """
    Device Information Block, logical block 0 of the volume
    """

    geometry: t.List[int]  # Cylinders, heads, sectors... (5.25" disks only)
    boot_table: t.List[Address]  # Boot files (PDA), one per boot letter
    interpreter_table: t.List[Address]  # Interpreter files (PDA)
    name: str
    device_start: Address
    device_end: Address
    partitions: t.List[Address]  # Partition Information Blocks
    device_root: Address
    device_code: DeviceCode
    partition_type: PartitionType

    @classmethod
    def read(cls, buffer: bytes) -> "DeviceInformationBlock":
        self = cls()
        self.geometry = [bytes_to_word(buffer, i * 2) for i in range(5)]
        self.boot_table = read_addresses(buffer, 20, TABLE_SIZE, False)
        self.interpreter_table = read_addresses(buffer, 124, TABLE_SIZE, False)
        self.name = read_string(buffer, 228, NAME_SIZE).rstrip(" \0")
        self.device_start = Address.read(buffer, 236, True)
        self.device_end = Address.read(buffer, 240, True)
        self.partitions = read_addresses(buffer, 244, PARTITION_TABLE_SIZE)
        self.device_root = Address.read(buffer, 500, True)
        type_word = bytes_to_word(buffer, 504)
        self.device_code = DeviceCode((type_word & 0x1C) >> 2)
        self.partition_type = PartitionType(type_word & 0x03)
        return self

    def to_bytes(self) -> bytes:
        out = bytearray(BLOCK_SIZE)
        for i, word in enumerate(self.geometry):
            out[i * 2 : i * 2 + 2] = word_to_bytes(word)
        out[20:124] = addresses_to_bytes(self.boot_table)
        out[124:228] = addresses_to_bytes(self.interpreter_table)
        out[228:236] = self.name.encode("latin-1").ljust(NAME_SIZE, b" ")[:NAME_SIZE]
        out[236:240] = self.device_start.to_bytes()
        out[240:244] = self.device_end.to_bytes()
        out[244:500] = addresses_to_bytes(self.partitions)
        out[500:504] = self.device_root.to_bytes()
        out[504:506] = word_to_bytes(self.device_code << 2 | self.partition_type)
        return bytes(out)


class PartitionInformationBlock:
    """
    Partition Information Block
    """

    free_head: Address
    free_tail: Address
    free_count: int
    root_directory: Address  # Root directory FIB
    bad_segment: Address
    name: str
    partition_start: Address
    partition_end: Address
    partition_root: Address
    partition_type: PartitionType

    @classmethod
    def read(cls, buffer: bytes) -> "PartitionInformationBlock":
        self = cls()
        self.free_head = Address.read(buffer, 0, True)
        self.free_tail = Address.read(buffer, 4, True)
        self.free_count = bytes_to_dword(buffer, 8)
        self.root_directory = Address.read(buffer, 12, True)
        self.bad_segment = Address.read(buffer, 16, True)
        self.name = read_string(buffer, 228, NAME_SIZE).rstrip(" \0")
        self.partition_start = Address.read(buffer, 236, True)
        self.partition_end = Address.read(buffer, 240, True)
        self.partition_root = Address.read(buffer, 500, True)
        self.partition_type = PartitionType(bytes_to_word(buffer, 504) & 0x03)
        return self

    def to_bytes(self) -> bytes:
        out = bytearray(BLOCK_SIZE)
        out[0:4] = self.free_head.to_bytes()
        out[4:8] = self.free_tail.to_bytes()
        out[8:12] = dword_to_bytes(self.free_count)
        out[12:16] = self.root_directory.to_bytes()
        out[16:20] = self.bad_segment.to_bytes()
        out[228:236] = self.name.encode("latin-1").ljust(NAME_SIZE, b" ")[:NAME_SIZE]
        out[236:240] = self.partition_start.to_bytes()
        out[240:244] = self.partition_end.to_bytes()
        out[500:504] = self.partition_root.to_bytes()
        out[504:506] = word_to_bytes(self.partition_type)
        return bytes(out)


class FileInformationBlock:
    """
    File Information Block, one per file
    """

    file_size: int  # Size in blocks
    bits_in_last_block: int
    sparse: bool
    open_flags: int
    creation_date: TimeStamp
    last_write_date: TimeStamp
    last_access_date: TimeStamp
    file_type: int
    name: str  # Full path name
    direct: t.List[Address]
    indirect: t.List[Address]
    double_indirect: t.List[Address]
    segment_kind: int
    blocks_in_use: int
    last_block: int
    last_address: Address
    last_negative_block: int
    last_negative_address: Address

    @classmethod
    def read(cls, buffer: bytes) -> "FileInformationBlock":
        self = cls()
        self.file_size = bytes_to_word(buffer, 0)
        flags = bytes_to_word(buffer, 2)
        self.bits_in_last_block = flags & 0x1FFF
        self.sparse = (flags & 0x2000) != 0
        self.open_flags = (flags & 0xC000) >> 14
        self.creation_date = TimeStamp.read(buffer, 4)
        self.last_write_date = TimeStamp.read(buffer, 8)
        self.last_access_date = TimeStamp.read(buffer, 12)
        self.file_type = bytes_to_word(buffer, 16)
        self.name = read_string(buffer, 23, buffer[22])
        self.direct = read_addresses(buffer, 104, DIRECT_BLOCKS)
        self.indirect = read_addresses(buffer, 360, INDIRECT_BLOCKS)
        self.double_indirect = read_addresses(buffer, 488, DOUBLE_INDIRECT_BLOCKS)
        self.segment_kind = bytes_to_word(buffer, 496)
        self.blocks_in_use = bytes_to_word(buffer, 498)
        self.last_block = bytes_to_word(buffer, 500)
        self.last_address = Address.read(buffer, 502, True)
        self.last_negative_block = bytes_to_word(buffer, 506)
        self.last_negative_address = Address.read(buffer, 508, True)
        return self

    def to_bytes(self) -> bytes:
        out = bytearray(BLOCK_SIZE)
        out[0:2] = word_to_bytes(self.file_size)
        flags = (self.bits_in_last_block & 0x1FFF) | (0x2000 if self.sparse else 0) | (self.open_flags & 0x3) << 14
        out[2:4] = word_to_bytes(flags)
        out[4:8] = self.creation_date.to_bytes()
        out[8:12] = self.last_write_date.to_bytes()
        out[12:16] = self.last_access_date.to_bytes()
        out[16:18] = word_to_bytes(self.file_type)
        name = self.name.encode("latin-1")[:80]
        out[22] = len(name)
        out[23 : 23 + len(name)] = name
        out[104:360] = addresses_to_bytes(self.direct)
        out[360:488] = addresses_to_bytes(self.indirect)
        out[488:496] = addresses_to_bytes(self.double_indirect)
        out[496:498] = word_to_bytes(self.segment_kind)
        out[498:500] = word_to_bytes(self.blocks_in_use)
        out[500:502] = word_to_bytes(self.last_block)
        out[502:506] = self.last_address.to_bytes()
        out[506:508] = word_to_bytes(self.last_negative_block)
        out[508:512] = self.last_negative_address.to_bytes()
        return bytes(out)

    @property
    def is_directory(self) -> bool:
        return self.file_type == FileType.DIR

    @property
    def simple_name(self) -> str:
        """
        Last component of the name, without the directory suffix
        """
        name = self.name
        if name.upper().endswith(DIRECTORY_SUFFIX):
            name = name[: -len(DIRECTORY_SUFFIX)]
        name = name.rsplit(PATH_SEPARATOR, 1)[-1]
        return name if name.strip() else BLANK_FILENAME

    @property
    def file_type_name(self) -> str:
        try:
            return FileType(self.file_type).name
        except ValueError:
            return str(self.file_type)


class POSDirectoryRecord:
    """
    Directory file record (32 bytes)

    Word   Description
    0      Flags (bit 0 in use, bit 1 deleted, bit 2 archived)
    1-2    FIB address
    3      Name length (low byte), name
    """

    flags: int
    fib_address: Address
    name: str

    @classmethod
    def read(cls, buffer: bytes, position: int) -> "POSDirectoryRecord":
        self = cls()
        self.flags = bytes_to_word(buffer, position)
        self.fib_address = Address.read(buffer, position + 2, True)
        length = min(buffer[position + 6], DIRECTORY_RECORD_SIZE - 7)
        self.name = read_string(buffer, position + 7, length)
        return self

    def to_bytes(self) -> bytes:
        out = bytearray(DIRECTORY_RECORD_SIZE)
        out[0:2] = word_to_bytes(self.flags)
        out[2:6] = self.fib_address.to_bytes()
        name = self.name.encode("latin-1")[: DIRECTORY_RECORD_SIZE - 7]
        out[6] = len(name)
        out[7 : 7 + len(name)] = name
        return bytes(out)

    @property
    def in_use(self) -> bool:
        return (self.flags & 0x1) != 0

    @property
    def deleted(self) -> bool:
        return (self.flags & 0x2) != 0

    @property
    def archived(self) -> bool:
        return (self.flags & 0x4) != 0


class POSFile(AbstractFile):
    entry: "POSDirectoryEntry"
    closed: bool

    def __init__(self, entry: "POSDirectoryEntry"):
        self.entry = entry
        self.closed = False

    def read_block(
        self,
        block_number: int,
        number_of_blocks: int = 1,
    ) -> bytes:
        """
        Read block(s) of data from the file
        """
        if number_of_blocks == READ_FILE_FULL:
            number_of_blocks = self.entry.get_length()
        if self.closed or block_number < 0 or number_of_blocks < 0:
            raise OSError(errno.EIO, os.strerror(errno.EIO))
        return self.entry.data[block_number * BLOCK_SIZE : (block_number + number_of_blocks) * BLOCK_SIZE]

    def write_block(
        self,
        buffer: bytes,
        block_number: int,
        number_of_blocks: int = 1,
    ) -> None:
        raise OSError(errno.EROFS, os.strerror(errno.EROFS))

    def get_size(self) -> int:
        """
        Get file size in bytes
        """
        return self.entry.get_size()

    def close(self) -> None:
        """
        Close the file
        """
        self.closed = True

    def __str__(self) -> str:
        return self.entry.fullname


class POSDirectoryEntry(AbstractDirectoryEntry):
    """
    File described by a FIB; the content is read on first access
    """

    fs: "POSFilesystem"
    fib: FileInformationBlock
    fib_address: Address
    parent: t.Optional["POSDirectory"]
    directory: t.Optional["POSDirectory"] = None  # Content of a directory file
    name: str
    _data: t.Optional[bytes] = None

    def __init__(self, fs: "POSFilesystem", fib_address: Address, parent: t.Optional["POSDirectory"]):
        self.fs = fs
        self.fib_address = fib_address
        self.parent = parent

    @classmethod
    def read(
        cls, fs: "POSFilesystem", fib_address: Address, parent: t.Optional["POSDirectory"]
    ) -> "POSDirectoryEntry":
        self = cls(fs, fib_address, parent)
        self.fib = FileInformationBlock.read(fs.disk.get_sector(fib_address))
        self.name = self.fib.simple_name
        return self

    @property
    def is_directory(self) -> bool:
        return self.fib.is_directory

    @property
    def fullname(self) -> str:
        if self.directory is not None:
            return self.directory.path
        return (self.parent.path if self.parent is not None else "") + self.name

    @property
    def basename(self) -> str:
        return self.name

    @property
    def creation_date(self) -> t.Optional[date]:
        dt = self.fib.creation_date.to_datetime()
        return dt.date() if dt is not None else None

    @property
    def file_type(self) -> t.Optional[str]:
        return self.fib.file_type_name

    @property
    def number_of_blocks(self) -> int:
        """
        Number of blocks holding the content; directories
        use the last block field instead of the file size
        """
        if self.is_directory:
            return signed_word(self.fib.last_block) + 2
        return self.fib.file_size

    def get_length(self) -> int:
        """
        Get the length in blocks
        """
        return max(self.number_of_blocks, 0)

    def get_size(self) -> int:
        """
        Get file size in bytes
        """
        return abs(self.number_of_blocks * BLOCK_SIZE - (BLOCK_SIZE - (self.fib.bits_in_last_block >> 3)))

    def blocks(self) -> t.Iterator[Address]:
        """
        Data block addresses: direct, then indirect, then double indirect.
        Zero addresses in the direct lists are holes, zero index blocks are skipped.
        """
        yield from self.fib.direct
        for address in self.fib.indirect:
            if address.value != 0:
                yield from self.read_index(address)
        for address in self.fib.double_indirect:
            if address.value != 0:
                for indirect in self.read_index(address):
                    if indirect.value != 0:
                        yield from self.read_index(indirect)

    def read_index(self, address: Address) -> t.List[Address]:
        return read_addresses(self.fs.disk.get_sector(address), 0, ADDRESSES_PER_BLOCK)

    @property
    def data(self) -> bytes:
        """
        File content, read on first access
        """
        if self._data is None:
            if self.number_of_blocks < 0:
                self.fs.logger.warning("%s: invalid block count %d", self.fullname, self.number_of_blocks)
            size = self.get_size()
            data = bytearray(size)
            for i, address in enumerate(itertools.islice(self.blocks(), self.get_length())):
                position = i * BLOCK_SIZE
                if address.value == 0 or position >= size:
                    continue
                data[position : position + BLOCK_SIZE] = self.fs.disk.get_sector(address)[: size - position]
            self._data = bytes(data)
        return self._data

    def delete(self) -> bool:
        raise OSError(errno.EROFS, os.strerror(errno.EROFS))

    def open(self, file_mode: t.Optional[str] = None) -> POSFile:
        """
        Open a file
        """
        return POSFile(self)

    def read_bytes(self, file_mode: t.Optional[str] = None) -> bytes:
        return self.data

    def __str__(self) -> str:
        return (
            f"{self.basename:<25} {self.fib.file_type_name:<8} {self.get_size():>8} "
            f"{self.get_length():>5} {self.fib.creation_date}"
        )

    def __repr__(self) -> str:
        return str(self)


class POSDirectory:
    """
    Directory: the files listed in a directory file.
    The device root is not a file, its entries are the partitions.
    """

    fs: "POSFilesystem"
    entry: t.Optional[POSDirectoryEntry]
    name: str
    parent: t.Optional["POSDirectory"]
    entries: t.List[POSDirectoryEntry]

    def __init__(
        self,
        fs: "POSFilesystem",
        entry: t.Optional[POSDirectoryEntry],
        name: str,
        parent: t.Optional["POSDirectory"] = None,
    ):
        self.fs = fs
        self.entry = entry
        self.name = name
        self.parent = parent
        self.entries = []
        if entry is not None:
            entry.directory = self

    @property
    def path(self) -> str:
        if self.parent is None:
            return self.name + ":"
        return self.parent.path + self.name + PATH_SEPARATOR

    @property
    def directories(self) -> t.List["POSDirectory"]:
        return [x.directory for x in self.entries if x.directory is not None]

    def load(self, visited: t.FrozenSet[int] = frozenset()) -> None:
        """
        Read the directory records and the subdirectories
        """
        if self.entry is None:
            return
        visited = visited | {self.entry.fib_address.value}
        data = self.entry.data
        for position in range(0, len(data) - DIRECTORY_RECORD_SIZE + 1, DIRECTORY_RECORD_SIZE):
            try:
                record = POSDirectoryRecord.read(data, position)
                if not record.in_use:
                    continue
                child = POSDirectoryEntry.read(self.fs, record.fib_address, self)
            except ValueError as ex:
                self.fs.logger.warning("%s: skipping record at %d: %s", self.path, position, ex)
                continue
            self.fs.logger.debug("%s%s %s", self.path, record.name, record.fib_address)
            self.entries.append(child)
            if child.is_directory:
                if record.fib_address.value in visited:
                    self.fs.logger.warning("%s: directory loop at %s", self.path, child.name)
                    continue
                POSDirectory(self.fs, child, child.name, self).load(visited)

    def get(self, name: str) -> t.Optional[POSDirectoryEntry]:
        name = name.upper()
        for entry in self.entries:
            if entry.basename.upper() == name:
                return entry
        return None

    def __str__(self) -> str:
        return self.path


class POSPartition:
    """
    Partition, described by a Partition Information Block
    """

    address: Address
    pib: PartitionInformationBlock
    root: POSDirectory

    def __init__(self, address: Address, pib: PartitionInformationBlock, root: POSDirectory):
        self.address = address
        self.pib = pib
        self.root = root

    @property
    def name(self) -> str:
        return self.pib.name

    def __str__(self) -> str:
        return (
            f"{self.name:<8} {self.pib.partition_type.name:<7} {self.address!r} "
            f"start: {self.pib.partition_start!r} end: {self.pib.partition_end!r} free: {self.pib.free_count}"
        )


class POSFilesystem(AbstractFilesystem):
    """
    POS Filesystem

    The Device Information Block at logical block 0 lists the partitions.
    Each partition has a Partition Information Block pointing to the FIB
    of the partition root directory. Directory files are lists of 32 bytes
    records, each with the address of a FIB.
    """

    fs_name = "pos"
    fs_description = "PERQ POS"

    disk: AddressableDisk
    dib: DeviceInformationBlock
    partitions: t.List[POSPartition]
    root: POSDirectory
    pwd: POSDirectory

    def __init__(self, disk: AddressableDisk, logger: logging.Logger = logger):
        self.disk = disk
        self.logger = logger
        self.partitions = []

    @classmethod
    def probe(cls, disk: "LogicalDisk") -> bool:
        if not isinstance(disk, AddressableDisk):
            return False
        self = cls(disk)
        try:
            self.read_dib()
        except (ValueError, OSError):
            return False
        return self.check_vol()

    @classmethod
    def mount(cls, disk: "LogicalDisk", logger: logging.Logger = logger) -> "POSFilesystem":
        if not isinstance(disk, AddressableDisk):
            raise OSError(errno.EINVAL, os.strerror(errno.EINVAL), "Not a POS disk")
        self = cls(disk, logger)
        self.read_dib()
        if not self.check_vol():
            raise OSError(errno.EINVAL, os.strerror(errno.EINVAL), "Not a POS volume")
        self.load()
        return self

    def read_dib(self) -> None:
        """
        Read the Device Information Block
        """
        self.dib = DeviceInformationBlock.read(self.disk.get_sector(Address(0, True)))

    def check_vol(self) -> bool:
        """
        Weigh the plausibility of the Device Information Block
        """
        weight = 0
        weight += 10 if self.dib.partition_type == PartitionType.ROOT else -10
        start = self.disk.lda_to_lbn(self.dib.device_start)
        end = self.disk.lda_to_lbn(self.dib.device_end)
        weight += 10 if start == 0 else -10
        weight += 10 if 0 < end <= self.disk.geometry.total_blocks and end > start else -10
        weight += 10 if self.disk.lda_to_lbn(self.dib.device_root) == 0 else -10
        valid_partitions = 0
        for address in self.dib.partitions:
            # Empty slots may still carry the device tag
            if self.disk.lda_to_lbn(address) == 0:
                continue
            try:
                valid = self.disk.is_valid_block(self.disk.address_to_block(address))
            except ValueError:
                valid = False
            weight += 5 if valid else -5
            valid_partitions += valid
        weight += 10 if valid_partitions > 0 else -10
        self.logger.debug("Device %s weight %d", self.dib.name, weight)
        return weight > CHECK_VOL_THRESHOLD

    def load(self) -> None:
        """
        Read the partitions and the directory tree
        """
        self.root = POSDirectory(self, None, self.dib.name)
        self.partitions = []
        end = self.disk.lda_to_lbn(self.dib.device_end)
        for address in self.dib.partitions:
            lbn = self.disk.lda_to_lbn(address)
            if lbn == 0 or lbn >= end:
                continue
            try:
                partition = self.read_partition(address)
            except ValueError as ex:
                self.logger.error("Partition at %r: %s", address, ex)
                continue
            self.partitions.append(partition)
            self.root.entries.append(t.cast(POSDirectoryEntry, partition.root.entry))
        if not self.partitions:
            raise OSError(errno.EINVAL, os.strerror(errno.EINVAL), f"Device {self.dib.name} has no partitions")
        self.pwd = self.root

    def read_partition(self, address: Address) -> POSPartition:
        pib = PartitionInformationBlock.read(self.disk.get_sector(address))
        entry = POSDirectoryEntry.read(self, pib.root_directory, self.root)
        if not entry.is_directory:
            raise ValueError(f"Partition {pib.name} root {pib.root_directory!r} is not a directory")
        entry.name = pib.name
        root = POSDirectory(self, entry, pib.name, self.root)
        root.load()
        return POSPartition(address, pib, root)

    def read_boot_file(self, address: Address) -> t.Optional[str]:
        """
        Name of the file at a boot table address
        """
        try:
            if isinstance(self.disk, POSFloppy):
                block = self.disk.physical_to_logical(self.disk.pda_to_block(address))
                buffer = self.disk.get_sector(block)
            else:
                buffer = self.disk.get_sector(address)
            return FileInformationBlock.read(buffer).simple_name
        except ValueError as ex:
            self.logger.warning("Boot file at %r: %s", address, ex)
            return None

    def boot_files(self) -> t.List[t.Tuple[str, t.Optional[str], t.Optional[str]]]:
        """
        Boot letter, boot file and interpreter file of each boot table entry
        """
        result = []
        for i, (boot, interpreter) in enumerate(zip(self.dib.boot_table, self.dib.interpreter_table)):
            if boot.value == 0 and interpreter.value == 0:
                continue
            result.append(
                (
                    chr(ord("a") + i),
                    self.read_boot_file(boot) if boot.value else None,
                    self.read_boot_file(interpreter) if interpreter.value else None,
                )
            )
        return result

    def get_directory(self, path: str) -> t.Optional[POSDirectory]:
        """
        Resolve a directory path, absolute (DEV:PART>DIR) or relative
        """
        device, path = splitdrive(path)
        if device is not None:
            if device and device != self.dib.name.upper():
                return None
            directory = self.root
        else:
            directory = self.pwd
        for name in path.split(PATH_SEPARATOR):
            if not name:
                continue
            if name == "..":
                directory = directory.parent or directory
                continue
            entry = directory.get(name)
            if entry is None or entry.directory is None:
                return None
            directory = entry.directory
        return directory

    def split_path(self, fullname: str) -> t.Tuple[t.Optional[POSDirectory], str]:
        position = max(fullname.rfind(PATH_SEPARATOR), fullname.rfind(":"))
        if position < 0:
            return self.pwd, fullname
        return self.get_directory(fullname[: position + 1]), fullname[position + 1 :]

    def filter_entries_list(
        self, pattern: t.Optional[str], include_all: bool = False, wildcard: bool = True
    ) -> t.Iterator[POSDirectoryEntry]:
        directory, pattern = self.split_path(pattern or "")
        if directory is None:
            return
        for entry in directory.entries:
            if filename_match(entry.basename, pattern, wildcard):
                yield entry

    @property
    def entries_list(self) -> t.Iterator[POSDirectoryEntry]:
        yield from self.pwd.entries

    def get_file_entry(self, fullname: str) -> POSDirectoryEntry:
        directory, name = self.split_path(fullname)
        entry = directory.get(name) if directory is not None and name else None
        if entry is None:
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), fullname)
        return entry

    def write_bytes(
        self,
        fullname: str,
        content: bytes,
        creation_date: t.Optional[date] = None,
    ) -> None:
        raise OSError(errno.EROFS, os.strerror(errno.EROFS))

    def chdir(self, fullname: str) -> bool:
        """
        Change the current directory
        """
        directory = self.get_directory(fullname)
        if directory is None:
            return False
        self.pwd = directory
        return True

    def isdir(self, fullname: str) -> bool:
        return self.get_directory(fullname) is not None

    def dir(self, pattern: t.Optional[str] = None, options: t.Dict[str, bool] = {}) -> None:
        entries = list(self.filter_entries_list(pattern, include_all=True))
        if not entries:
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), pattern)
        directory, _ = self.split_path(pattern or "")
        if not options.get("brief"):
            sys.stdout.write(f"Directory {directory}\n\n")
        for x in entries:
            if options.get("brief"):
                sys.stdout.write(f"{x.basename}\n")
            else:
                sys.stdout.write(f"{x}\n")
        if not options.get("brief"):
            blocks = sum(x.get_length() for x in entries)
            sys.stdout.write(f"\n {len(entries)} Files, {blocks} Blocks\n")

    def examine(self, arg: t.Optional[str] = None) -> None:
        if arg:
            entry = self.get_file_entry(arg)
            sys.stdout.write(dump_struct(entry.fib.__dict__, include=["creation_date"]) + "\n")
            sys.stdout.write(f"Blocks:             {', '.join(repr(x) for x in entry.fib.direct if x.value)}\n")
        else:
            sys.stdout.write(str(self))

    def initialize(self) -> None:
        raise OSError(errno.EROFS, os.strerror(errno.EROFS))

    def get_pwd(self) -> str:
        return self.pwd.path

    def __str__(self) -> str:
        buf = io.StringIO()
        buf.write(f"Device name:           {self.dib.name}\n")
        buf.write(f"Device code:           {self.dib.device_code.name}\n")
        buf.write(f"Device start:          {self.dib.device_start!r}\n")
        buf.write(f"Device end:            {self.dib.device_end!r}\n")
        buf.write(f"Device root:           {self.dib.device_root!r}\n")
        buf.write("\nPartitions\n")
        for partition in self.partitions:
            buf.write(f"  {partition}\n")
        boot_files = self.boot_files()
        if boot_files:
            buf.write("\nBoot  File                      Interpreter\n")
            for letter, boot, interpreter in boot_files:
                buf.write(f"  {letter}   {boot or '<missing>':<25} {interpreter or '<missing>'}\n")
        return buf.getvalue()
