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
import logging
import math
import os
import sys
import typing as t
from datetime import date
from enum import IntEnum

from ..abstract import AbstractDirectoryEntry, AbstractFile, AbstractFilesystem
from ..commons import BLOCK_SIZE, READ_FILE_FULL, bytes_to_word, filename_match, splitdrive, word_to_bytes
from .rad50 import format_6dot3, join_6dot3, rad50_to_string, split_6dot3, string_to_rad50

if t.TYPE_CHECKING:
    from ..disk import LogicalDisk

__all__ = [
    "Outcome",
    "RT11File",
    "RT11DirectoryEntry",
    "RT11Filesystem",
    "date_to_rt11",
    "rt11_date_to_str",
    "rt11_to_date",
]

logger = logging.getLogger(__name__)

DIR_START = 6  # First directory segment block
DIR_SEG_MAX = 4  # Max number of directory segments
DIRECTORY_SEGMENT_SIZE = BLOCK_SIZE * 2
DIR_ENTRY_SIZE = 14  # Directory entry size, extra bytes excluded
DIRECTORY_SEGMENT_HEADER_SIZE = 10
MAX_EXTRA_BYTES = 8
POS_EXTRA_BYTES = 2  # Extra bytes: bits in last block
USER_START = DIR_START + DIR_SEG_MAX * 2  # First data block
MAX_FILES = 248  # Max directory entries
FULL_BLOCK_BITS = BLOCK_SIZE * 8

E_NONE = 0x000  # No status
E_TENT = 0x100  # Tentative file
E_MPTY = 0x200  # Empty area
E_PERM = 0x400  # Permanent file
E_EOS = 0x800  # End-of-segment marker

MONTHS = ["BAD", "JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC"]


class Outcome(IntEnum):
    """
    Result of a directory update
    """

    SUCCESS = 0
    NO_HOLE = -1  # No single hole is large enough
    TOO_LARGE = -2  # Not enough free blocks on the volume
    DIRECTORY_FULL = -3
    BAD_NAME = -4
    FILE_EXISTS = -5
    NOT_PERMANENT = -6


def rt11_to_date(val: int) -> t.Optional[date]:
    """
    Translate RT-11 date to Python date
    """
    month = (val & 0x7C00) >> 10
    day = (val & 0x03E0) >> 5
    year = (val & 0x1F) + 1972
    if not 1 <= month <= 12:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def rt11_date_to_str(val: int) -> str:
    """
    Format RT-11 date as DD-MON-YY
    """
    month = (val & 0x7C00) >> 10
    if month > 12:
        month = 0
    day = (val & 0x03E0) >> 5
    year = (val & 0x1F) + 72
    return f"{day}-{MONTHS[month]}-{year:02}"


def date_to_rt11(val: t.Optional[date]) -> int:
    """
    Translate Python date to RT-11 date, years after 1999
    are moved back by decades
    """
    if val is None:
        return 0
    year = val.year - 1972
    while year > 27:
        year -= 10
    return (val.month & 0x1F) << 10 | (val.day & 0x1F) << 5 | (year & 0x1F)


class RT11File(AbstractFile):
    entry: "RT11DirectoryEntry"
    closed: bool

    def __init__(self, entry: "RT11DirectoryEntry"):
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
            number_of_blocks = self.entry.length
        if self.closed or block_number < 0 or number_of_blocks < 0:
            raise OSError(errno.EIO, os.strerror(errno.EIO))
        if block_number + number_of_blocks > self.entry.length:
            number_of_blocks = self.entry.length - block_number
        if number_of_blocks <= 0:
            return b""
        return self.entry.fs.disk.read_block(self.entry.file_position + block_number, number_of_blocks)

    def write_block(
        self,
        buffer: bytes,
        block_number: int,
        number_of_blocks: int = 1,
    ) -> None:
        """
        Write block(s) of data to the file
        """
        if (
            self.closed
            or block_number < 0
            or number_of_blocks < 0
            or block_number + number_of_blocks > self.entry.length
        ):
            raise OSError(errno.EIO, os.strerror(errno.EIO))
        self.entry.fs.disk.write_block(buffer, self.entry.file_position + block_number, number_of_blocks)
        self.entry.data = None

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


class RT11DirectoryEntry(AbstractDirectoryEntry):

    fs: "RT11Filesystem"
    status: int = E_NONE
    name: t.Tuple[int, int] = (0, 0)  # RAD50 name words
    extension: int = 0  # RAD50 extension word
    filename: str = ""  # Decoded name and extension
    length: int = 0  # Length in blocks
    job_channel: int = 0
    raw_creation_date: int = 0
    bits_in_last_block: int = FULL_BLOCK_BITS
    file_position: int = 0  # First block
    data: t.Optional[bytes] = None  # Cached content

    def __init__(self, fs: "RT11Filesystem"):
        self.fs = fs

    @classmethod
    def read(
        cls,
        fs: "RT11Filesystem",
        buffer: bytes,
        position: int,
        file_position: int,
        extra_bytes: int,
    ) -> "RT11DirectoryEntry":
        self = cls(fs)
        self.status = bytes_to_word(buffer, position)
        self.name = (bytes_to_word(buffer, position + 2), bytes_to_word(buffer, position + 4))
        self.extension = bytes_to_word(buffer, position + 6)
        self.length = bytes_to_word(buffer, position + 8)
        self.job_channel = bytes_to_word(buffer, position + 10)
        self.raw_creation_date = bytes_to_word(buffer, position + 12)
        if extra_bytes >= POS_EXTRA_BYTES:
            self.bits_in_last_block = bytes_to_word(buffer, position + 14)
        self.file_position = file_position
        if self.is_permanent or self.is_tentative:
            try:
                self.filename = join_6dot3(rad50_to_string(self.name), rad50_to_string([self.extension]))
            except ValueError:
                fs.logger.warning("Invalid RAD50 name in entry at block %d", file_position)
        return self

    def to_bytes(self) -> bytes:
        out = bytearray()
        out.extend(word_to_bytes(self.status))
        out.extend(word_to_bytes(self.name[0]))
        out.extend(word_to_bytes(self.name[1]))
        out.extend(word_to_bytes(self.extension))
        out.extend(word_to_bytes(self.length))
        out.extend(word_to_bytes(self.job_channel))
        out.extend(word_to_bytes(self.raw_creation_date))
        out.extend(word_to_bytes(self.bits_in_last_block))
        return bytes(out)

    @property
    def is_empty(self) -> bool:
        return self.status == E_MPTY

    @property
    def is_tentative(self) -> bool:
        return self.status == E_TENT

    @property
    def is_permanent(self) -> bool:
        return self.status == E_PERM

    @property
    def fullname(self) -> str:
        return self.filename

    @property
    def basename(self) -> str:
        return self.filename

    def get_length(self) -> int:
        """
        Get the length in blocks
        """
        return self.length

    def get_size(self) -> int:
        """
        Get file size in bytes, the last block holds
        bits_in_last_block / 8 bytes
        """
        size = self.length * BLOCK_SIZE
        bits = min(self.bits_in_last_block, FULL_BLOCK_BITS)
        if bits < FULL_BLOCK_BITS:
            size -= BLOCK_SIZE - bits // 8
        return max(size, 0)

    @property
    def creation_date(self) -> t.Optional[date]:
        return rt11_to_date(self.raw_creation_date)

    def delete(self) -> bool:
        """
        Delete the file
        """
        return self.fs.delete_file(self) == Outcome.SUCCESS

    def open(self, file_mode: t.Optional[str] = None) -> RT11File:
        """
        Open a file
        """
        return RT11File(self)

    def read_bytes(self, file_mode: t.Optional[str] = None) -> bytes:
        return self.fs.read_file(self)

    def __str__(self) -> str:
        if self.is_permanent or self.is_tentative:
            name = self.filename
        elif self.is_empty:
            name = "< UNUSED >"
        else:
            name = f"<{self.status:04X}>"
        return (
            f"{name:<11} "
            f"{rt11_date_to_str(self.raw_creation_date):>9} "
            f"{self.length:>6} {self.bits_in_last_block:>5} {self.file_position:>6}"
        )

    def __repr__(self) -> str:
        return str(self)


class RT11Filesystem(AbstractFilesystem):
    """
    RT-11 Filesystem, POS variant

    The directory is made of up to 4 segments of 2 blocks starting
    at block 6. Each segment has a 5 words header:

    +--------------------+
    |Segments available  |
    |Next segment        |
    |Highest segment     |
    |Extra bytes         |
    |First data block    |
    +--------------------+
    |Entries             |
    |.                   |
    +--------------------+
    |End-of-segment      |
    +--------------------+

    Files are stored contiguously, in directory order,
    starting at the first data block.
    """

    fs_name = "rt11"
    fs_description = "RT-11 (POS variant)"

    segments_available: int = 0
    next_segment: int = 0
    high_segment: int = 0
    extra_bytes: int = 0
    start_segment: int = 0
    blocks_free: int = 0
    files: t.List[RT11DirectoryEntry]

    def __init__(self, disk: "LogicalDisk", logger: logging.Logger = logger):
        self.disk = disk
        self.logger = logger
        self.files = []

    @classmethod
    def probe(cls, disk: "LogicalDisk") -> bool:
        self = cls(disk)
        try:
            self.read_volume_info()
        except (ValueError, OSError):
            return False
        return self.check_vol()

    @classmethod
    def mount(cls, disk: "LogicalDisk", logger: logging.Logger = logger) -> "RT11Filesystem":
        self = cls(disk, logger)
        self.read_volume_info()
        if not self.check_vol():
            raise OSError(errno.EINVAL, os.strerror(errno.EINVAL), "Not an RT-11 volume")
        self.load_directory()
        return self

    def read_volume_info(self) -> None:
        """
        Read the header of the first directory segment
        """
        buffer = self.disk.read_block(DIR_START)
        self.segments_available = bytes_to_word(buffer, 0)
        self.next_segment = bytes_to_word(buffer, 2)
        self.high_segment = bytes_to_word(buffer, 4)
        self.extra_bytes = bytes_to_word(buffer, 6)
        self.start_segment = bytes_to_word(buffer, 8)

    def check_vol(self) -> bool:
        """
        Check the directory header
        """
        if self.segments_available < self.high_segment:
            self.logger.debug("Segments available %d < highest segment %d", self.segments_available, self.high_segment)
            return False
        if self.start_segment != USER_START:
            self.logger.debug("First data block %d, expected %d", self.start_segment, USER_START)
            return False
        if self.extra_bytes == 0 or self.extra_bytes > MAX_EXTRA_BYTES:
            self.logger.debug("Invalid extra bytes %d", self.extra_bytes)
            return False
        if self.extra_bytes != POS_EXTRA_BYTES:
            self.logger.warning("Extra bytes %d, expected %d", self.extra_bytes, POS_EXTRA_BYTES)
        return True

    def load_directory(self) -> None:
        """
        Read the directory segments
        """
        self.files = []
        self.blocks_free = 0
        entry_size = DIR_ENTRY_SIZE + self.extra_bytes
        file_position = self.start_segment
        for segment_number in range(self.high_segment):
            buffer = self.disk.read_block(DIR_START + segment_number * 2, 2)
            data_block_number = bytes_to_word(buffer, 8)
            if data_block_number != file_position:
                self.logger.warning(
                    "Segment %d first data block %d, expected %d",
                    segment_number + 1,
                    data_block_number,
                    file_position,
                )
            position = DIRECTORY_SEGMENT_HEADER_SIZE
            while position + entry_size < DIRECTORY_SEGMENT_SIZE:
                if bytes_to_word(buffer, position) == E_EOS:
                    break
                entry = RT11DirectoryEntry.read(self, buffer, position, file_position, self.extra_bytes)
                if entry.is_empty:
                    self.blocks_free += entry.length
                elif entry.is_tentative:
                    self.logger.info("Tentative file %s at block %d", entry.filename, file_position)
                elif not entry.is_permanent:
                    self.logger.warning("Unknown status %04X at block %d", entry.status, file_position)
                self.logger.debug("Entry %s", entry)
                self.files.append(entry)
                file_position += entry.length
                position += entry_size

    def save(self) -> None:
        """
        Rewrite the whole directory
        """
        entry_size = DIR_ENTRY_SIZE + POS_EXTRA_BYTES
        entries_per_segment = (DIRECTORY_SEGMENT_SIZE - DIRECTORY_SEGMENT_HEADER_SIZE) // entry_size - 1
        segments = int(math.ceil(len(self.files) / entries_per_segment))
        if segments > DIR_SEG_MAX:
            self.logger.warning("Directory full, %d entries not written", len(self.files) - MAX_FILES)
            segments = DIR_SEG_MAX
        file_position = USER_START
        buffers: t.List[bytes] = []
        for segment_number in range(1, segments + 1):
            buffer = bytearray(DIRECTORY_SEGMENT_SIZE)
            buffer[0:2] = word_to_bytes(DIR_SEG_MAX)
            buffer[2:4] = word_to_bytes(0 if segment_number == segments else segment_number + 1)
            buffer[4:6] = word_to_bytes(segments)
            buffer[6:8] = word_to_bytes(POS_EXTRA_BYTES)
            buffer[8:10] = word_to_bytes(file_position)
            position = DIRECTORY_SEGMENT_HEADER_SIZE
            first = (segment_number - 1) * entries_per_segment
            for entry in self.files[first : first + entries_per_segment]:
                buffer[position : position + entry_size] = entry.to_bytes()
                position += entry_size
                file_position += entry.length
            buffer[position : position + 2] = word_to_bytes(E_EOS)
            buffers.append(bytes(buffer))
        # Nothing is written until every segment is built
        for segment_number, buffer in enumerate(buffers):
            self.disk.write_block(buffer, DIR_START + segment_number * 2, 2)
        self.segments_available = DIR_SEG_MAX
        self.next_segment = 2 if segments > 1 else 0
        self.high_segment = segments
        self.extra_bytes = POS_EXTRA_BYTES
        self.start_segment = USER_START

    def find_hole(self, length: int) -> int:
        """
        Return the index of the first empty entry of at least length blocks,
        Outcome.TOO_LARGE if the volume has not enough free blocks
        or Outcome.NO_HOLE if no empty entry is large enough
        """
        if length > self.blocks_free:
            return Outcome.TOO_LARGE
        for i, entry in enumerate(self.files):
            if entry.is_empty and entry.length >= length:
                return i
        return Outcome.NO_HOLE

    def enter_file(self, fullname: str, content: bytes, creation_date: t.Optional[date] = None) -> Outcome:
        """
        Create a new file
        """
        filename = format_6dot3(fullname)
        parts = split_6dot3(filename) if filename else None
        if parts is None:
            return Outcome.BAD_NAME
        if any(x.is_permanent and x.filename == filename for x in self.files):
            return Outcome.FILE_EXISTS
        length = int(math.ceil(len(content) / BLOCK_SIZE))
        bits = (len(content) % BLOCK_SIZE) * 8
        index = self.find_hole(length)
        if index < 0:
            return Outcome(index)
        hole = self.files[index]
        leftover = hole.length - length
        if leftover and len(self.files) >= MAX_FILES:
            return Outcome.DIRECTORY_FULL
        words = string_to_rad50(parts[0] + parts[1])
        self.disk.write_block(content.ljust(length * BLOCK_SIZE, b"\0"), hole.file_position, length)
        if leftover:
            tail = RT11DirectoryEntry(self)
            tail.status = E_MPTY
            tail.length = leftover
            tail.file_position = hole.file_position + length
            tail.raw_creation_date = hole.raw_creation_date
            self.files.append(tail)
        hole.status = E_PERM
        hole.name = (words[0], words[1])
        hole.extension = words[2]
        hole.filename = filename
        hole.length = length
        hole.bits_in_last_block = bits or FULL_BLOCK_BITS
        hole.job_channel = 0
        hole.raw_creation_date = date_to_rt11(creation_date or date.today())
        hole.data = content
        self.blocks_free -= length
        self.files.sort(key=lambda x: x.file_position)
        self.save()
        return Outcome.SUCCESS

    def delete_file(self, entry: RT11DirectoryEntry) -> Outcome:
        """
        Delete a permanent file
        """
        index = next((i for i, x in enumerate(self.files) if x is entry), -1)
        if index < 0 or not entry.is_permanent:
            self.logger.error("Can't delete %s, not a permanent file", entry.filename or entry.file_position)
            return Outcome.NOT_PERMANENT
        entry.status = E_MPTY
        entry.name = (0, 0)
        entry.extension = 0
        entry.filename = ""
        entry.bits_in_last_block = FULL_BLOCK_BITS
        entry.data = None
        self.blocks_free += entry.length
        if not self.coalesce():
            self.save()
        return Outcome.SUCCESS

    def coalesce(self) -> bool:
        """
        Merge adjacent empty entries, rewrite the directory if anything changed
        """
        merged = False
        i = 0
        while i < len(self.files) - 1:
            if self.files[i].is_empty and self.files[i + 1].is_empty:
                self.files[i].length += self.files[i + 1].length
                del self.files[i + 1]
                merged = True
            else:
                i += 1
        if merged:
            self.save()
        return merged

    def rename_file(self, entry: RT11DirectoryEntry, fullname: str) -> Outcome:
        """
        Rename a permanent file
        """
        if not entry.is_permanent:
            return Outcome.NOT_PERMANENT
        filename = format_6dot3(fullname)
        parts = split_6dot3(filename) if filename else None
        if parts is None:
            return Outcome.BAD_NAME
        if any(x is not entry and x.is_permanent and x.filename == filename for x in self.files):
            return Outcome.FILE_EXISTS
        words = string_to_rad50(parts[0] + parts[1])
        entry.name = (words[0], words[1])
        entry.extension = words[2]
        entry.filename = filename
        self.save()
        return Outcome.SUCCESS

    def compress(self) -> None:
        """
        Move all the files to the beginning of the data area,
        leaving a single empty entry at the end
        """
        end = USER_START + sum(x.length for x in self.files)
        used = [
            (x, self.disk.read_block(x.file_position, x.length) if x.length else b"")
            for x in self.files
            if not x.is_empty
        ]
        file_position = USER_START
        files = []
        for entry, content in used:
            if entry.file_position != file_position and entry.length:
                self.disk.write_block(content, file_position, entry.length)
            entry.file_position = file_position
            file_position += entry.length
            files.append(entry)
        if end > file_position:
            hole = RT11DirectoryEntry(self)
            hole.status = E_MPTY
            hole.length = end - file_position
            hole.file_position = file_position
            files.append(hole)
        self.files = files
        self.blocks_free = end - file_position
        self.save()

    def read_file(self, entry: RT11DirectoryEntry) -> bytes:
        """
        Read the content of a file, caching it in the entry
        """
        if entry.data is None:
            if entry.bits_in_last_block > FULL_BLOCK_BITS:
                self.logger.warning("%s: invalid bits in last block %d", entry.filename, entry.bits_in_last_block)
            size = entry.get_size()
            data = self.disk.read_block(entry.file_position, entry.length) if entry.length else b""
            entry.data = data[:size]
        return entry.data

    def filter_entries_list(
        self, pattern: t.Optional[str], include_all: bool = False, wildcard: bool = True
    ) -> t.Iterator[RT11DirectoryEntry]:
        if pattern:
            pattern = splitdrive(pattern)[1].upper()
        for entry in self.files:
            if not include_all and not entry.is_permanent:
                continue
            if filename_match(entry.basename, pattern, wildcard):
                yield entry

    @property
    def entries_list(self) -> t.Iterator[RT11DirectoryEntry]:
        yield from self.files

    def get_file_entry(self, fullname: str) -> RT11DirectoryEntry:
        filename = format_6dot3(splitdrive(fullname)[1])
        for entry in self.files:
            if entry.is_permanent and entry.filename == filename:
                return entry
        raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), fullname)

    def write_bytes(
        self,
        fullname: str,
        content: bytes,
        creation_date: t.Optional[date] = None,
    ) -> None:
        fullname = splitdrive(fullname)[1]
        try:
            self.get_file_entry(fullname).delete()
        except FileNotFoundError:
            pass
        outcome = self.enter_file(fullname, content, creation_date)
        if outcome == Outcome.BAD_NAME:
            raise OSError(errno.EINVAL, os.strerror(errno.EINVAL), fullname)
        elif outcome != Outcome.SUCCESS:
            raise OSError(errno.ENOSPC, os.strerror(errno.ENOSPC), fullname)

    def chdir(self, fullname: str) -> bool:
        return False

    def isdir(self, fullname: str) -> bool:
        return False

    def dir(self, pattern: t.Optional[str] = None, options: t.Dict[str, bool] = {}) -> None:
        i = 0
        files = 0
        blocks = 0
        for x in self.filter_entries_list(pattern, include_all=True):
            if x.is_empty:
                if options.get("brief"):
                    continue
                fullname = "< UNUSED >"
                date_str = ""
            elif x.is_permanent:
                if options.get("brief"):
                    sys.stdout.write(f"{x.filename}\n")
                    continue
                fullname = x.filename
                date_str = rt11_date_to_str(x.raw_creation_date)
                files = files + 1
                blocks = blocks + x.length
            else:
                continue
            i = i + 1
            sys.stdout.write("%10s %5d %9s" % (fullname, x.length, date_str))
            if i % 2 == 1:
                sys.stdout.write("    ")
            else:
                sys.stdout.write("\n")
        if options.get("brief"):
            return
        if i % 2 == 1:
            sys.stdout.write("\n")
        sys.stdout.write(" %d Files, %d Blocks\n" % (files, blocks))
        sys.stdout.write(" %d Free blocks\n" % self.blocks_free)

    def examine(self, arg: t.Optional[str] = None) -> None:
        if arg:
            self.dump(arg)
        else:
            sys.stdout.write(str(self))

    def initialize(self) -> None:
        """
        Write an empty directory, a single empty entry
        covers the whole data area
        """
        hole = RT11DirectoryEntry(self)
        hole.status = E_MPTY
        hole.length = self.disk.number_of_blocks - USER_START
        hole.file_position = USER_START
        hole.raw_creation_date = date_to_rt11(date.today())
        self.files = [hole]
        self.blocks_free = hole.length
        self.save()

    def get_pwd(self) -> str:
        return ""

    def __str__(self) -> str:
        buf = io.StringIO()
        buf.write(f"Segments available:    {self.segments_available}\n")
        buf.write(f"Next segment:          {self.next_segment}\n")
        buf.write(f"Highest segment:       {self.high_segment}\n")
        buf.write(f"Extra bytes:           {self.extra_bytes}\n")
        buf.write(f"First data block:      {self.start_segment}\n")
        buf.write(f"Free blocks:           {self.blocks_free}\n")
        buf.write("\nNum  File          Date  Length  Bits  Block")
        buf.write("\n---  ----          ----  ------  ----  -----\n")
        for i, x in enumerate(self.files):
            buf.write(f"{i:03d}  {x}\n")
        return buf.getvalue()
