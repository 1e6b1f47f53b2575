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

__all__ = [
    "BLOCK_SIZE",
    "ASCII",
    "IMAGE",
    "READ_FILE_FULL",
    "bytes_to_dword",
    "bytes_to_word",
    "dump_struct",
    "dword_to_bytes",
    "filename_match",
    "hex_dump",
    "read_string",
    "signed_word",
    "splitdrive",
    "word_to_bytes",
]

import fnmatch
import sys
from typing import Any, Dict, List, Optional, Tuple

BLOCK_SIZE = 512
BYTES_PER_LINE = 16
READ_FILE_FULL = -1
ASCII = "ASCII"  # Copy in ASCII mode
IMAGE = "IMAGE"  # Copy in image mode


def bytes_to_word(val: bytes, position: int = 0) -> int:
    """
    Converts two bytes to a single integer (word)
    """
    return val[1 + position] << 8 | val[0 + position]


def word_to_bytes(val: int) -> bytes:
    """
    Converts an integer (word) to two bytes
    """
    val &= 0xFFFF
    return bytes([val % 256, val // 256])


def bytes_to_dword(val: bytes, position: int = 0) -> int:
    """
    Converts four bytes to a 32-bit integer, low order word first
    """
    return bytes_to_word(val, position) | bytes_to_word(val, position + 2) << 16


def dword_to_bytes(val: int) -> bytes:
    """
    Converts a 32-bit integer to four bytes, low order word first
    """
    return word_to_bytes(val & 0xFFFF) + word_to_bytes((val >> 16) & 0xFFFF)


def signed_word(val: int) -> int:
    """
    Interpret a word as a two's complement 16-bit integer
    """
    val &= 0xFFFF
    return val - 0x10000 if val & 0x8000 else val


def read_string(buffer: bytes, position: int, length: int) -> str:
    """
    Read a fixed length 8-bit string
    """
    if position < 0 or length < 0 or position + length > len(buffer):
        raise ValueError(f"String at {position} of length {length} exceeds buffer size {len(buffer)}")
    return buffer[position : position + length].decode("latin-1")


def splitdrive(path: str) -> Tuple[Optional[str], str]:
    """
    Split a pathname into device and path.
    """
    result = path.split(":", 1)
    if len(result) < 2:
        return (None, path)
    else:
        return (result[0].upper(), result[1])


def hex_dump(data: bytes, bytes_per_line: int = BYTES_PER_LINE) -> None:
    """
    Display contents in hexadecimal
    """
    for i in range(0, len(data), bytes_per_line):
        line = data[i : i + bytes_per_line]
        hex_str = " ".join([f"{x:02x}" for x in line])
        ascii_str = "".join([chr(x) if 32 <= x <= 126 else "." for x in line])
        sys.stdout.write(f"{i:08x}   {hex_str.ljust(3 * bytes_per_line)}  {ascii_str}\n")


def dump_struct(d: Dict[str, Any], exclude: List[str] = [], include: List[str] = []) -> str:
    result: List[str] = []
    for k, v in d.items():
        if (type(v) in (int, str, bytes, list, bool) or k in include) and k not in exclude:
            if len(k) < 6:
                label = k.upper() + ":"
            else:
                label = k.replace("_", " ").title() + ":"
            result.append(f"{label:20s}{v}")
    return "\n".join(result)


def filename_match(basename: str, pattern: Optional[str], wildcard: bool) -> bool:
    if not pattern:
        return True
    if wildcard:
        return fnmatch.fnmatch(basename.upper(), pattern.upper())
    else:
        return basename.upper() == pattern.upper()
