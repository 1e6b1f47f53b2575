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
    "RAD50",
    "format_6dot3",
    "join_6dot3",
    "rad50_to_string",
    "rad50_word_to_asc",
    "split_6dot3",
    "string_to_rad50",
]

import typing as t

# Code 29 is reserved
RAD50 = " ABCDEFGHIJKLMNOPQRSTUVWXYZ$.%0123456789"
RAD50_MAX = len(RAD50) ** 3


def rad50_word_to_asc(val: int) -> str:
    """
    Convert RAD50 word to 3 chars of ASCII, spaces included
    """
    if not 0 <= val < RAD50_MAX:
        raise ValueError(f"Invalid RAD50 word {val}")
    a = val // 1600
    rest = val - a * 1600
    return RAD50[a] + RAD50[rest // 40] + RAD50[rest % 40]


def rad50_to_string(words: t.Iterable[int]) -> str:
    """
    Convert a sequence of RAD50 words to ASCII
    """
    return "".join(rad50_word_to_asc(word) for word in words)


def string_to_rad50(val: str) -> t.List[int]:
    """
    Convert ASCII to RAD50 words, 3 chars per word.
    Characters outside the RAD50 set are skipped,
    a trailing partial word is kept only if it is not blank.
    """
    result: t.List[int] = []
    word = 0
    count = 0
    for c in val.upper():
        code = RAD50.find(c)
        if code < 0:
            continue
        word += code * (1600, 40, 1)[count]
        count += 1
        if count == 3:
            result.append(word)
            word = 0
            count = 0
    if word > 0:
        result.append(word)
    return result


def split_6dot3(val: str) -> t.Optional[t.Tuple[str, str]]:
    """
    Split a filename in a 6 chars name and a 3 chars extension,
    padded with spaces. Return None if the name is empty.
    """
    if not val.strip():
        return None
    parts = [x for x in val.split(".") if x]
    if not parts:
        return None
    if len(parts) > 2:
        name = "".join(parts[:-1]).strip()
    else:
        name = parts[0]
    name = (name + "     ")[:6]
    extension = (parts[-1] + "   ")[:3] if len(parts) > 1 else "   "
    return name, extension


def join_6dot3(name: str, extension: str) -> str:
    """
    Join name and extension, dropping blanks
    """
    if extension.strip():
        name = name + "." + extension
    return "".join(name.split())


def format_6dot3(val: str) -> str:
    """
    Convert a filename to a valid 6.3 filename
    """
    tmp = "".join(rad50_to_string(string_to_rad50(val)).split()).lstrip(".")
    parts = split_6dot3(tmp) if tmp else None
    if parts is None:
        return ""
    return join_6dot3(*parts)
