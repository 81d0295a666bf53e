# Copyright (c) 2013-2025, Andrea Zoppi
# All rights reserved.
#
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions are met:
#
# 1. Redistributions of source code must retain the above copyright notice,
#    this list of conditions and the following disclaimer.
#
# 2. Redistributions in binary form must reproduce the above copyright
#    notice, this list of conditions and the following disclaimer in the
#    documentation and/or other materials provided with the distribution.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS"
# AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO, THE
# IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE
# ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR CONTRIBUTORS BE
# LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR
# CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO, PROCUREMENT OF
# SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS
# INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN
# CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE)
# ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE, EVEN IF ADVISED OF THE
# POSSIBILITY OF SUCH DAMAGE.

r"""Generic utility functions."""

import binascii
from typing import Any
from typing import Optional
from typing import Union

try:
    from typing import TypeAlias
except ImportError:  # pragma: no cover
    TypeAlias = Any  # Python < 3.10

AnyBytes: TypeAlias = Union[bytes, bytearray, memoryview]


def checksum(bytestr: AnyBytes) -> int:
    r"""Computes the Intel HEX checksum of a byte string.

    The checksum is the two's complement of the sum of all the bytes, so that
    the sum of `bytestr` followed by its checksum is zero modulo 256.

    Args:
        bytestr (bytes):
            Bytes to sum.

    Returns:
        int: Checksum byte value.

    Examples:
        >>> from hexmerge.utils import checksum
        >>> checksum(b'\x00\x00\x00\x01')
        255
        >>> checksum(b'\x02\x00\x00\x04\xA0\x01')
        89
        >>> checksum(b'')
        0
    """

    return (0x100 - (sum(bytestr) & 0xFF)) & 0xFF


def hexlify(
    bytestr: Union[bytes, bytearray],
    sep: Optional[Union[bytes, bytearray]] = None,
    upper: bool = True,
) -> bytes:
    r"""Converts raw bytes into a hexadecimal byte string.

    Args:
        bytestr (bytes):
            Source byte string.

        sep (bytes):
            Optional byte separator.

        upper (bool):
            Uppercase hexadecimal string.

    Returns:
        bytes: Hexadecimal byte string.

    Examples:
        >>> from hexmerge.utils import hexlify
        >>> hexlify(b'\xAA\xBB\xCC')
        b'AABBCC'
        >>> hexlify(b'\xAA\xBB\xCC', sep=b' ')
        b'AA BB CC'
        >>> hexlify(b'\xAA\xBB\xCC', upper=False)
        b'aabbcc'
    """

    if sep:
        hexstr = binascii.hexlify(bytestr, sep)
    else:
        hexstr = binascii.hexlify(bytestr)

    if upper:
        hexstr = hexstr.upper()

    return hexstr


def strip_eol(line: AnyBytes) -> bytes:
    r"""Removes the line terminator.

    All the trailing ``\r`` and ``\n`` characters are removed.

    Examples:
        >>> from hexmerge.utils import strip_eol
        >>> strip_eol(b':00000001FF\r\n')
        b':00000001FF'
        >>> strip_eol(b':00000001FF')
        b':00000001FF'
        >>> strip_eol(b'garbage\r\r\n')
        b'garbage'
    """

    return bytes(line).rstrip(b'\r\n')


def unhexlify(hexstr: Union[bytes, bytearray]) -> bytes:
    r"""Converts a hexadecimal byte string into raw bytes.

    Both lowercase and uppercase digits are accepted.

    Args:
        hexstr (bytes):
            Source hexadecimal byte string.

    Returns:
        bytes: Raw byte string.

    Raises:
        ValueError: Non-hexadecimal digit, or odd number of digits.

    Examples:
        >>> from hexmerge.utils import unhexlify
        >>> unhexlify(b'AABBcc')
        b'\xaa\xbb\xcc'
        >>> unhexlify(b'AAB')
        Traceback (most recent call last):
            ...
        ValueError: odd number of hex digits
    """

    if len(hexstr) % 2:
        raise ValueError('odd number of hex digits')

    try:
        bytestr = binascii.unhexlify(hexstr)
    except binascii.Error:
        raise ValueError('non-hex digit') from None
    return bytestr
