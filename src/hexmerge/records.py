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

r"""Intel HEX records.

See Also:
    `<https://en.wikipedia.org/wiki/Intel_HEX>`_
"""

import enum
from typing import Any
from typing import MutableMapping
from typing import Optional
from typing import Sequence
from typing import Type
from typing import Union

from .utils import AnyBytes
from .utils import checksum as _checksum
from .utils import hexlify
from .utils import strip_eol
from .utils import unhexlify

EllipsisType = Type['Ellipsis']

MIN_RECORD_SIZE: int = 5
r"""Minimum record size, in bytes: count, address (2), tag, checksum."""


class ParseError(ValueError):
    r"""A line cannot be parsed as an Intel HEX record.

    Attributes:
        line (bytes):
            The offending line, without line terminator.
    """

    def __init__(self, message: str, line: AnyBytes = b''):

        super().__init__(message)
        self.line: bytes = bytes(line)


class NotAHexLineError(ParseError):
    r"""The line does not start with ``:``."""


class MalformedHexError(ParseError):
    r"""Non-hexadecimal digit, or odd number of digits."""


class TooShortError(ParseError):
    r"""Fewer bytes than a minimal record."""


class ChecksumMismatchError(ParseError):
    r"""The bytes of the record do not sum to zero."""


class IhexTag(enum.IntEnum):
    r"""Intel HEX tag."""

    DATA = 0
    r"""Binary data."""

    END_OF_FILE = 1
    r"""End Of File."""

    EXTENDED_SEGMENT_ADDRESS = 2
    r"""Extended Segment Address."""

    START_SEGMENT_ADDRESS = 3
    r"""Start Segment Address."""

    EXTENDED_LINEAR_ADDRESS = 4
    r"""Extended Linear Address."""

    START_LINEAR_ADDRESS = 5
    r"""Start Linear Address."""


AnyTag = Union[IhexTag, int]


def to_tag(value: int) -> AnyTag:
    r"""Converts a numeric value into a tag.

    Known values become :class:`IhexTag` members; unknown values are kept as
    plain integers, so that they are preserved but not interpreted.

    Examples:
        >>> from hexmerge.records import to_tag
        >>> to_tag(4)
        <IhexTag.EXTENDED_LINEAR_ADDRESS: 4>
        >>> to_tag(0x42)
        66
    """

    try:
        return IhexTag(value)
    except ValueError:
        return value.__index__()


def generate(
    tag: AnyTag,
    address: int,
    data: AnyBytes,
) -> bytes:
    r"""Generates a record line.

    The record bytes (count, address, tag, data) are followed by their
    checksum, then serialized as uppercase hexadecimal digits after the
    leading ``:``.

    Args:
        tag (int):
            Record tag.

        address (int):
            16-bit load offset.

        data (bytes):
            Record payload, up to 255 bytes.

    Returns:
        bytes: Serialized line, without line terminator.

    Raises:
        ValueError: Field out of range.

    Examples:
        >>> from hexmerge.records import IhexTag, generate
        >>> generate(IhexTag.EXTENDED_LINEAR_ADDRESS, 0, b'\xA0\x01')
        b':02000004A00159'
        >>> generate(IhexTag.END_OF_FILE, 0, b'')
        b':00000001FF'
        >>> generate(IhexTag.DATA, 0x1234, b'abc')
        b':0312340061626391'
    """

    tag = tag.__index__()
    if not 0 <= tag <= 0xFF:
        raise ValueError('tag overflow')

    address = address.__index__()
    if not 0 <= address <= 0xFFFF:
        raise ValueError('address overflow')

    size = len(data)
    if size > 0xFF:
        raise ValueError('data size overflow')

    buffer = bytearray((size, address >> 8, address & 0xFF, tag))
    buffer += data
    buffer.append(_checksum(buffer))
    return b':' + hexlify(buffer)


class IhexRecord:
    r"""Intel HEX record object.

    A record is a single line of an Intel HEX file.

    Attributes:
        tag (:class:`IhexTag` or int):
            Record tag. Unknown values are kept as plain integers.

        address (int):
            16-bit load offset of the record header.
            For *data* records it is the low half of the target address.
            *Extended Linear Address* records carry the high half within
            :attr:`data` instead.

        data (bytes):
            Payload bytes.

        count (int):
            Declared payload size.

        checksum (int):
            Checksum byte.

        line (bytes):
            Source line, without line terminator.
            ``None`` for records not parsed from text.

    Args:
        tag (:class:`IhexTag` or int):
            See :attr:`tag` attribute.

        address (int):
            See :attr:`address` attribute.

        data (bytes):
            See :attr:`data` attribute.

        count (int):
            See :attr:`count` attribute.
            ``Ellipsis`` initializes :attr:`count` via :meth:`compute_count`.

        checksum (int):
            See :attr:`checksum` attribute.
            ``Ellipsis`` initializes :attr:`checksum` via
            :meth:`compute_checksum`.

        line (bytes):
            See :attr:`line` attribute.

        validate (bool):
            If true, :meth:`validate` is called upon initialization.
    """

    EQUALITY_KEYS: Sequence[str] = [
        'address',
        'checksum',
        'count',
        'data',
        'tag',
    ]
    r"""Meta keys for equality checks."""

    META_KEYS: Sequence[str] = [
        'address',
        'checksum',
        'count',
        'data',
        'line',
        'tag',
    ]
    r"""Meta keys."""

    Tag: Type[IhexTag] = IhexTag

    def __bytes__(self) -> bytes:

        return self.to_bytestr()

    def __eq__(self, other: Any) -> bool:

        return not self != other

    def __init__(
        self,
        tag: AnyTag,
        address: int = 0,
        data: AnyBytes = b'',
        count: Union[int, EllipsisType] = Ellipsis,
        checksum: Union[int, EllipsisType] = Ellipsis,
        line: Optional[bytes] = None,
        validate: bool = True,
    ):

        self.address: int = address.__index__()
        self.checksum: int = 0
        self.count: int = 0
        self.data: bytes = bytes(data)
        self.line: Optional[bytes] = line
        self.tag: AnyTag = to_tag(tag)

        if count is Ellipsis:
            self.update_count()
        else:
            self.count = count.__index__()

        if checksum is Ellipsis:
            self.update_checksum()
        else:
            self.checksum = checksum.__index__()

        if validate:
            self.validate()

    def __ne__(self, other: Any) -> bool:

        for key in self.EQUALITY_KEYS:
            if not hasattr(other, key):
                return True
            if getattr(self, key) != getattr(other, key):
                return True

        return False

    def __repr__(self) -> str:

        meta = self.get_meta()
        text = f'<{self.__class__!s} @0x{id(self):08X} '
        text += ' '.join(f'{key!s}:={value!r}' for key, value in meta.items())
        text += '>'
        return text

    def __str__(self) -> str:

        return self.to_bytestr().decode()

    def compute_checksum(self) -> int:
        r"""Computes the checksum field value.

        Returns:
            int: Computed checksum value.

        Examples:
            >>> from hexmerge.records import IhexRecord
            >>> record = IhexRecord(IhexRecord.Tag.DATA, data=b'abc')
            >>> record.compute_checksum()
            215
        """

        address = self.address & 0xFFFF
        header = bytes((self.count & 0xFF, address >> 8, address & 0xFF,
                        self.tag & 0xFF))
        return _checksum(header + self.data)

    def compute_count(self) -> int:

        return len(self.data)

    @classmethod
    def create_end_of_file(cls) -> 'IhexRecord':
        r"""Creates an End Of File record.

        Returns:
            :class:`IhexRecord`: End Of File record object.

        Examples:
            >>> from hexmerge.records import IhexRecord
            >>> str(IhexRecord.create_end_of_file())
            ':00000001FF'
        """

        return cls(cls.Tag.END_OF_FILE)

    @classmethod
    def create_extended_linear_address(cls, extension: int) -> 'IhexRecord':
        r"""Creates an Extended Linear Address record.

        Args:
            extension (int):
                Address extension value, i.e. the high 16 bits of the
                linear address.

        Returns:
            :class:`IhexRecord`: Extended Linear Address record object.

        Examples:
            >>> from hexmerge.records import IhexRecord
            >>> record = IhexRecord.create_extended_linear_address(0x1234)
            >>> str(record)
            ':020000041234B4'
        """

        extension = extension.__index__()
        if not 0 <= extension <= 0xFFFF:
            raise ValueError('extension overflow')

        data = extension.to_bytes(2, byteorder='big')
        return cls(cls.Tag.EXTENDED_LINEAR_ADDRESS, data=data)

    def get_line(self) -> bytes:
        r"""Gets the line text of the record.

        Returns:
            bytes: :attr:`line` if the record was parsed from text, else the
            serialization of its fields.

        Examples:
            >>> from hexmerge.records import IhexRecord
            >>> IhexRecord.parse(b':00000001ff\n').get_line()
            b':00000001ff'
            >>> IhexRecord.create_end_of_file().get_line()
            b':00000001FF'
        """

        if self.line is None:
            return self.to_bytestr()
        return self.line

    def get_meta(self) -> MutableMapping[str, Any]:

        return {key: getattr(self, key) for key in self.META_KEYS}

    @classmethod
    def parse(cls, line: AnyBytes) -> 'IhexRecord':
        r"""Parses a record from a line.

        The line terminator, if any, is stripped; the remaining text is kept
        as :attr:`line`.

        If the declared count exceeds the available payload, the payload is
        clipped so that it never includes the checksum byte.

        Args:
            line (bytes):
                Line to parse.

        Returns:
            :class:`IhexRecord`: Parsed record.

        Raises:
            NotAHexLineError: Missing leading ``:``.
            MalformedHexError: Invalid hexadecimal digits.
            TooShortError: Fewer than 5 bytes.
            ChecksumMismatchError: Bytes do not sum to zero.

        Examples:
            >>> from hexmerge.records import IhexRecord
            >>> record = IhexRecord.parse(b':02000004800179\r\n')
            >>> record.tag
            <IhexTag.EXTENDED_LINEAR_ADDRESS: 4>
            >>> record.data, record.line
            (b'\x80\x01', b':02000004800179')
            >>> IhexRecord.parse(b'00000001FF')
            Traceback (most recent call last):
                ...
            hexmerge.records.NotAHexLineError: missing colon
        """

        line = strip_eol(line)

        if not line.startswith(b':'):
            raise NotAHexLineError('missing colon', line)

        try:
            buffer = unhexlify(line[1:])
        except ValueError as exc:
            raise MalformedHexError(str(exc), line) from None

        if len(buffer) < MIN_RECORD_SIZE:
            raise TooShortError('record too short', line)

        if sum(buffer) & 0xFF:
            raise ChecksumMismatchError('wrong checksum', line)

        count = buffer[0]
        address = (buffer[1] << 8) | buffer[2]
        tag = buffer[3]
        data = buffer[4:min(4 + count, len(buffer) - 1)]

        record = cls(tag,
                     address=address,
                     data=data,
                     count=count,
                     checksum=buffer[-1],
                     line=line,
                     validate=False)
        return record

    def to_bytestr(self, end: AnyBytes = b'') -> bytes:
        r"""Serializes the record fields into a line.

        Args:
            end (bytes):
                Line terminator.

        Returns:
            bytes: Serialized line.

        Examples:
            >>> from hexmerge.records import IhexRecord
            >>> record = IhexRecord(IhexRecord.Tag.DATA, address=0x1234, data=b'abc')
            >>> record.to_bytestr(end=b'\n')
            b':0312340061626391\n'
        """

        bytestr = b':%02X%04X%02X%s%02X%s' % (
            self.count & 0xFF,
            self.address & 0xFFFF,
            self.tag & 0xFF,
            hexlify(self.data),
            self.checksum & 0xFF,
            end,
        )
        return bytestr

    def update_checksum(self) -> 'IhexRecord':

        self.checksum = self.compute_checksum()
        return self

    def update_count(self) -> 'IhexRecord':

        self.count = self.compute_count()
        return self

    def validate(self) -> 'IhexRecord':
        r"""Validates consistency of attribute values.

        Returns:
            :class:`IhexRecord`: *self*.

        Raises:
            ValueError: Some attributes are inconsistent.

        Examples:
            >>> from hexmerge.records import IhexRecord
            >>> record = IhexRecord.create_end_of_file()
            >>> record.checksum = 0
            >>> _ = record.validate()
            Traceback (most recent call last):
                ...
            ValueError: wrong checksum
        """

        if not 0 <= self.address <= 0xFFFF:
            raise ValueError('address overflow')

        if not 0 <= self.tag <= 0xFF:
            raise ValueError('tag overflow')

        if len(self.data) > 0xFF:
            raise ValueError('data size overflow')

        if not 0 <= self.count <= 0xFF:
            raise ValueError('count overflow')

        if self.count != self.compute_count():
            raise ValueError('wrong count')

        if not 0 <= self.checksum <= 0xFF:
            raise ValueError('checksum overflow')

        if self.checksum != self.compute_checksum():
            raise ValueError('wrong checksum')

        return self
