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

r"""Extended Linear Address segment merging.

Data records are grouped by the *Extended Linear Address* record governing
them, the ``0x8xxx`` extensions are moved to ``0xAxxx``, and each group is
sorted by address before being emitted again under a freshly generated
*Extended Linear Address* record.

Records which are re-emitted unchanged keep their original text.
"""

import io
import logging
from typing import IO
from typing import Dict
from typing import Iterable
from typing import Iterator
from typing import List
from typing import Optional

from .records import IhexRecord
from .records import IhexTag
from .records import ParseError
from .utils import AnyBytes

_logger = logging.getLogger(__name__)

REMAP_MASK: int = 0xF000
r"""Bits of the extension selecting the remapped range."""

REMAP_FROM: int = 0x8000
r"""Extensions in this range are remapped."""

REMAP_TO: int = 0xA000
r"""Destination range of remapped extensions."""

Segments = Dict[int, List[IhexRecord]]


def remap_extension(extension: int) -> int:
    r"""Remaps an address extension.

    Extensions within ``0x8000-0x8FFF`` are moved to ``0xA000-0xAFFF``,
    keeping their low 12 bits. Any other extension is returned unchanged.

    Args:
        extension (int):
            High 16 bits of a linear address.

    Returns:
        int: Remapped extension.

    Examples:
        >>> from hexmerge.merge import remap_extension
        >>> hex(remap_extension(0x8001))
        '0xa001'
        >>> hex(remap_extension(0x8FFF))
        '0xafff'
        >>> hex(remap_extension(0x0800))
        '0x800'
        >>> hex(remap_extension(0xA001))
        '0xa001'
    """

    if (extension & REMAP_MASK) == REMAP_FROM:
        extension = REMAP_TO | (extension & (0xFFFF ^ REMAP_MASK))
    return extension


class SegmentMerger:
    r"""Groups data records by Extended Linear Address.

    Records are fed in file order via :meth:`scan`; :meth:`finish` closes the
    scan, then :meth:`emit` yields the output lines.

    While scanning, the only state is the currently open extension (``None``
    before the first *Extended Linear Address* record) and the buffer of data
    records collected under it.
    Opening a new extension seals the previous one into :attr:`segments`.

    Attributes:
        others (list of :class:`IhexRecord`):
            Records not belonging to any segment, in file order.
            These include any *End Of File* records.

        start_record (:class:`IhexRecord`):
            The *Start Linear Address* record, if any.

        has_eof (bool):
            At least one *End Of File* record was scanned.

        segments (dict):
            Sealed data records, by original extension.
    """

    def __init__(self):

        self.others: List[IhexRecord] = []
        self.start_record: Optional[IhexRecord] = None
        self.has_eof: bool = False
        self.segments: Segments = {}

        self._extension: Optional[int] = None
        self._buffer: List[IhexRecord] = []

    def _seal(self) -> None:

        records = self.segments.setdefault(self._extension, [])
        records.extend(self._buffer)
        self._buffer = []

    def scan(self, record: IhexRecord) -> 'SegmentMerger':
        r"""Classifies a record.

        Args:
            record (:class:`IhexRecord`):
                Next record of the file.

        Returns:
            :class:`SegmentMerger`: *self*.
        """

        tag = record.tag

        if tag == IhexTag.END_OF_FILE:
            self.others.append(record)
            self.has_eof = True

        elif tag == IhexTag.START_LINEAR_ADDRESS:
            self.start_record = record

        elif tag == IhexTag.EXTENDED_LINEAR_ADDRESS:
            if len(record.data) >= 2:
                if self._extension is not None:
                    self._seal()
                self._extension = (record.data[0] << 8) | record.data[1]
                self._buffer = []
            else:
                _logger.warning('incomplete extended linear address: %s',
                                record.get_line().decode(errors='replace'))
                self.others.append(record)

        elif tag == IhexTag.DATA and self._extension is not None:
            self._buffer.append(record)

        else:
            self.others.append(record)

        return self

    def finish(self) -> 'SegmentMerger':
        r"""Ends the scan.

        The open segment is sealed, unless it collected no data records.

        Returns:
            :class:`SegmentMerger`: *self*.
        """

        if self._extension is not None and self._buffer:
            self._seal()
        self._extension = None
        self._buffer = []

        _logger.info('original segments: %d', len(self.segments))
        for extension in sorted(self.segments):
            _logger.info('extension: 0x%04X, data records: %d',
                         extension, len(self.segments[extension]))
        return self

    def remap(self) -> Segments:
        r"""Remaps and sorts the sealed segments.

        Segments are merged by their remapped extension, concatenating their
        data records in ascending original extension order.
        Each merged segment is then sorted by record address; records at the
        same address keep their relative order.
        Segments without data records are left out.

        Returns:
            dict: Data records by remapped extension, in ascending order.

        Examples:
            >>> from hexmerge.merge import SegmentMerger
            >>> from hexmerge.records import IhexRecord, IhexTag
            >>> merger = SegmentMerger()
            >>> _ = merger.scan(IhexRecord.create_extended_linear_address(0x8001))
            >>> _ = merger.scan(IhexRecord(IhexTag.DATA, address=0x0010, data=b'\x01'))
            >>> _ = merger.scan(IhexRecord(IhexTag.DATA, address=0x0005, data=b'\x02'))
            >>> merged = merger.finish().remap()
            >>> [hex(key) for key in merged]
            ['0xa001']
            >>> [hex(record.address) for record in merged[0xA001]]
            ['0x5', '0x10']
        """

        merged: Segments = {}

        for extension in sorted(self.segments):
            remapped = remap_extension(extension)
            if remapped != extension:
                _logger.info('remapped extension: 0x%04X -> 0x%04X',
                             extension, remapped)
            merged.setdefault(remapped, []).extend(self.segments[extension])

        merged = {extension: records for extension, records in merged.items()
                  if records}

        _logger.info('merged segments: %d', len(merged))

        return {extension: sorted(merged[extension], key=lambda r: r.address)
                for extension in sorted(merged)}

    def emit(self) -> Iterator[bytes]:
        r"""Yields the merged lines.

        The order is:

        #. other records, but *End Of File* and *Start Linear Address*;
        #. each merged segment, by ascending extension, introduced by a new
           *Extended Linear Address* record;
        #. the *Start Linear Address* record, if any;
        #. the first *End Of File* record, or a new one if missing.

        Yields:
            bytes: Line, without line terminator.
        """

        eof_record = None
        for record in self.others:
            if record.tag == IhexTag.END_OF_FILE:
                if eof_record is None:
                    eof_record = record
            else:
                yield record.get_line()

        merged = self.remap()
        for extension, records in merged.items():
            yield IhexRecord.create_extended_linear_address(extension).to_bytestr()
            for record in records:
                yield record.get_line()

        if self.start_record is not None:
            yield self.start_record.get_line()

        if eof_record is not None:
            yield eof_record.get_line()
        else:
            yield IhexRecord.create_end_of_file().to_bytestr()

    def merge_lines(self, lines: Iterable[AnyBytes]) -> Iterator[bytes]:
        r"""Merges lines of an Intel HEX file.

        Lines which cannot be parsed are yielded immediately, unchanged, and
        a warning is logged. The merged records follow after the last line.

        Args:
            lines (bytes):
                Input lines; line terminators are ignored.

        Yields:
            bytes: Output line, without line terminator.

        Examples:
            >>> from hexmerge.merge import SegmentMerger
            >>> lines = [b'garbage', b':0200000480', b':00000001FF']
            >>> for line in SegmentMerger().merge_lines(lines):
            ...     print(line.decode())
            garbage
            :0200000480
            :00000001FF
        """

        for line in lines:
            try:
                record = IhexRecord.parse(line)
            except ParseError as exc:
                _logger.warning('cannot parse line, passed through (%s): %s',
                                exc, exc.line.decode(errors='replace'))
                yield exc.line
                continue

            self.scan(record)

        self.finish()
        yield from self.emit()


def merge_lines(lines: Iterable[AnyBytes]) -> Iterator[bytes]:
    r"""Merges lines of an Intel HEX file.

    See Also:
        :meth:`SegmentMerger.merge_lines`
    """

    return SegmentMerger().merge_lines(lines)


def merge_stream(
    stream_in: IO[bytes],
    stream_out: IO[bytes],
    end: bytes = b'\n',
) -> SegmentMerger:
    r"""Merges an Intel HEX byte stream.

    Output lines are written as soon as they are available.

    Args:
        stream_in (bytes IO):
            Input byte stream.

        stream_out (bytes IO):
            Output byte stream.

        end (bytes):
            Output line terminator.

    Returns:
        :class:`SegmentMerger`: The merger, for inspection.
    """

    merger = SegmentMerger()
    for line in merger.merge_lines(stream_in):
        stream_out.write(line + end)
    return merger


def merge_bytes(data: AnyBytes) -> bytes:
    r"""Merges Intel HEX contents.

    Args:
        data (bytes):
            Intel HEX file contents.

    Returns:
        bytes: Merged contents, with ``\n`` line terminators.

    Examples:
        >>> from hexmerge.merge import merge_bytes
        >>> data = (b':02000004800179\n'
        ...         b':0100100011DE\n'
        ...         b':0100050022D8\n')
        >>> print(merge_bytes(data).decode(), end='')
        :02000004A00159
        :0100050022D8
        :0100100011DE
        :00000001FF
    """

    stream_out = io.BytesIO()
    merge_stream(io.BytesIO(data), stream_out)
    return stream_out.getvalue()
