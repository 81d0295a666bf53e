import io
import logging

from hexmerge.merge import SegmentMerger
from hexmerge.merge import merge_bytes
from hexmerge.merge import merge_lines
from hexmerge.merge import merge_stream
from hexmerge.merge import remap_extension
from hexmerge.records import IhexRecord
from hexmerge.records import IhexTag
from hexmerge.records import generate

DATA = IhexTag.DATA
ESA = IhexTag.EXTENDED_SEGMENT_ADDRESS
ELA = IhexTag.EXTENDED_LINEAR_ADDRESS
SLA = IhexTag.START_LINEAR_ADDRESS

EOF_LINE = b':00000001FF'


def ela(extension):
    return generate(ELA, 0, extension.to_bytes(2, byteorder='big'))


def dat(address, data=b'\x00'):
    return generate(DATA, address, data)


def run(lines):
    return list(merge_lines(lines))


def test_remap_extension():
    vector = [
        (0x0000, 0x0000),
        (0x0800, 0x0800),
        (0x7FFF, 0x7FFF),
        (0x8000, 0xA000),
        (0x8001, 0xA001),
        (0x8123, 0xA123),
        (0x8FFF, 0xAFFF),
        (0x9000, 0x9000),
        (0xA000, 0xA000),
        (0xAFFF, 0xAFFF),
        (0xFFFF, 0xFFFF),
    ]
    for extension, expected in vector:
        assert remap_extension(extension) == expected


def test_remap_extension_idempotent():
    for extension in range(0x10000):
        remapped = remap_extension(extension)
        assert remap_extension(remapped) == remapped


def test_scenario_sorted_remapped_segment():
    lines = [
        b':02000004800179',
        b':0100100011DE',
        b':0100050022D8',
        b':0100200033AC',
    ]
    assert run(lines) == [
        b':02000004A00159',
        b':0100050022D8',
        b':0100100011DE',
        b':0100200033AC',
        EOF_LINE,
    ]


def test_stable_sort():
    first = dat(0x0010, b'\x01')
    second = dat(0x0010, b'\x02')
    third = dat(0x0010, b'\x03')
    lines = [ela(0x0001), dat(0x0020), first, second, dat(0x0000), third]
    assert run(lines) == [
        ela(0x0001),
        dat(0x0000),
        first,
        second,
        third,
        dat(0x0020),
        EOF_LINE,
    ]


def test_distinct_remapped_segments():
    lines = [
        ela(0x8FFF), dat(0x0001, b'\xFF'),
        ela(0x8000), dat(0x0001, b'\x00'),
    ]
    assert run(lines) == [
        ela(0xA000), dat(0x0001, b'\x00'),
        ela(0xAFFF), dat(0x0001, b'\xFF'),
        EOF_LINE,
    ]


def test_reopened_extension_concatenates():
    lines = [
        ela(0x8000), dat(0x0100, b'\x01'), dat(0x0010, b'\x02'),
        ela(0x0001), dat(0x0000, b'\x03'),
        ela(0x8000), dat(0x0010, b'\x04'), dat(0x0000, b'\x05'),
    ]
    assert run(lines) == [
        ela(0x0001), dat(0x0000, b'\x03'),
        ela(0xA000),
        dat(0x0000, b'\x05'),
        dat(0x0010, b'\x02'),
        dat(0x0010, b'\x04'),
        dat(0x0100, b'\x01'),
        EOF_LINE,
    ]


def test_remapped_and_native_extensions_coalesce():
    lines = [
        ela(0xA001), dat(0x0002, b'\xAA'), dat(0x0001, b'\xAA'),
        ela(0x8001), dat(0x0001, b'\x88'), dat(0x0000, b'\x88'),
    ]
    # 0x8001 sorts before 0xA001, so its records come first among equals
    assert run(lines) == [
        ela(0xA001),
        dat(0x0000, b'\x88'),
        dat(0x0001, b'\x88'),
        dat(0x0001, b'\xAA'),
        dat(0x0002, b'\xAA'),
        EOF_LINE,
    ]


def test_segments_ascending_order():
    lines = [
        ela(0x0003), dat(0),
        ela(0x8002), dat(0),
        ela(0x0001), dat(0),
        ela(0xFFFF), dat(0),
    ]
    output = run(lines)
    elas = [line for line in output if line[7:9] == b'04']
    assert elas == [ela(0x0001), ela(0x0003), ela(0xA002), ela(0xFFFF)]


def test_other_records_first():
    esa = generate(ESA, 0, b'\x12\x00')
    lines = [
        dat(0x0004, b'\x04'),
        esa,
        dat(0x0002, b'\x02'),
        ela(0x0001),
        dat(0x0010),
    ]
    assert run(lines) == [
        dat(0x0004, b'\x04'),
        esa,
        dat(0x0002, b'\x02'),
        ela(0x0001),
        dat(0x0010),
        EOF_LINE,
    ]


def test_unknown_tag_passed_through():
    unknown = b':00000042BE'
    lines = [ela(0x0001), dat(0x0001), unknown, dat(0x0000)]
    assert run(lines) == [
        unknown,
        ela(0x0001),
        dat(0x0000),
        dat(0x0001),
        EOF_LINE,
    ]


def test_start_linear_address_before_eof():
    sla = generate(SLA, 0, b'\x08\x00\x01\x23')
    lines = [sla, ela(0x0800), dat(0x0000), EOF_LINE]
    assert run(lines) == [ela(0x0800), dat(0x0000), sla, EOF_LINE]


def test_start_linear_address_last_wins():
    sla1 = generate(SLA, 0, b'\x00\x00\x00\x01')
    sla2 = generate(SLA, 0, b'\x00\x00\x00\x02')
    assert run([sla1, sla2]) == [sla2, EOF_LINE]


def test_eof_synthesized():
    assert run([]) == [EOF_LINE]
    assert run([ela(0x0001), dat(0)])[-1] == EOF_LINE


def test_eof_original_text():
    assert run([b':00000001ff'])[-1] == b':00000001ff'
    output = run([ela(0x0001), b':00000001ff', dat(0), b':00000001FF'])
    assert output == [ela(0x0001), dat(0), b':00000001ff']


def test_eof_does_not_close_segment():
    output = run([ela(0x0001), EOF_LINE, dat(0x0001)])
    assert output == [ela(0x0001), dat(0x0001), EOF_LINE]


def test_empty_segment_superseded():
    output = run([ela(0x0001), ela(0x0002), dat(0)])
    assert output == [ela(0x0002), dat(0), EOF_LINE]


def test_empty_segment_superseded_idempotent():
    lines = [b':02000004FFFFFC', b':020000040001F9', b':0100000011EE']
    once = run(lines)
    assert once == [b':020000040001F9', b':0100000011EE', EOF_LINE]
    assert run(once) == once


def test_empty_segment_last_dropped():
    output = run([ela(0x0001), dat(0), ela(0x0002)])
    assert output == [ela(0x0001), dat(0), EOF_LINE]


def test_incomplete_extended_linear_address(caplog):
    incomplete = b':01000004807B'
    lines = [ela(0x0001), dat(0x0001), incomplete, dat(0x0000)]
    with caplog.at_level(logging.WARNING, logger='hexmerge'):
        output = run(lines)
    assert output == [
        incomplete,
        ela(0x0001),
        dat(0x0000),
        dat(0x0001),
        EOF_LINE,
    ]
    assert 'incomplete extended linear address' in caplog.text
    assert ':01000004807B' in caplog.text


def test_incomplete_extended_linear_address_no_segment():
    incomplete = b':01000004807B'
    output = run([incomplete, dat(0x0000)])
    assert output == [incomplete, dat(0x0000), EOF_LINE]


def test_unparsable_lines_first(caplog):
    lines = [
        ela(0x0001),
        dat(0x0001),
        b'garbage',
        b':00000001FE',
        b'',
        dat(0x0000),
        b':0000',
    ]
    with caplog.at_level(logging.WARNING, logger='hexmerge'):
        output = run(lines)
    assert output == [
        b'garbage',
        b':00000001FE',
        b'',
        b':0000',
        ela(0x0001),
        dat(0x0000),
        dat(0x0001),
        EOF_LINE,
    ]
    assert caplog.text.count('cannot parse line') == 4
    assert 'garbage' in caplog.text


def test_unparsable_lines_yielded_immediately():
    lines = iter([b'garbage', ela(0x0001), b'junk'])
    output = merge_lines(lines)
    assert next(output) == b'garbage'
    assert next(output) == b'junk'
    assert next(output) == EOF_LINE


def test_unparsable_line_keeps_text():
    line = b':00000001FF  trailing'
    assert run([line]) == [line, EOF_LINE]


def test_line_terminators_stripped():
    lines = [ela(0x8001) + b'\r\n', dat(0x0001) + b'\r\n', EOF_LINE + b'\n']
    assert run(lines) == [ela(0xA001), dat(0x0001), EOF_LINE]


def test_synthesized_lines_checksum():
    lines = [ela(extension) for extension in (0x8000, 0x8ABC, 0x1234)]
    lines = [line for extension_line in lines
             for line in (extension_line, dat(0x0000))]
    for line in run(lines):
        buffer = bytes.fromhex(line[1:].decode())
        assert sum(buffer) & 0xFF == 0


def test_idempotent():
    sla = generate(SLA, 0, b'\x08\x00\x01\x23')
    lines = [
        b'garbage',
        dat(0x0004, b'\x04'),
        ela(0x8001), dat(0x0010, b'\x01'), dat(0x0005, b'\x02'),
        b':01000004807B',
        ela(0x0800), dat(0x0000, b'\x03'),
        ela(0x8001), dat(0x0005, b'\x04'),
        ela(0xA001), dat(0x0000, b'\x05'),
        generate(ESA, 0, b'\x12\x00'),
        sla,
        b':00000001ff',
    ]
    once = run(lines)
    twice = run(once)
    assert twice == once


def test_idempotent_bytes():
    data = b'\n'.join([
        ela(0x8FFF), dat(0x0003), dat(0x0001),
        ela(0x8000), dat(0x0002),
        EOF_LINE,
    ]) + b'\n'
    once = merge_bytes(data)
    assert merge_bytes(once) == once


def test_idempotent_bytes_repeated_carriage_returns():
    once = merge_bytes(b'garbage\r\r\n:00000001FF\n')
    assert once == b'garbage\n:00000001FF\n'
    assert merge_bytes(once) == once


def test_merge_bytes():
    data = (b':02000004800179\r\n'
            b':0100100011DE\r\n'
            b':0100050022D8\r\n'
            b':00000001FF\r\n')
    expected = (b':02000004A00159\n'
                b':0100050022D8\n'
                b':0100100011DE\n'
                b':00000001FF\n')
    assert merge_bytes(data) == expected


def test_merge_stream():
    stream_in = io.BytesIO(b'garbage\n' + ela(0x8001) + b'\n' + dat(0) + b'\n')
    stream_out = io.BytesIO()
    merger = merge_stream(stream_in, stream_out)
    assert stream_out.getvalue() == (b'garbage\n' +
                                     ela(0xA001) + b'\n' +
                                     dat(0) + b'\n' +
                                     EOF_LINE + b'\n')
    assert list(merger.segments) == [0x8001]


def test_merge_stream_end():
    stream_out = io.BytesIO()
    merge_stream(io.BytesIO(b''), stream_out, end=b'\r\n')
    assert stream_out.getvalue() == b':00000001FF\r\n'


def test_verbose_diagnostics(caplog):
    lines = [ela(0x8001), dat(0), ela(0x0001), dat(0), dat(1)]
    with caplog.at_level(logging.INFO, logger='hexmerge'):
        run(lines)
    assert 'original segments: 2' in caplog.text
    assert 'extension: 0x0001, data records: 2' in caplog.text
    assert 'extension: 0x8001, data records: 1' in caplog.text
    assert 'remapped extension: 0x8001 -> 0xA001' in caplog.text
    assert 'merged segments: 2' in caplog.text


class TestSegmentMerger:

    def test___init__(self):
        merger = SegmentMerger()
        assert merger.others == []
        assert merger.start_record is None
        assert merger.has_eof is False
        assert merger.segments == {}

    def test_scan(self):
        merger = SegmentMerger()
        eof = IhexRecord.create_end_of_file()
        data0 = IhexRecord(DATA, address=0, data=b'\x00')
        data1 = IhexRecord(DATA, address=1, data=b'\x01')
        sla = IhexRecord(SLA, data=b'\x00\x00\x00\x00')

        assert merger.scan(data0) is merger
        merger.scan(IhexRecord.create_extended_linear_address(0x8001))
        merger.scan(data1)
        merger.scan(sla)
        merger.scan(eof)
        merger.finish()

        assert merger.others == [data0, eof]
        assert merger.start_record is sla
        assert merger.has_eof is True
        assert merger.segments == {0x8001: [data1]}

    def test_finish_empty(self):
        merger = SegmentMerger()
        merger.scan(IhexRecord.create_extended_linear_address(0x0001))
        assert merger.finish() is merger
        assert merger.segments == {}

    def test_remap(self):
        merger = SegmentMerger()
        records = [IhexRecord(DATA, address=address, data=b'\x00')
                   for address in (3, 1, 2)]
        merger.scan(IhexRecord.create_extended_linear_address(0x8ABC))
        for record in records:
            merger.scan(record)
        merged = merger.finish().remap()
        assert list(merged) == [0xAABC]
        assert [record.address for record in merged[0xAABC]] == [1, 2, 3]
        assert [record.address for record in merger.segments[0x8ABC]] == [3, 1, 2]

    def test_emit_unparsed_records(self):
        merger = SegmentMerger()
        merger.scan(IhexRecord.create_extended_linear_address(0x8001))
        merger.scan(IhexRecord(DATA, address=0x1234, data=b'abc'))
        merger.finish()
        assert list(merger.emit()) == [
            b':02000004A00159',
            b':0312340061626391',
            b':00000001FF',
        ]
