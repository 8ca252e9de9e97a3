"""
Unit tests for the streaming dump reader
"""

import gzip
import pytest
from core.exceptions import UnreadableSourceError
from enrichment.extractors.dump_reader import DumpReader, parse_line
from schemas.dump import DumpRecord, ParseError, ParseErrorKind
from support import AUTHOR, EDITION, dump_line, edition_lines, write_dump


class TestParseLine:
    """Decoding of single lines"""

    def test_parses_well_formed_line(self):
        line = dump_line(AUTHOR, "/authors/OL1A", {"name": "Jane Doe"}, revision=3)

        result = parse_line(line)

        assert isinstance(result, DumpRecord)
        assert result.record_type == AUTHOR
        assert result.key == "/authors/OL1A"
        assert result.revision == 3
        assert result.last_modified.year == 2008
        assert result.payload == {"name": "Jane Doe"}

    def test_too_few_fields(self):
        result = parse_line("/type/author\t/authors/OL1A\t1")

        assert isinstance(result, ParseError)
        assert result.kind == ParseErrorKind.FIELD_COUNT

    def test_non_integer_revision(self):
        result = parse_line('/type/author\t/authors/OL1A\tthree\t2008-04-01T03:28:50\t{"name": "x"}')

        assert isinstance(result, ParseError)
        assert result.kind == ParseErrorKind.FIELD_TYPE

    def test_malformed_payload(self):
        result = parse_line("/type/author\t/authors/OL1A\t1\t2008-04-01T03:28:50\t{not json")

        assert isinstance(result, ParseError)
        assert result.kind == ParseErrorKind.PAYLOAD

    def test_payload_must_be_object(self):
        result = parse_line("/type/author\t/authors/OL1A\t1\t2008-04-01T03:28:50\t[1, 2]")

        assert isinstance(result, ParseError)
        assert result.kind == ParseErrorKind.PAYLOAD

    def test_unparseable_timestamp_is_tolerated(self):
        result = parse_line('/type/author\t/authors/OL1A\t1\tyesterday\t{"name": "x"}')

        assert isinstance(result, DumpRecord)
        assert result.last_modified is None

    def test_extra_fields_take_payload_from_last(self):
        result = parse_line('/type/author\t/authors/OL1A\t1\t2008-04-01T03:28:50\tignored\t{"name": "x"}')

        assert isinstance(result, DumpRecord)
        assert result.payload == {"name": "x"}


class TestDumpReader:
    """Streaming, counting and restarting"""

    def test_counts_dropped_lines_without_aborting(self, tmp_path):
        path = write_dump(tmp_path / "editions.txt", edition_lines())
        reader = DumpReader(path)

        lines = list(reader.iter_lines())

        assert [line.number for line in lines] == list(range(1, 11))
        assert sum(1 for line in lines if not line.ok) == 1
        assert reader.stats.lines_read == 10
        assert reader.stats.lines_dropped == 1
        assert reader.stats.errors_by_kind == {"field_count": 1}

    def test_invalid_utf8_is_an_encoding_error(self, tmp_path):
        path = tmp_path / "bad.txt"
        good = dump_line(AUTHOR, "/authors/OL1A", {"name": "Jane Doe"}).encode("utf-8")
        path.write_bytes(good + b"\n" + b"\xff\xfe\xfa broken\n" + good + b"\n")

        lines = list(DumpReader(str(path)).iter_lines())

        assert [line.ok for line in lines] == [True, False, True]
        assert lines[1].result.kind == ParseErrorKind.ENCODING

    def test_iterating_yields_records_only(self, tmp_path):
        path = write_dump(tmp_path / "editions.txt", edition_lines())

        records = list(DumpReader(path))

        assert len(records) == 9
        assert all(isinstance(record, DumpRecord) for record in records)

    def test_restart_from_offset_emits_next_line(self, tmp_path):
        path = write_dump(tmp_path / "editions.txt", edition_lines())
        first_pass = list(DumpReader(path).iter_lines())
        fourth = first_pass[3]

        resumed = list(DumpReader(path).iter_lines(start_line=fourth.number, start_offset=fourth.offset))

        assert resumed[0].number == 5
        assert [line.offset for line in resumed] == [line.offset for line in first_pass[4:]]
        assert resumed[0].result == first_pass[4].result

    def test_restart_without_offset_skips_lines(self, tmp_path):
        path = write_dump(tmp_path / "editions.txt", edition_lines())

        resumed = list(DumpReader(path).iter_lines(start_line=7))

        assert [line.number for line in resumed] == [8, 9, 10]

    def test_offsets_are_byte_positions(self, tmp_path):
        path = tmp_path / "unicode.txt"
        write_dump(path, [
            dump_line(AUTHOR, "/authors/OL1A", {"name": "Zoë Brontë"}),
            dump_line(AUTHOR, "/authors/OL2A", {"name": "Ann Poe"}),
        ])

        lines = list(DumpReader(str(path)).iter_lines())

        assert lines[-1].offset == path.stat().st_size

    def test_reads_gzip_dumps(self, tmp_path):
        path = tmp_path / "editions.txt.gz"
        with gzip.open(path, "wt", encoding="utf-8") as handle:
            handle.write("\n".join(edition_lines()) + "\n")

        reader = DumpReader(str(path))
        lines = list(reader.iter_lines())

        assert reader.is_compressed
        assert len(lines) == 10
        assert lines[0].result.record_type == EDITION

        resumed = list(DumpReader(str(path)).iter_lines(start_line=8, start_offset=lines[7].offset))
        assert [line.number for line in resumed] == [9, 10]

    def test_missing_file_is_unreadable(self, tmp_path):
        reader = DumpReader(str(tmp_path / "missing.txt"))

        with pytest.raises(UnreadableSourceError) as exc_info:
            list(reader.iter_lines())

        assert "missing.txt" in exc_info.value.context["file_path"]

        with pytest.raises(UnreadableSourceError):
            reader.file_size()

    def test_corrupt_gzip_is_unreadable(self, tmp_path):
        path = tmp_path / "corrupt.txt.gz"
        path.write_bytes(b"this is not gzip data at all\n")

        with pytest.raises(UnreadableSourceError):
            list(DumpReader(str(path)).iter_lines())
