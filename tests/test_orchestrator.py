"""Tests for the parse entry points."""

import io
import threading

import pandas as pd
import pytest

from survey_ingest import orchestrator
from survey_ingest.encoding_detector import SAMPLE_SIZE, EncodingDetector
from survey_ingest.models import ParseError, ParseErrorKind, ParseOptions
from survey_ingest.orchestrator import (
    parse_file,
    parse_non_streaming,
    parse_smart,
    parse_streaming,
)
from survey_ingest.worker import ParseWorker


QUOTED_CSV = b'name,note\nJohn,"Works in New York, NY"\n'

EMBEDDED_CRLF_CSV = b'id,text\r\n1,"line one\r\nline ""two"""\r\n2,x\r\n'

MIXED_CSV = (
    'id,name,comment,city\n'
    '1,"Smith, John","He said ""hi""",Zürich\n'
    '2,Jane,"multi\nline",São Paulo\n'
    '3,,"",日本\n'
).encode('utf-8')


def collect_progress():
    events = []
    return events, events.append


class TestParsing:

    def test_basic_rows(self, run, people_csv, people_rows):
        result = run(parse_non_streaming(people_csv))
        assert result.headers == ['name', 'age', 'city']
        assert result.rows == people_rows
        assert result.encoding == 'utf-8'
        assert result.bytes_processed == len(people_csv)
        assert result.encoding_issues.has_issues is False

    @pytest.mark.parametrize("data", [
        b"name,age,city\nJohn,30,New York\nJane,25,Los Angeles\n",
        QUOTED_CSV,
        EMBEDDED_CRLF_CSV,
        MIXED_CSV,
    ])
    def test_streaming_matches_non_streaming_for_every_chunk_size(self, run, data):
        expected = run(parse_non_streaming(data)).to_dict()
        for chunk_size in range(1, len(data) + 2):
            result = run(parse_streaming(data, ParseOptions(chunk_size=chunk_size)))
            assert result.to_dict() == expected, f"chunk_size={chunk_size}"

    def test_quoted_delimiter(self, run):
        result = run(parse_streaming(QUOTED_CSV, ParseOptions(chunk_size=4)))
        assert result.rows == [{'name': 'John', 'note': 'Works in New York, NY'}]

    def test_embedded_crlf_and_escaped_quotes(self, run):
        result = run(parse_streaming(EMBEDDED_CRLF_CSV, ParseOptions(chunk_size=3)))
        assert result.rows == [
            {'id': '1', 'text': 'line one\r\nline "two"'},
            {'id': '2', 'text': 'x'},
        ]

    def test_matches_pandas(self, run):
        result = run(parse_smart(MIXED_CSV))
        df = pd.read_csv(io.BytesIO(MIXED_CSV), dtype=str, keep_default_na=False)
        assert result.headers == list(df.columns)
        assert result.rows == df.to_dict('records')

    def test_header_only(self, run):
        result = run(parse_streaming(b'a,b,c\n', ParseOptions(chunk_size=2)))
        assert result.headers == ['a', 'b', 'c']
        assert result.rows == []

    @pytest.mark.parametrize("parse", [parse_non_streaming, parse_streaming])
    def test_empty_input(self, run, parse):
        events, on_progress = collect_progress()
        result = run(parse(b'', ParseOptions(on_progress=on_progress)))
        assert result.headers == []
        assert result.rows == []
        assert [(e.bytes_read, e.total_bytes) for e in events] == [(0, 0)]

    def test_no_trailing_newline(self, run):
        result = run(parse_streaming(b'a,b\n1,2', ParseOptions(chunk_size=3)))
        assert result.rows == [{'a': '1', 'b': '2'}]

    def test_tab_delimiter(self, run):
        data = b'a\tb\n1\t"x\ty"\n'
        result = run(parse_streaming(data, ParseOptions(chunk_size=2, delimiter='\t')))
        assert result.rows == [{'a': '1', 'b': 'x\ty'}]

    def test_parse_file_from_path(self, tmp_path, people_csv, people_rows):
        path = tmp_path / 'people.csv'
        path.write_bytes(people_csv)
        assert parse_file(path).rows == people_rows
        assert parse_file(str(path)).rows == people_rows

    def test_caller_stream_is_left_open(self, run, people_csv, people_rows):
        stream = io.BytesIO(people_csv)
        result = run(parse_streaming(stream, ParseOptions(chunk_size=5)))
        assert result.rows == people_rows
        assert not stream.closed


class TestRowShape:

    @pytest.mark.parametrize("parse", [parse_non_streaming, parse_streaming])
    def test_strict_mode_reports_row_index(self, run, parse):
        with pytest.raises(ParseError) as exc_info:
            run(parse(b"a,b\n1,2\n3\n", ParseOptions(strict_field_count=True, chunk_size=2)))
        assert exc_info.value.kind == ParseErrorKind.ROW_SHAPE_MISMATCH
        assert exc_info.value.row_index == 1

    def test_lenient_mode_pads_and_keeps_extras(self, run):
        result = run(parse_streaming(b"a,b\n1,2\n3\n4,5,6\n", ParseOptions(chunk_size=4)))
        assert result.rows == [
            {'a': '1', 'b': '2'},
            {'a': '3', 'b': ''},
            {'a': '4', 'b': '5', '_extra_2': '6'},
        ]

    @pytest.mark.parametrize("data", [
        b'a,b\n1,"unterminated\n',
        b'a,b\n"x"y,2\n',
    ])
    @pytest.mark.parametrize("parse", [parse_non_streaming, parse_streaming])
    def test_malformed_quoting(self, run, parse, data):
        with pytest.raises(ParseError) as exc_info:
            run(parse(data, ParseOptions(chunk_size=3)))
        assert exc_info.value.kind == ParseErrorKind.MALFORMED_QUOTING

    def test_duplicate_headers(self, run):
        result = run(parse_streaming(b"a,a\n1,2\n"))
        assert result.headers == ['a', 'a']
        assert result.rows == [{'a': '2'}]


class TestEncoding:

    @pytest.mark.parametrize("chunk_size", [1, 2, 5, 1024])
    def test_bom_is_stripped_and_reported(self, run, chunk_size):
        data = b'\xef\xbb\xbfname,age\nJohn,30\n'
        result = run(parse_streaming(data, ParseOptions(chunk_size=chunk_size)))
        assert result.headers == ['name', 'age']
        assert result.rows == [{'name': 'John', 'age': '30'}]
        assert result.encoding_issues.has_issues
        assert 'byte-order mark' in result.encoding_issues.issues[0]

    def test_utf16_with_bom(self, run):
        data = '\ufeffname,city\nJosé,Zürich\n'.encode('utf-16-le')
        result = run(parse_smart(data))
        assert result.encoding == 'utf-16-le'
        assert result.rows == [{'name': 'José', 'city': 'Zürich'}]

    def test_declared_cp1252(self, run):
        data = 'name,city\nJosé,Zürich\n'.encode('cp1252')
        for parse in (parse_non_streaming, parse_streaming):
            result = run(parse(data, ParseOptions(encoding_hint='cp1252', chunk_size=3)))
            assert result.encoding == 'cp1252'
            assert result.rows == [{'name': 'José', 'city': 'Zürich'}]
            assert result.encoding_issues.has_issues is False

    def test_undeclared_legacy_encoding_is_reported(self, run):
        data = ('name,city\n' + 'José,Zürich\n' * 20).encode('cp1252')
        result = run(parse_smart(data))
        assert result.encoding != 'utf-8'
        assert any('not valid UTF-8' in issue for issue in result.encoding_issues.issues)
        assert EncodingDetector.REEXPORT_HINT in result.encoding_issues.recommendations

    def test_mojibake_is_repaired(self, run):
        data = 'name,note\nJohn,Itâ€™s fine\nJane,ok\n'.encode('utf-8')
        result = run(parse_streaming(data, ParseOptions(chunk_size=4)))
        assert result.rows[0]['note'] == 'It’s fine'
        assert result.rows[1]['note'] == 'ok'
        issues = result.encoding_issues.issues
        assert len(issues) == 1
        assert "row 0, column 'note'" in issues[0]
        assert EncodingDetector.REEXPORT_HINT in result.encoding_issues.recommendations

    def test_control_characters_are_removed(self, run):
        data = b'name\nA\x00B\n'
        result = run(parse_non_streaming(data))
        assert result.rows == [{'name': 'AB'}]
        assert result.encoding_issues.has_issues


class TestProgressAndCancel:

    def test_progress_per_chunk(self, run, key_value_csv):
        events, on_progress = collect_progress()
        run(parse_streaming(key_value_csv, ParseOptions(chunk_size=50, on_progress=on_progress)))
        assert len(events) > 1
        reads = [e.bytes_read for e in events]
        assert reads == sorted(reads)
        assert reads[-1] == len(key_value_csv)
        assert all(e.total_bytes == len(key_value_csv) for e in events)
        assert events[-1].rows_parsed == 100

    def test_non_streaming_single_progress_event(self, run, key_value_csv):
        events, on_progress = collect_progress()
        run(parse_non_streaming(key_value_csv, ParseOptions(on_progress=on_progress)))
        assert [(e.bytes_read, e.rows_parsed) for e in events] == [(len(key_value_csv), 100)]

    def test_cancel_between_chunks(self, run, key_value_csv):
        cancel = threading.Event()
        events = []

        def on_progress(event):
            events.append(event)
            if len(events) == 3:
                cancel.set()

        options = ParseOptions(chunk_size=50, on_progress=on_progress, cancel_event=cancel)
        with pytest.raises(ParseError) as exc_info:
            run(parse_streaming(key_value_csv, options))
        assert exc_info.value.kind == ParseErrorKind.CANCELLED
        assert exc_info.value.partial_result is None
        assert len(events) == 3

    @pytest.mark.parametrize("parse", [parse_non_streaming, parse_streaming])
    def test_cancelled_before_start(self, run, parse, people_csv):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(ParseError) as exc_info:
            run(parse(people_csv, ParseOptions(cancel_event=cancel)))
        assert exc_info.value.kind == ParseErrorKind.CANCELLED


class FlakyStream(io.BytesIO):
    """Stream whose reads fail once past a given offset."""

    def __init__(self, data: bytes, fail_at: int):
        super().__init__(data)
        self.fail_at = fail_at

    def read(self, size=-1):
        if self.tell() >= self.fail_at:
            raise OSError("device not ready")
        return super().read(size)


class TestIOError:

    @pytest.fixture
    def big_csv(self):
        lines = ["id,name"] + [f"{i},name{i}" for i in range(20000)]
        return ("\n".join(lines) + "\n").encode('utf-8')

    def test_streaming_returns_partial_rows(self, run, big_csv):
        full = run(parse_non_streaming(big_csv))
        stream = FlakyStream(big_csv, fail_at=SAMPLE_SIZE + 40000)

        with pytest.raises(ParseError) as exc_info:
            run(parse_streaming(stream, ParseOptions(chunk_size=16 * 1024)))

        error = exc_info.value
        assert error.kind == ParseErrorKind.IO_ERROR
        partial = error.partial_result
        assert partial is not None
        assert 0 < partial.row_count < full.row_count
        assert partial.rows == full.rows[:partial.row_count]
        assert partial.headers == ['id', 'name']

    def test_non_streaming_read_failure(self, run, big_csv):
        stream = FlakyStream(big_csv, fail_at=SAMPLE_SIZE + 40000)
        with pytest.raises(ParseError) as exc_info:
            run(parse_non_streaming(stream))
        assert exc_info.value.kind == ParseErrorKind.IO_ERROR

    def test_missing_file(self, run, tmp_path):
        with pytest.raises(ParseError) as exc_info:
            run(parse_smart(tmp_path / 'nope.csv'))
        assert exc_info.value.kind == ParseErrorKind.IO_ERROR


class TestSmartStrategy:

    def test_small_input_matches_non_streaming(self, run, people_csv):
        assert run(parse_smart(people_csv)).to_dict() == run(parse_non_streaming(people_csv)).to_dict()

    def test_medium_input_streams_inline(self, run, monkeypatch):
        data = ("k,v\n" + "key,value\n" * 150_000).encode('utf-8')  # ~1.4 MiB
        calls = []
        original = orchestrator.parse_streaming

        async def spy(source, options=None):
            calls.append(source)
            return await original(source, options)

        monkeypatch.setattr(orchestrator, 'parse_streaming', spy)
        result = run(parse_smart(data))
        assert len(calls) == 1
        assert result.row_count == 150_000

    def test_large_caller_stream_is_not_delegated(self, run, monkeypatch):
        data = ("k,v\n" + "key,value\n" * 600_000).encode('utf-8')  # ~5.7 MiB

        async def fail(self, source, options):
            raise AssertionError("worker must not be used for caller-owned streams")

        monkeypatch.setattr(ParseWorker, 'run', fail)
        result = run(parse_smart(io.BytesIO(data)))
        assert result.row_count == 600_000

    @pytest.mark.slow
    def test_large_file_uses_worker(self, run, tmp_path, monkeypatch):
        row = '{i},"Smith, {i}","line one\nline ""two""",Zürich\n'
        text = 'id,name,comment,city\n' + ''.join(row.format(i=i) for i in range(150_000))
        path = tmp_path / 'large.csv'
        path.write_bytes(text.encode('utf-8'))
        assert path.stat().st_size > 5 * 1024 * 1024

        calls = []
        original = ParseWorker.run

        async def spy(self, source, options):
            calls.append(source)
            return await original(self, source, options)

        monkeypatch.setattr(ParseWorker, 'run', spy)
        smart = run(parse_smart(path))
        assert calls == [str(path)]

        expected = run(parse_non_streaming(path))
        assert smart.to_dict() == expected.to_dict()
        assert smart.rows[1] == {'id': '1', 'name': 'Smith, 1', 'comment': 'line one\nline "two"', 'city': 'Zürich'}


class TestRowCallback:

    @pytest.mark.parametrize("parse, options", [
        (parse_non_streaming, {}),
        (parse_streaming, {'chunk_size': 7}),
        (parse_smart, {}),
    ])
    def test_rows_are_reported_in_order(self, run, key_value_csv, parse, options):
        seen = []
        result = run(parse(key_value_csv, ParseOptions(on_row=lambda row, i: seen.append((i, row)), **options)))
        assert [i for i, _ in seen] == list(range(100))
        assert [row for _, row in seen] == result.rows

    def test_rows_arrive_before_streaming_finishes(self, run, key_value_csv):
        order = []
        options = ParseOptions(
            chunk_size=50,
            on_row=lambda row, i: order.append('row'),
            on_progress=lambda event: order.append('progress'),
        )
        run(parse_streaming(key_value_csv, options))
        assert order[0] == 'row'
        assert order.index('progress') < len(order) - 1

    def test_row_callback_sees_sanitized_values(self, run):
        seen = []
        run(parse_non_streaming(b'name\nA\x00B\n', ParseOptions(on_row=lambda row, i: seen.append(row))))
        assert seen == [{'name': 'AB'}]

    def test_strict_mode_failure_stops_callbacks(self, run):
        seen = []
        options = ParseOptions(strict_field_count=True, on_row=lambda row, i: seen.append(i))
        with pytest.raises(ParseError):
            run(parse_non_streaming(b'a,b\n1,2\n3\n4,5\n', options))
        assert seen == [0]


class TestInvisibleAndTypographic:

    def test_zero_width_characters_are_stripped_and_reported(self, run):
        result = run(parse_non_streaming('name\nA\u200bB\u200d\n'.encode()))
        assert result.rows == [{'name': 'AB'}]
        assert result.encoding_issues.has_issues
        assert any('zero-width' in issue for issue in result.encoding_issues.issues)

    def test_zero_width_in_header(self, run):
        result = run(parse_streaming('na\u200cme\nx\n'.encode(), ParseOptions(chunk_size=3)))
        assert result.headers == ['name']
        assert 'header column 0' in result.encoding_issues.issues[0]

    def test_typography_kept_by_default(self, run):
        data = 'quote\n“Hi” – it’s…\n'.encode()
        result = run(parse_non_streaming(data))
        assert result.rows == [{'quote': '“Hi” – it’s…'}]
        assert result.normalized is False
        assert result.encoding_issues.has_issues is False

    @pytest.mark.parametrize("parse", [parse_non_streaming, parse_streaming])
    def test_normalize_maps_to_ascii(self, run, parse):
        data = 'quote,gap\n“Hi” – it’s…,a\u2003b\n'.encode()
        result = run(parse(data, ParseOptions(normalize=True, chunk_size=5)))
        assert result.rows == [{'quote': '"Hi" - it\'s...', 'gap': 'a b'}]
        assert result.normalized is True
        assert result.encoding_issues.has_issues is False

    def test_polish_mojibake_is_repaired(self, run):
        garbled = 'Kraków Wrocław'.encode('utf-8').decode('cp1252')
        data = f'city\n{garbled}\n'.encode('utf-8')
        result = run(parse_streaming(data, ParseOptions(chunk_size=4)))
        assert result.rows == [{'city': 'Kraków Wrocław'}]
        assert "row 0, column 'city'" in result.encoding_issues.issues[0]
