"""Tests for data models."""

import pickle

import pytest

from survey_ingest.models import (
    EncodingIssueReport,
    ParseError,
    ParseErrorKind,
    ParseOptions,
    ParseResult,
    ProgressEvent,
)


@pytest.mark.parametrize("chunk_size", [0, -1, 1.5, True, "1024"])
def test_invalid_chunk_size(chunk_size):
    with pytest.raises(ValueError):
        ParseOptions(chunk_size=chunk_size)


@pytest.mark.parametrize("delimiter", ["", ",,", '"', "\n", "\r"])
def test_invalid_delimiter(delimiter):
    with pytest.raises(ValueError):
        ParseOptions(delimiter=delimiter)


def test_is_cancelled_without_event():
    assert ParseOptions().is_cancelled() is False


def test_progress_event_to_dict():
    event = ProgressEvent(bytes_read=10, total_bytes=20, rows_parsed=3)
    assert event.to_dict() == {'bytes_read': 10, 'total_bytes': 20, 'rows_parsed': 3}


def test_result_dict_round_trip():
    result = ParseResult(
        headers=['a', 'b'],
        rows=[{'a': '1', 'b': '2'}],
        encoding_issues=EncodingIssueReport(True, ['issue'], ['rec']),
        encoding='cp1252',
        bytes_processed=8,
        normalized=True,
    )
    data = result.to_dict()
    assert data['row_count'] == 1
    assert data['normalized'] is True
    assert ParseResult.from_dict(data) == result


def test_to_dataframe_fills_missing_extras():
    result = ParseResult(
        headers=['a', 'b'],
        rows=[{'a': '1', 'b': '2'}, {'a': '3', 'b': '', '_extra_2': 'x'}],
    )
    df = result.to_dataframe()
    assert list(df.columns) == ['a', 'b', '_extra_2']
    assert df.to_dict('records') == [
        {'a': '1', 'b': '2', '_extra_2': ''},
        {'a': '3', 'b': '', '_extra_2': 'x'},
    ]


def test_to_dataframe_empty():
    df = ParseResult(headers=['a']).to_dataframe()
    assert list(df.columns) == ['a']
    assert len(df) == 0


def test_parse_error_str_and_dict():
    partial = ParseResult(headers=['a'], rows=[{'a': '1'}])
    error = ParseError(ParseErrorKind.IO_ERROR, "disk gone", partial_result=partial)
    assert str(error) == "[io_error] disk gone"

    rebuilt = ParseError.from_dict(error.to_dict())
    assert rebuilt.kind == ParseErrorKind.IO_ERROR
    assert rebuilt.partial_result == partial


def test_parse_error_pickles():
    error = ParseError(ParseErrorKind.ROW_SHAPE_MISMATCH, "bad row", row_index=4)
    restored = pickle.loads(pickle.dumps(error))
    assert restored.kind == ParseErrorKind.ROW_SHAPE_MISMATCH
    assert restored.row_index == 4
    assert restored.message == "bad row"
