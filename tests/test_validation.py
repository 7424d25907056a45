"""Tests for request input validation helpers."""

import pytest

from udlgate.errors import BadRequest
from udlgate.storage.backend import CompletedPart
from udlgate.validation import (
    optional_param,
    parse_parts,
    require_body,
    require_int_param,
    require_param,
    require_part_number,
)


class TestRequireParam:
    def test_present(self):
        assert require_param({"key": "a.txt"}, "key") == "a.txt"

    def test_absent(self):
        with pytest.raises(BadRequest, match="Missing key"):
            require_param({}, "key")

    def test_empty(self):
        with pytest.raises(BadRequest, match="Missing uploadId"):
            require_param({"uploadId": ""}, "uploadId")


class TestOptionalParam:
    def test_absent_is_none(self):
        assert optional_param({}, "prefix") is None

    def test_present(self):
        assert optional_param({"prefix": "p/"}, "prefix") == "p/"


class TestRequireIntParam:
    def test_valid(self):
        assert require_int_param({"n": "42"}, "n") == 42

    def test_missing(self):
        with pytest.raises(BadRequest, match="Missing n"):
            require_int_param({}, "n")

    @pytest.mark.parametrize(
        "value", ["abc", "1.5", "0x10", "1e3", "1_0", " 5 ", "5\n", "\u0661", "+", "-"]
    )
    def test_invalid(self, value):
        with pytest.raises(BadRequest, match="Invalid n"):
            require_int_param({"n": value}, "n")


class TestRequirePartNumber:
    @pytest.mark.parametrize("value,expected", [("1", 1), ("10000", 10000), ("007", 7)])
    def test_in_range(self, value, expected):
        assert require_part_number({"partNumber": value}) == expected

    @pytest.mark.parametrize("value", ["0", "-1", "10001"])
    def test_out_of_range(self, value):
        with pytest.raises(BadRequest, match="Invalid partNumber"):
            require_part_number({"partNumber": value})


class TestRequireBody:
    def test_non_empty(self):
        assert require_body(b"x") == b"x"

    def test_empty(self):
        with pytest.raises(BadRequest, match="No body"):
            require_body(b"")


class TestParseParts:
    def test_valid_manifest(self):
        raw = b'[{"partNumber": 1, "etag": "E1"}, {"partNumber": 2, "etag": "E2"}]'
        assert parse_parts(raw) == [
            CompletedPart(part_number=1, etag="E1"),
            CompletedPart(part_number=2, etag="E2"),
        ]

    def test_extra_fields_ignored(self):
        raw = b'[{"partNumber": 1, "etag": "E1", "size": 10}]'
        assert parse_parts(raw) == [CompletedPart(part_number=1, etag="E1")]

    def test_empty_list(self):
        with pytest.raises(BadRequest, match="No parts"):
            parse_parts(b"[]")

    @pytest.mark.parametrize(
        "raw",
        [
            b"",
            b"not json",
            b'{"partNumber": 1, "etag": "E1"}',
            b'[{"partNumber": "x", "etag": "E1"}]',
            b'[{"partNumber": 1.0, "etag": "E1"}]',
            b'[{"partNumber": true, "etag": "E1"}]',
            b'[{"partNumber": 1, "etag": 5}]',
            b'[{"partNumber": 1}]',
            b'[{"etag": "E1"}]',
            b"[1, 2]",
            b'[{"partNumber": 1, "etag": "E1"}, null]',
        ],
    )
    def test_invalid(self, raw):
        with pytest.raises(BadRequest, match="Invalid parts"):
            parse_parts(raw)

    def test_deeply_nested_body(self):
        with pytest.raises(BadRequest, match="Invalid parts"):
            parse_parts(b"[" * 100_000 + b"]" * 100_000)
