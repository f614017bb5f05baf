"""Tests for the key-value record decoding helpers."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from reconciler.parsing import as_bool, as_duration, as_epoch, as_float, as_int, pick, require, text


class TestRequire:

    def test_present(self) -> None:
        assert require({"Channel": " PJSIP/1001-1 "}, "Channel") == "PJSIP/1001-1"

    @pytest.mark.parametrize("payload", [{}, {"Channel": ""}, {"Channel": "   "}])
    def test_missing_or_blank(self, payload: dict[str, str]) -> None:
        assert require(payload, "Channel") is None


class TestConverters:

    @pytest.mark.parametrize("value", ["Yes", "true", "1", "on"])
    def test_truthy(self, value: str) -> None:
        assert as_bool(value) is True

    @pytest.mark.parametrize("value", ["No", "false", "0", ""])
    def test_falsy(self, value: str) -> None:
        assert as_bool(value) is False

    def test_int_with_default(self) -> None:
        assert as_int(" 42 ") == 42
        assert as_int("n/a", default=-1) == -1

    def test_float(self) -> None:
        assert as_float("0.75") == 0.75
        assert as_float("bogus") is None

    def test_epoch(self) -> None:
        assert as_epoch("1700000000") == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
        assert as_epoch("0") is None

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("00:01:05", 65), ("01:00:00", 3600), ("42", 42), ("-3", 0)],
    )
    def test_duration(self, value: str, expected: int) -> None:
        assert as_duration(value) == expected


class TestPick:

    def test_only_present_keys(self) -> None:
        fields = pick(
            {"CallerIDNum": " 1001 ", "Unrelated": "x"},
            {"CallerIDNum": ("caller_number", text), "CallerIDName": ("caller_name", text)},
        )
        assert fields == {"caller_number": "1001"}
