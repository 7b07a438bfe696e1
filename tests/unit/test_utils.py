"""Tests for shared utilities"""

import random
from dataclasses import dataclass
from decimal import Decimal

import pytest

from orderbook_arbitrage.types import DryrunHaltReason
from orderbook_arbitrage.utils import (
    div_trunc,
    error_snapshot,
    format_units,
    is_insufficient_funds_error,
    parse_units,
    prefix_keys,
    scale_from_18,
    scale_to_18,
    shuffle_array,
    to_json,
)


class TestFixedPoint:
    @pytest.mark.parametrize(
        "value,decimals,expected",
        [("1", 18, 10**18), ("1.5", 6, 1_500_000), ("0.0000001", 6, 0), (Decimal("2.25"), 2, 225)],
    )
    def test_parse_units(self, value, decimals, expected):
        assert parse_units(value, decimals) == expected

    @pytest.mark.parametrize(
        "value,decimals,expected",
        [
            (10**18, 18, "1.0"),
            (15 * 10**17, 18, "1.5"),
            (1, 18, "0.000000000000000001"),
            (-5 * 10**17, 18, "-0.5"),
            (1_234_500, 6, "1.2345"),
            (7, 0, "7"),
        ],
    )
    def test_format_units(self, value, decimals, expected):
        assert format_units(value, decimals) == expected

    def test_scaling(self):
        assert scale_to_18(10**6, 6) == 10**18
        assert scale_to_18(10**20, 20) == 10**18
        assert scale_from_18(10**18, 6) == 10**6
        assert scale_from_18(10**18, 20) == 10**20
        assert scale_from_18(10**11, 6) == 0

    @pytest.mark.parametrize(
        "a,b,expected", [(7, 2, 3), (-7, 2, -3), (7, -2, -3), (-7, -2, 3), (0, 5, 0)]
    )
    def test_div_trunc(self, a, b, expected):
        assert div_trunc(a, b) == expected


class TestDiagnostics:
    def test_to_json_stringifies_ints(self):
        assert to_json({"a": 10**30, "b": True, "c": None}) == (
            '{"a":"1000000000000000000000000000000","b":true,"c":null}'
        )

    def test_to_json_enums_bytes_and_dataclasses(self):
        @dataclass
        class Point:
            x: int

        data = {"reason": DryrunHaltReason.NO_ROUTE, "raw": b"\x01\xff", "p": Point(3)}

        assert to_json(data) == '{"reason":"NO_ROUTE","raw":"0x01ff","p":{"x":"3"}}'

    def test_error_snapshot(self):
        try:
            try:
                raise OSError("socket closed")
            except OSError as e:
                raise RuntimeError("rpc failed") from e
        except RuntimeError as e:
            snapshot = error_snapshot("failed to get block number", e)

        assert snapshot == (
            "failed to get block number\nReason: rpc failed\nCaused by: socket closed"
        )

    def test_error_snapshot_without_header(self):
        assert error_snapshot("", "transaction reverted") == "Reason: transaction reverted"

    @pytest.mark.parametrize(
        "error,expected",
        [
            (ValueError("insufficient funds for gas * price + value"), True),
            (ValueError({"code": -32000, "message": "gas required exceeds allowance (0)"}), True),
            (ValueError("execution reverted"), False),
        ],
    )
    def test_insufficient_funds(self, error, expected):
        assert is_insufficient_funds_error(error) is expected

    def test_insufficient_funds_code(self):
        error = Exception("rejected")
        error.code = "INSUFFICIENT_FUNDS"

        assert is_insufficient_funds_error(error)

    def test_prefix_keys(self):
        assert prefix_keys("details.", {"a": 1}) == {"details.a": 1}


def test_shuffle_array_returns_copy():
    items = list(range(20))

    shuffled = shuffle_array(items, random.Random(1))

    assert items == list(range(20))
    assert sorted(shuffled) == items
