"""
Unit tests for input validation.
"""

import math

import pytest

from cfa.utils.validation import (
    validate_amount,
    validate_command,
    validate_identifier,
    validate_integer,
    validate_seconds,
    validate_string,
)


class TestStrings:
    def test_valid(self):
        assert validate_string("hello", "name") == (True, "")

    def test_type(self):
        valid, err = validate_string(5, "name")
        assert not valid
        assert "must be str" in err

    def test_length_bounds(self):
        assert not validate_string("ab", "name", min_length=3)[0]
        assert not validate_string("abcdef", "name", max_length=5)[0]

    def test_identifier(self):
        assert validate_identifier("alice_01-x")[0]
        assert not validate_identifier("alice smith")[0]
        assert not validate_identifier("")[0]
        assert not validate_identifier("a" * 65)[0]


class TestNumbers:
    def test_integer_rejects_bool(self):
        assert not validate_integer(True, "n")[0]

    def test_integer_bounds(self):
        assert validate_integer(5, "n", min_val=1, max_val=5)[0]
        assert not validate_integer(0, "n", min_val=1)[0]

    @pytest.mark.parametrize("amount", [0.5, 1, 199.5, 200])
    def test_amount_valid(self, amount):
        assert validate_amount(amount) == (True, "")

    @pytest.mark.parametrize("amount", [0, -1, 200.5, math.nan, math.inf, "1", None, False])
    def test_amount_invalid(self, amount):
        assert not validate_amount(amount)[0]

    def test_seconds(self):
        assert validate_seconds(-30)[0]
        assert validate_seconds(3600)[0]
        assert not validate_seconds(3601)[0]
        assert not validate_seconds(2.5)[0]


class TestCommand:
    def test_valid(self):
        assert validate_command({"command": "auction.bid", "args": {"amount": 1}})[0]
        assert validate_command({"command": "leaderboard"})[0]

    @pytest.mark.parametrize("data", [
        "auction.bid",
        {},
        {"command": "Auction.Bid"},
        {"command": "auction.bid.extra"},
        {"command": "auction.bid", "args": []},
        {"command": "auction.bid", "args": {str(i): i for i in range(33)}},
    ])
    def test_invalid(self, data):
        assert not validate_command(data)[0]
