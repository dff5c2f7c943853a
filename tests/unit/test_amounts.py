"""Unit tests for micro-deposit amount generation and parsing"""

import pytest
from paygate.domain.amounts import generate_micro_deposit_amounts, parse_amount, parse_amounts, valid_amounts
from paygate.domain.models import Amount


def test_generated_amounts_within_range_and_balanced():
    """Both amounts are $0.01-$0.49 and the total is their exact sum"""
    for _ in range(500):
        amounts, total = generate_micro_deposit_amounts()

        assert len(amounts) == 2
        assert all(1 <= a.cents <= 49 for a in amounts)
        assert total.cents == amounts[0].cents + amounts[1].cents
        assert total == amounts[0] + amounts[1]


def test_generated_amounts_vary_between_calls():
    """No fixed seed: repeated calls produce different amounts"""
    seen = {tuple(a.cents for a in generate_micro_deposit_amounts()[0]) for _ in range(50)}
    assert len(seen) > 1


def test_amount_string_format():
    assert str(Amount(cents=7)) == "USD 0.07"
    assert str(Amount(cents=1234)) == "USD 12.34"
    assert str(Amount(cents=-19)) == "USD -0.19"


@pytest.mark.parametrize(
    "raw,cents",
    [
        ("USD 0.12", 12),
        ("0.12", 12),
        ("usd 0.07", 7),
        ("  0.19 ", 19),
        ("1", 100),
        ("-0.05", -5),
    ],
)
def test_parse_valid_amounts(raw: str, cents: int):
    result = parse_amount(raw)
    assert result.ok
    assert result.amount == Amount(cents=cents)


@pytest.mark.parametrize(
    "raw", ["", "abc", "0.123", "USD", "US 0.12", "USD 0.12 extra", "NaN", "1E+999999999", "USD 1e13"]
)
def test_parse_invalid_amounts(raw: str):
    result = parse_amount(raw)
    assert not result.ok
    assert result.amount is None
    assert result.error


def test_valid_amounts_drops_malformed():
    results = parse_amounts(["0.12", "oops", "USD 0.07"])

    assert [r.ok for r in results] == [True, False, True]
    assert valid_amounts(results) == [Amount(cents=12), Amount(cents=7)]


def test_huge_exponent_is_dropped_not_raised():
    results = parse_amounts(["0.12", "1E+999999999"])

    assert valid_amounts(results) == [Amount(cents=12)]
    assert "out of range" in results[1].error


def test_positive_exponent_within_range():
    assert Amount.from_string("1E+2") == Amount(cents=10000)
