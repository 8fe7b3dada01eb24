import pytest

from marketbot.utils.amounts import format_amount, parse_price, parse_spoken_amount


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("15 lakh", 1500000),
        ("2.5 cr", 25000000),
        ("50k", 50000),
        ("15000", 15000),
        ("₹1,50,000", 150000),
        ("rent 12 hazaar", 12000),
        (18000, 18000),
        (2.0, 2),
    ],
)
def test_parse_price(raw, expected):
    assert parse_price(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", True, "no price here"])
def test_parse_price_returns_none_when_nothing_found(raw):
    assert parse_price(raw) is None


@pytest.mark.parametrize(
    "text, expected",
    [
        ("pandrah hazaar", 15000),
        ("dedh lakh", 150000),
        ("saadhe teen lakh", 350000),
        ("do crore", 20000000),
        ("paanch sau", 500),
    ],
)
def test_parse_spoken_amount(text, expected):
    assert parse_spoken_amount(text) == expected


def test_spoken_amount_needs_a_scale_word():
    assert parse_spoken_amount("do") is None
    assert parse_spoken_amount("what do you have") is None


def test_format_amount():
    assert format_amount(15000000) == "1.50 Cr"
    assert format_amount(1500000) == "15.00 Lakh"
    assert format_amount(15000) == "15.00K"
    assert format_amount(950) == "950"
    assert format_amount(None) == "—"
