import pytest

from marketbot.utils.phones import extract_phones, format_phone_display, normalize_phone, strip_phones


@pytest.mark.parametrize(
    "raw",
    ["+91 98765 43210", "919876543210", "09876543210", "9876543210", "98765-43210"],
)
def test_normalize_phone_variants(raw):
    assert normalize_phone(raw) == "+919876543210"


@pytest.mark.parametrize("raw", ["", None, "12345", "1234567890", "5876543210"])
def test_normalize_phone_rejects_non_mobiles(raw):
    assert normalize_phone(raw) is None


def test_extract_phones_dedupes_in_order():
    text = "call 9876543210 or +91 91234 56789, again 09876543210"
    assert extract_phones(text) == ["+919876543210", "+919123456789"]


def test_strip_phones_removes_digits():
    assert "9876543210" not in strip_phones("rent 15000 call 9876543210")


def test_format_phone_display():
    assert format_phone_display("9876543210") == "+91 98765 43210"
    assert format_phone_display("not a phone") == "not a phone"
