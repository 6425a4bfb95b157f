import pytest

from app.utils.channel_validation import (
    clean_phone,
    is_valid_email,
    is_valid_phone,
    mask_email,
    mask_phone,
    normalize_phone,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("0499123456", "+92499123456"),
        ("499123456", "+92499123456"),
        ("0031612345678", "+31612345678"),
        ("+31 6 1234 5678", "+31612345678"),
        ("(0499) 12-34-56", "+92499123456"),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw, "92") == expected


def test_normalize_phone_accepts_plus_in_country_code():
    assert normalize_phone("0612345678", "+31") == "+31612345678"


def test_clean_phone_keeps_only_leading_plus():
    assert clean_phone(" +31-6-12 ") == "+31612"
    assert clean_phone("06+12") == "0612"


def test_phone_validity():
    assert is_valid_phone("+92499123456")
    assert not is_valid_phone("+0499")
    assert not is_valid_phone("")
    assert not is_valid_phone(None)


def test_email_validity():
    assert is_valid_email("alice@example.com")
    assert not is_valid_email("alice@")
    assert not is_valid_email("alice example.com")
    assert not is_valid_email(None)


@pytest.mark.parametrize("email", ["a@b..c", "a@-b.com", "a..b@c.com", ".alice@example.com"])
def test_malformed_email_is_invalid(email):
    assert not is_valid_email(email)


def test_masking():
    assert mask_phone("+92499123456") == "********3456"
    assert mask_email("alice@example.com") == "al***@example.com"
    assert mask_email("a@example.com") == "a*@example.com"
