from __future__ import annotations

from decimal import Decimal

import pytest

from common.validators import (
    parse_decimal,
    validate_authorized_shares,
    validate_city,
    validate_company_name,
    validate_email,
    validate_ownership_percent,
    validate_par_value,
    validate_party_count,
    validate_person_name,
    validate_phone,
    validate_state_code,
    validate_street_address,
    validate_zip_code,
)


def test_company_name_rules():
    assert validate_company_name("Acme")
    assert not validate_company_name("")
    assert not validate_company_name("  ")
    assert not validate_company_name("AB")
    assert not validate_company_name("x" * 201)
    res = validate_company_name("Acme/Widgets")
    assert not res
    assert "invalid characters" in (res.message or "")


def test_person_name_full_requires_two_words():
    assert validate_person_name("Jo")
    assert not validate_person_name("J")
    assert not validate_person_name("Jane", full=True)
    assert validate_person_name("Jane Doe", full=True)


@pytest.mark.parametrize(
    "value,ok",
    [
        ("jane@example.com", True),
        ("jane@example", False),
        ("jane example.com", False),
        ("", False),
    ],
)
def test_email(value, ok):
    assert bool(validate_email(value)) is ok


def test_phone_accepts_common_formats():
    assert validate_phone("555-123-4567")
    assert validate_phone("(555) 123 4567")
    assert not validate_phone("123-4567")


def test_street_rejects_po_box():
    assert validate_street_address("123 Main St")
    assert not validate_street_address("P.O. Box 12")
    assert not validate_street_address("po box 99")
    assert not validate_street_address("1 A")


def test_city_state_zip():
    assert validate_city("St. Mary's")
    assert not validate_city("Dover1")
    assert validate_state_code("de")
    assert not validate_state_code("Delaware")
    assert validate_zip_code("19958")
    assert validate_zip_code("19958-1234")
    assert not validate_zip_code("1995")


def test_parse_decimal():
    assert parse_decimal("1,000.5") == Decimal("1000.5")
    assert parse_decimal(" 42 ") == Decimal("42")
    assert parse_decimal("abc") is None
    assert parse_decimal("NaN") is None
    assert parse_decimal("Infinity") is None
    assert parse_decimal(None) is None


def test_ownership_percent_bounds():
    assert validate_ownership_percent("100")
    assert validate_ownership_percent("0.01")
    assert not validate_ownership_percent("0")
    assert not validate_ownership_percent("100.5")
    assert not validate_ownership_percent("half")


def test_party_count_whole_numbers_only():
    assert validate_party_count("2")
    assert not validate_party_count("1.5")
    assert not validate_party_count("0")
    assert not validate_party_count("101")


def test_share_structure_values():
    assert validate_authorized_shares("10,000,000")
    assert not validate_authorized_shares("0")
    assert not validate_authorized_shares("2000000000")
    assert validate_par_value("0")
    assert validate_par_value("0.00001")
    assert not validate_par_value("-1")
    assert not validate_par_value("5000")
