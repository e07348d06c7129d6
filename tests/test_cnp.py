from datetime import date

import pytest

from app.ssm.modules.employees.cnp import checksum_digit, mask_cnp, validate_cnp

TODAY = date(2026, 10, 19)


def test_valid_cnp_decodes_birth_date_and_sex():
    r = validate_cnp("1900101221239", today=TODAY)
    assert r.is_valid is True
    assert r.error is None
    assert r.birth_date == date(1990, 1, 1)
    assert r.sex == "M"

    r = validate_cnp("2850615400013", today=TODAY)
    assert r.is_valid is True
    assert r.birth_date == date(1985, 6, 15)
    assert r.sex == "F"


@pytest.mark.parametrize("value", [" 1900101221239", "1900101221239 ", "1900101221239\n", "190010 1221239"])
def test_whitespace_is_not_stripped(value):
    r = validate_cnp(value, today=TODAY)
    assert r.is_valid is False
    assert r.error in ("cnp_length", "cnp_digits")


@pytest.mark.parametrize(
    "value,error",
    [
        ("", "cnp_length"),
        (None, "cnp_length"),
        ("190010122123", "cnp_length"),
        ("19001012212399", "cnp_length"),
        ("19001012212a9", "cnp_digits"),
        ("0900101221239", "cnp_sex_digit"),
        ("1901301221239", "cnp_birth_date"),
        ("1900230221239", "cnp_birth_date"),
        ("5991231400011", "cnp_birth_date"),
        ("1900101991239", "cnp_county"),
        ("1900101491239", "cnp_county"),
        ("1900101221234", "cnp_checksum"),
    ],
)
def test_invalid_cnp_reports_first_failing_rule(value, error):
    r = validate_cnp(value, today=TODAY)
    assert r.is_valid is False
    assert r.error == error


def test_checksum_remainder_ten_maps_to_one():
    assert checksum_digit("500000000000") == 1
    assert checksum_digit("190010122123") == 9


def test_resident_and_foreigner_century_pivot():
    recent = validate_cnp("9050101400010", today=TODAY)
    assert recent.is_valid is True
    assert recent.birth_date == date(2005, 1, 1)
    assert recent.sex is None

    older = validate_cnp("7800101400017", today=TODAY)
    assert older.is_valid is True
    assert older.birth_date == date(1980, 1, 1)
    assert older.sex == "M"


def test_special_county_codes_accepted():
    # 70 is issued regardless of county of residence.
    first12 = "190010170123"
    assert validate_cnp(first12 + str(checksum_digit(first12)), today=TODAY).is_valid is True


def test_unassigned_county_rejected_even_with_valid_checksum():
    first12 = "190010160123"
    r = validate_cnp(first12 + str(checksum_digit(first12)), today=TODAY)
    assert r.is_valid is False
    assert r.error == "cnp_county"


def test_mask_cnp():
    assert mask_cnp("1900101221239") == "1*********239"
    assert mask_cnp("123") == "***"
    assert mask_cnp(None) == ""
