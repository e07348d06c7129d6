"""
Romanian personal numeric code (CNP) validation.

Layout: S YY MM DD JJ NNN C
  S   sex/century digit (1-9)
  JJ  county code
  C   check digit: weighted sum of the first 12 digits with 279146358279, mod 11 (10 -> 1)
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date

CHECK_WEIGHTS = "279146358279"

# 01-46 counties, 47/48 former Bucharest sectors 7-8, 51/52 Călărași/Giurgiu, 70 issued regardless of county.
VALID_COUNTY_CODES = frozenset([f"{i:02d}" for i in range(1, 49)] + ["51", "52", "70"])

_CENTURY_BY_SEX_DIGIT = {"1": 1900, "2": 1900, "3": 1800, "4": 1800, "5": 2000, "6": 2000}


@dataclass(frozen=True)
class CnpValidation:
    is_valid: bool
    error: str | None = None  # message catalog key
    birth_date: date | None = None
    sex: str | None = None  # "M" | "F" | None for foreign residents (9)


def checksum_digit(first12: str) -> int:
    total = sum(int(d) * int(w) for d, w in zip(first12, CHECK_WEIGHTS))
    rest = total % 11
    return 1 if rest == 10 else rest


def _century(sex_digit: str, yy: int, today: date) -> int:
    if sex_digit in _CENTURY_BY_SEX_DIGIT:
        return _CENTURY_BY_SEX_DIGIT[sex_digit]
    # 7/8 residents, 9 foreigners: no century marker, assume the most recent past century.
    return 2000 if yy <= today.year % 100 else 1900


def validate_cnp(value: str | None, *, today: date | None = None) -> CnpValidation:
    cnp = value or ""
    if len(cnp) != 13:
        return CnpValidation(False, "cnp_length")
    if not cnp.isdigit() or not cnp.isascii():
        return CnpValidation(False, "cnp_digits")

    sex_digit = cnp[0]
    if sex_digit == "0":
        return CnpValidation(False, "cnp_sex_digit")

    today = today or date.today()
    yy, mm, dd = int(cnp[1:3]), int(cnp[3:5]), int(cnp[5:7])
    try:
        birth = date(_century(sex_digit, yy, today) + yy, mm, dd)
    except ValueError:
        return CnpValidation(False, "cnp_birth_date")
    if birth > today:
        return CnpValidation(False, "cnp_birth_date")

    if cnp[7:9] not in VALID_COUNTY_CODES:
        return CnpValidation(False, "cnp_county")

    if checksum_digit(cnp[:12]) != int(cnp[12]):
        return CnpValidation(False, "cnp_checksum")

    if sex_digit == "9":
        sex = None
    else:
        sex = "M" if int(sex_digit) % 2 == 1 else "F"
    return CnpValidation(True, None, birth, sex)


def mask_cnp(value: str | None) -> str:
    """Keep the sex digit and the last 3 digits visible: 1*********239."""
    cnp = (value or "").strip()
    if len(cnp) < 5:
        return "*" * len(cnp)
    return cnp[0] + "*" * (len(cnp) - 4) + cnp[-3:]
