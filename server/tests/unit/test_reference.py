"""Tests for booking reference ids."""

from datetime import date

from cabin_booking.services.reference import (
    ALPHABET,
    compute_checksum,
    generate_reference_id,
    validate_reference_id,
)


def test_generated_reference_format():
    reference = generate_reference_id(date(2026, 1, 18))

    prefix, date_part, tail = reference.split("-")
    assert prefix == "BKG"
    assert date_part == "260118"
    assert len(tail) == 5
    assert all(char in ALPHABET for char in tail[:4])
    assert tail[4] == compute_checksum(f"BKG260118{tail[:4]}")


def test_alphabet_skips_ambiguous_characters():
    assert not set("OI10") & set(ALPHABET)
    assert len(ALPHABET) == 32


def test_checksum_is_single_base36_digit():
    # ord sum of "BKG260118AAAA" is 778, 778 % 36 == 22 -> "M"
    assert compute_checksum("BKG260118AAAA") == "M"
    assert compute_checksum("") == "0"


def test_generated_references_validate():
    for _ in range(50):
        assert validate_reference_id(generate_reference_id()) == (True, None)


def test_invalid_references():
    reference = generate_reference_id(date(2026, 1, 18))
    wrong_checksum = reference[:-1] + ("2" if reference[-1] != "2" else "3")

    assert validate_reference_id("BKG-2601-ABCDE") == (False, "Invalid format")
    assert validate_reference_id("XYZ" + reference[3:]) == (False, "Invalid prefix")
    assert validate_reference_id(wrong_checksum) == (False, "Checksum validation failed")
    assert validate_reference_id("BKG-260118-O0AAK")[1] == "Invalid random part"
