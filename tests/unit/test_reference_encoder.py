"""Unit tests for reference-ID amount encoding and validation."""
from __future__ import annotations

import pytest

from memoless.encoding.reference import (
    INVALID_AMOUNT_ERROR,
    TOO_SMALL_ERROR,
    TRUNCATION_WARNING,
    convert_usd_to_asset,
    encode,
    format_usd,
    minimum_user_amount,
    validate,
    validate_dust_threshold,
    validate_for_deposit,
)
from memoless.models import InputMode


class TestEncode:
    def test_whole_amount(self) -> None:
        result = encode("1", "asset", "00003", 8)
        assert result.is_valid
        assert result.final_amount == "1.00000003"
        assert result.base_amount == "1.00000000"
        assert result.warnings == ()
        assert validate("1.00000003", "00003", 8)

    def test_six_decimal_asset(self) -> None:
        result = encode("1", InputMode.ASSET, "12345", 6)
        assert result.final_amount == "1.012345"

    def test_excess_digits_are_truncated_not_rounded(self) -> None:
        result = encode("1.234567899", "asset", "00003", 8)
        assert result.final_amount == "1.23400003"
        assert result.final_amount != "1.23456789"
        assert TRUNCATION_WARNING in result.warnings
        assert result.is_valid

    def test_truncation_drops_nines(self) -> None:
        result = encode("0.9999", "asset", "123", 5)
        assert result.final_amount == "0.99123"

    def test_fraction_that_fits_has_no_warning(self) -> None:
        result = encode("0.5", "asset", "42", 8)
        assert result.final_amount == "0.50000042"
        assert result.warnings == ()

    def test_leading_zeros_of_reference_are_kept(self) -> None:
        result = encode("2", "asset", "007", 8)
        assert result.final_amount.endswith("007")
        assert result.final_amount == "2.00000007"

    def test_reference_fills_all_decimals(self) -> None:
        result = encode("3.14", "asset", "12345678", 8)
        assert result.final_amount == "3.12345678"
        assert TRUNCATION_WARNING in result.warnings

    @pytest.mark.parametrize("value", ["0", "-1", "abc", "", "1e5", "0.000"])
    def test_rejects_non_positive_or_non_numeric(self, value: str) -> None:
        result = encode(value, "asset", "00003", 8)
        assert result.errors == (INVALID_AMOUNT_ERROR,)
        assert result.final_amount == ""

    def test_base_amount_must_be_positive(self) -> None:
        result = encode("0.000001", "asset", "00003", 8)
        assert result.final_amount == "0.00000003"
        assert TOO_SMALL_ERROR in result.errors

    def test_reference_longer_than_decimals(self) -> None:
        result = encode("1", "asset", "1234567", 6)
        assert not result.is_valid
        assert "does not fit" in result.errors[0]

    def test_non_digit_reference(self) -> None:
        result = encode("1", "asset", "12a", 8)
        assert not result.is_valid

    def test_non_ascii_amount_is_rejected(self) -> None:
        result = encode("\u0661", "asset", "00003", 8)
        assert result.errors == (INVALID_AMOUNT_ERROR,)
        assert result.final_amount == ""

    @pytest.mark.parametrize("reference_id", ["\u0660\u0663", "0\u00b2"])
    def test_non_ascii_reference_is_rejected(self, reference_id: str) -> None:
        assert not encode("1", "asset", reference_id, 8).is_valid
        assert not validate("1.00000003", reference_id, 8)

    def test_usd_mode_converts_with_price(self) -> None:
        result = encode("50", "usd", "00003", 8, asset_price_usd=1000.0)
        assert result.input_mode is InputMode.USD
        assert result.final_amount == "0.05000003"

    def test_usd_mode_without_price(self) -> None:
        result = encode("50", "usd", "00003", 8)
        assert not result.is_valid
        assert "price" in result.errors[0]

    @pytest.mark.parametrize("price", [float("nan"), float("inf"), 0.0, -5.0])
    def test_usd_mode_rejects_unusable_price(self, price: float) -> None:
        result = encode("50", "usd", "00003", 8, asset_price_usd=price)
        assert not result.is_valid
        assert "price" in result.errors[0]

    def test_usd_preview_truncates_without_carry(self) -> None:
        result = encode("0.00999999999", "usd", "00003", 8, asset_price_usd=1.0)
        assert result.final_amount == "0.00900003"
        assert TRUNCATION_WARNING not in result.warnings

    def test_input_is_normalized(self) -> None:
        result = encode(" +1.5 ", "asset", "1", 2)
        assert result.final_amount == "1.51"
        assert result.raw_user_input == " +1.5 "


class TestValidate:
    def test_matches_trailing_digits(self) -> None:
        assert validate("0.01000003", "00003", 8)

    def test_mismatch(self) -> None:
        assert not validate("0.01000004", "00003", 8)

    def test_short_fraction_is_padded(self) -> None:
        assert not validate("1.5", "00003", 8)
        assert validate("1.5", "0", 8)

    def test_long_fraction_is_truncated(self) -> None:
        assert validate("1.000000039", "00003", 8)

    def test_invalid_amount(self) -> None:
        assert not validate("abc", "00003", 8)

    def test_agrees_with_encode(self) -> None:
        for value in ("1", "0.25", "12.3456", "1.234567899", "100"):
            result = encode(value, "asset", "00042", 8)
            assert validate(result.final_amount, "00042", 8)


class TestDustThreshold:
    def test_above_threshold(self) -> None:
        assert validate_dust_threshold("0.00002", 1000, 8)

    def test_below_threshold(self) -> None:
        assert not validate_dust_threshold("0.000005", 1000, 8)

    def test_equality_is_rejected(self) -> None:
        assert not validate_dust_threshold("0.00001", 1000, 8)

    def test_one_unit_above(self) -> None:
        assert validate_dust_threshold("0.00001001", 1000, 8)

    def test_raw_string_threshold(self) -> None:
        assert validate_dust_threshold("0.00002", "1000", 8)

    def test_non_ascii_amount(self) -> None:
        assert not validate_dust_threshold("\u0661", 1000, 8)

    def test_invalid_amount(self) -> None:
        assert not validate_dust_threshold("abc", 1000, 8)


class TestValidateForDeposit:
    def test_clears_dust(self) -> None:
        result = validate_for_deposit("0.001", "asset", "00003", 8, "1000")
        assert result.is_valid
        assert result.final_amount == "0.00100003"

    def test_below_dust_adds_error(self) -> None:
        result = validate_for_deposit("0.00001", "asset", "003", 8, "10000")
        assert not result.is_valid
        assert "dust threshold of 0.00010000" in result.errors[-1]

    def test_encoding_errors_short_circuit(self) -> None:
        result = validate_for_deposit("0", "asset", "00003", 8, "1000")
        assert result.errors == (INVALID_AMOUNT_ERROR,)


class TestMinimumUserAmount:
    def test_minimum_clears_dust(self) -> None:
        minimum = minimum_user_amount("1000", 8, "00003", 8)
        assert minimum == "0.001"
        result = validate_for_deposit(minimum, "asset", "00003", 8, "1000")
        assert result.is_valid

    def test_never_below_one_step(self) -> None:
        assert minimum_user_amount("0", 8, "00003", 8) == "0.001"


class TestUsdHelpers:
    def test_convert_requires_price(self) -> None:
        with pytest.raises(ValueError, match="positive"):
            convert_usd_to_asset(10.0, 0.0)

    def test_format_usd(self) -> None:
        assert format_usd("0.00050003", 100000.0) == "50.00"

    def test_format_usd_invalid_amount(self) -> None:
        assert format_usd("abc", 100000.0) == "0.00"
