"""Reference-ID amount encoding — pure functions, no I/O.

The reference ID occupies the trailing ``len(reference_id)`` fractional
digits of the deposit amount. User digits that do not fit are truncated,
never rounded:

    encode("1", "00003", 8)           → "1.00000003"
    encode("1.234567899", "00003", 8) → "1.23400003"  (+ truncation warning)

Everything on the wire path works on decimal strings. Floats appear only in
the USD conversion helpers, which feed display values.
"""
from __future__ import annotations

import logging
import math
from dataclasses import replace
from decimal import ROUND_FLOOR, Decimal

from ..models import AmountEncoding, InputMode
from .decimal_codec import (
    is_decimal_string,
    normalize_input,
    pad_fraction,
    shift_from_integer,
    split_decimal,
    to_decimal,
    truncate_fraction,
)

logger = logging.getLogger(__name__)

TRUNCATION_WARNING = "Amount truncated to fit reference ID requirements"
INVALID_AMOUNT_ERROR = "Amount must be a valid positive number"
TOO_SMALL_ERROR = (
    "Amount is too small - the base amount (excluding reference ID) "
    "must be greater than 0"
)


def _reference_error(reference_id: str, asset_decimals: int) -> str | None:
    if asset_decimals < 1:
        return f"Asset decimals must be positive, got {asset_decimals}"
    if not (reference_id.isascii() and reference_id.isdigit()):
        return f"Reference ID must be a non-empty digit string, got '{reference_id}'"
    if len(reference_id) > asset_decimals:
        return (
            f"Reference ID '{reference_id}' does not fit in "
            f"{asset_decimals} decimal places"
        )
    return None


def encode(
    user_input: str,
    input_mode: InputMode | str,
    reference_id: str,
    asset_decimals: int,
    asset_price_usd: float | None = None,
) -> AmountEncoding:
    """Build the deposit amount carrying ``reference_id``.

    Args:
        user_input: Amount as typed, in asset units or USD.
        input_mode: ``"asset"`` or ``"usd"``.
        reference_id: Decimal-digit string; leading zeros are significant.
        asset_decimals: Fractional digits of the asset on its chain.
        asset_price_usd: Required in USD mode.

    Returns:
        An :class:`AmountEncoding`; ``errors`` is non-empty when invalid.
    """
    mode = InputMode(input_mode)
    text = normalize_input(user_input)
    result = AmountEncoding(
        raw_user_input=str(user_input),
        input_mode=mode,
        asset_decimals=asset_decimals,
        reference_id=reference_id,
    )

    ref_error = _reference_error(reference_id, asset_decimals)
    if ref_error:
        return replace(result, errors=(ref_error,))

    if not is_decimal_string(text) or to_decimal(text) <= 0:
        return replace(result, errors=(INVALID_AMOUNT_ERROR,))

    if mode is InputMode.USD:
        if (
            asset_price_usd is None
            or not math.isfinite(asset_price_usd)
            or asset_price_usd <= 0
        ):
            return replace(result, errors=("Asset price unavailable for USD input",))
        # Preview only. Cut from the shortest float repr so no digit is rounded up.
        asset_value = convert_usd_to_asset(float(text), asset_price_usd)
        if not math.isfinite(asset_value):
            return replace(result, errors=(INVALID_AMOUNT_ERROR,))
        integer_part, fraction = split_decimal(format(Decimal(repr(asset_value)), "f"))
        fraction = truncate_fraction(fraction, asset_decimals).rstrip("0")
        text = f"{integer_part}.{fraction}"

    ref_len = len(reference_id)
    max_user_decimals = max(0, asset_decimals - ref_len)

    integer_part, fraction = split_decimal(text)
    integer_part = integer_part.lstrip("0") or "0"
    warnings: list[str] = []
    if len(fraction) > max_user_decimals:
        fraction = truncate_fraction(fraction, max_user_decimals)
        warnings.append(TRUNCATION_WARNING)

    zeros_needed = max(0, asset_decimals - len(fraction) - ref_len)
    final_fraction = fraction + "0" * zeros_needed + reference_id
    final_amount = f"{integer_part}.{final_fraction}"

    base_fraction = pad_fraction(final_fraction[: asset_decimals - ref_len], asset_decimals)
    base_amount = f"{integer_part}.{base_fraction}"

    errors: list[str] = []
    if to_decimal(base_amount) <= 0:
        errors.append(TOO_SMALL_ERROR)

    return replace(
        result,
        final_amount=final_amount,
        base_amount=base_amount,
        warnings=tuple(warnings),
        errors=tuple(errors),
    )


def validate(amount: str, reference_id: str, asset_decimals: int) -> bool:
    """Check that ``amount`` carries ``reference_id`` in its trailing digits.

    Independent of :func:`encode`: the fractional part is truncated/padded
    to ``asset_decimals`` and its last ``len(reference_id)`` characters must
    equal ``reference_id`` exactly.
    """
    if _reference_error(reference_id, asset_decimals):
        return False

    text = normalize_input(amount)
    if not is_decimal_string(text):
        return False

    _, fraction = split_decimal(text)
    padded = pad_fraction(truncate_fraction(fraction, asset_decimals), asset_decimals)
    return padded[-len(reference_id):] == reference_id


def validate_dust_threshold(
    amount: str, dust_threshold_raw: int | str, asset_decimals: int
) -> bool:
    """True when ``amount`` is strictly above ``dust_threshold_raw / 10^asset_decimals``."""
    try:
        value = to_decimal(normalize_input(amount))
        threshold = to_decimal(dust_threshold_raw).scaleb(-asset_decimals)
    except ValueError:
        return False
    return value > threshold


def validate_for_deposit(
    user_input: str,
    input_mode: InputMode | str,
    reference_id: str,
    asset_decimals: int,
    dust_threshold_raw: int | str,
    dust_decimals: int = 8,
    asset_price_usd: float | None = None,
) -> AmountEncoding:
    """Encode, then require the final amount to clear the inbound dust threshold."""
    encoding = encode(user_input, input_mode, reference_id, asset_decimals, asset_price_usd)
    if not encoding.is_valid:
        return encoding

    if not validate_dust_threshold(encoding.final_amount, dust_threshold_raw, dust_decimals):
        dust = shift_from_integer(dust_threshold_raw, dust_decimals)
        return replace(
            encoding,
            errors=encoding.errors
            + (
                f"Amount {encoding.final_amount} is below the dust threshold "
                f"of {dust}. Please increase your deposit amount.",
            ),
        )
    return encoding


def minimum_user_amount(
    dust_threshold_raw: int | str,
    dust_decimals: int,
    reference_id: str,
    asset_decimals: int,
) -> str:
    """Smallest user input whose encoded amount clears the dust threshold.

    Counted in steps of the smallest user-editable increment,
    ``10^-(asset_decimals - len(reference_id))``, and never below one step.
    """
    user_decimals = max(0, asset_decimals - len(reference_id))
    step = Decimal(1).scaleb(-user_decimals)
    dust = to_decimal(dust_threshold_raw).scaleb(-dust_decimals)
    reference_value = to_decimal(reference_id).scaleb(-asset_decimals)

    steps = ((dust - reference_value) / step).to_integral_value(rounding=ROUND_FLOOR)
    minimum = max((steps + 1) * step, step)
    return f"{minimum:.{user_decimals}f}"


# ---------------------------------------------------------------------------
# Display-only conversions
# ---------------------------------------------------------------------------


def convert_usd_to_asset(usd_amount: float, asset_price_usd: float) -> float:
    if asset_price_usd <= 0:
        raise ValueError("Asset price must be positive")
    return usd_amount / asset_price_usd


def convert_asset_to_usd(asset_amount: float, asset_price_usd: float) -> float:
    return asset_amount * asset_price_usd


def format_usd(amount: str, asset_price_usd: float) -> str:
    """Two-decimal USD equivalent, ``"0.00"`` when the amount is unusable."""
    try:
        return f"{convert_asset_to_usd(float(amount), asset_price_usd):.2f}"
    except (TypeError, ValueError):
        logger.debug("Cannot compute USD equivalent for %r", amount)
        return "0.00"
