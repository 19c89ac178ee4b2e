"""Loss-free decimal-string helpers. No binary floats anywhere."""
from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

_DECIMAL_RE = re.compile(r"^[0-9]*\.?[0-9]*$")


def normalize_input(value: str) -> str:
    """Trim whitespace and a leading ``+``; exponent notation is left invalid.

    Examples:
        " 1.5 " → "1.5"
        "+2"    → "2"
        ".5"    → "0.5"
    """
    text = str(value).strip()
    if text.startswith("+"):
        text = text[1:]
    if text.startswith("."):
        text = "0" + text
    return text


def is_decimal_string(value: str) -> bool:
    """True for plain unsigned decimal strings like ``"12"``, ``"0.5"``, ``"3."``."""
    if not value or value == ".":
        return False
    return bool(_DECIMAL_RE.match(value))


def split_decimal(value: str) -> tuple[str, str]:
    """Split into ``(integer_part, fractional_part)``.

    A missing fractional part is the empty string; a missing integer part
    becomes ``"0"``.
    """
    integer_part, _, fraction = value.partition(".")
    return integer_part or "0", fraction


def truncate_fraction(fraction: str, n: int) -> str:
    """Keep the first ``n`` characters. Never rounds."""
    return fraction[: max(0, n)]


def pad_fraction(fraction: str, n: int) -> str:
    """Right-pad with ``'0'`` to length ``n``."""
    return fraction.ljust(n, "0")


def shift_to_integer(value: str, decimals: int) -> str:
    """Raw indivisible-unit string for ``value`` at ``decimals`` places.

    Fractional digits past ``decimals`` are truncated.

    Examples:
        ("1.00000003", 8) → "100000003"
        ("0.000005", 8)   → "500"
        ("0", 8)          → "0"
    """
    integer_part, fraction = split_decimal(value)
    fraction = pad_fraction(truncate_fraction(fraction, decimals), decimals)
    return (integer_part + fraction).lstrip("0") or "0"


def shift_from_integer(raw: str | int, decimals: int) -> str:
    """Inverse of :func:`shift_to_integer`; trailing zeros are kept.

    Examples:
        ("1000", 8) → "0.00001000"
        ("5", 0)    → "5"
    """
    digits = str(raw).strip().lstrip("0") or "0"
    if decimals <= 0:
        return digits
    digits = digits.rjust(decimals + 1, "0")
    return f"{digits[:-decimals]}.{digits[-decimals:]}"


def to_decimal(value: str | int) -> Decimal:
    """Parse into an arbitrary-precision :class:`Decimal`.

    Raises:
        ValueError: if ``value`` is not numeric.
    """
    text = str(value).strip()
    if not text.isascii():
        raise ValueError(f"Not a decimal value: {value!r}")
    try:
        result = Decimal(text)
    except InvalidOperation as e:
        raise ValueError(f"Not a decimal value: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Not a finite decimal value: {value!r}")
    return result


def compare_decimal(a: str, b: str) -> int:
    """Numeric ordering of two decimal strings: -1, 0 or 1."""
    left, right = to_decimal(a), to_decimal(b)
    if left < right:
        return -1
    if left > right:
        return 1
    return 0
