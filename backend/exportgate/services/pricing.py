"""Price parsing and display formatting."""
import math
import re
from typing import Any, Optional


GROUP_SEPARATOR = " "
DECIMAL_SEPARATOR = ","

_WHITESPACE_RE = re.compile(r"[\s\u00a0\u202f]+")
_NUMBER_RE = re.compile(r"\d[\d\s\u00a0\u202f.,]*")
_DECIMAL_TAIL_RE = re.compile(r"(.*?)[.,](\d{1,2})")
_GROUPED_ONLY_RE = re.compile(r"[\d\s\u00a0\u202f.,]+")


def parse_amount(value: Any) -> Optional[float]:
    """Parse a structured amount (number or numeric string).

    Args:
        value: Raw amount as sent by the provider

    Returns:
        Finite float, or None when the value is not numeric
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        amount = float(value)
    elif isinstance(value, str):
        cleaned = _WHITESPACE_RE.sub("", value).replace(",", ".")
        try:
            amount = float(cleaned)
        except ValueError:
            if not _GROUPED_ONLY_RE.fullmatch(value.strip()):
                return None
            amount = parse_display_amount(value)
            if amount is None:
                return None
    else:
        return None

    if not math.isfinite(amount):
        return None
    return amount


def parse_display_amount(text: str) -> Optional[float]:
    """Extract the first amount from a free-form price string.

    Handles grouped thousands ("850 000", "1.200.000") and a trailing
    one or two digit decimal part ("500,00").
    """
    match = _NUMBER_RE.search(text)
    if not match:
        return None

    token = _WHITESPACE_RE.sub("", match.group(0)).rstrip(".,")
    tail = _DECIMAL_TAIL_RE.fullmatch(token)
    if tail:
        integer, decimals = tail.groups()
    else:
        integer, decimals = token, ""
    integer = re.sub(r"[.,]", "", integer)
    if not integer:
        return None
    return float(f"{integer}.{decimals}" if decimals else integer)


def group_thousands(amount: float) -> str:
    """Format a number with grouped thousands and at most three decimals."""
    sign = "-" if amount < 0 else ""
    integer, fraction = f"{abs(amount):.3f}".split(".")
    grouped = f"{int(integer):,}".replace(",", GROUP_SEPARATOR)
    fraction = fraction.rstrip("0")
    if fraction:
        return f"{sign}{grouped}{DECIMAL_SEPARATOR}{fraction}"
    return f"{sign}{grouped}"


def format_price(amount: float, currency: str) -> str:
    """Render an amount with its currency.

    >>> format_price(850000, "MGA")
    '850 000 MGA'
    >>> format_price(1200, "USD")
    '$1 200'
    """
    code = (currency or "").strip().upper()
    grouped = group_thousands(amount)
    if code == "MGA":
        return f"{grouped} MGA"
    if code == "USD":
        return f"${grouped}"
    if code == "EUR":
        return f"{grouped} €"
    if not code:
        return grouped
    return f"{grouped} {code}"
