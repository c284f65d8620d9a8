"""Card brand detection from the Issuer Identification Number (IIN).

This is brand classification only. No Luhn checksum or length validation is
performed, and the full card number is never retained by the ledger.
"""
from __future__ import annotations

import re
from typing import Callable, List, Optional, Tuple

from dental_ledger.models import CardBrand

_NON_DIGITS = re.compile(r"\D")


def _prefix_in(width: int, low: int, high: int) -> Callable[[str], bool]:
    def predicate(digits: str) -> bool:
        if len(digits) < width:
            return False
        return low <= int(digits[:width]) <= high

    return predicate


def _starts_with(*prefixes: str) -> Callable[[str], bool]:
    return lambda digits: digits.startswith(prefixes)


# Evaluated top to bottom; the first matching predicate wins.
BRAND_TABLE: List[Tuple[Callable[[str], bool], CardBrand]] = [
    (_starts_with("4"), "Visa"),
    (_starts_with("34", "37"), "American Express"),
    (_prefix_in(2, 51, 55), "Mastercard"),
    (_prefix_in(6, 222100, 272099), "Mastercard"),
    (_starts_with("6011"), "Discover"),
    (_prefix_in(3, 644, 649), "Discover"),
    (_prefix_in(6, 622126, 622925), "Discover"),
    (_prefix_in(6, 624000, 626999), "Discover"),
    (_prefix_in(6, 628200, 628899), "Discover"),
    (_starts_with("65"), "Discover"),
]


def digits_only(card_number: str) -> str:
    return _NON_DIGITS.sub("", card_number or "")


def identify_brand(card_number: str) -> Optional[CardBrand]:
    """Return the card brand for ``card_number`` or ``None`` when unknown.

    Inputs with fewer than four digits are always unknown.
    """
    digits = digits_only(card_number)
    if len(digits) < 4:
        return None
    for predicate, brand in BRAND_TABLE:
        if predicate(digits):
            return brand
    return None


def last_four(card_number: str) -> str:
    """Return the trailing four digits (fewer for malformed input)."""
    return digits_only(card_number)[-4:]


__all__ = ["BRAND_TABLE", "digits_only", "identify_brand", "last_four"]
