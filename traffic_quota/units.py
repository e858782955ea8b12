"""
Quota string parsing.

Turns strings like "1tb" or "500GB" into exact byte counts. Whether the
suffixes mean powers of 1000 or 1024 is decided by the configured
:class:`UnitConvention`; the result is always plain bytes.
"""
from enum import Enum
from typing import Dict

MAX_BYTES = 2**64 - 1


class UnitConvention(Enum):
    DECIMAL = "decimal"
    BINARY = "binary"

    @classmethod
    def from_name(cls, name: str) -> "UnitConvention":
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            raise ValueError(f"unknown unit type {name!r} (expected 'decimal' or 'binary')") from None


MULTIPLIERS: Dict[UnitConvention, Dict[str, int]] = {
    UnitConvention.DECIMAL: {
        "b": 1,
        "kb": 1000,
        "mb": 1000**2,
        "gb": 1000**3,
        "tb": 1000**4,
    },
    UnitConvention.BINARY: {
        "b": 1,
        "kb": 1024,
        "mb": 1024**2,
        "gb": 1024**3,
        "tb": 1024**4,
    },
}


class ParseError(ValueError):
    """Base class for quota strings that cannot be converted to bytes."""


class NoDigitsError(ParseError):
    pass


class UnknownUnitError(ParseError):
    pass


class OverflowQuotaError(ParseError):
    pass


def split_quota(s: str):
    """Split a quota string into its leading digit run and the remaining suffix."""
    s = s.strip()
    i = 0
    while i < len(s) and s[i] in "0123456789":
        i += 1
    return s[:i], s[i:]


def parse_quota(s: str, convention: UnitConvention) -> int:
    digits, unit = split_quota(s)
    if not digits:
        raise NoDigitsError(f"no leading digits in quota {s!r}")

    magnitude = int(digits)
    if magnitude > MAX_BYTES:
        raise OverflowQuotaError(f"quota {s!r} does not fit in 64 bits")

    multiplier = MULTIPLIERS[convention].get(unit.lower())
    if multiplier is None:
        raise UnknownUnitError(f"unknown unit {unit!r} in quota {s!r}")

    total = magnitude * multiplier
    if total > MAX_BYTES:
        raise OverflowQuotaError(f"quota {s!r} exceeds {MAX_BYTES} bytes")
    return total
