"""Compact download-count formatting for badge display."""

from __future__ import annotations

import math

_COMPACT_THRESHOLD = 10_000
_SCIENTIFIC_THRESHOLD = 1_000_000_000_000
_SUFFIXES = ("k", "M", "T")
_SIGNIFICANT_DIGITS = 3


def _digit_at(value: float, place: int) -> int:
    return int(abs(value * 10**place)) % 10


def _scientific(count: int) -> str:
    mantissa, exponent = f"{count:.1e}".split("e")
    return f"{mantissa}e{int(exponent)}"


def format_download_count(count: int) -> str:
    """Render ``count`` with at most three significant digits.

    Values are truncated, never rounded up, so a badge never overstates a
    count. Trailing zero decimals are dropped.

    Examples
    --------
    >>> format_download_count(9_999)
    '9999'
    >>> format_download_count(10_110)
    '10.1k'
    >>> format_download_count(6_156_000)
    '6.15M'
    >>> format_download_count(5_835_742_000_000)
    '5.8e12'

    """
    if count < _COMPACT_THRESHOLD:
        return str(count)
    if count >= _SCIENTIFIC_THRESHOLD:
        return _scientific(count)

    delta = float(count)
    magnitude = 0
    while delta >= 1000.0:  # noqa: PLR2004 - thousands grouping
        delta /= 1000.0
        magnitude += 1
    suffix = _SUFFIXES[magnitude - 1]

    precision = _SIGNIFICANT_DIGITS - 1 - math.floor(math.log10(delta))
    while precision > 0 and _digit_at(delta, precision) == 0:
        precision -= 1

    if precision == 0:
        return f"{math.trunc(delta)}{suffix}"

    multiplier = 10**precision
    truncated = math.trunc(delta * multiplier) / multiplier
    return f"{truncated:.{precision}f}{suffix}"
