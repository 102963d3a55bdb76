"""Numeric helpers shared by the automation engine and the host glue."""

from __future__ import annotations

import math
import re

# Plain decimal float literal: optional sign, digits with optional fraction
# (or a bare fraction), optional exponent. No inf/nan, no underscores.
_FLOAT_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_UINT_RE = re.compile(r"[0-9]+")


def seconds_to_samples(seconds: float, sample_rate: float) -> int:
    """Convert seconds to a sample position, truncating toward zero."""
    return int(seconds * sample_rate)


def parse_float_strict(text: str) -> float:
    """Parse a float literal, requiring the whole string to be consumed.

    Raises:
        ValueError: If ``text`` is not a plain finite decimal literal.
    """
    if not _FLOAT_RE.fullmatch(text):
        raise ValueError(f"Invalid number: '{text}'")
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"Number out of range: '{text}'")
    return value


def parse_int_strict(text: str) -> int:
    """Parse a non-negative integer made of ASCII digits only.

    Raises:
        ValueError: If ``text`` contains anything but digits.
    """
    if not _UINT_RE.fullmatch(text):
        raise ValueError(f"Invalid integer: '{text}'")
    return int(text)
