"""Numeric argument parsing with range checks."""

import math
from typing import Optional

from ..core.config import MAX_SLEEP_SEC, MIN_SLEEP_SEC
from ..core.errors import RangeError


INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1


def _prefix(verb: Optional[str]) -> str:
    return f"{verb}: " if verb else ""


def to_float(text: str) -> Optional[float]:
    """Parse a decimal, exponent or `0x` number; None if not a finite number."""
    text = text.strip()
    try:
        value = float(text)
    except ValueError:
        try:
            value = float(int(text, 0))
        except ValueError:
            return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def parse_float(text: str, verb: Optional[str] = None) -> float:
    value = to_float(text)
    if value is None:
        raise RangeError(f"{_prefix(verb)}error parsing value '{text}'", value=text)
    return value


def parse_int(text: str, verb: Optional[str] = None) -> int:
    """Parse an integer in decimal, `0x` hex or `0o` octal notation."""
    try:
        value = int(text.strip(), 0)
    except ValueError:
        raise RangeError(f"{_prefix(verb)}error parsing value '{text}'", value=text)
    if not INT32_MIN <= value <= INT32_MAX:
        raise RangeError(f"{_prefix(verb)}error parsing value '{text}'", value=text)
    return value


def parse_positive(text: str, verb: Optional[str] = None, what: str = "value") -> int:
    """Counters and levels: integers of at least one."""
    value = parse_int(text, verb)
    if value <= 0:
        raise RangeError(f"{_prefix(verb)}{what} is out of range: {text}", value=text)
    return value


def parse_duration(text: str, verb: Optional[str] = None, what: str = "delay") -> float:
    """Sleep, delay and run times in seconds, within (0.001, 86400]."""
    value = parse_float(text, verb)
    if value <= MIN_SLEEP_SEC or value > MAX_SLEEP_SEC:
        raise RangeError(f"{_prefix(verb)}{what} is out of range: {text}", value=text)
    return value


def parse_relative(text: str, verb: Optional[str] = None) -> float:
    """Relative axis delta, within a signed 32-bit integer."""
    value = parse_float(text, verb)
    if not INT32_MIN <= value <= INT32_MAX:
        raise RangeError(f"{_prefix(verb)}value is out of range in '{text}'", value=text)
    return value


def parse_absolute(text: str, verb: Optional[str] = None) -> float:
    """Absolute axis value in percent of the axis range."""
    value = parse_float(text, verb)
    if not 0.0 <= value <= 100.0:
        raise RangeError(f"{_prefix(verb)}value is out of range in '{text}'", value=text)
    return value
