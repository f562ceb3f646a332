"""Closed numeric ranges for the append-only stores"""
import math


def is_bounded_number(value, bounds) -> bool:
    """Finite real number inside the closed interval"""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    low, high = bounds
    return math.isfinite(value) and low <= value <= high


def printable(value):
    """JSON-safe rendering of a rejected value (NaN / inf become strings)"""
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    return value if isinstance(value, (int, float)) else str(value)
