import math


def harmonic_mean(a: float, b: float) -> float:
    """Calculate the harmonic mean of two numbers.

    Args:
        a: First number
        b: Second number

    Returns:
        The harmonic mean of a and b, or 0 if a + b = 0
    """
    if a + b == 0:
        return 0
    return 2 * (a * b) / (a + b)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3, not 2)."""
    return math.floor(value + 0.5)


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))
