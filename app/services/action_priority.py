"""
Action Priority calculator (AIAG-VDA style).

The banded S → O → D decision table is the only source of H/M/L priority.
RPN (S × O × D) is reported next to it but never used to rank.

Usage:
    from app.services.action_priority import action_priority, calculate_rpn

    action_priority(9, 5, 5)   # -> "H"
    calculate_rpn(9, 5, 5)     # -> 225
"""

import math

RATING_MIN = 1
RATING_MAX = 10

PRIORITY_RANK = {"L": 0, "M": 1, "H": 2}


def clamp_rating(value) -> int:
    """Coerce a severity/occurrence/detection rating into 1–10.

    Non-numeric, empty or NaN input counts as 1; +inf and -inf land on the
    nearest bound; fractions are truncated.
    """
    try:
        number = float(value or RATING_MIN)
    except (TypeError, ValueError, OverflowError):
        return RATING_MIN
    if math.isnan(number):
        return RATING_MIN
    if math.isinf(number):
        return RATING_MAX if number > 0 else RATING_MIN
    return max(RATING_MIN, min(RATING_MAX, int(number)))


def calculate_rpn(severity, occurrence, detection) -> int:
    """RPN = S × O × D over clamped ratings. Range: 1–1000."""
    return clamp_rating(severity) * clamp_rating(occurrence) * clamp_rating(detection)


def action_priority(severity, occurrence, detection) -> str:
    """
    Map (S, O, D) to "H", "M" or "L".

    Bands by severity first:
      S 9-10  safety / regulatory
      S 7-8   loss of primary function
      S 4-6   degraded function
      S 1-3   minor
    then by occurrence, then by detection.
    """
    s = clamp_rating(severity)
    o = clamp_rating(occurrence)
    d = clamp_rating(detection)

    if s >= 9:
        if o >= 2:
            return "H"
        return "H" if d >= 5 else "M"

    if s >= 7:
        if o >= 7:
            return "H"
        if o >= 4:
            return "H" if d >= 3 else "M"
        if o >= 2:
            if d >= 7:
                return "H"
            return "M" if d >= 3 else "L"
        if d >= 9:
            return "H"
        return "M" if d >= 5 else "L"

    if s >= 4:
        if o >= 7:
            return "H" if d >= 3 else "M"
        if o >= 4:
            if d >= 7:
                return "H"
            return "M" if d >= 3 else "L"
        if o >= 2:
            return "M" if d >= 5 else "L"
        return "M" if d >= 9 else "L"

    if o >= 7:
        if d >= 9:
            return "H"
        return "M" if d >= 3 else "L"
    if o >= 4:
        return "M" if d >= 7 else "L"
    if o >= 2:
        return "M" if d >= 9 else "L"
    return "L"


def priority_rank(priority: str) -> int:
    """Ordering helper: L < M < H."""
    return PRIORITY_RANK[priority]
