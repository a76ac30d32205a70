"""Pure scoring helpers shared by the result, review and admin views."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional


def is_correct(selected_option: Optional[str], correct_option: str) -> bool:
    """Exact match; no answer is never correct."""
    return selected_option is not None and selected_option == correct_option


def percentage(correct_count: int, total_questions: int) -> int:
    """Whole-number percentage, rounding halves up (e.g. 12.5 -> 13)."""
    if total_questions <= 0:
        return 0
    raw = Decimal(correct_count * 100) / Decimal(total_questions)
    return int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_grade(score: float) -> str:
    """Convert percentage to letter grade (A/B/C/D/F)."""
    if score >= 90:
        return "A"
    elif score >= 80:
        return "B"
    elif score >= 70:
        return "C"
    elif score >= 60:
        return "D"
    else:
        return "F"
