"""Utility functions for sanitization."""

from typing import Optional

import bleach


def sanitize_question_text(text: str) -> str:
    """Sanitize question and option text to prevent XSS attacks.

    Allows basic formatting tags but removes script/dangerous content.
    """
    allowed_tags = ["b", "i", "u", "em", "strong", "sub", "sup", "br", "code"]
    sanitized = bleach.clean(text or "", tags=allowed_tags, attributes={}, strip=True)
    return sanitized.strip()


def sanitize_plain_text(text: Optional[str]) -> Optional[str]:
    """Strip all HTML, returning None for empty input."""
    if text is None:
        return None
    sanitized = bleach.clean(text, tags=[], strip=True).strip()
    return sanitized or None
