"""Utility functions for sanitization, validation and time handling."""

import math
import re
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import bleach


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def sanitize_question_text(text: str) -> str:
    """Sanitize question content to prevent XSS attacks.

    Allows basic formatting tags but removes script/dangerous content.
    """
    allowed_tags = ['b', 'i', 'u', 'em', 'strong', 'p', 'br', 'code', 'pre', 'ul', 'ol', 'li']
    allowed_attributes = {}

    sanitized = bleach.clean(text, tags=allowed_tags, attributes=allowed_attributes, strip=True)
    return sanitized.strip()


def sanitize_comment(text: str) -> str:
    """Sanitize a teacher's grade comment.

    Allows basic text but removes any HTML/script content.
    """
    sanitized = bleach.clean(text, tags=[], strip=True)
    return sanitized.strip()


def validate_score(score: float, max_score: float = 100) -> bool:
    """Validate that a score is within ``[0, max_score]``.

    Raises:
        ValueError: If the score is out of range
    """
    if score < 0 or score > max_score:
        raise ValueError(f"Score {score} out of range [0, {max_score}]")

    return True


def round_half_up(value: float, digits: int = 1) -> float:
    """Round half away from zero (``2.25 -> 2.3``), unlike the builtin banker's rounding."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def paginate(items: list, page: int, limit: int) -> dict:
    """Slice ``items`` into one page and describe the paging state."""
    total_items = len(items)
    total_pages = math.ceil(total_items / limit) if limit > 0 else 0
    start_idx = (page - 1) * limit
    return {
        "total_items": total_items,
        "items": items[start_idx:start_idx + limit],
        "current_page": page,
        "total_pages": total_pages,
    }


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise a datetime to aware UTC; naive values are taken to be UTC already."""
    if value is None:
        return None
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


def is_valid_email(email: str) -> bool:
    email = (email or "").strip()
    return len(email) <= 255 and bool(EMAIL_PATTERN.match(email))
