"""
Error message fingerprinting.

Maps free-text error messages to a short normalized pattern so that messages
differing only in ids, dates or counts group together, while different HTTP
status codes stay distinct.
"""

import re
from typing import Optional

from tracewarden.core.config import settings

HTTP_STATUS_PATTERN = re.compile(r"\bHTTP[\s:/-]?\d{3}\b|\b\d{3}\s?HTTP\b", re.IGNORECASE)
UUID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE
)
DATE_PATTERN = re.compile(r"\b\d{4}-\d{2}-\d{2}\b")
NUMBER_PATTERN = re.compile(r"\d+")


def _normalize_segment(segment: str) -> str:
    segment = UUID_PATTERN.sub("<UUID>", segment)
    segment = DATE_PATTERN.sub("<DATE>", segment)
    return NUMBER_PATTERN.sub("<N>", segment)


def extract_error_pattern(message: str, max_length: Optional[int] = None) -> str:
    """
    Normalize an error message into a grouping key.

    HTTP-adjacent status codes are kept verbatim; UUIDs become <UUID>,
    YYYY-MM-DD dates become <DATE> and every other digit run becomes <N>.
    The result is truncated to max_length characters.
    """
    max_length = settings.ERROR_PATTERN_MAX_LENGTH if max_length is None else max_length

    parts = []
    position = 0
    for match in HTTP_STATUS_PATTERN.finditer(message):
        parts.append(_normalize_segment(message[position : match.start()]))
        parts.append(match.group(0))
        position = match.end()
    parts.append(_normalize_segment(message[position:]))

    return "".join(parts)[:max_length]
