# backend/sanitizer.py
import re
from typing import Optional

# "<" up to and including the next ">", or to end of input when unclosed.
# Every "<" is consumed, so the output holds no tag-like substring.
TAG_PATTERN = re.compile(r"<[^>]*>?")


def sanitize(raw: Optional[str]) -> str:
    """Strip tag-like substrings from user text before it is stored or forwarded."""
    if not raw:
        return ""
    return TAG_PATTERN.sub("", raw)
