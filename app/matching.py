from __future__ import annotations


def _normalize(s: str) -> str:
    return (s or "").lower()


def contains_keyword(content: str, keyword: str) -> bool:
    """
    Case-insensitive substring test against raw page content (markup included).
    A blank keyword never matches.
    """
    needle = _normalize(keyword)
    if not needle.strip():
        return False
    return needle in _normalize(content)
