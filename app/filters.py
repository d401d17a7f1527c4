from __future__ import annotations

import urllib.parse

_SKIP_EXTENSIONS = (
    ".css", ".js",
    ".gif", ".jpg", ".jpeg", ".png",
    ".mp3", ".mp4",
    ".zip", ".gz",
    ".pdf", ".xls", ".xlsx", ".doc", ".docx",
)


def is_valid(url: str) -> bool:
    """False for blank URLs and for non-document assets (by path extension)."""
    if not url or not url.strip():
        return False
    try:
        path = (urllib.parse.urlsplit(url).path or "").lower()
    except ValueError:
        return False
    return not any(path.endswith(ext) for ext in _SKIP_EXTENSIONS)


def is_in_scope(url: str, base_url: str) -> bool:
    # Plain string prefix: "https://example.com2" is in scope of "https://example.com".
    return url.startswith(base_url)
