"""
Utility functions for MusicMan
"""
from typing import Optional


def format_duration(ms: Optional[int]) -> str:
    """Format a duration in milliseconds to a readable string."""
    if ms is None:
        return "??:??"
    if ms == 0:
        return "LIVE"
    h, rem = divmod(int(ms) // 1000, 3600)
    m, s = divmod(rem, 60)
    if h:
        return f"{h:d}:{m:02d}:{s:02d}"
    return f"{m:d}:{s:02d}"


def truncate(text: Optional[str], n: int = 60) -> str:
    """Truncate text to specified length with ellipsis."""
    if not text:
        return ""
    return text if len(text) <= n else text[: n - 1].rstrip() + "…"


def looks_like_url(query: str) -> bool:
    q = (query or "").strip().lower()
    return q.startswith("http://") or q.startswith("https://")
