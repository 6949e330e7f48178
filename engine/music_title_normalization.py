from __future__ import annotations

import re
import unicodedata

_PARENTHETICAL_RE = re.compile(r"\([^)]*\)")
_BRACKETED_RE = re.compile(r"\[[^\]]*\]")
_WS_RE = re.compile(r"\s+")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def normalize_for_key(value: str | None) -> str:
    """Normalize a title or artist for duplicate detection.

    Lowercases, drops ``(...)`` and ``[...]`` spans including their content,
    turns every non-alphanumeric run into a single space, and trims.
    ``"Song (Live) [Remastered]"`` and ``"Song"`` both become ``"song"``.
    """
    text = unicodedata.normalize("NFKC", str(value or "")).lower()
    text = _PARENTHETICAL_RE.sub(" ", text)
    text = _BRACKETED_RE.sub(" ", text)
    text = _NON_ALNUM_RE.sub(" ", text)
    return _WS_RE.sub(" ", text).strip()


def merge_key(title: str | None, artist: str | None) -> tuple[str, str]:
    return normalize_for_key(title), normalize_for_key(artist)


def normalize_isrc(value: str | None) -> str | None:
    text = re.sub(r"[^A-Za-z0-9]", "", str(value or "")).upper()
    return text or None
