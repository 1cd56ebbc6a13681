"""Utilities for turning interviewer lines into speakable text.

Oracle output sometimes carries light markup (HTML emphasis, markdown
bold) or, when a model misbehaves, a raw JSON blob. Neither should reach
a synthesis engine.
"""

from __future__ import annotations

import json
import re

_HTML_TAG_RE = re.compile(r"</?[a-zA-Z][^>]*>")
_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_MD_EMPHASIS_RE = re.compile(r"(\*\*|\*)(\S(?:.*?\S)?)\1")
_CODE_FENCE_RE = re.compile(r"```")
_WS_RE = re.compile(r"\s+")


def _looks_like_json(text: str) -> bool:
    t = (text or "").strip()
    if t.startswith("{"):
        return True
    if not t.startswith("["):
        return False
    # "[pause] ..." style stage directions are speakable; JSON arrays are not.
    try:
        json.loads(t)
    except ValueError:
        return False
    return True


def to_speakable(text: str, *, max_chars: int = 1200) -> str | None:
    """Return text fit for speech, or None when nothing should be spoken.

    Rules:
    - JSON blobs and code fences are never spoken.
    - HTML tags are dropped (line breaks become spaces), markdown emphasis unwrapped.
    - Whitespace is collapsed and the result capped at ``max_chars``.
    """
    raw = (text or "").strip()
    if not raw or _CODE_FENCE_RE.search(raw) or _looks_like_json(raw):
        return None

    speak = _BR_RE.sub(" ", raw)
    speak = _HTML_TAG_RE.sub("", speak)
    speak = _MD_EMPHASIS_RE.sub(r"\2", speak)
    speak = _WS_RE.sub(" ", speak).strip()

    if len(speak) > max_chars:
        speak = speak[: max(0, max_chars - 1)].rstrip() + "…"
    return speak or None
