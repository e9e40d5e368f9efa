"""Turn interviewer text into something a voice can say.

Question lists come from an external supplier and are often formatted for a
screen: numbered, bulleted, wrapped in markdown. None of that should be read
aloud, and machine output (JSON, code) should never be spoken at all.
"""

from __future__ import annotations

import json
import re
from typing import Any

_CODE_FENCE_RE = re.compile(r"```")
_TAG_RE = re.compile(r"</?\w+[^>]*>")
_LIST_PREFIX_RE = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s+", re.MULTILINE)
_QUESTION_LABEL_RE = re.compile(r"^\s*(?:question|câu hỏi)\s*\d*\s*[:.\-]\s*", re.IGNORECASE)
_MARKDOWN_RE = re.compile(r"(\*\*|__|\*|_|`)(.+?)\1")
_WS_RE = re.compile(r"\s+")


def _looks_like_json(text: str) -> bool:
    t = (text or "").strip()
    if not t or t[0] not in "{[":
        return False
    try:
        json.loads(t)
    except ValueError:
        # Truncated JSON is still not speech; "[Pause] Hello" is.
        return '":' in t or '", "' in t
    return True


def _split_sentences(text: str) -> list[str]:
    parts = re.split(r"(?<=[.!?])\s+", (text or "").strip())
    return [p.strip() for p in parts if p and p.strip()]


def to_speakable(text: str, *, max_chars: int = 400) -> tuple[str | None, dict[str, Any]]:
    """Return (speakable_text_or_None, debug_info).

    Rules:
    - JSON blobs and code fences are never spoken.
    - Markup tags, list numbering, "Question 3:" labels and markdown emphasis
      are stripped; whitespace is collapsed.
    - Text longer than ``max_chars`` is cut at the last sentence boundary that
      fits, or hard-truncated if there is none.
    """
    debug: dict[str, Any] = {
        "input_chars": len(text or ""),
        "skipped": False,
        "skip_reason": None,
        "truncated": False,
        "output_chars": 0,
    }

    raw = (text or "").strip()
    if not raw:
        debug.update({"skipped": True, "skip_reason": "empty"})
        return None, debug

    if _CODE_FENCE_RE.search(raw):
        debug.update({"skipped": True, "skip_reason": "contained_code_fence"})
        return None, debug

    if _looks_like_json(raw):
        debug.update({"skipped": True, "skip_reason": "contained_json"})
        return None, debug

    s = _TAG_RE.sub("", raw)
    s = _LIST_PREFIX_RE.sub("", s)
    s = _QUESTION_LABEL_RE.sub("", s)
    s = _MARKDOWN_RE.sub(r"\2", s)
    s = _WS_RE.sub(" ", s).strip()

    if len(s) > max_chars:
        debug["truncated"] = True
        kept: list[str] = []
        for sentence in _split_sentences(s):
            if len(" ".join(kept + [sentence])) > max_chars:
                break
            kept.append(sentence)
        s = " ".join(kept) if kept else s[: max(0, max_chars - 1)].rstrip() + "…"

    if not s:
        debug.update({"skipped": True, "skip_reason": "empty_after_filter"})
        return None, debug

    debug["output_chars"] = len(s)
    return s, debug
