# shopassist/utils/sanitize.py
from __future__ import annotations
import html
import re
from typing import Iterable
from urllib.parse import urlsplit

_ALLOWED_SCHEMES = {"http", "https"}

# Merchant descriptions are untrusted text that ends up inside the prompt
INJECTION_CUES = (
    "ignore previous instruction",
    "ignore the previous instruction",
    "ignore all previous",
    "disregard previous instruction",
    "system prompt",
    "developer message",
    "you are chatgpt",
    "reset the system",
    "jailbreak",
    "ігноруй попередні інструкції",
    "забудь попередні інструкції",
    "системний промпт",
    "игнорируй предыдущие инструкции",
)

_WHITESPACE_RE = re.compile(r"\s+")
_SENT_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
_TAG_RE = re.compile(r"<[^>]{0,200}>")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f\u200b-\u200f\u2028\u2029\ufeff]")
_UUID4_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def _cue_pattern(cues: Iterable[str]) -> re.Pattern:
    return re.compile("|".join(re.escape(c) for c in cues), re.IGNORECASE)


_CUES_RE = _cue_pattern(INJECTION_CUES)


def safe_url(url: str) -> str:
    """Return the URL when it is absolute http(s) with a host, else ''."""
    u = (url or "").strip()
    if not u:
        return ""
    try:
        parts = urlsplit(u)
    except ValueError:
        return ""
    if parts.scheme.lower() not in _ALLOWED_SCHEMES or not parts.netloc:
        return ""
    return u


def collapse_ws(text: str) -> str:
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


def strip_markup(text: str) -> str:
    """Feed descriptions arrive as HTML fragments: drop tags, decode entities."""
    if not text:
        return ""
    return html.unescape(_TAG_RE.sub(" ", text))


def sanitize_input(text: str, max_chars: int = 500) -> str:
    """Trim the user message, drop control/zero-width characters, cut to max_chars."""
    t = _CONTROL_RE.sub("", text or "").strip()
    if max_chars and len(t) > max_chars:
        t = t[:max_chars].rstrip()
    return t


def is_valid_session_id(session_id: str) -> bool:
    return bool(session_id) and bool(_UUID4_RE.match(session_id))


def sanitize_context_snippet(text: str, max_chars: int = 800) -> str:
    """
    Prepare a product description for the prompt:
    markup removed, sentences carrying injection cues dropped (cue phrases are
    also blanked inline if a sentence survives), whitespace collapsed, then cut
    to max_chars with a trailing ellipsis.
    """
    t = collapse_ws(strip_markup(text))
    if not t:
        return ""
    kept = [s for s in _SENT_SPLIT_RE.split(t) if s and not _CUES_RE.search(s)]
    t = collapse_ws(_CUES_RE.sub("", " ".join(kept) if kept else t))
    if max_chars and len(t) > max_chars:
        t = t[:max_chars].rstrip() + "…"
    return t
