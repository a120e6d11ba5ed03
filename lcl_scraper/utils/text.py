"""Text cleaning helpers for scraped HTML fragments."""

import html
import re
import unicodedata

_WHITESPACE_RE = re.compile(r"\s+")


def clean_text(text: str | None) -> str:
    """Unescape entities, normalize Unicode to NFC and collapse whitespace."""
    if not text:
        return ""
    text = html.unescape(text)
    text = unicodedata.normalize("NFC", text).replace(" ", " ")
    return _WHITESPACE_RE.sub(" ", text).strip()


def truncate(text: str | None, max_length: int, suffix: str = "...") -> str:
    """Truncate text at a word boundary when possible."""
    if not text or len(text) <= max_length:
        return text or ""

    cut = text[: max_length - len(suffix)]
    space = cut.rfind(" ")
    if space > max_length // 2:
        cut = cut[:space]
    return cut.rstrip() + suffix


def strip_code_fences(text: str) -> str:
    """Remove a ```json ... ``` wrapper that LLMs like to add."""
    text = text.strip()
    text = re.sub(r"^```(?:json)?\s*", "", text, flags=re.IGNORECASE)
    text = re.sub(r"\s*```$", "", text)
    return text.strip()
