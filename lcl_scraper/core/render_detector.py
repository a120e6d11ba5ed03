"""Detect pages that need a JavaScript-capable fetcher.

Pure functions over fetched HTML; nothing here renders anything.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Literal

FRAMEWORK_PATTERNS: dict[str, list[str]] = {
    "react": [
        r"react\.production\.min\.js",
        r"react\.development\.js",
        r"react-dom\.production\.min\.js",
        r"data-reactroot",
        r"data-reactid",
        r"__react_",
        r"window\.__INITIAL_STATE__",
        r"window\.__PRELOADED_STATE__",
        r"id=[\"']__next[\"']",
    ],
    "vue": [
        r"vue\.js",
        r"vue\.min\.js",
        r"vue\.runtime",
        r"nuxt\.js",
        r"window\.__NUXT__",
        r"_nuxt/",
        r"v-cloak",
        r"v-if=",
        r"v-for=",
    ],
    "angular": [
        r"angular\.js",
        r"angular\.min\.js",
        r"ng-app=",
        r"ng-controller=",
        r"ng-repeat=",
        r"\[ng-",
        r"<ng-",
    ],
}

EVENT_KEYWORDS = [
    "agenda",
    "evenement",
    "evenementen",
    "activiteit",
    "programma",
    "kalender",
    "event",
    "events",
    "concert",
    "festival",
    "voorstelling",
    "wedstrijd",
    "workshop",
]

# Visible body text shorter than this counts as "empty"
EMPTY_BODY_THRESHOLD = 500

_COMPILED = {
    name: [re.compile(p, re.IGNORECASE) for p in patterns]
    for name, patterns in FRAMEWORK_PATTERNS.items()
}
_BODY_RE = re.compile(r"<body[^>]*>(.*)</body>", re.IGNORECASE | re.DOTALL)
_STRIP_BLOCKS_RE = re.compile(
    r"<(script|style|noscript|template)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL
)
_TAG_RE = re.compile(r"<[^>]+>")
_KEYWORD_RE = re.compile("|".join(EVENT_KEYWORDS), re.IGNORECASE)


@dataclass
class RenderVerdict:
    """Routing decision for a fetched page."""

    requires_render: bool
    confidence: int
    fetcher_type: Literal["static", "dynamic"]
    frameworks: list[str] = field(default_factory=list)
    signals: list[str] = field(default_factory=list)
    body_text_length: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "requires_render": self.requires_render,
            "confidence": self.confidence,
            "fetcher_type": self.fetcher_type,
            "frameworks": self.frameworks,
            "signals": self.signals,
            "body_text_length": self.body_text_length,
        }


def detect_frameworks(html: str) -> list[str]:
    """Names of JS frameworks whose fingerprints occur in the HTML."""
    return [
        name
        for name, patterns in _COMPILED.items()
        if any(p.search(html) for p in patterns)
    ]


def visible_body_text(html: str) -> str | None:
    """Body text with scripts, styles and tags removed, whitespace collapsed.

    Returns None when the document has no <body> at all.
    """
    match = _BODY_RE.search(html)
    if not match:
        return None
    body = match.group(1)
    body = _STRIP_BLOCKS_RE.sub(" ", body)
    body = _TAG_RE.sub(" ", body)
    return " ".join(body.split())


def detect_render_requirement(html: str) -> RenderVerdict:
    """Decide whether a page must be fetched with a JS-capable fetcher.

    Signals:
    - a framework fingerprint (root-mount markers, globals, directives)
    - near-empty visible body while the raw HTML still mentions event keywords

    Confidence: both signals 95, framework only 85, empty body only 75,
    neither with visible text 90, neither and nothing visible 60.
    """
    frameworks = detect_frameworks(html)
    text = visible_body_text(html)
    # Without a <body> there is nothing to call empty
    empty_body = text is not None and len(text) < EMPTY_BODY_THRESHOLD
    text = text or ""
    has_keywords = bool(_KEYWORD_RE.search(html))
    empty_with_keywords = empty_body and has_keywords

    signals = [f"framework:{name}" for name in frameworks]
    if empty_with_keywords:
        signals.append("empty_body_with_event_keywords")
    elif empty_body:
        signals.append("empty_body")

    requires_render = bool(frameworks) or empty_with_keywords

    if frameworks and empty_with_keywords:
        confidence = 95
    elif frameworks:
        confidence = 85
    elif empty_with_keywords:
        confidence = 75
    elif text:
        confidence = 90
    else:
        confidence = 60

    return RenderVerdict(
        requires_render=requires_render,
        confidence=confidence,
        fetcher_type="dynamic" if requires_render else "static",
        frameworks=frameworks,
        signals=signals,
        body_text_length=len(text),
    )
