"""Tests for the JavaScript-rendering detector."""

import pytest

from lcl_scraper.core.render_detector import (
    EMPTY_BODY_THRESHOLD,
    detect_frameworks,
    detect_render_requirement,
    visible_body_text,
)

LONG_TEXT = "Op zaterdag is er een markt op het plein met kramen en muziek. " * 12


def document(body: str, head: str = "") -> str:
    return f"<html><head>{head}</head><body>{body}</body></html>"


class TestDetectFrameworks:
    @pytest.mark.parametrize(
        "html,expected",
        [
            ('<script src="/js/react-dom.production.min.js"></script>', ["react"]),
            ('<div id="__next"></div>', ["react"]),
            ("<script>window.__NUXT__={}</script>", ["vue"]),
            ('<div v-cloak v-for="e in events"></div>', ["vue"]),
            ('<body ng-app="agenda">', ["angular"]),
            ("<p>Gewone pagina</p>", []),
        ],
    )
    def test_fingerprints(self, html, expected):
        assert detect_frameworks(html) == expected


class TestVisibleBodyText:
    def test_strips_scripts_styles_and_tags(self):
        html = document("<script>var x = 1;</script><style>p{}</style><p>Hallo <b>wereld</b></p>")
        assert visible_body_text(html) == "Hallo wereld"

    def test_no_body(self):
        assert visible_body_text("<div>fragment</div>") is None


class TestDetectRenderRequirement:
    """Routing verdicts and their confidence levels."""

    def test_spa_shell(self):
        html = document(
            '<div id="root"></div><noscript>Agenda vereist JavaScript</noscript>',
            '<script src="/static/react.production.min.js"></script>',
        )
        verdict = detect_render_requirement(html)

        assert verdict.requires_render is True
        assert verdict.fetcher_type == "dynamic"
        assert verdict.confidence == 95
        assert verdict.frameworks == ["react"]
        assert "empty_body_with_event_keywords" in verdict.signals

    def test_framework_with_server_rendered_text(self):
        verdict = detect_render_requirement(document(f"<div v-cloak>{LONG_TEXT}</div>"))

        assert verdict.requires_render is True
        assert verdict.confidence == 85

    def test_empty_body_mentioning_events(self):
        verdict = detect_render_requirement(document("<h1>Evenementen</h1><div class='list'></div>"))

        assert verdict.requires_render is True
        assert verdict.confidence == 75
        assert verdict.frameworks == []

    def test_static_page_with_content(self):
        verdict = detect_render_requirement(document(f"<main><p>{LONG_TEXT}</p></main>"))

        assert verdict.requires_render is False
        assert verdict.fetcher_type == "static"
        assert verdict.confidence == 90
        assert verdict.body_text_length >= EMPTY_BODY_THRESHOLD

    def test_short_page_without_event_keywords(self):
        verdict = detect_render_requirement(document("<p>Welkom</p>"))

        assert verdict.requires_render is False
        assert verdict.signals == ["empty_body"]

    def test_nothing_to_go_on(self):
        verdict = detect_render_requirement("")

        assert verdict.requires_render is False
        assert verdict.confidence == 60

    def test_to_dict(self):
        data = detect_render_requirement(document("<p>Welkom</p>")).to_dict()
        assert set(data) == {
            "requires_render",
            "confidence",
            "fetcher_type",
            "frameworks",
            "signals",
            "body_text_length",
        }
