"""Tests for Dutch/English date and time normalization."""

from datetime import date

import pytest

from lcl_scraper.utils.date_parser import (
    lookup_month,
    normalize_date,
    parse_date,
    parse_time,
    time_from_iso,
)

REFERENCE = date(2026, 7, 12)


# =============================================================================
# Tests: normalize_date()
# =============================================================================


class TestNormalizeDate:
    """Tests for free-text dates to YYYY-MM-DD."""

    def test_dutch_textual(self):
        """Should parse day + Dutch month + year."""
        assert normalize_date("12 januari 2026", REFERENCE) == "2026-01-12"

    def test_leading_weekday(self):
        """Should skip a leading weekday name."""
        assert normalize_date("zondag 12 juli 2026", REFERENCE) == "2026-07-12"
        assert normalize_date("Sat, 25 July 2026", REFERENCE) == "2026-07-25"

    def test_european_numeric(self):
        """Should read day-first numeric dates."""
        assert normalize_date("13-07-2026", REFERENCE) == "2026-07-13"
        assert normalize_date("13/07/2026", REFERENCE) == "2026-07-13"

    def test_two_digit_year_gets_reference_century(self):
        """Two-digit years belong to the reference century."""
        assert normalize_date("14/07/26", REFERENCE) == "2026-07-14"

    def test_iso_with_and_without_time(self):
        """Should accept ISO dates with an optional T-time suffix."""
        assert normalize_date("2026-07-14", REFERENCE) == "2026-07-14"
        assert normalize_date("2026-07-14T20:00", REFERENCE) == "2026-07-14"
        assert normalize_date("2026-07-14T20:00:00+02:00", REFERENCE) == "2026-07-14"

    def test_rfc2822(self):
        """RSS feeds emit RFC 2822 dates."""
        assert normalize_date("Tue, 14 Jul 2026 20:00:00 +0000", REFERENCE) == "2026-07-14"

    def test_abbreviations_and_variants(self):
        """Abbreviated and historical month spellings resolve."""
        assert normalize_date("3 mrt 2026", REFERENCE) == "2026-03-03"
        assert normalize_date("3 märz 2026", REFERENCE) == "2026-03-03"
        assert normalize_date("1 okt. 2026", REFERENCE) == "2026-10-01"

    def test_missing_year_uses_reference_year(self):
        """A textual date without year falls in the reference year."""
        assert normalize_date("18 juli", REFERENCE) == "2026-07-18"

    def test_month_first_english(self):
        """Should parse 'July 14, 2026'."""
        assert normalize_date("July 14, 2026", REFERENCE) == "2026-07-14"

    @pytest.mark.parametrize("text", ["12 januari 1899", "12 januari 2099", "1899-01-01", "13-07-2099"])
    def test_out_of_window_years_rejected(self, text):
        """Years outside 2020-2030 are format noise, not dates."""
        assert normalize_date(text, REFERENCE) is None

    @pytest.mark.parametrize("text", [None, "", "   ", "binnenkort", "31-02-2026", "99 juli 2026"])
    def test_unparseable(self, text):
        """Should return None for garbage and impossible dates."""
        assert normalize_date(text, REFERENCE) is None


class TestRelativeDates:
    """Relative words are anchored on the reference date."""

    def test_today(self):
        assert parse_date("vandaag", REFERENCE) == REFERENCE
        assert parse_date("Today", REFERENCE) == REFERENCE

    def test_tomorrow(self):
        """'morgen' relative to 2026-07-12 is 2026-07-13."""
        assert normalize_date("morgen", REFERENCE) == "2026-07-13"
        assert normalize_date("tomorrow", REFERENCE) == "2026-07-13"

    def test_day_after_tomorrow_is_exactly_two_days(self):
        """'overmorgen' must not be read as 'morgen'."""
        assert normalize_date("overmorgen", REFERENCE) == "2026-07-14"
        assert normalize_date("day after tomorrow", REFERENCE) == "2026-07-14"

    def test_relative_across_month_end(self):
        assert normalize_date("overmorgen", date(2026, 7, 31)) == "2026-08-02"

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("zaterdag morgen 18 juli 2026", "2026-07-18"),
            ("Zaterdagavond", None),
            ("zondag avond 19 juli", "2026-07-19"),
            ("Saturday morning, July 18, 2026", "2026-07-18"),
            ("morgen 20:00", None),
        ],
    )
    def test_daypart_words_are_not_relative_dates(self, text, expected):
        """Dutch "morgen" also means morning; only a bare relative word shifts the date."""
        assert normalize_date(text, REFERENCE) == expected


class TestLookupMonth:
    """Tests for month name resolution."""

    def test_known_names(self):
        assert lookup_month("maart") == 3
        assert lookup_month("Sept.") == 9
        assert lookup_month("december") == 12

    def test_unknown(self):
        assert lookup_month("") is None
        assert lookup_month("xyz") is None


# =============================================================================
# Tests: parse_time()
# =============================================================================


class TestParseTime:
    """Tests for time extraction."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("20:00", "20:00"),
            ("20.00", "20:00"),
            ("20h00", "20:00"),
            ("9:05", "09:05"),
            ("Aanvang: 20.30", "20:30"),
            ("start: 19:00", "19:00"),
            ("8 PM", "20:00"),
            ("8:30 pm", "20:30"),
            ("12 am", "00:00"),
            ("12 p.m.", "12:00"),
        ],
    )
    def test_recognized_forms(self, text, expected):
        assert parse_time(text) == expected

    @pytest.mark.parametrize("text", ["TBD", "tba", "All day", "hele dag", "nnb", None, ""])
    def test_placeholders(self, text):
        """Placeholders are not times."""
        assert parse_time(text) is None

    def test_invalid_clock_values(self):
        assert parse_time("25:00") is None
        assert parse_time("13 pm") is None

    def test_date_is_not_a_time(self):
        """A dotted date must not be mistaken for HH.MM."""
        assert parse_time("12.07.2026") is None


class TestTimeFromIso:
    """Tests for HH:MM extraction from ISO strings."""

    def test_with_time(self):
        assert time_from_iso("2026-07-14T20:00") == "20:00"
        assert time_from_iso("2026-07-14T09:30:00+02:00") == "09:30"

    def test_without_time(self):
        assert time_from_iso("2026-07-14") is None
        assert time_from_iso(None) is None
