"""Tests for fuzzy genealogical dates."""
from __future__ import annotations

from datetime import date

import pytest

from kinship_graph.dates import DatePrecision, DateQualifier, parse_date


class TestParseDate:
    """Tests for parse_date."""

    def test_exact_date(self):
        d = parse_date("1927-03-14")
        assert d.precision == DatePrecision.EXACT
        assert (d.year, d.month, d.day) == (1927, 3, 14)
        assert str(d) == "1927-03-14"

    def test_yaml_date_object(self):
        """Unquoted ISO dates arrive from YAML as date objects."""
        d = parse_date(date(1930, 1, 2))
        assert d.precision == DatePrecision.EXACT
        assert d.raw == "1930-01-02"

    def test_bare_year_string_and_int(self):
        assert parse_date("1850").precision == DatePrecision.YEAR
        assert parse_date(1850).year == 1850

    def test_month_precision(self):
        d = parse_date("1901-07")
        assert d.precision == DatePrecision.MONTH
        assert d.month == 7

    def test_decade(self):
        d = parse_date("1840s")
        assert d.precision == DatePrecision.DECADE
        assert d.earliest_year == 1840
        assert d.latest_year == 1849
        assert d.is_approximate

    def test_range(self):
        d = parse_date("1840-1845")
        assert d.precision == DatePrecision.RANGE
        assert d.latest_year == 1845

    def test_between(self):
        d = parse_date("bet 1800 and 1810")
        assert d.precision == DatePrecision.RANGE
        assert (d.earliest_year, d.latest_year) == (1800, 1810)

    def test_estimates(self):
        for raw in ("c. 1850", "abt 1850", "circa 1850", "~1850"):
            d = parse_date(raw)
            assert d.precision == DatePrecision.ESTIMATED
            assert d.year == 1850

    def test_before_and_after_leave_one_bound_open(self):
        before = parse_date("bef. 1850")
        assert before.qualifier == DateQualifier.BEFORE
        assert (before.earliest_year, before.latest_year) == (None, 1850)

        after = parse_date("after 1850")
        assert after.qualifier == DateQualifier.AFTER
        assert (after.earliest_year, after.latest_year) == (1850, None)

    def test_estimated_range_and_decade_keep_their_end(self):
        d = parse_date("abt 1850-1855")
        assert d.precision == DatePrecision.ESTIMATED
        assert d.qualifier == DateQualifier.ABOUT
        assert (d.earliest_year, d.latest_year) == (1850, 1855)
        assert parse_date("circa 1840s").latest_year == 1849

    def test_long_qualifier_words(self):
        assert parse_date("estimated 1850").year == 1850
        assert parse_date("about 1850").qualifier == DateQualifier.ABOUT

    @pytest.mark.parametrize("raw", ["", "not a date", "1850-13", "1850-02-30", "1850-1840", True, 3.5])
    def test_rejects_garbage(self, raw):
        with pytest.raises(ValueError):
            parse_date(raw)
