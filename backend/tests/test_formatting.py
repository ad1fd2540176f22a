"""
test_formatting.py — Display helpers for money, days, roles and slugs.
"""

import pytest

from scopeworks.services.formatting import (
    abbreviate_role,
    format_currency,
    format_currency_exact,
    format_day_range,
    format_days,
    format_margin,
    format_percent,
    generate_slug,
)


class TestMoney:

    @pytest.mark.parametrize("amount, expected", [
        (1022.727, "£1,023"),
        (0, "£0"),
        (1234567.4, "£1,234,567"),
        (-300.0, "-£300"),
        (None, "£0"),
    ])
    def test_whole_pounds(self, amount, expected):
        assert format_currency(amount) == expected

    def test_exact_two_decimals(self):
        assert format_currency_exact(1022.727) == "£1,022.73"
        assert format_currency_exact(-0.001) == "£0.00"

    def test_percent(self):
        assert format_percent(0.30) == "30%"
        assert format_percent(0.255) == "26%"

    def test_margin_dash_without_investment(self):
        assert format_margin(0.0, 0.0) == "—"
        assert format_margin(23.456, 1000.0) == "23.5%"


class TestDays:

    @pytest.mark.parametrize("value, expected", [
        (0, ""),
        (None, ""),
        (3, "3"),
        (3.0, "3"),
        (2.5, "2.5"),
        (0.25, "0.2"),
    ])
    def test_format_days(self, value, expected):
        assert format_days(value) == expected

    @pytest.mark.parametrize("lo, hi, expected", [
        (None, None, "Variable"),
        (1, 1, "1 day"),
        (3, 3, "3 days"),
        (2, 5, "2-5 days"),
        (0.5, 1.5, "0.5-1.5 days"),
    ])
    def test_day_range(self, lo, hi, expected):
        assert format_day_range(lo, hi) == expected


class TestRolesAndSlugs:

    def test_known_abbreviations(self):
        assert abbreviate_role("Senior Developer") == "Sr Dev"
        assert abbreviate_role("Project Manager") == "PM"

    def test_unknown_role_uses_first_word(self):
        assert abbreviate_role("Copywriter Lead") == "Copywriter"

    @pytest.mark.parametrize("client, project, expected", [
        ("Acme Corp", "Web Site", "acme-corp-web-site"),
        ("  Ørsted!", "App 2.0", "rsted-app-2-0"),
        ("ACME", "---", "acme"),
    ])
    def test_slug(self, client, project, expected):
        assert generate_slug(client, project) == expected
