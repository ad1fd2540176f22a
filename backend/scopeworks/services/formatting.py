"""Display formatting for money, percentages, day counts, role titles and slugs."""
import re
from typing import Optional

_ROLE_ABBREVIATIONS = {
    "Founder/Technical Director": "Founder",
    "Senior Developer": "Sr Dev",
    "Project Manager": "PM",
    "Senior Designer": "Sr Design",
    "Mid-Level Designer": "Mid Design",
    "Account Manager": "AM",
    "Mid-Level Developer": "Mid Dev",
}


def _gbp(amount: float, decimals: int) -> str:
    sign = "-" if amount < 0 and round(abs(amount), decimals) != 0 else ""
    return f"{sign}£{abs(amount):,.{decimals}f}"


def format_currency(amount: float) -> str:
    """1022.73 → '£1,023'"""
    return _gbp(float(amount or 0.0), 0)


def format_currency_exact(amount: float) -> str:
    """1022.727 → '£1,022.73'"""
    return _gbp(float(amount or 0.0), 2)


def format_percent(fraction: float) -> str:
    """0.30 → '30%'"""
    return f"{round(float(fraction) * 100)}%"


def format_margin(margin_pct: float, investment: float) -> str:
    """Margin column text; an em dash when nothing is priced."""
    if investment <= 0:
        return "—"
    return f"{margin_pct:.1f}%"


def format_days(value: float) -> str:
    """Hide zero, show whole days plainly, otherwise one decimal."""
    if not value:
        return ""
    if float(value) % 1 == 0:
        return str(int(value))
    return f"{float(value):.1f}"


def format_day_range(minimum: Optional[float], maximum: Optional[float]) -> str:
    if minimum is None and maximum is None:
        return "Variable"
    if minimum == maximum:
        shown = format_days(minimum) or "0"
        return f"{shown} day{'' if minimum == 1 else 's'}"
    lo = "" if minimum is None else (format_days(minimum) or "0")
    hi = "" if maximum is None else (format_days(maximum) or "0")
    return f"{lo}-{hi} days"


def abbreviate_role(title: str) -> str:
    """Compact column header for a role title."""
    if title in _ROLE_ABBREVIATIONS:
        return _ROLE_ABBREVIATIONS[title]
    return title.split(" ")[0]


def generate_slug(client_name: str, project_name: str) -> str:
    """URL-safe slug from client and project name: 'Acme Corp', 'Web Site' → 'acme-corp-web-site'."""
    raw = f"{client_name}-{project_name}".lower()
    return re.sub(r"^-|-$", "", re.sub(r"[^a-z0-9]+", "-", raw))
