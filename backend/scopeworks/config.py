"""
Pricing and scoping configuration — single source of truth for the day/hour
conventions, overhead defaults, margin bands and default scope shape.

Import from here in services and routes rather than hardcoding values.
"""
from __future__ import annotations

import os

# ── Working-time conventions ──────────────────────────────────────────────────
HOURS_PER_DAY: int = 8
MONTHS_PER_YEAR: int = 12

# ── Overhead configuration ────────────────────────────────────────────────────
# Settings key holding the tunable number of billable days in a year.
BILLABLE_DAYS_SETTING_KEY: str = "annual_billable_days"
DEFAULT_ANNUAL_BILLABLE_DAYS: int = 220
MIN_ANNUAL_BILLABLE_DAYS: int = 1
MAX_ANNUAL_BILLABLE_DAYS: int = 365

OVERHEAD_CATEGORIES: tuple[str, ...] = (
    "subscription",
    "salary",
    "contractor",
    "workspace",
    "insurance",
    "travel",
    "equipment",
    "marketing",
    "professional",
    "training",
    "hosting",
    "telephone",
    "other",
)

# ── Rate card defaults ────────────────────────────────────────────────────────
DEFAULT_MARKUP_PCT: float = 0.30

# ── Margin bands (percentage values, not fractions) ───────────────────────────
# > HEALTHY → "healthy"; CAUTION..HEALTHY inclusive → "caution"; below → "low"
MARGIN_HEALTHY_ABOVE: float = 30.0
MARGIN_CAUTION_FROM: float = 15.0

# ── Project defaults ──────────────────────────────────────────────────────────
PROJECT_STATUSES: tuple[str, ...] = ("draft", "sent", "approved", "complete")
DEFAULT_PHASE_NAMES: tuple[str, ...] = ("Discovery", "Development", "Launch", "Ongoing")
INITIAL_VERSION_NAME: str = "Working draft"
NEW_DELIVERABLE_NAME: str = "New Deliverable"
NEW_PHASE_NAME: str = "New Phase"

# ── Autosave debounce delays (seconds) ────────────────────────────────────────
SCOPE_AUTOSAVE_DELAY_S: float = 1.0
SETTINGS_AUTOSAVE_DELAY_S: float = 0.5
# Upper bound on writing out pending edits when the app stops
AUTOSAVE_SHUTDOWN_TIMEOUT_S: float = float(os.getenv("AUTOSAVE_SHUTDOWN_TIMEOUT_S", "5"))

# ── Branding / links ──────────────────────────────────────────────────────────
CURRENCY_CODE: str = "GBP"
COMPANY_NAME: str = os.getenv("COMPANY_NAME", "Shrink Studio")
PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", "https://internal.shrink.studio").rstrip("/")
