"""
Pricing Engine — the single source of truth for all pricing maths.

Every route, export and comparison uses these functions; never duplicate the
calculations elsewhere.

Covers:
  - Overhead per billable day from monthly overheads
  - Burdened day cost, markup and client day/hour rates per role
  - Per-deliverable investment, internal cost, days and hours
  - Phase and project rollups (pure sums of deliverable totals)
  - Gross profit, profit margin and margin banding

All monetary values are GBP floats. Nothing is rounded here; rounding happens
at display time only.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from scopeworks.config import (
    DEFAULT_ANNUAL_BILLABLE_DAYS,
    HOURS_PER_DAY,
    MARGIN_CAUTION_FROM,
    MARGIN_HEALTHY_ABOVE,
    MAX_ANNUAL_BILLABLE_DAYS,
    MIN_ANNUAL_BILLABLE_DAYS,
    MONTHS_PER_YEAR,
)
from scopeworks.models.scope_schema import (
    OverheadItem,
    Role,
    ScopeDeliverable,
    ScopePhase,
    ScopeSnapshot,
)
from scopeworks.services.errors import InvalidConfiguration

RoleLookup = Union[Mapping[str, Role], Iterable[Role]]


# ---------------------------------------------------------------------------
# Rate primitives
# ---------------------------------------------------------------------------

def overhead_per_day(total_monthly_overhead: float, annual_billable_days: float) -> float:
    """Spread a year of overheads across every billable day."""
    if not annual_billable_days or annual_billable_days <= 0:
        raise InvalidConfiguration(
            f"annual_billable_days must be positive, got {annual_billable_days!r}"
        )
    return (float(total_monthly_overhead) * MONTHS_PER_YEAR) / float(annual_billable_days)


def total_cost_per_day(base_cost_day: float, overhead_day: float) -> float:
    return float(base_cost_day) + float(overhead_day)


def markup_amount(total_cost_day: float, markup_pct: float) -> float:
    return float(total_cost_day) * float(markup_pct)


def client_day_rate(base_cost_day: float, overhead_day: float, markup_pct: float) -> float:
    """Rate billed to the client per role-day: burdened cost plus markup."""
    total = total_cost_per_day(base_cost_day, overhead_day)
    return total + markup_amount(total, markup_pct)


def client_hourly_rate(day_rate: float) -> float:
    return float(day_rate) / HOURS_PER_DAY


def gross_profit(total_investment: float, total_internal_cost: float) -> float:
    return float(total_investment) - float(total_internal_cost)


def profit_margin(profit: float, total_investment: float) -> float:
    """Margin as a percentage value (30.0, not 0.30). Zero investment → 0."""
    if total_investment == 0:
        return 0.0
    return (float(profit) / float(total_investment)) * 100


def margin_band(margin_pct: float) -> str:
    """Classify a margin percentage: ``healthy`` / ``caution`` / ``low``."""
    if margin_pct > MARGIN_HEALTHY_ABOVE:
        return "healthy"
    if margin_pct >= MARGIN_CAUTION_FROM:
        return "caution"
    return "low"


def clamp_billable_days(value: Optional[float]) -> int:
    """Clamp a billable-days setting to [1, 365]; a missing value falls back to the default."""
    if value is None:
        return DEFAULT_ANNUAL_BILLABLE_DAYS
    return int(max(MIN_ANNUAL_BILLABLE_DAYS, min(MAX_ANNUAL_BILLABLE_DAYS, round(float(value)))))


# ---------------------------------------------------------------------------
# Line (deliverable) calculations
# ---------------------------------------------------------------------------

def _role_index(roles: RoleLookup) -> Dict[str, Role]:
    if isinstance(roles, Mapping):
        return dict(roles)
    return {r.id: r for r in roles}


def line_investment(allocations: Mapping[str, float], roles: RoleLookup, overhead_day: float) -> float:
    """Client-facing price of one deliverable's role allocations."""
    index = _role_index(roles)
    total = 0.0
    for role_id, days in allocations.items():
        role = index.get(role_id)
        if role is None or not days:
            continue
        total += days * client_day_rate(role.base_cost_day, overhead_day, role.markup_pct)
    return total


def line_internal_cost(allocations: Mapping[str, float], roles: RoleLookup, overhead_day: float) -> float:
    """Burdened cost to the business of one deliverable — markup excluded."""
    index = _role_index(roles)
    total = 0.0
    for role_id, days in allocations.items():
        role = index.get(role_id)
        if role is None or not days:
            continue
        total += days * total_cost_per_day(role.base_cost_day, overhead_day)
    return total


def line_days(allocations: Mapping[str, float]) -> float:
    return sum((days or 0.0) for days in allocations.values())


def line_hours(allocations: Mapping[str, float]) -> float:
    """Hours are role-agnostic: stale role ids still count."""
    return sum((days or 0.0) * HOURS_PER_DAY for days in allocations.values())


# ---------------------------------------------------------------------------
# Rollups
# ---------------------------------------------------------------------------

@dataclass
class LineTotals:
    days: float = 0.0
    hours: float = 0.0
    investment: float = 0.0
    internal_cost: float = 0.0

    def __add__(self, other: "LineTotals") -> "LineTotals":
        return LineTotals(
            days=self.days + other.days,
            hours=self.hours + other.hours,
            investment=self.investment + other.investment,
            internal_cost=self.internal_cost + other.internal_cost,
        )

    @property
    def gross_profit(self) -> float:
        return gross_profit(self.investment, self.internal_cost)

    @property
    def margin_pct(self) -> float:
        return profit_margin(self.gross_profit, self.investment)

    @property
    def margin_band(self) -> str:
        return margin_band(self.margin_pct)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "days": self.days,
            "hours": self.hours,
            "investment": self.investment,
            "internal_cost": self.internal_cost,
            "gross_profit": self.gross_profit,
            "margin_pct": self.margin_pct,
            "margin_band": self.margin_band,
        }


@dataclass
class OverheadSummary:
    total_monthly: float
    total_annual: float
    annual_billable_days: int
    overhead_per_day: float


def summarize_overheads(items: Iterable[OverheadItem], annual_billable_days: int) -> OverheadSummary:
    total_monthly = sum(float(i.monthly_cost) for i in items)
    return OverheadSummary(
        total_monthly=total_monthly,
        total_annual=total_monthly * MONTHS_PER_YEAR,
        annual_billable_days=annual_billable_days,
        overhead_per_day=overhead_per_day(total_monthly, annual_billable_days),
    )


class PricingEngine:
    """
    Binds a rate card and an overhead-per-day figure so callers can price a
    whole scope without threading both through every call.

    The roles passed in are the *current* rate card; anything priced through
    this engine reflects today's rates, not the rates at save time.
    """

    def __init__(self, roles: RoleLookup, overhead_day: float) -> None:
        self._roles: Dict[str, Role] = _role_index(roles)
        self.overhead_per_day: float = float(overhead_day)

    @classmethod
    def from_settings(
        cls,
        roles: RoleLookup,
        overhead_items: Iterable[OverheadItem],
        annual_billable_days: int,
    ) -> "PricingEngine":
        summary = summarize_overheads(overhead_items, annual_billable_days)
        return cls(roles, summary.overhead_per_day)

    @property
    def roles(self) -> Dict[str, Role]:
        return dict(self._roles)

    # ── Per-deliverable ────────────────────────────────────────────────────

    def investment(self, deliverable: ScopeDeliverable) -> float:
        return line_investment(deliverable.role_allocations, self._roles, self.overhead_per_day)

    def internal_cost(self, deliverable: ScopeDeliverable) -> float:
        return line_internal_cost(deliverable.role_allocations, self._roles, self.overhead_per_day)

    def deliverable_totals(self, deliverable: ScopeDeliverable) -> LineTotals:
        allocations = deliverable.role_allocations
        return LineTotals(
            days=line_days(allocations),
            hours=line_hours(allocations),
            investment=self.investment(deliverable),
            internal_cost=self.internal_cost(deliverable),
        )

    # ── Rollups ────────────────────────────────────────────────────────────

    def phase_totals(self, phase: ScopePhase) -> LineTotals:
        totals = LineTotals()
        for deliverable in phase.deliverables:
            totals = totals + self.deliverable_totals(deliverable)
        return totals

    def project_totals(self, snapshot: ScopeSnapshot) -> LineTotals:
        totals = LineTotals()
        for phase in snapshot.phases:
            totals = totals + self.phase_totals(phase)
        return totals

    # ── Rate card ──────────────────────────────────────────────────────────

    def role_rate_row(self, role: Role) -> Dict[str, Any]:
        """One rate-card row: cost + overhead + markup = client rate."""
        total = total_cost_per_day(role.base_cost_day, self.overhead_per_day)
        day_rate = client_day_rate(role.base_cost_day, self.overhead_per_day, role.markup_pct)
        return {
            "role_id": role.id,
            "title": role.title,
            "base_cost_day": float(role.base_cost_day),
            "overhead_per_day": self.overhead_per_day,
            "total_cost_per_day": total,
            "markup_pct": float(role.markup_pct),
            "markup_amount": markup_amount(total, role.markup_pct),
            "client_day_rate": day_rate,
            "client_hourly_rate": client_hourly_rate(day_rate),
            "is_active": role.is_active,
        }

    def rate_card(self) -> list:
        ordered = sorted(self._roles.values(), key=lambda r: (r.sort_order, r.title))
        return [self.role_rate_row(r) for r in ordered]
