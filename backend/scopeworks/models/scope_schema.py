"""
Scope & rate-card schemas shared by the pricing core, the store and the API.

The scope snapshot is a JSON document (phases → deliverables) stored whole on
each project version; these models are its canonical shape.
"""
import uuid
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from scopeworks.config import DEFAULT_MARKUP_PCT, DEFAULT_PHASE_NAMES

ProjectStatus = Literal["draft", "sent", "approved", "complete"]
DiffType = Literal["added", "removed", "changed", "unchanged"]


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Rate card ────────────────────────────────────────────────────────────────

class Role(BaseModel):
    """A staffable role: internal daily cost plus the markup billed to clients."""
    id: str = Field(default_factory=new_id)
    title: str = ""
    base_cost_day: float = Field(0.0, ge=0, description="Unburdened internal cost per day (GBP)")
    markup_pct: float = Field(DEFAULT_MARKUP_PCT, ge=0, description="Fraction, e.g. 0.30 = 30%")
    sort_order: int = 0
    is_active: bool = True


class OverheadItem(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str = ""
    category: str = "subscription"
    monthly_cost: float = Field(0.0, ge=0)
    notes: Optional[str] = None
    sort_order: int = 0


class ServiceLibraryItem(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    phase: str
    description: Optional[str] = None
    typical_effort_min: Optional[float] = None
    typical_effort_max: Optional[float] = None
    typical_team: Optional[List[str]] = None
    sort_order: int = 0
    is_active: bool = True


# ── Scope snapshot ───────────────────────────────────────────────────────────

class ScopeDeliverable(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    service_id: Optional[str] = None
    # roleId → days. Open map: keys may reference roles that no longer exist.
    role_allocations: Dict[str, float] = Field(default_factory=dict)
    internal_notes: str = ""

    @field_validator("role_allocations", mode="before")
    @classmethod
    def _null_days_are_zero(cls, value):
        if value is None:
            return {}
        return {str(k): (v or 0.0) for k, v in dict(value).items()}


class ScopePhase(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    sort_order: int = 0
    deliverables: List[ScopeDeliverable] = Field(default_factory=list)


class ScopeSnapshot(BaseModel):
    phases: List[ScopePhase] = Field(default_factory=list)

    def iter_deliverables(self) -> Iterator[Tuple[ScopePhase, ScopeDeliverable]]:
        """Yield (phase, deliverable) pairs in display order."""
        for phase in self.phases:
            for deliverable in phase.deliverables:
                yield phase, deliverable


def default_snapshot() -> ScopeSnapshot:
    """Empty scope for a new project — default phases with fresh ids."""
    return ScopeSnapshot(
        phases=[ScopePhase(name=name, sort_order=i) for i, name in enumerate(DEFAULT_PHASE_NAMES)]
    )


# ── Projects & versions ──────────────────────────────────────────────────────

class Project(BaseModel):
    id: str = Field(default_factory=new_id)
    slug: str
    client_name: str
    project_name: str
    status: ProjectStatus = "draft"
    current_version_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ProjectVersion(BaseModel):
    """
    A numbered snapshot of a project's scope with totals frozen at save time.

    Superseded versions are immutable; only the project's current version is
    rewritten in place by autosave.
    """
    id: str = Field(default_factory=new_id)
    project_id: str
    version_number: int = Field(..., ge=1)
    name: Optional[str] = None
    snapshot: ScopeSnapshot = Field(default_factory=ScopeSnapshot)
    total_investment: Optional[float] = None
    total_internal_cost: Optional[float] = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def frozen_investment(self) -> float:
        return float(self.total_investment or 0.0)

    @property
    def frozen_internal_cost(self) -> float:
        return float(self.total_internal_cost or 0.0)

    @property
    def label(self) -> str:
        return self.name or f"v{self.version_number}"


# ── Snapshot diff ────────────────────────────────────────────────────────────

class DiffEntry(BaseModel):
    """One deliverable's change between an older and a newer version."""
    type: DiffType
    name: str
    phase_name: str
    investment_a: float = 0.0   # older side
    investment_b: float = 0.0   # newer side
    days_a: float = 0.0
    days_b: float = 0.0

    @property
    def investment_delta(self) -> float:
        return self.investment_b - self.investment_a

    @property
    def days_delta(self) -> float:
        return self.days_b - self.days_a


class SnapshotDiff(BaseModel):
    older_version_number: int
    newer_version_number: int
    ordered_diffs: List[DiffEntry] = Field(default_factory=list)
    net_investment_change: float = 0.0
    net_cost_change: float = 0.0

    def changes(self) -> List[DiffEntry]:
        """Entries a reader cares about — everything except ``unchanged``."""
        return [d for d in self.ordered_diffs if d.type != "unchanged"]

    def count(self, diff_type: DiffType) -> int:
        return sum(1 for d in self.ordered_diffs if d.type == diff_type)
