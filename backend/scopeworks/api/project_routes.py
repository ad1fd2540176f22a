"""
Project routes — projects, scope editing, versions, compare and budget.

Every monetary figure here is priced through the PricingEngine dependency,
i.e. at today's rate card, except version list totals and compare net
changes, which are the totals frozen when each version was saved.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from scopeworks.api.deps import (
    StoreFactory,
    get_debouncer,
    get_pricing,
    get_store,
    get_store_factory,
    http_errors,
    schedule_write,
)
from scopeworks.config import PUBLIC_BASE_URL, SCOPE_AUTOSAVE_DELAY_S
from scopeworks.models.scope_schema import (
    Project,
    ProjectStatus,
    ProjectVersion,
    ScopeSnapshot,
    SnapshotDiff,
)
from scopeworks.services import version_service as versions
from scopeworks.services.autosave import Debouncer
from scopeworks.services.pricing_engine import PricingEngine, gross_profit, margin_band, profit_margin
from scopeworks.services.scope_store import ScopeStore

router = APIRouter(prefix="/api/projects", tags=["Projects"])
logger = logging.getLogger("scopeworks-api")


# ─── Pydantic schemas ────────────────────────────────────────────────────────

class ProjectCreate(BaseModel):
    client_name: str = Field(..., min_length=1)
    project_name: str = Field(..., min_length=1)
    slug: Optional[str] = None


class StatusUpdate(BaseModel):
    status: ProjectStatus


class NotesUpdate(BaseModel):
    internal_notes: str = ""


class PhaseCreate(BaseModel):
    name: Optional[str] = None


class DeliverableCreate(BaseModel):
    service_id: Optional[str] = None
    name: Optional[str] = None


class VersionCreate(BaseModel):
    name: str = Field(..., min_length=1)
    # Unsaved editor state; omitted → freeze the stored current version
    snapshot: Optional[ScopeSnapshot] = None


# ─── Serialisers ────────────────────────────────────────────────────────────

def share_url(slug: str, version_number: Optional[int] = None) -> str:
    """Public client-safe proposal link; without a version it follows the current one."""
    url = f"{PUBLIC_BASE_URL}/p/{slug}"
    return url if version_number is None else f"{url}?v={version_number}"


def _project_out(project: Project) -> dict:
    data = project.model_dump(mode="json")
    data["share_url"] = share_url(project.slug)
    return data


def _version_summary(project: Project, version: ProjectVersion, current_id: Optional[str]) -> dict:
    """Version list row. Totals are the frozen ones; margin is derived from them."""
    profit = gross_profit(version.frozen_investment, version.frozen_internal_cost)
    margin = profit_margin(profit, version.frozen_investment)
    return {
        "id": version.id,
        "version_number": version.version_number,
        "name": version.name,
        "label": version.label,
        "total_investment": version.frozen_investment,
        "total_internal_cost": version.frozen_internal_cost,
        "gross_profit": profit,
        "margin_pct": margin,
        "margin_band": margin_band(margin) if version.frozen_investment > 0 else None,
        "created_at": version.created_at.isoformat(),
        "is_current": version.id == current_id,
        "share_url": share_url(project.slug, version.version_number),
    }


def _diff_out(diff: SnapshotDiff, include_unchanged: bool) -> dict:
    entries = diff.ordered_diffs if include_unchanged else diff.changes()
    return {
        "older_version_number": diff.older_version_number,
        "newer_version_number": diff.newer_version_number,
        "net_investment_change": diff.net_investment_change,
        "net_cost_change": diff.net_cost_change,
        "counts": {t: diff.count(t) for t in ("added", "removed", "changed", "unchanged")},
        "diffs": [
            {**d.model_dump(), "investment_delta": d.investment_delta, "days_delta": d.days_delta}
            for d in entries
        ],
    }


def budget_payload(version: ProjectVersion, pricing: PricingEngine) -> dict:
    """Per-deliverable, per-phase and grand totals of one version at current rates."""
    phases = []
    for phase in version.snapshot.phases:
        rows = []
        for deliverable in phase.deliverables:
            rows.append({
                "id": deliverable.id,
                "name": deliverable.name,
                "role_allocations": dict(deliverable.role_allocations),
                "internal_notes": deliverable.internal_notes,
                **pricing.deliverable_totals(deliverable).as_dict(),
            })
        phases.append({
            "id": phase.id,
            "name": phase.name,
            "deliverables": rows,
            "totals": pricing.phase_totals(phase).as_dict(),
        })
    return {
        "version_number": version.version_number,
        "version_name": version.name,
        "overhead_per_day": pricing.overhead_per_day,
        "phases": phases,
        "totals": pricing.project_totals(version.snapshot).as_dict(),
    }


# ─── Projects ───────────────────────────────────────────────────────────────

@router.post("", status_code=201)
async def create_project(payload: ProjectCreate, store: ScopeStore = Depends(get_store)):
    with http_errors():
        project, version = await versions.create_project(
            store, payload.client_name, payload.project_name, payload.slug
        )
    return {
        **_project_out(project),
        "current_version": _version_summary(project, version, version.id),
    }


@router.get("")
async def list_projects(store: ScopeStore = Depends(get_store)):
    """All projects, most recently updated first, with the current version's frozen totals."""
    out = []
    for project in await store.list_projects():
        row = _project_out(project)
        current = await store.get_version(project.current_version_id) if project.current_version_id else None
        row["current_version"] = _version_summary(project, current, current.id) if current else None
        out.append(row)
    return out


@router.get("/{slug}")
async def get_project(
    slug: str,
    store: ScopeStore = Depends(get_store),
    pricing: PricingEngine = Depends(get_pricing),
):
    """Project plus its current scope, live-priced for the scoping editor."""
    with http_errors():
        project = await versions.get_project_or_404(store, slug)
        current = await versions.get_current_version(store, project)
    return {
        **_project_out(project),
        "current_version": _version_summary(project, current, current.id),
        "snapshot": current.snapshot.model_dump(),
        "budget": budget_payload(current, pricing),
        "rate_card": pricing.rate_card(),
    }


@router.patch("/{slug}/status")
async def update_status(slug: str, payload: StatusUpdate, store: ScopeStore = Depends(get_store)):
    with http_errors():
        project = await versions.get_project_or_404(store, slug)
    project = await store.update_project(project.id, {"status": payload.status})
    logger.info(f"Project {slug} status → {payload.status}")
    return _project_out(project)


# ─── Scope editing ──────────────────────────────────────────────────────────

@router.put("/{slug}/scope")
async def autosave_scope(
    slug: str,
    payload: ScopeSnapshot,
    defer: bool = Query(False, description="Debounce the write as an inline edit"),
    store: ScopeStore = Depends(get_store),
    pricing: PricingEngine = Depends(get_pricing),
    debouncer: Debouncer = Depends(get_debouncer),
    store_factory: StoreFactory = Depends(get_store_factory),
):
    """
    Persist the editor's scope into the current version.

    With ``defer=true`` the write is debounced per project: bursts of edits
    collapse into a single save once the editor has been quiet for the
    scope autosave delay. The response then carries the live totals only.
    """
    with http_errors():
        project = await versions.get_project_or_404(store, slug)

    totals = pricing.project_totals(payload)
    if defer:
        async def _write(bg_store: ScopeStore):
            fresh = await versions.get_project_or_404(bg_store, slug)
            await versions.autosave_current(bg_store, fresh, payload, pricing)

        schedule_write(debouncer, store_factory, project.id, SCOPE_AUTOSAVE_DELAY_S, _write)
        return {"status": "scheduled", "totals": totals.as_dict()}

    with http_errors():
        version = await versions.autosave_current(store, project, payload, pricing)
    return {
        "status": "saved",
        "version": _version_summary(project, version, version.id),
        "totals": totals.as_dict(),
    }


@router.put("/{slug}/deliverables/{deliverable_id}/notes")
async def update_notes(
    slug: str,
    deliverable_id: str,
    payload: NotesUpdate,
    store: ScopeStore = Depends(get_store),
):
    """Internal notes edit from the budget view; pricing is untouched."""
    with http_errors():
        project = await versions.get_project_or_404(store, slug)
        await versions.update_deliverable_notes(store, project, deliverable_id, payload.internal_notes)
    return {"status": "saved", "deliverable_id": deliverable_id}


@router.post("/{slug}/phases", status_code=201)
async def add_phase(
    slug: str,
    payload: PhaseCreate,
    store: ScopeStore = Depends(get_store),
    pricing: PricingEngine = Depends(get_pricing),
):
    with http_errors():
        project = await versions.get_project_or_404(store, slug)
        phase = await versions.add_phase(store, project, pricing, payload.name)
    return phase.model_dump()


@router.post("/{slug}/phases/{phase_id}/deliverables", status_code=201)
async def add_deliverable(
    slug: str,
    phase_id: str,
    payload: DeliverableCreate,
    store: ScopeStore = Depends(get_store),
    pricing: PricingEngine = Depends(get_pricing),
):
    """Add a deliverable from the service library (``service_id``) or by custom name."""
    with http_errors():
        project = await versions.get_project_or_404(store, slug)
        deliverable = await versions.add_deliverable(
            store, project, phase_id, pricing, service_id=payload.service_id, name=payload.name
        )
    return deliverable.model_dump()


# ─── Versions ───────────────────────────────────────────────────────────────

@router.get("/{slug}/versions")
async def list_versions(slug: str, store: ScopeStore = Depends(get_store)):
    """Version history, newest first."""
    with http_errors():
        project = await versions.get_project_or_404(store, slug)
    history = await store.list_versions(project.id)
    return [_version_summary(project, v, project.current_version_id) for v in reversed(history)]


@router.post("/{slug}/versions", status_code=201)
async def save_version(
    slug: str,
    payload: VersionCreate,
    store: ScopeStore = Depends(get_store),
    pricing: PricingEngine = Depends(get_pricing),
    debouncer: Debouncer = Depends(get_debouncer),
):
    with http_errors():
        project = await versions.get_project_or_404(store, slug)
        # Land any accepted deferred edit on the old current version first
        await debouncer.flush(project.id)
        version = await versions.save_version(store, project, payload.name.strip(), pricing, payload.snapshot)
    return _version_summary(project, version, version.id)


@router.post("/{slug}/versions/{version_number}/revert", status_code=201)
async def revert_version(
    slug: str,
    version_number: int,
    store: ScopeStore = Depends(get_store),
    debouncer: Debouncer = Depends(get_debouncer),
):
    with http_errors():
        project = await versions.get_project_or_404(store, slug)
        await debouncer.flush(project.id)
        version = await versions.revert_to_version(store, project, version_number)
    return _version_summary(project, version, version.id)


@router.get("/{slug}/compare")
async def compare_versions(
    slug: str,
    a: int = Query(..., ge=1),
    b: int = Query(..., ge=1),
    include_unchanged: bool = False,
    store: ScopeStore = Depends(get_store),
    pricing: PricingEngine = Depends(get_pricing),
):
    """Deliverable-level diff between two versions; argument order does not matter."""
    with http_errors():
        project = await versions.get_project_or_404(store, slug)
        diff = await versions.compare_versions(store, project, a, b, pricing)
    return _diff_out(diff, include_unchanged)


@router.get("/{slug}/budget")
async def get_budget(
    slug: str,
    v: Optional[int] = Query(None, ge=1, description="Version number; defaults to current"),
    store: ScopeStore = Depends(get_store),
    pricing: PricingEngine = Depends(get_pricing),
):
    with http_errors():
        project = await versions.get_project_or_404(store, slug)
        if v is None:
            version = await versions.get_current_version(store, project)
        else:
            version = await versions.get_version_by_number(store, project, v)
    return {"project": _project_out(project), **budget_payload(version, pricing)}
