"""
Version service — project lifecycle on top of a ScopeStore.

  create   → project + v1 "Working draft" (default phases, zero totals)
  autosave → rewrite the *current* version's snapshot and totals in place
  save     → freeze the current scope into version max+1, move the pointer
  revert   → deep-copy an old snapshot into version max+1, totals verbatim
  compare  → run the Snapshot Differ over two version numbers

Version numbers only ever move forward; reverting never rewinds history.
"""
import logging
from typing import List, Optional, Tuple

from scopeworks.config import (
    BILLABLE_DAYS_SETTING_KEY,
    INITIAL_VERSION_NAME,
    NEW_DELIVERABLE_NAME,
    NEW_PHASE_NAME,
)
from scopeworks.models.scope_schema import (
    Project,
    ProjectVersion,
    ScopeDeliverable,
    ScopePhase,
    ScopeSnapshot,
    SnapshotDiff,
    default_snapshot,
    utcnow,
)
from scopeworks.services.errors import DuplicateSlug, NotFound
from scopeworks.services.formatting import generate_slug
from scopeworks.services.pricing_engine import PricingEngine, clamp_billable_days
from scopeworks.services.scope_store import ScopeStore
from scopeworks.services.snapshot_differ import diff_versions

logger = logging.getLogger("scopeworks-versions")


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def next_version_number(versions: List[ProjectVersion]) -> int:
    return max((v.version_number for v in versions), default=0) + 1


def resolve_version(
    project: Project,
    versions: List[ProjectVersion],
    version_number: Optional[int] = None,
) -> Optional[ProjectVersion]:
    """Explicit number wins; otherwise the project's current version, else the first one."""
    if version_number is not None:
        return next((v for v in versions if v.version_number == version_number), None)
    if project.current_version_id:
        current = next((v for v in versions if v.id == project.current_version_id), None)
        if current is not None:
            return current
    return versions[0] if versions else None


def build_reverted_version(source: ProjectVersion, version_number: int) -> ProjectVersion:
    """New version carrying a deep copy of ``source``'s snapshot and its frozen totals unchanged."""
    return ProjectVersion(
        project_id=source.project_id,
        version_number=version_number,
        name=f"Reverted from v{source.version_number}",
        snapshot=source.snapshot.model_copy(deep=True),
        total_investment=source.total_investment,
        total_internal_cost=source.total_internal_cost,
    )


# ---------------------------------------------------------------------------
# Store-backed operations
# ---------------------------------------------------------------------------

async def load_pricing_engine(store: ScopeStore) -> PricingEngine:
    """Current active rate card + overhead per day, as every page prices with."""
    roles = await store.list_roles(active_only=True)
    items = await store.list_overhead_items()
    billable_days = clamp_billable_days(await store.get_setting(BILLABLE_DAYS_SETTING_KEY))
    return PricingEngine.from_settings(roles, items, billable_days)


async def get_project_or_404(store: ScopeStore, slug: str) -> Project:
    project = await store.get_project_by_slug(slug)
    if project is None:
        raise NotFound(f"Project '{slug}' not found")
    return project


async def get_version_by_number(store: ScopeStore, project: Project, version_number: int) -> ProjectVersion:
    versions = await store.list_versions(project.id)
    version = resolve_version(project, versions, version_number)
    if version is None:
        raise NotFound(f"Version v{version_number} of '{project.slug}' not found")
    return version


async def get_current_version(store: ScopeStore, project: Project) -> ProjectVersion:
    versions = await store.list_versions(project.id)
    version = resolve_version(project, versions)
    if version is None:
        raise NotFound(f"Project '{project.slug}' has no versions")
    return version


async def create_project(
    store: ScopeStore,
    client_name: str,
    project_name: str,
    slug: Optional[str] = None,
) -> Tuple[Project, ProjectVersion]:
    client_name = client_name.strip()
    project_name = project_name.strip()
    final_slug = (slug or "").strip() or generate_slug(client_name, project_name)
    if await store.get_project_by_slug(final_slug) is not None:
        raise DuplicateSlug(
            f"A project with slug '{final_slug}' already exists. "
            "Try a different name or override the slug."
        )

    project = await store.insert_project(Project(
        slug=final_slug,
        client_name=client_name,
        project_name=project_name,
    ))
    version = await store.insert_version(ProjectVersion(
        project_id=project.id,
        version_number=1,
        name=INITIAL_VERSION_NAME,
        snapshot=default_snapshot(),
        total_investment=0.0,
        total_internal_cost=0.0,
    ))
    project = await store.update_project(project.id, {"current_version_id": version.id})
    logger.info("Created project %s", final_slug, extra={"project_id": project.id})
    return project, version


async def autosave_current(
    store: ScopeStore,
    project: Project,
    snapshot: ScopeSnapshot,
    pricing: PricingEngine,
) -> ProjectVersion:
    """Rewrite the current version with ``snapshot`` and totals at today's rates."""
    current = await get_current_version(store, project)
    totals = pricing.project_totals(snapshot)
    updated = await store.update_version(current.id, {
        "snapshot": snapshot,
        "total_investment": totals.investment,
        "total_internal_cost": totals.internal_cost,
    })
    await store.update_project(project.id, {"updated_at": utcnow()})
    logger.debug(
        "Autosaved current version",
        extra={"project_id": project.id, "version_number": current.version_number},
    )
    return updated


async def update_deliverable_notes(
    store: ScopeStore,
    project: Project,
    deliverable_id: str,
    notes: str,
) -> ProjectVersion:
    """Internal notes edit from the budget view; totals are left untouched."""
    current = await get_current_version(store, project)
    snapshot = current.snapshot.model_copy(deep=True)
    for _, deliverable in snapshot.iter_deliverables():
        if deliverable.id == deliverable_id:
            deliverable.internal_notes = notes
            break
    else:
        raise NotFound(f"Deliverable {deliverable_id} not found in current version")
    return await store.update_version(current.id, {"snapshot": snapshot})


async def add_phase(
    store: ScopeStore,
    project: Project,
    pricing: PricingEngine,
    name: Optional[str] = None,
) -> ScopePhase:
    current = await get_current_version(store, project)
    snapshot = current.snapshot.model_copy(deep=True)
    phase = ScopePhase(name=(name or "").strip() or NEW_PHASE_NAME, sort_order=len(snapshot.phases))
    snapshot.phases.append(phase)
    await autosave_current(store, project, snapshot, pricing)
    return phase


async def add_deliverable(
    store: ScopeStore,
    project: Project,
    phase_id: str,
    pricing: PricingEngine,
    service_id: Optional[str] = None,
    name: Optional[str] = None,
) -> ScopeDeliverable:
    """
    Append an empty deliverable to a phase of the current version.

    Picked from the service library it takes the service's name and id;
    otherwise the custom name, else the placeholder name.
    """
    service = None
    if service_id is not None:
        services = await store.list_services(active_only=False)
        service = next((s for s in services if s.id == service_id), None)
        if service is None:
            raise NotFound(f"Service {service_id} not found")

    current = await get_current_version(store, project)
    snapshot = current.snapshot.model_copy(deep=True)
    phase = next((p for p in snapshot.phases if p.id == phase_id), None)
    if phase is None:
        raise NotFound(f"Phase {phase_id} not found in current version")

    deliverable = ScopeDeliverable(
        name=service.name if service else ((name or "").strip() or NEW_DELIVERABLE_NAME),
        service_id=service.id if service else None,
    )
    phase.deliverables.append(deliverable)
    await autosave_current(store, project, snapshot, pricing)
    return deliverable


async def save_version(
    store: ScopeStore,
    project: Project,
    name: str,
    pricing: PricingEngine,
    snapshot: Optional[ScopeSnapshot] = None,
) -> ProjectVersion:
    """
    Freeze a scope and its totals into a new numbered version.

    ``snapshot`` is the editor's in-memory scope when it has edits not yet
    autosaved; without it the stored current version is frozen.
    """
    versions = await store.list_versions(project.id)
    if snapshot is None:
        current = resolve_version(project, versions)
        snapshot = current.snapshot if current else default_snapshot()
    snapshot = snapshot.model_copy(deep=True)
    totals = pricing.project_totals(snapshot)

    version = await store.insert_version(ProjectVersion(
        project_id=project.id,
        version_number=next_version_number(versions),
        name=name,
        snapshot=snapshot,
        total_investment=totals.investment,
        total_internal_cost=totals.internal_cost,
    ))
    await store.update_project(project.id, {"current_version_id": version.id, "updated_at": utcnow()})
    logger.info(
        "Saved v%s — %s", version.version_number, name,
        extra={"project_id": project.id, "version_number": version.version_number},
    )
    return version


async def revert_to_version(store: ScopeStore, project: Project, version_number: int) -> ProjectVersion:
    versions = await store.list_versions(project.id)
    source = resolve_version(project, versions, version_number)
    if source is None:
        raise NotFound(f"Version v{version_number} of '{project.slug}' not found")

    version = await store.insert_version(
        build_reverted_version(source, next_version_number(versions))
    )
    await store.update_project(project.id, {"current_version_id": version.id, "updated_at": utcnow()})
    logger.info(
        "Reverted to v%s — saved as v%s", source.version_number, version.version_number,
        extra={"project_id": project.id, "version_number": version.version_number},
    )
    return version


async def compare_versions(
    store: ScopeStore,
    project: Project,
    version_a: int,
    version_b: int,
    pricing: PricingEngine,
) -> SnapshotDiff:
    versions = await store.list_versions(project.id)
    a = resolve_version(project, versions, version_a)
    b = resolve_version(project, versions, version_b)
    missing = [n for n, v in ((version_a, a), (version_b, b)) if v is None]
    if missing:
        raise NotFound(f"Version v{missing[0]} of '{project.slug}' not found")
    return diff_versions(a, b, pricing.roles, pricing.overhead_per_day)
