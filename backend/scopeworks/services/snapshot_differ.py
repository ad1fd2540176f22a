"""
Snapshot Differ — compares two project versions deliverable by deliverable.

Matching is purely at deliverable level (phases are display grouping only):
  1. by id;
  2. failing that, by identical name against newer deliverables not yet
     matched (first wins). This catches deliverables that were deleted and
     re-created instead of edited, and can pair the wrong rows when several
     deliverables share a name.

Line values are priced at the *current* rate card passed in. The headline net
changes come from each version's persisted totals, frozen at save time. The
two are allowed to disagree.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Set

from scopeworks.models.scope_schema import (
    DiffEntry,
    ProjectVersion,
    ScopeDeliverable,
    ScopeSnapshot,
    SnapshotDiff,
)
from scopeworks.services.pricing_engine import PricingEngine, RoleLookup, line_days

logger = logging.getLogger("scopeworks-differ")


@dataclass
class _FlatDeliverable:
    deliverable: ScopeDeliverable
    phase_name: str

    @property
    def id(self) -> str:
        return self.deliverable.id

    @property
    def name(self) -> str:
        return self.deliverable.name


def _flatten(snapshot: ScopeSnapshot) -> List[_FlatDeliverable]:
    return [_FlatDeliverable(d, phase.name) for phase, d in snapshot.iter_deliverables()]


def diff_versions(
    version_a: ProjectVersion,
    version_b: ProjectVersion,
    roles: RoleLookup,
    overhead_day: float,
) -> SnapshotDiff:
    """
    Classify every deliverable of two versions as added / removed / changed /
    unchanged. Argument order does not matter: the lower version number is
    always treated as the older side.
    """
    if version_a.version_number <= version_b.version_number:
        older, newer = version_a, version_b
    else:
        older, newer = version_b, version_a

    pricing = PricingEngine(roles, overhead_day)
    older_items = _flatten(older.snapshot)
    newer_items = _flatten(newer.snapshot)
    newer_by_id: Dict[str, _FlatDeliverable] = {d.id: d for d in newer_items}

    diffs: List[DiffEntry] = []
    matched: Set[str] = set()

    for old in older_items:
        match = newer_by_id.get(old.id)
        if match is not None and match.id in matched:
            # already claimed by an earlier name match
            match = None
        if match is None:
            match = next(
                (n for n in newer_items if n.name == old.name and n.id not in matched),
                None,
            )

        inv_a = pricing.investment(old.deliverable)
        days_a = line_days(old.deliverable.role_allocations)

        if match is None:
            diffs.append(DiffEntry(
                type="removed",
                name=old.name,
                phase_name=old.phase_name,
                investment_a=inv_a,
                days_a=days_a,
            ))
            continue

        matched.add(match.id)
        inv_b = pricing.investment(match.deliverable)
        days_b = line_days(match.deliverable.role_allocations)
        changed = inv_a != inv_b or days_a != days_b
        diffs.append(DiffEntry(
            type="changed" if changed else "unchanged",
            name=match.name,
            phase_name=match.phase_name,
            investment_a=inv_a,
            investment_b=inv_b,
            days_a=days_a,
            days_b=days_b,
        ))

    for new in newer_items:
        if new.id in matched:
            continue
        diffs.append(DiffEntry(
            type="added",
            name=new.name,
            phase_name=new.phase_name,
            investment_b=pricing.investment(new.deliverable),
            days_b=line_days(new.deliverable.role_allocations),
        ))

    result = SnapshotDiff(
        older_version_number=older.version_number,
        newer_version_number=newer.version_number,
        ordered_diffs=diffs,
        net_investment_change=newer.frozen_investment - older.frozen_investment,
        net_cost_change=newer.frozen_internal_cost - older.frozen_internal_cost,
    )
    logger.debug(
        "Compared v%s → v%s: %d added, %d removed, %d changed",
        older.version_number,
        newer.version_number,
        result.count("added"),
        result.count("removed"),
        result.count("changed"),
    )
    return result
