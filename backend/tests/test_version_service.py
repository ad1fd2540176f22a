"""
test_version_service.py — Project lifecycle against the in-memory store.

Tests cover:
  - Project creation (v1 "Working draft", default phases, duplicate slugs)
  - Autosave of the current version at current rates
  - Adding phases and deliverables (library picks, custom names)
  - Save version (next number, recomputed totals, pointer moves)
  - Revert (deep copy, frozen totals verbatim, numbers only move forward)
  - Version resolution and compare lookups
  - Pricing engine loaded from stored settings
  - Frozen totals persisted without rounding

Async service calls are driven with asyncio.run; no database required.
"""

import asyncio

import pytest

from scopeworks.models.scope_schema import Project, ScopeDeliverable, ScopeSnapshot
from scopeworks.services import version_service as vs
from scopeworks.services.errors import DuplicateSlug, NotFound


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def project(memory_store):
    project, _ = run(vs.create_project(memory_store, "Acme Corp", "Web Site"))
    return project


@pytest.fixture
def pricing(memory_store):
    return run(vs.load_pricing_engine(memory_store))


def _with_build_days(snapshot: ScopeSnapshot, days: float) -> ScopeSnapshot:
    snapshot = snapshot.model_copy(deep=True)
    snapshot.phases[1].deliverables = [
        ScopeDeliverable(id="d-build", name="Build", role_allocations={"role-dev": days})
    ]
    return snapshot


# ===========================================================================
# Class 1: Creation
# ===========================================================================

class TestCreateProject:

    def test_creates_v1_working_draft(self, memory_store):
        project, version = run(vs.create_project(memory_store, "  Acme Corp ", "Web Site"))
        assert project.slug == "acme-corp-web-site"
        assert project.client_name == "Acme Corp"
        assert project.status == "draft"
        assert project.current_version_id == version.id
        assert version.version_number == 1
        assert version.name == "Working draft"
        assert version.total_investment == 0.0
        assert [p.name for p in version.snapshot.phases] == ["Discovery", "Development", "Launch", "Ongoing"]
        assert all(not p.deliverables for p in version.snapshot.phases)

    def test_explicit_slug_wins(self, memory_store):
        project, _ = run(vs.create_project(memory_store, "Acme", "Site", slug="acme-2026"))
        assert project.slug == "acme-2026"

    def test_duplicate_slug_rejected(self, memory_store):
        run(vs.create_project(memory_store, "Acme Corp", "Web Site"))
        with pytest.raises(DuplicateSlug):
            run(vs.create_project(memory_store, "Acme Corp", "Web Site"))

    def test_unknown_slug_is_not_found(self, memory_store):
        with pytest.raises(NotFound):
            run(vs.get_project_or_404(memory_store, "nope"))


# ===========================================================================
# Class 2: Autosave and notes
# ===========================================================================

class TestAutosave:

    def test_autosave_rewrites_current_in_place(self, memory_store, project, pricing):
        current = run(vs.get_current_version(memory_store, project))
        snapshot = _with_build_days(current.snapshot, 2.0)
        saved = run(vs.autosave_current(memory_store, project, snapshot, pricing))
        assert saved.id == current.id
        assert saved.version_number == 1
        assert saved.total_investment == pytest.approx(pricing.project_totals(snapshot).investment)
        assert saved.total_internal_cost == pytest.approx(pricing.project_totals(snapshot).internal_cost)
        assert len(run(memory_store.list_versions(project.id))) == 1

    def test_autosave_bumps_project_updated_at(self, memory_store, project, pricing):
        current = run(vs.get_current_version(memory_store, project))
        run(vs.autosave_current(memory_store, project, current.snapshot, pricing))
        refreshed = run(memory_store.get_project(project.id))
        assert refreshed.updated_at >= project.updated_at

    def test_notes_edit_keeps_totals(self, memory_store, project, pricing):
        current = run(vs.get_current_version(memory_store, project))
        run(vs.autosave_current(memory_store, project, _with_build_days(current.snapshot, 3.0), pricing))
        before = run(vs.get_current_version(memory_store, project))
        after = run(vs.update_deliverable_notes(memory_store, project, "d-build", "Needs a CMS"))
        build = after.snapshot.phases[1].deliverables[0]
        assert build.internal_notes == "Needs a CMS"
        assert after.total_investment == before.total_investment

    def test_notes_for_unknown_deliverable(self, memory_store, project):
        with pytest.raises(NotFound):
            run(vs.update_deliverable_notes(memory_store, project, "missing", "x"))


class TestScopeBuilding:

    def test_add_phase_appends_with_next_sort_order(self, memory_store, project, pricing):
        phase = run(vs.add_phase(memory_store, project, pricing, "  Hosting "))
        assert phase.name == "Hosting"
        assert phase.sort_order == 4
        current = run(vs.get_current_version(memory_store, project))
        assert current.snapshot.phases[-1].id == phase.id

    def test_add_phase_default_name(self, memory_store, project, pricing):
        assert run(vs.add_phase(memory_store, project, pricing)).name == "New Phase"

    def test_add_deliverable_from_library(self, memory_store, project, pricing):
        current = run(vs.get_current_version(memory_store, project))
        dev = current.snapshot.phases[1]
        deliverable = run(vs.add_deliverable(memory_store, project, dev.id, pricing, service_id="svc-theme"))
        assert deliverable.name == "Custom theme build"
        assert deliverable.service_id == "svc-theme"
        assert deliverable.role_allocations == {}
        after = run(vs.get_current_version(memory_store, project))
        assert [d.id for d in after.snapshot.phases[1].deliverables] == [deliverable.id]

    def test_add_custom_and_placeholder_deliverables(self, memory_store, project, pricing):
        phase_id = run(vs.get_current_version(memory_store, project)).snapshot.phases[0].id
        custom = run(vs.add_deliverable(memory_store, project, phase_id, pricing, name="Stakeholder interviews"))
        blank = run(vs.add_deliverable(memory_store, project, phase_id, pricing))
        assert custom.name == "Stakeholder interviews"
        assert custom.service_id is None
        assert blank.name == "New Deliverable"

    def test_add_deliverable_unknown_phase_or_service(self, memory_store, project, pricing):
        phase_id = run(vs.get_current_version(memory_store, project)).snapshot.phases[0].id
        with pytest.raises(NotFound):
            run(vs.add_deliverable(memory_store, project, "ph-missing", pricing, name="x"))
        with pytest.raises(NotFound):
            run(vs.add_deliverable(memory_store, project, phase_id, pricing, service_id="svc-missing"))


# ===========================================================================
# Class 3: Save and revert
# ===========================================================================

class TestSaveAndRevert:

    def _save(self, store, project, pricing, days, name):
        project = run(store.get_project(project.id))
        current = run(vs.get_current_version(store, project))
        return run(vs.save_version(store, project, name, pricing, _with_build_days(current.snapshot, days)))

    def test_save_creates_next_number_and_moves_pointer(self, memory_store, project, pricing):
        v2 = self._save(memory_store, project, pricing, 2.0, "First pass")
        assert v2.version_number == 2
        assert v2.name == "First pass"
        assert v2.total_investment > 0
        refreshed = run(memory_store.get_project(project.id))
        assert refreshed.current_version_id == v2.id

    def test_save_without_snapshot_freezes_current(self, memory_store, project, pricing):
        current = run(vs.get_current_version(memory_store, project))
        run(vs.autosave_current(memory_store, project, _with_build_days(current.snapshot, 4.0), pricing))
        v2 = run(vs.save_version(memory_store, project, "Frozen", pricing))
        assert v2.snapshot == run(vs.get_current_version(memory_store, run(memory_store.get_project(project.id)))).snapshot
        assert v2.snapshot.phases[1].deliverables[0].role_allocations == {"role-dev": 4.0}

    def test_revert_to_v2_of_four_creates_v5(self, memory_store, project, pricing):
        v2 = self._save(memory_store, project, pricing, 2.0, "Two")
        self._save(memory_store, project, pricing, 3.0, "Three")
        self._save(memory_store, project, pricing, 4.0, "Four")
        # Rates change after v2 was frozen; the revert must not re-price
        memory_store.roles["role-dev"] = memory_store.roles["role-dev"].model_copy(update={"base_cost_day": 999.0})

        refreshed = run(memory_store.get_project(project.id))
        v5 = run(vs.revert_to_version(memory_store, refreshed, 2))
        assert v5.version_number == 5
        assert v5.name == "Reverted from v2"
        assert v5.snapshot == v2.snapshot
        assert v5.total_investment == v2.total_investment
        assert v5.total_internal_cost == v2.total_internal_cost
        assert run(memory_store.get_project(project.id)).current_version_id == v5.id

    def test_revert_copy_is_independent(self, memory_store, project, pricing):
        v2 = self._save(memory_store, project, pricing, 2.0, "Two")
        refreshed = run(memory_store.get_project(project.id))
        v3 = run(vs.revert_to_version(memory_store, refreshed, 2))
        run(vs.autosave_current(
            memory_store, run(memory_store.get_project(project.id)),
            _with_build_days(v3.snapshot, 9.0), pricing,
        ))
        again = run(vs.get_version_by_number(memory_store, refreshed, 2))
        assert again.snapshot == v2.snapshot

    def test_revert_unknown_version(self, memory_store, project):
        with pytest.raises(NotFound):
            run(vs.revert_to_version(memory_store, project, 42))


# ===========================================================================
# Class 4: Resolution and compare
# ===========================================================================

class TestResolution:

    def test_next_version_number(self, make_version):
        assert vs.next_version_number([]) == 1
        assert vs.next_version_number([make_version(1), make_version(4)]) == 5

    def test_resolve_explicit_current_then_first(self, make_version):
        v1, v2 = make_version(1), make_version(2)
        project = Project(slug="s", client_name="c", project_name="p", current_version_id=v2.id)
        assert vs.resolve_version(project, [v1, v2], 1) is v1
        assert vs.resolve_version(project, [v1, v2]) is v2
        project.current_version_id = None
        assert vs.resolve_version(project, [v1, v2]) is v1
        assert vs.resolve_version(project, [v1, v2], 7) is None
        assert vs.resolve_version(project, []) is None

    def test_compare_through_store(self, memory_store, project, pricing):
        current = run(vs.get_current_version(memory_store, project))
        run(vs.save_version(memory_store, project, "Built", pricing, _with_build_days(current.snapshot, 2.0)))
        diff = run(vs.compare_versions(memory_store, project, 2, 1, pricing))
        assert diff.older_version_number == 1
        assert [d.type for d in diff.ordered_diffs] == ["added"]
        assert diff.net_investment_change > 0

    def test_compare_missing_version(self, memory_store, project, pricing):
        with pytest.raises(NotFound):
            run(vs.compare_versions(memory_store, project, 1, 9, pricing))


class TestLoadPricing:

    def test_inactive_roles_excluded(self, pricing):
        assert "role-legacy" not in pricing.roles
        assert "role-dev" in pricing.roles

    def test_overhead_from_items_and_setting(self, pricing):
        assert pricing.overhead_per_day == pytest.approx(2000.0 * 12 / 220)

    def test_missing_setting_defaults_to_220(self, make_store):
        store = make_store(settings={})
        assert run(vs.load_pricing_engine(store)).overhead_per_day == pytest.approx(2000.0 * 12 / 220)

    def test_out_of_range_setting_is_clamped(self, make_store):
        store = make_store(settings={"annual_billable_days": 0})
        assert run(vs.load_pricing_engine(store)).overhead_per_day == pytest.approx(2000.0 * 12)


class TestPersistedTotals:

    @pytest.mark.parametrize("column", ["total_investment", "total_internal_cost"])
    def test_frozen_totals_stored_unrounded(self, column):
        from sqlalchemy import Float
        from scopeworks.models.orm_models import ProjectVersion as VersionRow

        col_type = VersionRow.__table__.c[column].type
        assert isinstance(col_type, Float)
        assert col_type.precision == 53

    def test_save_freezes_unrounded_totals(self, memory_store, project, pricing):
        current = run(vs.get_current_version(memory_store, project))
        version = run(vs.save_version(memory_store, project, "Odd", pricing, _with_build_days(current.snapshot, 1.0)))
        # 511.3636... per developer day; no cent rounding on the frozen value
        assert version.total_investment == pytest.approx(300.0 * 1.25 + (2000.0 * 12 / 220) * 1.25, rel=1e-12)
        assert round(version.total_investment, 2) != version.total_investment
