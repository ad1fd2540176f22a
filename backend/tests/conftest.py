"""
conftest.py — Shared pytest fixtures for the ScopeWorks backend test suite.

No database is required. Store-backed code runs against ``MemoryScopeStore``,
an in-memory ``ScopeStore`` that copies records in and out the way a real
row store would, and route tests swap it in through FastAPI dependency
overrides.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``scopeworks.*`` imports resolve correctly regardless of where pytest is
    invoked.
"""

import sys
import os
from contextlib import asynccontextmanager

import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any scopeworks imports.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

from scopeworks.models.scope_schema import (  # noqa: E402
    OverheadItem,
    ProjectVersion,
    Role,
    ScopeDeliverable,
    ScopePhase,
    ScopeSnapshot,
    ServiceLibraryItem,
)
from scopeworks.services.scope_store import ScopeStore  # noqa: E402


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

class MemoryScopeStore(ScopeStore):
    """Dict-backed ScopeStore. Records are copied on the way in and out."""

    def __init__(self, roles=(), overhead_items=(), settings=None, services=()):
        self.roles = {r.id: r.model_copy(deep=True) for r in roles}
        self.overhead_items = {i.id: i.model_copy(deep=True) for i in overhead_items}
        self.settings = dict(settings or {})
        self.services = [s.model_copy(deep=True) for s in services]
        self.projects = {}
        self.versions = {}

    @staticmethod
    def _out(record):
        return record.model_copy(deep=True) if record is not None else None

    @staticmethod
    def _patch(table, pk, fields):
        record = table.get(pk)
        if record is None:
            return None
        updates = {
            k: (v.model_copy(deep=True) if isinstance(v, ScopeSnapshot) else v)
            for k, v in fields.items()
        }
        table[pk] = record.model_copy(update=updates)
        return table[pk].model_copy(deep=True)

    # Rate card
    async def list_roles(self, active_only=False):
        roles = [r for r in self.roles.values() if r.is_active or not active_only]
        return [self._out(r) for r in sorted(roles, key=lambda r: (r.sort_order, r.title))]

    async def get_role(self, role_id):
        return self._out(self.roles.get(role_id))

    async def insert_role(self, role):
        self.roles[role.id] = role.model_copy(deep=True)
        return self._out(role)

    async def update_role(self, role_id, fields):
        return self._patch(self.roles, role_id, fields)

    async def delete_role(self, role_id):
        return self.roles.pop(role_id, None) is not None

    # Overheads & settings
    async def list_overhead_items(self):
        return [self._out(i) for i in sorted(self.overhead_items.values(), key=lambda i: i.sort_order)]

    async def insert_overhead_item(self, item):
        self.overhead_items[item.id] = item.model_copy(deep=True)
        return self._out(item)

    async def update_overhead_item(self, item_id, fields):
        return self._patch(self.overhead_items, item_id, fields)

    async def delete_overhead_item(self, item_id):
        return self.overhead_items.pop(item_id, None) is not None

    async def get_setting(self, key, default=None):
        return self.settings.get(key, default)

    async def set_setting(self, key, value):
        self.settings[key] = value

    # Service library
    async def list_services(self, active_only=True):
        return [self._out(s) for s in self.services if s.is_active or not active_only]

    # Projects & versions
    async def list_projects(self):
        ordered = sorted(self.projects.values(), key=lambda p: p.updated_at, reverse=True)
        return [self._out(p) for p in ordered]

    async def get_project(self, project_id):
        return self._out(self.projects.get(project_id))

    async def get_project_by_slug(self, slug):
        return self._out(next((p for p in self.projects.values() if p.slug == slug), None))

    async def insert_project(self, project):
        self.projects[project.id] = project.model_copy(deep=True)
        return self._out(project)

    async def update_project(self, project_id, fields):
        return self._patch(self.projects, project_id, fields)

    async def list_versions(self, project_id):
        rows = [v for v in self.versions.values() if v.project_id == project_id]
        return [self._out(v) for v in sorted(rows, key=lambda v: v.version_number)]

    async def get_version(self, version_id):
        return self._out(self.versions.get(version_id))

    async def insert_version(self, version):
        self.versions[version.id] = version.model_copy(deep=True)
        return self._out(version)

    async def update_version(self, version_id, fields):
        return self._patch(self.versions, version_id, fields)


# ---------------------------------------------------------------------------
# Rate card fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def senior_dev():
    """
    The reference role used for exact-value checks:
      base cost 300/day, markup 25 %.
    With 2000/month overhead over 220 billable days:
      overhead/day = 109.0909..., client day rate = 511.3636...
    """
    return Role(id="role-dev", title="Senior Developer", base_cost_day=300.0, markup_pct=0.25, sort_order=0)


@pytest.fixture(scope="session")
def rate_card(senior_dev):
    """Four roles — three active, one retired (inactive)."""
    return [
        senior_dev,
        Role(id="role-design", title="Senior Designer", base_cost_day=250.0, markup_pct=0.30, sort_order=1),
        Role(id="role-pm", title="Project Manager", base_cost_day=200.0, markup_pct=0.30, sort_order=2),
        Role(id="role-legacy", title="Flash Developer", base_cost_day=180.0, markup_pct=0.20,
             sort_order=3, is_active=False),
    ]


@pytest.fixture(scope="session")
def overhead_items():
    """2000/month in total."""
    return [
        OverheadItem(id="oh-rent", name="Studio rent", category="workspace", monthly_cost=1500.0, sort_order=0),
        OverheadItem(id="oh-saas", name="Software", category="subscription", monthly_cost=500.0, sort_order=1),
    ]


@pytest.fixture(scope="session")
def service_library():
    """Three library services; the retired one is hidden from the picker."""
    return [
        ServiceLibraryItem(id="svc-workshop", name="Discovery workshop", phase="Discovery",
                           typical_effort_min=1, typical_effort_max=2, sort_order=0),
        ServiceLibraryItem(id="svc-theme", name="Custom theme build", phase="Development",
                           typical_effort_min=10, typical_effort_max=15, sort_order=1),
        ServiceLibraryItem(id="svc-flash", name="Flash intro", phase="Development",
                           sort_order=2, is_active=False),
    ]


@pytest.fixture(scope="session")
def scenario_overhead_day():
    return 2000.0 * 12 / 220


# ---------------------------------------------------------------------------
# Scope fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_snapshot():
    """Two phases, three deliverables, mixed roles."""
    return ScopeSnapshot(phases=[
        ScopePhase(id="ph-discovery", name="Discovery", sort_order=0, deliverables=[
            ScopeDeliverable(id="d-workshop", name="Kick-off workshop",
                             role_allocations={"role-pm": 1.0, "role-design": 1.0}),
        ]),
        ScopePhase(id="ph-dev", name="Development", sort_order=1, deliverables=[
            ScopeDeliverable(id="d-build", name="Site build",
                             role_allocations={"role-dev": 5.0, "role-pm": 0.5},
                             internal_notes="Includes CMS setup"),
            ScopeDeliverable(id="d-qa", name="QA pass", role_allocations={"role-dev": 1.5}),
        ]),
    ])


@pytest.fixture
def make_version():
    """Factory: ProjectVersion with the given number, snapshot and frozen totals."""
    def _make(number, snapshot=None, investment=0.0, cost=0.0, name=None):
        return ProjectVersion(
            project_id="p-1",
            version_number=number,
            name=name,
            snapshot=snapshot or ScopeSnapshot(),
            total_investment=investment,
            total_internal_cost=cost,
        )
    return _make


# ---------------------------------------------------------------------------
# Store & API fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def make_store(rate_card, overhead_items, service_library):
    """Factory: a fresh MemoryScopeStore seeded with the rate card, overheads and services."""
    def _make(**kwargs):
        kwargs.setdefault("roles", rate_card)
        kwargs.setdefault("overhead_items", overhead_items)
        kwargs.setdefault("services", service_library)
        kwargs.setdefault("settings", {"annual_billable_days": 220})
        return MemoryScopeStore(**kwargs)
    return _make


@pytest.fixture
def memory_store(make_store):
    return make_store()


@pytest.fixture
def api_client(memory_store, monkeypatch):
    """
    TestClient over the real app with the store dependency pointed at
    ``memory_store``. Lifespan runs, so ``app.state.debouncer`` exists.
    """
    monkeypatch.delenv("DATABASE_URL", raising=False)
    from fastapi.testclient import TestClient
    from scopeworks.api.deps import get_store, get_store_factory
    from scopeworks.main import app

    async def _store():
        return memory_store

    @asynccontextmanager
    async def _store_session():
        yield memory_store

    app.dependency_overrides[get_store] = _store
    app.dependency_overrides[get_store_factory] = lambda: _store_session
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
