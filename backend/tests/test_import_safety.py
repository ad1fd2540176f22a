"""
test_import_safety.py — Import and layering checks.

Verifies that:
  1. Every scopeworks module imports without circular import failures
     (importing ``scopeworks.db`` builds an engine but opens no connection).
  2. The pricing core (schemas, pricing engine, differ, formatting) stays pure:
     no database session, web framework or event loop in its source.

No database, network, or external services are required.
"""

import importlib
import inspect

import pytest

_ALL_MODULES = [
    "scopeworks.config",
    "scopeworks.models.scope_schema",
    "scopeworks.models.orm_models",
    "scopeworks.db",
    "scopeworks.services.errors",
    "scopeworks.services.pricing_engine",
    "scopeworks.services.snapshot_differ",
    "scopeworks.services.formatting",
    "scopeworks.services.autosave",
    "scopeworks.services.scope_store",
    "scopeworks.services.version_service",
    "scopeworks.services.report_engine",
    "scopeworks.services.logging_config",
    "scopeworks.services.middleware",
    "scopeworks.api.deps",
    "scopeworks.api.settings_routes",
    "scopeworks.api.project_routes",
    "scopeworks.api.export_routes",
    "scopeworks.api.public_routes",
    "scopeworks.main",
]

_PURE_CORE_MODULES = [
    "scopeworks.models.scope_schema",
    "scopeworks.services.pricing_engine",
    "scopeworks.services.snapshot_differ",
    "scopeworks.services.formatting",
]

_FORBIDDEN_IN_CORE = ["AsyncSession", "get_db", "sqlalchemy", "fastapi", "asyncio"]


class TestModuleImports:

    @pytest.mark.parametrize("module_path", _ALL_MODULES)
    def test_module_imports(self, module_path):
        try:
            mod = importlib.import_module(module_path)
        except Exception as e:
            pytest.fail(f"{module_path} raised on import: {type(e).__name__}: {e}")
        assert mod is not None


class TestPureCore:

    @pytest.mark.parametrize("module_path", _PURE_CORE_MODULES)
    def test_core_has_no_io_dependencies(self, module_path):
        src = inspect.getsource(importlib.import_module(module_path))
        for name in _FORBIDDEN_IN_CORE:
            assert name not in src, f"{module_path} must not depend on {name}"

    def test_differ_prices_through_pricing_engine(self):
        """The differ must not carry its own copy of the rate maths."""
        import scopeworks.services.snapshot_differ as differ
        src = inspect.getsource(differ)
        assert "markup" not in src
        assert "client_day_rate" not in src
