"""
ScopeStore — the row store behind projects, versions and settings.

Services only ever need get / list / insert / update-by-id (and delete for
settings rows), so that is all the interface offers. ``SqlScopeStore`` backs
it with the async SQLAlchemy session; records cross the boundary as the
pydantic models in ``scopeworks.models.scope_schema``.
"""
import abc
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from scopeworks.models import orm_models as orm
from scopeworks.models.scope_schema import (
    OverheadItem,
    Project,
    ProjectVersion,
    Role,
    ScopeSnapshot,
    ServiceLibraryItem,
)

logger = logging.getLogger("scopeworks-store")


class ScopeStore(abc.ABC):
    # ── Rate card ──────────────────────────────────────────────────────────
    @abc.abstractmethod
    async def list_roles(self, active_only: bool = False) -> List[Role]: ...

    @abc.abstractmethod
    async def get_role(self, role_id: str) -> Optional[Role]: ...

    @abc.abstractmethod
    async def insert_role(self, role: Role) -> Role: ...

    @abc.abstractmethod
    async def update_role(self, role_id: str, fields: Dict[str, Any]) -> Optional[Role]: ...

    @abc.abstractmethod
    async def delete_role(self, role_id: str) -> bool: ...

    # ── Overheads & settings ───────────────────────────────────────────────
    @abc.abstractmethod
    async def list_overhead_items(self) -> List[OverheadItem]: ...

    @abc.abstractmethod
    async def insert_overhead_item(self, item: OverheadItem) -> OverheadItem: ...

    @abc.abstractmethod
    async def update_overhead_item(self, item_id: str, fields: Dict[str, Any]) -> Optional[OverheadItem]: ...

    @abc.abstractmethod
    async def delete_overhead_item(self, item_id: str) -> bool: ...

    @abc.abstractmethod
    async def get_setting(self, key: str, default: Any = None) -> Any: ...

    @abc.abstractmethod
    async def set_setting(self, key: str, value: Any) -> None: ...

    # ── Service library ────────────────────────────────────────────────────
    @abc.abstractmethod
    async def list_services(self, active_only: bool = True) -> List[ServiceLibraryItem]: ...

    # ── Projects & versions ────────────────────────────────────────────────
    @abc.abstractmethod
    async def list_projects(self) -> List[Project]: ...

    @abc.abstractmethod
    async def get_project(self, project_id: str) -> Optional[Project]: ...

    @abc.abstractmethod
    async def get_project_by_slug(self, slug: str) -> Optional[Project]: ...

    @abc.abstractmethod
    async def insert_project(self, project: Project) -> Project: ...

    @abc.abstractmethod
    async def update_project(self, project_id: str, fields: Dict[str, Any]) -> Optional[Project]: ...

    @abc.abstractmethod
    async def list_versions(self, project_id: str) -> List[ProjectVersion]:
        """All versions of a project, ascending by version number."""

    @abc.abstractmethod
    async def get_version(self, version_id: str) -> Optional[ProjectVersion]: ...

    @abc.abstractmethod
    async def insert_version(self, version: ProjectVersion) -> ProjectVersion: ...

    @abc.abstractmethod
    async def update_version(self, version_id: str, fields: Dict[str, Any]) -> Optional[ProjectVersion]: ...


# ---------------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------------

def _to_columns(fields: Dict[str, Any]) -> Dict[str, Any]:
    out = {}
    for key, value in fields.items():
        if isinstance(value, ScopeSnapshot):
            value = value.model_dump(mode="json")
        out[key] = value
    return out


def _role(row: orm.Role) -> Role:
    return Role(
        id=row.id,
        title=row.title or "",
        base_cost_day=float(row.base_cost_day or 0),
        markup_pct=float(row.markup_pct or 0),
        sort_order=row.sort_order or 0,
        is_active=bool(row.is_active),
    )


def _overhead(row: orm.OverheadItem) -> OverheadItem:
    return OverheadItem(
        id=row.id,
        name=row.name or "",
        category=row.category,
        monthly_cost=float(row.monthly_cost or 0),
        notes=row.notes,
        sort_order=row.sort_order or 0,
    )


def _service(row: orm.ServiceLibraryItem) -> ServiceLibraryItem:
    return ServiceLibraryItem(
        id=row.id,
        name=row.name,
        phase=row.phase,
        description=row.description,
        typical_effort_min=None if row.typical_effort_min is None else float(row.typical_effort_min),
        typical_effort_max=None if row.typical_effort_max is None else float(row.typical_effort_max),
        typical_team=row.typical_team,
        sort_order=row.sort_order or 0,
        is_active=bool(row.is_active),
    )


def _project(row: orm.Project) -> Project:
    return Project(
        id=row.id,
        slug=row.slug,
        client_name=row.client_name,
        project_name=row.project_name,
        status=row.status,
        current_version_id=row.current_version_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _version(row: orm.ProjectVersion) -> ProjectVersion:
    return ProjectVersion(
        id=row.id,
        project_id=row.project_id,
        version_number=row.version_number,
        name=row.name,
        snapshot=ScopeSnapshot.model_validate(row.snapshot or {}),
        total_investment=None if row.total_investment is None else float(row.total_investment),
        total_internal_cost=None if row.total_internal_cost is None else float(row.total_internal_cost),
        created_at=row.created_at,
    )


class SqlScopeStore(ScopeStore):

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _get(self, model, pk):
        return await self.session.get(model, pk)

    async def _update(self, model, pk, fields: Dict[str, Any]):
        row = await self._get(model, pk)
        if row is None:
            return None
        for key, value in _to_columns(fields).items():
            setattr(row, key, value)
        await self.session.flush()
        return row

    async def _delete(self, model, pk) -> bool:
        result = await self.session.execute(delete(model).where(model.id == pk))
        return (result.rowcount or 0) > 0

    # ── Rate card ──────────────────────────────────────────────────────────
    async def list_roles(self, active_only: bool = False) -> List[Role]:
        stmt = select(orm.Role).order_by(orm.Role.sort_order, orm.Role.title)
        if active_only:
            stmt = stmt.where(orm.Role.is_active.is_(True))
        result = await self.session.execute(stmt)
        return [_role(r) for r in result.scalars()]

    async def get_role(self, role_id: str) -> Optional[Role]:
        row = await self._get(orm.Role, role_id)
        return _role(row) if row else None

    async def insert_role(self, role: Role) -> Role:
        row = orm.Role(**role.model_dump())
        self.session.add(row)
        await self.session.flush()
        return _role(row)

    async def update_role(self, role_id: str, fields: Dict[str, Any]) -> Optional[Role]:
        row = await self._update(orm.Role, role_id, fields)
        return _role(row) if row else None

    async def delete_role(self, role_id: str) -> bool:
        return await self._delete(orm.Role, role_id)

    # ── Overheads & settings ───────────────────────────────────────────────
    async def list_overhead_items(self) -> List[OverheadItem]:
        result = await self.session.execute(
            select(orm.OverheadItem).order_by(orm.OverheadItem.sort_order)
        )
        return [_overhead(r) for r in result.scalars()]

    async def insert_overhead_item(self, item: OverheadItem) -> OverheadItem:
        row = orm.OverheadItem(**item.model_dump())
        self.session.add(row)
        await self.session.flush()
        return _overhead(row)

    async def update_overhead_item(self, item_id: str, fields: Dict[str, Any]) -> Optional[OverheadItem]:
        row = await self._update(orm.OverheadItem, item_id, fields)
        return _overhead(row) if row else None

    async def delete_overhead_item(self, item_id: str) -> bool:
        return await self._delete(orm.OverheadItem, item_id)

    async def get_setting(self, key: str, default: Any = None) -> Any:
        row = await self._get(orm.Setting, key)
        return default if row is None else row.value

    async def set_setting(self, key: str, value: Any) -> None:
        stmt = pg_insert(orm.Setting).values(key=key, value=value)
        stmt = stmt.on_conflict_do_update(index_elements=["key"], set_={"value": value})
        await self.session.execute(stmt)

    # ── Service library ────────────────────────────────────────────────────
    async def list_services(self, active_only: bool = True) -> List[ServiceLibraryItem]:
        stmt = select(orm.ServiceLibraryItem).order_by(orm.ServiceLibraryItem.sort_order)
        if active_only:
            stmt = stmt.where(orm.ServiceLibraryItem.is_active.is_(True))
        result = await self.session.execute(stmt)
        return [_service(r) for r in result.scalars()]

    # ── Projects & versions ────────────────────────────────────────────────
    async def list_projects(self) -> List[Project]:
        result = await self.session.execute(
            select(orm.Project).order_by(orm.Project.updated_at.desc())
        )
        return [_project(r) for r in result.scalars()]

    async def get_project(self, project_id: str) -> Optional[Project]:
        row = await self._get(orm.Project, project_id)
        return _project(row) if row else None

    async def get_project_by_slug(self, slug: str) -> Optional[Project]:
        result = await self.session.execute(select(orm.Project).where(orm.Project.slug == slug))
        row = result.scalar_one_or_none()
        return _project(row) if row else None

    async def insert_project(self, project: Project) -> Project:
        row = orm.Project(**project.model_dump())
        self.session.add(row)
        await self.session.flush()
        return _project(row)

    async def update_project(self, project_id: str, fields: Dict[str, Any]) -> Optional[Project]:
        row = await self._update(orm.Project, project_id, fields)
        return _project(row) if row else None

    async def list_versions(self, project_id: str) -> List[ProjectVersion]:
        result = await self.session.execute(
            select(orm.ProjectVersion)
            .where(orm.ProjectVersion.project_id == project_id)
            .order_by(orm.ProjectVersion.version_number)
        )
        return [_version(r) for r in result.scalars()]

    async def get_version(self, version_id: str) -> Optional[ProjectVersion]:
        row = await self._get(orm.ProjectVersion, version_id)
        return _version(row) if row else None

    async def insert_version(self, version: ProjectVersion) -> ProjectVersion:
        data = version.model_dump()
        data["snapshot"] = version.snapshot.model_dump(mode="json")
        row = orm.ProjectVersion(**data)
        self.session.add(row)
        await self.session.flush()
        return _version(row)

    async def update_version(self, version_id: str, fields: Dict[str, Any]) -> Optional[ProjectVersion]:
        row = await self._update(orm.ProjectVersion, version_id, fields)
        return _version(row) if row else None


@asynccontextmanager
async def sql_store_session() -> AsyncIterator[ScopeStore]:
    """Standalone store + session for work outside a request (debounced saves)."""
    from scopeworks.db import AsyncSessionLocal

    async with AsyncSessionLocal() as session:
        try:
            yield SqlScopeStore(session)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
