"""Settings routes — rate card roles, overhead items, annual billable days and the service library."""
import logging
from collections import defaultdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator

from scopeworks.api.deps import (
    StoreFactory,
    get_debouncer,
    get_pricing,
    get_store,
    get_store_factory,
    http_errors,
    schedule_write,
)
from scopeworks.config import (
    BILLABLE_DAYS_SETTING_KEY,
    DEFAULT_MARKUP_PCT,
    OVERHEAD_CATEGORIES,
    SETTINGS_AUTOSAVE_DELAY_S,
)
from scopeworks.models.scope_schema import OverheadItem, Role
from scopeworks.services.autosave import Debouncer
from scopeworks.services.formatting import format_day_range
from scopeworks.services.pricing_engine import PricingEngine, clamp_billable_days, summarize_overheads
from scopeworks.services.scope_store import ScopeStore

router = APIRouter(prefix="/api/settings", tags=["Settings"])
logger = logging.getLogger("scopeworks-api")


# ─── Pydantic schemas ────────────────────────────────────────────────────────

class RoleCreate(BaseModel):
    title: str = ""
    base_cost_day: float = Field(0.0, ge=0)
    markup_pct: float = Field(DEFAULT_MARKUP_PCT, ge=0)
    sort_order: Optional[int] = None
    is_active: bool = True


class RoleUpdate(BaseModel):
    title: Optional[str] = None
    base_cost_day: Optional[float] = Field(None, ge=0)
    markup_pct: Optional[float] = Field(None, ge=0)
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None


def _check_category(value: Optional[str]) -> Optional[str]:
    if value is not None and value not in OVERHEAD_CATEGORIES:
        raise ValueError(f"category must be one of: {', '.join(OVERHEAD_CATEGORIES)}")
    return value


class OverheadItemCreate(BaseModel):
    name: str = ""
    category: str = "subscription"
    monthly_cost: float = Field(0.0, ge=0)
    notes: Optional[str] = None
    sort_order: Optional[int] = None

    @field_validator("category")
    @classmethod
    def known_category(cls, value):
        return _check_category(value)


class OverheadItemUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    monthly_cost: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None
    sort_order: Optional[int] = None

    @field_validator("category")
    @classmethod
    def known_category(cls, value):
        return _check_category(value)


class BillableDaysUpdate(BaseModel):
    annual_billable_days: float


# ─── Helpers ────────────────────────────────────────────────────────────────

async def _overhead_summary(store: ScopeStore) -> dict:
    items = await store.list_overhead_items()
    days = clamp_billable_days(await store.get_setting(BILLABLE_DAYS_SETTING_KEY))
    with http_errors():
        summary = summarize_overheads(items, days)
    by_category = defaultdict(float)
    for item in items:
        by_category[item.category] += item.monthly_cost
    return {
        "total_monthly": summary.total_monthly,
        "total_annual": summary.total_annual,
        "annual_billable_days": summary.annual_billable_days,
        "overhead_per_day": summary.overhead_per_day,
        "by_category": dict(by_category),
        "items": [i.model_dump() for i in items],
    }


# ─── Rate card ──────────────────────────────────────────────────────────────

@router.get("/roles")
async def list_roles(store: ScopeStore = Depends(get_store)):
    return [r.model_dump() for r in await store.list_roles()]


@router.post("/roles", status_code=201)
async def create_role(payload: RoleCreate, store: ScopeStore = Depends(get_store)):
    data = payload.model_dump()
    if data["sort_order"] is None:
        data["sort_order"] = len(await store.list_roles())
    role = await store.insert_role(Role(**data))
    logger.info(f"Role created: {role.title or role.id}")
    return role.model_dump()


@router.put("/roles/{role_id}")
async def update_role(
    role_id: str,
    payload: RoleUpdate,
    defer: bool = Query(False, description="Debounce the write as an inline edit"),
    store: ScopeStore = Depends(get_store),
    debouncer: Debouncer = Depends(get_debouncer),
    store_factory: StoreFactory = Depends(get_store_factory),
):
    updates = payload.model_dump(exclude_none=True)
    existing = await store.get_role(role_id)
    if existing is None:
        raise HTTPException(status_code=404, detail="Role not found")
    if defer:
        schedule_write(
            debouncer, store_factory, f"role:{role_id}", SETTINGS_AUTOSAVE_DELAY_S,
            lambda s: s.update_role(role_id, updates),
        )
        return {"status": "scheduled", "role": existing.model_copy(update=updates).model_dump()}
    role = await store.update_role(role_id, updates)
    return role.model_dump()


@router.delete("/roles/{role_id}")
async def delete_role(role_id: str, store: ScopeStore = Depends(get_store)):
    if not await store.delete_role(role_id):
        raise HTTPException(status_code=404, detail="Role not found")
    return {"status": "deleted", "id": role_id}


@router.get("/rate-card")
async def get_rate_card(
    store: ScopeStore = Depends(get_store),
    pricing: PricingEngine = Depends(get_pricing),
):
    """Every role, active or not, with its burdened cost, markup and client rates."""
    card = PricingEngine(await store.list_roles(), pricing.overhead_per_day)
    return {
        "overhead_per_day": pricing.overhead_per_day,
        "roles": card.rate_card(),
    }


# ─── Overheads ──────────────────────────────────────────────────────────────

@router.get("/overhead-items")
async def list_overhead_items(store: ScopeStore = Depends(get_store)):
    return [i.model_dump() for i in await store.list_overhead_items()]


@router.post("/overhead-items", status_code=201)
async def create_overhead_item(payload: OverheadItemCreate, store: ScopeStore = Depends(get_store)):
    data = payload.model_dump()
    if data["sort_order"] is None:
        data["sort_order"] = len(await store.list_overhead_items())
    item = await store.insert_overhead_item(OverheadItem(**data))
    return item.model_dump()


@router.put("/overhead-items/{item_id}")
async def update_overhead_item(
    item_id: str,
    payload: OverheadItemUpdate,
    defer: bool = Query(False, description="Debounce the write as an inline edit"),
    store: ScopeStore = Depends(get_store),
    debouncer: Debouncer = Depends(get_debouncer),
    store_factory: StoreFactory = Depends(get_store_factory),
):
    updates = payload.model_dump(exclude_none=True)
    existing = next((i for i in await store.list_overhead_items() if i.id == item_id), None)
    if existing is None:
        raise HTTPException(status_code=404, detail="Overhead item not found")
    if defer:
        schedule_write(
            debouncer, store_factory, f"overhead:{item_id}", SETTINGS_AUTOSAVE_DELAY_S,
            lambda s: s.update_overhead_item(item_id, updates),
        )
        return {"status": "scheduled", "item": existing.model_copy(update=updates).model_dump()}
    item = await store.update_overhead_item(item_id, updates)
    if item is None:
        raise HTTPException(status_code=404, detail="Overhead item not found")
    return item.model_dump()


@router.delete("/overhead-items/{item_id}")
async def delete_overhead_item(item_id: str, store: ScopeStore = Depends(get_store)):
    if not await store.delete_overhead_item(item_id):
        raise HTTPException(status_code=404, detail="Overhead item not found")
    return {"status": "deleted", "id": item_id}


@router.get("/overhead")
async def get_overhead_summary(store: ScopeStore = Depends(get_store)):
    """Monthly and annual overhead totals and the resulting overhead per billable day."""
    return await _overhead_summary(store)


@router.put("/billable-days")
async def update_billable_days(payload: BillableDaysUpdate, store: ScopeStore = Depends(get_store)):
    days = clamp_billable_days(payload.annual_billable_days)
    if days != payload.annual_billable_days:
        logger.info(f"annual_billable_days {payload.annual_billable_days} clamped to {days}")
    await store.set_setting(BILLABLE_DAYS_SETTING_KEY, days)
    return await _overhead_summary(store)


# ─── Service library ────────────────────────────────────────────────────────

@router.get("/services")
async def list_services(
    phase: Optional[str] = None,
    q: Optional[str] = Query(None, description="Case-insensitive name search"),
    store: ScopeStore = Depends(get_store),
):
    """Active library services for the deliverable picker, in library order."""
    services = await store.list_services()
    if phase:
        services = [s for s in services if s.phase == phase]
    if q and q.strip():
        needle = q.strip().lower()
        services = [s for s in services if needle in s.name.lower()]
    return [
        {**s.model_dump(), "typical_effort": format_day_range(s.typical_effort_min, s.typical_effort_max)}
        for s in services
    ]
