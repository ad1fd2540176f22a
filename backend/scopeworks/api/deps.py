"""FastAPI dependency injection — store, pricing, debouncer and domain-error translation."""
import logging
from contextlib import contextmanager
from typing import AsyncContextManager, Awaitable, Callable

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from scopeworks.db import get_db
from scopeworks.services.autosave import Debouncer
from scopeworks.services.errors import DuplicateSlug, InvalidConfiguration, NotFound
from scopeworks.services.pricing_engine import PricingEngine
from scopeworks.services.scope_store import ScopeStore, SqlScopeStore, sql_store_session
from scopeworks.services.version_service import load_pricing_engine

logger = logging.getLogger("scopeworks-api")

StoreFactory = Callable[[], AsyncContextManager[ScopeStore]]


async def get_store(db: AsyncSession = Depends(get_db)) -> ScopeStore:
    return SqlScopeStore(db)


def get_store_factory() -> StoreFactory:
    """Opens a store outside the request session, for writes that land after the response."""
    return sql_store_session


async def get_pricing(store: ScopeStore = Depends(get_store)) -> PricingEngine:
    return await load_pricing_engine(store)


def get_debouncer(request: Request) -> Debouncer:
    debouncer = getattr(request.app.state, "debouncer", None)
    if debouncer is None:
        debouncer = Debouncer()
        request.app.state.debouncer = debouncer
    return debouncer


def schedule_write(
    debouncer: Debouncer,
    store_factory: StoreFactory,
    key: str,
    delay: float,
    write: Callable[[ScopeStore], Awaitable[object]],
) -> None:
    """Debounce ``write`` under ``key``; it runs later against its own store session."""
    async def _run():
        async with store_factory() as store:
            await write(store)

    debouncer.schedule(key, delay, _run)


@contextmanager
def http_errors():
    """Translate domain errors raised inside the block into HTTP responses."""
    try:
        yield
    except NotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except DuplicateSlug as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except InvalidConfiguration as e:
        logger.warning(f"Invalid pricing configuration: {e}")
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
