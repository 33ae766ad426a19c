"""
Service context shared by the application and its request handlers.

Everything stateful (database engine, object store, lifecycle engine,
reclaimer, rate limiter) is built once by build_context() and handed to the
app explicitly; there are no module-level singletons.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from oneshot.core.config import Settings
from oneshot.core.rate_limit import RedisRateLimiter
from oneshot.db import build_engine, build_session_factory
from oneshot.storage import (
    LifecycleEngine,
    MetadataLedger,
    ObjectStore,
    StorageReclaimer,
    create_object_store,
)

logger = logging.getLogger(__name__)


@dataclass
class ServiceContext:
    """Handles to every long-lived service object."""
    settings: Settings
    db_engine: Engine
    session_factory: sessionmaker
    store: ObjectStore
    ledger: MetadataLedger
    engine: LifecycleEngine
    reclaimer: StorageReclaimer
    rate_limiter: Optional[RedisRateLimiter] = None

    def close(self) -> None:
        if self.rate_limiter is not None:
            self.rate_limiter.close()
        self.db_engine.dispose()


def build_context(settings: Settings, store: Optional[ObjectStore] = None) -> ServiceContext:
    """
    Wire up the service objects for one application instance.

    Args:
        settings: Application settings
        store: Object store override (defaults to STORAGE_BACKEND)

    Returns:
        ServiceContext
    """
    db_engine = build_engine(settings.DATABASE_URL)
    session_factory = build_session_factory(db_engine)
    store = store or create_object_store(settings)
    ledger = MetadataLedger(session_factory)
    engine = LifecycleEngine(store, ledger, settings.lifecycle_policy)
    reclaimer = StorageReclaimer(
        engine,
        batch_size=settings.RECLAIM_BATCH_SIZE,
        orphan_grace=settings.reclaim_orphan_grace,
    )

    rate_limiter = None
    if settings.rate_limit_active:
        rate_limiter = RedisRateLimiter(settings.REDIS_URL, settings.RATE_LIMIT_PER_MINUTE)

    return ServiceContext(
        settings=settings,
        db_engine=db_engine,
        session_factory=session_factory,
        store=store,
        ledger=ledger,
        engine=engine,
        reclaimer=reclaimer,
        rate_limiter=rate_limiter,
    )


def get_context(request: Request) -> ServiceContext:
    """FastAPI dependency returning the app's ServiceContext."""
    return request.app.state.context
