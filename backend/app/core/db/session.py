from __future__ import annotations

from collections.abc import Generator
from functools import lru_cache
import importlib

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings
from app.core.db.base import Base
from app.shared.enums import Env


MODEL_MODULES = [
    "app.core.db.models",
    "app.domain.bookings.models.bank_accounts",
    "app.domain.bookings.models.camping",
    "app.domain.bookings.models.glamping",
    "app.domain.payments.models.transactions",
    "app.domain.payments.models.webhook_logs",
]


def import_model_modules() -> None:
    for module_name in MODEL_MODULES:
        importlib.import_module(module_name)


@lru_cache(maxsize=1)
def get_engine():
    # Lazy init so importing the app never requires a reachable database.
    engine = create_engine(settings.database_url, pool_pre_ping=True)
    import_model_modules()
    if settings.env != Env.prod:
        Base.metadata.create_all(bind=engine)
    return engine


def get_session_local() -> sessionmaker[Session]:
    return sessionmaker(bind=get_engine(), autoflush=False, autocommit=False, class_=Session)


def get_db() -> Generator[Session, None, None]:
    db = get_session_local()()
    try:
        yield db
    finally:
        db.close()
