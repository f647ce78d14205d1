from __future__ import annotations

from functools import lru_cache

from applystorm.config import get_settings
from applystorm.db import models  # noqa: F401
from applystorm.db.base import Base
from applystorm.db.session import SessionLocal, engine
from applystorm.db.store import DocumentStore, MemoryDocumentStore, SqlDocumentStore


def ensure_data_directories() -> None:
    get_settings().data_dir.mkdir(parents=True, exist_ok=True)


def init_database() -> dict[str, str]:
    settings = get_settings()
    if settings.store_backend != "sql":
        return {"store_backend": settings.store_backend}

    ensure_data_directories()
    Base.metadata.create_all(bind=engine)
    return {"store_backend": "sql", "database_url": engine.url.render_as_string(hide_password=True)}


@lru_cache(maxsize=1)
def get_store() -> DocumentStore:
    if get_settings().store_backend == "memory":
        return MemoryDocumentStore()
    return SqlDocumentStore(SessionLocal)
