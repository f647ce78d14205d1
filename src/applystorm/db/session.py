from __future__ import annotations

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from applystorm.config import get_settings


def build_engine(database_url: str) -> Engine:
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, future=True)

    sqlite_engine = create_engine(database_url, connect_args={"check_same_thread": False}, future=True)

    # pysqlite defers BEGIN until the first write; take the write lock up front
    # so read-check-write in one transaction is serialized across connections.
    @event.listens_for(sqlite_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _begin_immediate(conn) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return sqlite_engine


def build_sessionmaker(bind: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=bind, autoflush=False, autocommit=False, expire_on_commit=False, future=True)


settings = get_settings()
engine = build_engine(settings.database_url)
SessionLocal = build_sessionmaker(engine)
