from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv
from .utils import resolve_sqlite_url

# Get DB url
load_dotenv()
# Project root directory (repo root)
ROOT_DIR = Path(__file__).resolve().parents[2]
DEFAULT_SQLITE_URL = resolve_sqlite_url(
    os.getenv("DB_URL", "sqlite:///./dev.db"), ROOT_DIR
)


def _install_sqlite_listeners(engine) -> None:
    """Enable FK enforcement and hand transaction control to SQLAlchemy.

    pysqlite defers BEGIN on its own, which breaks SAVEPOINT handling. The
    engine relies on savepoints to isolate per-prize work, so BEGIN is
    emitted explicitly instead.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def make_engine(database_url: Optional[str] = None, echo: bool = False):
    url = database_url or DEFAULT_SQLITE_URL
    engine = create_engine(
        url,
        echo=echo,
        future=True,
    )
    if engine.dialect.name == "sqlite":
        _install_sqlite_listeners(engine)
    return engine


def get_sessionmaker(engine):
    return sessionmaker(
        bind=engine,
        expire_on_commit=False,  # Keep objects accessible after commit for dev convenience
        future=True,
    )
