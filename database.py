from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from config import get_settings

IN_MEMORY_URLS = ("sqlite://", "sqlite+pysqlite://")


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _is_in_memory(url: str) -> bool:
    return url in IN_MEMORY_URLS or url.endswith(":memory:")


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


def create_db_engine(url: str) -> Engine:
    """Engine for ``url``; SQLite gets WAL and enforced foreign keys.

    An in-memory SQLite database lives on one shared connection so every
    session sees the same tables.
    """
    if not _is_sqlite(url):
        return create_engine(url, pool_pre_ping=True)
    options: dict[str, object] = {"connect_args": {"check_same_thread": False}}
    if _is_in_memory(url):
        options["poolclass"] = StaticPool
    eng = create_engine(url, **options)
    event.listen(eng, "connect", _enable_sqlite_pragmas)
    return eng


def make_session_factory(bind: Engine) -> sessionmaker:
    # Objects stay readable after commit; balances are refreshed explicitly.
    return sessionmaker(bind=bind, autoflush=False, expire_on_commit=False)


engine = create_db_engine(get_settings().database_url)
SessionLocal = make_session_factory(engine)


class Base(DeclarativeBase):
    pass


def init_db(bind: Optional[Engine] = None) -> None:
    import models  # noqa: F401

    Base.metadata.create_all(bind or engine)


@contextmanager
def session_scope(factory: Optional[sessionmaker] = None) -> Iterator[Session]:
    session: Session = (factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
