"""Database engine and session factory"""

from functools import lru_cache
from pathlib import Path

from sqlalchemy import create_engine, make_url
from sqlalchemy.orm import sessionmaker

from invoice_delay.infrastructure.database.models import Base


def create_session_factory(database_url: str, create_tables: bool = True) -> sessionmaker:
    """
    Build a session factory for the audit database.

    The job opens one connection per run, so pooling stays at defaults;
    sqlite needs check_same_thread off for the FastAPI threadpool.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    connect_args = {"check_same_thread": False} if url.get_backend_name() == "sqlite" else {}
    engine = create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)
    if create_tables:
        Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@lru_cache
def get_session_factory(database_url: str) -> sessionmaker:
    """One engine per database URL for the lifetime of the process"""
    return create_session_factory(database_url)
