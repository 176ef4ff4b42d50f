"""
Shared database engine, session factory, and declarative base.
Imported by models, the store and route modules to avoid circular imports.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

from scouting.config import get_settings

Base = declarative_base()


def make_engine(url: str):
    # SQLite connections are handed between the request thread and workers
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


def make_session_factory(bind) -> sessionmaker:
    return sessionmaker(autoflush=False, expire_on_commit=False, bind=bind)


engine = make_engine(get_settings().database_url)
SessionLocal = make_session_factory(engine)
