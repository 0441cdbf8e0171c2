from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def make_engine(url: str) -> Engine:
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    if url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, so every worker thread sees the same database
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)

    db_path = Path(url.split("sqlite:///", 1)[-1])
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, connect_args={"check_same_thread": False})


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def init_db(engine: Engine) -> None:
    # Import models so metadata is registered
    from . import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
