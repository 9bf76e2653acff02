import os
import logging
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session

log = logging.getLogger("app.db")

# Read from env. Default is an in-memory SQLite store that lives as long as the process.
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite://")

# SQLAlchemy needs the psycopg driver for plain 'postgresql://' URLs.
if DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+psycopg://", 1)

engine_kwargs = {"pool_pre_ping": True}
if DATABASE_URL.startswith("sqlite"):
    # one shared connection so the in-memory database is visible to every request thread
    engine_kwargs = {
        "connect_args": {"check_same_thread": False},
        "poolclass": StaticPool,
    }

engine = create_engine(DATABASE_URL, **engine_kwargs)


def init_db() -> None:
    # Ensure models are imported so tables are registered
    from . import models  # noqa: F401
    SQLModel.metadata.create_all(bind=engine)
    log.info("Job store ready (%s).", DATABASE_URL.split("://", 1)[0])


def get_session() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
