from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from fxledger.config import DATABASE_URL


def _engine_options(url: str) -> dict:
    # SQLite connections are shared across FastAPI's worker threads;
    # server databases may drop idle pooled connections.
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))
SessionLocal = sessionmaker(bind=engine)


class Base(DeclarativeBase):
    pass


def init_db():
    """Create the transactions and user settings tables if they are missing."""
    from fxledger import models  # noqa: F401  registers the tables on Base
    Base.metadata.create_all(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
