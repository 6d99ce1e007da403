# cart_recovery/data/database.py
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from cart_recovery.utils.settings import DATABASE_URL
from cart_recovery.utils.logging import get_logger

logger = get_logger(__name__)

Base = declarative_base()


def build_engine(url: str):
    kwargs = {"pool_pre_ping": True}

    if url.startswith("sqlite"):
        #sqlite connections are shared with the detector thread
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool

    return create_engine(url, **kwargs)


engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(bind=None) -> None:
    # models must be imported before create_all so they are registered on Base
    import cart_recovery.data.models  # noqa: F401

    target = bind or engine
    logger.info(f"Creating tables: {sorted(Base.metadata.tables.keys())}")
    Base.metadata.create_all(bind=target)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
