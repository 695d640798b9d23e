from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from core.config import get_settings

# Connects app to the local database (SQLite file on a device, PostgreSQL when DB_* is set)


def build_engine(database_url: str):
    connect_args = {}
    kwargs = {}
    if database_url.startswith("sqlite"):
        # Background sync tasks touch the DB from other threads
        connect_args["check_same_thread"] = False
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    # Note: echo=True will log all SQL statements, keep False in production
    return create_engine(database_url, echo=False, connect_args=connect_args, **kwargs)


# The Wire / Link That Lets Us Pass Data from App -> db
engine = build_engine(get_settings().database_url)


def create_db_and_tables(bind=None) -> None:
    # Make sure every table class is registered on the metadata
    import models  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)


# Session factory for scripts working against the configured database
def new_session() -> Session:
    return Session(engine)
