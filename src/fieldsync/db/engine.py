"""SQLModel engine singleton."""
from sqlmodel import SQLModel, create_engine

from fieldsync.config import get_settings

_engine = None


def get_engine():
    """Return the module-level engine, creating it on first call."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(
            settings.database_url,
            connect_args={"check_same_thread": False},  # SQLite only; engine shared with API threads
        )
        # Import models so metadata is populated before create_all
        from fieldsync.models.queue import SyncQueueItem  # noqa
        SQLModel.metadata.create_all(_engine)
        from fieldsync.db.migrations import run_migrations
        run_migrations(_engine)
    return _engine

