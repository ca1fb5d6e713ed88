"""Database connection and session management."""

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from crm_core.config import settings

logger = logging.getLogger(__name__)


def enable_sqlite_foreign_keys(engine: Engine) -> Engine:
    """Turn on FK enforcement (and ON DELETE CASCADE) for SQLite connections."""
    if engine.dialect.name != "sqlite":
        return engine

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


# Create engine
engine = enable_sqlite_foreign_keys(
    create_engine(
        settings.DATABASE_URL,
        echo=settings.LOG_LEVEL == "DEBUG",
        pool_pre_ping=settings.DB_POOL_PRE_PING,
    )
)

# Create session factory
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False
)

# Base class for models
Base = declarative_base()


def init_db(bind: Engine = None):
    """
    Create every table, index and reporting view on an empty database.

    Views are attached to the metadata as after_create DDL, so they are
    emitted once all base tables exist.
    """
    # Register all tables and views with Base.metadata
    from crm_core import models, views  # noqa: F401

    bind = bind or engine
    Base.metadata.create_all(bind)
    logger.info(
        f"Created {len(Base.metadata.tables)} tables and "
        f"{len(views.VIEWS)} views on {bind.url.render_as_string(hide_password=True)}"
    )


def drop_db(bind: Engine = None):
    """Drop views and tables created by init_db."""
    from crm_core import models, views  # noqa: F401

    bind = bind or engine
    Base.metadata.drop_all(bind)
    logger.info("Dropped CRM schema")
