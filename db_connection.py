"""
Database Connection using SQLAlchemy
Works with PostgreSQL in deployment and SQLite locally / in tests
"""

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, scoped_session
from sqlalchemy.pool import QueuePool, StaticPool

from config import DEFAULT_DATABASE_URL, normalize_database_url
from models import Base

logger = logging.getLogger(__name__)

# ============================================
# ENGINE & SESSION FACTORY
# ============================================

engine = None

# Session factory for creating sessions; bound in configure_engine()
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False
)

# Scoped session for thread-safe access
db_session = scoped_session(SessionLocal)


def _on_sqlite_connect(dbapi_connection, connection_record):
    # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest correctly
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _on_sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


def configure_engine(database_url: str = DEFAULT_DATABASE_URL):
    """
    Create the engine for database_url and bind the session factory to it.
    Returns the new engine.
    """
    global engine

    database_url = normalize_database_url(database_url)

    if database_url.startswith('sqlite'):
        kwargs = {'connect_args': {'check_same_thread': False}}
        # In-memory databases only live as long as their one connection
        if database_url in ('sqlite://', 'sqlite:///:memory:'):
            kwargs['poolclass'] = StaticPool
        new_engine = create_engine(database_url, **kwargs)
        event.listen(new_engine, 'connect', _on_sqlite_connect)
        event.listen(new_engine, 'begin', _on_sqlite_begin)
    else:
        new_engine = create_engine(
            database_url,
            poolclass=QueuePool,
            pool_size=10,          # Number of connections to keep open
            max_overflow=20,       # Max extra connections beyond pool_size
            pool_pre_ping=True,    # Verify connections before using
            pool_recycle=3600,     # Recycle connections after 1 hour
            echo=False
        )

    if engine is not None:
        db_session.remove()
        engine.dispose()

    engine = new_engine
    SessionLocal.configure(bind=engine)
    logger.info("Database engine configured: %s", database_url.split('@')[-1])
    return engine


# ============================================
# CREATE ALL TABLES
# ============================================

def init_db():
    """
    Create all tables in the database.
    Safe to call repeatedly; existing tables are left alone.
    """
    if engine is None:
        configure_engine()
    Base.metadata.create_all(bind=engine)
    logger.info("All tables created")


# ============================================
# SESSION MANAGEMENT HELPER
# ============================================

def get_session():
    """
    Get a new database session.
    Always use with try/finally to ensure session.close() is called.

    Example usage:
        session = get_session()
        try:
            items = session.query(FoodItem).filter(FoodItem.owner_id == owner_id).all()
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
    """
    if engine is None:
        configure_engine()
    return SessionLocal()


# ============================================
# CLEANUP
# ============================================

def close_db_session():
    """
    Remove the scoped session.
    Called when each app context tears down.
    """
    db_session.remove()
