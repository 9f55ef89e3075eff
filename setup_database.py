#!/usr/bin/env python3
"""
Database Setup Script for the Pantry Tracker
Creates all tables and verifies them.
Safe to run repeatedly; the API also creates missing tables on startup.
"""

import logging
import sys

from sqlalchemy import inspect

import db_connection
from config import Settings
from logging_setup import configure_logging
from models import Base

logger = logging.getLogger(__name__)

EXPECTED_TABLES = [
    'users', 'categories', 'food_items', 'shopping_items', 'receipts',
    'community_posts', 'feedback_items',
]


def create_all_tables(engine):
    """Create all database tables defined in models.py"""
    Base.metadata.create_all(engine)

    table_names = inspect(engine).get_table_names()
    logger.info("Database has %d tables: %s", len(table_names), ', '.join(sorted(table_names)))
    return len(table_names)


def verify_tables(engine):
    """Return the expected tables that are missing (empty list when all exist)"""
    table_names = set(inspect(engine).get_table_names())
    missing_tables = [t for t in EXPECTED_TABLES if t not in table_names]

    if missing_tables:
        logger.error("%d tables are missing: %s", len(missing_tables), ', '.join(missing_tables))
    else:
        logger.info("All %d expected tables exist", len(EXPECTED_TABLES))
    return missing_tables


def main(settings: Settings = None) -> int:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    engine = db_connection.configure_engine(settings.database_url)
    create_all_tables(engine)
    return 1 if verify_tables(engine) else 0


if __name__ == "__main__":
    sys.exit(main())
