"""
SQLite persistence for page records and settings.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator
from .config import DB_PATH, ensure_db_directory


@contextmanager
def get_db(db_path: str = None) -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection."""
    path = db_path or DB_PATH
    ensure_db_directory(path)
    conn = sqlite3.connect(path)
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: str = None):
    """Initialize the database with required tables."""
    with get_db(db_path) as conn:
        cursor = conn.cursor()

        # One row per saved page, keyed by URL
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS pages (
                url TEXT PRIMARY KEY,
                title TEXT NOT NULL DEFAULT '',
                vector TEXT,              -- JSON array of floats
                semantic_vector TEXT,     -- JSON array of floats
                description TEXT,
                tags TEXT,                -- JSON array of strings
                category TEXT,
                notes TEXT,
                text_content TEXT,
                timestamp INTEGER NOT NULL
            )
        ''')

        # Process-wide settings (taxonomy, remembered model, label cache)
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('CREATE INDEX IF NOT EXISTS idx_pages_category ON pages(category)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_pages_timestamp ON pages(timestamp DESC)')

        conn.commit()


def health_check(db_path: str = None):
    """Check database health."""
    try:
        with get_db(db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            tables = cursor.fetchall()

            # Check if required tables exist
            table_names = [table[0] for table in tables]
            required_tables = ['pages', 'settings']

            return all(table in table_names for table in required_tables)
    except sqlite3.Error:
        return False
