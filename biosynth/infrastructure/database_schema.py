"""
Database schema for the BioSynth automation tables.

Only the tables the automation pipeline reads or writes are created here; the
rest of the product schema lives with the CRUD backend.
"""

from __future__ import annotations

import sqlite3

from biosynth.infrastructure.database import DatabaseConnectionPool
from biosynth.observability.logging import get_logger

logger = get_logger(__name__)

SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        email TEXT UNIQUE NOT NULL,
        password_hash TEXT NOT NULL,
        name TEXT,
        role TEXT NOT NULL DEFAULT 'user' CHECK (role IN ('user', 'admin')),
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS algorithms (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        name TEXT NOT NULL,
        inspiration TEXT NOT NULL,
        domain TEXT NOT NULL,
        description TEXT NOT NULL,
        principle TEXT NOT NULL,
        steps TEXT NOT NULL,
        applications TEXT NOT NULL,
        pseudo_code TEXT NOT NULL,
        tags TEXT NOT NULL,
        type TEXT NOT NULL CHECK (type IN ('generated', 'hybrid')),
        parent_ids TEXT,
        visibility TEXT NOT NULL DEFAULT 'private'
            CHECK (visibility IN ('private', 'public', 'unlisted')),
        view_count INTEGER NOT NULL DEFAULT 0,
        like_count INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
    );

    CREATE INDEX IF NOT EXISTS idx_algorithms_user ON algorithms(user_id);
    CREATE INDEX IF NOT EXISTS idx_algorithms_created ON algorithms(created_at);

    CREATE TABLE IF NOT EXISTS algorithm_scores (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        algorithm_id INTEGER NOT NULL,
        user_id INTEGER,
        overall_score REAL,
        notes TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (algorithm_id) REFERENCES algorithms(id) ON DELETE CASCADE,
        FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE SET NULL,
        UNIQUE (algorithm_id, user_id)
    );

    CREATE TABLE IF NOT EXISTS algorithm_analysis (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        algorithm_id INTEGER NOT NULL,
        analysis_type TEXT NOT NULL
            CHECK (analysis_type IN ('sanity', 'blind_spot', 'extension')),
        result TEXT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (algorithm_id) REFERENCES algorithms(id) ON DELETE CASCADE
    );

    CREATE INDEX IF NOT EXISTS idx_analysis_algorithm
    ON algorithm_analysis(algorithm_id, created_at);

    CREATE TABLE IF NOT EXISTS problems (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        title TEXT NOT NULL,
        description TEXT NOT NULL,
        category TEXT,
        domain TEXT,
        status TEXT NOT NULL DEFAULT 'draft'
            CHECK (status IN ('draft', 'active', 'solved', 'archived')),
        priority TEXT NOT NULL DEFAULT 'medium'
            CHECK (priority IN ('low', 'medium', 'high', 'critical')),
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
    );

    CREATE TABLE IF NOT EXISTS automation_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        task_type TEXT NOT NULL,
        status TEXT NOT NULL,
        details TEXT,
        algorithm_id INTEGER,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (algorithm_id) REFERENCES algorithms(id) ON DELETE SET NULL
    );

    CREATE INDEX IF NOT EXISTS idx_automation_logs_task
    ON automation_logs(task_type, status);

    CREATE INDEX IF NOT EXISTS idx_automation_logs_created
    ON automation_logs(created_at);
"""

REQUIRED_TABLES = {
    "users": ["id", "email", "role"],
    "algorithms": ["id", "user_id", "name", "steps", "type", "parent_ids", "visibility"],
    "algorithm_scores": ["algorithm_id", "overall_score"],
    "algorithm_analysis": ["algorithm_id", "analysis_type", "result", "created_at"],
    "problems": ["id", "title", "status", "priority"],
    "automation_logs": ["task_type", "status", "details", "algorithm_id", "created_at"],
}


def init_database(pool: DatabaseConnectionPool) -> None:
    """
    Create the automation tables (idempotent)

    Side Effects:
    - Creates tables and indexes in the pool's database if they don't exist
    """
    with pool.transaction() as conn:
        conn.executescript(SCHEMA_SQL)

    logger.info("Database initialized: %s", pool.db_path)


def validate_schema(conn: sqlite3.Connection) -> bool:
    """
    Check the expected tables and columns exist

    Raises:
        ValueError: If a table or column is missing
    """
    cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
    existing_tables = {row[0] for row in cursor.fetchall()}

    missing_tables = set(REQUIRED_TABLES) - existing_tables
    if missing_tables:
        raise ValueError(f"Database missing tables: {sorted(missing_tables)}")

    for table, required_cols in REQUIRED_TABLES.items():
        # Identifiers come from the dict above; PRAGMA cannot take parameters
        existing_cols = {row[1] for row in conn.execute(f"PRAGMA table_info({table})")}
        missing_cols = set(required_cols) - existing_cols
        if missing_cols:
            raise ValueError(f"Table '{table}' missing columns: {sorted(missing_cols)}")

    return True
