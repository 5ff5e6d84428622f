"""
Database connection management.

Provides SQLite connection for state persistence.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "~/.cursor-usage/state.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite database connection.
    
    The parent directory is created on first use so a fresh install
    can open its state file without a separate setup step.
    
    Args:
        db_path: Path to SQLite database file
        
    Returns:
        SQLite connection
    """
    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite3.connect(str(path))
