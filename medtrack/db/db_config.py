# medtrack/db/db_config.py

import sqlite3
from pathlib import Path
from typing import Optional

from medtrack.core.config import MEDTRACK_DB_PATH


# Base project directory
BASE_DIR = Path(__file__).resolve().parents[2]

# Database directory (medtrack/db/)
DB_DIR = BASE_DIR / "medtrack" / "db"

# Database file path
DB_PATH = Path(MEDTRACK_DB_PATH) if MEDTRACK_DB_PATH else DB_DIR / "medtrack.db"


def get_sqlite_connection(path: Optional[str] = None) -> sqlite3.Connection:
    """
    Create and configure SQLite connection with recommended PRAGMA settings.
    """
    target = path or str(DB_PATH)
    if target != ":memory:":
        Path(target).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(target, check_same_thread=False)

    # Performance & concurrency settings
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA busy_timeout=5000;")

    return conn
