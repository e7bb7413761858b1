"""SQLite setup for the trades, active_symbols and trading_config tables.

Schema files live in ``db/migrations`` as ``NNN_name.sql``.  The database's
``user_version`` pragma records the highest number applied, so ``init_db``
is safe to call on every boot.
"""

import pathlib
import sqlite3


_MIGRATION_DIR = pathlib.Path(__file__).resolve().parent.parent.parent / "db" / "migrations"


def _migrations() -> list[tuple[int, pathlib.Path]]:
    """Numbered migration files, lowest first."""
    found = []
    for path in _MIGRATION_DIR.glob("*.sql"):
        number, _, _ = path.stem.partition("_")
        if number.isdigit():
            found.append((int(number), path))
    return sorted(found)


def init_db(db_path: str) -> int:
    """Bring the database at *db_path* up to the latest schema.

    Parent directories are created for file databases.

    Returns:
        The schema version after migrating.
    """
    if db_path != ":memory:":
        pathlib.Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    try:
        version = conn.execute("PRAGMA user_version").fetchone()[0]
        for number, path in _migrations():
            if number <= version:
                continue
            conn.executescript(path.read_text(encoding="utf-8"))
            conn.execute(f"PRAGMA user_version = {number}")
            conn.commit()
            version = number
        return version
    finally:
        conn.close()


def get_connection(db_path: str) -> sqlite3.Connection:
    """Open a connection whose rows support access by column name.

    Every repository opens one per call and closes it in ``finally``.
    """
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn
