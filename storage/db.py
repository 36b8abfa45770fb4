"""
storage/db.py

SQLite backend for the DR screening client's local cache.

Schema
------
kv          -- plain key/value flags (login flag, misc preferences)
secure_kv   -- Fernet-encrypted key/value secrets (access/refresh tokens)
entities    -- JSON payloads grouped into named boxes, ordered by position
box_meta    -- per-box last-sync timestamp used for cache freshness

Nothing here is a system of record: the backend owns every entity and the
local copy is a snapshot that may be replaced at any time.

Usage
-----
    store = LocalStore(settings.db_path, TokenCipher(settings.data_key))
    store.init_db()            # idempotent, call once at startup
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from storage.crypto import TokenCipher

logger = logging.getLogger(__name__)

_DDL = """
CREATE TABLE IF NOT EXISTS kv (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    updated_at  TEXT NOT NULL            -- ISO-8601 UTC
);

CREATE TABLE IF NOT EXISTS secure_kv (
    key             TEXT PRIMARY KEY,
    encrypted_value TEXT NOT NULL,       -- Fernet token from crypto.py
    updated_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS entities (
    box       TEXT    NOT NULL,
    key       TEXT    NOT NULL,
    position  INTEGER NOT NULL,
    payload   TEXT    NOT NULL,          -- JSON document
    PRIMARY KEY (box, key)
);

CREATE INDEX IF NOT EXISTS idx_entities_box_position ON entities(box, position);

CREATE TABLE IF NOT EXISTS box_meta (
    box        TEXT PRIMARY KEY,
    last_sync  TEXT NOT NULL             -- ISO-8601 UTC
);
"""


class LocalStore:
    """
    File-backed store opened per call.

    Each method opens its own connection, so one instance may be shared by
    worker threads.
    """

    def __init__(self, db_path: Path, cipher: TokenCipher) -> None:
        self.db_path = Path(db_path)
        self._cipher = cipher

    def _connect(self) -> sqlite3.Connection:
        """
        Open (or create) the SQLite database and return a connection.

        :func:`sqlite3.Row` is set as the row_factory so rows behave like dicts.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path), timeout=10.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        return conn

    def init_db(self) -> None:
        """Create all tables if they do not already exist."""
        with self._connect() as conn:
            conn.executescript(_DDL)
        logger.info("Local store initialised at %s", self.db_path)

    # -----------------------------------------------------------------------
    # Plain key/value
    # -----------------------------------------------------------------------

    def get_value(self, key: str) -> str | None:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_value(self, key: str, value: str, now: datetime) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                               updated_at = excluded.updated_at
                """,
                (key, value, now.isoformat()),
            )

    def delete_value(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))

    # -----------------------------------------------------------------------
    # Encrypted key/value
    # -----------------------------------------------------------------------

    def get_secret(self, key: str) -> str | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT encrypted_value FROM secure_kv WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return None
        return self._cipher.decrypt(row["encrypted_value"])

    def set_secret(self, key: str, value: str, now: datetime) -> None:
        encrypted = self._cipher.encrypt(value)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO secure_kv (key, encrypted_value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET encrypted_value = excluded.encrypted_value,
                                               updated_at = excluded.updated_at
                """,
                (key, encrypted, now.isoformat()),
            )

    def delete_secret(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM secure_kv WHERE key = ?", (key,))

    # -----------------------------------------------------------------------
    # Boxes (embedded object store)
    # -----------------------------------------------------------------------

    def box_replace(self, box: str, items: list[tuple[str, str]], now: datetime) -> None:
        """
        Replace the whole content of *box* with *items*, preserving order,
        and stamp the box as synced at *now*.

        Args:
            box:   Box name, e.g. ``'patients'``.
            items: ``(key, json_payload)`` pairs.
            now:   Sync timestamp.
        """
        with self._connect() as conn:
            conn.execute("DELETE FROM entities WHERE box = ?", (box,))
            conn.executemany(
                "INSERT OR REPLACE INTO entities (box, key, position, payload) VALUES (?, ?, ?, ?)",
                [(box, key, pos, payload) for pos, (key, payload) in enumerate(items)],
            )
            self._stamp(conn, box, now)
        logger.debug("Box %s replaced with %d item(s)", box, len(items))

    def box_put(self, box: str, key: str, payload: str, now: datetime, stamp: bool = False) -> None:
        """
        Insert or update a single entry; new entries go to the end.

        The box sync time is only moved when *stamp* is set: one entry is
        not a full snapshot of a list box.
        """
        with self._connect() as conn:
            existing = conn.execute(
                "SELECT position FROM entities WHERE box = ? AND key = ?", (box, key)
            ).fetchone()
            if existing is not None:
                conn.execute(
                    "UPDATE entities SET payload = ? WHERE box = ? AND key = ?",
                    (payload, box, key),
                )
            else:
                row = conn.execute(
                    "SELECT COALESCE(MAX(position), -1) + 1 AS next FROM entities WHERE box = ?",
                    (box,),
                ).fetchone()
                conn.execute(
                    "INSERT INTO entities (box, key, position, payload) VALUES (?, ?, ?, ?)",
                    (box, key, row["next"], payload),
                )
            if stamp:
                self._stamp(conn, box, now)

    def box_get(self, box: str, key: str) -> str | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT payload FROM entities WHERE box = ? AND key = ?", (box, key)
            ).fetchone()
        return row["payload"] if row else None

    def box_all(self, box: str) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT payload FROM entities WHERE box = ? ORDER BY position",
                (box,),
            ).fetchall()
        return [r["payload"] for r in rows]

    def box_count(self, box: str) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM entities WHERE box = ?", (box,)
            ).fetchone()
        return int(row["n"])

    def box_delete(self, box: str, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM entities WHERE box = ? AND key = ?", (box, key))

    def box_clear(self, box: str) -> None:
        """Drop every entry in *box* and its sync timestamp."""
        with self._connect() as conn:
            conn.execute("DELETE FROM entities WHERE box = ?", (box,))
            conn.execute("DELETE FROM box_meta WHERE box = ?", (box,))
        logger.debug("Box %s cleared", box)

    def last_sync(self, box: str) -> datetime | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT last_sync FROM box_meta WHERE box = ?", (box,)
            ).fetchone()
        return datetime.fromisoformat(row["last_sync"]) if row else None

    def _stamp(self, conn: sqlite3.Connection, box: str, now: datetime) -> None:
        conn.execute(
            """
            INSERT INTO box_meta (box, last_sync) VALUES (?, ?)
            ON CONFLICT(box) DO UPDATE SET last_sync = excluded.last_sync
            """,
            (box, now.isoformat()),
        )

    # -----------------------------------------------------------------------
    # Maintenance
    # -----------------------------------------------------------------------

    def cache_stats(self) -> dict[str, Any]:
        """Return ``{box: {"count": n, "last_sync": iso | None}}`` for every box."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT m.box AS box, m.last_sync AS last_sync,
                       (SELECT COUNT(*) FROM entities e WHERE e.box = m.box) AS n
                FROM box_meta m
                ORDER BY m.box
                """
            ).fetchall()
        return {r["box"]: {"count": int(r["n"]), "last_sync": r["last_sync"]} for r in rows}

    def clear_all(self) -> None:
        """Wipe every table. Used on sign-out."""
        with self._connect() as conn:
            conn.execute("DELETE FROM entities")
            conn.execute("DELETE FROM box_meta")
            conn.execute("DELETE FROM kv")
            conn.execute("DELETE FROM secure_kv")
        logger.info("Local store cleared")
