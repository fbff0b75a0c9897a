from __future__ import annotations

import json
import shutil
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Protocol

SCHEMA_VERSION = 2


class SlotStore(Protocol):
    """Named-slot key/value persistence. Each slot holds one whole collection."""

    def load(self, name: str, default: Any) -> Any: ...
    def save(self, name: str, value: Any) -> None: ...
    def save_many(self, values: Mapping[str, Any]) -> None: ...
    def replace_all(self, values: Mapping[str, Any]) -> None: ...
    def names(self) -> list[str]: ...
    def integrity_check(self) -> str: ...
    def schema_version(self) -> int: ...


class MemorySlotStore:
    """Process-local store. Values are kept as JSON text so callers never share objects."""

    def __init__(self) -> None:
        self._slots: dict[str, str] = {}

    def load(self, name: str, default: Any) -> Any:
        raw = self._slots.get(name)
        if raw is None:
            return default
        return json.loads(raw)

    def save(self, name: str, value: Any) -> None:
        self.save_many({name: value})

    def save_many(self, values: Mapping[str, Any]) -> None:
        encoded = {name: json.dumps(value, ensure_ascii=False) for name, value in values.items()}
        self._slots.update(encoded)

    def replace_all(self, values: Mapping[str, Any]) -> None:
        encoded = {name: json.dumps(value, ensure_ascii=False) for name, value in values.items()}
        self._slots = encoded

    def names(self) -> list[str]:
        return sorted(self._slots)

    def integrity_check(self) -> str:
        return "ok"

    def schema_version(self) -> int:
        return SCHEMA_VERSION


class SqliteSlotStore:
    def __init__(self, db_path: Path | str):
        self.db_path = str(db_path)

    def _conn(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def init_db(self) -> None:
        self.run_migrations()

    def run_migrations(self) -> None:
        current_version = self.schema_version()
        if current_version >= SCHEMA_VERSION:
            return
        snapshot = self._snapshot_before_migrations(current_version)
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")

            migrations = [
                (1, self._migration_v1_slots),
                (2, self._migration_v2_slot_timestamps),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except Exception as exc:
            conn.rollback()
            conn.close()
            self._restore_snapshot(snapshot)
            restored = f"restored from {snapshot.name}" if snapshot else "left untouched"
            raise RuntimeError(
                f"Slot store upgrade v{current_version} -> v{SCHEMA_VERSION} failed; {Path(self.db_path).name} {restored}."
            ) from exc
        conn.close()

    def schema_version(self) -> int:
        if not Path(self.db_path).exists():
            return 0
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'schema_migrations'")
            if cur.fetchone() is None:
                return 0
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            return int(cur.fetchone()[0])
        finally:
            conn.close()

    def _snapshot_before_migrations(self, from_version: int) -> Path | None:
        """Copy the database file aside as ``<stem>.schema_v<N>_<ts>.bak`` before upgrading it."""
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        ts = datetime.now().strftime("%Y%m%d%H%M%S")
        snapshot = db_file.with_name(f"{db_file.stem}.schema_v{from_version}_{ts}.bak")
        shutil.copy2(db_file, snapshot)
        return snapshot

    def _restore_snapshot(self, snapshot: Path | None) -> None:
        if snapshot is None or not snapshot.exists():
            return
        shutil.copy2(snapshot, self.db_path)

    def _migration_v1_slots(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS slots (
            name TEXT PRIMARY KEY,
            payload TEXT NOT NULL
        )
        """
        )

    def _migration_v2_slot_timestamps(self, cur: sqlite3.Cursor) -> None:
        cur.execute("PRAGMA table_info(slots)")
        cols = {row[1] for row in cur.fetchall()}
        if "updated_at" not in cols:
            cur.execute("ALTER TABLE slots ADD COLUMN updated_at TEXT")

    # ---------- Slots ----------
    def load(self, name: str, default: Any) -> Any:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT payload FROM slots WHERE name = ?", (name,))
        row = cur.fetchone()
        conn.close()
        if not row:
            return default
        return json.loads(row[0])

    def save(self, name: str, value: Any) -> None:
        self.save_many({name: value})

    def save_many(self, values: Mapping[str, Any]) -> None:
        conn = self._conn()
        cur = conn.cursor()
        try:
            self._upsert(cur, values)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def replace_all(self, values: Mapping[str, Any]) -> None:
        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.execute("DELETE FROM slots")
            self._upsert(cur, values)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _upsert(self, cur: sqlite3.Cursor, values: Mapping[str, Any]) -> None:
        now = datetime.now().replace(microsecond=0).isoformat(sep=" ")
        for name, value in values.items():
            cur.execute(
                """
                INSERT INTO slots (name, payload, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET payload=excluded.payload, updated_at=excluded.updated_at
            """,
                (name, json.dumps(value, ensure_ascii=False), now),
            )

    def names(self) -> list[str]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT name FROM slots ORDER BY name")
        rows = cur.fetchall()
        conn.close()
        return [str(r[0]) for r in rows]

    def integrity_check(self) -> str:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("PRAGMA integrity_check")
        row = cur.fetchone()
        conn.close()
        return str(row[0]) if row else "unknown"
