from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path

from nubifica import __version__
from nubifica.repositories.slot_store import SlotStore

log = logging.getLogger(__name__)

BACKUP_GLOB = "nubifica_backup_*.json"


class BackupService:
    """Whole-store snapshots as JSON documents, one file per backup."""

    def __init__(self, store: SlotStore, backup_dir: Path | str, max_backups: int = 30):
        self.store = store
        self.backup_dir = Path(backup_dir)
        self.max_backups = max_backups

    def create_backup(self) -> Path:
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        ts = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        target = self.backup_dir / f"nubifica_backup_{ts}.json"

        snapshot = {
            "version": __version__,
            "created_at": datetime.now().isoformat(timespec="seconds"),
            "slots": {name: self.store.load(name, None) for name in self.store.names()},
        }
        target.write_text(json.dumps(snapshot, ensure_ascii=False, indent=2), encoding="utf-8")
        self._enforce_retention()
        log.info("backup_created path=%s slots=%s", target.name, len(snapshot["slots"]))
        return target

    def list_backups(self) -> list[Path]:
        if not self.backup_dir.exists():
            return []
        return sorted(self.backup_dir.glob(BACKUP_GLOB))

    def restore_backup(self, backup_file: Path | str) -> Path:
        backup_path = Path(backup_file)
        try:
            snapshot = json.loads(backup_path.read_text(encoding="utf-8"))
            slots = snapshot["slots"]
        except (ValueError, KeyError, TypeError) as exc:
            raise ValueError(f"Invalid backup file: {backup_path.name}") from exc
        if not isinstance(slots, dict):
            raise ValueError(f"Invalid backup file: {backup_path.name}")

        self.store.replace_all(slots)
        log.warning("backup_restored path=%s slots=%s", backup_path.name, len(slots))
        return backup_path

    def restore_latest_backup(self) -> Path:
        files = self.list_backups()
        if not files:
            raise FileNotFoundError("No backups available to restore")
        return self.restore_backup(files[-1])

    def _enforce_retention(self) -> None:
        files = self.list_backups()
        if len(files) <= self.max_backups:
            return
        for old in files[: len(files) - self.max_backups]:
            old.unlink(missing_ok=True)
