from __future__ import annotations

import json
import logging
import zipfile
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from nubifica.repositories.slot_store import SlotStore
from nubifica.services.backup_service import BACKUP_GLOB


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class HealthReport:
    """Snapshot of the slot store: integrity, schema, what each slot holds."""

    store_integrity: str
    schema_version: int
    record_counts: dict[str, int] = field(default_factory=dict)
    db_size_bytes: int = 0
    logs_count: int = 0
    latest_backup: Optional[str] = None
    generated_at: str = ""

    @property
    def slot_count(self) -> int:
        return len(self.record_counts)

    @property
    def healthy(self) -> bool:
        return self.store_integrity == "ok"


def _record_count(payload) -> int:
    # collections count their records, singletons count as one
    if isinstance(payload, list):
        return len(payload)
    return 0 if payload is None else 1


class OperationsService:
    def __init__(self, store: SlotStore, db_path: Path | str | None, logs_dir: Path | str, backup_dir: Path | str):
        self.store = store
        self.db_path = Path(db_path) if db_path else None
        self.logs_dir = Path(logs_dir)
        self.backup_dir = Path(backup_dir)

    def _backups(self) -> list[Path]:
        return sorted(self.backup_dir.glob(BACKUP_GLOB)) if self.backup_dir.exists() else []

    def _logs(self) -> list[Path]:
        return sorted(self.logs_dir.glob("*.log")) if self.logs_dir.exists() else []

    def run_health_check(self) -> HealthReport:
        counts = {name: _record_count(self.store.load(name, None)) for name in self.store.names()}
        backups = self._backups()
        report = HealthReport(
            store_integrity=self.store.integrity_check(),
            schema_version=self.store.schema_version(),
            record_counts=counts,
            db_size_bytes=self.db_path.stat().st_size if self.db_path and self.db_path.exists() else 0,
            logs_count=len(self._logs()),
            latest_backup=backups[-1].name if backups else None,
            generated_at=datetime.now().isoformat(timespec="seconds"),
        )
        if not report.healthy:
            log.error("health_check_failed integrity=%s", report.store_integrity)
        return report

    def export_diagnostics(self, target_dir: Path | str) -> Path:
        """Zip the database file, the logs, the three newest slot snapshots and a health report."""
        out_dir = Path(target_dir)
        out_dir.mkdir(parents=True, exist_ok=True)

        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        zip_path = out_dir / f"diagnostics_{ts}.zip"
        report = self.run_health_check()

        with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            if self.db_path and self.db_path.exists():
                zf.write(self.db_path, arcname=self.db_path.name)
            for f in self._logs():
                zf.write(f, arcname=f"logs/{f.name}")
            for f in self._backups()[-3:]:
                zf.write(f, arcname=f"backups/{f.name}")
            zf.writestr("health_report.json", json.dumps(asdict(report), ensure_ascii=False, indent=2))

        log.info("diagnostics_exported path=%s slots=%s", zip_path, report.slot_count)
        return zip_path
