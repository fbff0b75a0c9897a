import json
import logging
import sqlite3
import zipfile
from pathlib import Path

import pytest

from conftest import add_acme_and_widget, build_services

from nubifica.application.container import build_container
from nubifica.domain.models import InvoiceStatus
from nubifica.logging_config import AUDIT_LOGS, JsonFormatter, split_event
from nubifica.repositories.records import RecordRepository, Slots
from nubifica.repositories.slot_store import SCHEMA_VERSION, SqliteSlotStore
from nubifica.services.backup_service import BackupService
from nubifica.services.operations_service import OperationsService


def _sqlite_repo(tmp_path: Path) -> RecordRepository:
    store = SqliteSlotStore(tmp_path / "nubifica.db")
    store.init_db()
    return RecordRepository(store)


def test_migrations_are_recorded_and_idempotent(tmp_path: Path):
    store = SqliteSlotStore(tmp_path / "m.db")
    store.init_db()
    store.init_db()

    conn = sqlite3.connect(tmp_path / "m.db")
    versions = [r[0] for r in conn.execute("SELECT version FROM schema_migrations ORDER BY version")]
    cols = {r[1] for r in conn.execute("PRAGMA table_info(slots)")}
    conn.close()
    assert versions == [1, 2]
    assert {"name", "payload", "updated_at"} <= cols


def test_absent_slot_returns_default(tmp_path: Path):
    store = SqliteSlotStore(tmp_path / "d.db")
    store.init_db()
    assert store.load("invoices", []) == []
    assert store.load("company_info", None) is None


def test_documents_round_trip_through_sqlite(tmp_path: Path):
    s = build_services(_sqlite_repo(tmp_path))
    client, widget = add_acme_and_widget(s)
    inv = s.documents.create_invoice(client.id, [{"product_id": widget.id, "quantity": 5}], status="Enviada")

    reopened = build_services(_sqlite_repo(tmp_path))
    assert reopened.documents.get_invoice(inv.id) == inv
    assert reopened.inventory.get_product(widget.id).stock == 95
    assert reopened.inventory.reconcile(widget.id).balanced


def test_backup_and_restore(tmp_path: Path):
    repo = _sqlite_repo(tmp_path)
    s = build_services(repo)
    client, widget = add_acme_and_widget(s)
    s.documents.create_invoice(client.id, [{"product_id": widget.id, "quantity": 5}])

    backups = BackupService(repo.store, tmp_path / "backups")
    path = backups.create_backup()
    assert path.name.startswith("nubifica_backup_")
    assert "invoices" in json.loads(path.read_text(encoding="utf-8"))["slots"]

    s.documents.delete_invoice("FVC-1")
    s.clients.add_client("Otro")
    backups.restore_latest_backup()

    assert [i.id for i in s.documents.list_invoices()] == ["FVC-1"]
    assert [c.name for c in s.clients.list_clients()] == ["Acme"]


def test_backup_retention(tmp_path: Path):
    repo = _sqlite_repo(tmp_path)
    backups = BackupService(repo.store, tmp_path / "backups", max_backups=2)
    for _ in range(4):
        backups.create_backup()
    assert len(backups.list_backups()) == 2


def test_restore_rejects_garbage(tmp_path: Path):
    repo = _sqlite_repo(tmp_path)
    bad = tmp_path / "nubifica_backup_bad.json"
    bad.write_text("not json", encoding="utf-8")
    with pytest.raises(ValueError):
        BackupService(repo.store, tmp_path).restore_backup(bad)


def test_health_check_and_diagnostics(tmp_path: Path):
    db = tmp_path / "nubifica.db"
    repo = _sqlite_repo(tmp_path)
    build_services(repo).clients.add_client("Acme")
    logs = tmp_path / "logs"
    logs.mkdir()
    (logs / "app.log").write_text("{}", encoding="utf-8")

    ops = OperationsService(repo.store, db_path=db, logs_dir=logs, backup_dir=tmp_path / "backups")
    report = ops.run_health_check()
    assert report.healthy
    assert report.schema_version == 2
    assert report.record_counts == {"clients": 1}
    assert report.slot_count == 1
    assert report.logs_count == 1
    assert report.db_size_bytes > 0
    assert report.latest_backup is None

    snapshot = BackupService(repo.store, tmp_path / "backups").create_backup()
    assert ops.run_health_check().latest_backup == snapshot.name

    zip_path = ops.export_diagnostics(tmp_path / "out")
    with zipfile.ZipFile(zip_path) as zf:
        names = set(zf.namelist())
        health = json.loads(zf.read("health_report.json"))
    assert {"nubifica.db", "logs/app.log", f"backups/{snapshot.name}"} <= names
    assert health["record_counts"]["clients"] == 1


def test_container_seeds_demo_data_once(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("NUBIFICA_IDENTITY_API_KEY", raising=False)
    c = build_container(tmp_path / "nubifica.db", seed=True)
    assert [cl.id for cl in c.clients.list_clients()] == ["CL-1", "CL-2"]
    assert c.documents.get_invoice("FVC-1").status == InvoiceStatus.PAID
    assert c.settings.get_company_info().nit == "900.000.000-1"
    assert all(c.inventory.reconcile(p.id).balanced for p in c.inventory.list_products() if p.is_physical)
    assert c.auth is None

    c.clients.delete_client("CL-2")
    again = build_container(tmp_path / "nubifica.db", seed=True)
    assert [cl.id for cl in again.clients.list_clients()] == ["CL-1"]
    assert again.repo.list(Slots.EXPENSE_CATEGORIES)[0].name == "Arriendo"


def test_bootstrap_sets_up_logs_and_data(tmp_path: Path, monkeypatch):
    from nubifica.config import get_app_paths
    from nubifica.main import bootstrap

    monkeypatch.setenv("NUBIFICA_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("NUBIFICA_IDENTITY_API_KEY", raising=False)
    root = logging.getLogger()
    saved = root.handlers[:]
    root.handlers = []
    try:
        paths = get_app_paths()
        c = bootstrap(paths)
        c.documents.update_invoice_status("FVC-1", "Pagada")
        for h in logging.getLogger().handlers + logging.getLogger("nubifica.documents").handlers:
            h.flush()
    finally:
        for h in root.handlers:
            h.close()
        root.handlers = saved
        for name in AUDIT_LOGS:
            named = logging.getLogger(name)
            for h in named.handlers:
                h.close()
            named.handlers = []

    assert paths.db_path.exists()
    assert (paths.logs_dir / "app.log").exists()
    lines = [json.loads(line) for line in (paths.logs_dir / "documents.log").read_text(encoding="utf-8").splitlines()]
    assert any(entry.get("event") == "invoice_status" and entry["fields"]["to"] == "Pagada" for entry in lines)


def test_document_sequence_survives_reopen(tmp_path: Path):
    s = build_services(_sqlite_repo(tmp_path))
    client, widget = add_acme_and_widget(s)
    s.documents.create_invoice(client.id, [{"product_id": widget.id, "quantity": 1}])
    s.documents.delete_invoice("FVC-1")

    reopened = build_services(_sqlite_repo(tmp_path))
    assert reopened.documents.create_invoice(client.id, [{"product_id": widget.id, "quantity": 1}]).id == "FVC-2"


def test_old_database_is_snapshotted_before_upgrade(tmp_path: Path):
    db = tmp_path / "old.db"
    conn = sqlite3.connect(db)
    conn.execute("CREATE TABLE slots (name TEXT PRIMARY KEY, payload TEXT NOT NULL)")
    conn.execute("CREATE TABLE schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
    conn.execute("INSERT INTO schema_migrations VALUES (1, datetime('now'))")
    conn.execute("INSERT INTO slots VALUES ('clients', '[]')")
    conn.commit()
    conn.close()

    store = SqliteSlotStore(db)
    assert store.schema_version() == 1
    store.init_db()

    assert store.schema_version() == SCHEMA_VERSION
    [snapshot] = tmp_path.glob("old.schema_v1_*.bak")
    assert snapshot.stat().st_size > 0
    assert store.load("clients", None) == []

    store.init_db()
    assert len(list(tmp_path.glob("old.*.bak"))) == 1


def test_failed_upgrade_restores_the_snapshot(tmp_path: Path, monkeypatch):
    db = tmp_path / "old.db"
    conn = sqlite3.connect(db)
    conn.execute("CREATE TABLE schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
    conn.execute("INSERT INTO schema_migrations VALUES (1, datetime('now'))")
    conn.commit()
    conn.close()

    def broken(self, cur):
        raise sqlite3.OperationalError("no such table: slots")

    monkeypatch.setattr(SqliteSlotStore, "_migration_v2_slot_timestamps", broken)
    store = SqliteSlotStore(db)
    with pytest.raises(RuntimeError, match="v1 -> v2"):
        store.init_db()
    assert store.schema_version() == 1


def test_json_log_lines_split_event_fields():
    assert split_event("invoice_created id=FVC-2 total=119000") == ("invoice_created", {"id": "FVC-2", "total": "119000"})
    assert split_event("Excel import skipped row 3: bad") == (None, {})

    record = logging.LogRecord("nubifica.documents", logging.INFO, __file__, 1, "quote_converted quote=%s invoice=%s", ("COT-1", "FVC-3"), None)
    line = json.loads(JsonFormatter().format(record))
    assert line["event"] == "quote_converted"
    assert line["fields"] == {"quote": "COT-1", "invoice": "FVC-3"}
    assert line["logger"] == "nubifica.documents"
