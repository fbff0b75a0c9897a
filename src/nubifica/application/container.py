from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from nubifica.config import load_identity_settings
from nubifica.repositories.records import RecordRepository
from nubifica.repositories.slot_store import SqliteSlotStore
from nubifica.seed import seed_demo_data
from nubifica.services.auth_service import AuthService, FirebaseIdentityProvider, IdentityProvider
from nubifica.services.backup_service import BackupService
from nubifica.services.client_service import ClientService
from nubifica.services.document_service import DocumentService, StatusPolicy
from nubifica.services.excel_service import ExcelService
from nubifica.services.expense_service import ExpenseService
from nubifica.services.identifiers import IdentifierService
from nubifica.services.inventory_service import InventoryService, LedgerPolicy
from nubifica.services.operations_service import OperationsService
from nubifica.services.reporting_service import ReportingService
from nubifica.services.settings_service import SettingsService


@dataclass(frozen=True)
class AppContainer:
    store: SqliteSlotStore
    repo: RecordRepository
    ids: IdentifierService
    clients: ClientService
    inventory: InventoryService
    documents: DocumentService
    expenses: ExpenseService
    settings: SettingsService
    reporting: ReportingService
    excel: ExcelService
    backup: BackupService
    operations: OperationsService
    auth: Optional[AuthService]


def build_container(
    db_path: Path | str,
    identity_provider: IdentityProvider | None = None,
    seed: bool = False,
    ledger_policy: LedgerPolicy | None = None,
    status_policy: StatusPolicy | None = None,
) -> AppContainer:
    store = SqliteSlotStore(db_path)
    store.init_db()
    repo = RecordRepository(store)
    if seed and repo.is_empty():
        seed_demo_data(repo)

    ids = IdentifierService()
    clients = ClientService(repo, ids)
    inventory = InventoryService(repo, ids, policy=ledger_policy)
    documents = DocumentService(repo, ids, inventory, status_policy=status_policy)
    expenses = ExpenseService(repo, ids)
    settings = SettingsService(repo, ids)
    reporting = ReportingService(repo)
    excel = ExcelService(inventory, clients)

    base = Path(db_path).parent
    backup_dir = base / "backups"
    backup = BackupService(store, backup_dir)
    operations = OperationsService(store, db_path=db_path, logs_dir=base / "logs", backup_dir=backup_dir)

    if identity_provider is None:
        identity = load_identity_settings()
        identity_provider = FirebaseIdentityProvider(identity) if identity else None
    auth = AuthService(repo, identity_provider, ids) if identity_provider else None

    return AppContainer(
        store=store,
        repo=repo,
        ids=ids,
        clients=clients,
        inventory=inventory,
        documents=documents,
        expenses=expenses,
        settings=settings,
        reporting=reporting,
        excel=excel,
        backup=backup,
        operations=operations,
        auth=auth,
    )
