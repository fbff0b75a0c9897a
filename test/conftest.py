import sys
from datetime import date
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from nubifica.repositories.records import RecordRepository  # noqa: E402
from nubifica.repositories.slot_store import MemorySlotStore  # noqa: E402
from nubifica.services.client_service import ClientService  # noqa: E402
from nubifica.services.document_service import DocumentService  # noqa: E402
from nubifica.services.identifiers import IdentifierService  # noqa: E402
from nubifica.services.inventory_service import InventoryService  # noqa: E402

TODAY = date(2026, 10, 19)


class Services:
    def __init__(self, repo, ledger_policy=None, status_policy=None):
        self.repo = repo
        self.ids = IdentifierService()
        self.clients = ClientService(repo, self.ids)
        self.inventory = InventoryService(repo, self.ids, policy=ledger_policy, today=lambda: TODAY)
        self.documents = DocumentService(
            repo,
            self.ids,
            self.inventory,
            status_policy=status_policy,
            today=lambda: TODAY,
            code_factory=lambda: "c" * 96,
        )


def build_services(repo=None, **kwargs) -> Services:
    return Services(repo or RecordRepository(MemorySlotStore()), **kwargs)


@pytest.fixture
def services() -> Services:
    return build_services()


def add_acme_and_widget(s: Services):
    client = s.clients.add_client("Acme", id_type="NIT", id_number="900.1")
    widget = s.inventory.add_product("W-1", "Widget", 10000, 19, stock=100)
    return client, widget
