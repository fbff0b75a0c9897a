from __future__ import annotations

from typing import Iterable, Mapping, Optional

from nubifica.domain.models import (
    Client,
    CompanyInfo,
    ConnectionLog,
    CreditNote,
    DianResolution,
    DocumentSequence,
    Expense,
    ExpenseCategory,
    FaqItem,
    Invoice,
    Product,
    Quote,
    Record,
    StockMovement,
    SupportTicket,
    UserAccount,
)
from nubifica.repositories.slot_store import SlotStore


class Slots:
    CLIENTS = "clients"
    PRODUCTS = "products"
    STOCK_MOVEMENTS = "stock_movements"
    INVOICES = "invoices"
    QUOTES = "quotes"
    CREDIT_NOTES = "credit_notes"
    EXPENSES = "expenses"
    EXPENSE_CATEGORIES = "expense_categories"
    USER_ACCOUNTS = "user_accounts"
    CONNECTION_LOGS = "connection_logs"
    FAQ_ITEMS = "faq_items"
    SUPPORT_TICKETS = "support_tickets"
    DOCUMENT_SEQUENCES = "document_sequences"
    COMPANY_INFO = "company_info"
    DIAN_RESOLUTION = "dian_resolution"


COLLECTION_TYPES: dict[str, type[Record]] = {
    Slots.CLIENTS: Client,
    Slots.PRODUCTS: Product,
    Slots.STOCK_MOVEMENTS: StockMovement,
    Slots.INVOICES: Invoice,
    Slots.QUOTES: Quote,
    Slots.CREDIT_NOTES: CreditNote,
    Slots.EXPENSES: Expense,
    Slots.EXPENSE_CATEGORIES: ExpenseCategory,
    Slots.USER_ACCOUNTS: UserAccount,
    Slots.CONNECTION_LOGS: ConnectionLog,
    Slots.FAQ_ITEMS: FaqItem,
    Slots.SUPPORT_TICKETS: SupportTicket,
    Slots.DOCUMENT_SEQUENCES: DocumentSequence,
}

SINGLETON_TYPES: dict[str, type[Record]] = {
    Slots.COMPANY_INFO: CompanyInfo,
    Slots.DIAN_RESOLUTION: DianResolution,
}


class RecordRepository:
    """Typed access to the slot store. Collections are stored in insertion order."""

    def __init__(self, store: SlotStore):
        self.store = store

    def list(self, slot: str) -> list:
        cls = COLLECTION_TYPES[slot]
        return [cls.from_dict(d) for d in self.store.load(slot, [])]

    def get(self, slot: str, record_id: str):
        for record in self.list(slot):
            if record.id == record_id:
                return record
        return None

    def get_singleton(self, slot: str):
        cls = SINGLETON_TYPES[slot]
        data = self.store.load(slot, None)
        return cls.from_dict(data) if data else None

    def save_records(self, collections: Mapping[str, Iterable[Record]]) -> None:
        payload = {}
        for slot, records in collections.items():
            if slot not in COLLECTION_TYPES:
                raise KeyError(f"Unknown collection slot: {slot}")
            payload[slot] = [r.to_dict() for r in records]
        self.store.save_many(payload)

    def save_singleton(self, slot: str, record: Optional[Record]) -> None:
        if slot not in SINGLETON_TYPES:
            raise KeyError(f"Unknown singleton slot: {slot}")
        self.store.save(slot, record.to_dict() if record else None)

    def is_empty(self) -> bool:
        return not self.store.names()
