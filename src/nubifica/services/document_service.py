from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Callable, Iterable, Optional

from nubifica.domain.errors import InvalidTransitionError, NotFoundError, ValidationError
from nubifica.domain.models import (
    PAYMENT_FORMS,
    PAYMENT_METHODS,
    CreditNote,
    CreditNoteLine,
    CreditNoteStatus,
    CreditNoteType,
    DiscountType,
    Invoice,
    InvoiceStatus,
    LineItem,
    Quote,
    QuoteStatus,
)
from nubifica.repositories.records import RecordRepository, Slots
from nubifica.repositories.unit_of_work import SlotUnitOfWork, UnitOfWork
from nubifica.services.identifiers import IdentifierService, Prefix
from nubifica.services.inventory_service import InventoryService
from nubifica.services.totals import invoice_totals, line_total, quote_totals

log = logging.getLogger("nubifica.documents")

DEFAULT_QUOTE_NOTES = "Validez de la oferta: 15 días."
DEFAULT_PAYMENT_TERM_DAYS = 30

INVOICE_TRANSITIONS: dict[InvoiceStatus, set[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: {InvoiceStatus.SENT, InvoiceStatus.PAID},
    InvoiceStatus.SENT: {InvoiceStatus.PAID, InvoiceStatus.OVERDUE},
    InvoiceStatus.OVERDUE: {InvoiceStatus.PAID, InvoiceStatus.SENT},
    InvoiceStatus.PAID: set(),
}

QUOTE_TRANSITIONS: dict[QuoteStatus, set[QuoteStatus]] = {
    QuoteStatus.DRAFT: {QuoteStatus.SENT},
    QuoteStatus.SENT: {QuoteStatus.ACCEPTED, QuoteStatus.REJECTED},
    QuoteStatus.ACCEPTED: set(),
    QuoteStatus.REJECTED: set(),
}

CONVERTIBLE_QUOTE_STATUSES = {QuoteStatus.DRAFT, QuoteStatus.SENT}

CREDIT_NOTE_TRANSITIONS: dict[CreditNoteStatus, set[CreditNoteStatus]] = {
    CreditNoteStatus.DRAFT: {CreditNoteStatus.APPLIED},
    CreditNoteStatus.APPLIED: set(),
}


def generate_authorization_code() -> str:
    """Simulated CUFE: 48 random bytes as hex. Uniqueness is statistical only."""
    return secrets.token_hex(48)


@dataclass(frozen=True)
class StatusPolicy:
    """Status updates are free-form unless ``enforce_transitions`` is set."""

    enforce_transitions: bool = False

    def check(self, current, new, table: dict) -> None:
        if not self.enforce_transitions or current == new:
            return
        if new not in table.get(current, set()):
            raise InvalidTransitionError(f"Cannot move from '{current.value}' to '{new.value}'.")


def _coerce(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown {label}: {value}") from exc


def _check_percentage(value: float, label: str) -> float:
    value = float(value or 0)
    if value < 0 or value > 100:
        raise ValidationError(f"{label} must be between 0 and 100.")
    return value


class DocumentService:
    """Invoices, quotes and credit/debit notes.

    Every create/update/delete runs inside one unit of work, so validation
    failures and lookup misses leave the stored collections untouched.
    Listings are newest first; storage keeps insertion order.
    """

    def __init__(
        self,
        repo: RecordRepository,
        ids: IdentifierService,
        inventory: InventoryService,
        status_policy: StatusPolicy | None = None,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        today: Callable[[], date] = date.today,
        code_factory: Callable[[], str] = generate_authorization_code,
    ):
        self.repo = repo
        self.ids = ids
        self.inventory = inventory
        self.status_policy = status_policy or StatusPolicy()
        self.uow_factory = uow_factory or (lambda: SlotUnitOfWork(repo))
        self._today = today
        self._code_factory = code_factory

    # ---------- Line items ----------
    def _build_lines(self, uow: UnitOfWork, items: Iterable[dict]) -> list[LineItem]:
        """
        items: [{product_id, quantity, unit_price?, iva_rate?}]
        Price and rate default to the catalogue values.
        """
        products = {p.id: p for p in uow.records(Slots.PRODUCTS)}
        lines = []
        for it in items:
            product = products.get(it["product_id"])
            if not product:
                raise NotFoundError(f"Product not found: {it['product_id']}")
            qty = it["quantity"]
            if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
                raise ValidationError(f"Quantity must be a whole number >= 1 ({product.name}).")
            unit_price = float(it["unit_price"]) if it.get("unit_price") is not None else product.price
            iva_rate = float(it["iva_rate"]) if it.get("iva_rate") is not None else product.iva_rate
            lines.append(
                LineItem(
                    product_id=product.id,
                    product_sku=product.sku,
                    product_name=product.name,
                    quantity=qty,
                    unit_price=unit_price,
                    iva_rate=iva_rate,
                    total=line_total(qty, unit_price),
                )
            )
        if not lines:
            raise ValidationError("Add at least one line item.")
        return lines

    def _client(self, uow: UnitOfWork, client_id: str):
        for c in uow.records(Slots.CLIENTS):
            if c.id == client_id:
                return c
        raise NotFoundError("Client not found.")

    # ---------- Invoices ----------
    def create_invoice(
        self,
        client_id: str,
        items: Iterable[dict],
        issue_date: Optional[str] = None,
        due_date: Optional[str] = None,
        status: InvoiceStatus | str = InvoiceStatus.DRAFT,
        payment_form: Optional[str] = "Contado",
        payment_method: Optional[str] = "Efectivo",
        notes: str = "",
        global_discount_percentage: float = 0.0,
        retencion_fuente_percentage: float = 0.0,
        ica_percentage: float = 0.0,
        is_contingency: bool = False,
    ) -> Invoice:
        with self.uow_factory() as uow:
            invoice = self._create_invoice_in(
                uow,
                client_id,
                list(items),
                issue_date=issue_date,
                due_date=due_date,
                status=status,
                payment_form=payment_form,
                payment_method=payment_method,
                notes=notes,
                global_discount_percentage=global_discount_percentage,
                retencion_fuente_percentage=retencion_fuente_percentage,
                ica_percentage=ica_percentage,
                is_contingency=is_contingency,
            )
        log.info(
            "invoice_created id=%s client=%s lines=%s total=%.0f status=%s",
            invoice.id, invoice.client_id, len(invoice.line_items), invoice.total, invoice.status.value,
        )
        return invoice

    def _create_invoice_in(self, uow: UnitOfWork, client_id: str, items: list[dict], **fields) -> Invoice:
        status = _coerce(InvoiceStatus, fields["status"], "invoice status")
        payment_form = fields["payment_form"]
        payment_method = fields["payment_method"]
        if payment_form is not None and payment_form not in PAYMENT_FORMS:
            raise ValidationError(f"Unknown payment form: {payment_form}")
        if payment_method is not None and payment_method not in PAYMENT_METHODS:
            raise ValidationError(f"Unknown payment method: {payment_method}")

        client = self._client(uow, client_id)
        lines = self._build_lines(uow, items)
        totals = invoice_totals(lines)

        issue = fields["issue_date"] or self._today().isoformat()
        due = fields["due_date"] or (date.fromisoformat(issue) + timedelta(days=DEFAULT_PAYMENT_TERM_DAYS)).isoformat()

        invoices = uow.records(Slots.INVOICES)
        invoice = Invoice(
            id=self.ids.issue_document_id(uow, Prefix.INVOICE, [i.id for i in invoices]),
            client_id=client.id,
            client_name=client.name,
            issue_date=issue,
            due_date=due,
            line_items=tuple(lines),
            subtotal=totals.subtotal,
            total_iva=totals.total_iva,
            total=totals.total,
            status=status,
            payment_form=payment_form,
            payment_method=payment_method,
            global_discount_percentage=_check_percentage(fields["global_discount_percentage"], "Global discount"),
            retencion_fuente_percentage=_check_percentage(fields["retencion_fuente_percentage"], "Retención en la fuente"),
            ica_percentage=_check_percentage(fields["ica_percentage"], "ICA"),
            notes=fields["notes"] or "",
            is_contingency=bool(fields["is_contingency"]),
            cufe=None if status == InvoiceStatus.DRAFT else self._code_factory(),
        )
        uow.stage(Slots.INVOICES, [*invoices, invoice])
        self.inventory.record_sale_lines(uow, lines, invoice.id)
        return invoice

    def list_invoices(self) -> list[Invoice]:
        return list(reversed(self.repo.list(Slots.INVOICES)))

    def get_invoice(self, invoice_id: str) -> Invoice:
        inv = self.repo.get(Slots.INVOICES, invoice_id)
        if not inv:
            raise NotFoundError("Invoice not found.")
        return inv

    def update_invoice_status(self, invoice_id: str, new_status: InvoiceStatus | str) -> Invoice:
        status = _coerce(InvoiceStatus, new_status, "invoice status")
        with self.uow_factory() as uow:
            invoices = uow.records(Slots.INVOICES)
            idx = self._index_of(invoices, invoice_id, "Invoice")
            current = invoices[idx]
            self.status_policy.check(current.status, status, INVOICE_TRANSITIONS)
            cufe = current.cufe
            if status != InvoiceStatus.DRAFT and not cufe:
                cufe = self._code_factory()
            invoices[idx] = replace(current, status=status, cufe=cufe)
            uow.stage(Slots.INVOICES, invoices)
        log.info("invoice_status id=%s from=%s to=%s", invoice_id, current.status.value, status.value)
        return invoices[idx]

    def delete_invoice(self, invoice_id: str) -> None:
        """Removes the invoice only: no restock, credit notes keep their snapshot."""
        self._delete(Slots.INVOICES, invoice_id, "Invoice")

    def duplicate_invoice(self, invoice_id: str) -> Invoice:
        source = self.get_invoice(invoice_id)
        items = [
            {"product_id": li.product_id, "quantity": li.quantity, "unit_price": li.unit_price, "iva_rate": li.iva_rate}
            for li in source.line_items
        ]
        return self.create_invoice(
            source.client_id,
            items,
            status=InvoiceStatus.DRAFT,
            payment_form=source.payment_form,
            payment_method=source.payment_method,
            notes=source.notes,
            global_discount_percentage=source.global_discount_percentage,
            retencion_fuente_percentage=source.retencion_fuente_percentage,
            ica_percentage=source.ica_percentage,
        )

    # ---------- Quotes ----------
    def create_quote(
        self,
        client_id: str,
        items: Iterable[dict],
        issue_date: Optional[str] = None,
        notes: str = DEFAULT_QUOTE_NOTES,
        discount_type: DiscountType | str = DiscountType.PERCENTAGE,
        discount_value: float = 0.0,
        status: QuoteStatus | str | None = None,
    ) -> Quote:
        """Quotes never touch stock and always start as Draft, whatever ``status`` says."""
        discount_type = _coerce(DiscountType, discount_type, "discount type")
        with self.uow_factory() as uow:
            client = self._client(uow, client_id)
            lines = self._build_lines(uow, items)
            totals = quote_totals(lines, discount_type, float(discount_value))
            quotes = uow.records(Slots.QUOTES)
            quote = Quote(
                id=self.ids.issue_document_id(uow, Prefix.QUOTE, [q.id for q in quotes]),
                client_id=client.id,
                client_name=client.name,
                issue_date=issue_date or self._today().isoformat(),
                line_items=tuple(lines),
                notes=notes or "",
                discount_type=discount_type,
                discount_value=float(discount_value),
                subtotal=totals.subtotal,
                total_iva=totals.total_iva,
                total_discount=totals.total_discount,
                total=totals.total,
                status=QuoteStatus.DRAFT,
            )
            uow.stage(Slots.QUOTES, [*quotes, quote])
        if status is not None and status != QuoteStatus.DRAFT:
            log.debug("quote_status_ignored id=%s requested=%s", quote.id, status)
        log.info("quote_created id=%s client=%s total=%.0f", quote.id, quote.client_id, quote.total)
        return quote

    def list_quotes(self) -> list[Quote]:
        return list(reversed(self.repo.list(Slots.QUOTES)))

    def get_quote(self, quote_id: str) -> Quote:
        q = self.repo.get(Slots.QUOTES, quote_id)
        if not q:
            raise NotFoundError("Quote not found.")
        return q

    def update_quote_status(self, quote_id: str, new_status: QuoteStatus | str) -> Quote:
        status = _coerce(QuoteStatus, new_status, "quote status")
        with self.uow_factory() as uow:
            quotes = uow.records(Slots.QUOTES)
            idx = self._index_of(quotes, quote_id, "Quote")
            self.status_policy.check(quotes[idx].status, status, QUOTE_TRANSITIONS)
            quotes[idx] = replace(quotes[idx], status=status)
            uow.stage(Slots.QUOTES, quotes)
        log.info("quote_status id=%s to=%s", quote_id, status.value)
        return quotes[idx]

    def delete_quote(self, quote_id: str) -> None:
        self._delete(Slots.QUOTES, quote_id, "Quote")

    def convert_quote_to_invoice(
        self,
        quote_id: str,
        due_date: Optional[str] = None,
        status: InvoiceStatus | str = InvoiceStatus.DRAFT,
        payment_form: Optional[str] = "Contado",
        payment_method: Optional[str] = "Efectivo",
    ) -> Invoice:
        """Invoice the quoted lines and mark the quote accepted.

        The quote discount travels as the invoice global discount percentage
        (a fixed amount is converted to its share of the subtotal).
        With transitions enforced only Draft and Sent quotes can be converted.
        """
        with self.uow_factory() as uow:
            quotes = uow.records(Slots.QUOTES)
            idx = self._index_of(quotes, quote_id, "Quote")
            quote = quotes[idx]
            if self.status_policy.enforce_transitions and quote.status not in CONVERTIBLE_QUOTE_STATUSES:
                raise InvalidTransitionError(f"Quote {quote.id} is already '{quote.status.value}'.")
            if quote.discount_type == DiscountType.PERCENTAGE:
                discount_pct = quote.discount_value
            else:
                discount_pct = (quote.total_discount / quote.subtotal * 100) if quote.subtotal else 0.0
            items = [
                {"product_id": li.product_id, "quantity": li.quantity, "unit_price": li.unit_price, "iva_rate": li.iva_rate}
                for li in quote.line_items
            ]
            invoice = self._create_invoice_in(
                uow,
                quote.client_id,
                items,
                issue_date=None,
                due_date=due_date,
                status=status,
                payment_form=payment_form,
                payment_method=payment_method,
                notes=quote.notes,
                global_discount_percentage=discount_pct,
                retencion_fuente_percentage=0.0,
                ica_percentage=0.0,
                is_contingency=False,
            )
            quotes[idx] = replace(quote, status=QuoteStatus.ACCEPTED)
            uow.stage(Slots.QUOTES, quotes)
        log.info("quote_converted quote=%s invoice=%s", quote_id, invoice.id)
        return invoice

    # ---------- Credit / debit notes ----------
    def create_credit_note(
        self,
        invoice_id: str,
        note_type: CreditNoteType | str = CreditNoteType.CREDIT,
        reason: str = "",
        additional_notes: str = "",
        issue_date: Optional[str] = None,
    ) -> CreditNote:
        """Snapshot an invoice into a note. The note always carries the full invoice total."""
        note_type = _coerce(CreditNoteType, note_type, "note type")
        with self.uow_factory() as uow:
            invoice = next((i for i in uow.records(Slots.INVOICES) if i.id == invoice_id), None)
            if invoice is None:
                raise NotFoundError("Invoice not found.")
            client = next((c for c in uow.records(Slots.CLIENTS) if c.id == invoice.client_id), None)

            notes = uow.records(Slots.CREDIT_NOTES)
            note = CreditNote(
                id=self.ids.issue_document_id(uow, Prefix.CREDIT_NOTE, [n.id for n in notes]),
                invoice_id=invoice.id,
                client_id=invoice.client_id,
                client_name=client.name if client else invoice.client_name,
                issue_date=issue_date or self._today().isoformat(),
                type=note_type,
                reason=(reason or "").strip(),
                line_items=tuple(
                    CreditNoteLine(
                        product_id=li.product_id,
                        product_name=li.product_name,
                        quantity=li.quantity,
                        unit_price=li.unit_price,
                        total=li.total,
                    )
                    for li in invoice.line_items
                ),
                total=invoice.total,
                additional_notes=additional_notes or "",
                status=CreditNoteStatus.DRAFT,
            )
            uow.stage(Slots.CREDIT_NOTES, [*notes, note])
        log.info("credit_note_created id=%s invoice=%s type=%s total=%.0f", note.id, invoice_id, note.type.value, note.total)
        return note

    def list_credit_notes(self, invoice_id: str | None = None) -> list[CreditNote]:
        notes = self.repo.list(Slots.CREDIT_NOTES)
        if invoice_id is not None:
            notes = [n for n in notes if n.invoice_id == invoice_id]
        return list(reversed(notes))

    def get_credit_note(self, note_id: str) -> CreditNote:
        n = self.repo.get(Slots.CREDIT_NOTES, note_id)
        if not n:
            raise NotFoundError("Credit note not found.")
        return n

    def update_credit_note_status(self, note_id: str, new_status: CreditNoteStatus | str) -> CreditNote:
        status = _coerce(CreditNoteStatus, new_status, "credit note status")
        with self.uow_factory() as uow:
            notes = uow.records(Slots.CREDIT_NOTES)
            idx = self._index_of(notes, note_id, "Credit note")
            self.status_policy.check(notes[idx].status, status, CREDIT_NOTE_TRANSITIONS)
            notes[idx] = replace(notes[idx], status=status)
            uow.stage(Slots.CREDIT_NOTES, notes)
        log.info("credit_note_status id=%s to=%s", note_id, status.value)
        return notes[idx]

    def delete_credit_note(self, note_id: str) -> None:
        self._delete(Slots.CREDIT_NOTES, note_id, "Credit note")

    # ---------- helpers ----------
    def _delete(self, slot: str, record_id: str, label: str) -> None:
        with self.uow_factory() as uow:
            records = uow.records(slot)
            self._index_of(records, record_id, label)
            uow.stage(slot, [r for r in records if r.id != record_id])
        log.info("document_deleted slot=%s id=%s", slot, record_id)

    @staticmethod
    def _index_of(records: list, record_id: str, label: str) -> int:
        for i, r in enumerate(records):
            if r.id == record_id:
                return i
        raise NotFoundError(f"{label} not found.")
