import pytest

from conftest import add_acme_and_widget, build_services

from nubifica.domain.errors import InsufficientStockError, InvalidTransitionError, NotFoundError, ValidationError
from nubifica.domain.models import (
    CreditNoteStatus,
    CreditNoteType,
    DiscountType,
    InvoiceStatus,
    MovementKind,
    ProductType,
    QuoteStatus,
)
from nubifica.repositories.records import Slots
from nubifica.services.document_service import StatusPolicy
from nubifica.services.inventory_service import LedgerPolicy


def test_acme_widget_invoices(services):
    client, widget = add_acme_and_widget(services)

    first = services.documents.create_invoice(client.id, [{"product_id": widget.id, "quantity": 5}])
    assert first.id == "FVC-1"
    assert (first.subtotal, first.total_iva, first.total) == (50000, 9500, 59500)
    assert first.status == InvoiceStatus.DRAFT
    assert first.cufe is None
    assert first.due_date == "2026-11-18"
    assert services.inventory.get_product(widget.id).stock == 95

    second = services.documents.create_invoice(
        client.id, [{"product_id": widget.id, "quantity": 3}], status=InvoiceStatus.SENT
    )
    assert second.id == "FVC-2"
    assert second.cufe
    assert services.inventory.get_product(widget.id).stock == 92

    sale = services.inventory.list_movements(widget.id)[0]
    assert sale.kind == MovementKind.SALE
    assert sale.quantity == -3
    assert sale.related_document == "FVC-2"
    assert sale.notes == "Venta Factura FVC-2"


def test_services_on_an_invoice_leave_no_movement(services):
    client, widget = add_acme_and_widget(services)
    advice = services.inventory.add_product("SRV-1", "Asesoría", 150000, 19, product_type=ProductType.SERVICE)

    services.documents.create_invoice(
        client.id,
        [{"product_id": widget.id, "quantity": 2}, {"product_id": advice.id, "quantity": 4}],
    )
    movements = services.inventory.list_movements()
    assert [m.product_id for m in movements] == [widget.id]
    assert services.inventory.get_product(advice.id).stock == 0


def test_failed_invoice_writes_nothing(services):
    client, widget = add_acme_and_widget(services)
    with pytest.raises(NotFoundError):
        services.documents.create_invoice(
            client.id,
            [{"product_id": widget.id, "quantity": 2}, {"product_id": "PROD-missing", "quantity": 1}],
        )
    with pytest.raises(ValidationError):
        services.documents.create_invoice(client.id, [{"product_id": widget.id, "quantity": 0}])
    with pytest.raises(NotFoundError):
        services.documents.create_invoice("CL-missing", [{"product_id": widget.id, "quantity": 1}])
    with pytest.raises(ValidationError):
        services.documents.create_invoice(client.id, [])
    with pytest.raises(ValidationError):
        services.documents.create_quote(client.id, [])

    assert services.documents.list_invoices() == []
    assert services.inventory.list_movements() == []
    assert services.inventory.get_product(widget.id).stock == 100
    assert services.repo.list(Slots.INVOICES) == []
    assert services.repo.list(Slots.QUOTES) == []


def test_strict_ledger_rolls_back_the_whole_invoice():
    s = build_services(ledger_policy=LedgerPolicy(allow_negative_stock=False))
    client, widget = add_acme_and_widget(s)
    with pytest.raises(InsufficientStockError):
        s.documents.create_invoice(client.id, [{"product_id": widget.id, "quantity": 101}])
    assert s.documents.list_invoices() == []
    assert s.inventory.get_product(widget.id).stock == 100


def test_status_update_assigns_code_once(services):
    client, widget = add_acme_and_widget(services)
    inv = services.documents.create_invoice(client.id, [{"product_id": widget.id, "quantity": 1}])

    sent = services.documents.update_invoice_status(inv.id, "Enviada")
    assert sent.status == InvoiceStatus.SENT
    assert sent.cufe

    paid = services.documents.update_invoice_status(inv.id, InvoiceStatus.PAID)
    assert paid.cufe == sent.cufe

    with pytest.raises(ValidationError):
        services.documents.update_invoice_status(inv.id, "Archivada")


def test_status_changes_are_free_unless_enforced(services):
    client, widget = add_acme_and_widget(services)
    inv = services.documents.create_invoice(client.id, [{"product_id": widget.id, "quantity": 1}], status="Pagada")
    assert services.documents.update_invoice_status(inv.id, InvoiceStatus.DRAFT).status == InvoiceStatus.DRAFT

    strict = build_services(status_policy=StatusPolicy(enforce_transitions=True))
    client, widget = add_acme_and_widget(strict)
    inv = strict.documents.create_invoice(client.id, [{"product_id": widget.id, "quantity": 1}], status="Pagada")
    with pytest.raises(InvalidTransitionError):
        strict.documents.update_invoice_status(inv.id, InvoiceStatus.SENT)


def test_quote_is_always_stored_as_draft_and_never_moves_stock(services):
    client, widget = add_acme_and_widget(services)
    quote = services.documents.create_quote(
        client.id,
        [{"product_id": widget.id, "quantity": 10, "unit_price": 1000}],
        discount_type=DiscountType.PERCENTAGE,
        discount_value=10,
        status=QuoteStatus.ACCEPTED,
    )
    assert quote.id == "COT-1"
    assert quote.status == QuoteStatus.DRAFT
    assert (quote.subtotal, quote.total_discount, quote.total_iva, quote.total) == (10000, 1000, 1710, 10710)
    assert quote.notes == "Validez de la oferta: 15 días."
    assert services.inventory.list_movements() == []


def test_convert_quote_to_invoice(services):
    client, widget = add_acme_and_widget(services)
    quote = services.documents.create_quote(
        client.id, [{"product_id": widget.id, "quantity": 4}], discount_type="fixed", discount_value=4000
    )
    inv = services.documents.convert_quote_to_invoice(quote.id, status=InvoiceStatus.SENT)

    assert inv.subtotal == 40000
    assert inv.total == 47600
    assert inv.global_discount_percentage == pytest.approx(10)
    assert services.documents.get_quote(quote.id).status == QuoteStatus.ACCEPTED
    assert services.inventory.get_product(widget.id).stock == 96


def test_strict_policy_converts_a_quote_once():
    s = build_services(status_policy=StatusPolicy(enforce_transitions=True))
    client, widget = add_acme_and_widget(s)
    quote = s.documents.create_quote(client.id, [{"product_id": widget.id, "quantity": 2}])
    rejected = s.documents.create_quote(client.id, [{"product_id": widget.id, "quantity": 1}])
    s.documents.update_quote_status(rejected.id, QuoteStatus.SENT)
    s.documents.update_quote_status(rejected.id, QuoteStatus.REJECTED)

    s.documents.convert_quote_to_invoice(quote.id)
    with pytest.raises(InvalidTransitionError):
        s.documents.convert_quote_to_invoice(quote.id)
    with pytest.raises(InvalidTransitionError):
        s.documents.convert_quote_to_invoice(rejected.id)

    assert [i.id for i in s.documents.list_invoices()] == ["FVC-1"]
    assert s.inventory.get_product(widget.id).stock == 98
    assert s.documents.get_quote(rejected.id).status == QuoteStatus.REJECTED


def test_credit_note_snapshot_survives_invoice_changes(services):
    client, widget = add_acme_and_widget(services)
    inv = services.documents.create_invoice(client.id, [{"product_id": widget.id, "quantity": 5}])

    note = services.documents.create_credit_note(inv.id, CreditNoteType.CREDIT, reason="Devolución")
    assert note.id == "NC-1"
    assert note.total == 59500
    assert note.client_name == "Acme"
    assert note.status == CreditNoteStatus.DRAFT

    services.clients.update_client(client.id, name="Acme Renamed")
    services.documents.delete_invoice(inv.id)

    stored = services.documents.get_credit_note(note.id)
    assert stored == note
    assert stored.line_items[0].quantity == 5


def test_credit_note_numbers_never_reused(services):
    client, widget = add_acme_and_widget(services)
    inv = services.documents.create_invoice(client.id, [{"product_id": widget.id, "quantity": 1}])

    n1 = services.documents.create_credit_note(inv.id)
    n2 = services.documents.create_credit_note(inv.id, CreditNoteType.DEBIT)
    services.documents.delete_credit_note(n1.id)
    n3 = services.documents.create_credit_note(inv.id)
    assert [n1.id, n2.id, n3.id] == ["NC-1", "NC-2", "NC-3"]

    services.documents.delete_credit_note(n3.id)
    assert services.documents.create_credit_note(inv.id).id == "NC-4"
    assert [n.id for n in services.documents.list_credit_notes(inv.id)] == ["NC-4", "NC-2"]


def test_deleted_invoice_number_is_not_handed_out_again(services):
    client, widget = add_acme_and_widget(services)
    item = [{"product_id": widget.id, "quantity": 1}]
    services.documents.create_invoice(client.id, item)
    sent = services.documents.create_invoice(client.id, item, status=InvoiceStatus.SENT)
    note = services.documents.create_credit_note(sent.id)

    services.documents.delete_invoice(sent.id)
    fresh = services.documents.create_invoice(client.id, item)

    assert fresh.id == "FVC-3"
    assert note.invoice_id == "FVC-2"
    with pytest.raises(NotFoundError):
        services.documents.get_invoice(note.invoice_id)


def test_failed_invoice_does_not_consume_a_number(services):
    client, widget = add_acme_and_widget(services)
    with pytest.raises(NotFoundError):
        services.documents.create_invoice(client.id, [{"product_id": "PROD-missing", "quantity": 1}])
    assert services.documents.create_invoice(client.id, [{"product_id": widget.id, "quantity": 1}]).id == "FVC-1"


def test_quote_numbers_survive_deletion(services):
    client, widget = add_acme_and_widget(services)
    q1 = services.documents.create_quote(client.id, [{"product_id": widget.id, "quantity": 1}])
    services.documents.delete_quote(q1.id)
    assert services.documents.create_quote(client.id, [{"product_id": widget.id, "quantity": 1}]).id == "COT-2"


def test_credit_note_for_missing_invoice(services):
    with pytest.raises(NotFoundError):
        services.documents.create_credit_note("FVC-404")
    assert services.repo.list(Slots.CREDIT_NOTES) == []


def test_duplicate_invoice_is_a_new_draft(services):
    client, widget = add_acme_and_widget(services)
    inv = services.documents.create_invoice(
        client.id, [{"product_id": widget.id, "quantity": 2}], status=InvoiceStatus.SENT, ica_percentage=1
    )
    copy = services.documents.duplicate_invoice(inv.id)
    assert copy.id == "FVC-2"
    assert copy.status == InvoiceStatus.DRAFT
    assert copy.cufe is None
    assert copy.ica_percentage == 1
    assert services.inventory.get_product(widget.id).stock == 96


def test_listings_are_newest_first(services):
    client, widget = add_acme_and_widget(services)
    for _ in range(3):
        services.documents.create_invoice(client.id, [{"product_id": widget.id, "quantity": 1}])
    assert [i.id for i in services.documents.list_invoices()] == ["FVC-3", "FVC-2", "FVC-1"]
