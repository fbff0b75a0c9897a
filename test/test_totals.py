import pytest

from nubifica.domain.errors import ValidationError
from nubifica.domain.models import DiscountType, Invoice, InvoiceStatus, LineItem
from nubifica.services.totals import (
    discount_amount,
    invoice_tax_base,
    invoice_totals,
    invoice_withholdings,
    quote_totals,
)


def _line(qty, price, rate=19.0, pid="P-1"):
    return LineItem(pid, "SKU", "Item", qty, price, rate, qty * price)


def test_invoice_totals_add_iva_per_line():
    t = invoice_totals([_line(5, 10000), _line(2, 5000, rate=0.0, pid="P-2")])
    assert t.subtotal == 60000
    assert t.total_iva == 9500
    assert t.total == 69500
    assert t.total_discount == 0


def test_empty_lines_give_zero_totals():
    for t in (invoice_totals([]), quote_totals([], DiscountType.PERCENTAGE, 10)):
        assert (t.subtotal, t.total_iva, t.total_discount, t.total) == (0, 0, 0, 0)


def test_quote_percentage_discount_lowers_the_iva_base():
    t = quote_totals([_line(10, 1000)], DiscountType.PERCENTAGE, 10)
    assert t.subtotal == 10000
    assert t.total_discount == 1000
    assert t.total_iva == 1710
    assert t.total == 10710


def test_quote_fixed_discount_is_spread_by_line_weight():
    t = quote_totals([_line(1, 6000), _line(1, 4000, rate=0.0, pid="P-2")], DiscountType.FIXED, 1000)
    # 600 of the discount falls on the taxed line
    assert t.total_discount == 1000
    assert t.total_iva == pytest.approx(5400 * 0.19)
    assert t.total == pytest.approx(9000 + 1026)


def test_fixed_discount_is_capped_at_subtotal():
    assert discount_amount(500, DiscountType.FIXED, 2000) == 500
    t = quote_totals([_line(1, 500)], DiscountType.FIXED, 2000)
    assert t.total == 0


def test_discount_validation():
    with pytest.raises(ValidationError):
        discount_amount(100, DiscountType.PERCENTAGE, 150)
    with pytest.raises(ValidationError):
        discount_amount(100, DiscountType.FIXED, -1)


def test_zero_quantity_rejected():
    with pytest.raises(ValidationError):
        invoice_totals([_line(0, 1000)])


def test_global_discount_only_changes_the_tax_base():
    inv = Invoice(
        id="FVC-1",
        client_id="CL-1",
        client_name="Acme",
        issue_date="2026-01-10",
        due_date="2026-02-09",
        line_items=(_line(10, 10000),),
        subtotal=100000,
        total_iva=19000,
        total=119000,
        status=InvoiceStatus.SENT,
        global_discount_percentage=10,
        retencion_fuente_percentage=2.5,
        ica_percentage=1,
    )
    assert invoice_tax_base(inv) == pytest.approx(90000)
    w = invoice_withholdings(inv)
    assert w.retencion_fuente == pytest.approx(2250)
    assert w.ica == pytest.approx(900)
    assert inv.total == 119000
