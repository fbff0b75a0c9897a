"""Money arithmetic for documents.

Two discount models live here on purpose and are never mixed:

* quotes carry a percentage or fixed discount that lowers each line's taxable
  base before IVA is computed;
* invoices carry a global discount percentage that only feeds the tax-authority
  base used by reports (``invoice_tax_base``), never the invoice total.

Amounts are whole Colombian pesos held as floats.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from nubifica.domain.errors import ValidationError
from nubifica.domain.models import DiscountType, Invoice, LineItem


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: float
    total_iva: float
    total_discount: float
    total: float


@dataclass(frozen=True)
class WithholdingBreakdown:
    base: float
    retencion_fuente: float
    ica: float


def line_total(quantity: int, unit_price: float) -> float:
    return float(quantity) * float(unit_price)


def validate_line_items(lines: Sequence[LineItem]) -> None:
    for li in lines:
        if isinstance(li.quantity, bool) or int(li.quantity) != li.quantity or li.quantity <= 0:
            raise ValidationError(f"Quantity must be a whole number >= 1 ({li.product_name}).")
        if li.unit_price < 0:
            raise ValidationError(f"Unit price must be >= 0 ({li.product_name}).")
        if li.iva_rate < 0:
            raise ValidationError(f"IVA rate must be >= 0 ({li.product_name}).")


def discount_amount(subtotal: float, discount_type: DiscountType, discount_value: float) -> float:
    if discount_value < 0:
        raise ValidationError("Discount must be >= 0.")
    if subtotal <= 0:
        return 0.0
    if discount_type == DiscountType.PERCENTAGE:
        if discount_value > 100:
            raise ValidationError("Discount percentage must be between 0 and 100.")
        return subtotal * discount_value / 100
    return min(float(discount_value), subtotal)


def invoice_totals(lines: Sequence[LineItem]) -> DocumentTotals:
    validate_line_items(lines)
    subtotal = 0.0
    iva = 0.0
    for li in lines:
        amount = line_total(li.quantity, li.unit_price)
        subtotal += amount
        iva += amount * li.iva_rate / 100
    return DocumentTotals(subtotal=subtotal, total_iva=iva, total_discount=0.0, total=subtotal + iva)


def quote_totals(lines: Sequence[LineItem], discount_type: DiscountType, discount_value: float) -> DocumentTotals:
    validate_line_items(lines)
    subtotal = sum(line_total(li.quantity, li.unit_price) for li in lines)
    discount = discount_amount(subtotal, discount_type, discount_value)
    if subtotal <= 0:
        return DocumentTotals(subtotal=0.0, total_iva=0.0, total_discount=0.0, total=0.0)

    iva = 0.0
    for li in lines:
        amount = line_total(li.quantity, li.unit_price)
        if discount_type == DiscountType.PERCENTAGE:
            line_discount = amount * discount_value / 100
        else:
            line_discount = (amount / subtotal) * discount
        iva += (amount - line_discount) * li.iva_rate / 100

    return DocumentTotals(
        subtotal=subtotal,
        total_iva=iva,
        total_discount=discount,
        total=subtotal - discount + iva,
    )


def invoice_tax_base(invoice: Invoice) -> float:
    return invoice.subtotal * (1 - (invoice.global_discount_percentage or 0) / 100)


def invoice_withholdings(invoice: Invoice) -> WithholdingBreakdown:
    base = invoice_tax_base(invoice)
    return WithholdingBreakdown(
        base=base,
        retencion_fuente=base * (invoice.retencion_fuente_percentage or 0) / 100,
        ica=base * (invoice.ica_percentage or 0) / 100,
    )
