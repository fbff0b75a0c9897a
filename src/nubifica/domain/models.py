from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Optional


class InvoiceStatus(str, Enum):
    DRAFT = "Borrador"
    SENT = "Enviada"
    PAID = "Pagada"
    OVERDUE = "Vencida"


class QuoteStatus(str, Enum):
    DRAFT = "Borrador"
    SENT = "Enviada"
    ACCEPTED = "Aceptada"
    REJECTED = "Rechazada"


class CreditNoteStatus(str, Enum):
    DRAFT = "Borrador"
    APPLIED = "Aplicada"


class CreditNoteType(str, Enum):
    CREDIT = "Crédito (Devolución/Anulación)"
    DEBIT = "Débito (Intereses/Gasto)"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class ProductType(str, Enum):
    PRODUCT = "product"
    SERVICE = "service"


class MovementKind(str, Enum):
    ENTRY = "Entrada"
    SALE = "Venta"
    ADJUSTMENT = "Ajuste"


ID_TYPES = ("NIT", "Cédula", "Otro")
PAYMENT_FORMS = ("Contado", "Crédito")
PAYMENT_METHODS = ("Efectivo", "Transferencia", "Tarjeta", "Otro")
USER_ROLES = ("Administrador", "Usuario")
TICKET_CATEGORIES = ("Facturación", "Inventario", "Reporte de Error", "Duda General")
TICKET_STATUSES = ("Abierto", "En Proceso", "Resuelto")


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Record):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


class Record:
    """Dict round-tripping shared by every stored record."""

    def to_dict(self) -> dict[str, Any]:
        return {f.name: _plain(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def _known(cls, data: dict) -> dict[str, Any]:
        names = {f.name for f in fields(cls)}
        return {k: v for k, v in data.items() if k in names}

    @classmethod
    def from_dict(cls, data: dict):
        return cls(**cls._known(data))


@dataclass(frozen=True)
class Client(Record):
    id: str
    name: str
    id_type: str = "NIT"
    id_number: str = ""
    address: str = ""
    phone: str = ""
    email: str = ""
    fiscal_responsibilities: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "Client":
        kw = cls._known(data)
        kw["fiscal_responsibilities"] = tuple(kw.get("fiscal_responsibilities") or ())
        return cls(**kw)


@dataclass(frozen=True)
class Product(Record):
    id: str
    sku: str
    name: str
    description: str
    price: float
    stock: int
    iva_rate: float
    type: ProductType = ProductType.PRODUCT
    cost: Optional[float] = None
    low_stock_threshold: Optional[int] = None
    opening_stock: int = 0

    @property
    def is_physical(self) -> bool:
        return self.type == ProductType.PRODUCT

    @classmethod
    def from_dict(cls, data: dict) -> "Product":
        kw = cls._known(data)
        kw["type"] = ProductType(kw.get("type", ProductType.PRODUCT.value))
        return cls(**kw)


@dataclass(frozen=True)
class StockMovement(Record):
    id: str
    product_id: str
    product_name: str
    date: str
    kind: MovementKind
    quantity: int
    notes: str = ""
    related_document: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "StockMovement":
        kw = cls._known(data)
        kw["kind"] = MovementKind(kw["kind"])
        return cls(**kw)


@dataclass(frozen=True)
class LineItem(Record):
    product_id: str
    product_sku: str
    product_name: str
    quantity: int
    unit_price: float
    iva_rate: float
    total: float


@dataclass(frozen=True)
class Invoice(Record):
    id: str
    client_id: str
    client_name: str
    issue_date: str
    due_date: str
    line_items: tuple[LineItem, ...]
    subtotal: float
    total_iva: float
    total: float
    status: InvoiceStatus
    payment_form: Optional[str] = None
    payment_method: Optional[str] = None
    global_discount_percentage: float = 0.0
    retencion_fuente_percentage: float = 0.0
    ica_percentage: float = 0.0
    notes: str = ""
    is_contingency: bool = False
    cufe: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Invoice":
        kw = cls._known(data)
        kw["line_items"] = tuple(LineItem.from_dict(li) for li in kw.get("line_items", ()))
        kw["status"] = InvoiceStatus(kw["status"])
        return cls(**kw)


@dataclass(frozen=True)
class Quote(Record):
    id: str
    client_id: str
    client_name: str
    issue_date: str
    line_items: tuple[LineItem, ...]
    notes: str
    discount_type: DiscountType
    discount_value: float
    subtotal: float
    total_iva: float
    total_discount: float
    total: float
    status: QuoteStatus

    @classmethod
    def from_dict(cls, data: dict) -> "Quote":
        kw = cls._known(data)
        kw["line_items"] = tuple(LineItem.from_dict(li) for li in kw.get("line_items", ()))
        kw["discount_type"] = DiscountType(kw["discount_type"])
        kw["status"] = QuoteStatus(kw["status"])
        return cls(**kw)


@dataclass(frozen=True)
class CreditNoteLine(Record):
    product_id: str
    product_name: str
    quantity: int
    unit_price: float
    total: float


@dataclass(frozen=True)
class CreditNote(Record):
    id: str
    invoice_id: str
    client_id: str
    client_name: str
    issue_date: str
    type: CreditNoteType
    reason: str
    line_items: tuple[CreditNoteLine, ...]
    total: float
    additional_notes: str
    status: CreditNoteStatus

    @classmethod
    def from_dict(cls, data: dict) -> "CreditNote":
        kw = cls._known(data)
        kw["line_items"] = tuple(CreditNoteLine.from_dict(li) for li in kw.get("line_items", ()))
        kw["type"] = CreditNoteType(kw["type"])
        kw["status"] = CreditNoteStatus(kw["status"])
        return cls(**kw)


@dataclass(frozen=True)
class ExpenseCategory(Record):
    id: str
    name: str


@dataclass(frozen=True)
class Expense(Record):
    id: str
    date: str
    category_id: str
    category_name: str
    description: str
    amount: float


@dataclass(frozen=True)
class CompanyInfo(Record):
    name: str
    nit: str
    subscription_end_date: str = ""
    fiscal_responsibilities: tuple[str, ...] = ()
    address: str = ""
    city: str = ""
    phone: str = ""
    email: str = ""
    show_dian_info_in_pdf: bool = True
    logo_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "CompanyInfo":
        kw = cls._known(data)
        kw["fiscal_responsibilities"] = tuple(kw.get("fiscal_responsibilities") or ())
        return cls(**kw)


@dataclass(frozen=True)
class DianResolution(Record):
    number: str
    date: str
    prefix: str
    validity: str
    range_from: int
    range_to: int


@dataclass(frozen=True)
class UserAccount(Record):
    id: str
    email: str
    role: str


@dataclass(frozen=True)
class ConnectionLog(Record):
    id: str
    user_email: str
    timestamp: str


@dataclass(frozen=True)
class FaqItem(Record):
    id: str
    question: str
    answer: str


@dataclass(frozen=True)
class SupportTicket(Record):
    id: str
    subject: str
    category: str
    description: str
    status: str
    date: str


@dataclass(frozen=True)
class DocumentSequence(Record):
    """Highest number ever issued for a document prefix."""

    prefix: str
    last_number: int
