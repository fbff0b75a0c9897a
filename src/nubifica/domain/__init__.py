from .models import (
    Client,
    CreditNote,
    CreditNoteLine,
    Expense,
    ExpenseCategory,
    Invoice,
    InvoiceStatus,
    LineItem,
    MovementKind,
    Product,
    ProductType,
    Quote,
    QuoteStatus,
    StockMovement,
)
from .errors import (
    AppError,
    ValidationError,
    NotFoundError,
    InsufficientStockError,
    InvalidTransitionError,
    AuthorizationError,
    IdentityProviderError,
)

__all__ = [
    "Client",
    "CreditNote",
    "CreditNoteLine",
    "Expense",
    "ExpenseCategory",
    "Invoice",
    "InvoiceStatus",
    "LineItem",
    "MovementKind",
    "Product",
    "ProductType",
    "Quote",
    "QuoteStatus",
    "StockMovement",
    "AppError",
    "ValidationError",
    "NotFoundError",
    "InsufficientStockError",
    "InvalidTransitionError",
    "AuthorizationError",
    "IdentityProviderError",
]
