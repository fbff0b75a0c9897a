"""Demo company used for first runs and walkthroughs."""
from __future__ import annotations

import logging

from nubifica.domain.models import (
    Client,
    CompanyInfo,
    DianResolution,
    ExpenseCategory,
    Expense,
    FaqItem,
    Invoice,
    InvoiceStatus,
    LineItem,
    MovementKind,
    Product,
    ProductType,
    Quote,
    QuoteStatus,
    DiscountType,
    StockMovement,
    UserAccount,
)
from nubifica.repositories.records import RecordRepository, Slots

log = logging.getLogger(__name__)

_CEMENT = "Cemento Gris 50kg"
_REBAR = 'Varilla de Acero 1/2"'


def _clients() -> list[Client]:
    return [
        Client("CL-1", "Constructora S.A.S", "NIT", "900.123.456-7", "Calle 100 # 20-30", "3101234567",
               "compras@constructora.com", ("IVA", "ReteFuente")),
        Client("CL-2", "Juan Pérez", "Cédula", "1.234.567.890", "Carrera 5 # 15-25", "3209876543",
               "juan.perez@email.com", ("No responsable de IVA",)),
    ]


def _products() -> list[Product]:
    # opening stock + movements below == stock
    return [
        Product("PROD-1", "CEM-001", _CEMENT, "Cemento Portland para construcción", 28000.0, 150, 19.0,
                ProductType.PRODUCT, 22000.0, 20, opening_stock=0),
        Product("PROD-2", "VAR-001", _REBAR, "Varilla corrugada para refuerzo", 35000.0, 300, 19.0,
                ProductType.PRODUCT, 29000.0, 50, opening_stock=0),
        Product("PROD-3", "SERV-01", "Asesoría de Ingeniería", "Hora de asesoría especializada", 150000.0, 0, 19.0,
                ProductType.SERVICE),
    ]


def _movements() -> list[StockMovement]:
    return [
        StockMovement("MOV-1", "PROD-1", _CEMENT, "2023-10-01", MovementKind.ENTRY, 200, "Compra inicial"),
        StockMovement("MOV-2", "PROD-2", _REBAR, "2023-10-01", MovementKind.ENTRY, 300, "Compra inicial"),
        StockMovement("MOV-3", "PROD-1", _CEMENT, "2023-10-15", MovementKind.SALE, -50, "Venta Factura FVC-1", "FVC-1"),
    ]


def _invoices() -> list[Invoice]:
    cement = LineItem("PROD-1", "CEM-001", _CEMENT, 50, 28000.0, 19.0, 1400000.0)
    return [
        Invoice(
            id="FVC-1",
            client_id="CL-1",
            client_name="Constructora S.A.S",
            issue_date="2023-10-15",
            due_date="2023-11-14",
            line_items=(cement,),
            subtotal=1400000.0,
            total_iva=266000.0,
            total=1666000.0,
            status=InvoiceStatus.PAID,
            payment_form="Crédito",
            payment_method="Transferencia",
            cufe="e4a2c1f017b2b0a3c9e8d7f6a5b4c3d2e1f0a9b8c7d6e5f4a3b2c1d0e9f8a7b6c5d4e3f2a1b0c9d8e7f6a5b4c3d2e1f0a9b8c7d6e5f4a3b2c1d0",
        )
    ]


def _quotes() -> list[Quote]:
    rebar = LineItem("PROD-2", "VAR-001", _REBAR, 10, 35000.0, 19.0, 350000.0)
    return [
        Quote(
            id="COT-1",
            client_id="CL-2",
            client_name="Juan Pérez",
            issue_date="2023-10-20",
            line_items=(rebar,),
            notes="Validez de la oferta: 15 días.",
            discount_type=DiscountType.PERCENTAGE,
            discount_value=0.0,
            subtotal=350000.0,
            total_iva=66500.0,
            total_discount=0.0,
            total=416500.0,
            status=QuoteStatus.SENT,
        )
    ]


def seed_demo_data(repo: RecordRepository) -> None:
    repo.save_records(
        {
            Slots.CLIENTS: _clients(),
            Slots.PRODUCTS: _products(),
            Slots.STOCK_MOVEMENTS: _movements(),
            Slots.INVOICES: _invoices(),
            Slots.QUOTES: _quotes(),
            Slots.CREDIT_NOTES: [],
            Slots.EXPENSE_CATEGORIES: [
                ExpenseCategory("CAT-1", "Arriendo"),
                ExpenseCategory("CAT-2", "Servicios Públicos"),
                ExpenseCategory("CAT-3", "Nómina"),
            ],
            Slots.EXPENSES: [
                Expense("EXP-1", "2023-10-05", "CAT-1", "Arriendo", "Arriendo de oficina Octubre", 1200000.0),
                Expense("EXP-2", "2023-10-10", "CAT-2", "Servicios Públicos", "Factura de energía", 250000.0),
            ],
            Slots.USER_ACCOUNTS: [UserAccount("USR-1", "admin@nubifica.com", "Administrador")],
            Slots.CONNECTION_LOGS: [],
            Slots.FAQ_ITEMS: [
                FaqItem(
                    "FAQ-1",
                    "¿Cómo creo una factura?",
                    'Ve a la sección de "Facturas", haz clic en "Nueva Factura", llena los datos del cliente, '
                    'añade los productos y haz clic en "Guardar y Emitir".',
                ),
                FaqItem(
                    "FAQ-2",
                    "¿Puedo personalizar el logo de mi empresa?",
                    'Sí, en la sección de "Configuración", en la tarjeta de "Datos del Emisor", puedes añadir la URL de tu logo.',
                ),
            ],
            Slots.SUPPORT_TICKETS: [],
        }
    )
    repo.save_singleton(
        Slots.COMPANY_INFO,
        CompanyInfo(
            name="Mi Empresa S.A.S.",
            nit="900.000.000-1",
            subscription_end_date="2024-12-31",
            fiscal_responsibilities=("IVA", "ReteFuente"),
            address="Avenida Siempre Viva 123",
            city="Bogotá D.C.",
            phone="3001234567",
            email="contacto@miempresa.com",
            show_dian_info_in_pdf=True,
            logo_url="https://placehold.co/200x80.png?text=Mi+Logo",
        ),
    )
    repo.save_singleton(
        Slots.DIAN_RESOLUTION,
        DianResolution(
            number="18760000001",
            date="2023-01-01",
            prefix="FVE",
            validity="24 meses",
            range_from=1,
            range_to=10000,
        ),
    )
    log.info("demo_data_seeded")
