from __future__ import annotations

import logging

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font

from nubifica.domain.errors import AppError, NotFoundError, ValidationError
from nubifica.domain.models import MovementKind, ProductType
from nubifica.services.client_service import ClientService
from nubifica.services.inventory_service import InventoryService

log = logging.getLogger(__name__)

CLIENT_HEADERS = ["name", "id_type", "id_number", "address", "phone", "email", "fiscal_responsibilities"]
PRODUCT_HEADERS = ["sku", "name", "description", "price", "cost", "iva_rate", "type", "stock", "low_stock_threshold"]


def _write_template(path: str, title: str, headers: list[str], example: list) -> None:
    wb = Workbook()
    ws = wb.active
    ws.title = title
    ws.append(headers)
    for c in ws[1]:
        c.font = Font(bold=True)
    ws.append(example)
    for i, h in enumerate(headers, start=1):
        ws.column_dimensions[ws.cell(row=1, column=i).column_letter].width = max(14, len(h) + 4)
    wb.save(path)


def _header_map(ws, required: list[str]) -> dict[str, int]:
    headers = {}
    for col in range(1, ws.max_column + 1):
        v = ws.cell(row=1, column=col).value
        if isinstance(v, str):
            headers[v.strip().lower()] = col
    for r in required:
        if r not in headers:
            raise ValidationError(f"Missing column header: {r}")
    return headers


def _optional_float(value):
    if value is None or value == "":
        return None
    return float(value)


class ExcelService:
    def __init__(self, inventory: InventoryService, clients: ClientService):
        self.inventory = inventory
        self.clients = clients

    def write_client_template(self, path: str) -> None:
        _write_template(
            path,
            "Clientes",
            CLIENT_HEADERS,
            ["Constructora S.A.S", "NIT", "900.123.456-7", "Calle 100 # 20-30", "3101234567", "compras@constructora.com", "IVA, ReteFuente"],
        )

    def write_product_template(self, path: str) -> None:
        _write_template(
            path,
            "Productos",
            PRODUCT_HEADERS,
            ["CEM-001", "Cemento Gris 50kg", "Cemento Portland", 28000, 22000, 19, "product", 150, 20],
        )

    def import_products_excel(self, path: str) -> tuple[int, int]:
        """
        Rows with a new SKU create the product with ``stock`` as opening stock.
        Rows with a known SKU update its catalogue fields and record an Entrada
        for ``stock`` units (the stock column is a delta, never an absolute level).
        Both writes of a known SKU land together or not at all. An empty ``type``
        keeps the current type.
        Headers:
          sku | name | description | price | cost | iva_rate | type | stock | low_stock_threshold
        """
        wb = load_workbook(path)
        ws = wb.active
        headers = _header_map(ws, ["sku", "name", "price", "iva_rate", "stock"])

        def cell(row: int, key: str):
            col = headers.get(key)
            return ws.cell(row=row, column=col).value if col else None

        ok = 0
        skipped = 0

        for row in range(2, ws.max_row + 1):
            sku = cell(row, "sku")
            name = cell(row, "name")
            if not sku or not name:
                skipped += 1
                continue
            try:
                sku = str(sku).strip()
                name = str(name).strip()
                price = float(cell(row, "price"))
                iva_rate = float(cell(row, "iva_rate"))
                qty = int(float(cell(row, "stock") or 0))
                cost = _optional_float(cell(row, "cost"))
                threshold = _optional_float(cell(row, "low_stock_threshold"))
                threshold = None if threshold is None else int(threshold)
                raw_type = cell(row, "type")
                product_type = ProductType(str(raw_type).strip().lower()) if raw_type else None
                description = str(cell(row, "description") or "").strip()

                if qty < 0:
                    raise ValidationError("Stock must be >= 0.")

                try:
                    existing = self.inventory.get_product_by_sku(sku)
                except NotFoundError:
                    existing = None

                if existing:
                    with self.inventory.uow_factory() as uow:
                        updated = self.inventory.update_product_in(
                            uow,
                            existing.id,
                            type=product_type or existing.type,
                            name=name,
                            description=description or existing.description,
                            price=price,
                            cost=cost if cost is not None else existing.cost,
                            iva_rate=iva_rate,
                            low_stock_threshold=threshold if threshold is not None else existing.low_stock_threshold,
                        )
                        if qty > 0 and updated.is_physical:
                            self.inventory.apply_in(
                                uow, existing.id, qty, MovementKind.ENTRY, notes=f"Importación Excel (+{qty}) {sku}"
                            )
                else:
                    self.inventory.add_product(
                        sku,
                        name,
                        price,
                        iva_rate,
                        stock=qty if product_type in (None, ProductType.PRODUCT) else 0,
                        product_type=product_type or ProductType.PRODUCT,
                        description=description,
                        cost=cost,
                        low_stock_threshold=threshold,
                    )
                ok += 1
            except (AppError, ValueError, TypeError) as e:
                log.warning("Excel import skipped row %s: %s", row, e)
                skipped += 1

        log.info("products_imported ok=%s skipped=%s path=%s", ok, skipped, path)
        return ok, skipped

    def import_clients_excel(self, path: str) -> tuple[int, int]:
        wb = load_workbook(path)
        ws = wb.active
        headers = _header_map(ws, ["name", "id_type", "id_number"])

        def cell(row: int, key: str) -> str:
            col = headers.get(key)
            v = ws.cell(row=row, column=col).value if col else None
            return "" if v is None else str(v).strip()

        ok = 0
        skipped = 0
        for row in range(2, ws.max_row + 1):
            if not cell(row, "name"):
                skipped += 1
                continue
            try:
                self.clients.add_client(
                    name=cell(row, "name"),
                    id_type=cell(row, "id_type") or "NIT",
                    id_number=cell(row, "id_number"),
                    address=cell(row, "address"),
                    phone=cell(row, "phone"),
                    email=cell(row, "email"),
                    fiscal_responsibilities=[s.strip() for s in cell(row, "fiscal_responsibilities").split(",") if s.strip()],
                )
                ok += 1
            except AppError as e:
                log.warning("Excel import skipped row %s: %s", row, e)
                skipped += 1

        log.info("clients_imported ok=%s skipped=%s path=%s", ok, skipped, path)
        return ok, skipped
