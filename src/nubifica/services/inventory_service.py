from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import Callable, Iterable, Optional

from nubifica.domain.errors import InsufficientStockError, NotFoundError, ValidationError
from nubifica.domain.models import LineItem, MovementKind, Product, ProductType, StockMovement
from nubifica.repositories.records import RecordRepository, Slots
from nubifica.repositories.unit_of_work import SlotUnitOfWork, UnitOfWork
from nubifica.services.identifiers import IdentifierService, Prefix

log = logging.getLogger(__name__)

_EDITABLE_PRODUCT_FIELDS = {"sku", "name", "description", "price", "cost", "iva_rate", "type", "low_stock_threshold"}


def _check_catalogue_values(price=None, cost=None, iva_rate=None, low_stock_threshold=None) -> None:
    if price is not None and price < 0:
        raise ValidationError("Price must be >= 0.")
    if cost is not None and cost < 0:
        raise ValidationError("Cost must be >= 0.")
    if iva_rate is not None and iva_rate < 0:
        raise ValidationError("IVA rate must be >= 0.")
    if low_stock_threshold is not None and low_stock_threshold < 0:
        raise ValidationError("Low stock threshold must be >= 0.")


@dataclass(frozen=True)
class LedgerPolicy:
    allow_negative_stock: bool = True


@dataclass(frozen=True)
class StockReconciliation:
    product_id: str
    stock: int
    opening_stock: int
    movements_total: int

    @property
    def balanced(self) -> bool:
        return self.stock == self.opening_stock + self.movements_total


class InventoryService:
    def __init__(
        self,
        repo: RecordRepository,
        ids: IdentifierService,
        policy: LedgerPolicy | None = None,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.repo = repo
        self.ids = ids
        self.policy = policy or LedgerPolicy()
        self.uow_factory = uow_factory or (lambda: SlotUnitOfWork(repo))
        self._today = today

    # ---------- Products ----------
    def list_products(self) -> list[Product]:
        return self.repo.list(Slots.PRODUCTS)

    def get_product(self, product_id: str) -> Product:
        p = self.repo.get(Slots.PRODUCTS, product_id)
        if not p:
            raise NotFoundError("Product not found.")
        return p

    def get_product_by_sku(self, sku: str) -> Product:
        sku = (sku or "").strip()
        for p in self.list_products():
            if p.sku == sku:
                return p
        raise NotFoundError("Product not found.")

    def add_product(
        self,
        sku: str,
        name: str,
        price: float,
        iva_rate: float,
        stock: int = 0,
        product_type: ProductType = ProductType.PRODUCT,
        description: str = "",
        cost: Optional[float] = None,
        low_stock_threshold: Optional[int] = None,
    ) -> Product:
        sku = (sku or "").strip()
        name = (name or "").strip()
        if not sku or not name:
            raise ValidationError("SKU and Name are required.")
        if stock < 0:
            raise ValidationError("Stock must be >= 0.")
        _check_catalogue_values(price=price, cost=cost, iva_rate=iva_rate, low_stock_threshold=low_stock_threshold)

        with self.uow_factory() as uow:
            products = uow.records(Slots.PRODUCTS)
            if any(p.sku == sku for p in products):
                raise ValidationError(f"SKU already exists: {sku}")
            product = Product(
                id=self.ids.next_entity_id(Prefix.PRODUCT),
                sku=sku,
                name=name,
                description=(description or "").strip(),
                price=float(price),
                stock=int(stock),
                iva_rate=float(iva_rate),
                type=ProductType(product_type),
                cost=None if cost is None else float(cost),
                low_stock_threshold=None if low_stock_threshold is None else int(low_stock_threshold),
                opening_stock=int(stock),
            )
            uow.stage(Slots.PRODUCTS, [*products, product])
        log.info("product_created id=%s sku=%s stock=%s", product.id, product.sku, product.stock)
        return product

    def update_product(self, product_id: str, **changes) -> Product:
        """Edit catalogue fields. Stock only moves through the ledger."""
        with self.uow_factory() as uow:
            updated = self.update_product_in(uow, product_id, **changes)
        return updated

    def update_product_in(self, uow: UnitOfWork, product_id: str, **changes) -> Product:
        unknown = set(changes) - _EDITABLE_PRODUCT_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
        _check_catalogue_values(
            price=changes.get("price"),
            cost=changes.get("cost"),
            iva_rate=changes.get("iva_rate"),
            low_stock_threshold=changes.get("low_stock_threshold"),
        )
        if "type" in changes:
            changes["type"] = ProductType(changes["type"])

        products = uow.records(Slots.PRODUCTS)
        idx = self._index_of(products, product_id)
        if "sku" in changes and any(p.sku == changes["sku"] and p.id != product_id for p in products):
            raise ValidationError(f"SKU already exists: {changes['sku']}")
        updated = replace(products[idx], **changes)
        products[idx] = updated
        uow.stage(Slots.PRODUCTS, products)
        return updated

    def delete_product(self, product_id: str) -> None:
        with self.uow_factory() as uow:
            products = uow.records(Slots.PRODUCTS)
            self._index_of(products, product_id)
            uow.stage(Slots.PRODUCTS, [p for p in products if p.id != product_id])
        log.info("product_deleted id=%s", product_id)

    def low_stock_products(self) -> list[Product]:
        return [
            p
            for p in self.list_products()
            if p.is_physical and p.low_stock_threshold is not None and p.stock <= p.low_stock_threshold
        ]

    # ---------- Ledger ----------
    def list_movements(self, product_id: str | None = None) -> list[StockMovement]:
        movements = self.repo.list(Slots.STOCK_MOVEMENTS)
        if product_id is not None:
            movements = [m for m in movements if m.product_id == product_id]
        return list(reversed(movements))

    def apply_movement(
        self,
        product_id: str,
        signed_quantity: int,
        kind: MovementKind = MovementKind.ENTRY,
        notes: str = "",
        related_document: str | None = None,
    ) -> int:
        with self.uow_factory() as uow:
            movement = self.apply_in(uow, product_id, signed_quantity, kind, notes, related_document)
        return self._stock_after(movement)

    def record_entry(self, product_id: str, quantity: int, notes: str = "") -> int:
        if int(quantity) <= 0:
            raise ValidationError("Entry quantity must be > 0.")
        return self.apply_movement(product_id, int(quantity), MovementKind.ENTRY, notes)

    def record_adjustment(self, product_id: str, target_level: int, notes: str = "") -> int:
        with self.uow_factory() as uow:
            product = self._find(uow, product_id)
            delta = int(target_level) - int(product.stock)
            movement = self.apply_in(uow, product_id, delta, MovementKind.ADJUSTMENT, notes)
        return self._stock_after(movement)

    def record_sale_lines(self, uow: UnitOfWork, lines: Iterable[LineItem], reference: str) -> list[StockMovement]:
        """Venta movements for the physical goods of a new invoice. Services are skipped."""
        moved = []
        for li in lines:
            product = self._find(uow, li.product_id)
            if not product.is_physical:
                continue
            moved.append(
                self.apply_in(uow, li.product_id, -int(li.quantity), MovementKind.SALE, f"Venta Factura {reference}", reference)
            )
        return moved

    def apply_in(
        self,
        uow: UnitOfWork,
        product_id: str,
        signed_quantity: int,
        kind: MovementKind,
        notes: str = "",
        related_document: str | None = None,
    ) -> StockMovement:
        products = uow.records(Slots.PRODUCTS)
        idx = self._index_of(products, product_id)
        product = products[idx]
        if not product.is_physical:
            raise ValidationError(f"Stock movements only apply to physical products ({product.sku}).")

        new_stock = int(product.stock) + int(signed_quantity)
        if new_stock < 0 and not self.policy.allow_negative_stock:
            raise InsufficientStockError(f"Not enough stock for {product.sku}. Available: {product.stock}")

        movement = StockMovement(
            id=self.ids.next_entity_id(Prefix.STOCK_MOVEMENT),
            product_id=product.id,
            product_name=product.name,
            date=self._today().isoformat(),
            kind=MovementKind(kind),
            quantity=int(signed_quantity),
            notes=notes or "",
            related_document=related_document,
        )
        products[idx] = replace(product, stock=new_stock)
        uow.stage(Slots.PRODUCTS, products)
        uow.stage(Slots.STOCK_MOVEMENTS, [*uow.records(Slots.STOCK_MOVEMENTS), movement])
        log.info(
            "stock_movement product=%s kind=%s qty=%s stock_after=%s ref=%s",
            product.id, movement.kind.value, movement.quantity, new_stock, related_document,
        )
        return movement

    def reconcile(self, product_id: str) -> StockReconciliation:
        product = self.get_product(product_id)
        total = sum(m.quantity for m in self.repo.list(Slots.STOCK_MOVEMENTS) if m.product_id == product_id)
        return StockReconciliation(
            product_id=product.id,
            stock=int(product.stock),
            opening_stock=int(product.opening_stock),
            movements_total=int(total),
        )

    # ---------- helpers ----------
    def _stock_after(self, movement: StockMovement) -> int:
        return self.get_product(movement.product_id).stock

    def _find(self, uow: UnitOfWork, product_id: str) -> Product:
        products = uow.records(Slots.PRODUCTS)
        return products[self._index_of(products, product_id)]

    @staticmethod
    def _index_of(products: list[Product], product_id: str) -> int:
        for i, p in enumerate(products):
            if p.id == product_id:
                return i
        raise NotFoundError("Product not found.")
