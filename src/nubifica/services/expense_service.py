from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Optional

from nubifica.domain.errors import NotFoundError, ValidationError
from nubifica.domain.models import Expense, ExpenseCategory
from nubifica.repositories.records import RecordRepository, Slots
from nubifica.repositories.unit_of_work import SlotUnitOfWork, UnitOfWork
from nubifica.services.identifiers import IdentifierService, Prefix

log = logging.getLogger(__name__)


def _check_date(value: str) -> str:
    try:
        return date.fromisoformat(value).isoformat()
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Date must be YYYY-MM-DD: {value}") from exc


class ExpenseService:
    def __init__(
        self,
        repo: RecordRepository,
        ids: IdentifierService,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.repo = repo
        self.ids = ids
        self.uow_factory = uow_factory or (lambda: SlotUnitOfWork(repo))
        self._today = today

    # ---------- Categories ----------
    def list_categories(self) -> list[ExpenseCategory]:
        return self.repo.list(Slots.EXPENSE_CATEGORIES)

    def add_category(self, name: str) -> ExpenseCategory:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Category name is required.")
        with self.uow_factory() as uow:
            categories = uow.records(Slots.EXPENSE_CATEGORIES)
            if any(c.name.lower() == name.lower() for c in categories):
                raise ValidationError(f"Category already exists: {name}")
            category = ExpenseCategory(id=self.ids.next_entity_id(Prefix.EXPENSE_CATEGORY), name=name)
            uow.stage(Slots.EXPENSE_CATEGORIES, [*categories, category])
        return category

    def delete_category(self, category_id: str) -> None:
        # existing expenses keep the denormalized category name
        with self.uow_factory() as uow:
            categories = uow.records(Slots.EXPENSE_CATEGORIES)
            remaining = [c for c in categories if c.id != category_id]
            if len(remaining) == len(categories):
                raise NotFoundError("Category not found.")
            uow.stage(Slots.EXPENSE_CATEGORIES, remaining)

    # ---------- Expenses ----------
    def list_expenses(self) -> list[Expense]:
        return list(reversed(self.repo.list(Slots.EXPENSES)))

    def add_expense(self, category_id: str, description: str, amount: float, expense_date: Optional[str] = None) -> Expense:
        if amount <= 0:
            raise ValidationError("Amount must be > 0.")
        with self.uow_factory() as uow:
            category = self._category(uow, category_id)
            expense = Expense(
                id=self.ids.next_entity_id(Prefix.EXPENSE),
                date=_check_date(expense_date or self._today().isoformat()),
                category_id=category.id,
                category_name=category.name,
                description=(description or "").strip(),
                amount=float(amount),
            )
            uow.stage(Slots.EXPENSES, [*uow.records(Slots.EXPENSES), expense])
        log.info("expense_created id=%s category=%s amount=%.0f", expense.id, category.name, expense.amount)
        return expense

    def update_expense(
        self,
        expense_id: str,
        category_id: str,
        description: str,
        amount: float,
        expense_date: str,
    ) -> Expense:
        if amount <= 0:
            raise ValidationError("Amount must be > 0.")
        with self.uow_factory() as uow:
            category = self._category(uow, category_id)
            expenses = uow.records(Slots.EXPENSES)
            for i, e in enumerate(expenses):
                if e.id == expense_id:
                    expenses[i] = Expense(
                        id=e.id,
                        date=_check_date(expense_date),
                        category_id=category.id,
                        category_name=category.name,
                        description=(description or "").strip(),
                        amount=float(amount),
                    )
                    uow.stage(Slots.EXPENSES, expenses)
                    return expenses[i]
        raise NotFoundError("Expense not found.")

    def delete_expense(self, expense_id: str) -> None:
        with self.uow_factory() as uow:
            expenses = uow.records(Slots.EXPENSES)
            remaining = [e for e in expenses if e.id != expense_id]
            if len(remaining) == len(expenses):
                raise NotFoundError("Expense not found.")
            uow.stage(Slots.EXPENSES, remaining)

    @staticmethod
    def _category(uow: UnitOfWork, category_id: str) -> ExpenseCategory:
        for c in uow.records(Slots.EXPENSE_CATEGORIES):
            if c.id == category_id:
                return c
        raise NotFoundError("Category not found.")
