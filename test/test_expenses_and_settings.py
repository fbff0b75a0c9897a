import pytest

from conftest import TODAY

from nubifica.domain.errors import NotFoundError, ValidationError
from nubifica.services.expense_service import ExpenseService
from nubifica.services.settings_service import SettingsService


def test_expense_lifecycle(services):
    expenses = ExpenseService(services.repo, services.ids, today=lambda: TODAY)
    rent = expenses.add_category("Arriendo")
    with pytest.raises(ValidationError):
        expenses.add_category("arriendo")

    e = expenses.add_expense(rent.id, "Oficina", 1200000)
    assert e.date == "2026-10-19"
    assert e.category_name == "Arriendo"

    with pytest.raises(ValidationError):
        expenses.add_expense(rent.id, "Nada", 0)
    with pytest.raises(NotFoundError):
        expenses.add_expense("CAT-missing", "Nada", 10)

    edited = expenses.update_expense(e.id, rent.id, "Oficina centro", 1300000, "2026-10-01")
    assert edited.amount == 1300000

    expenses.delete_category(rent.id)
    [kept] = expenses.list_expenses()
    assert kept.category_name == "Arriendo"

    expenses.delete_expense(e.id)
    assert expenses.list_expenses() == []


def test_company_info_and_resolution(services):
    settings = SettingsService(services.repo, services.ids, today=lambda: TODAY)
    assert settings.get_company_info() is None

    info = settings.update_company_info(name="Mi Empresa", nit="900.000.000-1", fiscal_responsibilities=["IVA"])
    assert info.fiscal_responsibilities == ("IVA",)
    assert settings.update_company_info(city="Medellín").name == "Mi Empresa"
    with pytest.raises(ValidationError):
        settings.update_company_info(email="sin-arroba")
    with pytest.raises(ValidationError):
        settings.update_company_info(color="azul")

    res = settings.update_dian_resolution("18760000001", "2026-01-01", "fve", "24 meses", 1, 5000)
    assert res.prefix == "FVE"
    assert settings.get_dian_resolution() == res
    with pytest.raises(ValidationError):
        settings.update_dian_resolution("1", "2026-01-01", "FVE", "", 10, 5)


def test_support_tickets_are_numbered(services):
    settings = SettingsService(services.repo, services.ids, today=lambda: TODAY)
    t1 = settings.open_ticket("No imprime", "Reporte de Error", "La factura no sale")
    t2 = settings.open_ticket("Duda", "Duda General", "¿Cómo anulo?")
    assert (t1.id, t2.id) == ("TKT-1", "TKT-2")
    assert t1.status == "Abierto"
    assert t1.date == "2026-10-19"

    assert settings.update_ticket_status(t1.id, "Resuelto").status == "Resuelto"
    assert [t.id for t in settings.list_tickets()] == ["TKT-2", "TKT-1"]
    with pytest.raises(ValidationError):
        settings.open_ticket("x", "Otra", "y")
