from datetime import date, timedelta
from pathlib import Path

import pytest
from openpyxl import load_workbook

from conftest import TODAY, add_acme_and_widget

from nubifica.domain.errors import NotFoundError
from nubifica.domain.models import InvoiceStatus
from nubifica.services.expense_service import ExpenseService
from nubifica.services.reporting_service import DateRange, ReportingService, aging_bucket


def _reporting(services) -> ReportingService:
    return ReportingService(services.repo, today=lambda: TODAY)


def _due(days_ago: int) -> str:
    return (TODAY - timedelta(days=days_ago)).isoformat()


@pytest.mark.parametrize(
    "days, bucket",
    [(-5, "current"), (0, "current"), (1, "1-30"), (30, "1-30"), (31, "31-60"), (60, "31-60"),
     (61, "61-90"), (90, "61-90"), (91, "91+"), (400, "91+")],
)
def test_aging_bucket_boundaries(days, bucket):
    assert aging_bucket(days) == bucket


def test_aging_report_only_counts_open_receivables(services):
    client, widget = add_acme_and_widget(services)
    item = [{"product_id": widget.id, "quantity": 1}]
    for days_ago in (0, 1, 31, 91):
        services.documents.create_invoice(client.id, item, issue_date="2026-01-01", due_date=_due(days_ago), status="Enviada")
    services.documents.create_invoice(client.id, item, due_date=_due(200), status=InvoiceStatus.PAID)
    services.documents.create_invoice(client.id, item, due_date=_due(200))

    report = _reporting(services).aging_report()
    counts = {name: b.count for name, b in report.buckets.items()}
    assert counts == {"current": 1, "1-30": 1, "31-60": 1, "61-90": 0, "91+": 1}
    assert report.buckets["91+"].total == 11900
    assert [r.days_overdue for r in report.rows] == [91, 31, 1, 0]


def test_sales_report_and_dashboard(services):
    client, widget = add_acme_and_widget(services)
    services.documents.create_invoice(
        client.id, [{"product_id": widget.id, "quantity": 5}], issue_date="2026-09-01", status="Pagada"
    )
    services.documents.create_invoice(
        client.id, [{"product_id": widget.id, "quantity": 1}], issue_date="2026-10-02", status="Enviada"
    )
    expenses = ExpenseService(services.repo, services.ids, today=lambda: TODAY)
    rent = expenses.add_category("Arriendo")
    expenses.add_expense(rent.id, "Oficina", 10000, "2026-10-05")

    reporting = _reporting(services)
    sales = reporting.sales_report()
    assert sales.total_collected == 59500
    assert sales.total_invoiced == 59500 + 11900
    assert sales.total_expenses == 10000
    assert sales.net_profit == 49500
    assert sales.sales_by_client[0].name == "Acme"
    assert sales.sales_by_client[0].invoices == 2

    october = reporting.sales_report(DateRange("2026-10-01", "2026-10-31"))
    assert october.invoice_count == 1
    assert october.total_collected == 0

    dash = reporting.dashboard_summary()
    assert dash.pending_collection == 11900
    assert dash.monthly_sales == [("2026-09", 59500), ("2026-10", 11900)]
    assert dash.recent_activity[0].kind == "Gasto"


def test_tax_report_uses_discounted_base(services):
    client, widget = add_acme_and_widget(services)
    services.documents.create_invoice(
        client.id,
        [{"product_id": widget.id, "quantity": 10}],
        global_discount_percentage=10,
        retencion_fuente_percentage=2.5,
        ica_percentage=1,
    )
    taxes = _reporting(services).tax_report()
    assert taxes.total_base == pytest.approx(90000)
    assert taxes.total_iva == 19000
    assert taxes.total_retencion_fuente == pytest.approx(2250)
    assert taxes.total_ica == pytest.approx(900)


def test_profitability_and_product_analysis(services):
    client, _ = add_acme_and_widget(services)
    brick = services.inventory.add_product("LAD-1", "Ladrillo", 1000, 19, stock=500, cost=600)
    services.documents.create_invoice(client.id, [{"product_id": brick.id, "quantity": 100}])

    profit = _reporting(services).profitability_report()
    assert profit.total_revenue == 100000
    assert profit.total_cost == 60000
    assert profit.gross_profit == 40000
    assert profit.gross_margin == pytest.approx(40)

    [stats] = _reporting(services).product_analysis()
    assert (stats.sku, stats.units, stats.revenue) == ("LAD-1", 100, 100000)


def test_withholding_certificate(services):
    client, widget = add_acme_and_widget(services)
    services.documents.create_invoice(
        client.id, [{"product_id": widget.id, "quantity": 10}], issue_date="2026-03-01",
        retencion_fuente_percentage=2.5, ica_percentage=1,
    )
    services.documents.create_invoice(client.id, [{"product_id": widget.id, "quantity": 1}], issue_date="2026-04-01")
    services.documents.create_invoice(
        client.id, [{"product_id": widget.id, "quantity": 1}], issue_date="2025-04-01", ica_percentage=1
    )

    reporting = _reporting(services)
    cert = reporting.withholding_certificate(client.id, 2026)
    assert [r.invoice_id for r in cert.rows] == ["FVC-1"]
    assert cert.total_retencion_fuente == pytest.approx(2500)
    assert cert.total_withheld == pytest.approx(3500)
    assert reporting.certificate_years() == [2026, 2025]

    with pytest.raises(NotFoundError):
        reporting.withholding_certificate("CL-missing", 2026)


def test_export_reports_excel(services, tmp_path: Path):
    client, widget = add_acme_and_widget(services)
    services.documents.create_invoice(client.id, [{"product_id": widget.id, "quantity": 2}], status="Enviada")

    out = tmp_path / "reportes.xlsx"
    _reporting(services).export_reports_excel(str(out), today=date(2027, 1, 1))

    wb = load_workbook(out)
    assert wb.sheetnames == ["Resumen", "Ventas por cliente", "Impuestos", "Cartera", "Rentabilidad", "Productos"]
    assert wb["Resumen"]["B5"].value == 1
    assert wb["Ventas por cliente"]["A2"].value == "Acme"
    assert wb["Cartera"]["A2"].value == "current"
