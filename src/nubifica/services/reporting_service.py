from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Optional

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from nubifica.domain.errors import NotFoundError
from nubifica.domain.models import Client, CompanyInfo, Expense, Invoice, InvoiceStatus
from nubifica.repositories.records import RecordRepository, Slots
from nubifica.services.totals import invoice_withholdings

AGING_BUCKETS = ("current", "1-30", "31-60", "61-90", "91+")


@dataclass(frozen=True)
class DateRange:
    """Inclusive ISO date window. A missing bound is open."""

    start: Optional[str] = None
    end: Optional[str] = None

    def contains(self, iso_date: str) -> bool:
        d = date.fromisoformat(iso_date[:10])
        if self.start and d < date.fromisoformat(self.start):
            return False
        if self.end and d > date.fromisoformat(self.end):
            return False
        return True


@dataclass(frozen=True)
class ClientSales:
    name: str
    invoices: int
    total: float


@dataclass(frozen=True)
class SalesReport:
    total_collected: float
    total_invoiced: float
    invoice_count: int
    total_expenses: float
    net_profit: float
    sales_by_client: list[ClientSales]


@dataclass(frozen=True)
class TaxRow:
    invoice_id: str
    client_name: str
    issue_date: str
    base: float
    iva: float
    retencion_fuente: float
    ica: float


@dataclass(frozen=True)
class TaxReport:
    rows: list[TaxRow]
    total_base: float
    total_iva: float
    total_retencion_fuente: float
    total_ica: float


@dataclass
class AgingBucket:
    count: int = 0
    total: float = 0.0


@dataclass(frozen=True)
class AgingRow:
    invoice_id: str
    client_name: str
    due_date: str
    total: float
    days_overdue: int
    bucket: str


@dataclass(frozen=True)
class AgingReport:
    buckets: dict[str, AgingBucket]
    rows: list[AgingRow]


@dataclass(frozen=True)
class ProfitRow:
    invoice_id: str
    client_name: str
    revenue: float
    cost: float
    profit: float


@dataclass(frozen=True)
class ProfitabilityReport:
    total_revenue: float
    total_cost: float
    gross_profit: float
    gross_margin: float
    rows: list[ProfitRow]


@dataclass(frozen=True)
class ProductStats:
    product_id: str
    sku: str
    name: str
    units: int
    revenue: float


@dataclass(frozen=True)
class WithholdingRow:
    invoice_id: str
    issue_date: str
    base: float
    retencion_fuente: float
    ica: float


@dataclass(frozen=True)
class WithholdingCertificate:
    client: Client
    company: Optional[CompanyInfo]
    year: int
    rows: list[WithholdingRow]
    total_base: float
    total_retencion_fuente: float
    total_ica: float

    @property
    def total_withheld(self) -> float:
        return self.total_retencion_fuente + self.total_ica


@dataclass(frozen=True)
class Activity:
    kind: str
    date: str
    description: str
    amount: float


@dataclass(frozen=True)
class DashboardSummary:
    total_collected: float
    total_expenses: float
    net_profit: float
    pending_collection: float
    active_clients: int
    invoices_issued: int
    monthly_sales: list[tuple[str, float]] = field(default_factory=list)
    top_clients: list[tuple[str, float]] = field(default_factory=list)
    recent_activity: list[Activity] = field(default_factory=list)


def aging_bucket(days_overdue: int) -> str:
    if days_overdue > 90:
        return "91+"
    if days_overdue > 60:
        return "61-90"
    if days_overdue > 30:
        return "31-60"
    if days_overdue > 0:
        return "1-30"
    return "current"


class ReportingService:
    """Read-only views over the stored documents."""

    def __init__(self, repo: RecordRepository, today: Callable[[], date] = date.today):
        self.repo = repo
        self._today = today

    def _invoices(self, window: Optional[DateRange]) -> list[Invoice]:
        invoices = self.repo.list(Slots.INVOICES)
        if window is None:
            return invoices
        return [i for i in invoices if window.contains(i.issue_date)]

    def _expenses(self, window: Optional[DateRange]) -> list[Expense]:
        expenses = self.repo.list(Slots.EXPENSES)
        if window is None:
            return expenses
        return [e for e in expenses if window.contains(e.date)]

    def sales_report(self, window: Optional[DateRange] = None) -> SalesReport:
        invoices = self._invoices(window)
        collected = sum(i.total for i in invoices if i.status == InvoiceStatus.PAID)
        expenses = sum(e.amount for e in self._expenses(window))

        by_client: dict[str, list] = defaultdict(lambda: [0, 0.0])
        for inv in invoices:
            by_client[inv.client_name][0] += 1
            by_client[inv.client_name][1] += inv.total
        sales_by_client = sorted(
            (ClientSales(name=name, invoices=count, total=total) for name, (count, total) in by_client.items()),
            key=lambda c: c.total,
            reverse=True,
        )
        return SalesReport(
            total_collected=collected,
            total_invoiced=sum(i.total for i in invoices),
            invoice_count=len(invoices),
            total_expenses=expenses,
            net_profit=collected - expenses,
            sales_by_client=sales_by_client,
        )

    def tax_report(self, window: Optional[DateRange] = None) -> TaxReport:
        rows = []
        for inv in self._invoices(window):
            w = invoice_withholdings(inv)
            rows.append(
                TaxRow(
                    invoice_id=inv.id,
                    client_name=inv.client_name,
                    issue_date=inv.issue_date,
                    base=w.base,
                    iva=inv.total_iva,
                    retencion_fuente=w.retencion_fuente,
                    ica=w.ica,
                )
            )
        return TaxReport(
            rows=rows,
            total_base=sum(r.base for r in rows),
            total_iva=sum(r.iva for r in rows),
            total_retencion_fuente=sum(r.retencion_fuente for r in rows),
            total_ica=sum(r.ica for r in rows),
        )

    def aging_report(self, today: Optional[date] = None) -> AgingReport:
        """Receivables by days past due. Always over every invoice, never a date window."""
        today = today or self._today()
        buckets = {name: AgingBucket() for name in AGING_BUCKETS}
        rows = []
        for inv in self.repo.list(Slots.INVOICES):
            if inv.status not in (InvoiceStatus.SENT, InvoiceStatus.OVERDUE):
                continue
            days = (today - date.fromisoformat(inv.due_date)).days
            bucket = aging_bucket(days)
            buckets[bucket].count += 1
            buckets[bucket].total += inv.total
            rows.append(
                AgingRow(
                    invoice_id=inv.id,
                    client_name=inv.client_name,
                    due_date=inv.due_date,
                    total=inv.total,
                    days_overdue=max(0, days),
                    bucket=bucket,
                )
            )
        rows.sort(key=lambda r: r.days_overdue, reverse=True)
        return AgingReport(buckets=buckets, rows=rows)

    def profitability_report(self, window: Optional[DateRange] = None) -> ProfitabilityReport:
        products = {p.id: p for p in self.repo.list(Slots.PRODUCTS)}
        rows = []
        for inv in self._invoices(window):
            cost = 0.0
            for li in inv.line_items:
                product = products.get(li.product_id)
                unit_cost = product.cost if product and product.cost is not None else 0.0
                cost += unit_cost * li.quantity
            rows.append(
                ProfitRow(
                    invoice_id=inv.id,
                    client_name=inv.client_name,
                    revenue=inv.subtotal,
                    cost=cost,
                    profit=inv.subtotal - cost,
                )
            )
        revenue = sum(r.revenue for r in rows)
        cost_total = sum(r.cost for r in rows)
        gross = revenue - cost_total
        rows.sort(key=lambda r: r.profit, reverse=True)
        return ProfitabilityReport(
            total_revenue=revenue,
            total_cost=cost_total,
            gross_profit=gross,
            gross_margin=(gross / revenue * 100) if revenue > 0 else 0.0,
            rows=rows,
        )

    def product_analysis(self, window: Optional[DateRange] = None) -> list[ProductStats]:
        products = {p.id: p for p in self.repo.list(Slots.PRODUCTS)}
        units: dict[str, int] = defaultdict(int)
        revenue: dict[str, float] = defaultdict(float)
        for inv in self._invoices(window):
            for li in inv.line_items:
                if li.product_id not in products:
                    continue
                units[li.product_id] += li.quantity
                revenue[li.product_id] += li.total
        stats = [
            ProductStats(product_id=pid, sku=products[pid].sku, name=products[pid].name, units=units[pid], revenue=revenue[pid])
            for pid in units
        ]
        stats.sort(key=lambda s: s.revenue, reverse=True)
        return stats

    def withholding_certificate(self, client_id: str, year: int) -> WithholdingCertificate:
        client = self.repo.get(Slots.CLIENTS, client_id)
        if not client:
            raise NotFoundError("Client not found.")
        rows = []
        for inv in self.repo.list(Slots.INVOICES):
            if inv.client_id != client_id or date.fromisoformat(inv.issue_date).year != int(year):
                continue
            if not (inv.retencion_fuente_percentage or inv.ica_percentage):
                continue
            w = invoice_withholdings(inv)
            rows.append(
                WithholdingRow(
                    invoice_id=inv.id,
                    issue_date=inv.issue_date,
                    base=w.base,
                    retencion_fuente=w.retencion_fuente,
                    ica=w.ica,
                )
            )
        return WithholdingCertificate(
            client=client,
            company=self.repo.get_singleton(Slots.COMPANY_INFO),
            year=int(year),
            rows=rows,
            total_base=sum(r.base for r in rows),
            total_retencion_fuente=sum(r.retencion_fuente for r in rows),
            total_ica=sum(r.ica for r in rows),
        )

    def certificate_years(self) -> list[int]:
        return sorted({date.fromisoformat(i.issue_date).year for i in self.repo.list(Slots.INVOICES)}, reverse=True)

    def dashboard_summary(self, window: Optional[DateRange] = None) -> DashboardSummary:
        invoices = self._invoices(window)
        expenses = self._expenses(window)
        collected = sum(i.total for i in invoices if i.status == InvoiceStatus.PAID)
        spent = sum(e.amount for e in expenses)

        monthly: dict[str, float] = defaultdict(float)
        by_client: dict[str, float] = defaultdict(float)
        for inv in invoices:
            monthly[inv.issue_date[:7]] += inv.total
            by_client[inv.client_name] += inv.total

        activity = [Activity("Factura", i.issue_date, f"{i.id} - {i.client_name}", i.total) for i in invoices]
        activity += [Activity("Gasto", e.date, e.description, e.amount) for e in expenses]
        activity.sort(key=lambda a: a.date, reverse=True)

        return DashboardSummary(
            total_collected=collected,
            total_expenses=spent,
            net_profit=collected - spent,
            pending_collection=sum(
                i.total for i in invoices if i.status in (InvoiceStatus.SENT, InvoiceStatus.OVERDUE)
            ),
            active_clients=len({i.client_id for i in invoices}),
            invoices_issued=len(invoices),
            monthly_sales=sorted(monthly.items()),
            top_clients=sorted(by_client.items(), key=lambda kv: kv[1], reverse=True)[:5],
            recent_activity=activity[:5],
        )

    def export_reports_excel(self, path: str, window: Optional[DateRange] = None, today: Optional[date] = None) -> None:
        wb = Workbook()

        def money(cell):
            cell.number_format = "#,##0"

        def bold_row(ws, r):
            for c in ws[r]:
                c.font = Font(bold=True)

        def set_widths(ws, widths: dict[str, int]):
            for col, w in widths.items():
                ws.column_dimensions[col].width = w

        def add_table(ws, name: str, header_row: int, ncols: int):
            if ws.max_row <= header_row:
                return
            ref = f"A{header_row}:{get_column_letter(ncols)}{ws.max_row}"
            tab = Table(displayName=name, ref=ref)
            tab.tableStyleInfo = TableStyleInfo(
                name="TableStyleMedium9",
                showRowStripes=True,
                showColumnStripes=False,
            )
            ws.add_table(tab)

        def money_columns(ws, first_row: int, cols: str):
            for r in range(first_row, ws.max_row + 1):
                for col in cols:
                    money(ws[f"{col}{r}"])

        sales = self.sales_report(window)
        taxes = self.tax_report(window)
        aging = self.aging_report(today)
        profit = self.profitability_report(window)
        products = self.product_analysis(window)

        # -------- 1) Summary --------
        ws = wb.active
        ws.title = "Resumen"
        ws["A1"] = "Resumen"
        ws["A1"].font = Font(bold=True, size=14)
        ws["A3"] = "Periodo"
        if window is None:
            ws["B3"] = "Todo"
        else:
            ws["B3"] = f"{window.start or '...'}  ->  {window.end or '...'}"

        summary = [
            ("Facturas emitidas", sales.invoice_count, False),
            ("Total facturado", sales.total_invoiced, True),
            ("Total cobrado", sales.total_collected, True),
            ("Gastos", sales.total_expenses, True),
            ("Utilidad neta", sales.net_profit, True),
            ("IVA generado", taxes.total_iva, True),
            ("Utilidad bruta", profit.gross_profit, True),
        ]
        for i, (label, val, is_money) in enumerate(summary):
            r = 5 + i
            ws[f"A{r}"] = label
            ws[f"B{r}"] = val
            if is_money:
                money(ws[f"B{r}"])
        ws[f"A{5 + len(summary)}"] = "Margen bruto %"
        ws[f"B{5 + len(summary)}"] = round(profit.gross_margin, 2)
        set_widths(ws, {"A": 24, "B": 30})

        # -------- 2) Sales by client --------
        ws2 = wb.create_sheet("Ventas por cliente")
        ws2.append(["Cliente", "Facturas", "Total vendido"])
        bold_row(ws2, 1)
        for c in sales.sales_by_client:
            ws2.append([c.name, c.invoices, c.total])
        money_columns(ws2, 2, "C")
        set_widths(ws2, {"A": 34, "B": 10, "C": 18})
        add_table(ws2, "VentasCliente", 1, 3)

        # -------- 3) Taxes --------
        ws3 = wb.create_sheet("Impuestos")
        ws3.append(["Factura", "Cliente", "Fecha", "Base", "IVA", "ReteFuente", "ICA"])
        bold_row(ws3, 1)
        for t in taxes.rows:
            ws3.append([t.invoice_id, t.client_name, t.issue_date, t.base, t.iva, t.retencion_fuente, t.ica])
        money_columns(ws3, 2, "DEFG")
        ws3.freeze_panes = "A2"
        set_widths(ws3, {"A": 10, "B": 30, "C": 12, "D": 16, "E": 16, "F": 16, "G": 16})
        add_table(ws3, "Impuestos", 1, 7)

        # -------- 4) Aging --------
        ws4 = wb.create_sheet("Cartera")
        ws4.append(["Rango", "Facturas", "Total"])
        bold_row(ws4, 1)
        for name in AGING_BUCKETS:
            ws4.append([name, aging.buckets[name].count, aging.buckets[name].total])
        ws4.append([])
        ws4.append(["Factura", "Cliente", "Vence", "Días vencida", "Total"])
        bold_row(ws4, ws4.max_row)
        for row in aging.rows:
            ws4.append([row.invoice_id, row.client_name, row.due_date, row.days_overdue, row.total])
        set_widths(ws4, {"A": 12, "B": 30, "C": 14, "D": 14, "E": 16})

        # -------- 5) Profitability --------
        ws5 = wb.create_sheet("Rentabilidad")
        ws5.append(["Factura", "Cliente", "Ingreso", "Costo", "Utilidad"])
        bold_row(ws5, 1)
        for p in profit.rows:
            ws5.append([p.invoice_id, p.client_name, p.revenue, p.cost, p.profit])
        money_columns(ws5, 2, "CDE")
        set_widths(ws5, {"A": 10, "B": 30, "C": 16, "D": 16, "E": 16})
        add_table(ws5, "Rentabilidad", 1, 5)

        # -------- 6) Products --------
        ws6 = wb.create_sheet("Productos")
        ws6.append(["SKU", "Producto", "Unidades", "Ingresos"])
        bold_row(ws6, 1)
        for s in products:
            ws6.append([s.sku, s.name, s.units, s.revenue])
        money_columns(ws6, 2, "D")
        set_widths(ws6, {"A": 14, "B": 34, "C": 10, "D": 18})
        add_table(ws6, "Productos", 1, 4)

        wb.save(path)
