from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from petdash.domain.errors import ValidationError
from petdash.domain.results import service_boundary

log = logging.getLogger("petdash.reports")


def _money(value: float) -> str:
    return f"${value:,.2f}"


class ReportService:
    def __init__(self, repo, outlet_stats_service, email_client, sender: str, recipients: tuple[str, ...] = ()):
        self.repo = repo
        self.outlet_stats = outlet_stats_service
        self.email = email_client
        self.sender = sender
        self.recipients = tuple(recipients)

    def daily_summary(self, today: Optional[datetime] = None) -> dict:
        end = (today or datetime.now()).replace(hour=0, minute=0, second=0, microsecond=0)
        start = end - timedelta(days=1)
        start_iso = start.strftime("%Y-%m-%d %H:%M:%S")
        end_iso = end.strftime("%Y-%m-%d %H:%M:%S")
        orders, revenue = self.repo.orders_summary_between(start_iso, end_iso)
        top = self.repo.product_sales_between(start_iso, end_iso, 5)
        return {
            "day": start.date().isoformat(),
            "orders": orders,
            "revenue": round(revenue, 2),
            "average_ticket": round(revenue / orders, 2) if orders else 0.0,
            "top_products": [(str(r["product"]), int(r["units"] or 0)) for r in top],
        }

    @staticmethod
    def render_daily_body(summary: dict) -> str:
        lines = [
            f"Reporte diario {summary['day']}",
            "",
            f"Órdenes: {summary['orders']}",
            f"Facturación: {_money(summary['revenue'])}",
            f"Ticket promedio: {_money(summary['average_ticket'])}",
        ]
        if summary["top_products"]:
            lines += ["", "Productos más vendidos:"]
            lines += [f"- {name}: {units}" for name, units in summary["top_products"]]
        return "\n".join(lines)

    @service_boundary("Error al enviar el reporte diario")
    def send_daily_report(self, today: Optional[datetime] = None) -> dict:
        if not self.recipients:
            raise ValidationError("No hay destinatarios configurados para el reporte.")
        summary = self.daily_summary(today)
        body = self.render_daily_body(summary)
        messages = [
            {"from": self.sender, "to": [to], "subject": f"Reporte diario {summary['day']}", "text": body}
            for to in self.recipients
        ]
        sent = self.email.send_batch(messages)
        log.info("daily_report_sent day=%s orders=%s recipients=%s", summary["day"], summary["orders"], sent)
        return {**summary, "sent": sent}

    @service_boundary("Error al exportar las estadísticas de puntos de venta")
    def export_outlet_stats_excel(self, path: str) -> int:
        result = self.outlet_stats.compute_stats()
        if not result.success:
            raise ValidationError(result.error)
        stats = result.data

        wb = Workbook()
        ws = wb.active
        ws.title = "Puntos de venta"
        ws.append([
            "Punto de venta", "Zona", "Teléfono", "Kilos totales", "Frecuencia",
            "Promedio kg/pedido", "Kilos último pedido", "Pedidos", "Primer pedido", "Último pedido",
            "Sin coincidencia",
        ])
        for c in ws[1]:
            c.font = Font(bold=True)

        for s in stats:
            ws.append([
                s.name,
                s.zone,
                s.phone,
                s.total_kilos,
                s.frequency_label,
                s.average_kilos_per_order,
                s.last_order_kilos,
                s.total_orders,
                s.first_order_at.strftime("%Y-%m-%d") if s.first_order_at else "",
                s.last_order_at.strftime("%Y-%m-%d") if s.last_order_at else "",
                ", ".join(s.unmatched_items),
            ])

        ws.freeze_panes = "A2"
        widths = (30, 12, 16, 14, 16, 18, 18, 10, 14, 14, 40)
        for i, w in enumerate(widths, start=1):
            ws.column_dimensions[get_column_letter(i)].width = w
        if ws.max_row >= 2:
            tab = Table(displayName="OutletStats", ref=f"A1:{get_column_letter(len(widths))}{ws.max_row}")
            tab.tableStyleInfo = TableStyleInfo(name="TableStyleMedium9", showRowStripes=True, showColumnStripes=False)
            ws.add_table(tab)

        wb.save(path)
        log.info("outlet_stats_exported path=%s rows=%s", path, len(stats))
        return len(stats)
