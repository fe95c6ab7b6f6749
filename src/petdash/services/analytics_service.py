from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import fields
from datetime import datetime
from typing import Optional

from petdash.domain.errors import ValidationError
from petdash.domain.models import (
    DailyRevenue,
    DeliveryTypeStats,
    PeriodSummary,
    ProductSales,
    QuantityStats,
)
from petdash.domain.results import service_boundary
from petdash.repositories.sqlite_repo import _to_iso

log = logging.getLogger("petdash.analytics")

CLIENT_TYPES = ("minorista", "sameDay", "mayorista")

_KG_RE = re.compile(r"(\d+(?:\.\d+)?)\s*KG", re.IGNORECASE)

DOG_FIELDS = ("pollo", "vaca", "cerdo", "cordero", "big_dog_pollo", "big_dog_vaca")
CAT_FIELDS = ("gato_pollo", "gato_vaca", "gato_cordero")


def product_weight(product_name: str, option_name: str) -> float:
    """Kilograms per unit: from the product name, then the option, boxes default to 10."""
    for source in (product_name, option_name):
        match = _KG_RE.search(source or "")
        if match:
            return float(match.group(1))
    if "box" in (product_name or "").lower():
        return 10.0
    return 0.0


def categorize_product(product_name: str, option_name: str) -> str:
    name = (product_name or "").lower()
    full = f"{name} {(option_name or '').lower()}"

    if "big dog" in name:
        if "pollo" in full:
            return "big_dog_pollo"
        if "vaca" in full:
            return "big_dog_vaca"
        return "otros"
    if "gato" in name:
        for protein in ("pollo", "vaca", "cordero"):
            if protein in full:
                return f"gato_{protein}"
        return "otros"
    for protein in ("pollo", "vaca", "cerdo", "cordero"):
        if protein in full:
            return protein
    if ("huesos carnosos" in name or "hueso carnoso" in name) and "recreativo" not in name and "caldo" not in name:
        return "huesos_carnosos"
    return "otros"


class AnalyticsService:
    """Date-ranged reporting over the orders collection."""

    def __init__(self, repo, max_workers: int = 4):
        self.repo = repo
        self.max_workers = max_workers

    @staticmethod
    def _range(start: Optional[datetime], end: Optional[datetime]) -> tuple[Optional[str], Optional[str]]:
        if start and end and start > end:
            raise ValidationError("La fecha de inicio debe ser anterior a la fecha de fin.")
        return _to_iso(start), _to_iso(end)

    @service_boundary("Error al obtener estadísticas por tipo de entrega")
    def delivery_type_stats_by_month(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> list[DeliveryTypeStats]:
        start_iso, end_iso = self._range(start, end)
        return [
            DeliveryTypeStats(
                month=str(r["month"]),
                same_day_orders=int(r["same_day_orders"]),
                normal_orders=int(r["normal_orders"]),
                wholesale_orders=int(r["wholesale_orders"]),
                same_day_revenue=float(r["same_day_revenue"]),
                normal_revenue=float(r["normal_revenue"]),
                wholesale_revenue=float(r["wholesale_revenue"]),
            )
            for r in self.repo.delivery_type_stats_by_month(start_iso, end_iso)
        ]

    @service_boundary("Error al obtener estadísticas de cantidades")
    def quantity_stats_by_month(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> dict[str, list[QuantityStats]]:
        start_iso, end_iso = self._range(start, end)
        by_month: dict[str, dict[str, QuantityStats]] = {}

        for r in self.repo.quantity_rows_by_month(start_iso, end_iso):
            month = str(r["month"])
            product = str(r["product_name"] or "")
            option = str(r["option_name"] or "")
            kilos = product_weight(product, option) * float(r["quantity"] or 0)

            buckets = by_month.setdefault(month, {t: QuantityStats(month=month) for t in CLIENT_TYPES})
            stats = buckets[str(r["client_type"])]
            category = categorize_product(product, option)
            if category != "otros":
                setattr(stats, category, getattr(stats, category) + kilos)
            stats.total_mes += kilos

        result: dict[str, list[QuantityStats]] = {t: [] for t in CLIENT_TYPES}
        for month in sorted(by_month):
            for client_type, stats in by_month[month].items():
                stats.total_perro = sum(getattr(stats, f) for f in DOG_FIELDS)
                stats.total_gato = sum(getattr(stats, f) for f in CAT_FIELDS)
                for f in fields(stats):
                    if f.name != "month":
                        setattr(stats, f.name, round(getattr(stats, f.name), 2))
                result[client_type].append(stats)
        return result

    @service_boundary("Error al obtener estadísticas de productos")
    def product_stats(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None, limit: int = 20
    ) -> list[ProductSales]:
        start_iso, end_iso = self._range(start, end)
        return [
            ProductSales(product=str(r["product"]), units=int(r["units"] or 0), revenue=round(float(r["revenue"] or 0), 2))
            for r in self.repo.product_sales_between(start_iso, end_iso, limit)
        ]

    @service_boundary("Error al obtener los ingresos por día")
    def revenue_by_day(self, start: datetime, end: datetime) -> list[DailyRevenue]:
        start_iso, end_iso = self._range(start, end)
        return [
            DailyRevenue(day=str(r["day"]), revenue=float(r["revenue"]), orders=int(r["orders"]))
            for r in self.repo.revenue_by_day(start_iso, end_iso)
        ]

    def _period_summary(self, start: datetime, end: datetime) -> PeriodSummary:
        orders, revenue = self.repo.orders_summary_between(_to_iso(start), _to_iso(end))
        return PeriodSummary(
            start=start,
            end=end,
            orders=orders,
            revenue=revenue,
            average_ticket=round(revenue / orders, 2) if orders else 0.0,
        )

    @service_boundary("Error al comparar los períodos")
    def compare_periods(self, start: datetime, end: datetime, previous_start: Optional[datetime] = None) -> dict:
        """Current period next to the preceding one of the same length.

        Both reads are independent and run concurrently.
        """
        self._range(start, end)
        previous_start = previous_start or start - (end - start)
        previous_end = previous_start + (end - start)

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            current_f = pool.submit(self._period_summary, start, end)
            previous_f = pool.submit(self._period_summary, previous_start, previous_end)
            current, previous = current_f.result(), previous_f.result()
        log.info("periods_compared current_orders=%s previous_orders=%s", current.orders, previous.orders)

        def change(now: float, before: float) -> Optional[float]:
            return round((now - before) / before * 100, 1) if before else None

        return {
            "current": current,
            "previous": previous,
            "orders_change_pct": change(current.orders, previous.orders),
            "revenue_change_pct": change(current.revenue, previous.revenue),
        }

