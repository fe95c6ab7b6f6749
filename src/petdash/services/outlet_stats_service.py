from __future__ import annotations

import calendar
import logging
import math
from datetime import date, datetime, timedelta
from typing import Iterable

from petdash.domain.errors import ValidationError
from petdash.domain.models import (
    PRICE_TYPE_WHOLESALE,
    Order,
    Outlet,
    OutletStats,
    ProductMatrix,
    ProductMatrixRow,
)
from petdash.domain.results import service_boundary
from petdash.services.matching import ProductMatcher
from petdash.services.product_matrix import MatrixMatcher, counts_in_total, item_kilos, matrix_products

log = logging.getLogger("petdash.stats")

NO_ORDERS = "no orders"
SINGLE_ORDER = "single order"
SAME_DAY = "same-day"
NO_PHONE = "Sin teléfono"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def frequency_label(order_dates: Iterable[datetime]) -> str:
    """Classify purchase frequency by the mean gap between first and last order."""
    dates = sorted(order_dates)
    if not dates:
        return NO_ORDERS
    if len(dates) == 1:
        return SINGLE_ORDER
    span_days = (dates[-1] - dates[0]).total_seconds() / 86400
    average_gap = round_half_up(span_days / (len(dates) - 1))
    if average_gap == 0:
        return SAME_DAY
    if average_gap == 1:
        return "every 1 day"
    return f"every {average_gap} days"


def outlet_stats(outlet: Outlet, orders: list[Order], matcher: ProductMatcher) -> OutletStats:
    phone = outlet.contact.phone or NO_PHONE
    if not orders:
        return OutletStats(
            id=outlet.id,
            name=outlet.name,
            zone=outlet.zone,
            phone=phone,
            total_kilos=0,
            frequency_label=NO_ORDERS,
            average_kilos_per_order=0,
            last_order_kilos=0,
            total_orders=0,
        )

    orders = sorted(orders, key=lambda o: o.created_at)
    total = 0
    per_order: list[int] = []
    unmatched: list[str] = []
    for order in orders:
        kilos, missing = matcher.order_kilos(order.items)
        total += kilos
        per_order.append(kilos)
        unmatched.extend(missing)

    if unmatched:
        log.warning("outlet_unmatched_items outlet=%s count=%s", outlet.id, len(unmatched))

    return OutletStats(
        id=outlet.id,
        name=outlet.name,
        zone=outlet.zone,
        phone=phone,
        total_kilos=round_half_up(total),
        frequency_label=frequency_label(o.created_at for o in orders),
        average_kilos_per_order=round_half_up(total / len(orders)),
        last_order_kilos=round_half_up(per_order[-1]),
        total_orders=len(orders),
        first_order_at=orders[0].created_at,
        last_order_at=orders[-1].created_at,
        unmatched_items=tuple(dict.fromkeys(unmatched)),
    )


class OutletStatsService:
    """Per-outlet volume and purchase-frequency statistics."""

    def __init__(self, repo, catalog_service):
        self.repo = repo
        self.catalog = catalog_service

    @service_boundary("Error al obtener estadísticas de puntos de venta")
    def compute_stats(self) -> list[OutletStats]:
        matcher = ProductMatcher(self.catalog.wholesale_catalog())
        outlets, _ = self.repo.list_outlets(active=True)
        orders_by_outlet = self.repo.wholesale_orders_by_outlet([o.id for o in outlets])

        stats = [outlet_stats(o, orders_by_outlet.get(o.id, []), matcher) for o in outlets]
        stats.sort(key=lambda s: s.total_kilos, reverse=True)
        log.info("stats_computed outlets=%s catalog=%s", len(stats), len(matcher.catalog))
        return stats

    @service_boundary("Error al recalcular los kilos del mes")
    def sync_monthly_ledger(self, month: int, year: int) -> dict[str, int]:
        """Recompute every active outlet's ledger entry for one month from its orders."""
        start = date(int(year), int(month), 1)
        end = start + timedelta(days=calendar.monthrange(start.year, start.month)[1])
        start_iso = f"{start.isoformat()} 00:00:00"
        end_iso = f"{end.isoformat()} 00:00:00"

        matcher = ProductMatcher(self.catalog.wholesale_catalog(start))
        outlets, _ = self.repo.list_outlets(active=True)
        orders_by_outlet = self.repo.wholesale_orders_by_outlet([o.id for o in outlets], start_iso, end_iso)

        kilos_by_outlet: dict[str, int] = {}
        for outlet in outlets:
            total = sum(matcher.order_kilos(order.items)[0] for order in orders_by_outlet.get(outlet.id, []))
            kilos_by_outlet[outlet.id] = round_half_up(total)
        self.repo.upsert_monthly_kilos_many(
            (oid, start.month, start.year, kilos) for oid, kilos in kilos_by_outlet.items()
        )
        log.info("ledger_synced month=%s year=%s outlets=%s", month, year, len(kilos_by_outlet))
        return kilos_by_outlet

    @service_boundary("Error al calcular la matriz de productos")
    def product_matrix(self, start: date | None = None, end: date | None = None) -> ProductMatrix:
        """Kilos each active outlet bought per catalog product, both ends inclusive."""
        if start and end and start > end:
            raise ValidationError("La fecha de inicio debe ser anterior a la fecha de fin.")
        prices_on = (end or date.today()).isoformat()
        products = matrix_products(self.repo.current_prices(PRICE_TYPE_WHOLESALE, prices_on))
        product_names = tuple(p.group_key for p in products)
        outlets, _ = self.repo.list_outlets(active=True)
        if not products or not outlets:
            return ProductMatrix(rows=(), product_names=product_names)

        start_iso = f"{start.isoformat()} 00:00:00" if start else None
        end_iso = f"{(end + timedelta(days=1)).isoformat()} 00:00:00" if end else None
        orders_by_outlet = self.repo.wholesale_orders_by_outlet([o.id for o in outlets], start_iso, end_iso)
        matcher = MatrixMatcher(products)

        rows: list[ProductMatrixRow] = []
        for outlet in outlets:
            by_product: dict[str, float] = {}
            total = 0.0
            unmatched = 0
            for order in orders_by_outlet.get(outlet.id, []):
                if order.status == "cancelled":
                    continue
                for item in order.items:
                    product = matcher.find(item)
                    if product is None:
                        unmatched += 1
                        continue
                    kilos = item_kilos(item, product)
                    by_product[product.group_key] = by_product.get(product.group_key, 0) + kilos
                    if counts_in_total(product):
                        total += kilos
            if unmatched:
                log.info("matrix_unmatched outlet=%s items=%s", outlet.id, unmatched)
            rows.append(ProductMatrixRow(outlet.id, outlet.name, outlet.zone or "N/A", by_product, total))

        rows.sort(key=lambda r: r.total_kilos, reverse=True)
        log.info("matrix_computed outlets=%s products=%s", len(rows), len(product_names))
        return ProductMatrix(rows=tuple(rows), product_names=product_names)
