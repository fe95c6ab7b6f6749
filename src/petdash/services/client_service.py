from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Optional

from petdash.domain.errors import ValidationError
from petdash.domain.models import ClientGeneralStats, ClientSummary
from petdash.domain.results import service_boundary
from petdash.repositories.sqlite_repo import _parse_dt

log = logging.getLogger("petdash.clients")

BEHAVIOR_CATEGORIES = ("new", "active", "possible_inactive", "inactive", "lost")
SPENDING_CATEGORIES = ("premium", "standard", "basic")
ALL_CLIENTS = "all"

NEW_CLIENT_DAYS = 30
# upper bound (days since last order) of each behaviour category
ACTIVE_DAYS = 30
POSSIBLE_INACTIVE_DAYS = 60
INACTIVE_DAYS = 120

PREMIUM_MONTHLY = 50_000.0
STANDARD_MONTHLY = 20_000.0


def behavior_category(total_orders: int, first_order_at: datetime, last_order_at: datetime, now: datetime) -> str:
    days_since_last = (now - last_order_at).days
    if total_orders == 1 and (now - first_order_at).days <= NEW_CLIENT_DAYS:
        return "new"
    if days_since_last <= ACTIVE_DAYS:
        return "active"
    if days_since_last <= POSSIBLE_INACTIVE_DAYS:
        return "possible_inactive"
    if days_since_last <= INACTIVE_DAYS:
        return "inactive"
    return "lost"


def months_as_client(first_order_at: datetime, now: datetime) -> int:
    return max(1, math.ceil((now - first_order_at).days / 30))


def spending_category(monthly_spending: float) -> str:
    if monthly_spending >= PREMIUM_MONTHLY:
        return "premium"
    if monthly_spending >= STANDARD_MONTHLY:
        return "standard"
    return "basic"


class ClientService:
    """Retail clients keyed by email, with behaviour and spending categories."""

    def __init__(self, repo):
        self.repo = repo

    def summaries(self, now: Optional[datetime] = None) -> list[ClientSummary]:
        now = now or datetime.now()
        out: list[ClientSummary] = []
        for r in self.repo.client_rows():
            first = _parse_dt(r["first_order_at"])
            last = _parse_dt(r["last_order_at"])
            total_orders = int(r["total_orders"])
            total_spent = float(r["total_spent"])
            monthly = total_spent / months_as_client(first, now)
            out.append(
                ClientSummary(
                    email=str(r["email"]),
                    name=r["name"],
                    phone=r["phone"],
                    total_orders=total_orders,
                    total_spent=round(total_spent, 2),
                    first_order_at=first,
                    last_order_at=last,
                    behavior=behavior_category(total_orders, first, last, now),
                    spending=spending_category(monthly),
                    whatsapp_contacted_at=_parse_dt(r["whatsapp_contacted_at"]),
                )
            )
        return out

    @service_boundary("Error al obtener los clientes")
    def list_clients(self, now: Optional[datetime] = None) -> list[ClientSummary]:
        return self.summaries(now)

    @service_boundary("Error al obtener las estadísticas de clientes")
    def general_stats(self, now: Optional[datetime] = None) -> ClientGeneralStats:
        now = now or datetime.now()
        clients = self.summaries(now)
        if not clients:
            return ClientGeneralStats(0, 0.0, 0.0, 0.0)
        monthly = [c.total_spent / months_as_client(c.first_order_at, now) for c in clients]
        repeat = sum(1 for c in clients if c.total_orders > 1)
        return ClientGeneralStats(
            total_clients=len(clients),
            average_monthly_spending=round(sum(monthly) / len(clients), 2),
            repeat_customer_rate=round(repeat / len(clients) * 100, 1),
            average_orders_per_customer=round(sum(c.total_orders for c in clients) / len(clients), 2),
        )

    @service_boundary("Error al obtener las categorías de clientes")
    def category_counts(self, now: Optional[datetime] = None) -> dict[str, dict[str, int]]:
        clients = self.summaries(now)
        behavior = {c: 0 for c in BEHAVIOR_CATEGORIES}
        spending = {c: 0 for c in SPENDING_CATEGORIES}
        for c in clients:
            behavior[c.behavior] += 1
            spending[c.spending] += 1
        return {"behavior": behavior, "spending": spending}

    def segment_clients(self, segment: str, now: Optional[datetime] = None) -> list[ClientSummary]:
        """Clients in one segment: ``all``, a behaviour category or a spending category.

        Raises ``ValidationError`` for an unknown segment.
        """
        if segment != ALL_CLIENTS and segment not in BEHAVIOR_CATEGORIES and segment not in SPENDING_CATEGORIES:
            raise ValidationError(f"Segmento inválido: {segment}")
        clients = self.summaries(now)
        if segment != ALL_CLIENTS:
            clients = [c for c in clients if segment in (c.behavior, c.spending)]
        log.info("segment_resolved segment=%s clients=%s", segment, len(clients))
        return clients

    @service_boundary("Error al obtener el segmento de clientes")
    def get_segment(self, segment: str, now: Optional[datetime] = None) -> list[ClientSummary]:
        return self.segment_clients(segment, now)
