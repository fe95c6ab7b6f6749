from __future__ import annotations

import calendar
import logging
import threading
from datetime import date, datetime
from typing import Optional

from petdash.domain.errors import NotFoundError, ValidationError
from petdash.domain.models import (
    CatalogProduct,
    PRICE_SECTIONS,
    PRICE_TYPE_WHOLESALE,
    PRICE_TYPES,
    PriceEntry,
)
from petdash.domain.results import service_boundary
from petdash.repositories.sqlite_repo import now_iso
from petdash.services.matching import extract_kilos

log = logging.getLogger("petdash.catalog")

# (section, product, weight, price types) for a fresh period
DEFAULT_PRODUCTS: tuple[tuple[str, str, Optional[str], tuple[str, ...]], ...] = (
    ("PERRO", "BIG DOG POLLO", "15KG", PRICE_TYPES),
    ("PERRO", "BIG DOG VACA", "15KG", PRICE_TYPES),
    ("PERRO", "VACA", "10KG", PRICE_TYPES),
    ("PERRO", "VACA", "5KG", PRICE_TYPES),
    ("PERRO", "CERDO", "10KG", PRICE_TYPES),
    ("PERRO", "CERDO", "5KG", PRICE_TYPES),
    ("PERRO", "CORDERO", "10KG", PRICE_TYPES),
    ("PERRO", "CORDERO", "5KG", PRICE_TYPES),
    ("PERRO", "POLLO", "10KG", PRICE_TYPES),
    ("PERRO", "POLLO", "5KG", PRICE_TYPES),
    ("GATO", "VACA", "5KG", PRICE_TYPES),
    ("GATO", "CORDERO", "5KG", PRICE_TYPES),
    ("GATO", "POLLO", "5KG", PRICE_TYPES),
    ("OTROS", "HUESOS CARNOSOS 5KG", None, PRICE_TYPES),
    ("OTROS", "BOX DE COMPLEMENTOS", None, PRICE_TYPES),
    ("OTROS", "GARRAS", None, (PRICE_TYPE_WHOLESALE,)),
    ("OTROS", "CORNALITOS", "200GRS", (PRICE_TYPE_WHOLESALE,)),
    ("OTROS", "CORNALITOS", "30GRS", (PRICE_TYPE_WHOLESALE,)),
    ("OTROS", "HUESOS RECREATIVOS", None, (PRICE_TYPE_WHOLESALE,)),
    ("OTROS", "CALDO DE HUESOS", None, (PRICE_TYPE_WHOLESALE,)),
)


def build_catalog(entries: list[PriceEntry]) -> list[CatalogProduct]:
    """Project price rows onto one catalog product per full name.

    Products without a kilogram weight count as one kilo per unit.
    """
    by_full_name: dict[str, CatalogProduct] = {}
    for entry in entries:
        weight = entry.weight or ""
        full_name = f"{entry.product} {weight}".strip() if weight else entry.product
        if full_name in by_full_name:
            continue
        kilos = extract_kilos(entry.weight)
        by_full_name[full_name] = CatalogProduct(
            full_name=full_name,
            product=entry.product,
            weight=weight or "UNIDAD",
            kilos=kilos if kilos > 0 else 1,
        )
    return list(by_full_name.values())


class CatalogCache:
    """Process-wide catalog cache keyed by (price type, month, year).

    Every write through ``CatalogService`` calls ``invalidate``.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: dict[tuple[str, int, int], list[CatalogProduct]] = {}

    def get(self, key: tuple[str, int, int]) -> Optional[list[CatalogProduct]]:
        with self._lock:
            cached = self._entries.get(key)
            return list(cached) if cached is not None else None

    def put(self, key: tuple[str, int, int], catalog: list[CatalogProduct]) -> None:
        with self._lock:
            self._entries[key] = list(catalog)

    def invalidate(self, price_type: Optional[str] = None) -> None:
        with self._lock:
            if price_type is None:
                self._entries.clear()
                return
            for key in [k for k in self._entries if k[0] == price_type]:
                del self._entries[key]


class CatalogService:
    def __init__(self, repo, cache: CatalogCache | None = None):
        self.repo = repo
        self.cache = cache or CatalogCache()

    def _validate(self, section: str, product: str, price_type: str, price: float) -> None:
        if section not in PRICE_SECTIONS:
            raise ValidationError(f"Sección inválida: {section}")
        if not (product or "").strip():
            raise ValidationError("El producto es obligatorio.")
        if price_type not in PRICE_TYPES:
            raise ValidationError(f"Tipo de precio inválido: {price_type}")
        if float(price) < 0:
            raise ValidationError("El precio no puede ser negativo.")

    def wholesale_catalog(self, on: date | None = None) -> list[CatalogProduct]:
        """Wholesale catalog as priced in the month of ``on``.

        Each product keeps its latest row effective by the end of that month.
        """
        on = on or date.today()
        key = (PRICE_TYPE_WHOLESALE, on.month, on.year)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        month_end = date(on.year, on.month, calendar.monthrange(on.year, on.month)[1])
        entries = self.repo.current_prices(PRICE_TYPE_WHOLESALE, month_end.isoformat())
        catalog = build_catalog(entries)
        self.cache.put(key, catalog)
        log.info("catalog_loaded price_type=%s products=%s", PRICE_TYPE_WHOLESALE, len(catalog))
        return catalog

    @service_boundary("Error al obtener los precios")
    def get_all_prices(self) -> list[PriceEntry]:
        return self.repo.list_prices(is_active=True)

    @service_boundary("Error al obtener los precios filtrados")
    def get_prices(self, **query) -> list[PriceEntry]:
        return self.repo.list_prices(**query)

    @service_boundary("Error al obtener el historial de precios")
    def get_price_history(self, section: str, product: str, weight: Optional[str], price_type: str) -> list[PriceEntry]:
        return self.repo.list_prices(section=section, product=product, weight=weight, price_type=price_type)

    @service_boundary("Error al crear el precio")
    def create_price(
        self,
        section: str,
        product: str,
        weight: Optional[str],
        price_type: str,
        price: float,
        effective_date: Optional[str] = None,
        is_active: bool = True,
    ) -> PriceEntry:
        self._validate(section, product, price_type, price)
        effective = effective_date or date.today().isoformat()
        effective_day = datetime.fromisoformat(effective).date()
        ts = now_iso()
        (price_id,) = self.repo.insert_prices([{
            "section": section,
            "product": product.strip().upper(),
            "weight": weight,
            "price_type": price_type,
            "price": float(price),
            "is_active": is_active,
            "effective_date": effective,
            "month": effective_day.month,
            "year": effective_day.year,
            "created_at": ts,
            "updated_at": ts,
        }])
        self.cache.invalidate(price_type)
        log.info("price_created id=%s product=%s type=%s", price_id, product, price_type)
        return self.repo.get_price(price_id)

    @service_boundary("Error al actualizar el precio", not_found="Precio no encontrado")
    def update_price(self, price_id: str, price: Optional[float] = None, is_active: Optional[bool] = None) -> PriceEntry:
        existing = self.repo.get_price(price_id)
        if not existing:
            raise NotFoundError(price_id)
        new_price = existing.price if price is None else float(price)
        if new_price < 0:
            raise ValidationError("El precio no puede ser negativo.")
        self.repo.update_price(
            price_id,
            new_price,
            existing.is_active if is_active is None else is_active,
            now_iso(),
        )
        self.cache.invalidate(existing.price_type)
        return self.repo.get_price(price_id)

    @service_boundary("Error al eliminar el precio", not_found="Precio no encontrado")
    def delete_price(self, price_id: str) -> None:
        existing = self.repo.get_price(price_id)
        if not existing or not self.repo.delete_price(price_id):
            raise NotFoundError(price_id)
        self.cache.invalidate(existing.price_type)

    @service_boundary("Error al obtener los precios actuales")
    def get_current_prices(self) -> list[PriceEntry]:
        return self.repo.current_prices()

    @service_boundary("Error al obtener las estadísticas de precios")
    def get_price_stats(self) -> dict:
        today = date.today()
        by_section = self.repo.price_group_counts("section")
        return {
            "total_prices": sum(by_section.values()),
            "prices_by_section": by_section,
            "prices_by_type": self.repo.price_group_counts("price_type"),
            "average_price_by_section": self.repo.average_price_by_section(),
            "price_changes_this_month": self.repo.count_prices_for_period(today.month, today.year),
            "most_recent_changes": self.repo.recent_prices(10),
        }

    @service_boundary("Error al inicializar precios para el período")
    def initialize_prices_for_period(self, month: int, year: int) -> int:
        if not 1 <= int(month) <= 12:
            raise ValidationError("Mes inválido.")
        existing = self.repo.count_prices_for_period(month, year)
        if existing > 0:
            log.info("prices_period_exists month=%s year=%s count=%s", month, year, existing)
            return 0
        ts = now_iso()
        effective = f"{int(year)}-{int(month):02d}-01"
        rows = [
            {
                "section": section,
                "product": product,
                "weight": weight,
                "price_type": price_type,
                "price": 0.0,
                "is_active": True,
                "effective_date": effective,
                "month": int(month),
                "year": int(year),
                "created_at": ts,
                "updated_at": ts,
            }
            for section, product, weight, types in DEFAULT_PRODUCTS
            for price_type in types
        ]
        created = len(self.repo.insert_prices(rows))
        self.cache.invalidate()
        log.info("prices_period_initialized month=%s year=%s created=%s", month, year, created)
        return created
