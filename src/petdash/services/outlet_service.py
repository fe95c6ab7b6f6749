from __future__ import annotations

import logging
import math
from datetime import date
from typing import Optional

from petdash.domain.errors import NotFoundError, ValidationError
from petdash.domain.models import BUSINESS_TYPES, OUTLET_FREQUENCIES, ZONES, Outlet, ZoneVolume
from petdash.domain.results import service_boundary
from petdash.repositories.sqlite_repo import OUTLET_UPDATABLE

log = logging.getLogger("petdash.outlets")

NOT_FOUND = "Mayorista no encontrado"


class OutletService:
    """Wholesale outlets (puntos de venta): CRUD, soft delete and the kilo ledger."""

    def __init__(self, repo):
        self.repo = repo

    def _validate(self, data: dict, partial: bool = False) -> None:
        if not partial or "name" in data:
            if not str(data.get("name") or "").strip():
                raise ValidationError("El nombre es obligatorio.")
        if not partial or "zone" in data:
            if data.get("zone") not in ZONES:
                raise ValidationError(f"Zona inválida: {data.get('zone')}")
        if not partial or "frequency" in data:
            if data.get("frequency") not in OUTLET_FREQUENCIES:
                raise ValidationError(f"Frecuencia inválida: {data.get('frequency')}")
        if not partial or "business_type" in data:
            if data.get("business_type") not in BUSINESS_TYPES:
                raise ValidationError(f"Tipo de negocio inválido: {data.get('business_type')}")
        capacity = data.get("freezer_capacity")
        if capacity is not None and float(capacity) < 0:
            raise ValidationError("La capacidad del freezer no puede ser negativa.")

    @service_boundary("Error al obtener los mayoristas")
    def list_outlets(
        self,
        page_index: int = 0,
        page_size: int = 50,
        search: str = "",
        zone: Optional[str] = None,
        active: Optional[bool] = True,
    ) -> dict:
        if page_size <= 0:
            raise ValidationError("El tamaño de página debe ser mayor a 0.")
        outlets, total = self.repo.list_outlets(
            active=active, zone=zone, search=(search or "").strip(), page_index=page_index, page_size=page_size
        )
        return {"outlets": outlets, "total": total, "page_count": math.ceil(total / page_size)}

    @service_boundary("Error al obtener el mayorista", not_found=NOT_FOUND)
    def get_outlet(self, outlet_id: str) -> Outlet:
        outlet = self.repo.get_outlet(outlet_id)
        if not outlet:
            raise NotFoundError(outlet_id)
        return outlet

    @service_boundary("Error al crear el mayorista")
    def create_outlet(self, data: dict) -> Outlet:
        self._validate(data)
        outlet_id = self.repo.insert_outlet({**data, "name": str(data["name"]).strip()})
        log.info("outlet_created id=%s zone=%s", outlet_id, data["zone"])
        return self.repo.get_outlet(outlet_id)

    @service_boundary("Error al actualizar el mayorista", not_found=NOT_FOUND)
    def update_outlet(self, outlet_id: str, data: dict) -> Outlet:
        unknown = set(data) - OUTLET_UPDATABLE
        if unknown:
            raise ValidationError(f"Campos no editables: {', '.join(sorted(unknown))}")
        self._validate(data, partial=True)
        if not data or not self.repo.update_outlet(outlet_id, data):
            if not self.repo.get_outlet(outlet_id):
                raise NotFoundError(outlet_id)
        return self.repo.get_outlet(outlet_id)

    @service_boundary("Error al eliminar el mayorista", not_found=NOT_FOUND)
    def delete_outlet(self, outlet_id: str) -> None:
        if not self.repo.update_outlet(outlet_id, {"active": False}):
            raise NotFoundError(outlet_id)
        log.info("outlet_deactivated id=%s", outlet_id)

    @service_boundary("Error al agregar los kilos del mes", not_found=NOT_FOUND)
    def add_monthly_kilos(self, outlet_id: str, month: int, year: int, kilos: float) -> None:
        if not 1 <= int(month) <= 12:
            raise ValidationError("Mes inválido.")
        if float(kilos) < 0:
            raise ValidationError("Los kilos no pueden ser negativos.")
        if not self.repo.get_outlet(outlet_id):
            raise NotFoundError(outlet_id)
        self.repo.upsert_monthly_kilos(outlet_id, int(month), int(year), float(kilos))

    @service_boundary("Error al obtener las ventas por zona")
    def sales_by_zone(self, today: date | None = None) -> list[ZoneVolume]:
        today = today or date.today()
        return [
            ZoneVolume(
                zone=str(r["zone"]),
                total_outlets=int(r["total_outlets"]),
                total_kilos_current_month=float(r["total_kilos"]),
            )
            for r in self.repo.zone_volume(today.month, today.year)
        ]
