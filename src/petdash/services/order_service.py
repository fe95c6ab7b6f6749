from __future__ import annotations

import logging
import math
from datetime import date, datetime
from typing import Iterable, Optional

from openpyxl import Workbook
from openpyxl.styles import Font

from petdash.domain.errors import NotFoundError, ValidationError
from petdash.domain.models import (
    ORDER_STATUSES,
    ORDER_TYPE_RETAIL,
    ORDER_TYPE_WHOLESALE,
    ItemOption,
    LineItem,
    Order,
)
from petdash.domain.results import service_boundary
from petdash.repositories.sqlite_repo import _to_iso, now_iso
from petdash.services.product_mapping import normalize_order_items

log = logging.getLogger("petdash.orders")

NOT_FOUND = "Orden no encontrada"


def _line_items(raw_items: Iterable[dict]) -> tuple[tuple[LineItem, ...], dict[int, str]]:
    """
    raw_items: [{id, name, full_name?, price?, options: [{name, price, quantity}]}]
    """
    items: list[LineItem] = []
    full_names: dict[int, str] = {}
    for i, raw in enumerate(raw_items):
        if not (raw.get("name") or raw.get("full_name") or "").strip():
            raise ValidationError("Cada producto debe tener un nombre.")
        options = raw.get("options")
        items.append(
            LineItem(
                id=str(raw.get("id") or raw.get("name") or ""),
                name=str(raw.get("name") or raw.get("full_name")),
                options=tuple(
                    ItemOption(
                        name=str(o.get("name") or ""),
                        price=float(o.get("price") or 0),
                        quantity=o.get("quantity"),
                    )
                    for o in options
                ) if options is not None else None,
                price=float(raw.get("price") or 0),
            )
        )
        if raw.get("full_name"):
            full_names[i] = str(raw["full_name"])
    return tuple(items), full_names


def order_total(items: Iterable[LineItem]) -> float:
    total = 0.0
    for item in items:
        if item.options:
            total += sum(float(o.price) * int(o.quantity or 1) for o in item.options)
        else:
            total += float(item.price)
    return round(total, 2)


class OrderService:
    def __init__(self, repo):
        self.repo = repo

    def _build(self, data: dict, order_type: str) -> Order:
        raw_items = data.get("items") or []
        if not raw_items:
            raise ValidationError("La orden no tiene productos.")
        status = data.get("status", "pending")
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Estado inválido: {status}")

        items, full_names = _line_items(raw_items)
        items = normalize_order_items(items, full_names)
        for item in items:
            for opt in item.options or ():
                if int(opt.quantity) <= 0:
                    raise ValidationError("La cantidad debe ser mayor a 0.")

        total = data.get("total")
        delivery_day = data.get("delivery_day")
        return Order(
            id="",
            created_at=data.get("created_at") or datetime.now().replace(microsecond=0),
            order_type=order_type,
            status=status,
            total=order_total(items) if total is None else float(total),
            items=items,
            same_day_delivery=bool(data.get("same_day_delivery", False)),
            payment_method=data.get("payment_method"),
            delivery_day=date.fromisoformat(delivery_day) if isinstance(delivery_day, str) else delivery_day,
            client_name=data.get("client_name"),
            client_email=(data.get("client_email") or "").strip().lower() or None,
            client_phone=data.get("client_phone"),
            punto_de_venta=data.get("punto_de_venta"),
        )

    @service_boundary("Error al crear la orden")
    def create_order(self, data: dict) -> Order:
        order = self._build(data, ORDER_TYPE_RETAIL)
        order_id = self.repo.insert_order(order)
        log.info("order_created id=%s type=%s total=%.2f items=%s", order_id, order.order_type, order.total, len(order.items))
        return self.repo.get_order(order_id)

    @service_boundary("Error al crear la orden mayorista", not_found="Mayorista no encontrado")
    def create_wholesale_order(self, outlet_id: str, data: dict) -> Order:
        outlet = self.repo.get_outlet(outlet_id)
        if not outlet:
            raise NotFoundError(outlet_id)
        order = self._build(
            {
                "client_name": outlet.name,
                "client_phone": outlet.contact.phone,
                "client_email": outlet.contact.email,
                **data,
                "punto_de_venta": outlet.id,
            },
            ORDER_TYPE_WHOLESALE,
        )
        order_id = self.repo.insert_order(order)
        log.info("wholesale_order_created id=%s outlet=%s total=%.2f", order_id, outlet.id, order.total)
        return self.repo.get_order(order_id)

    @service_boundary("Error al obtener la orden", not_found=NOT_FOUND)
    def get_order(self, order_id: str) -> Order:
        order = self.repo.get_order(order_id)
        if not order:
            raise NotFoundError(order_id)
        return order

    @service_boundary("Error al obtener las órdenes")
    def list_orders(
        self,
        page_index: int = 0,
        page_size: int = 50,
        search: str = "",
        order_type: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> dict:
        if page_size <= 0:
            raise ValidationError("El tamaño de página debe ser mayor a 0.")
        orders, total = self.repo.list_orders(
            page_index=page_index,
            page_size=page_size,
            search=(search or "").strip(),
            order_type=order_type,
            start_iso=_to_iso(start),
            end_iso=_to_iso(end),
        )
        return {"orders": orders, "total": total, "page_count": math.ceil(total / page_size)}

    @service_boundary("Error al actualizar la orden", not_found=NOT_FOUND)
    def update_order_status(self, order_id: str, status: str) -> Order:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Estado inválido: {status}")
        if not self.repo.update_order_status(order_id, status):
            raise NotFoundError(order_id)
        log.info("order_status_updated id=%s status=%s", order_id, status)
        return self.repo.get_order(order_id)

    @service_boundary("Error al marcar clientes como contactados")
    def mark_whatsapp_contacted(self, client_emails: list[str]) -> int:
        emails = [e.strip().lower() for e in client_emails if e and e.strip()]
        if not emails:
            raise ValidationError("No se seleccionaron clientes.")
        updated = self.repo.set_whatsapp_contacted(emails, now_iso())
        log.info("whatsapp_marked clients=%s orders=%s", len(emails), updated)
        return updated

    @service_boundary("Error al desmarcar clientes")
    def unmark_whatsapp_contacted(self, client_emails: list[str]) -> int:
        emails = [e.strip().lower() for e in client_emails if e and e.strip()]
        if not emails:
            raise ValidationError("No se seleccionaron clientes.")
        return self.repo.set_whatsapp_contacted(emails, None)

    @service_boundary("Error al obtener el estado de contacto")
    def whatsapp_contact_status(self, client_emails: list[str]) -> dict[str, Optional[datetime]]:
        emails = [e.strip().lower() for e in client_emails if e and e.strip()]
        status: dict[str, Optional[datetime]] = {e: None for e in emails}
        status.update(dict(self.repo.whatsapp_contact_status(emails)))
        return status

    @service_boundary("Error al exportar las órdenes")
    def export_orders_excel(self, path: str, start: Optional[datetime] = None, end: Optional[datetime] = None) -> int:
        orders = self.repo.list_orders_between(_to_iso(start), _to_iso(end))

        wb = Workbook()
        ws = wb.active
        ws.title = "Ordenes"
        ws.append([
            "ID", "Fecha", "Tipo", "Estado", "Cliente", "Email", "Teléfono",
            "Productos", "Medio de pago", "Entrega", "Total",
        ])
        for c in ws[1]:
            c.font = Font(bold=True)

        for o in orders:
            products = ", ".join(
                f"{it.name} ({', '.join(f'{opt.name} x{opt.quantity}'.strip() for opt in it.options)})"
                if it.options else it.name
                for it in o.items
            )
            ws.append([
                o.id,
                _to_iso(o.created_at),
                o.order_type,
                o.status,
                o.client_name or "",
                o.client_email or "",
                o.client_phone or "",
                products,
                o.payment_method or "",
                o.delivery_day.isoformat() if o.delivery_day else "",
                float(o.total),
            ])
            ws.cell(row=ws.max_row, column=11).number_format = "#,##0.00"

        ws.freeze_panes = "A2"
        for col, width in {"A": 34, "B": 20, "C": 11, "D": 11, "E": 26, "F": 30, "G": 16, "H": 60, "I": 16, "J": 12, "K": 14}.items():
            ws.column_dimensions[col].width = width
        wb.save(path)
        log.info("orders_exported path=%s rows=%s", path, len(orders))
        return len(orders)
