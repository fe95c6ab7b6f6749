from .models import (
    CatalogProduct,
    LineItem,
    ItemOption,
    Matched,
    Order,
    Outlet,
    OutletStats,
    PriceEntry,
    Unmatched,
)
from .errors import ValidationError, NotFoundError, ScheduleError, DeliveryError
from .results import ServiceResult

__all__ = [
    "CatalogProduct",
    "LineItem",
    "ItemOption",
    "Matched",
    "Order",
    "Outlet",
    "OutletStats",
    "PriceEntry",
    "Unmatched",
    "ValidationError",
    "NotFoundError",
    "ScheduleError",
    "DeliveryError",
    "ServiceResult",
]
