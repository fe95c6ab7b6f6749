from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, Union


ORDER_TYPE_RETAIL = "minorista"
ORDER_TYPE_WHOLESALE = "mayorista"

PRICE_TYPE_CASH = "EFECTIVO"
PRICE_TYPE_TRANSFER = "TRANSFERENCIA"
PRICE_TYPE_WHOLESALE = "MAYORISTA"

ZONES = ("CABA", "LA_PLATA", "OESTE", "NOROESTE", "NORTE", "SUR")
OUTLET_FREQUENCIES = ("SEMANAL", "QUINCENAL", "MENSUAL", "OCASIONAL")
BUSINESS_TYPES = ("SOLO_PET_SHOP", "PET_SHOP_VETE", "PET_SHOP_PELUQUERIA", "COMPLETO")
ORDER_STATUSES = ("pending", "confirmed", "delivered", "cancelled")
PRICE_SECTIONS = ("PERRO", "GATO", "OTROS")
PRICE_TYPES = (PRICE_TYPE_CASH, PRICE_TYPE_TRANSFER, PRICE_TYPE_WHOLESALE)


@dataclass(frozen=True)
class ItemOption:
    name: str
    price: float = 0.0
    quantity: Optional[int] = None


@dataclass(frozen=True)
class LineItem:
    id: str
    name: str
    options: Optional[tuple[ItemOption, ...]] = None
    price: float = 0.0
    quantity: Optional[int] = None


@dataclass(frozen=True)
class Order:
    id: str
    created_at: datetime
    order_type: str
    status: str
    total: float
    items: tuple[LineItem, ...]
    same_day_delivery: bool = False
    payment_method: Optional[str] = None
    delivery_day: Optional[date] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    punto_de_venta: Optional[str] = None
    whatsapp_contacted_at: Optional[datetime] = None


@dataclass(frozen=True)
class PriceEntry:
    id: str
    section: str
    product: str
    weight: Optional[str]
    price_type: str
    price: float
    is_active: bool
    effective_date: str
    month: int
    year: int
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class CatalogProduct:
    full_name: str
    product: str
    weight: str
    kilos: int


@dataclass(frozen=True)
class Matched:
    item_name: str
    product: CatalogProduct
    quantity: int

    @property
    def kilos(self) -> int:
        return self.product.kilos * self.quantity


@dataclass(frozen=True)
class Unmatched:
    original_name: str

    @property
    def kilos(self) -> int:
        return 0


ItemMatch = Union[Matched, Unmatched]


@dataclass(frozen=True)
class Contact:
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None


@dataclass(frozen=True)
class MonthlyKilos:
    month: int
    year: int
    kilos: float


@dataclass(frozen=True)
class Outlet:
    id: str
    name: str
    zone: str
    frequency: str
    sales_start_date: Optional[str]
    has_freezer: bool
    business_type: str
    contact: Contact
    active: bool = True
    freezer_capacity: Optional[float] = None
    notes: Optional[str] = None
    monthly_kilos: tuple[MonthlyKilos, ...] = ()
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class OutletStats:
    id: str
    name: str
    zone: str
    phone: str
    total_kilos: int
    frequency_label: str
    average_kilos_per_order: int
    last_order_kilos: int
    total_orders: int
    first_order_at: Optional[datetime] = None
    last_order_at: Optional[datetime] = None
    unmatched_items: tuple[str, ...] = ()


@dataclass(frozen=True)
class MatrixProduct:
    """One matrix column: a catalog product grouped across its weights."""

    group_key: str
    section: str
    product: str
    weight: str
    kilos: int


@dataclass(frozen=True)
class ProductMatrixRow:
    outlet_id: str
    name: str
    zone: str
    products: dict[str, float]
    total_kilos: float


@dataclass(frozen=True)
class ProductMatrix:
    rows: tuple[ProductMatrixRow, ...]
    product_names: tuple[str, ...]


@dataclass(frozen=True)
class ZoneVolume:
    zone: str
    total_outlets: int
    total_kilos_current_month: float


@dataclass(frozen=True)
class DeliveryTypeStats:
    month: str
    same_day_orders: int
    normal_orders: int
    wholesale_orders: int
    same_day_revenue: float
    normal_revenue: float
    wholesale_revenue: float


@dataclass
class QuantityStats:
    month: str
    pollo: float = 0.0
    vaca: float = 0.0
    cerdo: float = 0.0
    cordero: float = 0.0
    big_dog_pollo: float = 0.0
    big_dog_vaca: float = 0.0
    total_perro: float = 0.0
    gato_pollo: float = 0.0
    gato_vaca: float = 0.0
    gato_cordero: float = 0.0
    total_gato: float = 0.0
    huesos_carnosos: float = 0.0
    total_mes: float = 0.0


@dataclass(frozen=True)
class ProductSales:
    product: str
    units: int
    revenue: float


@dataclass(frozen=True)
class DailyRevenue:
    day: str
    revenue: float
    orders: int


@dataclass(frozen=True)
class PeriodSummary:
    start: datetime
    end: datetime
    orders: int
    revenue: float
    average_ticket: float


@dataclass(frozen=True)
class ClientSummary:
    email: str
    name: Optional[str]
    phone: Optional[str]
    total_orders: int
    total_spent: float
    first_order_at: datetime
    last_order_at: datetime
    behavior: str
    spending: str
    whatsapp_contacted_at: Optional[datetime] = None


@dataclass(frozen=True)
class ClientGeneralStats:
    total_clients: int
    average_monthly_spending: float
    repeat_customer_rate: float
    average_orders_per_customer: float


@dataclass(frozen=True)
class Campaign:
    id: str
    name: str
    channel: str
    schedule: str
    segment: str
    subject: str
    content: str
    active: bool = True
    last_sent_at: Optional[datetime] = None


@dataclass(frozen=True)
class CampaignDispatch:
    campaign_id: str
    name: str
    recipients: int
    fire_time: datetime


@dataclass(frozen=True)
class CampaignTickReport:
    dispatched: tuple[CampaignDispatch, ...] = ()
    skipped: tuple[str, ...] = field(default_factory=tuple)
