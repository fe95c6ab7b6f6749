import sys
from datetime import datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def make_repo(tmp_path: Path, name: str = "petdash.db"):
    from petdash.repositories.sqlite_repo import SqliteRepository

    repo = SqliteRepository(tmp_path / name)
    repo.init_db()
    return repo


def add_outlet(repo, name: str = "Pet Shop Norte", zone: str = "NORTE", phone: str | None = "1155550000") -> str:
    return repo.insert_outlet({
        "name": name,
        "zone": zone,
        "frequency": "SEMANAL",
        "business_type": "SOLO_PET_SHOP",
        "has_freezer": True,
        "contact": {"phone": phone, "email": f"{name.lower().replace(' ', '')}@example.com"},
    })


def add_wholesale_price(repo, product: str, weight: str | None, price: float = 1000.0) -> str:
    (pid,) = repo.insert_prices([{
        "section": "OTROS" if weight is None else "PERRO",
        "product": product,
        "weight": weight,
        "price_type": "MAYORISTA",
        "price": price,
        "effective_date": "2024-01-01",
        "month": 1,
        "year": 2024,
        "created_at": "2024-01-01 00:00:00",
        "updated_at": "2024-01-01 00:00:00",
    }])
    return pid


def add_order(
    repo,
    created_at: datetime,
    items,
    order_type: str = "minorista",
    total: float = 0.0,
    outlet_id: str | None = None,
    email: str | None = None,
    status: str = "confirmed",
    same_day: bool = False,
    payment_method: str | None = "cash",
    delivery_day=None,
) -> str:
    from petdash.domain.models import Order

    return repo.insert_order(Order(
        id="",
        created_at=created_at,
        order_type=order_type,
        status=status,
        total=total,
        items=tuple(items),
        same_day_delivery=same_day,
        payment_method=payment_method,
        client_email=email,
        client_name=email.split("@")[0] if email else None,
        client_phone="1144440000" if email else None,
        punto_de_venta=outlet_id,
        delivery_day=delivery_day,
    ))


def item(name: str, *options: tuple[str, int], price: float = 0.0):
    from petdash.domain.models import ItemOption, LineItem

    return LineItem(
        id=name,
        name=name,
        options=tuple(ItemOption(name=o, price=price, quantity=q) for o, q in options),
    )
