from datetime import date
from pathlib import Path

from conftest import add_wholesale_price, make_repo

from petdash.domain.models import PriceEntry
from petdash.services.catalog_service import DEFAULT_PRODUCTS, CatalogCache, CatalogService, build_catalog


def entry(product: str, weight: str | None, pid: str = "p") -> PriceEntry:
    return PriceEntry(
        id=pid, section="PERRO", product=product, weight=weight, price_type="MAYORISTA", price=1.0,
        is_active=True, effective_date="2024-01-01", month=1, year=2024,
        created_at="2024-01-01 00:00:00", updated_at="2024-01-01 00:00:00",
    )


def test_build_catalog_dedupes_and_falls_back_to_one_kilo():
    catalog = build_catalog([
        entry("POLLO", "10KG", "a"),
        entry("POLLO", "10KG", "b"),
        entry("GARRAS", None, "c"),
    ])

    assert [(p.full_name, p.kilos, p.weight) for p in catalog] == [
        ("POLLO 10KG", 10, "10KG"),
        ("GARRAS", 1, "UNIDAD"),
    ]


def test_wholesale_catalog_is_cached_until_a_price_changes(tmp_path: Path):
    repo = make_repo(tmp_path)
    add_wholesale_price(repo, "POLLO", "10KG")
    service = CatalogService(repo, CatalogCache())

    assert len(service.wholesale_catalog()) == 1

    add_wholesale_price(repo, "VACA", "10KG")
    # written behind the service's back: still the cached copy
    assert len(service.wholesale_catalog()) == 1

    created = service.create_price("PERRO", "cerdo", "5KG", "MAYORISTA", 900.0, effective_date="2024-02-10")
    assert created.success
    assert created.data.product == "CERDO"
    assert (created.data.month, created.data.year) == (2, 2024)
    assert len(service.wholesale_catalog()) == 3


def test_cache_invalidation_by_price_type():
    cache = CatalogCache()
    cache.put(("MAYORISTA", 1, 2024), [])
    cache.put(("EFECTIVO", 1, 2024), [])

    cache.invalidate("MAYORISTA")

    assert cache.get(("MAYORISTA", 1, 2024)) is None
    assert cache.get(("EFECTIVO", 1, 2024)) == []


def test_initialize_prices_for_period_is_idempotent(tmp_path: Path):
    repo = make_repo(tmp_path)
    service = CatalogService(repo, CatalogCache())

    expected = sum(len(types) for *_, types in DEFAULT_PRODUCTS)
    assert service.initialize_prices_for_period(5, 2024).data == expected
    assert service.initialize_prices_for_period(5, 2024).data == 0
    assert repo.count_prices_for_period(5, 2024) == expected


def test_price_validation_and_not_found(tmp_path: Path):
    repo = make_repo(tmp_path)
    service = CatalogService(repo, CatalogCache())

    bad = service.create_price("PERRO", "POLLO", "5KG", "MAYORISTA", -1)
    assert not bad.success
    assert bad.error == "El precio no puede ser negativo."

    missing = service.update_price("nope", price=10)
    assert not missing.success
    assert missing.error == "Precio no encontrado"


def test_current_prices_keep_latest_effective_row(tmp_path: Path):
    repo = make_repo(tmp_path)
    service = CatalogService(repo, CatalogCache())
    service.create_price("PERRO", "POLLO", "5KG", "EFECTIVO", 100, effective_date="2024-01-01")
    service.create_price("PERRO", "POLLO", "5KG", "EFECTIVO", 120, effective_date="2024-03-01")

    current = service.get_current_prices().data
    history = service.get_price_history("PERRO", "POLLO", "5KG", "EFECTIVO").data

    assert [p.price for p in current] == [120]
    assert [p.price for p in history] == [120, 100]


def test_price_stats_groups_active_prices(tmp_path: Path):
    repo = make_repo(tmp_path)
    service = CatalogService(repo, CatalogCache())
    service.create_price("PERRO", "POLLO", "5KG", "EFECTIVO", 100)
    service.create_price("GATO", "VACA", "5KG", "MAYORISTA", 300)

    stats = service.get_price_stats().data

    assert stats["total_prices"] == 2
    assert stats["prices_by_section"] == {"PERRO": 1, "GATO": 1}
    assert stats["average_price_by_section"]["GATO"] == 300
    assert stats["price_changes_this_month"] == 2


def test_wholesale_catalog_follows_the_requested_month(tmp_path: Path):
    repo = make_repo(tmp_path)
    add_wholesale_price(repo, "POLLO", "10KG")
    service = CatalogService(repo, CatalogCache())
    assert service.create_price("PERRO", "VACA", "10KG", "MAYORISTA", 1000.0, effective_date="2024-03-01").success
    assert service.create_price("PERRO", "CERDO", "5KG", "MAYORISTA", 900.0, effective_date="2024-03-20", is_active=False).success

    february = service.wholesale_catalog(date(2024, 2, 15))
    march = service.wholesale_catalog(date(2024, 3, 1))

    assert [p.full_name for p in february] == ["POLLO 10KG"]
    assert sorted(p.full_name for p in march) == ["POLLO 10KG", "VACA 10KG"]
    # each month keeps its own cache entry
    assert service.cache.get(("MAYORISTA", 2, 2024)) == february
