from datetime import date, datetime
from pathlib import Path

from conftest import add_order, item, make_repo

from petdash.services.analytics_service import AnalyticsService, categorize_product, product_weight


def test_product_weight_and_category_heuristics():
    assert product_weight("BIG DOG (15kg)", "VACA") == 15
    assert product_weight("BOX PERRO POLLO", "10KG") == 10
    assert product_weight("BOX DE COMPLEMENTOS", "1 U") == 10
    assert product_weight("OREJAS", "") == 0

    assert categorize_product("BIG DOG (15kg)", "POLLO") == "big_dog_pollo"
    assert categorize_product("BOX GATO VACA", "5KG") == "gato_vaca"
    assert categorize_product("BOX PERRO CERDO", "5KG") == "cerdo"
    assert categorize_product("HUESOS CARNOSOS", "5KG") == "huesos_carnosos"
    assert categorize_product("HUESOS RECREATIVOS", "") == "otros"


def test_delivery_type_stats_group_by_month(tmp_path: Path):
    repo = make_repo(tmp_path)
    add_order(repo, datetime(2024, 1, 3), [item("POLLO", ("5KG", 1))], total=100, same_day=True)
    add_order(repo, datetime(2024, 1, 4), [item("POLLO", ("5KG", 1))], total=200)
    add_order(repo, datetime(2024, 1, 5), [item("GARRAS", ("", 1))], total=300, order_type="mayorista")
    add_order(repo, datetime(2024, 2, 1), [item("POLLO", ("5KG", 1))], total=50)

    stats = AnalyticsService(repo).delivery_type_stats_by_month().data

    assert [s.month for s in stats] == ["2024-01", "2024-02"]
    jan = stats[0]
    assert (jan.same_day_orders, jan.normal_orders, jan.wholesale_orders) == (1, 1, 1)
    assert (jan.same_day_revenue, jan.normal_revenue, jan.wholesale_revenue) == (100, 200, 300)

    only_feb = AnalyticsService(repo).delivery_type_stats_by_month(datetime(2024, 2, 1), datetime(2024, 2, 28)).data
    assert [s.month for s in only_feb] == ["2024-02"]


def test_quantity_stats_split_by_client_type(tmp_path: Path):
    repo = make_repo(tmp_path)
    add_order(repo, datetime(2024, 1, 10), [
        item("BOX PERRO POLLO", ("5KG", 2)),
        item("BIG DOG (15kg)", ("VACA", 1)),
    ])
    add_order(repo, datetime(2024, 1, 11), [item("BOX GATO CORDERO", ("5KG", 1))], same_day=True)
    add_order(repo, datetime(2024, 1, 12), [item("HUESOS CARNOSOS", ("5KG", 3))], order_type="mayorista")

    stats = AnalyticsService(repo).quantity_stats_by_month().data

    (retail,) = stats["minorista"]
    assert (retail.pollo, retail.big_dog_vaca, retail.total_perro, retail.total_mes) == (10, 15, 25, 25)
    (same_day,) = stats["sameDay"]
    assert (same_day.gato_cordero, same_day.total_gato, same_day.total_perro) == (5, 5, 0)
    (wholesale,) = stats["mayorista"]
    assert (wholesale.huesos_carnosos, wholesale.total_mes) == (15, 15)


def test_bank_transfer_counts_as_same_day(tmp_path: Path):
    repo = make_repo(tmp_path)
    add_order(repo, datetime(2024, 1, 10), [item("BOX PERRO VACA", ("10KG", 1))], payment_method="bank-transfer")

    stats = AnalyticsService(repo).quantity_stats_by_month().data
    assert stats["sameDay"][0].vaca == 10
    assert stats["minorista"][0].total_mes == 0


def test_product_stats_and_revenue_by_day(tmp_path: Path):
    repo = make_repo(tmp_path)
    add_order(repo, datetime(2024, 1, 10, 10), [item("POLLO", ("5KG", 3), price=100)], total=300)
    add_order(repo, datetime(2024, 1, 10, 12), [item("VACA", ("5KG", 1), price=150)], total=150)
    add_order(repo, datetime(2024, 1, 11), [item("VACA", ("5KG", 1), price=150)], total=150, status="cancelled")

    service = AnalyticsService(repo)
    products = service.product_stats().data
    assert [(p.product, p.units, p.revenue) for p in products] == [("POLLO", 3, 300), ("VACA", 1, 150)]

    days = service.revenue_by_day(datetime(2024, 1, 1), datetime(2024, 2, 1)).data
    assert [(d.day, d.revenue, d.orders) for d in days] == [("2024-01-10", 450, 2)]


def test_compare_periods_reads_both_periods(tmp_path: Path):
    repo = make_repo(tmp_path)
    add_order(repo, datetime(2024, 1, 3), [item("POLLO", ("5KG", 1))], total=100)
    add_order(repo, datetime(2024, 1, 10), [item("POLLO", ("5KG", 1))], total=150)
    add_order(repo, datetime(2024, 1, 12), [item("POLLO", ("5KG", 1))], total=150)

    result = AnalyticsService(repo).compare_periods(datetime(2024, 1, 8), datetime(2024, 1, 15)).data

    assert (result["current"].orders, result["current"].revenue) == (2, 300)
    assert (result["previous"].orders, result["previous"].revenue) == (1, 100)
    assert result["current"].average_ticket == 150
    assert result["orders_change_pct"] == 100.0
    assert result["revenue_change_pct"] == 200.0


def test_inverted_range_is_a_validation_failure(tmp_path: Path):
    result = AnalyticsService(make_repo(tmp_path)).revenue_by_day(datetime(2024, 2, 1), datetime(2024, 1, 1))
    assert not result.success
    assert result.error == "La fecha de inicio debe ser anterior a la fecha de fin."


def test_quantity_stats_include_deliveries_on_both_range_edges(tmp_path: Path):
    repo = make_repo(tmp_path)
    add_order(repo, datetime(2023, 12, 30), [item("BOX PERRO POLLO", ("5KG", 2))], delivery_day=date(2024, 1, 1))
    add_order(repo, datetime(2024, 1, 29), [item("BOX PERRO VACA", ("10KG", 1))], delivery_day=date(2024, 1, 31))
    add_order(repo, datetime(2024, 1, 30), [item("BOX PERRO CERDO", ("5KG", 1))], delivery_day=date(2024, 2, 1))

    result = AnalyticsService(repo).quantity_stats_by_month(datetime(2024, 1, 1), datetime(2024, 1, 31)).data

    (jan,) = result["minorista"]
    assert jan.month == "2024-01"
    assert (jan.pollo, jan.vaca, jan.cerdo) == (10, 10, 0)
    assert jan.total_mes == 20
