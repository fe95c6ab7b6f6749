import pytest

from petdash.domain.models import ItemOption, LineItem
from petdash.services.product_mapping import (
    CANONICAL_ITEMS,
    ProductMapping,
    build_select_label,
    map_select_option_to_db_format,
    normalize_order_item,
)


@pytest.mark.parametrize("name,weight,option", CANONICAL_ITEMS)
def test_select_label_maps_back_to_same_product(name, weight, option):
    label = build_select_label(name, weight, option)
    assert map_select_option_to_db_format(label) == ProductMapping(name, option)


def test_known_form_labels():
    assert build_select_label("BOX PERRO POLLO", "5KG", "5KG") == "Barfer box Perro Pollo 5kg"
    assert build_select_label("BIG DOG (15kg)", "15KG", "VACA") == "BIG DOG (15kg) - VACA"
    assert map_select_option_to_db_format("Cornalitos 200grs") == ProductMapping("CORNALITOS", "200GRS")
    assert map_select_option_to_db_format("Caldo de huesos") == ProductMapping("CALDO DE HUESOS", "")


def test_unknown_label_is_kept_upper_cased():
    assert map_select_option_to_db_format("Snack de salmón") == ProductMapping("SNACK DE SALMÓN", "")


def test_normalize_item_rewrites_name_and_first_option():
    raw = LineItem(
        id="tmp",
        name="Barfer box Perro Cerdo 10kg",
        options=(ItemOption(name="", price=100.0, quantity=None), ItemOption(name="extra", price=5.0, quantity=2)),
    )
    item = normalize_order_item(raw)

    assert (item.id, item.name) == ("BOX PERRO CERDO", "BOX PERRO CERDO")
    assert [(o.name, o.quantity) for o in item.options] == [("10KG", 1), ("extra", 2)]


def test_normalize_item_prefers_full_name_and_leaves_plain_names():
    plain = normalize_order_item(LineItem(id="x", name="Snack", options=(ItemOption("", quantity=3),)))
    assert plain.name == "Snack"

    from_select = normalize_order_item(
        LineItem(id="x", name="BIG DOG", options=(ItemOption("", quantity=1),)),
        full_name="BIG DOG (15kg) - POLLO",
    )
    assert from_select.name == "BIG DOG (15kg)"
    assert from_select.options[0].name == "POLLO"
