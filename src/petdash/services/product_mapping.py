from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Optional

from petdash.domain.models import ItemOption, LineItem

log = logging.getLogger("petdash.mapping")


@dataclass(frozen=True)
class ProductMapping:
    name: str
    option: str


# (db name, weight, db option) for every product offered in the order form
CANONICAL_ITEMS: tuple[tuple[str, Optional[str], str], ...] = (
    *(
        (f"BOX PERRO {protein}", size, size)
        for protein in ("POLLO", "CERDO", "VACA", "CORDERO")
        for size in ("5KG", "10KG")
    ),
    *((f"BOX GATO {protein}", "5KG", "5KG") for protein in ("VACA", "POLLO", "CORDERO")),
    *(("BIG DOG (15kg)", "15KG", protein) for protein in ("POLLO", "VACA", "CORDERO")),
    ("HUESOS CARNOSOS", "5KG", "5KG"),
    ("BOX DE COMPLEMENTOS", None, "1 U"),
    ("CALDO DE HUESOS", None, ""),
    ("HUESOS RECREATIVOS", None, ""),
    ("TRAQUEA", None, "X1"),
    ("TRAQUEA", None, "X2"),
    ("OREJAS", None, ""),
    ("POLLO", None, "40GRS"),
    ("POLLO", None, "100GRS"),
    ("HIGADO", None, "40GRS"),
    ("HIGADO", None, "100GRS"),
    ("CORNALITOS", None, "30GRS"),
    ("CORNALITOS", None, "200GRS"),
    ("GARRAS", None, "300GRS"),
)

_BOX_RE = re.compile(r"^BOX (PERRO|GATO) (\w+)$")
_SIZE_RE = re.compile(r"\b(5|10)\s*kg\b")
_GRAMS_RE = re.compile(r"\b(\d+)\s*grs?\b")

# keywords that mark an item name as typed from the order form
_SELECT_MARKERS = (
    "barfer box", "big dog", "huesos", "hueso recreativo", "traquea", "orejas",
    "pollo", "cornalitos", "caldo", "garras", "complementos",
)


def build_select_label(name: str, weight: Optional[str], option: str) -> str:
    """Display text of a product in the order form select."""
    box = _BOX_RE.match(name)
    if box:
        size = (option or weight or "").lower()
        return f"Barfer box {box.group(1).capitalize()} {box.group(2).capitalize()} {size}".strip()
    if name.startswith("BIG DOG"):
        return f"BIG DOG ({(weight or '15KG').lower()}) - {option}"
    if name == "HUESOS CARNOSOS":
        return f"HUESOS CARNOSOS - {option or weight}"
    if name == "BOX DE COMPLEMENTOS":
        return f"Box de Complementos - {option}"
    if name == "HUESOS RECREATIVOS":
        return "Hueso recreativo"
    label = name.capitalize()
    return f"{label} {option.lower()}" if option else label


def _box(text: str) -> Optional[ProductMapping]:
    animal = "GATO" if "gato" in text else "PERRO" if "perro" in text else None
    if animal is None:
        return None
    proteins = ("vaca", "pollo", "cordero") if animal == "GATO" else ("vaca", "pollo", "cerdo", "cordero")
    protein = next((p for p in proteins if p in text), None)
    size = _SIZE_RE.search(text)
    if protein is None or size is None:
        return None
    # cat boxes only come in 5kg
    if animal == "GATO" and size.group(1) != "5":
        return None
    return ProductMapping(f"BOX {animal} {protein.upper()}", f"{size.group(1)}KG")


def _grams(text: str, allowed: tuple[str, ...]) -> Optional[str]:
    match = _GRAMS_RE.search(text)
    if match and match.group(1) in allowed:
        return f"{match.group(1)}GRS"
    return None


def map_select_option_to_db_format(label: str) -> ProductMapping:
    """Parse an order form label back into the stored ``(name, option)`` pair.

    Labels that match no rule keep their text upper-cased with an empty option.
    """
    text = (label or "").lower().strip()

    if ("perro" in text or "gato" in text) and "big dog" not in text:
        mapped = _box(text)
        if mapped:
            return mapped

    if "big dog" in text:
        for protein in ("pollo", "vaca", "cordero"):
            if protein in text:
                return ProductMapping("BIG DOG (15kg)", protein.upper())

    # caldo and recreational bones must win over the generic bones rule
    if "caldo" in text:
        return ProductMapping("CALDO DE HUESOS", "")
    if "hueso recreativo" in text or "huesos recreativos" in text:
        return ProductMapping("HUESOS RECREATIVOS", "")
    if "huesos" in text:
        return ProductMapping("HUESOS CARNOSOS", "5KG")
    if "complementos" in text:
        return ProductMapping("BOX DE COMPLEMENTOS", "1 U")

    if "traquea" in text:
        for pieces in ("x1", "x2"):
            if pieces in text:
                return ProductMapping("TRAQUEA", pieces.upper())
    if "orejas" in text:
        return ProductMapping("OREJAS", "")

    for product, allowed in (("pollo", ("40", "100")), ("higado", ("40", "100")), ("garras", ("300",))):
        if product in text:
            grams = _grams(text, allowed)
            if grams:
                return ProductMapping(product.upper(), grams)
    if "cornalitos" in text:
        grams = _grams(text, ("30", "200"))
        if grams is None:
            log.warning("select_label_without_weight label=%r", label)
        return ProductMapping("CORNALITOS", grams or "")

    log.warning("select_label_unmapped label=%r", label)
    return ProductMapping((label or "").strip().upper(), "")


def _is_select_text(name: str) -> bool:
    lowered = (name or "").lower()
    return any(marker in lowered for marker in _SELECT_MARKERS)


def normalize_order_item(item: LineItem, full_name: Optional[str] = None) -> LineItem:
    """Rewrite an item typed from the order form into its stored shape.

    ``full_name`` is the select label when the form sends it apart from the
    item name. Options default to quantity 1 and price 0.
    """
    options = tuple(
        ItemOption(name=o.name or "", price=float(o.price or 0), quantity=1 if o.quantity is None else int(o.quantity))
        for o in (item.options or ())
    )
    source = None
    if full_name and full_name != item.name:
        source = full_name
    elif _is_select_text(item.name):
        source = item.name

    if source is not None:
        mapped = map_select_option_to_db_format(source)
        if options and mapped.option:
            options = (replace(options[0], name=mapped.option), *options[1:])
        item = replace(item, id=mapped.name, name=mapped.name)

    return replace(item, options=options, price=float(item.price or 0))


def normalize_order_items(items, full_names: Optional[dict[int, str]] = None) -> tuple[LineItem, ...]:
    full_names = full_names or {}
    return tuple(normalize_order_item(item, full_names.get(i)) for i, item in enumerate(items or ()))
