from __future__ import annotations

import re
from typing import Iterable, Optional

from petdash.domain.models import CatalogProduct, LineItem, MatrixProduct, PriceEntry
from petdash.services.matching import ProductMatcher, extract_kilos

_UNITS_RE = re.compile(r"X(\d+)", re.IGNORECASE)
_PACK_RE = re.compile(r"\d+\s*GRS?|X\d+", re.IGNORECASE)

_COMPLEMENTS = ("GARRAS", "CORNALITOS", "CALDO", "HUESOS RECREATIVOS", "COMPLEMENTOS")

# flavour position inside each column group
_FLAVOURS = {
    "PERRO": ("POLLO", "CERDO", "VACA", "CORDERO"),
    "BIG DOG": ("POLLO", "VACA"),
    "GATO": ("POLLO", "VACA", "CORDERO"),
    "OTROS": ("GARRAS", "CORNALITOS", "CALDO", "HUESOS RECREATIVOS"),
}


def group_key(section: str, product: str) -> str:
    return f"{section.strip().upper()} - {product.strip().upper()}"


def matrix_products(entries: Iterable[PriceEntry]) -> list[MatrixProduct]:
    """One column per section and product; the first row seen sets the weight."""
    by_key: dict[str, MatrixProduct] = {}
    for entry in entries:
        section = entry.section or "OTROS"
        key = group_key(section, entry.product)
        if key in by_key:
            continue
        kilos = extract_kilos(entry.weight)
        by_key[key] = MatrixProduct(
            group_key=key,
            section=section,
            product=entry.product,
            weight=entry.weight or "UNIDAD",
            kilos=kilos if kilos > 0 else 1,
        )
    return sorted(by_key.values(), key=column_order)


def column_order(p: MatrixProduct) -> tuple:
    product = p.product.upper()
    if p.section == "PERRO":
        group, flavours = (2, _FLAVOURS["BIG DOG"]) if "BIG DOG" in product else (1, _FLAVOURS["PERRO"])
    elif p.section == "GATO":
        group, flavours = 3, _FLAVOURS["GATO"]
    elif p.section == "OTROS":
        if "HUESOS CARNOSOS" in product:
            group = 4
        elif any(c in product for c in _COMPLEMENTS):
            group = 5
        else:
            group = 4.5
        flavours = _FLAVOURS["OTROS"]
    else:
        group, flavours = 999, ()
    flavour = next((i for i, f in enumerate(flavours) if f in product), 999)
    return (group, flavour, p.group_key)


def counts_in_total(p: MatrixProduct) -> bool:
    """Food counts toward an outlet's kilos; complements only fill their column."""
    if p.section in ("PERRO", "GATO"):
        return True
    return p.section == "OTROS" and "HUESOS CARNOSOS" in p.product.upper()


def detect_section(item: LineItem) -> Optional[str]:
    name = (item.name or item.id or "").upper()
    if "GATO" in name:
        return "GATO"
    if "PERRO" in name or "BIG DOG" in name:
        return "PERRO"
    # gram packs and unit packs are sold as complements
    if any(_PACK_RE.search(o.name or "") for o in item.options or ()):
        return "OTROS"
    return None


def _units(text: Optional[str]) -> int:
    match = _UNITS_RE.search(text or "")
    return int(match.group(1)) if match else 1


def item_kilos(item: LineItem, product: MatrixProduct) -> float:
    """Kilos an item adds to its column.

    A kilogram weight in the option name wins; otherwise the product weight
    times any ``X<n>`` pack size in the catalog weight.
    """
    if not item.options:
        return product.kilos * _units(product.weight)
    total = 0
    for opt in item.options:
        quantity = int(opt.quantity or 0)
        option_kilos = extract_kilos(opt.name)
        if option_kilos > 0:
            total += option_kilos * quantity
        else:
            total += product.kilos * quantity * _units(product.weight)
    return total


class MatrixMatcher:
    """Product matcher restricted to the section an item names."""

    def __init__(self, products: list[MatrixProduct]):
        self._matchers: dict[Optional[str], tuple[ProductMatcher, dict[str, MatrixProduct]]] = {}
        for section in (None, *sorted({p.section for p in products})):
            scoped = [p for p in products if section is None or p.section == section]
            by_full_name: dict[str, MatrixProduct] = {}
            catalog = []
            for p in scoped:
                full_name = f"{p.product} {p.weight}" if p.weight != "UNIDAD" else p.product
                by_full_name.setdefault(full_name, p)
                catalog.append(CatalogProduct(full_name=full_name, product=p.product, weight=p.weight, kilos=p.kilos))
            self._matchers[section] = (ProductMatcher(catalog), by_full_name)

    def find(self, item: LineItem) -> Optional[MatrixProduct]:
        scoped = self._matchers.get(detect_section(item))
        if scoped is None:
            return None
        matcher, by_full_name = scoped
        hit = matcher.find(item.name or item.id or "")
        return by_full_name.get(hit.full_name) if hit else None
