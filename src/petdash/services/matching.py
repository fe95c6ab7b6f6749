from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

from petdash.domain.models import CatalogProduct, ItemMatch, LineItem, Matched, Unmatched

log = logging.getLogger("petdash.stats")

_KILOS_RE = re.compile(r"(\d+)\s*KG", re.IGNORECASE)
_SPACES_RE = re.compile(r"\s+")


def extract_kilos(weight: Optional[str]) -> int:
    """Integer kilograms in a weight label such as ``"15KG"``; 0 when absent."""
    if not weight or not isinstance(weight, str):
        return 0
    match = _KILOS_RE.search(weight)
    return int(match.group(1)) if match else 0


def normalize_product_name(name: str) -> str:
    return _SPACES_RE.sub(" ", (name or "").strip().upper())


def calculate_item_quantity(item: LineItem) -> int:
    if item.options:
        return sum(int(opt.quantity or 0) for opt in item.options)
    return 1


def _rank(product: CatalogProduct) -> tuple:
    words = normalize_product_name(product.product).split(" ")
    return (-len(words), -len(product.product), product.full_name)


class ProductMatcher:
    """Resolves free-text line items against the wholesale catalog.

    Tiers, first hit wins: exact full name, exact product name, then every
    word of the product name contained in the item name. Inside a tier the
    catalog is ranked most-specific first (more words, then longer name, then
    full name A-Z) so the result never depends on storage order.
    """

    def __init__(self, catalog: Iterable[CatalogProduct]):
        self.catalog = sorted(catalog, key=_rank)
        self._by_full_name: dict[str, CatalogProduct] = {}
        self._by_product: dict[str, CatalogProduct] = {}
        self._words: list[tuple[list[str], CatalogProduct]] = []
        for product in self.catalog:
            self._by_full_name.setdefault(normalize_product_name(product.full_name), product)
            normalized = normalize_product_name(product.product)
            self._by_product.setdefault(normalized, product)
            words = [w for w in normalized.split(" ") if w]
            if words:
                self._words.append((words, product))

    def find(self, item_name: str) -> Optional[CatalogProduct]:
        name = normalize_product_name(item_name)
        if not name:
            return None
        hit = self._by_full_name.get(name) or self._by_product.get(name)
        if hit:
            return hit
        for words, product in self._words:
            if all(word in name for word in words):
                return product
        return None

    def match(self, item: LineItem) -> ItemMatch:
        item_name = item.name or item.id or ""
        product = self.find(item_name)
        if product is None:
            log.info("item_unmatched name=%r", item_name)
            return Unmatched(original_name=item_name)
        return Matched(item_name=item_name, product=product, quantity=calculate_item_quantity(item))

    def order_kilos(self, items: Iterable[LineItem]) -> tuple[int, list[str]]:
        """Matched kilograms of an order plus the names that did not match."""
        total = 0
        unmatched: list[str] = []
        for item in items:
            result = self.match(item)
            if isinstance(result, Unmatched):
                unmatched.append(result.original_name)
            total += result.kilos
        return total, unmatched
