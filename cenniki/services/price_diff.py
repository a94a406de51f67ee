"""
Price diff engine.

Compares two versions of a producer's catalog and reports every modified
price cell as an AtomicChange. Only modifications of cells present on
both sides are reported; products, categories, rows or elements that
exist on one side only produce no change. Missing or non-numeric
branches are skipped, never raised.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Sequence

from cenniki.schemas.price_change import AtomicChange, ChangeSummary, DiffResult
from cenniki.services.catalog_document import (
    CatalogDocument,
    DEFAULT_ROW_PRICE_GROUPS,
    LayoutType,
    ROW_IDENTITY_FIELD,
    Number,
    build_change_id,
    element_label,
    find_by_field,
    find_element,
    iter_elements,
    to_price,
)

logger = logging.getLogger(__name__)

ONE_DECIMAL = Decimal("0.1")


def round_percent(value: float) -> float:
    """Round to one decimal place, halves away from zero"""
    return float(Decimal(repr(value)).quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP))


def percent_change(old_price: Number, new_price: Number) -> float:
    """
    Percent change from old to new, rounded to one decimal.

    A change from zero reads as +100% for a positive new price and 0 otherwise.

    >>> percent_change(100, 110)
    10.0
    >>> percent_change(500, 450)
    -10.0
    """
    if old_price == 0:
        return 100.0 if new_price > 0 else 0.0
    return round_percent((new_price - old_price) / old_price * 100)


def summarize(changes: Sequence[AtomicChange]) -> ChangeSummary:
    """
    Build the change-set summary.

    The average is taken over the already rounded, signed per-cell
    percentages and rounded again to one decimal.
    """
    if not changes:
        return ChangeSummary()

    percents = [change.percent_change for change in changes]
    return ChangeSummary(
        total_changes=len(changes),
        price_increase=sum(1 for p in percents if p > 0),
        price_decrease=sum(1 for p in percents if p < 0),
        avg_change_percent=round_percent(sum(percents) / len(percents)),
    )


def _make_change(
    old_price: Number,
    new_price: Number,
    product: str,
    category: Optional[str] = None,
    element: Optional[str] = None,
    price_group: Optional[str] = None,
    dimension: Optional[str] = None,
) -> AtomicChange:
    product = str(product)
    element = str(element) if element is not None else None
    dimension = str(dimension) if dimension is not None else None

    if element is None:
        label = price_group
    elif price_group is None:
        label = element
    else:
        label = element_label(element, price_group)

    return AtomicChange(
        id=build_change_id(product, category=category, element=element, price_group=price_group, dimension=dimension),
        product=product,
        category=category,
        element=element,
        dimension=dimension,
        price_group=label,
        old_price=old_price,
        new_price=new_price,
        percent_change=percent_change(old_price, new_price),
    )


def _changed_prices(old_prices: Any, new_prices: Any) -> Iterable[tuple]:
    """Yield (group, old, new) for every group whose numeric value differs"""
    if not isinstance(old_prices, dict) or not isinstance(new_prices, dict):
        return
    for group, raw_new in new_prices.items():
        if group not in old_prices:
            continue
        old_price = to_price(old_prices[group])
        new_price = to_price(raw_new)
        if old_price is None or new_price is None:
            continue
        if old_price != new_price:
            yield group, old_price, new_price


# ============================================================================
# Layout-specific comparisons
# ============================================================================

def _diff_categories(old: CatalogDocument, new: CatalogDocument, changes: List[AtomicChange]) -> None:
    old_categories = old.categories()

    for category, products in new.categories().items():
        old_products = old_categories.get(category)
        if not isinstance(products, dict) or not isinstance(old_products, dict):
            continue

        for product_name, new_product in products.items():
            old_product = old_products.get(product_name)
            if not isinstance(new_product, dict) or not isinstance(old_product, dict):
                continue

            for group, old_price, new_price in _changed_prices(old_product.get("prices"), new_product.get("prices")):
                changes.append(_make_change(old_price, new_price, product_name, category=category, price_group=group))

            old_sizes = old_product.get("sizes")
            new_sizes = new_product.get("sizes")
            if not isinstance(old_sizes, list) or not isinstance(new_sizes, list):
                continue

            for new_size in new_sizes:
                if not isinstance(new_size, dict):
                    continue
                dimension = new_size.get("dimension")
                old_size = find_by_field(old_sizes, "dimension", dimension)
                if old_size is None:
                    continue
                # Compound per-group size prices are not compared
                if isinstance(new_size.get("prices"), dict) or isinstance(old_size.get("prices"), dict):
                    continue
                old_price = to_price(old_size.get("prices"))
                new_price = to_price(new_size.get("prices"))
                if not old_price or not new_price or old_price == new_price:
                    continue
                changes.append(_make_change(old_price, new_price, product_name, category=category, dimension=dimension))


def _diff_product_list(old: CatalogDocument, new: CatalogDocument, changes: List[AtomicChange]) -> None:
    old_products = old.products()

    for new_product in new.products():
        if not isinstance(new_product, dict):
            continue
        name = new_product.get("name")
        old_product = find_by_field(old_products, "name", name)
        if name is None or old_product is None:
            continue

        # Flat price groups on the product itself
        for group, old_price, new_price in _changed_prices(old_product.get("prices"), new_product.get("prices")):
            changes.append(_make_change(old_price, new_price, name, price_group=group))

        for key, new_element in iter_elements(new_product):
            old_element = find_element(old_product, key)
            if old_element is None:
                continue

            if isinstance(new_element.get("prices"), dict):
                for group, old_price, new_price in _changed_prices(old_element.get("prices"), new_element["prices"]):
                    changes.append(_make_change(old_price, new_price, name, element=key, price_group=group))
            elif "price" in new_element and "price" in old_element:
                old_price = to_price(old_element["price"])
                new_price = to_price(new_element["price"])
                if old_price is None or new_price is None or old_price == new_price:
                    continue
                changes.append(_make_change(old_price, new_price, name, element=key))


def _diff_rows(
    old: CatalogDocument,
    new: CatalogDocument,
    changes: List[AtomicChange],
    price_groups: Sequence[str],
) -> None:
    old_rows = old.rows()

    for new_row in new.rows():
        if not isinstance(new_row, dict):
            continue
        model = new_row.get(ROW_IDENTITY_FIELD)
        old_row = find_by_field(old_rows, ROW_IDENTITY_FIELD, model)
        if model is None or old_row is None:
            continue

        for group in price_groups:
            if group not in new_row or group not in old_row:
                continue
            old_price = to_price(old_row[group])
            new_price = to_price(new_row[group])
            if old_price is None or new_price is None or old_price == new_price:
                continue
            changes.append(_make_change(old_price, new_price, str(model), price_group=group))


# ============================================================================
# Public API
# ============================================================================

def diff_catalogs(
    old: CatalogDocument,
    new: CatalogDocument,
    price_groups: Optional[Sequence[str]] = None,
) -> DiffResult:
    """
    Compute the atomic price changes between two versions of a catalog.

    Args:
        old: Document the changes are measured against
        new: Edited document
        price_groups: Price-group columns compared for row tables
            (defaults to "grupa I" .. "grupa VI")

    Returns:
        DiffResult with the ordered changes and their summary
    """
    changes: List[AtomicChange] = []

    if old.layout != new.layout:
        logger.debug(f"Diffing mismatched layouts {old.layout.value} -> {new.layout.value}")

    if new.layout == LayoutType.CATEGORY_GROUPED:
        _diff_categories(old, new, changes)
    elif new.layout in (LayoutType.ELEMENT_GROUPED, LayoutType.FLAT_LIST):
        _diff_product_list(old, new, changes)
    elif new.layout == LayoutType.ROW_TABLE:
        _diff_rows(old, new, changes, price_groups or DEFAULT_ROW_PRICE_GROUPS)

    return DiffResult(changes=changes, summary=summarize(changes))


def diff_documents(
    layout: LayoutType,
    old_data: Dict[str, Any],
    new_data: Dict[str, Any],
    price_groups: Optional[Sequence[str]] = None,
) -> DiffResult:
    """Decode two raw JSON documents with the producer's layout and diff them"""
    return diff_catalogs(
        CatalogDocument.decode(layout, old_data),
        CatalogDocument.decode(layout, new_data),
        price_groups=price_groups,
    )
