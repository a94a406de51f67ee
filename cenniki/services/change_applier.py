"""
Reconciliation engine.

Replays the atomic changes of a scheduled change-set against the
producer's current catalog, which may have drifted since the change-set
was computed. Each change locates its target cell with the same identity
rules the diff engine uses. A change whose cell cannot be found is
skipped and reported in the outcome list; it never fails the batch.

Under the default OVERWRITE policy the new price is written
unconditionally, so replaying a change-set is idempotent. Under the
VERIFY_OLD_PRICE policy a cell holding neither the old nor the new price
is treated as a concurrent edit and left alone.
"""

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from cenniki.schemas.price_change import AtomicChange
from cenniki.services.catalog_document import (
    CatalogDocument,
    LayoutType,
    ROW_IDENTITY_FIELD,
    find_by_field,
    find_element,
    split_element_label,
    to_price,
)

logger = logging.getLogger(__name__)

# A located price cell: the container holding it and the key within it
Cell = Tuple[Dict[str, Any], str]


class ApplyPolicy(str, Enum):
    OVERWRITE = "overwrite"
    VERIFY_OLD_PRICE = "verify"


class OutcomeStatus(str, Enum):
    APPLIED = "applied"
    SKIPPED_NOT_FOUND = "skipped-not-found"
    SKIPPED_CONFLICT = "skipped-conflict"


@dataclass
class ChangeOutcome:
    change_id: str
    status: OutcomeStatus
    current_price: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {"id": self.change_id, "status": self.status.value}
        if self.current_price is not None:
            result["currentPrice"] = self.current_price
        return result


@dataclass
class ApplyResult:
    document: CatalogDocument
    outcomes: List[ChangeOutcome] = field(default_factory=list)

    @property
    def applied_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status == OutcomeStatus.APPLIED)

    @property
    def skipped(self) -> List[ChangeOutcome]:
        return [o for o in self.outcomes if o.status != OutcomeStatus.APPLIED]


# ============================================================================
# Cell location
# ============================================================================

def _locate_in_categories(data: Dict[str, Any], change: AtomicChange) -> Optional[Cell]:
    if change.category is None:
        return None
    categories = data.get("categories")
    if not isinstance(categories, dict):
        return None
    category = categories.get(change.category)
    product = category.get(change.product) if isinstance(category, dict) else None
    if not isinstance(product, dict):
        return None

    if change.dimension is not None:
        sizes = product.get("sizes")
        size = find_by_field(sizes, "dimension", change.dimension) if isinstance(sizes, list) else None
        if size is None:
            return None
        prices = size.get("prices")
        if isinstance(prices, dict):
            if change.price_group is not None and change.price_group in prices:
                return prices, change.price_group
            return None
        return size, "prices"

    prices = product.get("prices")
    if change.price_group is not None and isinstance(prices, dict) and change.price_group in prices:
        return prices, change.price_group
    return None


def _element_target(change: AtomicChange) -> Tuple[Optional[str], Optional[str]]:
    """Resolve (element key, price group) from the change's discriminators"""
    label = change.price_group
    if change.element is not None:
        if label is None or label == change.element:
            return change.element, None
        prefix = f"{change.element} ("
        if label.startswith(prefix) and label.endswith(")"):
            return change.element, label[len(prefix):-1]
        return change.element, label
    # Changes without an element field carry "<element> (<group>)" in the label
    return split_element_label(label)


def _locate_in_product_list(data: Dict[str, Any], change: AtomicChange) -> Optional[Cell]:
    if change.category is not None:
        return None
    products = data.get("products")
    product = find_by_field(products, "name", change.product) if isinstance(products, list) else None
    if product is None:
        return None

    element_key, group = _element_target(change)
    element = find_element(product, element_key) if element_key is not None else None

    if element is not None:
        prices = element.get("prices")
        if group is not None and isinstance(prices, dict) and group in prices:
            return prices, group
        if group is None and "price" in element:
            return element, "price"
        return None

    # No element matched: a flat price group on the product itself
    prices = product.get("prices")
    if change.element is None and change.price_group is not None and isinstance(prices, dict):
        if change.price_group in prices:
            return prices, change.price_group
    return None


def _locate_in_rows(data: Dict[str, Any], change: AtomicChange) -> Optional[Cell]:
    rows = data.get("Arkusz1")
    row = find_by_field(rows, ROW_IDENTITY_FIELD, change.product) if isinstance(rows, list) else None
    if row is None or change.price_group is None or change.price_group not in row:
        return None
    return row, change.price_group


def locate_cell(document: CatalogDocument, change: AtomicChange) -> Optional[Cell]:
    """Find the price cell an atomic change targets, or None when it has drifted away"""
    if document.layout == LayoutType.CATEGORY_GROUPED:
        return _locate_in_categories(document.data, change)
    if document.layout in (LayoutType.ELEMENT_GROUPED, LayoutType.FLAT_LIST):
        return _locate_in_product_list(document.data, change)
    if document.layout == LayoutType.ROW_TABLE:
        return _locate_in_rows(document.data, change)
    return None


# ============================================================================
# Public API
# ============================================================================

def apply_changes(
    document: CatalogDocument,
    changes: Sequence[AtomicChange],
    policy: ApplyPolicy = ApplyPolicy.OVERWRITE,
) -> ApplyResult:
    """
    Replay atomic changes against a catalog document.

    The input document is not modified; the result holds a deep copy with
    the new prices written in, plus one outcome per change in input order.
    """
    result_doc = CatalogDocument(
        layout=document.layout,
        data=copy.deepcopy(document.data),
        version=document.version,
    )
    outcomes: List[ChangeOutcome] = []

    for change in changes:
        cell = locate_cell(result_doc, change)
        if cell is None:
            logger.debug(f"Skipping change {change.id}: target cell not found")
            outcomes.append(ChangeOutcome(change.id, OutcomeStatus.SKIPPED_NOT_FOUND))
            continue

        container, key = cell
        if policy == ApplyPolicy.VERIFY_OLD_PRICE:
            current = to_price(container[key])
            if current is not None and current != change.old_price and current != change.new_price:
                logger.debug(
                    f"Skipping change {change.id}: expected {change.old_price}, found {current}"
                )
                outcomes.append(ChangeOutcome(change.id, OutcomeStatus.SKIPPED_CONFLICT, current_price=current))
                continue

        container[key] = change.new_price
        outcomes.append(ChangeOutcome(change.id, OutcomeStatus.APPLIED))

    return ApplyResult(document=result_doc, outcomes=outcomes)
