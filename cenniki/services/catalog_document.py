"""
Catalog document model.

A producer's price list is a JSON document in one of four layouts. The
layout is part of the producer configuration and is attached to the
document when it is decoded at the storage boundary, so the diff and
apply engines dispatch on it instead of sniffing which keys are present.

Layouts:
    categories  {"categories": {category: {product: record}}}
                record: {"prices": {group: amount}, "sizes": [{"dimension", "prices"}], ...}
    elements    {"products": [{"name", "elements": [{"code", "prices": {group: amount}}
                                                   | {"name", "price"}]}]}
                (elements may also be a mapping code -> element)
    products    {"products": [{"name", "prices": {group: amount}, ...}]}
    rows        {"Arkusz1": [{"MODEL", "grupa I": amount, ...}]}

Everything else in a record (image, material, previousName, notes,
discount, ...) is metadata and is never touched by the engines.
"""

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from cenniki.core.exceptions import CatalogFormatError


class LayoutType(str, Enum):
    """Shape discriminator of a catalog document"""
    CATEGORY_GROUPED = "categories"
    ELEMENT_GROUPED = "elements"
    FLAT_LIST = "products"
    ROW_TABLE = "rows"


ROOT_KEYS = {
    LayoutType.CATEGORY_GROUPED: "categories",
    LayoutType.ELEMENT_GROUPED: "products",
    LayoutType.FLAT_LIST: "products",
    LayoutType.ROW_TABLE: "Arkusz1",
}

ROW_IDENTITY_FIELD = "MODEL"

DEFAULT_ROW_PRICE_GROUPS = (
    "grupa I",
    "grupa II",
    "grupa III",
    "grupa IV",
    "grupa V",
    "grupa VI",
)

# "<element> (<price group>)"
ELEMENT_LABEL_RE = re.compile(r"^(.+?)\s*\((.+?)\)$")

Number = Union[int, float]


@dataclass
class CatalogDocument:
    """A decoded catalog: the raw JSON data tagged with its layout"""

    layout: LayoutType
    data: Dict[str, Any]
    version: Optional[str] = None

    @classmethod
    def decode(cls, layout: Union[LayoutType, str], data: Any, version: Optional[str] = None) -> "CatalogDocument":
        """
        Validate the document root against the layout.

        A missing root container is accepted (it reads as an empty catalog);
        a root container of the wrong JSON type is a format error.
        """
        layout = LayoutType(layout)
        if not isinstance(data, dict):
            raise CatalogFormatError(f"Catalog document must be a JSON object, got {type(data).__name__}")

        root_key = ROOT_KEYS[layout]
        root = data.get(root_key)
        expected = dict if layout == LayoutType.CATEGORY_GROUPED else list
        if root is not None and not isinstance(root, expected):
            raise CatalogFormatError(
                f"Layout '{layout.value}' expects '{root_key}' to be "
                f"{'an object' if expected is dict else 'an array'}"
            )

        return cls(layout=layout, data=data, version=version)

    @property
    def root_key(self) -> str:
        return ROOT_KEYS[self.layout]

    def categories(self) -> Dict[str, Any]:
        root = self.data.get("categories")
        return root if isinstance(root, dict) else {}

    def products(self) -> List[Any]:
        root = self.data.get("products")
        return root if isinstance(root, list) else []

    def rows(self) -> List[Any]:
        root = self.data.get(ROOT_KEYS[LayoutType.ROW_TABLE])
        return root if isinstance(root, list) else []


def build_change_id(
    product: str,
    category: Optional[str] = None,
    element: Optional[str] = None,
    price_group: Optional[str] = None,
    dimension: Optional[str] = None,
) -> str:
    """
    Build the identifier of a price cell from its discriminators.

    ``price_group`` is the bare group name here, never the combined
    "<element> (<group>)" label.

    >>> build_change_id("TRIM", category="stoły", price_group="Grupa I")
    'stoły-TRIM-Grupa I'
    >>> build_change_id("Sofa", element="2F", price_group="A")
    'Sofa-2F-A'
    """
    if category is not None:
        return f"{category}-{product}-{dimension if dimension is not None else price_group}"
    parts = [product]
    if element is not None:
        parts.append(element)
    if price_group is not None:
        parts.append(price_group)
    return "-".join(parts)


def element_label(element_key: str, price_group: str) -> str:
    return f"{element_key} ({price_group})"


def split_element_label(label: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Split "<element> (<group>)" into (element, group); other labels give (label, None)"""
    if not label:
        return None, None
    match = ELEMENT_LABEL_RE.match(label)
    if match:
        return match.group(1), match.group(2)
    return label, None


def element_key(element: Any) -> Optional[str]:
    """Identity of an element: its code, falling back to its name"""
    if not isinstance(element, dict):
        return None
    return element.get("code") or element.get("name")


def iter_elements(product: Dict[str, Any]) -> Iterator[Tuple[str, Dict[str, Any]]]:
    """Yield (key, element) pairs whether elements are stored as a list or a mapping"""
    elements = product.get("elements")
    if isinstance(elements, list):
        for element in elements:
            key = element_key(element)
            if key is not None:
                yield key, element
    elif isinstance(elements, dict):
        for key, element in elements.items():
            if isinstance(element, dict):
                yield element_key(element) or key, element


def find_element(product: Dict[str, Any], key: str) -> Optional[Dict[str, Any]]:
    for candidate_key, element in iter_elements(product):
        if str(candidate_key) == str(key):
            return element
    return None


def find_by_field(items: List[Any], field: str, value: Any) -> Optional[Dict[str, Any]]:
    """First mapping in ``items`` whose ``field`` matches ``value`` (compared as text)"""
    if value is None:
        return None
    for item in items:
        if not isinstance(item, dict):
            continue
        candidate = item.get(field)
        if candidate is not None and str(candidate) == str(value):
            return item
    return None


def to_price(value: Any) -> Optional[Number]:
    """
    Read a price cell as a number.

    Numeric strings ("1200", "1 299,50") are accepted. Booleans, objects
    and anything unparsable read as None, meaning "not a price".
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip().replace("\u00a0", "").replace(" ", "").replace(",", ".")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        if not math.isfinite(number):
            return None
        return int(number) if number.is_integer() else number
    return None
