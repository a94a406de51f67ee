"""
Pydantic schemas for atomic price changes.
An atomic change is one modified price cell of a catalog document.
"""

from typing import List, Optional
from pydantic import Field

from cenniki.schemas.common import CamelModel, Price


class AtomicChange(CamelModel):
    """One price-cell modification, addressed by its identity path"""
    id: str = Field(..., description="Deterministic identifier derived from the cell path")
    product: str = Field(..., description="Product name (or MODEL for row tables)")
    category: Optional[str] = Field(None, description="Category (category-grouped layouts)")
    element: Optional[str] = Field(None, description="Element code or name (element-grouped layouts)")
    dimension: Optional[str] = Field(None, description="Size dimension (sizes arrays)")
    price_group: Optional[str] = Field(None, description="Price group, or '<element> (<group>)' label")
    old_price: Price
    new_price: Price
    percent_change: float


class ChangeSummary(CamelModel):
    """Denormalized statistics over a list of atomic changes"""
    total_changes: int = 0
    price_increase: int = 0
    price_decrease: int = 0
    avg_change_percent: float = 0


class DiffResult(CamelModel):
    """Output of the diff engine"""
    changes: List[AtomicChange] = []
    summary: ChangeSummary = ChangeSummary()
