"""
Pydantic schemas for producers and their catalog documents.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import Field, field_validator

from cenniki.schemas.common import CamelModel
from cenniki.schemas.price_change import AtomicChange, ChangeSummary
from cenniki.services.catalog_document import LayoutType
from cenniki.services.catalog_store import SLUG_RE


# ============================================================================
# Producer configuration
# ============================================================================

class Promotion(CamelModel):
    text: str
    from_date: Optional[str] = Field(None, alias="from")
    to_date: Optional[str] = Field(None, alias="to")


class ProducerBase(CamelModel):
    display_name: str = Field(..., max_length=255, description="Name shown in the admin panel")
    layout_type: LayoutType = Field(..., description="Shape of the catalog document")
    title: Optional[str] = Field(None, max_length=255)
    color: Optional[str] = Field(None, max_length=20)
    price_factor: float = Field(1.0, gt=0, description="Multiplier applied to list prices")
    price_groups: Optional[List[str]] = Field(None, description="Price-group columns of a row table")
    promotion: Optional[Promotion] = None


class ProducerCreate(ProducerBase):
    slug: str = Field(..., max_length=100, description="URL-safe identifier, also the catalog file name")
    data: Optional[Dict[str, Any]] = Field(None, description="Initial catalog document")

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str) -> str:
        v = v.strip().lower()
        if not SLUG_RE.match(v):
            raise ValueError("Slug may contain only lowercase letters, digits, '-' and '_'")
        return v


class ProducerUpdate(CamelModel):
    """All fields optional"""
    display_name: Optional[str] = Field(None, max_length=255)
    layout_type: Optional[LayoutType] = None
    title: Optional[str] = Field(None, max_length=255)
    color: Optional[str] = Field(None, max_length=20)
    price_factor: Optional[float] = Field(None, gt=0)
    price_groups: Optional[List[str]] = None
    promotion: Optional[Promotion] = None


class ProducerResponse(ProducerBase):
    id: int
    slug: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ============================================================================
# Catalog documents
# ============================================================================

class CatalogDataResponse(CamelModel):
    producer: ProducerResponse
    data: Dict[str, Any]
    version: str


class CatalogSaveRequest(CamelModel):
    data: Dict[str, Any]
    version: Optional[str] = Field(None, description="Version the edit is based on; omit to overwrite")


class CatalogSaveResponse(CamelModel):
    success: bool = True
    version: str
    summary: ChangeSummary


class DiffRequest(CamelModel):
    original_data: Optional[Dict[str, Any]] = Field(None, description="Baseline; defaults to the saved catalog")
    current_data: Dict[str, Any]


class DiffResponse(CamelModel):
    success: bool = True
    changes: List[AtomicChange] = []
    summary: ChangeSummary = ChangeSummary()


class CompareFileResponse(DiffResponse):
    unmatched_models: List[str] = []
    total_rows: int = 0
