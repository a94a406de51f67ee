"""
Producer and catalog API endpoints.

Producer configuration CRUD plus the catalog document endpoints used by
the admin editor: read, immediate save, diff preview and spreadsheet
comparison for row-table producers.
"""

import logging
from typing import List
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from cenniki.core.auth import get_current_user_email
from cenniki.core.config import settings
from cenniki.core.database import get_db
from cenniki.core.dependencies import get_catalog_store, get_notifier
from cenniki.core.exceptions import ProducerNotFoundError
from cenniki.models.producer import Producer
from cenniki.schemas.common import SuccessResponse
from cenniki.schemas.producer import (
    CatalogDataResponse,
    CatalogSaveRequest,
    CatalogSaveResponse,
    CompareFileResponse,
    DiffRequest,
    DiffResponse,
    ProducerCreate,
    ProducerResponse,
    ProducerUpdate,
)
from cenniki.services.catalog_document import (
    ROOT_KEYS,
    ROW_IDENTITY_FIELD,
    CatalogDocument,
    LayoutType,
    find_by_field,
)
from cenniki.services.catalog_store import CatalogStore
from cenniki.services.excel_import import read_row_table
from cenniki.services.notifier import PriceChangeNotifier, build_model_change_summary
from cenniki.services.price_diff import diff_catalogs, round_percent
from cenniki.services.producer_repository import ProducerRepository
from cenniki.services.scheduled_change_repository import ScheduledChangeRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/producers", tags=["Producers & Catalogs"])


def _empty_document(layout: LayoutType) -> CatalogDocument:
    layout = LayoutType(layout)
    root = {} if layout == LayoutType.CATEGORY_GROUPED else []
    return CatalogDocument.decode(layout, {ROOT_KEYS[layout]: root})


def _price_groups(producer: Producer) -> List[str]:
    return producer.price_groups or list(settings.ROW_TABLE_PRICE_GROUPS)


# ============================================================================
# PRODUCER CONFIGURATION
# ============================================================================

@router.post("", response_model=ProducerResponse, status_code=status.HTTP_201_CREATED)
def create_producer(
    producer: ProducerCreate,
    db: Session = Depends(get_db),
    store: CatalogStore = Depends(get_catalog_store),
    _: str = Depends(get_current_user_email),
):
    """
    Create a producer and its catalog document.

    When no initial ``data`` is given an empty document of the chosen
    layout is stored.
    """
    if ProducerRepository.get_by_slug(db, producer.slug):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Producer '{producer.slug}' already exists"
        )

    if producer.data is not None:
        document = CatalogDocument.decode(producer.layout_type, producer.data)
    else:
        document = _empty_document(producer.layout_type)

    db_producer = ProducerRepository.create(db, producer)
    if not store.exists(producer.slug):
        store.write(producer.slug, document)
    return db_producer


@router.get("", response_model=List[ProducerResponse])
def list_producers(skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    return ProducerRepository.get_all(db, skip=skip, limit=limit)


@router.get("/{slug}", response_model=ProducerResponse)
def get_producer(slug: str, db: Session = Depends(get_db)):
    return ProducerRepository.require(db, slug)


@router.put("/{slug}", response_model=ProducerResponse)
def update_producer(
    slug: str,
    producer_update: ProducerUpdate,
    db: Session = Depends(get_db),
    notifier: PriceChangeNotifier = Depends(get_notifier),
    _: str = Depends(get_current_user_email),
):
    """
    Update producer configuration.

    An immediate price factor change is announced the same way as a
    scheduled one.
    """
    existing = ProducerRepository.require(db, slug)
    old_factor = existing.price_factor

    updated = ProducerRepository.update(db, slug, producer_update)
    if updated is None:
        raise ProducerNotFoundError(slug)

    new_factor = updated.price_factor
    if producer_update.price_factor is not None and new_factor != old_factor:
        percent = round_percent((new_factor - old_factor) / old_factor * 100) if old_factor else 0.0
        notifier.notify_price_update(
            updated.display_name,
            build_model_change_summary([], factor_change={
                "oldFactor": old_factor,
                "newFactor": new_factor,
                "percentChange": percent,
            }),
        )
    return updated


@router.delete("/{slug}", response_model=SuccessResponse)
def delete_producer(
    slug: str,
    db: Session = Depends(get_db),
    store: CatalogStore = Depends(get_catalog_store),
    _: str = Depends(get_current_user_email),
):
    """Delete a producer, its catalog document and its pending change-sets"""
    ProducerRepository.require(db, slug)
    cancelled = ScheduledChangeRepository.cancel_pending_for_producer(db, slug)
    ProducerRepository.delete(db, slug)
    store.delete(slug)
    logger.info(f"Deleted producer {slug} ({cancelled} pending change-sets cancelled)")
    return SuccessResponse(message=f"Producer '{slug}' deleted", producer_slug=slug)


# ============================================================================
# CATALOG DOCUMENTS
# ============================================================================

@router.get("/{slug}/data", response_model=CatalogDataResponse)
def get_catalog(
    slug: str,
    db: Session = Depends(get_db),
    store: CatalogStore = Depends(get_catalog_store),
):
    producer = ProducerRepository.require(db, slug)
    document = store.read(slug, producer.layout_type)
    return CatalogDataResponse(producer=ProducerResponse.model_validate(producer), data=document.data, version=document.version)


@router.put("/{slug}/data", response_model=CatalogSaveResponse)
def save_catalog(
    slug: str,
    request: CatalogSaveRequest,
    db: Session = Depends(get_db),
    store: CatalogStore = Depends(get_catalog_store),
    notifier: PriceChangeNotifier = Depends(get_notifier),
    _: str = Depends(get_current_user_email),
):
    """
    Save an edited catalog immediately.

    With ``version`` set, the save fails with 409 if the catalog changed
    since that version was read. The price changes against the previous
    document are announced by e-mail.
    """
    producer = ProducerRepository.require(db, slug)
    new_document = CatalogDocument.decode(producer.layout_type, request.data)

    with store.locked(slug):
        if store.exists(slug):
            previous = store.read(slug, producer.layout_type)
        else:
            previous = _empty_document(producer.layout_type)
        version = store.write(slug, new_document, expected_version=request.version)

    diff = diff_catalogs(previous, new_document, price_groups=_price_groups(producer))
    if diff.changes:
        notifier.notify_price_update(producer.display_name, build_model_change_summary(diff.changes))

    return CatalogSaveResponse(version=version, summary=diff.summary)


@router.post("/{slug}/diff", response_model=DiffResponse)
def diff_catalog(
    slug: str,
    request: DiffRequest,
    db: Session = Depends(get_db),
    store: CatalogStore = Depends(get_catalog_store),
):
    """
    Compute atomic price changes of an edit without saving it.

    The saved catalog is the baseline unless ``originalData`` is given.
    """
    producer = ProducerRepository.require(db, slug)
    current = CatalogDocument.decode(producer.layout_type, request.current_data)
    if request.original_data is not None:
        original = CatalogDocument.decode(producer.layout_type, request.original_data)
    else:
        original = store.read(slug, producer.layout_type)

    diff = diff_catalogs(original, current, price_groups=_price_groups(producer))
    return DiffResponse(changes=diff.changes, summary=diff.summary)


@router.post("/{slug}/compare-file", response_model=CompareFileResponse)
async def compare_file(
    slug: str,
    file: UploadFile = File(..., description="Excel (.xlsx, .xls) or CSV file with a MODEL column"),
    db: Session = Depends(get_db),
    store: CatalogStore = Depends(get_catalog_store),
    _: str = Depends(get_current_user_email),
):
    """
    Compare an uploaded price sheet with a row-table producer's catalog.

    **Returns:**
    - The atomic changes the sheet would make, their summary, and the
      MODEL values of the sheet that do not exist in the catalog
    """
    producer = ProducerRepository.require(db, slug)
    if LayoutType(producer.layout_type) != LayoutType.ROW_TABLE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Producer '{slug}' does not use a row-table catalog"
        )

    content = await file.read()
    candidate = CatalogDocument.decode(LayoutType.ROW_TABLE, read_row_table(content, file.filename or ""))
    live = store.read(slug, LayoutType.ROW_TABLE)

    diff = diff_catalogs(live, candidate, price_groups=_price_groups(producer))
    live_rows = live.rows()
    unmatched = [
        row[ROW_IDENTITY_FIELD]
        for row in candidate.rows()
        if find_by_field(live_rows, ROW_IDENTITY_FIELD, row[ROW_IDENTITY_FIELD]) is None
    ]

    return CompareFileResponse(
        changes=diff.changes,
        summary=diff.summary,
        unmatched_models=unmatched,
        total_rows=len(candidate.rows()),
    )
