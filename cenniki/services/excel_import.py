"""
Excel/CSV import for row-table catalogs.

Reads an uploaded spreadsheet into the row-table document shape
``{"Arkusz1": [{"MODEL": ..., "grupa I": ..., ...}]}`` so it can be
diffed against the producer's saved catalog.
"""

import logging
import math
from io import BytesIO, StringIO
from typing import Any, Dict, List, Optional, Union

import pandas as pd
from fastapi import status

from cenniki.core.exceptions import FileImportError
from cenniki.services.catalog_document import ROOT_KEYS, ROW_IDENTITY_FIELD, LayoutType

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB
MAX_ROWS = 10000
EXCEL_EXTENSIONS = (".xlsx", ".xls")
CSV_EXTENSIONS = (".csv",)


def _read_frame(content: bytes, filename: str, sheet_name: Optional[Union[str, int]]) -> pd.DataFrame:
    lower = filename.lower()
    if lower.endswith(EXCEL_EXTENSIONS):
        return pd.read_excel(BytesIO(content), sheet_name=sheet_name if sheet_name is not None else 0)

    if lower.endswith(CSV_EXTENSIONS):
        # Try UTF-8 first, fall back to latin-1
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError:
            text = content.decode("latin-1")
        return pd.read_csv(StringIO(text))

    raise FileImportError("File must be an Excel (.xlsx, .xls) or CSV (.csv) file")


def _cell_value(value: Any) -> Any:
    """Convert a pandas cell to plain JSON; NaN reads as missing"""
    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return None
        return int(value) if value.is_integer() else value
    if isinstance(value, pd.Timestamp):
        return value.isoformat()
    if hasattr(value, "item"):
        # numpy scalar
        return _cell_value(value.item())
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def read_row_table(
    content: bytes,
    filename: str,
    sheet_name: Optional[Union[str, int]] = None,
) -> Dict[str, List[Dict[str, Any]]]:
    """
    Parse a spreadsheet into a row-table document.

    Args:
        content: Raw file bytes
        filename: Original file name, used to pick the parser
        sheet_name: Excel sheet to read (defaults to the first one)

    Returns:
        {"Arkusz1": rows}, one dict per non-blank row

    Raises:
        FileImportError: Unsupported type, too large, too many rows,
            unreadable file or missing MODEL column
    """
    if len(content) > MAX_FILE_SIZE:
        raise FileImportError("File size exceeds 10 MB limit", status.HTTP_413_REQUEST_ENTITY_TOO_LARGE)

    try:
        df = _read_frame(content, filename or "", sheet_name)
    except FileImportError:
        raise
    except Exception as e:
        raise FileImportError(f"Error reading file '{filename}': {str(e)}")

    if len(df) > MAX_ROWS:
        raise FileImportError(f"File contains {len(df)} rows. Maximum allowed is 10,000 rows.")

    # Strip column names; the identity column is matched case-insensitively
    columns = {}
    for col in df.columns:
        name = str(col).strip()
        if name.upper() == ROW_IDENTITY_FIELD:
            name = ROW_IDENTITY_FIELD
        columns[col] = name
    df = df.rename(columns=columns)

    if ROW_IDENTITY_FIELD not in df.columns:
        raise FileImportError(f"Missing required column: {ROW_IDENTITY_FIELD}")

    rows = []
    for record in df.to_dict(orient="records"):
        row = {}
        for key, value in record.items():
            value = _cell_value(value)
            if value is not None:
                row[key] = value
        if row.get(ROW_IDENTITY_FIELD) is None:
            continue
        row[ROW_IDENTITY_FIELD] = str(row[ROW_IDENTITY_FIELD])
        rows.append(row)

    logger.info(f"Imported {len(rows)} rows from {filename}")
    return {ROOT_KEYS[LayoutType.ROW_TABLE]: rows}
