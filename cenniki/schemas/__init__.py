"""
Schemas for the application.

This module exports the Pydantic models used for request/response validation.
"""

from cenniki.schemas.common import CamelModel, Price, SuccessResponse
from cenniki.schemas.price_change import AtomicChange, ChangeSummary, DiffResult
from cenniki.schemas.login import (
    LoginBase,
    LoginCreate,
    LoginUpdate,
    LoginOut,
    LoginAuth,
    LoginAuthResponse,
)

__all__ = [
    # Shared
    "CamelModel",
    "Price",
    "SuccessResponse",

    # Atomic price changes
    "AtomicChange",
    "ChangeSummary",
    "DiffResult",

    # Administrators
    "LoginBase",
    "LoginCreate",
    "LoginUpdate",
    "LoginOut",
    "LoginAuth",
    "LoginAuthResponse",
]
