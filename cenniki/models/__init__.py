"""
Database models for the application.
"""

from cenniki.core.database import Base
from cenniki.models.administrator import Administrator
from cenniki.models.producer import Producer
from cenniki.models.scheduled_change import ScheduledPriceChange, ScheduledFactorChange

__all__ = [
    "Base",
    "Administrator",
    "Producer",
    "ScheduledPriceChange",
    "ScheduledFactorChange",
]
