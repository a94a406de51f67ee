"""
Scheduled change models.
Price change-sets and price factor changes waiting for their activation date.
"""

from sqlalchemy import Column, String, Float, Date, DateTime, JSON
from sqlalchemy.sql import func
from cenniki.core.database import Base


class ScheduledPriceChange(Base):
    """
    Scheduled price change-set.

    Table: scheduled_price_changes
    Holds only the atomic diff (``changes``), never a copy of the catalog.
    Status moves pending -> applied exactly once; applied rows are history.
    """
    __tablename__ = "scheduled_price_changes"

    id = Column(String(64), primary_key=True, index=True)  # sc_<millis>_<random>
    producer_slug = Column(String(100), nullable=False, index=True)
    producer_name = Column(String(255), nullable=False)
    scheduled_date = Column(Date, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    changes = Column(JSON, nullable=False)  # list of AtomicChange (camelCase)
    summary = Column(JSON, nullable=False)  # ChangeSummary (camelCase)
    status = Column(String(20), nullable=False, default="pending", index=True)  # pending | applied | cancelled
    applied_at = Column(DateTime(timezone=True), nullable=True)
    apply_report = Column(JSON, nullable=True)  # per-change outcomes of the apply

    def __repr__(self):
        return f"<ScheduledPriceChange(id='{self.id}', producer='{self.producer_slug}', status='{self.status}')>"


class ScheduledFactorChange(Base):
    """
    Scheduled change of a producer's price factor.

    Table: scheduled_factor_changes
    At most one pending row per producer.
    """
    __tablename__ = "scheduled_factor_changes"

    id = Column(String(64), primary_key=True, index=True)
    producer_slug = Column(String(100), nullable=False, index=True)
    producer_name = Column(String(255), nullable=False)
    scheduled_date = Column(Date, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    old_factor = Column(Float, nullable=False)
    new_factor = Column(Float, nullable=False)
    percent_change = Column(Float, nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)
    applied_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<ScheduledFactorChange(id='{self.id}', producer='{self.producer_slug}', status='{self.status}')>"
