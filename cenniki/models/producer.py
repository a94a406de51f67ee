"""
Producer model.
Configuration of one furniture manufacturer whose price list is managed here.
"""

from sqlalchemy import Column, Integer, String, Float, JSON, DateTime
from sqlalchemy.sql import func
from cenniki.core.database import Base


class Producer(Base):
    """
    Producer model - one row per manufacturer.

    Table: producers
    The catalog document itself lives in the catalog store; layout_type
    tells the engines how that document is shaped.
    """
    __tablename__ = "producers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    slug = Column(String(100), unique=True, nullable=False, index=True)  # mp-nidzica, bomar, ...
    display_name = Column(String(255), nullable=False)
    layout_type = Column(String(20), nullable=False)  # categories | elements | products | rows
    title = Column(String(255), nullable=True)
    color = Column(String(20), nullable=True)
    price_factor = Column(Float, nullable=False, default=1.0)
    price_groups = Column(JSON, nullable=True)  # row-table price columns override
    promotion = Column(JSON, nullable=True)  # {"text", "from", "to"}
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Producer(slug='{self.slug}', layout='{self.layout_type}')>"
