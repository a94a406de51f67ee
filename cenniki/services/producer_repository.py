"""
Repository layer for producer configuration.
Handles all database queries and operations for the producers table.
"""

from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from fastapi import HTTPException, status

from cenniki.core.exceptions import ProducerNotFoundError
from cenniki.models.producer import Producer
from cenniki.schemas.producer import ProducerCreate, ProducerUpdate


class ProducerRepository:
    """Repository for producer operations"""

    @staticmethod
    def create(db: Session, producer: ProducerCreate) -> Producer:
        """Create a producer (the catalog document is stored separately)"""
        try:
            db_producer = Producer(**producer.model_dump(mode="json", exclude={"data", "promotion"}))
            if producer.promotion is not None:
                db_producer.promotion = producer.promotion.model_dump(by_alias=True)
            db.add(db_producer)
            db.commit()
            db.refresh(db_producer)
            return db_producer
        except IntegrityError as e:
            db.rollback()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Producer '{producer.slug}' already exists: {str(e.orig)}"
            )

    @staticmethod
    def get_by_slug(db: Session, slug: str) -> Optional[Producer]:
        return db.query(Producer).filter(Producer.slug == slug).first()

    @staticmethod
    def require(db: Session, slug: str) -> Producer:
        """Get producer by slug or raise ProducerNotFoundError"""
        producer = ProducerRepository.get_by_slug(db, slug)
        if producer is None:
            raise ProducerNotFoundError(slug)
        return producer

    @staticmethod
    def get_all(db: Session, skip: int = 0, limit: int = 100) -> List[Producer]:
        return db.query(Producer).order_by(Producer.display_name).offset(skip).limit(limit).all()

    @staticmethod
    def update(db: Session, slug: str, producer_update: ProducerUpdate) -> Optional[Producer]:
        """Update a producer (only provided fields)"""
        db_producer = ProducerRepository.get_by_slug(db, slug)
        if not db_producer:
            return None

        update_data = producer_update.model_dump(mode="json", exclude_unset=True, exclude={"promotion"})
        for field, value in update_data.items():
            setattr(db_producer, field, value)
        if "promotion" in producer_update.model_fields_set:
            promotion = producer_update.promotion
            db_producer.promotion = promotion.model_dump(by_alias=True) if promotion else None

        db.commit()
        db.refresh(db_producer)
        return db_producer

    @staticmethod
    def set_price_factor(db: Session, slug: str, factor: float) -> Producer:
        db_producer = ProducerRepository.require(db, slug)
        db_producer.price_factor = factor
        db.commit()
        db.refresh(db_producer)
        return db_producer

    @staticmethod
    def delete(db: Session, slug: str) -> bool:
        db_producer = ProducerRepository.get_by_slug(db, slug)
        if not db_producer:
            return False

        db.delete(db_producer)
        db.commit()
        return True
