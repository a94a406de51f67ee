"""
Administrator accounts of the price list admin panel.
"""

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func
from cenniki.core.database import Base


class Administrator(Base):
    """
    Table: administrators

    Passwords are stored as bcrypt hashes. last_login_at is stamped on
    every successful login; inactive accounts cannot log in.
    """
    __tablename__ = "administrators"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Administrator(email='{self.email}', active={self.is_active})>"
