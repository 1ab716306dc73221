"""User model - owner of targets and recipient of email alerts."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime

from ..database import Base


class User(Base):
    """Account that owns targets. Managed by the auth layer."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=True)
    email = Column(String(320), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
