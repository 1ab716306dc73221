"""NotificationSettings model - per-user alert channel preferences."""
from datetime import datetime
from sqlalchemy import Boolean, Column, Integer, String, DateTime, ForeignKey

from ..database import Base


class NotificationSettings(Base):
    """One row per user."""

    __tablename__ = "notification_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    email_enabled = Column(Boolean, nullable=False, default=True)
    slack_webhook_url = Column(String(2048), nullable=True)
    discord_webhook_url = Column(String(2048), nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
