"""AlertRule model - user-defined conditions over check history."""
from datetime import datetime
from sqlalchemy import Boolean, Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from ..database import Base


class AlertRule(Base):
    """Condition that produces an alert when met."""

    __tablename__ = "alert_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    target_id = Column(Integer, ForeignKey("monitoring_targets.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(String, nullable=True)
    rule_type = Column(String, nullable=False)  # consecutive_failures, uptime_percentage, response_time
    threshold = Column(Integer, nullable=False)
    notification_channels = Column(String(500), nullable=False)  # JSON: ["email", "slack", "discord"]
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    target = relationship("Target", back_populates="rules")
