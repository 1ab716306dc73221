"""MonitoringCheck model - append-only check history."""
from datetime import datetime
from sqlalchemy import Boolean, Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from ..database import Base


class MonitoringCheck(Base):
    """Result of one health check. Rows are never updated or deleted."""

    __tablename__ = "monitoring_checks"
    __table_args__ = (
        Index("ix_monitoring_checks_target_checked", "target_id", "checked_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    target_id = Column(Integer, ForeignKey("monitoring_targets.id"), nullable=False)
    status_code = Column(Integer, nullable=True)
    response_time_ms = Column(Integer, nullable=False, default=0)
    is_success = Column(Boolean, nullable=False)
    error_message = Column(String, nullable=True)
    checked_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    target = relationship("Target", back_populates="checks")
