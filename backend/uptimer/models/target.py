"""Target model - endpoints being monitored."""
from datetime import datetime
from sqlalchemy import Boolean, Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from ..database import Base


class Target(Base):
    """A monitored HTTP/HTTPS endpoint."""

    __tablename__ = "monitoring_targets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    url = Column(String(2048), nullable=False)  # host[/path], no scheme
    description = Column(String, nullable=True)
    protocol = Column(String, nullable=False, default="https")  # http, https
    method = Column(String, nullable=False, default="GET")  # GET, POST, HEAD
    check_interval = Column(Integer, nullable=False, default=60)  # seconds
    timeout = Column(Integer, nullable=False, default=10)  # seconds
    expected_status_code = Column(Integer, nullable=False, default=200)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    checks = relationship("MonitoringCheck", back_populates="target")
    rules = relationship("AlertRule", back_populates="target")
