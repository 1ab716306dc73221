"""Core boundary types for the monitoring cycle."""
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional

from pydantic import BaseModel, Field, field_validator


class TargetProtocol(str, Enum):
    HTTP = "http"
    HTTPS = "https"


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    HEAD = "HEAD"


class RuleType(str, Enum):
    CONSECUTIVE_FAILURES = "consecutive_failures"
    UPTIME_PERCENTAGE = "uptime_percentage"
    RESPONSE_TIME = "response_time"


class Channel(str, Enum):
    EMAIL = "email"
    SLACK = "slack"
    DISCORD = "discord"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertStatus(str, Enum):
    TRIGGERED = "triggered"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class Target(BaseModel):
    """A monitored endpoint. The core only ever reads these."""
    id: int
    user_id: int
    name: str = ""
    url: str  # host[:port][/path], without scheme
    protocol: TargetProtocol = TargetProtocol.HTTPS
    method: HttpMethod = HttpMethod.GET
    check_interval: int = Field(default=60, gt=0)
    timeout: int = Field(default=10, gt=0)
    expected_status_code: int = 200
    is_active: bool = True

    class Config:
        from_attributes = True

    @field_validator("url")
    @classmethod
    def url_without_scheme(cls, v: str) -> str:
        if "://" in v:
            raise ValueError("url must not include a scheme; set protocol instead")
        if not v.strip():
            raise ValueError("url must not be empty")
        return v

    @property
    def request_url(self) -> str:
        return f"{self.protocol.value}://{self.url}"


class CheckResult(BaseModel):
    """Outcome of a single check. Immutable once created."""
    target_id: int
    checked_at: datetime = Field(default_factory=datetime.utcnow)
    status_code: Optional[int] = None
    response_time_ms: int = Field(default=0, ge=0)
    is_success: bool
    error_message: Optional[str] = None

    class Config:
        from_attributes = True
        frozen = True


class AlertRule(BaseModel):
    """A condition over a target's check history."""
    id: int
    target_id: int
    user_id: int
    name: str = ""
    rule_type: RuleType
    threshold: int
    notification_channels: FrozenSet[Channel] = frozenset()
    is_active: bool = True


class Alert(BaseModel):
    """A rule firing, tracked through triggered -> acknowledged -> resolved."""
    id: Optional[int] = None
    rule_id: int
    target_id: int
    user_id: int
    severity: Severity = Severity.MEDIUM
    message: str
    status: AlertStatus = AlertStatus.TRIGGERED
    triggered_at: datetime = Field(default_factory=datetime.utcnow)
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NotificationSettings(BaseModel):
    """Per-user channel configuration."""
    user_id: int
    email_enabled: bool = True
    slack_webhook_url: Optional[str] = None
    discord_webhook_url: Optional[str] = None

    class Config:
        from_attributes = True


class AlertStatusUpdate(BaseModel):
    """Request body for an alert status change."""
    status: AlertStatus


class CycleSummary(BaseModel):
    """Result of a manually triggered monitoring cycle."""
    started_at: datetime
    finished_at: Optional[datetime] = None
    skipped: bool = False
    targets_checked: int = 0
    targets_failed: int = 0
    alerts_created: int = 0


class TargetSummary(BaseModel):
    """Recent health of one target."""
    target_id: int
    window_hours: int
    uptime_percentage: float
    average_response_time_ms: int = 0
    total_checks: int = 0
    successful_checks: int = 0
    last_check: Optional[CheckResult] = None
