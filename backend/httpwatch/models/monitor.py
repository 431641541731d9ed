"""Monitor model - HTTP endpoints being watched."""
from ..utils.time_utils import utcnow
from sqlalchemy import Column, Integer, Float, String, DateTime, Text, JSON
from sqlalchemy.orm import relationship

from ..database import Base


class Monitor(Base):
    """A watched HTTP endpoint: request, expectations and live state."""

    __tablename__ = "monitors"

    id = Column(String, primary_key=True)
    account_id = Column(String, nullable=False, index=True)  # Owning account (external)
    name = Column(String, nullable=False)

    # Request definition
    url = Column(String, nullable=False)
    method = Column(String, nullable=False, default="GET")  # GET, HEAD, POST, PUT
    headers = Column(JSON, nullable=True)  # {name: value}, plaintext at this layer
    body = Column(Text, nullable=True)  # POST/PUT only
    content_type = Column(String, nullable=True)

    # Expectations
    expected_status_codes = Column(JSON, nullable=False, default=lambda: [200, 201, 204])
    timeout_ms = Column(Integer, nullable=False, default=10000)
    max_response_time_ms = Column(Integer, nullable=True)
    body_contains = Column(String, nullable=True)
    body_not_contains = Column(String, nullable=True)

    # Schedule and alerting policy
    interval_seconds = Column(Integer, nullable=False, default=300)
    alert_after_failures = Column(Integer, nullable=False, default=2)
    webhook_url = Column(String, nullable=True)
    enabled = Column(Integer, default=1)

    # Live state, written by the check pipeline
    status = Column(String, nullable=False, default="pending")  # pending, up, down, degraded
    last_checked_at = Column(DateTime, nullable=True, index=True)
    last_response_time_ms = Column(Integer, nullable=True)
    last_status_code = Column(Integer, nullable=True)
    last_error = Column(String, nullable=True)
    last_response_body = Column(Text, nullable=True)
    consecutive_failures = Column(Integer, nullable=False, default=0)
    uptime_percent_24h = Column(Float, nullable=True)
    avg_response_time_24h = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    checks = relationship(
        "CheckResult", back_populates="monitor", cascade="all, delete-orphan", passive_deletes=True
    )
    status_events = relationship(
        "StatusEvent", back_populates="monitor", cascade="all, delete-orphan", passive_deletes=True
    )
