"""CheckResult model - one immutable record per probe attempt."""
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship

from ..database import Base


class CheckResult(Base):
    """Outcome of a single probe, append-only."""

    __tablename__ = "check_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(String, ForeignKey("monitors.id", ondelete="CASCADE"), nullable=False, index=True)
    checked_at = Column(DateTime, nullable=False, index=True)
    status = Column(String, nullable=False)  # success, failure
    status_code = Column(Integer, nullable=True)
    response_time_ms = Column(Integer, nullable=True)
    error = Column(String, nullable=True)
    response_body_preview = Column(Text, nullable=True)  # first 500 chars

    # Relationship
    monitor = relationship("Monitor", back_populates="checks")
