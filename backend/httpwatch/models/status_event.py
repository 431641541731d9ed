"""StatusEvent model - health state transitions."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from ..database import Base


class StatusEvent(Base):
    """Record of a monitor entering a new health status."""

    __tablename__ = "status_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(String, ForeignKey("monitors.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String, nullable=False)  # up, down, degraded
    created_at = Column(DateTime, nullable=False, index=True)
    duration_seconds = Column(Integer, nullable=True)  # Time spent in the previous status

    # Relationship
    monitor = relationship("Monitor", back_populates="status_events")
