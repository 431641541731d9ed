"""AccountContact model - where an account wants its alerts delivered."""
from ..utils.time_utils import utcnow
from sqlalchemy import Column, Integer, String, DateTime, JSON

from ..database import Base


class AccountContact(Base):
    """Alert contact details and channel opt-ins for one account.

    Accounts themselves are managed elsewhere; this table only mirrors
    what the alert dispatcher needs.
    """

    __tablename__ = "account_contacts"

    account_id = Column(String, primary_key=True)
    email = Column(String, nullable=True)
    push_tokens = Column(JSON, nullable=True)  # List of APNs device tokens
    chat_id = Column(String, nullable=True)  # Telegram chat id
    email_opt_in = Column(Integer, default=1)  # 0 or 1
    push_opt_in = Column(Integer, default=1)
    chat_opt_in = Column(Integer, default=1)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
