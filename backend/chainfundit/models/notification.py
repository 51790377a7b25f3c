import uuid
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from chainfundit.database import Base


class EmailStatus:
    queued = "queued"
    sent = "sent"
    failed = "failed"
    skipped = "skipped"


class Notification(Base):
    """In-app notification that doubles as the outgoing email outbox."""

    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False)

    email_to = Column(String(255), nullable=True)
    email_subject = Column(String(255), nullable=True)
    email_html = Column(Text, nullable=True)
    email_status = Column(String(20), default=EmailStatus.queued, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    sent_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="notifications")
