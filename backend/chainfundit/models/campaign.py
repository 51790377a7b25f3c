import uuid
from sqlalchemy import Column, String, Integer, Numeric, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from chainfundit.database import Base


class CampaignStatus:
    draft = "draft"
    active = "active"
    closed = "closed"


class DonationStatus:
    pending = "pending"
    completed = "completed"
    failed = "failed"


class Campaign(Base):
    __tablename__ = "campaigns"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    creator_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    # Stored as entered by the creator: an ISO code, symbol or name.
    currency = Column(String(32), nullable=False, default="USD")
    goal_amount = Column(Numeric(12, 2), nullable=False, default=0)
    current_amount = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(String(20), default=CampaignStatus.active)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    creator = relationship("User", back_populates="campaigns")
    chainers = relationship("Chainer", back_populates="campaign")


class Chainer(Base):
    __tablename__ = "chainers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    campaign_id = Column(Uuid, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False)
    referral_code = Column(String(32), unique=True, nullable=False, index=True)
    commission_rate = Column(Numeric(5, 2), nullable=False, default=5)
    commission_earned = Column(Numeric(12, 2), nullable=False, default=0)
    total_raised = Column(Numeric(12, 2), nullable=False, default=0)
    total_referrals = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="chainers")
    campaign = relationship("Campaign", back_populates="chainers")


class Donation(Base):
    __tablename__ = "donations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    campaign_id = Column(Uuid, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    chainer_id = Column(Uuid, ForeignKey("chainers.id"), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(32), nullable=False, default="USD")
    payment_status = Column(String(20), default=DonationStatus.pending)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
