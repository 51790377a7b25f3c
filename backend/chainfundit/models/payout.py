import uuid
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from chainfundit.database import Base


class PayoutStatus:
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    processing = "processing"
    completed = "completed"
    failed = "failed"

    # A payout in one of these blocks a new request for the same campaign.
    open = ("pending", "approved", "processing")


class PayoutType:
    campaign = "campaign"
    commission = "commission"

    all = ("campaign", "commission")


class PayoutColumns:
    """Columns shared by creator and commission payouts."""

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    requested_amount = Column(Numeric(12, 2), nullable=False)
    gross_amount = Column(Numeric(12, 2), nullable=False)
    fees = Column(Numeric(12, 2), nullable=False, default=0)
    net_amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")

    status = Column(String(20), nullable=False, default=PayoutStatus.pending, index=True)
    payout_provider = Column(String(50), nullable=False)
    # Paystack transfer reference; Stripe idempotency keys are derived from it.
    reference = Column(String(64), unique=True, nullable=False)

    # Bank details snapshot taken when the payout was requested
    bank_name = Column(String(255), nullable=True)
    account_number = Column(String(64), nullable=True)
    account_name = Column(String(255), nullable=True)
    bank_code = Column(String(10), nullable=True)
    bank_country = Column(String(2), nullable=True)
    routing_number = Column(String(32), nullable=True)
    swift_bic = Column(String(16), nullable=True)
    recipient_code = Column(String(64), nullable=True)

    notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    approved_by = Column(Uuid, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)

    transaction_id = Column(String(255), nullable=True)
    failure_reason = Column(Text, nullable=True)
    failure_code = Column(String(32), nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)

    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)


class CampaignPayout(PayoutColumns, Base):
    __tablename__ = "campaign_payouts"

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    campaign_id = Column(Uuid, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)

    user = relationship("User")
    campaign = relationship("Campaign")


class CommissionPayout(PayoutColumns, Base):
    __tablename__ = "commission_payouts"

    chainer_id = Column(Uuid, ForeignKey("chainers.id", ondelete="CASCADE"), nullable=False, index=True)
    campaign_id = Column(Uuid, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)

    chainer = relationship("Chainer")
    campaign = relationship("Campaign")


PAYOUT_MODELS = {
    PayoutType.campaign: CampaignPayout,
    PayoutType.commission: CommissionPayout,
}
