import enum
import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Enum, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from chainfundit.database import Base

class UserRole(str, enum.Enum):
    user = "user"
    admin = "admin"

class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    role = Column(Enum(UserRole), default=UserRole.user)

    # Local (Paystack) bank account
    account_number = Column(String(20), nullable=True)
    bank_code = Column(String(10), nullable=True)
    bank_name = Column(String(255), nullable=True)
    account_name = Column(String(255), nullable=True)
    account_verified = Column(Boolean, default=False)
    account_locked = Column(Boolean, default=False)

    # International (Stripe) bank account
    international_account_number = Column(String(64), nullable=True)
    international_routing_number = Column(String(32), nullable=True)
    international_swift_bic = Column(String(16), nullable=True)
    international_bank_country = Column(String(2), nullable=True)
    international_bank_name = Column(String(255), nullable=True)
    international_account_name = Column(String(255), nullable=True)
    international_account_verified = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    campaigns = relationship("Campaign", back_populates="creator")
    chainers = relationship("Chainer", back_populates="user")
    notifications = relationship("Notification", back_populates="user")

    @property
    def display_name(self) -> str:
        return self.full_name or self.email
