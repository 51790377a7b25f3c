from chainfundit.models.user import User, UserRole
from chainfundit.models.campaign import Campaign, CampaignStatus, Chainer, Donation, DonationStatus
from chainfundit.models.payout import CampaignPayout, CommissionPayout, PayoutStatus, PayoutType, PAYOUT_MODELS
from chainfundit.models.notification import Notification, EmailStatus
