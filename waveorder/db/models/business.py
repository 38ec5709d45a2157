# waveorder/db/models/business.py
from sqlalchemy import Column, String, Boolean, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship

from waveorder.core.constants import PlanId, BusinessSubscriptionStatus
from waveorder.db.base import BaseModel, new_id


class Business(BaseModel):
    """A tenant: one business account on the platform"""
    __tablename__ = "businesses"

    id = Column(String(36), primary_key=True, default=new_id, index=True)
    name = Column(String(255), nullable=False)

    # Subscription
    subscription_plan = Column(String(20), default=PlanId.STARTER.value, nullable=False, index=True)
    subscription_status = Column(String(20), default=BusinessSubscriptionStatus.ACTIVE.value, nullable=False)
    trial_ends_at = Column(DateTime, nullable=True)
    grace_ends_at = Column(DateTime, nullable=True)

    # Lifecycle
    is_active = Column(Boolean, default=True, nullable=False)
    deactivated_at = Column(DateTime, nullable=True)
    deactivation_reason = Column(Text, nullable=True)
    test_mode = Column(Boolean, default=False, nullable=False)
    onboarding_completed = Column(Boolean, default=False, nullable=False)
    onboarding_completed_at = Column(DateTime, nullable=True)

    # Stripe reconciliation bookkeeping
    last_stripe_sync = Column(DateTime, nullable=True)
    stripe_sync_status = Column(String(30), nullable=True)
    stripe_sync_locked_until = Column(DateTime, nullable=True)

    # Relationships
    members = relationship("BusinessUser", back_populates="business", cascade="all, delete-orphan")
    orders = relationship("Order", back_populates="business")
    feedbacks = relationship("BusinessFeedback", back_populates="business")
    support_tickets = relationship("SupportTicket", back_populates="business")


class BusinessUser(BaseModel):
    """Membership of a user in a business, with the user's role there"""
    __tablename__ = "business_users"

    id = Column(String(36), primary_key=True, default=new_id)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String(20), default="OWNER", nullable=False)

    business = relationship("Business", back_populates="members")
    user = relationship("User", lazy="joined")
