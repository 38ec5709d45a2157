# waveorder/db/models/user.py
from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from waveorder.db.base import BaseModel, new_id


class User(BaseModel):
    """Platform user; a business owner carries the Stripe billing identity"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    role = Column(String(30), default="BUSINESS_OWNER", nullable=False)

    # Billing
    stripe_customer_id = Column(String(255), unique=True, nullable=True)
    subscription_id = Column(String(36), ForeignKey("subscriptions.id"), nullable=True)
    plan = Column(String(20), nullable=True)
    trial_ends_at = Column(DateTime, nullable=True)
    grace_ends_at = Column(DateTime, nullable=True)

    # Relationships
    subscription = relationship("Subscription", lazy="joined")
