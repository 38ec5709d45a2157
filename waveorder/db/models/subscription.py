# waveorder/db/models/subscription.py
from sqlalchemy import Column, String, Boolean, DateTime

from waveorder.db.base import BaseModel, new_id


class Subscription(BaseModel):
    """Local cache of one Stripe subscription; Stripe holds the authoritative copy"""
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=new_id, index=True)
    stripe_id = Column(String(255), unique=True, nullable=False)
    status = Column(String(30), nullable=False)  # Stripe status string
    price_id = Column(String(255), nullable=False)
    plan = Column(String(20), nullable=False)
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
