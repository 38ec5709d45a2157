# waveorder/db/models/analytics.py
from sqlalchemy import Column, String, Integer, DateTime

from waveorder.db.base import BaseModel, new_id


class Analytics(BaseModel):
    """Legacy daily visitor aggregate; one row per business per day (and attribution)"""
    __tablename__ = "analytics"

    id = Column(String(36), primary_key=True, default=new_id)
    business_id = Column(String(36), nullable=False, index=True)
    date = Column(DateTime, nullable=False, index=True)
    visitors = Column(Integer, default=0, nullable=False)

    # Attribution
    source = Column(String(255), nullable=True)
    medium = Column(String(255), nullable=True)
    campaign = Column(String(255), nullable=True)
    placement = Column(String(255), nullable=True)


class VisitorSession(BaseModel):
    """One storefront visit; append-only"""
    __tablename__ = "visitor_sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    business_id = Column(String(36), nullable=False, index=True)
    ip_address = Column(String(64), nullable=True, index=True)
    visited_at = Column(DateTime, nullable=False, index=True)

    # Attribution
    source = Column(String(255), nullable=True)
    medium = Column(String(255), nullable=True)
    campaign = Column(String(255), nullable=True)
    placement = Column(String(255), nullable=True)

    # Geolocation
    country = Column(String(100), nullable=True)
    city = Column(String(100), nullable=True)
