# waveorder/db/models/feedback.py
from sqlalchemy import Column, String, Integer, Text, ForeignKey
from sqlalchemy.orm import relationship

from waveorder.db.base import BaseModel, new_id


class BusinessFeedback(BaseModel):
    """Rating left by a business owner (NPS uses 0-10, other types 1-5)"""
    __tablename__ = "business_feedbacks"

    id = Column(String(36), primary_key=True, default=new_id)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    type = Column(String(30), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)

    business = relationship("Business", back_populates="feedbacks")
