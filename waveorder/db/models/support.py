# waveorder/db/models/support.py
from sqlalchemy import Column, String, Text, ForeignKey
from sqlalchemy.orm import relationship

from waveorder.db.base import BaseModel, new_id


class SupportTicket(BaseModel):
    __tablename__ = "support_tickets"

    id = Column(String(36), primary_key=True, default=new_id)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    type = Column(String(30), default="GENERAL", nullable=False)
    status = Column(String(20), default="OPEN", nullable=False, index=True)
    subject = Column(String(255), nullable=True)

    business = relationship("Business", back_populates="support_tickets")
    comments = relationship(
        "TicketComment",
        back_populates="ticket",
        lazy="selectin",
        order_by="TicketComment.created_at",
        cascade="all, delete-orphan",
    )


class TicketComment(BaseModel):
    __tablename__ = "ticket_comments"

    id = Column(String(36), primary_key=True, default=new_id)
    ticket_id = Column(String(36), ForeignKey("support_tickets.id"), nullable=False, index=True)
    author_id = Column(String(36), nullable=True)
    body = Column(Text, nullable=True)

    ticket = relationship("SupportTicket", back_populates="comments")
