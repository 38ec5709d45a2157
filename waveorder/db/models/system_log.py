# waveorder/db/models/system_log.py
from sqlalchemy import Column, String, JSON, Text

from waveorder.db.base import BaseModel, new_id


class SystemLog(BaseModel):
    """Append-only operational/audit event"""
    __tablename__ = "system_logs"

    id = Column(String(36), primary_key=True, default=new_id, index=True)
    log_type = Column(String(50), nullable=False, index=True)  # admin_action, ...
    severity = Column(String(20), default="info", nullable=False)

    # Request details
    endpoint = Column(String(255), nullable=True)
    method = Column(String(10), nullable=True)
    url = Column(Text, nullable=True)

    business_id = Column(String(36), nullable=True, index=True)

    # Additional details; `metadata` is reserved on declarative classes
    event_metadata = Column("metadata", JSON, default=dict)
