# waveorder/core/audit_log.py
"""
Audit logging to the system_logs table.

Admin actions such as a Stripe sync fix are written as `admin_action`
events so support can see who changed billing state and what was applied.
"""
from enum import Enum
from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession

from waveorder.core.logging import logger
from waveorder.db.models.system_log import SystemLog


class AuditEventType(str, Enum):
    ADMIN_ACTION = "admin_action"
    API_REQUEST = "api_request"
    ERROR = "error"


class AuditSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditLogger:
    """Writes audit events through the caller's session"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def log_event(
        self,
        *,
        event_type: AuditEventType,
        severity: AuditSeverity = AuditSeverity.INFO,
        business_id: Optional[str] = None,
        endpoint: Optional[str] = None,
        method: Optional[str] = None,
        url: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> SystemLog:
        entry = SystemLog(
            log_type=event_type.value,
            severity=severity.value,
            business_id=business_id,
            endpoint=endpoint,
            method=method,
            url=url,
            event_metadata=details or {},
        )
        self.session.add(entry)
        await self.session.commit()

        logger.info(
            f"Audit event {event_type.value}",
            extra={"business_id": business_id} if business_id else None,
        )
        return entry
