# clinicq/modules/log.py
from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession

from clinicq.modules.users.models import AuditLog

LOGGER = logging.getLogger(__name__)


async def write_audit_log(
    session: AsyncSession,
    user_id: UUID | None,
    action: str,
    details: str | None = None,
) -> None:
    """
    Append an audit row inside the caller's transaction, so the entry
    commits or rolls back together with the change it records.

    action:
        "BOOK_APPOINTMENT"
        "APPOINTMENT_<STATUS>"
        "CALL_NEXT"
        "QUEUE_PAUSED" / "QUEUE_RESUMED"
        "CREATE_STAFF", "DELETE_USER", ...
    """
    await session.execute(
        insert(AuditLog).values(user_id=user_id, action=action, details=details)
    )
    LOGGER.debug("audit %s by %s: %s", action, user_id, details)
