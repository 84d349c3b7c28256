"""
ARQ background task: mark pending invites past their deadline as expired.

Scheduled to run periodically (e.g., every hour). Reads already treat overdue
invites as expired; this keeps the stored status in line.
"""

from __future__ import annotations

import structlog

from app.core.database import get_session_context
from app.services.members import expire_stale_invites

log = structlog.get_logger()


async def expire_pending_invites(ctx: dict) -> int:
    """Returns the number of invites expired."""
    async with get_session_context() as session:
        count = await expire_stale_invites(session)

    if count:
        log.info("invite_expiry.batch_expired", count=count)
    return count


# ARQ worker settings
class WorkerSettings:
    """ARQ worker configuration."""

    functions = [expire_pending_invites]
    cron_jobs = [
        {
            "coroutine": expire_pending_invites,
            "hour": None,  # every hour
            "minute": 0,
        },
    ]
