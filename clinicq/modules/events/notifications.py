# clinicq/modules/events/notifications.py
from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Optional, Set

from clinicq.core.config import settings

LOGGER = logging.getLogger(__name__)


class NotificationService:
    """
    Outbound patient notifications (email/SMS).

    Delivery is simulated and logged; a real transport plugs in by
    overriding `send_booking_confirmation`. Failures never reach the
    booking that triggered them.
    """

    def __init__(self, *, enabled: Optional[bool] = None) -> None:
        self.enabled = settings.NOTIFICATIONS_ENABLED if enabled is None else enabled
        self._pending: Set[asyncio.Task] = set()

    async def send_booking_confirmation(self, email: str, details: Mapping[str, Any]) -> None:
        LOGGER.info("sending booking confirmation to %s", email)
        await asyncio.sleep(0)
        LOGGER.info(
            "confirmation sent for token %s at %s on %s",
            details.get("token_number"),
            details.get("time_slot"),
            details.get("date"),
        )

    def fire_booking_confirmation(
        self, email: Optional[str], details: Mapping[str, Any]
    ) -> Optional[asyncio.Task]:
        """
        Schedule the confirmation without awaiting it.
        Returns the task (tests await it), or None when nothing was sent.
        """
        if not self.enabled or not email:
            return None
        task = asyncio.create_task(self._deliver(email, dict(details)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver(self, email: str, details: Mapping[str, Any]) -> None:
        try:
            await self.send_booking_confirmation(email, details)
        except Exception:
            LOGGER.exception("booking confirmation to %s failed", email)
