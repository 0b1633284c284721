from __future__ import annotations

import asyncio
from typing import Awaitable, Callable
from uuid import UUID

from loguru import logger

ExpiryCallback = Callable[[UUID], Awaitable[object]]


class RedemptionCountdown:
    """Fire the expiry callback for one session once its display window elapses."""

    def __init__(
        self,
        session_id: UUID,
        seconds: float,
        on_expire: ExpiryCallback,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.session_id = session_id
        self.seconds = seconds
        self._on_expire = on_expire
        self._sleep = sleep
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run())
        logger.debug("Redemption countdown started", session_id=str(self.session_id), seconds=self.seconds)

    def cancel(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        await self._sleep(self.seconds)
        try:
            await self._on_expire(self.session_id)
        except Exception:  # pragma: no cover
            logger.exception("Redemption expiry callback failed", session_id=str(self.session_id))


__all__ = ["RedemptionCountdown"]
