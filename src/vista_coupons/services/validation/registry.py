"""Per-attempt callback registry for JSONP-style identity responses."""

from __future__ import annotations

import asyncio
import random
import time
from typing import Any

from loguru import logger


def new_callback_token() -> str:
    return f"jsonp_callback_{int(time.time() * 1000)}_{random.randint(0, 100000)}"


class CallbackRegistry:
    """Map callback tokens to pending futures.

    A token resolves at most once. Payloads for tokens that were never
    registered, were already settled, or have been unregistered are dropped.
    """

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Future[Any]] = {}

    def __contains__(self, token: object) -> bool:
        return token in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def register(self, token: str) -> asyncio.Future[Any]:
        if token in self._pending:
            raise ValueError(f"Callback token already registered: {token}")
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[token] = future
        return future

    def dispatch(self, token: str, payload: Any) -> bool:
        future = self._pending.get(token)
        if future is None or future.done():
            logger.debug("Dropped payload for inactive callback", token=token)
            return False
        future.set_result(payload)
        return True

    def fail(self, token: str, error: BaseException) -> bool:
        future = self._pending.get(token)
        if future is None or future.done():
            return False
        future.set_exception(error)
        return True

    def unregister(self, token: str) -> None:
        future = self._pending.pop(token, None)
        if future is not None and not future.done():
            future.cancel()


__all__ = ["CallbackRegistry", "new_callback_token"]
