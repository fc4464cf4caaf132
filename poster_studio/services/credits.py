"""Credit gate consulted by the HTTP layer before a poster is generated."""
from __future__ import annotations

import asyncio
import logging
from typing import Protocol, Set

logger = logging.getLogger(__name__)


class CreditGate(Protocol):
    async def reserve(self, idempotency_key: str) -> bool:
        """Reserve one credit; repeated keys return the earlier decision."""

    async def release(self, idempotency_key: str) -> None:
        """Return a reserved credit after a failed generation."""


class UnmeteredCreditGate:
    """Grants every request. Used when no billing backend is wired in."""

    async def reserve(self, idempotency_key: str) -> bool:
        return True

    async def release(self, idempotency_key: str) -> None:
        return None


class InMemoryCreditLedger:
    def __init__(self, balance: int) -> None:
        self.balance = balance
        self._granted: Set[str] = set()
        self._lock = asyncio.Lock()

    async def reserve(self, idempotency_key: str) -> bool:
        async with self._lock:
            if idempotency_key in self._granted:
                return True
            if self.balance <= 0:
                logger.info("credits.refused", extra={"key": idempotency_key})
                return False
            self.balance -= 1
            self._granted.add(idempotency_key)
            return True

    async def release(self, idempotency_key: str) -> None:
        async with self._lock:
            if idempotency_key in self._granted:
                self._granted.discard(idempotency_key)
                self.balance += 1
                logger.info("credits.released", extra={"key": idempotency_key})


__all__ = ["CreditGate", "InMemoryCreditLedger", "UnmeteredCreditGate"]
