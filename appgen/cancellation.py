"""Cooperative cancellation tokens.

A ``CancellationToken`` is threaded through every await in a job. Cancelling
it does not interrupt in-flight calls; each named checkpoint re-checks the
token and unwinds with ``JobCancelled`` when it is set.
"""

from __future__ import annotations

import asyncio

from appgen.errors import JobCancelled

# Named resumption points where a job re-checks its token.
PRE_DEBIT = "pre-debit"
PRE_DISPATCH = "pre-dispatch"
RESULT_RECEIVED = "result-received"
PRE_MERGE = "pre-merge"


class CancellationToken:
    """Shared cancel flag for one job."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "user") -> bool:
        """Set the flag. Returns ``False`` if it was already set."""
        if self._event.is_set():
            return False
        self.reason = reason
        self._event.set()
        return True

    def raise_if_cancelled(self, checkpoint: str) -> None:
        if self._event.is_set():
            raise JobCancelled(checkpoint)

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()
