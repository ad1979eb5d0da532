"""Clients for the external token ledger.

The ledger is the single source of truth for a user's app-token balance. Two
clients share one interface:

* ``InMemoryLedger`` keeps balances and a transaction log in process. Used for
  local sessions and tests.
* ``HttpLedgerClient`` talks to the hosted ledger over HTTP
  (``GET /api/user/me`` and ``POST /api/tokens/adjust``).

Both return ``LedgerResponse`` objects instead of raising, so callers decide
how a rejected adjustment is reported.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation

import httpx
from pydantic import BaseModel, Field

from appgen.models import LedgerTransaction
from appgen.utils import round_tokens


class LedgerResponse(BaseModel):
    """Structured response from a ledger call."""

    success: bool = Field(default=True)
    balance: Decimal | None = Field(
        default=Decimal("0.00"), description="Balance after the call; None when it could not be read back"
    )
    error: str | None = Field(default=None)


class LedgerClient(ABC):
    """Interface to the external ledger."""

    @abstractmethod
    async def get_balance(self, user_id: str) -> LedgerResponse:
        """Return the current balance for *user_id*."""

    @abstractmethod
    async def adjust(
        self,
        user_id: str,
        amount: Decimal,
        reason: str,
        job_id: str | None = None,
    ) -> LedgerResponse:
        """Atomically add *amount* (negative for a debit) to the balance."""


# ---------------------------------------------------------------------------
# In-memory ledger
# ---------------------------------------------------------------------------


class InMemoryLedger(LedgerClient):
    """Process-local ledger with a non-negative balance invariant."""

    def __init__(self, balances: dict[str, Decimal | int | float | str] | None = None) -> None:
        self.balances: dict[str, Decimal] = {
            user: round_tokens(value) for user, value in (balances or {}).items()
        }
        self.transactions: list[LedgerTransaction] = []
        self._lock = asyncio.Lock()

    async def get_balance(self, user_id: str) -> LedgerResponse:
        if user_id not in self.balances:
            return LedgerResponse(success=False, error=f"User not found: {user_id}")
        return LedgerResponse(balance=self.balances[user_id])

    async def adjust(
        self,
        user_id: str,
        amount: Decimal,
        reason: str,
        job_id: str | None = None,
    ) -> LedgerResponse:
        async with self._lock:
            if user_id not in self.balances:
                return LedgerResponse(success=False, error=f"User not found: {user_id}")

            before = self.balances[user_id]
            after = round_tokens(before + round_tokens(amount))
            if after < 0:
                return LedgerResponse(
                    success=False, balance=before, error="Insufficient token balance"
                )

            self.balances[user_id] = after
            self.transactions.append(
                LedgerTransaction(
                    user_id=user_id,
                    type="credit" if amount >= 0 else "deduction",
                    amount=round_tokens(amount),
                    balance_before=before,
                    balance_after=after,
                    reason=reason,
                    job_id=job_id,
                )
            )
            return LedgerResponse(balance=after)


# ---------------------------------------------------------------------------
# HTTP ledger
# ---------------------------------------------------------------------------


class HttpLedgerClient(LedgerClient):
    """Async client for the hosted ledger API.

    The API identifies the user from the bearer token, so ``user_id`` is only
    used in error messages.
    """

    def __init__(self, base_url: str, api_token: str = "", timeout: int = 30) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self.api_token}"} if self.api_token else {}
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
        )

    @staticmethod
    def _extract_balance(data: dict) -> Decimal:
        """Read ``appTokens`` from a ``/api/user/me`` payload."""
        raw = data.get("appTokens", data.get("user", {}).get("appTokens", 0))
        try:
            return round_tokens(str(raw))
        except InvalidOperation:
            return Decimal("0.00")

    def _failure(self, exc: Exception, action: str) -> LedgerResponse:
        if isinstance(exc, httpx.ConnectError):
            error = f"Cannot connect to the ledger at {self.base_url}."
        elif isinstance(exc, httpx.TimeoutException):
            error = f"Ledger {action} timed out after {self.timeout}s."
        elif isinstance(exc, httpx.HTTPStatusError):
            try:
                detail = exc.response.json().get("error", "")
            except (ValueError, AttributeError):
                detail = exc.response.text[:500]
            error = f"Ledger returned HTTP {exc.response.status_code}: {detail}"
        else:
            error = f"Unexpected error during ledger {action}: {exc}"
        return LedgerResponse(success=False, error=error)

    async def get_balance(self, user_id: str) -> LedgerResponse:
        try:
            async with self._client() as client:
                response = await client.get("/api/user/me")
                response.raise_for_status()
                return LedgerResponse(balance=self._extract_balance(response.json()))
        except Exception as exc:  # noqa: BLE001
            return self._failure(exc, "balance lookup")

    async def adjust(
        self,
        user_id: str,
        amount: Decimal,
        reason: str,
        job_id: str | None = None,
    ) -> LedgerResponse:
        payload = {
            "tokenType": "app",
            "amount": float(round_tokens(amount)),
            "reason": reason,
        }
        if job_id:
            payload["jobId"] = job_id

        try:
            async with self._client() as client:
                response = await client.post("/api/tokens/adjust", json=payload)
                response.raise_for_status()
        except Exception as exc:  # noqa: BLE001
            return self._failure(exc, "adjustment")

        # The adjustment is applied at this point. A failed read-back leaves the
        # balance unknown but must not report the adjustment as rejected.
        readback = await self.get_balance(user_id)
        if not readback.success:
            return LedgerResponse(success=True, balance=None, error=readback.error)
        return readback
