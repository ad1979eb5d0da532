"""Token Ledger Manager.

Prices jobs and turns debit/credit intents into ledger requests. The manager
checks the balance before every debit, but does not deduplicate retries: a
caller must not debit twice for the same logical request. Refund uniqueness
per job is the orchestrator's job (``GenerationJob.refund_issued``).
"""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence

from appgen.errors import InsufficientBalance, LedgerError
from appgen.ledger.client import LedgerClient
from appgen.ledger.pricing import PricingModel, compute_edit_cost, compute_generation_cost
from appgen.models import CostQuote, JobKind
from appgen.utils import format_tokens, print_info, print_warning, round_tokens


class TokenLedgerManager:
    """Computes job costs and issues debit/credit requests for one user."""

    def __init__(self, client: LedgerClient, pricing: PricingModel, user_id: str) -> None:
        self.client = client
        self.pricing = pricing
        self.user_id = user_id

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def compute_generation_cost(
        self, auth_options: Sequence[str] = (), database_options: Sequence[str] = ()
    ) -> CostQuote:
        return compute_generation_cost(self.pricing, auth_options, database_options)

    def compute_edit_cost(
        self, auth_options: Sequence[str] = (), database_options: Sequence[str] = ()
    ) -> CostQuote:
        return compute_edit_cost(self.pricing, auth_options, database_options)

    def quote(
        self,
        kind: JobKind,
        auth_options: Sequence[str] = (),
        database_options: Sequence[str] = (),
    ) -> CostQuote:
        if kind == JobKind.GENERATION:
            return self.compute_generation_cost(auth_options, database_options)
        return self.compute_edit_cost(auth_options, database_options)

    # ------------------------------------------------------------------
    # Balance
    # ------------------------------------------------------------------

    async def balance(self) -> Decimal:
        """Return the current balance, rounded for comparison."""
        response = await self.client.get_balance(self.user_id)
        if not response.success:
            raise LedgerError(response.error or "Could not read token balance")
        return round_tokens(response.balance)

    async def ensure_affordable(self, quote: CostQuote) -> Decimal:
        """Raise ``InsufficientBalance`` unless the balance covers *quote*.

        Returns:
            The balance that was checked.
        """
        current = await self.balance()
        required = round_tokens(quote.total)
        if current < required:
            raise InsufficientBalance(required, current)
        return current

    # ------------------------------------------------------------------
    # Debit / credit
    # ------------------------------------------------------------------

    async def debit(self, amount: Decimal, reason: str, job_id: str | None = None) -> Decimal | None:
        """Decrement the balance by *amount* and return the new balance.

        The new balance is ``None`` when the ledger applied the debit but the
        balance could not be read back.

        Raises:
            InsufficientBalance: If the balance is below *amount*.
            LedgerError: If the ledger rejects the request.
        """
        amount = round_tokens(amount)
        current = await self.balance()
        if current < amount:
            raise InsufficientBalance(amount, current)

        response = await self.client.adjust(self.user_id, -amount, reason, job_id)
        if not response.success:
            if response.error and "Insufficient" in response.error:
                raise InsufficientBalance(amount, round_tokens(response.balance or 0))
            raise LedgerError(response.error or "Debit rejected by ledger")

        if response.balance is None:
            print_warning(
                f"Debited {format_tokens(amount)} ({reason}); new balance unavailable: {response.error}"
            )
            return None
        new_balance = round_tokens(response.balance)
        print_info(f"Debited {format_tokens(amount)} ({reason}); balance {new_balance}")
        return new_balance

    async def credit(self, amount: Decimal, job_id: str, reason: str) -> Decimal | None:
        """Refund *amount* for *job_id* and return the new balance.

        Callers invoke this at most once per job.
        """
        amount = round_tokens(amount)
        response = await self.client.adjust(self.user_id, amount, reason, job_id)
        if not response.success:
            raise LedgerError(response.error or f"Credit for job {job_id} rejected by ledger")

        if response.balance is None:
            print_warning(
                f"Credited {format_tokens(amount)} for job {job_id}; new balance unavailable: {response.error}"
            )
            return None
        new_balance = round_tokens(response.balance)
        print_info(f"Credited {format_tokens(amount)} for job {job_id}; balance {new_balance}")
        return new_balance
