"""Unit tests for TokenLedgerManager (appgen.ledger.manager).

Tests cover:
- quote dispatch by job kind
- balance / ensure_affordable
- debit: success, insufficient balance, ledger rejection
- credit
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from conftest import USER_ID

from appgen.errors import InsufficientBalance, LedgerError
from appgen.ledger import LedgerResponse
from appgen.models import CostQuote, JobKind


class TestQuote:
    @pytest.mark.unit
    def test_generation_and_edit(self, ledger):
        assert ledger.quote(JobKind.GENERATION, ["google"]).total == Decimal("4.00")
        assert ledger.quote(JobKind.EDIT).total == Decimal("0.10")


class TestBalance:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_balance(self, ledger):
        assert await ledger.balance() == Decimal("10.00")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_balance_failure_raises(self, ledger, ledger_client):
        ledger_client.get_balance = AsyncMock(return_value=LedgerResponse(success=False, error="down"))
        with pytest.raises(LedgerError, match="down"):
            await ledger.balance()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_ensure_affordable_exact_balance(self, ledger):
        assert await ledger.ensure_affordable(CostQuote(total=Decimal("10.00"))) == Decimal("10.00")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_ensure_affordable_short(self, ledger):
        with pytest.raises(InsufficientBalance) as exc_info:
            await ledger.ensure_affordable(CostQuote(total=Decimal("10.01")))
        assert exc_info.value.balance == Decimal("10.00")
        assert "10.01 required" in str(exc_info.value)


class TestDebitCredit:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_debit(self, ledger, ledger_client):
        new_balance = await ledger.debit(Decimal("2.00"), "generation", "job-1")
        assert new_balance == Decimal("8.00")
        assert ledger_client.transactions[0].amount == Decimal("-2.00")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_debit_insufficient_issues_no_request(self, ledger, ledger_client):
        ledger_client.adjust = AsyncMock()
        with pytest.raises(InsufficientBalance):
            await ledger.debit(Decimal("11.00"), "generation")
        ledger_client.adjust.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_debit_rejected_with_insufficient_message(self, ledger, ledger_client):
        ledger_client.adjust = AsyncMock(
            return_value=LedgerResponse(success=False, balance=Decimal("1"), error="Insufficient token balance")
        )
        with pytest.raises(InsufficientBalance):
            await ledger.debit(Decimal("2.00"), "generation")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_debit_other_rejection(self, ledger, ledger_client):
        ledger_client.adjust = AsyncMock(return_value=LedgerResponse(success=False, error="HTTP 500"))
        with pytest.raises(LedgerError):
            await ledger.debit(Decimal("2.00"), "generation")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_credit(self, ledger, ledger_client):
        await ledger.debit(Decimal("0.10"), "edit", "job-2")
        new_balance = await ledger.credit(Decimal("0.10"), "job-2", "refund")
        assert new_balance == Decimal("10.00")
        assert ledger_client.balances[USER_ID] == Decimal("10.00")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_debit_applied_with_unknown_balance(self, ledger, ledger_client):
        ledger_client.adjust = AsyncMock(
            return_value=LedgerResponse(success=True, balance=None, error="Cannot connect")
        )
        assert await ledger.debit(Decimal("2.00"), "generation", "job-4") is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_credit_applied_with_unknown_balance(self, ledger, ledger_client):
        ledger_client.adjust = AsyncMock(
            return_value=LedgerResponse(success=True, balance=None, error="Cannot connect")
        )
        assert await ledger.credit(Decimal("0.10"), "job-5", "refund") is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_credit_rejected(self, ledger, ledger_client):
        ledger_client.adjust = AsyncMock(return_value=LedgerResponse(success=False, error="nope"))
        with pytest.raises(LedgerError):
            await ledger.credit(Decimal("0.10"), "job-3", "refund")
