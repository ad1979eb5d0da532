"""Unit tests for ledger clients (appgen.ledger.client).

Tests cover:
- InMemoryLedger balance, adjust, non-negative invariant, transaction log
- HttpLedgerClient balance lookup, adjust payload, error mapping
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock

import httpx
import pytest

from conftest import make_response

from appgen.ledger import HttpLedgerClient, InMemoryLedger


class TestInMemoryLedger:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_balance(self):
        ledger = InMemoryLedger({"u": 5})
        response = await ledger.get_balance("u")
        assert response.success is True
        assert response.balance == Decimal("5.00")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_user(self):
        response = await InMemoryLedger().get_balance("ghost")
        assert response.success is False
        assert "ghost" in response.error

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_debit_and_credit_logged(self):
        ledger = InMemoryLedger({"u": "5.00"})
        await ledger.adjust("u", Decimal("-0.10"), "edit", "job-1")
        response = await ledger.adjust("u", Decimal("0.10"), "refund", "job-1")

        assert response.balance == Decimal("5.00")
        assert [t.type for t in ledger.transactions] == ["deduction", "credit"]
        assert ledger.transactions[0].balance_after == Decimal("4.90")
        assert ledger.transactions[1].job_id == "job-1"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_balance_never_negative(self):
        ledger = InMemoryLedger({"u": "1.00"})
        response = await ledger.adjust("u", Decimal("-2.00"), "generation")

        assert response.success is False
        assert "Insufficient" in response.error
        assert ledger.balances["u"] == Decimal("1.00")
        assert ledger.transactions == []


class TestHttpLedgerClient:
    @pytest.mark.unit
    def test_trailing_slash_stripped(self):
        assert HttpLedgerClient("http://ledger:3000/").base_url == "http://ledger:3000"

    @pytest.mark.unit
    def test_extract_balance(self):
        assert HttpLedgerClient._extract_balance({"appTokens": 12.5}) == Decimal("12.50")
        assert HttpLedgerClient._extract_balance({"user": {"appTokens": "3"}}) == Decimal("3.00")
        assert HttpLedgerClient._extract_balance({"appTokens": "n/a"}) == Decimal("0.00")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_get_balance(self, mock_http):
        client, patcher = mock_http
        client.get.return_value = make_response({"appTokens": 7.25})
        with patcher:
            response = await HttpLedgerClient("http://ledger").get_balance("u")

        assert response.success is True
        assert response.balance == Decimal("7.25")
        assert client.get.call_args[0][0] == "/api/user/me"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_adjust_posts_and_reads_back(self, mock_http):
        client, patcher = mock_http
        client.post.return_value = make_response({"success": True})
        client.get.return_value = make_response({"appTokens": 4.9})
        with patcher:
            response = await HttpLedgerClient("http://ledger").adjust("u", Decimal("-0.10"), "edit", "job-9")

        payload = client.post.call_args[1]["json"]
        assert client.post.call_args[0][0] == "/api/tokens/adjust"
        assert payload == {"tokenType": "app", "amount": -0.1, "reason": "edit", "jobId": "job-9"}
        assert response.balance == Decimal("4.90")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_adjust_succeeds_when_read_back_fails(self, mock_http):
        client, patcher = mock_http
        client.post.return_value = make_response({"success": True})
        client.get.side_effect = httpx.ConnectError("Connection refused")
        with patcher:
            response = await HttpLedgerClient("http://ledger").adjust("u", Decimal("-2.00"), "generation")

        assert client.post.await_count == 1
        assert response.success is True
        assert response.balance is None
        assert "Cannot connect" in response.error

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_connect_error(self, mock_http):
        client, patcher = mock_http
        client.get.side_effect = httpx.ConnectError("Connection refused")
        with patcher:
            response = await HttpLedgerClient("http://ledger").get_balance("u")

        assert response.success is False
        assert "Cannot connect" in response.error

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_http_error_uses_json_detail(self, mock_http):
        client, patcher = mock_http
        error_response = MagicMock()
        error_response.status_code = 400
        error_response.json.return_value = {"error": "Insufficient token balance"}
        client.post.side_effect = httpx.HTTPStatusError(
            "bad request", request=MagicMock(), response=error_response
        )
        with patcher:
            response = await HttpLedgerClient("http://ledger").adjust("u", Decimal("-9"), "generation")

        assert response.success is False
        assert "HTTP 400" in response.error
        assert "Insufficient token balance" in response.error
