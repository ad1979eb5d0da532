"""Shared pytest fixtures for the appgen test suite.

Provides reusable fixtures for:
- Configuration with short timeouts
- Sample projects and generation results
- An in-memory ledger and a JSON project store in a temp directory
- A scripted generation backend and a controllable clock
- A mocked httpx.AsyncClient
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from appgen.backend import GenerationBackend
from appgen.config import Config, JobConfig
from appgen.errors import GenerationFailure
from appgen.history import EditHistoryManager
from appgen.ledger import InMemoryLedger, PricingModel, TokenLedgerManager
from appgen.models import GeneratedFile, GenerationResult, JobKind, LintReport, Project
from appgen.orchestrator import JobOrchestrator
from appgen.session import SessionContext
from appgen.store import JsonProjectStore

USER_ID = "user-1"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Config with a temp store and a short cancel-ack deadline."""
    return Config(
        user_id=USER_ID,
        store_dir=tmp_path / "projects",
        jobs=JobConfig(cancel_ack_timeout=0.05, poll_interval=0.01),
    )


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_project() -> Project:
    """Two-file project: A (content 1) and B (content 2)."""
    return Project(
        files=[
            GeneratedFile(path="A", content="1"),
            GeneratedFile(path="B", content="2"),
        ],
        dependencies={"react": "^18.2.0"},
        original_prompt="A landing page",
    )


@pytest.fixture
def site_project() -> Project:
    """Small Next.js-style project with images."""
    return Project(
        files=[
            GeneratedFile(
                path="src/components/Hero.tsx",
                content=(
                    'export function Hero() {\n'
                    '  return <section className="hero">\n'
                    '    <img src="/images/hero.jpg" alt="Team photo" />\n'
                    '    <img src="/images/hero.jpg" alt="Team photo again" />\n'
                    '  </section>;\n'
                    '}\n'
                ),
            ),
            GeneratedFile(
                path="src/components/Footer.tsx",
                content='export const Footer = () => <img src="/images/logo.png" alt="Logo" />;\n',
            ),
            GeneratedFile(path="src/styles/globals.css", content=".hero { background: url('/images/bg.png'); }\n"),
        ],
        dependencies={"next": "14.1.0"},
    )


@pytest.fixture
def edit_result() -> GenerationResult:
    """Edit output: changes B and adds C."""
    return GenerationResult(
        files=[
            GeneratedFile(path="B", content="2b"),
            GeneratedFile(path="C", content="3"),
        ],
        dependencies={"clsx": "^2.0.0"},
        lint_report=LintReport(passed=True),
    )


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

class ScriptedBackend(GenerationBackend):
    """Generation backend that replays a fixed script.

    ``hold=True`` keeps ``generate`` waiting until ``release`` is set (or the
    job is cancelled with ``finish_on_cancel``).
    """

    def __init__(
        self,
        result: GenerationResult | None = None,
        progress: list[str] | None = None,
        error: str | None = None,
        hold: bool = False,
        finish_on_cancel: bool = True,
        cancel_ack: bool = True,
    ) -> None:
        self.result = result or GenerationResult(files=[GeneratedFile(path="index.html", content="<h1/>")])
        self.progress = progress or []
        self.error = error
        self.release = asyncio.Event()
        if not hold:
            self.release.set()
        self.finish_on_cancel = finish_on_cancel
        self.cancel_ack = cancel_ack
        self.calls: list[dict[str, Any]] = []
        self.cancelled: list[str] = []

    async def generate(self, full_prompt, user_id, on_progress, job_id, kind=JobKind.GENERATION, project=None):
        self.calls.append({"prompt": full_prompt, "user_id": user_id, "job_id": job_id, "kind": kind})
        for message in self.progress:
            on_progress(message)
        await self.release.wait()
        if self.error:
            raise GenerationFailure(job_id, self.error)
        return self.result

    async def cancel(self, job_id: str) -> bool:
        self.cancelled.append(job_id)
        if self.finish_on_cancel:
            self.release.set()
        return self.cancel_ack


class FakeClock:
    """Monotonic clock the test moves by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def ledger_client() -> InMemoryLedger:
    return InMemoryLedger({USER_ID: "10.00"})


@pytest.fixture
def ledger(config: Config, ledger_client: InMemoryLedger) -> TokenLedgerManager:
    return TokenLedgerManager(ledger_client, PricingModel.from_config(config.pricing), USER_ID)


@pytest.fixture
def store(config: Config) -> JsonProjectStore:
    return JsonProjectStore(config.store_dir)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_orchestrator(config, ledger, store, clock):
    """Factory: ``make_orchestrator(backend, **overrides)``."""

    def _make(backend: GenerationBackend | None = None, **overrides: Any) -> JobOrchestrator:
        kwargs: dict[str, Any] = {
            "config": config,
            "ledger": ledger,
            "backend": backend or ScriptedBackend(),
            "store": store,
            "history": EditHistoryManager(store),
            "clock": clock,
        }
        kwargs.update(overrides)
        return JobOrchestrator(**kwargs)

    return _make


@pytest.fixture
def session() -> SessionContext:
    return SessionContext(user_id=USER_ID)


async def wait_for_status(job, *statuses, max_steps: int = 200) -> None:
    """Yield to the event loop until *job* reaches one of *statuses*."""
    for _ in range(max_steps):
        if job.status in statuses:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"job stuck in {job.status.value}")


def balance_of(client: InMemoryLedger) -> Decimal:
    return client.balances[USER_ID]


# ---------------------------------------------------------------------------
# Mock httpx
# ---------------------------------------------------------------------------

def make_response(data: Any = None, status_code: int = 200) -> MagicMock:
    """A mocked ``httpx.Response`` returning *data* from ``.json()``."""
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = data if data is not None else {}
    response.text = ""
    response.raise_for_status = MagicMock()
    return response


@pytest.fixture
def mock_http():
    """Mocked ``httpx.AsyncClient``.

    Usage:
        def test_something(mock_http):
            client, patcher = mock_http
            client.post.return_value = make_response({...})
            with patcher:
                ...
    """
    mock_client = AsyncMock()
    mock_client.get = AsyncMock(return_value=make_response())
    mock_client.post = AsyncMock(return_value=make_response())
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client, patch("httpx.AsyncClient", return_value=mock_client)
