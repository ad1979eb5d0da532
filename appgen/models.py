"""Pydantic v2 models for the app generation core.

Defines the project, job, ledger and history records that flow between the
orchestrator and its collaborators.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class JobKind(str, Enum):
    """What a job does to the project."""

    GENERATION = "generation"
    EDIT = "edit"


class JobStatus(str, Enum):
    """Orchestrator states for one job."""

    IDLE = "idle"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    DEBITING = "debiting"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLED)


# ---------------------------------------------------------------------------
# Project
# ---------------------------------------------------------------------------


class GeneratedFile(BaseModel):
    """One source file of a generated project."""

    path: str = Field(..., description="Project-relative path, unique within a project")
    content: str = Field(default="")


class LintReport(BaseModel):
    """Lint summary attached to a generation result."""

    passed: bool = Field(default=True)
    errors: int = Field(default=0, ge=0)
    warnings: int = Field(default=0, ge=0)


class Project(BaseModel):
    """A generated application: files unique by path plus dependencies."""

    files: list[GeneratedFile] = Field(default_factory=list)
    dependencies: dict[str, str] = Field(default_factory=dict)
    lint_report: LintReport = Field(default_factory=LintReport)
    config: Optional[dict[str, Any]] = Field(default=None, description="Site configuration")
    original_prompt: str = Field(default="")

    def paths(self) -> list[str]:
        return [f.path for f in self.files]

    def get_file(self, path: str) -> GeneratedFile | None:
        for f in self.files:
            if f.path == path:
                return f
        return None


class StoredProject(BaseModel):
    """A project as kept by a project store."""

    id: str = Field(default_factory=_new_id)
    user_id: str = Field(default="")
    project: Project = Field(default_factory=Project)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    deleted: bool = Field(default=False)


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class CostQuote(BaseModel):
    """Price of one job. Derived on demand, never persisted."""

    base: Decimal = Field(default=Decimal("0.00"))
    auth_add_on: Decimal = Field(default=Decimal("0.00"))
    database_add_on: Decimal = Field(default=Decimal("0.00"))
    total: Decimal = Field(default=Decimal("0.00"))


class LedgerTransaction(BaseModel):
    """One balance adjustment recorded by a ledger."""

    id: str = Field(default_factory=_new_id)
    user_id: str
    type: str = Field(..., description="'deduction' or 'credit'")
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    reason: str = Field(default="")
    job_id: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


class JobRequest(BaseModel):
    """What the user asked for."""

    kind: JobKind
    prompt: str
    auth_options: list[str] = Field(default_factory=list)
    database_options: list[str] = Field(default_factory=list)
    free_text: bool = Field(
        default=True, description="Prompt was typed by the user rather than picked from presets"
    )


class GenerationJob(BaseModel):
    """One generation or edit request moving through the orchestrator."""

    id: str = Field(default_factory=_new_id)
    kind: JobKind
    status: JobStatus = Field(default=JobStatus.IDLE)
    label: str = Field(default="", description="The request as the user typed it")
    prompt: str = Field(default="", description="Final prompt sent to the backend")
    quote: CostQuote = Field(default_factory=CostQuote)
    amount_debited: Decimal = Field(default=Decimal("0.00"))
    progress_log: list[str] = Field(default_factory=list)
    cancel_requested: bool = Field(default=False)
    refund_issued: bool = Field(default=False)
    started_at: Optional[datetime] = Field(default=None)
    finished_at: Optional[datetime] = Field(default=None)
    error: Optional[str] = Field(default=None)


class GenerationResult(BaseModel):
    """What the generation backend returns for a finished job."""

    job_id: str = Field(default="")
    files: list[GeneratedFile] = Field(default_factory=list)
    dependencies: dict[str, str] = Field(default_factory=dict)
    lint_report: LintReport = Field(default_factory=LintReport)


# ---------------------------------------------------------------------------
# History and clarification
# ---------------------------------------------------------------------------


class EditHistoryEntry(BaseModel):
    """Project state captured before an edit was applied."""

    id: str = Field(default_factory=_new_id)
    prompt: str = Field(default="")
    files: list[GeneratedFile] = Field(default_factory=list)
    dependencies: dict[str, str] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utcnow)


class ClarificationExchange(BaseModel):
    """One question asked about an edit and the user's answer."""

    question: str
    answer: str


class ClarityResult(BaseModel):
    """Outcome of one clarification check."""

    needs_clarification: bool = Field(default=False)
    question: str = Field(default="")
    suggestion: str = Field(default="")
    round_cap_reached: bool = Field(default=False)


class IntentResult(BaseModel):
    """Integration intents detected in a free-text prompt."""

    has_auth_intent: bool = Field(default=False)
    has_database_intent: bool = Field(default=False)


# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------


class SelectionHandle(BaseModel):
    """Identifies one image occurrence the user clicked in the preview."""

    src: str
    resolved_src: str = Field(default="")
    alt: str = Field(default="")
    occurrence_index: int = Field(default=0, ge=0, description="Prior matches of the same source")


class UploadedAsset(BaseModel):
    """Result of the upload service."""

    url: str
    name: str = Field(default="")


class AssetReplacement(BaseModel):
    """Outcome of a targeted image replacement."""

    project: Project
    path: str = Field(..., description="File that was changed")
    old_src: str
    new_src: str
    matched_index: int = Field(..., description="Overall occurrence index that was replaced")
    fallback_used: bool = Field(default=False)
