"""Per-session state passed explicitly through the orchestration call chain.

The orchestrator is the only writer of ``project`` while a job is in flight.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from appgen.cancellation import CancellationToken
from appgen.errors import JobStateError
from appgen.models import GenerationJob, JobKind, Project


@dataclass
class SessionContext:
    """Current project, publish state and in-flight jobs for one user session."""

    user_id: str
    project: Project | None = None
    project_id: str | None = None
    skip_confirmation: bool = False
    published_url: str | None = None
    publish_stale: bool = False
    active_jobs: dict[JobKind, GenerationJob] = field(default_factory=dict)
    tokens: dict[str, CancellationToken] = field(default_factory=dict)
    on_progress: Callable[[GenerationJob, str], None] | None = None

    def mark_publish_stale(self) -> None:
        """Flag an existing publish as out of date with the project."""
        if self.published_url:
            self.publish_stale = True

    def active_job(self, kind: JobKind) -> GenerationJob | None:
        job = self.active_jobs.get(kind)
        if job is None or job.status.is_terminal:
            return None
        return job

    def ensure_idle(self, action: str) -> None:
        """Raise ``JobStateError`` if any job could still write the project."""
        for kind in JobKind:
            if self.active_job(kind) is not None:
                raise JobStateError(f"Wait for the running {kind.value} job before {action}.")
