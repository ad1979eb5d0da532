"""Generation backend client.

The backend turns a prompt into project files. A job is submitted once and
then polled; every poll returns the full ordered list of stage messages so
far, and the client forwards only the new ones to ``on_progress``.

Endpoints::

    POST /api/generate              {prompt, userId, jobId, kind, project?}
    GET  /api/jobs/{jobId}/status   {status, progress[], result?, error?}
    POST /api/jobs/{jobId}/cancel
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Callable

import httpx

from appgen.errors import GenerationFailure
from appgen.models import GeneratedFile, GenerationResult, JobKind, LintReport, Project

ProgressSink = Callable[[str], None]


class GenerationBackend(ABC):
    """Interface to the natural-language-to-code backend."""

    @abstractmethod
    async def generate(
        self,
        full_prompt: str,
        user_id: str,
        on_progress: ProgressSink,
        job_id: str,
        kind: JobKind = JobKind.GENERATION,
        project: Project | None = None,
    ) -> GenerationResult:
        """Run a job to completion.

        Raises:
            GenerationFailure: If the backend reports an error.
        """

    @abstractmethod
    async def cancel(self, job_id: str) -> bool:
        """Ask the backend to stop *job_id*. Best effort."""


def parse_result(job_id: str, data: dict[str, Any]) -> GenerationResult:
    """Build a ``GenerationResult`` from the backend's camelCase payload.

    Raises:
        GenerationFailure: If the payload does not have the expected shape.
    """
    try:
        lint = data.get("lintReport") or data.get("lint_report") or {}
        return GenerationResult(
            job_id=str(data.get("jobId", job_id)),
            files=[GeneratedFile(path=f["path"], content=f.get("content", "")) for f in data.get("files", [])],
            dependencies={str(k): str(v) for k, v in (data.get("dependencies") or {}).items()},
            lint_report=LintReport(
                passed=bool(lint.get("passed", True)),
                errors=int(lint.get("errors", 0)),
                warnings=int(lint.get("warnings", 0)),
            ),
        )
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise GenerationFailure(job_id, f"malformed result payload: {exc!r}") from exc


class HttpGenerationBackend(GenerationBackend):
    """Async client for the hosted generation backend."""

    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        timeout: int = 60,
        poll_interval: float = 1.0,
        max_wait: float = 900.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.max_wait = max_wait

    def _client(self) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self.api_token}"} if self.api_token else {}
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
        )

    def _describe(self, exc: Exception) -> str:
        if isinstance(exc, httpx.ConnectError):
            return f"Cannot connect to the generation backend at {self.base_url}."
        if isinstance(exc, httpx.TimeoutException):
            return f"Generation backend request timed out after {self.timeout}s."
        if isinstance(exc, httpx.HTTPStatusError):
            return (
                f"Generation backend returned HTTP {exc.response.status_code}: "
                f"{exc.response.text[:500]}"
            )
        return f"Unexpected error talking to the generation backend: {exc}"

    async def generate(
        self,
        full_prompt: str,
        user_id: str,
        on_progress: ProgressSink,
        job_id: str,
        kind: JobKind = JobKind.GENERATION,
        project: Project | None = None,
    ) -> GenerationResult:
        payload: dict[str, Any] = {
            "prompt": full_prompt,
            "userId": user_id,
            "jobId": job_id,
            "kind": kind.value,
        }
        if project is not None:
            payload["project"] = project.model_dump(mode="json")

        try:
            async with self._client() as client:
                response = await client.post("/api/generate", json=payload)
                response.raise_for_status()
                return await self._poll(client, job_id, on_progress)
        except GenerationFailure:
            raise
        except (httpx.HTTPError, AttributeError, KeyError, TypeError, ValueError) as exc:
            raise GenerationFailure(job_id, self._describe(exc)) from exc

    async def _poll(
        self, client: httpx.AsyncClient, job_id: str, on_progress: ProgressSink
    ) -> GenerationResult:
        deadline = time.monotonic() + self.max_wait
        seen = 0

        while True:
            response = await client.get(f"/api/jobs/{job_id}/status")
            response.raise_for_status()
            data = response.json()

            progress = data.get("progress") or []
            for message in progress[seen:]:
                on_progress(str(message))
            seen = max(seen, len(progress))

            status = data.get("status", "running")
            if status == "done":
                return parse_result(job_id, data.get("result") or {})
            if status == "error":
                raise GenerationFailure(job_id, str(data.get("error") or "unknown backend error"))
            if status == "cancelled":
                raise GenerationFailure(job_id, "job was cancelled by the backend")

            if time.monotonic() >= deadline:
                raise GenerationFailure(job_id, f"no result after {self.max_wait:.0f}s")
            await asyncio.sleep(self.poll_interval)

    async def cancel(self, job_id: str) -> bool:
        try:
            async with self._client() as client:
                response = await client.post(f"/api/jobs/{job_id}/cancel")
                return response.status_code < 400
        except httpx.HTTPError:
            return False
