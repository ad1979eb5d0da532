"""Job Orchestrator.

Drives one generation or edit request through its states::

    Idle -> AwaitingConfirmation -> Debiting -> Running -> Succeeded
                                       |           |-----> Failed
                                       |           `-----> Cancelling -> Cancelled
                                       `-> Failed

* ``submit`` prices the request and checks the balance (``InsufficientBalance``
  ends the attempt before anything is debited).
* ``confirm`` debits, runs the backend, merges the result into the session's
  project and persists it.
* ``cancel`` sets the job's cancellation token, asks the backend to stop and
  refunds the debit when the job is younger than the refund window.

Cancellation is cooperative. The token is re-checked at every resumption
point, and a backend result that arrives after cancellation is discarded
before it reaches the project.

Usage::

    python -m appgen.orchestrator "A landing page for a bakery" --auth google --yes
"""

from __future__ import annotations

import asyncio
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable

from appgen.backend import GenerationBackend, HttpGenerationBackend
from appgen.cancellation import (
    PRE_DEBIT,
    PRE_DISPATCH,
    PRE_MERGE,
    RESULT_RECEIVED,
    CancellationToken,
)
from appgen.clarify import AnswerProvider, ClarificationNegotiator, LLMClarityChecker
from appgen.config import Config
from appgen.errors import (
    AppGenError,
    GenerationFailure,
    InsufficientBalance,
    IntegrationSelectionRequired,
    JobCancelled,
    JobStateError,
    LedgerError,
)
from appgen.history import EditHistoryManager
from appgen.intent import IntegrationIntentClassifier
from appgen.ledger import HttpLedgerClient, PricingModel, TokenLedgerManager
from appgen.llm import LLMClient
from appgen.merge import merge, merge_project
from appgen.models import (
    GenerationJob,
    GenerationResult,
    JobKind,
    JobRequest,
    JobStatus,
    Project,
)
from appgen.session import SessionContext
from appgen.store import JsonProjectStore, ProjectStore, save_session_project
from appgen.utils import (
    console,
    create_progress,
    format_duration,
    format_tokens,
    print_error,
    print_info,
    print_success,
    print_summary_table,
    print_warning,
)

ConfirmCallback = Callable[[GenerationJob], Awaitable[bool]]

_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.IDLE: {JobStatus.AWAITING_CONFIRMATION},
    JobStatus.AWAITING_CONFIRMATION: {JobStatus.DEBITING, JobStatus.CANCELLED},
    JobStatus.DEBITING: {JobStatus.RUNNING, JobStatus.FAILED, JobStatus.CANCELLING},
    JobStatus.RUNNING: {JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLING},
    JobStatus.CANCELLING: {JobStatus.CANCELLED},
}


async def _no_answer(_result) -> None:
    return None


class JobOrchestrator:
    """Runs generation and edit jobs for a session.

    Attributes:
        config: Global configuration.
        ledger: Prices jobs and moves tokens.
        backend: The code generation backend.
        store: Where projects are persisted.
        history: Pre-edit snapshots of the session's project.
        negotiator: Clarifies vague edit requests before they are priced.
        classifier: Detects integrations a free-text prompt asks for.
    """

    def __init__(
        self,
        config: Config,
        ledger: TokenLedgerManager,
        backend: GenerationBackend,
        store: ProjectStore,
        history: EditHistoryManager | None = None,
        negotiator: ClarificationNegotiator | None = None,
        classifier: IntegrationIntentClassifier | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.ledger = ledger
        self.backend = backend
        self.store = store
        self.history = history or EditHistoryManager(store)
        self.negotiator = negotiator or ClarificationNegotiator(config.clarification)
        self.classifier = classifier
        self.clock = clock
        self._started: dict[str, float] = {}

    @classmethod
    def from_config(cls, config: Config, api_token: str = "") -> "JobOrchestrator":
        """Wire the orchestrator to the HTTP collaborators named in *config*."""
        llm = LLMClient(config.llm.url, config.llm.model, config.llm.timeout)
        store = JsonProjectStore(config.store_dir)
        checker = LLMClarityChecker(llm) if config.clarification.use_llm else None
        return cls(
            config=config,
            ledger=TokenLedgerManager(
                HttpLedgerClient(config.backend.url, api_token, config.backend.timeout),
                PricingModel.from_config(config.pricing),
                config.user_id,
            ),
            backend=HttpGenerationBackend(
                config.backend.url,
                api_token,
                config.backend.timeout,
                poll_interval=config.jobs.poll_interval,
            ),
            store=store,
            history=EditHistoryManager(store),
            negotiator=ClarificationNegotiator(config.clarification, checker),
            classifier=IntegrationIntentClassifier(llm if config.clarification.use_llm else None),
        )

    def new_session(self, user_id: str | None = None, project: Project | None = None) -> SessionContext:
        return SessionContext(
            user_id=user_id or self.config.user_id,
            project=project,
            skip_confirmation=self.config.jobs.skip_confirmation,
        )

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _transition(self, job: GenerationJob, status: JobStatus) -> None:
        if status not in _TRANSITIONS.get(job.status, set()):
            raise JobStateError(f"Job {job.id} cannot move from {job.status.value} to {status.value}")
        print_info(f"Job {job.id[:8]} ({job.kind.value}): {job.status.value} -> {status.value}")
        job.status = status
        if status.is_terminal:
            job.finished_at = datetime.now(timezone.utc)

    def _release(self, session: SessionContext, job: GenerationJob) -> None:
        session.tokens.pop(job.id, None)
        self._started.pop(job.id, None)

    def _fail(self, job: GenerationJob, message: str) -> None:
        job.error = message
        self._transition(job, JobStatus.FAILED)
        print_error(message)

    def elapsed(self, job: GenerationJob) -> float:
        """Seconds since *job* started running, or 0.0 if it has not."""
        started = self._started.get(job.id)
        return 0.0 if started is None else self.clock() - started

    # ------------------------------------------------------------------
    # Idle -> AwaitingConfirmation
    # ------------------------------------------------------------------

    async def prepare_edit(
        self, session: SessionContext, prompt: str, ask: AnswerProvider | None = None
    ) -> str:
        """Clarify an edit request and return the annotated prompt.

        Raises:
            ClarificationDeadlock: If a question goes unanswered.
        """
        paths = session.project.paths() if session.project else []
        annotated, exchanges = await self.negotiator.negotiate(prompt, paths, ask or _no_answer)
        if exchanges:
            print_info(f"Edit clarified after {len(exchanges)} question(s)")
        return annotated

    async def submit(
        self, session: SessionContext, request: JobRequest, label: str | None = None
    ) -> GenerationJob:
        """Price *request* and open a job awaiting confirmation.

        Raises:
            JobStateError: If a job of the same kind is already active, or an
                edit is requested before any project exists.
            IntegrationSelectionRequired: If a free-text prompt asks for an
                integration that was not selected.
            InsufficientBalance: If the balance does not cover the quote.
        """
        if session.active_job(request.kind) is not None:
            raise JobStateError(f"A {request.kind.value} job is already in progress.")
        if request.kind == JobKind.EDIT and session.project is None:
            raise JobStateError("Generate an app before editing it.")

        if request.free_text and self.classifier is not None:
            intent = await self.classifier.classify(label or request.prompt)
            missing: list[str] = []
            if intent.has_auth_intent and not request.auth_options:
                missing.append("authentication")
            if intent.has_database_intent and not request.database_options:
                missing.append("database")
            if missing:
                raise IntegrationSelectionRequired(missing)

        quote = self.ledger.quote(request.kind, request.auth_options, request.database_options)
        try:
            await self.ledger.ensure_affordable(quote)
        except InsufficientBalance as exc:
            print_warning(f"{exc}")
            raise

        job = GenerationJob(kind=request.kind, label=label or request.prompt, prompt=request.prompt, quote=quote)
        self._transition(job, JobStatus.AWAITING_CONFIRMATION)
        session.active_jobs[request.kind] = job
        session.tokens[job.id] = CancellationToken()
        return job

    # ------------------------------------------------------------------
    # AwaitingConfirmation -> Debiting -> Running -> terminal
    # ------------------------------------------------------------------

    async def confirm(self, session: SessionContext, job: GenerationJob) -> GenerationJob:
        """Debit and run a job that is awaiting confirmation.

        Returns once the job is terminal, or has been handed to ``cancel``.
        """
        if job.status != JobStatus.AWAITING_CONFIRMATION:
            raise JobStateError(f"Job {job.id} is {job.status.value}, not awaiting confirmation.")
        token = session.tokens[job.id]

        try:
            token.raise_if_cancelled(PRE_DEBIT)
            self._transition(job, JobStatus.DEBITING)
            if not await self._debit(job, token):
                return job

            job.started_at = datetime.now(timezone.utc)
            self._started[job.id] = self.clock()
            self._transition(job, JobStatus.RUNNING)

            token.raise_if_cancelled(PRE_DISPATCH)
            result = await self._await_backend(session, job, token)

            token.raise_if_cancelled(RESULT_RECEIVED)
            token.raise_if_cancelled(PRE_MERGE)
            self._apply_result(session, job, result)
            self._transition(job, JobStatus.SUCCEEDED)

            await save_session_project(self.store, session)
            print_success(
                f"{job.kind.value.capitalize()} finished in {format_duration(self.elapsed(job))} "
                f"({len(result.files)} file(s) returned)"
            )
        except JobCancelled as exc:
            print_info(f"Job {job.id[:8]} stopped at {exc.checkpoint}; no output applied")
        except GenerationFailure as exc:
            if token.cancelled:
                print_info(f"Ignoring backend error for cancelled job {job.id[:8]}")
            else:
                self._fail(job, str(exc))
        except Exception as exc:
            if job.status in (JobStatus.DEBITING, JobStatus.RUNNING):
                self._fail(job, f"Job {job.id[:8]} crashed: {exc!r}")
            raise
        finally:
            if job.status.is_terminal:
                self._release(session, job)
        return job

    async def _debit(self, job: GenerationJob, token: CancellationToken) -> bool:
        """Debit the quote. Returns ``False`` if the job ended here."""
        try:
            await self.ledger.debit(job.quote.total, f"App {job.kind.value}: {job.label[:80]}", job.id)
        except (InsufficientBalance, LedgerError) as exc:
            if token.cancelled:
                self._transition(job, JobStatus.CANCELLED)
            else:
                self._fail(job, str(exc))
            return False

        job.amount_debited = job.quote.total
        if token.cancelled:
            # Cancelled while the debit was in flight; the job never started.
            await self._settle_cancellation(job, elapsed=0.0)
            return False
        return True

    async def _await_backend(
        self, session: SessionContext, job: GenerationJob, token: CancellationToken
    ) -> GenerationResult:
        def on_progress(message: str) -> None:
            if token.cancelled or job.status != JobStatus.RUNNING:
                return
            job.progress_log.append(message)
            if session.on_progress is not None:
                session.on_progress(job, message)

        generation = asyncio.ensure_future(
            self.backend.generate(
                job.prompt,
                session.user_id,
                on_progress,
                job.id,
                kind=job.kind,
                project=session.project if job.kind == JobKind.EDIT else None,
            )
        )
        cancelled = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait({generation, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()

        if generation in done and not token.cancelled:
            return generation.result()

        # Cancelled: let the backend call settle within the ack deadline, then drop it.
        try:
            await asyncio.wait_for(asyncio.shield(generation), timeout=self.config.jobs.cancel_ack_timeout)
            print_info(f"Discarded late result for cancelled job {job.id[:8]}")
        except asyncio.TimeoutError:
            generation.cancel()
            print_warning(
                f"Backend did not acknowledge cancellation of job {job.id[:8]} within "
                f"{self.config.jobs.cancel_ack_timeout:.0f}s; the remote job may be orphaned."
            )
        except Exception as exc:
            print_info(f"Discarded backend error for cancelled job {job.id[:8]}: {exc!r}")
        raise JobCancelled(RESULT_RECEIVED)

    def _apply_result(self, session: SessionContext, job: GenerationJob, result: GenerationResult) -> None:
        if job.kind == JobKind.EDIT and session.project is not None:
            self.history.snapshot(session.project, job.label)
            updated = merge_project(session.project, result.files, result.dependencies)
            updated.lint_report = result.lint_report
            session.project = updated
            session.mark_publish_stale()
            return

        session.project = Project(
            files=merge([], result.files),
            dependencies=dict(result.dependencies),
            lint_report=result.lint_report,
            original_prompt=job.label,
        )
        session.project_id = None
        session.published_url = None
        session.publish_stale = False

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def cancel(self, session: SessionContext, job: GenerationJob) -> GenerationJob:
        """Cancel *job*. Repeated calls are no-ops and never refund twice."""
        if job.status.is_terminal or job.cancel_requested:
            return job

        elapsed = self.elapsed(job)
        job.cancel_requested = True
        token = session.tokens.get(job.id)
        if token is not None:
            token.cancel("user")

        if job.status in (JobStatus.IDLE, JobStatus.AWAITING_CONFIRMATION):
            self._transition(job, JobStatus.CANCELLED)
            self._release(session, job)
            return job

        previous = job.status
        self._transition(job, JobStatus.CANCELLING)
        if previous == JobStatus.DEBITING:
            # ``confirm`` settles once the debit resolves.
            return job

        await self._request_remote_cancel(job)
        await self._settle_cancellation(job, elapsed)
        self._release(session, job)
        return job

    async def _request_remote_cancel(self, job: GenerationJob) -> None:
        try:
            acknowledged = await asyncio.wait_for(
                self.backend.cancel(job.id), timeout=self.config.jobs.cancel_ack_timeout
            )
        except asyncio.TimeoutError:
            acknowledged = False
        if not acknowledged:
            print_warning(f"Backend did not confirm cancellation of job {job.id[:8]}")

    async def _settle_cancellation(self, job: GenerationJob, elapsed: float) -> None:
        window = self.config.jobs.refund_window_seconds
        if elapsed < window and job.amount_debited > 0 and not job.refund_issued:
            job.refund_issued = True
            try:
                await self.ledger.credit(
                    job.amount_debited, job.id, f"Refund: {job.kind.value} cancelled after {elapsed:.1f}s"
                )
            except LedgerError as exc:
                job.refund_issued = False
                print_error(f"Refund for job {job.id[:8]} failed: {exc}")
        elif job.amount_debited > 0 and not job.refund_issued:
            print_info(
                f"Job {job.id[:8]} cancelled after {elapsed:.1f}s; "
                f"past the {window:.0f}s refund window, {format_tokens(job.amount_debited)} kept"
            )
        self._transition(job, JobStatus.CANCELLED)

    # ------------------------------------------------------------------
    # Convenience
    # ------------------------------------------------------------------

    async def run(
        self,
        session: SessionContext,
        request: JobRequest,
        confirm: ConfirmCallback | None = None,
        ask: AnswerProvider | None = None,
    ) -> GenerationJob:
        """Clarify, submit and (when confirmed) run *request*.

        Without ``session.skip_confirmation`` or a *confirm* callback the job
        is returned awaiting confirmation.
        """
        label = request.prompt
        if request.kind == JobKind.EDIT and request.free_text and session.project is not None:
            annotated = await self.prepare_edit(session, request.prompt, ask)
            request = request.model_copy(update={"prompt": annotated})

        job = await self.submit(session, request, label=label)
        if session.skip_confirmation:
            return await self.confirm(session, job)
        if confirm is None:
            return job
        if await confirm(job):
            return await self.confirm(session, job)
        return await self.cancel(session, job)


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


async def _run_cli(config: Config, args, api_token: str) -> int:
    orchestrator = JobOrchestrator.from_config(config, api_token)
    session = orchestrator.new_session()
    if args.yes:
        session.skip_confirmation = True

    kind = JobKind.GENERATION
    if args.edit:
        stored = await orchestrator.store.get(args.edit)
        if stored is None:
            print_error(f"Project not found: {args.edit}")
            return 1
        session.project = stored.project
        session.project_id = stored.id
        kind = JobKind.EDIT

    async def ask(result) -> str | None:
        hint = f" ({result.suggestion})" if result.suggestion else ""
        answer = console.input(f"[bold cyan]{result.question}[/bold cyan]{hint} ")
        return answer or None

    async def confirm(job: GenerationJob) -> bool:
        answer = console.input(f"Spend {format_tokens(job.quote.total)} on this {job.kind.value}? [y/N] ")
        return answer.strip().lower() in ("y", "yes")

    request = JobRequest(
        kind=kind,
        prompt=args.prompt,
        auth_options=args.auth or [],
        database_options=args.database or [],
    )

    with create_progress() as progress:
        task_id = progress.add_task("Waiting...", total=None)
        session.on_progress = lambda _job, message: progress.update(task_id, description=message)
        try:
            job = await orchestrator.run(session, request, confirm=confirm, ask=ask)
        except AppGenError as exc:
            print_error(str(exc))
            return 1

    print_summary_table(
        {
            "Job": job.id,
            "Kind": job.kind.value,
            "Status": job.status.value,
            "Cost": format_tokens(job.quote.total),
            "Refunded": "yes" if job.refund_issued else "no",
            "Files": str(len(session.project.files)) if session.project else "0",
            "Project": session.project_id or "(not saved)",
        },
        title="Job Summary",
    )
    return 0 if job.status == JobStatus.SUCCEEDED else 1


def main() -> None:
    """CLI entry point for ``python -m appgen.orchestrator``."""
    import argparse
    import os

    parser = argparse.ArgumentParser(
        description="Generate or edit an app from a natural-language prompt",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            '  python -m appgen.orchestrator "A portfolio site for a photographer"\n'
            '  python -m appgen.orchestrator "Members area" --auth google --auth email --yes\n'
            '  python -m appgen.orchestrator "Make the hero darker" --edit <project-id>\n'
        ),
    )
    parser.add_argument("prompt", help="What to build, or what to change with --edit")
    parser.add_argument("--auth", action="append", help="Authentication option (repeatable)")
    parser.add_argument("--database", action="append", help="Database option (repeatable)")
    parser.add_argument("--edit", default=None, help="Edit the stored project with this id")
    parser.add_argument("--yes", "-y", action="store_true", help="Skip the token confirmation")
    parser.add_argument("--user", default=None, help="User id (default: $APPGEN_USER_ID)")
    parser.add_argument("--store-dir", default=None, help="Project store directory")

    args = parser.parse_args()

    config = Config.from_env()
    if args.user:
        config.user_id = args.user
    if args.store_dir:
        config.store_dir = Path(args.store_dir)
    if not config.user_id:
        console.print("[bold red]Error:[/bold red] No user id (use --user or APPGEN_USER_ID)")
        sys.exit(1)

    exit_code = asyncio.run(_run_cli(config, args, os.environ.get("APPGEN_API_TOKEN", "")))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
