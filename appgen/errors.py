"""Exceptions raised by the app generation core.

Every message is plain descriptive text; callers surface ``str(exc)`` to the
user as-is.
"""

from __future__ import annotations

from decimal import Decimal


class AppGenError(Exception):
    """Base class for all app generation core errors."""


class InsufficientBalance(AppGenError):
    """Raised before any debit when the balance does not cover the quote."""

    def __init__(self, required: Decimal, balance: Decimal) -> None:
        self.required = required
        self.balance = balance
        super().__init__(
            f"Insufficient app tokens: {required} required, {balance} available. "
            f"Top up your balance to continue."
        )


class LedgerError(AppGenError):
    """Raised when the external ledger rejects or fails a debit/credit request."""


class GenerationFailure(AppGenError):
    """Raised when the generation backend reports an error for a job."""

    def __init__(self, job_id: str, message: str) -> None:
        self.job_id = job_id
        super().__init__(f"Generation failed for job {job_id}: {message}")


class PersistenceFailure(AppGenError):
    """Raised by a project store when a write does not go through."""


class AssetReplacementNotFound(AppGenError):
    """Raised when no occurrence of the selected image exists in any file."""


class IntegrationSelectionRequired(AppGenError):
    """Raised when a free-text prompt asks for an integration nobody selected."""

    def __init__(self, kinds: list[str]) -> None:
        self.kinds = kinds
        super().__init__(
            f"Your prompt mentions {' and '.join(kinds)}. "
            f"Select the {' and '.join(kinds)} options explicitly instead of describing them."
        )


class ClarificationDeadlock(AppGenError):
    """Raised when clarification ends without an answer, so the edit never starts."""


class JobStateError(AppGenError):
    """Raised when an operation is not valid in the job's current state."""


class JobCancelled(AppGenError):
    """Signals that a cancellation checkpoint was reached. Never surfaced."""

    def __init__(self, checkpoint: str) -> None:
        self.checkpoint = checkpoint
        super().__init__(f"Job cancelled at checkpoint '{checkpoint}'")
