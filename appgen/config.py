"""App generation core configuration.

Centralised, typed configuration for pricing, job control, clarification and
the external collaborators. All settings use Pydantic v2 models so they are
validated at construction time and serialise to/from JSON or environment
variables without boiler-plate.
"""

from __future__ import annotations

import os
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator


INTEGRATION_KINDS = ("auth", "database")


class PricingRule(str, Enum):
    """How an integration add-on is charged."""

    PER_OPTION = "per_option"
    FLAT = "flat"
    FREE = "free"


class PricingConfig(BaseModel):
    """Token prices for generation and edit jobs.

    ``priced_integrations`` maps an integration kind (``"auth"``,
    ``"database"``) to the rule used to charge it. A kind missing from the
    mapping is free; a kind without a configured price is rejected.
    """

    base_generation: Decimal = Field(default=Decimal("2.00"), ge=0)
    base_edit: Decimal = Field(default=Decimal("0.10"), ge=0)
    auth_unit: Decimal = Field(default=Decimal("2.00"), ge=0, description="Cost per auth option")
    database_flat: Decimal = Field(
        default=Decimal("2.00"), ge=0, description="Flat cost for any database selection"
    )
    priced_integrations: dict[str, PricingRule] = Field(
        default_factory=lambda: {"auth": PricingRule.PER_OPTION, "database": PricingRule.FLAT}
    )

    @field_validator("priced_integrations")
    @classmethod
    def _known_kinds(cls, value: dict[str, PricingRule]) -> dict[str, PricingRule]:
        unknown = sorted(set(value) - set(INTEGRATION_KINDS))
        if unknown:
            raise ValueError(
                f"No price configured for integration kind(s) {unknown}; expected one of {list(INTEGRATION_KINDS)}"
            )
        return value

    def unit_price(self, kind: str) -> Decimal:
        """Return the configured price for an integration kind."""
        prices = {"auth": self.auth_unit, "database": self.database_flat}
        if kind not in prices:
            raise ValueError(f"Unknown integration kind: {kind}")
        return prices[kind]


class JobConfig(BaseModel):
    """Timing knobs for generation and edit jobs."""

    refund_window_seconds: float = Field(
        default=10.0, gt=0, description="Cancellation within this window refunds the debit"
    )
    cancel_ack_timeout: float = Field(
        default=5.0, gt=0, description="Seconds to wait for the backend after a cancel"
    )
    poll_interval: float = Field(default=1.0, gt=0, description="Backend status poll interval")
    skip_confirmation: bool = Field(default=False, description="Debit without a confirm prompt")


class ClarificationConfig(BaseModel):
    """Settings for edit-request clarification."""

    enabled: bool = Field(default=True)
    max_rounds: int = Field(default=3, ge=1, description="Questions asked before proceeding anyway")
    use_llm: bool = Field(default=False, description="Ask the LLM instead of the heuristic")


class BackendConfig(BaseModel):
    """Base URLs of the HTTP collaborators."""

    url: str = Field(default="http://localhost:3000")
    timeout: int = Field(default=60, ge=1, description="Per-request timeout in seconds")


class LLMConfig(BaseModel):
    """Configuration for the Ollama-compatible model used by the classifiers."""

    url: str = Field(default="http://localhost:11434")
    model: str = Field(default="llama3.1:8b")
    timeout: int = Field(default=30, ge=1)


class Config(BaseModel):
    """Global configuration.

    Instances are created once by the CLI or the embedding application and
    passed to the orchestrator and its collaborators.
    """

    user_id: str = Field(default="")
    store_dir: Path = Field(default=Path("./.appgen/projects"))
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    jobs: JobConfig = Field(default_factory=JobConfig)
    clarification: ClarificationConfig = Field(default_factory=ClarificationConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the configuration to a JSON file and return its path."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return path

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            APPGEN_USER_ID, APPGEN_STORE_DIR, APPGEN_BACKEND_URL,
            APPGEN_BACKEND_TIMEOUT, APPGEN_LLM_URL, APPGEN_LLM_MODEL,
            APPGEN_REFUND_WINDOW, APPGEN_CANCEL_ACK_TIMEOUT,
            APPGEN_SKIP_CONFIRMATION, APPGEN_MAX_CLARIFICATION_ROUNDS,
            APPGEN_BASE_GENERATION_COST, APPGEN_BASE_EDIT_COST.
        """
        backend_kwargs: dict[str, Any] = {}
        if os.environ.get("APPGEN_BACKEND_URL"):
            backend_kwargs["url"] = os.environ["APPGEN_BACKEND_URL"]
        if os.environ.get("APPGEN_BACKEND_TIMEOUT"):
            backend_kwargs["timeout"] = int(os.environ["APPGEN_BACKEND_TIMEOUT"])

        llm_kwargs: dict[str, Any] = {}
        if os.environ.get("APPGEN_LLM_URL"):
            llm_kwargs["url"] = os.environ["APPGEN_LLM_URL"]
        if os.environ.get("APPGEN_LLM_MODEL"):
            llm_kwargs["model"] = os.environ["APPGEN_LLM_MODEL"]

        job_kwargs: dict[str, Any] = {}
        if os.environ.get("APPGEN_REFUND_WINDOW"):
            job_kwargs["refund_window_seconds"] = float(os.environ["APPGEN_REFUND_WINDOW"])
        if os.environ.get("APPGEN_CANCEL_ACK_TIMEOUT"):
            job_kwargs["cancel_ack_timeout"] = float(os.environ["APPGEN_CANCEL_ACK_TIMEOUT"])
        if os.environ.get("APPGEN_SKIP_CONFIRMATION"):
            job_kwargs["skip_confirmation"] = os.environ["APPGEN_SKIP_CONFIRMATION"].lower() in (
                "1",
                "true",
                "yes",
            )

        clarification_kwargs: dict[str, Any] = {}
        if os.environ.get("APPGEN_MAX_CLARIFICATION_ROUNDS"):
            clarification_kwargs["max_rounds"] = int(os.environ["APPGEN_MAX_CLARIFICATION_ROUNDS"])

        pricing_kwargs: dict[str, Any] = {}
        if os.environ.get("APPGEN_BASE_GENERATION_COST"):
            pricing_kwargs["base_generation"] = Decimal(os.environ["APPGEN_BASE_GENERATION_COST"])
        if os.environ.get("APPGEN_BASE_EDIT_COST"):
            pricing_kwargs["base_edit"] = Decimal(os.environ["APPGEN_BASE_EDIT_COST"])

        return cls(
            user_id=os.environ.get("APPGEN_USER_ID", ""),
            store_dir=Path(os.environ.get("APPGEN_STORE_DIR", "./.appgen/projects")),
            pricing=PricingConfig(**pricing_kwargs),
            jobs=JobConfig(**job_kwargs),
            clarification=ClarificationConfig(**clarification_kwargs),
            backend=BackendConfig(**backend_kwargs),
            llm=LLMConfig(**llm_kwargs),
        )
