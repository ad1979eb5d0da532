"""Job pricing.

A ``PricingModel`` is assembled from ``PricingConfig`` with one strategy per
integration kind. Generation and edit quotes share the same formula and only
differ in the base price::

    total = base + auth add-on + database add-on
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Sequence

from appgen.config import PricingConfig, PricingRule
from appgen.models import CostQuote, JobKind
from appgen.utils import round_tokens

ZERO = Decimal("0.00")


# ---------------------------------------------------------------------------
# Add-on strategies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AddOnStrategy:
    """Charges nothing. Base class for the priced strategies."""

    unit: Decimal = ZERO

    def price(self, options: Sequence[str]) -> Decimal:
        return ZERO


@dataclass(frozen=True)
class PerOptionAddOn(AddOnStrategy):
    """Charges ``unit`` for every selected option."""

    def price(self, options: Sequence[str]) -> Decimal:
        return round_tokens(self.unit * len(options))


@dataclass(frozen=True)
class FlatAddOn(AddOnStrategy):
    """Charges ``unit`` once when anything is selected."""

    def price(self, options: Sequence[str]) -> Decimal:
        return round_tokens(self.unit) if options else ZERO


_STRATEGIES: dict[PricingRule, type[AddOnStrategy]] = {
    PricingRule.PER_OPTION: PerOptionAddOn,
    PricingRule.FLAT: FlatAddOn,
    PricingRule.FREE: AddOnStrategy,
}


# ---------------------------------------------------------------------------
# PricingModel
# ---------------------------------------------------------------------------


@dataclass
class PricingModel:
    """Base prices plus one add-on strategy per integration kind."""

    base_generation: Decimal
    base_edit: Decimal
    add_ons: dict[str, AddOnStrategy] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: PricingConfig) -> "PricingModel":
        """Build the model described by *config*."""
        model = cls(
            base_generation=round_tokens(config.base_generation),
            base_edit=round_tokens(config.base_edit),
        )
        for kind, rule in config.priced_integrations.items():
            model.with_add_on(kind, _STRATEGIES[rule](unit=config.unit_price(kind)))
        return model

    def with_add_on(self, kind: str, strategy: AddOnStrategy) -> "PricingModel":
        self.add_ons[kind] = strategy
        return self

    def _add_on(self, kind: str, options: Sequence[str]) -> Decimal:
        strategy = self.add_ons.get(kind)
        return strategy.price(options) if strategy else ZERO

    def quote(
        self,
        kind: JobKind,
        auth_options: Sequence[str] = (),
        database_options: Sequence[str] = (),
    ) -> CostQuote:
        """Price a job of *kind* with the selected integrations."""
        base = self.base_generation if kind == JobKind.GENERATION else self.base_edit
        auth = self._add_on("auth", auth_options)
        database = self._add_on("database", database_options)
        return CostQuote(
            base=base,
            auth_add_on=auth,
            database_add_on=database,
            total=round_tokens(base + auth + database),
        )


def compute_generation_cost(
    model: PricingModel,
    auth_options: Sequence[str] = (),
    database_options: Sequence[str] = (),
) -> CostQuote:
    return model.quote(JobKind.GENERATION, auth_options, database_options)


def compute_edit_cost(
    model: PricingModel,
    auth_options: Sequence[str] = (),
    database_options: Sequence[str] = (),
) -> CostQuote:
    return model.quote(JobKind.EDIT, auth_options, database_options)
