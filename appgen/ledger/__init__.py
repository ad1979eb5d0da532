"""Token ledger module.

Key classes:
    PricingModel        - Base prices plus per-integration add-on strategies
    TokenLedgerManager  - Quotes, balance checks, debits and refunds
    InMemoryLedger      - Process-local ledger
    HttpLedgerClient    - Hosted ledger API client
"""

from .client import HttpLedgerClient, InMemoryLedger, LedgerClient, LedgerResponse
from .manager import TokenLedgerManager
from .pricing import (
    AddOnStrategy,
    FlatAddOn,
    PerOptionAddOn,
    PricingModel,
    compute_edit_cost,
    compute_generation_cost,
)

__all__ = [
    # Pricing
    "PricingModel",
    "AddOnStrategy",
    "PerOptionAddOn",
    "FlatAddOn",
    "compute_generation_cost",
    "compute_edit_cost",
    # Ledger clients
    "LedgerClient",
    "LedgerResponse",
    "InMemoryLedger",
    "HttpLedgerClient",
    # Manager
    "TokenLedgerManager",
]
