"""App generation core.

Turns natural-language prompts into generated web-app projects through a
token-metered, cancellable job pipeline.

Key classes:
    JobOrchestrator           - Generation/edit job state machine
    TokenLedgerManager        - Pricing, debits and refunds
    ClarificationNegotiator   - Clarifying questions for vague edits
    EditHistoryManager        - Pre-edit snapshots and rollback
    AssetReplacer             - Targeted image replacement
"""
