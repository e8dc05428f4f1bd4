"""
Operations module - Factory functions for ledger transaction drafts.

One module per operation family:
- Account creation
- Token lifecycle (create, mint, associate)
- Multi-leg transfers of tokens and native currency
- Consensus topics (create, submit message)

Importing this package registers every operation kind with the draft
validator registry. All factories are re-exported here for convenience.
"""

from .draft import TransactionDraft, operation_spec

from .account import account_create

from .token import (
    token_create,
    token_mint,
    token_associate,
    fixed_supply,
)

from .transfer import (
    TransferLeg,
    token_leg,
    hbar_leg,
    net_by_token,
    transfer,
    debited_accounts,
)

from .topic import (
    topic_create,
    topic_message_submit,
)

__all__ = [
    "TransactionDraft",
    "operation_spec",
    "account_create",
    "token_create",
    "token_mint",
    "token_associate",
    "fixed_supply",
    "TransferLeg",
    "token_leg",
    "hbar_leg",
    "net_by_token",
    "transfer",
    "debited_accounts",
    "topic_create",
    "topic_message_submit",
]
