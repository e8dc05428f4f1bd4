"""
account.py - Account Creation Drafts

Factory for creating a new account owned by a signing policy, funded by
the payer with an initial native balance (in tinybars).
"""

from __future__ import annotations

from ..core import MalformedDraft, TransactionKind
from ..policy import SigningPolicy
from .draft import (
    Params, TransactionDraft, amount, operation, optional_policy, validate_memo,
)


@operation(TransactionKind.ACCOUNT_CREATE, ("key", "initial_balance", "account_memo"))
def _validate_account_create(params: Params) -> Params:
    key = optional_policy(params.get("key"), "key")
    if key is None:
        raise MalformedDraft("account_create requires a key")
    return {
        "key": key,
        "initial_balance": amount(params.get("initial_balance", 0), "initial_balance"),
        "account_memo": validate_memo(params.get("account_memo", ""), "account_memo"),
    }


def account_create(
    key: SigningPolicy,
    initial_balance: int = 0,
    account_memo: str = "",
    memo: str = "",
) -> TransactionDraft:
    """
    Draft an account creation.

    Args:
        key: Policy that will own the new account
        initial_balance: Tinybars moved from the payer to the new account
        account_memo: Memo stored on the account
        memo: Transaction memo

    Returns:
        TransactionDraft of kind ACCOUNT_CREATE

    Example:
        new_key = PrivateKey.generate()
        draft = account_create(SingleKeyPolicy(new_key), to_tinybars(100))
    """
    return TransactionDraft(
        TransactionKind.ACCOUNT_CREATE,
        {"key": key, "initial_balance": initial_balance, "account_memo": account_memo},
        memo=memo,
    )
