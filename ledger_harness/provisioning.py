"""
provisioning.py - Fixture Account Provisioning

Creates fresh funded accounts for scenario runs and writes them in the
format HarnessConfig reads back:

    [
      {"id": "0.0.1002", "privateKey": "302e0201..."},
      ...
    ]
"""

from __future__ import annotations
import json
from pathlib import Path
from typing import List

from .config import AccountRecord
from .core import HarnessError, to_tinybars
from .keys import PrivateKey
from .operations import account_create
from .pipeline import PayerContext
from .policy import SingleKeyPolicy
from .resolver import Resolver


DEFAULT_ACCOUNT_COUNT = 5
DEFAULT_INITIAL_BALANCE = to_tinybars(100)


async def provision_accounts(
    resolver: Resolver,
    payer: PayerContext,
    count: int = DEFAULT_ACCOUNT_COUNT,
    initial_balance: int = DEFAULT_INITIAL_BALANCE,
) -> List[AccountRecord]:
    """
    Create `count` accounts, each owned by a newly generated key.

    Accounts are created one after another so ids come back in order.

    Args:
        resolver: Resolver used to submit the creations
        payer: Context paying fees and initial balances
        count: Number of accounts
        initial_balance: Tinybars moved to each new account

    Returns:
        One AccountRecord per account, in creation order

    Raises:
        HarnessError: If a creation does not succeed. Accounts created
                      before the failure are not returned.
    """
    if count < 1:
        raise ValueError(f"count must be >= 1, got {count}")

    records: List[AccountRecord] = []
    for _ in range(count):
        key = PrivateKey.generate()
        receipt = await resolver.execute(
            account_create(SingleKeyPolicy(key), initial_balance), payer
        )
        if not receipt.status.is_success or receipt.account_id is None:
            raise HarnessError(f"Account creation failed: {receipt!r}")
        records.append(AccountRecord(id=str(receipt.account_id), private_key=key.to_string_der()))
    return records


def write_accounts(records: List[AccountRecord], path: "str | Path") -> Path:
    """Write records as the accounts JSON file; returns the path written."""
    path = Path(path)
    payload = [record.model_dump(by_alias=True) for record in records]
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
        f.write("\n")
    return path
