"""
transfer.py - Multi-Leg Transfer Drafts

A transfer is a list of legs. Each leg debits (negative amount) or credits
(positive amount) one account in one token, or in native currency when the
token is None. The ledger applies all legs atomically.

Conservation rule, checked eagerly:

    for every token t (and for native currency):
        sum(leg.amount for leg in legs if leg.token_id == t) == 0

so [-30, -20, +50] is a valid transfer and [-30, -10, +50] is not.
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..core import EntityId, MalformedDraft, TransactionKind
from ..policy import SigningPolicy
from .draft import Params, TransactionDraft, operation


@dataclass(frozen=True, slots=True)
class TransferLeg:
    """
    One side of a transfer.

    Attributes:
        account_id: Account debited or credited.
        amount: Signed amount; negative debits, positive credits. Never zero.
        token_id: Token moved, or None for native currency (tinybars).
    """
    account_id: EntityId
    amount: int
    token_id: Optional[EntityId] = None

    def __post_init__(self):
        object.__setattr__(self, "account_id", EntityId.parse(self.account_id))
        if self.token_id is not None:
            object.__setattr__(self, "token_id", EntityId.parse(self.token_id))
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise ValueError(f"Leg amount must be an int, got {self.amount!r}")
        if self.amount == 0:
            raise ValueError("Leg amount cannot be zero")

    @property
    def is_debit(self) -> bool:
        return self.amount < 0

    def to_wire(self) -> dict:
        return {
            "account_id": str(self.account_id),
            "amount": self.amount,
            "token_id": str(self.token_id) if self.token_id else None,
        }

    def __repr__(self) -> str:
        unit = str(self.token_id) if self.token_id else "tinybar"
        return f"Leg({self.amount:+d} {unit} @ {self.account_id})"


def token_leg(token_id, account_id, amount: int) -> TransferLeg:
    return TransferLeg(account_id=account_id, amount=amount, token_id=token_id)


def hbar_leg(account_id, tinybars: int) -> TransferLeg:
    return TransferLeg(account_id=account_id, amount=tinybars)


def net_by_token(legs: Iterable[TransferLeg]) -> Dict[Optional[EntityId], int]:
    """Sum of leg amounts per token (None = native currency)."""
    net: Dict[Optional[EntityId], int] = defaultdict(int)
    for leg in legs:
        net[leg.token_id] += leg.amount
    return dict(net)


def _coerce_leg(leg) -> TransferLeg:
    if isinstance(leg, TransferLeg):
        return leg
    try:
        token_id, account_id, leg_amount = leg
        return TransferLeg(account_id=account_id, amount=leg_amount, token_id=token_id)
    except (TypeError, ValueError) as e:
        raise MalformedDraft(f"Invalid transfer leg {leg!r}: {e}") from e


@operation(TransactionKind.TRANSFER, ("legs",))
def _validate_transfer(params: Params) -> Params:
    raw = params.get("legs")
    if raw is None:
        raise MalformedDraft("transfer requires legs")
    legs: Tuple[TransferLeg, ...] = tuple(_coerce_leg(leg) for leg in raw)
    if len(legs) < 2:
        raise MalformedDraft("transfer needs at least one debit and one credit")

    imbalanced = {
        token: total for token, total in net_by_token(legs).items() if total != 0
    }
    if imbalanced:
        detail = ", ".join(
            f"{token or 'tinybar'} nets to {total:+d}"
            for token, total in sorted(imbalanced.items(), key=lambda kv: str(kv[0]))
        )
        raise MalformedDraft(f"Transfer legs do not balance: {detail}")
    return {"legs": legs}


def transfer(
    legs: Sequence,
    sender_policies: Iterable[SigningPolicy] = (),
    memo: str = "",
) -> TransactionDraft:
    """
    Draft an atomic multi-leg transfer.

    Args:
        legs: TransferLeg objects or (token_id, account_id, amount) tuples
        sender_policies: Keys of debited accounts, if known locally
        memo: Transaction memo

    Raises:
        MalformedDraft: If a leg is invalid or any token fails to net to zero.

    Example:
        draft = transfer([
            token_leg(token_id, first.account_id, -10),
            token_leg(token_id, second.account_id, 10),
        ], sender_policies=[first.policy])
    """
    return TransactionDraft(
        TransactionKind.TRANSFER,
        {"legs": list(legs)},
        memo=memo,
        required_policies=tuple(sender_policies),
    )


def debited_accounts(draft: TransactionDraft) -> List[EntityId]:
    """Accounts with at least one negative leg, in first-seen order."""
    seen: List[EntityId] = []
    for leg in draft.get("legs", ()):
        if leg.is_debit and leg.account_id not in seen:
            seen.append(leg.account_id)
    return seen
