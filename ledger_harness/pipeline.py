"""
pipeline.py - Signing & Freeze Pipeline

Turns a mutable TransactionDraft into an immutable FrozenTransaction bound to
a fee payer, then layers signatures onto it.

Lifecycle:
1. freeze(draft, payer)  -> FrozenTransaction with the payer's signature
2. sign(frozen, policy)  -> new FrozenTransaction sharing the same body,
                            with more signatures (repeatable, any order)
3. is_signed_enough(...) -> every declared policy has met its threshold

The frozen body (and therefore its signing bytes) never changes after
freeze. Signing only ever adds signatures; each public key signs at most
once, so a threshold counts distinct members.

Everything here is local and synchronous. Nothing touches the network.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from types import MappingProxyType
import time
from typing import (
    Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple
)

from .core import (
    AlreadyFrozen, EntityId, InvalidPolicy, TransactionKind,
    canonical_bytes, encode_envelope,
)
from .keys import Actor, PrivateKey, PublicKey
from .operations import TransactionDraft
from .policy import PolicyKind, SigningPolicy


DEFAULT_NODE_ID = "0.0.3"
DEFAULT_MAX_FEE = 200_000_000


# ============================================================================
# PAYER CONTEXT
# ============================================================================

class PayerContext:
    """
    The fee-paying identity a transaction is frozen against.

    Issues transaction ids of the form <payer>@<seconds>.<nanos>, strictly
    increasing per context even when the clock does not advance.

    Args:
        payer: Actor paying fees; its key signs every frozen transaction
        node_id: Node the transaction is addressed to
        max_fee: Upper bound on the fee the payer accepts (tinybars)
        clock: Nanosecond clock, injectable for deterministic tests
    """

    def __init__(
        self,
        payer: Actor,
        node_id: str = DEFAULT_NODE_ID,
        max_fee: int = DEFAULT_MAX_FEE,
        clock: Callable[[], int] = time.time_ns,
    ):
        self.payer = payer
        self.node_id = node_id
        self.max_fee = max_fee
        self._clock = clock
        self._last_ns = 0

    @property
    def account_id(self) -> EntityId:
        return self.payer.account_id

    def next_transaction_id(self) -> str:
        ns = max(self._clock(), self._last_ns + 1)
        self._last_ns = ns
        seconds, nanos = divmod(ns, 1_000_000_000)
        return f"{self.payer.account_id}@{seconds}.{nanos:09d}"

    def __repr__(self) -> str:
        return f"PayerContext({self.payer.account_id} -> node {self.node_id})"


# ============================================================================
# FROZEN TRANSACTION
# ============================================================================

@dataclass(frozen=True, slots=True)
class FrozenTransaction:
    """
    Immutable, payer-bound snapshot of one draft plus its signatures.

    Attributes:
        transaction_id: Unique id issued by the payer context
        payer_account_id: Account charged the fee
        node_id: Node the transaction is addressed to
        kind: Operation kind
        memo: Transaction memo
        params: Read-only snapshot of the draft's validated parameters
        body_bytes: Canonical bytes every signature covers
        policies: Declared signing requirements; the payer's key comes first
        signatures: (public key, signature) pairs, one per distinct key
        draft_id: Identity of the draft this was frozen from
    """
    transaction_id: str
    payer_account_id: EntityId
    node_id: str
    kind: TransactionKind
    memo: str
    params: Mapping[str, Any]
    body_bytes: bytes = field(repr=False)
    policies: Tuple[SigningPolicy, ...] = ()
    signatures: Tuple[Tuple[PublicKey, bytes], ...] = field(default=(), repr=False)
    draft_id: int = 0

    @property
    def signed_keys(self) -> FrozenSet[PublicKey]:
        """Public keys with a valid signature over body_bytes."""
        return frozenset(
            key for key, signature in self.signatures
            if key.verify(signature, self.body_bytes)
        )

    def signature_map(self) -> Dict[str, bytes]:
        return {key.to_string(): signature for key, signature in self.signatures}

    def to_bytes(self) -> bytes:
        """Signed envelope as sent to the network."""
        return encode_envelope(self.body_bytes, self.signature_map())

    def __repr__(self) -> str:
        return (
            f"FrozenTransaction({self.transaction_id} {self.kind.value}, "
            f"{len(self.signatures)} sig(s), {len(self.policies)} policy(ies))"
        )


def _body(draft: TransactionDraft, payer: PayerContext, transaction_id: str) -> Dict[str, Any]:
    return {
        "transaction_id": transaction_id,
        "payer_account_id": payer.account_id,
        "node_id": payer.node_id,
        "max_fee": payer.max_fee,
        "kind": draft.kind,
        "memo": draft.memo,
        "params": draft.params,
    }


def freeze(draft: TransactionDraft, payer: PayerContext) -> FrozenTransaction:
    """
    Freeze a draft against a fee payer.

    The draft's parameters are snapshotted; later changes to the draft do not
    reach the frozen transaction. The payer signs immediately, and the payer's
    single-key policy becomes the first declared requirement.

    Args:
        draft: Draft to freeze (at most once)
        payer: Fee-paying context

    Returns:
        FrozenTransaction carrying exactly one signature, the payer's

    Raises:
        AlreadyFrozen: If this draft was frozen before.
    """
    if draft.is_frozen:
        raise AlreadyFrozen(f"{draft!r} was already frozen")

    transaction_id = payer.next_transaction_id()
    params = MappingProxyType(draft.params)
    body_bytes = canonical_bytes(_body(draft, payer, transaction_id))
    draft._mark_frozen()

    payer_policy = payer.payer.policy
    policies: List[SigningPolicy] = [payer_policy]
    for policy in draft.required_policies:
        if policy not in policies:
            policies.append(policy)

    payer_key = payer.payer.private_key
    return FrozenTransaction(
        transaction_id=transaction_id,
        payer_account_id=payer.account_id,
        node_id=payer.node_id,
        kind=draft.kind,
        memo=draft.memo,
        params=params,
        body_bytes=body_bytes,
        policies=tuple(policies),
        signatures=((payer_key.public_key, payer_key.sign(body_bytes)),),
        draft_id=draft.draft_id,
    )


def _chosen_signers(
    policy: SigningPolicy, signers: Optional[Iterable[PrivateKey]]
) -> Tuple[PrivateKey, ...]:
    chosen = policy.signers() if signers is None else tuple(signers)
    for key in chosen:
        if not isinstance(key, PrivateKey):
            raise InvalidPolicy(f"Cannot sign with {type(key).__name__}")

    if policy.kind is PolicyKind.SINGLE:
        if len(chosen) != 1:
            raise InvalidPolicy(
                f"Single-key policy signs with exactly one key, got {len(chosen)}"
            )
    elif policy.kind is PolicyKind.THRESHOLD:
        if signers is None and not chosen:
            raise InvalidPolicy("Threshold policy holds no private keys to sign with")
    return chosen


def sign(
    frozen: FrozenTransaction,
    policy: SigningPolicy,
    signers: Optional[Iterable[PrivateKey]] = None,
) -> FrozenTransaction:
    """
    Add signatures under a policy.

    For a single-key policy exactly one signature is attached. For a
    threshold policy, `signers` may be any subset of the members and sign
    may be called again later with more; distinct signatures accumulate.
    With signers omitted, every member holding a private key signs.

    A signer outside the policy's members is attached (the ledger tolerates
    extra signatures) but never counts toward the policy.

    The policy becomes a declared requirement of the returned transaction.

    Args:
        frozen: Transaction to extend (unchanged; a new view is returned)
        policy: Policy the signatures are collected for
        signers: Private keys to sign with

    Returns:
        FrozenTransaction with the same body and the union of signatures

    Raises:
        InvalidPolicy: If policy is not a SigningPolicy, a single-key policy
                       is given other than one signer, or a signer is not a
                       private key.
    """
    if not isinstance(policy, SigningPolicy):
        raise InvalidPolicy(f"Expected a SigningPolicy, got {type(policy).__name__}")

    signatures = dict(frozen.signatures)
    for key in _chosen_signers(policy, signers):
        if key.public_key not in signatures:
            signatures[key.public_key] = key.sign(frozen.body_bytes)

    policies = frozen.policies
    if policy not in policies:
        policies = policies + (policy,)

    return replace(frozen, signatures=tuple(signatures.items()), policies=policies)


def missing_policies(frozen: FrozenTransaction) -> List[SigningPolicy]:
    """Declared policies whose threshold is not yet met."""
    signed = frozen.signed_keys
    return [policy for policy in frozen.policies if not policy.is_satisfied(signed)]


def is_signed_enough(
    frozen: FrozenTransaction, policy: Optional[SigningPolicy] = None
) -> bool:
    """
    Check signature sufficiency.

    With a policy: True iff the distinct valid signatures of that policy's
    members reach its threshold. Without: True iff every declared policy
    is satisfied.
    """
    if policy is not None:
        return policy.is_satisfied(frozen.signed_keys)
    return not missing_policies(frozen)
