"""
resolver.py - Submission & Finality Resolver

Sends a frozen, signed transaction to the network exactly once and resolves
its terminal outcome.

Outcome taxonomy of submit():
    InsufficientSignatures  a declared policy is unsatisfied; nothing was sent
    DuplicateSubmission     this transaction id was already handed to submit
    Rejected(reason)        the node refused it before consensus
    AmbiguousOutcome        sent, but no definite answer (timeout or a
                            failed receipt query)
    Receipt                 reached consensus; status is SUCCESS or a
                            business failure such as TOKEN_MAX_SUPPLY_REACHED

Protocol failures are exceptions; business failures are Receipt values.
There are no automatic retries: retrying means building, freezing and
signing a fresh transaction.
"""

from __future__ import annotations
import asyncio
from typing import Iterable, Set

from .core import (
    AmbiguousOutcome, DuplicateSubmission, InsufficientSignatures, NetworkClient,
    NetworkError, NetworkTimeout, PrecheckError, Receipt, Rejected,
    DEFAULT_RECEIPT_TIMEOUT,
)
from .operations import TransactionDraft
from .pipeline import (
    FrozenTransaction, PayerContext, freeze, missing_policies, sign,
)
from .policy import SigningPolicy


class Resolver:
    """
    Submits transactions and resolves receipts.

    Args:
        client: Network client collaborator
        receipt_timeout: Seconds to wait for a receipt before the outcome is
                         declared ambiguous
        verbose: Print one status line per submission (default: True)

    Example:
        resolver = Resolver(network, verbose=False)
        frozen = sign(freeze(draft, payer), topic_policy)
        receipt = await resolver.submit(frozen)
        assert receipt.status is ReceiptStatus.SUCCESS
    """

    def __init__(
        self,
        client: NetworkClient,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
        verbose: bool = True,
    ):
        self.client = client
        self.receipt_timeout = receipt_timeout
        self.verbose = verbose
        self._submitted: Set[str] = set()

    def was_submitted(self, transaction_id: str) -> bool:
        return transaction_id in self._submitted

    async def submit(self, frozen: FrozenTransaction) -> Receipt:
        """
        Submit once and resolve the outcome.

        Local preconditions are checked before the first suspension point,
        so an under-signed transaction never reaches the client.

        Raises:
            InsufficientSignatures: A declared policy is not satisfied.
            DuplicateSubmission: The transaction was submitted before.
            Rejected: Pre-consensus rejection by the node.
            AmbiguousOutcome: Timeout or receipt failure after sending;
                              reconcile with fetch_receipt(), never resubmit.
        """
        missing = missing_policies(frozen)
        if missing:
            raise InsufficientSignatures(
                f"{frozen.transaction_id}: unsatisfied {', '.join(repr(p) for p in missing)}"
            )
        if frozen.transaction_id in self._submitted:
            raise DuplicateSubmission(f"{frozen.transaction_id} was already submitted")

        # Recorded before sending: a failed send still consumed the payload.
        self._submitted.add(frozen.transaction_id)
        payload = frozen.to_bytes()
        try:
            response = await self.client.execute_transaction(payload)
        except PrecheckError as e:
            if self.verbose:
                print(f"✗ REJECTED: {frozen.transaction_id} {e.status.value}")
            raise Rejected(e.status, frozen.transaction_id, e.detail) from e
        except (NetworkTimeout, asyncio.TimeoutError) as e:
            if self.verbose:
                print(f"⚠️  AMBIGUOUS: {frozen.transaction_id} timed out after send")
            raise AmbiguousOutcome(frozen.transaction_id, e) from e

        try:
            receipt = await self.fetch_receipt(response.transaction_id)
        except NetworkError as e:
            if self.verbose:
                print(f"⚠️  AMBIGUOUS: {frozen.transaction_id} receipt query failed: {e}")
            raise AmbiguousOutcome(frozen.transaction_id, e) from e
        if self.verbose:
            icon = "✓" if receipt.status.is_success else "✗"
            print(f"{icon} {receipt.status.value}: {frozen.kind.value} {receipt.transaction_id}"
                  + (f" -> {receipt.entity_id}" if receipt.entity_id else ""))
        return receipt

    async def fetch_receipt(self, transaction_id: str) -> Receipt:
        """
        Query the receipt of a transaction that was already sent.

        Read-only; safe to call repeatedly when reconciling an
        AmbiguousOutcome.

        Raises:
            AmbiguousOutcome: No receipt within receipt_timeout.
        """
        try:
            return await asyncio.wait_for(
                self.client.fetch_receipt(transaction_id), timeout=self.receipt_timeout
            )
        except (NetworkTimeout, asyncio.TimeoutError) as e:
            raise AmbiguousOutcome(transaction_id, e) from e

    async def execute(
        self,
        draft: TransactionDraft,
        payer: PayerContext,
        policies: Iterable[SigningPolicy] = (),
    ) -> Receipt:
        """
        Freeze, sign with every private member of each policy, and submit.

        Policies already declared by the draft are signed as well when this
        process holds their keys.
        """
        frozen = freeze(draft, payer)
        for policy in (*draft.required_policies, *policies):
            if policy.signers():
                frozen = sign(frozen, policy)
        return await self.submit(frozen)


async def submit_all(resolver: Resolver, transactions: Iterable[FrozenTransaction]) -> list:
    """
    Submit independent transactions concurrently; receipts in input order.

    Every submission runs to completion before this returns. If any of them
    raised, the first error in input order is raised; the other transactions
    were still submitted and their outcomes are not retried.
    """
    outcomes = await asyncio.gather(
        *(resolver.submit(tx) for tx in transactions), return_exceptions=True
    )
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            raise outcome
    return list(outcomes)
