"""
scenario.py - Scenario Context and Expected Outcomes

A Scenario bundles the collaborators one scenario run uses (resolver,
subscription engine, queries, signer registry, fee payer) with a typed
ScenarioState that steps fill in as the scenario progresses.

Expected outcomes are explicit. A step that should be refused by business
rules names the ReceiptStatus it expects; a step that should fail locally or
at precheck names the exception class. "Did not throw" is never a pass.

Teardown (Scenario.close(), or leaving `async with Scenario(...)`) cancels
every subscription the scenario opened.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import (
    Any, Awaitable, Dict, FrozenSet, List, Optional, Type, Union
)

from .core import (
    EntityId, HarnessError, NetworkClient, Receipt, ReceiptStatus,
    ScenarioAssertionError, DEFAULT_RECEIPT_TIMEOUT, DEFAULT_WAIT_TIMEOUT,
)
from .keys import Actor, SignerRegistry
from .pipeline import FrozenTransaction, PayerContext
from .policy import SigningPolicy
from .queries import StateQueries
from .resolver import Resolver
from .subscription import SubscriptionEngine


Expected = Union[ReceiptStatus, FrozenSet[ReceiptStatus], Type[HarnessError]]


def ensure(condition: Any, message: str) -> None:
    """Scenario-level assertion; survives python -O."""
    if not condition:
        raise ScenarioAssertionError(message)


# ============================================================================
# SCENARIO STATE
# ============================================================================

@dataclass
class ScenarioState:
    """
    Values produced by one step and consumed by a later one.

    Attributes:
        account: Set by the "account with more than N hbar" steps; read by
                 topic creation, association and transfers.
        second_account / third_account / fourth_account: Set by the matching
                 account steps; read by threshold keys and transfers.
        threshold_policy: Set by the threshold key step; read by topic
                 creation with a threshold submit key.
        topic_id: Set by topic creation; read by publish and receive steps.
        submit_policy: The current topic's submit key, if any.
        token_id: Set by token creation; read by token assertions, minting,
                 association and transfers.
        supply_policy: The current token's supply key, if any.
        stored_transaction: Set by "creates a transaction" steps; read by the
                 steps that sign and submit it later.
        receipts: Every receipt resolved during the scenario, in order.
        received_messages: Payloads observed on topic subscriptions.
    """
    account: Optional[Actor] = None
    second_account: Optional[Actor] = None
    third_account: Optional[Actor] = None
    fourth_account: Optional[Actor] = None
    threshold_policy: Optional[SigningPolicy] = None
    topic_id: Optional[EntityId] = None
    submit_policy: Optional[SigningPolicy] = None
    token_id: Optional[EntityId] = None
    supply_policy: Optional[SigningPolicy] = None
    stored_transaction: Optional[FrozenTransaction] = None
    receipts: List[Receipt] = field(default_factory=list)
    received_messages: List[str] = field(default_factory=list)

    def require(self, name: str) -> Any:
        """
        Read a field a previous step must have set.

        Raises:
            ScenarioAssertionError: If the field is still unset.
        """
        value = getattr(self, name)
        if value is None:
            raise ScenarioAssertionError(f"{name} is not set; an earlier step did not run")
        return value


# ============================================================================
# SCENARIO
# ============================================================================

class Scenario:
    """
    Collaborators and state of one scenario run.

    Args:
        client: Network client
        registry: Signer registry holding every actor's key
        operator: Registry name of the default fee payer
        wait_timeout: Default subscription wait (seconds)
        receipt_timeout: Receipt wait before an outcome is ambiguous
        verbose: Print step reports (default: True)

    Example:
        async with Scenario(network, registry, verbose=False) as scenario:
            await create_mintable_token(scenario)
            await total_supply_is(scenario, 1000)
    """

    def __init__(
        self,
        client: NetworkClient,
        registry: SignerRegistry,
        operator: str = "operator",
        wait_timeout: float = DEFAULT_WAIT_TIMEOUT,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
        verbose: bool = True,
    ):
        self.client = client
        self.registry = registry
        self.operator = registry.actor(operator)
        self.verbose = verbose
        self.resolver = Resolver(client, receipt_timeout=receipt_timeout, verbose=verbose)
        self.engine = SubscriptionEngine(client, default_timeout=wait_timeout)
        self.queries = StateQueries(client)
        self.state = ScenarioState()
        self._payers: Dict[EntityId, PayerContext] = {}
        self.payer = self.payer_for(self.operator)

    def payer_for(self, actor: Actor) -> PayerContext:
        """The (cached) payer context of an actor."""
        if actor.account_id not in self._payers:
            self._payers[actor.account_id] = PayerContext(actor)
        return self._payers[actor.account_id]

    def use_payer(self, actor: Actor) -> PayerContext:
        """Make actor the default fee payer for subsequent steps."""
        self.payer = self.payer_for(actor)
        return self.payer

    def report(self, message: str) -> None:
        if self.verbose:
            print(message)

    async def close(self) -> None:
        await self.engine.close_all()

    async def __aenter__(self) -> Scenario:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


async def expect_outcome(
    scenario: Scenario,
    outcome: Awaitable[Receipt],
    expected: Expected = ReceiptStatus.SUCCESS,
) -> Union[Receipt, HarnessError]:
    """
    Await a submission and check it ended the expected way.

    Args:
        scenario: Receipts are recorded on scenario.state
        outcome: Awaitable resolving to a Receipt (e.g. resolver.submit(...))
        expected: A ReceiptStatus, a set of acceptable statuses, or a
                  HarnessError subclass the submission must raise

    Returns:
        The Receipt, or the expected exception instance

    Raises:
        ScenarioAssertionError: If the outcome differs from expected.
        Any other exception raised by the submission, unchanged.
    """
    if isinstance(expected, type) and issubclass(expected, HarnessError):
        try:
            receipt = await outcome
        except expected as e:
            scenario.report(f"✓ failed as expected: {type(e).__name__}: {e}")
            return e
        scenario.state.receipts.append(receipt)
        raise ScenarioAssertionError(f"Expected {expected.__name__}, got {receipt!r}")

    statuses = frozenset({expected}) if isinstance(expected, ReceiptStatus) else frozenset(expected)
    receipt = await outcome
    scenario.state.receipts.append(receipt)
    if receipt.status not in statuses:
        wanted = " or ".join(sorted(s.value for s in statuses))
        raise ScenarioAssertionError(f"Expected {wanted}, got {receipt!r}")
    return receipt
