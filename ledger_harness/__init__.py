"""
ledger_harness - Ledger Consensus Verification Harness

Builds ledger operations, collects single-key or threshold signatures,
submits them exactly once, and verifies the eventually-consistent outcome
through receipts, state queries and topic subscriptions.

Usage:
    from ledger_harness import (
        SimulatedNetwork, PrivateKey, SignerRegistry, PayerContext, Resolver,
        token_create, token_mint, freeze, sign, to_tinybars,
    )

    network = SimulatedNetwork(verbose=False)
    key = PrivateKey.generate()
    registry = SignerRegistry()
    operator = registry.register(
        "operator", network.bootstrap_account(key, to_tinybars(1000)), key
    )

    payer = PayerContext(operator)
    resolver = Resolver(network)

    draft = token_create("Test Token", "HTT", operator.account_id,
                         decimals=2, initial_supply=1000,
                         supply_key=operator.policy)
    receipt = await resolver.submit(freeze(draft, payer))
    token_id = receipt.token_id

    minted = await resolver.execute(
        token_mint(token_id, 500, supply_policy=operator.policy), payer
    )
"""

# Core types
from .core import (
    TINYBARS_PER_HBAR,
    DEFAULT_TRANSACTION_FEE,
    DEFAULT_WAIT_TIMEOUT,
    DEFAULT_RECEIPT_TIMEOUT,
    to_tinybars,
    TransactionKind,
    TokenSupplyType,
    ReceiptStatus,
    PrecheckStatus,
    HarnessError,
    MalformedDraft,
    AlreadyFrozen,
    InvalidPolicy,
    InsufficientSignatures,
    DuplicateSubmission,
    Rejected,
    AmbiguousOutcome,
    SubscriptionClosed,
    ScenarioAssertionError,
    NetworkError,
    PrecheckError,
    NetworkTimeout,
    QueryError,
    EntityId,
    TransactionResponse,
    Receipt,
    TopicMessage,
    TimedOut,
    AccountBalance,
    TokenBalanceView,
    TokenRelationship,
    AccountInfo,
    TokenInfo,
    TopicInfo,
    NetworkClient,
)

# Keys and signing policies
from .keys import PublicKey, PrivateKey, Actor, SignerRegistry
from .policy import (
    PolicyKind,
    SigningPolicy,
    SingleKeyPolicy,
    ThresholdPolicy,
    build_threshold_policy,
)

# Transaction builders
from .operations import (
    TransactionDraft,
    account_create,
    token_create,
    token_mint,
    token_associate,
    fixed_supply,
    TransferLeg,
    token_leg,
    hbar_leg,
    transfer,
    topic_create,
    topic_message_submit,
)

# Freeze, sign, submit
from .pipeline import (
    PayerContext,
    FrozenTransaction,
    freeze,
    sign,
    is_signed_enough,
    missing_policies,
)
from .resolver import Resolver, submit_all

# Subscriptions and queries
from .subscription import (
    SubscriptionState,
    Subscription,
    SubscriptionEngine,
    payload_equals,
)
from .queries import StateQueries, poll_until

# Simulated network
from .network import SimulatedNetwork

# Configuration and provisioning
from .config import HarnessConfig, AccountRecord, ConfigError, read_accounts
from .provisioning import provision_accounts, write_accounts

# Scenarios
from .scenario import Scenario, ScenarioState, ensure, expect_outcome

__version__ = "1.0.0"
