"""
Core types and pure functions for the ledger verification harness.

This module provides the foundational data structures shared by every stage
of the harness:
1. Constants: native currency scale, limits, default timeouts
2. Enums: operation kinds, supply types, receipt and precheck statuses
3. Exceptions: HarnessError and the error taxonomy of the pipeline
4. Immutable records: EntityId, Receipt, TopicMessage, query results
5. Protocols: NetworkClient, the shape of the ledger network collaborator
6. Wire helpers: canonical encoding of transaction bodies for signing

Nothing in this module performs I/O or touches network state.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
import json
import re
from typing import (
    Any, Callable, Dict, Mapping, Optional, Protocol, Tuple, runtime_checkable
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Native currency is counted in integer tinybars.
TINYBARS_PER_HBAR = 100_000_000

# Flat fee charged by the simulated network for every transaction that
# reaches consensus. Fee schedules are owned by the ledger, not the harness.
DEFAULT_TRANSACTION_FEE = 1_000_000

DEFAULT_SHARD = 0
DEFAULT_REALM = 0

# Ledger-side size limits, enforced eagerly by the builders.
MAX_MEMO_BYTES = 100
MAX_TOKEN_NAME_BYTES = 100
MAX_TOKEN_SYMBOL_BYTES = 100
MAX_MESSAGE_BYTES = 1024
MAX_TOKEN_DECIMALS = 18

# Bounded waits (seconds).
DEFAULT_WAIT_TIMEOUT = 15.0
DEFAULT_RECEIPT_TIMEOUT = 30.0
DEFAULT_POLL_INTERVAL = 0.25


def to_tinybars(hbars: "int | Decimal | str") -> int:
    """
    Convert an hbar amount to integer tinybars.

    Raises:
        ValueError: If the amount has more precision than one tinybar.
    """
    value = Decimal(str(hbars)) * TINYBARS_PER_HBAR
    if value != value.to_integral_value():
        raise ValueError(f"{hbars} hbar is not a whole number of tinybars")
    return int(value)


# ============================================================================
# ENUMS
# ============================================================================

class TransactionKind(Enum):
    """The ledger operations a draft can describe. Exactly one per draft."""
    ACCOUNT_CREATE = "account_create"
    TOKEN_CREATE = "token_create"
    TOKEN_MINT = "token_mint"
    TOKEN_ASSOCIATE = "token_associate"
    TRANSFER = "transfer"
    TOPIC_CREATE = "topic_create"
    TOPIC_MESSAGE_SUBMIT = "topic_message_submit"


class TokenSupplyType(Enum):
    """Whether a token's supply is capped by max_supply."""
    INFINITE = "infinite"
    FINITE = "finite"


class ReceiptStatus(Enum):
    """
    Consensus outcome recorded in a Receipt.

    SUCCESS is the only non-failure. Every other member is a business
    failure: the transaction reached consensus, the payer was charged,
    and the ledger refused to apply the operation.
    """
    SUCCESS = "SUCCESS"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    INSUFFICIENT_ACCOUNT_BALANCE = "INSUFFICIENT_ACCOUNT_BALANCE"
    INSUFFICIENT_TOKEN_BALANCE = "INSUFFICIENT_TOKEN_BALANCE"
    TOKEN_MAX_SUPPLY_REACHED = "TOKEN_MAX_SUPPLY_REACHED"
    TOKEN_HAS_NO_SUPPLY_KEY = "TOKEN_HAS_NO_SUPPLY_KEY"
    TOKEN_NOT_ASSOCIATED_TO_ACCOUNT = "TOKEN_NOT_ASSOCIATED_TO_ACCOUNT"
    TOKEN_ALREADY_ASSOCIATED_TO_ACCOUNT = "TOKEN_ALREADY_ASSOCIATED_TO_ACCOUNT"
    ACCOUNT_FROZEN_FOR_TOKEN = "ACCOUNT_FROZEN_FOR_TOKEN"
    INVALID_ACCOUNT_ID = "INVALID_ACCOUNT_ID"
    INVALID_TOKEN_ID = "INVALID_TOKEN_ID"
    INVALID_TOPIC_ID = "INVALID_TOPIC_ID"
    INVALID_TREASURY_ACCOUNT_FOR_TOKEN = "INVALID_TREASURY_ACCOUNT_FOR_TOKEN"
    INVALID_AUTORENEW_ACCOUNT = "INVALID_AUTORENEW_ACCOUNT"
    # Query-only: no receipt is stored for the transaction id.
    RECEIPT_NOT_FOUND = "RECEIPT_NOT_FOUND"

    @property
    def is_success(self) -> bool:
        return self is ReceiptStatus.SUCCESS


class PrecheckStatus(Enum):
    """Reasons a node refuses a transaction before it reaches consensus."""
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    INSUFFICIENT_PAYER_BALANCE = "INSUFFICIENT_PAYER_BALANCE"
    PAYER_ACCOUNT_NOT_FOUND = "PAYER_ACCOUNT_NOT_FOUND"
    DUPLICATE_TRANSACTION = "DUPLICATE_TRANSACTION"
    INVALID_TRANSACTION_BODY = "INVALID_TRANSACTION_BODY"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class HarnessError(Exception):
    """Base exception for all harness errors."""
    pass


class MalformedDraft(HarnessError):
    """Raised when a draft fails local validation. Never reaches the network."""
    pass


class AlreadyFrozen(HarnessError):
    """Raised when a draft is frozen a second time."""
    pass


class InvalidPolicy(HarnessError):
    """Raised when a signing policy violates its membership or threshold constraints."""
    pass


class InsufficientSignatures(HarnessError):
    """Raised by submit when a declared policy is not satisfied. Nothing was sent."""
    pass


class DuplicateSubmission(HarnessError):
    """Raised when the same frozen transaction is handed to submit twice."""
    pass


class Rejected(HarnessError):
    """
    Definite network-level rejection before consensus.

    Attributes:
        reason: The precheck status reported by the node.
        transaction_id: The rejected transaction.
    """

    def __init__(self, reason: PrecheckStatus, transaction_id: str, detail: str = ""):
        self.reason = reason
        self.transaction_id = transaction_id
        self.detail = detail
        message = f"{transaction_id} rejected: {reason.value}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class AmbiguousOutcome(HarnessError):
    """
    The transaction was sent but its outcome is unknown.

    The caller must reconcile with a receipt query for transaction_id;
    resubmitting the same payload is never safe.
    """

    def __init__(self, transaction_id: str, cause: Optional[BaseException] = None):
        self.transaction_id = transaction_id
        self.cause = cause
        super().__init__(f"outcome of {transaction_id} is unknown: {cause!r}")


class SubscriptionClosed(HarnessError):
    """Raised when waiting on a subscription that has been cancelled."""
    pass


class ScenarioAssertionError(HarnessError, AssertionError):
    """Raised when an observed outcome does not match the expected one."""
    pass


class NetworkError(HarnessError):
    """Base exception raised by the network client collaborator."""
    pass


class PrecheckError(NetworkError):
    """The node refused the transaction before consensus."""

    def __init__(self, status: PrecheckStatus, detail: str = ""):
        self.status = status
        self.detail = detail
        super().__init__(f"precheck failed: {status.value}" + (f" ({detail})" if detail else ""))


class NetworkTimeout(NetworkError):
    """No answer arrived from the network in time."""
    pass


class QueryError(NetworkError):
    """A read query named an entity the network does not know."""

    def __init__(self, status: ReceiptStatus, entity_id: str):
        self.status = status
        self.entity_id = entity_id
        super().__init__(f"{status.value}: {entity_id}")


# ============================================================================
# IDENTIFIERS
# ============================================================================

_ENTITY_ID_PATTERN = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")


@dataclass(frozen=True, slots=True, order=True)
class EntityId:
    """
    Address of an account, token or topic: shard.realm.num.

    Immutable and ordered so ids can be sorted deterministically.
    """
    shard: int
    realm: int
    num: int

    def __post_init__(self):
        for name in ("shard", "realm", "num"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValueError(f"EntityId {name} must be a non-negative int, got {value!r}")

    @classmethod
    def parse(cls, text: "str | EntityId") -> EntityId:
        """Parse '0.0.1001'. EntityId instances are returned unchanged."""
        if isinstance(text, EntityId):
            return text
        match = _ENTITY_ID_PATTERN.match(str(text).strip())
        if not match:
            raise ValueError(f"Malformed entity id: {text!r}")
        return cls(*(int(part) for part in match.groups()))

    def __str__(self) -> str:
        return f"{self.shard}.{self.realm}.{self.num}"

    def __repr__(self) -> str:
        return f"EntityId({self})"


# ============================================================================
# RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionResponse:
    """Acknowledgement that a node accepted a transaction for consensus."""
    transaction_id: str
    node_id: str


@dataclass(frozen=True, slots=True)
class Receipt:
    """
    Terminal outcome of one submitted transaction.

    Attributes:
        transaction_id: The transaction this receipt resolves.
        status: SUCCESS or a business failure category.
        account_id / token_id / topic_id: Set by successful creations.
        topic_sequence_number: Set by a successful topic message submission.
        total_supply: Token supply after a successful mint.
    """
    transaction_id: str
    status: ReceiptStatus
    account_id: Optional[EntityId] = None
    token_id: Optional[EntityId] = None
    topic_id: Optional[EntityId] = None
    topic_sequence_number: Optional[int] = None
    total_supply: Optional[int] = None

    @property
    def entity_id(self) -> Optional[EntityId]:
        """The newly created entity, if this receipt resolves a creation."""
        return self.account_id or self.token_id or self.topic_id

    def __repr__(self) -> str:
        created = f", created={self.entity_id}" if self.entity_id else ""
        return f"Receipt({self.transaction_id}: {self.status.value}{created})"


@dataclass(frozen=True, slots=True)
class TopicMessage:
    """One consensus-ordered message of a topic."""
    topic_id: EntityId
    sequence_number: int
    contents: bytes
    consensus_timestamp: datetime

    def text(self, encoding: str = "utf-8") -> str:
        return self.contents.decode(encoding)


@dataclass(frozen=True, slots=True)
class TimedOut:
    """Returned by wait_for when no matching message arrived in time."""
    topic_id: EntityId
    timeout: float
    observed: int

    def __bool__(self) -> bool:
        return False


@dataclass(frozen=True, slots=True)
class AccountBalance:
    """Native and token balances of one account, fetched fresh."""
    account_id: EntityId
    tinybars: int
    tokens: Mapping[EntityId, int] = field(default_factory=dict)

    @property
    def hbars(self) -> Decimal:
        return Decimal(self.tinybars) / Decimal(TINYBARS_PER_HBAR)


@dataclass(frozen=True, slots=True)
class TokenBalanceView:
    """Snapshot of (account_id, token_id) -> amount. Never cached."""
    account_id: EntityId
    token_id: EntityId
    amount: int


@dataclass(frozen=True, slots=True)
class TokenRelationship:
    """An account's association with a token."""
    token_id: EntityId
    balance: int
    frozen: bool = False


@dataclass(frozen=True, slots=True)
class AccountInfo:
    account_id: EntityId
    tinybars: int
    token_relationships: Mapping[EntityId, TokenRelationship] = field(default_factory=dict)
    memo: str = ""


@dataclass(frozen=True, slots=True)
class TokenInfo:
    token_id: EntityId
    name: str
    symbol: str
    decimals: int
    total_supply: int
    treasury_account_id: EntityId
    supply_type: TokenSupplyType = TokenSupplyType.INFINITE
    max_supply: int = 0
    freeze_default: bool = False
    has_supply_key: bool = False
    has_admin_key: bool = False


@dataclass(frozen=True, slots=True)
class TopicInfo:
    topic_id: EntityId
    memo: str
    sequence_number: int
    has_submit_key: bool = False
    has_admin_key: bool = False
    auto_renew_account_id: Optional[EntityId] = None


# ============================================================================
# PROTOCOLS
# ============================================================================

MessageCallback = Callable[[TopicMessage], None]
ErrorCallback = Callable[[BaseException], None]


@runtime_checkable
class NetworkClient(Protocol):
    """
    The ledger network as seen by the harness.

    Implementations perform the actual RPC work. SimulatedNetwork implements
    this protocol in memory; tests use a call-counting fake.

    Every coroutine may raise a NetworkError subclass: PrecheckError for a
    definite pre-consensus refusal, NetworkTimeout when no answer arrived,
    QueryError when a read names an unknown entity.
    """

    async def execute_transaction(self, signed_bytes: bytes) -> TransactionResponse:
        """Send one signed transaction. Called at most once per payload."""
        ...

    async def fetch_receipt(self, transaction_id: str) -> Receipt:
        """Return the receipt of a transaction that reached consensus."""
        ...

    async def query_balance(self, account_id: EntityId) -> AccountBalance:
        ...

    async def query_account_info(self, account_id: EntityId) -> AccountInfo:
        ...

    async def query_token_info(self, token_id: EntityId) -> TokenInfo:
        ...

    async def query_topic_info(self, topic_id: EntityId) -> TopicInfo:
        ...

    async def open_topic_watch(
        self,
        topic_id: EntityId,
        start_cursor: int,
        on_message: MessageCallback,
        on_error: ErrorCallback,
    ) -> Any:
        """
        Start pushing messages with sequence_number > start_cursor.

        Returns an opaque watch handle once the network acknowledges the watch.
        Delivery is at-least-once.
        """
        ...

    async def close_watch(self, handle: Any) -> None:
        ...


# ============================================================================
# WIRE ENCODING
# ============================================================================

def to_wire(value: Any) -> Any:
    """
    Convert a value into a JSON-safe structure with a single canonical form.

    - Enums become their value, EntityIds their string form
    - bytes become lowercase hex
    - objects exposing to_wire() serialize themselves
    - tuples, lists and mappings are converted recursively
    """
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, EntityId):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    if isinstance(value, Decimal):
        return str(value.normalize())
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "to_wire"):
        return value.to_wire()
    if isinstance(value, Mapping):
        return {str(to_wire(k)): to_wire(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_wire(item) for item in value]
    raise TypeError(f"Cannot encode {type(value).__name__} for the wire")


def canonical_bytes(value: Any) -> bytes:
    """
    Deterministic byte encoding of a wire structure.

    Sorted keys and fixed separators make semantically identical bodies
    produce identical bytes, so signatures are reproducible.
    """
    return json.dumps(
        to_wire(value), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def encode_envelope(body_bytes: bytes, signatures: Mapping[str, bytes]) -> bytes:
    """Encode signed body bytes plus a public-key-hex -> signature map."""
    envelope = {
        "body": body_bytes.decode("utf-8"),
        "signatures": {key: sig.hex() for key, sig in sorted(signatures.items())},
    }
    return json.dumps(envelope, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def decode_envelope(signed_bytes: bytes) -> Tuple[bytes, Dict[str, Any], Dict[str, bytes]]:
    """
    Decode an envelope produced by encode_envelope.

    Returns:
        (body_bytes, body, signatures)

    Raises:
        ValueError: If the payload is not a well-formed envelope.
    """
    try:
        envelope = json.loads(signed_bytes.decode("utf-8"))
        body_bytes = envelope["body"].encode("utf-8")
        body = json.loads(envelope["body"])
        signatures = {key: bytes.fromhex(sig) for key, sig in envelope["signatures"].items()}
    except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"Malformed transaction envelope: {e}") from e
    if not isinstance(body, dict):
        raise ValueError("Transaction body must be an object")
    return body_bytes, body, signatures
