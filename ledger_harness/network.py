"""
network.py - In-Memory Ledger Network

SimulatedNetwork implements the NetworkClient protocol without a live ledger
so every scenario can run locally and deterministically.

It is the only module that mutates ledger state. Key responsibilities:
    - Precheck: envelope shape, duplicate ids, payer existence, signature
      validity, payer key and fee coverage. Failures raise PrecheckError and
      change nothing.
    - Consensus: one handler per operation kind. A handler validates first
      and applies last, so an operation is applied entirely or not at all.
      Business failures still charge the fee and produce a Receipt.
    - Topics: consecutive sequence numbers, strictly increasing consensus
      timestamps, asynchronous at-least-once delivery to watchers.
    - Audit: every transaction that reached consensus is logged with its
      receipt.

Example:
    network = SimulatedNetwork(verbose=False)
    operator_key = PrivateKey.generate()
    operator_id = network.bootstrap_account(operator_key, to_tinybars(1000))
"""

from __future__ import annotations
import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
import itertools
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

from .core import (
    AccountBalance, AccountInfo, EntityId, ErrorCallback, MessageCallback,
    PrecheckError, PrecheckStatus, QueryError, Receipt, ReceiptStatus,
    TokenInfo, TokenRelationship, TokenSupplyType, TopicInfo, TopicMessage,
    TransactionKind, TransactionResponse, decode_envelope,
    DEFAULT_SHARD, DEFAULT_REALM, DEFAULT_TRANSACTION_FEE, TINYBARS_PER_HBAR,
)
from .keys import PrivateKey, PublicKey
from .policy import SigningPolicy, SingleKeyPolicy, policy_from_wire


FIRST_ENTITY_NUM = 1001


class _Failure(Exception):
    """A business failure inside a consensus handler."""

    def __init__(self, status: ReceiptStatus, detail: str = ""):
        self.status = status
        self.detail = detail
        super().__init__(f"{status.value}: {detail}" if detail else status.value)


# ============================================================================
# LEDGER STATE
# ============================================================================

@dataclass
class _Account:
    account_id: EntityId
    key: SigningPolicy
    tinybars: int
    memo: str = ""
    tokens: Dict[EntityId, int] = field(default_factory=dict)
    frozen_tokens: Set[EntityId] = field(default_factory=set)


@dataclass
class _Token:
    token_id: EntityId
    name: str
    symbol: str
    decimals: int
    total_supply: int
    treasury_account_id: EntityId
    supply_type: TokenSupplyType
    max_supply: int
    freeze_default: bool
    admin_key: Optional[SigningPolicy]
    supply_key: Optional[SigningPolicy]
    wipe_key: Optional[SigningPolicy]
    kyc_key: Optional[SigningPolicy]
    memo: str = ""


@dataclass
class _Topic:
    topic_id: EntityId
    memo: str
    submit_key: Optional[SigningPolicy]
    admin_key: Optional[SigningPolicy]
    auto_renew_account_id: Optional[EntityId]
    messages: List[TopicMessage] = field(default_factory=list)
    # Highest sequence number visible to watchers (lags by the mirror delay).
    mirrored: int = 0

    @property
    def sequence_number(self) -> int:
        return len(self.messages)


@dataclass
class _Watch:
    handle: int
    topic_id: EntityId
    delivered: int
    on_message: MessageCallback
    on_error: ErrorCallback
    active: bool = True


@dataclass(frozen=True)
class LoggedTransaction:
    """One transaction that reached consensus, with its outcome."""
    transaction_id: str
    kind: TransactionKind
    payer_account_id: EntityId
    fee: int
    receipt: Receipt
    consensus_timestamp: datetime


def _optional_policy(data: Any) -> Optional[SigningPolicy]:
    return None if data is None else policy_from_wire(data)


def _optional_entity(data: Any) -> Optional[EntityId]:
    return None if data is None else EntityId.parse(data)


# ============================================================================
# SIMULATED NETWORK
# ============================================================================

class SimulatedNetwork:
    """
    In-memory ledger network implementing NetworkClient.

    Args:
        fee: Flat fee charged per transaction reaching consensus (tinybars)
        node_id: Node id reported in transaction responses
        mirror_delay: Seconds between consensus and delivery to watchers
        redeliver: Deliver every message twice, exercising at-least-once
                   consumers
        verbose: Print one line per transaction (default: True)

    Thread Safety:
        Not thread-safe. Use from a single event loop.
    """

    def __init__(
        self,
        fee: int = DEFAULT_TRANSACTION_FEE,
        node_id: str = "0.0.3",
        mirror_delay: float = 0.0,
        redeliver: bool = False,
        verbose: bool = True,
    ):
        if fee < 0:
            raise ValueError(f"fee must be >= 0, got {fee}")
        if mirror_delay < 0:
            raise ValueError(f"mirror_delay must be >= 0, got {mirror_delay}")
        self.fee = fee
        self.node_id = node_id
        self.mirror_delay = mirror_delay
        self.redeliver = redeliver
        self.verbose = verbose

        self.accounts: Dict[EntityId, _Account] = {}
        self.tokens: Dict[EntityId, _Token] = {}
        self.topics: Dict[EntityId, _Topic] = {}
        self.receipts: Dict[str, Receipt] = {}
        self.transaction_log: List[LoggedTransaction] = []
        self.execute_calls = 0

        self._watches: Dict[int, _Watch] = {}
        self._watch_ids = itertools.count(1)
        self._next_num = FIRST_ENTITY_NUM
        self._last_timestamp = datetime(1970, 1, 1, tzinfo=timezone.utc)

        self._handlers: Dict[TransactionKind, Callable[..., Dict[str, Any]]] = {
            TransactionKind.ACCOUNT_CREATE: self._account_create,
            TransactionKind.TOKEN_CREATE: self._token_create,
            TransactionKind.TOKEN_MINT: self._token_mint,
            TransactionKind.TOKEN_ASSOCIATE: self._token_associate,
            TransactionKind.TRANSFER: self._transfer,
            TransactionKind.TOPIC_CREATE: self._topic_create,
            TransactionKind.TOPIC_MESSAGE_SUBMIT: self._topic_message_submit,
        }

    # ========================================================================
    # SETUP
    # ========================================================================

    def bootstrap_account(
        self,
        key: Union[SigningPolicy, PrivateKey, PublicKey],
        tinybars: int,
        memo: str = "",
    ) -> EntityId:
        """
        Create a genesis-funded account outside of any transaction.

        Args:
            key: Account key, as a policy or a single key
            tinybars: Opening native balance

        Returns:
            The new account's id
        """
        if not isinstance(key, SigningPolicy):
            key = SingleKeyPolicy(key)
        if isinstance(tinybars, bool) or not isinstance(tinybars, int) or tinybars < 0:
            raise ValueError(f"tinybars must be a non-negative int, got {tinybars!r}")
        account_id = self._new_entity_id()
        self.accounts[account_id] = _Account(account_id, key, tinybars, memo)
        if self.verbose:
            print(f"📝 Bootstrapped: {account_id} with {Decimal(tinybars) / TINYBARS_PER_HBAR} hbar")
        return account_id

    def _new_entity_id(self) -> EntityId:
        entity_id = EntityId(DEFAULT_SHARD, DEFAULT_REALM, self._next_num)
        self._next_num += 1
        return entity_id

    def _next_consensus_timestamp(self) -> datetime:
        now = datetime.now(timezone.utc)
        if now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    # ========================================================================
    # NetworkClient: TRANSACTIONS
    # ========================================================================

    async def execute_transaction(self, signed_bytes: bytes) -> TransactionResponse:
        """
        Precheck, then run one transaction through consensus.

        Raises:
            PrecheckError: Refused before consensus; no state changed and no
                           fee was charged.
        """
        self.execute_calls += 1
        await asyncio.sleep(0)

        try:
            body_bytes, body, raw_signatures = decode_envelope(signed_bytes)
            transaction_id = str(body["transaction_id"])
            kind = TransactionKind(body["kind"])
            payer_id = EntityId.parse(body["payer_account_id"])
            params = body["params"]
            signatures = {
                PublicKey.from_string(key): sig for key, sig in raw_signatures.items()
            }
        except (KeyError, TypeError, ValueError) as e:
            raise PrecheckError(PrecheckStatus.INVALID_TRANSACTION_BODY, str(e)) from e

        if transaction_id in self.receipts:
            self._reject(PrecheckStatus.DUPLICATE_TRANSACTION, transaction_id)
        payer = self.accounts.get(payer_id)
        if payer is None:
            self._reject(PrecheckStatus.PAYER_ACCOUNT_NOT_FOUND, transaction_id, str(payer_id))
        for key, signature in signatures.items():
            if not key.verify(signature, body_bytes):
                self._reject(PrecheckStatus.INVALID_SIGNATURE, transaction_id, repr(key))
        signed = frozenset(signatures)
        if not payer.key.is_satisfied(signed):
            self._reject(PrecheckStatus.INVALID_SIGNATURE, transaction_id, "payer key not satisfied")
        if payer.tinybars < self.fee:
            self._reject(PrecheckStatus.INSUFFICIENT_PAYER_BALANCE, transaction_id)

        payer.tinybars -= self.fee
        try:
            fields = self._handlers[kind](payer, params, signed)
            receipt = Receipt(transaction_id, ReceiptStatus.SUCCESS, **fields)
        except _Failure as failure:
            receipt = Receipt(transaction_id, failure.status)
        except (KeyError, TypeError, ValueError) as e:
            payer.tinybars += self.fee
            raise PrecheckError(PrecheckStatus.INVALID_TRANSACTION_BODY, str(e)) from e

        self.receipts[transaction_id] = receipt
        self.transaction_log.append(LoggedTransaction(
            transaction_id=transaction_id,
            kind=kind,
            payer_account_id=payer_id,
            fee=self.fee,
            receipt=receipt,
            consensus_timestamp=self._next_consensus_timestamp(),
        ))
        if self.verbose:
            icon = "✓" if receipt.status.is_success else "✗"
            print(f"{icon} CONSENSUS {kind.value} {transaction_id}: {receipt.status.value}")
        return TransactionResponse(transaction_id, self.node_id)

    def _reject(self, status: PrecheckStatus, transaction_id: str, detail: str = "") -> None:
        if self.verbose:
            print(f"✗ PRECHECK {transaction_id}: {status.value}" + (f" ({detail})" if detail else ""))
        raise PrecheckError(status, detail)

    async def fetch_receipt(self, transaction_id: str) -> Receipt:
        await asyncio.sleep(0)
        if transaction_id not in self.receipts:
            raise QueryError(ReceiptStatus.RECEIPT_NOT_FOUND, transaction_id)
        return self.receipts[transaction_id]

    # ========================================================================
    # CONSENSUS HANDLERS
    # ========================================================================
    # Each handler validates everything before its first mutation and returns
    # the receipt fields of a successful outcome.

    def _account(self, account_id: EntityId, status: ReceiptStatus) -> _Account:
        account = self.accounts.get(account_id)
        if account is None:
            raise _Failure(status, str(account_id))
        return account

    def _token(self, token_id: EntityId) -> _Token:
        token = self.tokens.get(token_id)
        if token is None:
            raise _Failure(ReceiptStatus.INVALID_TOKEN_ID, str(token_id))
        return token

    @staticmethod
    def _require(policy: Optional[SigningPolicy], signed, what: str) -> None:
        if policy is not None and not policy.is_satisfied(signed):
            raise _Failure(ReceiptStatus.INVALID_SIGNATURE, what)

    def _account_create(self, payer: _Account, params, signed) -> Dict[str, Any]:
        key = policy_from_wire(params["key"])
        initial_balance = int(params["initial_balance"])
        if payer.tinybars < initial_balance:
            raise _Failure(ReceiptStatus.INSUFFICIENT_ACCOUNT_BALANCE, str(payer.account_id))

        account_id = self._new_entity_id()
        payer.tinybars -= initial_balance
        self.accounts[account_id] = _Account(
            account_id, key, initial_balance, params.get("account_memo", "")
        )
        return {"account_id": account_id}

    def _token_create(self, payer: _Account, params, signed) -> Dict[str, Any]:
        treasury_id = EntityId.parse(params["treasury_account_id"])
        supply_type = TokenSupplyType(params["supply_type"])
        admin_key = _optional_policy(params.get("admin_key"))
        auto_renew_id = _optional_entity(params.get("auto_renew_account_id"))
        initial_supply = int(params["initial_supply"])

        treasury = self._account(treasury_id, ReceiptStatus.INVALID_TREASURY_ACCOUNT_FOR_TOKEN)
        self._require(treasury.key, signed, "treasury")
        self._require(admin_key, signed, "admin key")
        if auto_renew_id is not None:
            auto_renew = self._account(auto_renew_id, ReceiptStatus.INVALID_AUTORENEW_ACCOUNT)
            self._require(auto_renew.key, signed, "auto-renew account")

        token_id = self._new_entity_id()
        self.tokens[token_id] = _Token(
            token_id=token_id,
            name=params["name"],
            symbol=params["symbol"],
            decimals=int(params["decimals"]),
            total_supply=initial_supply,
            treasury_account_id=treasury_id,
            supply_type=supply_type,
            max_supply=int(params["max_supply"]),
            freeze_default=bool(params["freeze_default"]),
            admin_key=admin_key,
            supply_key=_optional_policy(params.get("supply_key")),
            wipe_key=_optional_policy(params.get("wipe_key")),
            kyc_key=_optional_policy(params.get("kyc_key")),
            memo=params.get("token_memo", ""),
        )
        # The treasury is associated automatically and never frozen.
        treasury.tokens[token_id] = initial_supply
        return {"token_id": token_id}

    def _token_mint(self, payer: _Account, params, signed) -> Dict[str, Any]:
        token = self._token(EntityId.parse(params["token_id"]))
        amount = int(params["amount"])
        if token.supply_key is None:
            raise _Failure(ReceiptStatus.TOKEN_HAS_NO_SUPPLY_KEY, str(token.token_id))
        self._require(token.supply_key, signed, "supply key")
        if (token.supply_type is TokenSupplyType.FINITE
                and token.total_supply + amount > token.max_supply):
            raise _Failure(ReceiptStatus.TOKEN_MAX_SUPPLY_REACHED, str(token.token_id))

        token.total_supply += amount
        treasury = self.accounts[token.treasury_account_id]
        treasury.tokens[token.token_id] = treasury.tokens.get(token.token_id, 0) + amount
        return {"total_supply": token.total_supply}

    def _token_associate(self, payer: _Account, params, signed) -> Dict[str, Any]:
        account = self._account(EntityId.parse(params["account_id"]), ReceiptStatus.INVALID_ACCOUNT_ID)
        self._require(account.key, signed, "account key")
        tokens = [self._token(EntityId.parse(t)) for t in params["token_ids"]]
        for token in tokens:
            if token.token_id in account.tokens:
                raise _Failure(ReceiptStatus.TOKEN_ALREADY_ASSOCIATED_TO_ACCOUNT, str(token.token_id))

        for token in tokens:
            account.tokens[token.token_id] = 0
            if token.freeze_default:
                account.frozen_tokens.add(token.token_id)
        return {}

    def _transfer(self, payer: _Account, params, signed) -> Dict[str, Any]:
        legs: List[Tuple[EntityId, Optional[EntityId], int]] = [
            (EntityId.parse(leg["account_id"]), _optional_entity(leg.get("token_id")), int(leg["amount"]))
            for leg in params["legs"]
        ]
        net_per_token: Dict[Optional[EntityId], int] = defaultdict(int)
        for _, token_id, amount in legs:
            net_per_token[token_id] += amount
        if any(total != 0 for total in net_per_token.values()):
            raise ValueError("transfer legs do not balance")

        # Net change per (account, token), computed before anything moves.
        net: Dict[Tuple[EntityId, Optional[EntityId]], int] = defaultdict(int)
        for account_id, token_id, amount in legs:
            account = self._account(account_id, ReceiptStatus.INVALID_ACCOUNT_ID)
            if token_id is not None:
                self._token(token_id)
                if token_id not in account.tokens:
                    raise _Failure(ReceiptStatus.TOKEN_NOT_ASSOCIATED_TO_ACCOUNT, f"{account_id} {token_id}")
                if token_id in account.frozen_tokens:
                    raise _Failure(ReceiptStatus.ACCOUNT_FROZEN_FOR_TOKEN, f"{account_id} {token_id}")
            if amount < 0:
                self._require(account.key, signed, f"sender {account_id}")
            net[(account_id, token_id)] += amount

        for (account_id, token_id), delta in net.items():
            account = self.accounts[account_id]
            if token_id is None:
                if account.tinybars + delta < 0:
                    raise _Failure(ReceiptStatus.INSUFFICIENT_ACCOUNT_BALANCE, str(account_id))
            elif account.tokens[token_id] + delta < 0:
                raise _Failure(ReceiptStatus.INSUFFICIENT_TOKEN_BALANCE, f"{account_id} {token_id}")

        for (account_id, token_id), delta in net.items():
            account = self.accounts[account_id]
            if token_id is None:
                account.tinybars += delta
            else:
                account.tokens[token_id] += delta
        return {}

    def _topic_create(self, payer: _Account, params, signed) -> Dict[str, Any]:
        admin_key = _optional_policy(params.get("admin_key"))
        auto_renew_id = _optional_entity(params.get("auto_renew_account_id"))
        self._require(admin_key, signed, "admin key")
        if auto_renew_id is not None:
            auto_renew = self._account(auto_renew_id, ReceiptStatus.INVALID_AUTORENEW_ACCOUNT)
            self._require(auto_renew.key, signed, "auto-renew account")

        topic_id = self._new_entity_id()
        self.topics[topic_id] = _Topic(
            topic_id=topic_id,
            memo=params.get("topic_memo", ""),
            submit_key=_optional_policy(params.get("submit_key")),
            admin_key=admin_key,
            auto_renew_account_id=auto_renew_id,
        )
        return {"topic_id": topic_id}

    def _topic_message_submit(self, payer: _Account, params, signed) -> Dict[str, Any]:
        topic_id = EntityId.parse(params["topic_id"])
        contents = bytes.fromhex(params["message"])
        topic = self.topics.get(topic_id)
        if topic is None:
            raise _Failure(ReceiptStatus.INVALID_TOPIC_ID, str(topic_id))
        self._require(topic.submit_key, signed, "submit key")

        message = TopicMessage(
            topic_id=topic_id,
            sequence_number=topic.sequence_number + 1,
            contents=contents,
            consensus_timestamp=self._next_consensus_timestamp(),
        )
        topic.messages.append(message)
        self._schedule_mirror(topic, message.sequence_number)
        return {"topic_sequence_number": message.sequence_number}

    # ========================================================================
    # NetworkClient: TOPIC WATCHES
    # ========================================================================

    async def open_topic_watch(
        self,
        topic_id: EntityId,
        start_cursor: int,
        on_message: MessageCallback,
        on_error: ErrorCallback,
    ) -> int:
        """
        Watch a topic; messages after start_cursor are pushed asynchronously.

        Raises:
            QueryError: If the topic does not exist.
        """
        await asyncio.sleep(0)
        topic_id = EntityId.parse(topic_id)
        if topic_id not in self.topics:
            raise QueryError(ReceiptStatus.INVALID_TOPIC_ID, str(topic_id))
        watch = _Watch(next(self._watch_ids), topic_id, start_cursor, on_message, on_error)
        self._watches[watch.handle] = watch
        asyncio.get_running_loop().call_soon(self._flush, watch)
        return watch.handle

    async def close_watch(self, handle: int) -> None:
        """Stop a watch. Unknown or already closed handles are ignored."""
        await asyncio.sleep(0)
        watch = self._watches.pop(handle, None)
        if watch is not None:
            watch.active = False

    @property
    def active_watches(self) -> int:
        return sum(1 for watch in self._watches.values() if watch.active)

    def fail_watches(self, topic_id: "EntityId | str", error: BaseException) -> int:
        """
        Break every active watch on a topic, reporting error to its owner.

        Returns:
            Number of watches failed
        """
        topic_id = EntityId.parse(topic_id)
        loop = asyncio.get_running_loop()
        failed = 0
        for watch in self._watches.values():
            if watch.active and watch.topic_id == topic_id:
                watch.active = False
                loop.call_soon(watch.on_error, error)
                failed += 1
        return failed

    def _schedule_mirror(self, topic: _Topic, sequence_number: int) -> None:
        loop = asyncio.get_running_loop()
        if self.mirror_delay:
            loop.call_later(self.mirror_delay, self._mirror, topic, sequence_number)
        else:
            loop.call_soon(self._mirror, topic, sequence_number)

    def _mirror(self, topic: _Topic, sequence_number: int) -> None:
        topic.mirrored = max(topic.mirrored, sequence_number)
        for watch in list(self._watches.values()):
            if watch.topic_id == topic.topic_id:
                self._flush(watch)

    def _flush(self, watch: _Watch) -> None:
        """Deliver, in order, every mirrored message the watch has not seen."""
        topic = self.topics[watch.topic_id]
        while watch.active and watch.delivered < topic.mirrored:
            message = topic.messages[watch.delivered]
            watch.delivered = message.sequence_number
            watch.on_message(message)
            if self.redeliver and watch.active:
                watch.on_message(message)

    # ========================================================================
    # NetworkClient: QUERIES
    # ========================================================================

    async def query_balance(self, account_id: EntityId) -> AccountBalance:
        await asyncio.sleep(0)
        account = self._query_account(account_id)
        return AccountBalance(account.account_id, account.tinybars, dict(account.tokens))

    async def query_account_info(self, account_id: EntityId) -> AccountInfo:
        await asyncio.sleep(0)
        account = self._query_account(account_id)
        relationships = {
            token_id: TokenRelationship(token_id, balance, token_id in account.frozen_tokens)
            for token_id, balance in account.tokens.items()
        }
        return AccountInfo(account.account_id, account.tinybars, relationships, account.memo)

    async def query_token_info(self, token_id: EntityId) -> TokenInfo:
        await asyncio.sleep(0)
        token = self.tokens.get(EntityId.parse(token_id))
        if token is None:
            raise QueryError(ReceiptStatus.INVALID_TOKEN_ID, str(token_id))
        return TokenInfo(
            token_id=token.token_id,
            name=token.name,
            symbol=token.symbol,
            decimals=token.decimals,
            total_supply=token.total_supply,
            treasury_account_id=token.treasury_account_id,
            supply_type=token.supply_type,
            max_supply=token.max_supply,
            freeze_default=token.freeze_default,
            has_supply_key=token.supply_key is not None,
            has_admin_key=token.admin_key is not None,
        )

    async def query_topic_info(self, topic_id: EntityId) -> TopicInfo:
        await asyncio.sleep(0)
        topic = self.topics.get(EntityId.parse(topic_id))
        if topic is None:
            raise QueryError(ReceiptStatus.INVALID_TOPIC_ID, str(topic_id))
        return TopicInfo(
            topic_id=topic.topic_id,
            memo=topic.memo,
            sequence_number=topic.sequence_number,
            has_submit_key=topic.submit_key is not None,
            has_admin_key=topic.admin_key is not None,
            auto_renew_account_id=topic.auto_renew_account_id,
        )

    def _query_account(self, account_id: EntityId) -> _Account:
        account = self.accounts.get(EntityId.parse(account_id))
        if account is None:
            raise QueryError(ReceiptStatus.INVALID_ACCOUNT_ID, str(account_id))
        return account

    # ========================================================================
    # AUDIT
    # ========================================================================

    def fees_paid_by(self, account_id: "EntityId | str") -> int:
        """Total fees charged to an account across the transaction log."""
        account_id = EntityId.parse(account_id)
        return sum(tx.fee for tx in self.transaction_log if tx.payer_account_id == account_id)

    def total_tinybars(self) -> int:
        """Native currency held by accounts plus fees collected."""
        return (
            sum(account.tinybars for account in self.accounts.values())
            + sum(tx.fee for tx in self.transaction_log)
        )
