"""
fake_network.py - Test Helper for NetworkClient

Provides a scriptable NetworkClient that counts calls and lets a test drive
the topic feed by hand, without the full SimulatedNetwork.
"""

from __future__ import annotations
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from ledger_harness import (
    AccountBalance, AccountInfo, EntityId, NetworkTimeout, PrecheckError,
    PrecheckStatus, QueryError, Receipt, ReceiptStatus, TokenInfo, TopicInfo,
    TopicMessage, TransactionResponse,
)
from ledger_harness.core import decode_envelope


EPOCH = datetime(2025, 1, 1, tzinfo=timezone.utc)


def make_message(topic_id, sequence_number: int, contents: bytes = b"") -> TopicMessage:
    """A TopicMessage with a timestamp derived from its sequence number."""
    return TopicMessage(
        topic_id=EntityId.parse(topic_id),
        sequence_number=sequence_number,
        contents=contents or f"message {sequence_number}".encode(),
        consensus_timestamp=EPOCH + timedelta(seconds=sequence_number),
    )


class FakeWatch:
    def __init__(self, handle: int, topic_id: EntityId, start_cursor: int, on_message, on_error):
        self.handle = handle
        self.topic_id = topic_id
        self.start_cursor = start_cursor
        self.on_message = on_message
        self.on_error = on_error
        self.closed = False


class FakeNetworkClient:
    """
    Minimal NetworkClient for testing the resolver, engine and queries.

    Example:
        client = FakeNetworkClient()
        client.precheck = PrecheckStatus.INSUFFICIENT_PAYER_BALANCE
        with pytest.raises(Rejected):
            await resolver.submit(frozen)
        assert client.execute_calls == 1
    """

    def __init__(self):
        # Transactions
        self.execute_calls = 0
        self.receipt_calls = 0
        self.sent: List[bytes] = []
        self.precheck: Optional[PrecheckStatus] = None
        self.send_timeout = False
        self.receipt_status = ReceiptStatus.SUCCESS
        self.receipt_fields: Dict[str, Any] = {}
        self.receipt_delay = 0.0
        self.record_receipts = True
        self.receipts: Dict[str, Receipt] = {}

        # Queries
        self.query_calls = 0
        self.balances: Dict[EntityId, AccountBalance] = {}
        self.account_infos: Dict[EntityId, AccountInfo] = {}
        self.token_infos: Dict[EntityId, TokenInfo] = {}
        self.topic_infos: Dict[EntityId, TopicInfo] = {}

        # Watches
        self.watches: Dict[int, FakeWatch] = {}
        self.close_calls = 0
        self.refuse_watch: Optional[Exception] = None
        self.replay: List[TopicMessage] = []
        self._next_handle = 1

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def execute_transaction(self, signed_bytes: bytes) -> TransactionResponse:
        self.execute_calls += 1
        self.sent.append(signed_bytes)
        await asyncio.sleep(0)
        if self.precheck is not None:
            raise PrecheckError(self.precheck, "scripted")
        if self.send_timeout:
            raise NetworkTimeout("scripted timeout")
        _, body, _ = decode_envelope(signed_bytes)
        transaction_id = body["transaction_id"]
        if self.record_receipts:
            self.receipts[transaction_id] = Receipt(
                transaction_id, self.receipt_status, **self.receipt_fields
            )
        return TransactionResponse(transaction_id, "0.0.3")

    async def fetch_receipt(self, transaction_id: str) -> Receipt:
        self.receipt_calls += 1
        if self.receipt_delay:
            await asyncio.sleep(self.receipt_delay)
        if transaction_id not in self.receipts:
            raise QueryError(ReceiptStatus.RECEIPT_NOT_FOUND, transaction_id)
        return self.receipts[transaction_id]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _lookup(self, table: Dict[EntityId, Any], entity_id, status: ReceiptStatus):
        self.query_calls += 1
        entity_id = EntityId.parse(entity_id)
        if entity_id not in table:
            raise QueryError(status, str(entity_id))
        return table[entity_id]

    async def query_balance(self, account_id) -> AccountBalance:
        return self._lookup(self.balances, account_id, ReceiptStatus.INVALID_ACCOUNT_ID)

    async def query_account_info(self, account_id) -> AccountInfo:
        return self._lookup(self.account_infos, account_id, ReceiptStatus.INVALID_ACCOUNT_ID)

    async def query_token_info(self, token_id) -> TokenInfo:
        return self._lookup(self.token_infos, token_id, ReceiptStatus.INVALID_TOKEN_ID)

    async def query_topic_info(self, topic_id) -> TopicInfo:
        return self._lookup(self.topic_infos, topic_id, ReceiptStatus.INVALID_TOPIC_ID)

    # ------------------------------------------------------------------
    # Watches
    # ------------------------------------------------------------------

    async def open_topic_watch(self, topic_id, start_cursor, on_message, on_error) -> int:
        await asyncio.sleep(0)
        if self.refuse_watch is not None:
            raise self.refuse_watch
        watch = FakeWatch(self._next_handle, topic_id, start_cursor, on_message, on_error)
        self._next_handle += 1
        self.watches[watch.handle] = watch
        for message in self.replay:
            on_message(message)
        return watch.handle

    async def close_watch(self, handle: int) -> None:
        self.close_calls += 1
        if handle in self.watches:
            self.watches[handle].closed = True

    @property
    def open_watches(self) -> List[FakeWatch]:
        return [w for w in self.watches.values() if not w.closed]

    def push(self, *messages: TopicMessage) -> None:
        """Deliver messages, possibly repeated or out of order, to every open watch."""
        for watch in self.open_watches:
            for message in messages:
                watch.on_message(message)

    def fail(self, error: BaseException) -> None:
        for watch in self.open_watches:
            watch.on_error(error)
