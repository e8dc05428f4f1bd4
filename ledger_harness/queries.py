"""
queries.py - State Query Facade

Read-only views of ledger state used to verify effects. Every call goes to
the network; nothing is cached, so two reads may legitimately differ while
the ledger converges. poll_until() turns such eventually-consistent reads
into a bounded wait.
"""

from __future__ import annotations
import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from .core import (
    AccountBalance, AccountInfo, EntityId, NetworkClient, NetworkTimeout,
    TokenBalanceView, TokenInfo, TopicInfo,
    DEFAULT_POLL_INTERVAL, DEFAULT_WAIT_TIMEOUT,
)


T = TypeVar("T")


class StateQueries:
    """
    Fresh reads of accounts, tokens and topics.

    Errors from the network (QueryError for unknown ids, NetworkTimeout)
    propagate unchanged.
    """

    def __init__(self, client: NetworkClient):
        self.client = client

    async def balance(self, account_id: "EntityId | str") -> AccountBalance:
        return await self.client.query_balance(EntityId.parse(account_id))

    async def hbar_balance(self, account_id: "EntityId | str") -> int:
        """Native balance in tinybars."""
        return (await self.balance(account_id)).tinybars

    async def token_balance(
        self, account_id: "EntityId | str", token_id: "EntityId | str"
    ) -> TokenBalanceView:
        """
        Balance of one token held by one account.

        An account not associated with the token holds 0; use
        is_associated() to tell the two apart.
        """
        account_id = EntityId.parse(account_id)
        token_id = EntityId.parse(token_id)
        balance = await self.client.query_balance(account_id)
        return TokenBalanceView(account_id, token_id, balance.tokens.get(token_id, 0))

    async def is_associated(
        self, account_id: "EntityId | str", token_id: "EntityId | str"
    ) -> bool:
        info = await self.account_info(account_id)
        return EntityId.parse(token_id) in info.token_relationships

    async def account_info(self, account_id: "EntityId | str") -> AccountInfo:
        return await self.client.query_account_info(EntityId.parse(account_id))

    async def token_info(self, token_id: "EntityId | str") -> TokenInfo:
        return await self.client.query_token_info(EntityId.parse(token_id))

    async def topic_info(self, topic_id: "EntityId | str") -> TopicInfo:
        return await self.client.query_topic_info(EntityId.parse(topic_id))


async def poll_until(
    fetch: Callable[[], Awaitable[T]],
    predicate: Callable[[T], bool],
    timeout: float = DEFAULT_WAIT_TIMEOUT,
    interval: float = DEFAULT_POLL_INTERVAL,
) -> T:
    """
    Re-run fetch until predicate holds for its result.

    Args:
        fetch: Coroutine factory performing one fresh read
        predicate: Condition on the read value
        timeout: Seconds before giving up
        interval: Seconds between reads

    Returns:
        The first value satisfying predicate

    Raises:
        NetworkTimeout: If predicate never held within timeout. The message
                        includes the last value read.
        ValueError: If timeout or interval is not positive.

    Example:
        view = await poll_until(
            lambda: queries.token_balance(first, token_id),
            lambda v: v.amount == 100,
        )
    """
    if timeout <= 0 or interval <= 0:
        raise ValueError("timeout and interval must be positive")
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    last: Optional[T] = None
    while True:
        last = await fetch()
        if predicate(last):
            return last
        remaining = deadline - loop.time()
        if remaining <= 0:
            raise NetworkTimeout(f"condition not met within {timeout}s; last value: {last!r}")
        await asyncio.sleep(min(interval, remaining))
