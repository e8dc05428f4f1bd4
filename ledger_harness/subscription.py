"""
subscription.py - Consensus Subscription Engine

Watches a topic's consensus-ordered message feed and lets assertions wait,
with a mandatory timeout, for a message matching a predicate.

State machine of one Subscription:

    IDLE --open--> SUBSCRIBING --ack--> STREAMING
      |                 |                   |
      +-----------------+---cancel()--------+--> CANCELLED
                        |                   |
                        +---network error---+--> ERRORED

CANCELLED and ERRORED are terminal. cancel() is idempotent and always
releases the network watch, including from ERRORED.

Delivery guarantees to the consumer:
    - sequence numbers strictly increase
    - each sequence number is handed over exactly once, even when the
      network redelivers (at-least-once feed, deduplicated by cursor)

wait_for() never cancels the subscription. A timeout returns a TimedOut
value and the subscription keeps streaming.
"""

from __future__ import annotations
import asyncio
from contextlib import asynccontextmanager
from enum import Enum
from typing import (
    Any, AsyncIterator, Callable, Dict, FrozenSet, List, Optional, Set, Tuple, Union
)

from .core import (
    EntityId, NetworkClient, SubscriptionClosed, TimedOut, TopicMessage,
    DEFAULT_WAIT_TIMEOUT,
)


Predicate = Callable[[TopicMessage], bool]
Consumer = Callable[[TopicMessage], None]


class SubscriptionState(Enum):
    IDLE = "idle"
    SUBSCRIBING = "subscribing"
    STREAMING = "streaming"
    CANCELLED = "cancelled"
    ERRORED = "errored"


TERMINAL_STATES: FrozenSet[SubscriptionState] = frozenset({
    SubscriptionState.CANCELLED, SubscriptionState.ERRORED,
})

_TRANSITIONS: Dict[SubscriptionState, FrozenSet[SubscriptionState]] = {
    SubscriptionState.IDLE: frozenset({
        SubscriptionState.SUBSCRIBING, SubscriptionState.CANCELLED,
    }),
    SubscriptionState.SUBSCRIBING: frozenset({
        SubscriptionState.STREAMING, SubscriptionState.CANCELLED, SubscriptionState.ERRORED,
    }),
    SubscriptionState.STREAMING: frozenset({
        SubscriptionState.CANCELLED, SubscriptionState.ERRORED,
    }),
    SubscriptionState.CANCELLED: frozenset(),
    SubscriptionState.ERRORED: frozenset(),
}


class Subscription:
    """
    A live watch over one topic, owned by the scenario that opened it.

    Attributes:
        topic_id: Topic being watched
        start_cursor: Sequence number the watch started after
        cursor: Last sequence number handed to the consumer
        state: Current SubscriptionState
        error: The error that moved the subscription to ERRORED, if any
        duplicates: Redelivered messages dropped by deduplication
    """

    def __init__(
        self,
        topic_id: EntityId,
        start_cursor: int = 0,
        consumer: Optional[Consumer] = None,
    ):
        if isinstance(start_cursor, bool) or not isinstance(start_cursor, int) or start_cursor < 0:
            raise ValueError(f"start_cursor must be a non-negative int, got {start_cursor!r}")
        self.topic_id = topic_id
        self.start_cursor = start_cursor
        self.cursor = start_cursor
        self.state = SubscriptionState.IDLE
        self.error: Optional[BaseException] = None
        self.duplicates = 0
        self._messages: List[TopicMessage] = []
        self._consumer = consumer
        self._handle: Any = None
        self._waiters: List[asyncio.Future] = []

    @property
    def messages(self) -> Tuple[TopicMessage, ...]:
        """Every message delivered so far, in sequence order."""
        return tuple(self._messages)

    @property
    def is_active(self) -> bool:
        return self.state not in TERMINAL_STATES

    def texts(self, encoding: str = "utf-8") -> List[str]:
        return [message.text(encoding) for message in self._messages]

    def _transition(self, new_state: SubscriptionState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Invalid subscription transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state

    def _wake(self) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    def _deliver(self, message: TopicMessage) -> None:
        """Network callback: one (possibly redelivered) message."""
        if self.state not in (SubscriptionState.SUBSCRIBING, SubscriptionState.STREAMING):
            return
        if message.topic_id != self.topic_id:
            return
        if message.sequence_number <= self.cursor:
            self.duplicates += 1
            return
        self._messages.append(message)
        self.cursor = message.sequence_number
        if self._consumer is not None:
            try:
                self._consumer(message)
            except Exception as e:
                self._fail(e)
                return
        self._wake()

    def _fail(self, error: BaseException) -> None:
        """Network callback: the feed broke."""
        if self.state in TERMINAL_STATES:
            return
        self.error = error
        self._transition(SubscriptionState.ERRORED)
        self._wake()

    def __repr__(self) -> str:
        return (
            f"Subscription({self.topic_id} {self.state.value}, "
            f"cursor={self.cursor}, received={len(self._messages)})"
        )


class SubscriptionEngine:
    """
    Opens, waits on and cancels topic subscriptions.

    Tracks every subscription it opened so a scenario can release all of
    them at teardown with close_all().

    Example:
        engine = SubscriptionEngine(network)
        async with engine.subscribe(topic_id) as subscription:
            found = await engine.wait_for(
                subscription, lambda m: m.contents == b"hello", timeout=5.0
            )
            assert not isinstance(found, TimedOut)
    """

    def __init__(self, client: NetworkClient, default_timeout: float = DEFAULT_WAIT_TIMEOUT):
        self.client = client
        self.default_timeout = default_timeout
        self._open: Set[Subscription] = set()

    @property
    def open_subscriptions(self) -> FrozenSet[Subscription]:
        return frozenset(self._open)

    async def open(
        self,
        topic_id: "EntityId | str",
        start_cursor: int = 0,
        consumer: Optional[Consumer] = None,
    ) -> Subscription:
        """
        Start watching a topic.

        Messages with sequence_number > start_cursor are delivered; 0 means
        from the first message.

        Returns:
            Subscription in STREAMING (or ERRORED if the feed failed before
            it was acknowledged)

        Raises:
            NetworkError: If the network refuses the watch. The subscription
                          is left ERRORED and holds no watch.
        """
        subscription = Subscription(EntityId.parse(topic_id), start_cursor, consumer)
        subscription._transition(SubscriptionState.SUBSCRIBING)
        self._open.add(subscription)
        try:
            handle = await self.client.open_topic_watch(
                subscription.topic_id, start_cursor,
                subscription._deliver, subscription._fail,
            )
        except Exception as e:
            subscription._fail(e)
            self._open.discard(subscription)
            raise

        subscription._handle = handle
        if subscription.state is SubscriptionState.SUBSCRIBING:
            subscription._transition(SubscriptionState.STREAMING)
        elif subscription.state is SubscriptionState.CANCELLED:
            # Cancelled while the watch was being acknowledged.
            await self._release(subscription)
        return subscription

    async def wait_for(
        self,
        subscription: Subscription,
        predicate: Predicate,
        timeout: Optional[float] = None,
    ) -> Union[TopicMessage, TimedOut]:
        """
        Suspend until a delivered message satisfies predicate.

        Messages delivered before the call are considered first, in order.

        Args:
            subscription: Subscription to watch
            predicate: Test applied to each message
            timeout: Seconds to wait (default: the engine's default_timeout)

        Returns:
            The first matching TopicMessage, or TimedOut if none arrived in
            time. A timeout leaves the subscription open.

        Raises:
            The subscription's error, if it moved to ERRORED.
            SubscriptionClosed: If it was cancelled.
            ValueError: If timeout is not positive.
        """
        timeout = self.default_timeout if timeout is None else timeout
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        index = 0
        while True:
            delivered = subscription._messages
            while index < len(delivered):
                message = delivered[index]
                index += 1
                if predicate(message):
                    return message

            if subscription.state is SubscriptionState.ERRORED:
                raise subscription.error
            if subscription.state is SubscriptionState.CANCELLED:
                raise SubscriptionClosed(f"{subscription!r} was cancelled")

            remaining = deadline - loop.time()
            if remaining <= 0:
                return TimedOut(subscription.topic_id, timeout, len(delivered))

            waiter = loop.create_future()
            subscription._waiters.append(waiter)
            try:
                await asyncio.wait_for(waiter, remaining)
            except asyncio.TimeoutError:
                pass
            finally:
                if waiter in subscription._waiters:
                    subscription._waiters.remove(waiter)

    async def cancel(self, subscription: Subscription) -> None:
        """
        Cancel and release the network watch. Idempotent.

        From a non-terminal state the subscription moves to CANCELLED and
        pending waiters raise SubscriptionClosed. An ERRORED subscription
        stays ERRORED but its watch is still released.
        """
        if subscription.is_active:
            subscription._transition(SubscriptionState.CANCELLED)
            subscription._wake()
        await self._release(subscription)

    async def close_all(self) -> None:
        """Cancel every subscription this engine opened."""
        for subscription in list(self._open):
            await self.cancel(subscription)

    @asynccontextmanager
    async def subscribe(
        self,
        topic_id: "EntityId | str",
        start_cursor: int = 0,
        consumer: Optional[Consumer] = None,
    ) -> AsyncIterator[Subscription]:
        """Scoped subscription: cancelled on every exit path."""
        subscription = await self.open(topic_id, start_cursor, consumer)
        try:
            yield subscription
        finally:
            await self.cancel(subscription)

    async def _release(self, subscription: Subscription) -> None:
        handle, subscription._handle = subscription._handle, None
        self._open.discard(subscription)
        if handle is not None:
            await self.client.close_watch(handle)


def payload_equals(expected: "bytes | str") -> Predicate:
    """Predicate matching messages whose contents equal expected."""
    if isinstance(expected, str):
        expected = expected.encode("utf-8")

    def matches(message: TopicMessage) -> bool:
        return message.contents == expected

    return matches
