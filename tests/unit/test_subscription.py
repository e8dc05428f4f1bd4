"""
test_subscription.py - Unit tests for the subscription engine

Tests:
- Lifecycle: IDLE -> SUBSCRIBING -> STREAMING -> CANCELLED / ERRORED
- Delivery: ordering, deduplication of redelivered messages, start cursor
- wait_for: history scan, live wait, non-destructive timeout
- Release: cancel idempotence, scoped subscriptions, close_all
"""

import asyncio

import pytest

from ledger_harness import (
    EntityId, QueryError, ReceiptStatus, Subscription, SubscriptionClosed,
    SubscriptionEngine, SubscriptionState, TimedOut, payload_equals,
)

from tests.fake_network import make_message


TOPIC = EntityId(0, 0, 7001)
OTHER_TOPIC = EntityId(0, 0, 7002)


@pytest.fixture
def engine(fake_client):
    return SubscriptionEngine(fake_client, default_timeout=1.0)


def sequence_numbers(subscription):
    return [m.sequence_number for m in subscription.messages]


class TestLifecycle:
    """Tests for subscription states and transitions."""

    def test_new_subscription_is_idle(self):
        subscription = Subscription(TOPIC)
        assert subscription.state is SubscriptionState.IDLE
        assert subscription.is_active

    @pytest.mark.parametrize("cursor", [-1, 1.5, True, "3"])
    def test_invalid_start_cursor_raises(self, cursor):
        with pytest.raises(ValueError, match="start_cursor"):
            Subscription(TOPIC, cursor)

    @pytest.mark.asyncio
    async def test_open_streams(self, fake_client, engine):
        subscription = await engine.open(str(TOPIC), start_cursor=4)

        assert subscription.state is SubscriptionState.STREAMING
        assert subscription.topic_id == TOPIC
        [watch] = fake_client.open_watches
        assert watch.start_cursor == 4
        assert subscription in engine.open_subscriptions

    @pytest.mark.asyncio
    async def test_refused_watch_propagates_and_is_not_tracked(self, fake_client, engine):
        fake_client.refuse_watch = QueryError(ReceiptStatus.INVALID_TOPIC_ID, str(TOPIC))

        with pytest.raises(QueryError):
            await engine.open(TOPIC)

        assert engine.open_subscriptions == frozenset()

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self, fake_client, engine):
        subscription = await engine.open(TOPIC)

        await engine.cancel(subscription)
        await engine.cancel(subscription)

        assert subscription.state is SubscriptionState.CANCELLED
        assert fake_client.close_calls == 1
        assert fake_client.open_watches == []
        assert engine.open_subscriptions == frozenset()

    @pytest.mark.asyncio
    async def test_network_error_moves_to_errored(self, fake_client, engine):
        subscription = await engine.open(TOPIC)
        error = ConnectionError("feed dropped")

        fake_client.fail(error)

        assert subscription.state is SubscriptionState.ERRORED
        assert subscription.error is error
        assert not subscription.is_active

    @pytest.mark.asyncio
    async def test_errored_subscription_keeps_watch_until_cancelled(self, fake_client, engine):
        subscription = await engine.open(TOPIC)
        fake_client.fail(ConnectionError("feed dropped"))
        assert len(fake_client.open_watches) == 1

        await engine.cancel(subscription)

        assert subscription.state is SubscriptionState.ERRORED
        assert fake_client.open_watches == []

    @pytest.mark.asyncio
    async def test_failing_consumer_errors_the_subscription(self, fake_client, engine):
        def consumer(message):
            raise RuntimeError("consumer broke")

        subscription = await engine.open(TOPIC, consumer=consumer)
        fake_client.push(make_message(TOPIC, 1))

        assert subscription.state is SubscriptionState.ERRORED
        assert isinstance(subscription.error, RuntimeError)


class TestDelivery:
    """Tests for ordered, deduplicated delivery."""

    @pytest.mark.asyncio
    async def test_redelivered_message_handed_over_once(self, fake_client, engine):
        seen = []
        subscription = await engine.open(TOPIC, consumer=seen.append)

        fake_client.push(*(make_message(TOPIC, n) for n in (1, 2, 3, 3, 4)))

        assert [m.sequence_number for m in seen] == [1, 2, 3, 4]
        assert sequence_numbers(subscription) == [1, 2, 3, 4]
        assert subscription.duplicates == 1
        assert subscription.cursor == 4

    @pytest.mark.asyncio
    async def test_stale_messages_never_delivered(self, fake_client, engine):
        subscription = await engine.open(TOPIC)
        fake_client.push(*(make_message(TOPIC, n) for n in (1, 3, 2)))
        assert sequence_numbers(subscription) == [1, 3]

    @pytest.mark.asyncio
    async def test_start_cursor_skips_earlier_messages(self, fake_client, engine):
        subscription = await engine.open(TOPIC, start_cursor=2)
        fake_client.push(*(make_message(TOPIC, n) for n in (1, 2, 3, 4)))
        assert sequence_numbers(subscription) == [3, 4]

    @pytest.mark.asyncio
    async def test_replay_during_subscribe_is_kept(self, fake_client, engine):
        """Messages pushed before the watch is acknowledged are not lost."""
        fake_client.replay = [make_message(TOPIC, 1), make_message(TOPIC, 2)]
        subscription = await engine.open(TOPIC)
        assert sequence_numbers(subscription) == [1, 2]

    @pytest.mark.asyncio
    async def test_other_topics_ignored(self, fake_client, engine):
        subscription = await engine.open(TOPIC)
        fake_client.push(make_message(OTHER_TOPIC, 1), make_message(TOPIC, 1))
        assert [m.topic_id for m in subscription.messages] == [TOPIC]

    @pytest.mark.asyncio
    async def test_nothing_delivered_after_cancel(self, fake_client, engine):
        subscription = await engine.open(TOPIC)
        watch = fake_client.open_watches[0]
        await engine.cancel(subscription)

        watch.on_message(make_message(TOPIC, 1))

        assert subscription.messages == ()

    @pytest.mark.asyncio
    async def test_texts(self, fake_client, engine):
        subscription = await engine.open(TOPIC)
        fake_client.push(make_message(TOPIC, 1, b"Hello future"))
        assert subscription.texts() == ["Hello future"]


class TestWaitFor:
    """Tests for bounded waits."""

    @pytest.mark.asyncio
    async def test_finds_message_delivered_before_the_call(self, fake_client, engine):
        subscription = await engine.open(TOPIC)
        fake_client.push(make_message(TOPIC, 1, b"early"))

        found = await engine.wait_for(subscription, payload_equals("early"))

        assert found.sequence_number == 1

    @pytest.mark.asyncio
    async def test_waits_for_a_later_message(self, fake_client, engine):
        subscription = await engine.open(TOPIC)
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, fake_client.push, make_message(TOPIC, 1, b"noise"))
        loop.call_later(0.02, fake_client.push, make_message(TOPIC, 2, b"target"))

        found = await engine.wait_for(subscription, payload_equals(b"target"), timeout=1.0)

        assert found.contents == b"target"

    @pytest.mark.asyncio
    async def test_timeout_is_a_value_and_keeps_streaming(self, fake_client, engine):
        subscription = await engine.open(TOPIC)
        fake_client.push(make_message(TOPIC, 1))

        result = await engine.wait_for(subscription, payload_equals("never"), timeout=0.05)

        assert isinstance(result, TimedOut)
        assert result.observed == 1
        assert subscription.state is SubscriptionState.STREAMING

        fake_client.push(make_message(TOPIC, 2, b"after"))
        found = await engine.wait_for(subscription, payload_equals("after"), timeout=0.5)
        assert found.sequence_number == 2

    @pytest.mark.asyncio
    async def test_errored_subscription_raises_its_error(self, fake_client, engine):
        subscription = await engine.open(TOPIC)
        fake_client.fail(ConnectionError("feed dropped"))

        with pytest.raises(ConnectionError, match="feed dropped"):
            await engine.wait_for(subscription, payload_equals("x"))

    @pytest.mark.asyncio
    async def test_cancel_wakes_pending_waiter(self, engine):
        subscription = await engine.open(TOPIC)
        waiting = asyncio.create_task(
            engine.wait_for(subscription, payload_equals("x"), timeout=5.0)
        )
        await asyncio.sleep(0.01)

        await engine.cancel(subscription)

        with pytest.raises(SubscriptionClosed):
            await waiting

    @pytest.mark.asyncio
    async def test_non_positive_timeout_raises(self, engine):
        subscription = await engine.open(TOPIC)
        with pytest.raises(ValueError, match="timeout must be positive"):
            await engine.wait_for(subscription, payload_equals("x"), timeout=0)


class TestScopedSubscriptions:
    """Tests for subscribe() and close_all()."""

    @pytest.mark.asyncio
    async def test_scope_exit_cancels(self, fake_client, engine):
        async with engine.subscribe(TOPIC) as subscription:
            assert subscription.state is SubscriptionState.STREAMING
        assert subscription.state is SubscriptionState.CANCELLED
        assert fake_client.open_watches == []

    @pytest.mark.asyncio
    async def test_scope_exit_on_error_cancels(self, fake_client, engine):
        with pytest.raises(RuntimeError):
            async with engine.subscribe(TOPIC) as subscription:
                raise RuntimeError("assertion step failed")
        assert subscription.state is SubscriptionState.CANCELLED
        assert fake_client.open_watches == []

    @pytest.mark.asyncio
    async def test_close_all(self, fake_client, engine):
        subscriptions = [await engine.open(TOPIC), await engine.open(OTHER_TOPIC)]

        await engine.close_all()

        assert all(s.state is SubscriptionState.CANCELLED for s in subscriptions)
        assert fake_client.open_watches == []
        assert engine.open_subscriptions == frozenset()


class TestPayloadEquals:
    """Tests for payload_equals."""

    def test_text_and_bytes(self):
        message = make_message(TOPIC, 1, b"hello")
        assert payload_equals("hello")(message)
        assert payload_equals(b"hello")(message)
        assert not payload_equals("Hello")(message)
