"""
test_topic_feature.py - End-to-end consensus topic scenarios

Tests complete topic flows against the simulated network:
- Topic with the first account as submit key, publish and receive
- Topic with a 1-of-2 threshold submit key
- 2-of-2 threshold: one signer is refused locally, completing the
  signatures publishes the message
- Messages published before the subscription are still received
- A message that never arrives fails the step within the wait
"""

import pytest

from ledger_harness import (
    InsufficientSignatures, InvalidPolicy, ReceiptStatus, ScenarioAssertionError,
    SubscriptionState,
)
from ledger_harness.steps import (
    account_with_more_than, account_with_positive_balance,
    complete_stored_message, create_topic_with_account_key,
    create_topic_with_threshold_key, message_received, publish_message,
    threshold_key,
)


MEMO = "Hedera topic memo"


async def given_first_account_pays(scenario):
    """Given a first account with more than 1 hbar, paying for the topic steps."""
    first = await account_with_more_than(scenario, "first", 1)
    scenario.use_payer(first)
    return first


class TestAccountSubmitKey:
    """Topic created with the first account as its submit key."""

    @pytest.mark.asyncio
    async def test_publish_and_receive(self, scenario, network):
        first = await given_first_account_pays(scenario)
        await create_topic_with_account_key(scenario, MEMO)

        receipt = await publish_message(scenario, "Hello Future")
        message = await message_received(scenario, "Hello Future")

        assert receipt.topic_sequence_number == 1
        assert message.sequence_number == 1
        assert scenario.state.received_messages == ["Hello Future"]
        assert network.fees_paid_by(first.account_id) == 2 * network.fee
        assert network.active_watches == 0

    @pytest.mark.asyncio
    async def test_topic_memo_and_keys(self, scenario):
        await given_first_account_pays(scenario)
        await create_topic_with_account_key(scenario, MEMO)

        info = await scenario.queries.topic_info(scenario.state.topic_id)

        assert info.memo == MEMO
        assert info.has_submit_key
        assert info.has_admin_key
        assert info.auto_renew_account_id == scenario.state.account.account_id

    @pytest.mark.asyncio
    async def test_history_is_replayed(self, scenario):
        """Messages published before subscribing are delivered from cursor 0."""
        await given_first_account_pays(scenario)
        await create_topic_with_account_key(scenario, MEMO)
        for text in ("one", "two", "three"):
            await publish_message(scenario, text)

        message = await message_received(scenario, "two")

        assert message.sequence_number == 2
        assert scenario.state.received_messages[:2] == ["one", "two"]

    @pytest.mark.asyncio
    async def test_missing_message_fails_step(self, scenario):
        await given_first_account_pays(scenario)
        await create_topic_with_account_key(scenario, MEMO)
        await publish_message(scenario, "something else")

        with pytest.raises(ScenarioAssertionError, match="not received"):
            await message_received(scenario, "Hello Future", timeout=0.05)
        assert not scenario.engine.open_subscriptions


class TestThresholdSubmitKey:
    """Topic created with an M-of-N threshold key over two accounts."""

    @pytest.mark.asyncio
    async def test_one_of_two(self, scenario):
        await given_first_account_pays(scenario)
        await account_with_positive_balance(scenario, "second")
        policy = threshold_key(scenario, 1, 2)
        await create_topic_with_threshold_key(scenario, MEMO)

        await publish_message(scenario, "Hello Future")
        message = await message_received(scenario, "Hello Future")

        assert scenario.state.submit_policy == policy
        assert message.text() == "Hello Future"

    @pytest.mark.asyncio
    async def test_one_of_two_single_signer(self, scenario):
        """Either member alone satisfies a 1-of-2 submit key."""
        await given_first_account_pays(scenario)
        second = await account_with_positive_balance(scenario, "second")
        threshold_key(scenario, 1, 2)
        await create_topic_with_threshold_key(scenario, MEMO)

        receipt = await publish_message(scenario, "from second", signers=[second.private_key])

        assert receipt.status is ReceiptStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_two_of_two_needs_both(self, scenario, network):
        first = await given_first_account_pays(scenario)
        second = await account_with_positive_balance(scenario, "second")
        threshold_key(scenario, 2, 2)
        await create_topic_with_threshold_key(scenario, MEMO)
        calls_before = network.execute_calls

        error = await publish_message(
            scenario, "Hello Future", signers=[first.private_key],
            expected=InsufficientSignatures,
        )

        assert isinstance(error, InsufficientSignatures)
        assert network.execute_calls == calls_before

        receipt = await complete_stored_message(scenario, [second.private_key])
        message = await message_received(scenario, "Hello Future")

        assert receipt.status is ReceiptStatus.SUCCESS
        assert message.sequence_number == 1
        assert network.execute_calls == calls_before + 1

    @pytest.mark.asyncio
    async def test_threshold_out_of_range(self, scenario):
        await given_first_account_pays(scenario)
        await account_with_positive_balance(scenario, "second")

        with pytest.raises(InvalidPolicy, match="out of range"):
            threshold_key(scenario, 3, 2)

    @pytest.mark.asyncio
    async def test_member_count_checked(self, scenario):
        await given_first_account_pays(scenario)
        await account_with_positive_balance(scenario, "second")

        with pytest.raises(ScenarioAssertionError, match="expected 3"):
            threshold_key(scenario, 1, 3)


class TestScenarioTeardown:
    """Subscriptions never outlive their scenario."""

    @pytest.mark.asyncio
    async def test_open_subscription_cancelled_on_close(self, scenario, network):
        await given_first_account_pays(scenario)
        await create_topic_with_account_key(scenario, MEMO)
        subscription = await scenario.engine.open(scenario.state.topic_id)

        await scenario.close()

        assert subscription.state is SubscriptionState.CANCELLED
        assert network.active_watches == 0
