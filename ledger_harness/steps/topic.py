"""
topic.py - Consensus Topic Steps

Step library for the topic feature:
    - topic created with the first account as submit key
    - M-of-N threshold key over the first and second account
    - topic created with the threshold key as submit key
    - message published (optionally with only some of the submit signers)
    - message received through a subscription within a bounded wait

The topic feature pays fees from the first account, so the account step
used before topic creation should be followed by scenario.use_payer().
"""

from __future__ import annotations
from typing import Optional, Sequence, Union

from ..core import HarnessError, Receipt, ReceiptStatus, TimedOut, TopicMessage
from ..keys import PrivateKey
from ..operations import topic_create, topic_message_submit
from ..pipeline import freeze, sign
from ..policy import SigningPolicy, build_threshold_policy
from ..scenario import Expected, Scenario, ensure, expect_outcome
from ..subscription import payload_equals


async def _create_topic(scenario: Scenario, memo: str, submit_key: SigningPolicy) -> Receipt:
    account = scenario.state.require("account")
    draft = topic_create(
        topic_memo=memo,
        submit_key=submit_key,
        admin_key=account.policy,
        auto_renew_account_id=account.account_id,
        auto_renew_policy=account.policy,
    )
    receipt = await expect_outcome(
        scenario, scenario.resolver.execute(draft, scenario.payer)
    )
    ensure(receipt.topic_id is not None, "Failed to create topic")
    scenario.state.topic_id = receipt.topic_id
    scenario.state.submit_policy = submit_key
    scenario.report(f"Created topic with ID: {receipt.topic_id}")
    return receipt


async def create_topic_with_account_key(scenario: Scenario, memo: str) -> Receipt:
    """When a topic is created with the memo, the first account as the submit key."""
    account = scenario.state.require("account")
    return await _create_topic(scenario, memo, account.policy)


async def create_topic_with_threshold_key(scenario: Scenario, memo: str) -> Receipt:
    """When a topic is created with the memo, the threshold key as the submit key."""
    policy = scenario.state.require("threshold_policy")
    return await _create_topic(scenario, memo, policy)


def threshold_key(scenario: Scenario, threshold: int, total_keys: int) -> SigningPolicy:
    """
    Given an M-of-N threshold key with the first and second account.

    Raises:
        InvalidPolicy: If threshold is out of range.
        ScenarioAssertionError: If the key does not have total_keys members.
    """
    first = scenario.state.require("account")
    second = scenario.state.require("second_account")
    policy = build_threshold_policy([first.private_key, second.private_key], threshold)
    ensure(
        len(policy.members) == total_keys,
        f"Threshold key has {len(policy.members)} members, expected {total_keys}",
    )
    scenario.state.threshold_policy = policy
    return policy


async def publish_message(
    scenario: Scenario,
    message: Union[str, bytes],
    signers: Optional[Sequence[PrivateKey]] = None,
    expected: Expected = ReceiptStatus.SUCCESS,
) -> Union[Receipt, HarnessError]:
    """
    When the message is published to the topic.

    The submission is signed under the topic's submit key, by `signers`
    when given (possibly too few) or else by every member key held. The
    frozen transaction is kept as state.stored_transaction so a partially
    signed submission can be completed with complete_stored_message().
    """
    topic_id = scenario.state.require("topic_id")
    policy = scenario.state.submit_policy
    frozen = freeze(
        topic_message_submit(topic_id, message, submit_policy=policy), scenario.payer
    )
    if policy is not None:
        frozen = sign(frozen, policy, signers)
    scenario.state.stored_transaction = frozen
    return await expect_outcome(scenario, scenario.resolver.submit(frozen), expected)


async def complete_stored_message(
    scenario: Scenario,
    signers: Sequence[PrivateKey],
    expected: Expected = ReceiptStatus.SUCCESS,
) -> Union[Receipt, HarnessError]:
    """Add signatures to the stored submission and submit it."""
    frozen = scenario.state.require("stored_transaction")
    policy = scenario.state.require("submit_policy")
    frozen = sign(frozen, policy, signers)
    scenario.state.stored_transaction = frozen
    return await expect_outcome(scenario, scenario.resolver.submit(frozen), expected)


async def message_received(
    scenario: Scenario,
    expected_message: Union[str, bytes],
    timeout: Optional[float] = None,
    start_cursor: int = 0,
) -> TopicMessage:
    """
    Then the message is received by the topic and can be printed.

    Subscribes from start_cursor, collects every payload into
    state.received_messages, and waits until one equals expected_message.
    The subscription is cancelled on every exit path.

    Raises:
        ScenarioAssertionError: If the message did not arrive in time.
    """
    topic_id = scenario.state.require("topic_id")
    received = scenario.state.received_messages

    def collect(message: TopicMessage) -> None:
        received.append(message.contents.decode("utf-8", errors="replace"))

    async with scenario.engine.subscribe(topic_id, start_cursor, consumer=collect) as subscription:
        found = await scenario.engine.wait_for(
            subscription, payload_equals(expected_message), timeout
        )

    ensure(
        not isinstance(found, TimedOut),
        f"Message {expected_message!r} not received on {topic_id}: {found!r}",
    )
    scenario.report(f"Received message #{found.sequence_number}: {found.contents.decode('utf-8', errors='replace')}")
    return found
