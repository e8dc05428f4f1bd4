"""
topic.py - Consensus Topic Drafts

Factories for the append-only message topics:
1. topic_create() - New topic, optionally gated by a submit key
2. topic_message_submit() - Append one message to a topic

A topic with a submit key only accepts messages signed under that policy;
a topic without one accepts messages from any payer.
"""

from __future__ import annotations
from typing import Optional, Union

from ..core import EntityId, MalformedDraft, TransactionKind, MAX_MESSAGE_BYTES
from ..policy import SigningPolicy
from .draft import (
    Params, TransactionDraft, entity, operation, optional_entity, optional_policy,
    validate_memo,
)


@operation(TransactionKind.TOPIC_CREATE, (
    "topic_memo", "submit_key", "admin_key", "auto_renew_account_id",
))
def _validate_topic_create(params: Params) -> Params:
    return {
        "topic_memo": validate_memo(params.get("topic_memo", ""), "topic_memo"),
        "submit_key": optional_policy(params.get("submit_key"), "submit_key"),
        "admin_key": optional_policy(params.get("admin_key"), "admin_key"),
        "auto_renew_account_id": optional_entity(
            params.get("auto_renew_account_id"), "auto_renew_account_id"
        ),
    }


def topic_create(
    topic_memo: str = "",
    submit_key: Optional[SigningPolicy] = None,
    admin_key: Optional[SigningPolicy] = None,
    auto_renew_account_id: "EntityId | str | None" = None,
    auto_renew_policy: Optional[SigningPolicy] = None,
    memo: str = "",
) -> TransactionDraft:
    """
    Draft a topic creation.

    The admin key and the auto-renew account (if any) must sign.

    Args:
        topic_memo: Memo stored on the topic
        submit_key: Policy gating message submission
        admin_key: Policy allowed to update or delete the topic
        auto_renew_account_id: Account paying for the topic's renewal
        auto_renew_policy: That account's key, if known locally
    """
    return TransactionDraft(
        TransactionKind.TOPIC_CREATE,
        {
            "topic_memo": topic_memo,
            "submit_key": submit_key,
            "admin_key": admin_key,
            "auto_renew_account_id": auto_renew_account_id,
        },
        memo=memo,
        required_policies=(admin_key, auto_renew_policy),
    )


@operation(TransactionKind.TOPIC_MESSAGE_SUBMIT, ("topic_id", "message"))
def _validate_topic_message_submit(params: Params) -> Params:
    message = params.get("message")
    if isinstance(message, str):
        message = message.encode("utf-8")
    if not isinstance(message, (bytes, bytearray)):
        raise MalformedDraft(f"message must be bytes or str, got {type(message).__name__}")
    if not message:
        raise MalformedDraft("message cannot be empty")
    if len(message) > MAX_MESSAGE_BYTES:
        raise MalformedDraft(f"message exceeds {MAX_MESSAGE_BYTES} bytes")
    return {
        "topic_id": entity(params.get("topic_id"), "topic_id"),
        "message": bytes(message),
    }


def topic_message_submit(
    topic_id: "EntityId | str",
    message: Union[bytes, str],
    submit_policy: Optional[SigningPolicy] = None,
    memo: str = "",
) -> TransactionDraft:
    """
    Draft a message submission.

    Args:
        topic_id: Target topic
        message: Payload; str is encoded as UTF-8
        submit_policy: The topic's submit key, if it has one

    Example:
        draft = topic_message_submit(topic_id, "hello", submit_policy=threshold)
    """
    return TransactionDraft(
        TransactionKind.TOPIC_MESSAGE_SUBMIT,
        {"topic_id": topic_id, "message": message},
        memo=memo,
        required_policies=(submit_policy,),
    )
