"""
Steps module - Scenario step library for the topic and token features.

Each step is a coroutine taking the Scenario first. Steps read what earlier
steps produced from scenario.state, record what they produce there, and
fail with ScenarioAssertionError when an observation does not match.
"""

from .accounts import (
    account_with_more_than,
    account_with_positive_balance,
    paid_fee_since,
)

from .topic import (
    create_topic_with_account_key,
    create_topic_with_threshold_key,
    threshold_key,
    publish_message,
    complete_stored_message,
    message_received,
)

from .token import (
    MINT_REFUSED,
    create_mintable_token,
    create_fixed_supply_token,
    token_has_name,
    token_has_symbol,
    token_has_decimals,
    token_owned_by,
    total_supply_is,
    mint,
    mint_succeeds,
    mint_fails,
    ensure_associated,
    account_holds_tokens,
    account_token_balance_is,
    create_transfer,
    submit_stored,
)

__all__ = [
    "account_with_more_than",
    "account_with_positive_balance",
    "paid_fee_since",
    "create_topic_with_account_key",
    "create_topic_with_threshold_key",
    "threshold_key",
    "publish_message",
    "complete_stored_message",
    "message_received",
    "MINT_REFUSED",
    "create_mintable_token",
    "create_fixed_supply_token",
    "token_has_name",
    "token_has_symbol",
    "token_has_decimals",
    "token_owned_by",
    "total_supply_is",
    "mint",
    "mint_succeeds",
    "mint_fails",
    "ensure_associated",
    "account_holds_tokens",
    "account_token_balance_is",
    "create_transfer",
    "submit_stored",
]
