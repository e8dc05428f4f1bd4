"""
token.py - Fungible Token Lifecycle Drafts

This module provides factories for the token lifecycle:
1. token_create() - New fungible token with a recognized set of options
2. token_mint() - Increase supply, credited to the treasury
3. token_associate() - Let an account hold balances of one or more tokens

Recognized token_create options:
    supply_type      INFINITE (default) or FINITE
    decimals         0..18, display precision only
    initial_supply   credited to the treasury at creation
    max_supply       required (> 0) for FINITE, forbidden for INFINITE
    treasury         account receiving initial and minted supply
    freeze_default   new associations start frozen
    admin/supply/wipe/kyc keys   optional SigningPolicy assignments

All amounts are integers in the token's smallest denomination.
"""

from __future__ import annotations
from typing import Iterable, Optional

from ..core import (
    EntityId, MalformedDraft, TokenSupplyType, TransactionKind,
    MAX_TOKEN_DECIMALS, MAX_TOKEN_NAME_BYTES, MAX_TOKEN_SYMBOL_BYTES,
)
from ..policy import SigningPolicy
from .draft import (
    Params, TransactionDraft, amount, bounded_text, entity, operation,
    optional_entity, optional_policy, validate_memo,
)


_KEY_FIELDS = ("admin_key", "supply_key", "wipe_key", "kyc_key")


# ============================================================================
# TOKEN CREATE
# ============================================================================

@operation(TransactionKind.TOKEN_CREATE, (
    "name", "symbol", "decimals", "initial_supply", "max_supply", "supply_type",
    "treasury_account_id", "freeze_default", "auto_renew_account_id", "token_memo",
) + _KEY_FIELDS)
def _validate_token_create(params: Params) -> Params:
    supply_type = params.get("supply_type", TokenSupplyType.INFINITE)
    if not isinstance(supply_type, TokenSupplyType):
        raise MalformedDraft(f"supply_type must be a TokenSupplyType, got {supply_type!r}")

    decimals = amount(params.get("decimals", 0), "decimals")
    if decimals > MAX_TOKEN_DECIMALS:
        raise MalformedDraft(f"decimals must be <= {MAX_TOKEN_DECIMALS}, got {decimals}")

    initial_supply = amount(params.get("initial_supply", 0), "initial_supply")
    max_supply = amount(params.get("max_supply", 0), "max_supply")
    if supply_type is TokenSupplyType.FINITE:
        if max_supply <= 0:
            raise MalformedDraft("FINITE supply requires max_supply > 0")
        if initial_supply > max_supply:
            raise MalformedDraft(
                f"initial_supply {initial_supply} exceeds max_supply {max_supply}"
            )
    elif max_supply != 0:
        raise MalformedDraft("max_supply is only valid with FINITE supply")

    freeze_default = params.get("freeze_default", False)
    if not isinstance(freeze_default, bool):
        raise MalformedDraft(f"freeze_default must be a bool, got {freeze_default!r}")

    validated = {
        "name": bounded_text(params.get("name"), "name", MAX_TOKEN_NAME_BYTES, required=True),
        "symbol": bounded_text(params.get("symbol"), "symbol", MAX_TOKEN_SYMBOL_BYTES, required=True),
        "decimals": decimals,
        "initial_supply": initial_supply,
        "max_supply": max_supply,
        "supply_type": supply_type,
        "treasury_account_id": entity(params.get("treasury_account_id"), "treasury_account_id"),
        "freeze_default": freeze_default,
        "auto_renew_account_id": optional_entity(
            params.get("auto_renew_account_id"), "auto_renew_account_id"
        ),
        "token_memo": validate_memo(params.get("token_memo", ""), "token_memo"),
    }
    for name in _KEY_FIELDS:
        validated[name] = optional_policy(params.get(name), name)
    return validated


def token_create(
    name: str,
    symbol: str,
    treasury_account_id: "EntityId | str",
    decimals: int = 0,
    initial_supply: int = 0,
    supply_type: TokenSupplyType = TokenSupplyType.INFINITE,
    max_supply: int = 0,
    freeze_default: bool = False,
    admin_key: Optional[SigningPolicy] = None,
    supply_key: Optional[SigningPolicy] = None,
    wipe_key: Optional[SigningPolicy] = None,
    kyc_key: Optional[SigningPolicy] = None,
    auto_renew_account_id: "EntityId | str | None" = None,
    token_memo: str = "",
    treasury_policy: Optional[SigningPolicy] = None,
    memo: str = "",
) -> TransactionDraft:
    """
    Draft a fungible token creation.

    The treasury account and the admin key (if any) must sign. Pass
    treasury_policy to have the treasury's key checked before submission.

    Example:
        draft = token_create(
            "Test Token", "HTT", operator.account_id,
            decimals=2, initial_supply=1000,
            admin_key=operator.policy, supply_key=operator.policy,
        )
    """
    return TransactionDraft(
        TransactionKind.TOKEN_CREATE,
        {
            "name": name,
            "symbol": symbol,
            "decimals": decimals,
            "initial_supply": initial_supply,
            "max_supply": max_supply,
            "supply_type": supply_type,
            "treasury_account_id": treasury_account_id,
            "freeze_default": freeze_default,
            "auto_renew_account_id": auto_renew_account_id,
            "token_memo": token_memo,
            "admin_key": admin_key,
            "supply_key": supply_key,
            "wipe_key": wipe_key,
            "kyc_key": kyc_key,
        },
        memo=memo,
        required_policies=(treasury_policy, admin_key),
    )


def fixed_supply(initial_supply: int) -> dict:
    """Keyword set for a FINITE token whose whole supply exists at creation."""
    return {
        "initial_supply": initial_supply,
        "max_supply": initial_supply,
        "supply_type": TokenSupplyType.FINITE,
    }


# ============================================================================
# TOKEN MINT
# ============================================================================

@operation(TransactionKind.TOKEN_MINT, ("token_id", "amount"))
def _validate_token_mint(params: Params) -> Params:
    return {
        "token_id": entity(params.get("token_id"), "token_id"),
        "amount": amount(params.get("amount"), "amount", minimum=1),
    }


def token_mint(
    token_id: "EntityId | str",
    amount: int,
    supply_policy: Optional[SigningPolicy] = None,
    memo: str = "",
) -> TransactionDraft:
    """
    Draft a mint of `amount` units into the token's treasury.

    Args:
        token_id: Token to mint
        amount: Units to add, > 0
        supply_policy: The token's supply key, if known locally
    """
    return TransactionDraft(
        TransactionKind.TOKEN_MINT,
        {"token_id": token_id, "amount": amount},
        memo=memo,
        required_policies=(supply_policy,),
    )


# ============================================================================
# TOKEN ASSOCIATE
# ============================================================================

@operation(TransactionKind.TOKEN_ASSOCIATE, ("account_id", "token_ids"))
def _validate_token_associate(params: Params) -> Params:
    token_ids = params.get("token_ids")
    if token_ids is None or isinstance(token_ids, (str, EntityId)):
        raise MalformedDraft("token_ids must be a sequence of token ids")
    parsed = tuple(entity(t, "token_ids") for t in token_ids)
    if not parsed:
        raise MalformedDraft("token_associate needs at least one token")
    if len(set(parsed)) != len(parsed):
        raise MalformedDraft("token_ids contains duplicates")
    return {
        "account_id": entity(params.get("account_id"), "account_id"),
        "token_ids": parsed,
    }


def token_associate(
    account_id: "EntityId | str",
    token_ids: Iterable["EntityId | str"],
    account_policy: Optional[SigningPolicy] = None,
    memo: str = "",
) -> TransactionDraft:
    """
    Draft an association of account_id with token_ids.

    The account's key must sign; pass account_policy to check it locally.
    """
    return TransactionDraft(
        TransactionKind.TOKEN_ASSOCIATE,
        {"account_id": account_id, "token_ids": token_ids},
        memo=memo,
        required_policies=(account_policy,),
    )
