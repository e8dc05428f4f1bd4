"""
token.py - Token Service Steps

Step library for the token feature. The operator is the treasury and holds
every token key; the operator is also the default fee payer.

Steps:
    - create a mintable token (infinite supply) or a fixed-supply token
    - assert name, symbol, decimals, treasury and total supply
    - mint, expecting success or a named business failure
    - make an account hold exactly N tokens (associate, then move the
      difference to or from the treasury)
    - store a transfer now, sign and submit it later, optionally with a
      different fee payer
"""

from __future__ import annotations
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from ..core import (
    HarnessError, Receipt, ReceiptStatus, TokenInfo, TokenSupplyType,
)
from ..keys import Actor
from ..operations import (
    fixed_supply, token_associate, token_create, token_leg, token_mint, transfer,
)
from ..pipeline import FrozenTransaction, freeze, sign
from ..scenario import Expected, Scenario, ensure, expect_outcome


TOKEN_NAME = "Test Token"
TOKEN_SYMBOL = "HTT"
TOKEN_DECIMALS = 2

# A mint on a fixed-supply token fails with one of these, depending on
# whether the token was created with a supply key.
MINT_REFUSED = frozenset({
    ReceiptStatus.TOKEN_MAX_SUPPLY_REACHED,
    ReceiptStatus.TOKEN_HAS_NO_SUPPLY_KEY,
})


# ============================================================================
# CREATION
# ============================================================================

async def create_mintable_token(
    scenario: Scenario,
    initial_supply: int = 1000,
    name: str = TOKEN_NAME,
    symbol: str = TOKEN_SYMBOL,
    decimals: int = TOKEN_DECIMALS,
) -> Receipt:
    """When I create a token named Test Token (HTT)."""
    operator = scenario.operator
    key = operator.policy
    draft = token_create(
        name, symbol, operator.account_id,
        decimals=decimals,
        initial_supply=initial_supply,
        supply_type=TokenSupplyType.INFINITE,
        freeze_default=False,
        admin_key=key,
        supply_key=key,
        wipe_key=key,
        kyc_key=key,
        auto_renew_account_id=operator.account_id,
        treasury_policy=key,
    )
    receipt = await expect_outcome(scenario, scenario.resolver.execute(draft, scenario.payer))
    ensure(receipt.token_id is not None, "Token creation failed")
    scenario.state.token_id = receipt.token_id
    scenario.state.supply_policy = key
    scenario.report(f"Token created with ID: {receipt.token_id}")
    return receipt


async def create_fixed_supply_token(
    scenario: Scenario,
    initial_supply: int,
    with_supply_key: bool = False,
    name: str = TOKEN_NAME,
    symbol: str = TOKEN_SYMBOL,
    decimals: int = TOKEN_DECIMALS,
) -> Receipt:
    """When I create a fixed supply token named Test Token (HTT) with N tokens."""
    operator = scenario.operator
    supply_key = operator.policy if with_supply_key else None
    draft = token_create(
        name, symbol, operator.account_id,
        decimals=decimals,
        supply_key=supply_key,
        treasury_policy=operator.policy,
        **fixed_supply(initial_supply),
    )
    receipt = await expect_outcome(scenario, scenario.resolver.execute(draft, scenario.payer))
    ensure(receipt.token_id is not None, "Token creation failed")
    scenario.state.token_id = receipt.token_id
    scenario.state.supply_policy = supply_key
    scenario.report(f"Fixed supply token created with ID: {receipt.token_id}")
    return receipt


# ============================================================================
# TOKEN ASSERTIONS
# ============================================================================

async def _token_info(scenario: Scenario) -> TokenInfo:
    return await scenario.queries.token_info(scenario.state.require("token_id"))


async def token_has_name(scenario: Scenario, expected: str) -> None:
    info = await _token_info(scenario)
    ensure(info.name == expected, f"Token name {info.name!r} != {expected!r}")


async def token_has_symbol(scenario: Scenario, expected: str) -> None:
    info = await _token_info(scenario)
    ensure(info.symbol == expected, f"Token symbol {info.symbol!r} != {expected!r}")


async def token_has_decimals(scenario: Scenario, expected: int) -> None:
    info = await _token_info(scenario)
    ensure(info.decimals == expected, f"Token decimals {info.decimals} != {expected}")


async def token_owned_by(scenario: Scenario, actor: Optional[Actor] = None) -> None:
    """Then the token is owned by the account (the operator by default)."""
    actor = actor or scenario.operator
    info = await _token_info(scenario)
    ensure(
        info.treasury_account_id == actor.account_id,
        f"Token treasury {info.treasury_account_id} != {actor.account_id}",
    )


async def total_supply_is(scenario: Scenario, expected: int) -> None:
    info = await _token_info(scenario)
    ensure(info.total_supply == expected, f"Total supply {info.total_supply} != {expected}")
    scenario.report(f"Token total supply: {info.total_supply}")


# ============================================================================
# MINTING
# ============================================================================

async def mint(
    scenario: Scenario,
    amount: int,
    expected: Expected = ReceiptStatus.SUCCESS,
) -> Union[Receipt, HarnessError]:
    """
    Mint `amount` units and check the outcome.

    An attempt that should fail names the failure, e.g.
    expected=MINT_REFUSED; any other outcome fails the step.
    """
    token_id = scenario.state.require("token_id")
    draft = token_mint(token_id, amount, supply_policy=scenario.state.supply_policy)
    return await expect_outcome(
        scenario, scenario.resolver.execute(draft, scenario.payer), expected
    )


async def mint_succeeds(scenario: Scenario, amount: int) -> Receipt:
    """Then an attempt to mint N additional tokens succeeds."""
    receipt = await mint(scenario, amount)
    scenario.report(f"Successfully minted {amount} additional tokens.")
    return receipt


async def mint_fails(
    scenario: Scenario,
    amount: int = 100,
    expected: Expected = MINT_REFUSED,
) -> Union[Receipt, HarnessError]:
    """Then an attempt to mint tokens fails, with a business failure status."""
    outcome = await mint(scenario, amount, expected)
    if isinstance(outcome, Receipt):
        detail = outcome.status.value
    else:
        detail = type(outcome).__name__
    scenario.report(f"Minting tokens failed as expected: {detail}")
    return outcome


# ============================================================================
# HOLDINGS
# ============================================================================

async def ensure_associated(scenario: Scenario, actor: Actor) -> Optional[Receipt]:
    """Associate actor with the current token unless it already is."""
    token_id = scenario.state.require("token_id")
    if await scenario.queries.is_associated(actor.account_id, token_id):
        return None
    draft = token_associate(actor.account_id, [token_id], account_policy=actor.policy)
    receipt = await expect_outcome(scenario, scenario.resolver.execute(draft, scenario.payer))
    scenario.report(f"Account {actor.account_id} associated with token {token_id}")
    return receipt


async def account_holds_tokens(scenario: Scenario, actor: Actor, amount: int) -> None:
    """
    Given the account holds N HTT tokens.

    Associates if needed, then moves the difference between the current and
    the wanted balance to or from the token's treasury.
    """
    token_id = scenario.state.require("token_id")
    await ensure_associated(scenario, actor)

    current = (await scenario.queries.token_balance(actor.account_id, token_id)).amount
    difference = amount - current
    if difference:
        info = await scenario.queries.token_info(token_id)
        treasury = scenario.registry.for_account(info.treasury_account_id)
        ensure(treasury is not None, f"No key for treasury {info.treasury_account_id}")
        source, target = (treasury, actor) if difference > 0 else (actor, treasury)
        draft = transfer(
            [
                token_leg(token_id, source.account_id, -abs(difference)),
                token_leg(token_id, target.account_id, abs(difference)),
            ],
            sender_policies=[source.policy],
        )
        await expect_outcome(scenario, scenario.resolver.execute(draft, scenario.payer))

    await account_token_balance_is(scenario, actor, amount)


async def account_token_balance_is(scenario: Scenario, actor: Actor, expected: int) -> None:
    token_id = scenario.state.require("token_id")
    view = await scenario.queries.token_balance(actor.account_id, token_id)
    ensure(
        view.amount == expected,
        f"{actor.account_id} holds {view.amount} {TOKEN_SYMBOL}, expected {expected}",
    )
    scenario.report(f"Account {actor.account_id} holds {view.amount} {TOKEN_SYMBOL} tokens.")


# ============================================================================
# STORED TRANSFERS
# ============================================================================

def create_transfer(
    scenario: Scenario,
    debits: Iterable[Tuple[Actor, int]],
    credits: Iterable[Tuple[Actor, int]],
    payer: Optional[Actor] = None,
) -> FrozenTransaction:
    """
    When a transaction is created to transfer tokens between accounts.

    The transfer is frozen now, against `payer` (default: the scenario's
    payer), and stored unsigned by the senders for later submission.
    """
    token_id = scenario.state.require("token_id")
    legs: List = [token_leg(token_id, actor.account_id, -amount) for actor, amount in debits]
    legs += [token_leg(token_id, actor.account_id, amount) for actor, amount in credits]
    payer_context = scenario.payer_for(payer) if payer is not None else scenario.payer
    frozen = freeze(transfer(legs), payer_context)
    scenario.state.stored_transaction = frozen
    scenario.report("Transaction created and stored for later submission.")
    return frozen


async def submit_stored(
    scenario: Scenario,
    signers: Sequence[Actor],
    expected: Expected = ReceiptStatus.SUCCESS,
) -> Union[Receipt, HarnessError]:
    """When the account(s) sign and submit the stored transaction."""
    frozen = scenario.state.require("stored_transaction")
    for actor in signers:
        frozen = sign(frozen, actor.policy)
    scenario.state.stored_transaction = frozen
    outcome = await expect_outcome(scenario, scenario.resolver.submit(frozen), expected)
    if isinstance(outcome, Receipt):
        scenario.report(f"The transaction consensus status: {outcome.status.value}")
    return outcome
