"""
accounts.py - Account Precondition Steps

Resolve fixture actors by registry name, check their native balance, and
record them on the scenario state.
"""

from __future__ import annotations

from ..core import to_tinybars
from ..keys import Actor
from ..scenario import Scenario, ensure


_SLOTS = ("account", "second_account", "third_account", "fourth_account")


def _check_slot(slot: str) -> None:
    if slot not in _SLOTS:
        raise ValueError(f"Unknown account slot {slot!r}; expected one of {_SLOTS}")


async def account_with_more_than(
    scenario: Scenario,
    name: str,
    min_hbars: int,
    slot: str = "account",
) -> Actor:
    """
    Given an account with more than `min_hbars` hbar.

    Args:
        scenario: Current scenario
        name: Registry name of the actor
        min_hbars: Exclusive lower bound on the native balance, in hbar
        slot: ScenarioState field the actor is stored in
    """
    _check_slot(slot)
    actor = scenario.registry.actor(name)
    balance = await scenario.queries.balance(actor.account_id)
    ensure(
        balance.tinybars > to_tinybars(min_hbars),
        f"{actor.account_id} holds {balance.hbars} hbar, expected more than {min_hbars}",
    )
    setattr(scenario.state, slot, actor)
    scenario.report(f"Account {actor.account_id} has a balance of {balance.hbars} hbars.")
    return actor


async def account_with_positive_balance(
    scenario: Scenario, name: str, slot: str = "second_account"
) -> Actor:
    """Given an account holding any native balance at all."""
    _check_slot(slot)
    actor = scenario.registry.actor(name)
    balance = await scenario.queries.balance(actor.account_id)
    ensure(balance.tinybars > 0, f"{actor.account_id} has no hbar")
    setattr(scenario.state, slot, actor)
    return actor


async def paid_fee_since(scenario: Scenario, actor: Actor, balance_before: int) -> int:
    """
    Then the actor paid for the transaction fee.

    Returns:
        Tinybars spent since balance_before was read
    """
    after = (await scenario.queries.balance(actor.account_id)).tinybars
    spent = balance_before - after
    ensure(spent > 0, f"{actor.account_id} was not charged (balance {balance_before} -> {after})")
    scenario.report(f"Transaction fee of {spent} tinybars paid by {actor.account_id}.")
    return spent
