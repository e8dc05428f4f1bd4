#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: The Harness Step by Step

A guided run of the harness against the in-memory SimulatedNetwork. Each
step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3: Foundation   - Network, actors, the freeze/sign/submit pipeline
  4-5: Tokens       - Mintable and fixed supply tokens, stored transfers
  6-7: Topics       - Threshold submit keys, subscriptions, bounded waits
  8:   Guarantees   - Fail-fast signing, exactly-once submission

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

import asyncio
import sys

from ledger_harness import (
    DuplicateSubmission, InsufficientSignatures, PayerContext, PrivateKey,
    Resolver, Scenario, SignerRegistry, SimulatedNetwork, TimedOut,
    freeze, payload_equals, sign, to_tinybars, token_create,
)
from ledger_harness.steps import (
    account_holds_tokens, account_with_more_than, account_with_positive_balance,
    complete_stored_message, create_fixed_supply_token, create_mintable_token,
    create_topic_with_threshold_key, create_transfer, message_received, mint_fails,
    mint_succeeds, paid_fee_since, publish_message, submit_stored, threshold_key,
    total_supply_is,
)


QUICK_MODE = "--quick" in sys.argv
ACCOUNT_NAMES = ("first", "second", "third", "fourth")


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_network():
    """Create a network and fund the actors."""
    step_header(1, "The Simulated Network",
        "A network holds accounts, tokens and topics; actors hold the keys.")

    print(">>> network = SimulatedNetwork(verbose=True)")
    network = SimulatedNetwork(verbose=True)

    registry = SignerRegistry()
    key = PrivateKey.generate()
    registry.register("operator", network.bootstrap_account(key, to_tinybars(10_000)), key)
    for name in ACCOUNT_NAMES:
        key = PrivateKey.generate()
        registry.register(name, network.bootstrap_account(key, to_tinybars(100)), key)

    section_header("Actors")
    for actor in registry:
        print(f"{actor.name:10s} {actor.account_id}  {actor.public_key}")

    section_header("Key Insight")
    print("""
    Every private key belongs to exactly one actor. Other actors only ever
    see account ids and public keys.
    """)
    return network, registry


async def step_02_pipeline(network, registry):
    """Freeze, sign, submit."""
    step_header(2, "Freeze, Sign, Submit",
        "A draft is frozen against a payer, signed, then submitted once.")

    operator = registry.actor("operator")
    payer = PayerContext(operator)
    resolver = Resolver(network)

    draft = token_create("Demo Token", "DMO", operator.account_id,
                         initial_supply=10, treasury_policy=operator.policy)
    frozen = freeze(draft, payer)
    print(f">>> freeze(draft, payer)  ->  {frozen!r}")
    frozen = sign(frozen, operator.policy)
    print(f">>> sign(frozen, operator.policy)  ->  {frozen!r}")
    receipt = await resolver.submit(frozen)
    print(f">>> await resolver.submit(frozen)  ->  {receipt!r}")

    section_header("Key Insight")
    print("""
    The frozen body bytes never change. Signatures accumulate over those
    exact bytes, and the payer signs at freeze time.
    """)


async def step_03_fees(scenario):
    """Fees are charged to the payer."""
    step_header(3, "Who Pays",
        "The payer of a transaction is charged its fee, and nobody else.")

    first = await account_with_more_than(scenario, "first", 10)
    before = await scenario.queries.hbar_balance(first.account_id)
    await create_mintable_token(scenario)
    await account_holds_tokens(scenario, first, 100)
    print(f"\n{first.name} balance unchanged: "
          f"{await scenario.queries.hbar_balance(first.account_id) == before}")


# ============================================================================
# PHASE 2: TOKENS (Steps 4-5)
# ============================================================================

async def step_04_supply(scenario):
    """Mintable versus fixed supply."""
    step_header(4, "Token Supply",
        "A mintable token grows; a fixed supply token refuses mints.")

    await create_mintable_token(scenario)
    await mint_succeeds(scenario, 500)
    await total_supply_is(scenario, 1500)

    section_header("Fixed supply")
    await create_fixed_supply_token(scenario, 1_000_000)
    await mint_fails(scenario)
    await total_supply_is(scenario, 1_000_000)


async def step_05_stored_transfer(scenario):
    """Create now, sign later, with a different payer."""
    step_header(5, "Stored Transfers",
        "A transfer frozen now can be signed by its senders later.")

    await create_mintable_token(scenario)
    actors = [scenario.registry.actor(name) for name in ACCOUNT_NAMES]
    first, second, third, fourth = actors
    for actor, amount in zip(actors, (100, 100, 0, 0)):
        await account_holds_tokens(scenario, actor, amount)

    before = await scenario.queries.hbar_balance(fourth.account_id)
    create_transfer(scenario, [(first, 10), (second, 10)], [(third, 5), (fourth, 15)], payer=fourth)
    await submit_stored(scenario, [first, second])
    await paid_fee_since(scenario, fourth, before)


# ============================================================================
# PHASE 3: TOPICS (Steps 6-7)
# ============================================================================

async def step_06_threshold_topic(scenario):
    """2-of-2 submit key."""
    step_header(6, "Threshold Submit Keys",
        "A 2-of-2 topic accepts a message only with both signatures.")

    first = await account_with_more_than(scenario, "first", 1)
    second = await account_with_positive_balance(scenario, "second")
    scenario.use_payer(first)
    threshold_key(scenario, 2, 2)
    await create_topic_with_threshold_key(scenario, "demo topic")

    await publish_message(scenario, "Hello Future", signers=[first.private_key],
                          expected=InsufficientSignatures)
    await complete_stored_message(scenario, [second.private_key])
    await message_received(scenario, "Hello Future")


async def step_07_bounded_wait(scenario):
    """A timeout is an observation, not a failure of the subscription."""
    step_header(7, "Bounded Waits",
        "wait_for() returns TimedOut and the subscription keeps streaming.")

    topic_id = scenario.state.require("topic_id")
    async with scenario.engine.subscribe(topic_id) as subscription:
        outcome = await scenario.engine.wait_for(
            subscription, payload_equals("never sent"), timeout=0.1
        )
        print(f">>> wait_for(...)  ->  {outcome!r}")
        print(f"TimedOut: {isinstance(outcome, TimedOut)}, state: {subscription.state.value}")


# ============================================================================
# PHASE 4: GUARANTEES (Step 8)
# ============================================================================

async def step_08_exactly_once(network, registry):
    """Submitting twice is refused locally."""
    step_header(8, "Exactly Once",
        "A frozen transaction reaches the network at most once.")

    operator = registry.actor("operator")
    resolver = Resolver(network)
    frozen = freeze(
        token_create("Once", "ONE", operator.account_id, treasury_policy=operator.policy),
        PayerContext(operator),
    )
    frozen = sign(frozen, operator.policy)
    await resolver.submit(frozen)
    try:
        await resolver.submit(frozen)
    except DuplicateSubmission as e:
        print(f"✓ second submit refused: {e}")


# ============================================================================
# MAIN
# ============================================================================

async def run():
    network, registry = step_01_network()
    wait_for_enter()

    await step_02_pipeline(network, registry)
    wait_for_enter()

    async with Scenario(network, registry) as scenario:
        await step_03_fees(scenario)
        wait_for_enter()
        await step_04_supply(scenario)
        wait_for_enter()
        await step_05_stored_transfer(scenario)
        wait_for_enter()

    async with Scenario(network, registry) as scenario:
        await step_06_threshold_topic(scenario)
        wait_for_enter()
        await step_07_bounded_wait(scenario)
        wait_for_enter()

    await step_08_exactly_once(network, registry)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See ledger_harness/steps/ for the scenario step library
      - Run tests: pytest tests/
    """)


def main():
    asyncio.run(run())


if __name__ == "__main__":
    main()
