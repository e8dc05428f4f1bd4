"""
conftest.py - Shared pytest fixtures for harness tests

Provides common fixtures used across unit, conformance and functional tests:
- Keys and actors not bound to any network
- A SimulatedNetwork with a funded operator and five fixture accounts
- Resolver, payer context and Scenario over that network
- A call-counting FakeNetworkClient
"""

import pytest

from ledger_harness import (
    Actor, EntityId, PayerContext, PrivateKey, Resolver, Scenario,
    SignerRegistry, SimulatedNetwork, to_tinybars,
)

from tests.fake_network import FakeNetworkClient


OPERATOR_HBARS = 10_000
ACCOUNT_HBARS = 100
FIXTURE_ACCOUNTS = ("first", "second", "third", "fourth", "fifth")


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def make_actor(name: str, num: int) -> Actor:
    """An actor with a fresh key at 0.0.<num>, not registered on any network."""
    return Actor(name, EntityId(0, 0, num), PrivateKey.generate())


def funded_registry(network: SimulatedNetwork) -> SignerRegistry:
    """Bootstrap the operator and the fixture accounts on network."""
    registry = SignerRegistry()
    operator_key = PrivateKey.generate()
    registry.register(
        "operator",
        network.bootstrap_account(operator_key, to_tinybars(OPERATOR_HBARS)),
        operator_key,
    )
    for name in FIXTURE_ACCOUNTS:
        key = PrivateKey.generate()
        registry.register(name, network.bootstrap_account(key, to_tinybars(ACCOUNT_HBARS)), key)
    return registry


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def operator_actor():
    return make_actor("operator", 2)


@pytest.fixture
def offline_payer(operator_actor):
    """Payer context for tests that never reach a network."""
    return PayerContext(operator_actor)


@pytest.fixture
def network():
    return SimulatedNetwork(verbose=False)


@pytest.fixture
def registry(network):
    return funded_registry(network)


@pytest.fixture
def operator(registry):
    return registry.actor("operator")


@pytest.fixture
def payer(operator):
    return PayerContext(operator)


@pytest.fixture
def resolver(network):
    return Resolver(network, verbose=False)


@pytest.fixture
def scenario(network, registry):
    return Scenario(network, registry, wait_timeout=2.0, verbose=False)


@pytest.fixture
def fake_client():
    return FakeNetworkClient()
