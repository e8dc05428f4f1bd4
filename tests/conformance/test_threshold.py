"""
Threshold Sufficiency Conformance Tests

INVARIANT: A policy is satisfied exactly when enough distinct members signed.

    ∀ policy P = (members, M), ∀ signer set S:
        is_signed_enough(sign(T, P, S), P) ⟺ |S ∩ members| >= M

Signatures from non-members never count, and a member signing twice
counts once.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from ledger_harness import (
    Actor, EntityId, PayerContext, PrivateKey, build_threshold_policy, freeze,
    is_signed_enough, sign, topic_message_submit,
)


@st.composite
def policy_and_signers(draw):
    size = draw(st.integers(min_value=1, max_value=5))
    threshold = draw(st.integers(min_value=1, max_value=size))
    chosen = draw(st.lists(st.integers(min_value=0, max_value=size - 1), max_size=8))
    outsiders = draw(st.integers(min_value=0, max_value=3))
    return size, threshold, chosen, outsiders


def fresh_transaction():
    payer = PayerContext(Actor("operator", EntityId(0, 0, 2), PrivateKey.generate()))
    return freeze(topic_message_submit("0.0.7001", "hello"), payer)


class TestThresholdProperties:
    """Property-based threshold tests."""

    @given(policy_and_signers())
    @settings(max_examples=50)
    def test_satisfied_iff_enough_distinct_members(self, case):
        """
        PROPERTY: sufficiency depends only on the number of distinct members
        that signed, never on outsiders or repeated signers.
        """
        size, threshold, chosen, outsiders = case
        members = [PrivateKey.generate() for _ in range(size)]
        policy = build_threshold_policy(members, threshold)
        signers = [members[i] for i in chosen] + [PrivateKey.generate() for _ in range(outsiders)]

        signed = sign(fresh_transaction(), policy, signers)

        assert is_signed_enough(signed, policy) == (len(set(chosen)) >= threshold)

    @given(st.integers(min_value=2, max_value=5), st.data())
    @settings(max_examples=30)
    def test_signing_in_any_order_and_batches(self, size, data):
        """
        PROPERTY: signatures accumulate; splitting the same signer set into
        several sign() calls gives the same result as one call.
        """
        members = [PrivateKey.generate() for _ in range(size)]
        policy = build_threshold_policy(members, size)
        order = data.draw(st.permutations(members))
        cut = data.draw(st.integers(min_value=0, max_value=size))

        frozen = fresh_transaction()
        batched = sign(sign(frozen, policy, order[:cut]), policy, order[cut:])
        at_once = sign(frozen, policy, members)

        assert is_signed_enough(batched, policy)
        assert batched.signed_keys == at_once.signed_keys

    @given(st.integers(min_value=1, max_value=5))
    @settings(max_examples=20)
    def test_one_short_is_never_enough(self, size):
        """
        PROPERTY: M-1 member signatures never satisfy an M-of-N policy.
        """
        members = [PrivateKey.generate() for _ in range(size)]
        policy = build_threshold_policy(members, size)
        signed = sign(fresh_transaction(), policy, members[:-1])
        assert not is_signed_enough(signed, policy)
