"""
test_core_types.py - Unit tests for core data structures

Tests:
- EntityId: parsing, formatting, ordering, validation
- to_tinybars: conversion and precision
- Receipt / TimedOut / AccountBalance: derived properties
- Error taxonomy: hierarchy and messages
- Wire helpers: canonical encoding and envelopes
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from ledger_harness import (
    AccountBalance, AmbiguousOutcome, EntityId, HarnessError, NetworkError,
    PrecheckError, PrecheckStatus, QueryError, Receipt, ReceiptStatus, Rejected,
    ScenarioAssertionError, TimedOut, TransactionKind, to_tinybars,
)
from ledger_harness.core import canonical_bytes, decode_envelope, encode_envelope, to_wire


class TestEntityId:
    """Tests for EntityId parsing and formatting."""

    def test_parse_and_format(self):
        """shard.realm.num round-trips through str()."""
        entity_id = EntityId.parse("0.0.1001")
        assert entity_id == EntityId(0, 0, 1001)
        assert str(entity_id) == "0.0.1001"

    def test_parse_passes_instances_through(self):
        """Parsing an EntityId returns the same object."""
        entity_id = EntityId(0, 0, 5)
        assert EntityId.parse(entity_id) is entity_id

    def test_parse_strips_whitespace(self):
        assert EntityId.parse("  1.2.3 ") == EntityId(1, 2, 3)

    @pytest.mark.parametrize("text", ["", "0.0", "0.0.x", "a.b.c", "0.0.-1", "0.0.1.2"])
    def test_malformed_ids_raise(self, text):
        """Anything but three non-negative integers is rejected."""
        with pytest.raises(ValueError, match="Malformed entity id"):
            EntityId.parse(text)

    def test_negative_component_raises(self):
        with pytest.raises(ValueError, match="non-negative"):
            EntityId(0, 0, -1)

    def test_ordering_is_numeric(self):
        """Ids sort by shard, realm, then num (not lexically)."""
        ids = [EntityId.parse(t) for t in ("0.0.1001", "0.0.99", "0.1.0")]
        assert [str(i) for i in sorted(ids)] == ["0.0.99", "0.0.1001", "0.1.0"]

    def test_hashable(self):
        assert len({EntityId(0, 0, 1), EntityId.parse("0.0.1")}) == 1


class TestTinybars:
    """Tests for native currency conversion."""

    def test_whole_hbars(self):
        assert to_tinybars(100) == 10_000_000_000

    def test_fractional_hbars(self):
        assert to_tinybars("0.5") == 50_000_000
        assert to_tinybars(Decimal("0.00000001")) == 1

    def test_sub_tinybar_precision_raises(self):
        with pytest.raises(ValueError, match="whole number of tinybars"):
            to_tinybars("0.000000001")


class TestRecords:
    """Tests for receipts and query records."""

    def test_success_is_the_only_success(self):
        assert ReceiptStatus.SUCCESS.is_success
        assert not ReceiptStatus.TOKEN_MAX_SUPPLY_REACHED.is_success

    def test_receipt_entity_id(self):
        """entity_id reports whichever entity a creation produced."""
        token = EntityId(0, 0, 7)
        assert Receipt("tx", ReceiptStatus.SUCCESS, token_id=token).entity_id == token
        assert Receipt("tx", ReceiptStatus.SUCCESS).entity_id is None

    def test_timed_out_is_falsy(self):
        """TimedOut can be tested with a plain if."""
        assert not TimedOut(EntityId(0, 0, 1), 1.0, 0)

    def test_account_balance_hbars(self):
        balance = AccountBalance(EntityId(0, 0, 1), 150_000_000)
        assert balance.hbars == Decimal("1.5")


class TestErrorTaxonomy:
    """Tests for the exception hierarchy."""

    def test_everything_is_a_harness_error(self):
        for error in (
            Rejected(PrecheckStatus.INVALID_SIGNATURE, "tx"),
            AmbiguousOutcome("tx"),
            PrecheckError(PrecheckStatus.DUPLICATE_TRANSACTION),
            QueryError(ReceiptStatus.INVALID_TOKEN_ID, "0.0.9"),
        ):
            assert isinstance(error, HarnessError)

    def test_network_errors_share_a_base(self):
        assert issubclass(PrecheckError, NetworkError)
        assert issubclass(QueryError, NetworkError)

    def test_rejected_carries_reason(self):
        error = Rejected(PrecheckStatus.INSUFFICIENT_PAYER_BALANCE, "0.0.2@1.0", "low")
        assert error.reason is PrecheckStatus.INSUFFICIENT_PAYER_BALANCE
        assert error.transaction_id == "0.0.2@1.0"
        assert "INSUFFICIENT_PAYER_BALANCE" in str(error)
        assert "low" in str(error)

    def test_scenario_assertion_is_an_assertion_error(self):
        """Test runners report scenario mismatches as failures."""
        assert issubclass(ScenarioAssertionError, AssertionError)


class TestWireEncoding:
    """Tests for canonical body encoding and envelopes."""

    def test_canonical_bytes_ignore_key_order(self):
        assert canonical_bytes({"b": 1, "a": 2}) == canonical_bytes({"a": 2, "b": 1})

    def test_to_wire_converts_domain_values(self):
        wire = to_wire({
            "id": EntityId(0, 0, 3),
            "kind": TransactionKind.TRANSFER,
            "payload": b"\x01\xff",
            "amounts": (1, 2),
            "at": datetime(2025, 1, 1, tzinfo=timezone.utc),
        })
        assert wire == {
            "id": "0.0.3",
            "kind": "transfer",
            "payload": "01ff",
            "amounts": [1, 2],
            "at": "2025-01-01T00:00:00+00:00",
        }

    def test_to_wire_rejects_unknown_types(self):
        with pytest.raises(TypeError):
            to_wire(object())

    def test_envelope_round_trip(self):
        body = canonical_bytes({"transaction_id": "0.0.2@1.000000001"})
        signed = encode_envelope(body, {"aa": b"\x01\x02"})
        body_bytes, decoded, signatures = decode_envelope(signed)
        assert body_bytes == body
        assert decoded == {"transaction_id": "0.0.2@1.000000001"}
        assert signatures == {"aa": b"\x01\x02"}

    @pytest.mark.parametrize("payload", [b"not json", b"[]", b'{"body": "[1]", "signatures": {}}'])
    def test_malformed_envelopes_raise(self, payload):
        with pytest.raises(ValueError):
            decode_envelope(payload)
