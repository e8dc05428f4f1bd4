"""
test_provisioning.py - Unit tests for fixture account provisioning

Tests:
- provision_accounts: funded accounts with usable keys, in order
- write_accounts: file format readable by read_accounts / HarnessConfig
- Failure handling
"""

import json

import pytest

from ledger_harness import (
    Actor, HarnessConfig, HarnessError, PayerContext, PrivateKey, to_tinybars,
    provision_accounts, read_accounts, write_accounts,
)


class TestProvisionAccounts:
    """Tests for provision_accounts."""

    @pytest.mark.asyncio
    async def test_creates_funded_accounts(self, network, resolver, payer):
        records = await provision_accounts(resolver, payer, count=3, initial_balance=to_tinybars(10))

        assert [r.id for r in records] == ["0.0.1007", "0.0.1008", "0.0.1009"]
        for record in records:
            balance = await network.query_balance(record.account_id)
            assert balance.tinybars == to_tinybars(10)

    @pytest.mark.asyncio
    async def test_keys_control_the_new_accounts(self, network, resolver, payer):
        [record] = await provision_accounts(resolver, payer, count=1, initial_balance=to_tinybars(10))
        owner = PayerContext(Actor("fresh", record.account_id, record.signing_key()))

        records = await provision_accounts(resolver, owner, count=1, initial_balance=1)

        assert len(records) == 1

    @pytest.mark.asyncio
    async def test_failed_creation_raises(self, network, resolver):
        key = PrivateKey.generate()
        poor = PayerContext(Actor("poor", network.bootstrap_account(key, to_tinybars(1)), key))

        with pytest.raises(HarnessError, match="INSUFFICIENT_ACCOUNT_BALANCE"):
            await provision_accounts(resolver, poor, count=1, initial_balance=to_tinybars(5))

    @pytest.mark.asyncio
    async def test_count_must_be_positive(self, resolver, payer):
        with pytest.raises(ValueError, match="count"):
            await provision_accounts(resolver, payer, count=0)


class TestWriteAccounts:
    """Tests for the accounts file round trip."""

    @pytest.mark.asyncio
    async def test_written_file_loads_as_registry(self, tmp_path, resolver, payer, operator):
        records = await provision_accounts(resolver, payer, count=2, initial_balance=to_tinybars(1))
        path = write_accounts(records, tmp_path / "accounts.json")

        raw = json.loads(path.read_text(encoding="utf-8"))
        assert [sorted(item) for item in raw] == [["id", "privateKey"]] * 2
        assert read_accounts(path) == records

        config = HarnessConfig(
            operator={"account_id": str(operator.account_id),
                      "private_key": operator.private_key.to_string_der()},
            accounts=read_accounts(path),
        )
        registry = config.registry()
        assert registry.actor("first").account_id == records[0].account_id
        assert registry.signer("second") == records[1].signing_key()
