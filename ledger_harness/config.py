"""
config.py - Credentials and Fixture Accounts

Loads, once, everything a scenario run needs to sign:
    - the operator (fee payer) from MY_ACCOUNT_ID / MY_PRIVATE_KEY
    - pre-provisioned accounts from a JSON list of {"id", "privateKey"}
      records (the file provisioning.write_accounts() produces)

Values come from the process environment after a .env file has been
applied with python-dotenv. The resulting HarnessConfig is read-only and
turns into a SignerRegistry with registry().

Environment:
    MY_ACCOUNT_ID           operator account id, e.g. 0.0.1001
    MY_PRIVATE_KEY          operator Ed25519 private key (raw or DER hex)
    HARNESS_ACCOUNTS_FILE   path of the accounts JSON (optional)
    HARNESS_WAIT_TIMEOUT    default subscription wait in seconds (optional)
"""

from __future__ import annotations
import json
import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .core import EntityId, HarnessError, DEFAULT_RECEIPT_TIMEOUT, DEFAULT_WAIT_TIMEOUT
from .keys import PrivateKey, SignerRegistry


# Registry names for fixture accounts, in file order.
ACCOUNT_NAMES = ("first", "second", "third", "fourth", "fifth")
OPERATOR_NAME = "operator"


class ConfigError(HarnessError):
    """Raised when required credentials are missing."""
    pass


def account_name(index: int) -> str:
    """Registry name of the index-th fixture account."""
    if index < len(ACCOUNT_NAMES):
        return ACCOUNT_NAMES[index]
    return f"account{index + 1}"


class AccountRecord(BaseModel):
    """One pre-provisioned account as stored in the accounts file."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    private_key: str = Field(alias="privateKey", repr=False)

    @field_validator("id")
    @classmethod
    def _valid_id(cls, value: str) -> str:
        return str(EntityId.parse(value))

    @field_validator("private_key")
    @classmethod
    def _valid_key(cls, value: str) -> str:
        PrivateKey.from_string(value)
        return value

    @property
    def account_id(self) -> EntityId:
        return EntityId.parse(self.id)

    def signing_key(self) -> PrivateKey:
        return PrivateKey.from_string(self.private_key)


class OperatorConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    account_id: str
    private_key: str = Field(repr=False)

    @field_validator("account_id")
    @classmethod
    def _valid_id(cls, value: str) -> str:
        return str(EntityId.parse(value))

    @field_validator("private_key")
    @classmethod
    def _valid_key(cls, value: str) -> str:
        PrivateKey.from_string(value)
        return value


class HarnessConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    operator: OperatorConfig
    accounts: List[AccountRecord] = []
    wait_timeout: float = Field(default=DEFAULT_WAIT_TIMEOUT, gt=0)
    receipt_timeout: float = Field(default=DEFAULT_RECEIPT_TIMEOUT, gt=0)

    @classmethod
    def load(
        cls,
        env_path: "str | Path | None" = None,
        accounts_path: "str | Path | None" = None,
    ) -> HarnessConfig:
        """
        Load .env plus the accounts file.

        Args:
            env_path: .env file to apply (default: nearest .env, if any).
                      Variables already set in the environment win.
            accounts_path: Accounts JSON (default: HARNESS_ACCOUNTS_FILE)

        Raises:
            ConfigError: If the operator credentials are missing.
            FileNotFoundError: If the accounts file does not exist.
            pydantic.ValidationError: If an id or key is malformed.
        """
        load_dotenv(env_path)

        account_id = os.getenv("MY_ACCOUNT_ID")
        private_key = os.getenv("MY_PRIVATE_KEY")
        if not account_id or not private_key:
            raise ConfigError("MY_ACCOUNT_ID and MY_PRIVATE_KEY must be set")

        raw = {"operator": {"account_id": account_id, "private_key": private_key}}

        accounts_path = accounts_path or os.getenv("HARNESS_ACCOUNTS_FILE")
        if accounts_path:
            raw["accounts"] = read_accounts(accounts_path)

        wait_timeout = os.getenv("HARNESS_WAIT_TIMEOUT")
        if wait_timeout:
            raw["wait_timeout"] = wait_timeout
        return cls(**raw)

    def registry(self) -> SignerRegistry:
        """Actors: 'operator', then 'first', 'second', ... in file order."""
        registry = SignerRegistry()
        registry.register(OPERATOR_NAME, self.operator.account_id, self.operator.private_key)
        for index, record in enumerate(self.accounts):
            registry.register(account_name(index), record.account_id, record.signing_key())
        return registry


def read_accounts(path: "str | Path") -> List[AccountRecord]:
    """
    Read an accounts file.

    Raises:
        FileNotFoundError: If path does not exist.
        ValueError: If the file is not a JSON list.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Accounts file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    if not isinstance(raw, list):
        raise ValueError(f"{path}: expected a JSON list of account records")
    return [AccountRecord.model_validate(item) for item in raw]

