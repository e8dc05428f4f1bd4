"""
keys.py - Key Material and the Signer Registry

This module provides:
1. PublicKey / PrivateKey - Ed25519 keys with the string forms the ledger uses
2. Actor - a named identity: address plus exclusively owned signing key
3. SignerRegistry - resolves actor names to signing capabilities

Key material is loaded once and never mutated afterwards, so a registry can
be read concurrently by any number of scenarios without locking.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from .core import EntityId


# DER prefixes of Ed25519 keys as the ledger SDKs print them.
_ED25519_PRIVATE_DER_PREFIX = "302e020100300506032b657004220420"
_ED25519_PUBLIC_DER_PREFIX = "302a300506032b6570032100"


# ============================================================================
# KEYS
# ============================================================================

class PublicKey:
    """An Ed25519 verification key, compared by raw bytes."""

    __slots__ = ("_key", "_raw")

    def __init__(self, key: ed25519.Ed25519PublicKey):
        self._key = key
        self._raw = key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    @classmethod
    def from_bytes(cls, raw: bytes) -> PublicKey:
        return cls(ed25519.Ed25519PublicKey.from_public_bytes(raw))

    @classmethod
    def from_string(cls, text: str) -> PublicKey:
        """Parse raw hex or DER-prefixed hex."""
        text = text.strip().lower()
        if text.startswith("0x"):
            text = text[2:]
        if text.startswith(_ED25519_PUBLIC_DER_PREFIX):
            text = text[len(_ED25519_PUBLIC_DER_PREFIX):]
        raw = bytes.fromhex(text)
        if len(raw) != 32:
            raise ValueError(f"Ed25519 public key must be 32 bytes, got {len(raw)}")
        return cls.from_bytes(raw)

    def to_bytes(self) -> bytes:
        return self._raw

    def to_string(self) -> str:
        """Raw lowercase hex. Used as the signature map key on the wire."""
        return self._raw.hex()

    def to_string_der(self) -> str:
        return _ED25519_PUBLIC_DER_PREFIX + self._raw.hex()

    def verify(self, signature: bytes, message: bytes) -> bool:
        """Return True iff signature is valid for message under this key."""
        try:
            self._key.verify(signature, message)
        except InvalidSignature:
            return False
        return True

    def __eq__(self, other) -> bool:
        return isinstance(other, PublicKey) and self._raw == other._raw

    def __hash__(self) -> int:
        return hash(self._raw)

    def __repr__(self) -> str:
        return f"PublicKey({self._raw.hex()[:12]}...)"

    def __str__(self) -> str:
        return self.to_string_der()


class PrivateKey:
    """
    An Ed25519 signing key.

    The private half never leaves this object; callers get signatures and
    the public key, nothing else.
    """

    __slots__ = ("_key", "_public")

    def __init__(self, key: ed25519.Ed25519PrivateKey):
        self._key = key
        self._public = PublicKey(key.public_key())

    @classmethod
    def generate(cls) -> PrivateKey:
        return cls(ed25519.Ed25519PrivateKey.generate())

    @classmethod
    def from_bytes(cls, raw: bytes) -> PrivateKey:
        return cls(ed25519.Ed25519PrivateKey.from_private_bytes(raw))

    @classmethod
    def from_string(cls, text: str) -> PrivateKey:
        """
        Parse an Ed25519 private key.

        Accepts raw 32-byte hex or the DER-prefixed hex form
        (302e020100300506032b657004220420...), with or without 0x.

        Raises:
            ValueError: If the text is not a valid Ed25519 private key.
        """
        text = text.strip().lower()
        if text.startswith("0x"):
            text = text[2:]
        if text.startswith(_ED25519_PRIVATE_DER_PREFIX):
            text = text[len(_ED25519_PRIVATE_DER_PREFIX):]
        raw = bytes.fromhex(text)
        if len(raw) != 32:
            raise ValueError(f"Ed25519 private key must be 32 bytes, got {len(raw)}")
        return cls.from_bytes(raw)

    @property
    def public_key(self) -> PublicKey:
        return self._public

    def sign(self, message: bytes) -> bytes:
        return self._key.sign(message)

    def to_string_der(self) -> str:
        raw = self._key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return _ED25519_PRIVATE_DER_PREFIX + raw.hex()

    def __eq__(self, other) -> bool:
        return isinstance(other, PrivateKey) and self._public == other._public

    def __hash__(self) -> int:
        return hash(self._public)

    def __repr__(self) -> str:
        # Never print key material.
        return f"PrivateKey(public={self._public!r})"


# ============================================================================
# ACTORS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Actor:
    """
    A named identity taking part in a scenario.

    Attributes:
        name: Registry name (e.g. "operator", "first").
        account_id: The actor's address on the ledger.
        private_key: Signing key, owned exclusively by this actor. Other
                     actors only see its account_id and public_key.
    """
    name: str
    account_id: EntityId
    private_key: PrivateKey = field(repr=False)

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Actor name cannot be empty")

    @property
    def public_key(self) -> PublicKey:
        return self.private_key.public_key

    @property
    def policy(self):
        """This actor's key as a single-key signing policy."""
        from .policy import SingleKeyPolicy
        return SingleKeyPolicy(self.private_key)

    def __repr__(self) -> str:
        return f"Actor({self.name}@{self.account_id})"


class SignerRegistry:
    """
    Holds key material for named actors.

    Populated once during setup; afterwards only read. Lookups by name
    return the Actor; lookups by account return the same object.

    Example:
        registry = SignerRegistry()
        registry.register("first", EntityId.parse("0.0.1001"), key)
        registry.signer("first").sign(body_bytes)
    """

    def __init__(self, actors: Optional[Iterable[Actor]] = None):
        self._by_name: Dict[str, Actor] = {}
        self._by_account: Dict[EntityId, Actor] = {}
        for actor in actors or ():
            self.add(actor)

    def add(self, actor: Actor) -> Actor:
        """
        Add an actor.

        Raises:
            ValueError: If the name or the account is already registered.
        """
        if actor.name in self._by_name:
            raise ValueError(f"Actor {actor.name} already registered")
        if actor.account_id in self._by_account:
            raise ValueError(f"Account {actor.account_id} already registered")
        self._by_name[actor.name] = actor
        self._by_account[actor.account_id] = actor
        return actor

    def register(
        self,
        name: str,
        account_id: "EntityId | str",
        private_key: "PrivateKey | str",
    ) -> Actor:
        """Build and add an actor from raw fixture values."""
        if isinstance(private_key, str):
            private_key = PrivateKey.from_string(private_key)
        return self.add(Actor(name, EntityId.parse(account_id), private_key))

    def actor(self, name: str) -> Actor:
        """
        Resolve an actor by name.

        Raises:
            KeyError: If no actor has that name.
        """
        if name not in self._by_name:
            raise KeyError(f"Unknown actor: {name}")
        return self._by_name[name]

    def signer(self, name: str) -> PrivateKey:
        """Resolve an actor name to its signing capability."""
        return self.actor(name).private_key

    def for_account(self, account_id: "EntityId | str") -> Optional[Actor]:
        return self._by_account.get(EntityId.parse(account_id))

    def names(self) -> List[str]:
        return list(self._by_name)

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[Actor]:
        return iter(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)
