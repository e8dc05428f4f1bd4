"""
policy.py - Signing Policies and the Threshold Policy Builder

A SigningPolicy says which signatures a transaction needs:

    SigningPolicy = SingleKeyPolicy(key) | ThresholdPolicy(members, threshold)

Both variants carry a `kind` tag and expose the same capability
(members, threshold, is_satisfied), so a threshold policy can be used
anywhere a single key is accepted: as a topic submit key, a token supply
key, an account key.

Members are signing capabilities: a PrivateKey (can sign) or a bare
PublicKey (can only be verified against). Identity is the public key, so a
PrivateKey and its PublicKey are the same member.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import AbstractSet, Any, Dict, Sequence, Tuple, Union

from .core import InvalidPolicy
from .keys import PrivateKey, PublicKey


Key = Union[PrivateKey, PublicKey]


class PolicyKind(Enum):
    SINGLE = "single"
    THRESHOLD = "threshold"


def _public_of(key: Key) -> PublicKey:
    if isinstance(key, PrivateKey):
        return key.public_key
    if isinstance(key, PublicKey):
        return key
    raise InvalidPolicy(f"Policy members must be keys, got {type(key).__name__}")


class SigningPolicy:
    """Common surface of both policy variants."""

    kind: PolicyKind
    members: Tuple[Key, ...]
    threshold: int

    def public_keys(self) -> Tuple[PublicKey, ...]:
        return tuple(_public_of(member) for member in self.members)

    def signers(self) -> Tuple[PrivateKey, ...]:
        """Members this process can sign with."""
        return tuple(m for m in self.members if isinstance(m, PrivateKey))

    def count_signed(self, signed: AbstractSet[PublicKey]) -> int:
        """Number of distinct members whose signature is in `signed`."""
        return sum(1 for key in set(self.public_keys()) if key in signed)

    def is_satisfied(self, signed: AbstractSet[PublicKey]) -> bool:
        return self.count_signed(signed) >= self.threshold

    def includes(self, key: Key) -> bool:
        return _public_of(key) in self.public_keys()

    def identity(self) -> Tuple[Any, ...]:
        return (self.kind, self.threshold, self.public_keys())

    def __eq__(self, other) -> bool:
        return isinstance(other, SigningPolicy) and self.identity() == other.identity()

    def __hash__(self) -> int:
        return hash(self.identity())


@dataclass(frozen=True, eq=False)
class SingleKeyPolicy(SigningPolicy):
    """One key; satisfied by that key's signature."""
    key: Key

    def __post_init__(self):
        _public_of(self.key)

    @property
    def kind(self) -> PolicyKind:
        return PolicyKind.SINGLE

    @property
    def members(self) -> Tuple[Key, ...]:
        return (self.key,)

    @property
    def threshold(self) -> int:
        return 1

    def to_wire(self) -> Dict[str, Any]:
        return {"key": _public_of(self.key).to_string()}

    def __repr__(self) -> str:
        return f"SingleKeyPolicy({_public_of(self.key)!r})"


@dataclass(frozen=True, eq=False)
class ThresholdPolicy(SigningPolicy):
    """
    M-of-N policy over an ordered member list.

    Raises:
        InvalidPolicy: If members is empty, contains the same key twice,
                       or threshold is not in 1..len(members).
    """
    members: Tuple[Key, ...]
    threshold: int

    def __post_init__(self):
        members = tuple(self.members)
        object.__setattr__(self, "members", members)
        if not members:
            raise InvalidPolicy("Threshold policy needs at least one member")
        if isinstance(self.threshold, bool) or not isinstance(self.threshold, int):
            raise InvalidPolicy(f"Threshold must be an int, got {self.threshold!r}")
        publics = [_public_of(member) for member in members]
        if len(set(publics)) != len(publics):
            raise InvalidPolicy("Threshold policy members must be distinct")
        if not 1 <= self.threshold <= len(members):
            raise InvalidPolicy(
                f"Threshold {self.threshold} out of range for {len(members)} members"
            )

    @property
    def kind(self) -> PolicyKind:
        return PolicyKind.THRESHOLD

    def to_wire(self) -> Dict[str, Any]:
        return {
            "threshold": self.threshold,
            "keys": [key.to_string() for key in self.public_keys()],
        }

    def __repr__(self) -> str:
        return f"ThresholdPolicy({self.threshold} of {len(self.members)})"


def build_threshold_policy(members: Sequence[Key], threshold: int) -> ThresholdPolicy:
    """
    Compose signing capabilities into an M-of-N policy.

    Args:
        members: Ordered, non-empty list of distinct keys
        threshold: Signatures required, 1 <= threshold <= len(members)

    Returns:
        ThresholdPolicy usable wherever a single-key policy is accepted

    Raises:
        InvalidPolicy: If members is empty, contains the same key twice,
                       or threshold is out of range.

    Example:
        policy = build_threshold_policy([first.private_key, second.private_key], 2)
    """
    if isinstance(members, (PrivateKey, PublicKey)):
        raise InvalidPolicy("Threshold policy members must be a sequence of keys")
    return ThresholdPolicy(members=tuple(members), threshold=threshold)


def policy_from_wire(data: Dict[str, Any]) -> SigningPolicy:
    """
    Rebuild a verification-only policy from its wire form.

    Raises:
        ValueError: If data is not a policy encoding.
    """
    if not isinstance(data, dict):
        raise ValueError(f"Policy encoding must be an object, got {type(data).__name__}")
    if "key" in data:
        return SingleKeyPolicy(PublicKey.from_string(data["key"]))
    if "keys" in data and "threshold" in data:
        try:
            return build_threshold_policy(
                [PublicKey.from_string(k) for k in data["keys"]], data["threshold"]
            )
        except InvalidPolicy as e:
            raise ValueError(str(e)) from e
    raise ValueError(f"Unrecognized policy encoding: {sorted(data)}")
