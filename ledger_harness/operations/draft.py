"""
draft.py - Mutable Transaction Drafts

A TransactionDraft is the in-progress description of exactly one ledger
operation: a kind plus typed parameters. Drafts never touch the network.

Each operation module registers a validator for its kind with
@operation(kind, fields). The validator normalizes parameters and raises
MalformedDraft on anything the ledger would refuse for shape reasons, so
every draft in existence is well-formed:

    factory(...)        -> validator runs once
    draft.set(k, v)     -> validator runs again on the updated parameters
    freeze(draft, ...)  -> snapshot of the validated parameters
"""

from __future__ import annotations
from dataclasses import dataclass
import itertools
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional

from ..core import (
    EntityId, MalformedDraft, TransactionKind, MAX_MEMO_BYTES,
)
from ..policy import SigningPolicy


Params = Dict[str, Any]
Validator = Callable[[Params], Params]


@dataclass(frozen=True, slots=True)
class OperationSpec:
    kind: TransactionKind
    fields: FrozenSet[str]
    validate: Validator


_OPERATIONS: Dict[TransactionKind, OperationSpec] = {}
_draft_ids = itertools.count(1)


def operation(kind: TransactionKind, fields: Iterable[str]):
    """Register the validator for one operation kind."""
    def register(validate: Validator) -> Validator:
        if kind in _OPERATIONS:
            raise ValueError(f"Operation {kind.value} already registered")
        _OPERATIONS[kind] = OperationSpec(kind, frozenset(fields), validate)
        return validate
    return register


def operation_spec(kind: TransactionKind) -> OperationSpec:
    if kind not in _OPERATIONS:
        raise MalformedDraft(f"No builder registered for {kind.value}")
    return _OPERATIONS[kind]


class TransactionDraft:
    """
    Mutable description of one ledger operation.

    Attributes:
        kind: The single active operation kind.
        memo: Transaction memo (not the topic or token memo).
        required_policies: Policies this operation is known to need. Signing
                           under a policy adds it to the frozen transaction's
                           requirements as well.
        draft_id: Process-unique identity, used to detect double freezing.

    Parameters are read with get()/params and changed with set(); setting a
    parameter that does not belong to the kind is a MalformedDraft, so kinds
    can never be mixed.
    """

    def __init__(
        self,
        kind: TransactionKind,
        params: Params,
        memo: str = "",
        required_policies: Iterable[SigningPolicy] = (),
    ):
        spec = operation_spec(kind)
        unknown = set(params) - spec.fields
        if unknown:
            raise MalformedDraft(
                f"{kind.value} does not accept parameters: {sorted(unknown)}"
            )
        self.kind = kind
        self._params = spec.validate(dict(params))
        self.memo = validate_memo(memo, "transaction memo")
        self.required_policies: List[SigningPolicy] = []
        for policy in required_policies:
            self.require(policy)
        self.draft_id = next(_draft_ids)
        self._frozen = False

    @property
    def params(self) -> Params:
        """Copy of the validated parameters."""
        return dict(self._params)

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def get(self, name: str, default: Any = None) -> Any:
        return self._params.get(name, default)

    def set(self, name: str, value: Any) -> TransactionDraft:
        """
        Change one parameter and revalidate.

        Changing a draft after it was frozen is allowed but has no effect on
        the frozen transaction.

        Raises:
            MalformedDraft: If name is not a parameter of this kind, or the
                            updated parameters fail validation.
        """
        spec = operation_spec(self.kind)
        if name not in spec.fields:
            raise MalformedDraft(f"{self.kind.value} has no parameter {name!r}")
        updated = dict(self._params)
        updated[name] = value
        self._params = spec.validate(updated)
        return self

    def require(self, policy: Optional[SigningPolicy]) -> TransactionDraft:
        """Declare a policy whose signatures this operation needs."""
        if policy is None:
            return self
        if not isinstance(policy, SigningPolicy):
            raise MalformedDraft(f"Expected a SigningPolicy, got {type(policy).__name__}")
        if policy not in self.required_policies:
            self.required_policies.append(policy)
        return self

    def _mark_frozen(self) -> None:
        self._frozen = True

    def __repr__(self) -> str:
        state = "frozen" if self._frozen else "open"
        return f"TransactionDraft(#{self.draft_id} {self.kind.value}, {state})"


# ============================================================================
# SHARED FIELD VALIDATION
# ============================================================================

def entity(value: Any, name: str) -> EntityId:
    """Coerce to EntityId or raise MalformedDraft."""
    if value is None:
        raise MalformedDraft(f"{name} is required")
    try:
        return EntityId.parse(value)
    except ValueError as e:
        raise MalformedDraft(f"{name}: {e}") from e


def optional_entity(value: Any, name: str) -> Optional[EntityId]:
    return None if value is None else entity(value, name)


def amount(value: Any, name: str, minimum: int = 0) -> int:
    """Integer amount >= minimum. Booleans and floats are refused."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedDraft(f"{name} must be an int, got {value!r}")
    if value < minimum:
        raise MalformedDraft(f"{name} must be >= {minimum}, got {value}")
    return value


def optional_policy(value: Any, name: str) -> Optional[SigningPolicy]:
    if value is None:
        return None
    if not isinstance(value, SigningPolicy):
        raise MalformedDraft(
            f"{name} must be a SigningPolicy, got {type(value).__name__}"
        )
    return value


def bounded_text(value: Any, name: str, max_bytes: int, required: bool = False) -> str:
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise MalformedDraft(f"{name} must be a string, got {type(value).__name__}")
    if required and not value.strip():
        raise MalformedDraft(f"{name} cannot be empty")
    if len(value.encode("utf-8")) > max_bytes:
        raise MalformedDraft(f"{name} exceeds {max_bytes} bytes")
    return value


def validate_memo(value: Any, name: str = "memo") -> str:
    return bounded_text(value, name, MAX_MEMO_BYTES)
