"""
Capability data model: modes, scopes, nodes, capabilities and capability sets.

Vocabulary:
  - CapabilityMode   the action being governed (ADD, EDIT, DELETE, VIEW)
  - PermissionMode   how far that action reaches (NONE < SELF < GROUP < ALL)
  - CapabilityNode   one (mode, scope) pair
  - Capability       a code plus at most one node per mode
  - CapabilitySet    every capability held by one subject, keyed by code

Merge policies:
  - most permissive  the broader scope wins; ties keep the left operand
                     (used when combining two roles)
  - override         the right operand always wins
                     (used when an entity's own declaration sits on top of
                     what it inherited)

Wire form of a capability value is a JSON array of ``"<mode>:<scope>"``
identifier pairs, e.g. ``["V:A","E:S"]``.  ``[]`` is a declared capability
with no nodes (a revoked capability), which is different from the attribute
being absent.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any

import structlog

from capgraph.core.constants import Prefix
from capgraph.core.exceptions import CapabilityDecodeError

logger = structlog.get_logger()

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class CapabilityMode(str, Enum):
    """The action a capability node governs.  Values are the wire identifiers."""

    ADD = "A"
    EDIT = "E"
    DELETE = "D"
    VIEW = "V"

    @property
    def identifier(self) -> str:
        return self.value

    @classmethod
    def from_name(cls, name: str) -> CapabilityMode:
        """Look up a mode by name (``"view"``) or identifier (``"V"``), case-insensitive."""
        return _lookup(cls, name)


class PermissionMode(str, Enum):
    """Scope of a permission, ordered NONE < SELF < GROUP < ALL."""

    NONE = "N"
    """Explicitly disallowed."""

    SELF = "S"
    """Only entities the actor owns or is."""

    GROUP = "G"
    """Entities within the actor's group (company, team)."""

    ALL = "A"
    """Every entity."""

    @property
    def identifier(self) -> str:
        return self.value

    @property
    def rank(self) -> int:
        return _PERMISSIVENESS[self]

    @classmethod
    def from_name(cls, name: str) -> PermissionMode:
        """Look up a scope by name (``"all"``) or identifier (``"A"``), case-insensitive."""
        return _lookup(cls, name)

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, PermissionMode):
            return NotImplemented
        return _PERMISSIVENESS[self] >= _PERMISSIVENESS[other]

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, PermissionMode):
            return NotImplemented
        return _PERMISSIVENESS[self] > _PERMISSIVENESS[other]

    def __le__(self, other: object) -> bool:
        if not isinstance(other, PermissionMode):
            return NotImplemented
        return _PERMISSIVENESS[self] <= _PERMISSIVENESS[other]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, PermissionMode):
            return NotImplemented
        return _PERMISSIVENESS[self] < _PERMISSIVENESS[other]


_PERMISSIVENESS: dict[PermissionMode, int] = {
    PermissionMode.NONE: 0,
    PermissionMode.SELF: 1,
    PermissionMode.GROUP: 2,
    PermissionMode.ALL: 3,
}


def _lookup(enum_cls: Any, name: str) -> Any:
    key = name.strip().upper()
    if key in enum_cls.__members__:
        return enum_cls[key]
    try:
        return enum_cls(key)
    except ValueError:
        raise ValueError(f"Unknown {enum_cls.__name__}: {name!r}") from None


# ---------------------------------------------------------------------------
# Capability codes
# ---------------------------------------------------------------------------

# Permission codes imported from older data carry this prefix instead of CAP_
_LEGACY_PERMISSION_PREFIX = "PRM_"


def clean_capability_code(raw_code: str) -> str:
    """
    Normalize a raw code into the capability namespace.

    Upper-cases, turns spaces and hyphens into underscores, strips a legacy
    ``PRM_`` prefix and makes sure the result starts with ``CAP_``.
    Idempotent: cleaning a clean code returns it unchanged.

    Raises:
        ValueError: if nothing is left after cleaning.
    """
    code = raw_code.strip().upper().replace(" ", "_").replace("-", "_")
    if code.startswith(_LEGACY_PERMISSION_PREFIX):
        code = code[len(_LEGACY_PERMISSION_PREFIX) :]
    if not code.startswith(Prefix.CAP):
        code = Prefix.CAP + code
    if code == Prefix.CAP:
        raise ValueError(f"Capability code {raw_code!r} is empty after cleaning")
    return code


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CapabilityNode:
    """One (mode, scope) pair.  Immutable; merges produce new nodes."""

    mode: CapabilityMode
    scope: PermissionMode

    def __str__(self) -> str:
        return f"{self.mode.identifier}:{self.scope.identifier}"

    @classmethod
    def parse(cls, text: str) -> CapabilityNode:
        """
        Parse ``"V:A"`` (identifiers) or ``"VIEW:ALL"`` (names).

        Raises:
            CapabilityDecodeError: on anything else.
        """
        mode_part, sep, scope_part = text.strip().partition(":")
        if not sep:
            raise CapabilityDecodeError(f"Capability node {text!r} is not of the form MODE:SCOPE")
        try:
            return cls(CapabilityMode.from_name(mode_part), PermissionMode.from_name(scope_part))
        except ValueError as exc:
            raise CapabilityDecodeError(f"Capability node {text!r}: {exc}") from exc

    def covers(self, required: CapabilityNode) -> bool:
        """True if this node is for the same mode and at least as permissive."""
        return self.mode == required.mode and self.scope >= required.scope


def merge_node(a: CapabilityNode, b: CapabilityNode, most_permissive: bool) -> CapabilityNode:
    """
    Merge two nodes for the same mode.

    ``most_permissive=True`` keeps whichever is strictly broader (ties keep
    *a*); ``most_permissive=False`` returns *b* unconditionally.
    """
    if a.mode != b.mode:
        raise ValueError(f"Cannot merge nodes of different modes: {a} and {b}")
    if not most_permissive:
        return b
    return b if b.scope > a.scope else a


# ---------------------------------------------------------------------------
# Capability
# ---------------------------------------------------------------------------


class Capability:
    """
    A capability code plus at most one node per mode.

    Equality and hashing use the code only: two Capabilities with the same
    code are "the same capability" even when their nodes differ.  Use
    :meth:`same_nodes` to compare contents.
    """

    __slots__ = ("_code", "_nodes")

    def __init__(self, code: str, nodes: Iterable[CapabilityNode] = ()) -> None:
        self._code = clean_capability_code(code)
        by_mode: dict[CapabilityMode, CapabilityNode] = {}
        for node in nodes:
            # a later node for the same mode replaces the earlier one
            by_mode[node.mode] = node
        self._nodes = MappingProxyType(by_mode)

    @property
    def code(self) -> str:
        return self._code

    @property
    def nodes(self) -> Mapping[CapabilityMode, CapabilityNode]:
        return self._nodes

    def get_node(self, mode: CapabilityMode) -> CapabilityNode | None:
        return self._nodes.get(mode)

    def merge(self, other: Capability, most_permissive: bool) -> Capability:
        """Return a new Capability merging *other* into this one, mode by mode."""
        if other.code != self.code:
            raise ValueError(f"Cannot merge capability {other.code} into {self.code}")
        merged: dict[CapabilityMode, CapabilityNode] = dict(self._nodes)
        for mode, node in other.nodes.items():
            existing = merged.get(mode)
            merged[mode] = node if existing is None else merge_node(existing, node, most_permissive)
        return Capability(self.code, _ordered(merged.values()))

    def meets(self, required: CapabilityNode) -> bool:
        node = self._nodes.get(required.mode)
        return node is not None and node.covers(required)

    def same_nodes(self, other: Capability) -> bool:
        return self.code == other.code and dict(self._nodes) == dict(other.nodes)

    # -- wire form ---------------------------------------------------------

    def encode(self) -> str:
        return encode_nodes(self._nodes.values())

    @classmethod
    def decode(cls, code: str, value: str | None) -> Capability:
        """
        Build a Capability from its stored value.

        Raises:
            CapabilityDecodeError: if *value* is not a JSON array of node strings.
        """
        return cls(code, decode_nodes(value))

    def to_dict(self) -> dict[str, str]:
        return {node.mode.name: node.scope.name for node in _ordered(self._nodes.values())}

    # -- identity ----------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Capability):
            return NotImplemented
        return self._code == other._code

    def __hash__(self) -> int:
        return hash(self._code)

    def __repr__(self) -> str:
        return f"Capability({self._code}, {self.encode()})"


def _ordered(nodes: Iterable[CapabilityNode]) -> list[CapabilityNode]:
    order = list(CapabilityMode)
    return sorted(nodes, key=lambda n: order.index(n.mode))


def encode_nodes(nodes: Iterable[CapabilityNode]) -> str:
    """Encode nodes as a compact JSON array: ``["V:A","E:S"]``."""
    return json.dumps([str(n) for n in _ordered(nodes)], separators=(",", ":"))


def decode_nodes(value: str | None) -> list[CapabilityNode]:
    """
    Decode the wire form produced by :func:`encode_nodes`.

    Raises:
        CapabilityDecodeError: on invalid JSON, a non-list payload, or a bad node.
    """
    if value is None:
        raise CapabilityDecodeError("Capability value is missing")
    try:
        raw = json.loads(value)
    except json.JSONDecodeError as exc:
        raise CapabilityDecodeError(f"Capability value {value!r} is not valid JSON: {exc}") from exc
    if not isinstance(raw, list):
        raise CapabilityDecodeError(
            f"Capability value must be a JSON array (got {type(raw).__name__})"
        )
    nodes: list[CapabilityNode] = []
    for item in raw:
        if not isinstance(item, str):
            raise CapabilityDecodeError(f"Capability node {item!r} is not a string")
        nodes.append(CapabilityNode.parse(item))
    return nodes


# ---------------------------------------------------------------------------
# CapabilitySet
# ---------------------------------------------------------------------------


class CapabilitySet:
    """
    All capabilities held by one subject, keyed by capability code.

    Treat instances as values: :meth:`merge_all` returns a new set and never
    touches either operand.
    """

    def __init__(self, subject_code: str, capabilities: Iterable[Capability] = ()) -> None:
        self._subject_code = subject_code
        self._by_code: dict[str, Capability] = {}
        for cap in capabilities:
            self._by_code[cap.code] = cap

    @classmethod
    def from_attributes(cls, subject_code: str, attributes: Iterable[Any]) -> CapabilitySet:
        """
        Decode every ``CAP_`` attribute into a Capability.

        *attributes* are objects with ``attribute_code`` and ``value``.  An
        attribute that fails to decode is logged and skipped; the rest still
        make it into the set.  Two attributes whose codes clean to the same
        capability code are logged too, and the later one wins.
        """
        caps: dict[str, Capability] = {}
        sources: dict[str, str] = {}
        for attr in attributes:
            if not attr.attribute_code.startswith(Prefix.CAP):
                continue
            try:
                cap = Capability.decode(attr.attribute_code, attr.value)
            except (CapabilityDecodeError, ValueError) as exc:
                logger.warning(
                    "capability_decode_failed",
                    subject_code=subject_code,
                    attribute_code=attr.attribute_code,
                    error=str(exc),
                )
                continue
            if cap.code in caps:
                logger.warning(
                    "capability_code_collision",
                    subject_code=subject_code,
                    capability_code=cap.code,
                    dropped=sources[cap.code],
                    kept=attr.attribute_code,
                )
            caps[cap.code] = cap
            sources[cap.code] = attr.attribute_code
        return cls(subject_code, caps.values())

    @property
    def subject_code(self) -> str:
        return self._subject_code

    def find(self, code: str) -> Capability | None:
        return self._by_code.get(code)

    def codes(self) -> list[str]:
        return sorted(self._by_code)

    def merge_all(self, other: CapabilitySet, most_permissive: bool) -> CapabilitySet:
        """
        Return a new set with every capability of *other* merged in.

        Codes present on both sides are merged with :meth:`Capability.merge`;
        codes only in *other* are taken as they are.  The result keeps this
        set's subject.
        """
        merged = dict(self._by_code)
        for code, cap in other._by_code.items():
            existing = merged.get(code)
            merged[code] = cap if existing is None else existing.merge(cap, most_permissive)
        result = CapabilitySet(self._subject_code)
        result._by_code = merged
        return result

    def to_dict(self) -> dict[str, dict[str, str]]:
        return {code: self._by_code[code].to_dict() for code in self.codes()}

    def __contains__(self, item: object) -> bool:
        if isinstance(item, Capability):
            return item.code in self._by_code
        return item in self._by_code

    def __iter__(self) -> Iterator[Capability]:
        return iter([self._by_code[code] for code in self.codes()])

    def __len__(self) -> int:
        return len(self._by_code)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CapabilitySet):
            return NotImplemented
        if self._subject_code != other._subject_code:
            return False
        if self._by_code.keys() != other._by_code.keys():
            return False
        return all(cap.same_nodes(other._by_code[code]) for code, cap in self._by_code.items())

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"CapabilitySet({self._subject_code}, {len(self)} capabilities)"
