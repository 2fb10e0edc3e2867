"""
CapabilityEngine: resolves the effective capabilities of an entity.

Resolution of a subject:

    1. Reject codes without a capability-bearing prefix (PER_, ROL_, DEF_).
    2. Read the subject's role links, in stored order.
    3. Resolve each role recursively and fold the results together with the
       most-permissive policy (first role seeds the result).
    4. Decode the subject's own ``CAP_`` attributes (no recursion).
    5. Overlay those on the role result with the override policy, so the
       subject's own declaration wins mode by mode even when narrower.

Resolution is a pure read: every call builds a fresh :class:`CapabilitySet`
and never writes to the store.  It is also not cheap (one store round-trip
per role in the graph), so callers on hot paths should keep the result for
the duration of a request.

Role recursion tracks the current path.  Meeting a role already on the path,
or going deeper than ``max_role_depth``, raises :class:`RoleCycleError`.
The same role reached through two different parents is fine.
"""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from capgraph.core.capability.model import (
    CapabilityNode,
    CapabilitySet,
    clean_capability_code,
    encode_nodes,
)
from capgraph.core.constants import (
    CAPABILITY_BEARING_PREFIXES,
    DEFAULT_MAX_ROLE_DEPTH,
    EMPTY_CAPABILITY_VALUE,
    Prefix,
)
from capgraph.core.exceptions import InvalidSubjectError, ItemNotFoundError, RoleCycleError
from capgraph.core.store.base import CapabilityDefinition, EntityStore

logger = structlog.get_logger()


class CapabilityEngine:
    """Resolve and mutate entity capabilities over an injected store."""

    def __init__(
        self,
        store: EntityStore,
        *,
        max_role_depth: int = DEFAULT_MAX_ROLE_DEPTH,
        accepted_prefixes: Iterable[str] = CAPABILITY_BEARING_PREFIXES,
    ) -> None:
        if max_role_depth < 1:
            raise ValueError("max_role_depth must be at least 1")
        self._store = store
        self._max_role_depth = max_role_depth
        self._accepted_prefixes = tuple(accepted_prefixes)

    @property
    def store(self) -> EntityStore:
        return self._store

    @property
    def max_role_depth(self) -> int:
        return self._max_role_depth

    @property
    def accepted_prefixes(self) -> tuple[str, ...]:
        return self._accepted_prefixes

    # ------------------------------------------------------------------
    # Subject validation
    # ------------------------------------------------------------------

    def accepts_prefix(self, entity_code: str) -> bool:
        """Whether *entity_code* carries a prefix allowed to hold capabilities."""
        return entity_code.startswith(self._accepted_prefixes)

    def check_subject(self, subject_code: str) -> None:
        """
        Raise unless *subject_code* names an existing capability-bearing entity.

        Raises:
            InvalidSubjectError: wrong prefix (checked first, no store access).
            ItemNotFoundError: the entity does not exist.
        """
        if not self.accepts_prefix(subject_code):
            raise InvalidSubjectError(subject_code, self._accepted_prefixes)
        if not self._store.has_entity(subject_code):
            raise ItemNotFoundError("entity store", subject_code)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, subject_code: str) -> CapabilitySet:
        """Return the effective capabilities of *subject_code*."""
        logger.debug("capabilities_resolving", subject_code=subject_code)
        result = self._resolve(subject_code, [])
        logger.debug("capabilities_resolved", subject_code=subject_code, count=len(result))
        return result

    def _resolve(self, subject_code: str, path: list[str]) -> CapabilitySet:
        if subject_code in path:
            raise RoleCycleError([*path, subject_code], "Role inheritance cycle")
        if len(path) > self._max_role_depth:
            raise RoleCycleError(
                [*path, subject_code],
                f"Role inheritance deeper than {self._max_role_depth}",
            )
        self.check_subject(subject_code)

        path = [*path, subject_code]
        roles = self._store.get_roles_of(subject_code)

        if roles:
            merged = self._resolve(roles[0], path)
            for role_code in roles[1:]:
                merged = merged.merge_all(self._resolve(role_code, path), most_permissive=True)
            # role results carry the role's code; the answer belongs to the subject
            merged = CapabilitySet(subject_code).merge_all(merged, most_permissive=True)
        else:
            merged = CapabilitySet(subject_code)

        own = self._own(subject_code)
        return merged.merge_all(own, most_permissive=False)

    def own_capabilities(self, subject_code: str) -> CapabilitySet:
        """The subject's directly-declared capabilities, without anything from roles."""
        self.check_subject(subject_code)
        return self._own(subject_code)

    def _own(self, subject_code: str) -> CapabilitySet:
        attributes = self._store.get_attributes_with_prefix(subject_code, Prefix.CAP)
        logger.debug("own_capabilities_read", subject_code=subject_code, count=len(attributes))
        return CapabilitySet.from_attributes(subject_code, attributes)

    # ------------------------------------------------------------------
    # Mutation (provisioning time)
    # ------------------------------------------------------------------

    def add_capability(
        self,
        subject_code: str,
        capability_code: str,
        *nodes: CapabilityNode,
        persist: bool = True,
    ) -> None:
        """
        Declare *capability_code* with *nodes* on the subject.

        Replaces any previous declaration of the same code on that subject.
        Pass ``persist=False`` when writing many capabilities in a row and
        call ``store.persist`` once at the end.

        Raises:
            InvalidSubjectError: the subject cannot bear capabilities.
            ItemNotFoundError: the subject or the capability code does not exist.
        """
        self.check_subject(subject_code)
        definition = self._require_definition(capability_code)
        self._store.write_attribute(subject_code, definition.code, encode_nodes(nodes))
        logger.debug(
            "capability_added",
            subject_code=subject_code,
            capability_code=definition.code,
            nodes=[str(n) for n in nodes],
            persist=persist,
        )
        if persist:
            self._store.persist(subject_code)

    def remove_capability(self, subject_code: str, capability_code: str) -> None:
        """
        Revoke *capability_code* on the subject by declaring it with no nodes.

        The slot stays: the code is still among the subject's own
        capabilities, with no nodes.  Override is applied mode by mode, so
        modes granted through roles are not touched.  Persists immediately.
        """
        self.check_subject(subject_code)
        definition = self._require_definition(capability_code)
        self._store.write_attribute(subject_code, definition.code, EMPTY_CAPABILITY_VALUE)
        self._store.persist(subject_code)
        logger.info(
            "capability_removed", subject_code=subject_code, capability_code=definition.code
        )

    def create_capability_code(
        self, raw_code: str, name: str, *, cleaned: bool = False
    ) -> CapabilityDefinition:
        """
        Get or create the definition for a capability code.

        *raw_code* is normalized with :func:`clean_capability_code` unless
        *cleaned* says it already is.  Calling this twice returns the
        existing definition; the name of an existing definition is not
        changed.
        """
        code = raw_code if cleaned else clean_capability_code(raw_code)
        existing = self._store.get_capability_definition(code)
        if existing is not None:
            return existing
        definition = CapabilityDefinition(code=code, name=name)
        self._store.save_capability_definition(definition)
        logger.info("capability_created", capability_code=code, name=name)
        return definition

    def get_capability_map(
        self, rows: Iterable[tuple[str, str]]
    ) -> dict[str, CapabilityDefinition]:
        """Get or create each ``(raw_code, name)`` row; return them keyed by clean code."""
        result: dict[str, CapabilityDefinition] = {}
        for raw_code, name in rows:
            definition = self.create_capability_code(raw_code, name)
            result[definition.code] = definition
        return result

    def _require_definition(self, capability_code: str) -> CapabilityDefinition:
        code = clean_capability_code(capability_code)
        definition = self._store.get_capability_definition(code)
        if definition is None:
            raise ItemNotFoundError("capability definitions", code)
        return definition
