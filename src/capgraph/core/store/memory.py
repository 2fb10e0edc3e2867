"""
Deterministic in-memory entity store used for tests and embedding.

Entities are plain dicts of attribute code → value.  ``persist`` does not
change what reads return; it only counts calls so callers (and tests) can
see when persistence was deferred.
"""

from __future__ import annotations

from collections import Counter

from capgraph.core.constants import ATTR_LNK_ROLE, ATTR_NAME
from capgraph.core.exceptions import ItemNotFoundError
from capgraph.core.store.base import CapabilityDefinition, EntityAttribute, roles_from_link


class InMemoryEntityStore:
    """Dict-backed :class:`~capgraph.core.store.base.EntityStore`."""

    def __init__(self) -> None:
        self._entities: dict[str, dict[str, str]] = {}
        self._definitions: dict[str, CapabilityDefinition] = {}
        self.persist_counts: Counter[str] = Counter()

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def has_entity(self, entity_code: str) -> bool:
        return entity_code in self._entities

    def create_entity(self, entity_code: str, name: str) -> None:
        attrs = self._entities.setdefault(entity_code, {})
        attrs.setdefault(ATTR_NAME, name)

    def entity_codes(self) -> list[str]:
        return sorted(self._entities)

    def _attrs(self, entity_code: str) -> dict[str, str]:
        try:
            return self._entities[entity_code]
        except KeyError:
            raise ItemNotFoundError("entity store", entity_code) from None

    # ------------------------------------------------------------------
    # Attributes
    # ------------------------------------------------------------------

    def get_attribute(self, entity_code: str, attribute_code: str) -> EntityAttribute | None:
        value = self._attrs(entity_code).get(attribute_code)
        if value is None:
            return None
        return EntityAttribute(entity_code, attribute_code, value)

    def get_attributes_with_prefix(self, entity_code: str, prefix: str) -> list[EntityAttribute]:
        attrs = self._attrs(entity_code)
        return [
            EntityAttribute(entity_code, code, attrs[code])
            for code in sorted(attrs)
            if code.startswith(prefix)
        ]

    def get_roles_of(self, entity_code: str) -> list[str]:
        return roles_from_link(self.get_attribute(entity_code, ATTR_LNK_ROLE))

    def write_attribute(self, entity_code: str, attribute_code: str, value: str) -> None:
        self._attrs(entity_code)[attribute_code] = value

    def persist(self, entity_code: str) -> None:
        self._attrs(entity_code)
        self.persist_counts[entity_code] += 1

    # ------------------------------------------------------------------
    # Capability definitions
    # ------------------------------------------------------------------

    def get_capability_definition(self, code: str) -> CapabilityDefinition | None:
        return self._definitions.get(code)

    def save_capability_definition(self, definition: CapabilityDefinition) -> None:
        self._definitions[definition.code] = definition
