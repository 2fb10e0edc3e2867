"""
Entity store protocol.

The capability engine never talks to a database directly.  It is handed an
object satisfying :class:`EntityStore` and reads entity attributes, role
links and capability definitions through it.

Read-after-write: a value passed to ``write_attribute`` must be visible to
the next read through the same store object, even before ``persist``.
``persist`` only decides when the write becomes durable.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Protocol

from capgraph.core.constants import ATTR_LNK_ROLE


@dataclass(frozen=True)
class EntityAttribute:
    """One attribute value stored on an entity."""

    entity_code: str
    attribute_code: str
    value: str


@dataclass(frozen=True)
class CapabilityDefinition:
    """The backing record for a capability code (its attribute definition)."""

    code: str
    name: str


class EntityStore(Protocol):
    def has_entity(self, entity_code: str) -> bool: ...

    def create_entity(self, entity_code: str, name: str) -> None: ...

    def get_attribute(self, entity_code: str, attribute_code: str) -> EntityAttribute | None: ...

    def get_attributes_with_prefix(
        self, entity_code: str, prefix: str
    ) -> list[EntityAttribute]: ...

    def get_roles_of(self, entity_code: str) -> list[str]: ...

    def write_attribute(self, entity_code: str, attribute_code: str, value: str) -> None: ...

    def persist(self, entity_code: str) -> None: ...

    def get_capability_definition(self, code: str) -> CapabilityDefinition | None: ...

    def save_capability_definition(self, definition: CapabilityDefinition) -> None: ...


def parse_code_list(value: str | None) -> list[str]:
    """
    Parse a stored link value into an ordered, de-duplicated list of codes.

    Accepts a JSON array (``["ROL_A","ROL_B"]``) or a comma-separated string
    (``ROL_A,ROL_B``).  Empty or missing values give an empty list.
    """
    if not value or not value.strip():
        return []
    text = value.strip()
    items: list[str]
    if text.startswith("["):
        try:
            loaded = json.loads(text)
        except json.JSONDecodeError:
            loaded = text.strip("[]").replace('"', "").split(",")
        items = [str(item) for item in loaded] if isinstance(loaded, list) else []
    else:
        items = text.split(",")
    seen: list[str] = []
    for item in items:
        code = item.strip()
        if code and code not in seen:
            seen.append(code)
    return seen


def format_code_list(codes: list[str]) -> str:
    return json.dumps(codes, separators=(",", ":"))


def roles_from_link(attribute: EntityAttribute | None) -> list[str]:
    """Role codes held in an entity's ``LNK_ROLE`` attribute."""
    if attribute is None or attribute.attribute_code != ATTR_LNK_ROLE:
        return []
    return parse_code_list(attribute.value)
