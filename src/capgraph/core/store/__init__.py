"""Entity stores: the protocol the engine consumes and its implementations."""

from __future__ import annotations

from capgraph.core.store.base import CapabilityDefinition, EntityAttribute, EntityStore
from capgraph.core.store.database import SqliteEntityStore
from capgraph.core.store.memory import InMemoryEntityStore

__all__ = [
    "CapabilityDefinition",
    "EntityAttribute",
    "EntityStore",
    "InMemoryEntityStore",
    "SqliteEntityStore",
]
