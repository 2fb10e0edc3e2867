"""
Capability model, requirements and the resolution engine.

Resolve and check::

    >>> from capgraph.core.capability import CapabilityEngine, CapabilityRequirement
    >>> from capgraph.core.store import InMemoryEntityStore
    >>> engine = CapabilityEngine(InMemoryEntityStore())
    >>> caps = engine.resolve("PER_ALICE")                    # doctest: +SKIP
    >>> CapabilityRequirement.parse("CAP_ITEM:V:A").is_satisfied_by(caps)  # doctest: +SKIP
    True
"""

from __future__ import annotations

from capgraph.core.capability.engine import CapabilityEngine
from capgraph.core.capability.model import (
    Capability,
    CapabilityMode,
    CapabilityNode,
    CapabilitySet,
    PermissionMode,
    clean_capability_code,
    merge_node,
)
from capgraph.core.capability.requirement import (
    CapabilityRequirement,
    Guarded,
    RequirementConfig,
    filter_permitted,
)

__all__ = [
    "Capability",
    "CapabilityEngine",
    "CapabilityMode",
    "CapabilityNode",
    "CapabilityRequirement",
    "CapabilitySet",
    "Guarded",
    "PermissionMode",
    "RequirementConfig",
    "clean_capability_code",
    "filter_permitted",
    "merge_node",
]
