"""Role entities, role links, and the fluent role builder."""

from __future__ import annotations

from capgraph.core.roles.builder import (
    CapabilityBuilder,
    RoleBuilder,
    RoleDefinition,
    new_role,
)
from capgraph.core.roles.manager import RoleManager, clean_role_code

__all__ = [
    "CapabilityBuilder",
    "RoleBuilder",
    "RoleDefinition",
    "RoleManager",
    "clean_role_code",
    "new_role",
]
