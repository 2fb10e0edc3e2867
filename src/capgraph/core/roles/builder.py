"""
Fluent role construction for provisioning scripts.

Usage::

    caps = engine.get_capability_map([("ITEM", "Items"), ("USER", "Users")])
    admin = (
        RoleBuilder(engine, "ROL_ADMIN", "Admin")
        .set_capability_map(caps)
        .set_role_redirect("DASHBOARD")
        .inherit_role("ROL_USER")
        .capability("CAP_ITEM").view(PermissionMode.ALL).edit(PermissionMode.ALL).build()
        .add_view("CAP_USER")
        .add_children("ROL_USER")
        .build()
    )

Nothing touches the store until :meth:`RoleBuilder.build`.  ``build`` checks
every reference first (capability map present, every requested capability in
it, every parent role present) and only then writes, so a failed build leaves
the store as it was.  A builder builds once; afterwards it refuses changes.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

import structlog

from capgraph.core.capability.engine import CapabilityEngine
from capgraph.core.capability.model import (
    Capability,
    CapabilityMode,
    CapabilityNode,
    PermissionMode,
    clean_capability_code,
)
from capgraph.core.exceptions import RoleBuildError
from capgraph.core.roles.manager import RoleManager, clean_role_code
from capgraph.core.store.base import CapabilityDefinition

logger = structlog.get_logger()


@dataclass(frozen=True)
class RoleDefinition:
    """What a RoleBuilder wrote: the built role, as an immutable record."""

    code: str
    name: str
    redirect: str | None
    capabilities: Mapping[str, tuple[CapabilityNode, ...]]
    inherits: tuple[str, ...] = ()
    children: tuple[str, ...] = ()
    sidebar: tuple[str, ...] = ()


class CapabilityBuilder:
    """Collects the nodes of one capability, then hands them to its RoleBuilder."""

    def __init__(self, role_builder: RoleBuilder | None, capability_code: str) -> None:
        self._role_builder = role_builder
        self.capability_code = clean_capability_code(capability_code)
        self.nodes: list[CapabilityNode] = []

    def add(self, scope: PermissionMode) -> CapabilityBuilder:
        return self.add_node(CapabilityMode.ADD, scope)

    def edit(self, scope: PermissionMode) -> CapabilityBuilder:
        return self.add_node(CapabilityMode.EDIT, scope)

    def delete(self, scope: PermissionMode) -> CapabilityBuilder:
        return self.add_node(CapabilityMode.DELETE, scope)

    def view(self, scope: PermissionMode) -> CapabilityBuilder:
        return self.add_node(CapabilityMode.VIEW, scope)

    def add_node(
        self, mode: CapabilityMode | str, scope: PermissionMode | str
    ) -> CapabilityBuilder:
        """Add a node; *mode* and *scope* may be enums, names, or identifier characters."""
        if isinstance(mode, str):
            mode = CapabilityMode.from_name(mode)
        if isinstance(scope, str):
            scope = PermissionMode.from_name(scope)
        self.nodes.append(CapabilityNode(mode, scope))
        return self

    def build(self) -> RoleBuilder:
        """Hand the collected nodes to the RoleBuilder and return it."""
        if self._role_builder is None:
            raise RoleBuildError(
                f"CapabilityBuilder for {self.capability_code} is not attached to a RoleBuilder; "
                "use build_capability()"
            )
        return self._role_builder.add_capability(self.capability_code, *self.nodes)

    def build_capability(self) -> Capability:
        return Capability(self.capability_code, self.nodes)


class RoleBuilder:
    def __init__(
        self,
        engine: CapabilityEngine,
        role_code: str,
        role_name: str,
        roles: RoleManager | None = None,
    ) -> None:
        self._engine = engine
        self._roles = roles or RoleManager(engine.store)
        self._code = clean_role_code(role_code)
        self._name = role_name
        self._capability_map: dict[str, CapabilityDefinition] | None = None
        self._capabilities: dict[str, tuple[CapabilityNode, ...]] = {}
        self._inherits: list[str] = []
        self._children: list[str] = []
        self._sidebar: list[str] = []
        self._redirect: str | None = None
        self._built = False

    @property
    def code(self) -> str:
        return self._code

    # ------------------------------------------------------------------
    # Accumulation
    # ------------------------------------------------------------------

    def set_capability_map(
        self, capability_map: Mapping[str, CapabilityDefinition] | Iterable[tuple[str, str]]
    ) -> RoleBuilder:
        """
        Set the capabilities this role may reference.

        Takes a ready map (from :meth:`CapabilityEngine.get_capability_map`)
        or ``(raw_code, name)`` rows, which are got-or-created straight away.
        """
        self._check_open()
        if isinstance(capability_map, Mapping):
            self._capability_map = {
                clean_capability_code(code): definition
                for code, definition in capability_map.items()
            }
        else:
            self._capability_map = self._engine.get_capability_map(capability_map)
        return self

    def set_role_redirect(self, redirect_code: str) -> RoleBuilder:
        self._check_open()
        self._redirect = redirect_code
        return self

    def inherit_role(self, *role_codes: str) -> RoleBuilder:
        self._check_open()
        for code in role_codes:
            clean = clean_role_code(code)
            if clean not in self._inherits:
                self._inherits.append(clean)
        return self

    def capability(self, capability_code: str) -> CapabilityBuilder:
        self._check_open()
        return CapabilityBuilder(self, capability_code)

    def add_capability(self, capability_code: str, *nodes: CapabilityNode) -> RoleBuilder:
        self._check_open()
        self._capabilities[clean_capability_code(capability_code)] = tuple(nodes)
        return self

    def add_view(
        self, capability_code: str, scope: PermissionMode = PermissionMode.ALL
    ) -> RoleBuilder:
        return self.add_capability(capability_code, CapabilityNode(CapabilityMode.VIEW, scope))

    def set_sidebar(self, *event_codes: str) -> RoleBuilder:
        self._check_open()
        self._sidebar = list(event_codes)
        return self

    def add_children(self, *role_codes: str) -> RoleBuilder:
        self._check_open()
        self._children.extend(clean_role_code(code) for code in role_codes)
        return self

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def build(self) -> RoleDefinition:
        """
        Write the role to the store and return what was written.

        Raises:
            RoleBuildError: the engine does not accept role codes, the
                capability map is not set or lacks a capability, a parent role
                is missing, the role inherits itself, or the builder already
                built.
        """
        self._check_open()
        definitions = self._validate()
        store = self._engine.store

        role_code = self._roles.create_role(self._code, self._name, persist=False)
        self._roles.set_role_redirect(role_code, self._redirect, persist=False)
        for capability_code, nodes in self._capabilities.items():
            self._engine.add_capability(
                role_code, definitions[capability_code].code, *nodes, persist=False
            )
        for parent_code in self._inherits:
            self._roles.inherit_role(role_code, parent_code, persist=False)
        if self._sidebar:
            self._roles.set_sidebar(role_code, self._sidebar, persist=False)
        self._roles.set_children(role_code, self._children, persist=False)
        store.persist(role_code)

        self._built = True
        logger.info(
            "role_built",
            role_code=role_code,
            capabilities=len(self._capabilities),
            inherits=list(self._inherits),
            children=list(self._children),
        )
        return RoleDefinition(
            code=role_code,
            name=self._name,
            redirect=self._redirect,
            capabilities=MappingProxyType(dict(self._capabilities)),
            inherits=tuple(self._inherits),
            children=tuple(self._children),
            sidebar=tuple(self._sidebar),
        )

    def _validate(self) -> dict[str, CapabilityDefinition]:
        if not self._engine.accepts_prefix(self._code):
            raise RoleBuildError(
                f"Role {self._code} cannot hold capabilities; accepted prefixes are "
                f"{', '.join(self._engine.accepted_prefixes)}"
            )
        if self._capability_map is None:
            raise RoleBuildError(
                f"Capability map not set for {self._code}. "
                "Call set_capability_map() before build()."
            )
        missing = [code for code in self._capabilities if code not in self._capability_map]
        if missing:
            logger.error("role_build_missing_capability", role_code=self._code, missing=missing)
            raise RoleBuildError(
                f"Could not find capabilities in capability map for {self._code}: "
                f"{', '.join(missing)}"
            )
        store = self._engine.store
        for code in self._capabilities:
            if store.get_capability_definition(self._capability_map[code].code) is None:
                raise RoleBuildError(
                    f"Capability {code} in the map of {self._code} has no definition in the store"
                )
        for parent_code in self._inherits:
            if parent_code == self._code:
                raise RoleBuildError(f"Role {self._code} cannot inherit from itself")
            if not store.has_entity(parent_code):
                raise RoleBuildError(f"Parent role {parent_code} of {self._code} does not exist")
        return {code: self._capability_map[code] for code in self._capabilities}

    def _check_open(self) -> None:
        if self._built:
            raise RoleBuildError(f"RoleBuilder for {self._code} has already been built")


def new_role(
    engine: CapabilityEngine, role_code: str, role_name: str, roles: RoleManager | None = None
) -> RoleBuilder:
    return RoleBuilder(engine, role_code, role_name, roles)
