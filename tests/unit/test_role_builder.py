"""Unit tests for capgraph.core.roles.builder: RoleBuilder and CapabilityBuilder."""

from __future__ import annotations

import pytest

from capgraph.core.capability.engine import CapabilityEngine
from capgraph.core.capability.model import CapabilityMode, CapabilityNode, PermissionMode
from capgraph.core.exceptions import RoleBuildError
from capgraph.core.roles.builder import CapabilityBuilder, RoleBuilder, new_role
from capgraph.core.roles.manager import RoleManager
from capgraph.core.store import InMemoryEntityStore

ROWS = [("ITEM", "Items"), ("USER", "Users")]


@pytest.fixture
def cap_map(engine: CapabilityEngine) -> dict:
    return engine.get_capability_map(ROWS)


# ---------------------------------------------------------------------------
# CapabilityBuilder
# ---------------------------------------------------------------------------


class TestCapabilityBuilder:
    def test_fluent_nodes(self) -> None:
        cap = (
            CapabilityBuilder(None, "item")
            .view(PermissionMode.ALL)
            .edit(PermissionMode.SELF)
            .add(PermissionMode.GROUP)
            .delete(PermissionMode.NONE)
            .build_capability()
        )
        assert cap.code == "CAP_ITEM"
        assert cap.to_dict() == {"ADD": "GROUP", "EDIT": "SELF", "DELETE": "NONE", "VIEW": "ALL"}

    def test_add_node_by_name_or_identifier(self) -> None:
        builder = CapabilityBuilder(None, "CAP_ITEM").add_node("view", "all").add_node("E", "G")
        assert builder.nodes == [
            CapabilityNode(CapabilityMode.VIEW, PermissionMode.ALL),
            CapabilityNode(CapabilityMode.EDIT, PermissionMode.GROUP),
        ]

    def test_detached_build_raises(self) -> None:
        with pytest.raises(RoleBuildError):
            CapabilityBuilder(None, "CAP_ITEM").view(PermissionMode.ALL).build()


# ---------------------------------------------------------------------------
# RoleBuilder
# ---------------------------------------------------------------------------


class TestRoleBuilder:
    def test_build_writes_role(
        self, engine: CapabilityEngine, store: InMemoryEntityStore, cap_map: dict
    ) -> None:
        RoleBuilder(engine, "user", "User").set_capability_map(cap_map).add_view("ITEM").build()
        definition = (
            RoleBuilder(engine, "admin", "Admin")
            .set_capability_map(cap_map)
            .set_role_redirect("DASHBOARD")
            .inherit_role("ROL_USER")
            .capability("CAP_ITEM").edit(PermissionMode.ALL).build()
            .add_view("USER", PermissionMode.GROUP)
            .set_sidebar("EVT_HOME")
            .add_children("user")
            .build()
        )

        assert definition.code == "ROL_ADMIN"
        assert definition.redirect == "DASHBOARD"
        assert definition.inherits == ("ROL_USER",)
        assert definition.children == ("ROL_USER",)
        assert definition.sidebar == ("EVT_HOME",)
        assert set(definition.capabilities) == {"CAP_ITEM", "CAP_USER"}

        roles = RoleManager(store)
        assert roles.get_roles("ROL_ADMIN") == ["ROL_USER"]
        assert roles.get_role_redirect("ROL_ADMIN") == "DASHBOARD"
        assert roles.get_children("ROL_ADMIN") == ["ROL_USER"]
        assert roles.get_sidebar("ROL_ADMIN") == ["EVT_HOME"]

        caps = engine.resolve("ROL_ADMIN")
        assert caps.find("CAP_ITEM").to_dict() == {"EDIT": "ALL", "VIEW": "ALL"}
        assert caps.find("CAP_USER").to_dict() == {"VIEW": "GROUP"}

    def test_persists_once(
        self, engine: CapabilityEngine, store: InMemoryEntityStore, cap_map: dict
    ) -> None:
        (
            new_role(engine, "admin", "Admin")
            .set_capability_map(cap_map)
            .add_view("ITEM")
            .add_view("USER")
            .build()
        )
        assert store.persist_counts["ROL_ADMIN"] == 1

    def test_capability_rows_are_created(
        self, engine: CapabilityEngine, store: InMemoryEntityStore
    ) -> None:
        RoleBuilder(engine, "admin", "Admin").set_capability_map([("report", "Reports")]).add_view(
            "REPORT"
        ).build()
        assert store.get_capability_definition("CAP_REPORT") is not None
        assert "CAP_REPORT" in engine.resolve("ROL_ADMIN")

    def test_build_is_once(self, engine: CapabilityEngine, cap_map: dict) -> None:
        builder = RoleBuilder(engine, "admin", "Admin").set_capability_map(cap_map)
        builder.build()
        with pytest.raises(RoleBuildError):
            builder.add_view("ITEM")
        with pytest.raises(RoleBuildError):
            builder.build()


class TestRoleBuilderValidation:
    def test_map_required(self, engine: CapabilityEngine, store: InMemoryEntityStore) -> None:
        with pytest.raises(RoleBuildError, match="Capability map not set"):
            RoleBuilder(engine, "admin", "Admin").add_view("ITEM").build()
        assert not store.has_entity("ROL_ADMIN")

    def test_capability_missing_from_map(
        self, engine: CapabilityEngine, store: InMemoryEntityStore, cap_map: dict
    ) -> None:
        builder = (
            RoleBuilder(engine, "admin", "Admin")
            .set_capability_map(cap_map)
            .add_view("ITEM")
            .add_view("SECRET")
        )
        with pytest.raises(RoleBuildError, match="CAP_SECRET"):
            builder.build()
        assert not store.has_entity("ROL_ADMIN")

    def test_missing_parent_leaves_store_untouched(
        self, engine: CapabilityEngine, store: InMemoryEntityStore, cap_map: dict
    ) -> None:
        builder = (
            RoleBuilder(engine, "admin", "Admin")
            .set_capability_map(cap_map)
            .add_view("ITEM")
            .inherit_role("ROL_GHOST")
        )
        with pytest.raises(RoleBuildError, match="ROL_GHOST"):
            builder.build()
        assert not store.has_entity("ROL_ADMIN")

    def test_self_inheritance(self, engine: CapabilityEngine, cap_map: dict) -> None:
        builder = RoleBuilder(engine, "admin", "Admin").set_capability_map(cap_map)
        builder.inherit_role("ROL_ADMIN")
        with pytest.raises(RoleBuildError, match="itself"):
            builder.build()

    def test_map_entry_without_store_definition(self, engine: CapabilityEngine) -> None:
        from capgraph.core.store.base import CapabilityDefinition

        builder = RoleBuilder(engine, "admin", "Admin").set_capability_map(
            {"CAP_LOOSE": CapabilityDefinition("CAP_LOOSE", "Loose")}
        )
        builder.add_view("LOOSE")
        with pytest.raises(RoleBuildError, match="no definition"):
            builder.build()

    def test_role_prefix_not_accepted_leaves_store_untouched(
        self, store: InMemoryEntityStore
    ) -> None:
        people_only = CapabilityEngine(store, accepted_prefixes=("PER_",))
        cap_map = people_only.get_capability_map(ROWS)
        builder = RoleBuilder(people_only, "admin", "Admin").set_capability_map(cap_map)
        builder.add_view("ITEM")
        with pytest.raises(RoleBuildError, match="accepted prefixes are PER_"):
            builder.build()
        assert not store.has_entity("ROL_ADMIN")
