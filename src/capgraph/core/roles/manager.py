"""
RoleManager: role entities and the links between them.

Roles are ordinary entities with a ``ROL_`` code.  Links live in attributes:

  LNK_ROLE          ordered role codes an entity belongs to (for a role:
                    the roles it inherits from)
  LNK_CHILDREN      role codes a role may hand out
  PRI_REDIRECT_CODE where holders of the role land after login
  PRI_IS_<NAME>     "true" on an entity that has been attached to ROL_<NAME>
"""

from __future__ import annotations

import structlog

from capgraph.core.constants import (
    ATTR_LNK_CHILDREN,
    ATTR_LNK_ROLE,
    ATTR_REDIRECT_CODE,
    ATTR_SIDEBAR,
    PRI_IS_PREFIX,
    Prefix,
)
from capgraph.core.exceptions import InvalidSubjectError, ItemNotFoundError
from capgraph.core.store.base import (
    EntityStore,
    format_code_list,
    parse_code_list,
)

logger = structlog.get_logger()


def clean_role_code(raw_code: str) -> str:
    """Upper-case *raw_code* and make sure it carries the ``ROL_`` prefix."""
    code = raw_code.strip().upper().replace(" ", "_")
    if not code.startswith(Prefix.ROL):
        code = Prefix.ROL + code
    if code == Prefix.ROL:
        raise ValueError(f"Role code {raw_code!r} is empty after cleaning")
    return code


class RoleManager:
    def __init__(self, store: EntityStore) -> None:
        self._store = store

    @property
    def store(self) -> EntityStore:
        return self._store

    def create_role(self, code: str, name: str, *, persist: bool = True) -> str:
        """Get or create a role entity; returns its clean code."""
        role_code = clean_role_code(code)
        if not self._store.has_entity(role_code):
            self._store.create_entity(role_code, name)
            logger.info("role_created", role_code=role_code, name=name)
            if persist:
                self._store.persist(role_code)
        return role_code

    def get_roles(self, entity_code: str) -> list[str]:
        self._require(entity_code)
        return self._store.get_roles_of(entity_code)

    def inherit_role(self, role_code: str, parent_code: str, *, persist: bool = True) -> None:
        """Make *role_code* inherit every capability of *parent_code*."""
        self._require_role(role_code)
        self._require_role(parent_code)
        if role_code == parent_code:
            raise ValueError(f"Role {role_code} cannot inherit from itself")
        self._append_link(role_code, ATTR_LNK_ROLE, parent_code, persist)

    def attach_role(self, entity_code: str, role_code: str, *, persist: bool = True) -> None:
        """Give *entity_code* the role, and flag it with ``PRI_IS_<NAME>``."""
        self._require(entity_code)
        self._require_role(role_code)
        self._append_link(entity_code, ATTR_LNK_ROLE, role_code, persist=False)
        flag = PRI_IS_PREFIX + role_code[len(Prefix.ROL) :]
        self._store.write_attribute(entity_code, flag, "true")
        if persist:
            self._store.persist(entity_code)
        logger.info("role_attached", entity_code=entity_code, role_code=role_code)

    def set_role_redirect(
        self, role_code: str, redirect_code: str | None, *, persist: bool = True
    ) -> None:
        """Set the post-login redirect; ``None`` leaves any existing redirect alone."""
        self._require_role(role_code)
        if redirect_code is None:
            return
        self._store.write_attribute(role_code, ATTR_REDIRECT_CODE, redirect_code)
        if persist:
            self._store.persist(role_code)

    def get_role_redirect(self, role_code: str) -> str | None:
        self._require_role(role_code)
        attr = self._store.get_attribute(role_code, ATTR_REDIRECT_CODE)
        return attr.value if attr else None

    def set_children(self, role_code: str, child_codes: list[str], *, persist: bool = True) -> None:
        self._require_role(role_code)
        children = [clean_role_code(code) for code in child_codes]
        self._store.write_attribute(role_code, ATTR_LNK_CHILDREN, format_code_list(children))
        if persist:
            self._store.persist(role_code)

    def get_children(self, role_code: str) -> list[str]:
        self._require_role(role_code)
        return parse_code_list(_value(self._store.get_attribute(role_code, ATTR_LNK_CHILDREN)))

    def set_sidebar(self, role_code: str, event_codes: list[str], *, persist: bool = True) -> None:
        self._require_role(role_code)
        self._store.write_attribute(role_code, ATTR_SIDEBAR, format_code_list(list(event_codes)))
        if persist:
            self._store.persist(role_code)

    def get_sidebar(self, role_code: str) -> list[str]:
        self._require_role(role_code)
        return parse_code_list(_value(self._store.get_attribute(role_code, ATTR_SIDEBAR)))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _append_link(self, entity_code: str, attribute: str, code: str, persist: bool) -> None:
        current = parse_code_list(_value(self._store.get_attribute(entity_code, attribute)))
        if code not in current:
            current.append(code)
            self._store.write_attribute(entity_code, attribute, format_code_list(current))
        if persist:
            self._store.persist(entity_code)

    def _require(self, entity_code: str) -> None:
        if not self._store.has_entity(entity_code):
            raise ItemNotFoundError("entity store", entity_code)

    def _require_role(self, role_code: str) -> None:
        if not role_code.startswith(Prefix.ROL):
            raise InvalidSubjectError(role_code, (Prefix.ROL,))
        self._require(role_code)


def _value(attr: object) -> str | None:
    return getattr(attr, "value", None)
