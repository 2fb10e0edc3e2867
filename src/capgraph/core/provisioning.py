"""
Provisioning files: declare capabilities, roles and people in YAML.

Usage::

    doc = load_provisioning("roles.yaml")
    result = apply_provisioning(doc, engine)

File shape (version "1")::

    provisioning_version: "1"
    capabilities:
      - {code: ITEM, name: Items}
      - {code: USER, name: Users}
      - {code: REPORT, name: Reports}
    roles:
      - code: USER
        name: User
        capabilities:
          ITEM: ["V:A"]
      - code: ADMIN
        name: Admin
        redirect: DASHBOARD
        inherits: [USER]
        children: [USER]
        capabilities:
          ITEM: ["V:A", "E:A"]
          USER: ["VIEW:ALL"]
    people:
      - code: PER_ALICE
        name: Alice
        roles: [ADMIN]
        capabilities:
          REPORT: []        # declared on Alice with no nodes

Roles are built parents first, whatever order the file lists them in.  A role
may inherit from a role that is not in the file as long as the store already
has it.  An inheritance loop inside the file, or a role or capability that
neither the file nor the store provides, is rejected before anything is
written.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from capgraph.core.capability.engine import CapabilityEngine
from capgraph.core.capability.model import CapabilityNode, clean_capability_code
from capgraph.core.constants import Prefix
from capgraph.core.exceptions import CapGraphError
from capgraph.core.roles.builder import RoleBuilder, RoleDefinition
from capgraph.core.roles.manager import RoleManager, clean_role_code

logger = structlog.get_logger()


class ProvisioningParseError(CapGraphError, ValueError):
    """Raised when a provisioning file cannot be parsed or fails validation."""


# ---------------------------------------------------------------------------
# Document model
# ---------------------------------------------------------------------------


def _clean_node_map(value: dict[str, list[str]]) -> dict[str, list[str]]:
    cleaned: dict[str, list[str]] = {}
    for code, nodes in value.items():
        cleaned[clean_capability_code(code)] = [str(CapabilityNode.parse(n)) for n in nodes]
    return cleaned


class CapabilityEntry(BaseModel):
    model_config = {"extra": "forbid"}

    code: str
    name: str = ""

    @field_validator("code")
    @classmethod
    def clean_code(cls, v: str) -> str:
        return clean_capability_code(v)

    @model_validator(mode="after")
    def default_name(self) -> CapabilityEntry:
        if not self.name:
            self.name = self.code[len(Prefix.CAP) :].replace("_", " ").title()
        return self


class RoleEntry(BaseModel):
    model_config = {"extra": "forbid"}

    code: str
    name: str
    redirect: str | None = None
    inherits: list[str] = Field(default_factory=list)
    children: list[str] = Field(default_factory=list)
    sidebar: list[str] = Field(default_factory=list)
    capabilities: dict[str, list[str]] = Field(default_factory=dict)
    """Capability code → node strings (``"V:A"`` or ``"VIEW:ALL"``)."""

    @field_validator("code")
    @classmethod
    def clean_code(cls, v: str) -> str:
        return clean_role_code(v)

    @field_validator("inherits", "children")
    @classmethod
    def clean_role_codes(cls, v: list[str]) -> list[str]:
        return [clean_role_code(code) for code in v]

    @field_validator("capabilities")
    @classmethod
    def clean_capabilities(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        return _clean_node_map(v)


class PersonEntry(BaseModel):
    model_config = {"extra": "forbid"}

    code: str
    name: str
    roles: list[str] = Field(default_factory=list)
    capabilities: dict[str, list[str]] = Field(default_factory=dict)

    @field_validator("code")
    @classmethod
    def check_prefix(cls, v: str) -> str:
        code = v.strip().upper()
        if not code.startswith(Prefix.PER):
            raise ValueError(f"Person code must start with {Prefix.PER} (got {v!r})")
        return code

    @field_validator("roles")
    @classmethod
    def clean_role_codes(cls, v: list[str]) -> list[str]:
        return [clean_role_code(code) for code in v]

    @field_validator("capabilities")
    @classmethod
    def clean_capabilities(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        return _clean_node_map(v)


class ProvisioningDocument(BaseModel):
    model_config = {"extra": "forbid"}

    provisioning_version: Literal["1"] = "1"
    capabilities: list[CapabilityEntry] = Field(default_factory=list)
    roles: list[RoleEntry] = Field(default_factory=list)
    people: list[PersonEntry] = Field(default_factory=list)

    @field_validator("provisioning_version", mode="before")
    @classmethod
    def coerce_version(cls, v: object) -> str:
        return str(v).strip()

    @model_validator(mode="after")
    def unique_codes(self) -> ProvisioningDocument:
        for kind, codes in (
            ("capability", [c.code for c in self.capabilities]),
            ("role", [r.code for r in self.roles]),
            ("person", [p.code for p in self.people]),
        ):
            dupes = sorted({c for c in codes if codes.count(c) > 1})
            if dupes:
                raise ValueError(f"Duplicate {kind} code(s): {', '.join(dupes)}")
        return self

    def role_order(self) -> list[RoleEntry]:
        """
        Roles in build order: every in-file parent before its children.

        Raises:
            ProvisioningParseError: if in-file inheritance loops.
        """
        by_code = {role.code: role for role in self.roles}
        ordered: list[RoleEntry] = []
        done: set[str] = set()

        def visit(code: str, path: tuple[str, ...]) -> None:
            if code in done:
                return
            if code in path:
                raise ProvisioningParseError(
                    f"Role inheritance cycle: {' -> '.join([*path, code])}"
                )
            for parent in by_code[code].inherits:
                if parent in by_code:
                    visit(parent, (*path, code))
            done.add(code)
            ordered.append(by_code[code])

        for role in self.roles:
            visit(role.code, ())
        return ordered


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------


def load_provisioning(path: str | Path) -> ProvisioningDocument:
    """
    Load and validate a provisioning file.

    Raises:
        ProvisioningParseError: if the file is missing, unreadable, or invalid.
    """
    p = Path(path).expanduser()
    if not p.exists():
        raise ProvisioningParseError(f"Provisioning file not found: {p}")
    try:
        content = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise ProvisioningParseError(f"Cannot read provisioning file {p}: {exc}") from exc
    return parse_provisioning(content, source=str(p))


def parse_provisioning(yaml_text: str, source: str = "<string>") -> ProvisioningDocument:
    """
    Parse and validate a YAML provisioning document.

    Raises:
        ProvisioningParseError: on YAML syntax errors, schema violations, or
            an inheritance loop between roles in the document.
    """
    try:
        data = yaml.safe_load(yaml_text)
    except yaml.YAMLError as exc:
        raise ProvisioningParseError(f"YAML syntax error in {source}: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ProvisioningParseError(
            f"Provisioning file {source} must be a YAML mapping (got {type(data).__name__})"
        )

    try:
        doc = ProvisioningDocument.model_validate(data)
    except ValidationError as exc:
        lines = [f"Provisioning validation failed in {source}:"]
        for err in exc.errors():
            loc = " → ".join(str(x) for x in err["loc"]) if err["loc"] else "(root)"
            lines.append(f"  {loc}: {err['msg']}")
        raise ProvisioningParseError("\n".join(lines)) from exc

    doc.role_order()
    return doc


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------


@dataclass
class ProvisioningResult:
    """What :func:`apply_provisioning` wrote."""

    capabilities: list[str] = field(default_factory=list)
    roles: list[RoleDefinition] = field(default_factory=list)
    people: list[str] = field(default_factory=list)


def _unresolved_references(doc: ProvisioningDocument, engine: CapabilityEngine) -> list[str]:
    """Everything *doc* points at that neither the document nor the store provides."""
    store = engine.store
    doc_capabilities = {c.code for c in doc.capabilities}
    doc_roles = {r.code for r in doc.roles}
    problems: list[str] = []

    def role_known(code: str) -> bool:
        return code in doc_roles or store.has_entity(code)

    for role in doc.roles:
        if not engine.accepts_prefix(role.code):
            problems.append(f"role {role.code}: prefix not accepted for capabilities")
        for code in role.capabilities:
            if code not in doc_capabilities:
                problems.append(f"role {role.code}: capability {code} is not declared")
        for parent in role.inherits:
            if not role_known(parent):
                problems.append(f"role {role.code}: parent role {parent} does not exist")

    for person in doc.people:
        if person.capabilities and not engine.accepts_prefix(person.code):
            problems.append(f"person {person.code}: prefix not accepted for capabilities")
        for role_code in person.roles:
            if not role_known(role_code):
                problems.append(f"person {person.code}: role {role_code} does not exist")
        for code in person.capabilities:
            if code not in doc_capabilities and store.get_capability_definition(code) is None:
                problems.append(f"person {person.code}: capability {code} does not exist")
    return problems


def apply_provisioning(
    doc: ProvisioningDocument,
    engine: CapabilityEngine,
    roles: RoleManager | None = None,
) -> ProvisioningResult:
    """
    Write *doc* through *engine*: capability codes, then roles (parents
    first), then people.

    Capability codes and roles are got-or-created, so applying the same
    document twice converges on the same store contents.

    Raises:
        ProvisioningParseError: the document references a role or
            capability that is neither in it nor in the store, or uses a
            code the engine will not give capabilities to.  Nothing is
            written in that case.
    """
    problems = _unresolved_references(doc, engine)
    if problems:
        logger.error("provisioning_rejected", problems=problems)
        raise ProvisioningParseError(
            "Provisioning document has unresolved references:\n"
            + "\n".join(f"  {p}" for p in problems)
        )

    roles = roles or RoleManager(engine.store)
    store = engine.store
    result = ProvisioningResult()

    capability_map = engine.get_capability_map((c.code, c.name) for c in doc.capabilities)
    result.capabilities = sorted(capability_map)

    for entry in doc.role_order():
        builder = RoleBuilder(engine, entry.code, entry.name, roles).set_capability_map(
            capability_map
        )
        if entry.redirect:
            builder.set_role_redirect(entry.redirect)
        if entry.inherits:
            builder.inherit_role(*entry.inherits)
        for capability_code, nodes in entry.capabilities.items():
            builder.add_capability(capability_code, *(CapabilityNode.parse(n) for n in nodes))
        if entry.sidebar:
            builder.set_sidebar(*entry.sidebar)
        if entry.children:
            builder.add_children(*entry.children)
        result.roles.append(builder.build())

    for person in doc.people:
        if not store.has_entity(person.code):
            store.create_entity(person.code, person.name)
        for role_code in person.roles:
            roles.attach_role(person.code, role_code, persist=False)
        for capability_code, nodes in person.capabilities.items():
            engine.add_capability(
                person.code,
                capability_code,
                *(CapabilityNode.parse(n) for n in nodes),
                persist=False,
            )
        store.persist(person.code)
        result.people.append(person.code)

    logger.info(
        "provisioning_applied",
        capabilities=len(result.capabilities),
        roles=len(result.roles),
        people=len(result.people),
    )
    return result
