"""
Capability requirements: the predicates guard points evaluate.

A requirement names one capability code and the nodes the actor must hold
for it.  ``requires_all=True`` means every node must be covered; otherwise
one is enough.  A node is covered when the actor's capability has a node for
the same mode whose scope is at least as permissive.

Guarded objects (questions, process-content-map nodes, workflow steps) carry
a list of requirements.  Guard points call :meth:`Guarded.requirements_met`
once per object and treat ``False`` as "hide / skip", never as an error.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TypeVar

from capgraph.core.capability.model import (
    Capability,
    CapabilityNode,
    CapabilitySet,
    clean_capability_code,
)
from capgraph.core.exceptions import CapabilityDecodeError


@dataclass(frozen=True)
class CapabilityRequirement:
    """A capability code, the nodes required of it, and an all/any flag."""

    code: str
    requires_all: bool = True
    nodes: tuple[CapabilityNode, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "code", clean_capability_code(self.code))
        object.__setattr__(self, "nodes", tuple(self.nodes))

    @classmethod
    def from_capability(
        cls, capability: Capability, requires_all: bool = True
    ) -> CapabilityRequirement:
        """Require every node *capability* declares."""
        return cls(capability.code, requires_all, tuple(capability.nodes.values()))

    @classmethod
    def parse(cls, text: str, requires_all: bool = True) -> CapabilityRequirement:
        """
        Parse ``"CAP_ITEM:V:A,E:S"``: a code, then comma-separated nodes.

        ``"CAP_ITEM"`` on its own requires the capability to be present.

        Raises:
            CapabilityDecodeError: if a node does not parse.
        """
        code, _, rest = text.strip().partition(":")
        if not code:
            raise CapabilityDecodeError(f"Requirement {text!r} has no capability code")
        nodes = tuple(CapabilityNode.parse(part) for part in rest.split(",") if part.strip())
        try:
            return cls(code, requires_all, nodes)
        except ValueError as exc:
            raise CapabilityDecodeError(f"Requirement {text!r}: {exc}") from exc

    def is_satisfied_by(self, capabilities: CapabilitySet) -> bool:
        cap = capabilities.find(self.code)
        if cap is None:
            return False
        # No nodes means "holds the code", whichever of all/any is asked for.
        if not self.nodes:
            return True
        checks = (cap.meets(node) for node in self.nodes)
        return all(checks) if self.requires_all else any(checks)

    def __str__(self) -> str:
        joiner = "&" if self.requires_all else "|"
        return f"{self.code}[{joiner.join(str(n) for n in self.nodes)}]"


@dataclass(frozen=True)
class RequirementConfig:
    """How a guarded object's requirements are combined."""

    check_requirements: bool = True
    """False skips the check entirely (service accounts, provisioning scripts)."""

    requires_all_caps: bool = True
    """True: every requirement must hold.  False: any one is enough."""


DEFAULT_REQUIREMENT_CONFIG = RequirementConfig()


@dataclass
class Guarded:
    """
    Mixin for objects gated by capability requirements.

    An object with no requirements is visible to everyone.
    """

    capability_requirements: list[CapabilityRequirement] = field(
        default_factory=list, kw_only=True
    )

    def add_capability_requirement(
        self,
        requirement: CapabilityRequirement | Capability | str,
        requires_all: bool = True,
        *nodes: CapabilityNode,
    ) -> Guarded:
        if isinstance(requirement, Capability):
            requirement = CapabilityRequirement.from_capability(requirement, requires_all)
        elif isinstance(requirement, str):
            requirement = CapabilityRequirement(requirement, requires_all, nodes)
        self.capability_requirements.append(requirement)
        return self

    def requirements_met(
        self,
        capabilities: CapabilitySet,
        config: RequirementConfig = DEFAULT_REQUIREMENT_CONFIG,
    ) -> bool:
        if not config.check_requirements or not self.capability_requirements:
            return True
        checks = (req.is_satisfied_by(capabilities) for req in self.capability_requirements)
        return all(checks) if config.requires_all_caps else any(checks)


G = TypeVar("G", bound=Guarded)


def filter_permitted(
    items: Iterable[G],
    capabilities: CapabilitySet,
    config: RequirementConfig = DEFAULT_REQUIREMENT_CONFIG,
) -> list[G]:
    """Keep the guarded items whose requirements *capabilities* meets, in order."""
    return [item for item in items if item.requirements_met(capabilities, config)]
