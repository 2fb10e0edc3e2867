"""capgraph exception hierarchy."""

from __future__ import annotations


class CapGraphError(Exception):
    """Base exception for all capgraph errors."""


class ConfigError(CapGraphError):
    """Raised when the configuration is invalid or cannot be read."""


class ConfigNotFoundError(ConfigError):
    """Raised when the configuration file does not exist."""


class InvalidSubjectError(CapGraphError):
    """Raised when an entity code does not carry a capability-bearing prefix."""

    def __init__(self, subject_code: str, accepted: tuple[str, ...]) -> None:
        self.subject_code = subject_code
        self.accepted = accepted
        super().__init__(
            f"Entity {subject_code!r} does not have an accepted prefix for capabilities "
            f"(accepted: {', '.join(accepted)})"
        )


class ItemNotFoundError(CapGraphError):
    """Raised when a referenced entity, attribute, or capability code does not exist."""

    def __init__(self, where: str, code: str) -> None:
        self.where = where
        self.code = code
        super().__init__(f"{code!r} not found in {where}")


class CapabilityDecodeError(CapGraphError, ValueError):
    """Raised when a stored capability value cannot be decoded into nodes."""


class RoleBuildError(CapGraphError):
    """Raised when a RoleBuilder cannot build its role."""


class RoleCycleError(CapGraphError):
    """Raised when role inheritance loops back on itself or runs too deep."""

    def __init__(self, path: list[str], message: str) -> None:
        self.path = path
        super().__init__(f"{message}: {' -> '.join(path)}")
