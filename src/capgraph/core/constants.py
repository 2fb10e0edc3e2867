"""capgraph constants: entity prefixes, attribute codes, filesystem layout, and limits."""

from __future__ import annotations

import sys
from enum import IntEnum
from pathlib import Path

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------


class ExitCode(IntEnum):
    SUCCESS = 0
    ERROR = 1
    CONFIG_ERROR = 2
    NOT_FOUND = 3
    INVALID_INPUT = 4


# ---------------------------------------------------------------------------
# Entity code prefixes
# ---------------------------------------------------------------------------


class Prefix:
    """Three-letter code prefixes that identify what kind of entity a code names."""

    PER = "PER_"
    ROL = "ROL_"
    DEF = "DEF_"
    CAP = "CAP_"
    PRI = "PRI_"
    LNK = "LNK_"
    QUE = "QUE_"
    PCM = "PCM_"


# Entities that may hold capabilities (and therefore be resolved)
CAPABILITY_BEARING_PREFIXES: tuple[str, ...] = (Prefix.PER, Prefix.ROL, Prefix.DEF)

# ---------------------------------------------------------------------------
# Attribute codes
# ---------------------------------------------------------------------------

ATTR_LNK_ROLE = "LNK_ROLE"  # ordered role links (JSON array of role codes)
ATTR_LNK_CHILDREN = "LNK_CHILDREN"  # roles this role may assign
ATTR_REDIRECT_CODE = "PRI_REDIRECT_CODE"  # landing page after login
ATTR_SIDEBAR = "PRI_SIDEBAR"  # sidebar event codes
ATTR_NAME = "PRI_NAME"
PRI_IS_PREFIX = "PRI_IS_"  # boolean role flag, e.g. PRI_IS_ADMIN

DEF_ROLE_CODE = "DEF_ROLE"

# Stored value meaning "declared, but no nodes" (revoked)
EMPTY_CAPABILITY_VALUE = "[]"

# ---------------------------------------------------------------------------
# Resolution limits
# ---------------------------------------------------------------------------

DEFAULT_MAX_ROLE_DEPTH = 32  # role inheritance chains deeper than this are misconfigured

# ---------------------------------------------------------------------------
# Platform-specific config directory
# ---------------------------------------------------------------------------


def _default_data_dir() -> Path:
    """
    Return the platform-appropriate capgraph data directory.

    macOS : ~/Library/Application Support/capgraph
    Linux : ~/.config/capgraph
    Other : ~/.capgraph
    """
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "capgraph"
    if sys.platform.startswith("linux"):
        xdg = Path(__import__("os").environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config")))
        return xdg / "capgraph"
    return Path.home() / ".capgraph"


# ---------------------------------------------------------------------------
# Filesystem layout
# ---------------------------------------------------------------------------

CONFIG_FILENAME = "config.toml"
DB_FILENAME = "capgraph.db"
