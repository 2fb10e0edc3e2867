"""
capgraph: capability-based access control for business-entity workflows.

capgraph answers one question for the workflow and render layers: given an
actor entity (a person, a role, or a definition), which capabilities does it
hold once its own declarations are overlaid on everything inherited through
its roles?

Package layout (src/capgraph/):
  core/capability/   nodes, capabilities, capability sets, requirements, engine
  core/roles/        role manager and the fluent role builder
  core/store/        entity store protocol, in-memory and SQLite stores
  core/              config, logging, exceptions, provisioning files
  cli/               Click CLI entry point
"""

__version__ = "0.4.0"
__all__ = ["__version__"]
