"""Core runtime: capability model, resolution engine, roles and stores."""
