"""Schema migrations for the SQLite credential store."""

from auth_plugin.core.migrations.runner import apply_migrations

__all__ = ["apply_migrations"]
