"""Data access handles scoped to a single tenant."""

from .memory import DatabaseClient, InMemoryDatabase, TenantScopedClient

__all__ = ["DatabaseClient", "InMemoryDatabase", "TenantScopedClient"]
