"""API route handlers."""
from . import fasten_webhook, health_connections

__all__ = ["fasten_webhook", "health_connections"]
