"""Shared FastAPI dependencies: acting user and service factories.

Service factories follow the override pattern used for tests: set an
instance with the ``set_*_override`` helpers (or use
``app.dependency_overrides``) and every route receives it.
"""

from typing import Optional

from fastapi import Header, HTTPException

from integrations.fasten_client import FastenConnectClient
from services.access_control import Actor, ActorRole
from services.health_connection_service import HealthConnectionService
from services.webhook_service import FastenWebhookService

# Dependency injection for testing
_fasten_client_override: Optional[FastenConnectClient] = None


def get_current_actor(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Actor:
    """Resolve the acting user from the identity headers set by the auth proxy.

    Hosts with their own authentication override this dependency.

    Raises:
        HTTPException: 401 if the headers are missing or the role is unknown.
    """
    user_id = (x_user_id or "").strip()
    if not user_id or not x_user_role:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        role = ActorRole(x_user_role.strip().lower())
    except ValueError:
        raise HTTPException(status_code=401, detail="Unknown user role")
    return Actor(user_id=user_id, role=role)


def get_fasten_client() -> FastenConnectClient:
    """Get the Fasten client, allowing for test overrides."""
    if _fasten_client_override is not None:
        return _fasten_client_override
    return FastenConnectClient()


def set_fasten_client_override(client: Optional[FastenConnectClient]) -> None:
    """Set a Fasten client override for testing."""
    global _fasten_client_override
    _fasten_client_override = client


def get_health_connection_service() -> HealthConnectionService:
    return HealthConnectionService(client=get_fasten_client())


def get_webhook_service() -> FastenWebhookService:
    return FastenWebhookService(client=get_fasten_client())
