"""
Dependency injection utilities for FastAPI.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from authengine.authentication.service import ConfigurationService
from authengine.authz.gate import Actor


# ============================================================================
# Acting principal
# ============================================================================

async def get_current_actor(request: Request) -> Actor:
    """
    Get the acting principal.

    The session layer authenticates the request and stores the principal on
    request.state.actor.
    """
    actor = getattr(request.state, "actor", None)
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return actor


CurrentActorDep = Annotated[Actor, Depends(get_current_actor)]


# ============================================================================
# Configuration service
# ============================================================================

async def get_configuration_service(request: Request) -> ConfigurationService:
    """Get the process-wide configuration service created at startup."""
    return request.app.state.configuration_service


ConfigurationServiceDep = Annotated[ConfigurationService, Depends(get_configuration_service)]
