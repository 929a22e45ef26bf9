"""
API Dependencies

FastAPI dependency injection for the service bundle and authentication.

Security: JWT tokens are verified cryptographically using Supabase JWKS (ES256)
with HS256 fallback via the JWT secret. Never decode without verification.
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from tafawoq.infrastructure.exceptions import AuthenticationError
from tafawoq.services.bundle import ServiceBundle


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_services(request: Request) -> ServiceBundle:
    """The bundle built in the application lifespan."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Services are not initialized",
        )
    return services


ServicesDep = Annotated[ServiceBundle, Depends(get_services)]


async def get_current_user_id(
    services: ServicesDep,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Extract and verify user ID from a Supabase JWT.

    Returns:
        Authenticated user ID (``sub`` claim).

    Raises:
        HTTPException 401: token missing, expired, or invalid.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return services.auth.verify_token(credentials.credentials)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )


CurrentUserDep = Annotated[str, Depends(get_current_user_id)]
