"""Authentication, role permissions and rate limiting for the API."""

import enum
import secrets
import logging
from typing import Dict, FrozenSet, Tuple

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import Settings

logger = logging.getLogger(__name__)

security = HTTPBearer()


class Resource(str, enum.Enum):
    PAYMENTS = "Payments"
    STUDENTS = "Students"
    FEES = "Fees"
    USERS = "Users"
    ROLES = "Roles"


class Action(str, enum.Enum):
    READ = "Read"
    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"


Permission = Tuple[Resource, Action]


def _all_actions(*resources: Resource) -> FrozenSet[Permission]:
    return frozenset((resource, action) for resource in resources for action in Action)


def _read_only(*resources: Resource) -> FrozenSet[Permission]:
    return frozenset((resource, Action.READ) for resource in resources)


ROLE_PERMISSIONS: Dict[str, FrozenSet[Permission]] = {
    "Admin": _all_actions(*Resource),
    "Manager": _all_actions(Resource.PAYMENTS, Resource.STUDENTS, Resource.FEES),
    "Staff": _read_only(Resource.PAYMENTS, Resource.STUDENTS, Resource.FEES),
    "Student": _read_only(Resource.PAYMENTS, Resource.STUDENTS, Resource.FEES),
}


def has_permission(role: str, resource: Resource, action: Action) -> bool:
    """Check whether a role grants an action on a resource. Unknown roles grant nothing."""
    return (resource, action) in ROLE_PERMISSIONS.get(role, frozenset())


def create_limiter(settings: Settings) -> Limiter:
    """Rate limiter keyed by client address, applying the configured default limit."""
    return Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])


async def verify_api_key(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Security(security),
) -> str:
    """Verify the API key from the Authorization header.

    Args:
        request: Incoming request, used to reach the application settings.
        credentials: HTTP Bearer credentials from the request.

    Returns:
        The role the API key is registered with.

    Raises:
        HTTPException: If the API key is invalid or no keys are configured.
    """
    api_keys: Dict[str, str] = request.app.state.settings.api_keys
    if not api_keys:
        logger.error("No API keys configured; set API_KEY or API_KEYS")
        raise HTTPException(status_code=500, detail="Server configuration error")

    presented = credentials.credentials
    for key, role in api_keys.items():
        if secrets.compare_digest(presented, key):
            return role
    raise HTTPException(status_code=401, detail="Invalid API key")


def require_permission(resource: Resource, action: Action):
    """Build a dependency that admits only roles holding ``(resource, action)``.

    Example:
        @router.post("", dependencies=[Depends(require_permission(Resource.PAYMENTS, Action.CREATE))])
    """

    async def check_permission(role: str = Depends(verify_api_key)) -> str:
        if not has_permission(role, resource, action):
            logger.warning(f"Role {role} denied {action.value} on {resource.value}")
            raise HTTPException(
                status_code=403,
                detail=f"Role {role} is not allowed to {action.value.lower()} {resource.value.lower()}",
            )
        return role

    return check_permission
