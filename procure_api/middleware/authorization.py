from fastapi import Depends

from procure_api.exceptions import NotAuthorizedError
from procure_api.middleware.auth import get_current_actor
from procure_api.services.access_policy import Actor


def require_roles(*allowed_roles: str):
    """
    FastAPI dependency factory for role-based access control.

    Usage:
        @router.post("/departments")
        async def create_department(
            actor: Actor = Depends(get_current_actor),
            _auth: None = Depends(require_roles("ADMIN")),
        ):
    """
    async def check_role(actor: Actor = Depends(get_current_actor)):
        if actor.role not in allowed_roles:
            raise NotAuthorizedError(
                f"Role '{actor.role}' cannot perform this action. "
                f"Required: {', '.join(allowed_roles)}"
            )
        return None

    return check_role
