"""
Principal resolution for the Storefront service.

Authentication proper belongs to the external auth collaborator. This module
is the seam it plugs into: it attaches the caller's principal to
``request.state.user_info`` (the cache read path uses it for ``skip_auth``)
and guards the admin-only cache management routes.
"""

from typing import Any, Dict, Mapping, Optional

from fastapi import Request

from shared.errors import AuthenticationError, AuthorizationError
from shared.logging import get_logger, set_user_context

ADMIN_ROLE = "admin"


class AuthMiddleware:
    """API key based principal resolver."""

    def __init__(self, api_keys: Optional[Mapping[str, Mapping[str, Any]]] = None):
        self.api_keys = dict(api_keys or {})
        self.logger = get_logger("storefront.auth_middleware")

    def resolve(self, request: Request) -> Optional[Dict[str, Any]]:
        """Attach the caller's principal to the request, if any.

        Unknown keys are not an error here; routes that need a principal
        reject the request through :meth:`require_admin`.
        """
        user_info = getattr(request.state, "user_info", None)
        if user_info:
            return user_info

        api_key = request.headers.get("X-API-Key")
        if not api_key or api_key not in self.api_keys:
            return None

        key_info = self.api_keys[api_key]
        user_info = {
            "user_id": key_info.get("user_id", f"api-key-{api_key[:8]}"),
            "roles": list(key_info.get("roles", [])),
            "auth_method": "api_key",
        }
        request.state.user_info = user_info
        set_user_context(user_info["user_id"])
        return user_info

    async def require_admin(self, request: Request) -> Dict[str, Any]:
        """FastAPI dependency for admin-only routes."""
        user_info = self.resolve(request)
        if not user_info:
            raise AuthenticationError("Authentication required")

        if ADMIN_ROLE not in user_info.get("roles", []):
            self.logger.warning("Admin route denied", user_id=user_info.get("user_id"), path=request.url.path)
            raise AuthorizationError("Admin role required")

        return user_info
