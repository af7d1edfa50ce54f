from typing import Iterable, Optional

from fastapi import Depends, HTTPException, Request

from bothive.core.context import AppContext, get_context
from bothive.core.errors import TokenError
from bothive.core.security import AuthStrategy, check_role
from bothive.db.models import Profile

AUTH_COOKIE = "auth-token"
REFRESH_COOKIE = "refresh-token"


def extract_token(request: Request, strategy: AuthStrategy) -> Optional[str]:
    """Pull the access token from wherever `strategy` delivers it."""
    if strategy == "cookie":
        return request.cookies.get(AUTH_COOKIE) or None
    header = request.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def authenticate(request: Request, strategy: AuthStrategy, context: AppContext) -> Profile:
    """Resolve the request's profile or raise 401."""
    token = extract_token(request, strategy)
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")

    try:
        payload = context.tokens.verify_token(token, strategy)
    except TokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    result = await context.db.profiles.get_by_id(payload.user_id)
    if result.error is not None or result.data is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return result.data


def get_current_user(strategy: AuthStrategy = "bearer"):
    """Dependency factory: current Profile for the given delivery strategy."""

    async def dependency(request: Request, context: AppContext = Depends(get_context)) -> Profile:
        return await authenticate(request, strategy, context)

    return dependency


def require_roles(roles: Iterable[str], strategy: AuthStrategy = "bearer"):
    """Dependency factory: current Profile, 403 unless it holds one of `roles`."""
    has_role = check_role(roles)

    async def dependency(user: Profile = Depends(get_current_user(strategy))) -> Profile:
        if not has_role(user):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return dependency
