from typing import Any, Optional

from pydantic import Field

from bothive.db.models.base import DomainModel


class AuthUser(DomainModel):
    id: str
    email: str
    user_metadata: dict[str, Any] = Field(default_factory=dict)


class AuthSession(DomainModel):
    """Request-scoped session; never persisted by the core."""
    user: Optional[AuthUser] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
