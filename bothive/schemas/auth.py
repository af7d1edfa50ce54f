"""
Request and response bodies for the /auth routes.
"""
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from bothive.core.security import BCRYPT_MAX_BYTES

MIN_PASSWORD_BYTES = 8


class SignupRequest(BaseModel):
    """New marketplace account: identity user plus its profile."""
    full_name: str = Field(..., min_length=1, max_length=200, description="Display name stored on the profile")
    email: EmailStr = Field(..., description="Login email, unique per account")
    password: str = Field(..., min_length=MIN_PASSWORD_BYTES, description="Plain-text password, 8 to 72 bytes")
    # Admins are promoted out of band, never self-registered
    role: Literal["builder", "recruiter"] = Field(default="builder", description="Marketplace role")

    @field_validator("password")
    @classmethod
    def validate_password_length(cls, v: str) -> str:
        """bcrypt ignores everything past 72 bytes, so reject rather than truncate silently."""
        size = len(v.encode("utf-8"))
        if size > BCRYPT_MAX_BYTES:
            raise ValueError(f"Password too long (bcrypt limit {BCRYPT_MAX_BYTES} bytes)")
        if size < MIN_PASSWORD_BYTES:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_BYTES} bytes")
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "full_name": "Ada Builder",
                "email": "ada@example.com",
                "password": "SecurePass123",
                "role": "builder",
            }
        }


class SigninRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

    class Config:
        json_schema_extra = {"example": {"email": "ada@example.com", "password": "SecurePass123"}}


class RefreshRequest(BaseModel):
    """Bearer clients send the refresh token in the body; cookie clients send nothing."""
    refresh_token: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
