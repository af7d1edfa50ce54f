from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict

Role = Literal["builder", "recruiter", "admin"]


class ProfileBase(BaseModel):
    """Caller-writable profile fields. Unknown keys such as id are dropped."""
    model_config = ConfigDict(extra="ignore")

    full_name: str
    role: Role = "builder"
    email: str
    avatar_url: Optional[str] = None
    stripe_customer_id: Optional[str] = None


class Profile(ProfileBase):
    id: str
    created_at: datetime
    updated_at: datetime
