from datetime import datetime
from typing import Optional

from pydantic import Field

from bothive.db.models.base import DomainModel


class ReviewResponse(DomainModel):
    """Builder's reply to a review."""
    from_: str = Field(default="", alias="from")
    message: str = ""
    date: Optional[datetime] = None


class ReviewBase(DomainModel):
    agent_id: str
    user_id: str
    user_name: str = ""
    user_avatar: str = ""
    rating: float = 0
    comment: str = ""
    helpful: int = 0
    response: Optional[ReviewResponse] = None


class Review(ReviewBase):
    id: str
    date: datetime
