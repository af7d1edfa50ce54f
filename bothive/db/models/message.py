from datetime import datetime
from typing import Optional

from bothive.db.models.base import DomainModel


class MessageBase(DomainModel):
    sender_id: str
    receiver_id: str
    content: str
    read: bool = False
    project_id: Optional[str] = None


class Message(MessageBase):
    id: str
    timestamp: datetime
