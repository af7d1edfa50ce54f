from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from bothive.db.models.base import DomainModel

AgentStatus = Literal["pending", "approved", "rejected"]


class UserRef(DomainModel):
    """Denormalized owner reference embedded in agents and projects."""
    id: str = ""
    name: str = ""
    avatar: str = ""


class AgentPerformance(DomainModel):
    revenue_growth: float = 0
    user_satisfaction: float = 0
    response_time: float = 0
    uptime: float = 0


class AgentMetrics(DomainModel):
    daily_users: list[int] = Field(default_factory=list)
    monthly_revenue: list[float] = Field(default_factory=list)
    task_completion: float = 0


class AgentRequirements(DomainModel):
    cpu: str = ""
    memory: str = ""
    storage: str = ""


class AgentUpdate(DomainModel):
    date: datetime
    version: str = ""
    changes: list[str] = Field(default_factory=list)


class AgentFile(DomainModel):
    name: str
    url: str
    size: int = 0
    type: str = ""


class AIAgentBase(DomainModel):
    title: str
    description: str = ""
    price: float = 0
    builder: UserRef = Field(default_factory=UserRef)
    category: str = ""
    tags: list[str] = Field(default_factory=list)
    rating: float = 0
    reviews: int = 0
    image_url: str = ""
    features: list[str] = Field(default_factory=list)
    # Only approved agents are publicly listed
    status: AgentStatus = "pending"
    moderation_notes: Optional[str] = None
    performance: AgentPerformance = Field(default_factory=AgentPerformance)
    metrics: AgentMetrics = Field(default_factory=AgentMetrics)
    tech_stack: list[str] = Field(default_factory=list)
    requirements: AgentRequirements = Field(default_factory=AgentRequirements)
    updates: list[AgentUpdate] = Field(default_factory=list)
    video_url: Optional[str] = None
    files: list[AgentFile] = Field(default_factory=list)


class AIAgent(AIAgentBase):
    id: str
    created: datetime
