from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from bothive.db.models.agent import UserRef
from bothive.db.models.base import DomainModel

ProjectStatus = Literal["open", "in_progress", "completed"]
ProposalStatus = Literal["pending", "accepted", "rejected"]


class ProposalBuilder(UserRef):
    rating: float = 0
    completed_projects: int = 0


class Proposal(DomainModel):
    id: str = ""
    project_id: str = ""
    builder: ProposalBuilder = Field(default_factory=ProposalBuilder)
    amount: float = 0
    duration: str = ""
    cover_letter: str = ""
    status: ProposalStatus = "pending"
    created: Optional[datetime] = None


class ProjectBase(DomainModel):
    title: str
    description: str = ""
    budget: float = 0
    duration: str = ""
    status: ProjectStatus = "open"
    recruiter: UserRef = Field(default_factory=UserRef)
    requirements: list[str] = Field(default_factory=list)
    proposals: list[Proposal] = Field(default_factory=list)
    deadline: Optional[datetime] = None
    category: str = ""
    skills: list[str] = Field(default_factory=list)


class Project(ProjectBase):
    id: str
    created: datetime
