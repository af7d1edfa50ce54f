"""
Domain models shared by both persistence providers.

Providers translate their own row/document shapes into these types; nothing
outside `bothive.db` sees a raw row or a native document id.
"""
from bothive.db.models.base import DomainModel, SERVER_FIELDS
from bothive.db.models.profile import Profile, ProfileBase, Role
from bothive.db.models.auth import AuthSession, AuthUser
from bothive.db.models.subscription import (
    Subscription,
    SubscriptionBase,
    SubscriptionStatus,
    SubscriptionTier,
    SUBSCRIPTION_STATUSES,
    SUBSCRIPTION_TIERS,
    normalize_status,
    normalize_tier,
)
from bothive.db.models.agent import (
    AIAgent,
    AIAgentBase,
    AgentFile,
    AgentMetrics,
    AgentPerformance,
    AgentRequirements,
    AgentUpdate,
    UserRef,
)
from bothive.db.models.project import Project, ProjectBase, Proposal, ProposalBuilder
from bothive.db.models.message import Message, MessageBase
from bothive.db.models.review import Review, ReviewBase, ReviewResponse

__all__ = [
    "DomainModel",
    "SERVER_FIELDS",
    "Profile",
    "ProfileBase",
    "Role",
    "AuthSession",
    "AuthUser",
    "Subscription",
    "SubscriptionBase",
    "SubscriptionStatus",
    "SubscriptionTier",
    "SUBSCRIPTION_STATUSES",
    "SUBSCRIPTION_TIERS",
    "normalize_status",
    "normalize_tier",
    "AIAgent",
    "AIAgentBase",
    "AgentFile",
    "AgentMetrics",
    "AgentPerformance",
    "AgentRequirements",
    "AgentUpdate",
    "UserRef",
    "Project",
    "ProjectBase",
    "Proposal",
    "ProposalBuilder",
    "Message",
    "MessageBase",
    "Review",
    "ReviewBase",
    "ReviewResponse",
]
