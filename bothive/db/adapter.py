"""
Persistence contract consumed by the rest of the application.

Both providers (Supabase and MongoDB) implement every repository below and
must behave identically: not-found is `DatabaseResult(data=None)`, list
lookups return `[]`, and only genuine failures populate `error`.
"""
import functools
from abc import ABC, abstractmethod
from typing import Annotated, Any, Awaitable, Callable, Mapping, Optional, Union

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from bothive.core.errors import DatabaseError
from bothive.db.models import (
    AIAgent,
    AIAgentBase,
    AuthSession,
    AuthUser,
    Message,
    MessageBase,
    Profile,
    ProfileBase,
    Project,
    ProjectBase,
    Review,
    ReviewBase,
    SERVER_FIELDS,
    Subscription,
    SubscriptionBase,
)
from bothive.db.result import DatabaseResult

Unsubscribe = Callable[[], Awaitable[None]]
SubscriptionCallback = Callable[[Subscription], Any]
Updates = Mapping[str, Any]


class AuthRepository(ABC):
    """Identity operations wrapping the provider's user store."""

    @abstractmethod
    async def get_session(self) -> DatabaseResult[AuthSession]:
        """Current provider session, or None when unauthenticated."""

    @abstractmethod
    async def sign_up(
        self,
        email: str,
        password: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> DatabaseResult[AuthUser]:
        """Register a user. Duplicate emails are an error."""

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> DatabaseResult[AuthSession]:
        """Check credentials; wrong credentials yield data=None."""

    @abstractmethod
    async def sign_out(self) -> DatabaseResult[None]:
        pass

    @abstractmethod
    async def get_user_by_id(self, user_id: str) -> DatabaseResult[AuthUser]:
        pass


class ProfileRepository(ABC):

    @abstractmethod
    async def get_by_id(self, profile_id: str) -> DatabaseResult[Profile]:
        pass

    @abstractmethod
    async def get_by_stripe_customer_id(self, customer_id: str) -> DatabaseResult[Profile]:
        pass

    @abstractmethod
    async def create(
        self,
        profile: Union[ProfileBase, Updates],
        user_id: Optional[str] = None,
    ) -> DatabaseResult[Profile]:
        """
        Create a profile.

        Caller-supplied id and timestamps are stripped. `user_id` is the
        identity provider's id and becomes the profile id; the store only
        generates an id when no auth user exists.
        """

    @abstractmethod
    async def update(self, profile_id: str, updates: Updates) -> DatabaseResult[Profile]:
        pass

    @abstractmethod
    async def delete(self, profile_id: str) -> DatabaseResult[None]:
        pass


class SubscriptionRepository(ABC):

    @abstractmethod
    async def get_by_user_id(self, user_id: str) -> DatabaseResult[Subscription]:
        pass

    @abstractmethod
    async def get_by_stripe_subscription_id(
        self, stripe_subscription_id: str
    ) -> DatabaseResult[Subscription]:
        pass

    @abstractmethod
    async def create(
        self, subscription: Union[SubscriptionBase, Updates]
    ) -> DatabaseResult[Subscription]:
        pass

    @abstractmethod
    async def upsert(self, subscription: SubscriptionBase) -> DatabaseResult[Subscription]:
        """Insert or update keyed on stripe_subscription_id (last write wins)."""

    @abstractmethod
    async def update(self, subscription_id: str, updates: Updates) -> DatabaseResult[Subscription]:
        pass

    @abstractmethod
    async def delete(self, subscription_id: str) -> DatabaseResult[None]:
        pass

    @abstractmethod
    async def subscribe_to_changes(
        self, user_id: str, callback: SubscriptionCallback
    ) -> DatabaseResult[Unsubscribe]:
        """
        Stream changes to one user's subscription.

        The returned unsubscribe coroutine function must be awaited to
        release the underlying listener.
        """


class AgentRepository(ABC):

    @abstractmethod
    async def get_all(self, status: Optional[str] = None) -> DatabaseResult[list[AIAgent]]:
        pass

    @abstractmethod
    async def get_by_id(self, agent_id: str) -> DatabaseResult[AIAgent]:
        pass

    @abstractmethod
    async def get_by_builder_id(self, builder_id: str) -> DatabaseResult[list[AIAgent]]:
        pass

    @abstractmethod
    async def create(self, agent: Union[AIAgentBase, Updates]) -> DatabaseResult[AIAgent]:
        pass

    @abstractmethod
    async def update(self, agent_id: str, updates: Updates) -> DatabaseResult[AIAgent]:
        pass

    @abstractmethod
    async def delete(self, agent_id: str) -> DatabaseResult[None]:
        pass


class ProjectRepository(ABC):

    @abstractmethod
    async def get_all(self) -> DatabaseResult[list[Project]]:
        pass

    @abstractmethod
    async def get_by_id(self, project_id: str) -> DatabaseResult[Project]:
        pass

    @abstractmethod
    async def get_by_recruiter_id(self, recruiter_id: str) -> DatabaseResult[list[Project]]:
        pass

    @abstractmethod
    async def create(self, project: Union[ProjectBase, Updates]) -> DatabaseResult[Project]:
        pass

    @abstractmethod
    async def update(self, project_id: str, updates: Updates) -> DatabaseResult[Project]:
        pass

    @abstractmethod
    async def delete(self, project_id: str) -> DatabaseResult[None]:
        pass


class MessageRepository(ABC):

    @abstractmethod
    async def get_all(self) -> DatabaseResult[list[Message]]:
        pass

    @abstractmethod
    async def get_by_id(self, message_id: str) -> DatabaseResult[Message]:
        pass

    @abstractmethod
    async def get_by_project_id(self, project_id: str) -> DatabaseResult[list[Message]]:
        pass

    @abstractmethod
    async def get_by_users(self, user_id_1: str, user_id_2: str) -> DatabaseResult[list[Message]]:
        """Conversation between two users, in both directions."""

    @abstractmethod
    async def create(self, message: Union[MessageBase, Updates]) -> DatabaseResult[Message]:
        pass

    @abstractmethod
    async def update(self, message_id: str, updates: Updates) -> DatabaseResult[Message]:
        pass

    @abstractmethod
    async def delete(self, message_id: str) -> DatabaseResult[None]:
        pass


class ReviewRepository(ABC):

    @abstractmethod
    async def get_all(self) -> DatabaseResult[list[Review]]:
        pass

    @abstractmethod
    async def get_by_id(self, review_id: str) -> DatabaseResult[Review]:
        pass

    @abstractmethod
    async def get_by_agent_id(self, agent_id: str) -> DatabaseResult[list[Review]]:
        pass

    @abstractmethod
    async def create(self, review: Union[ReviewBase, Updates]) -> DatabaseResult[Review]:
        pass

    @abstractmethod
    async def update(self, review_id: str, updates: Updates) -> DatabaseResult[Review]:
        pass

    @abstractmethod
    async def delete(self, review_id: str) -> DatabaseResult[None]:
        pass


class DatabaseAdapter(ABC):
    """
    One capability set over a single backing store.

    Concrete adapters assign the seven repository attributes in __init__
    and validate their connection parameters there, so misconfiguration
    fails at construction rather than on first use.
    """

    name: str = ""

    auth: AuthRepository
    profiles: ProfileRepository
    subscriptions: SubscriptionRepository
    agents: AgentRepository
    projects: ProjectRepository
    messages: MessageRepository
    reviews: ReviewRepository

    @abstractmethod
    async def initialize(self) -> None:
        """Open connections. Raises on failure."""

    @abstractmethod
    async def close(self) -> None:
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """Cheap connectivity check used by the health endpoint."""


def coerce_input(model_cls, data):
    """
    Validate caller input for a create operation.

    Accepts a model instance or a mapping; server-assigned fields are
    dropped because the *Base models ignore unknown keys.
    """
    if type(data) is model_cls:
        return data
    if hasattr(data, "model_dump"):
        data = data.model_dump()
    return model_cls.model_validate(dict(data))


@functools.lru_cache(maxsize=None)
def _field_adapter(model_cls, name: str) -> TypeAdapter:
    info = model_cls.model_fields[name]
    if info.metadata:
        return TypeAdapter(Annotated[(info.annotation, *info.metadata)])
    return TypeAdapter(info.annotation)


def coerce_updates(model_cls, updates) -> dict[str, Any]:
    """
    Validate a partial update against `model_cls`, one field at a time.

    Keys may be field names or their camelCase aliases. Unknown keys and
    server-assigned fields are dropped; the result is keyed by field name.

    Raises:
        DatabaseError: INVALID_INPUT if any supplied value fails validation
    """
    if hasattr(updates, "model_dump"):
        updates = updates.model_dump(exclude_unset=True)

    names: dict[str, str] = {}
    for name, info in model_cls.model_fields.items():
        names[name] = name
        if info.alias:
            names[info.alias] = name

    clean: dict[str, Any] = {}
    problems: list[str] = []
    for key, value in dict(updates).items():
        name = names.get(key)
        if name is None or name in SERVER_FIELDS:
            continue
        try:
            clean[name] = _field_adapter(model_cls, name).validate_python(value)
        except PydanticValidationError as e:
            problems.append(f"{key}: {e.errors()[0]['msg']}")

    if problems:
        raise DatabaseError(
            f"Invalid update for {model_cls.__name__}",
            code="INVALID_INPUT",
            details="; ".join(problems),
        )
    return clean
