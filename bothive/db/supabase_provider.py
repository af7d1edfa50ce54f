"""
Supabase (PostgREST) implementation of the persistence contract.

Runs with the service-role key, so it must only ever be constructed on the
server. Single-row reads use `.single()` and treat PostgREST's "no rows"
error as not-found.
"""
import asyncio
import inspect
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from postgrest.exceptions import APIError
from supabase import AsyncClient, AuthApiError, acreate_client

from bothive.core.config import DatabaseConfig
from bothive.core.errors import DatabaseError, RecordNotFoundError
from bothive.db import supabase_mappers as mappers
from bothive.db.adapter import (
    AgentRepository,
    AuthRepository,
    DatabaseAdapter,
    MessageRepository,
    ProfileRepository,
    ProjectRepository,
    ReviewRepository,
    SubscriptionRepository,
    coerce_input,
    coerce_updates,
)
from bothive.db.models import (
    AIAgentBase,
    AuthSession,
    AuthUser,
    MessageBase,
    ProfileBase,
    ProjectBase,
    ReviewBase,
    SubscriptionBase,
)
from bothive.db.result import guarded, ok

logger = logging.getLogger(__name__)

CONTEXT = "SupabaseProvider"

# PostgREST: .single() matched zero rows
NO_ROWS = "PGRST116"


def _auth_user(user: Any) -> Optional[AuthUser]:
    if user is None:
        return None
    return AuthUser(
        id=str(user.id),
        email=user.email or "",
        user_metadata=dict(user.user_metadata or {}),
    )


def _auth_session(session: Any, user: Any = None) -> Optional[AuthSession]:
    if session is None:
        return None
    return AuthSession(
        user=_auth_user(getattr(session, "user", None) or user),
        access_token=session.access_token,
        refresh_token=session.refresh_token,
    )


def _realtime_record(payload: Any) -> Optional[dict[str, Any]]:
    """Pull the changed row out of a postgres_changes payload."""
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if isinstance(data, dict) and isinstance(data.get("record"), dict):
        return data["record"]
    for key in ("new", "record"):
        if isinstance(payload.get(key), dict):
            return payload[key]
    return None


class _Repository:
    table_name = ""

    def __init__(self, adapter: "SupabaseAdapter"):
        self.adapter = adapter

    @property
    def table(self):
        return self.adapter.get_client().table(self.table_name)

    async def _single(self, column: str, value: Any) -> Optional[dict[str, Any]]:
        try:
            response = await self.table.select("*").eq(column, value).single().execute()
        except APIError as e:
            if e.code == NO_ROWS:
                return None
            raise
        return response.data

    async def _list(self, column: Optional[str] = None, value: Any = None, order: Optional[str] = None) -> list[dict[str, Any]]:
        query = self.table.select("*")
        if column is not None:
            query = query.eq(column, value)
        if order is not None:
            query = query.order(order)
        response = await query.execute()
        return response.data or []

    async def _insert(self, row: dict[str, Any]) -> dict[str, Any]:
        response = await self.table.insert(row).execute()
        if not response.data:
            raise DatabaseError(f"Insert into {self.table_name} returned no row")
        return response.data[0]

    async def _update(self, record_id: str, row: dict[str, Any]) -> Optional[dict[str, Any]]:
        if not row:
            return await self._single("id", record_id)
        response = await self.table.update(row).eq("id", record_id).execute()
        return response.data[0] if response.data else None

    async def _delete(self, record_id: str) -> None:
        response = await self.table.delete().eq("id", record_id).execute()
        if not response.data:
            raise RecordNotFoundError(self.table_name, record_id)


class SupabaseAuthRepository(AuthRepository):

    def __init__(self, adapter: "SupabaseAdapter"):
        self.adapter = adapter

    @property
    def auth(self):
        return self.adapter.get_client().auth

    @guarded(CONTEXT)
    async def get_session(self):
        return ok(_auth_session(await self.auth.get_session()))

    @guarded(CONTEXT)
    async def sign_up(self, email, password, metadata=None):
        response = await self.auth.sign_up({
            "email": email,
            "password": password,
            "options": {"data": metadata or {}},
        })
        return ok(_auth_user(response.user))

    @guarded(CONTEXT)
    async def sign_in(self, email, password):
        try:
            response = await self.auth.sign_in_with_password({"email": email, "password": password})
        except AuthApiError as e:
            # Wrong credentials are a 400 from GoTrue, not a failure
            if getattr(e, "status", None) == 400:
                logger.info("Sign in rejected: invalid credentials")
                return ok(None)
            raise
        return ok(_auth_session(response.session, response.user))

    @guarded(CONTEXT)
    async def sign_out(self):
        await self.auth.sign_out()
        return ok(None)

    @guarded(CONTEXT)
    async def get_user_by_id(self, user_id):
        try:
            response = await self.auth.admin.get_user_by_id(user_id)
        except AuthApiError as e:
            if getattr(e, "status", None) == 404:
                return ok(None)
            raise
        return ok(_auth_user(response.user))


class SupabaseProfileRepository(_Repository, ProfileRepository):
    table_name = "profiles"

    @guarded(CONTEXT)
    async def get_by_id(self, profile_id):
        row = await self._single("id", profile_id)
        return ok(mappers.profile_from_row(row) if row else None)

    @guarded(CONTEXT)
    async def get_by_stripe_customer_id(self, customer_id):
        rows = await self.table.select("*").eq("stripe_customer_id", customer_id).limit(1).execute()
        return ok(mappers.profile_from_row(rows.data[0]) if rows.data else None)

    @guarded(CONTEXT)
    async def create(self, profile, user_id=None):
        row = mappers.profile_to_row(coerce_input(ProfileBase, profile).model_dump())
        if user_id:
            row["id"] = user_id
        return ok(mappers.profile_from_row(await self._insert(row)))

    @guarded(CONTEXT)
    async def update(self, profile_id, updates):
        row = mappers.profile_to_row(coerce_updates(ProfileBase, updates))
        row["updated_at"] = datetime.now(timezone.utc).isoformat()
        updated = await self._update(profile_id, row)
        return ok(mappers.profile_from_row(updated) if updated else None)

    @guarded(CONTEXT)
    async def delete(self, profile_id):
        await self._delete(profile_id)
        return ok(None)


class SupabaseSubscriptionRepository(_Repository, SubscriptionRepository):
    table_name = "subscriptions"

    def __init__(self, adapter: "SupabaseAdapter"):
        super().__init__(adapter)
        # Strong references to in-flight async change callbacks
        self._pending: set[asyncio.Future] = set()

    @guarded(CONTEXT)
    async def get_by_user_id(self, user_id):
        rows = await self.table.select("*").eq("user_id", user_id).limit(1).execute()
        return ok(mappers.subscription_from_row(rows.data[0]) if rows.data else None)

    @guarded(CONTEXT)
    async def get_by_stripe_subscription_id(self, stripe_subscription_id):
        row = await self._single("stripe_subscription_id", stripe_subscription_id)
        return ok(mappers.subscription_from_row(row) if row else None)

    @guarded(CONTEXT)
    async def create(self, subscription):
        row = mappers.subscription_to_row(coerce_input(SubscriptionBase, subscription).model_dump())
        return ok(mappers.subscription_from_row(await self._insert(row)))

    @guarded(CONTEXT)
    async def upsert(self, subscription):
        row = mappers.subscription_to_row(coerce_input(SubscriptionBase, subscription).model_dump())
        response = await self.table.upsert(row, on_conflict="stripe_subscription_id").execute()
        if not response.data:
            raise DatabaseError("Upsert into subscriptions returned no row")
        return ok(mappers.subscription_from_row(response.data[0]))

    @guarded(CONTEXT)
    async def update(self, subscription_id, updates):
        row = mappers.subscription_to_row(coerce_updates(SubscriptionBase, updates))
        updated = await self._update(subscription_id, row)
        return ok(mappers.subscription_from_row(updated) if updated else None)

    @guarded(CONTEXT)
    async def delete(self, subscription_id):
        await self._delete(subscription_id)
        return ok(None)

    @guarded(CONTEXT)
    async def subscribe_to_changes(self, user_id, callback):
        client = self.adapter.get_client()
        tasks: set[asyncio.Future] = set()

        def finished(task: asyncio.Future) -> None:
            tasks.discard(task)
            self._pending.discard(task)
            if not task.cancelled() and task.exception() is not None:
                logger.error(
                    f"[{CONTEXT}]: subscription change handler failed for user_id={user_id}: {task.exception()}"
                )

        def handle_change(payload):
            record = _realtime_record(payload)
            # The server filter is advisory; never leak another user's row
            if not record or str(record.get("user_id")) != str(user_id):
                return
            try:
                result = callback(mappers.subscription_from_row(record))
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    tasks.add(task)
                    self._pending.add(task)
                    task.add_done_callback(finished)
            except Exception as e:
                logger.error(f"[{CONTEXT}]: subscription change handler failed for user_id={user_id}: {e}")

        channel = client.channel(f"subscription_changes:{user_id}")
        channel.on_postgres_changes(
            "*",
            callback=handle_change,
            table="subscriptions",
            schema="public",
            filter=f"user_id=eq.{user_id}",
        )
        await channel.subscribe()
        logger.info(f"Subscribed to subscription changes for user_id={user_id}")

        async def unsubscribe() -> None:
            await client.remove_channel(channel)
            for task in list(tasks):
                task.cancel()
            logger.info(f"Unsubscribed from subscription changes for user_id={user_id}")

        return ok(unsubscribe)


class SupabaseAgentRepository(_Repository, AgentRepository):
    table_name = "agents"

    @guarded(CONTEXT)
    async def get_all(self, status=None):
        rows = await self._list("status" if status else None, status)
        return ok([mappers.agent_from_row(row) for row in rows])

    @guarded(CONTEXT)
    async def get_by_id(self, agent_id):
        row = await self._single("id", agent_id)
        return ok(mappers.agent_from_row(row) if row else None)

    @guarded(CONTEXT)
    async def get_by_builder_id(self, builder_id):
        rows = await self._list("builder_id", builder_id)
        return ok([mappers.agent_from_row(row) for row in rows])

    @guarded(CONTEXT)
    async def create(self, agent):
        row = mappers.agent_to_row(dict(coerce_input(AIAgentBase, agent)))
        return ok(mappers.agent_from_row(await self._insert(row)))

    @guarded(CONTEXT)
    async def update(self, agent_id, updates):
        row = mappers.agent_to_row(coerce_updates(AIAgentBase, updates))
        updated = await self._update(agent_id, row)
        return ok(mappers.agent_from_row(updated) if updated else None)

    @guarded(CONTEXT)
    async def delete(self, agent_id):
        await self._delete(agent_id)
        return ok(None)


class SupabaseProjectRepository(_Repository, ProjectRepository):
    table_name = "projects"

    @guarded(CONTEXT)
    async def get_all(self):
        return ok([mappers.project_from_row(row) for row in await self._list()])

    @guarded(CONTEXT)
    async def get_by_id(self, project_id):
        row = await self._single("id", project_id)
        return ok(mappers.project_from_row(row) if row else None)

    @guarded(CONTEXT)
    async def get_by_recruiter_id(self, recruiter_id):
        rows = await self._list("recruiter_id", recruiter_id)
        return ok([mappers.project_from_row(row) for row in rows])

    @guarded(CONTEXT)
    async def create(self, project):
        row = mappers.project_to_row(dict(coerce_input(ProjectBase, project)))
        return ok(mappers.project_from_row(await self._insert(row)))

    @guarded(CONTEXT)
    async def update(self, project_id, updates):
        row = mappers.project_to_row(coerce_updates(ProjectBase, updates))
        updated = await self._update(project_id, row)
        return ok(mappers.project_from_row(updated) if updated else None)

    @guarded(CONTEXT)
    async def delete(self, project_id):
        await self._delete(project_id)
        return ok(None)


class SupabaseMessageRepository(_Repository, MessageRepository):
    table_name = "messages"

    @guarded(CONTEXT)
    async def get_all(self):
        rows = await self._list(order="created_at")
        return ok([mappers.message_from_row(row) for row in rows])

    @guarded(CONTEXT)
    async def get_by_id(self, message_id):
        row = await self._single("id", message_id)
        return ok(mappers.message_from_row(row) if row else None)

    @guarded(CONTEXT)
    async def get_by_project_id(self, project_id):
        rows = await self._list("project_id", project_id, order="created_at")
        return ok([mappers.message_from_row(row) for row in rows])

    @guarded(CONTEXT)
    async def get_by_users(self, user_id_1, user_id_2):
        response = await (
            self.table.select("*")
            .or_(
                f"and(sender_id.eq.{user_id_1},receiver_id.eq.{user_id_2}),"
                f"and(sender_id.eq.{user_id_2},receiver_id.eq.{user_id_1})"
            )
            .order("created_at")
            .execute()
        )
        return ok([mappers.message_from_row(row) for row in response.data or []])

    @guarded(CONTEXT)
    async def create(self, message):
        row = mappers.message_to_row(coerce_input(MessageBase, message).model_dump())
        return ok(mappers.message_from_row(await self._insert(row)))

    @guarded(CONTEXT)
    async def update(self, message_id, updates):
        row = mappers.message_to_row(coerce_updates(MessageBase, updates))
        updated = await self._update(message_id, row)
        return ok(mappers.message_from_row(updated) if updated else None)

    @guarded(CONTEXT)
    async def delete(self, message_id):
        await self._delete(message_id)
        return ok(None)


class SupabaseReviewRepository(_Repository, ReviewRepository):
    table_name = "reviews"

    @guarded(CONTEXT)
    async def get_all(self):
        return ok([mappers.review_from_row(row) for row in await self._list()])

    @guarded(CONTEXT)
    async def get_by_id(self, review_id):
        row = await self._single("id", review_id)
        return ok(mappers.review_from_row(row) if row else None)

    @guarded(CONTEXT)
    async def get_by_agent_id(self, agent_id):
        rows = await self._list("agent_id", agent_id)
        return ok([mappers.review_from_row(row) for row in rows])

    @guarded(CONTEXT)
    async def create(self, review):
        row = mappers.review_to_row(dict(coerce_input(ReviewBase, review)))
        return ok(mappers.review_from_row(await self._insert(row)))

    @guarded(CONTEXT)
    async def update(self, review_id, updates):
        row = mappers.review_to_row(coerce_updates(ReviewBase, updates))
        updated = await self._update(review_id, row)
        return ok(mappers.review_from_row(updated) if updated else None)

    @guarded(CONTEXT)
    async def delete(self, review_id):
        await self._delete(review_id)
        return ok(None)


class SupabaseAdapter(DatabaseAdapter):
    """Relational provider backed by the async Supabase client."""

    name = "supabase"

    def __init__(self, config: DatabaseConfig, client: Optional[AsyncClient] = None):
        if not config.supabase_url or not config.supabase_service_role_key:
            raise DatabaseError("Supabase configuration is missing")
        self.config = config
        self.client = client

        self.auth = SupabaseAuthRepository(self)
        self.profiles = SupabaseProfileRepository(self)
        self.subscriptions = SupabaseSubscriptionRepository(self)
        self.agents = SupabaseAgentRepository(self)
        self.projects = SupabaseProjectRepository(self)
        self.messages = SupabaseMessageRepository(self)
        self.reviews = SupabaseReviewRepository(self)

    def get_client(self) -> AsyncClient:
        if self.client is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self.client

    async def initialize(self) -> None:
        if self.client is None:
            self.client = await acreate_client(
                self.config.supabase_url,
                self.config.supabase_service_role_key,
            )
        logger.info("Supabase client initialized")

    async def close(self) -> None:
        if self.client is None:
            return
        try:
            await self.client.remove_all_channels()
        except Exception as e:
            logger.warning(f"[{CONTEXT}]: failed to release realtime channels: {e}")
        self.client = None
        logger.info("Supabase client closed")

    async def ping(self) -> bool:
        try:
            await self.get_client().table("profiles").select("id").limit(1).execute()
            return True
        except Exception as e:
            logger.warning(f"[{CONTEXT}]: ping failed: {e}")
            return False
