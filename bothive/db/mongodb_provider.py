"""
MongoDB implementation of the persistence contract, on the Motor driver.

Auth lives in a `users` collection with bcrypt hashes; sessions are carried
by JWTs, so get_session/sign_out have nothing to do server-side.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from bothive.core.config import DatabaseConfig
from bothive.core.errors import DatabaseError, RecordNotFoundError
from bothive.core.security import hash_password, verify_password
from bothive.db import mongodb_mappers as mappers
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
    SERVER_FIELDS,
    AIAgentBase,
    AuthSession,
    MessageBase,
    ProfileBase,
    ProjectBase,
    ReviewBase,
    SubscriptionBase,
)
from bothive.db.result import guarded, ok

logger = logging.getLogger(__name__)

CONTEXT = "MongoDBProvider"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _strip_server_fields(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k not in SERVER_FIELDS and k != "_id"}


class _Repository:
    collection_name = ""

    def __init__(self, adapter: "MongoDBAdapter"):
        self.adapter = adapter

    @property
    def collection(self):
        return self.adapter.get_db()[self.collection_name]

    async def _find_by_id(self, record_id: str) -> Optional[dict[str, Any]]:
        oid = mappers.to_object_id(record_id)
        if oid is None:
            return None
        return await self.collection.find_one({"_id": oid})

    async def _find_many(self, query: dict[str, Any], sort: Optional[str] = None) -> list[dict[str, Any]]:
        cursor = self.collection.find(query)
        if sort is not None:
            cursor = cursor.sort(sort, ASCENDING)
        return await cursor.to_list(length=None)

    async def _insert(self, doc: dict[str, Any], record_id: Optional[ObjectId] = None) -> dict[str, Any]:
        now = _now()
        doc = {**doc, "_id": record_id or ObjectId(), "created_at": now, "updated_at": now}
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    async def _update(self, record_id: str, doc: dict[str, Any]) -> Optional[dict[str, Any]]:
        oid = mappers.to_object_id(record_id)
        if oid is None:
            return None
        return await self.collection.find_one_and_update(
            {"_id": oid},
            {"$set": {**_strip_server_fields(doc), "updated_at": _now()}},
            return_document=ReturnDocument.AFTER,
        )

    async def _delete(self, record_id: str) -> None:
        oid = mappers.to_object_id(record_id)
        result = await self.collection.delete_one({"_id": oid}) if oid is not None else None
        if result is None or result.deleted_count == 0:
            raise RecordNotFoundError(self.collection_name, record_id)


class MongoAuthRepository(_Repository, AuthRepository):
    collection_name = "users"

    @guarded(CONTEXT)
    async def get_session(self):
        return ok(None)

    @guarded(CONTEXT)
    async def sign_up(self, email, password, metadata=None):
        if await self.collection.find_one({"email": email}):
            raise DatabaseError("User already exists", code="USER_EXISTS")
        try:
            doc = await self._insert({
                "email": email,
                "password_hash": hash_password(password),
                "user_metadata": metadata or {},
            })
        except DuplicateKeyError:
            # Lost a race with a concurrent sign-up for the same email
            raise DatabaseError("User already exists", code="USER_EXISTS")
        logger.info(f"User registered: user_id={doc['_id']}")
        return ok(mappers.user_from_doc(doc))

    @guarded(CONTEXT)
    async def sign_in(self, email, password):
        doc = await self.collection.find_one({"email": email})
        if not doc or not verify_password(password, doc.get("password_hash") or ""):
            logger.info("Sign in rejected: invalid credentials")
            return ok(None)
        return ok(AuthSession(user=mappers.user_from_doc(doc)))

    @guarded(CONTEXT)
    async def sign_out(self):
        return ok(None)

    @guarded(CONTEXT)
    async def get_user_by_id(self, user_id):
        doc = await self._find_by_id(user_id)
        return ok(mappers.user_from_doc(doc) if doc else None)


class MongoProfileRepository(_Repository, ProfileRepository):
    collection_name = "profiles"

    @guarded(CONTEXT)
    async def get_by_id(self, profile_id):
        doc = await self._find_by_id(profile_id)
        return ok(mappers.profile_from_doc(doc) if doc else None)

    @guarded(CONTEXT)
    async def get_by_stripe_customer_id(self, customer_id):
        doc = await self.collection.find_one({"stripe_customer_id": customer_id})
        return ok(mappers.profile_from_doc(doc) if doc else None)

    @guarded(CONTEXT)
    async def create(self, profile, user_id=None):
        record_id = None
        if user_id:
            record_id = mappers.to_object_id(user_id)
            if record_id is None:
                raise DatabaseError(f"Invalid user id: {user_id}", code="INVALID_ID")
        doc = mappers.profile_to_doc(coerce_input(ProfileBase, profile).model_dump())
        return ok(mappers.profile_from_doc(await self._insert(doc, record_id)))

    @guarded(CONTEXT)
    async def update(self, profile_id, updates):
        doc = mappers.profile_to_doc(coerce_updates(ProfileBase, updates))
        doc = await self._update(profile_id, doc)
        return ok(mappers.profile_from_doc(doc) if doc else None)

    @guarded(CONTEXT)
    async def delete(self, profile_id):
        await self._delete(profile_id)
        return ok(None)


class MongoSubscriptionRepository(_Repository, SubscriptionRepository):
    collection_name = "subscriptions"

    @guarded(CONTEXT)
    async def get_by_user_id(self, user_id):
        doc = await self.collection.find_one({"user_id": user_id})
        return ok(mappers.subscription_from_doc(doc) if doc else None)

    @guarded(CONTEXT)
    async def get_by_stripe_subscription_id(self, stripe_subscription_id):
        doc = await self.collection.find_one({"stripe_subscription_id": stripe_subscription_id})
        return ok(mappers.subscription_from_doc(doc) if doc else None)

    @guarded(CONTEXT)
    async def create(self, subscription):
        doc = mappers.subscription_to_doc(coerce_input(SubscriptionBase, subscription).model_dump())
        return ok(mappers.subscription_from_doc(await self._insert(doc)))

    @guarded(CONTEXT)
    async def upsert(self, subscription):
        doc = mappers.subscription_to_doc(coerce_input(SubscriptionBase, subscription).model_dump())
        now = _now()
        saved = await self.collection.find_one_and_update(
            {"stripe_subscription_id": doc["stripe_subscription_id"]},
            {"$set": {**doc, "updated_at": now}, "$setOnInsert": {"created_at": now}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return ok(mappers.subscription_from_doc(saved))

    @guarded(CONTEXT)
    async def update(self, subscription_id, updates):
        doc = mappers.subscription_to_doc(coerce_updates(SubscriptionBase, updates))
        doc = await self._update(subscription_id, doc)
        return ok(mappers.subscription_from_doc(doc) if doc else None)

    @guarded(CONTEXT)
    async def delete(self, subscription_id):
        await self._delete(subscription_id)
        return ok(None)

    @guarded(CONTEXT)
    async def subscribe_to_changes(self, user_id, callback):
        # No change stream here; callers get a listener that never fires
        async def unsubscribe() -> None:
            return None

        return ok(unsubscribe)


class MongoAgentRepository(_Repository, AgentRepository):
    collection_name = "agents"

    @guarded(CONTEXT)
    async def get_all(self, status=None):
        docs = await self._find_many({"status": status} if status else {})
        return ok([mappers.agent_from_doc(doc) for doc in docs])

    @guarded(CONTEXT)
    async def get_by_id(self, agent_id):
        doc = await self._find_by_id(agent_id)
        return ok(mappers.agent_from_doc(doc) if doc else None)

    @guarded(CONTEXT)
    async def get_by_builder_id(self, builder_id):
        docs = await self._find_many({"builder_id": builder_id})
        return ok([mappers.agent_from_doc(doc) for doc in docs])

    @guarded(CONTEXT)
    async def create(self, agent):
        doc = mappers.agent_to_doc(dict(coerce_input(AIAgentBase, agent)))
        return ok(mappers.agent_from_doc(await self._insert(doc)))

    @guarded(CONTEXT)
    async def update(self, agent_id, updates):
        doc = mappers.agent_to_doc(coerce_updates(AIAgentBase, updates))
        doc = await self._update(agent_id, doc)
        return ok(mappers.agent_from_doc(doc) if doc else None)

    @guarded(CONTEXT)
    async def delete(self, agent_id):
        await self._delete(agent_id)
        return ok(None)


class MongoProjectRepository(_Repository, ProjectRepository):
    collection_name = "projects"

    @guarded(CONTEXT)
    async def get_all(self):
        return ok([mappers.project_from_doc(doc) for doc in await self._find_many({})])

    @guarded(CONTEXT)
    async def get_by_id(self, project_id):
        doc = await self._find_by_id(project_id)
        return ok(mappers.project_from_doc(doc) if doc else None)

    @guarded(CONTEXT)
    async def get_by_recruiter_id(self, recruiter_id):
        docs = await self._find_many({"recruiter_id": recruiter_id})
        return ok([mappers.project_from_doc(doc) for doc in docs])

    @guarded(CONTEXT)
    async def create(self, project):
        doc = mappers.project_to_doc(dict(coerce_input(ProjectBase, project)))
        return ok(mappers.project_from_doc(await self._insert(doc)))

    @guarded(CONTEXT)
    async def update(self, project_id, updates):
        doc = mappers.project_to_doc(coerce_updates(ProjectBase, updates))
        doc = await self._update(project_id, doc)
        return ok(mappers.project_from_doc(doc) if doc else None)

    @guarded(CONTEXT)
    async def delete(self, project_id):
        await self._delete(project_id)
        return ok(None)


class MongoMessageRepository(_Repository, MessageRepository):
    collection_name = "messages"

    @guarded(CONTEXT)
    async def get_all(self):
        docs = await self._find_many({}, sort="created_at")
        return ok([mappers.message_from_doc(doc) for doc in docs])

    @guarded(CONTEXT)
    async def get_by_id(self, message_id):
        doc = await self._find_by_id(message_id)
        return ok(mappers.message_from_doc(doc) if doc else None)

    @guarded(CONTEXT)
    async def get_by_project_id(self, project_id):
        docs = await self._find_many({"project_id": project_id}, sort="created_at")
        return ok([mappers.message_from_doc(doc) for doc in docs])

    @guarded(CONTEXT)
    async def get_by_users(self, user_id_1, user_id_2):
        docs = await self._find_many(
            {"$or": [
                {"sender_id": user_id_1, "receiver_id": user_id_2},
                {"sender_id": user_id_2, "receiver_id": user_id_1},
            ]},
            sort="created_at",
        )
        return ok([mappers.message_from_doc(doc) for doc in docs])

    @guarded(CONTEXT)
    async def create(self, message):
        doc = mappers.message_to_doc(coerce_input(MessageBase, message).model_dump())
        return ok(mappers.message_from_doc(await self._insert(doc)))

    @guarded(CONTEXT)
    async def update(self, message_id, updates):
        doc = mappers.message_to_doc(coerce_updates(MessageBase, updates))
        doc = await self._update(message_id, doc)
        return ok(mappers.message_from_doc(doc) if doc else None)

    @guarded(CONTEXT)
    async def delete(self, message_id):
        await self._delete(message_id)
        return ok(None)


class MongoReviewRepository(_Repository, ReviewRepository):
    collection_name = "reviews"

    @guarded(CONTEXT)
    async def get_all(self):
        return ok([mappers.review_from_doc(doc) for doc in await self._find_many({})])

    @guarded(CONTEXT)
    async def get_by_id(self, review_id):
        doc = await self._find_by_id(review_id)
        return ok(mappers.review_from_doc(doc) if doc else None)

    @guarded(CONTEXT)
    async def get_by_agent_id(self, agent_id):
        docs = await self._find_many({"agent_id": agent_id})
        return ok([mappers.review_from_doc(doc) for doc in docs])

    @guarded(CONTEXT)
    async def create(self, review):
        doc = mappers.review_to_doc(dict(coerce_input(ReviewBase, review)))
        return ok(mappers.review_from_doc(await self._insert(doc)))

    @guarded(CONTEXT)
    async def update(self, review_id, updates):
        doc = mappers.review_to_doc(coerce_updates(ReviewBase, updates))
        doc = await self._update(review_id, doc)
        return ok(mappers.review_from_doc(doc) if doc else None)

    @guarded(CONTEXT)
    async def delete(self, review_id):
        await self._delete(review_id)
        return ok(None)


class MongoDBAdapter(DatabaseAdapter):
    """Document provider backed by Motor."""

    name = "mongodb"

    def __init__(
        self,
        config: DatabaseConfig,
        client: Optional[AsyncIOMotorClient] = None,
    ):
        if not config.mongodb_uri:
            raise DatabaseError("MongoDB configuration is missing")
        self.config = config
        self.client = client
        self.db: Optional[AsyncIOMotorDatabase] = None

        self.auth = MongoAuthRepository(self)
        self.profiles = MongoProfileRepository(self)
        self.subscriptions = MongoSubscriptionRepository(self)
        self.agents = MongoAgentRepository(self)
        self.projects = MongoProjectRepository(self)
        self.messages = MongoMessageRepository(self)
        self.reviews = MongoReviewRepository(self)

    def get_db(self) -> AsyncIOMotorDatabase:
        if self.db is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self.db

    async def initialize(self) -> None:
        if self.client is None:
            self.client = AsyncIOMotorClient(self.config.mongodb_uri, tz_aware=True)
        self.db = self.client[self.config.mongodb_database]
        await self.client.admin.command("ping")

        await self.db["subscriptions"].create_index("stripe_subscription_id", unique=True, sparse=True)
        await self.db["users"].create_index("email", unique=True)
        await self.db["profiles"].create_index("stripe_customer_id")
        logger.info(f"Connected to MongoDB database={self.config.mongodb_database}")

    async def close(self) -> None:
        if self.client is not None:
            self.client.close()
            logger.info("Disconnected from MongoDB")
        self.client = None
        self.db = None

    async def ping(self) -> bool:
        if self.client is None:
            return False
        try:
            await self.client.admin.command("ping")
            return True
        except Exception as e:
            logger.warning(f"[{CONTEXT}]: ping failed: {e}")
            return False
