"""
Document <-> domain translation for the MongoDB provider.

Documents keep the native `_id: ObjectId` and BSON datetimes; domain
objects only ever see `str(ObjectId)` ids and timezone-aware datetimes.
"""
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel

from bothive.db.models import (
    AIAgent,
    AIAgentBase,
    AuthUser,
    Message,
    MessageBase,
    Profile,
    ProfileBase,
    Project,
    ProjectBase,
    Review,
    ReviewBase,
    Subscription,
    SubscriptionBase,
)
from bothive.db.models.subscription import normalize_status, normalize_tier

ROLES = ("builder", "recruiter", "admin")
PROPOSAL_STATUSES = ("pending", "accepted", "rejected")

# Domain attribute -> document field, where they differ
AGENT_FIELDS = {"title": "name"}
SUBSCRIPTION_FIELDS = {"tier": "plan"}


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse a public id; anything that is not a valid ObjectId maps to None."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def _aware(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _plain(value: Any) -> Any:
    """Flatten pydantic models to BSON-friendly values, keeping datetimes."""
    if isinstance(value, BaseModel):
        return _plain(value.model_dump())
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


def _ref_fields(ref: Any, prefix: str) -> dict[str, Any]:
    ref = _plain(ref) or {}
    return {
        f"{prefix}_id": ref.get("id", ""),
        f"{prefix}_name": ref.get("name", ""),
        f"{prefix}_avatar": ref.get("avatar", ""),
    }


def _rename(
    data: Mapping[str, Any],
    model_cls: type[BaseModel],
    fields: Optional[Mapping[str, str]] = None,
) -> dict[str, Any]:
    fields = fields or {}
    # Keys the model does not declare never reach the document
    return {
        fields.get(key, key): _plain(value)
        for key, value in data.items()
        if key in model_cls.model_fields
    }


# ---------------------------------------------------------------------------
# Users / profiles
# ---------------------------------------------------------------------------

def user_from_doc(doc: Mapping[str, Any]) -> AuthUser:
    return AuthUser(
        id=str(doc["_id"]),
        email=doc.get("email") or "",
        user_metadata=doc.get("user_metadata") or {},
    )


def profile_from_doc(doc: Mapping[str, Any]) -> Profile:
    role = doc.get("role")
    created_at = _aware(doc["created_at"])
    return Profile(
        id=str(doc["_id"]),
        full_name=doc.get("full_name") or "",
        role=role if role in ROLES else "builder",
        email=doc.get("email") or "",
        avatar_url=doc.get("avatar_url"),
        stripe_customer_id=doc.get("stripe_customer_id"),
        created_at=created_at,
        updated_at=_aware(doc.get("updated_at")) or created_at,
    )


def profile_to_doc(data: Mapping[str, Any]) -> dict[str, Any]:
    return _rename(data, ProfileBase)


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------

def subscription_from_doc(doc: Mapping[str, Any]) -> Subscription:
    return Subscription(
        id=str(doc["_id"]),
        user_id=str(doc.get("user_id") or ""),
        tier=normalize_tier(doc.get("plan")),
        status=normalize_status(doc.get("status")),
        current_period_end=_aware(doc.get("current_period_end") or doc.get("updated_at")),
        cancel_at_period_end=bool(doc.get("cancel_at_period_end")),
        trial_end=_aware(doc.get("trial_end")),
        stripe_customer_id=doc.get("stripe_customer_id"),
        stripe_subscription_id=doc.get("stripe_subscription_id"),
    )


def subscription_to_doc(data: Mapping[str, Any]) -> dict[str, Any]:
    return _rename(data, SubscriptionBase, SUBSCRIPTION_FIELDS)


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------

def agent_from_doc(doc: Mapping[str, Any]) -> AIAgent:
    updates = [
        {**update, "date": _aware(update.get("date")) or _aware(doc["created_at"])}
        for update in doc.get("updates") or []
        if isinstance(update, Mapping)
    ]
    return AIAgent.model_validate({
        "id": str(doc["_id"]),
        "title": doc.get("name") or "",
        "description": doc.get("description") or "",
        "price": doc.get("price") or 0,
        "builder": {
            "id": doc.get("builder_id") or "",
            "name": doc.get("builder_name") or "",
            "avatar": doc.get("builder_avatar") or "",
        },
        "category": doc.get("category") or "",
        "tags": doc.get("tags") or [],
        "rating": doc.get("rating") or 0,
        "reviews": doc.get("reviews") or 0,
        "image_url": doc.get("image_url") or "",
        "features": doc.get("features") or [],
        "created": _aware(doc["created_at"]),
        "status": doc.get("status") or "pending",
        "moderation_notes": doc.get("moderation_notes"),
        "performance": doc.get("performance") or {},
        "metrics": doc.get("metrics") or {},
        "tech_stack": doc.get("tech_stack") or [],
        "requirements": doc.get("requirements") or {},
        "updates": updates,
        "video_url": doc.get("video_url"),
        "files": doc.get("files") or [],
    })


def agent_to_doc(data: Mapping[str, Any]) -> dict[str, Any]:
    doc = _rename({k: v for k, v in data.items() if k != "builder"}, AIAgentBase, AGENT_FIELDS)
    if "builder" in data:
        doc.update(_ref_fields(data["builder"], "builder"))
    return doc


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

def _proposal_from_doc(proposal: Mapping[str, Any], project_id: str) -> dict[str, Any]:
    status = proposal.get("status")
    proposal_id = proposal.get("_id") or proposal.get("id")
    return {
        "id": str(proposal_id) if proposal_id else "",
        "project_id": proposal.get("project_id") or project_id,
        "builder": {
            "id": proposal.get("builder_id") or "",
            "name": proposal.get("builder_name") or "",
            "avatar": proposal.get("builder_avatar") or "",
            "rating": proposal.get("builder_rating") or 0,
            "completed_projects": proposal.get("builder_completed_projects") or 0,
        },
        "amount": proposal.get("amount") or 0,
        "duration": proposal.get("duration") or "",
        "cover_letter": proposal.get("cover_letter") or "",
        "status": status if status in PROPOSAL_STATUSES else "pending",
        "created": _aware(proposal.get("created_at")),
    }


def _proposal_to_doc(proposal: Any) -> dict[str, Any]:
    proposal = _plain(proposal)
    builder = proposal.get("builder") or {}
    return {
        "id": proposal.get("id", ""),
        "project_id": proposal.get("project_id", ""),
        "builder_id": builder.get("id", ""),
        "builder_name": builder.get("name", ""),
        "builder_avatar": builder.get("avatar", ""),
        "builder_rating": builder.get("rating", 0),
        "builder_completed_projects": builder.get("completed_projects", 0),
        "amount": proposal.get("amount", 0),
        "duration": proposal.get("duration", ""),
        "cover_letter": proposal.get("cover_letter", ""),
        "status": proposal.get("status", "pending"),
        "created_at": proposal.get("created"),
    }


def project_from_doc(doc: Mapping[str, Any]) -> Project:
    project_id = str(doc["_id"])
    return Project.model_validate({
        "id": project_id,
        "title": doc.get("title") or "",
        "description": doc.get("description") or "",
        "budget": doc.get("budget") or 0,
        "duration": doc.get("duration") or "",
        "status": doc.get("status") or "open",
        "recruiter": {
            "id": doc.get("recruiter_id") or "",
            "name": doc.get("recruiter_name") or "",
            "avatar": doc.get("recruiter_avatar") or "",
        },
        "requirements": doc.get("requirements") or [],
        "proposals": [
            _proposal_from_doc(p, project_id)
            for p in doc.get("proposals") or []
            if isinstance(p, Mapping)
        ],
        "created": _aware(doc["created_at"]),
        "deadline": _aware(doc.get("deadline")),
        "category": doc.get("category") or "",
        "skills": doc.get("skills") or [],
    })


def project_to_doc(data: Mapping[str, Any]) -> dict[str, Any]:
    doc = _rename({k: v for k, v in data.items() if k not in ("recruiter", "proposals")}, ProjectBase)
    if "recruiter" in data:
        doc.update(_ref_fields(data["recruiter"], "recruiter"))
    if "proposals" in data:
        doc["proposals"] = [_proposal_to_doc(p) for p in data["proposals"] or []]
    return doc


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

def message_from_doc(doc: Mapping[str, Any]) -> Message:
    return Message(
        id=str(doc["_id"]),
        sender_id=str(doc.get("sender_id") or ""),
        receiver_id=str(doc.get("receiver_id") or ""),
        content=doc.get("content") or "",
        timestamp=_aware(doc["created_at"]),
        read=bool(doc.get("read")),
        project_id=doc.get("project_id"),
    )


def message_to_doc(data: Mapping[str, Any]) -> dict[str, Any]:
    return _rename(data, MessageBase)


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------

def _response_to_doc(response: Any) -> Optional[dict[str, Any]]:
    if response is None:
        return None
    if isinstance(response, BaseModel):
        response = response.model_dump(by_alias=True)
    return {
        "from": response.get("from") or response.get("from_") or "",
        "message": response.get("message") or "",
        "date": response.get("date"),
    }


def review_from_doc(doc: Mapping[str, Any]) -> Review:
    response = doc.get("response")
    return Review.model_validate({
        "id": str(doc["_id"]),
        "agent_id": str(doc.get("agent_id") or ""),
        "user_id": str(doc.get("user_id") or ""),
        "user_name": doc.get("user_name") or "",
        "user_avatar": doc.get("user_avatar") or "",
        "rating": doc.get("rating") or 0,
        "comment": doc.get("comment") or "",
        "date": _aware(doc["created_at"]),
        "helpful": doc.get("helpful") or 0,
        "response": {
            "from": response.get("from") or "",
            "message": response.get("message") or "",
            "date": _aware(response.get("date")),
        } if isinstance(response, Mapping) else None,
    })


def review_to_doc(data: Mapping[str, Any]) -> dict[str, Any]:
    doc = _rename({k: v for k, v in data.items() if k != "response"}, ReviewBase)
    if "response" in data:
        doc["response"] = _response_to_doc(data["response"])
    return doc
