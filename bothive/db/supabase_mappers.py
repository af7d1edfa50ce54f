"""
Row <-> domain translation for the Supabase (PostgREST) provider.

Rows are flat snake_case dicts as returned by PostgREST. `*_from_row`
builds a domain model from a full row; `*_to_row` turns a (possibly
partial) dict of domain attributes into JSON-safe column values and never
emits server-assigned columns.
"""
import json
from typing import Any, Mapping, Optional

from pydantic_core import to_jsonable_python

from bothive.db.models import (
    AIAgent,
    Message,
    Profile,
    Project,
    Review,
    Subscription,
)
from bothive.db.models.subscription import normalize_status, normalize_tier

PROFILE_COLUMNS = {
    "full_name": "full_name",
    "role": "role",
    "email": "email",
    "avatar_url": "avatar_url",
    "stripe_customer_id": "stripe_customer_id",
}

SUBSCRIPTION_COLUMNS = {
    "user_id": "user_id",
    "tier": "tier",
    "status": "status",
    "current_period_end": "current_period_end",
    "cancel_at_period_end": "cancel_at_period_end",
    "trial_end": "trial_end",
    "stripe_customer_id": "stripe_customer_id",
    "stripe_subscription_id": "stripe_subscription_id",
}

AGENT_COLUMNS = {
    "title": "title",
    "description": "description",
    "price": "price",
    "category": "category",
    "tags": "tags",
    "rating": "rating",
    "reviews": "reviews_count",
    "image_url": "image_url",
    "features": "features",
    "status": "status",
    "moderation_notes": "moderation_notes",
    "performance": "performance",
    "metrics": "metrics",
    "tech_stack": "tech_stack",
    "requirements": "requirements",
    "updates": "updates",
    "video_url": "video_url",
    "files": "files",
}

PROJECT_COLUMNS = {
    "title": "title",
    "description": "description",
    "budget": "budget",
    "duration": "duration",
    "status": "status",
    "requirements": "requirements",
    "proposals": "proposals",
    "deadline": "deadline",
    "category": "category",
    "skills": "skills",
}

MESSAGE_COLUMNS = {
    "sender_id": "sender_id",
    "receiver_id": "receiver_id",
    "content": "content",
    "read": "read",
    "project_id": "project_id",
}

REVIEW_COLUMNS = {
    "agent_id": "agent_id",
    "user_id": "user_id",
    "user_name": "user_name",
    "user_avatar": "user_avatar",
    "rating": "rating",
    "comment": "comment",
    "helpful": "helpful_count",
}

# Review replies were written by several client versions with different keys
RESPONSE_KEY_ALIASES = {
    "from": ("from", "from_", "author", "responder"),
    "message": ("message", "text", "body"),
    "date": ("date", "created_at", "responded_at"),
}

ROLES = ("builder", "recruiter", "admin")


def _jsonable(value: Any) -> Any:
    return to_jsonable_python(value, by_alias=False)


def _rename(data: Mapping[str, Any], columns: Mapping[str, str]) -> dict[str, Any]:
    return {columns[key]: value for key, value in data.items() if key in columns}


def _ref_to_columns(ref: Any, prefix: str) -> dict[str, Any]:
    ref = _jsonable(ref) or {}
    return {
        f"{prefix}_id": ref.get("id", ""),
        f"{prefix}_name": ref.get("name", ""),
        f"{prefix}_avatar": ref.get("avatar", ""),
    }


def _json_column(value: Any, default: Any) -> Any:
    # jsonb columns occasionally come back as encoded strings
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return default
    return default if value is None else value


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

def profile_from_row(row: Mapping[str, Any]) -> Profile:
    role = row.get("role")
    return Profile(
        id=str(row["id"]),
        full_name=row.get("full_name") or "",
        role=role if role in ROLES else "builder",
        email=row.get("email") or "",
        avatar_url=row.get("avatar_url"),
        stripe_customer_id=row.get("stripe_customer_id"),
        created_at=row["created_at"],
        updated_at=row.get("updated_at") or row["created_at"],
    )


def profile_to_row(data: Mapping[str, Any]) -> dict[str, Any]:
    return _jsonable(_rename(data, PROFILE_COLUMNS))


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------

def subscription_from_row(row: Mapping[str, Any]) -> Subscription:
    return Subscription(
        id=str(row["id"]),
        user_id=str(row.get("user_id") or ""),
        tier=normalize_tier(row.get("tier")),
        status=normalize_status(row.get("status")),
        current_period_end=row["current_period_end"],
        cancel_at_period_end=bool(row.get("cancel_at_period_end")),
        trial_end=row.get("trial_end"),
        stripe_customer_id=row.get("stripe_customer_id"),
        stripe_subscription_id=row.get("stripe_subscription_id"),
    )


def subscription_to_row(data: Mapping[str, Any]) -> dict[str, Any]:
    return _jsonable(_rename(data, SUBSCRIPTION_COLUMNS))


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------

def agent_from_row(row: Mapping[str, Any]) -> AIAgent:
    return AIAgent.model_validate({
        "id": str(row["id"]),
        "title": row.get("title") or "",
        "description": row.get("description") or "",
        "price": row.get("price") or 0,
        "builder": {
            "id": row.get("builder_id") or "",
            "name": row.get("builder_name") or "",
            "avatar": row.get("builder_avatar") or "",
        },
        "category": row.get("category") or "",
        "tags": row.get("tags") or [],
        "rating": row.get("rating") or 0,
        "reviews": row.get("reviews_count") or 0,
        "image_url": row.get("image_url") or "",
        "features": row.get("features") or [],
        "created": row["created_at"],
        "status": row.get("status") or "pending",
        "moderation_notes": row.get("moderation_notes"),
        "performance": _json_column(row.get("performance"), {}),
        "metrics": _json_column(row.get("metrics"), {}),
        "tech_stack": row.get("tech_stack") or [],
        "requirements": _json_column(row.get("requirements"), {}),
        "updates": _json_column(row.get("updates"), []),
        "video_url": row.get("video_url"),
        "files": _json_column(row.get("files"), []),
    })


def agent_to_row(data: Mapping[str, Any]) -> dict[str, Any]:
    row = _rename(data, AGENT_COLUMNS)
    if "builder" in data:
        row.update(_ref_to_columns(data["builder"], "builder"))
    return _jsonable(row)


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

def project_from_row(row: Mapping[str, Any]) -> Project:
    return Project.model_validate({
        "id": str(row["id"]),
        "title": row.get("title") or "",
        "description": row.get("description") or "",
        "budget": row.get("budget") or 0,
        "duration": row.get("duration") or "",
        "status": row.get("status") or "open",
        "recruiter": {
            "id": row.get("recruiter_id") or "",
            "name": row.get("recruiter_name") or "",
            "avatar": row.get("recruiter_avatar") or "",
        },
        "requirements": row.get("requirements") or [],
        "proposals": _json_column(row.get("proposals"), []),
        "created": row["created_at"],
        "deadline": row.get("deadline"),
        "category": row.get("category") or "",
        "skills": row.get("skills") or [],
    })


def project_to_row(data: Mapping[str, Any]) -> dict[str, Any]:
    row = _rename(data, PROJECT_COLUMNS)
    if "recruiter" in data:
        row.update(_ref_to_columns(data["recruiter"], "recruiter"))
    return _jsonable(row)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

def message_from_row(row: Mapping[str, Any]) -> Message:
    return Message(
        id=str(row["id"]),
        sender_id=str(row.get("sender_id") or ""),
        receiver_id=str(row.get("receiver_id") or ""),
        content=row.get("content") or "",
        timestamp=row["created_at"],
        read=bool(row.get("read")),
        project_id=row.get("project_id"),
    )


def message_to_row(data: Mapping[str, Any]) -> dict[str, Any]:
    return _jsonable(_rename(data, MESSAGE_COLUMNS))


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------

def _first_present(raw: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def normalize_review_response(raw: Any) -> Optional[dict[str, Any]]:
    """
    Bring a stored or caller-supplied review reply to {from, message, date}.

    Used in both directions so rows written by older clients read back the
    same as rows written by this provider.
    """
    if raw is None:
        return None
    if hasattr(raw, "model_dump"):
        raw = raw.model_dump(by_alias=True)
    raw = _json_column(raw, None)
    if not isinstance(raw, Mapping) or not raw:
        return None
    return {
        "from": _first_present(raw, RESPONSE_KEY_ALIASES["from"]) or "",
        "message": _first_present(raw, RESPONSE_KEY_ALIASES["message"]) or "",
        "date": _first_present(raw, RESPONSE_KEY_ALIASES["date"]),
    }


def review_from_row(row: Mapping[str, Any]) -> Review:
    return Review.model_validate({
        "id": str(row["id"]),
        "agent_id": str(row.get("agent_id") or ""),
        "user_id": str(row.get("user_id") or ""),
        "user_name": row.get("user_name") or "",
        "user_avatar": row.get("user_avatar") or "",
        "rating": row.get("rating") or 0,
        "comment": row.get("comment") or "",
        "date": row["created_at"],
        "helpful": row.get("helpful_count") or 0,
        "response": normalize_review_response(row.get("response")),
    })


def review_to_row(data: Mapping[str, Any]) -> dict[str, Any]:
    row = _rename(data, REVIEW_COLUMNS)
    if "response" in data:
        row["response"] = normalize_review_response(data["response"])
    return _jsonable(row)
