import math
import re
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from flask import current_app, has_app_context, request
from pymongo.errors import PyMongoError

from .errors import ValidationError

ALLOWED_USER_ROLES = ("user", "moderator", "admin")
PRODUCT_STATUSES = ("pending", "accepted", "rejected")
MAX_PAGE_SIZE = 100

email_regex = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def utcnow() -> datetime:
    return datetime.utcnow()


def normalize_email(value: Optional[str]) -> str:
    return str(value or "").strip().lower()


def is_valid_email(value: Optional[str]) -> bool:
    normalized = normalize_email(value)
    return bool(normalized and email_regex.match(normalized))


def normalize_role(value: Optional[str]) -> str:
    normalized = str(value or "").strip().lower()
    return normalized if normalized in ALLOWED_USER_ROLES else "user"


def default_admin_email() -> str:
    if not has_app_context():
        return ""
    return normalize_email(current_app.config.get("DEFAULT_ADMIN_EMAIL"))


def get_user_role(user_document) -> str:
    if not user_document:
        return "user"

    email = normalize_email(user_document.get("email"))
    admin_email = default_admin_email()
    if admin_email and email == admin_email:
        return "admin"

    return normalize_role(user_document.get("role", "user"))


def parse_object_id(value, label: str = "resource") -> ObjectId:
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {label} identifier.")


def serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat() + "Z"
    if isinstance(value, dict):
        return {str(key): serialize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]
    return value


def serialize_document(document) -> Dict:
    """Render a stored document as JSON-safe data with a string ``id``."""
    if not document:
        return {}
    serialized = {
        key: serialize_value(value) for key, value in document.items() if key != "_id"
    }
    if "_id" in document:
        serialized["id"] = str(document["_id"])
    return serialized


def request_json() -> Dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object.")
    return payload


def clean_payload(payload, protected_fields) -> Dict:
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object.")
    # Dotted or operator keys would let $set reach into protected fields.
    return {
        str(key): value
        for key, value in payload.items()
        if str(key) not in protected_fields
        and not str(key).startswith("$")
        and "." not in str(key)
    }


def parse_pagination(args, default_limit: int = 10) -> Tuple[int, int]:
    try:
        page = max(int(args.get("page", 1)), 1)
        limit = min(max(int(args.get("limit", default_limit)), 1), MAX_PAGE_SIZE)
    except (TypeError, ValueError):
        raise ValidationError("`page` and `limit` must be whole numbers.")
    return page, limit


def build_pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if total else 0,
    }


def parse_iso_date(value: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    """Parse a log filter bound into a naive UTC datetime.

    A bare ``YYYY-MM-DD`` used as an upper bound covers that whole day.
    """
    text = str(value or "").strip()
    if not text:
        return None
    try:
        if len(text) == 10:
            day = datetime.strptime(text, "%Y-%m-%d")
            return day + timedelta(days=1) if end_of_day else day
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"`{text}` is not an ISO 8601 date.")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def sanitize_metadata(metadata: Optional[Dict]) -> Dict[str, str]:
    if not isinstance(metadata, dict):
        return {}
    return {str(key): str(value) for key, value in metadata.items() if value is not None}


def record_audit_log(db, actor_email: Optional[str], action: str, metadata: Optional[Dict] = None):
    """Append an entry to ``audit_logs``; a failed write is logged, not raised."""
    if not action:
        return
    email = normalize_email(actor_email)
    details = sanitize_metadata(metadata)
    try:
        actor = db.users.find_one({"email": email}) if email else None
        if actor:
            details.setdefault("user_role", get_user_role(actor))
        db.audit_logs.insert_one(
            {
                "user_email": email or None,
                "user_name": (actor or {}).get("name") or "",
                "action": action,
                "metadata": details,
                "created_at": utcnow(),
            }
        )
    except PyMongoError as exc:
        current_app.logger.warning("Audit entry %r was not recorded: %s", action, exc)
