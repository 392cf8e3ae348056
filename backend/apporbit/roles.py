from typing import Dict, List, Optional, Tuple

from pymongo import ReturnDocument

from .errors import NotFound, ValidationError
from .helpers import (
    ALLOWED_USER_ROLES,
    default_admin_email,
    get_user_role,
    is_valid_email,
    normalize_email,
    parse_object_id,
    utcnow,
)

PROFILE_FIELDS = ("name", "photo")


def upsert_user(db, email: Optional[str], attributes: Optional[Dict] = None):
    """Create the user on first sight of ``email``, otherwise refresh the profile.

    Role, subscription flag and creation time are only written on insert, so
    repeated sign-ins never reset them.
    """
    normalized_email = normalize_email(email)
    if not normalized_email:
        raise ValidationError("An email address is required.")
    if not is_valid_email(normalized_email):
        raise ValidationError("Please provide a valid email address.")

    attributes = attributes or {}
    now = utcnow()
    profile_updates = {
        field: attributes[field]
        for field in PROFILE_FIELDS
        if attributes.get(field) is not None
    }
    profile_updates["updated_at"] = now

    return db.users.find_one_and_update(
        {"email": normalized_email},
        {
            "$set": profile_updates,
            "$setOnInsert": {
                "role": "user",
                "is_subscribed": False,
                "created_at": now,
            },
        },
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )


def get_user(db, email: Optional[str]):
    user_document = db.users.find_one({"email": normalize_email(email)})
    if not user_document:
        raise NotFound("User not found.")
    return user_document


def list_users(db) -> List[Dict]:
    return list(db.users.find().sort("created_at", -1))


def get_role(db, email: Optional[str]) -> str:
    return get_user_role(get_user(db, email))


def find_role(db, email: Optional[str]) -> Optional[str]:
    """Role for ``email``, or ``None`` when no profile exists yet."""
    normalized_email = normalize_email(email)
    if not normalized_email:
        return None
    user_document = db.users.find_one({"email": normalized_email}, {"email": 1, "role": 1})
    if not user_document:
        admin_email = default_admin_email()
        return "admin" if admin_email and normalized_email == admin_email else None
    return get_user_role(user_document)


def mark_subscribed(db, email: Optional[str]):
    updated = db.users.find_one_and_update(
        {"email": normalize_email(email)},
        {"$set": {"is_subscribed": True, "subscribed_at": utcnow(), "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise NotFound("User not found.")
    return updated


def set_role(db, actor_email: Optional[str], user_id: str, new_role: str) -> Tuple[Dict, Dict]:
    """Overwrite a user's role and append the change to ``role_changes``.

    Returns the updated user and the recorded event.
    """
    desired_role = str(new_role or "").strip().lower()
    if desired_role not in ALLOWED_USER_ROLES:
        raise ValidationError("Role must be 'user', 'moderator', or 'admin'.")

    target_object_id = parse_object_id(user_id, "user")
    target = db.users.find_one({"_id": target_object_id}, {"email": 1})
    if not target:
        raise NotFound("User not found.")

    target_email = normalize_email(target.get("email"))
    admin_email = default_admin_email()
    if admin_email and target_email == admin_email and desired_role != "admin":
        raise ValidationError("The default administrator must remain an admin.")

    now = utcnow()
    previous = db.users.find_one_and_update(
        {"_id": target_object_id},
        {"$set": {"role": desired_role, "updated_at": now}},
        return_document=ReturnDocument.BEFORE,
    )
    if not previous:
        raise NotFound("User not found.")

    event = {
        "actor_email": normalize_email(actor_email) or None,
        "target_email": target_email,
        "target_id": str(target_object_id),
        "old_role": get_user_role(previous),
        "new_role": desired_role,
        "created_at": now,
    }
    result = db.role_changes.insert_one(event)
    event["_id"] = result.inserted_id

    updated_user = db.users.find_one({"_id": target_object_id})
    return updated_user, event


def list_role_changes(db, page: int, limit: int, target_email: Optional[str] = None):
    query: Dict[str, object] = {}
    if target_email:
        query["target_email"] = normalize_email(target_email)

    cursor = (
        db.role_changes.find(query)
        .sort("created_at", -1)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    return list(cursor), db.role_changes.count_documents(query)
