"""Route-level authorization.

Each protected route declares the capability it needs with ``@requires``.
Decisions are made by :func:`authorize` from the verified identity, the role
read fresh from the users collection, and the target of the action.
"""

from enum import Enum
from functools import wraps
from typing import NamedTuple, Optional

from flask import g

from .errors import Forbidden
from .extensions import mongo
from .helpers import normalize_email
from .identity import verify_identity
from .roles import find_role


class Capability(str, Enum):
    AUTHENTICATED = "authenticated"
    SELF_ONLY = "self-only"
    OWNER_OR_MODERATOR = "owner-or-moderator"
    MODERATOR_OR_ADMIN = "moderator-or-admin"
    ADMIN_ONLY = "admin-only"


class Decision(NamedTuple):
    allowed: bool
    reason: str = ""


MODERATION_ROLES = {"moderator", "admin"}


def allow() -> Decision:
    return Decision(True)


def deny(reason: str) -> Decision:
    return Decision(False, reason)


def authorize(
    identity_email: Optional[str],
    role: Optional[str],
    capability: Capability,
    target_email: Optional[str] = None,
) -> Decision:
    email = normalize_email(identity_email)
    if not email:
        return deny("A verified identity is required.")

    if capability == Capability.AUTHENTICATED:
        return allow()

    if capability == Capability.SELF_ONLY:
        if email == normalize_email(target_email):
            return allow()
        return deny("You can only access your own account.")

    if capability == Capability.OWNER_OR_MODERATOR:
        if role in MODERATION_ROLES:
            return allow()
        owner = normalize_email(target_email)
        if owner and owner == email:
            return allow()
        return deny("Only the owner or a moderator can manage this product.")

    if capability == Capability.MODERATOR_OR_ADMIN:
        if role in MODERATION_ROLES:
            return allow()
        return deny("Moderator or admin access is required.")

    if capability == Capability.ADMIN_ONLY:
        if role == "admin":
            return allow()
        return deny("Admin access is required.")

    return deny("Unknown capability.")


def ensure_allowed(capability: Capability, target_email: Optional[str] = None):
    identity = g.get("identity")
    role = g.get("role")
    decision = authorize(identity.email if identity else None, role, capability, target_email)
    if not decision.allowed:
        raise Forbidden(decision.reason)
    return decision


def requires(capability: Capability, target_arg: Optional[str] = None):
    """Verify the caller and check ``capability`` before running the view.

    ``target_arg`` names the URL parameter holding the email the action
    targets, used by ``SELF_ONLY``.
    """

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            identity = verify_identity()
            g.role = find_role(mongo.db, identity.email)
            target_email = kwargs.get(target_arg) if target_arg else None
            ensure_allowed(capability, target_email)
            return view(*args, **kwargs)

        wrapper.required_capability = capability
        return wrapper

    return decorator
