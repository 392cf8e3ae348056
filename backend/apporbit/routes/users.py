from flask import jsonify

from .. import roles
from ..access import Capability, requires
from ..extensions import mongo
from ..helpers import get_user_role, record_audit_log, request_json, serialize_document
from ..identity import current_identity


def serialize_user(user_document):
    serialized = serialize_document(user_document)
    if serialized:
        serialized["role"] = get_user_role(user_document)
        serialized["is_subscribed"] = bool(user_document.get("is_subscribed"))
    return serialized


def register_user_routes(app):
    @app.route("/user", methods=["POST"])
    def upsert_user():
        payload = request_json()
        user_document = roles.upsert_user(mongo.db, payload.get("email"), payload)
        return jsonify(
            {
                "message": "Profile saved.",
                "user": serialize_user(user_document),
            }
        )

    @app.route("/user", methods=["GET"])
    @requires(Capability.ADMIN_ONLY)
    def list_users():
        users = [serialize_user(document) for document in roles.list_users(mongo.db)]
        return jsonify({"users": users})

    @app.route("/user/<email>", methods=["GET"])
    def get_user(email: str):
        return jsonify({"user": serialize_user(roles.get_user(mongo.db, email))})

    @app.route("/user/<email>", methods=["PATCH"])
    @requires(Capability.SELF_ONLY, target_arg="email")
    def mark_user_subscribed(email: str):
        user_document = roles.mark_subscribed(mongo.db, email)
        record_audit_log(mongo.db, current_identity().email, "Subscribed")
        return jsonify(
            {
                "message": "Subscription activated.",
                "user": serialize_user(user_document),
            }
        )

    @app.route("/user/<any(admin, moderator, user):role>/<user_id>", methods=["PATCH"])
    @requires(Capability.ADMIN_ONLY)
    def update_user_role(role: str, user_id: str):
        actor_email = current_identity().email
        updated_user, event = roles.set_role(mongo.db, actor_email, user_id, role)
        app.logger.info(
            "%s changed role of %s from %s to %s",
            actor_email,
            event["target_email"],
            event["old_role"],
            event["new_role"],
        )
        return jsonify(
            {
                "message": f"Role updated to {role}.",
                "user": serialize_user(updated_user),
                "change": serialize_document(event),
            }
        )

    @app.route("/user/role/<email>", methods=["GET"])
    @requires(Capability.SELF_ONLY, target_arg="email")
    def get_user_role_route(email: str):
        return jsonify({"role": roles.get_role(mongo.db, email)})
