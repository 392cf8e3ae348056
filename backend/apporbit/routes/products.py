from flask import g, jsonify, request

from .. import moderation
from ..access import Capability, ensure_allowed, requires
from ..errors import ValidationError
from ..extensions import mongo
from ..helpers import (
    build_pagination,
    parse_pagination,
    record_audit_log,
    request_json,
    serialize_document,
)
from ..identity import current_identity


def serialize_product(product_document):
    serialized = serialize_document(product_document)
    if serialized:
        serialized["is_featured"] = bool(product_document.get("is_featured"))
        serialized["votes"] = int(product_document.get("votes", 0) or 0)
        serialized["voters"] = list(product_document.get("voters") or [])
    return serialized


def register_product_routes(app):
    @app.route("/products", methods=["GET"])
    def list_products():
        product_docs = moderation.list_products(mongo.db, request.args.get("email"))
        return jsonify({"products": [serialize_product(document) for document in product_docs]})

    @app.route("/products/featured", methods=["GET"])
    def list_featured_products():
        product_docs = moderation.list_featured(mongo.db)
        return jsonify({"products": [serialize_product(document) for document in product_docs]})

    @app.route("/products/trending", methods=["GET"])
    def list_trending_products():
        try:
            limit = min(max(int(request.args.get("limit", 6)), 1), 50)
        except (TypeError, ValueError):
            raise ValidationError("`limit` must be a whole number.")
        product_docs = moderation.list_trending(mongo.db, limit)
        return jsonify({"products": [serialize_product(document) for document in product_docs]})

    @app.route("/products/review-queue", methods=["GET"])
    @requires(Capability.MODERATOR_OR_ADMIN)
    def review_queue():
        page, limit = parse_pagination(request.args, default_limit=20)
        product_docs, total = moderation.list_review_queue(mongo.db, page, limit)
        return jsonify(
            {
                "products": [serialize_product(document) for document in product_docs],
                "pagination": build_pagination(page, limit, total),
            }
        )

    @app.route("/test-products/accepted", methods=["GET"])
    def list_accepted_products():
        page, limit = parse_pagination(request.args)
        product_docs, total = moderation.list_accepted(
            mongo.db, page, limit, search=request.args.get("search")
        )
        return jsonify(
            {
                "products": [serialize_product(document) for document in product_docs],
                "pagination": build_pagination(page, limit, total),
            }
        )

    @app.route("/products/<product_id>", methods=["GET"])
    def get_product(product_id: str):
        product_document = moderation.fetch_product(mongo.db, product_id)
        return jsonify({"product": serialize_product(product_document)})

    @app.route("/products", methods=["POST"])
    @app.route("/add-product", methods=["POST"])
    @requires(Capability.AUTHENTICATED)
    def create_product():
        owner_email = current_identity().email
        payload = request_json()
        product_document = moderation.create_product(mongo.db, owner_email, payload)

        record_audit_log(
            mongo.db,
            owner_email,
            "Created product",
            {"product_id": str(product_document["_id"]), "product_name": product_document.get("name")},
        )

        return (
            jsonify(
                {
                    "message": "Product added successfully!",
                    "product": serialize_product(product_document),
                }
            ),
            201,
        )

    @app.route("/products/<product_id>", methods=["PATCH"])
    @requires(Capability.AUTHENTICATED)
    def update_product(product_id: str):
        product_document = moderation.fetch_product(mongo.db, product_id)
        ensure_allowed(Capability.OWNER_OR_MODERATOR, product_document.get("owner_email"))

        payload = request_json()
        updated = moderation.update_product(mongo.db, product_id, payload)
        return jsonify({"message": "Product updated successfully.", "product": serialize_product(updated)})

    @app.route("/products/<product_id>", methods=["DELETE"])
    @requires(Capability.AUTHENTICATED)
    def delete_product(product_id: str):
        product_document = moderation.fetch_product(mongo.db, product_id)
        ensure_allowed(Capability.OWNER_OR_MODERATOR, product_document.get("owner_email"))

        counts = moderation.delete_product_cascade(mongo.db, product_id)

        record_audit_log(
            mongo.db,
            current_identity().email,
            "Deleted product",
            {
                "product_id": product_id,
                "product_name": product_document.get("name", ""),
                "reports_deleted": counts["reports_deleted"],
            },
        )

        return jsonify({"message": "Product removed successfully.", **counts})

    @app.route("/products/vote/<product_id>", methods=["PATCH"])
    @requires(Capability.AUTHENTICATED)
    def vote_product(product_id: str):
        updated = moderation.cast_vote(mongo.db, product_id, current_identity().email)
        return jsonify({"message": "Vote recorded.", "product": serialize_product(updated)})

    @app.route("/products/feature/<product_id>", methods=["PATCH"])
    @requires(Capability.MODERATOR_OR_ADMIN)
    def feature_product(product_id: str):
        payload = request_json()
        featured = bool(payload.get("is_featured", True))
        updated = moderation.set_featured(mongo.db, product_id, featured)

        record_audit_log(
            mongo.db,
            current_identity().email,
            "Featured product" if featured else "Unfeatured product",
            {"product_id": product_id},
        )

        return jsonify({"message": "Featured flag updated.", "product": serialize_product(updated)})

    @app.route("/products/<any(accept, reject):decision>/<product_id>", methods=["PATCH"])
    @requires(Capability.MODERATOR_OR_ADMIN)
    def moderate_product(decision: str, product_id: str):
        moderator_email = current_identity().email
        if decision == "accept":
            updated = moderation.accept_product(mongo.db, product_id, moderator_email)
        else:
            updated = moderation.reject_product(mongo.db, product_id, moderator_email)

        app.logger.info("%s (%s) set product %s to %s", moderator_email, g.role, product_id, updated["status"])
        record_audit_log(
            mongo.db,
            moderator_email,
            "Accepted product" if decision == "accept" else "Rejected product",
            {"product_id": product_id},
        )

        return jsonify(
            {
                "message": f"Product {updated['status']}.",
                "product": serialize_product(updated),
            }
        )
