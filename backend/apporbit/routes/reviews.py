from flask import jsonify

from ..access import Capability, requires
from ..errors import ValidationError
from ..extensions import mongo
from ..helpers import clean_payload, request_json, serialize_document, utcnow
from ..identity import current_identity
from ..moderation import fetch_product

PROTECTED_REVIEW_FIELDS = {"_id", "id", "reviewer_email", "created_at"}


def register_review_routes(app):
    @app.route("/reviews", methods=["POST"])
    @requires(Capability.AUTHENTICATED)
    def create_review():
        payload = clean_payload(request_json(), PROTECTED_REVIEW_FIELDS)
        product_id = str(payload.get("product_id") or "").strip()
        if not product_id:
            raise ValidationError("A `product_id` is required to post a review.")
        product_document = fetch_product(mongo.db, product_id)

        review_document = {
            **payload,
            "product_id": str(product_document["_id"]),
            "reviewer_email": current_identity().email,
            "created_at": utcnow(),
        }
        result = mongo.db.reviews.insert_one(review_document)
        review_document["_id"] = result.inserted_id

        return (
            jsonify({"message": "Review added.", "review": serialize_document(review_document)}),
            201,
        )

    @app.route("/reviews/<product_id>", methods=["GET"])
    def list_reviews(product_id: str):
        reviews = mongo.db.reviews.find({"product_id": product_id}).sort("created_at", -1)
        return jsonify({"reviews": [serialize_document(document) for document in reviews]})
