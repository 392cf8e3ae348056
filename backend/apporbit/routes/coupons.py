from flask import jsonify
from pymongo import ReturnDocument

from ..access import Capability, requires
from ..errors import NotFound, ValidationError
from ..extensions import mongo
from ..helpers import (
    clean_payload,
    parse_object_id,
    record_audit_log,
    request_json,
    serialize_document,
    utcnow,
)
from ..identity import current_identity

PROTECTED_COUPON_FIELDS = {"_id", "id", "created_at", "updated_at"}


def register_coupon_routes(app):
    @app.route("/coupons", methods=["GET"])
    def list_coupons():
        coupons = mongo.db.coupons.find().sort("created_at", -1)
        return jsonify({"coupons": [serialize_document(document) for document in coupons]})

    @app.route("/coupons/<coupon_id>", methods=["GET"])
    def get_coupon(coupon_id: str):
        coupon = mongo.db.coupons.find_one({"_id": parse_object_id(coupon_id, "coupon")})
        if not coupon:
            raise NotFound("Coupon not found.")
        return jsonify({"coupon": serialize_document(coupon)})

    @app.route("/coupons", methods=["POST"])
    @requires(Capability.ADMIN_ONLY)
    def create_coupon():
        fields = clean_payload(request_json(), PROTECTED_COUPON_FIELDS)
        if not fields:
            raise ValidationError("Coupon details are required.")

        now = utcnow()
        coupon = {**fields, "created_at": now, "updated_at": now}
        result = mongo.db.coupons.insert_one(coupon)
        coupon["_id"] = result.inserted_id

        record_audit_log(
            mongo.db,
            current_identity().email,
            "Created coupon",
            {"coupon_id": str(result.inserted_id), "code": fields.get("code")},
        )
        return jsonify({"message": "Coupon created.", "coupon": serialize_document(coupon)}), 201

    @app.route("/coupons/<coupon_id>", methods=["PUT"])
    @requires(Capability.ADMIN_ONLY)
    def update_coupon(coupon_id: str):
        updates = clean_payload(request_json(), PROTECTED_COUPON_FIELDS)
        if not updates:
            raise ValidationError("Provide at least one field to update.")
        updates["updated_at"] = utcnow()

        coupon = mongo.db.coupons.find_one_and_update(
            {"_id": parse_object_id(coupon_id, "coupon")},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )
        if not coupon:
            raise NotFound("Coupon not found.")
        return jsonify({"message": "Coupon updated.", "coupon": serialize_document(coupon)})

    @app.route("/coupons/<coupon_id>", methods=["DELETE"])
    @requires(Capability.ADMIN_ONLY)
    def delete_coupon(coupon_id: str):
        result = mongo.db.coupons.delete_one({"_id": parse_object_id(coupon_id, "coupon")})
        if not result.deleted_count:
            raise NotFound("Coupon not found.")

        record_audit_log(
            mongo.db, current_identity().email, "Deleted coupon", {"coupon_id": coupon_id}
        )
        return jsonify({"message": "Coupon deleted.", "deleted_count": result.deleted_count})
