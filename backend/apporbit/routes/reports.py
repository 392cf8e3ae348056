from flask import jsonify

from ..access import Capability, requires
from ..errors import ValidationError
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
from ..moderation import delete_product_cascade

PROTECTED_REPORT_FIELDS = {"_id", "id", "reporter_email", "reported_at"}


def register_report_routes(app):
    @app.route("/report", methods=["POST"])
    @requires(Capability.AUTHENTICATED)
    def submit_report():
        payload = clean_payload(request_json(), PROTECTED_REPORT_FIELDS)
        product_id = str(payload.get("product_id") or "").strip()
        if not product_id:
            raise ValidationError("A `product_id` is required to file a report.")
        payload["product_id"] = str(parse_object_id(product_id, "product"))

        report_document = {
            **payload,
            "reporter_email": current_identity().email,
            "reported_at": utcnow(),
        }
        result = mongo.db.reports.insert_one(report_document)
        report_document["_id"] = result.inserted_id

        return (
            jsonify({"message": "Report submitted.", "report": serialize_document(report_document)}),
            201,
        )

    @app.route("/reports", methods=["GET"])
    @requires(Capability.MODERATOR_OR_ADMIN)
    def list_reports():
        reports = mongo.db.reports.find().sort("reported_at", -1)
        return jsonify({"reports": [serialize_document(document) for document in reports]})

    @app.route("/reports/<product_id>", methods=["DELETE"])
    @requires(Capability.MODERATOR_OR_ADMIN)
    def purge_reported_product(product_id: str):
        counts = delete_product_cascade(mongo.db, product_id)

        record_audit_log(
            mongo.db,
            current_identity().email,
            "Removed reported product",
            {"product_id": product_id, **counts},
        )

        if counts["deleted_count"]:
            message = "Reported product removed."
        else:
            message = "Product was already removed; remaining reports were cleared."
        return jsonify({"message": message, **counts})
