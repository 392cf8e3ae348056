import re
from datetime import datetime
from typing import Dict

from flask import jsonify, request

from ..access import Capability, requires
from ..extensions import mongo
from ..helpers import build_pagination, parse_iso_date, parse_pagination, serialize_document
from ..roles import list_role_changes
from ..statistics import get_statistics


def register_admin_routes(app):
    @app.route("/admin-statistics", methods=["GET"])
    @requires(Capability.ADMIN_ONLY)
    def admin_statistics():
        return jsonify(get_statistics(mongo.db))

    @app.route("/admin/role-changes", methods=["GET"])
    @requires(Capability.ADMIN_ONLY)
    def admin_role_changes():
        page, limit = parse_pagination(request.args, default_limit=50)
        events, total = list_role_changes(
            mongo.db, page, limit, target_email=request.args.get("email")
        )
        return jsonify(
            {
                "changes": [serialize_document(event) for event in events],
                "pagination": build_pagination(page, limit, total),
            }
        )

    @app.route("/admin/logs", methods=["GET"])
    @requires(Capability.ADMIN_ONLY)
    def admin_list_logs():
        search_term = (request.args.get("search") or "").strip()
        start_param = request.args.get("start") or request.args.get("from")
        end_param = request.args.get("end") or request.args.get("to")
        page, limit = parse_pagination(request.args, default_limit=50)

        query: Dict[str, object] = {}
        if search_term:
            regex = re.compile(re.escape(search_term), re.IGNORECASE)
            query["$or"] = [
                {"user_email": regex},
                {"user_name": regex},
                {"action": regex},
            ]

        start_date = parse_iso_date(start_param)
        end_date = parse_iso_date(end_param, end_of_day=True)
        if start_date or end_date:
            created_filter: Dict[str, datetime] = {}
            if start_date:
                created_filter["$gte"] = start_date
            if end_date:
                created_filter["$lt"] = end_date
            query["created_at"] = created_filter

        cursor = (
            mongo.db.audit_logs.find(query)
            .sort("created_at", -1)
            .skip((page - 1) * limit)
            .limit(limit)
        )
        logs = [serialize_document(document) for document in cursor]
        total = mongo.db.audit_logs.count_documents(query)

        return jsonify({"logs": logs, "pagination": build_pagination(page, limit, total)})
