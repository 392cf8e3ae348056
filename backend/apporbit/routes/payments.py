from flask import jsonify

from ..helpers import request_json
from ..payments import create_payment_intent


def register_payment_routes(app):
    @app.route("/create-payment-intent", methods=["POST"])
    def create_payment_intent_route():
        payload = request_json()
        intent = create_payment_intent(payload.get("price"))
        return jsonify(intent)
