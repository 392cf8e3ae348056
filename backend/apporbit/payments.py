from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

import requests
from flask import current_app

from .errors import DependencyFailure, GatewayTimeout, ValidationError


def to_minor_units(price) -> int:
    try:
        amount = Decimal(str(price))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError("Price must be a valid number.")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Price must be greater than zero.")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def create_payment_intent(price) -> dict:
    """Create a card payment intent and return its id and client secret."""
    config = current_app.config
    secret_key = config.get("PAYMENT_SECRET_KEY")
    if not secret_key:
        raise DependencyFailure("Payment configuration is incomplete. Please contact support.")

    amount = to_minor_units(price)
    currency = config.get("PAYMENT_CURRENCY", "usd")
    base_url = str(config.get("PAYMENT_API_BASE", "https://api.stripe.com")).rstrip("/")

    try:
        response = requests.post(
            f"{base_url}/v1/payment_intents",
            data={
                "amount": amount,
                "currency": currency,
                "payment_method_types[]": "card",
            },
            headers={"Authorization": f"Bearer {secret_key}"},
            timeout=config.get("PAYMENT_TIMEOUT_SECONDS", 10),
        )
    except requests.Timeout:
        current_app.logger.error("Payment intent request timed out")
        raise GatewayTimeout("The payment provider did not respond in time.")
    except requests.RequestException as exc:
        current_app.logger.error("Payment intent request failed: %s", exc)
        raise DependencyFailure("Failed to create payment session.")

    if not response.ok:
        current_app.logger.error("Payment intent creation failed: %s", response.text)
        raise DependencyFailure("Failed to create payment session.")

    try:
        intent = response.json()
    except ValueError:
        raise DependencyFailure("Failed to create payment session.")

    client_secret = intent.get("client_secret")
    if not client_secret:
        raise DependencyFailure("Failed to create payment session.")

    current_app.logger.info("Created payment intent %s for %s %s", intent.get("id"), amount, currency)
    return {
        "id": intent.get("id"),
        "client_secret": client_secret,
        "amount": amount,
        "currency": currency,
    }
