"""Bearer credential verification.

Tokens are issued by an external identity provider and only verified here.
The signing key is either configured locally or fetched from the provider's
published certificates on every verification.
"""

from typing import Dict, NamedTuple

import requests
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from flask import current_app, g, jsonify, request
from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request

from .errors import DependencyFailure, Forbidden, GatewayTimeout, Unauthenticated
from .helpers import normalize_email


class Identity(NamedTuple):
    email: str
    claims: Dict


def init_identity(jwt_manager):
    @jwt_manager.unauthorized_loader
    def handle_missing_credentials(reason: str):
        return (
            jsonify({"message": "Authentication required.", "reason": reason}),
            401,
        )

    @jwt_manager.invalid_token_loader
    def handle_invalid_credentials(reason: str):
        return (
            jsonify({"message": "The presented credential is not valid.", "reason": reason}),
            403,
        )

    @jwt_manager.expired_token_loader
    def handle_expired_credentials(jwt_header, jwt_payload):
        return jsonify({"message": "The presented credential has expired."}), 403

    @jwt_manager.decode_key_loader
    def resolve_decode_key(jwt_header, jwt_payload):
        return resolve_signing_key(jwt_header)


def fetch_signing_certificates(url: str, timeout: float) -> Dict[str, str]:
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
        certificates = response.json()
    except requests.Timeout:
        raise GatewayTimeout("The identity provider did not respond in time.")
    except (requests.RequestException, ValueError) as exc:
        current_app.logger.error("Identity certificate fetch failed: %s", exc)
        raise DependencyFailure("Unable to reach the identity provider.")

    if not isinstance(certificates, dict):
        current_app.logger.error("Identity certificate payload was not a mapping.")
        raise DependencyFailure("Unable to reach the identity provider.")
    return certificates


def public_key_from_pem(pem: str) -> str:
    if "BEGIN CERTIFICATE" not in pem:
        return pem
    certificate = x509.load_pem_x509_certificate(pem.encode("utf-8"))
    return (
        certificate.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode("utf-8")
    )


def resolve_signing_key(jwt_header) -> str:
    config = current_app.config
    certs_url = config.get("IDENTITY_CERTS_URL")
    if certs_url:
        certificates = fetch_signing_certificates(
            certs_url, config.get("IDENTITY_TIMEOUT_SECONDS", 5)
        )
        key_id = (jwt_header or {}).get("kid")
        pem = certificates.get(key_id) if key_id else None
        if not pem:
            raise Forbidden("The presented credential was signed with an unknown key.")
        return public_key_from_pem(pem)

    algorithm = str(config.get("JWT_ALGORITHM", "HS256"))
    if algorithm.startswith("HS"):
        return config.get("JWT_SECRET_KEY")
    return config.get("JWT_PUBLIC_KEY")


def check_bearer_header():
    header_name = current_app.config.get("JWT_HEADER_NAME", "Authorization")
    parts = request.headers.get(header_name, "").split()
    # a Bearer scheme without exactly one token is a missing credential, not a bad one
    if parts and parts[0] == "Bearer" and len(parts) != 2:
        raise Unauthenticated("Expected 'Authorization: Bearer <token>'.")


def verify_identity() -> Identity:
    """Verify the request's bearer credential and attach the caller to ``g``."""
    check_bearer_header()
    verify_jwt_in_request()
    email = normalize_email(get_jwt_identity())
    if not email:
        raise Forbidden("The presented credential does not carry an email address.")

    identity = Identity(email=email, claims=dict(get_jwt()))
    g.identity = identity
    return identity


def current_identity():
    return g.get("identity")
