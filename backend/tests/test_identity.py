"""Tests for bearer credential verification on protected routes."""

from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
import requests
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from flask_jwt_extended import create_access_token


def build_signing_material():
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "identity.test")])
    now = datetime.utcnow()
    certificate = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=1))
        .sign(private_key, hashes.SHA256())
    )
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    certificate_pem = certificate.public_bytes(serialization.Encoding.PEM).decode("utf-8")
    return private_pem, certificate_pem


class TestBearerCredentials:
    def test_missing_header_is_unauthenticated(self, client, store):
        response = client.post("/products", json={"name": "Sneaky"})

        assert response.status_code == 401
        assert "message" in response.get_json()
        assert store.products.count_documents({}) == 0

    def test_wrong_scheme_is_unauthenticated(self, client):
        response = client.post(
            "/products", json={"name": "Sneaky"}, headers={"Authorization": "Basic abc"}
        )
        assert response.status_code == 401

    @pytest.mark.parametrize("header", ["Bearer", "Bearer ", "Bearer a b"])
    def test_malformed_bearer_header_is_unauthenticated(self, client, store, header):
        response = client.post("/products", json={"name": "Sneaky"}, headers={"Authorization": header})

        assert response.status_code == 401
        assert "message" in response.get_json()
        assert store.products.count_documents({}) == 0

    def test_garbage_token_is_forbidden(self, client, store):
        response = client.post(
            "/products", json={"name": "Sneaky"}, headers={"Authorization": "Bearer not.a.token"}
        )

        assert response.status_code == 403
        assert "message" in response.get_json()
        assert store.products.count_documents({}) == 0

    def test_token_signed_with_another_key_is_forbidden(self, app, client):
        with app.app_context():
            app.config["JWT_SECRET_KEY"] = "some-other-secret-that-is-also-long-enough"
            token = create_access_token(identity="a@x.com")
            app.config["JWT_SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-hs256"

        response = client.post(
            "/products", json={"name": "Sneaky"}, headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 403

    def test_expired_token_is_forbidden(self, app, client):
        with app.app_context():
            token = create_access_token(identity="a@x.com", expires_delta=timedelta(seconds=-30))

        response = client.post(
            "/products", json={"name": "Late"}, headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 403

    def test_valid_token_reaches_handler(self, client, auth_headers):
        response = client.post("/products", json={"name": "Fine"}, headers=auth_headers("a@x.com"))
        assert response.status_code == 201
        assert response.get_json()["product"]["owner_email"] == "a@x.com"


class TestRemoteCertificates:
    CERTS_URL = "https://identity.example.test/certs"

    @pytest.fixture
    def signing_material(self):
        return build_signing_material()

    @pytest.fixture
    def remote_app(self, make_app, signing_material):
        private_pem, _ = signing_material
        return make_app(
            JWT_ALGORITHM="RS256",
            JWT_PRIVATE_KEY=private_pem,
            IDENTITY_CERTS_URL=self.CERTS_URL,
            IDENTITY_TIMEOUT_SECONDS=2,
        )

    def make_token(self, app, kid="key-1"):
        with app.app_context():
            return create_access_token(identity="a@x.com", additional_headers={"kid": kid})

    def test_token_verified_against_published_certificate(self, remote_app, signing_material):
        _, certificate_pem = signing_material
        certs_response = MagicMock()
        certs_response.json.return_value = {"key-1": certificate_pem}
        certs_response.raise_for_status.return_value = None
        token = self.make_token(remote_app)

        with patch("apporbit.identity.requests.get", return_value=certs_response) as mock_get:
            response = remote_app.test_client().post(
                "/products", json={"name": "Signed"}, headers={"Authorization": f"Bearer {token}"}
            )

        assert response.status_code == 201
        mock_get.assert_called_once_with(self.CERTS_URL, timeout=2)

    def test_unknown_key_id_is_forbidden(self, remote_app, signing_material):
        _, certificate_pem = signing_material
        certs_response = MagicMock()
        certs_response.json.return_value = {"key-1": certificate_pem}
        token = self.make_token(remote_app, kid="rotated-away")

        with patch("apporbit.identity.requests.get", return_value=certs_response):
            response = remote_app.test_client().post(
                "/products", json={"name": "Signed"}, headers={"Authorization": f"Bearer {token}"}
            )

        assert response.status_code == 403

    def test_certificate_fetch_timeout_is_gateway_timeout(self, remote_app):
        token = self.make_token(remote_app)

        with patch("apporbit.identity.requests.get", side_effect=requests.Timeout()):
            response = remote_app.test_client().post(
                "/products", json={"name": "Signed"}, headers={"Authorization": f"Bearer {token}"}
            )

        assert response.status_code == 504
        assert "message" in response.get_json()

    def test_certificate_fetch_failure_is_dependency_failure(self, remote_app):
        token = self.make_token(remote_app)

        with patch("apporbit.identity.requests.get", side_effect=requests.ConnectionError()):
            response = remote_app.test_client().post(
                "/products", json={"name": "Signed"}, headers={"Authorization": f"Bearer {token}"}
            )

        assert response.status_code == 500
