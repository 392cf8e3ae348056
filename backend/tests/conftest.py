import flask_pymongo
import mongomock
import pymongo
import pytest
from flask_jwt_extended import create_access_token

from apporbit import create_app
from apporbit.extensions import mongo

TEST_CONFIG = {
    "TESTING": True,
    "MONGO_URI": "mongodb://localhost:27017/apporbit_test",
    "JWT_SECRET_KEY": "test-secret-key-that-is-long-enough-for-hs256",
    "JWT_ALGORITHM": "HS256",
    "JWT_PUBLIC_KEY": None,
    "JWT_DECODE_ISSUER": None,
    "JWT_DECODE_AUDIENCE": None,
    "IDENTITY_CERTS_URL": None,
    "DEFAULT_ADMIN_EMAIL": "",
    "PAYMENT_SECRET_KEY": "sk_test_apporbit",
    "PAYMENT_API_BASE": "https://payments.example.test",
    "PAYMENT_CURRENCY": "usd",
}


@pytest.fixture
def db():
    """A standalone in-memory database for testing domain functions."""
    return mongomock.MongoClient().apporbit_test


@pytest.fixture
def make_app(monkeypatch):
    monkeypatch.setattr(pymongo, "MongoClient", mongomock.MongoClient)
    monkeypatch.setattr(flask_pymongo, "MongoClient", mongomock.MongoClient, raising=False)
    created = []

    def factory(**overrides):
        app = create_app({**TEST_CONFIG, **overrides})
        created.append(app)
        return app

    yield factory

    for _ in created:
        for name in mongo.db.list_collection_names():
            mongo.db.drop_collection(name)


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    return mongo.db


@pytest.fixture
def auth_headers(app):
    def build(email, **claims):
        with app.app_context():
            token = create_access_token(identity=email, additional_claims=claims)
        return {"Authorization": f"Bearer {token}"}

    return build


@pytest.fixture
def seed_user(store):
    def insert(email, role="user", name="Test User"):
        result = store.users.insert_one(
            {"email": email, "name": name, "role": role, "is_subscribed": False}
        )
        return str(result.inserted_id)

    return insert
