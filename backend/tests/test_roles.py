"""Tests for the user/role store."""

import pytest
from bson import ObjectId

from apporbit import roles
from apporbit.errors import NotFound, ValidationError


class TestUpsertUser:
    def test_second_upsert_updates_profile_and_keeps_creation_time(self, db):
        first = roles.upsert_user(db, "a@x.com", {"name": "A", "photo": "a.png"})
        db.users.update_one({"_id": first["_id"]}, {"$set": {"role": "moderator"}})

        second = roles.upsert_user(db, "A@x.com", {"name": "B"})

        assert db.users.count_documents({}) == 1
        assert second["_id"] == first["_id"]
        assert second["name"] == "B"
        assert second["photo"] == "a.png"
        assert second["created_at"] == first["created_at"]
        assert second["role"] == "moderator"

    def test_new_user_defaults(self, db):
        created = roles.upsert_user(db, "new@x.com", {"name": "New"})
        assert created["role"] == "user"
        assert created["is_subscribed"] is False

    @pytest.mark.parametrize("email", [None, "", "   ", "not-an-email"])
    def test_invalid_email_is_rejected(self, db, email):
        with pytest.raises(ValidationError):
            roles.upsert_user(db, email, {"name": "Nobody"})
        assert db.users.count_documents({}) == 0


class TestRoles:
    def test_get_role_for_unknown_user(self, db):
        with pytest.raises(NotFound):
            roles.get_role(db, "ghost@x.com")

    def test_find_role_returns_none_for_unknown_user(self, db):
        assert roles.find_role(db, "ghost@x.com") is None

    def test_set_role_appends_change_event(self, db):
        user = roles.upsert_user(db, "a@x.com", {"name": "A"})

        updated, event = roles.set_role(db, "Admin@X.com", str(user["_id"]), "moderator")

        assert updated["role"] == "moderator"
        assert roles.get_role(db, "a@x.com") == "moderator"
        assert event["old_role"] == "user"
        assert event["new_role"] == "moderator"
        assert event["actor_email"] == "admin@x.com"
        assert db.role_changes.count_documents({}) == 1

    def test_set_role_validates_role_and_target(self, db):
        user = roles.upsert_user(db, "a@x.com", {"name": "A"})
        with pytest.raises(ValidationError):
            roles.set_role(db, "admin@x.com", str(user["_id"]), "superuser")
        with pytest.raises(NotFound):
            roles.set_role(db, "admin@x.com", str(ObjectId()), "admin")
        assert db.role_changes.count_documents({}) == 0

    def test_list_role_changes_paginates(self, db):
        user = roles.upsert_user(db, "a@x.com", {"name": "A"})
        for role in ("moderator", "admin", "user"):
            roles.set_role(db, "admin@x.com", str(user["_id"]), role)

        events, total = roles.list_role_changes(db, page=1, limit=2)

        assert total == 3
        assert len(events) == 2

    def test_mark_subscribed(self, db):
        roles.upsert_user(db, "a@x.com", {"name": "A"})
        updated = roles.mark_subscribed(db, "a@x.com")
        assert updated["is_subscribed"] is True
        with pytest.raises(NotFound):
            roles.mark_subscribed(db, "ghost@x.com")
