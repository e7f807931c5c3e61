"""Unit tests for accounts/store.py -- query building over the users relation.

Covers:
- field-name translation is total over the schema and invertible
- insert defaults, generated fields, and the UNIQUE email constraint
- find_by_field / find_by_id lookups
- find_many filters, ordering, pagination and total count
- update semantics: partial, empty mapping, missing id, immutable fields
- delete returns the pre-deletion snapshot
"""

import pytest
from sqlalchemy.exc import IntegrityError

from accounts.store import COLUMN_FIELDS, FIELD_COLUMNS, translate_field, users
from core.errors import ImmutableField, UnknownField, ValidationError


def _seed(store, n_users=3, n_sellers=2):
    for i in range(n_users):
        store.insert({"email": f"user{i}@example.com", "role": "user", "status": "active"})
    for i in range(n_sellers):
        store.insert({"email": f"seller{i}@example.com", "role": "seller"})


# ---------------------------------------------------------------------------
# Field translation
# ---------------------------------------------------------------------------


def test_every_column_has_a_field_name():
    assert set(FIELD_COLUMNS.values()) == {c.name for c in users.columns}


def test_translation_is_invertible():
    for name, column in FIELD_COLUMNS.items():
        assert translate_field(name) == column
        assert COLUMN_FIELDS[column] == name


def test_camel_case_maps_to_snake_case():
    assert translate_field("emailVerificationToken") == "email_verification_token"
    assert translate_field("phoneNumber") == "phone_number"
    assert translate_field("createdAt") == "created_at"


@pytest.mark.parametrize("name", ["password", "email_verification_token", "Email", "id; DROP TABLE users"])
def test_unknown_field_rejected(name):
    with pytest.raises(UnknownField):
        translate_field(name)


def test_unknown_field_in_lookup_rejected(store):
    with pytest.raises(UnknownField):
        store.find_by_field("nickname", "x")


# ---------------------------------------------------------------------------
# Insert and lookup
# ---------------------------------------------------------------------------


def test_insert_applies_defaults(store):
    account = store.insert({"email": "a@example.com", "passwordHash": "h"})
    assert account.id is not None
    assert account.role == "user"
    assert account.status == "pending_verification"
    assert account.created_at


def test_insert_rejects_generated_fields(store):
    with pytest.raises(ImmutableField):
        store.insert({"email": "a@example.com", "id": 99})


def test_duplicate_email_raises_integrity_error(store):
    store.insert({"email": "dup@example.com"})
    with pytest.raises(IntegrityError):
        store.insert({"email": "dup@example.com"})


def test_find_by_field_and_id(store):
    created = store.insert({"email": "b@example.com", "emailVerificationToken": "tok-1"})
    assert store.find_by_field("email", "b@example.com").id == created.id
    assert store.find_by_field("emailVerificationToken", "tok-1").id == created.id
    assert store.find_by_id(created.id).email == "b@example.com"


def test_find_missing_returns_none(store):
    assert store.find_by_field("email", "nobody@example.com") is None
    assert store.find_by_id(12345) is None


def test_null_token_never_matches(store):
    store.insert({"email": "c@example.com"})
    assert store.find_by_field("resetPasswordToken", None) is None


# ---------------------------------------------------------------------------
# find_many
# ---------------------------------------------------------------------------


def test_find_many_without_filters_returns_everything(store):
    _seed(store)
    rows, total = store.find_many()
    assert total == 5
    assert len(rows) == 5
    assert [r.id for r in rows] == sorted(r.id for r in rows)


def test_find_many_filters_are_a_conjunction(store):
    _seed(store)
    rows, total = store.find_many({"role": "user", "status": "active"})
    assert total == 3
    assert all(r.role == "user" and r.status == "active" for r in rows)
    rows, total = store.find_many({"role": "seller", "status": "active"})
    assert (rows, total) == ([], 0)


def test_find_many_pagination_keeps_full_count(store):
    _seed(store, n_users=7, n_sellers=0)
    page1, total1 = store.find_many({"role": "user"}, limit=3, offset=0)
    page3, total3 = store.find_many({"role": "user"}, limit=3, offset=6)
    assert total1 == total3 == 7
    assert len(page1) == 3
    assert len(page3) == 1
    assert page1[0].id < page3[0].id


def test_find_many_offset_past_end(store):
    _seed(store)
    rows, total = store.find_many(limit=10, offset=50)
    assert rows == []
    assert total == 5


@pytest.mark.parametrize("limit,offset", [(-1, 0), (10, -1)])
def test_find_many_rejects_negative_paging(store, limit, offset):
    with pytest.raises(ValidationError):
        store.find_many(limit=limit, offset=offset)


def test_find_many_rejects_unknown_filter(store):
    with pytest.raises(UnknownField):
        store.find_many({"nickname": "x"})


# ---------------------------------------------------------------------------
# update / delete
# ---------------------------------------------------------------------------


def test_update_changes_only_given_fields(store):
    created = store.insert({"email": "d@example.com", "name": "Dee", "address": "1 Main St"})
    updated = store.update(created.id, {"name": "Dana"})
    assert updated.name == "Dana"
    assert updated.address == "1 Main St"
    assert updated.email == "d@example.com"


def test_update_can_clear_a_field(store):
    created = store.insert({"email": "e@example.com", "refreshToken": "r1"})
    assert store.update(created.id, {"refreshToken": None}).refresh_token is None


def test_empty_update_is_a_fetch(store):
    created = store.insert({"email": "f@example.com"})
    assert store.update(created.id, {}) == store.find_by_id(created.id)


def test_update_missing_id_returns_none(store):
    assert store.update(999, {"name": "ghost"}) is None
    assert store.update(999, {}) is None


@pytest.mark.parametrize("field", ["id", "role", "createdAt"])
def test_update_rejects_immutable_fields(store, field):
    created = store.insert({"email": "g@example.com"})
    with pytest.raises(ImmutableField):
        store.update(created.id, {field: "x"})
    assert store.find_by_id(created.id).role == "user"


def test_update_unknown_field_writes_nothing(store):
    created = store.insert({"email": "h@example.com", "name": "Hal"})
    with pytest.raises(UnknownField):
        store.update(created.id, {"name": "Changed", "nickname": "x"})
    assert store.find_by_id(created.id).name == "Hal"


def test_delete_returns_snapshot(store):
    created = store.insert({"email": "i@example.com", "avatarUrl": "https://blobs.test/avatars/1"})
    snapshot = store.delete(created.id)
    assert snapshot.avatar_url == "https://blobs.test/avatars/1"
    assert store.find_by_id(created.id) is None
    assert store.delete(created.id) is None


def test_count_and_ping(store):
    assert store.count() == 0
    _seed(store, n_users=2, n_sellers=1)
    assert store.count() == 3
    assert store.ping() is True
