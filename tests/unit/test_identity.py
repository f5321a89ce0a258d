"""
Unit Tests: Identity Mapping

Test cases:
- Identity field renamed to _id and back
- Round-trip equality for nested, aliased and dated records
- Identity generation only when absent
- Misconfigured identity fields
"""

import re
from datetime import datetime, timezone

import pytest

from mongorepo.exceptions import ConfigurationError
from mongorepo.identity import IdentityMapping, generate_id
from tests.records import Address, Order, Tag, User


def test_to_storage_moves_identity_to_reserved_key():
    mapping = IdentityMapping(User, "user_id")
    doc = mapping.to_storage(User(user_id="u1", name="ann", age=3))

    assert doc["_id"] == "u1"
    assert "user_id" not in doc
    assert doc["name"] == "ann"
    assert doc["age"] == 3
    assert list(doc)[0] == "_id"


def test_round_trip_is_identity():
    mapping = IdentityMapping(User, "user_id")
    user = User(
        user_id="u1",
        name="ann",
        email=None,
        address=Address(city="Oslo", zip_code="0150"),
        roles=["admin"],
        tags=[Tag(name="a", weight=2)],
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )

    doc = mapping.to_storage(user)
    assert doc["address"] == {"city": "Oslo", "zipCode": "0150"}
    assert mapping.from_storage(doc) == user


def test_from_storage_does_not_mutate_document():
    mapping = IdentityMapping(Order, "number")
    doc = {"_id": 7, "total": 1.5}

    order = mapping.from_storage(doc)

    assert order == Order(number=7, total=1.5)
    assert doc == {"_id": 7, "total": 1.5}


def test_ensure_identity_generates_only_when_missing():
    mapping = IdentityMapping(User, "user_id")
    without_id = User(name="ann")

    with_id = mapping.ensure_identity(without_id)

    assert with_id.user_id is not None
    assert without_id.user_id is None
    assert with_id.name == "ann"

    existing = User(user_id="fixed", name="bob")
    assert mapping.ensure_identity(existing) is existing


def test_generated_ids_are_unique_object_id_strings():
    ids = {generate_id() for _ in range(1000)}
    assert len(ids) == 1000
    assert all(re.fullmatch(r"[0-9a-f]{24}", value) for value in ids)


def test_unknown_identity_field_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        IdentityMapping(User, "id")
