import pytest
from bson import ObjectId
from pymongo import ASCENDING, DESCENDING

import database
from database import parse_object_id, parse_sort, populate, to_public, toggle_member, transaction
from errors import ValidationError


def test_parse_sort():
    assert parse_sort("-createdAt", ("createdAt",)) == [("createdAt", DESCENDING)]
    assert parse_sort("title,-createdAt", ("createdAt", "title")) == [
        ("title", ASCENDING),
        ("createdAt", DESCENDING),
    ]
    assert parse_sort("", ("title",)) == [("createdAt", DESCENDING)]
    with pytest.raises(ValidationError):
        parse_sort("password_hash", ("title",))


def test_parse_object_id():
    oid = ObjectId()
    assert parse_object_id(str(oid)) == oid
    with pytest.raises(ValidationError):
        parse_object_id("1234")


def test_to_public_renames_ids_and_drops_password():
    user_id, comment_id = ObjectId(), ObjectId()
    doc = {
        "_id": user_id,
        "password_hash": "x",
        "upvotes": [user_id],
        "comments": [{"_id": comment_id, "user": user_id}],
    }
    assert to_public(doc) == {
        "id": str(user_id),
        "upvotes": [str(user_id)],
        "comments": [{"id": str(comment_id), "user": str(user_id)}],
    }


def test_populate_paths(db):
    alice = db["user"].insert_one({"name": "Alice", "email": "a@village.org", "password_hash": "h"}).inserted_id
    ghost = ObjectId()
    docs = [
        {"author": alice, "helpers": [alice, ghost], "comments": [{"user": alice}, {"user": ghost}]},
        {"author": None, "helpers": [], "comments": []},
    ]

    populate(db, docs, "author", "user", ("name",))
    populate(db, docs, "helpers", "user", ("name",))
    populate(db, docs, "comments.user", "user", ("name",))

    assert docs[0]["author"] == {"_id": alice, "name": "Alice"}
    assert docs[0]["helpers"] == [{"_id": alice, "name": "Alice"}, ghost]
    assert docs[0]["comments"][0]["user"]["name"] == "Alice"
    assert docs[0]["comments"][1]["user"] == ghost
    assert docs[1]["author"] is None


def test_toggle_member(db):
    member = ObjectId()
    doc_id = db["problem"].insert_one({"upvotes": []}).inserted_id

    doc = toggle_member(db, "problem", db["problem"].find_one({"_id": doc_id}), "upvotes", member)
    assert doc["upvotes"] == [member]
    doc = toggle_member(db, "problem", doc, "upvotes", member)
    assert doc["upvotes"] == []


def test_transaction_disabled_yields_no_session(db, monkeypatch):
    monkeypatch.setattr(database.config, "USE_TRANSACTIONS", False)
    with transaction(db) as session:
        assert session is None
