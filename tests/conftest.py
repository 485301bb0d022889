import itertools

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import get_db
from main import app

PASSWORD = "secret123"


@pytest.fixture
def db():
    """Fresh in-memory MongoDB for every test."""
    return mongomock.MongoClient()["village_connect_test"]


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(client, db):
    """Register a user through the API and return its id, email and auth headers.

    Admins are registered as villagers and promoted directly in the database.
    """
    counter = itertools.count(1)

    def _make(role="villager", village="Riverside"):
        n = next(counter)
        email = f"{role}{n}@village.org"
        res = client.post("/api/auth/register", json={
            "name": f"{role.title()} {n}",
            "email": email,
            "password": PASSWORD,
            "village": village,
            "role": "volunteer" if role == "volunteer" else "villager",
        })
        assert res.status_code == 201, res.text
        body = res.json()
        if role == "admin":
            db["user"].update_one({"email": email}, {"$set": {"role": "admin"}})
        return {
            "id": body["user"]["id"],
            "email": email,
            "headers": {"Authorization": f"Bearer {body['token']}"},
        }

    return _make


@pytest.fixture
def villager(make_user):
    return make_user("villager")


@pytest.fixture
def volunteer(make_user):
    return make_user("volunteer")


@pytest.fixture
def admin(make_user):
    return make_user("admin")


@pytest.fixture
def create_problem(client):
    def _create(user, **overrides):
        payload = {
            "title": "Broken pump",
            "description": "The hand pump near the school has stopped working",
            "category": "water",
            "location": "School road",
        }
        payload.update(overrides)
        res = client.post("/api/problems", json=payload, headers=user["headers"])
        assert res.status_code == 201, res.text
        return res.json()

    return _create


@pytest.fixture
def create_solution(client):
    def _create(user, problem_id, **overrides):
        payload = {
            "problem": problem_id,
            "title": "Replace the washer",
            "description": "Buy a new washer and seal from the market",
            "estimatedCost": 250,
            "estimatedTime": "2 days",
        }
        payload.update(overrides)
        res = client.post("/api/solutions", json=payload, headers=user["headers"])
        assert res.status_code == 201, res.text
        return res.json()

    return _create
