from bson import ObjectId


def test_admin_routes_require_admin(client, villager, volunteer):
    for path in ("/api/admin/stats", "/api/admin/users", "/api/admin/problems", "/api/admin/solutions"):
        assert client.get(path).status_code == 401
        assert client.get(path, headers=villager["headers"]).status_code == 403
        assert client.get(path, headers=volunteer["headers"]).status_code == 403


def test_stats(client, villager, volunteer, admin, create_problem, create_solution):
    water = create_problem(villager, category="water")
    create_problem(villager, category="water")
    create_problem(volunteer, category="health")
    create_solution(volunteer, water["id"])
    client.post("/api/forum", json={"title": "Hi", "content": "Hello"}, headers=villager["headers"])
    client.put(f"/api/problems/{water['id']}/status", json={"status": "resolved"}, headers=admin["headers"])

    res = client.get("/api/admin/stats", headers=admin["headers"])
    assert res.status_code == 200
    stats = res.json()
    assert stats["totalUsers"] == 3
    assert stats["totalProblems"] == 3
    assert stats["solvedProblems"] == 1
    assert stats["unsolvedProblems"] == 2
    assert stats["totalSolutions"] == 1
    assert stats["totalForumPosts"] == 1

    by_category = {g["_id"]: g["count"] for g in stats["problemsByCategory"]}
    assert by_category == {"water": 2, "health": 1}
    by_status = {g["_id"]: g["count"] for g in stats["problemsByStatus"]}
    assert by_status == {"open": 2, "resolved": 1}

    assert len(stats["recentProblems"]) == 3
    assert {p["reportedBy"]["email"] for p in stats["recentProblems"]} == {villager["email"], volunteer["email"]}
    assert stats["recentSolutions"][0]["proposedBy"]["email"] == volunteer["email"]


def test_recent_lists_capped_at_five(client, villager, admin, create_problem):
    for i in range(7):
        create_problem(villager, title=f"Problem {i}")
    stats = client.get("/api/admin/stats", headers=admin["headers"]).json()
    assert len(stats["recentProblems"]) == 5


def test_list_users_hides_passwords(client, villager, admin):
    res = client.get("/api/admin/users", headers=admin["headers"])
    assert res.status_code == 200
    users = res.json()
    assert {u["email"] for u in users} == {villager["email"], admin["email"]}
    assert all("password_hash" not in u for u in users)


def test_change_role(client, villager, admin):
    url = f"/api/admin/users/{villager['id']}/role"
    res = client.put(url, json={"role": "volunteer"}, headers=admin["headers"])
    assert res.status_code == 200
    assert res.json()["role"] == "volunteer"
    assert "password_hash" not in res.json()

    # The new role applies to the existing token straight away
    assert client.get("/api/problems/assigned/me", headers=villager["headers"]).status_code == 403

    assert client.put(url, json={"role": "mayor"}, headers=admin["headers"]).status_code == 400
    res = client.put(f"/api/admin/users/{ObjectId()}/role", json={"role": "admin"}, headers=admin["headers"])
    assert res.status_code == 404


def test_delete_user(client, villager, admin):
    res = client.delete(f"/api/admin/users/{admin['id']}", headers=admin["headers"])
    assert res.status_code == 400

    res = client.delete(f"/api/admin/users/{villager['id']}", headers=admin["headers"])
    assert res.status_code == 200
    assert client.get("/api/auth/me", headers=villager["headers"]).status_code == 401

    assert client.delete(f"/api/admin/users/{villager['id']}", headers=admin["headers"]).status_code == 404


def test_admin_problem_filters(client, villager, admin, create_problem):
    verified = create_problem(villager, priority="high")
    unverified = create_problem(villager, category="education")
    client.put(f"/api/problems/{verified['id']}/verify", headers=admin["headers"])

    def ids(params):
        res = client.get("/api/admin/problems", params=params, headers=admin["headers"])
        assert res.status_code == 200
        return [p["id"] for p in res.json()]

    assert set(ids({})) == {verified["id"], unverified["id"]}
    assert ids({"isVerified": "true"}) == [verified["id"]]
    assert ids({"isVerified": "false"}) == [unverified["id"]]
    assert ids({"category": "education"}) == [unverified["id"]]
    assert ids({"priority": "high"}) == [verified["id"]]


def test_admin_solution_filters(client, villager, admin, create_problem, create_solution):
    problem = create_problem(villager)
    first = create_solution(villager, problem["id"])
    create_solution(villager, problem["id"], title="Another")
    client.put(f"/api/solutions/{first['id']}/status", json={"status": "rejected"}, headers=admin["headers"])

    res = client.get("/api/admin/solutions", params={"status": "rejected"}, headers=admin["headers"])
    assert [s["id"] for s in res.json()] == [first["id"]]
    res = client.get("/api/admin/solutions", headers=admin["headers"])
    assert len(res.json()) == 2


def test_assign_only_to_villagers(client, villager, volunteer, admin, create_problem):
    problem = create_problem(villager)
    url = f"/api/admin/problems/{problem['id']}/assign"

    assert client.put(url, json={"assignedTo": volunteer["id"]}, headers=admin["headers"]).status_code == 400
    assert client.put(url, json={"assignedTo": admin["id"]}, headers=admin["headers"]).status_code == 400
    assert client.put(url, json={"assignedTo": str(ObjectId())}, headers=admin["headers"]).status_code == 400
    assert client.put(url, json={"assignedTo": villager["id"]}, headers=villager["headers"]).status_code == 403

    res = client.put(url, json={"assignedTo": villager["id"]}, headers=admin["headers"])
    assert res.status_code == 200
    assert res.json()["status"] == "in-progress"
    assert res.json()["assignedTo"]["id"] == villager["id"]

    missing = f"/api/admin/problems/{ObjectId()}/assign"
    assert client.put(missing, json={"assignedTo": villager["id"]}, headers=admin["headers"]).status_code == 404
