import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from auth import require_admin
from database import find_or_404, get_db, get_documents, parse_sort, populate, to_public, update_document
from errors import ValidationError
from routers.problems import assign_problem, present_problem, present_problems, problem_filter
from routers.solutions import present_solutions, solution_filter
from schemas import (
    FORUM_COLLECTION,
    PROBLEM_COLLECTION,
    SOLUTION_COLLECTION,
    USER_COLLECTION,
    Category,
    Priority,
    ProblemStatus,
    Role,
    SolutionStatus,
)

logger = logging.getLogger(__name__)

# Every route here is admin-only
router = APIRouter(dependencies=[Depends(require_admin)])

RECENT_LIMIT = 5
NEWEST_FIRST = parse_sort("-createdAt", ("createdAt",))


class RoleUpdate(BaseModel):
    role: Role


class AssignRequest(BaseModel):
    assignedTo: str


def count_by(db, collection_name: str, field: str):
    groups = db[collection_name].aggregate([
        {"$group": {"_id": f"${field}", "count": {"$sum": 1}}},
        {"$sort": {"count": -1}},
    ])
    return [{"_id": g["_id"], "count": g["count"]} for g in groups]


@router.get("/stats")
def get_stats(db=Depends(get_db)):
    problems = db[PROBLEM_COLLECTION]

    recent_problems = get_documents(db, PROBLEM_COLLECTION, {}, NEWEST_FIRST, RECENT_LIMIT)
    populate(db, recent_problems, "reportedBy", USER_COLLECTION, ("name", "email"))
    recent_solutions = get_documents(db, SOLUTION_COLLECTION, {}, NEWEST_FIRST, RECENT_LIMIT)
    populate(db, recent_solutions, "proposedBy", USER_COLLECTION, ("name", "email"))

    return {
        "totalUsers": db[USER_COLLECTION].count_documents({}),
        "totalProblems": problems.count_documents({}),
        "solvedProblems": problems.count_documents({"status": "resolved"}),
        "unsolvedProblems": problems.count_documents({"status": {"$ne": "resolved"}}),
        "totalSolutions": db[SOLUTION_COLLECTION].count_documents({}),
        "totalForumPosts": db[FORUM_COLLECTION].count_documents({}),
        "problemsByStatus": count_by(db, PROBLEM_COLLECTION, "status"),
        "problemsByCategory": count_by(db, PROBLEM_COLLECTION, "category"),
        "recentProblems": to_public(recent_problems),
        "recentSolutions": to_public(recent_solutions),
    }


# ---------- Users ----------
@router.get("/users")
def list_users(db=Depends(get_db)):
    users = db[USER_COLLECTION].find({}, {"password_hash": 0}).sort(NEWEST_FIRST)
    return to_public(list(users))


@router.put("/users/{user_id}/role")
def update_role(user_id: str, body: RoleUpdate, admin=Depends(require_admin), db=Depends(get_db)):
    user = find_or_404(db, USER_COLLECTION, user_id, "User")
    user = update_document(db, USER_COLLECTION, user["_id"], {"role": body.role})
    logger.info("User %s role set to %s by %s", user["email"], body.role, admin["email"])
    return to_public(user)


@router.delete("/users/{user_id}")
def delete_user(user_id: str, admin=Depends(require_admin), db=Depends(get_db)):
    user = find_or_404(db, USER_COLLECTION, user_id, "User")
    if user["_id"] == admin["_id"]:
        raise ValidationError("Cannot delete your own account")

    db[USER_COLLECTION].delete_one({"_id": user["_id"]})
    logger.info("User %s deleted by %s", user["email"], admin["email"])
    return {"message": "User deleted successfully"}


# ---------- Problems & solutions ----------
@router.get("/problems")
def list_problems(
    status: Optional[ProblemStatus] = None,
    category: Optional[Category] = None,
    priority: Optional[Priority] = None,
    isVerified: Optional[bool] = None,
    db=Depends(get_db),
):
    filter_dict = problem_filter(status, category, priority)
    if isVerified is not None:
        filter_dict["isVerified"] = isVerified
    return present_problems(db, get_documents(db, PROBLEM_COLLECTION, filter_dict, NEWEST_FIRST))


@router.get("/solutions")
def list_solutions(
    status: Optional[SolutionStatus] = None,
    problem: Optional[str] = None,
    db=Depends(get_db),
):
    return present_solutions(db, get_documents(db, SOLUTION_COLLECTION, solution_filter(status, problem), NEWEST_FIRST))


@router.put("/problems/{problem_id}/assign")
def assign(problem_id: str, body: AssignRequest, db=Depends(get_db)):
    problem = find_or_404(db, PROBLEM_COLLECTION, problem_id, "Problem")
    return present_problem(db, assign_problem(db, problem, body.assignedTo))
