import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from auth import (
    optional_verify_token,
    require_admin,
    require_owner_or_admin,
    require_role,
    verify_token,
)
from config import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from database import (
    create_document,
    find_or_404,
    get_db,
    get_documents,
    now,
    parse_object_id,
    parse_sort,
    populate,
    session_kwargs,
    to_public,
    toggle_member,
    transaction,
    update_document,
)
from errors import AuthorizationError, ValidationError
from schemas import (
    PROBLEM_COLLECTION,
    SOLUTION_COLLECTION,
    USER_COLLECTION,
    Category,
    Priority,
    Problem as ProblemSchema,
    ProblemStatus,
)

logger = logging.getLogger(__name__)

router = APIRouter()

SORT_FIELDS = ("createdAt", "updatedAt", "title", "category", "priority", "status")
REPORTER_FIELDS = ("name", "email", "village")
PROPOSER_FIELDS = ("name", "email", "village")


# ---------- Models for requests ----------
class ProblemCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    category: Category
    location: Optional[str] = None
    priority: Priority = 'medium'
    images: List[str] = Field(default_factory=list)


class ProblemUpdate(BaseModel):
    """Fields a reporter may edit. Anything else in the body is ignored."""
    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1)
    category: Optional[Category] = None
    location: Optional[str] = None
    priority: Optional[Priority] = None
    images: Optional[List[str]] = None


class StatusUpdate(BaseModel):
    status: ProblemStatus
    assignedTo: Optional[str] = None


class CompletionRequest(BaseModel):
    completionMessage: Optional[str] = Field("", max_length=2000)


# ---------- Helpers ----------
def present_problems(db, problems: List[dict], with_solutions: bool = False) -> List[dict]:
    populate(db, problems, "reportedBy", USER_COLLECTION, REPORTER_FIELDS)
    populate(db, problems, "assignedTo", USER_COLLECTION, REPORTER_FIELDS)
    if with_solutions:
        populate(db, problems, "solutions", SOLUTION_COLLECTION)
        solutions = [s for p in problems for s in p.get("solutions", [])]
        populate(db, solutions, "proposedBy", USER_COLLECTION, PROPOSER_FIELDS)
    return to_public(problems)


def present_problem(db, problem: dict, with_solutions: bool = False) -> dict:
    return present_problems(db, [problem], with_solutions)[0]


def problem_filter(status=None, category=None, priority=None) -> dict:
    filter_dict = {}
    if status:
        filter_dict["status"] = status
    if category:
        filter_dict["category"] = category
    if priority:
        filter_dict["priority"] = priority
    return filter_dict


def get_villager(db, user_id: str) -> dict:
    """Problems can only be handed to villagers."""
    oid = parse_object_id(user_id, label="assignedTo")
    user = db[USER_COLLECTION].find_one({"_id": oid})
    if not user or user.get("role") != "villager":
        raise ValidationError("Can only assign to villagers", field="assignedTo")
    return user


def assign_problem(db, problem: dict, user_id: str) -> dict:
    villager = get_villager(db, user_id)
    logger.info("Problem %s assigned to %s", problem["_id"], villager["_id"])
    return update_document(db, PROBLEM_COLLECTION, problem["_id"], {
        "assignedTo": villager["_id"],
        "status": "in-progress",
    })


def hide_unverified_from(user: Optional[dict]) -> bool:
    return bool(user) and user.get("role") == "volunteer"


# ---------- Problem endpoints ----------
@router.get("")
def list_problems(
    status: Optional[ProblemStatus] = None,
    category: Optional[Category] = None,
    priority: Optional[Priority] = None,
    sort: str = "-createdAt",
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    user=Depends(optional_verify_token),
    db=Depends(get_db),
):
    filter_dict = problem_filter(status, category, priority)
    # Volunteers work only on problems an admin has confirmed
    if hide_unverified_from(user):
        filter_dict["isVerified"] = True

    problems = get_documents(db, PROBLEM_COLLECTION, filter_dict, parse_sort(sort, SORT_FIELDS), limit)
    return present_problems(db, problems)


@router.get("/assigned/me")
def assigned_to_me(user=Depends(verify_token), db=Depends(get_db)):
    require_role(user, ("villager",), "Only villagers can access assigned problems")
    problems = get_documents(db, PROBLEM_COLLECTION, {"assignedTo": user["_id"]}, parse_sort("-createdAt", SORT_FIELDS))
    return present_problems(db, problems)


@router.get("/{problem_id}")
def get_problem(problem_id: str, user=Depends(optional_verify_token), db=Depends(get_db)):
    problem = find_or_404(db, PROBLEM_COLLECTION, problem_id, "Problem")
    if hide_unverified_from(user) and not problem.get("isVerified"):
        raise AuthorizationError("This problem is not yet verified")
    return present_problem(db, problem, with_solutions=True)


@router.post("", status_code=201)
def create_problem(body: ProblemCreate, user=Depends(verify_token), db=Depends(get_db)):
    doc = ProblemSchema(**body.model_dump(), reportedBy=user["_id"]).to_document()
    problem_id = create_document(db, PROBLEM_COLLECTION, doc)
    return present_problem(db, db[PROBLEM_COLLECTION].find_one({"_id": problem_id}))


@router.put("/{problem_id}")
def update_problem(problem_id: str, body: ProblemUpdate, user=Depends(verify_token), db=Depends(get_db)):
    problem = find_or_404(db, PROBLEM_COLLECTION, problem_id, "Problem")
    require_owner_or_admin(user, problem.get("reportedBy"))

    fields = body.model_dump(exclude_unset=True, exclude_none=True)
    if fields:
        problem = update_document(db, PROBLEM_COLLECTION, problem["_id"], fields)
    return present_problem(db, problem)


@router.post("/{problem_id}/upvote")
def upvote_problem(problem_id: str, user=Depends(verify_token), db=Depends(get_db)):
    problem = find_or_404(db, PROBLEM_COLLECTION, problem_id, "Problem")
    problem = toggle_member(db, PROBLEM_COLLECTION, problem, "upvotes", user["_id"])
    return present_problem(db, problem)


@router.put("/{problem_id}/status")
def update_status(problem_id: str, body: StatusUpdate, admin=Depends(require_admin), db=Depends(get_db)):
    problem = find_or_404(db, PROBLEM_COLLECTION, problem_id, "Problem")

    fields = {"status": body.status}
    if body.assignedTo:
        fields["assignedTo"] = get_villager(db, body.assignedTo)["_id"]
    if body.status == "resolved":
        fields["resolvedAt"] = now()

    problem = update_document(db, PROBLEM_COLLECTION, problem["_id"], fields)
    logger.info("Problem %s set to %s by %s", problem["_id"], body.status, admin["email"])
    return present_problem(db, problem)


@router.put("/{problem_id}/verify")
def verify_problem(problem_id: str, admin=Depends(require_admin), db=Depends(get_db)):
    problem = find_or_404(db, PROBLEM_COLLECTION, problem_id, "Problem")
    problem = update_document(db, PROBLEM_COLLECTION, problem["_id"], {"isVerified": True})
    logger.info("Problem %s verified by %s", problem["_id"], admin["email"])
    return present_problem(db, problem)


@router.put("/{problem_id}/complete")
def complete_problem(
    problem_id: str,
    body: Optional[CompletionRequest] = None,
    user=Depends(verify_token),
    db=Depends(get_db),
):
    require_role(user, ("villager",), "Only villagers can complete problems")
    problem = find_or_404(db, PROBLEM_COLLECTION, problem_id, "Problem")
    if problem.get("assignedTo") != user["_id"]:
        raise AuthorizationError("This problem is not assigned to you")

    # Resolved now, confirmed later by an admin through verify-completion
    problem = update_document(db, PROBLEM_COLLECTION, problem["_id"], {
        "isCompletedByVillager": True,
        "completionMessage": (body.completionMessage if body else "") or "",
        "status": "resolved",
        "resolvedAt": now(),
    })
    return present_problem(db, problem)


@router.put("/{problem_id}/verify-completion")
def verify_completion(problem_id: str, admin=Depends(require_admin), db=Depends(get_db)):
    problem = find_or_404(db, PROBLEM_COLLECTION, problem_id, "Problem")
    if not problem.get("isCompletedByVillager"):
        raise ValidationError("Problem has not been completed by villager yet")

    problem = update_document(db, PROBLEM_COLLECTION, problem["_id"], {
        "isVerified": True,
        "status": "resolved",
    })
    logger.info("Completion of problem %s verified by %s", problem["_id"], admin["email"])
    return present_problem(db, problem)


@router.delete("/{problem_id}")
def delete_problem(problem_id: str, admin=Depends(require_admin), db=Depends(get_db)):
    problem = find_or_404(db, PROBLEM_COLLECTION, problem_id, "Problem")

    with transaction(db) as session:
        removed = db[SOLUTION_COLLECTION].delete_many({"problem": problem["_id"]}, **session_kwargs(session))
        db[PROBLEM_COLLECTION].delete_one({"_id": problem["_id"]}, **session_kwargs(session))

    logger.info("Problem %s deleted by %s with %d solutions", problem["_id"], admin["email"], removed.deleted_count)
    return {"message": "Problem deleted successfully"}
