import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from auth import require_admin, require_owner_or_admin, verify_token
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
from schemas import (
    PROBLEM_COLLECTION,
    SOLUTION_COLLECTION,
    USER_COLLECTION,
    Comment,
    Solution as SolutionSchema,
    SolutionStatus,
)

logger = logging.getLogger(__name__)

router = APIRouter()

SORT_FIELDS = ("createdAt", "updatedAt", "title", "status", "estimatedCost")
PROBLEM_FIELDS = ("title", "description", "status", "category", "location")
PROPOSER_FIELDS = ("name", "email", "village")
COMMENTER_FIELDS = ("name", "email")


# ---------- Models for requests ----------
class SolutionCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    problem: str = Field(..., min_length=1, description="Problem id")
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    estimatedCost: Optional[float] = Field(None, ge=0)
    estimatedTime: Optional[str] = None


class SolutionUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1)
    estimatedCost: Optional[float] = Field(None, ge=0)
    estimatedTime: Optional[str] = None


class CommentCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    text: str = Field(..., min_length=1, max_length=2000)


class SolutionStatusUpdate(BaseModel):
    status: SolutionStatus


# ---------- Helpers ----------
def present_solutions(db, solutions: List[dict], with_comments: bool = False) -> List[dict]:
    populate(db, solutions, "problem", PROBLEM_COLLECTION, PROBLEM_FIELDS)
    populate(db, solutions, "proposedBy", USER_COLLECTION, PROPOSER_FIELDS)
    if with_comments:
        populate(db, solutions, "comments.user", USER_COLLECTION, COMMENTER_FIELDS)
    return to_public(solutions)


def present_solution(db, solution: dict, with_comments: bool = False) -> dict:
    return present_solutions(db, [solution], with_comments)[0]


def solution_filter(status=None, problem: Optional[str] = None) -> dict:
    filter_dict = {}
    if status:
        filter_dict["status"] = status
    if problem:
        filter_dict["problem"] = parse_object_id(problem, label="problem")
    return filter_dict


# ---------- Solution endpoints ----------
@router.get("")
def list_solutions(
    problem: Optional[str] = None,
    status: Optional[SolutionStatus] = None,
    sort: str = "-createdAt",
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    db=Depends(get_db),
):
    solutions = get_documents(
        db, SOLUTION_COLLECTION, solution_filter(status, problem), parse_sort(sort, SORT_FIELDS), limit
    )
    return present_solutions(db, solutions)


@router.get("/{solution_id}")
def get_solution(solution_id: str, db=Depends(get_db)):
    solution = find_or_404(db, SOLUTION_COLLECTION, solution_id, "Solution")
    return present_solution(db, solution, with_comments=True)


@router.post("", status_code=201)
def create_solution(body: SolutionCreate, user=Depends(verify_token), db=Depends(get_db)):
    problem = find_or_404(db, PROBLEM_COLLECTION, body.problem, "Problem")

    doc = SolutionSchema(
        **body.model_dump(exclude={"problem"}),
        problem=problem["_id"],
        proposedBy=user["_id"],
    ).to_document()

    # The parent keeps an ordered list of its solutions
    with transaction(db) as session:
        solution_id = create_document(db, SOLUTION_COLLECTION, doc, session=session)
        update_document(db, PROBLEM_COLLECTION, problem["_id"],
                        {"$addToSet": {"solutions": solution_id}}, session=session)

    return present_solution(db, db[SOLUTION_COLLECTION].find_one({"_id": solution_id}))


@router.put("/{solution_id}")
def update_solution(solution_id: str, body: SolutionUpdate, user=Depends(verify_token), db=Depends(get_db)):
    solution = find_or_404(db, SOLUTION_COLLECTION, solution_id, "Solution")
    require_owner_or_admin(user, solution.get("proposedBy"))

    fields = body.model_dump(exclude_unset=True, exclude_none=True)
    if fields:
        solution = update_document(db, SOLUTION_COLLECTION, solution["_id"], fields)
    return present_solution(db, solution)


@router.post("/{solution_id}/upvote")
def upvote_solution(solution_id: str, user=Depends(verify_token), db=Depends(get_db)):
    solution = find_or_404(db, SOLUTION_COLLECTION, solution_id, "Solution")
    solution = toggle_member(db, SOLUTION_COLLECTION, solution, "upvotes", user["_id"])
    return present_solution(db, solution)


@router.post("/{solution_id}/comments")
def add_comment(solution_id: str, body: CommentCreate, user=Depends(verify_token), db=Depends(get_db)):
    solution = find_or_404(db, SOLUTION_COLLECTION, solution_id, "Solution")
    comment = Comment(user=user["_id"], text=body.text).to_document()
    solution = update_document(db, SOLUTION_COLLECTION, solution["_id"], {"$push": {"comments": comment}})
    return present_solution(db, solution, with_comments=True)


@router.put("/{solution_id}/status")
def update_status(solution_id: str, body: SolutionStatusUpdate, admin=Depends(require_admin), db=Depends(get_db)):
    solution = find_or_404(db, SOLUTION_COLLECTION, solution_id, "Solution")

    fields = {"status": body.status}
    if body.status == "implemented":
        fields["implementedAt"] = now()

    solution = update_document(db, SOLUTION_COLLECTION, solution["_id"], fields)
    logger.info("Solution %s set to %s by %s", solution["_id"], body.status, admin["email"])
    return present_solution(db, solution)


@router.delete("/{solution_id}")
def delete_solution(solution_id: str, user=Depends(verify_token), db=Depends(get_db)):
    solution = find_or_404(db, SOLUTION_COLLECTION, solution_id, "Solution")
    require_owner_or_admin(user, solution.get("proposedBy"))

    with transaction(db) as session:
        db[PROBLEM_COLLECTION].update_one(
            {"_id": solution["problem"]},
            {"$pull": {"solutions": solution["_id"]}},
            **session_kwargs(session),
        )
        db[SOLUTION_COLLECTION].delete_one({"_id": solution["_id"]}, **session_kwargs(session))

    return {"message": "Solution deleted successfully"}
