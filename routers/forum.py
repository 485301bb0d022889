import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from pymongo import ReturnDocument

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
    to_public,
    toggle_member,
    update_document,
)
from errors import NotFoundError
from schemas import FORUM_COLLECTION, USER_COLLECTION, ForumComment, ForumPost as ForumPostSchema

logger = logging.getLogger(__name__)

router = APIRouter()

SORT_FIELDS = ("createdAt", "updatedAt", "title", "category", "isPinned")
AUTHOR_FIELDS = ("name", "email", "village")
COMMENTER_FIELDS = ("name", "email")


# ---------- Models for requests ----------
class PostCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)
    category: str = Field('general', min_length=1, max_length=50)


class PostUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    content: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = Field(None, min_length=1, max_length=50)


class CommentCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    text: str = Field(..., min_length=1, max_length=2000)


def present_posts(db, posts: List[dict]) -> List[dict]:
    populate(db, posts, "author", USER_COLLECTION, AUTHOR_FIELDS)
    populate(db, posts, "comments.user", USER_COLLECTION, COMMENTER_FIELDS)
    return to_public(posts)


def present_post(db, post: dict) -> dict:
    return present_posts(db, [post])[0]


# ---------- Forum endpoints ----------
@router.get("")
def list_posts(
    category: Optional[str] = None,
    sort: str = "-createdAt",
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    db=Depends(get_db),
):
    filter_dict = {"category": category} if category else {}
    posts = get_documents(db, FORUM_COLLECTION, filter_dict, parse_sort(sort, SORT_FIELDS), limit)
    return present_posts(db, posts)


@router.get("/{post_id}")
def get_post(post_id: str, db=Depends(get_db)):
    return present_post(db, find_or_404(db, FORUM_COLLECTION, post_id, "Post"))


@router.post("", status_code=201)
def create_post(body: PostCreate, user=Depends(verify_token), db=Depends(get_db)):
    doc = ForumPostSchema(**body.model_dump(), author=user["_id"]).to_document()
    post_id = create_document(db, FORUM_COLLECTION, doc)
    return present_post(db, db[FORUM_COLLECTION].find_one({"_id": post_id}))


@router.put("/{post_id}")
def update_post(post_id: str, body: PostUpdate, user=Depends(verify_token), db=Depends(get_db)):
    post = find_or_404(db, FORUM_COLLECTION, post_id, "Post")
    require_owner_or_admin(user, post.get("author"))

    fields = body.model_dump(exclude_unset=True, exclude_none=True)
    if fields:
        post = update_document(db, FORUM_COLLECTION, post["_id"], fields)
    return present_post(db, post)


@router.post("/{post_id}/upvote")
def upvote_post(post_id: str, user=Depends(verify_token), db=Depends(get_db)):
    post = find_or_404(db, FORUM_COLLECTION, post_id, "Post")
    post = toggle_member(db, FORUM_COLLECTION, post, "upvotes", user["_id"])
    return present_post(db, post)


@router.post("/{post_id}/comments")
def add_comment(post_id: str, body: CommentCreate, user=Depends(verify_token), db=Depends(get_db)):
    post = find_or_404(db, FORUM_COLLECTION, post_id, "Post")
    comment = ForumComment(user=user["_id"], text=body.text).to_document()
    post = update_document(db, FORUM_COLLECTION, post["_id"], {"$push": {"comments": comment}})
    return present_post(db, post)


@router.post("/{post_id}/comments/{comment_id}/upvote")
def upvote_comment(post_id: str, comment_id: str, user=Depends(verify_token), db=Depends(get_db)):
    post = find_or_404(db, FORUM_COLLECTION, post_id, "Post")
    cid = parse_object_id(comment_id, label="comment id")

    comment = next((c for c in post.get("comments", []) if c.get("_id") == cid), None)
    if comment is None:
        raise NotFoundError("Comment not found")

    op = "$pull" if user["_id"] in (comment.get("upvotes") or []) else "$addToSet"
    post = db[FORUM_COLLECTION].find_one_and_update(
        {"_id": post["_id"], "comments._id": cid},
        {op: {"comments.$.upvotes": user["_id"]}, "$set": {"updatedAt": now()}},
        return_document=ReturnDocument.AFTER,
    )
    if post is None:
        raise NotFoundError("Comment not found")
    return present_post(db, post)


@router.put("/{post_id}/pin")
def toggle_pin(post_id: str, admin=Depends(require_admin), db=Depends(get_db)):
    post = find_or_404(db, FORUM_COLLECTION, post_id, "Post")
    post = update_document(db, FORUM_COLLECTION, post["_id"], {"isPinned": not post.get("isPinned", False)})
    logger.info("Post %s pinned=%s by %s", post["_id"], post["isPinned"], admin["email"])
    return present_post(db, post)


@router.delete("/{post_id}")
def delete_post(post_id: str, user=Depends(verify_token), db=Depends(get_db)):
    post = find_or_404(db, FORUM_COLLECTION, post_id, "Post")
    require_owner_or_admin(user, post.get("author"))
    db[FORUM_COLLECTION].delete_one({"_id": post["_id"]})
    return {"message": "Post deleted successfully"}
