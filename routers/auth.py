import logging
from typing import Annotated, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints
from pymongo.errors import DuplicateKeyError

from auth import create_token, get_password_hash, verify_password, verify_token
from database import create_document, get_db, to_public, update_document
from errors import AuthError, ValidationError
from schemas import USER_COLLECTION, User as UserSchema

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------- Models for requests ----------
class RegisterRequest(BaseModel):
    # Passwords are hashed exactly as typed
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=80)]
    email: EmailStr
    password: str = Field(..., min_length=6)
    village: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=120)]
    role: Literal['villager', 'volunteer'] = 'villager'  # admins are promoted, not registered


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=1, max_length=80)
    village: Optional[str] = Field(None, min_length=1, max_length=120)


def _auth_response(user: dict) -> dict:
    return {"token": create_token(user["_id"], user["role"]), "user": to_public(user)}


# ---------- Auth endpoints ----------
@router.post("/register", status_code=201)
def register(req: RegisterRequest, db=Depends(get_db)):
    email = req.email.lower()
    if db[USER_COLLECTION].find_one({"email": email}):
        raise ValidationError("User already exists", field="email")

    user_doc = UserSchema(
        name=req.name,
        email=email,
        password_hash=get_password_hash(req.password),
        village=req.village,
        role=req.role,
    ).to_document()
    try:
        user_id = create_document(db, USER_COLLECTION, user_doc)
    except DuplicateKeyError:
        raise ValidationError("User already exists", field="email")

    logger.info("Registered %s as %s", email, req.role)
    return _auth_response(db[USER_COLLECTION].find_one({"_id": user_id}))


@router.post("/login")
def login(req: LoginRequest, db=Depends(get_db)):
    user = db[USER_COLLECTION].find_one({"email": req.email.lower()})
    if not user or not verify_password(req.password, user.get("password_hash")):
        logger.warning("Failed login for %s", req.email)
        raise AuthError("Invalid credentials")

    logger.info("Login %s", user["email"])
    return _auth_response(user)


@router.get("/me")
def me(user=Depends(verify_token)):
    return to_public(user)


@router.put("/me")
def update_me(body: ProfileUpdate, user=Depends(verify_token), db=Depends(get_db)):
    fields = body.model_dump(exclude_unset=True, exclude_none=True)
    if not fields:
        return to_public(user)
    updated = update_document(db, USER_COLLECTION, user["_id"], fields)
    return to_public(updated)
