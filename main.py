import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import database
from auth import get_password_hash
from config import (
    ADMIN_EMAIL,
    ADMIN_NAME,
    ADMIN_PASSWORD,
    ADMIN_VILLAGE,
    ALLOWED_ORIGINS,
    APP_NAME,
    LOG_LEVEL,
    PORT,
)
from database import create_document, database_status
from errors import register_exception_handlers
from routers import admin, auth, forum, problems, solutions
from schemas import USER_COLLECTION, User as UserSchema

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("village_connect")


# ---------- Startup ----------
def ensure_indexes(db):
    db[USER_COLLECTION].create_index("email", unique=True)


def create_default_admin(db):
    if not ADMIN_EMAIL or not ADMIN_PASSWORD:
        logger.info("ADMIN_EMAIL/ADMIN_PASSWORD not set, skipping default admin")
        return

    email = ADMIN_EMAIL.lower()
    if db[USER_COLLECTION].find_one({"email": email}):
        logger.info("Admin %s exists", email)
        return

    admin_doc = UserSchema(
        name=ADMIN_NAME,
        email=email,
        password_hash=get_password_hash(ADMIN_PASSWORD),
        village=ADMIN_VILLAGE,
        role="admin",
    ).to_document()
    create_document(db, USER_COLLECTION, admin_doc)
    logger.info("Created default admin %s", email)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is None:
        logger.error("Database not configured")
    else:
        try:
            ensure_indexes(database.db)
            create_default_admin(database.db)
            logger.info("MongoDB connected: %s", database.db.name)
        except Exception:
            logger.exception("MongoDB startup tasks failed")
    yield


# Init App
app = FastAPI(title=APP_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(problems.router, prefix="/api/problems", tags=["problems"])
app.include_router(solutions.router, prefix="/api/solutions", tags=["solutions"])
app.include_router(forum.router, prefix="/api/forum", tags=["forum"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])


# ---------- Basic routes ----------
@app.get("/")
def root():
    return {"message": f"{APP_NAME} running"}


@app.get("/api/health")
def health():
    return {
        "status": "OK",
        "message": f"{APP_NAME} is running",
        "database": "disconnected" if database.db is None else database_status(database.db),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=PORT)
