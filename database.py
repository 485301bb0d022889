"""
MongoDB access for Village Connect.

One client per process; handlers receive the database handle through the
`get_db` dependency. Documents keep their references as ObjectIds and are
converted to JSON-friendly dicts with `to_public` right before responding.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument

import config
from errors import NotFoundError, ServerError, ValidationError

logger = logging.getLogger(__name__)

try:
    client = MongoClient(config.DATABASE_URL, serverSelectionTimeoutMS=5000)
    db = client[config.DATABASE_NAME]
except Exception as e:
    logger.error("MongoDB client could not be created: %s", e)
    client = None
    db = None


def get_db():
    if db is None:
        raise ServerError("Database not configured")
    return db


def now():
    return datetime.now(timezone.utc)


def session_kwargs(session) -> dict:
    return {"session": session} if session is not None else {}


@contextmanager
def transaction(database):
    """Yield a session inside a started transaction, or None when disabled.

    Without transactions the writes in the block are plain sequential
    writes; a failure between them is not rolled back.
    """
    if not config.USE_TRANSACTIONS:
        yield None
        return
    with database.client.start_session() as session:
        with session.start_transaction():
            yield session


def parse_object_id(value: str, label: str = "id") -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {label}", field=label)


def parse_sort(sort: Optional[str], allowed: Iterable[str]):
    """Turn "-createdAt,title" into a pymongo sort spec."""
    spec = []
    for part in (sort or "").split(","):
        part = part.strip()
        if not part:
            continue
        direction = DESCENDING if part.startswith("-") else ASCENDING
        field = part.lstrip("-+")
        if field not in allowed:
            raise ValidationError(f"Cannot sort by '{field}'", field="sort")
        spec.append((field, direction))
    return spec or [("createdAt", DESCENDING)]


def create_document(database, collection_name: str, data: dict, session=None) -> ObjectId:
    doc = dict(data)
    doc["createdAt"] = now()
    doc["updatedAt"] = doc["createdAt"]
    result = database[collection_name].insert_one(doc, **session_kwargs(session))
    return result.inserted_id


def get_documents(database, collection_name: str, filter_dict: Optional[dict] = None,
                  sort=None, limit: Optional[int] = None) -> List[dict]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def find_or_404(database, collection_name: str, doc_id: Union[str, ObjectId], label: str) -> dict:
    oid = doc_id if isinstance(doc_id, ObjectId) else parse_object_id(doc_id, label=f"{label.lower()} id")
    doc = database[collection_name].find_one({"_id": oid})
    if not doc:
        raise NotFoundError(f"{label} not found")
    return doc


def update_document(database, collection_name: str, doc_id: ObjectId, update: dict, session=None) -> dict:
    """Apply a raw update (or a plain field dict, wrapped in $set) and return the new document."""
    if not any(key.startswith("$") for key in update):
        update = {"$set": update}
    update = dict(update)
    update["$set"] = dict(update.get("$set", {}), updatedAt=now())
    doc = database[collection_name].find_one_and_update(
        {"_id": doc_id},
        update,
        return_document=ReturnDocument.AFTER,
        **session_kwargs(session),
    )
    if doc is None:
        raise NotFoundError("Document not found")
    return doc


def toggle_member(database, collection_name: str, doc: dict, field: str, member: ObjectId) -> dict:
    """Add `member` to the set at `field`, or remove it if already present."""
    op = "$pull" if member in (doc.get(field) or []) else "$addToSet"
    return update_document(database, collection_name, doc["_id"], {op: {field: member}})


def populate(database, docs, path: str, collection_name: str, fields: Optional[Iterable[str]] = None):
    """Replace reference ids with the referenced documents, in place.

    `path` is a top-level key ("reportedBy"), a list key ("solutions"), or a
    key inside a list of subdocuments ("comments.user"). Dangling references
    are left as ids.
    """
    if isinstance(docs, dict):
        docs = [docs]
    docs = [d for d in docs if isinstance(d, dict)]
    outer, _, inner = path.partition(".")

    def refs(doc):
        value = doc.get(outer)
        if inner:
            return [sub.get(inner) for sub in value or []]
        if isinstance(value, list):
            return value
        return [value]

    ids = {ref for doc in docs for ref in refs(doc) if isinstance(ref, ObjectId)}
    if not ids:
        return docs

    projection = {field: 1 for field in fields} if fields else None
    found = {
        ref["_id"]: ref
        for ref in database[collection_name].find({"_id": {"$in": list(ids)}}, projection)
    }

    for doc in docs:
        value = doc.get(outer)
        if inner:
            for sub in value or []:
                ref = sub.get(inner)
                if isinstance(ref, ObjectId):
                    sub[inner] = found.get(ref, ref)
        elif isinstance(value, list):
            doc[outer] = [found.get(ref, ref) if isinstance(ref, ObjectId) else ref for ref in value]
        elif isinstance(value, ObjectId):
            doc[outer] = found.get(value, value)
    return docs


def to_public(value):
    if isinstance(value, dict):
        return {
            ("id" if key == "_id" else key): to_public(item)
            for key, item in value.items()
            if key != "password_hash"
        }
    if isinstance(value, list):
        return [to_public(item) for item in value]
    if isinstance(value, ObjectId):
        return str(value)
    return value


def database_status(database) -> str:
    try:
        database.list_collection_names()
        return "connected"
    except Exception as e:
        logger.warning("Database status check failed: %s", e)
        return "disconnected"
