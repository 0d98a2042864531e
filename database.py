"""
Document store for the storefront.

Each entity lives in a MongoDB collection named after the lowercase entity:
- Product -> "product"
- Order -> "order"
- User -> "user"
- Category -> "category"
- Review -> "review"

Documents are handed out as plain dicts whose ``_id`` has been replaced by a
string ``id``. The store is constructed once at startup and injected into the
route handlers with ``Depends(get_store)``.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import List, Optional

from bson import ObjectId
from fastapi import Request
from pymongo import MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import Conflict, PersistenceFailure

logger = logging.getLogger(__name__)

PRODUCT = "product"
ORDER = "order"
USER = "user"
CATEGORY = "category"
REVIEW = "review"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Store:
    """Entity-level access to the document store.

    Subclasses supply the collection primitives (``_get``, ``_find``,
    ``_insert``, ``_update``, ``_delete``, ``ping``, ``close``); every
    entity operation the handlers use is defined here on top of them.
    """

    # --- primitives ---

    def _get(self, collection: str, doc_id: str) -> Optional[dict]:
        raise NotImplementedError

    def _find(self, collection: str, filters: Optional[dict] = None) -> List[dict]:
        raise NotImplementedError

    def _insert(self, collection: str, doc: dict) -> dict:
        raise NotImplementedError

    def _update(self, collection: str, doc_id: str, changes: dict) -> Optional[dict]:
        raise NotImplementedError

    def _delete(self, collection: str, doc_id: str) -> bool:
        raise NotImplementedError

    def ping(self) -> None:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    # --- shared helpers ---

    def _find_first(self, collection: str, filters: dict) -> Optional[dict]:
        found = self._find(collection, filters)
        return found[0] if found else None

    def _create(self, collection: str, data: dict) -> dict:
        now = utcnow()
        return self._insert(collection, {**data, "created_at": now, "updated_at": now})

    def _modify(self, collection: str, doc_id: str, changes: dict) -> Optional[dict]:
        return self._update(collection, doc_id, {**changes, "updated_at": utcnow()})

    # --- products ---

    def list_products(self) -> List[dict]:
        return self._find(PRODUCT)

    def get_product(self, product_id: str) -> Optional[dict]:
        return self._get(PRODUCT, product_id)

    def create_product(self, data: dict) -> dict:
        return self._create(PRODUCT, data)

    def update_product(self, product_id: str, changes: dict) -> Optional[dict]:
        return self._modify(PRODUCT, product_id, changes)

    def delete_product(self, product_id: str) -> bool:
        return self._delete(PRODUCT, product_id)

    # --- orders ---

    def list_orders(self, user_id: Optional[str] = None) -> List[dict]:
        if user_id is None:
            return self._find(ORDER)
        return self._find(ORDER, {"user_id": user_id})

    def get_order(self, order_id: str) -> Optional[dict]:
        return self._get(ORDER, order_id)

    def create_order(self, data: dict) -> dict:
        return self._create(ORDER, data)

    def update_order_status(self, order_id: str, status: str) -> Optional[dict]:
        return self._modify(ORDER, order_id, {"status": status})

    def delete_order(self, order_id: str) -> bool:
        return self._delete(ORDER, order_id)

    # --- users ---

    def list_users(self) -> List[dict]:
        return self._find(USER)

    def get_user(self, user_id: str) -> Optional[dict]:
        return self._get(USER, user_id)

    def get_user_by_email(self, email: str) -> Optional[dict]:
        return self._find_first(USER, {"email": email})

    def create_user(self, data: dict) -> dict:
        return self._create(USER, data)

    def update_user(self, user_id: str, changes: dict) -> Optional[dict]:
        return self._modify(USER, user_id, changes)

    def delete_user(self, user_id: str) -> bool:
        return self._delete(USER, user_id)

    # --- categories ---

    def list_categories(self) -> List[dict]:
        return self._find(CATEGORY)

    def get_category(self, category_id: str) -> Optional[dict]:
        return self._get(CATEGORY, category_id)

    def get_category_by_slug(self, slug: str) -> Optional[dict]:
        return self._find_first(CATEGORY, {"slug": slug})

    def create_category(self, data: dict) -> dict:
        return self._create(CATEGORY, data)

    def update_category(self, category_id: str, changes: dict) -> Optional[dict]:
        return self._modify(CATEGORY, category_id, changes)

    def delete_category(self, category_id: str) -> bool:
        return self._delete(CATEGORY, category_id)

    # --- reviews ---

    def list_reviews(self, product_id: str) -> List[dict]:
        reviews = self._find(REVIEW, {"product_id": product_id})
        return sorted(reviews, key=lambda r: r["created_at"], reverse=True)

    def find_review(self, product_id: str, user_id: str) -> Optional[dict]:
        return self._find_first(REVIEW, {"product_id": product_id, "user_id": user_id})

    def create_review(self, data: dict) -> dict:
        return self._create(REVIEW, data)

    def update_review(self, review_id: str, changes: dict) -> Optional[dict]:
        return self._modify(REVIEW, review_id, changes)


def _object_id(doc_id: str) -> Optional[ObjectId]:
    if not doc_id or not ObjectId.is_valid(doc_id):
        return None
    return ObjectId(doc_id)


def _public(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return doc


@contextmanager
def _guard(action: str):
    try:
        yield
    except DuplicateKeyError as e:
        raise Conflict("Duplicate value for a unique field", str(e)) from e
    except PyMongoError as e:
        logger.error("Database error while trying to %s: %s", action, e)
        raise PersistenceFailure(f"Failed to {action}", str(e)) from e


class MongoStore(Store):
    def __init__(self, url: str, name: str, client: Optional[MongoClient] = None):
        self.client = client if client is not None else MongoClient(url, tz_aware=True)
        self.db = self.client[name]

    def ensure_indexes(self) -> None:
        with _guard("create indexes"):
            self.db[USER].create_index("email", unique=True)
            self.db[CATEGORY].create_index("slug", unique=True)
            self.db[ORDER].create_index("user_id")
            self.db[REVIEW].create_index([("product_id", 1), ("user_id", 1)])

    def _get(self, collection: str, doc_id: str) -> Optional[dict]:
        oid = _object_id(doc_id)
        if oid is None:
            return None
        with _guard(f"read {collection}"):
            return _public(self.db[collection].find_one({"_id": oid}))

    def _find(self, collection: str, filters: Optional[dict] = None) -> List[dict]:
        with _guard(f"list {collection}"):
            return [_public(d) for d in self.db[collection].find(filters or {})]

    def _insert(self, collection: str, doc: dict) -> dict:
        with _guard(f"create {collection}"):
            result = self.db[collection].insert_one(dict(doc))
        return {**doc, "id": str(result.inserted_id)}

    def _update(self, collection: str, doc_id: str, changes: dict) -> Optional[dict]:
        oid = _object_id(doc_id)
        if oid is None:
            return None
        with _guard(f"update {collection}"):
            doc = self.db[collection].find_one_and_update(
                {"_id": oid},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        return _public(doc)

    def _delete(self, collection: str, doc_id: str) -> bool:
        oid = _object_id(doc_id)
        if oid is None:
            return False
        with _guard(f"delete {collection}"):
            res = self.db[collection].delete_one({"_id": oid})
        return res.deleted_count > 0

    def ping(self) -> None:
        with _guard("reach the database"):
            self.client.admin.command("ping")

    def close(self) -> None:
        self.client.close()


def get_store(request: Request) -> Store:
    return request.app.state.store
