"""Products, reviews, best sellers and categories."""

import logging
import re
from collections import defaultdict
from typing import List, Optional, Tuple

from database import Store
from errors import (
    CategoryNotFound,
    Conflict,
    InvalidRequest,
    PersistenceFailure,
    ProductNotFound,
    Unauthenticated,
)
from gateways import extract_cid
from schemas import CategoryPayload, ProductPayload, ReviewPayload

logger = logging.getLogger(__name__)

PLACEHOLDER_IMAGE = "/placeholder.svg"


# --- Products ---


def _check_product_fields(payload: ProductPayload) -> None:
    if not payload.name or not payload.description or payload.price is None or not payload.category:
        raise InvalidRequest("Missing required fields")


def _gallery(payload: ProductPayload) -> Optional[List[dict]]:
    if payload.gallery is None:
        return None
    return [g.model_dump() for g in payload.gallery]


def get_product(store: Store, product_id: str) -> dict:
    product = store.get_product(product_id)
    if product is None:
        raise ProductNotFound(product_id)
    return product


def get_product_detail(store: Store, product_id: str) -> dict:
    """Product with its reviews (newest first) and average rating."""
    product = get_product(store, product_id)
    try:
        reviews = store.list_reviews(product_id)
    except PersistenceFailure as e:
        logger.error("Error fetching reviews for product %s: %s", product_id, e)
        reviews = []
    if reviews:
        product["reviews"] = reviews
        product["average_rating"] = sum(r["rating"] for r in reviews) / len(reviews)
    return product


def create_product(store: Store, payload: ProductPayload) -> dict:
    _check_product_fields(payload)
    data = {
        "name": payload.name,
        "description": payload.description,
        "price": payload.price,
        "category": payload.category,
        "image": payload.image or PLACEHOLDER_IMAGE,
        "image_cid": payload.image_cid,
        "stock": payload.stock or 0,
    }
    gallery = _gallery(payload)
    if gallery is not None:
        data["gallery"] = gallery
    product = store.create_product(data)
    logger.info("Product created: %s (%s)", product["id"], product["name"])
    return product


def update_product(store: Store, product_id: str, payload: ProductPayload) -> dict:
    _check_product_fields(payload)
    existing = get_product(store, product_id)
    changes = {
        "name": payload.name,
        "description": payload.description,
        "price": payload.price,
        "category": payload.category,
        "image": payload.image or existing.get("image") or PLACEHOLDER_IMAGE,
        "image_cid": payload.image_cid,
        "stock": existing.get("stock", 0) if payload.stock is None else payload.stock,
    }
    gallery = _gallery(payload)
    if gallery is not None:
        changes["gallery"] = gallery
    updated = store.update_product(product_id, changes)
    if updated is None:
        raise ProductNotFound(product_id)
    return updated


def image_cids(product: dict) -> List[str]:
    """CIDs of every pinned image that belongs to a product."""
    cids = []
    main = product.get("image_cid") or extract_cid(product.get("image"))
    if main:
        cids.append(main)
    for item in product.get("gallery") or []:
        cid = item.get("cid") or extract_cid(item.get("url"))
        if cid:
            cids.append(cid)
    return cids


def delete_product(store: Store, product_id: str) -> List[str]:
    """Delete the product record and return the image CIDs left to unpin."""
    product = get_product(store, product_id)
    if not store.delete_product(product_id):
        raise PersistenceFailure("Failed to delete product")
    cids = image_cids(product)
    logger.info("Product %s deleted, %d image(s) to unpin", product_id, len(cids))
    return cids


def stock_info(store: Store, product_id: str) -> dict:
    product = get_product(store, product_id)
    stock = int(product.get("stock") or 0)
    return {"id": product["id"], "stock": stock, "available": stock > 0}


def best_selling_products(orders: List[dict], products: List[dict], limit: int = 4) -> List[dict]:
    """Rank products by units sold across all orders.

    Products that never sold keep their original relative order.
    """
    sold = defaultdict(int)
    for order in orders:
        for item in order.get("products") or []:
            product_id = item.get("product_id")
            if product_id:
                sold[product_id] += item.get("quantity") or 1
    ranked = sorted(products, key=lambda p: sold.get(p["id"], 0), reverse=True)
    return ranked[:max(limit, 0)]


# --- Reviews ---


def list_reviews(store: Store, product_id: str) -> Tuple[List[dict], float]:
    get_product(store, product_id)
    reviews = store.list_reviews(product_id)
    average = sum(r["rating"] for r in reviews) / len(reviews) if reviews else 0
    return reviews, average


def submit_review(store: Store, product_id: str, payload: ReviewPayload) -> dict:
    if not payload.user_id:
        raise Unauthenticated("User ID is required")
    if not payload.rating or not payload.comment:
        raise InvalidRequest("Rating and comment are required")
    try:
        rating = float(payload.rating)
    except (TypeError, ValueError):
        rating = float("nan")
    if not 1 <= rating <= 5:
        raise InvalidRequest("Rating must be a number between 1 and 5")

    get_product(store, product_id)
    fields = {
        "user_name": payload.user_name or "Anonymous",
        "rating": rating,
        "comment": payload.comment,
        "verified": True,
    }
    existing = store.find_review(product_id, payload.user_id)
    if existing:
        review = store.update_review(existing["id"], fields)
        logger.info("Updated review %s for product %s", existing["id"], product_id)
    else:
        review = store.create_review({"product_id": product_id, "user_id": payload.user_id, **fields})
        logger.info("Created review for product %s by %s", product_id, payload.user_id)
    if review is None:
        raise PersistenceFailure("Failed to create review")
    return review


# --- Categories ---


def normalize_slug(slug: str) -> str:
    return re.sub(r"\s+", "-", slug.lower())


def get_category(store: Store, category_id: str) -> dict:
    category = store.get_category(category_id)
    if category is None:
        raise CategoryNotFound(category_id)
    return category


def create_category(store: Store, payload: CategoryPayload) -> dict:
    if not payload.name or not payload.slug:
        raise InvalidRequest("Name and slug are required fields")
    slug = normalize_slug(payload.slug)
    if store.get_category_by_slug(slug):
        raise Conflict("A category with this slug already exists")
    return store.create_category({
        "name": payload.name,
        "description": payload.description or "",
        "slug": slug,
        "is_active": True if payload.is_active is None else payload.is_active,
    })


def update_category(store: Store, category_id: str, payload: CategoryPayload) -> dict:
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if not changes:
        raise InvalidRequest("No update fields provided")
    get_category(store, category_id)
    if changes.get("slug"):
        slug = normalize_slug(changes["slug"])
        other = store.get_category_by_slug(slug)
        if other and other["id"] != category_id:
            raise Conflict("A category with this slug already exists")
        changes["slug"] = slug
    updated = store.update_category(category_id, changes)
    if updated is None:
        raise CategoryNotFound(category_id)
    return updated


def delete_category(store: Store, category_id: str) -> None:
    get_category(store, category_id)
    store.delete_category(category_id)
