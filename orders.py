"""Order placement and order lifecycle.

Placing an order validates every line item against the catalog, persists the
order, then decrements stock product by product. Line items naming the same
product are checked and decremented as one combined quantity. The steps are
not atomic: the stock check and the stock write are separate reads and
writes with no lock, so two concurrent orders for the same product can both
pass validation and oversell. A failed stock write after the order is stored is logged and
reported in the result, never rolled back.
"""

import logging
from typing import Any, List, Optional, Tuple

from database import Store
from errors import (
    InsufficientStock,
    InvalidRequest,
    InvalidStatus,
    OrderNotFound,
    PersistenceFailure,
    ProductNotFound,
)
from schemas import ORDER_STATUSES, LineItem, OrderRequest

logger = logging.getLogger(__name__)

DEFAULT_STATUS = "pending"
DEFAULT_PAYMENT_METHOD = "cash_on_delivery"
DEFAULT_PAYMENT_STATUS = "pending"


def price_line_items(store: Store, items: List[LineItem]) -> Tuple[float, List[dict]]:
    """Resolve each line item, check stock and sum the order total.

    Quantities of repeated products are combined before the stock check.
    Returns the total and one stock snapshot per distinct product, in first
    seen order. Raises on the first unknown product or short item; nothing
    is written.
    """
    requested = {}
    for item in items:
        requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity

    total = 0.0
    snapshots = []
    for product_id, quantity in requested.items():
        product = store.get_product(product_id)
        if product is None:
            logger.warning("Product not found: %s", product_id)
            raise ProductNotFound(product_id)

        stock = int(product.get("stock") or 0)
        name = product.get("name", "")
        if quantity > stock:
            logger.warning(
                "Not enough stock for product %s. Requested: %d, Available: %d",
                name, quantity, stock,
            )
            raise InsufficientStock(product["id"], name, quantity, stock)

        price = float(product.get("price") or 0)
        total += price * quantity
        snapshots.append({
            "id": product["id"],
            "name": name,
            "current_stock": stock,
            "order_quantity": quantity,
        })
    return round(total, 2), snapshots


def adjust_inventory(store: Store, snapshots: List[dict]) -> List[dict]:
    """Decrement stock for each snapshot, collecting per-item results."""
    results = []
    for snap in snapshots:
        new_stock = max(0, snap["current_stock"] - snap["order_quantity"])
        logger.info("Updating stock for %s: %d -> %d", snap["name"], snap["current_stock"], new_stock)
        try:
            updated = store.update_product(snap["id"], {"stock": new_stock})
        except PersistenceFailure as e:
            logger.error("Failed to update stock for product %s: %s", snap["id"], e.details or e)
            results.append({"product_id": snap["id"], "success": False, "error": str(e.details or e)})
            continue
        if updated is None:
            logger.error("Failed to update stock for product %s: product no longer exists", snap["id"])
            results.append({"product_id": snap["id"], "success": False, "error": "Product no longer exists"})
            continue
        results.append({
            "product_id": snap["id"],
            "success": True,
            "previous_stock": snap["current_stock"],
            "new_stock": new_stock,
        })
    return results


def place_order(store: Store, request: OrderRequest) -> Tuple[dict, List[dict]]:
    """Validate, persist and fulfil an order.

    Returns the stored order and the per-item stock update results.
    """
    if not request.user_id or not request.products:
        logger.warning("Missing required fields: user_id=%r, products=%r", request.user_id, request.products)
        raise InvalidRequest("Missing required fields")

    items = request.products
    total, snapshots = price_line_items(store, items)
    logger.info("Order total calculated: %.2f", total)

    # A zero or absent total falls back to the computed one.
    if request.total:
        if abs(request.total - total) > 0.005:
            logger.warning(
                "Caller-supplied total %.2f differs from computed total %.2f for user %s; using supplied value",
                request.total, total, request.user_id,
            )
        total = request.total

    order_data = {
        "user_id": request.user_id,
        "products": [{"product_id": i.product_id, "quantity": i.quantity} for i in items],
        "status": request.status or DEFAULT_STATUS,
        "total": total,
        "payment_method": request.payment_method or DEFAULT_PAYMENT_METHOD,
        "payment_status": request.payment_status or DEFAULT_PAYMENT_STATUS,
    }
    if request.shipping_address is not None:
        order_data["shipping_address"] = request.shipping_address.model_dump()
    if request.payment_details is not None:
        order_data["payment_details"] = request.payment_details

    try:
        order = store.create_order(order_data)
    except PersistenceFailure as e:
        raise PersistenceFailure("Failed to create order in database", e.details or str(e)) from e
    logger.info("Order created successfully: %s", order["id"])

    stock_updates = adjust_inventory(store, snapshots)
    failed = [r["product_id"] for r in stock_updates if not r["success"]]
    if failed:
        logger.warning("Order %s stored but stock update failed for: %s", order["id"], ", ".join(failed))
    return order, stock_updates


def list_orders(store: Store, user_id: Optional[str] = None) -> List[dict]:
    orders = store.list_orders(user_id or None)
    if user_id:
        logger.info("Found %d orders for user %s", len(orders), user_id)
    return orders


def get_order(store: Store, order_id: str) -> dict:
    order = store.get_order(order_id)
    if order is None:
        raise OrderNotFound(order_id)
    return order


def update_order_status(store: Store, order_id: str, status: Any) -> dict:
    # Any allowed status may replace any other; there is no transition graph.
    if status is None or status == "":
        raise InvalidRequest("Status is required")
    if status not in ORDER_STATUSES:
        raise InvalidStatus(status)
    get_order(store, order_id)
    updated = store.update_order_status(order_id, status)
    if updated is None:
        raise OrderNotFound(order_id)
    logger.info("Order %s status set to %s", order_id, status)
    return updated


def delete_order(store: Store, order_id: str) -> None:
    get_order(store, order_id)
    if not store.delete_order(order_id):
        raise PersistenceFailure("Failed to delete order")
