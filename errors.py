"""Error taxonomy for the storefront API and its JSON rendering."""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class InvalidRequest(StorefrontError):
    """Raised for missing or malformed input."""

    status_code = 400


class InvalidStatus(InvalidRequest):
    """Raised when an order status is outside the allowed set."""

    def __init__(self, status: Any):
        self.status = status
        super().__init__("Invalid status value")


class InsufficientStock(StorefrontError):
    """Raised when a line item asks for more units than are in stock."""

    status_code = 400

    def __init__(self, product_id: str, name: str, requested: int, available: int):
        self.product_id = product_id
        self.name = name
        self.requested = requested
        self.available = available
        super().__init__(
            f"Not enough stock for product {name}. Only {available} units available."
        )


class Unauthenticated(StorefrontError):
    status_code = 401


class NotFound(StorefrontError):
    status_code = 404


class ProductNotFound(NotFound):
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found")


class OrderNotFound(NotFound):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Order not found")


class UserNotFound(NotFound):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__("User not found")


class CategoryNotFound(NotFound):
    def __init__(self, category_id: str):
        self.category_id = category_id
        super().__init__("Category not found")


class Conflict(StorefrontError):
    """Raised when a unique field (email, slug) is already taken."""

    status_code = 409


class UpstreamFailure(StorefrontError):
    """Raised when the identity provider or the pinning gateway call fails."""

    status_code = 502


class PersistenceFailure(StorefrontError):
    """Raised when a document store write or read fails."""

    status_code = 500


def error_body(error: str, details: Optional[Any] = None) -> dict:
    body = {"error": error}
    if details is not None:
        body["details"] = details
    return body


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.details)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.details))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": ".".join(str(p) for p in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content=error_body("Invalid request", details))


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_body("Internal server error", str(exc)))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StorefrontError, storefront_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
