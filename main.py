import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware

import accounts
import catalog
import orders
from auth import create_token, get_current_user, require_admin, require_user
from config import Settings, load_settings
from database import MongoStore, Store, get_store
from errors import PersistenceFailure, register_error_handlers
from gateways import IdentityProvider, PinningGateway, post_commit
from schemas import (
    BestSellers,
    Category,
    CategoryPayload,
    LoginRequest,
    Order,
    OrderCreated,
    OrderRequest,
    Product,
    ProductPayload,
    ReviewCreated,
    ReviewList,
    ReviewPayload,
    StatusUpdate,
    StockInfo,
    SyncReport,
    TokenResponse,
    User,
    UserCreate,
    UserUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_pinning(request: Request) -> PinningGateway:
    return request.app.state.pinning


def get_identity_provider(request: Request) -> IdentityProvider:
    return request.app.state.idp


@router.get("/")
def root():
    return {"status": "ok", "service": "storefront-backend"}


@router.get("/test")
def test_database(store: Store = Depends(get_store)):
    status = {"backend": "running", "database": "connected"}
    try:
        store.ping()
    except PersistenceFailure as e:
        logger.warning("Database ping failed: %s", e.details)
        status["database"] = "error"
    return status


# Auth
@router.post("/api/auth/login", response_model=TokenResponse)
def login(payload: LoginRequest, request: Request, store: Store = Depends(get_store)):
    user = accounts.authenticate(store, payload.email, payload.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token = create_token(user, request.app.state.settings.jwt_secret)
    return TokenResponse(token=token, name=user["name"], email=user["email"], role=user.get("role", "customer"))


# Product Endpoints
@router.get("/api/products", response_model=List[Product])
def list_products(store: Store = Depends(get_store)):
    return store.list_products()


@router.post("/api/products", response_model=Product, status_code=201)
def create_product(payload: ProductPayload, store: Store = Depends(get_store), user=Depends(require_admin)):
    return catalog.create_product(store, payload)


@router.get("/api/products/bestsellers", response_model=BestSellers)
def bestsellers(response: Response, limit: int = 8, store: Store = Depends(get_store)):
    products = store.list_products()
    all_orders = store.list_orders()
    logger.info("Fetching bestsellers: %d products, %d orders", len(products), len(all_orders))
    response.headers["Cache-Control"] = "public, s-maxage=60, stale-while-revalidate=300"
    return {
        "products": catalog.best_selling_products(all_orders, products, limit),
        "timestamp": datetime.now(timezone.utc),
    }


@router.get("/api/products/{product_id}", response_model=Product)
def get_product(product_id: str, store: Store = Depends(get_store)):
    return catalog.get_product_detail(store, product_id)


@router.put("/api/products/{product_id}", response_model=Product)
def update_product(product_id: str, payload: ProductPayload, store: Store = Depends(get_store),
                   user=Depends(require_admin)):
    return catalog.update_product(store, product_id, payload)


@router.delete("/api/products/{product_id}")
def delete_product(product_id: str, background: BackgroundTasks, store: Store = Depends(get_store),
                   pinning: PinningGateway = Depends(get_pinning), user=Depends(require_admin)):
    cids = catalog.delete_product(store, product_id)
    if cids:
        background.add_task(post_commit, f"unpin images of product {product_id}", pinning.unpin_all, cids)
    return {
        "success": True,
        "message": "Product deleted; associated images are being removed",
        "imageCids": cids,
    }


@router.get("/api/products/{product_id}/stock", response_model=StockInfo)
def product_stock(product_id: str, store: Store = Depends(get_store)):
    return catalog.stock_info(store, product_id)


@router.get("/api/products/{product_id}/reviews", response_model=ReviewList)
def product_reviews(product_id: str, store: Store = Depends(get_store)):
    reviews, average = catalog.list_reviews(store, product_id)
    return {"reviews": reviews, "count": len(reviews), "average_rating": average}


@router.post("/api/products/{product_id}/reviews", response_model=ReviewCreated, status_code=201)
def submit_review(product_id: str, payload: ReviewPayload, store: Store = Depends(get_store)):
    review = catalog.submit_review(store, product_id, payload)
    return {"message": "Review processed successfully", "review": review}


# Categories
@router.get("/api/categories", response_model=List[Category])
def list_categories(store: Store = Depends(get_store)):
    return store.list_categories()


@router.post("/api/categories", response_model=Category, status_code=201)
def create_category(payload: CategoryPayload, store: Store = Depends(get_store), user=Depends(require_admin)):
    return catalog.create_category(store, payload)


@router.get("/api/categories/{category_id}", response_model=Category)
def get_category(category_id: str, store: Store = Depends(get_store)):
    return catalog.get_category(store, category_id)


@router.patch("/api/categories/{category_id}", response_model=Category)
def update_category(category_id: str, payload: CategoryPayload, store: Store = Depends(get_store),
                    user=Depends(require_admin)):
    return catalog.update_category(store, category_id, payload)


@router.delete("/api/categories/{category_id}")
def delete_category(category_id: str, store: Store = Depends(get_store), user=Depends(require_admin)):
    catalog.delete_category(store, category_id)
    return {"message": "Category deleted successfully"}


# Orders
@router.get("/api/orders", response_model=List[Order])
def list_orders(user_id: Optional[str] = Query(None, alias="userId"), store: Store = Depends(get_store)):
    return orders.list_orders(store, user_id)


@router.post("/api/orders", response_model=OrderCreated, status_code=201)
def create_order(payload: OrderRequest, store: Store = Depends(get_store)):
    order, stock_updates = orders.place_order(store, payload)
    return {
        "success": True,
        "message": "Order created successfully and stock updated",
        "order": order,
        "stock_updates": stock_updates,
    }


@router.get("/api/orders/{order_id}", response_model=Order)
def get_order(order_id: str, store: Store = Depends(get_store)):
    return orders.get_order(store, order_id)


@router.patch("/api/orders/{order_id}", response_model=Order)
@router.put("/api/orders/{order_id}/status", response_model=Order)
def update_order_status(order_id: str, payload: StatusUpdate, store: Store = Depends(get_store),
                        user=Depends(require_admin)):
    return orders.update_order_status(store, order_id, payload.status)


@router.delete("/api/orders/{order_id}")
def delete_order(order_id: str, store: Store = Depends(get_store), user=Depends(require_admin)):
    orders.delete_order(store, order_id)
    return {"message": "Order deleted successfully"}


@router.get("/api/user-orders", response_model=List[Order])
def my_orders(store: Store = Depends(get_store), user=Depends(require_user)):
    return orders.list_orders(store, user["id"])


# Users
@router.get("/api/users", response_model=List[User])
def list_users(store: Store = Depends(get_store), user=Depends(require_admin)):
    return accounts.list_users(store)


@router.post("/api/users", response_model=User, status_code=201)
def create_user(payload: UserCreate, store: Store = Depends(get_store), principal=Depends(get_current_user)):
    if payload.role == "admin" and (not principal or principal.get("role") != "admin"):
        raise HTTPException(status_code=403, detail="Admin only")
    return accounts.create_user(store, payload)


@router.get("/api/users/{user_id}", response_model=User)
def get_user(user_id: str, store: Store = Depends(get_store), user=Depends(require_admin)):
    return accounts.public_user(accounts.get_user(store, user_id))


@router.patch("/api/users/{user_id}", response_model=User)
def update_user(user_id: str, payload: UserUpdate, background: BackgroundTasks,
                store: Store = Depends(get_store), idp: IdentityProvider = Depends(get_identity_provider),
                user=Depends(require_admin)):
    updated, previous = accounts.update_user(store, user_id, payload)
    background.add_task(post_commit, f"sync identity of user {user_id}",
                        accounts.push_profile_changes, idp, previous, payload)
    return updated


@router.delete("/api/users/{user_id}")
def delete_user(user_id: str, background: BackgroundTasks, store: Store = Depends(get_store),
                idp: IdentityProvider = Depends(get_identity_provider), user=Depends(require_admin)):
    removed = accounts.delete_user(store, user_id)
    background.add_task(post_commit, f"delete identity of user {user_id}",
                        accounts.remove_remote_identity, idp, removed)
    return {"success": True}


@router.post("/api/sync-identity-users", response_model=SyncReport)
def sync_identity_users(store: Store = Depends(get_store), idp: IdentityProvider = Depends(get_identity_provider),
                        user=Depends(require_admin)):
    return accounts.sync_identities(store, idp)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
    )


def create_app(settings: Optional[Settings] = None, store: Optional[Store] = None,
               pinning: Optional[PinningGateway] = None, idp: Optional[IdentityProvider] = None) -> FastAPI:
    settings = settings or load_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = None
        if getattr(app.state, "store", None) is None:
            owned = MongoStore(settings.database_url, settings.database_name)
            owned.ensure_indexes()
            app.state.store = owned
            logger.info("Connected to database %s", settings.database_name)
        yield
        if owned is not None:
            owned.close()
            app.state.store = None

    app = FastAPI(title="Storefront API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    app.state.settings = settings
    app.state.store = store
    app.state.pinning = pinning or PinningGateway(settings.pinata_jwt, settings.pinata_api_url)
    app.state.idp = idp or IdentityProvider(settings.clerk_secret_key, settings.clerk_api_url)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
