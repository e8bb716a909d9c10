import asyncio
import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database
from pymongo.errors import NetworkTimeout, ServerSelectionTimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from . import orders as order_book
from . import products as catalog
from .accounts import AccountService
from .auth import (
    ROLE_ADMIN,
    ROLE_CUSTOMER,
    check_admin_credentials,
    create_token,
    get_current_user,
    require_admin,
)
from .config import Settings
from .database import KV_COLLECTION, USER_COLLECTION, close_clients, get_database
from .errors import PayloadTooLargeError, StorefrontError, UnauthorizedError
from .kv_store import KVStore
from .logging_config import LogContext, configure_logging, get_logger
from .notifications import NotificationDispatcher
from .schemas import AdminLoginRequest, ProfileUpdate, SigninRequest, SignupRequest
from .timeutil import utc_now_iso

logger = get_logger(__name__)

SERVER_NAME = "Autumn Store API"

_CONNECTION_ERRORS = (
    asyncio.TimeoutError,
    TimeoutError,
    ConnectionError,
    NetworkTimeout,
    ServerSelectionTimeoutError,
)

router = APIRouter()


# Request-scoped collaborators
def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> KVStore:
    return request.app.state.store


def get_accounts(request: Request) -> AccountService:
    return request.app.state.accounts


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


# Health
@router.get("/health")
def health():
    return {
        "status": "ok",
        "timestamp": utc_now_iso(),
        "server": SERVER_NAME,
        "version": __version__,
    }


# Products
@router.get("/products")
def list_products(store: KVStore = Depends(get_store)):
    return catalog.list_products(store)


@router.get("/products/{product_id}")
def get_product(product_id: str, store: KVStore = Depends(get_store)):
    return catalog.get_product(store, product_id)


@router.post("/products", status_code=201)
def create_product(
    payload: Dict[str, Any] = Body(...),
    store: KVStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    admin: dict = Depends(require_admin),
):
    product = catalog.create_product(store, payload, settings.max_image_bytes)
    return {"success": True, "product": product}


@router.put("/products/{product_id}")
def update_product(
    product_id: str,
    payload: Dict[str, Any] = Body(...),
    store: KVStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    admin: dict = Depends(require_admin),
):
    product = catalog.update_product(store, product_id, payload, settings.max_image_bytes)
    return {"success": True, "product": product}


@router.delete("/products/{product_id}")
def delete_product(product_id: str, store: KVStore = Depends(get_store), admin: dict = Depends(require_admin)):
    catalog.delete_product(store, product_id)
    return {"message": "Product deleted successfully"}


# Orders
@router.get("/orders")
def list_orders(store: KVStore = Depends(get_store)):
    return order_book.list_orders(store)


@router.get("/orders/{order_id}")
def get_order(order_id: str, store: KVStore = Depends(get_store)):
    return order_book.get_order(store, order_id)


@router.post("/orders", status_code=201)
def create_order(
    background_tasks: BackgroundTasks,
    payload: Dict[str, Any] = Body(...),
    store: KVStore = Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    order, invoice = order_book.create_order(store, payload)
    # runs after the response is sent; dispatch() never raises
    background_tasks.add_task(dispatcher.dispatch, order)
    logger.info("Order creation completed", order_id=order["id"], invoice_id=invoice["id"])
    return {"order": order, "invoice": invoice}


@router.patch("/orders/{order_id}/status")
def update_order_status(
    order_id: str,
    payload: Dict[str, Any] = Body(...),
    store: KVStore = Depends(get_store),
    admin: dict = Depends(require_admin),
):
    return order_book.update_order_status(store, order_id, payload)


@router.delete("/orders/{order_id}")
def delete_order(order_id: str, store: KVStore = Depends(get_store), admin: dict = Depends(require_admin)):
    order_book.delete_order(store, order_id)
    return {"message": "Order deleted successfully"}


# Invoices
@router.get("/invoices")
def list_invoices(store: KVStore = Depends(get_store)):
    return order_book.list_invoices(store)


@router.get("/invoices/{invoice_id}")
def get_invoice(invoice_id: str, store: KVStore = Depends(get_store)):
    return order_book.get_invoice(store, invoice_id)


# Accounts
@router.post("/signup")
def signup(payload: SignupRequest, accounts: AccountService = Depends(get_accounts)):
    user, customer_number = accounts.signup(payload)
    return {"success": True, "user": user, "customerNumber": customer_number}


@router.post("/signin")
def signin(
    payload: SigninRequest,
    accounts: AccountService = Depends(get_accounts),
    settings: Settings = Depends(get_settings),
):
    user = accounts.authenticate(payload.email, payload.password)
    token = create_token(user["id"], ROLE_CUSTOMER, settings, email=user["email"])
    return {
        "session": {
            "accessToken": token,
            "tokenType": "bearer",
            "expiresIn": settings.jwt_expires_min * 60,
            "user": user,
        }
    }


@router.get("/profile")
async def get_profile(current_user: dict = Depends(get_current_user)):
    return {"user": current_user}


@router.put("/profile")
async def update_profile(
    update: ProfileUpdate,
    current_user: dict = Depends(get_current_user),
    accounts: AccountService = Depends(get_accounts),
):
    return {"user": accounts.update_metadata(current_user["id"], update)}


@router.get("/my-orders")
async def my_orders(current_user: dict = Depends(get_current_user), store: KVStore = Depends(get_store)):
    return order_book.list_orders_for_user(store, current_user["id"])


@router.get("/my-invoices")
async def my_invoices(current_user: dict = Depends(get_current_user), store: KVStore = Depends(get_store)):
    return order_book.list_invoices_for_user(store, current_user["id"])


# Admin
@router.post("/admin/login")
def admin_login(payload: AdminLoginRequest, settings: Settings = Depends(get_settings)):
    if not check_admin_credentials(payload.username, payload.password, settings):
        logger.warning("Admin login rejected", username=payload.username)
        raise UnauthorizedError("Invalid credentials")
    token = create_token(payload.username, ROLE_ADMIN, settings)
    return {"success": True, "token": token, "expiresIn": settings.jwt_expires_min * 60}


@router.get("/admin/customers")
def admin_customers(accounts: AccountService = Depends(get_accounts), admin: dict = Depends(require_admin)):
    return {"customers": accounts.list_customers()}


# Error mapping
async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=str(exc))
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if any(e.get("type") == "json_invalid" for e in errors):
        return JSONResponse(
            {"error": "Invalid JSON", "message": "The request body contains invalid JSON"},
            status_code=400,
        )
    cleaned = [{k: v for k, v in e.items() if k in ("type", "loc", "msg")} for e in errors]
    return JSONResponse({"error": "Invalid request", "details": {"errors": cleaned}}, status_code=400)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    body: Dict[str, Any] = {"error": exc.detail if isinstance(exc.detail, str) else "HTTP error"}
    if exc.status_code == 404:
        body["path"] = request.url.path
    return JSONResponse(body, status_code=exc.status_code, headers=getattr(exc, "headers", None))


def unhandled_error_response(exc: Exception, settings: Settings) -> JSONResponse:
    """Generic body for errors nothing else handled; raw text only in debug mode."""
    if isinstance(exc, _CONNECTION_ERRORS):
        logger.error("Connection error while handling request", exc_info=True)
        body: Dict[str, Any] = {
            "error": "Connection error",
            "message": "Request timed out or connection was closed",
        }
        status_code = 504
    else:
        logger.exception("Unhandled error while handling request")
        body = {"error": "Internal server error"}
        status_code = 500
    if settings.debug:
        body["details"] = {"type": type(exc).__name__, "message": str(exc)}
    return JSONResponse(body, status_code=status_code)


def create_app(
    settings: Optional[Settings] = None,
    db: Optional[Database] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level, json_output=settings.log_format == "json")
    owns_client = db is None
    if db is None:
        db = get_database(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting storefront API", version=__version__, prefix=settings.api_prefix)
        yield
        if owns_client:
            close_clients()

    app = FastAPI(title=SERVER_NAME, version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.store = KVStore(db[KV_COLLECTION])
    app.state.accounts = AccountService(db[USER_COLLECTION])
    app.state.dispatcher = dispatcher or NotificationDispatcher.from_settings(settings)

    app.add_exception_handler(StorefrontError, storefront_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    @app.middleware("http")
    async def request_guard(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        with LogContext(request_id=request_id):
            start = time.monotonic()
            content_length = request.headers.get("content-length", "")
            if content_length.isdigit() and int(content_length) > settings.max_request_bytes:
                size_mb = int(content_length) / (1024 * 1024)
                logger.warning("Request too large", path=request.url.path, size_mb=round(size_mb, 2))
                err = PayloadTooLargeError(
                    "Request too large",
                    {
                        "message": f"Request size must be less than {settings.max_request_mb:g}MB",
                        "currentSize": f"{size_mb:.2f}MB",
                    },
                )
                response = JSONResponse(err.to_dict(), status_code=err.status_code)
            else:
                try:
                    response = await call_next(request)
                except Exception as exc:
                    response = unhandled_error_response(exc, settings)
            logger.info(
                "Request handled",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=round((time.monotonic() - start) * 1000, 1),
            )
            response.headers["X-Request-ID"] = request_id
            return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix=settings.api_prefix)
    return app


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run("storefront.main:create_app", factory=True, host="0.0.0.0", port=port)
