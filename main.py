import logging
import os
import time
import traceback
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.database import Database
from starlette.exceptions import HTTPException as StarletteHTTPException

from accounts import AccountService
from catalog import CatalogReader
from config import Settings, configure_logging
from database import connect, ensure_indexes, ping
from errors import AppError, InternalError, NotFound, validation_error_from
from notifications import NotificationSender, build_sender
from orders import OrderService
from otp import OtpManager
from schemas import LoginBody, OrderCreateBody, ResendOtpBody, SignupBody, User, VerifyOtpBody
from security import BcryptHasher, TokenIssuer

logger = logging.getLogger(__name__)

AVAILABLE_ENDPOINTS = [
    "GET /health",
    "GET /api/products",
    "POST /api/auth/signup",
    "POST /api/auth/login",
    "POST /api/auth/verify-otp",
    "POST /api/orders",
]

security = HTTPBearer(auto_error=False)
router = APIRouter()


# ----------------------- Utils -----------------------
def ok(data=None, message=None, status_code=200):
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return JSONResponse(status_code=status_code, content=body)


def fail(status_code, message, **extra):
    return JSONResponse(status_code=status_code, content={"success": False, "message": message, **extra})


def get_accounts(request: Request) -> AccountService:
    return request.app.state.accounts


def get_orders(request: Request) -> OrderService:
    return request.app.state.orders


def get_catalog(request: Request) -> CatalogReader:
    return request.app.state.catalog


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    accounts: AccountService = Depends(get_accounts),
) -> User:
    return accounts.authenticate(credentials.credentials if credentials else None)


# ----------------------- Auth -----------------------
@router.post("/auth/signup")
def signup(body: SignupBody, tasks: BackgroundTasks, accounts: AccountService = Depends(get_accounts)):
    data = accounts.signup(body.name, body.email, body.password, body.phone, tasks=tasks)
    return ok(data, "User registered successfully. Please verify your email with the OTP sent.", 201)


@router.post("/auth/verify-otp")
def verify_otp(body: VerifyOtpBody, accounts: AccountService = Depends(get_accounts)):
    return ok(accounts.verify_otp(body.email, body.otp), "Email verified successfully")


@router.post("/auth/resend-otp")
def resend_otp(body: ResendOtpBody, tasks: BackgroundTasks, accounts: AccountService = Depends(get_accounts)):
    return ok(accounts.resend_otp(body.email, tasks=tasks), "OTP sent successfully")


@router.post("/auth/login")
def login(body: LoginBody, accounts: AccountService = Depends(get_accounts)):
    return ok(accounts.login(body.email, body.password), "Login successful")


@router.get("/auth/profile")
def profile(user: User = Depends(get_current_user)):
    return ok({"user": user.public()})


# ----------------------- Products -----------------------
@router.get("/products")
def list_products(category: Optional[str] = None, search: Optional[str] = None,
                  catalog: CatalogReader = Depends(get_catalog)):
    return ok(catalog.search(category, search), "Products fetched successfully")


@router.get("/products/featured/list")
def featured_products(catalog: CatalogReader = Depends(get_catalog)):
    products = [p.model_dump(by_alias=True) for p in catalog.featured()]
    return ok({"products": products}, "Featured products fetched successfully")


@router.get("/products/{product_id}")
def get_product(product_id: str, catalog: CatalogReader = Depends(get_catalog)):
    product = catalog.get(product_id)
    if product is None:
        raise NotFound("Product not found")
    return ok({"product": product.model_dump(by_alias=True)}, "Product fetched successfully")


# ----------------------- Orders -----------------------
@router.post("/orders")
def create_order(body: OrderCreateBody, tasks: BackgroundTasks,
                 user: User = Depends(get_current_user), orders: OrderService = Depends(get_orders)):
    summary = orders.create_order(user, body.items, body.shipping_address, body.notes, tasks=tasks)
    return ok({"order": summary}, "Order placed successfully", 201)


@router.get("/orders/my-orders")
def my_orders(user: User = Depends(get_current_user), orders: OrderService = Depends(get_orders)):
    found = [o.wire() for o in orders.list_orders(user.id)]
    return ok({"orders": found}, "Orders fetched successfully")


@router.get("/orders/{order_id}")
def get_order(order_id: str, user: User = Depends(get_current_user),
              orders: OrderService = Depends(get_orders)):
    return ok({"order": orders.get_order(user.id, order_id).wire()}, "Order fetched successfully")


# ----------------------- App -----------------------
def create_app(settings: Optional[Settings] = None, db: Optional[Database] = None,
               notifier: Optional[NotificationSender] = None, clock=None) -> FastAPI:
    settings = settings or Settings.from_env()
    db = db if db is not None else connect(settings)
    notifier = notifier or build_sender(settings)
    hasher = BcryptHasher(settings.bcrypt_rounds)
    extra = {"clock": clock} if clock else {}

    app = FastAPI(title="Rythu Dipo API", version="1.0.0")
    app.state.settings = settings
    app.state.db = db
    app.state.accounts = AccountService(
        db,
        hasher,
        OtpManager(hasher, settings.otp_ttl_minutes, settings.otp_max_resends,
                   settings.otp_resend_cooldown_seconds),
        TokenIssuer(settings.jwt_secret, settings.jwt_algorithm, settings.token_ttl_days),
        notifier,
        **extra,
    )
    app.state.orders = OrderService(
        db,
        notifier,
        operator_email=settings.order_notification_email,
        shipping_cost=settings.shipping_cost,
        number_prefix=settings.order_number_prefix,
        **extra,
    )
    app.state.catalog = CatalogReader(settings.catalog_path)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path,
                    response.status_code, (time.perf_counter() - started) * 1000)
        return response

    @app.on_event("startup")
    def prepare_database():
        try:
            ensure_indexes(db)
        except Exception:
            logger.exception("Could not ensure MongoDB indexes")

    @app.exception_handler(AppError)
    async def app_error(request: Request, exc: AppError):
        return fail(exc.status_code, exc.message, **exc.extra)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        return fail(400, validation_error_from(exc).message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and exc.detail == "Not Found":
            return fail(404, f"Route {request.url.path} not found", availableEndpoints=AVAILABLE_ENDPOINTS)
        return fail(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path,
                     exc_info=(type(exc), exc, exc.__traceback__))
        error = InternalError()
        if settings.is_development:
            error.extra["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return fail(error.status_code, error.message, **error.extra)

    # ----------------------- Health -----------------------
    @app.get("/")
    def root():
        return ok({
            "version": "1.0.0",
            "description": "Agricultural products marketplace backend",
            "endpoints": {"health": "/health", "auth": "/api/auth",
                          "products": "/api/products", "orders": "/api/orders"},
        }, "Welcome to Rythu Dipo API")

    @app.get("/health")
    def health():
        return {
            "success": True,
            "message": "Rythu Dipo Backend is running!",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": settings.environment,
            "database": "Connected" if ping(db) else "Not Connected",
        }

    app.include_router(router)
    app.include_router(router, prefix="/api")
    return app


settings = Settings.from_env()
configure_logging(settings)
app = create_app(settings)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
