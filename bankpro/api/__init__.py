"""
BankPro API Application Factory
"""

import time
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .sessions import router as sessions_router
from .users import router as users_router
from .transactions import router as transactions_router
from .banks import router as banks_router
from .cards import router as cards_router
from .bills import router as bills_router
from .recurring import router as recurring_router
from .notifications import router as notifications_router
from .branches import router as branches_router
from .admin import router as admin_router
from .. import __version__
from ..config import BankProConfig, get_config
from ..errors import BankProError, RateLimitExceeded
from ..logging_config import setup_logging, get_logger, log_action
from ..storage import to_json_value


logger = get_logger("bankpro.api")

LOCAL_ORIGIN_REGEX = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

AUTH_LIMITED_PATHS = (
    "/api/auth/register",
    "/api/auth/login",
    "/api/auth/login-account",
    "/api/auth/forgotpassword",
)
TRANSACTION_LIMITED_PATHS = (
    "/api/transactions",
    "/api/transactions/transfer",
)


class RateLimiter:
    """
    Sliding-window request limiter keyed by scope and client address.

    Only POSTs to the authentication and money-moving endpoints are
    counted; everything else passes straight through.
    """

    def __init__(self, window_seconds: int = 60, auth_limit: int = 20, transaction_limit: int = 30):
        self.window = window_seconds
        self.limits = {"auth": auth_limit, "transaction": transaction_limit}
        self.requests: Dict[Tuple[str, str], List[float]] = defaultdict(list)

    def scope_for(self, request: Request) -> Optional[str]:
        if request.method != "POST":
            return None
        path = request.url.path.rstrip("/")
        if path in AUTH_LIMITED_PATHS:
            return "auth"
        if path in TRANSACTION_LIMITED_PATHS:
            return "transaction"
        return None

    def hit(self, scope: str, client: str) -> None:
        """Count a request, raising RateLimitExceeded once the window is full"""
        now = time.time()
        key = (scope, client)
        # Clean old entries
        self.requests[key] = [t for t in self.requests[key] if now - t < self.window]
        if len(self.requests[key]) >= self.limits[scope]:
            raise RateLimitExceeded("Too many requests, please try again later.")
        self.requests[key].append(now)

    async def __call__(self, request: Request, call_next):
        scope = self.scope_for(request)
        if scope:
            client = request.client.host if request.client else "unknown"
            try:
                self.hit(scope, client)
            except RateLimitExceeded as e:
                log_action(logger, "warning", "Rate limit exceeded", action=scope, resource=client)
                return JSONResponse(status_code=e.status_code, content=e.to_dict())
        return await call_next(request)


def _field_errors(exc: RequestValidationError) -> List[Dict[str, str]]:
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({"field": ".".join(location) or "body", "msg": error.get("msg", "Invalid value")})
    return errors


def install_exception_handlers(app: FastAPI, config: BankProConfig) -> None:
    """Render every error as ``{"success": false, "error": ...}``"""

    @app.exception_handler(BankProError)
    async def bankpro_error_handler(request: Request, exc: BankProError):
        return JSONResponse(status_code=exc.status_code, content=to_json_value(exc.to_dict()))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = _field_errors(exc)
        return JSONResponse(status_code=400, content={
            "success": False,
            "error": "; ".join(f"{d['field']}: {d['msg']}" for d in details),
            "details": details,
        })

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            message = f"Route {request.url.path} not found"
        elif exc.status_code == 405:
            message = f"Method {request.method} not allowed on {request.url.path}"
        else:
            message = str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": message})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
        body = {"success": False, "error": "Internal server error"}
        if config.environment == "development":
            body["details"] = str(exc)
        return JSONResponse(status_code=500, content=body)


def create_app(config: Optional[BankProConfig] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    config = config or get_config()
    setup_logging(level=config.log_level, log_format=config.log_format, log_file=config.log_file)

    app = FastAPI(
        title="BankPro API",
        description="Retail banking backend: accounts, transfers, cards, bills and payments",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    if config.enable_rate_limiting:
        app.state.rate_limiter = RateLimiter(
            window_seconds=config.rate_limit_window_seconds,
            auth_limit=config.auth_rate_limit,
            transaction_limit=config.transaction_rate_limit
        )
        app.middleware("http")(app.state.rate_limiter)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_origin_regex=LOCAL_ORIGIN_REGEX,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )

    install_exception_handlers(app, config)

    # Include routers
    app.include_router(sessions_router, prefix="/api/auth", tags=["Auth"])
    app.include_router(users_router, prefix="/api/users", tags=["Users"])
    app.include_router(transactions_router, prefix="/api/transactions", tags=["Transactions"])
    app.include_router(banks_router, prefix="/api/banks", tags=["Banks"])
    app.include_router(cards_router, prefix="/api/cards", tags=["Cards"])
    app.include_router(bills_router, prefix="/api/bills", tags=["Bills"])
    app.include_router(recurring_router, prefix="/api/recurring", tags=["Recurring Payments"])
    app.include_router(notifications_router, prefix="/api/notifications", tags=["Notifications"])
    app.include_router(branches_router, prefix="/api/branches", tags=["Branches"])
    app.include_router(admin_router, prefix="/api/admin", tags=["Admin"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "success": True,
            "message": "Bank Management API is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": config.environment,
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "BankPro API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "auth": "/api/auth",
                "users": "/api/users",
                "transactions": "/api/transactions",
                "banks": "/api/banks",
                "cards": "/api/cards",
                "bills": "/api/bills",
                "recurring": "/api/recurring",
                "notifications": "/api/notifications",
                "branches": "/api/branches",
                "admin": "/api/admin",
            }
        }

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    uvicorn.run(
        "bankpro.api:create_app",
        factory=True,
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level=config.log_level.lower()
    )
