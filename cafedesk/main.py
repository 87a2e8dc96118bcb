from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from cafedesk.core.config import settings
from cafedesk.core.errors import CafeError
from cafedesk.core.observability import (
    domain_error_handler,
    http_exception_handler,
    integrity_error_handler,
    request_logging_middleware,
    setup_observability,
    unhandled_exception_handler,
    validation_exception_handler,
)
from cafedesk.db.session import engine
from cafedesk.routers import auth, blog, cash_register, expenses, invoices, products, sales, users

app = FastAPI(
    title=settings.app_name,
    version="1.0.0",
    description=(
        "Backend API for CafeDesk.\n\n"
        "Swagger quick test flow:\n"
        "1. Call `POST /auth/register` or `POST /auth/login`.\n"
        "2. Click **Authorize** and use your email/username + password "
        "(OAuth token URL: `/auth/token`).\n"
        "3. Test protected endpoints (`/products`, `/sales`, `/invoices`, `/expenses`, `/cash-register`)."
    ),
    swagger_ui_parameters={
        "persistAuthorization": True,
        "displayRequestDuration": True,
        "defaultModelsExpandDepth": 1,
    },
    openapi_tags=[
        {"name": "health", "description": "Service status and quick links."},
        {"name": "auth", "description": "Registration, login and token lifecycle."},
        {"name": "users", "description": "Staff accounts, roles and permissions."},
        {"name": "products", "description": "Product catalog and stock levels."},
        {"name": "sales", "description": "Point-of-sale transactions."},
        {"name": "invoices", "description": "Sale and purchase invoices with payment tracking."},
        {"name": "expenses", "description": "Operating expenses, mirrored into the cash register."},
        {"name": "cash-register", "description": "Running cash balance and manual deposits or withdrawals."},
        {"name": "blog", "description": "Public blog and editorial management."},
    ],
)

setup_observability()
app.middleware("http")(request_logging_middleware)
app.add_exception_handler(CafeError, domain_error_handler)
app.add_exception_handler(IntegrityError, integrity_error_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

cors_origins = settings.cors_origins or ["http://localhost:3000"]
allow_all_origins = "*" in cors_origins
allow_origin_regex = settings.cors_origin_regex

if not allow_origin_regex and settings.env.lower().strip() in {"dev", "development", "staging", "stage"}:
    # local frontends run on arbitrary localhost ports
    allow_origin_regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all_origins else cors_origins,
    allow_origin_regex=allow_origin_regex,
    allow_credentials=not allow_all_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(products.router)
app.include_router(sales.router)
app.include_router(invoices.router)
app.include_router(expenses.router)
app.include_router(cash_register.router)
app.include_router(blog.router)


@app.get("/", tags=["health"])
def root():
    return {
        "app": settings.app_name,
        "docs": "/docs",
        "health": "/health",
        "ready": "/ready",
    }


@app.get("/health", tags=["health"])
def health():
    return {"ok": True}


@app.get("/ready", tags=["health"])
def ready():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        return {"ok": False}
    return {"ok": True}
