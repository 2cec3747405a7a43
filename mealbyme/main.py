"""MealByMe API - FastAPI Application."""

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mealbyme.config import get_settings
from mealbyme.errors import AppError, StorageError, UpstreamServiceError

settings = get_settings()

# Initialize Sentry for error monitoring
if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        # Performance monitoring (20% sample - cost-effective for production)
        traces_sample_rate=0.2,
        # Profiling (10% sample)
        profiles_sample_rate=0.1,
        # Don't send PII
        send_default_pii=False,
    )
    print(f"📊 Sentry initialized for {settings.environment}")
else:
    print("📊 Sentry not configured (no SENTRY_DSN)")

from mealbyme.routers import health_router, meal_plans_router, recipes_router, billing_router, users_router

# Create FastAPI app
app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description="Generate recipes and 3-day meal plans with AI",
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware - preflight requests get an empty success
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.app_url,
        "http://localhost:5173",      # Vite dev
        "*",                          # Allow all for development (restrict in prod)
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================
# Error responses: always {"error": {"message", "type"}}
# ============================================================

def error_response(status_code: int, message: str, error_type: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"message": message, "type": error_type}},
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if isinstance(exc, (UpstreamServiceError, StorageError)):
        print(f"❌ {request.method} {request.url.path}: {exc.message} ({exc.detail})")
        sentry_sdk.capture_exception(exc)
    elif exc.status_code >= 500:
        print(f"❌ {request.method} {request.url.path}: {exc.message} ({exc.detail})")
    return error_response(exc.status_code, exc.message, exc.error_type)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 405:
        return error_response(405, "Method not allowed", "invalid_request_error")
    if exc.status_code == 404:
        return error_response(404, "Not found", "not_found")
    error_type = "invalid_request_error" if exc.status_code < 500 else "api_error"
    return error_response(exc.status_code, str(exc.detail), error_type)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Invalid request"
    return error_response(400, message, "invalid_request_error")


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    print(f"❌ Unhandled error on {request.method} {request.url.path}: {exc}")
    sentry_sdk.capture_exception(exc)
    return error_response(500, "An unexpected error occurred. Please try again.", "api_error")


# Include routers
app.include_router(health_router)
app.include_router(meal_plans_router)
app.include_router(recipes_router)
app.include_router(billing_router)
app.include_router(users_router)


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": settings.api_title,
        "version": settings.api_version,
        "docs": "/docs",
        "health": "/health",
    }


# Startup/shutdown events
@app.on_event("startup")
async def startup():
    """Run on application startup."""
    print(f"🚀 {settings.api_title} v{settings.api_version}")
    print(f"📍 Environment: {settings.environment}")
    if not settings.billing_enabled:
        print("⚠️ Billing disabled (STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET or STRIPE_PRICE_ID missing)")
    if not settings.openai_meal_plan_assistant_id:
        print("⚠️ Meal plan generation disabled (no OPENAI_MEAL_PLAN_ASSISTANT_ID)")
    if not settings.openai_recipe_assistant_id:
        print("⚠️ Recipe generation disabled (no OPENAI_RECIPE_ASSISTANT_ID)")
    if not settings.clerk_secret_key:
        print("⚠️ Clerk admin API disabled (no CLERK_SECRET_KEY)")
    print(f"📚 Docs: http://localhost:8000/docs")


@app.on_event("shutdown")
async def shutdown():
    """Run on application shutdown."""
    print("👋 Shutting down MealByMe API")
