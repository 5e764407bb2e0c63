import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from feedback_tracker.api.routes.customers import router as customers_router
from feedback_tracker.api.routes.requests import router as requests_router
from feedback_tracker.api.routes.tags import router as tags_router
from feedback_tracker.api.routes.uploads import router as uploads_router
from feedback_tracker.api.routes.users import router as users_router
from feedback_tracker.core.config import get_settings

settings = get_settings()

logging.getLogger().setLevel(settings.log_level.upper())
logger = logging.getLogger(__name__)

GENERIC_ERROR = "Internal server error"

app = FastAPI(
    title="Feedback Tracker API",
    version="1.0.0",
    docs_url="/docs" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.openapi_enabled else None,
)

if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

app.include_router(users_router, prefix="/api", tags=["users"])
app.include_router(customers_router, prefix="/api", tags=["customers"])
app.include_router(tags_router, prefix="/api", tags=["tags"])
app.include_router(requests_router, prefix="/api", tags=["requests"])
app.include_router(uploads_router, prefix="/api", tags=["uploads"])

UPLOAD_DIR = Path(settings.upload_dir)
UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=UPLOAD_DIR), name="uploads")


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


@app.exception_handler(RequestValidationError)
async def _validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": _validation_message(exc)})


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    content = {"detail": GENERIC_ERROR}
    if get_settings().expose_error_details:
        content["error"] = str(exc)
    return JSONResponse(status_code=500, content=content)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    if not settings.security_headers_enabled:
        return response

    headers = response.headers
    if "X-Content-Type-Options" not in headers:
        headers["X-Content-Type-Options"] = "nosniff"
    if "X-Frame-Options" not in headers:
        headers["X-Frame-Options"] = "DENY"
    if "Referrer-Policy" not in headers:
        headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


@app.get("/health")
async def health_check():
    return {"status": "ok"}
