import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from cart_resolver.api.routes import health, resolution
from cart_resolver.exceptions import ResolverConfigurationError
from cart_resolver.logging import configure_logging
from cart_resolver.models.contracts import ErrorResponse

configure_logging()

logger = structlog.get_logger("cart_resolver.api")

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    await resolution.close_service()


app = FastAPI(
    title="Cart Resolver API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url=None,
    lifespan=lifespan,
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """Bind a request ID into the log context and report each request once.

    The ID comes from the caller's X-Request-ID header when present and is
    echoed back on the response.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    request.state.request_id = request_id
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)

    started = time.perf_counter()
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    logger.info(
        "request_completed",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 1),
    )
    return response


def _error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    *,
    retryable: bool,
) -> JSONResponse:
    # The 500 handler runs outside the middleware, so the header is set here too.
    request_id = getattr(request.state, "request_id", None) or request.headers.get(
        REQUEST_ID_HEADER, ""
    )
    body = ErrorResponse(error=error, message=message, retryable=retryable)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(),
        headers={REQUEST_ID_HEADER: request_id},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Flatten pydantic errors into one ``field.path: message`` string."""
    message = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    return _error_response(request, 422, "validation_error", message, retryable=False)


@app.exception_handler(ResolverConfigurationError)
async def configuration_exception_handler(
    request: Request,
    exc: ResolverConfigurationError,
) -> JSONResponse:
    """The resolver cannot be built from the current settings."""
    logger.error("resolver_misconfigured", path=request.url.path, error=str(exc))
    return _error_response(request, 503, "configuration_error", str(exc), retryable=False)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return _error_response(
        request, 500, "internal_error", "An unexpected error occurred", retryable=True
    )


app.include_router(health.router)
app.include_router(resolution.router, prefix="/api/v1")
