from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from exceptions import PixpressError
from middleware import RequestContextMiddleware
from optimizers.capabilities import probe_support
from optimizers.image_optimizer import ImageOptimizer
from routers import health, optimize, suggest, upload
from schemas import ErrorResponse, PolicyOptions
from utils.logging import get_logger, setup_logging

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Probe codecs once and share a single optimizer across requests."""
    setup_logging()

    support = probe_support()
    unavailable = [fmt for fmt, ok in support.model_dump().items() if not ok]
    if unavailable:
        logger.warning(
            f"Output formats unavailable: {unavailable}",
            extra={"context": {"unavailable_formats": unavailable}},
        )

    app.state.optimizer = ImageOptimizer(PolicyOptions(**settings.policy_defaults()), support)
    logger.info("Pixpress ready", extra={"context": {"storage_root": settings.storage_root}})

    yield

    logger.info("Pixpress shutting down")


app = FastAPI(
    title="Pixpress",
    description="Image optimization pipeline for Hugo authoring",
    version=health.VERSION,
    lifespan=lifespan,
)

# The editor runs from file:// or the Hugo dev server and reads the X-* result headers
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.allowed_origins.split(",")],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Requested-With", "X-Request-ID"],
    expose_headers=optimize.RESULT_HEADERS,
)
app.add_middleware(RequestContextMiddleware)


@app.exception_handler(PixpressError)
async def pixpress_error_handler(request: Request, exc: PixpressError):
    body = ErrorResponse(error=exc.error_code, message=exc.message).model_dump()
    retry_after = exc.details.get("retry_after")
    return JSONResponse(
        status_code=exc.status_code,
        content={**body, **exc.details},
        headers={"Retry-After": str(retry_after)} if retry_after is not None else None,
    )


for module in (health, optimize, suggest, upload):
    app.include_router(module.router)
