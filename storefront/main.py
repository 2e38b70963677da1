from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront import __version__
from storefront.config import get_settings
from storefront.db import supabase_client
from storefront.logging_config import setup_logging, get_logger
from storefront.payments.router import router as payments_router
from storefront.payments.yookassa import yookassa_client
from storefront.promocodes.router import router as promocodes_router
from storefront.promotions.router import router as promotions_router
from storefront.rate_limit import limiter, rate_limit_exceeded_handler

settings = get_settings()

setup_logging(
    level="DEBUG" if settings.debug else settings.log_level,
    json_format=settings.log_json,
)
logger = get_logger(__name__)

app = FastAPI(
    title="Storefront API",
    description="Промокоды, акции и оплата курсов",
    version=__version__,
    debug=settings.debug
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(promocodes_router)
app.include_router(promotions_router)
app.include_router(payments_router)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Ошибки API отдаются как {"error": "..."}."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Некорректный запрос") if errors else "Некорректный запрос"
    return JSONResponse(status_code=422, content={"error": message, "details": jsonable_encoder(errors)})


@app.on_event("startup")
async def _log_startup():
    logger.info(f"Storefront API {__version__} started (debug={settings.debug})")


@app.on_event("shutdown")
async def _close_clients():
    logger.info("Shutting down, closing HTTP clients")
    await supabase_client.close()
    await yookassa_client.close()


@app.get("/health")
async def health_check():
    return {"status": "ok"}


@app.get("/")
async def root():
    return {
        "app": "Storefront API",
        "version": __version__,
        "docs": "/docs"
    }
