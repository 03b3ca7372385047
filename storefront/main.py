import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import exc as sa_exc

from storefront import config
from storefront.database import init_database, translate_error
from storefront.errors import StoreError
from storefront.logging_config import setup_logging

# Route modules
from storefront.routes import addresses, admin_orders, cart, health, orders, products, shipping

logger = logging.getLogger(__name__)


app = FastAPI(title="Sufi Essences Storefront API", version=config.API_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Health ─────────────────────────────────────────────────────────
app.include_router(health.router)

# ── Core API ───────────────────────────────────────────────────────
app.include_router(products.router,     prefix="/api")
app.include_router(cart.router,         prefix="/api")
app.include_router(orders.router,       prefix="/api")
app.include_router(addresses.router,    prefix="/api")
app.include_router(shipping.router,     prefix="/api")

# ── Back office ────────────────────────────────────────────────────
app.include_router(admin_orders.router, prefix="/api")


# =====================================================
# ERROR RENDERING
# =====================================================

@app.exception_handler(StoreError)
def handle_store_error(request: Request, exc: StoreError):
    if exc.status_code >= 500:
        logger.error(
            "Request failed: %s",
            exc.message,
            extra={"path": request.url.path, "error_code": exc.error_code},
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(sa_exc.SQLAlchemyError)
def handle_database_error(request: Request, exc: sa_exc.SQLAlchemyError):
    # Reads outside with_transaction() surface raw driver and pool errors
    logger.exception("Database error", exc_info=exc, extra={"path": request.url.path})
    error = translate_error(exc)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(RequestValidationError)
def handle_validation_error(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Invalid request",
            "errorCode": "VALIDATION_ERROR",
            "errors": errors,
        },
    )


# =====================================================
# STARTUP
# =====================================================

@app.on_event("startup")
def startup():
    setup_logging()

    if config.DIRECT_LOGIN_REQUESTED and config.IS_PRODUCTION:
        logger.warning("DIRECT_LOGIN_ENABLED is ignored in production")
    elif config.DIRECT_LOGIN_ENABLED:
        logger.warning(
            "Direct login is enabled",
            extra={"header": config.DIRECT_LOGIN_HEADER},
        )

    init_database()
    logger.info(
        "Storefront API started",
        extra={"environment": config.ENVIRONMENT, "pool_size": config.DB_POOL_SIZE},
    )
