# order_service/main.py
from fastapi import FastAPI
import logging
from contextlib import asynccontextmanager

from order_service.config import settings
from order_service.core.log_config import configure_logging
from order_service.database import db
from order_service.api.errors import register_error_handlers
from order_service.api.routes import orders as order_routes
from order_service.middleware.cors_config import configure_cors
from order_service.middleware.request_logging import add_request_logging
from order_service.middleware.security_headers import add_security_headers
from order_service.services.orders import OrderService
from order_service.services.scheduler import PromotionScheduler


logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context: check storage before the app starts serving and run the
    PENDING -> PROCESSING scheduler for as long as the app is up.
    """
    # --- startup logic ---
    configure_logging(settings.LOG_LEVEL)
    data_dir = db.data_dir
    if not data_dir.exists():
        logger.warning("Data directory %s not found; creating it (run scripts/init_db.py to seed sample data)", data_dir)
        data_dir.mkdir(parents=True, exist_ok=True)
    else:
        logger.info("Using data directory: %s", data_dir)

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = PromotionScheduler(OrderService(db).promote_pending_to_processing,
                                       interval_seconds=settings.PROMOTION_INTERVAL_SECONDS)
        scheduler.start()
    else:
        logger.info("Order promotion scheduler disabled (SCHEDULER_ENABLED=false)")
    app.state.scheduler = scheduler

    yield
    # --- shutdown logic ---
    if scheduler is not None:
        scheduler.stop(timeout=5)
    logger.info("Shutting down Order Processing API")

app = FastAPI(title="Order Processing API", version="0.1.0", lifespan=lifespan)
configure_cors(app)
add_security_headers(app)
add_request_logging(app)
register_error_handlers(app)

# Include API routers
app.include_router(order_routes.router)


@app.get("/", tags=["root"])
async def root():
    return {"status": "ok", "service": "Order Processing API"}
