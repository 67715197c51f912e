"""
Storefront Core - Application Entry Point
==========================================
FastAPI app initialization, background scheduler, and router registration.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from apscheduler.schedulers.background import BackgroundScheduler

from config import settings
from config.database import SessionLocal, Base, engine

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
scheduler_logger = logging.getLogger("storefront.scheduler")


# ==========================================
# Import Routers (also registers every model on Base.metadata)
# ==========================================
from modules.catalog.routes import router as catalog_router
from modules.cart.routes import router as cart_router
from modules.subscription.routes import router as subscription_router
import modules.coupon.models  # noqa: F401
import modules.order.models  # noqa: F401


# ==========================================
# Background Scheduler: Subscription Renewals
# ==========================================
def _process_subscription_renewals():
    """Background job: charge due subscriptions and create their orders."""
    db = SessionLocal()
    try:
        from modules.payment.service import payment_service
        from modules.subscription.service import subscription_service
        processor = payment_service.get_active_processor()
        report = subscription_service.process_renewals(db, processor)
        if report.processed:
            scheduler_logger.info(
                f"Renewals: {report.renewed} renewed, {report.failed} failed, {report.skipped} skipped"
            )
    except Exception as e:
        scheduler_logger.error(f"Renewal job error: {e}")
    finally:
        db.close()


scheduler = BackgroundScheduler()


@asynccontextmanager
async def lifespan(app):
    # Auto-create any missing tables (safe for existing tables)
    Base.metadata.create_all(bind=engine)

    if settings.SCHEDULER_ENABLED:
        scheduler.add_job(
            _process_subscription_renewals, 'interval',
            minutes=settings.RENEWAL_INTERVAL_MINUTES, id='subscription_renewals',
        )
        scheduler.start()
        scheduler_logger.info(f"Background scheduler started (renewals: {settings.RENEWAL_INTERVAL_MINUTES}m)")
    yield
    if scheduler.running:
        scheduler.shutdown()
        scheduler_logger.info("Background scheduler stopped")


# ==========================================
# Create App
# ==========================================
app = FastAPI(
    title="Storefront Core",
    description="Carts, categories and subscriptions",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
    lifespan=lifespan,
)

app.include_router(catalog_router)
app.include_router(cart_router)
app.include_router(subscription_router)


# ==========================================
# Health check
# ==========================================
@app.get("/health")
async def health():
    return {"status": "ok", "version": "1.0.0"}
