"""
Storefront backend
Main FastAPI application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from contextlib import asynccontextmanager

from storefront.config import get_settings
from storefront.utils.logger import log
from storefront import __version__

# Import routers
from storefront.api import health, auth, payments, orders, coupons, products, admin, admin_shipments
from storefront.middleware.auth_middleware import AuthMiddleware
from storefront.middleware.security_middleware import SecurityMiddleware

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")
    if settings.allow_unverified_checkout:
        log.warning("Unverified checkout is ENABLED: orders may be written without signature verification")
    if not settings.razorpay_key_secret:
        log.warning("RAZORPAY_KEY_SECRET is not set: payment verification will fail")

    # Initialize database
    try:
        from storefront.models.base import init_db, SessionLocal
        init_db()
        log.info("Database initialized")

        # Seed initial admin user if configured
        from storefront.services import auth_service
        db = SessionLocal()
        try:
            auth_service.seed_initial_user(db)
            removed = auth_service.cleanup_expired(db)
            if removed:
                log.info(f"Removed {removed} expired staff sessions")
        finally:
            db.close()
    except Exception as e:
        log.error(f"Database initialization error: {str(e)}")

    yield

    log.info("Shutting down application")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Storefront backend for {store}

    - Razorpay order creation and signed payment verification
    - Exactly-once order writes keyed by the gateway payment id
    - Order read-back for the confirmation page
    - Shiprocket shipment booking with address sanitizing
    - Admin order, coupon, product and payment alert management
    """.format(store=settings.store_name),
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Session-based authentication middleware (guards /admin)
app.add_middleware(AuthMiddleware)

# Security middleware (Basic Auth gate for staff paths, X-Robots-Tag, Cache-Control)
# Wraps AuthMiddleware, so session 401s get the same headers
app.add_middleware(SecurityMiddleware)

app.add_middleware(GZipMiddleware, minimum_size=500)

# Include routers
app.include_router(auth.router)
app.include_router(health.router, tags=["health"])
app.include_router(payments.router)
app.include_router(orders.router)
app.include_router(coupons.router)
app.include_router(products.router)
app.include_router(admin_shipments.router)
app.include_router(admin.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "storefront.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=settings.api_workers if not settings.debug else 1
    )
