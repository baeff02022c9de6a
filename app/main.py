from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

# Import database components
from app.database.database import sync_engine, SessionLocal, Base

# Import middleware
from app.common.middleware import TenantMiddleware, SecurityHeadersMiddleware

# Import routers
from app.modules.auth.router import auth_router
from app.modules.company.router import company_router
from app.modules.branches.router import branch_router
from app.modules.suppliers.router import suppliers_router
from app.modules.purchases.router import purchases_router
from app.modules.payables.router import payables_router
from app.modules.notifications.router import notifications_router
from app.modules.subscriptions.router import router as subscriptions_router

# Import models for table creation
import app.modules.auth.models
import app.modules.company.models
import app.modules.branches.models
import app.modules.suppliers.models
import app.modules.purchases.models
import app.modules.payables.models
import app.modules.notifications.models
import app.modules.subscriptions.models

from app.modules.subscriptions.seed_plans import seed_plans
from app.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Nexo ERP API",
    description="Multi-tenant ERP API: organizations, accounts payable, notifications and billing",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(TenantMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Add your frontend URLs
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router)
app.include_router(company_router)
app.include_router(branch_router)
app.include_router(suppliers_router)
app.include_router(purchases_router)
app.include_router(payables_router)
app.include_router(notifications_router)
app.include_router(subscriptions_router)

@app.get("/")
async def read_root():
    return {
        "message": "Nexo ERP API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }

@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}

@app.on_event("startup")
def startup_event():
    logger.info("Nexo ERP API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    # Create database tables (only for development - use migrations in production)
    if settings.ENVIRONMENT == "development":
        Base.metadata.create_all(bind=sync_engine)
        db = SessionLocal()
        try:
            seed_plans(db)
        except Exception as e:
            db.rollback()
            logger.error(f"Plan seeding failed: {e}")
        finally:
            db.close()

@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Nexo ERP API shutting down...")
