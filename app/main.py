from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

# Import database components
from app.database.database import engine, Base, SessionLocal
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from fastapi.responses import JSONResponse

# Import middleware
from app.common.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

# Import routers
from app.modules.caja.routers import caja_router
from app.modules.sales.router import sales_router

from app.modules.caja.services import CajaSessionManager

# Import models for table creation
import app.modules.caja.models
import app.modules.sales.models

from app.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Caja API",
    description="Cash drawer session and reconciliation service built with FastAPI and SQLAlchemy",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Add your frontend URLs
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(caja_router, prefix="/api/v1")
app.include_router(sales_router, prefix="/api/v1")

# Create database tables (only for development - use migrations in production)
if settings.ENVIRONMENT == "development":
    Base.metadata.create_all(bind=engine)

@app.get("/")
async def read_root():
    return {
        "message": "Caja API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }

@app.get("/health")
async def health_check():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "unavailable", "environment": settings.ENVIRONMENT}
        )
    return {"status": "healthy", "database": "ok", "environment": settings.ENVIRONMENT}

@app.on_event("startup")
async def startup_event():
    logger.info("Caja API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Max cash session age: {settings.CAJA_MAX_SESSION_AGE_HOURS}h")

    # Sesiones que quedaron abiertas mientras el servicio estaba detenido
    if settings.ENVIRONMENT != "test":
        db = SessionLocal()
        try:
            expired = CajaSessionManager(db).expire_stale_sessions()
            if expired:
                logger.info(f"Expired stale cash sessions at startup: {[s.id for s in expired]}")
        except Exception as e:
            logger.warning(f"Startup expiry sweep skipped or failed: {e}")
        finally:
            db.close()

@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Caja API shutting down...")
