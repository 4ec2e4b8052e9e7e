from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
import logging

from vendrefacile.api.routes import accounts, conversations, favorites, listings
from vendrefacile.core import config
from vendrefacile.db.database import get_storage, init_db
from vendrefacile.db.storage import StorageGateway
from vendrefacile.models.schemas import HealthResponse

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="VendreFacile API",
    description="Classifieds marketplace: listings, favorites and buyer/seller messaging",
    version="0.1.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(accounts.router)
app.include_router(listings.router)
app.include_router(favorites.router)
app.include_router(conversations.router)


@app.on_event("startup")
def create_schema():
    # Create database tables if they don't exist
    if config.AUTO_CREATE_SCHEMA:
        init_db()


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Storage error on {request.method} {request.url.path}: {str(exc)}")
    return JSONResponse(status_code=500, content={"detail": "Storage error"})


@app.get("/")
def read_root():
    return {"message": "Welcome to VendreFacile API"}


@app.get("/health", response_model=HealthResponse)
def health_check(storage: StorageGateway = Depends(get_storage)):
    try:
        storage.read.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {str(e)}")
        return JSONResponse(status_code=503, content={"status": "error", "db": "unreachable"})
    return {"status": "healthy", "db": "connected"}
