import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from src.config import settings
from src.database import Base, engine, SessionLocal
from src.auth import router as auth_router
from src.catalog import router as catalog_router
from src.catalog.service import CatalogService
from src.applicants import router as applicants_router
from src.vouchers import router as vouchers_router
from src.tickets import router as tickets_router
from src.accounting import router as accounting_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and install the default service config and no-show policy"""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        catalog = CatalogService(db)
        catalog.ensure_service_config()
        catalog.ensure_default_policies()
    finally:
        db.close()
    logger.info("%s started (%s)", settings.PROJECT_NAME, settings.ENVIRONMENT)
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Exam registration and travel agency back office API",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],  # Dashboard dev servers
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(
    auth_router.router,
    prefix=f"{settings.API_V1_STR}/auth",
    tags=["Authentication"]
)

app.include_router(
    catalog_router,
    prefix=f"{settings.API_V1_STR}/pricing",
    tags=["Pricing Catalog"]
)

app.include_router(
    applicants_router,
    prefix=f"{settings.API_V1_STR}/applicants",
    tags=["Applicants"]
)

app.include_router(
    vouchers_router,
    prefix=f"{settings.API_V1_STR}/vouchers",
    tags=["Vouchers"]
)

app.include_router(
    tickets_router,
    prefix=f"{settings.API_V1_STR}/tickets",
    tags=["Tickets"]
)

app.include_router(
    accounting_router,
    prefix=f"{settings.API_V1_STR}/accounting",
    tags=["Accounting"]
)

@app.get("/")
def root():
    """Root endpoint"""
    return {
        "message": settings.PROJECT_NAME,
        "version": "1.0.0",
        "docs": "/docs"
    }

@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
