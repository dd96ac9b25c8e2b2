import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from benefits_engine.config import settings
from benefits_engine.routes import eligibility_router, performance_router, rules_router, versions_router
from benefits_engine.services.rule_store import mongo_rule_store

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    await mongo_rule_store.connect()
    logger.info("Connected to MongoDB")
    yield
    # Shutdown
    await mongo_rule_store.close()
    logger.info("Disconnected from MongoDB")


app = FastAPI(
    title=settings.app_name,
    description="Versioned rule packages and eligibility decisions for government benefit programs",
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(rules_router, prefix=settings.api_prefix)
app.include_router(versions_router, prefix=settings.api_prefix)
app.include_router(eligibility_router, prefix=settings.api_prefix)
app.include_router(performance_router, prefix=settings.api_prefix)


@app.get("/")
async def root():
    return {"message": f"{settings.app_name} is running", "version": settings.app_version}


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    database = "connected" if mongo_rule_store.db is not None and await mongo_rule_store.health_check() else "disconnected"
    return {"status": "healthy", "service": "benefit-rules-engine", "database": database}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("benefits_engine.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
