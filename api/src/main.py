from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
import uvicorn

from api.src.config import get_settings
from api.src.db.database import init_db
from api.src.routes import health_router, pipelines_router, webhooks_router, deployments_router

settings = get_settings()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting deployx API")
    await init_db()
    yield
    # Shutdown
    logger.info("Shutting down deployx API")

app = FastAPI(
    title="deployx",
    description="Staging and production deployment orchestrator",
    version="0.1.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health_router)
app.include_router(pipelines_router, prefix="/api")
app.include_router(webhooks_router, prefix="/api")
app.include_router(deployments_router, prefix="/api")

@app.get("/")
async def root():
    return {
        "name": "deployx",
        "version": "0.1.0",
        "environments": ["staging", "production"],
        "branches": {
            settings.staging_branch: "staging",
            settings.production_branch: "production",
        },
        "docs": "/docs"
    }

def run():
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)

if __name__ == "__main__":
    run()
