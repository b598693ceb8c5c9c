"""chartdeck API - snippet versioning and dataset resolution service.

Exposes the engine over HTTP:
- Snippets: CRUD, draft edits, publish / revert, render resolution
- Datasets: CRUD, format detection, rename cascade, import / export
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chartdeck import __version__
from chartdeck.api.routes import datasets, snippets
from chartdeck.api.services import (
    close_services,
    get_database,
    get_dataset_manager,
    get_snippet_manager,
)
from chartdeck.config import get_settings

# Configure logging
logging.basicConfig(
    level=getattr(logging, get_settings().log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_settings()
    logger.info(f"Opening database {settings.database_path}...")
    get_database().init()

    usage = await get_snippet_manager().storage_usage()
    datasets_loaded = len(await get_dataset_manager().list_datasets())
    logger.info(
        f"Storage: {usage.used_bytes} of {usage.limit_bytes} bytes used, "
        f"{datasets_loaded} datasets"
    )

    logger.info("chartdeck API ready")
    yield
    # Shutdown
    logger.info("Shutting down chartdeck API")
    await close_services()


# Create FastAPI app
app = FastAPI(
    title="chartdeck API",
    description="""
## Snippet versioning and dataset resolution

Chart snippets keep a published spec and a working draft. Specs reference
separately stored datasets by name; the API resolves those references
into concrete data for rendering.

### Key Endpoints

- `GET /v1/snippets` - List snippets (sort, search)
- `PATCH /v1/snippets/{id}` - Edit the draft
- `POST /v1/snippets/{id}/publish` - Publish the draft
- `GET /v1/snippets/{id}/resolved` - Spec with dataset references resolved
- `POST /v1/datasets/detect` - Detect the format of pasted text or a URL
- `PATCH /v1/datasets/{id}` - Update or rename a dataset
""",
    version=__version__,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers with /v1 prefix
app.include_router(snippets.router, prefix="/v1")
app.include_router(datasets.router, prefix="/v1")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "chartdeck API",
        "version": __version__,
        "docs": "/docs",
        "endpoints": {
            "snippets": "/v1/snippets",
            "datasets": "/v1/datasets",
        },
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    usage = await get_snippet_manager().storage_usage()
    return {
        "status": "healthy",
        "snippets_bytes": usage.used_bytes,
        "storage_limit_bytes": usage.limit_bytes,
        "datasets_loaded": len(await get_dataset_manager().list_datasets()),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "chartdeck.api.main:app",
        host="0.0.0.0",
        port=8001,
        reload=True,
    )
