import logging
import os
from typing import Optional

from fastapi import FastAPI

from git_registry.api.registry import router as registry_router
from git_registry.core.dependencies import build_registry
from git_registry.services.registry import Registry

# Configure logging
logging.basicConfig(
    level=os.environ.get("GIT_REGISTRY_LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(registry: Optional[Registry] = None) -> FastAPI:
    """
    Build the FastAPI application.

    If no registry is given, one is built from the data directory and catalog
    file when the application starts.
    """
    app = FastAPI(
        title="Git Package Registry",
        version="0.1.0",
        description="Swift package registry whose releases come from the tags of git repositories.",
    )
    app.state.registry = registry

    @app.on_event("startup")
    async def startup_event() -> None:
        """
        Load the catalog and set up the on-disk layout (checkouts and archive cache).
        """
        if app.state.registry is None:
            app.state.registry = build_registry()
        logger.info(f"Serving registry rooted at {app.state.registry.root}")

    @app.get("/health")
    async def health() -> dict:
        """
        Lightweight health check endpoint.
        """
        return {"status": "ok"}

    app.include_router(registry_router, tags=["registry"])
    return app


app = create_app()


def run() -> None:
    """
    Start the Uvicorn server (``git-registry`` console script).
    """
    import uvicorn

    uvicorn.run(
        "git_registry.main:app",
        host=os.environ.get("GIT_REGISTRY_HOST", "0.0.0.0"),
        port=int(os.environ.get("GIT_REGISTRY_PORT", "8000")),
    )


if __name__ == "__main__":
    run()
