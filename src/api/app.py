"""FastAPI application factory for the task document REST API."""

from fastapi import APIRouter, FastAPI

from api.task_routes import register_task_routes


def create_app(store) -> FastAPI:
    """Build and return a FastAPI app wired to the given TaskStore."""
    app = FastAPI(title="taskdoc-mcp", docs_url="/api/docs", openapi_url="/api/openapi.json")

    api = APIRouter(prefix="/api")
    register_task_routes(api, store)
    app.include_router(api)

    return app
