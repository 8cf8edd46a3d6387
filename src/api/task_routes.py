"""REST API routes for task document operations."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from tools.task_tools import (
    handle_doc_get,
    handle_section_add,
    handle_store_configure,
    handle_store_status,
    handle_task_add,
    handle_task_list,
    handle_task_reorder,
    handle_task_toggle,
    handle_task_update,
)

_ERROR_STATUS = {
    "not_configured": 409,
    "invalid": 400,
    "io": 500,
}


class SectionAddBody(BaseModel):
    name: str


class TaskAddBody(BaseModel):
    section: str
    title: str


class TaskRefBody(BaseModel):
    section: str
    task_id: str


class TaskUpdateBody(BaseModel):
    section: str
    task_id: str
    title: Optional[str] = None
    done: Optional[bool] = None
    priority: Optional[str] = None
    effort: Optional[str] = None
    due: Optional[str] = None
    recur: Optional[str] = None


class TaskReorderBody(BaseModel):
    section: str
    from_index: int
    to_index: int


class SettingsBody(BaseModel):
    markdown_path: Optional[str] = None
    notifications_enabled: Optional[bool] = None
    notification_time: Optional[str] = None


def _raise_for_error(result: dict) -> dict:
    if "error" in result:
        status = _ERROR_STATUS.get(result.get("kind", ""), 400)
        raise HTTPException(status_code=status, detail=result["error"])
    return result


def register_task_routes(app_router: APIRouter, store) -> None:
    """Attach task REST routes that use the shared store."""

    @app_router.get("/doc")
    def get_doc():
        return handle_doc_get(store)

    @app_router.post("/sections", status_code=201)
    def add_section(body: SectionAddBody):
        return _raise_for_error(handle_section_add(store, name=body.name))

    @app_router.get("/sections/{name}/tasks")
    def list_tasks(name: str, filter: str = Query("open")):
        return _raise_for_error(handle_task_list(store, section=name, filter=filter))

    @app_router.post("/tasks", status_code=201)
    def add_task(body: TaskAddBody):
        return _raise_for_error(handle_task_add(store, **body.model_dump()))

    @app_router.post("/tasks/toggle")
    def toggle_task(body: TaskRefBody):
        return _raise_for_error(handle_task_toggle(store, **body.model_dump()))

    @app_router.patch("/tasks")
    def update_task(body: TaskUpdateBody):
        return _raise_for_error(handle_task_update(store, **body.model_dump()))

    @app_router.post("/tasks/reorder")
    def reorder_task(body: TaskReorderBody):
        return _raise_for_error(handle_task_reorder(store, **body.model_dump()))

    @app_router.get("/status")
    def get_status():
        return handle_store_status(store)

    @app_router.put("/settings")
    def put_settings(body: SettingsBody):
        return _raise_for_error(handle_store_configure(store, **body.model_dump()))
