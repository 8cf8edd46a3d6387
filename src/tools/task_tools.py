"""
Task tool handlers.

Core logic lives in handle_* functions (return dicts).
MCP wrappers in register_task_tools() serialize to JSON strings.
The REST routes in api.task_routes call the same handlers.

Mutation handlers always return the whole fresh document, since task ids
are positional and change whenever tasks are added or reordered. Failures
come back as {"error": ..., "kind": ...} with kind one of
"not_configured", "invalid" or "io".
"""

import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Callable, Optional

from mcp.server.fastmcp import FastMCP

from models.task import Document, Task
from ops.mutations import UNSET
from ops.views import filter_tasks, resolve_section
from store.task_store import StoreNotConfigured
from utils.dates import describe_recur_state, is_hhmm, parse_hhmm

log = logging.getLogger(__name__)


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def _task_to_dict(task: Task, today: date) -> dict:
    """Serialize a Task to a JSON-serializable dict."""
    d = {
        "id": task.id,
        "title": task.title,
        "done": task.done,
        "complete": task.is_complete_on(today),
        "priority": task.priority,
        "effort": task.effort,
        "due": _iso(task.due),
        "recur": str(task.recur) if task.recur else None,
        "last_done": _iso(task.last_done),
        "extra": dict(task.extra),
    }
    if task.recur:
        d["recur_state"] = describe_recur_state(task.due, task.last_done, today)
    return d


def _doc_to_dict(document: Document, today: date) -> dict:
    return {
        "sections": [
            {
                "name": section.name,
                "tasks": [_task_to_dict(t, today) for t in section.tasks],
            }
            for section in document.sections
        ]
    }


def _apply(store, operation: Callable[[], Document]) -> dict:
    """Run a store mutation and translate its failure modes into error dicts."""
    try:
        document = operation()
    except StoreNotConfigured as e:
        return {"error": str(e), "kind": "not_configured"}
    except ValueError as e:
        return {"error": str(e), "kind": "invalid"}
    except OSError as e:
        log.exception("Failed to write task file")
        return {"error": f"Could not write task file: {e}", "kind": "io"}
    return _doc_to_dict(document, store.today())


def _patch_value(value: Any) -> Any:
    """Empty string in a patch means "clear the field"."""
    return UNSET if value == "" else value


# ---------------------------------------------------------------------------
# Handler functions (return dicts, shared by MCP tools and REST API)
# ---------------------------------------------------------------------------


def handle_doc_get(store) -> dict:
    return _doc_to_dict(store.read(), store.today())


def handle_task_list(store, *, section: Optional[str] = None, filter: str = "open") -> dict:
    document = store.read()
    name = resolve_section(document, section)
    if name is None:
        return {"section": None, "tasks": []}
    today = store.today()
    try:
        tasks = filter_tasks(document.find_section(name), filter, today)
    except ValueError as e:
        return {"error": str(e), "kind": "invalid"}
    return {"section": name, "tasks": [_task_to_dict(t, today) for t in tasks]}


def handle_section_add(store, *, name: str) -> dict:
    return _apply(store, lambda: store.add_section(name))


def handle_task_add(store, *, section: str, title: str) -> dict:
    return _apply(store, lambda: store.add_task(section, title))


def handle_task_toggle(store, *, section: str, task_id: str) -> dict:
    return _apply(store, lambda: store.toggle_task(section, task_id))


def handle_task_update(
    store,
    *,
    section: str,
    task_id: str,
    title: Optional[str] = None,
    done: Optional[bool] = None,
    priority: Optional[str] = None,
    effort: Optional[str] = None,
    due: Optional[str] = None,
    recur: Optional[str] = None,
) -> dict:
    patch = {}
    if title is not None:
        patch["title"] = title
    if done is not None:
        patch["done"] = done
    for key, value in (("priority", priority), ("effort", effort), ("due", due), ("recur", recur)):
        if value is not None:
            patch[key] = _patch_value(value)
    return _apply(store, lambda: store.update_task(section, task_id, patch))


def handle_task_reorder(store, *, section: str, from_index: int, to_index: int) -> dict:
    return _apply(store, lambda: store.reorder_task(section, from_index, to_index))


def handle_store_status(store) -> dict:
    return store.status()


def handle_store_configure(
    store,
    *,
    markdown_path: Optional[str] = None,
    notifications_enabled: Optional[bool] = None,
    notification_time: Optional[str] = None,
) -> dict:
    """
    Switch the task file and/or change notification settings.

    An empty markdown_path detaches the store from any file. Omitted
    arguments keep their current values. Returns the new status.
    """
    if notification_time is not None and not is_hhmm(notification_time):
        return {"error": f"Invalid notification time: {notification_time!r}", "kind": "invalid"}

    if markdown_path is not None:
        path = Path(markdown_path).expanduser() if markdown_path else None
        if path is not None and path.is_dir():
            return {"error": f"Not a file: {path}", "kind": "invalid"}
        if path != store.file_path:
            try:
                store.set_path(path)
            except OSError as e:
                log.exception("Failed to switch task file")
                return {"error": f"Could not read task file: {e}", "kind": "io"}

    if notifications_enabled is not None or notification_time is not None:
        enabled = (
            store.notifications_enabled
            if notifications_enabled is None
            else notifications_enabled
        )
        fire_time = store.notification_time
        if notification_time is not None:
            hour, minute = parse_hhmm(notification_time)
            fire_time = f"{hour:02d}:{minute:02d}"
        store.configure_notifications(enabled, fire_time)

    return store.status()


# ---------------------------------------------------------------------------
# MCP tool registration (thin wrappers)
# ---------------------------------------------------------------------------


def register_task_tools(mcp: FastMCP, store) -> None:
    """Register all task-related MCP tools onto the FastMCP instance."""

    @mcp.tool()
    def doc_get() -> str:
        """
        Read the whole task document.

        Task ids have the form "<section>::<index>" and are only valid for the
        document they came from. Re-read after any change.

        Returns:
            JSON object {"sections": [{"name", "tasks": [...]}]}
        """
        return json.dumps(handle_doc_get(store), indent=2)

    @mcp.tool()
    def task_list(section: Optional[str] = None, filter: str = "open") -> str:
        """
        List the tasks of one section.

        Args:
            section: Section name. Falls back to the first section if missing.
            filter: "open", "done" or "all". Recurring tasks count as done
                    only if they were completed today.

        Returns:
            JSON object with the resolved section name and its tasks
        """
        return json.dumps(handle_task_list(store, section=section, filter=filter), indent=2)

    @mcp.tool()
    def section_add(name: str) -> str:
        """
        Add a section. Adding an existing name changes nothing.

        Returns:
            The updated document JSON or an error
        """
        return json.dumps(handle_section_add(store, name=name), indent=2)

    @mcp.tool()
    def task_add(section: str, title: str) -> str:
        """
        Append an open task to a section (created if missing).

        Returns:
            The updated document JSON or an error
        """
        return json.dumps(handle_task_add(store, section=section, title=title), indent=2)

    @mcp.tool()
    def task_toggle(section: str, task_id: str) -> str:
        """
        Toggle a task between done and open.

        Completing a recurring task records today as lastDone and moves its
        due date to the next occurrence. Toggling it again the same day
        restores the previous due date.

        Returns:
            The updated document JSON or an error
        """
        return json.dumps(handle_task_toggle(store, section=section, task_id=task_id), indent=2)

    @mcp.tool()
    def task_update(
        section: str,
        task_id: str,
        title: Optional[str] = None,
        done: Optional[bool] = None,
        priority: Optional[str] = None,
        effort: Optional[str] = None,
        due: Optional[str] = None,
        recur: Optional[str] = None,
    ) -> str:
        """
        Update task fields.

        Only fields you pass will be changed. Pass an empty string to clear
        priority, effort, due or recur.

        Args:
            section: Section holding the task
            task_id: Task id from the latest document read
            title: New title
            done: Raw checkbox state
            priority: P0, P1, P2 or P3
            effort: XS, S, M, L or XL
            due: YYYY-MM-DD
            recur: daily, weekdays, weekly, monthly or "every N days"

        Returns:
            The updated document JSON or an error
        """
        return json.dumps(
            handle_task_update(
                store,
                section=section,
                task_id=task_id,
                title=title,
                done=done,
                priority=priority,
                effort=effort,
                due=due,
                recur=recur,
            ),
            indent=2,
        )

    @mcp.tool()
    def task_reorder(section: str, from_index: int, to_index: int) -> str:
        """
        Move a task within its section. Out-of-range indices change nothing.

        Returns:
            The updated document JSON or an error
        """
        return json.dumps(
            handle_task_reorder(
                store, section=section, from_index=from_index, to_index=to_index
            ),
            indent=2,
        )

    @mcp.tool()
    def store_status() -> str:
        """
        Show task store diagnostics.

        Returns:
            JSON with file path, counts, armed timers and active watch mechanisms
        """
        return json.dumps(handle_store_status(store), indent=2)

    @mcp.tool()
    def store_configure(
        markdown_path: Optional[str] = None,
        notifications_enabled: Optional[bool] = None,
        notification_time: Optional[str] = None,
    ) -> str:
        """
        Change the task file or notification settings while the server runs.

        Switching files stops watching the old one, starts watching the new
        one and re-arms due notifications. Changes are not saved to the
        settings file.

        Args:
            markdown_path: Path of the task file; empty string to detach
            notifications_enabled: Turn due-date notifications on or off
            notification_time: Daily fire time as HH:MM (local time)

        Returns:
            JSON store status after the change, or an error
        """
        return json.dumps(
            handle_store_configure(
                store,
                markdown_path=markdown_path,
                notifications_enabled=notifications_enabled,
                notification_time=notification_time,
            ),
            indent=2,
        )
