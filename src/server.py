"""
taskdoc-mcp server entry point.

Startup sequence:
1. Load settings (app settings JSON, then environment overrides)
2. Create the DueScheduler and TaskStore for the configured markdown file
3. Start the store (file watcher + initial timer arming)
4. Start REST API server in background thread (if API_ENABLED)
5. Register MCP tools
6. Run MCP server (stdio transport)
"""

import logging
import os
import sys
import threading

from mcp.server.fastmcp import FastMCP

from config import load_settings
from scheduler.due_scheduler import DueNotification, DueScheduler
from store.task_store import TaskStore
from tools import register_task_tools

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    stream=sys.stderr,
)
log = logging.getLogger(__name__)


def _start_api_server(store, port: int) -> None:
    """Run the FastAPI/uvicorn server in a daemon thread."""
    import uvicorn

    from api.app import create_app

    app = create_app(store)
    log.info("Starting REST API on port %d", port)
    uvicorn.run(app, host="127.0.0.1", port=port, log_level="warning")


def _log_due(notification: DueNotification) -> None:
    log.warning("Task due: %s (%s)", notification.title, notification.section)


def main() -> None:
    try:
        settings = load_settings()
    except ValueError as e:
        log.error("%s", e)
        sys.exit(1)

    if settings.markdown_path is None:
        log.warning("No markdown file configured; set MARKDOWN_PATH to enable writes")
    else:
        log.info("Task file: %s", settings.markdown_path)

    scheduler = DueScheduler()
    scheduler.on_due(_log_due)

    store = TaskStore(
        settings.markdown_path,
        scheduler,
        notifications_enabled=settings.notifications_enabled,
        notification_time=settings.notification_time,
        poll_interval=settings.poll_interval,
        debounce=settings.debounce_seconds,
    )
    store.on_changed(lambda: log.debug("Task document changed"))
    store.start()

    if settings.api_enabled:
        api_thread = threading.Thread(
            target=_start_api_server, args=(store, settings.api_port), daemon=True
        )
        api_thread.start()

    mcp = FastMCP("taskdoc-mcp")
    register_task_tools(mcp, store)

    log.info("Starting taskdoc-mcp server")
    try:
        mcp.run(transport="stdio")
    finally:
        store.stop()


if __name__ == "__main__":
    main()
