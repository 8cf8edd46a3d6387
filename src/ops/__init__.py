from .mutations import (
    UNSET,
    MutationResult,
    RolloverRecord,
    add_section,
    add_task,
    reorder_task,
    set_task_complete,
    toggle_complete,
    toggle_task,
    update_task,
)
from .views import TASK_FILTERS, filter_tasks, resolve_section

__all__ = [
    "UNSET",
    "MutationResult",
    "RolloverRecord",
    "add_section",
    "add_task",
    "toggle_task",
    "update_task",
    "reorder_task",
    "set_task_complete",
    "toggle_complete",
    "filter_tasks",
    "resolve_section",
    "TASK_FILTERS",
]
