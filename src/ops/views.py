"""Read-only helpers used by the tool and REST surfaces."""

from datetime import date
from typing import List, Optional

from models.task import Document, Section, Task

TASK_FILTERS = ("open", "done", "all")


def filter_tasks(
    section: Section, task_filter: str, today: Optional[date] = None
) -> List[Task]:
    """
    Return the section's tasks matching ``open``, ``done`` or ``all``.

    With *today* given, recurring tasks are judged by their per-day
    completion state instead of the raw checkbox.
    """
    if task_filter == "all":
        return list(section.tasks)
    if task_filter not in TASK_FILTERS:
        raise ValueError(f"Unknown filter: {task_filter!r}")

    def is_done(task: Task) -> bool:
        return task.is_complete_on(today) if today is not None else task.done

    want_done = task_filter == "done"
    return [t for t in section.tasks if is_done(t) == want_done]


def resolve_section(document: Document, current: Optional[str]) -> Optional[str]:
    """
    Return *current* if the document still has it, else the first section's
    name, else None.
    """
    if current and document.find_section(current) is not None:
        return current
    return document.sections[0].name if document.sections else None
