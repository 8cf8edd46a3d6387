"""
Document mutations.

Every operation takes a Document, changes it in place and returns a
MutationResult. Operations are total: an unknown section, an unknown task id
or an out-of-range index leaves the Document untouched and reports
``changed=False``. Task ids are resolved before any structural change and
the Document is re-indexed afterwards, so returned ids reflect the new order.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping, Optional

from models.recurrence import RecurPattern
from models.task import EFFORTS, PRIORITIES, Document, Task
from utils.dates import parse_iso_date


class _Unset:
    """Patch value meaning "clear this field"."""

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()

PATCH_FIELDS = frozenset({"title", "done", "priority", "effort", "due", "recur"})
CLEARABLE_FIELDS = frozenset({"priority", "effort", "due", "recur"})


@dataclass
class RolloverRecord:
    """
    What a recurring completion changed, so it can be undone the same day.

    Held in memory by the caller; never written to the task file.
    """

    section: str
    title: str
    previous_due: Optional[date]
    completed_on: date

    @property
    def key(self) -> tuple:
        return (self.section, self.title)


@dataclass
class MutationResult:
    document: Document
    changed: bool = False
    rollover: Optional[RolloverRecord] = None


# ---------------------------------------------------------------------------
# Structural operations
# ---------------------------------------------------------------------------

def _check_single_line(label: str, value: str) -> None:
    if "\n" in value or "\r" in value:
        raise ValueError(f"{label} must be a single line")


def add_section(document: Document, name: str) -> MutationResult:
    """
    Append an empty section unless one with this name already exists.

    Raises ValueError if *name* contains a line break.
    """
    _check_single_line("Section name", name)
    name = name.strip()
    if not name or document.find_section(name) is not None:
        return MutationResult(document)
    document.ensure_section(name)
    return MutationResult(document, changed=True)


def add_task(document: Document, section_name: str, title: str) -> MutationResult:
    """
    Append an open task, creating the section first if needed.

    Raises ValueError if the section name or title contains a line break.
    """
    _check_single_line("Section name", section_name)
    _check_single_line("Title", title)
    section_name = section_name.strip()
    title = title.strip()
    if not section_name or not title:
        return MutationResult(document)
    section = document.ensure_section(section_name)
    section.tasks.append(Task(title=title))
    document.reindex()
    return MutationResult(document, changed=True)


def reorder_task(
    document: Document, section_name: str, from_index: int, to_index: int
) -> MutationResult:
    """Move the task at *from_index* to *to_index* within one section."""
    section = document.find_section(section_name)
    if section is None:
        return MutationResult(document)
    count = len(section.tasks)
    if not (0 <= from_index < count and 0 <= to_index < count):
        return MutationResult(document)
    if from_index == to_index:
        return MutationResult(document)

    task = section.tasks.pop(from_index)
    section.tasks.insert(to_index, task)
    document.reindex()
    return MutationResult(document, changed=True)


# ---------------------------------------------------------------------------
# Field operations
# ---------------------------------------------------------------------------

def toggle_task(document: Document, section_name: str, task_id: str) -> MutationResult:
    """Flip the raw ``done`` flag. No recurrence handling."""
    task = document.find_task(section_name, task_id)
    if task is None:
        return MutationResult(document)
    task.done = not task.done
    return MutationResult(document, changed=True)


def _coerce_patch_value(name: str, value: Any) -> Any:
    """Validate one patch value; raise ValueError if it is not acceptable."""
    if value is UNSET:
        if name not in CLEARABLE_FIELDS:
            raise ValueError(f"Field '{name}' cannot be cleared")
        return None
    if name == "title":
        if not isinstance(value, str) or not value.strip():
            raise ValueError("Title must be a non-empty string")
        _check_single_line("Title", value)
        return value.strip()
    if name == "done":
        if not isinstance(value, bool):
            raise ValueError("done must be a boolean")
        return value
    if name == "priority":
        if value not in PRIORITIES:
            raise ValueError(f"Invalid priority: {value!r}")
        return value
    if name == "effort":
        if value not in EFFORTS:
            raise ValueError(f"Invalid effort: {value!r}")
        return value
    if name == "due":
        if isinstance(value, date):
            return value
        parsed = parse_iso_date(value) if isinstance(value, str) else None
        if parsed is None:
            raise ValueError(f"Invalid due date: {value!r}")
        return parsed
    if name == "recur":
        if isinstance(value, RecurPattern):
            return value
        parsed = RecurPattern.parse(value) if isinstance(value, str) else None
        if parsed is None:
            raise ValueError(f"Invalid recurrence: {value!r}")
        return parsed
    raise ValueError(f"Unknown task field: {name!r}")


def update_task(
    document: Document,
    section_name: str,
    task_id: str,
    patch: Mapping[str, Any],
) -> MutationResult:
    """
    Apply a partial update to a task.

    *patch* may contain any of title, done, priority, effort, due, recur.
    Absent keys are left alone; a value of UNSET clears the field. ``extra``
    is never touched. Raises ValueError for unknown keys or invalid values,
    before anything is modified.
    """
    unknown = set(patch) - PATCH_FIELDS
    if unknown:
        raise ValueError(f"Unknown task field(s): {', '.join(sorted(unknown))}")
    values = {name: _coerce_patch_value(name, value) for name, value in patch.items()}

    task = document.find_task(section_name, task_id)
    if task is None:
        return MutationResult(document)

    changed = False
    for name, value in values.items():
        if getattr(task, name) != value:
            setattr(task, name, value)
            changed = True
    return MutationResult(document, changed=changed)


# ---------------------------------------------------------------------------
# Completion with recurrence rollover
# ---------------------------------------------------------------------------

def set_task_complete(
    document: Document,
    section_name: str,
    task_id: str,
    complete: bool,
    today: date,
    undo: Optional[RolloverRecord] = None,
) -> MutationResult:
    """
    Mark a task complete or incomplete as of *today*.

    For a recurring task, completing records ``last_done`` and advances
    ``due`` to the next occurrence; the returned MutationResult carries a
    RolloverRecord with the previous due date. Un-completing clears a
    same-day ``last_done`` and, given the matching *undo* record, restores
    the previous due date exactly. Non-recurring tasks just set ``done``.
    """
    section = document.find_section(section_name)
    task = section.find_task(task_id) if section else None
    if task is None:
        return MutationResult(document)

    if task.recur is None:
        if task.done == complete:
            return MutationResult(document)
        task.done = complete
        return MutationResult(document, changed=True)

    if complete:
        record = RolloverRecord(
            section=section.name,
            title=task.title,
            previous_due=task.due,
            completed_on=today,
        )
        anchor = task.due or today
        task.due = task.recur.next_due(anchor)
        task.last_done = today
        task.done = True
        return MutationResult(document, changed=True, rollover=record)

    before = (task.done, task.last_done, task.due)
    task.done = False
    if task.last_done == today:
        task.last_done = None
        if (
            undo is not None
            and undo.completed_on == today
            and undo.key == (section.name, task.title)
        ):
            task.due = undo.previous_due
    return MutationResult(document, changed=before != (task.done, task.last_done, task.due))


def toggle_complete(
    document: Document,
    section_name: str,
    task_id: str,
    today: date,
    undo: Optional[RolloverRecord] = None,
) -> MutationResult:
    """
    Toggle the user-facing completion state of a task.

    The direction comes from Task.is_complete_on(today), so a recurring task
    completed on an earlier day is completed again rather than reopened.
    """
    task = document.find_task(section_name, task_id)
    if task is None:
        return MutationResult(document)
    return set_task_complete(
        document,
        section_name,
        task_id,
        complete=not task.is_complete_on(today),
        today=today,
        undo=undo,
    )
