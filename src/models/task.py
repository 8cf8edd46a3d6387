"""
Core document data models.

A Document is the in-memory form of one markdown task file: an ordered list
of Sections, each an ordered list of Tasks. Task ids are positional
(``"<section>::<index>"``) and are recomputed on every parse and after every
structural mutation via Document.reindex(). They are not persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Tuple

from models.recurrence import RecurPattern

PRIORITIES = ("P0", "P1", "P2", "P3")
EFFORTS = ("XS", "S", "M", "L", "XL")

DEFAULT_SECTION = "Inbox"


def make_task_id(section_name: str, index: int) -> str:
    return f"{section_name}::{index}"


@dataclass
class Task:
    """
    A single checklist item with its structured metadata.

    ``done`` is the raw persisted checkbox. For recurring tasks the
    user-facing completion state is is_complete_on(today), which looks at
    ``last_done`` instead.
    """

    title: str
    done: bool = False
    id: str = ""
    priority: Optional[str] = None
    effort: Optional[str] = None
    due: Optional[date] = None
    recur: Optional[RecurPattern] = None
    last_done: Optional[date] = None
    extra: Dict[str, str] = field(default_factory=dict)

    @property
    def is_recurring(self) -> bool:
        return self.recur is not None

    def is_complete_on(self, today: date) -> bool:
        """Completion state for display: per-cycle for recurring tasks."""
        if self.recur is not None:
            return self.last_done == today
        return self.done


@dataclass
class Section:
    """A named heading and the tasks beneath it, in file order."""

    name: str
    tasks: List[Task] = field(default_factory=list)

    def find_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def index_of(self, task_id: str) -> Optional[int]:
        for i, task in enumerate(self.tasks):
            if task.id == task_id:
                return i
        return None


@dataclass
class Document:
    """
    A fully parsed task file.

    A Document with no sections is valid (missing or empty file).
    """

    sections: List[Section] = field(default_factory=list)

    def find_section(self, name: str) -> Optional[Section]:
        for section in self.sections:
            if section.name == name:
                return section
        return None

    def ensure_section(self, name: str) -> Section:
        """Return the section called *name*, appending it if missing."""
        section = self.find_section(name)
        if section is None:
            section = Section(name=name)
            self.sections.append(section)
        return section

    def find_task(self, section_name: str, task_id: str) -> Optional[Task]:
        section = self.find_section(section_name)
        return section.find_task(task_id) if section else None

    def all_tasks(self) -> List[Tuple[Section, Task]]:
        """Return (section, task) pairs across the whole document."""
        return [(s, t) for s in self.sections for t in s.tasks]

    def reindex(self) -> None:
        """Recompute positional ids after a structural change."""
        for section in self.sections:
            for i, task in enumerate(section.tasks):
                task.id = make_task_id(section.name, i)
