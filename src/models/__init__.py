from .recurrence import RecurPattern
from .task import DEFAULT_SECTION, EFFORTS, PRIORITIES, Document, Section, Task

__all__ = [
    "Task",
    "Section",
    "Document",
    "RecurPattern",
    "PRIORITIES",
    "EFFORTS",
    "DEFAULT_SECTION",
]
