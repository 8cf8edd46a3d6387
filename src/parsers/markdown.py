"""
Parser and serializer for the markdown task file.

Main API:
    parse_content(text)  → Document
    parse_file(path)  → Document
    render_document(document)  → str
    write_file(path, document)  → None

Recognised line forms, tested in this order on every line:

    ## Section name              heading (levels 2-6), opens/reuses a section
    - [ ] Task title             task, appended to the current section
      - key: value               metadata for the current task (2+ spaces)

Anything else is ignored. A blank line keeps the current task open for
metadata; any other unrecognised line closes it, as does a heading.

Metadata lines are classified into a KnownField (one of the five typed
keys with a valid value) or an ExtraField (everything else, kept verbatim).
render_document always writes known fields in a fixed order, so a parse of
rendered output is structurally identical to the parse that produced it.
"""

import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from models.recurrence import RecurPattern
from models.task import (
    DEFAULT_SECTION,
    EFFORTS,
    PRIORITIES,
    Document,
    Section,
    Task,
    make_task_id,
)
from utils.dates import parse_iso_date

log = logging.getLogger(__name__)

_HEADING = re.compile(r"^#{2,6}\s+(.*)$")
_TASK_LINE = re.compile(r"^\s*- \[( |x|X)\] (.*)$")
_META_LINE = re.compile(r"^\s{2,}-\s+([^:]+):\s*(.*)$")

DOCUMENT_TITLE = "# Tasks"
META_INDENT = "  "


# ---------------------------------------------------------------------------
# Metadata classification
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class KnownField:
    """A recognised metadata key with a validated, typed value."""

    name: str
    value: object


@dataclass(frozen=True)
class ExtraField:
    """Any other metadata line, kept under its original key text."""

    key: str
    value: str


MetaField = Union[KnownField, ExtraField]


def _one_of(allowed: Tuple[str, ...]) -> Callable[[str], Optional[str]]:
    return lambda value: value if value in allowed else None


# lower-cased key on disk → (Task attribute, validator)
_KNOWN_KEYS: Dict[str, Tuple[str, Callable[[str], object]]] = {
    "priority": ("priority", _one_of(PRIORITIES)),
    "effort": ("effort", _one_of(EFFORTS)),
    "due": ("due", parse_iso_date),
    "recur": ("recur", RecurPattern.parse),
    "lastdone": ("last_done", parse_iso_date),
}

# Task attribute → canonical key on write, in emission order
_EMIT_ORDER = (
    ("priority", "priority"),
    ("effort", "effort"),
    ("due", "due"),
    ("recur", "recur"),
    ("last_done", "lastDone"),
)


def classify_meta(key: str, value: str) -> MetaField:
    """
    Classify one metadata key/value pair.

    Reserved keys are matched case-insensitively. A reserved key whose value
    fails validation is demoted to an ExtraField under its original key.
    """
    known = _KNOWN_KEYS.get(key.lower())
    if known is not None:
        attr, validate = known
        parsed = validate(value)
        if parsed is not None:
            return KnownField(name=attr, value=parsed)
    return ExtraField(key=key, value=value)


def _apply_meta(task: Task, meta: MetaField) -> None:
    if isinstance(meta, KnownField):
        setattr(task, meta.name, meta.value)
    else:
        task.extra[meta.key] = meta.value


# ---------------------------------------------------------------------------
# Parse
# ---------------------------------------------------------------------------

def parse_content(content: str) -> Document:
    """
    Parse markdown text into a Document.

    Never raises on malformed input; the worst case is an empty Document.
    """
    lines = content.replace("\r\n", "\n").split("\n")

    document = Document()
    current_section: Optional[Section] = None
    current_task: Optional[Task] = None

    for line in lines:
        heading = _HEADING.match(line)
        if heading:
            current_section = document.ensure_section(heading.group(1).strip())
            current_task = None
            continue

        task_match = _TASK_LINE.match(line)
        if task_match:
            if current_section is None:
                current_section = document.ensure_section(DEFAULT_SECTION)
            task = Task(
                title=task_match.group(2).rstrip(),
                done=task_match.group(1).lower() == "x",
                id=make_task_id(current_section.name, len(current_section.tasks)),
            )
            current_section.tasks.append(task)
            current_task = task
            continue

        if current_task is not None:
            meta = _META_LINE.match(line)
            if meta:
                key = meta.group(1).strip()
                # A whitespace-only key cannot be written back; skip it like a blank line
                if key:
                    _apply_meta(current_task, classify_meta(key, meta.group(2).strip()))
                continue

        if line.strip():
            # Prose or stray bullets end the metadata run
            current_task = None

    return document


def parse_file(file_path: Path) -> Document:
    """Parse a task file. Raises FileNotFoundError if it does not exist."""
    return parse_content(file_path.read_text(encoding="utf-8"))


# ---------------------------------------------------------------------------
# Serialize
# ---------------------------------------------------------------------------

def _serialize_task(task: Task) -> List[str]:
    checkbox = "[x]" if task.done else "[ ]"
    lines = [f"- {checkbox} {task.title}"]

    for attr, key in _EMIT_ORDER:
        value = getattr(task, attr)
        if value is None:
            continue
        lines.append(f"{META_INDENT}- {key}: {value}")

    for key, value in task.extra.items():
        lines.append(f"{META_INDENT}- {key}: {value}")

    return lines


def render_document(document: Document) -> str:
    """Render a Document to canonical markdown text."""
    lines: List[str] = [DOCUMENT_TITLE, ""]

    for section in document.sections:
        lines.append(f"## {section.name}")
        for task in section.tasks:
            lines.extend(_serialize_task(task))
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def write_file(file_path: Path, document: Document) -> None:
    """
    Serialize a Document and write it to *file_path*.

    The text goes to a temp file in the same directory which then replaces
    the target, so a crash mid-write never leaves a truncated task file.
    """
    text = render_document(document)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{file_path.name}.", suffix=".tmp", dir=str(file_path.parent)
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, file_path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise
    log.debug("Wrote %d sections to %s", len(document.sections), file_path)
