"""Task record shape checks for caller input."""

from __future__ import annotations

from typing import Any, Dict, List

from .errors import TaskShapeError

STATUS_IMPLEMENTED = "implemented"
STATUS_PARTIAL = "partially_implemented"
STATUS_NOT_IMPLEMENTED = "not_implemented"
STATUSES = (STATUS_IMPLEMENTED, STATUS_PARTIAL, STATUS_NOT_IMPLEMENTED)

TASK_FIELDS = ("task_id", "task", "status", "evidence")


def validate_tasks(raw: Any) -> List[Dict[str, Any]]:
    """Check that tasks are a list of objects carrying a task_id and a task."""
    if not isinstance(raw, list):
        raise TaskShapeError("tasks must be a JSON array")
    out: List[Dict[str, Any]] = []
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            raise TaskShapeError(f"tasks[{idx}] is not an object")
        for key in ("task_id", "task"):
            if key not in item:
                raise TaskShapeError(f'tasks[{idx}] is missing "{key}"')
        out.append(item)
    return out


def is_task_array(value: Any) -> bool:
    """True when a parsed model response has the shape of a task array."""
    return isinstance(value, list) and all(isinstance(item, dict) for item in value)


def status_counts(tasks: List[Dict[str, Any]]) -> Dict[str, int]:
    counts = {status: 0 for status in STATUSES}
    for task in tasks:
        status = str(task.get("status") or "")
        if status in counts:
            counts[status] += 1
        else:
            counts["other"] = counts.get("other", 0) + 1
    return counts
