from __future__ import annotations

from datetime import datetime, timezone

from prepboard.models import Task

# column type -> status it forces on every save
FORCED_STATUS = {
  "done": "Completed",
  "blocked": "Blocked",
  "inprogress": "In Progress",
}


def derive_status(column: str, status: str, *, column_changed: bool = False) -> str:
  forced = FORCED_STATUS.get(column)
  if forced:
    return forced
  if column_changed and status in FORCED_STATUS.values():
    # left a forcing column; drop the status it forced
    return "In Review" if column == "review" else "Not Started"
  return status


def apply_status(t: Task, *, column_changed: bool = False, now: datetime | None = None) -> None:
  t.status = derive_status(t.column_type, t.status, column_changed=column_changed)
  if t.status == "Completed":
    if t.completed_at is None:
      t.completed_at = now or datetime.now(timezone.utc)
  else:
    t.completed_at = None
