"""
Task lifecycle engine.

States: todo -> in_progress -> review -> done, with ``blocked`` reachable
from anywhere. Any status may move to any other; the engine owns the side
effects of a move:

- entering ``blocked`` remembers the previous status in ``blocked_from``
- ``unblock`` returns to ``blocked_from`` (``todo`` if unknown)
- entering ``done`` stamps ``completed_at``; leaving ``done`` clears it
- the first completion without ``actual_hours`` takes the ledger total
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from percival.core.config import Settings
from percival.core.errors import ValidationError
from percival.models import Task
from percival.services import time_ledger
from percival_shared.schemas.common import TaskStatus

log = structlog.get_logger()


@dataclass
class StatusChange:
    from_status: TaskStatus
    to_status: TaskStatus
    actual_hours_defaulted: Optional[float] = None

    def detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"from": self.from_status.value, "to": self.to_status.value}
        if self.actual_hours_defaulted is not None:
            detail["actual_hours"] = self.actual_hours_defaulted
        return detail


@dataclass
class AssigneeChange:
    from_assignee: Optional[uuid.UUID]
    to_assignee: Optional[uuid.UUID]

    def detail(self) -> dict[str, Any]:
        return {"from": self.from_assignee, "to": self.to_assignee}


async def apply_transition(
    session: AsyncSession,
    task: Task,
    to_status: TaskStatus,
    settings: Settings,
    actual_hours: Optional[float] = None,
) -> StatusChange:
    """Move ``task`` to ``to_status`` in place. Does not flush or record."""
    current = TaskStatus(task.status)
    if to_status == current:
        raise ValidationError(
            f"task is already '{current.value}'",
            entity_type="task",
            entity_id=task.id,
            invariant="task.status_changes",
        )

    change = StatusChange(from_status=current, to_status=to_status)

    if to_status == TaskStatus.BLOCKED:
        task.blocked_from = current.value
    elif current == TaskStatus.BLOCKED:
        task.blocked_from = None

    if to_status == TaskStatus.DONE:
        task.completed_at = datetime.now(timezone.utc)
        if actual_hours is not None:
            task.actual_hours = actual_hours
        elif task.actual_hours is None and settings.default_actual_hours_from_ledger:
            total = await time_ledger.total_for_task(session, task.id)
            task.actual_hours = float(total)
            change.actual_hours_defaulted = task.actual_hours
    else:
        if current == TaskStatus.DONE:
            task.completed_at = None
        if actual_hours is not None:
            task.actual_hours = actual_hours

    task.status = to_status.value
    log.info(
        "task.transitioned",
        task_id=str(task.id),
        from_status=current.value,
        to_status=to_status.value,
    )
    return change


def unblock_target(task: Task) -> TaskStatus:
    """Status an unblocked task returns to."""
    if task.status != TaskStatus.BLOCKED.value:
        raise ValidationError(
            f"task is '{task.status}', not blocked",
            entity_type="task",
            entity_id=task.id,
            invariant="task.unblock_requires_blocked",
        )
    return TaskStatus(task.blocked_from) if task.blocked_from else TaskStatus.TODO


def change_assignee(task: Task, assignee_id: Optional[uuid.UUID]) -> Optional[AssigneeChange]:
    """Set the assignee; returns the change, or None when it is unchanged."""
    if task.assignee_id == assignee_id:
        return None
    change = AssigneeChange(from_assignee=task.assignee_id, to_assignee=assignee_id)
    task.assignee_id = assignee_id
    return change
