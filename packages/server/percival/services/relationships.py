"""
Relationship enforcement: reference checks and deletion closures.

Every foreign reference in the schema is declared once in ``REFERENCES``
together with what happens to the child when its parent is deleted:

- CASCADE: the child row is deleted too (and its own children, recursively)
- NULLIFY: the child's column is set to NULL
- RESTRICT: the deletion is refused while the child exists

``plan_deletion`` walks the table breadth-first and resolves the full
closure before anything is written. ``apply_plan`` then nullifies and
deletes children before parents, in the order derived from the schema
metadata, so no statement ever leaves a dangling reference behind.
"""

from __future__ import annotations

import uuid
from collections import defaultdict, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional

import sqlalchemy as sa
import structlog
from sqlalchemy import delete, text, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel, select

from percival.core.errors import NotFound, ReferentialConflict, ValidationError
from percival.models import (
    ActivityEvent,
    Attachment,
    Comment,
    Milestone,
    Notification,
    Project,
    ProjectMembership,
    Tag,
    Task,
    TaskTag,
    Team,
    TeamMembership,
    TimeEntry,
    User,
)
from percival_shared.schemas.common import EntityKind

log = structlog.get_logger()


class Policy(str, Enum):
    CASCADE = "cascade"
    NULLIFY = "nullify"
    RESTRICT = "restrict"


@dataclass(frozen=True)
class Reference:
    child: type[SQLModel]
    column: str
    parent: type[SQLModel]
    policy: Policy


REFERENCES: list[Reference] = [
    Reference(Team, "lead_id", User, Policy.NULLIFY),
    Reference(TeamMembership, "team_id", Team, Policy.CASCADE),
    Reference(TeamMembership, "user_id", User, Policy.CASCADE),
    Reference(Project, "owner_id", User, Policy.RESTRICT),
    Reference(ProjectMembership, "project_id", Project, Policy.CASCADE),
    Reference(ProjectMembership, "user_id", User, Policy.CASCADE),
    Reference(Milestone, "project_id", Project, Policy.CASCADE),
    Reference(Task, "project_id", Project, Policy.CASCADE),
    Reference(Task, "milestone_id", Milestone, Policy.NULLIFY),
    Reference(Task, "assignee_id", User, Policy.NULLIFY),
    Reference(Comment, "task_id", Task, Policy.CASCADE),
    Reference(Comment, "author_id", User, Policy.CASCADE),
    Reference(TaskTag, "task_id", Task, Policy.CASCADE),
    Reference(TaskTag, "tag_id", Tag, Policy.CASCADE),
    Reference(Attachment, "task_id", Task, Policy.CASCADE),
    Reference(Attachment, "uploaded_by", User, Policy.CASCADE),
    Reference(TimeEntry, "task_id", Task, Policy.CASCADE),
    Reference(TimeEntry, "user_id", User, Policy.CASCADE),
    Reference(ActivityEvent, "actor_id", User, Policy.NULLIFY),
    Reference(ActivityEvent, "project_id", Project, Policy.CASCADE),
    Reference(Notification, "user_id", User, Policy.CASCADE),
]

MODELS: dict[EntityKind, type[SQLModel]] = {
    EntityKind.USER: User,
    EntityKind.TEAM: Team,
    EntityKind.TEAM_MEMBERSHIP: TeamMembership,
    EntityKind.PROJECT: Project,
    EntityKind.PROJECT_MEMBERSHIP: ProjectMembership,
    EntityKind.MILESTONE: Milestone,
    EntityKind.TASK: Task,
    EntityKind.COMMENT: Comment,
    EntityKind.TAG: Tag,
    EntityKind.TASK_TAG: TaskTag,
    EntityKind.ATTACHMENT: Attachment,
    EntityKind.TIME_ENTRY: TimeEntry,
}

_ENTITY_TYPES: dict[type[SQLModel], str] = {model: kind.value for kind, model in MODELS.items()}
_ENTITY_TYPES[ActivityEvent] = "activity_event"
_ENTITY_TYPES[Notification] = "notification"


def entity_type(model: type[SQLModel]) -> str:
    return _ENTITY_TYPES[model]


def references_from(model: type[SQLModel]) -> list[Reference]:
    return [ref for ref in REFERENCES if ref.child is model]


def references_to(model: type[SQLModel]) -> list[Reference]:
    return [ref for ref in REFERENCES if ref.parent is model]


def _pk(model: type[SQLModel]) -> sa.Column:
    return list(model.__table__.primary_key.columns)[0]


def _pk_attr(model: type[SQLModel]):
    return getattr(model, _pk(model).name)


# ---------------------------------------------------------------------------
# Reference validation
# ---------------------------------------------------------------------------


async def _lookup(session: AsyncSession, model: type[SQLModel], entity_id: Any):
    # Pending changes on the row being validated must not flush first
    with session.no_autoflush:
        return await session.get(model, entity_id)


async def validate_references(
    session: AsyncSession,
    model: type[SQLModel],
    values: dict[str, Any],
    changed: Optional[Iterable[str]] = None,
) -> None:
    """Check that every reference in ``values`` resolves.

    ``values`` is the full post-change state of the row; ``changed`` limits
    the lookups to the columns being written (all of them on create).
    Also enforces that a task's milestone belongs to the task's project.
    """
    columns = set(values) if changed is None else set(changed)
    for ref in references_from(model):
        if ref.column not in columns:
            continue
        target_id = values.get(ref.column)
        if target_id is None:
            continue
        if await _lookup(session, ref.parent, target_id) is None:
            raise NotFound(
                entity_type(ref.parent),
                target_id,
                invariant=f"{entity_type(model)}.{ref.column}",
            )

    if model is Task and {"milestone_id", "project_id"} & columns:
        milestone_id = values.get("milestone_id")
        if milestone_id is not None:
            milestone = await _lookup(session, Milestone, milestone_id)
            if milestone is None:
                raise NotFound("milestone", milestone_id, invariant="task.milestone_id")
            if milestone.project_id != values.get("project_id"):
                raise ValidationError(
                    f"milestone {milestone_id} belongs to project {milestone.project_id}, "
                    f"not {values.get('project_id')}",
                    entity_type="task",
                    entity_id=values.get("id"),
                    invariant="task.milestone_in_project",
                )


# ---------------------------------------------------------------------------
# Deletion planning
# ---------------------------------------------------------------------------


@dataclass
class DeletionPlan:
    root: type[SQLModel]
    root_id: Any
    deletions: dict[type[SQLModel], set] = field(default_factory=lambda: defaultdict(set))
    nullify: dict[tuple[type[SQLModel], str], set] = field(default_factory=lambda: defaultdict(set))

    def summary(self) -> dict[str, Any]:
        return {
            "deleted": {entity_type(m): len(ids) for m, ids in self.deletions.items() if ids},
            "nullified": {
                f"{entity_type(m)}.{col}": len(ids) for (m, col), ids in self.nullify.items() if ids
            },
        }


async def _child_ids(session: AsyncSession, ref: Reference, parent_ids: set) -> set:
    result = await session.execute(
        select(_pk_attr(ref.child)).where(getattr(ref.child, ref.column).in_(parent_ids))
    )
    return set(result.scalars().all())


async def plan_deletion(session: AsyncSession, model: type[SQLModel], entity_id: Any) -> DeletionPlan:
    """Resolve the full effect of deleting ``model``/``entity_id``.

    Raises ReferentialConflict if any restricting row would survive the
    deletion. Nothing is written.
    """
    plan = DeletionPlan(root=model, root_id=entity_id)
    plan.deletions[model].add(entity_id)
    restricted: list[tuple[Reference, set]] = []

    frontier: deque[tuple[type[SQLModel], set]] = deque([(model, {entity_id})])
    while frontier:
        parent, parent_ids = frontier.popleft()
        for ref in references_to(parent):
            ids = await _child_ids(session, ref, parent_ids)
            if not ids:
                continue
            if ref.policy is Policy.CASCADE:
                new = ids - plan.deletions[ref.child]
                if new:
                    plan.deletions[ref.child] |= new
                    frontier.append((ref.child, new))
            elif ref.policy is Policy.NULLIFY:
                plan.nullify[(ref.child, ref.column)] |= ids
            else:
                restricted.append((ref, ids))

    blockers = []
    invariant = None
    for ref, ids in restricted:
        surviving = ids - plan.deletions[ref.child]
        for child_id in sorted(surviving, key=str):
            blockers.append(
                {"entity_type": entity_type(ref.child), "entity_id": str(child_id), "column": ref.column}
            )
            invariant = invariant or f"{entity_type(ref.child)}.{ref.column}.restrict"
    if blockers:
        raise ReferentialConflict(entity_type(model), entity_id, blockers, invariant=invariant)

    # Rows being deleted anyway don't need their columns cleared
    for (child, column), ids in plan.nullify.items():
        ids -= plan.deletions[child]
    return plan


async def apply_plan(session: AsyncSession, plan: DeletionPlan) -> None:
    """Execute a plan: nullify first, then delete children before parents."""
    for (child, column), ids in plan.nullify.items():
        if not ids:
            continue
        await session.execute(update(child).where(_pk_attr(child).in_(ids)).values({column: None}))

    if plan.deletions.get(ActivityEvent) and session.get_bind().dialect.name == "postgresql":
        # Lets the immutability trigger accept this transaction's cascade
        await session.execute(text("SET LOCAL percival.cascade = 'on'"))

    by_table = {model.__table__: model for model in plan.deletions}
    for table in reversed(SQLModel.metadata.sorted_tables):
        model = by_table.get(table)
        if model is None or not plan.deletions[model]:
            continue
        await session.execute(delete(model).where(_pk_attr(model).in_(plan.deletions[model])))

    await session.flush()
    log.info(
        "entity.cascade_applied",
        entity_type=entity_type(plan.root),
        entity_id=str(plan.root_id),
        **plan.summary(),
    )
