"""
Entity store: the single write path for every domain record.

Each entity kind is served by an ``EntityHandler`` that knows how to build,
change and describe its rows. The store wraps those in one transaction per
operation and appends the matching activity events before committing, so a
kind cannot be registered without saying how its changes are audited.

Handles:
- create / update / delete / get / list for all registered kinds
- reference and uniqueness checks before writes
- routing of task status and assignee changes through the lifecycle engine
- translation of driver errors into the domain error taxonomy
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, ClassVar, Optional

import structlog
from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel, select

from percival.core.config import Settings, get_settings
from percival.core.errors import NotFound, ValidationError, from_pydantic, translate_db_error
from percival.models import (
    ActivityEvent,
    Attachment,
    Comment,
    Milestone,
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
from percival.models.base import utcnow
from percival.services import activity, lifecycle, time_ledger
from percival.services.relationships import (
    MODELS,
    apply_plan,
    plan_deletion,
    validate_references,
)
from percival_shared.schemas.common import ActivityAction, Actor, EntityKind, TaskStatus
from percival_shared.schemas.projects import (
    MilestoneCreate,
    MilestoneRead,
    MilestoneUpdate,
    ProjectCreate,
    ProjectMembershipCreate,
    ProjectMembershipRead,
    ProjectMembershipUpdate,
    ProjectRead,
    ProjectUpdate,
)
from percival_shared.schemas.tasks import (
    AttachmentCreate,
    AttachmentRead,
    CommentCreate,
    CommentRead,
    CommentUpdate,
    TagCreate,
    TagRead,
    TagUpdate,
    TaskCreate,
    TaskRead,
    TaskTagCreate,
    TaskTagRead,
    TaskUpdate,
)
from percival_shared.schemas.time_entries import TimeEntryCreate, TimeEntryRead, TimeEntryUpdate
from percival_shared.schemas.users import (
    TeamCreate,
    TeamMembershipCreate,
    TeamMembershipRead,
    TeamMembershipUpdate,
    TeamRead,
    TeamUpdate,
    UserCreate,
    UserRead,
    UserUpdate,
)

log = structlog.get_logger()

# (action, detail) pairs produced by a handler for the store to record
Events = list[tuple[ActivityAction, dict[str, Any]]]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _unwrap(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def apply_changes(entity: SQLModel, changes: dict[str, Any]) -> dict[str, list]:
    """Set changed attributes on ``entity``; returns {field: [old, new]} for those that moved."""
    diff = {}
    for key, value in changes.items():
        value = _unwrap(value)
        old = getattr(entity, key)
        if old != value:
            setattr(entity, key, value)
            diff[key] = [old, value]
    return diff


def _coerce_filter(model: type[SQLModel], key: str, value: Any) -> Any:
    """Convert a query-string filter to the column's Python type."""
    python_type = model.__table__.c[key].type.python_type
    try:
        return TypeAdapter(python_type).validate_python(value)
    except PydanticValidationError:
        raise ValidationError(f"invalid value for '{key}': {value!r}", invariant="entity.filter")


async def _task_project(session: AsyncSession, task_id: uuid.UUID) -> Optional[uuid.UUID]:
    task = await session.get(Task, task_id)
    return task.project_id if task else None


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


class EntityHandler(ABC):
    """How one entity kind is built, changed and described."""

    kind: ClassVar[EntityKind]
    model: ClassVar[type[SQLModel]]
    create_schema: ClassVar[type[BaseModel]]
    update_schema: ClassVar[Optional[type[BaseModel]]] = None
    read_schema: ClassVar[type[BaseModel]]
    create_action: ClassVar[ActivityAction] = ActivityAction.CREATED
    unique_together: ClassVar[tuple[tuple[str, ...], ...]] = ()
    redacted_fields: ClassVar[frozenset[str]] = frozenset()

    @abstractmethod
    def describe(self, entity: SQLModel) -> dict[str, Any]:
        """Summary stored in the activity detail for create and delete."""

    @abstractmethod
    async def project_of(self, store: "EntityStore", entity: SQLModel) -> Optional[uuid.UUID]:
        """Project an event about ``entity`` is filed under, if any."""

    async def build(self, store: "EntityStore", data: BaseModel, actor: Actor) -> SQLModel:
        return self.model(**{k: _unwrap(v) for k, v in data.model_dump().items()})

    async def validate(self, store: "EntityStore", entity: SQLModel, changed: Optional[set[str]]) -> None:
        """Kind-specific checks run after references resolve; ``changed`` is None on create."""
        await self._check_unique(store, entity, changed)

    def created_events(self, entity: SQLModel) -> Events:
        return [(self.create_action, self.describe(entity))]

    async def update(
        self, store: "EntityStore", entity: SQLModel, changes: dict[str, Any], actor: Actor
    ) -> Events:
        diff = apply_changes(entity, changes)
        if not diff:
            return []
        await validate_references(store.session, self.model, entity.model_dump(), diff)
        await self.validate(store, entity, set(diff))
        return [(ActivityAction.UPDATED, {"changes": self._redact(diff)})]

    def _redact(self, diff: dict[str, list]) -> dict[str, list]:
        return {k: (["***", "***"] if k in self.redacted_fields else v) for k, v in diff.items()}

    async def _check_unique(self, store: "EntityStore", entity: SQLModel, changed: Optional[set[str]]) -> None:
        for columns in self.unique_together:
            if changed is not None and not set(columns) & changed:
                continue
            stmt = select(self.model.id).where(
                *(getattr(self.model, c) == getattr(entity, c) for c in columns),
                self.model.id != entity.id,
            )
            with store.session.no_autoflush:
                clash = (await store.session.execute(stmt)).first()
            if clash is not None:
                values = ", ".join(f"{c}={getattr(entity, c)}" for c in columns)
                raise ValidationError(
                    f"{self.kind.value} with {values} already exists",
                    entity_type=self.kind.value,
                    entity_id=entity.id,
                    invariant=f"{self.kind.value}.unique({','.join(columns)})",
                )


class UserHandler(EntityHandler):
    kind = EntityKind.USER
    model = User
    create_schema = UserCreate
    update_schema = UserUpdate
    read_schema = UserRead
    unique_together = (("email",),)
    redacted_fields = frozenset({"password_hash"})

    def describe(self, entity: User) -> dict[str, Any]:
        return {"email": entity.email, "display_name": entity.display_name}

    async def project_of(self, store, entity):
        return None


class TeamHandler(EntityHandler):
    kind = EntityKind.TEAM
    model = Team
    create_schema = TeamCreate
    update_schema = TeamUpdate
    read_schema = TeamRead

    def describe(self, entity: Team) -> dict[str, Any]:
        return {"name": entity.name, "lead_id": entity.lead_id}

    async def project_of(self, store, entity):
        return None


class TeamMembershipHandler(EntityHandler):
    kind = EntityKind.TEAM_MEMBERSHIP
    model = TeamMembership
    create_schema = TeamMembershipCreate
    update_schema = TeamMembershipUpdate
    read_schema = TeamMembershipRead
    unique_together = (("team_id", "user_id"),)

    def describe(self, entity: TeamMembership) -> dict[str, Any]:
        return {"team_id": entity.team_id, "user_id": entity.user_id, "role": entity.role}

    async def project_of(self, store, entity):
        return None


class ProjectHandler(EntityHandler):
    kind = EntityKind.PROJECT
    model = Project
    create_schema = ProjectCreate
    update_schema = ProjectUpdate
    read_schema = ProjectRead

    def describe(self, entity: Project) -> dict[str, Any]:
        return {"name": entity.name, "status": entity.status, "owner_id": entity.owner_id}

    async def project_of(self, store, entity: Project):
        return entity.id

    async def build(self, store, data: ProjectCreate, actor: Actor) -> Project:
        project = await super().build(store, data, actor)
        if project.owner_id is None:
            project.owner_id = actor.id
        return project

    async def validate(self, store, entity: Project, changed) -> None:
        if entity.start_date and entity.end_date and entity.end_date < entity.start_date:
            raise ValidationError(
                f"end_date {entity.end_date} precedes start_date {entity.start_date}",
                entity_type="project",
                entity_id=entity.id,
                invariant="project.end_date_after_start_date",
            )
        await super().validate(store, entity, changed)


class ProjectMembershipHandler(EntityHandler):
    kind = EntityKind.PROJECT_MEMBERSHIP
    model = ProjectMembership
    create_schema = ProjectMembershipCreate
    update_schema = ProjectMembershipUpdate
    read_schema = ProjectMembershipRead
    unique_together = (("project_id", "user_id"),)

    def describe(self, entity: ProjectMembership) -> dict[str, Any]:
        return {"user_id": entity.user_id, "role": entity.role}

    async def project_of(self, store, entity: ProjectMembership):
        return entity.project_id


class MilestoneHandler(EntityHandler):
    kind = EntityKind.MILESTONE
    model = Milestone
    create_schema = MilestoneCreate
    update_schema = MilestoneUpdate
    read_schema = MilestoneRead

    def describe(self, entity: Milestone) -> dict[str, Any]:
        return {"name": entity.name, "due_date": entity.due_date}

    async def project_of(self, store, entity: Milestone):
        return entity.project_id


class TaskHandler(EntityHandler):
    kind = EntityKind.TASK
    model = Task
    create_schema = TaskCreate
    update_schema = TaskUpdate
    read_schema = TaskRead

    def describe(self, entity: Task) -> dict[str, Any]:
        return {"title": entity.title, "status": entity.status, "assignee_id": entity.assignee_id}

    async def project_of(self, store, entity: Task):
        return entity.project_id

    async def build(self, store, data: TaskCreate, actor: Actor) -> Task:
        task = await super().build(store, data, actor)
        if task.status == TaskStatus.DONE.value:
            task.completed_at = utcnow()
        return task

    def created_events(self, entity: Task) -> Events:
        events = super().created_events(entity)
        if entity.assignee_id is not None:
            change = lifecycle.AssigneeChange(from_assignee=None, to_assignee=entity.assignee_id)
            events.append((ActivityAction.ASSIGNED, change.detail()))
        return events

    async def update(self, store, entity: Task, changes, actor) -> Events:
        status = changes.pop("status", None)
        has_assignee = "assignee_id" in changes
        assignee_id = changes.pop("assignee_id", None)

        events = await super().update(store, entity, changes, actor)

        if has_assignee and assignee_id != entity.assignee_id:
            if assignee_id is not None:
                await validate_references(
                    store.session, Task, {"assignee_id": assignee_id}, {"assignee_id"}
                )
            change = lifecycle.change_assignee(entity, assignee_id)
            events.append((ActivityAction.ASSIGNED, change.detail()))

        if status is not None and TaskStatus(status) != TaskStatus(entity.status):
            change = await lifecycle.apply_transition(
                store.session, entity, TaskStatus(status), store.settings
            )
            events.append((ActivityAction.STATUS_CHANGED, change.detail()))
        return events


class CommentHandler(EntityHandler):
    kind = EntityKind.COMMENT
    model = Comment
    create_schema = CommentCreate
    update_schema = CommentUpdate
    read_schema = CommentRead
    create_action = ActivityAction.COMMENTED

    def describe(self, entity: Comment) -> dict[str, Any]:
        return {"task_id": entity.task_id, "excerpt": entity.content[:120]}

    async def project_of(self, store, entity: Comment):
        return await _task_project(store.session, entity.task_id)

    async def build(self, store, data: CommentCreate, actor: Actor) -> Comment:
        comment = await super().build(store, data, actor)
        if comment.author_id is None:
            comment.author_id = actor.id
        return comment


class TagHandler(EntityHandler):
    kind = EntityKind.TAG
    model = Tag
    create_schema = TagCreate
    update_schema = TagUpdate
    read_schema = TagRead
    unique_together = (("name",),)

    def describe(self, entity: Tag) -> dict[str, Any]:
        return {"name": entity.name, "color": entity.color}

    async def project_of(self, store, entity):
        return None


class TaskTagHandler(EntityHandler):
    kind = EntityKind.TASK_TAG
    model = TaskTag
    create_schema = TaskTagCreate
    read_schema = TaskTagRead
    unique_together = (("task_id", "tag_id"),)

    def describe(self, entity: TaskTag) -> dict[str, Any]:
        return {"task_id": entity.task_id, "tag_id": entity.tag_id}

    async def project_of(self, store, entity: TaskTag):
        return await _task_project(store.session, entity.task_id)


class AttachmentHandler(EntityHandler):
    kind = EntityKind.ATTACHMENT
    model = Attachment
    create_schema = AttachmentCreate
    read_schema = AttachmentRead

    def describe(self, entity: Attachment) -> dict[str, Any]:
        return {
            "task_id": entity.task_id,
            "original_filename": entity.original_filename,
            "size_bytes": entity.size_bytes,
        }

    async def project_of(self, store, entity: Attachment):
        return await _task_project(store.session, entity.task_id)

    async def build(self, store, data: AttachmentCreate, actor: Actor) -> Attachment:
        attachment = await super().build(store, data, actor)
        if attachment.uploaded_by is None:
            attachment.uploaded_by = actor.id
        if not attachment.filename:
            ext = _extension(attachment.original_filename)
            attachment.filename = f"{uuid.uuid4()}.{ext}" if ext else str(uuid.uuid4())
        return attachment

    async def validate(self, store, entity: Attachment, changed) -> None:
        settings = store.settings
        if entity.size_bytes > settings.attachment_max_bytes:
            raise ValidationError(
                f"attachment is {entity.size_bytes} bytes; the limit is {settings.attachment_max_bytes}",
                entity_type="attachment",
                entity_id=entity.id,
                invariant="attachment.size_bytes",
            )
        ext = _extension(entity.original_filename)
        if ext not in settings.attachment_allowed_extensions:
            raise ValidationError(
                f"file type '.{ext}' is not allowed" if ext else "file has no extension",
                entity_type="attachment",
                entity_id=entity.id,
                invariant="attachment.extension",
            )
        await super().validate(store, entity, changed)


def _extension(filename: str) -> str:
    return filename.rsplit(".", 1)[1].lower() if "." in filename else ""


class TimeEntryHandler(EntityHandler):
    kind = EntityKind.TIME_ENTRY
    model = TimeEntry
    create_schema = TimeEntryCreate
    update_schema = TimeEntryUpdate
    read_schema = TimeEntryRead

    def describe(self, entity: TimeEntry) -> dict[str, Any]:
        return {"task_id": entity.task_id, "hours": entity.hours, "work_date": entity.work_date}

    async def project_of(self, store, entity: TimeEntry):
        return await _task_project(store.session, entity.task_id)

    async def build(self, store, data: TimeEntryCreate, actor: Actor) -> TimeEntry:
        return time_ledger.build_entry(
            task_id=data.task_id,
            user_id=data.user_id or actor.id,
            hours=data.hours,
            work_date=data.work_date,
            description=data.description,
        )


HANDLERS: dict[EntityKind, EntityHandler] = {
    handler.kind: handler
    for handler in (
        UserHandler(),
        TeamHandler(),
        TeamMembershipHandler(),
        ProjectHandler(),
        ProjectMembershipHandler(),
        MilestoneHandler(),
        TaskHandler(),
        CommentHandler(),
        TagHandler(),
        TaskTagHandler(),
        AttachmentHandler(),
        TimeEntryHandler(),
    )
}

if set(HANDLERS) != set(MODELS):
    missing = sorted(kind.value for kind in set(MODELS) - set(HANDLERS))
    raise RuntimeError(f"entity kinds without a handler: {missing}")


def handler_for(kind: EntityKind | str) -> EntityHandler:
    try:
        return HANDLERS[EntityKind(kind)]
    except ValueError:
        raise ValidationError(f"unknown entity kind '{kind}'", invariant="entity.kind")


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class EntityStore:
    """One unit of work over a session. Not shared between requests."""

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()
        self._pending: list[ActivityEvent] = []
        self.committed: list[ActivityEvent] = []

    @asynccontextmanager
    async def transaction(self, entity_type: Optional[str] = None, entity_id: Any = None):
        """Commit everything done inside the block, or nothing."""
        try:
            yield
            await self.session.commit()
        except DBAPIError as exc:
            await self.session.rollback()
            self._pending.clear()
            raise translate_db_error(exc, entity_type, entity_id) from exc
        except Exception:
            await self.session.rollback()
            self._pending.clear()
            raise
        self.committed.extend(self._pending)
        self._pending.clear()

    async def record(
        self,
        actor_id: Optional[uuid.UUID],
        project_id: Optional[uuid.UUID],
        action: ActivityAction,
        entity_type: str,
        entity_id: uuid.UUID,
        detail: Optional[dict[str, Any]] = None,
    ) -> ActivityEvent:
        event = await activity.append(
            self.session,
            actor_id=actor_id,
            project_id=project_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            detail=detail,
        )
        self._pending.append(event)
        return event

    async def require_actor(self, actor: Actor, *, allow_unknown: bool = False) -> Optional[uuid.UUID]:
        """The actor's user id for event attribution.

        Returns None for an unknown actor when ``allow_unknown`` is set
        (self-registration); otherwise an unknown actor is NotFound.
        """
        if await self.session.get(User, actor.id) is not None:
            return actor.id
        if allow_unknown:
            return None
        raise NotFound("user", actor.id, invariant="actor.exists")

    def _parse(self, schema: type[BaseModel], fields: dict[str, Any], kind: EntityKind, entity_id=None):
        try:
            return schema.model_validate(fields)
        except PydanticValidationError as exc:
            raise from_pydantic(exc, kind.value, entity_id) from exc

    async def load(self, kind: EntityKind | str, entity_id: uuid.UUID, *, for_update: bool = False) -> SQLModel:
        """Fetch a row or raise NotFound.

        ``for_update`` takes a row lock and re-reads the row even if the
        session already holds it, so a write always starts from the
        committed state.
        """
        handler = handler_for(kind)
        if for_update:
            result = await self.session.execute(
                select(handler.model)
                .where(handler.model.id == entity_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            entity = result.scalar_one_or_none()
        else:
            entity = await self.session.get(handler.model, entity_id)
        if entity is None:
            raise NotFound(handler.kind.value, entity_id)
        return entity

    # -- reads --------------------------------------------------------------

    async def get(self, kind: EntityKind | str, entity_id: uuid.UUID) -> SQLModel:
        return await self.load(kind, entity_id)

    async def list(
        self,
        kind: EntityKind | str,
        filters: Optional[dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[SQLModel]:
        handler = handler_for(kind)
        model = handler.model
        stmt = select(model)
        for key, value in (filters or {}).items():
            if key not in model.__table__.c:
                raise ValidationError(
                    f"cannot filter {handler.kind.value} by '{key}'",
                    entity_type=handler.kind.value,
                    invariant="entity.filter",
                )
            stmt = stmt.where(getattr(model, key) == _coerce_filter(model, key, value))
        stmt = stmt.order_by(model.created_at, model.id).offset(offset).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # -- writes -------------------------------------------------------------

    async def create(self, kind: EntityKind | str, fields: dict[str, Any], actor: Actor) -> SQLModel:
        handler = handler_for(kind)
        data = self._parse(handler.create_schema, fields, handler.kind)
        async with self.transaction(handler.kind.value):
            actor_id = await self.require_actor(actor, allow_unknown=handler.kind is EntityKind.USER)
            entity = await handler.build(self, data, actor)
            await validate_references(self.session, handler.model, entity.model_dump())
            await handler.validate(self, entity, None)
            self.session.add(entity)
            await self.session.flush()

            project_id = await handler.project_of(self, entity)
            for action, detail in handler.created_events(entity):
                await self.record(actor_id, project_id, action, handler.kind.value, entity.id, detail)
        log.info("entity.created", kind=handler.kind.value, entity_id=str(entity.id))
        return entity

    async def update(
        self, kind: EntityKind | str, entity_id: uuid.UUID, fields: dict[str, Any], actor: Actor
    ) -> SQLModel:
        handler = handler_for(kind)
        if handler.update_schema is None:
            raise ValidationError(
                f"{handler.kind.value} records cannot be updated",
                entity_type=handler.kind.value,
                entity_id=entity_id,
                invariant=f"{handler.kind.value}.immutable",
            )
        data = self._parse(handler.update_schema, fields, handler.kind, entity_id)
        changes = data.model_dump(exclude_unset=True)
        async with self.transaction(handler.kind.value, entity_id):
            actor_id = await self.require_actor(actor)
            entity = await self.load(handler.kind, entity_id, for_update=True)
            events = await handler.update(self, entity, changes, actor)
            if events:
                entity.updated_at = utcnow()
                self.session.add(entity)
                await self.session.flush()
                project_id = await handler.project_of(self, entity)
                for action, detail in events:
                    await self.record(actor_id, project_id, action, handler.kind.value, entity.id, detail)
        if events:
            log.info("entity.updated", kind=handler.kind.value, entity_id=str(entity_id))
        return entity

    async def delete(self, kind: EntityKind | str, entity_id: uuid.UUID, actor: Actor) -> None:
        handler = handler_for(kind)
        async with self.transaction(handler.kind.value, entity_id):
            actor_id = await self.require_actor(actor)
            entity = await self.load(handler.kind, entity_id, for_update=True)
            detail = handler.describe(entity)
            # Events about a deleted project would be cascaded with it
            project_id = None if handler.kind is EntityKind.PROJECT else await handler.project_of(self, entity)
            if handler.kind is EntityKind.USER and entity_id == actor_id:
                actor_id = None

            plan = await plan_deletion(self.session, handler.model, entity_id)
            await apply_plan(self.session, plan)
            detail["cascade"] = plan.summary()
            await self.record(actor_id, project_id, ActivityAction.DELETED, handler.kind.value, entity_id, detail)
        log.info("entity.deleted", kind=handler.kind.value, entity_id=str(entity_id))

    # -- task lifecycle -----------------------------------------------------

    async def transition(
        self,
        task_id: uuid.UUID,
        to_status: TaskStatus,
        actor: Actor,
        actual_hours: Optional[float] = None,
    ) -> Task:
        async with self.transaction("task", task_id):
            actor_id = await self.require_actor(actor)
            task = await self.load(EntityKind.TASK, task_id, for_update=True)
            change = await lifecycle.apply_transition(
                self.session, task, to_status, self.settings, actual_hours=actual_hours
            )
            await self._touch_task(task, actor_id, ActivityAction.STATUS_CHANGED, change.detail())
        return task

    async def unblock(self, task_id: uuid.UUID, actor: Actor) -> Task:
        async with self.transaction("task", task_id):
            actor_id = await self.require_actor(actor)
            task = await self.load(EntityKind.TASK, task_id, for_update=True)
            target = lifecycle.unblock_target(task)
            change = await lifecycle.apply_transition(self.session, task, target, self.settings)
            await self._touch_task(task, actor_id, ActivityAction.STATUS_CHANGED, change.detail())
        return task

    async def assign(self, task_id: uuid.UUID, assignee_id: Optional[uuid.UUID], actor: Actor) -> Task:
        async with self.transaction("task", task_id):
            actor_id = await self.require_actor(actor)
            task = await self.load(EntityKind.TASK, task_id, for_update=True)
            if assignee_id is not None:
                await validate_references(self.session, Task, {"assignee_id": assignee_id})
            change = lifecycle.change_assignee(task, assignee_id)
            if change is not None:
                await self._touch_task(task, actor_id, ActivityAction.ASSIGNED, change.detail())
        return task

    async def _touch_task(
        self, task: Task, actor_id: Optional[uuid.UUID], action: ActivityAction, detail: dict[str, Any]
    ) -> None:
        task.updated_at = utcnow()
        self.session.add(task)
        await self.session.flush()
        await self.record(actor_id, task.project_id, action, "task", task.id, detail)

    # -- task tags ----------------------------------------------------------

    async def set_task_tags(self, task_id: uuid.UUID, tag_ids: list[uuid.UUID], actor: Actor) -> list[Tag]:
        """Replace a task's tag set. Every tag must exist or nothing changes.

        Each added or removed link records its own created/deleted event.
        """
        wanted = list(dict.fromkeys(tag_ids))
        handler = handler_for(EntityKind.TASK_TAG)
        async with self.transaction("task", task_id):
            actor_id = await self.require_actor(actor)
            task = await self.load(EntityKind.TASK, task_id, for_update=True)
            for tag_id in wanted:
                await validate_references(self.session, TaskTag, {"tag_id": tag_id})

            result = await self.session.execute(select(TaskTag).where(TaskTag.task_id == task.id))
            current = {link.tag_id: link for link in result.scalars().all()}

            for tag_id, link in current.items():
                if tag_id not in wanted:
                    detail = handler.describe(link)
                    await self.session.delete(link)
                    await self.session.flush()
                    await self.record(
                        actor_id, task.project_id, ActivityAction.DELETED, "task_tag", link.id, detail
                    )
            for tag_id in wanted:
                if tag_id not in current:
                    link = TaskTag(task_id=task.id, tag_id=tag_id)
                    self.session.add(link)
                    await self.session.flush()
                    await self.record(
                        actor_id, task.project_id, ActivityAction.CREATED, "task_tag", link.id, handler.describe(link)
                    )

            result = await self.session.execute(
                select(Tag)
                .join(TaskTag, TaskTag.tag_id == Tag.id)
                .where(TaskTag.task_id == task.id)
                .order_by(Tag.name)
            )
            tags = list(result.scalars().all())
        log.info("task.tags_set", task_id=str(task_id), tags=len(tags))
        return tags
