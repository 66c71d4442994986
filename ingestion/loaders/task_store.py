"""
Persist canonical tasks with idempotent upsert and source-scoped stale cleanup
"""

from typing import Dict, Iterable, List, Optional
from datetime import datetime
from sqlalchemy import select, delete, func, or_, case
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from core.exceptions import UpsertError
from models.base import TaskSource, TaskStatus, EPHEMERAL_SOURCES
from models.task import Task
from schemas.task import NormalizedTask, TaskCreate, TaskUpdate
import logging
import uuid

logger = logging.getLogger(__name__)

# Fields owned by the source; a sync only writes these
SOURCE_FIELDS = (
    "title",
    "description",
    "status",
    "priority",
    "due_date",
    "source_url",
    "category",
    "sla_breach_at",
    "urgency_score",
    "sla_remaining_ms",
    "attention_reasons",
    "raw_data",
)

# Recomputed from the clock on every sync; refreshed without counting as a change
CLOCK_DERIVED_FIELDS = {"sla_breach_at", "urgency_score", "sla_remaining_ms", "attention_reasons"}

# Statuses set by the user that a sync must not reopen
USER_STATUSES = {TaskStatus.DONE, TaskStatus.DISMISSED, TaskStatus.SNOOZED}

HIDDEN_STATUSES = (TaskStatus.DONE, TaskStatus.DISMISSED)


class TaskStore:
    """
    Task table access for the aggregator and the API.

    Ensures:
    - Upserting unchanged data leaves the row untouched (no updated_at bump)
    - Stale deletion only ever affects the named source
    - User-local state (pin, snooze, dismiss) survives re-syncs
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    # ========================================================================
    # Sync-side operations
    # ========================================================================

    async def upsert_from_source(self, task: NormalizedTask, defer_flush: bool = False) -> bool:
        """
        Insert or update a task by (source, source_id).

        Args:
            task: Validated NormalizedTask
            defer_flush: Skip the commit so a batch can be flushed once

        Returns:
            True if a row was inserted or changed
        """
        task_id = task.id
        now = datetime.utcnow()

        try:
            existing = await self.db.get(Task, task_id)

            if existing is None:
                values = {field: getattr(task, field) for field in SOURCE_FIELDS}
                self.db.add(Task(
                    id=task_id,
                    source=task.source,
                    source_id=task.source_id,
                    last_synced_at=now,
                    created_at=now,
                    updated_at=now,
                    **values
                ))
                changed = True
            else:
                changed = False
                for field in SOURCE_FIELDS:
                    value = getattr(task, field)
                    if field == "status" and existing.status in USER_STATUSES:
                        continue
                    if getattr(existing, field) != value:
                        setattr(existing, field, value)
                        if field not in CLOCK_DERIVED_FIELDS:
                            changed = True
                existing.last_synced_at = now
                if changed:
                    existing.updated_at = now

            if not defer_flush:
                await self.db.commit()
            else:
                await self.db.flush()

        except SQLAlchemyError as e:
            await self.db.rollback()
            raise UpsertError(
                "Failed to upsert task",
                context={"task_id": task_id, "source": task.source.value},
                original_exception=e
            )

        return changed

    async def delete_stale_by_source(
        self,
        source: TaskSource,
        fresh_ids: Iterable[str],
        allow_empty: bool = False,
        defer_flush: bool = False
    ) -> int:
        """
        Delete tasks of `source` whose id is not in fresh_ids.

        An empty fresh_ids set deletes nothing unless allow_empty is given.

        Returns:
            Number of tasks removed
        """
        fresh = set(fresh_ids)
        if not fresh and not allow_empty:
            return 0

        stmt = delete(Task).where(Task.source == source)
        if fresh:
            stmt = stmt.where(Task.id.not_in(list(fresh)))

        result = await self.db.execute(stmt)
        if not defer_flush:
            await self.db.commit()

        removed = result.rowcount or 0
        if removed:
            logger.info(f"Removed {removed} stale {source.value} tasks")
        return removed

    async def delete_all_by_source(self, source: TaskSource) -> int:
        result = await self.db.execute(delete(Task).where(Task.source == source))
        await self.db.commit()
        return result.rowcount or 0

    async def delete_transient_tasks(self) -> int:
        """Remove calendar and email tasks, which do not persist across restarts"""
        result = await self.db.execute(
            delete(Task).where(Task.source.in_(list(EPHEMERAL_SOURCES)))
        )
        await self.db.commit()
        removed = result.rowcount or 0
        if removed:
            logger.info(f"Cleared {removed} transient tasks")
        return removed

    async def flush(self) -> None:
        """Commit deferred work"""
        await self.db.commit()

    # ========================================================================
    # CRUD
    # ========================================================================

    async def get_all(
        self,
        status: Optional[TaskStatus] = None,
        source: Optional[TaskSource] = None,
        sources: Optional[Iterable[TaskSource]] = None,
        include_hidden: bool = False
    ) -> List[Task]:
        """
        List tasks ordered by pinned, priority, then due date (nulls last).

        Done/dismissed tasks and active snoozes are hidden unless a status
        filter is given or include_hidden is set.
        """
        query = select(Task)

        if status is not None:
            query = query.where(Task.status == status)
        elif not include_hidden:
            query = query.where(Task.status.not_in(HIDDEN_STATUSES))
            query = query.where(
                or_(Task.snoozed_until.is_(None), Task.snoozed_until <= datetime.utcnow())
            )

        if source is not None:
            query = query.where(Task.source == source)
        if sources is not None:
            query = query.where(Task.source.in_(list(sources)))

        query = query.order_by(
            Task.is_pinned.desc(),
            Task.priority.desc(),
            case((Task.due_date.is_(None), 1), else_=0),
            Task.due_date.asc(),
            Task.id.asc(),
        )

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_by_id(self, task_id: str) -> Optional[Task]:
        return await self.db.get(Task, task_id)

    async def create_manual(self, data: TaskCreate) -> Task:
        """Create a locally-owned task"""
        source_id = uuid.uuid4().hex
        now = datetime.utcnow()
        task = Task(
            id=Task.make_id(TaskSource.MANUAL, source_id),
            source=TaskSource.MANUAL,
            source_id=source_id,
            title=data.title,
            description=data.description,
            status=TaskStatus.OPEN,
            priority=data.priority,
            due_date=data.due_date,
            category=data.category,
            source_url=data.source_url,
            created_at=now,
            updated_at=now,
        )
        self.db.add(task)
        await self.db.commit()
        await self.db.refresh(task)
        logger.info(f"Created manual task {task.id}")
        return task

    async def update(self, task_id: str, data: TaskUpdate) -> Optional[Task]:
        """Apply a user edit (status change, pin toggle, snooze)"""
        task = await self.db.get(Task, task_id)
        if task is None:
            return None

        changes = data.model_dump(exclude_unset=True)
        for field, value in changes.items():
            setattr(task, field, value)

        if changes.get("status") == TaskStatus.SNOOZED and task.snoozed_until is None:
            logger.warning(f"Task {task_id} snoozed without snoozed_until")
        if "status" in changes and changes["status"] != TaskStatus.SNOOZED:
            task.snoozed_until = changes.get("snoozed_until")

        task.updated_at = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(task)
        return task

    async def delete(self, task_id: str) -> bool:
        task = await self.db.get(Task, task_id)
        if task is None:
            return False
        await self.db.delete(task)
        await self.db.commit()
        return True

    async def count_by_source(self) -> Dict[str, int]:
        result = await self.db.execute(
            select(Task.source, func.count(Task.id)).group_by(Task.source)
        )
        return {source.value: count for source, count in result.all()}
