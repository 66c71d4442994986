"""
Unit tests for the task store
"""

import pytest
from datetime import datetime, timedelta
from ingestion.loaders.task_store import TaskStore
from ingestion.transformers.normalizer import SourceNormalizer
from models.base import TaskSource, TaskStatus
from models.task import Task
from schemas.task import NormalizedTask, TaskCreate, TaskUpdate


def make_task(source=TaskSource.CALENDAR, source_id="evt-1", **overrides):
    values = {"title": f"Task {source_id}", "priority": 50}
    values.update(overrides)
    return NormalizedTask(source=source, source_id=source_id, **values)


class TestUpsert:

    @pytest.mark.asyncio
    async def test_insert_then_identical_upsert_is_noop(self, db_session):
        store = TaskStore(db_session)

        assert await store.upsert_from_source(make_task()) is True
        first = await store.get_by_id("calendar:evt-1")
        first_updated_at = first.updated_at

        assert await store.upsert_from_source(make_task()) is False
        second = await store.get_by_id("calendar:evt-1")

        assert second.title == "Task evt-1"
        assert second.updated_at == first_updated_at
        assert len(await store.get_all()) == 1

    @pytest.mark.asyncio
    async def test_resync_of_unchanged_issue_is_noop(self, db_session):
        issue = {
            "key": "NT-7",
            "fields": {
                "summary": "SLA ticket",
                "status": {"name": "Open"},
                "customfield_14048": {"ongoingCycle": {"remainingTime": {"millis": 60 * 60 * 1000}}},
            },
        }
        store = TaskStore(db_session)
        clock = {"now": datetime(2024, 1, 12, 9, 0, 0)}
        normalizer = SourceNormalizer(now_provider=lambda: clock["now"])

        await store.upsert_from_source(normalizer.normalize(issue, TaskSource.ISSUE_TRACKER))
        first_updated_at = (await store.get_by_id("issue-tracker:NT-7")).updated_at

        clock["now"] += timedelta(minutes=5)
        changed = await store.upsert_from_source(normalizer.normalize(issue, TaskSource.ISSUE_TRACKER))

        task = await store.get_by_id("issue-tracker:NT-7")
        assert changed is False
        assert task.updated_at == first_updated_at
        assert task.sla_breach_at == "2024-01-12T10:05:00"

    @pytest.mark.asyncio
    async def test_changed_fields_are_written(self, db_session):
        store = TaskStore(db_session)
        await store.upsert_from_source(make_task())

        changed = await store.upsert_from_source(make_task(title="Renamed", priority=90))

        task = await store.get_by_id("calendar:evt-1")
        assert changed is True
        assert task.title == "Renamed"
        assert task.priority == 90

    @pytest.mark.asyncio
    async def test_user_status_and_pin_survive_sync(self, db_session):
        store = TaskStore(db_session)
        await store.upsert_from_source(make_task())
        await store.update("calendar:evt-1", TaskUpdate(status=TaskStatus.DISMISSED, is_pinned=True))

        await store.upsert_from_source(make_task(title="Updated upstream"))

        task = await store.get_by_id("calendar:evt-1")
        assert task.status == TaskStatus.DISMISSED
        assert task.is_pinned is True
        assert task.title == "Updated upstream"

    @pytest.mark.asyncio
    async def test_deferred_upserts_flush_once(self, db_session):
        store = TaskStore(db_session)

        await store.upsert_from_source(make_task(source_id="a"), defer_flush=True)
        await store.upsert_from_source(make_task(source_id="a", title="Second copy"), defer_flush=True)
        await store.flush()

        tasks = await store.get_all()
        assert len(tasks) == 1
        assert tasks[0].title == "Second copy"


class TestStaleDeletion:

    @pytest.mark.asyncio
    async def test_only_named_source_is_affected(self, db_session):
        store = TaskStore(db_session)
        for source_id in ("a", "b", "c"):
            await store.upsert_from_source(make_task(TaskSource.CALENDAR, source_id))
            await store.upsert_from_source(make_task(TaskSource.PLANNER, source_id))

        removed = await store.delete_stale_by_source(TaskSource.CALENDAR, {"calendar:a"})

        assert removed == 2
        counts = await store.count_by_source()
        assert counts == {"calendar": 1, "planner": 3}

    @pytest.mark.asyncio
    async def test_empty_fresh_set_deletes_nothing_by_default(self, db_session):
        store = TaskStore(db_session)
        await store.upsert_from_source(make_task())

        assert await store.delete_stale_by_source(TaskSource.CALENDAR, []) == 0
        assert await store.delete_stale_by_source(TaskSource.CALENDAR, [], allow_empty=True) == 1

    @pytest.mark.asyncio
    async def test_delete_transient_tasks(self, db_session):
        store = TaskStore(db_session)
        await store.upsert_from_source(make_task(TaskSource.CALENDAR, "a"))
        await store.upsert_from_source(make_task(TaskSource.EMAIL, "b"))
        await store.upsert_from_source(make_task(TaskSource.TODO, "c"))

        assert await store.delete_transient_tasks() == 2
        assert [t.source for t in await store.get_all()] == [TaskSource.TODO]


class TestCrud:

    @pytest.mark.asyncio
    async def test_create_manual(self, db_session):
        store = TaskStore(db_session)

        task = await store.create_manual(TaskCreate(title="  Call customer  ", priority=70))

        assert task.source == TaskSource.MANUAL
        assert task.id == f"manual:{task.source_id}"
        assert task.title == "Call customer"
        assert task.status == TaskStatus.OPEN

    @pytest.mark.asyncio
    async def test_get_all_ordering(self, db_session):
        store = TaskStore(db_session)
        await store.upsert_from_source(make_task(source_id="low", priority=10))
        await store.upsert_from_source(make_task(source_id="high-late", priority=80, due_date="2024-02-01"))
        await store.upsert_from_source(make_task(source_id="high-early", priority=80, due_date="2024-01-01"))
        await store.upsert_from_source(make_task(source_id="high-none", priority=80))
        await store.update("calendar:low", TaskUpdate(is_pinned=True))

        ids = [t.source_id for t in await store.get_all()]

        assert ids == ["low", "high-early", "high-late", "high-none"]

    @pytest.mark.asyncio
    async def test_hidden_statuses(self, db_session):
        store = TaskStore(db_session)
        await store.upsert_from_source(make_task(source_id="open"))
        await store.upsert_from_source(make_task(source_id="done"))
        await store.upsert_from_source(make_task(source_id="later"))
        await store.update("calendar:done", TaskUpdate(status=TaskStatus.DONE))
        await store.update(
            "calendar:later",
            TaskUpdate(status=TaskStatus.SNOOZED, snoozed_until=datetime.utcnow() + timedelta(days=1))
        )

        assert [t.source_id for t in await store.get_all()] == ["open"]
        assert len(await store.get_all(include_hidden=True)) == 3
        assert [t.source_id for t in await store.get_all(status=TaskStatus.DONE)] == ["done"]

    @pytest.mark.asyncio
    async def test_filter_by_sources(self, db_session):
        store = TaskStore(db_session)
        await store.upsert_from_source(make_task(TaskSource.CALENDAR, "a"))
        await store.upsert_from_source(make_task(TaskSource.ISSUE_TRACKER, "NT-1"))

        tasks = await store.get_all(sources={TaskSource.ISSUE_TRACKER})

        assert [t.id for t in tasks] == ["issue-tracker:NT-1"]

    @pytest.mark.asyncio
    async def test_update_and_delete_missing(self, db_session):
        store = TaskStore(db_session)

        assert await store.update("manual:nope", TaskUpdate(title="x")) is None
        assert await store.delete("manual:nope") is False

    @pytest.mark.asyncio
    async def test_delete(self, db_session):
        store = TaskStore(db_session)
        await store.upsert_from_source(make_task())

        assert await store.delete("calendar:evt-1") is True
        assert await db_session.get(Task, "calendar:evt-1") is None
