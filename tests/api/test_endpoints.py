"""
API endpoint tests
"""

import httpx
import pytest
import pytest_asyncio
from datetime import datetime, timedelta
from api.main import app
from api.dependencies import get_aggregator, get_db, get_issue_tracker, get_settings_store
from core.exceptions import NetworkError
from core.settings_store import SettingsStore
from ingestion.aggregator import TaskAggregator, interval_key
from ingestion.base import SourceClient
from ingestion.transformers.attention import AGENT_LAST_UPDATED_FIELD
from models.base import TaskSource


class StaticSource(SourceClient):
    def __init__(self, items=None, error=None):
        self.items = items or []
        self.error = error

    async def fetch(self, source_config=None):
        if self.error:
            raise self.error
        return self.items


@pytest.fixture
def aggregator(session_factory):
    return TaskAggregator(session_factory, {
        TaskSource.TODO: StaticSource([{"id": "t1", "title": "Renew certificate", "status": "notStarted"}]),
        TaskSource.PLANNER: StaticSource(error=NetworkError("planner unreachable")),
    })


@pytest_asyncio.fixture
async def client(session_factory, aggregator):
    """HTTP client against the app with database and services overridden"""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_aggregator] = lambda: aggregator
    app.dependency_overrides[get_issue_tracker] = lambda: None

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


class TestHealth:

    @pytest.mark.asyncio
    async def test_healthy_before_any_sync(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database_connected"] is True
        assert data["sources"] == []
        assert data["scheduler_running"] is False
        assert "X-Request-ID" in response.headers

    @pytest.mark.asyncio
    async def test_degraded_after_partial_failure(self, client):
        await client.post("/tasks/sync")

        data = (await client.get("/health")).json()

        assert data["status"] == "degraded"
        assert data["successful_sources"] == 1
        assert data["failed_sources"] == 1
        planner = [s for s in data["sources"] if s["source"] == "planner"][0]
        assert planner["status"] == "error"
        assert "planner unreachable" in planner["error_message"]

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client):
        response = await client.get("/", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"


class TestTasks:

    @pytest.mark.asyncio
    async def test_manual_task_crud(self, client):
        created = await client.post("/tasks", json={"title": "Call Acme", "priority": 70})
        assert created.status_code == 201
        task_id = created.json()["id"]
        assert task_id.startswith("manual:")

        fetched = await client.get(f"/tasks/{task_id}")
        assert fetched.json()["title"] == "Call Acme"

        patched = await client.patch(f"/tasks/{task_id}", json={"status": "done", "is_pinned": True})
        assert patched.status_code == 200
        assert patched.json()["status"] == "done"

        visible = (await client.get("/tasks")).json()
        assert visible["total"] == 0
        hidden = (await client.get("/tasks", params={"include_hidden": "true"})).json()
        assert [t["id"] for t in hidden["tasks"]] == [task_id]

        assert (await client.delete(f"/tasks/{task_id}")).status_code == 204
        assert (await client.get(f"/tasks/{task_id}")).status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_body_is_400(self, client):
        response = await client.post("/tasks", json={"title": "   "})

        assert response.status_code == 400
        assert response.json()["error"] == "Validation failed"

    @pytest.mark.asyncio
    async def test_sync_all_reports_failures(self, client):
        response = await client.post("/tasks/sync")

        assert response.status_code == 200
        data = response.json()
        assert data["total_tasks"] == 1
        assert data["failed_sources"] == ["planner"]

        tasks = (await client.get("/tasks", params={"source": "todo"})).json()["tasks"]
        assert [t["id"] for t in tasks] == ["todo:t1"]

    @pytest.mark.asyncio
    async def test_sync_unknown_source(self, client):
        assert (await client.post("/tasks/sync/nope")).status_code == 404

    @pytest.mark.asyncio
    async def test_sync_one_source(self, client):
        response = await client.post("/tasks/sync/todo")

        assert response.status_code == 200
        assert response.json()["count"] == 1

    @pytest.mark.asyncio
    async def test_anonymous_list_hides_integrations(self, client):
        await client.post("/tasks/sync/todo")
        await client.post("/tasks", json={"title": "Local"})

        everything = (await client.get("/tasks")).json()
        as_user = (await client.get("/tasks", headers={"X-User-Id": "4"})).json()

        assert everything["total"] == 2
        assert [t["source"] for t in as_user["tasks"]] == ["manual"]

    @pytest.mark.asyncio
    async def test_attention(self, client):
        now = datetime(2024, 3, 14, 15, 0, 0)
        issue = {"fields": {
            "status": {"name": "Open"},
            "created": (now - timedelta(days=1)).isoformat(),
            AGENT_LAST_UPDATED_FIELD: (now - timedelta(days=1)).isoformat(),
        }}

        response = await client.post(
            "/tasks/attention", json={"issue": issue, "now": now.isoformat(), "priority": 60}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["needs_attention"] is True
        assert data["reasons"]


class TestIngest:

    @pytest.mark.asyncio
    async def test_ingest(self, client):
        response = await client.post("/ingest", json={
            "source": "calendar",
            "tasks": [{"id": "e1", "subject": "Standup", "start": {"dateTime": "2024-01-15T09:00:00"}}],
        })

        assert response.status_code == 200
        assert response.json()["count"] == 1

    @pytest.mark.asyncio
    async def test_manual_source_rejected(self, client):
        response = await client.post("/ingest", json={"source": "manual", "tasks": []})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_source_is_validation_error(self, client):
        response = await client.post("/ingest", json={"source": "fax", "tasks": []})
        assert response.status_code == 400


ONBOARDING = {
    "schemaVersion": 1,
    "onboardingRef": "BYM0100",
    "saleType": "BYM",
    "customer": {"name": "Initech"},
    "targetDueDate": "2024-07-01",
}


class TestOnboarding:

    @pytest.mark.asyncio
    async def test_dry_run(self, client, bym_matrix):
        response = await client.post("/onboarding/create-tickets", params={"dry_run": "true"}, json=ONBOARDING)

        assert response.status_code == 200
        data = response.json()
        assert data["dry_run"] is True
        assert data["parent_key"] == "(dry-run)"
        assert len(data["details"]["child_summaries"]) == 2

    @pytest.mark.asyncio
    async def test_live_run_without_tracker(self, client, bym_matrix):
        response = await client.post("/onboarding/create-tickets", json=ONBOARDING)
        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_unknown_sale_type(self, client, bym_matrix):
        payload = dict(ONBOARDING, saleType="Nope")
        response = await client.post("/onboarding/create-tickets", params={"dry_run": "true"}, json=payload)

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_invalid_payload(self, client):
        payload = dict(ONBOARDING, schemaVersion=2)
        response = await client.post("/onboarding/create-tickets", params={"dry_run": "true"}, json=payload)

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_status_and_next_ref(self, client):
        assert (await client.get("/onboarding/status/BYM0100")).status_code == 404

        data = (await client.get("/onboarding/next-ref")).json()

        assert data == {"prefix": "BYM", "next_number": 1, "suggested_ref": "BYM0001"}
        assert (await client.get("/onboarding/runs")).json() == []


class TestOnboardingConfig:

    @pytest.mark.asyncio
    async def test_resolve(self, client, bym_matrix):
        data = (await client.get("/onboarding-config/resolve/BYM")).json()

        assert [g["ticket_group_name"] for g in data] == ["Platform", "Payments"]
        assert data[0]["capabilities"][0]["items"][1] == {"name": "Custom domain", "item_type": "bolt_on"}

    @pytest.mark.asyncio
    async def test_update_matrix(self, client, bym_matrix):
        update = {
            "sale_type_id": bym_matrix["sale_types"]["Upgrade"],
            "capability_id": bym_matrix["capabilities"]["Web Portal"],
            "enabled": True,
        }

        response = await client.put("/onboarding-config/matrix", json={"updates": [update]})

        assert response.status_code == 200
        assert len(response.json()["cells"]) == 6
        resolved = (await client.get("/onboarding-config/resolve/Upgrade")).json()
        assert [g["ticket_group_name"] for g in resolved] == ["Platform", "Reporting"]


class TestSettings:

    @pytest.mark.asyncio
    async def test_interval_change_reaches_aggregator(self, client, session_factory, aggregator):
        store = SettingsStore(session_factory)
        store.subscribe(aggregator.state.apply_setting)
        app.dependency_overrides[get_settings_store] = lambda: store
        key = interval_key(TaskSource.TODO)

        response = await client.put(
            f"/settings/{key}", json={"value": "15"}, headers={"X-User-Id": "1", "X-User-Role": "admin"}
        )

        assert response.status_code == 200
        assert response.json() == {"key": key, "value": "15"}
        assert aggregator.state.interval_for("todo") == 15
        assert (await client.get("/settings")).json()[key] == "15"

    @pytest.mark.asyncio
    async def test_update_requires_editor_role(self, client, session_factory):
        app.dependency_overrides[get_settings_store] = lambda: SettingsStore(session_factory)

        anonymous = await client.put("/settings/email_filter", json={"value": "all"})
        viewer = await client.put(
            "/settings/email_filter", json={"value": "all"}, headers={"X-User-Id": "2"}
        )

        assert anonymous.status_code == 403
        assert viewer.status_code == 403

    @pytest.mark.asyncio
    async def test_settings_unavailable_before_startup(self, client):
        assert (await client.get("/settings")).status_code == 503
