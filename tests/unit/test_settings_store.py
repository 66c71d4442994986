"""
Unit tests for the global and per-user settings stores
"""

import pytest
from core.settings_store import SettingsStore, UserSettingsStore
from ingestion.aggregator import AggregatorState, interval_key
from models.base import TaskSource


@pytest.mark.asyncio
async def test_seed_defaults_keeps_existing_values(session_factory):
    store = SettingsStore(session_factory)
    await store.set("email_filter", "unread")

    await store.seed_defaults()
    await store.seed_defaults()

    values = await store.get_all()
    assert values["email_filter"] == "unread"
    assert values["refresh_interval_minutes"] == "5"
    assert await store.get("missing") is None


@pytest.mark.asyncio
async def test_set_notifies_listeners(session_factory):
    store = SettingsStore(session_factory)
    state = AggregatorState(default_interval_minutes=5)
    store.subscribe(state.apply_setting)

    await store.set(interval_key(TaskSource.PLANNER), "20")

    assert state.interval_for("planner") == 20


@pytest.mark.asyncio
async def test_failing_listener_does_not_block_write(session_factory):
    store = SettingsStore(session_factory)
    seen = []

    def broken(key, value):
        raise RuntimeError("listener bug")

    store.subscribe(broken)
    store.subscribe(lambda key, value: seen.append((key, value)))

    await store.set("pa_bridge_enabled", "false")

    assert await store.get("pa_bridge_enabled") == "false"
    assert seen == [("pa_bridge_enabled", "false")]


@pytest.mark.asyncio
async def test_user_settings_are_per_user(session_factory):
    store = UserSettingsStore(session_factory)

    await store.set(1, "msgraph_enabled", "true")
    await store.set(1, "msgraph_enabled", "false")
    await store.set(2, "issue_tracker_enabled", "true")

    assert await store.get(1, "msgraph_enabled") == "false"
    assert await store.get(2, "msgraph_enabled") is None
    assert await store.get_all(2) == {"issue_tracker_enabled": "true"}
