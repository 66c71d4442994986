"""
Unit tests for per-user source visibility
"""

import pytest
from types import SimpleNamespace
from ingestion.source_filter import filter_tasks_by_allowed_sources, get_allowed_sources
from models.base import TaskSource


@pytest.mark.asyncio
async def test_anonymous_users_only_see_local_sources():
    allowed = await get_allowed_sources(None, None)
    assert allowed == {TaskSource.MANUAL, TaskSource.MILESTONE}


@pytest.mark.asyncio
async def test_user_setting_enables_integration(make_settings, make_user_settings):
    user_settings = make_user_settings({7: {"msgraph_enabled": "true"}})

    allowed = await get_allowed_sources(7, "user", user_settings, make_settings())

    assert TaskSource.CALENDAR in allowed
    assert TaskSource.EMAIL in allowed
    assert TaskSource.ISSUE_TRACKER not in allowed


@pytest.mark.asyncio
async def test_admin_falls_back_to_global_settings(make_settings, make_user_settings):
    settings = make_settings({"issue_tracker_enabled": "true"})

    admin = await get_allowed_sources(1, "admin", make_user_settings(), settings)
    member = await get_allowed_sources(2, "user", make_user_settings(), settings)

    assert TaskSource.ISSUE_TRACKER in admin
    assert TaskSource.ISSUE_TRACKER not in member


@pytest.mark.asyncio
async def test_user_value_overrides_global_for_admin(make_settings, make_user_settings):
    settings = make_settings({"issue_tracker_enabled": "true"})
    user_settings = make_user_settings({1: {"issue_tracker_enabled": "false"}})

    allowed = await get_allowed_sources(1, "admin", user_settings, settings)

    assert TaskSource.ISSUE_TRACKER not in allowed


@pytest.mark.asyncio
async def test_filter_tasks(make_user_settings):
    tasks = [
        SimpleNamespace(id="manual:1", source=TaskSource.MANUAL),
        SimpleNamespace(id="calendar:1", source="calendar"),
        SimpleNamespace(id="spreadsheet-board:1", source=TaskSource.SPREADSHEET_BOARD),
    ]
    user_settings = make_user_settings({3: {"spreadsheet_board_enabled": "true"}})

    visible = await filter_tasks_by_allowed_sources(tasks, 3, "user", user_settings)

    assert [t.id for t in visible] == ["manual:1", "spreadsheet-board:1"]
