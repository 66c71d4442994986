"""
Unit tests for SLA and attention evaluation
"""

import pytest
from datetime import datetime, timedelta
from ingestion.transformers.attention import (
    AGENT_LAST_UPDATED_FIELD,
    AGENT_NEXT_UPDATE_FIELD,
    SLA_RESOLUTION_FIELD,
    compute_urgency_score,
    due_is_ok,
    evaluate_attention,
    get_sla_remaining_ms,
    is_overdue_update,
    is_resolution_sla_breached,
    is_sla_near_breach,
)

NOW = datetime(2024, 3, 14, 15, 0, 0)


def iso(moment: datetime) -> str:
    return moment.isoformat()


def sla(ongoing=None, completed=None):
    value = {}
    if ongoing is not None:
        value["ongoingCycle"] = ongoing
    if completed is not None:
        value["completedCycles"] = completed
    return {SLA_RESOLUTION_FIELD: value}


class TestIsOverdueUpdate:

    @pytest.mark.parametrize("fields", [
        {},
        {"created": iso(NOW - timedelta(days=3))},
        {"created": iso(NOW - timedelta(days=3)), AGENT_LAST_UPDATED_FIELD: iso(NOW - timedelta(days=2))},
        {AGENT_NEXT_UPDATE_FIELD: iso(NOW - timedelta(hours=1))},
    ])
    def test_waiting_on_requestor_is_never_overdue(self, fields):
        issue = {"fields": {"status": {"name": "Waiting on Requestor"}, **fields}}
        assert is_overdue_update(issue, NOW) is False

    def test_young_ticket_is_not_overdue(self):
        issue = {"fields": {
            "status": {"name": "Open"},
            "created": iso(NOW - timedelta(hours=2)),
            AGENT_LAST_UPDATED_FIELD: iso(NOW - timedelta(days=5)),
        }}
        assert is_overdue_update(issue, NOW) is False

    def test_created_yesterday_last_updated_yesterday_is_overdue(self):
        issue = {"fields": {
            "status": {"name": "Open"},
            "created": iso(NOW - timedelta(days=1)),
            AGENT_LAST_UPDATED_FIELD: iso(NOW - timedelta(days=1)),
        }}
        assert is_overdue_update(issue, NOW) is True

    def test_future_next_update_is_not_overdue(self):
        issue = {"fields": {
            "created": iso(NOW - timedelta(days=1)),
            AGENT_NEXT_UPDATE_FIELD: iso(NOW + timedelta(hours=1)),
        }}
        assert is_overdue_update(issue, NOW) is False

    def test_updated_earlier_today_is_not_overdue(self):
        issue = {"fields": {
            "created": iso(NOW - timedelta(days=1)),
            AGENT_LAST_UPDATED_FIELD: iso(NOW.replace(hour=8)),
        }}
        assert is_overdue_update(issue, NOW) is False

    def test_missing_created_counts_as_old(self):
        assert is_overdue_update({"fields": {"status": {"name": "Open"}}}, NOW) is True


class TestResolutionSla:

    def test_negative_remaining_is_breached(self):
        issue = sla(ongoing={"remainingTime": {"millis": -3600000}})
        assert is_resolution_sla_breached(issue) is True

    def test_positive_remaining_is_not_breached(self):
        issue = sla(ongoing={"breached": False, "remainingTime": {"millis": 5000}})
        assert is_resolution_sla_breached(issue) is False

    def test_missing_field_is_not_breached(self):
        assert is_resolution_sla_breached({"fields": {}}) is False

    def test_breached_completed_cycle(self):
        issue = sla(completed=[{"breached": False}, {"breached": True}])
        assert is_resolution_sla_breached(issue) is True

    def test_list_of_slas(self):
        issue = {SLA_RESOLUTION_FIELD: [{}, {"ongoingCycle": {"breached": True}}]}
        assert is_resolution_sla_breached(issue) is True

    def test_remaining_ms(self):
        assert get_sla_remaining_ms(sla(ongoing={"remainingTime": {"millis": 5000}})) == 5000
        assert get_sla_remaining_ms(sla(ongoing={"breached": True})) == -1
        assert get_sla_remaining_ms({}) is None

    def test_near_breach(self):
        assert is_sla_near_breach(sla(ongoing={"remainingTime": {"millis": 60 * 60 * 1000}})) is True
        assert is_sla_near_breach(sla(ongoing={"remainingTime": {"millis": 3 * 60 * 60 * 1000}})) is False
        assert is_sla_near_breach(sla(ongoing={"remainingTime": {"millis": -1}})) is False


class TestUrgencyScore:

    def test_all_factors_at_maximum(self):
        issue = {
            "fields": {
                "created": iso(NOW - timedelta(days=10)),
                AGENT_LAST_UPDATED_FIELD: iso(NOW - timedelta(days=2)),
            },
            **sla(ongoing={"breached": True, "remainingTime": {"millis": -1000}}),
        }
        # 30 (breached) + 25 (overdue) + 15 (priority 95) + 10 (7+ days old)
        assert compute_urgency_score(issue, priority=95, now=NOW) == 80

    def test_fresh_low_priority_ticket(self):
        issue = {"fields": {
            "created": iso(NOW - timedelta(hours=1)),
        }}
        assert compute_urgency_score(issue, priority=15, now=NOW) == 0

    def test_approaching_sla_scales_linearly(self):
        issue = {
            "fields": {"created": iso(NOW - timedelta(hours=1))},
            **sla(ongoing={"remainingTime": {"millis": 60 * 60 * 1000}}),
        }
        # half of the 2h window left -> 10, priority 55 -> 7.5 rounds to 8
        assert compute_urgency_score(issue, priority=55, now=NOW) == 18

    def test_priority_is_clamped(self):
        issue = {"fields": {"created": iso(NOW - timedelta(hours=1))}}
        assert compute_urgency_score(issue, priority=100, now=NOW) == 15
        assert compute_urgency_score(issue, priority=0, now=NOW) == 0


class TestDueIsOk:

    def test_yesterday_is_not_ok(self):
        issue = {"fields": {"duedate": (NOW - timedelta(days=1)).date().isoformat()}}
        assert due_is_ok(issue, NOW) is False

    def test_today_is_ok(self):
        issue = {"fields": {"duedate": NOW.date().isoformat()}}
        assert due_is_ok(issue, NOW) is True

    def test_missing_due_date_is_ok(self):
        assert due_is_ok({"fields": {"duedate": None}}, NOW) is True
        assert due_is_ok({}, NOW) is True

    def test_next_week_is_not_ok(self):
        issue = {"fields": {"duedate": (NOW + timedelta(days=7)).date().isoformat()}}
        assert due_is_ok(issue, NOW) is False


def test_evaluate_attention_collects_reasons():
    issue = {
        "fields": {
            "status": {"name": "Open"},
            "created": iso(NOW - timedelta(days=2)),
            AGENT_LAST_UPDATED_FIELD: iso(NOW - timedelta(days=1)),
        },
        **sla(ongoing={"breached": True, "remainingTime": {"millis": -5000}}),
    }

    result = evaluate_attention(issue, NOW, priority=50)

    assert result.needs_attention is True
    assert result.reasons == ["overdue_update", "sla_breached"]
    assert result.sla_remaining_ms == -5000
    assert result.urgency_score > 0


def test_evaluate_attention_quiet_ticket():
    issue = {"fields": {
        "status": {"name": "Waiting on Requestor"},
        "created": iso(NOW - timedelta(days=2)),
    }}

    result = evaluate_attention(issue, NOW)

    assert result.needs_attention is False
    assert result.reasons == []
    assert result.sla_remaining_ms is None
