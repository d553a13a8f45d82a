"""Tests for EscalationStateService with a memory store and a fake clock."""

from __future__ import annotations

from datetime import timedelta

import pytest

from claimassist.core.exceptions import (
    EscalationNotFoundError,
    InvalidActionError,
    InvalidLevelError,
    InvalidTransitionError,
)
from claimassist.escalation.assignment import RoundRobinAssigner
from claimassist.escalation.levels import EscalationLevelTable, load_escalation_table
from claimassist.escalation.service import TIMEOUT_REASON, EscalationStateService
from claimassist.models.escalation import EscalationRequest, EscalationState, Urgency
from tests.fakes import FakeClock, MemoryEscalationStore


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryEscalationStore()


@pytest.fixture
def service(store, clock):
    return EscalationStateService(store=store, assigner=RoundRobinAssigner(), clock=clock)


def _create(service, urgency=None, claim_id="CLM-1", reason="Customer asked for help"):
    return service.create_escalation(
        EscalationRequest(claim_id=claim_id, reason=reason, urgency=urgency)
    )


class TestCreateEscalation:
    @pytest.mark.parametrize(
        ("urgency", "level"),
        [(Urgency.CRITICAL, 4), (Urgency.HIGH, 3), (Urgency.MEDIUM, 2), (Urgency.LOW, 2), (None, 2)],
    )
    def test_urgency_maps_to_level(self, service, urgency, level):
        assert _create(service, urgency).current_level == level

    def test_critical_sets_deadline_from_sla(self, service, clock):
        status = _create(service, Urgency.CRITICAL)
        assert status.confirmation_deadline == clock.now + timedelta(hours=1)
        assert status.estimated_response_time == 1
        assert status.status == EscalationState.PENDING

    def test_assigns_agent_from_level_pool(self, service):
        status = _create(service, Urgency.HIGH)
        assert status.assigned_agent == "agent_senior_001"

    def test_persists_single_history_entry(self, service, store):
        _create(service)
        stored = store.get_escalation("CLM-1")
        assert len(stored.escalation_history) == 1
        assert stored.escalation_history[0].level == 2
        assert stored.escalation_history[0].reason == "Customer asked for help"

    def test_new_cycle_keeps_history(self, service, clock):
        first = _create(service)
        service.process_confirmation("CLM-1", first.assigned_agent, "resolve")
        clock.advance(hours=1)
        second = _create(service, Urgency.HIGH, reason="Reopened")

        assert second.status == EscalationState.PENDING
        assert second.current_level == 3
        assert [e.level for e in second.escalation_history] == [2, 2, 3]

    def test_level_missing_from_table(self, store, clock):
        table = EscalationLevelTable.model_validate({
            "levels": [
                {"level": 1, "name": "Auto", "max_response_time": 24, "confirmation_required": False},
                {"level": 2, "name": "Review", "max_response_time": 4, "confirmation_required": True},
            ]
        })
        service = EscalationStateService(store=store, table=table, clock=clock)
        with pytest.raises(InvalidLevelError):
            _create(service, Urgency.CRITICAL)

    def test_trigger_agent_escalation(self, service):
        assert service.trigger_agent_escalation("CLM-9", "Fraud ring").current_level == 3
        assert service.trigger_agent_escalation("CLM-8", "Bad", Urgency.CRITICAL).current_level == 4


class TestConfirmationExpiry:
    def test_round_trip_with_clock(self, service, clock):
        status = _create(service)
        assert service.is_confirmation_expired(status) is False
        clock.advance(hours=4)
        assert service.is_confirmation_expired(status) is False
        clock.advance(seconds=1)
        assert service.is_confirmation_expired(status) is True

    def test_find_expired_escalations(self, service, clock):
        _create(service, Urgency.CRITICAL, claim_id="FAST")
        _create(service, Urgency.MEDIUM, claim_id="SLOW")
        clock.advance(hours=2)
        assert [s.claim_id for s in service.find_expired_escalations()] == ["FAST"]


class TestProcessConfirmation:
    def test_confirm_keeps_level_and_clears_deadline(self, service):
        _create(service)
        status = service.process_confirmation("CLM-1", "agent_t1_002", "confirm")
        assert status.status == EscalationState.CONFIRMED
        assert status.current_level == 2
        assert status.assigned_agent == "agent_t1_002"
        assert status.estimated_response_time == 2
        assert status.confirmation_deadline is None

    def test_escalate_from_level_two_goes_to_three(self, service, clock):
        _create(service)
        status = service.process_confirmation("CLM-1", "agent_t1_001", "escalate", "Needs senior eyes")
        assert status.current_level == 3
        assert status.status == EscalationState.ESCALATED
        assert status.assigned_agent.startswith("agent_senior")
        assert status.confirmation_deadline == clock.now + timedelta(hours=1)
        assert [e.level for e in status.escalation_history] == [2, 2, 3]
        assert status.escalation_history[-1].reason == "Needs senior eyes"

    def test_escalate_from_three_goes_to_four(self, service):
        _create(service, Urgency.HIGH)
        status = service.process_confirmation("CLM-1", "agent_senior_001", "escalate")
        assert status.current_level == 4

    def test_escalate_at_top_level_fails(self, service):
        _create(service, Urgency.CRITICAL)
        with pytest.raises(InvalidLevelError):
            service.process_confirmation("CLM-1", "specialist_001", "escalate")

    @pytest.mark.parametrize("urgency", [Urgency.LOW, Urgency.HIGH, Urgency.CRITICAL])
    def test_resolve_from_any_level(self, service, urgency):
        _create(service, urgency)
        status = service.process_confirmation("CLM-1", "someone", "resolve")
        assert status.status == EscalationState.RESOLVED
        assert status.estimated_response_time == 0
        assert status.confirmation_deadline is None

    def test_resolve_after_confirm(self, service):
        _create(service)
        service.process_confirmation("CLM-1", "agent_t1_001", "confirm")
        assert service.process_confirmation("CLM-1", "agent_t1_001", "resolve").status == EscalationState.RESOLVED

    def test_resolved_is_terminal(self, service):
        _create(service)
        service.process_confirmation("CLM-1", "a", "resolve")
        with pytest.raises(InvalidTransitionError):
            service.process_confirmation("CLM-1", "a", "resolve")

    def test_confirmed_rejects_escalate(self, service):
        _create(service)
        service.process_confirmation("CLM-1", "a", "confirm")
        with pytest.raises(InvalidTransitionError):
            service.process_confirmation("CLM-1", "a", "escalate")

    def test_unknown_action(self, service):
        _create(service)
        with pytest.raises(InvalidActionError):
            service.process_confirmation("CLM-1", "a", "ignore")

    def test_unknown_claim(self, service):
        with pytest.raises(EscalationNotFoundError):
            service.process_confirmation("NOPE", "a", "confirm")

    def test_history_timestamps_never_go_backwards(self, service, clock):
        _create(service)
        clock.advance(hours=-1)
        status = service.process_confirmation("CLM-1", "a", "confirm")
        stamps = [e.timestamp for e in status.escalation_history]
        assert stamps == sorted(stamps)


class TestAutoEscalate:
    def test_moves_open_record_up(self, service, clock):
        _create(service, Urgency.HIGH)
        clock.advance(hours=3)
        status = service.auto_escalate("CLM-1", 3, 4)
        assert status.current_level == 4
        assert status.status == EscalationState.ESCALATED
        assert status.confirmation_deadline == clock.now + timedelta(hours=1)
        assert status.escalation_history[-1].reason == TIMEOUT_REASON

    def test_noop_when_already_answered(self, service):
        _create(service, Urgency.HIGH)
        service.process_confirmation("CLM-1", "a", "confirm")
        assert service.auto_escalate("CLM-1", 3, 4) is None

    def test_redelivery_is_noop(self, service, store):
        _create(service, Urgency.HIGH)
        service.auto_escalate("CLM-1", 3, 4)
        assert service.auto_escalate("CLM-1", 3, 4) is None
        assert len(store.get_escalation("CLM-1").escalation_history) == 2

    def test_missing_record(self, service):
        assert service.auto_escalate("NOPE", 2, 3) is None

    def test_record_timeout_job(self, service, store):
        _create(service)
        service.record_timeout_job("CLM-1", "check_timeout:CLM-1:2:1")
        assert store.get_escalation("CLM-1").timeout_job_id == "check_timeout:CLM-1:2:1"


class TestQueries:
    def test_next_level(self, service):
        assert service.get_next_escalation_level(1).level == 2
        assert service.get_next_escalation_level(4) is None

    def test_requirements(self, service):
        assert service.get_escalation_requirements(3).name == "Senior Agent Investigation"
        assert service.get_escalation_requirements(9) is None

    def test_priority_score(self):
        assert EscalationStateService.calculate_priority_score("high", 60000, 10) == 130
        assert EscalationStateService.calculate_priority_score("low") == 25
        assert EscalationStateService.calculate_priority_score("medium", 11000, 1) == 65

    def test_format_response(self, service):
        status = _create(service, Urgency.HIGH)
        view = service.format_escalation_response(status)
        assert view["level_name"] == "Senior Agent Investigation"
        assert view["requires_confirmation"] is True
        assert view["history"][0]["level_name"] == "Senior Agent Investigation"

    def test_agent_load_counts_open_records(self, service):
        _create(service, claim_id="A")
        _create(service, claim_id="B")
        service.process_confirmation("B", "agent_t1_002", "resolve")
        assert service.agent_load() == {"agent_t1_001": 1}

    def test_default_table_used(self, store):
        service = EscalationStateService(store=store)
        assert service.table == load_escalation_table()
