"""
Concurrency tests for decisions and escalation passes.

Covers:
- Distinct approvers racing on one request: every decision lands once
- The same approver racing: exactly one success, the rest DUPLICATE_DECISION
- Concurrent escalation passes: one escalation per level
- Scheduler racing a decision: the stored state is always one of the
  serial outcomes
- Lost update between two managers with separate lock registries is
  caught by the store version check
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from approval_config.provider import StaticConfigurationProvider
from approval_kernel.domain.approval import ApprovalStatus, DecisionInput, UserRole
from approval_kernel.stores.memory import InMemoryApprovalStore
from approval_services.escalation_scheduler import EscalationScheduler
from approval_services.request_manager import ApprovalRequestManager
from tests.conftest import make_actor, make_config, make_order, make_threshold

THREADS = 8


def race(fn, args_list):
    """Run ``fn(*args)`` for each args tuple, all released at once."""
    barrier = threading.Barrier(len(args_list))

    def gated(*args):
        barrier.wait(timeout=10)
        return fn(*args)

    with ThreadPoolExecutor(max_workers=len(args_list)) as pool:
        futures = [pool.submit(gated, *args) for args in args_list]
        return [f.result(timeout=30) for f in futures]


class TestDecisionRaces:
    def test_distinct_approvers_all_recorded(self, store, clock, initiator):
        config = make_config(thresholds=[make_threshold(required_approvers=THREADS)])
        manager = ApprovalRequestManager(store, StaticConfigurationProvider(config), clock=clock)
        request = manager.create_request(make_order(), initiator)
        approvers = [make_actor(UserRole.MANAGER, f"mgr-{i}") for i in range(THREADS)]

        results = race(
            manager.submit_decision,
            [(request.request_id, DecisionInput(True, a)) for a in approvers],
        )

        assert all(r.success for r in results)
        assert sum(1 for r in results if r.final_status == ApprovalStatus.APPROVED) == 1
        stored = manager.get_request(request.request_id)
        assert stored.status == ApprovalStatus.APPROVED
        assert sorted(stored.approver_ids) == sorted(a.user_id for a in approvers)
        assert stored.version == THREADS

    def test_quorum_closes_the_request(self, manager, initiator):
        request = manager.create_request(make_order(), initiator)
        approvers = [make_actor(UserRole.ADMIN, f"adm-{i}") for i in range(THREADS)]

        results = race(
            manager.submit_decision,
            [(request.request_id, DecisionInput(True, a)) for a in approvers],
        )

        assert sum(1 for r in results if r.success) == 2
        assert {r.code for r in results if not r.success} == {"INVALID_STATUS"}
        stored = manager.get_request(request.request_id)
        assert stored.status == ApprovalStatus.APPROVED
        assert len(stored.received_approvals) == 2

    def test_same_approver_once(self, manager, initiator, manager_actor):
        request = manager.create_request(make_order(), initiator)

        results = race(
            manager.submit_decision,
            [(request.request_id, DecisionInput(True, manager_actor))] * THREADS,
        )

        assert sum(1 for r in results if r.success) == 1
        assert [r.code for r in results if not r.success] == ["DUPLICATE_DECISION"] * (THREADS - 1)
        assert manager.get_request(request.request_id).approver_ids == ("mgr-1",)


class TestEscalationRaces:
    def test_concurrent_passes_escalate_once(self, manager, clock, initiator):
        ids = [manager.create_request(make_order(), initiator).request_id for _ in range(5)]
        clock.advance_hours(25)
        scheduler = EscalationScheduler(manager)

        passes = race(scheduler.process_escalations, [()] * 4)

        created = [e for batch in passes for e in batch]
        assert sorted(e.request_id for e in created) == sorted(ids)
        for request_id in ids:
            assert [e.level for e in manager.list_escalations(request_id)] == [1]
            assert manager.get_request(request_id).escalation_level == 1

    @pytest.mark.parametrize("attempt", range(5))
    def test_scheduler_against_decision(self, manager, clock, initiator, manager_actor, attempt):
        request = manager.create_request(make_order(), initiator)
        clock.advance_hours(25)
        scheduler = EscalationScheduler(manager)

        def decide():
            return manager.submit_decision(request.request_id, DecisionInput(True, manager_actor))

        def escalate():
            return scheduler.process_escalations()

        result, escalations = race(lambda job: job(), [(decide,), (escalate,)])

        stored = manager.get_request(request.request_id)
        assert len(escalations) == 1
        assert stored.status == ApprovalStatus.ESCALATED
        assert stored.escalation_level == 1
        if result.success:
            assert stored.approver_ids == ("mgr-1",)
            assert escalations[0].previous_approvers == ("mgr-1",)
        else:
            assert result.code == "INVALID_STATUS"
            assert stored.approver_ids == ()


class InterleavingStore:
    """Wraps a store and lets another writer commit just before the first update."""

    def __init__(self, inner, before_first_update):
        self._inner = inner
        self._hook = before_first_update

    def update(self, request, expected_version, escalation=None):
        hook, self._hook = self._hook, None
        if hook is not None:
            hook()
        return self._inner.update(request, expected_version, escalation)

    def __getattr__(self, name):
        return getattr(self._inner, name)


class TestLostUpdate:
    @pytest.mark.parametrize("backend", ["memory", "sql"])
    def test_version_conflict_between_managers(self, backend, sql_store, provider, clock, initiator, manager_actor, admin_actor):
        inner = sql_store if backend == "sql" else InMemoryApprovalStore()
        other = ApprovalRequestManager(inner, provider, clock=clock)
        request = other.create_request(make_order(), initiator)

        def competing_write():
            result = other.submit_decision(request.request_id, DecisionInput(True, admin_actor))
            assert result.success

        first = ApprovalRequestManager(InterleavingStore(inner, competing_write), provider, clock=clock)
        result = first.submit_decision(request.request_id, DecisionInput(True, manager_actor))

        assert not result.success
        assert result.code == "CONCURRENT_MODIFICATION"
        stored = inner.get(request.request_id)
        assert stored.approver_ids == ("adm-1",)
        assert stored.version == 1

        retry = first.submit_decision(request.request_id, DecisionInput(True, manager_actor))
        assert retry.success
        assert inner.get(request.request_id).status == ApprovalStatus.APPROVED
