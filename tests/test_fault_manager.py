"""
tests/test_fault_manager.py
===========================
Status state machine, bounded recovery and escalation to Critical.
"""

import pytest

from ferrotherm.fault_manager import FaultManager
from ferrotherm.status import FaultKind, StatusKind, SystemStatus


# ---------------------------------------------------------------------------
# SystemStatus
# ---------------------------------------------------------------------------

class TestSystemStatus:

    def test_default_is_operational(self):
        assert SystemStatus().is_operational
        assert str(SystemStatus()) == "Operational"

    def test_fault_renders_kind(self):
        assert str(SystemStatus.faulted(FaultKind.LOW_FLOW)) == "Fault:LowFlow"

    def test_warning_and_critical_render_reason(self):
        assert str(SystemStatus.warning("hot")) == "Warning: hot"
        assert str(SystemStatus.critical("gone")) == "Critical: gone"

    def test_fault_requires_kind(self):
        with pytest.raises(ValueError, match="fault kind"):
            SystemStatus(StatusKind.FAULT)

    def test_kind_only_on_fault(self):
        with pytest.raises(ValueError, match="fault kind"):
            SystemStatus(StatusKind.WARNING, FaultKind.LOW_FLOW)

    def test_blocking(self):
        assert SystemStatus.faulted(FaultKind.OVERHEAT).is_blocking
        assert SystemStatus.critical("x").is_blocking
        assert not SystemStatus.warning("x").is_blocking


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

class TestTransitions:

    def test_warning_is_non_blocking(self, fault_manager, caplog):
        fault_manager.warn("flow dipping")
        assert fault_manager.status.kind is StatusKind.WARNING
        assert "flow dipping" in caplog.text

    def test_warning_does_not_mask_fault(self, fault_manager):
        fault_manager.raise_fault(FaultKind.OVERHEAT)
        fault_manager.warn("minor")
        assert fault_manager.status.fault is FaultKind.OVERHEAT

    def test_successful_recovery_restores_operational(self, fault_manager):
        fault_manager.register(FaultKind.LOW_FLOW, lambda ctx: True)
        fault_manager.raise_fault(FaultKind.LOW_FLOW)
        assert fault_manager.recover(FaultKind.LOW_FLOW) is True
        assert fault_manager.status.is_operational

    def test_action_receives_context(self, fault_manager):
        seen = []
        fault_manager.register(FaultKind.GENERATOR_FAILURE, lambda ctx: seen.append(ctx) or True)
        fault_manager.recover(FaultKind.GENERATOR_FAILURE, 3)
        assert seen == [3]

    def test_unregistered_recovery_fails(self, fault_manager):
        fault_manager.raise_fault(FaultKind.MAGNET_FAILURE)
        assert fault_manager.recover(FaultKind.MAGNET_FAILURE) is False
        assert fault_manager.status.fault is FaultKind.MAGNET_FAILURE

    def test_two_failures_same_cycle_escalate(self, fault_manager):
        fault_manager.register(FaultKind.LOW_FLOW, lambda ctx: False)
        fault_manager.raise_fault(FaultKind.LOW_FLOW)
        fault_manager.recover(FaultKind.LOW_FLOW)
        assert not fault_manager.is_critical
        fault_manager.recover(FaultKind.LOW_FLOW)
        assert fault_manager.is_critical

    def test_failures_counted_per_context(self, fault_manager):
        fault_manager.register(FaultKind.GENERATOR_FAILURE, lambda ctx: False)
        fault_manager.recover(FaultKind.GENERATOR_FAILURE, 0)
        fault_manager.recover(FaultKind.GENERATOR_FAILURE, 1)
        assert not fault_manager.is_critical

    def test_success_resets_failure_count(self, fault_manager):
        results = iter([False, True, False])
        fault_manager.register(FaultKind.LOW_FLOW, lambda ctx: next(results))
        fault_manager.recover(FaultKind.LOW_FLOW)
        fault_manager.recover(FaultKind.LOW_FLOW)
        fault_manager.recover(FaultKind.LOW_FLOW)
        assert not fault_manager.is_critical

    def test_critical_is_terminal(self, fault_manager):
        fault_manager.register(FaultKind.LOW_FLOW, lambda ctx: True)
        fault_manager.escalate("done")
        fault_manager.warn("ignored")
        fault_manager.raise_fault(FaultKind.OVERHEAT)
        assert fault_manager.recover(FaultKind.LOW_FLOW) is False
        fault_manager.begin_cycle()
        assert fault_manager.status == SystemStatus.critical("done")


# ---------------------------------------------------------------------------
# Cycle boundaries
# ---------------------------------------------------------------------------

class TestBeginCycle:

    def test_warning_expires(self, fault_manager):
        fault_manager.warn("transient")
        fault_manager.begin_cycle()
        assert fault_manager.status.is_operational

    def test_lingering_fault_gets_one_attempt(self, fault_manager):
        calls = []
        fault_manager.register(FaultKind.MAGNET_FAILURE, lambda ctx: calls.append(ctx) or False)
        fault_manager.raise_fault(FaultKind.MAGNET_FAILURE, context=2)
        fault_manager.recover(FaultKind.MAGNET_FAILURE, 2)

        fault_manager.begin_cycle()

        assert calls == [2, 2]
        assert fault_manager.status.fault is FaultKind.MAGNET_FAILURE
        assert not fault_manager.is_critical

    def test_lingering_fault_recovers_next_cycle(self, fault_manager):
        results = iter([False, True])
        fault_manager.register(FaultKind.OVERHEAT, lambda ctx: next(results))
        fault_manager.raise_fault(FaultKind.OVERHEAT)
        fault_manager.recover(FaultKind.OVERHEAT)
        fault_manager.begin_cycle()
        assert fault_manager.status.is_operational

    def test_failure_count_resets_each_cycle(self, fault_manager):
        fault_manager.register(FaultKind.LOW_FLOW, lambda ctx: False)
        fault_manager.raise_fault(FaultKind.LOW_FLOW)
        fault_manager.recover(FaultKind.LOW_FLOW)
        fault_manager.begin_cycle()          # its own attempt fails once
        assert not fault_manager.is_critical
        fault_manager.recover(FaultKind.LOW_FLOW)
        assert fault_manager.is_critical


# ---------------------------------------------------------------------------
# Concurrent faults
# ---------------------------------------------------------------------------

class TestConcurrentFaults:

    def test_recovering_later_fault_keeps_earlier_one(self, fault_manager):
        fault_manager.register(FaultKind.GENERATOR_FAILURE, lambda ctx: True)
        fault_manager.raise_fault(FaultKind.OVERHEAT, "cpu hot")
        fault_manager.raise_fault(FaultKind.GENERATOR_FAILURE, context=0)

        assert fault_manager.recover(FaultKind.GENERATOR_FAILURE, 0) is True
        assert fault_manager.status.fault is FaultKind.OVERHEAT
        assert fault_manager.active_faults == (FaultKind.OVERHEAT,)

    def test_highest_precedence_fault_reported(self, fault_manager):
        fault_manager.raise_fault(FaultKind.LOW_STORAGE)
        fault_manager.raise_fault(FaultKind.OVERHEAT)
        fault_manager.raise_fault(FaultKind.MAGNET_FAILURE, context=1)
        assert str(fault_manager.status) == "Fault:Overheat"
        assert fault_manager.active_faults == (
            FaultKind.OVERHEAT, FaultKind.MAGNET_FAILURE, FaultKind.LOW_STORAGE,
        )

    def test_operational_only_when_all_resolved(self, fault_manager):
        fault_manager.register(FaultKind.OVERHEAT, lambda ctx: True)
        fault_manager.register(FaultKind.LOW_FLOW, lambda ctx: True)
        fault_manager.raise_fault(FaultKind.OVERHEAT)
        fault_manager.raise_fault(FaultKind.LOW_FLOW)

        fault_manager.recover(FaultKind.OVERHEAT)
        assert fault_manager.status.fault is FaultKind.LOW_FLOW
        fault_manager.recover(FaultKind.LOW_FLOW)
        assert fault_manager.status.is_operational

    def test_begin_cycle_attempts_every_fault(self, fault_manager):
        seen = []
        fault_manager.register(FaultKind.OVERHEAT, lambda ctx: seen.append("heat") or False)
        fault_manager.register(FaultKind.MAGNET_FAILURE, lambda ctx: seen.append(ctx) or True)
        fault_manager.raise_fault(FaultKind.OVERHEAT)
        fault_manager.raise_fault(FaultKind.MAGNET_FAILURE, context=3)

        fault_manager.begin_cycle()

        assert seen == ["heat", 3]
        assert fault_manager.active_faults == (FaultKind.OVERHEAT,)
        assert fault_manager.is_active(FaultKind.OVERHEAT)
        assert not fault_manager.is_active(FaultKind.MAGNET_FAILURE)
