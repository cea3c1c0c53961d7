"""
ferrotherm/fault_manager.py
===========================
Ferrofluid Thermal-to-Electric Control Loop — Fault Manager

Sole owner of :class:`~ferrotherm.status.SystemStatus`.

State machine:
    Operational → Warning(reason) → Fault(kind) → {Operational | Critical(reason)}

Rules:
    - A Warning never overrides a Fault; nothing overrides Critical.
    - Concurrent faults are tracked separately; recovering one never
      clears another.  Status shows the highest-precedence one.
    - Each fault kind has one registered recovery action returning bool.
    - Two consecutive failed recoveries of the same (kind, point) within
      one cycle escalate to Critical.
"""

from __future__ import annotations

import logging
from typing import Callable, Hashable, Optional

from ferrotherm.log_sink import LogSink
from ferrotherm.status import FAULT_PRECEDENCE, FaultKind, StatusKind, SystemStatus

log = LogSink(logging.getLogger(__name__))

RecoveryAction = Callable[[Optional[Hashable]], bool]

MAX_CONSECUTIVE_FAILURES: int = 2


class FaultManager:
    """Drives status transitions and bounded per-fault recovery.

    Every raised fault stays unresolved until its own recovery succeeds;
    the status reports the highest-precedence unresolved fault.
    """

    def __init__(self, sink: Optional[LogSink] = None) -> None:
        self._log = sink or log
        self._status = SystemStatus.operational()
        self._actions: dict[FaultKind, RecoveryAction] = {}
        self._failures: dict[tuple[FaultKind, Optional[Hashable]], int] = {}
        self._unresolved: dict[FaultKind, tuple[Optional[Hashable], str]] = {}

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def register(self, kind: FaultKind, action: RecoveryAction) -> None:
        """Bind the recovery action for ``kind`` (resolved once at setup)."""
        self._actions[kind] = action

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def status(self) -> SystemStatus:
        return self._status

    @property
    def is_critical(self) -> bool:
        return self._status.is_critical

    @property
    def active_faults(self) -> tuple[FaultKind, ...]:
        """Unresolved fault kinds, highest precedence first."""
        return tuple(k for k in FAULT_PRECEDENCE if k in self._unresolved)

    def is_active(self, kind: FaultKind) -> bool:
        return kind in self._unresolved

    def _refresh(self) -> None:
        if self._status.is_critical:
            return
        active = self.active_faults
        if active:
            top = active[0]
            self._status = SystemStatus.faulted(top, self._unresolved[top][1])
        elif self._status.is_fault:
            self._status = SystemStatus.operational()

    def begin_cycle(self) -> None:
        """Reset per-cycle bookkeeping at a cycle boundary.

        A Warning expires; every Fault left over from the previous cycle
        gets its one recovery attempt for this cycle.
        """
        self._failures.clear()
        if self._status.kind is StatusKind.WARNING:
            self._status = SystemStatus.operational()
        for kind in self.active_faults:
            self.recover(kind, self._unresolved[kind][0])

    def warn(self, reason: str) -> None:
        if self._status.is_critical:
            return
        self._log.warning(reason)
        if self._status.kind in (StatusKind.OPERATIONAL, StatusKind.WARNING):
            self._status = SystemStatus.warning(reason)

    def raise_fault(self, kind: FaultKind, reason: str = "",
                    context: Optional[Hashable] = None) -> None:
        if self._status.is_critical:
            return
        self._unresolved[kind] = (context, reason)
        self._refresh()
        self._log.error("Fault:%s %s", kind.value, reason)

    def escalate(self, reason: str) -> None:
        if self._status.is_critical:
            return
        self._status = SystemStatus.critical(reason)
        self._log.error("Critical: %s", reason)

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def recover(self, kind: FaultKind, context: Optional[Hashable] = None) -> bool:
        """Run the recovery action for ``kind`` once.

        Returns:
            True if the action succeeded and ``kind`` is no longer
            unresolved; status reverts to Operational only when no other
            fault is still unresolved.
            False otherwise; a second consecutive failure for the same
            (kind, context) this cycle escalates to Critical.
        """
        if self._status.is_critical:
            return False

        action = self._actions.get(kind)
        ok = bool(action(context)) if action is not None else False
        key = (kind, context)

        if ok:
            self._failures.pop(key, None)
            self._unresolved.pop(kind, None)
            self._refresh()
            self._log.status("Recovered from %s (context=%s)", kind.value, context)
            return True

        failures = self._failures.get(key, 0) + 1
        self._failures[key] = failures
        if failures >= MAX_CONSECUTIVE_FAILURES:
            self.escalate(f"{kind.value} recovery failed {failures} times (context={context})")
        else:
            self._log.error("Recovery for %s failed (context=%s)", kind.value, context)
        return False
