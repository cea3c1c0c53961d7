"""
ferrotherm/status.py
====================
Ferrofluid Thermal-to-Electric Control Loop — System Status

Tagged status type owned by the FaultManager.  Exactly one kind is active
at a time; a Fault always carries the :class:`FaultKind` that caused it so
recovery can be dispatched on the discriminator rather than on text.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class StatusKind(Enum):
    OPERATIONAL = "Operational"
    WARNING = "Warning"
    FAULT = "Fault"
    CRITICAL = "Critical"


class FaultKind(Enum):
    """Blocking fault classes, each with one bounded recovery action."""
    LOW_FLOW = "LowFlow"
    GENERATOR_FAILURE = "GeneratorFailure"
    MAGNET_FAILURE = "MagnetFailure"
    OVERHEAT = "Overheat"
    LOW_STORAGE = "LowStorage"


FAULT_PRECEDENCE: tuple[FaultKind, ...] = (
    FaultKind.OVERHEAT,
    FaultKind.LOW_FLOW,
    FaultKind.MAGNET_FAILURE,
    FaultKind.GENERATOR_FAILURE,
    FaultKind.LOW_STORAGE,
)
"""Order in which concurrent unresolved faults are reported, highest first."""


@dataclass(frozen=True)
class SystemStatus:
    """Snapshot of the loop's health.

    Attributes:
        kind:   Active status class.
        fault:  Fault discriminator; set only when ``kind`` is FAULT.
        reason: Free-text detail for the log stream.
    """
    kind: StatusKind = StatusKind.OPERATIONAL
    fault: Optional[FaultKind] = None
    reason: str = ""

    def __post_init__(self) -> None:
        if (self.kind is StatusKind.FAULT) != (self.fault is not None):
            raise ValueError(
                f"fault kind must be given exactly when status is FAULT; "
                f"received kind={self.kind!r}, fault={self.fault!r}"
            )

    @classmethod
    def operational(cls) -> SystemStatus:
        return cls()

    @classmethod
    def warning(cls, reason: str) -> SystemStatus:
        return cls(StatusKind.WARNING, None, reason)

    @classmethod
    def faulted(cls, fault: FaultKind, reason: str = "") -> SystemStatus:
        return cls(StatusKind.FAULT, fault, reason)

    @classmethod
    def critical(cls, reason: str) -> SystemStatus:
        return cls(StatusKind.CRITICAL, None, reason)

    @property
    def is_operational(self) -> bool:
        return self.kind is StatusKind.OPERATIONAL

    @property
    def is_fault(self) -> bool:
        return self.kind is StatusKind.FAULT

    @property
    def is_critical(self) -> bool:
        return self.kind is StatusKind.CRITICAL

    @property
    def is_blocking(self) -> bool:
        """True when the load must fall back to Idle this cycle."""
        return self.kind in (StatusKind.FAULT, StatusKind.CRITICAL)

    def __str__(self) -> str:
        if self.kind is StatusKind.FAULT:
            return f"Fault:{self.fault.value}"
        if self.reason:
            return f"{self.kind.value}: {self.reason}"
        return self.kind.value
