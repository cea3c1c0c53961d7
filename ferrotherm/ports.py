"""
ferrotherm/ports.py
===================
Ferrofluid Thermal-to-Electric Control Loop — External Collaborators

Narrow interfaces through which the control loop reads sensors and drives
actuators.  Hardware drivers live outside this package; every call is
synchronous and bounded, and returns within the cycle.
"""

from __future__ import annotations

from enum import Enum
from typing import Hashable, Optional, Protocol


class SensorKind(Enum):
    TEMPERATURE = "temperature"            # context: "cpu" / "gpu"
    MAGNET_TEMPERATURE = "magnet_temperature"  # context: point index
    MAGNET_STRENGTH = "magnet_strength"    # context: point index
    FLOW_RATE = "flow_rate"                # context: FlowPath
    TEG_VOLTAGE = "teg_voltage"            # context: point index
    BATTERY_SOC = "battery_soc"
    BATTERY_CAPACITY = "battery_capacity"  # reported usable capacity [Wh]
    AMBIENT_HEAT = "ambient_heat"          # waste heat available to point 1 [W]


class SensorPort(Protocol):
    def read(self, kind: SensorKind, context: Optional[Hashable] = None) -> float:
        """Return the current scalar reading for ``kind`` at ``context``."""
        ...


class ActuatorPort(Protocol):
    def adjust_valve(self, point: int, target: float) -> None:
        ...

    def charge_magnet(self, point: int, strength: float) -> None:
        ...

    def discharge_magnet(self, point: int) -> None:
        ...

    def dissipate_excess(self, power_w: float, sink: str) -> None:
        ...

    def redirect_power(self, power_w: float, destination: str) -> bool:
        ...

    def draw_ac_power(self, efficiency: float) -> float:
        """Draw boot power from the AC/backup source; returns watts delivered."""
        ...
