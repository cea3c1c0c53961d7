"""
ferrotherm/simulated.py
=======================
Ferrofluid Thermal-to-Electric Control Loop — Simulated Collaborators

Deterministic in-memory stand-ins for the sensor and actuator ports, used
by the simulation runner and the tests.  No randomness: every reading is
a configured default, a per-context override, or the next value from a
scripted queue.
"""

from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Hashable, Iterable, Optional

from ferrotherm.config import AMBIENT_WASTE_HEAT_W
from ferrotherm.ports import SensorKind

DEFAULT_READINGS: dict[SensorKind, float] = {
    SensorKind.TEMPERATURE: 55.0,
    SensorKind.MAGNET_TEMPERATURE: 40.0,
    SensorKind.MAGNET_STRENGTH: 0.5,
    SensorKind.FLOW_RATE: 1.0,
    SensorKind.TEG_VOLTAGE: 3.3,
    SensorKind.BATTERY_SOC: 0.6,
    SensorKind.BATTERY_CAPACITY: 100.0,
    SensorKind.AMBIENT_HEAT: AMBIENT_WASTE_HEAT_W,
}


class SimulatedSensorPort:
    """Sensor port answering from defaults, overrides and scripted queues.

    Lookup order for ``read(kind, context)``:
        1. scripted queue for (kind, context), then for (kind, None)
        2. override for (kind, context), then for (kind, None)
        3. default for ``kind``
    """

    def __init__(self, defaults: Optional[dict[SensorKind, float]] = None) -> None:
        self._defaults = dict(DEFAULT_READINGS)
        if defaults:
            self._defaults.update(defaults)
        self._overrides: dict[tuple[SensorKind, Optional[Hashable]], float] = {}
        self._scripts: dict[tuple[SensorKind, Optional[Hashable]], deque] = defaultdict(deque)
        self.reads: list[tuple[SensorKind, Optional[Hashable]]] = []

    def set(self, kind: SensorKind, value: float, context: Optional[Hashable] = None) -> None:
        self._overrides[(kind, context)] = value

    def script(self, kind: SensorKind, values: Iterable[float],
               context: Optional[Hashable] = None) -> None:
        """Queue one-shot readings, consumed in order before any override."""
        self._scripts[(kind, context)].extend(values)

    def read(self, kind: SensorKind, context: Optional[Hashable] = None) -> float:
        self.reads.append((kind, context))
        for key in ((kind, context), (kind, None)):
            queue = self._scripts.get(key)
            if queue:
                return queue.popleft()
        for key in ((kind, context), (kind, None)):
            if key in self._overrides:
                return self._overrides[key]
        return self._defaults[kind]


@dataclass
class RecordingActuatorPort:
    """Actuator port that records every command.

    Attributes:
        ac_power_w:     Watts returned by :meth:`draw_ac_power` before efficiency.
        accept_export:  Value returned by :meth:`redirect_power`.
        calls:          Ordered ``(method, args)`` log.
    """
    ac_power_w: float = 20.0
    accept_export: bool = True
    calls: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)

    def adjust_valve(self, point: int, target: float) -> None:
        self.calls.append(("adjust_valve", (point, target)))

    def charge_magnet(self, point: int, strength: float) -> None:
        self.calls.append(("charge_magnet", (point, strength)))

    def discharge_magnet(self, point: int) -> None:
        self.calls.append(("discharge_magnet", (point,)))

    def dissipate_excess(self, power_w: float, sink: str) -> None:
        self.calls.append(("dissipate_excess", (power_w, sink)))

    def redirect_power(self, power_w: float, destination: str) -> bool:
        self.calls.append(("redirect_power", (power_w, destination)))
        return self.accept_export

    def draw_ac_power(self, efficiency: float) -> float:
        self.calls.append(("draw_ac_power", (efficiency,)))
        return self.ac_power_w * efficiency

    def named(self, method: str) -> list[tuple[Any, ...]]:
        """Arguments of every recorded call to ``method``."""
        return [args for name, args in self.calls if name == method]
