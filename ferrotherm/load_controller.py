"""
ferrotherm/load_controller.py
=============================
Ferrofluid Thermal-to-Electric Control Loop — Load Controller

Selects the compute load mode from available power and storage state, and
applies CPU/GPU throttling with asymmetric hysteresis.

Mode ladder (strict order):
    1. blocking status (Fault/Critical)          → Idle
    2. storage ≤ MIN_STORAGE_THRESHOLD           → Idle
    3. available ≥ full-mode total               → Full
    4. available ≥ partial fraction · full total → Partial (CPU:GPU split)
    5. otherwise                                 → Idle

Throttle hysteresis (fractions of usable capacity):
    enter at ≤ 30 %, leave only above 50 %; throttled draw = 50 %.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Mapping, Optional

from ferrotherm.config import LoadComponent, PlantConfig
from ferrotherm.fault_manager import FaultManager
from ferrotherm.log_sink import LogSink
from ferrotherm.ports import SensorKind, SensorPort
from ferrotherm.status import FaultKind, SystemStatus

log = LogSink(logging.getLogger(__name__))

THROTTLED_COMPONENTS: tuple[LoadComponent, ...] = (LoadComponent.CPU, LoadComponent.GPU)


@dataclass(frozen=True)
class LoadMode:
    """A named set of per-component power draws [W]; never mutated."""
    name: str
    draws: Mapping[LoadComponent, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "draws", MappingProxyType(dict(self.draws)))

    @property
    def total(self) -> float:
        return sum(self.draws.values())

    def draw(self, component: LoadComponent) -> float:
        return self.draws.get(component, 0.0)

    def scaled(self, factors: Mapping[LoadComponent, float], name: Optional[str] = None) -> LoadMode:
        """Derive a new mode with some component draws multiplied."""
        return LoadMode(
            name=name or self.name,
            draws={c: w * factors.get(c, 1.0) for c, w in self.draws.items()},
        )


class LoadController:
    """Mode selection and throttling for the computing load.

    Args:
        config:        Plant profile (component envelopes, thresholds).
        fault_manager: Source of the current status; holds the LowStorage
                       and Overheat recovery actions registered here.
        sensors:       Temperature readings used by forced-cooling recovery.
        storage_level: Returns the current storage level [Wh]; the Idle
                       fallback only counts as recovered above the minimum.
    """

    def __init__(self, config: PlantConfig, fault_manager: FaultManager,
                 sensors: SensorPort,
                 storage_level: Optional[Callable[[], float]] = None) -> None:
        self._config = config
        self._faults = fault_manager
        self._sensors = sensors
        self._storage_level = storage_level
        self.full_mode = LoadMode(
            "full", {c: spec.full_w for c, spec in config.components.items()}
        )
        self.idle_mode = LoadMode(
            "idle", {c: spec.idle_w for c, spec in config.components.items()}
        )
        self.current_mode: LoadMode = self.idle_mode
        self.throttled: dict[LoadComponent, bool] = {c: False for c in THROTTLED_COMPONENTS}
        self.forced_idle: bool = False
        fault_manager.register(FaultKind.LOW_STORAGE, self.fall_back_to_idle)
        fault_manager.register(FaultKind.OVERHEAT, self.force_cooling)

    # ------------------------------------------------------------------
    # Mode selection
    # ------------------------------------------------------------------

    def partial_mode(self, available_power_w: float) -> LoadMode:
        """Scale CPU/GPU to fit ``available_power_w`` with the fixed split."""
        comps = self._config.components
        fixed = sum(
            w for c, w in self.full_mode.draws.items() if c not in THROTTLED_COMPONENTS
        )
        budget = max(0.0, available_power_w - fixed)
        draws = dict(self.full_mode.draws)
        draws[LoadComponent.CPU] = min(budget * self._config.cpu_share,
                                       comps[LoadComponent.CPU].max_w)
        draws[LoadComponent.GPU] = min(budget * (1.0 - self._config.cpu_share),
                                       comps[LoadComponent.GPU].max_w)
        return LoadMode("partial", draws)

    def select_mode(self, storage_level_wh: float, available_power_w: float,
                    current_mode: Optional[LoadMode] = None,
                    status: Optional[SystemStatus] = None) -> LoadMode:
        """Pick the load mode for this cycle (see the ladder above)."""
        cfg = self._config
        status = status or self._faults.status
        current = current_mode or self.current_mode

        if status.is_blocking or self.forced_idle:
            mode = self.idle_mode
        elif storage_level_wh <= cfg.min_storage_threshold_wh:
            mode = self.idle_mode
        elif available_power_w >= self.full_mode.total:
            mode = self.full_mode
        elif available_power_w >= cfg.partial_mode_fraction * self.full_mode.total:
            mode = self.partial_mode(available_power_w)
        else:
            mode = self.idle_mode

        if mode.name != current.name:
            log.status("Load mode %s -> %s (%.2f W)", current.name, mode.name, mode.total)
        self.current_mode = mode
        return mode

    def fall_back_to_idle(self, context: Optional[int] = None) -> bool:
        """Recovery action for LowStorage: Idle for the rest of the cycle.

        Succeeds once storage is back above the minimum threshold.
        """
        self.forced_idle = True
        self.current_mode = self.idle_mode
        if self._storage_level is None:
            return True
        return self._storage_level() > self._config.min_storage_threshold_wh

    def begin_cycle(self) -> None:
        self.forced_idle = False

    # ------------------------------------------------------------------
    # Throttling
    # ------------------------------------------------------------------

    def throttle(self, component: LoadComponent, storage_level_wh: float,
                 throttled: bool) -> bool:
        """Return the new throttled flag for ``component``.

        Enters at or below the lower threshold, leaves only once storage
        recovers above the upper one; in between the flag is held.
        """
        cfg = self._config
        usable = max(0.0, storage_level_wh - cfg.reserve_floor_wh)
        enter_at = cfg.throttle_enter_fraction * cfg.usable_capacity_wh
        exit_at = cfg.throttle_exit_fraction * cfg.usable_capacity_wh

        if not throttled and usable <= enter_at:
            log.status("Throttling %s to %.0f%%", component.value, cfg.throttle_power_factor * 100)
            return True
        if throttled and usable > exit_at:
            log.status("Throttle released on %s", component.value)
            return False
        return throttled

    def update_throttles(self, storage_level_wh: float) -> dict[LoadComponent, bool]:
        for component in THROTTLED_COMPONENTS:
            self.throttled[component] = self.throttle(
                component, storage_level_wh, self.throttled[component]
            )
        return dict(self.throttled)

    def apply_throttle(self, mode: LoadMode) -> LoadMode:
        factors = {
            c: self._config.throttle_power_factor
            for c, active in self.throttled.items() if active
        }
        if not factors:
            return mode
        return mode.scaled(factors)

    def force_cooling(self, context: Optional[int] = None) -> bool:
        """Recovery action for Overheat: throttle CPU/GPU and re-check temperature."""
        for component in THROTTLED_COMPONENTS:
            self.throttled[component] = True
        limit = self._config.temperature_limit_c
        return all(
            self._sensors.read(SensorKind.TEMPERATURE, c.value) <= limit
            for c in THROTTLED_COMPONENTS
        )
