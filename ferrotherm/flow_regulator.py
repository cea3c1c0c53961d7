"""
ferrotherm/flow_regulator.py
============================
Ferrofluid Thermal-to-Electric Control Loop — Flow Regulator

Owns the ferrofluid loop (flow rate, smoothed trend, active path) and the
per-point magnets that modulate heat transfer.

Magnet strength (per point):
    B = B_min + (B_max − B_min) · clamp(Q / Q_max, 0, 1)
    over temperature → B, P_magnet × 0.9 and charger off

Flow trend (EMA, α = 0.1):
    trend = (1 − α) · trend + α · flow

Low-flow ladder:
    read → retry once → switch to secondary path → retry once → Fault:LowFlow
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from ferrotherm.config import PlantConfig, StageSpec
from ferrotherm.fault_manager import FaultManager
from ferrotherm.log_sink import LogSink
from ferrotherm.ports import ActuatorPort, SensorKind, SensorPort
from ferrotherm.status import FaultKind

log = LogSink(logging.getLogger(__name__))

THERMAL_DERATE: float = 0.9


class FlowPath(Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


@dataclass
class Magnet:
    point_index: int
    strength: float
    temperature: float = 25.0
    charger_active: bool = False
    power_w: float = 0.0


@dataclass
class FerrofluidLoop:
    flow_rate: float
    flow_trend: float
    flow_target: float
    active_path: FlowPath = FlowPath.PRIMARY


def interpolate_strength(stage: StageSpec, heat_demand_w: float, max_heat_w: float) -> float:
    """Linear magnet strength for a heat demand, within the stage's range."""
    ratio = min(max(heat_demand_w / max_heat_w, 0.0), 1.0)
    return stage.magnet_min_t + (stage.magnet_max_t - stage.magnet_min_t) * ratio


class FlowRegulator:
    """Magnet and flow control for every thermal point.

    Args:
        config:        Plant profile.
        sensors:       Flow, magnet temperature and strength readings.
        actuators:     Valves and magnet chargers.
        fault_manager: Receives LowFlow / MagnetFailure faults and holds
                       this regulator's recovery actions.
    """

    def __init__(self, config: PlantConfig, sensors: SensorPort,
                 actuators: ActuatorPort, fault_manager: FaultManager) -> None:
        self._config = config
        self._sensors = sensors
        self._actuators = actuators
        self._faults = fault_manager
        self.magnets: list[Magnet] = [
            Magnet(point_index=i, strength=stage.magnet_min_t)
            for i, stage in enumerate(config.stages)
        ]
        self.loop = FerrofluidLoop(
            flow_rate=config.initial_flow_rate,
            flow_trend=config.initial_flow_rate,
            flow_target=config.initial_flow_rate,
        )
        self.magnet_power_w: float = 0.0
        fault_manager.register(FaultKind.LOW_FLOW, self.flush_and_switch)
        fault_manager.register(FaultKind.MAGNET_FAILURE, self.reset_magnet_charger)

    @property
    def flow_rate(self) -> float:
        return self.loop.flow_rate

    # ------------------------------------------------------------------
    # Magnets
    # ------------------------------------------------------------------

    def adjust_magnet(self, point: int, heat_demand_w: float) -> bool:
        """Set magnet strength at ``point`` for the given heat demand.

        Thermal protection takes priority over flow optimisation.

        Returns:
            False if the resulting strength fell below the array minimum
            and the charger reset did not restore it.
        """
        stage = self._config.stages[point]
        magnet = self.magnets[point]

        strength = interpolate_strength(stage, heat_demand_w, self._config.max_heat_w)
        power = stage.magnet_power_w * strength / stage.magnet_max_t

        magnet.temperature = self._sensors.read(SensorKind.MAGNET_TEMPERATURE, point)
        if magnet.temperature > stage.magnet_temp_limit_c:
            strength *= THERMAL_DERATE
            power *= THERMAL_DERATE
            magnet.charger_active = False
            self._actuators.discharge_magnet(point)
            self._faults.warn(
                f"Magnet {point} at {magnet.temperature:.1f} °C exceeds "
                f"{stage.magnet_temp_limit_c:.1f} °C; derated"
            )
        else:
            magnet.charger_active = True
            self._actuators.charge_magnet(point, strength)

        magnet.strength = strength
        magnet.power_w = power

        if strength < stage.magnet_min_t:
            self._faults.raise_fault(
                FaultKind.MAGNET_FAILURE,
                f"magnet {point} strength {strength:.3f} T below {stage.magnet_min_t:.3f} T",
                context=point,
            )
            return self._faults.recover(FaultKind.MAGNET_FAILURE, point)
        return True

    def reset_magnet_charger(self, point: Optional[int]) -> bool:
        """Recovery action: recharge the magnet to its minimum and verify."""
        if point is None:
            return False
        stage = self._config.stages[point]
        magnet = self.magnets[point]
        self._actuators.charge_magnet(point, stage.magnet_min_t)
        measured = self._sensors.read(SensorKind.MAGNET_STRENGTH, point)
        if measured < stage.magnet_min_t:
            return False
        magnet.strength = measured
        magnet.power_w = stage.magnet_power_w * measured / stage.magnet_max_t
        magnet.charger_active = True
        return True

    # ------------------------------------------------------------------
    # Flow
    # ------------------------------------------------------------------

    def read_flow(self) -> float:
        return max(0.0, self._sensors.read(SensorKind.FLOW_RATE, self.loop.active_path))

    def switch_path(self) -> FlowPath:
        previous = self.loop.active_path
        self.loop.active_path = (
            FlowPath.SECONDARY if previous is FlowPath.PRIMARY else FlowPath.PRIMARY
        )
        log.status("Flow path switched %s -> %s", previous.value, self.loop.active_path.value)
        return self.loop.active_path

    def _set_target(self, target: float) -> None:
        self.loop.flow_target = target
        for point in range(self._config.point_count):
            self._actuators.adjust_valve(point, target)

    def flush_and_switch(self, context: Optional[int] = None) -> bool:
        """Recovery action: flush at the capped target on the other path."""
        self._set_target(self._config.max_flow_target)
        self.switch_path()
        self.loop.flow_rate = self.read_flow()
        return self.loop.flow_rate >= self._config.min_flow

    def monitor_flow(self, point_heats: Sequence[float]) -> bool:
        """Adjust every magnet, update the flow trend and handle low flow.

        Returns:
            True if all magnets are within range and flow is at or above
            the minimum at the end of the call.
        """
        cfg = self._config
        ok = True
        for point, heat in enumerate(point_heats):
            ok = self.adjust_magnet(point, heat) and ok
        self.magnet_power_w = sum(m.power_w for m in self.magnets)

        flow = self.read_flow()
        self.loop.flow_trend = (
            (1.0 - cfg.flow_trend_alpha) * self.loop.flow_trend + cfg.flow_trend_alpha * flow
        )

        if self.loop.flow_trend < cfg.flow_trend_low:
            boosted = min(self.loop.flow_target + cfg.flow_boost_step, cfg.max_flow_target)
            if boosted > self.loop.flow_target:
                log.diagnostic(
                    "Flow trend %.3f below %.3f; target raised to %.3f",
                    self.loop.flow_trend, cfg.flow_trend_low, boosted,
                )
                self._set_target(boosted)

        if flow < cfg.min_flow:
            self._faults.warn(f"Flow {flow:.3f} below minimum {cfg.min_flow:.3f}; retrying")
            flow = self.read_flow()
            if flow < cfg.min_flow and self.loop.active_path is FlowPath.PRIMARY:
                self.switch_path()
                flow = self.read_flow()

        self.loop.flow_rate = flow
        if flow >= cfg.min_flow:
            return ok

        self._faults.raise_fault(
            FaultKind.LOW_FLOW,
            f"flow {flow:.3f} below {cfg.min_flow:.3f} on {self.loop.active_path.value} path",
        )
        recovered = self._faults.recover(FaultKind.LOW_FLOW)
        if not recovered and not self._faults.is_critical:
            recovered = self._faults.recover(FaultKind.LOW_FLOW)
        return ok and recovered
