"""
ferrotherm/generator_bank.py
============================
Ferrofluid Thermal-to-Electric Control Loop — Generator Bank

Converts each thermal point's heat into electrical power through the
efficiency chain, then applies the per-point health check and bounded
recovery.

Equation:
    P = Q_clamped · η_pull · l · η_heat→gen · η_module · η_reg · η_cool
        · N_modules · f_flow · f_heat

    f_flow = flow / MIN_FLOW    if flow < MIN_FLOW, else 1
    f_heat = Q / MIN_HEAT       if Q < MIN_HEAT,    else 1
    Q_clamped = min(Q, MAX_HEAT)

Partial-power policy: low heat and low flow scale output towards zero
continuously; they never cut it off.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ferrotherm.config import PlantConfig, StageSpec
from ferrotherm.fault_manager import FaultManager
from ferrotherm.log_sink import LogSink
from ferrotherm.ports import SensorKind, SensorPort
from ferrotherm.status import FaultKind

log = LogSink(logging.getLogger(__name__))


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------

class GeneratorHealth(Enum):
    HEALTHY = "Healthy"
    DEGRADED = "Degraded"
    FAILED = "Failed"


@dataclass
class Generator:
    """Generator modules fitted at one thermal point."""
    point_index: int
    module_count: int
    efficiency: float
    last_power: float = 0.0
    health: GeneratorHealth = GeneratorHealth.HEALTHY

    def __post_init__(self) -> None:
        if self.module_count < 1:
            raise ValueError(
                f"module_count must be at least 1; received module_count={self.module_count!r}"
            )
        if not (0.0 < self.efficiency < 1.0):
            raise ValueError(
                f"efficiency must be in (0.0, 1.0); received efficiency={self.efficiency!r}"
            )


@dataclass(frozen=True)
class GeneratorOutput:
    """Result of one pure power computation.

    Attributes:
        power_w:    Output after partial-power scaling [W].
        warnings:   Human-readable reasons the output was scaled or clamped.
        full_power: True if neither low-heat nor low-flow scaling applied.
    """
    power_w: float
    warnings: tuple[str, ...] = field(default_factory=tuple)
    full_power: bool = True


@dataclass(frozen=True)
class TEGOutput:
    power_w: float
    waste_heat_w: float


# ---------------------------------------------------------------------------
# Pure functions
# ---------------------------------------------------------------------------

def compute_teg_output(heat_w: float, generator_eff: float) -> TEGOutput:
    """Split heat into electrical output and rejected heat.

    Equations:
        P_out   = Q · η
        Q_waste = Q − P_out

    Example:
        >>> compute_teg_output(51.3, 0.40).power_w
        20.52...   # waste_heat_w ≈ 30.78
    """
    if not (0.0 < generator_eff < 1.0):
        raise ValueError(
            f"Generator efficiency must be in (0.0, 1.0); received generator_eff={generator_eff!r}"
        )
    power = heat_w * generator_eff
    return TEGOutput(power_w=power, waste_heat_w=heat_w - power)


def compute_recovery_factor(nominal_power_w: float, module_count: int,
                            cap: float = 0.9) -> float:
    """Fraction of nominal output restored after a successful reset.

    Equation:
        r = min(P_nominal / (N_modules · 100), cap)
    """
    return max(0.0, min(nominal_power_w / (module_count * 100.0), cap))


def compute_generator_power(
    point_heat_w: float,
    module_count: int,
    efficiency: float,
    flow_rate: float,
    config: PlantConfig,
    loss_fraction: float = 1.0,
) -> GeneratorOutput:
    """Compute electrical output for one thermal point.

    Deterministic in its arguments; it never raises for out-of-window heat
    or flow and instead reports the condition in ``warnings``.

    Args:
        point_heat_w:  Heat at the point [W].
        module_count:  Generator modules at the point.
        efficiency:    Per-module conversion efficiency.
        flow_rate:     Ferrofluid flow rate (normalised).
        config:        Plant efficiencies and heat/flow windows.
        loss_fraction: Point loss fraction applied in the chain.

    Returns:
        :class:`GeneratorOutput`; ``power_w`` is never negative.
    """
    heat = max(0.0, point_heat_w)
    flow = max(0.0, flow_rate)
    warnings: list[str] = []
    flow_factor = 1.0
    heat_factor = 1.0

    if flow < config.min_flow:
        flow_factor = flow / config.min_flow
        warnings.append(f"flow {flow:.3f} below minimum {config.min_flow:.3f}; output scaled")
    if heat < config.min_heat_w:
        heat_factor = heat / config.min_heat_w
        warnings.append(f"heat {heat:.2f} W below minimum {config.min_heat_w:.2f} W; output scaled")
    elif heat > config.max_heat_w:
        warnings.append(f"heat {heat:.2f} W above maximum {config.max_heat_w:.2f} W; clamped")
        heat = config.max_heat_w

    power = (
        heat
        * config.magnet_pull_efficiency
        * loss_fraction
        * config.heat_to_generator_efficiency
        * efficiency
        * config.regulator_efficiency
        * config.cooling_efficiency
        * module_count
        * flow_factor
        * heat_factor
    )
    return GeneratorOutput(
        power_w=power,
        warnings=tuple(warnings),
        full_power=(flow_factor == 1.0 and heat_factor == 1.0),
    )


# ---------------------------------------------------------------------------
# Generator bank
# ---------------------------------------------------------------------------

class GeneratorBank:
    """Per-point generators with voltage health check and bounded recovery.

    Args:
        config:        Plant profile; one generator per stage.
        sensors:       Source of TEG voltage readings.
        fault_manager: Receives warnings, faults and recovery requests.
    """

    def __init__(self, config: PlantConfig, sensors: SensorPort,
                 fault_manager: FaultManager) -> None:
        self._config = config
        self._sensors = sensors
        self._faults = fault_manager
        self.generators: list[Generator] = [
            Generator(point_index=i, module_count=s.module_count, efficiency=s.module_efficiency)
            for i, s in enumerate(config.stages)
        ]
        fault_manager.register(FaultKind.GENERATOR_FAILURE, self.reset_generator)

    def voltage_ok(self, point: int) -> bool:
        """Boolean voltage-health probe for the generator at ``point``."""
        return self._sensors.read(SensorKind.TEG_VOLTAGE, point) >= self._config.min_teg_voltage

    def reset_generator(self, point: Optional[int]) -> bool:
        """Recovery action: reset the generator and re-probe its voltage."""
        if point is None:
            return False
        log.diagnostic("Resetting generator at point %d", point)
        return self.voltage_ok(point)

    def compute_point(self, point: int, heat_w: float, flow_rate: float) -> float:
        """Generate power at one point, running health check and recovery."""
        gen = self.generators[point]
        stage: StageSpec = self._config.stages[point]
        out = compute_generator_power(
            heat_w, gen.module_count, gen.efficiency, flow_rate, self._config,
            loss_fraction=stage.loss_fraction,
        )
        for reason in out.warnings:
            self._faults.warn(f"Generator {point}: {reason}")

        healthy = self.voltage_ok(point)
        if healthy and (not out.full_power or out.power_w > self._config.recovery_threshold_w):
            gen.health = GeneratorHealth.HEALTHY
            gen.last_power = out.power_w
            return out.power_w

        self._faults.raise_fault(
            FaultKind.GENERATOR_FAILURE,
            f"at point {point} (voltage ok={healthy}, power={out.power_w:.3f} W)",
            context=point,
        )
        recovered = self._faults.recover(FaultKind.GENERATOR_FAILURE, point)
        if not recovered and not self._faults.is_critical:
            recovered = self._faults.recover(FaultKind.GENERATOR_FAILURE, point)

        if recovered:
            factor = compute_recovery_factor(
                out.power_w, gen.module_count, self._config.recovery_factor_cap
            )
            gen.health = GeneratorHealth.DEGRADED
            gen.last_power = out.power_w * factor
            log.status("Generator %d recovered at %.0f%% capacity", point, factor * 100)
        else:
            gen.health = GeneratorHealth.FAILED
            gen.last_power = 0.0
        return gen.last_power

    def compute_all(self, heats: list[float], flow_rate: float) -> list[float]:
        return [self.compute_point(i, heat, flow_rate) for i, heat in enumerate(heats)]
