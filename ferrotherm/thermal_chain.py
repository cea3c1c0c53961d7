"""
ferrotherm/thermal_chain.py
===========================
Ferrofluid Thermal-to-Electric Control Loop — Thermal Chain

Heat flow through the ordered chain of thermal points.

Equations:
    Q_cpu = P_cpu · k_heat            Q_gpu = P_gpu · k_heat
    Q[0]   = (Q_cpu + Q_waste) · flow
    Q[i+1] = (Q[i] · c[i] · η_push + Q_gpu·[i+1 is the GPU point]) · l[i+1]

Rules:
    - Pure functions; no failure modes, no I/O.
    - The chain folds over any number of stage descriptors.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from ferrotherm.config import HEAT_FACTOR, PlantConfig, StageSpec


@dataclass
class ThermalPoint:
    """Heat arriving at one point of the chain this cycle.

    Attributes:
        index:              Zero-based position in the chain.
        heat_in:            Heat at this point after loss [W].
        carryover_fraction: Share passed to the next point.
        loss_fraction:      Share of arriving heat kept at this point.
    """
    index: int
    heat_in: float
    carryover_fraction: float
    loss_fraction: float


def compute_total_heat(cpu_power_w: float, gpu_power_w: float,
                       heat_factor: float = HEAT_FACTOR) -> float:
    """Total heat produced by the compute load.

    Equation:
        Q_total = (P_cpu + P_gpu) · k_heat

    Example:
        >>> compute_total_heat(35.0, 10.0, 1.2)
        54.0
    """
    return cpu_power_w * heat_factor + gpu_power_w * heat_factor


def compute_carryover(heat_w: float, carryover_fraction: float,
                      flow_push_efficiency: float) -> float:
    """Heat handed from one point to the next before the receiver's loss."""
    return heat_w * carryover_fraction * flow_push_efficiency


def compute_point_heats(
    cpu_power_w: float,
    gpu_power_w: float,
    waste_heat_w: float,
    flow_rate: float,
    stages: Sequence[StageSpec],
    flow_push_efficiency: float,
    heat_factor: float = HEAT_FACTOR,
) -> list[float]:
    """Compute the ordered per-point heat values for one cycle.

    The first point receives CPU heat plus ambient waste heat scaled by the
    flow rate.  Every later point receives the carryover of its predecessor;
    at the GPU injection point the GPU heat is added before that point's
    loss fraction is applied.

    Args:
        cpu_power_w:          CPU electrical power [W].
        gpu_power_w:          GPU electrical power [W].
        waste_heat_w:         Ambient waste heat entering point 1 [W].
        flow_rate:            Current ferrofluid flow rate (normalised).
        stages:               Ordered stage descriptors; one heat per stage.
        flow_push_efficiency: Fraction of carryover the flow actually moves.
        heat_factor:          Electrical-to-thermal factor for CPU/GPU.

    Returns:
        One non-negative heat value [W] per stage, in chain order.
    """
    if not stages:
        return []

    cpu_heat = max(0.0, cpu_power_w) * heat_factor
    gpu_heat = max(0.0, gpu_power_w) * heat_factor
    flow = max(0.0, flow_rate)

    heats: list[float] = [(cpu_heat + max(0.0, waste_heat_w)) * flow]
    for previous, stage in zip(stages, stages[1:]):
        arriving = compute_carryover(heats[-1], previous.carryover_fraction, flow_push_efficiency)
        if stage.gpu_injection:
            arriving += gpu_heat
        heats.append(arriving * stage.loss_fraction)
    return heats


class ThermalChain:
    """Stage-aware wrapper producing :class:`ThermalPoint` records."""

    def __init__(self, config: PlantConfig) -> None:
        self._config = config

    def compute(self, cpu_power_w: float, gpu_power_w: float,
                waste_heat_w: float, flow_rate: float) -> list[ThermalPoint]:
        cfg = self._config
        heats = compute_point_heats(
            cpu_power_w,
            gpu_power_w,
            waste_heat_w,
            flow_rate,
            cfg.stages,
            flow_push_efficiency=cfg.flow_push_efficiency,
            heat_factor=cfg.heat_factor,
        )
        return [
            ThermalPoint(
                index=i,
                heat_in=heat,
                carryover_fraction=stage.carryover_fraction,
                loss_fraction=stage.loss_fraction,
            )
            for i, (heat, stage) in enumerate(zip(heats, cfg.stages))
        ]
