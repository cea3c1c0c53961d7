"""
ferrotherm/config.py
====================
Ferrofluid Thermal-to-Electric Control Loop — Plant Configuration

Engineering constants for the reference hardware profile, plus the
:class:`PlantConfig` object that gathers them so every component reads
one validated configuration instead of ambient globals.

Rules:
    - Module constants are raw engineering values; no derived quantities.
    - Power in W, energy in Wh, temperature in °C, magnet strength in T,
      flow rate normalised (1.0 = design flow), time in seconds.
    - Profiles differ only in data; the control algorithm is shared.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum


# ---------------------------------------------------------------------------
# Heat sources
# ---------------------------------------------------------------------------

HEAT_FACTOR: float = 1.2
"""Electrical-to-thermal conversion factor for CPU/GPU power (dimensionless).

CPU and GPU heat = power × 1.2 (fixed 20 % conversion overhead).
"""

AMBIENT_WASTE_HEAT_W: float = 8.0
"""Nominal ambient waste heat injected at the first thermal point (W)."""


# ---------------------------------------------------------------------------
# Ferrofluid flow
# ---------------------------------------------------------------------------

INITIAL_FLOW_RATE: float = 1.0     # normalised design flow
MIN_FLOW: float = 0.5              # below this generators run scaled
FLOW_TREND_LOW: float = 0.7        # EMA level that triggers a predictive boost
FLOW_TREND_ALPHA: float = 0.1      # EMA weight of the newest sample
FLOW_BOOST_STEP: float = 0.1       # target increase per predictive boost
MAX_FLOW_TARGET: float = 1.5       # hard cap on the flow target
FLOW_PUSH_EFFICIENCY: float = 0.95


# ---------------------------------------------------------------------------
# Generator (TEG) chain
# ---------------------------------------------------------------------------

MIN_HEAT_W: float = 5.0
MAX_HEAT_W: float = 150.0
MAGNET_PULL_EFFICIENCY: float = 0.95
HEAT_TO_GENERATOR_EFFICIENCY: float = 0.90
REGULATOR_EFFICIENCY: float = 0.95
COOLING_EFFICIENCY: float = 0.90
RECOVERY_THRESHOLD_W: float = 0.5
MIN_TEG_VOLTAGE: float = 0.8
RECOVERY_FACTOR_CAP: float = 0.9


# ---------------------------------------------------------------------------
# Storage bank
# ---------------------------------------------------------------------------

BREAKER_EFFICIENCY: float = 0.98
STORAGE_CAPACITY_WH: float = 100.0
STORAGE_INITIAL_LEVEL_WH: float = 60.0
CHARGE_EFFICIENCY: float = 0.90
DEGRADATION_THRESHOLD_WH: float = 80.0
DISSIPATION_CAPACITY_W: float = 40.0
MAX_DISCHARGE_W: float = 60.0       # storage discharge rating offered to the load
BATTERY_POLL_INTERVAL: int = 10    # cycles between battery health polls


# ---------------------------------------------------------------------------
# Load modes and throttling
# ---------------------------------------------------------------------------

MIN_STORAGE_THRESHOLD_WH: float = 5.0
THROTTLE_ENTER_FRACTION: float = 0.30   # of usable capacity
THROTTLE_EXIT_FRACTION: float = 0.50    # of usable capacity
THROTTLE_POWER_FACTOR: float = 0.5
PARTIAL_MODE_FRACTION: float = 0.60     # of the full-mode total
CPU_SHARE: float = 0.67                 # CPU:GPU split in partial mode
TEMPERATURE_LIMIT_C: float = 85.0


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

CYCLE_TIME_S: float = 1.0
FAULT_CYCLE_TIME_S: float = 5.0
BOOT_ENERGY_WH: float = 0.5
AC_EFFICIENCY: float = 0.90


# ---------------------------------------------------------------------------
# Structured configuration
# ---------------------------------------------------------------------------

class LoadComponent(Enum):
    """Stable identifiers for the powered subcomponents of the load."""
    CPU = "cpu"
    GPU = "gpu"
    MEMORY = "memory"
    STORAGE_IO = "storage_io"
    COOLING = "cooling"


@dataclass(frozen=True)
class ComponentSpec:
    """Power envelope of one load component [W].

    Attributes:
        full_w:  Draw in the full load mode.
        idle_w:  Draw in the Idle mode.
        max_w:   Hardware maximum; partial modes never exceed it.
    """
    full_w: float
    idle_w: float
    max_w: float


DEFAULT_COMPONENTS: dict[LoadComponent, ComponentSpec] = {
    LoadComponent.CPU:        ComponentSpec(full_w=35.0, idle_w=5.0, max_w=35.0),
    LoadComponent.GPU:        ComponentSpec(full_w=10.0, idle_w=1.0, max_w=10.0),
    LoadComponent.MEMORY:     ComponentSpec(full_w=4.0,  idle_w=1.5, max_w=4.0),
    LoadComponent.STORAGE_IO: ComponentSpec(full_w=2.0,  idle_w=0.5, max_w=2.0),
    LoadComponent.COOLING:    ComponentSpec(full_w=3.0,  idle_w=1.0, max_w=3.0),
}


@dataclass(frozen=True)
class StageSpec:
    """One thermal point in the conversion chain.

    Attributes:
        carryover_fraction: Share of this point's heat passed on, (0, 1].
        loss_fraction:      Share of the arriving heat kept at this point, (0, 1].
        module_count:       Generator modules fitted at this point (≥ 1).
        module_efficiency:  Per-module conversion efficiency, (0, 1).
        gpu_injection:      GPU heat joins the chain at this point.
        magnet_min_t:       Minimum magnet strength [T].
        magnet_max_t:       Maximum magnet strength [T].
        magnet_temp_limit_c: Magnet over-temperature limit [°C].
        magnet_power_w:     Magnet draw at maximum strength [W].
    """
    carryover_fraction: float = 0.85
    loss_fraction: float = 0.90
    module_count: int = 4
    module_efficiency: float = 0.08
    gpu_injection: bool = False
    magnet_min_t: float = 0.2
    magnet_max_t: float = 1.2
    magnet_temp_limit_c: float = 80.0
    magnet_power_w: float = 0.6

    def __post_init__(self) -> None:
        for name in ("carryover_fraction", "loss_fraction"):
            value = getattr(self, name)
            if not (0.0 < value <= 1.0):
                raise ValueError(f"{name} must be in (0.0, 1.0]; received {name}={value!r}")
        if self.module_count < 1:
            raise ValueError(
                f"module_count must be at least 1; received module_count={self.module_count!r}"
            )
        if not (0.0 < self.module_efficiency < 1.0):
            raise ValueError(
                f"module_efficiency must be in (0.0, 1.0); "
                f"received module_efficiency={self.module_efficiency!r}"
            )
        if not (0.0 <= self.magnet_min_t < self.magnet_max_t):
            raise ValueError(
                f"magnet strength range is empty; received "
                f"[{self.magnet_min_t!r}, {self.magnet_max_t!r}]"
            )


@dataclass(frozen=True)
class PlantConfig:
    """Complete hardware profile consumed by every control-loop component.

    All defaults reproduce the module constants above.  Instances are
    immutable; use :meth:`with_overrides` to derive a variant.

    Raises:
        ValueError: If any efficiency, threshold or capacity is out of range.
    """
    stages: tuple[StageSpec, ...] = (
        StageSpec(),
        StageSpec(gpu_injection=True),
        StageSpec(module_count=3),
        StageSpec(module_count=2),
    )
    components: dict[LoadComponent, ComponentSpec] = field(
        default_factory=lambda: dict(DEFAULT_COMPONENTS)
    )

    heat_factor: float = HEAT_FACTOR
    ambient_waste_heat_w: float = AMBIENT_WASTE_HEAT_W

    initial_flow_rate: float = INITIAL_FLOW_RATE
    min_flow: float = MIN_FLOW
    flow_trend_low: float = FLOW_TREND_LOW
    flow_trend_alpha: float = FLOW_TREND_ALPHA
    flow_boost_step: float = FLOW_BOOST_STEP
    max_flow_target: float = MAX_FLOW_TARGET
    flow_push_efficiency: float = FLOW_PUSH_EFFICIENCY

    min_heat_w: float = MIN_HEAT_W
    max_heat_w: float = MAX_HEAT_W
    magnet_pull_efficiency: float = MAGNET_PULL_EFFICIENCY
    heat_to_generator_efficiency: float = HEAT_TO_GENERATOR_EFFICIENCY
    regulator_efficiency: float = REGULATOR_EFFICIENCY
    cooling_efficiency: float = COOLING_EFFICIENCY
    recovery_threshold_w: float = RECOVERY_THRESHOLD_W
    min_teg_voltage: float = MIN_TEG_VOLTAGE
    recovery_factor_cap: float = RECOVERY_FACTOR_CAP

    breaker_efficiency: float = BREAKER_EFFICIENCY
    capacity_wh: float = STORAGE_CAPACITY_WH
    initial_level_wh: float = STORAGE_INITIAL_LEVEL_WH
    charge_efficiency: float = CHARGE_EFFICIENCY
    reserve_floor_wh: float = 0.0
    degradation_threshold_wh: float = DEGRADATION_THRESHOLD_WH
    supercap_capacity_wh: float = 0.0
    export_capacity_w: float = 0.0
    dissipation_capacity_w: float = DISSIPATION_CAPACITY_W
    max_discharge_w: float = MAX_DISCHARGE_W
    battery_poll_interval: int = BATTERY_POLL_INTERVAL

    min_storage_threshold_wh: float = MIN_STORAGE_THRESHOLD_WH
    throttle_enter_fraction: float = THROTTLE_ENTER_FRACTION
    throttle_exit_fraction: float = THROTTLE_EXIT_FRACTION
    throttle_power_factor: float = THROTTLE_POWER_FACTOR
    partial_mode_fraction: float = PARTIAL_MODE_FRACTION
    cpu_share: float = CPU_SHARE
    temperature_limit_c: float = TEMPERATURE_LIMIT_C

    cycle_time_s: float = CYCLE_TIME_S
    fault_cycle_time_s: float = FAULT_CYCLE_TIME_S
    boot_energy_wh: float = BOOT_ENERGY_WH
    ac_efficiency: float = AC_EFFICIENCY

    def __post_init__(self) -> None:
        if not self.stages:
            raise ValueError("a plant needs at least one thermal point; received stages=()")
        for name in (
            "magnet_pull_efficiency",
            "heat_to_generator_efficiency",
            "regulator_efficiency",
            "cooling_efficiency",
            "breaker_efficiency",
            "charge_efficiency",
            "flow_push_efficiency",
            "flow_trend_alpha",
            "ac_efficiency",
        ):
            value = getattr(self, name)
            if not (0.0 < value <= 1.0):
                raise ValueError(f"{name} must be in (0.0, 1.0]; received {name}={value!r}")
        if self.capacity_wh <= 0.0:
            raise ValueError(
                f"Storage capacity must be positive; received capacity_wh={self.capacity_wh!r}"
            )
        if not (0.0 <= self.initial_level_wh <= self.capacity_wh):
            raise ValueError(
                f"initial_level_wh must be in [0.0, capacity_wh]; "
                f"received initial_level_wh={self.initial_level_wh!r}"
            )
        if not (0.0 <= self.reserve_floor_wh < self.capacity_wh):
            raise ValueError(
                f"reserve_floor_wh must be in [0.0, capacity_wh); "
                f"received reserve_floor_wh={self.reserve_floor_wh!r}"
            )
        if not (0.0 < self.min_flow <= self.max_flow_target):
            raise ValueError(
                f"min_flow must be in (0.0, max_flow_target]; received min_flow={self.min_flow!r}"
            )
        if not (0.0 < self.min_heat_w < self.max_heat_w):
            raise ValueError(
                f"heat window is empty; received [{self.min_heat_w!r}, {self.max_heat_w!r}]"
            )
        if not (0.0 < self.throttle_enter_fraction < self.throttle_exit_fraction <= 1.0):
            raise ValueError(
                "throttle thresholds must satisfy 0 < enter < exit <= 1; received "
                f"enter={self.throttle_enter_fraction!r}, exit={self.throttle_exit_fraction!r}"
            )
        if not (0.0 < self.partial_mode_fraction < 1.0):
            raise ValueError(
                f"partial_mode_fraction must be in (0.0, 1.0); "
                f"received partial_mode_fraction={self.partial_mode_fraction!r}"
            )
        if not (0.0 < self.cpu_share < 1.0):
            raise ValueError(f"cpu_share must be in (0.0, 1.0); received cpu_share={self.cpu_share!r}")
        if self.cycle_time_s <= 0.0 or self.fault_cycle_time_s < self.cycle_time_s:
            raise ValueError(
                "cycle times must satisfy 0 < cycle_time_s <= fault_cycle_time_s; received "
                f"cycle_time_s={self.cycle_time_s!r}, fault_cycle_time_s={self.fault_cycle_time_s!r}"
            )
        if self.battery_poll_interval < 1:
            raise ValueError(
                f"battery_poll_interval must be at least 1; "
                f"received battery_poll_interval={self.battery_poll_interval!r}"
            )
        missing = set(LoadComponent) - set(self.components)
        if missing:
            names = ", ".join(sorted(c.value for c in missing))
            raise ValueError(f"components is missing entries for: {names}")

    @property
    def point_count(self) -> int:
        return len(self.stages)

    @property
    def interval_h(self) -> float:
        """Nominal cycle length in hours, used to turn W into Wh."""
        return self.cycle_time_s / 3600.0

    @property
    def usable_capacity_wh(self) -> float:
        return self.capacity_wh - self.reserve_floor_wh

    def with_overrides(self, **changes) -> PlantConfig:
        """Return a copy with the given fields replaced (and re-validated)."""
        return replace(self, **changes)


# ---------------------------------------------------------------------------
# Hardware profiles
# ---------------------------------------------------------------------------

PROFILES: dict[str, PlantConfig] = {
    "four_point": PlantConfig(),
    "two_point": PlantConfig(
        stages=(
            StageSpec(module_count=6, module_efficiency=0.07),
            StageSpec(module_count=4, module_efficiency=0.07, gpu_injection=True),
        ),
        capacity_wh=50.0,
        initial_level_wh=30.0,
        degradation_threshold_wh=40.0,
        dissipation_capacity_w=25.0,
    ),
    "four_point_supercap": PlantConfig(
        reserve_floor_wh=10.0,
        supercap_capacity_wh=2.0,
        export_capacity_w=15.0,
    ),
}


def load_profile(name: str) -> PlantConfig:
    """Look up a named hardware profile.

    Raises:
        KeyError: If ``name`` is not one of :data:`PROFILES`.
    """
    try:
        return PROFILES[name]
    except KeyError:
        known = ", ".join(sorted(PROFILES))
        raise KeyError(f"Unknown profile {name!r}; known profiles: {known}") from None
