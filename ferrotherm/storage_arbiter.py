"""
ferrotherm/storage_arbiter.py
=============================
Ferrofluid Thermal-to-Electric Control Loop — Storage Arbiter

Sole writer of the storage bank.  Each cycle it settles generated power
against consumption:

    P_breaker = P_generated · η_breaker

Deficit (P_breaker < P_load):
    covered from the supercapacitor, then from the battery down to its
    reserve floor; the battery delivers η_charge of what it releases.
    Insufficient storage → Fault:LowStorage, nothing drawn.

Surplus (P_breaker > P_load), in strict priority order:
    1. Battery charging up to capacity    (stores η_charge of input)
    2. Supercapacitor buffering           (when fitted)
    3. Export to an external load port    (when fitted)
    4. Dissipation sink, never above its rating; the rest is curtailed

Energy per cycle:
    E = P · dt,   dt = period_s / 3600  [h]

    period_s is the time the cycle actually spans: the nominal cycle time,
    or the longer fault cycle time while the loop is degraded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ferrotherm.config import PlantConfig
from ferrotherm.fault_manager import FaultManager
from ferrotherm.log_sink import LogSink
from ferrotherm.ports import ActuatorPort, SensorKind, SensorPort
from ferrotherm.status import FaultKind

log = LogSink(logging.getLogger(__name__))

EXPORT_DESTINATION: str = "external_load"
DISSIPATION_SINK: str = "shunt"
EPSILON_W: float = 1e-9            # residual surplus treated as fully routed


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------

@dataclass
class StorageBank:
    """Battery (plus optional supercapacitor) energy state.

    Attributes:
        level_wh:                 Stored battery energy [Wh].
        capacity_wh:              Current battery capacity [Wh]; only decreases.
        degradation_threshold_wh: Capacity below which a Warning is logged.
        charge_eff:               Charge/discharge efficiency, (0, 1].
        reserve_floor_wh:         Energy never drawn for the load [Wh].
        supercap_level_wh:        Stored supercapacitor energy [Wh].
        supercap_capacity_wh:     Supercapacitor capacity [Wh]; 0 = not fitted.
    """
    level_wh: float
    capacity_wh: float
    degradation_threshold_wh: float
    charge_eff: float
    reserve_floor_wh: float = 0.0
    supercap_level_wh: float = 0.0
    supercap_capacity_wh: float = 0.0

    def __post_init__(self) -> None:
        if self.capacity_wh <= 0.0:
            raise ValueError(
                f"Storage capacity must be positive; received capacity_wh={self.capacity_wh!r}"
            )
        if not (0.0 <= self.level_wh <= self.capacity_wh):
            raise ValueError(
                f"level_wh must be in [0.0, {self.capacity_wh!r}]; received level_wh={self.level_wh!r}"
            )
        if not (0.0 < self.charge_eff <= 1.0):
            raise ValueError(
                f"Charging efficiency must be in (0.0, 1.0]; received charge_eff={self.charge_eff!r}"
            )

    @property
    def soc(self) -> float:
        return self.level_wh / self.capacity_wh

    @classmethod
    def from_config(cls, config: PlantConfig) -> StorageBank:
        return cls(
            level_wh=config.initial_level_wh,
            capacity_wh=config.capacity_wh,
            degradation_threshold_wh=config.degradation_threshold_wh,
            charge_eff=config.charge_efficiency,
            reserve_floor_wh=config.reserve_floor_wh,
            supercap_capacity_wh=config.supercap_capacity_wh,
        )


@dataclass
class SettleResult:
    """Outcome of one settle step.  Power values in W, energy in Wh.

    For a surplus the following identity holds:

        battery_w + supercap_w + export_w + dissipated_w + curtailed_w == excess_or_deficit_w

    Attributes:
        breaker_output_w:    Generated power after the breaker.
        consumption_w:       Load the bus had to supply.
        excess_or_deficit_w: Positive surplus, negative deficit covered by
                             storage, 0 when balanced or storage ran short.
        level_wh:            Battery level after settling.
        battery_w:           Power into (+) or out of (−) the battery.
        supercap_w:          Power into (+) or out of (−) the supercapacitor.
        export_w:            Power redirected to the external load port.
        dissipated_w:        Power sent to the dissipation sink.
        curtailed_w:         Surplus beyond every sink's rating.
        low_storage:         Storage could not cover the deficit.
    """
    breaker_output_w: float
    consumption_w: float
    excess_or_deficit_w: float
    level_wh: float
    battery_w: float = 0.0
    supercap_w: float = 0.0
    export_w: float = 0.0
    dissipated_w: float = 0.0
    curtailed_w: float = 0.0
    low_storage: bool = False


# ---------------------------------------------------------------------------
# Arbiter
# ---------------------------------------------------------------------------

class StorageArbiter:
    """Charges, discharges and routes surplus for the single storage bank.

    Args:
        config:        Plant profile (efficiencies, sink ratings, cycle time).
        actuators:     Export port and dissipation sink.
        fault_manager: Receives LowStorage faults and degradation warnings.
        bank:          Pre-built bank; defaults to one built from ``config``.
    """

    def __init__(self, config: PlantConfig, actuators: ActuatorPort,
                 fault_manager: FaultManager, bank: Optional[StorageBank] = None) -> None:
        self._config = config
        self._actuators = actuators
        self._faults = fault_manager
        self.bank = bank or StorageBank.from_config(config)

    @property
    def level_wh(self) -> float:
        return self.bank.level_wh

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    def charge(self, energy_wh: float) -> float:
        """Offer ``energy_wh`` to the battery.

        Stores ``energy_wh · η`` up to the remaining headroom.

        Returns:
            Input energy actually consumed [Wh].
        """
        if energy_wh <= 0.0:
            return 0.0
        bank = self.bank
        stored = min(energy_wh * bank.charge_eff, bank.capacity_wh - bank.level_wh)
        stored = max(0.0, stored)
        bank.level_wh = self._clamp(bank.level_wh + stored)
        return stored / bank.charge_eff

    def discharge(self, energy_wh: float) -> float:
        """Release up to ``energy_wh`` from the battery, above the reserve floor.

        Returns:
            Energy delivered to the bus [Wh] (released · η).
        """
        if energy_wh <= 0.0:
            return 0.0
        bank = self.bank
        released = max(0.0, min(energy_wh, bank.level_wh - bank.reserve_floor_wh))
        bank.level_wh = self._clamp(bank.level_wh - released)
        return released * bank.charge_eff

    def deduct(self, energy_wh: float) -> float:
        """Remove a fixed amount (e.g. boot energy) with no efficiency loss."""
        taken = max(0.0, min(energy_wh, self.bank.level_wh))
        self.bank.level_wh = self._clamp(self.bank.level_wh - taken)
        return taken

    def _interval_h(self, period_s: Optional[float]) -> float:
        if period_s is None:
            return self._config.interval_h
        return period_s / 3600.0

    def available_power_w(self, period_s: Optional[float] = None) -> float:
        """Power storage can add to the bus over ``period_s``, within its rating [W].

        ``period_s`` defaults to the nominal cycle time.
        """
        return min(self._config.max_discharge_w, self.available_wh() / self._interval_h(period_s))

    def available_wh(self) -> float:
        """Energy the bank can deliver to the bus right now [Wh]."""
        bank = self.bank
        battery = max(0.0, bank.level_wh - bank.reserve_floor_wh) * bank.charge_eff
        return battery + bank.supercap_level_wh

    # ------------------------------------------------------------------
    # Settle
    # ------------------------------------------------------------------

    def settle(self, generated_power_w: float, consumption_w: float,
               period_s: Optional[float] = None) -> SettleResult:
        """Balance one cycle's generation against consumption.

        Args:
            generated_power_w: Total generator output [W].
            consumption_w:     Load plus magnet draw [W].
            period_s:          Time the cycle actually spans [s]; defaults
                               to the nominal cycle time.
        """
        cfg = self._config
        dt_h = self._interval_h(period_s)
        breaker = max(0.0, generated_power_w) * cfg.breaker_efficiency

        if breaker < consumption_w:
            return self._cover_deficit(breaker, consumption_w, dt_h)
        if breaker > consumption_w:
            return self._route_surplus(breaker, consumption_w, dt_h)
        return SettleResult(breaker, consumption_w, 0.0, self.bank.level_wh)

    def _cover_deficit(self, breaker: float, consumption_w: float, dt_h: float) -> SettleResult:
        bank = self.bank
        deficit_w = consumption_w - breaker
        need_wh = deficit_w * dt_h

        if self.available_wh() < need_wh:
            if not self._faults.is_active(FaultKind.LOW_STORAGE):
                self._faults.raise_fault(
                    FaultKind.LOW_STORAGE,
                    f"deficit {deficit_w:.2f} W exceeds stored energy {bank.level_wh:.3f} Wh",
                )
                self._faults.recover(FaultKind.LOW_STORAGE)
            return SettleResult(breaker, consumption_w, 0.0, bank.level_wh, low_storage=True)

        from_supercap = min(bank.supercap_level_wh, need_wh)
        bank.supercap_level_wh -= from_supercap
        from_battery = self.discharge((need_wh - from_supercap) / bank.charge_eff)

        return SettleResult(
            breaker_output_w=breaker,
            consumption_w=consumption_w,
            excess_or_deficit_w=-deficit_w,
            level_wh=bank.level_wh,
            battery_w=-from_battery / dt_h,
            supercap_w=-from_supercap / dt_h,
        )

    def _route_surplus(self, breaker: float, consumption_w: float, dt_h: float) -> SettleResult:
        cfg = self._config
        bank = self.bank
        excess_w = breaker - consumption_w
        remaining_w = excess_w

        # Priority 1 — battery charging up to capacity
        battery_w = self.charge(remaining_w * dt_h) / dt_h
        remaining_w -= battery_w

        # Priority 2 — supercapacitor buffering
        supercap_wh = min(remaining_w * dt_h, bank.supercap_capacity_wh - bank.supercap_level_wh)
        supercap_wh = max(0.0, supercap_wh)
        bank.supercap_level_wh += supercap_wh
        supercap_w = supercap_wh / dt_h
        remaining_w -= supercap_w

        # Priority 3 — external load / export port
        export_w = 0.0
        if cfg.export_capacity_w > 0.0 and remaining_w > EPSILON_W:
            offer = min(remaining_w, cfg.export_capacity_w)
            if self._actuators.redirect_power(offer, EXPORT_DESTINATION):
                export_w = offer
                remaining_w -= export_w

        # Priority 4 — bounded dissipation
        if remaining_w <= EPSILON_W:
            remaining_w = 0.0
        dissipated_w = min(remaining_w, cfg.dissipation_capacity_w)
        if dissipated_w > 0.0:
            self._actuators.dissipate_excess(dissipated_w, DISSIPATION_SINK)
        curtailed_w = remaining_w - dissipated_w
        if curtailed_w > EPSILON_W:
            self._faults.warn(
                f"Surplus {curtailed_w:.2f} W exceeds dissipation rating "
                f"{cfg.dissipation_capacity_w:.2f} W; curtailed"
            )

        return SettleResult(
            breaker_output_w=breaker,
            consumption_w=consumption_w,
            excess_or_deficit_w=excess_w,
            level_wh=bank.level_wh,
            battery_w=battery_w,
            supercap_w=supercap_w,
            export_w=export_w,
            dissipated_w=dissipated_w,
            curtailed_w=curtailed_w,
        )

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def poll_battery(self, sensors: SensorPort) -> float:
        """Read the reported capacity and apply any degradation.

        Capacity only ever decreases; the level is clamped to it.

        Returns:
            Capacity in effect after the poll [Wh].
        """
        bank = self.bank
        reported = sensors.read(SensorKind.BATTERY_CAPACITY)
        if reported < bank.capacity_wh:
            bank.capacity_wh = max(reported, bank.reserve_floor_wh, 1e-9)
            bank.level_wh = self._clamp(bank.level_wh)
            log.diagnostic("Battery capacity reduced to %.2f Wh", bank.capacity_wh)
        if bank.capacity_wh < bank.degradation_threshold_wh:
            self._faults.warn(
                f"Battery capacity {bank.capacity_wh:.2f} Wh below degradation "
                f"threshold {bank.degradation_threshold_wh:.2f} Wh"
            )
        log.diagnostic(
            "Battery SoC reported %.3f, modelled %.3f",
            sensors.read(SensorKind.BATTERY_SOC), bank.soc,
        )
        return bank.capacity_wh

    def _clamp(self, energy_wh: float) -> float:
        """Enforce physical energy bounds [0, capacity_wh]."""
        return max(0.0, min(self.bank.capacity_wh, energy_wh))
