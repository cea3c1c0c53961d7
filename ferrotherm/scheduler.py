"""
ferrotherm/scheduler.py
=======================
Ferrofluid Thermal-to-Electric Control Loop — Scheduler

Cyclic driver that owns every component and runs them in a fixed order:

    boot (once) → battery poll → load pre-select → CPU/GPU throttle check
    → temperature check → thermal chain → flow monitor → generators
    → load select → storage settle → low-storage check → status log
    → sleep(cycle_time)

Single-threaded; the only suspension point is the end-of-cycle sleep.
Critical status clears the running flag and the loop exits after the
current cycle with a final shutdown entry.

Energy settled in a cycle covers the wait that led into it: the nominal
cycle time, or the fault cycle time after a Warning or Fault cycle.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ferrotherm.config import LoadComponent, PlantConfig
from ferrotherm.fault_manager import FaultManager
from ferrotherm.flow_regulator import FlowRegulator
from ferrotherm.generator_bank import GeneratorBank
from ferrotherm.load_controller import THROTTLED_COMPONENTS, LoadController, LoadMode
from ferrotherm.log_sink import LogSink
from ferrotherm.ports import ActuatorPort, SensorKind, SensorPort
from ferrotherm.status import FaultKind, StatusKind, SystemStatus
from ferrotherm.storage_arbiter import SettleResult, StorageArbiter
from ferrotherm.thermal_chain import ThermalChain

log = LogSink(logging.getLogger(__name__))


@dataclass
class CycleReport:
    """Record of one completed control cycle."""
    cycle: int
    point_heats_w: list[float]
    generated_w: list[float]
    total_generated_w: float
    magnet_power_w: float
    flow_rate: float
    mode: LoadMode
    consumption_w: float
    settle: SettleResult
    level_wh: float
    status: SystemStatus
    cycle_time_s: float
    period_s: float


class Scheduler:
    """Owns and sequences all control-loop components.

    Args:
        config:    Plant profile.
        sensors:   Sensor collaborator shared by all components.
        actuators: Actuator collaborator shared by all components.
        sleep:     End-of-cycle wait; injectable so tests run instantly.
    """

    def __init__(self, config: PlantConfig, sensors: SensorPort, actuators: ActuatorPort,
                 sleep: Callable[[float], None] = time.sleep) -> None:
        self.config = config
        self.sensors = sensors
        self.actuators = actuators
        self._sleep = sleep

        self.faults = FaultManager()
        self.thermal = ThermalChain(config)
        self.flow = FlowRegulator(config, sensors, actuators, self.faults)
        self.generators = GeneratorBank(config, sensors, self.faults)
        self.storage = StorageArbiter(config, actuators, self.faults)
        self.loads = LoadController(
            config, self.faults, sensors, storage_level=lambda: self.storage.level_wh
        )

        self.running: bool = False
        self.booted: bool = False
        self.cycle: int = 0
        self.available_power_w: float = 0.0
        self.history: list[CycleReport] = []

    @property
    def status(self) -> SystemStatus:
        return self.faults.status

    # ------------------------------------------------------------------
    # Boot and timing
    # ------------------------------------------------------------------

    def boot(self) -> None:
        """Pay the boot energy once, from AC/backup if storage is too low."""
        cfg = self.config
        if self.storage.level_wh < cfg.boot_energy_wh:
            watts = self.actuators.draw_ac_power(cfg.ac_efficiency)
            log.status("Boot: storage %.3f Wh below %.3f Wh; drew %.2f W from AC/backup",
                       self.storage.level_wh, cfg.boot_energy_wh, watts)
        else:
            self.storage.deduct(cfg.boot_energy_wh)
            log.status("Boot: %.3f Wh drawn from storage; %.3f Wh remaining",
                       cfg.boot_energy_wh, self.storage.level_wh)
        self.booted = True

    def cycle_time(self) -> float:
        if self.status.kind in (StatusKind.FAULT, StatusKind.WARNING):
            return self.config.fault_cycle_time_s
        return self.config.cycle_time_s

    def stop(self) -> None:
        """Request a cooperative stop at the next cycle boundary."""
        self.running = False

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def _check_temperatures(self) -> None:
        limit = self.config.temperature_limit_c
        for component in THROTTLED_COMPONENTS:
            temp = self.sensors.read(SensorKind.TEMPERATURE, component.value)
            if temp > limit:
                self.faults.raise_fault(
                    FaultKind.OVERHEAT,
                    f"{component.value} at {temp:.1f} °C exceeds {limit:.1f} °C",
                )
                self.faults.recover(FaultKind.OVERHEAT)
                return

    def run_cycle(self) -> CycleReport:
        cfg = self.config
        if not self.booted:
            self.boot()
        # the wait that led into this cycle, set by the previous cycle's status
        period_s = self.cycle_time()
        self.cycle += 1
        self.faults.begin_cycle()
        self.loads.begin_cycle()

        if (self.cycle - 1) % cfg.battery_poll_interval == 0:
            self.storage.poll_battery(self.sensors)

        mode = self.loads.select_mode(self.storage.level_wh, self.available_power_w)
        self.loads.update_throttles(self.storage.level_wh)
        self._check_temperatures()
        if self.status.is_blocking:
            mode = self.loads.select_mode(self.storage.level_wh, self.available_power_w, mode)
        drawn = self.loads.apply_throttle(mode)

        waste_heat = self.sensors.read(SensorKind.AMBIENT_HEAT)
        points = self.thermal.compute(
            drawn.draw(LoadComponent.CPU),
            drawn.draw(LoadComponent.GPU),
            waste_heat,
            self.flow.flow_rate,
        )
        heats = [p.heat_in for p in points]
        self.flow.monitor_flow(heats)
        generated = self.generators.compute_all(heats, self.flow.flow_rate)
        total_generated = sum(generated)

        # power left for the load once the magnets are fed
        self.available_power_w = (
            total_generated * cfg.breaker_efficiency
            + self.storage.available_power_w(period_s)
            - self.flow.magnet_power_w
        )
        mode = self.loads.select_mode(self.storage.level_wh, self.available_power_w, mode)
        drawn = self.loads.apply_throttle(mode)
        consumption = drawn.total + self.flow.magnet_power_w

        result = self.storage.settle(total_generated, consumption, period_s)
        if result.low_storage:
            drawn = self.loads.idle_mode

        if (self.storage.level_wh <= cfg.min_storage_threshold_wh
                and not self.faults.is_active(FaultKind.LOW_STORAGE)
                and not self.status.is_critical):
            self.faults.raise_fault(
                FaultKind.LOW_STORAGE,
                f"storage {self.storage.level_wh:.3f} Wh at or below "
                f"{cfg.min_storage_threshold_wh:.3f} Wh",
            )
            self.faults.recover(FaultKind.LOW_STORAGE)

        if self.status.is_critical:
            self.running = False

        log.status(
            "Cycle %d | excess/deficit %+.3f W | storage %.3f Wh (%.1f%%) | mode %s | %s",
            self.cycle, result.excess_or_deficit_w, self.storage.level_wh,
            self.storage.bank.soc * 100, drawn.name, self.status,
        )
        log.diagnostic(
            "Cycle %d | heats %s W | generated %s W | flow %.3f (trend %.3f, %s) | magnets %.3f W",
            self.cycle,
            [round(h, 3) for h in heats],
            [round(g, 3) for g in generated],
            self.flow.loop.flow_rate, self.flow.loop.flow_trend,
            self.flow.loop.active_path.value, self.flow.magnet_power_w,
        )

        report = CycleReport(
            cycle=self.cycle,
            point_heats_w=heats,
            generated_w=generated,
            total_generated_w=total_generated,
            magnet_power_w=self.flow.magnet_power_w,
            flow_rate=self.flow.flow_rate,
            mode=drawn,
            consumption_w=consumption,
            settle=result,
            level_wh=self.storage.level_wh,
            status=self.status,
            cycle_time_s=self.cycle_time(),
            period_s=period_s,
        )
        self.history.append(report)
        return report

    def run(self, max_cycles: Optional[int] = None) -> list[CycleReport]:
        """Run cycles until Critical, :meth:`stop`, or ``max_cycles``.

        Returns:
            The reports produced by this call, in order.
        """
        reports: list[CycleReport] = []
        self.running = True
        while self.running:
            report = self.run_cycle()
            reports.append(report)
            if max_cycles is not None and len(reports) >= max_cycles:
                self.running = False
            if self.running:
                self._sleep(report.cycle_time_s)

        if self.status.is_critical:
            log.error("Shutdown after cycle %d: %s", self.cycle, self.status)
        else:
            log.status("Shutdown after cycle %d: %s", self.cycle, self.status)
        return reports
