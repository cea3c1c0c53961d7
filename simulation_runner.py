"""
simulation_runner.py
====================
Ferrofluid Thermal-to-Electric Control Loop — Simulation Runner

Runs the control loop against the deterministic simulated collaborators
and prints a console summary.

Execution sequence:
    1. Load the hardware profile              (config.load_profile)
    2. Build simulated sensors and actuators  (simulated)
    3. Script a flow disturbance mid-run      (exercises the backup path)
    4. Run the scheduler for a fixed number of cycles
    5. Print console summary and per-cycle energy balance

Usage:
    python simulation_runner.py [profile] [cycles]
"""

from __future__ import annotations

import sys

from ferrotherm.config import PROFILES, load_profile
from ferrotherm.log_sink import STATUS, configure_logging
from ferrotherm.ports import SensorKind
from ferrotherm.scheduler import CycleReport, Scheduler
from ferrotherm.simulated import RecordingActuatorPort, SimulatedSensorPort


# ---------------------------------------------------------------------------
# Simulation parameters (execution configuration only)
# ---------------------------------------------------------------------------

DEFAULT_PROFILE: str = "four_point"
DEFAULT_CYCLES: int = 30
DISTURBANCE_CYCLE: int = 12        # cycle at which primary flow collapses
TABLE_ROWS: int = 10


# ---------------------------------------------------------------------------
# Steps 1–4: build and run
# ---------------------------------------------------------------------------

def build_scheduler(profile: str) -> tuple[Scheduler, SimulatedSensorPort, RecordingActuatorPort]:
    config = load_profile(profile)
    sensors = SimulatedSensorPort({
        SensorKind.BATTERY_CAPACITY: config.capacity_wh,
        SensorKind.AMBIENT_HEAT: config.ambient_waste_heat_w,
    })
    actuators = RecordingActuatorPort()
    scheduler = Scheduler(config, sensors, actuators, sleep=lambda _s: None)
    return scheduler, sensors, actuators


def run_simulation(profile: str, cycles: int) -> tuple[Scheduler, list[CycleReport]]:
    scheduler, sensors, actuators = build_scheduler(profile)

    reports = scheduler.run(max_cycles=min(cycles, DISTURBANCE_CYCLE - 1))
    if scheduler.status.is_critical or cycles < DISTURBANCE_CYCLE:
        return scheduler, reports

    # Primary path starves; backup path keeps the loop alive.
    sensors.set(SensorKind.FLOW_RATE, 0.2, context=scheduler.flow.loop.active_path)
    reports += scheduler.run(max_cycles=cycles - len(reports))
    return scheduler, reports


# ---------------------------------------------------------------------------
# Step 5: console output
# ---------------------------------------------------------------------------

def print_console_summary(profile: str, scheduler: Scheduler, reports: list[CycleReport]) -> None:
    cfg = scheduler.config
    sep = "─" * 60

    print(f"\n{'═' * 60}")
    print("  FERROFLUID THERMAL LOOP — SIMULATION SUMMARY")
    print(f"{'═' * 60}")

    print(f"\n{sep}")
    print("  PROFILE")
    print(sep)
    print(f"    Profile                     :  {profile}")
    print(f"    Thermal points              :  {cfg.point_count}")
    print(f"    Storage capacity            :  {cfg.capacity_wh:7.1f} Wh")
    print(f"    Reserve floor               :  {cfg.reserve_floor_wh:7.1f} Wh")
    print(f"    Supercapacitor              :  {cfg.supercap_capacity_wh:7.1f} Wh")
    print(f"    Export port rating          :  {cfg.export_capacity_w:7.1f} W")

    total_generated = sum(r.total_generated_w for r in reports)
    total_consumed = sum(r.consumption_w for r in reports)
    modes: dict[str, int] = {}
    for r in reports:
        modes[r.mode.name] = modes.get(r.mode.name, 0) + 1

    print(f"\n{sep}")
    print("  RESULT")
    print(sep)
    print(f"    Cycles run                  :  {len(reports)}")
    print(f"    Mean generation             :  {total_generated / max(len(reports), 1):7.3f} W")
    print(f"    Mean consumption            :  {total_consumed / max(len(reports), 1):7.3f} W")
    print(f"    Final storage level         :  {scheduler.storage.level_wh:7.3f} Wh")
    print(f"    Final flow path             :  {scheduler.flow.loop.active_path.value}")
    print(f"    Final status                :  {scheduler.status}")
    for name, count in sorted(modes.items()):
        print(f"    Cycles in {name:<18}:  {count}")
    print(f"{'═' * 60}\n")


def print_energy_balance(reports: list[CycleReport]) -> None:
    sep = "─" * 60
    print(f"{'═' * 60}")
    print("  PER-CYCLE ENERGY BALANCE (last cycles)")
    print(f"{'═' * 60}")
    print(f"  {'Cycle':>5} {'Gen W':>8} {'Load W':>8} {'Bal W':>9} {'Level Wh':>9}  Status")
    print(sep)
    for r in reports[-TABLE_ROWS:]:
        print(f"  {r.cycle:>5} {r.total_generated_w:>8.3f} {r.consumption_w:>8.3f} "
              f"{r.settle.excess_or_deficit_w:>+9.3f} {r.level_wh:>9.3f}  {r.status}")
    print(f"{'═' * 60}\n")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: list[str]) -> int:
    profile = argv[1] if len(argv) > 1 else DEFAULT_PROFILE
    cycles = int(argv[2]) if len(argv) > 2 else DEFAULT_CYCLES
    if profile not in PROFILES:
        print(f"Unknown profile {profile!r}; choose from: {', '.join(sorted(PROFILES))}")
        return 2

    configure_logging(STATUS)
    print("\nInitialising control loop...", flush=True)
    scheduler, reports = run_simulation(profile, cycles)
    print_console_summary(profile, scheduler, reports)
    print_energy_balance(reports)
    return 0 if not scheduler.status.is_critical else 1


if __name__ == "__main__":
    sys.exit(main(sys.argv))
