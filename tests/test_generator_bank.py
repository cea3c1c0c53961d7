"""
tests/test_generator_bank.py
============================
Heat-to-electric conversion, partial-power policy, health check and
bounded recovery.

Reference values:
    Scenario B  Q = 51.3 W, η = 0.40  →  P = 20.52 W, Q_waste = 30.78 W
    Scenario D  Q = 0 W               →  P = 0 W, Warning only
"""

import pytest

from ferrotherm.generator_bank import (
    GeneratorBank,
    GeneratorHealth,
    Generator,
    compute_generator_power,
    compute_recovery_factor,
    compute_teg_output,
)
from ferrotherm.ports import SensorKind
from ferrotherm.status import FaultKind, StatusKind


def chain_constant(config, loss_fraction=0.9):
    return (
        config.magnet_pull_efficiency
        * loss_fraction
        * config.heat_to_generator_efficiency
        * config.regulator_efficiency
        * config.cooling_efficiency
    )


# ---------------------------------------------------------------------------
# Scenario B — TEG split
# ---------------------------------------------------------------------------

class TestTEGOutput:

    def test_scenario_b_power(self):
        assert compute_teg_output(51.3, 0.40).power_w == pytest.approx(20.52, rel=1e-9)

    def test_scenario_b_waste_heat(self):
        assert compute_teg_output(51.3, 0.40).waste_heat_w == pytest.approx(30.78, rel=1e-9)

    def test_power_plus_waste_is_heat(self):
        out = compute_teg_output(51.3, 0.40)
        assert out.power_w + out.waste_heat_w == pytest.approx(51.3, rel=1e-12)

    def test_efficiency_out_of_range_raises(self):
        with pytest.raises(ValueError, match="efficiency"):
            compute_teg_output(51.3, 1.0)


# ---------------------------------------------------------------------------
# Pure power computation
# ---------------------------------------------------------------------------

class TestComputeGeneratorPower:

    def test_nominal_efficiency_chain(self, config):
        out = compute_generator_power(50.0, 4, 0.08, 1.0, config, loss_fraction=0.9)
        expected = 50.0 * chain_constant(config) * 0.08 * 4
        assert out.power_w == pytest.approx(expected, rel=1e-12)
        assert out.warnings == ()
        assert out.full_power is True

    def test_scenario_d_zero_heat(self, config):
        """Zero heat yields zero output with a warning and no exception."""
        out = compute_generator_power(0.0, 4, 0.08, 1.0, config)
        assert out.power_w == 0.0
        assert len(out.warnings) == 1
        assert "heat" in out.warnings[0]

    def test_low_heat_scales_proportionally(self, config):
        full = compute_generator_power(config.min_heat_w, 4, 0.08, 1.0, config)
        half = compute_generator_power(config.min_heat_w / 2, 4, 0.08, 1.0, config)
        # heat halves and heat factor halves
        assert half.power_w == pytest.approx(full.power_w / 4, rel=1e-12)
        assert half.full_power is False

    def test_high_heat_is_clamped(self, config):
        clamped = compute_generator_power(config.max_heat_w * 2, 4, 0.08, 1.0, config)
        at_max = compute_generator_power(config.max_heat_w, 4, 0.08, 1.0, config)
        assert clamped.power_w == pytest.approx(at_max.power_w, rel=1e-12)
        assert any("clamped" in w for w in clamped.warnings)
        assert clamped.full_power is True

    def test_low_flow_scales_by_flow_ratio(self, config):
        at_min = compute_generator_power(50.0, 4, 0.08, config.min_flow, config)
        half = compute_generator_power(50.0, 4, 0.08, config.min_flow / 2, config)
        assert half.power_w == pytest.approx(at_min.power_w / 2, rel=1e-12)
        assert any("flow" in w for w in half.warnings)

    def test_output_goes_to_zero_continuously_with_flow(self, config):
        flows = [0.4, 0.2, 0.1, 0.01, 0.001, 0.0]
        powers = [compute_generator_power(50.0, 4, 0.08, f, config).power_w for f in flows]
        assert all(b < a for a, b in zip(powers, powers[1:]))
        assert powers[-1] == 0.0
        assert powers[-2] == pytest.approx(powers[0] * 0.001 / 0.4, rel=1e-9)

    def test_never_negative(self, config):
        out = compute_generator_power(-10.0, 4, 0.08, -1.0, config)
        assert out.power_w == 0.0

    def test_deterministic(self, config):
        a = compute_generator_power(33.3, 3, 0.08, 0.7, config)
        b = compute_generator_power(33.3, 3, 0.08, 0.7, config)
        assert a == b


class TestRecoveryFactor:

    def test_ratio_to_module_rating(self):
        assert compute_recovery_factor(50.0, 4) == pytest.approx(0.125)

    def test_capped_at_ninety_percent(self):
        assert compute_recovery_factor(1000.0, 1) == pytest.approx(0.9)

    def test_never_negative(self):
        assert compute_recovery_factor(-5.0, 2) == 0.0


# ---------------------------------------------------------------------------
# Generator bank — health check and recovery
# ---------------------------------------------------------------------------

class TestGeneratorBank:

    @pytest.fixture
    def bank(self, config, sensors, fault_manager):
        return GeneratorBank(config, sensors, fault_manager)

    def test_one_generator_per_stage(self, bank, config):
        assert len(bank.generators) == config.point_count
        assert bank.generators[2].module_count == config.stages[2].module_count

    def test_healthy_point_returns_nominal(self, bank, config, fault_manager):
        power = bank.compute_point(0, 50.0, 1.0)
        expected = compute_generator_power(50.0, 4, 0.08, 1.0, config, loss_fraction=0.9).power_w
        assert power == pytest.approx(expected)
        assert bank.generators[0].health is GeneratorHealth.HEALTHY
        assert bank.generators[0].last_power == pytest.approx(expected)
        assert fault_manager.status.is_operational

    def test_zero_heat_is_warning_not_fault(self, bank, fault_manager):
        assert bank.compute_point(0, 0.0, 1.0) == 0.0
        assert fault_manager.status.kind is StatusKind.WARNING
        assert bank.generators[0].health is GeneratorHealth.HEALTHY

    def test_failed_probe_recovers_partially(self, bank, config, sensors, fault_manager):
        sensors.script(SensorKind.TEG_VOLTAGE, [0.1, 3.3], context=0)
        nominal = compute_generator_power(50.0, 4, 0.08, 1.0, config, loss_fraction=0.9).power_w

        power = bank.compute_point(0, 50.0, 1.0)

        assert power == pytest.approx(nominal * compute_recovery_factor(nominal, 4))
        assert power < nominal
        assert bank.generators[0].health is GeneratorHealth.DEGRADED
        assert fault_manager.status.is_operational

    def test_retry_succeeds_on_second_reset(self, bank, sensors, fault_manager):
        sensors.script(SensorKind.TEG_VOLTAGE, [0.1, 0.1, 3.3], context=0)
        assert bank.compute_point(0, 50.0, 1.0) > 0.0
        assert bank.generators[0].health is GeneratorHealth.DEGRADED
        assert not fault_manager.is_critical

    def test_exhausted_recovery_is_critical(self, bank, sensors, fault_manager):
        sensors.set(SensorKind.TEG_VOLTAGE, 0.1, context=0)
        assert bank.compute_point(0, 50.0, 1.0) == 0.0
        assert bank.generators[0].health is GeneratorHealth.FAILED
        assert fault_manager.status.is_critical

    def test_power_below_threshold_triggers_reset(self, config, sensors, fault_manager):
        strict = config.with_overrides(recovery_threshold_w=1000.0)
        bank = GeneratorBank(strict, sensors, fault_manager)
        nominal = compute_generator_power(50.0, 4, 0.08, 1.0, strict, loss_fraction=0.9).power_w
        power = bank.compute_point(0, 50.0, 1.0)
        assert power == pytest.approx(nominal * compute_recovery_factor(nominal, 4))
        assert bank.generators[0].health is GeneratorHealth.DEGRADED

    def test_compute_all_one_value_per_point(self, bank):
        powers = bank.compute_all([50.0, 40.0, 30.0, 20.0], 1.0)
        assert len(powers) == 4
        assert all(p > 0.0 for p in powers)

    def test_generator_rejects_bad_module_count(self):
        with pytest.raises(ValueError, match="module_count"):
            Generator(point_index=0, module_count=0, efficiency=0.08)

    def test_recovery_registered_for_generator_failure(self, bank, fault_manager, sensors):
        fault_manager.raise_fault(FaultKind.GENERATOR_FAILURE, context=1)
        assert fault_manager.recover(FaultKind.GENERATOR_FAILURE, 1) is True
