"""
tests/test_config.py
====================
Plant profiles and configuration validation.
"""

import pytest

from ferrotherm.config import (
    DEFAULT_COMPONENTS,
    PROFILES,
    LoadComponent,
    PlantConfig,
    load_profile,
)


class TestProfiles:

    def test_default_profile_has_four_points(self):
        cfg = load_profile("four_point")
        assert cfg.point_count == 4
        assert [s.module_count for s in cfg.stages] == [4, 4, 3, 2]
        assert [s.gpu_injection for s in cfg.stages] == [False, True, False, False]

    def test_profiles_share_the_algorithm_inputs(self):
        for name, cfg in PROFILES.items():
            assert set(cfg.components) == set(LoadComponent), name
            assert cfg.point_count >= 1, name

    def test_two_point_profile(self):
        cfg = load_profile("two_point")
        assert cfg.point_count == 2
        assert cfg.capacity_wh == 50.0

    def test_supercap_profile_usable_capacity(self):
        cfg = load_profile("four_point_supercap")
        assert cfg.usable_capacity_wh == pytest.approx(90.0)

    def test_unknown_profile(self):
        with pytest.raises(KeyError, match="four_point"):
            load_profile("nine_point")

    def test_interval_in_hours(self):
        assert PlantConfig(cycle_time_s=1800.0, fault_cycle_time_s=1800.0).interval_h == 0.5


class TestValidation:

    @pytest.mark.parametrize("changes", [
        {"breaker_efficiency": 0.0},
        {"charge_efficiency": 1.2},
        {"capacity_wh": 0.0},
        {"initial_level_wh": 150.0},
        {"reserve_floor_wh": 100.0},
        {"min_heat_w": 200.0},
        {"throttle_enter_fraction": 0.6},
        {"cpu_share": 1.0},
        {"fault_cycle_time_s": 0.5},
        {"battery_poll_interval": 0},
        {"stages": ()},
    ])
    def test_rejects_out_of_range(self, changes):
        with pytest.raises(ValueError):
            PlantConfig(**changes)

    def test_with_overrides_revalidates(self, config):
        with pytest.raises(ValueError, match="regulator_efficiency"):
            config.with_overrides(regulator_efficiency=1.5)

    def test_with_overrides_returns_copy(self, config):
        derived = config.with_overrides(capacity_wh=200.0)
        assert derived.capacity_wh == 200.0
        assert config.capacity_wh == 100.0

    def test_missing_component(self):
        components = dict(DEFAULT_COMPONENTS)
        del components[LoadComponent.COOLING]
        with pytest.raises(ValueError, match="cooling"):
            PlantConfig(components=components)

    def test_full_and_idle_envelope(self):
        assert sum(c.full_w for c in DEFAULT_COMPONENTS.values()) == pytest.approx(54.0)
        assert sum(c.idle_w for c in DEFAULT_COMPONENTS.values()) == pytest.approx(9.0)
