"""
tests/conftest.py
=================
Shared fixtures: a one-hour cycle profile (so W and Wh line up 1:1),
simulated collaborators and a fresh FaultManager.
"""

import pytest

from ferrotherm.config import PlantConfig
from ferrotherm.fault_manager import FaultManager
from ferrotherm.simulated import RecordingActuatorPort, SimulatedSensorPort


@pytest.fixture
def config():
    return PlantConfig()


@pytest.fixture
def hourly_config():
    """Default plant with a 1 h cycle: 1 W over one cycle is 1 Wh."""
    return PlantConfig(cycle_time_s=3600.0, fault_cycle_time_s=3600.0)


@pytest.fixture
def sensors():
    return SimulatedSensorPort()


@pytest.fixture
def actuators():
    return RecordingActuatorPort()


@pytest.fixture
def fault_manager():
    return FaultManager()
