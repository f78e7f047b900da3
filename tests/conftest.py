"""
Shared fixtures for the train run simulator tests.
"""

import sys
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from trainsim.config.parameters import (
    ElectricalParameters,
    ParameterSnapshot,
    RunningParameters,
    TrackParameters,
    TrainParameters,
)


TRAIN = {
    "mass_kg": 200000,
    "length_m": 80,
    "max_speed_mps": 25.0,
    "traction_curve": [[0, 50000], [20, 50000]],
    "braking_deceleration_mps2": 1.0,
}

ELECTRICAL = {
    "supply_voltage_v": 1500,
    "rated_power_w": 2000000,
    "traction_efficiency": 0.85,
    "regenerative_efficiency": 0.7,
}


def make_snapshot(train=None, electrical=None, running=None, segments=None) -> ParameterSnapshot:
    """Build a snapshot from the flat 1 km baseline with per-group overrides"""
    return ParameterSnapshot(
        train=TrainParameters(**{**TRAIN, **(train or {})}),
        electrical=ElectricalParameters(**{**ELECTRICAL, **(electrical or {})}),
        running=RunningParameters(**(running or {})),
        track=TrackParameters(segments=segments or [{"length_m": 1000, "speed_limit_mps": 25.0}]),
    )


@pytest.fixture
def train_data():
    return dict(TRAIN)


@pytest.fixture
def electrical_data():
    return dict(ELECTRICAL)


@pytest.fixture
def flat_snapshot():
    """Flat, straight 1000 m track, train starting from rest"""
    return make_snapshot()


@pytest.fixture
def long_snapshot():
    """A run long enough to still be running while a test pokes at it"""
    return make_snapshot(segments=[{"length_m": 500000, "speed_limit_mps": 25.0}])


@pytest.fixture
def overspeed_snapshot():
    """Train at 20 m/s with a stop 50 m ahead and 1 m/s² brakes"""
    return make_snapshot(running={"initial_speed_mps": 20.0, "stop_positions_m": [50.0]})
