"""
Train Dynamics Model
====================

Instantaneous force balance of a train on a track segment.

Every function in this module is a deterministic, side-effect-free function
of its inputs and is reused by the integrator at each time step.

Tractive effort policy:
- The traction curve is interpolated piecewise-linearly in speed.
- Below the first curve point the first point's force is held, so the
  curve's lowest point is the starting force. Effort at standstill is zero
  only when the curve itself says so.
- Above the last curve point the effort is zero.
- For any speed above zero the effort is capped by rated power / speed.

References:
- Davis, "Tractive Resistance of Electric Locomotives and Cars"
- Röckl curve resistance approximation (specific resistance ~ 0.6 / R)
"""

import math
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Optional, Tuple

import numpy as np

from ..config.parameters import ElectricalParameters, TrackSegment, TrainParameters

# Physical constants
GRAVITY = 9.81  # m/s²
CURVE_RESISTANCE_CONSTANT_M = 0.6  # specific curve resistance numerator (m)


class DriveMode(str, Enum):
    """Driver command for one integration step"""
    PROPEL = "propel"
    HOLD = "hold"
    BRAKE = "brake"


@dataclass(frozen=True)
class DrivingCommand:
    """Control output consumed by the force model"""
    mode: DriveMode
    deceleration_mps2: float = 0.0
    target_speed_mps: Optional[float] = None  # Hold: speed to settle at (current speed when None)


PROPEL = DrivingCommand(DriveMode.PROPEL)
HOLD = DrivingCommand(DriveMode.HOLD)


@dataclass(frozen=True)
class KinematicState:
    """Train state at the end of an integration step"""
    step: int                       # Integration step index
    time_s: float                   # Elapsed time (s)
    position_m: float               # Position of the train head along the track (m)
    speed_mps: float                # Speed (m/s)
    energy_j: float = 0.0           # Cumulative energy drawn from the line (J)
    regenerated_energy_j: float = 0.0  # Cumulative energy returned to the line (J)


@dataclass(frozen=True)
class ForceBreakdown:
    """Forces, acceleration and power for one step"""
    available_tractive_force_n: float  # Effort the drive could deliver (N)
    tractive_force_n: float            # Applied force, negative when braking (N)
    rolling_resistance_n: float
    grade_resistance_n: float
    curve_resistance_n: float
    acceleration_mps2: float
    power_w: float                     # Line power, negative when regenerating (W)

    @property
    def total_resistance_n(self) -> float:
        return self.rolling_resistance_n + self.grade_resistance_n + self.curve_resistance_n


@lru_cache(maxsize=32)
def _curve_arrays(train: TrainParameters) -> Tuple[np.ndarray, np.ndarray]:
    speeds = np.array([p.speed_mps for p in train.traction_curve], dtype=float)
    forces = np.array([p.force_n for p in train.traction_curve], dtype=float)
    return speeds, forces


def tractive_effort(speed_mps: float, train: TrainParameters,
                    electrical: ElectricalParameters) -> float:
    """
    Maximum tractive force available at a given speed

    Args:
        speed_mps: Current speed (m/s)
        train: Train parameters holding the traction curve
        electrical: Electrical parameters holding the rated power

    Returns:
        Available tractive force (N)
    """
    speeds, forces = _curve_arrays(train)
    force = float(np.interp(speed_mps, speeds, forces, left=forces[0], right=0.0))
    if speed_mps > 0:
        force = min(force, electrical.rated_power_w / speed_mps)
    return force


def resistance(segment: TrackSegment, train: TrainParameters) -> Tuple[float, float, float]:
    """
    Resistance components acting against the motion

    Returns:
        (rolling, grade, curve) forces in N. Grade resistance is negative on
        a downgrade.
    """
    weight = train.mass_kg * GRAVITY
    rolling = train.rolling_resistance_coefficient * weight
    grade = weight * segment.grade
    curve = 0.0 if segment.is_straight else weight * CURVE_RESISTANCE_CONSTANT_M / segment.curve_radius_m
    return rolling, grade, curve


def line_power(force_n: float, speed_mps: float, electrical: ElectricalParameters) -> float:
    """Electrical power at the line for a wheel force at a given speed"""
    mechanical = force_n * speed_mps
    if mechanical > 0:
        return mechanical / electrical.traction_efficiency
    if mechanical < 0 and electrical.regenerative_braking:
        return mechanical * electrical.regenerative_efficiency
    return 0.0


def compute_forces(state: KinematicState, segment: TrackSegment, train: TrainParameters,
                   electrical: ElectricalParameters, command: DrivingCommand,
                   dt: float) -> ForceBreakdown:
    """
    Compute the force balance for one step

    Propel uses the full available effort but never accelerates past the
    active speed cap within the step. Hold settles at the command's target
    speed (the current speed by default) without braking, and lets the train
    slow down when the drive cannot keep up. Brake applies the commanded
    deceleration, clamped to the braking limit. The train never rolls
    backwards: deceleration is limited to what stops it within the step.

    Args:
        state: Current kinematic state
        segment: Track segment under the train head
        train: Train parameters
        electrical: Electrical parameters
        command: Driver command for this step
        dt: Time step (s)

    Returns:
        Force breakdown with applied acceleration and line power
    """
    speed = state.speed_mps
    mass = train.effective_mass_kg
    available = tractive_effort(speed, train, electrical)
    rolling, grade, curve = resistance(segment, train)
    total_resistance = rolling + grade + curve

    free_acceleration = (available - total_resistance) / mass

    if command.mode is DriveMode.PROPEL:
        speed_cap = min(train.max_speed_mps, segment.speed_limit_mps)
        acceleration = min(free_acceleration, (speed_cap - speed) / dt)
    elif command.mode is DriveMode.HOLD:
        speed_cap = min(train.max_speed_mps, segment.speed_limit_mps)
        target = speed if command.target_speed_mps is None else min(command.target_speed_mps, speed_cap)
        acceleration = min(free_acceleration, max(target - speed, 0.0) / dt)
    else:
        acceleration = -min(command.deceleration_mps2, train.braking_deceleration_mps2)

    # No rollback: at most stop within this step
    acceleration = max(acceleration, -speed / dt)

    speed_after = max(0.0, speed + acceleration * dt)
    if speed == 0.0 and speed_after == 0.0:
        # Standing: brakes hold the train, the drive delivers nothing
        applied_force = 0.0
    else:
        applied_force = mass * acceleration + total_resistance

    return ForceBreakdown(
        available_tractive_force_n=available,
        tractive_force_n=applied_force,
        rolling_resistance_n=rolling,
        grade_resistance_n=grade,
        curve_resistance_n=curve,
        acceleration_mps2=acceleration,
        power_w=line_power(applied_force, speed_after, electrical),
    )


def braking_distance(speed_mps: float, target_speed_mps: float, deceleration_mps2: float) -> float:
    """Distance to slow from one speed to another at constant deceleration"""
    if speed_mps <= target_speed_mps:
        return 0.0
    if deceleration_mps2 <= 0:
        return math.inf
    return (speed_mps ** 2 - target_speed_mps ** 2) / (2.0 * deceleration_mps2)
