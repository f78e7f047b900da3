"""
Driving Control Policy
======================

Decides, step by step, whether the train propels, holds speed or brakes.

Braking targets are the remaining stops (target speed 0) and every segment
boundary ahead where the speed cap drops. For each target the policy knows
the highest speed the train may have at the end of the next step so that,
shedding at most the planning deceleration per step afterwards, it is down
to the target speed before the target. The bound follows the semi-implicit
Euler positions of the integrator, so a braking run ends standing exactly on
the stop and never needs more than the planned deceleration on the way.

A target that cannot be met even at the full braking limit is a constraint
violation of the run.
"""

import bisect
import math
from typing import List, Optional, Sequence, Tuple

from . import integrator
from .forces import PROPEL, DriveMode, DrivingCommand, KinematicState
from ..config.parameters import ElectricalParameters, TrackParameters, TrackSegment, TrainParameters
from ..errors import ConstraintViolationError

# Fraction of the braking limit the policy plans with
PLANNING_MARGIN = 0.98
SPEED_TOLERANCE_MPS = 1e-9
# Speed above a lower limit is shed at least this far before its boundary (m)
LIMIT_MARGIN_M = 1e-6

# (position along track, target speed, is_stop)
BrakingTarget = Tuple[float, float, bool]


class TrackProfile:
    """Position lookup over the segments of a track"""

    def __init__(self, track: TrackParameters, train: TrainParameters):
        self.segments: Tuple[TrackSegment, ...] = track.segments
        self.starts: List[float] = []
        position = 0.0
        for segment in self.segments:
            self.starts.append(position)
            position += segment.length_m
        self.total_length_m = track.total_length_m
        self.speed_caps = [min(s.speed_limit_mps, train.max_speed_mps) for s in self.segments]

    def index_at(self, position_m: float) -> int:
        """Index of the segment under a position; boundaries belong to the next segment"""
        index = bisect.bisect_right(self.starts, position_m) - 1
        return min(max(index, 0), len(self.segments) - 1)

    def segment_at(self, position_m: float) -> TrackSegment:
        return self.segments[self.index_at(position_m)]

    def speed_cap_at(self, position_m: float) -> float:
        return self.speed_caps[self.index_at(position_m)]

    def braking_targets(self, position_m: float, stops: Sequence[float]) -> List[BrakingTarget]:
        """Stops not yet served and the boundaries ahead where the cap drops"""
        targets = [(stop, 0.0, True) for stop in stops]
        for i in range(self.index_at(position_m) + 1, len(self.segments)):
            if self.speed_caps[i] < self.speed_caps[i - 1]:
                targets.append((self.starts[i], self.speed_caps[i], False))
        return targets


def next_step_speed_bound(distance_m: float, target_speed_mps: float, dt: float,
                          deceleration_mps2: float) -> float:
    """
    Highest speed at the end of the next step that still meets a target

    After the step the train sheds ``deceleration_mps2 * dt`` per step. Every
    step that ends above the target speed must end short of the target, so
    with speed v' = vt + k·a·dt the remaining steps cover

        F(v') = j·dt·vt + a·dt²·j·(k - (j-1)/2),   j = ceil(k)

    metres including the next one. F rises with v'; the bound is the largest
    v' with F(v') <= distance. For a stop (vt = 0) the last step ends on the
    stop itself.

    Args:
        distance_m: Distance from the train head to the target (m)
        target_speed_mps: Speed to reach by the target (m/s)
        dt: Time step (s)
        deceleration_mps2: Deceleration available per step (m/s²)

    Returns:
        Speed bound (m/s), never below the target speed
    """
    if distance_m <= target_speed_mps * dt:
        return target_speed_mps

    def covered(steps: int) -> float:
        # Distance of `steps` steps ending at vt + a·dt, ..., vt + steps·a·dt
        return steps * dt * target_speed_mps + deceleration_mps2 * dt * dt * steps * (steps - 1) / 2.0

    # Largest j >= 1 with covered(j) < distance_m
    half_quantum = deceleration_mps2 * dt * dt / 2.0
    linear = dt * target_speed_mps - half_quantum
    root = (-linear + math.sqrt(linear * linear + 4.0 * half_quantum * distance_m)) / (2.0 * half_quantum)
    steps = max(1, math.ceil(root) - 1)
    while steps > 1 and covered(steps) >= distance_m:
        steps -= 1
    while covered(steps + 1) < distance_m:
        steps += 1

    m = steps - 1
    quanta = (distance_m / steps - dt * target_speed_mps) / (deceleration_mps2 * dt * dt) + m / 2.0
    return target_speed_mps + deceleration_mps2 * dt * min(quanta, float(steps))


def admissible_speed(position_m: float, dt: float, targets: Sequence[BrakingTarget],
                     deceleration_mps2: float) -> Tuple[float, Optional[BrakingTarget]]:
    """
    Speed bound for the end of the next step over all braking targets

    Returns:
        (speed bound in m/s, the target that sets it or None)
    """
    bound, limiting = math.inf, None
    for target in targets:
        target_position, target_speed, is_stop = target
        distance = target_position - position_m
        if is_stop:
            distance = max(distance, 0.0)
        else:
            distance -= LIMIT_MARGIN_M
        speed = next_step_speed_bound(distance, target_speed, dt, deceleration_mps2)
        if speed < bound:
            bound, limiting = speed, target
    return bound, limiting


def describe_target(target: BrakingTarget) -> str:
    position, speed, is_stop = target
    if is_stop:
        return f"stop at {position:.1f} m"
    return f"speed limit {speed:.2f} m/s at {position:.1f} m"


def plan_command(state: KinematicState, dt: float, profile: TrackProfile, train: TrainParameters,
                 electrical: ElectricalParameters, stops: Sequence[float]) -> DrivingCommand:
    """
    Choose the driver command for the next step

    Args:
        state: Current kinematic state
        dt: Time step (s)
        profile: Track profile of the run
        train: Train parameters
        electrical: Electrical parameters
        stops: Stop positions not yet served, in order

    Returns:
        Propel, hold or brake command

    Raises:
        ConstraintViolationError: if meeting a target needs more than the braking limit
    """
    limit = train.braking_deceleration_mps2
    targets = profile.braking_targets(state.position_m, stops)
    allowed, _ = admissible_speed(state.position_m, dt, targets, limit * PLANNING_MARGIN)

    segment = profile.segment_at(state.position_m)
    tentative, _ = integrator.step(state, dt, segment, train, electrical, PROPEL)
    if tentative.speed_mps <= allowed + SPEED_TOLERANCE_MPS:
        return PROPEL

    if allowed >= state.speed_mps:
        return DrivingCommand(DriveMode.HOLD, target_speed_mps=allowed)

    deceleration = (state.speed_mps - allowed) / dt
    if deceleration > limit:
        allowed, target = admissible_speed(state.position_m, dt, targets, limit)
        deceleration = (state.speed_mps - allowed) / dt
        if deceleration > limit * (1 + 1e-9):
            raise ConstraintViolationError(
                f"Required braking deceleration {deceleration:.3f} m/s² exceeds the braking limit "
                f"{limit:.3f} m/s² approaching {describe_target(target)} "
                f"(position {state.position_m:.1f} m, speed {state.speed_mps:.2f} m/s)")
    return DrivingCommand(DriveMode.BRAKE, min(deceleration, limit))
