"""
Integrator
==========

Fixed-step semi-implicit Euler integration of the train motion.

Velocity is updated from the acceleration first, then position from the
updated velocity. Time is derived from the step index rather than
accumulated, so identical inputs give bit-identical state sequences.
"""

import math
from dataclasses import replace
from typing import Optional, Tuple

from .forces import (
    PROPEL,
    DrivingCommand,
    ForceBreakdown,
    KinematicState,
    compute_forces,
)
from ..config.parameters import ElectricalParameters, TrackSegment, TrainParameters
from ..errors import DivergenceError

# Speed above this multiple of the train max speed is treated as runaway
RUNAWAY_FACTOR = 1.5
# Speed left over from braking to a standstill (m/s)
STANDSTILL_MPS = 1e-9


def initial_state(speed_mps: float = 0.0) -> KinematicState:
    return KinematicState(step=0, time_s=0.0, position_m=0.0, speed_mps=speed_mps)


def step(state: KinematicState, dt: float, segment: TrackSegment, train: TrainParameters,
         electrical: ElectricalParameters,
         command: Optional[DrivingCommand] = None) -> Tuple[KinematicState, ForceBreakdown]:
    """
    Advance the train by one time step

    Args:
        state: State at the start of the step
        dt: Time step (s)
        segment: Track segment under the train head
        train: Train parameters
        electrical: Electrical parameters
        command: Driver command (propel when omitted)

    Returns:
        (new state, force breakdown applied during the step)

    Raises:
        DivergenceError: on non-finite values or runaway speed
    """
    forces = compute_forces(state, segment, train, electrical, command or PROPEL, dt)

    speed = max(0.0, state.speed_mps + forces.acceleration_mps2 * dt)
    if forces.acceleration_mps2 < 0.0 and speed < STANDSTILL_MPS:
        speed = 0.0
    position = state.position_m + speed * dt

    power = forces.power_w
    new_state = KinematicState(
        step=state.step + 1,
        time_s=(state.step + 1) * dt,
        position_m=position,
        speed_mps=speed,
        energy_j=state.energy_j + max(power, 0.0) * dt,
        regenerated_energy_j=state.regenerated_energy_j + max(-power, 0.0) * dt,
    )

    check_divergence(new_state, forces, train)
    return new_state, forces


def dwell_step(state: KinematicState, dt: float) -> KinematicState:
    """Advance time by one step with the train standing"""
    return replace(state, step=state.step + 1, time_s=(state.step + 1) * dt, speed_mps=0.0)


def check_divergence(state: KinematicState, forces: ForceBreakdown, train: TrainParameters):
    """Reject non-physical integration results"""
    values = (state.position_m, state.speed_mps, state.energy_j, state.regenerated_energy_j,
              forces.acceleration_mps2, forces.tractive_force_n, forces.power_w)
    if not all(math.isfinite(v) for v in values):
        raise DivergenceError(
            f"Non-finite state at t={state.time_s:.3f} s "
            f"(position={state.position_m}, speed={state.speed_mps}, "
            f"acceleration={forces.acceleration_mps2})")

    if state.speed_mps > train.max_speed_mps * RUNAWAY_FACTOR:
        raise DivergenceError(
            f"Runaway speed {state.speed_mps:.3f} m/s at t={state.time_s:.3f} s "
            f"exceeds {RUNAWAY_FACTOR}x the train max speed")
