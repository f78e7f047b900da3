"""
Run Simulator
=============

The pure stepping loop of one train run.

``RunSimulator.samples()`` yields the result series one sample at a time,
so the caller decides how to store it and when to stop consuming it. The
simulator itself holds no locks and touches no shared state.
"""

import logging
import math
from dataclasses import replace
from typing import Iterator, List, Optional

from ..config.parameters import ParameterSnapshot, SimulationSettings
from ..dynamics import control, integrator
from ..dynamics.forces import ForceBreakdown, KinematicState
from ..errors import ConstraintViolationError
from .result_store import Sample

logger = logging.getLogger(__name__)

# A standstill this close before a stop counts as arrival (m)
ARRIVAL_WINDOW_M = 0.5
# Rounding allowance past a stop (m)
STOP_TOLERANCE_M = 0.01


class RunSimulator:
    """
    Deterministic simulation of a single train run.

    Features:
    - Semi-implicit Euler integration at a fixed time step
    - Braking for stops and lower speed limits ahead
    - Dwell at every stop before resuming
    - Failure on unreachable braking targets, stalls or divergence
    """

    def __init__(self, snapshot: ParameterSnapshot, settings: Optional[SimulationSettings] = None):
        """
        Initialize the simulator

        Args:
            snapshot: Immutable parameter snapshot of the run
            settings: Numerical settings (defaults when omitted)
        """
        self.snapshot = snapshot
        self.settings = settings or SimulationSettings()
        self.profile = control.TrackProfile(snapshot.track, snapshot.train)

    @property
    def total_length_m(self) -> float:
        return self.profile.total_length_m

    @property
    def dwell_steps(self) -> int:
        dwell = self.snapshot.running.dwell_time_s
        return max(0, math.ceil(dwell / self.settings.time_step_s - 1e-9))

    def samples(self) -> Iterator[Sample]:
        """
        Generate the sample series of the run

        Yields:
            One sample per time step, starting with the initial state at t=0

        Raises:
            ConstraintViolationError: if a braking target cannot be met or the train stalls
            DivergenceError: if the integration becomes non-physical
        """
        train = self.snapshot.train
        electrical = self.snapshot.electrical
        dt = self.settings.time_step_s
        total = self.total_length_m
        stops: List[float] = list(self.snapshot.running.stop_positions_m)

        state = integrator.initial_state(self.snapshot.running.initial_speed_mps)
        yield self._sample(state)

        while state.position_m < total or stops:
            command = control.plan_command(state, dt, self.profile, train, electrical, stops)
            segment = self.profile.segment_at(state.position_m)
            new_state, forces = integrator.step(state, dt, segment, train, electrical, command)

            if stops and new_state.position_m > stops[0]:
                if new_state.position_m - stops[0] > STOP_TOLERANCE_M:
                    raise ConstraintViolationError(
                        f"Train overran the stop at {stops[0]:.1f} m at {new_state.speed_mps:.2f} m/s: "
                        f"braking did not bring it to a standstill")
                new_state = replace(new_state, position_m=stops[0])

            if stops and self._arrived(new_state, stops[0]):
                stop = stops.pop(0)
                new_state = replace(new_state, position_m=stop)
                yield self._sample(new_state, forces)
                logger.info(f"Arrived at stop {stop:.1f} m at t={new_state.time_s:.1f} s")

                state = new_state
                if state.position_m >= total:
                    break
                for _ in range(self.dwell_steps):
                    state = integrator.dwell_step(state, dt)
                    yield self._sample(state)
                continue

            if new_state.speed_mps == 0.0 and state.speed_mps == 0.0:
                raise ConstraintViolationError(
                    f"Train stalled at {state.position_m:.1f} m: tractive effort cannot "
                    f"overcome the resistance of the segment")

            if new_state.position_m >= total:
                new_state = replace(new_state, position_m=total)

            yield self._sample(new_state, forces)
            state = new_state

        logger.info(f"Reached end of track ({total:.1f} m) at t={state.time_s:.1f} s")

    @staticmethod
    def _arrived(state: KinematicState, stop: float) -> bool:
        return state.speed_mps == 0.0 and stop - state.position_m <= ARRIVAL_WINDOW_M

    def _sample(self, state: KinematicState, forces: Optional[ForceBreakdown] = None) -> Sample:
        acceleration = forces.acceleration_mps2 if forces else 0.0
        force = forces.tractive_force_n if forces else 0.0
        power = forces.power_w if forces else 0.0
        return Sample(
            time_s=state.time_s,
            position_m=state.position_m,
            speed_mps=state.speed_mps,
            acceleration_mps2=acceleration,
            tractive_force_n=force,
            power_w=power,
            line_current_a=power / self.snapshot.electrical.supply_voltage_v,
            energy_j=state.energy_j,
            regenerated_energy_j=state.regenerated_energy_j,
        )
