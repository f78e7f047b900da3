"""
Parameter Groups
================

Strongly-typed parameter records for the train run simulation.

The four groups (train, electrical, running, track) are validated pydantic
models. Every model is frozen, so a snapshot taken at the start of a run
can never change underneath the integration loop. Cross-group range checks
live in ``cross_check`` because a single group cannot see the others.

Units are SI and encoded in field names (``_kg``, ``_m``, ``_mps``...).
"""

import math
from typing import Annotated, Any, Dict, List, Mapping, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..errors import FieldError, ValidationError

# Sentinel accepted in place of a curve radius for straight track
STRAIGHT = "straight"


class ParameterModel(BaseModel):
    """Base for immutable, strictly-validated parameter records"""
    model_config = ConfigDict(frozen=True, extra="forbid", allow_inf_nan=False)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class TractionPoint(ParameterModel):
    """One point of the tractive-effort curve"""
    speed_mps: float = Field(..., ge=0, description="Speed (m/s)")
    force_n: float = Field(..., ge=0, description="Maximum tractive force at this speed (N)")


class TrainParameters(ParameterModel):
    """Rolling stock characteristics"""
    mass_kg: float = Field(..., gt=0, description="Total train mass (kg)")
    length_m: float = Field(..., gt=0, description="Train length (m)")
    max_speed_mps: float = Field(..., gt=0, description="Maximum design speed (m/s)")
    traction_curve: Tuple[TractionPoint, ...] = Field(..., min_length=1,
                                                      description="Tractive effort vs speed")
    braking_deceleration_mps2: float = Field(..., gt=0, description="Braking deceleration limit (m/s²)")
    inertial_coefficient: float = Field(1.0, ge=1.0, description="Rotating mass allowance factor")
    rolling_resistance_coefficient: float = Field(0.002, ge=0, description="Rolling resistance per unit weight")

    @field_validator("traction_curve", mode="before")
    @classmethod
    def parse_curve_pairs(cls, v):
        """Accept ``[speed, force]`` pairs as well as mappings"""
        if isinstance(v, (list, tuple)):
            return [
                {"speed_mps": p[0], "force_n": p[1]} if isinstance(p, (list, tuple)) and len(p) == 2 else p
                for p in v
            ]
        return v

    @field_validator("traction_curve")
    @classmethod
    def validate_curve_order(cls, v):
        speeds = [p.speed_mps for p in v]
        if any(b <= a for a, b in zip(speeds, speeds[1:])):
            raise ValueError("traction curve speeds must be strictly increasing")
        return v

    @property
    def effective_mass_kg(self) -> float:
        """Mass including the rotating-mass allowance"""
        return self.mass_kg * self.inertial_coefficient


class ElectricalParameters(ParameterModel):
    """Traction power supply and drive characteristics"""
    supply_voltage_v: float = Field(..., gt=0, description="Line supply voltage (V)")
    rated_power_w: float = Field(..., gt=0, description="Rated traction power at the wheel (W)")
    traction_efficiency: float = Field(..., gt=0, le=1, description="Line-to-wheel efficiency")
    regenerative_efficiency: float = Field(..., ge=0, le=1, description="Wheel-to-line braking recovery")
    regenerative_braking: bool = Field(True, description="Feed braking energy back to the line")


class RunningParameters(ParameterModel):
    """Operating conditions of the run"""
    initial_speed_mps: float = Field(0.0, ge=0, description="Speed at track position 0 (m/s)")
    dwell_time_s: float = Field(0.0, ge=0, description="Dwell time at each stop (s)")
    stop_positions_m: Tuple[Annotated[float, Field(ge=0)], ...] = Field(
        default=(), description="Stop positions along the track (m)")

    @field_validator("stop_positions_m")
    @classmethod
    def validate_stop_order(cls, v):
        if any(b <= a for a, b in zip(v, v[1:])):
            raise ValueError("stop positions must be strictly increasing")
        return v


class TrackSegment(ParameterModel):
    """A contiguous portion of track with uniform characteristics"""
    length_m: float = Field(..., gt=0, description="Segment length (m)")
    grade: float = Field(0.0, description="Grade ratio, positive uphill")
    curve_radius_m: Optional[float] = Field(None, gt=0, description="Curve radius (m), null when straight")
    speed_limit_mps: float = Field(..., gt=0, description="Line speed limit (m/s)")

    @field_validator("curve_radius_m", mode="before")
    @classmethod
    def parse_straight_sentinel(cls, v):
        if isinstance(v, str) and v.strip().lower() == STRAIGHT:
            return None
        if isinstance(v, (int, float)) and math.isinf(v):
            return None
        return v

    @property
    def is_straight(self) -> bool:
        return self.curve_radius_m is None


class TrackParameters(ParameterModel):
    """Ordered track segments from position 0"""
    segments: Tuple[TrackSegment, ...] = Field(..., min_length=1)

    @property
    def total_length_m(self) -> float:
        return math.fsum(s.length_m for s in self.segments)


class SimulationSettings(ParameterModel):
    """Numerical settings of the integration loop"""
    time_step_s: float = Field(0.1, gt=0, le=1.0, description="Fixed integration time step (s)")


class ParameterSnapshot(ParameterModel):
    """The four parameter groups frozen together at run start"""
    train: TrainParameters
    electrical: ElectricalParameters
    running: RunningParameters
    track: TrackParameters


PARAMETER_GROUPS: Dict[str, Type[ParameterModel]] = {
    "train": TrainParameters,
    "electrical": ElectricalParameters,
    "running": RunningParameters,
    "track": TrackParameters,
}


def field_errors_from_pydantic(group: str, exc: PydanticValidationError) -> List[FieldError]:
    """Flatten pydantic errors into dotted field paths prefixed by the group"""
    errors = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"])
        errors.append(FieldError(".".join(p for p in (group, loc) if p), err["msg"]))
    return errors


def parse_group(group: str, data: Any) -> ParameterModel:
    """
    Validate raw data for a named parameter group

    Args:
        group: One of ``PARAMETER_GROUPS``
        data: Model instance or mapping of field values

    Returns:
        Validated, immutable parameter model

    Raises:
        ValidationError: listing every violated field
    """
    if group not in PARAMETER_GROUPS:
        raise ValidationError([FieldError(group, f"unknown parameter group '{group}'")])

    model_cls = PARAMETER_GROUPS[group]
    if isinstance(data, model_cls):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump()
    if not isinstance(data, Mapping):
        raise ValidationError([FieldError(group, "expected an object of field values")])

    try:
        return model_cls.model_validate(dict(data))
    except PydanticValidationError as e:
        raise ValidationError(field_errors_from_pydantic(group, e)) from None


def cross_check(train: Optional[TrainParameters] = None,
                running: Optional[RunningParameters] = None,
                track: Optional[TrackParameters] = None) -> List[FieldError]:
    """
    Range checks spanning more than one parameter group

    Groups passed as None are skipped, so partial configurations can be
    checked as they are being entered.
    """
    errors = []
    if running is None:
        return errors

    if train is not None and running.initial_speed_mps > train.max_speed_mps:
        errors.append(FieldError(
            "running.initial_speed_mps",
            f"initial speed {running.initial_speed_mps} m/s exceeds train max speed "
            f"{train.max_speed_mps} m/s"))

    if track is not None:
        total = track.total_length_m
        for i, position in enumerate(running.stop_positions_m):
            if position > total:
                errors.append(FieldError(
                    f"running.stop_positions_m.{i}",
                    f"stop position {position} m lies beyond track length {total} m"))

        first_limit = track.segments[0].speed_limit_mps
        if running.initial_speed_mps > first_limit:
            errors.append(FieldError(
                "running.initial_speed_mps",
                f"initial speed {running.initial_speed_mps} m/s exceeds the first segment "
                f"speed limit {first_limit} m/s"))

    return errors


def validate_snapshot(snapshot: ParameterSnapshot) -> ParameterSnapshot:
    """Re-run every cross-group check on a complete snapshot"""
    errors = cross_check(snapshot.train, snapshot.running, snapshot.track)
    if errors:
        raise ValidationError(errors)
    return snapshot


def parse_settings(data: Any) -> SimulationSettings:
    """Validate numerical settings, reporting violations like a parameter group"""
    if isinstance(data, SimulationSettings):
        return data
    if not isinstance(data, Mapping):
        raise ValidationError([FieldError("settings", "expected an object of field values")])
    try:
        return SimulationSettings.model_validate(dict(data))
    except PydanticValidationError as e:
        raise ValidationError(field_errors_from_pydantic("settings", e)) from None
