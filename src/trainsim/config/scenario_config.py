"""
Scenario Configuration Module

This module handles scenario configuration, validation, and management for train
run simulations. A scenario bundles the four parameter groups with the numerical
settings of a run, and can be loaded from JSON or YAML files or created from
built-in templates.

References:
- Pydantic configuration management
- UIC 544-1 braking performance conventions (deceleration in m/s²)
"""

import copy
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .parameters import (
    ElectricalParameters,
    ParameterModel,
    ParameterSnapshot,
    RunningParameters,
    SimulationSettings,
    TrackParameters,
    TrainParameters,
    cross_check,
    field_errors_from_pydantic,
)
from ..dynamics.forces import braking_distance, resistance, tractive_effort
from ..errors import FieldError, ValidationError


class ScenarioDefinition(ParameterModel):
    """A complete, runnable scenario"""
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        allow_inf_nan=False,
        json_schema_extra={
            "example": {
                "scenario_name": "Flat_Demo",
                "description": "One kilometre of flat, straight track",
                "train": {
                    "mass_kg": 200000,
                    "length_m": 80,
                    "max_speed_mps": 25.0,
                    "traction_curve": [[0, 50000], [20, 50000]],
                    "braking_deceleration_mps2": 1.0
                },
                "electrical": {
                    "supply_voltage_v": 1500,
                    "rated_power_w": 2000000,
                    "traction_efficiency": 0.85,
                    "regenerative_efficiency": 0.7
                },
                "running": {"initial_speed_mps": 0.0},
                "track": {"segments": [{"length_m": 1000, "speed_limit_mps": 25.0}]}
            }
        },
    )

    scenario_name: str = Field(..., description="Scenario name")
    description: Optional[str] = Field(None, description="Scenario description")
    version: str = Field("1.0", description="Configuration version")
    train: TrainParameters
    electrical: ElectricalParameters
    running: RunningParameters
    track: TrackParameters
    settings: SimulationSettings = Field(default_factory=SimulationSettings)

    def to_snapshot(self) -> ParameterSnapshot:
        return ParameterSnapshot(
            train=self.train, electrical=self.electrical, running=self.running, track=self.track)


class ScenarioConfig:
    """
    Scenario configuration management system.

    Features:
    - JSON/YAML configuration loading and validation
    - Pre-defined line templates
    - Cross-group validation with field-level error reporting
    - Run feasibility analysis with recommendations
    """

    def __init__(self):
        """Initialize scenario configuration manager"""
        self.config: Optional[ScenarioDefinition] = None
        self.templates = self._load_default_templates()

    def load_config(self, filepath: Union[str, Path]) -> ScenarioDefinition:
        """
        Load configuration from file

        Args:
            filepath: Path to a .json, .yaml or .yml scenario file

        Returns:
            Validated scenario definition

        Raises:
            FileNotFoundError: if the file does not exist
            ValueError: if the file cannot be parsed
            ValidationError: if the scenario is invalid
        """
        path = Path(filepath)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {filepath}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                if path.suffix.lower() in ['.yaml', '.yml']:
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
            raise ValueError(f"Error loading configuration: {e}") from e

        self.config = self.validate_config(data)
        return self.config

    def save_config(self, config: ScenarioDefinition, filepath: Union[str, Path], format: str = "json"):
        """
        Save configuration to file

        Args:
            config: Configuration to save
            filepath: Output file path
            format: Output format ("json" or "yaml")
        """
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = config.to_dict()

        with open(path, 'w', encoding='utf-8') as f:
            if format.lower() in ['yaml', 'yml']:
                yaml.safe_dump(data, f, default_flow_style=False, indent=2, sort_keys=False)
            else:
                json.dump(data, f, indent=2)

    def create_from_template(self, template_name: str, **kwargs) -> ScenarioDefinition:
        """
        Create configuration from predefined template

        Args:
            template_name: Name of template
            **kwargs: Parameters to override (nested dictionaries are merged)

        Returns:
            Validated scenario definition
        """
        if template_name not in self.templates:
            raise ValueError(f"Template not found: {template_name}")

        template_data = copy.deepcopy(self.templates[template_name])

        # Apply overrides
        self._deep_update(template_data, kwargs)

        return self.validate_config(template_data)

    def validate_config(self, config_data: Any) -> ScenarioDefinition:
        """
        Validate configuration data

        Args:
            config_data: Configuration data dictionary

        Returns:
            Validated configuration

        Raises:
            ValidationError: listing every violated field, including cross-group checks
        """
        if not isinstance(config_data, dict):
            raise ValidationError([FieldError("scenario", "expected an object of parameter groups")])

        try:
            config = ScenarioDefinition.model_validate(config_data)
        except PydanticValidationError as e:
            raise ValidationError(field_errors_from_pydantic("", e)) from None

        errors = cross_check(config.train, config.running, config.track)
        if errors:
            raise ValidationError(errors)
        return config

    def get_config_schema(self) -> Dict:
        """
        Get configuration schema

        Returns:
            JSON schema for configuration
        """
        return ScenarioDefinition.model_json_schema()

    def list_templates(self) -> List[str]:
        """
        List available templates

        Returns:
            List of template names
        """
        return list(self.templates.keys())

    def _load_default_templates(self) -> Dict[str, Dict]:
        """Load default line templates"""
        return {
            "Flat_Demo": {
                "scenario_name": "Flat_Demo",
                "description": "One kilometre of flat, straight track without stops",
                "train": {
                    "mass_kg": 200000,
                    "length_m": 80,
                    "max_speed_mps": 25.0,
                    "traction_curve": [[0, 50000], [20, 50000]],
                    "braking_deceleration_mps2": 1.0
                },
                "electrical": {
                    "supply_voltage_v": 1500,
                    "rated_power_w": 2000000,
                    "traction_efficiency": 0.85,
                    "regenerative_efficiency": 0.7
                },
                "running": {
                    "initial_speed_mps": 0.0,
                    "dwell_time_s": 0.0,
                    "stop_positions_m": []
                },
                "track": {
                    "segments": [
                        {"length_m": 1000, "grade": 0.0, "curve_radius_m": "straight", "speed_limit_mps": 25.0}
                    ]
                }
            },

            "Commuter_Line": {
                "scenario_name": "Commuter_Line",
                "description": "Suburban EMU service over a 5 km line with two stops",
                "train": {
                    "mass_kg": 200000,
                    "length_m": 80,
                    "max_speed_mps": 27.8,
                    "traction_curve": [[0, 200000], [10, 200000], [27.8, 72000]],
                    "braking_deceleration_mps2": 1.0,
                    "inertial_coefficient": 1.08
                },
                "electrical": {
                    "supply_voltage_v": 1500,
                    "rated_power_w": 2000000,
                    "traction_efficiency": 0.85,
                    "regenerative_efficiency": 0.7
                },
                "running": {
                    "initial_speed_mps": 0.0,
                    "dwell_time_s": 30.0,
                    "stop_positions_m": [1800, 5000]
                },
                "track": {
                    "segments": [
                        {"length_m": 1200, "grade": 0.0, "curve_radius_m": "straight", "speed_limit_mps": 22.2},
                        {"length_m": 800, "grade": 0.01, "curve_radius_m": 600, "speed_limit_mps": 16.7},
                        {"length_m": 2000, "grade": -0.005, "curve_radius_m": "straight", "speed_limit_mps": 27.8},
                        {"length_m": 1000, "grade": 0.0, "curve_radius_m": "straight", "speed_limit_mps": 22.2}
                    ]
                }
            },

            "Mountain_Freight": {
                "scenario_name": "Mountain_Freight",
                "description": "Heavy freight train climbing a curved 1.5% ramp",
                "train": {
                    "mass_kg": 1500000,
                    "length_m": 600,
                    "max_speed_mps": 22.2,
                    "traction_curve": [[0, 420000], [8, 400000], [22.2, 190000]],
                    "braking_deceleration_mps2": 0.4,
                    "inertial_coefficient": 1.06,
                    "rolling_resistance_coefficient": 0.0015
                },
                "electrical": {
                    "supply_voltage_v": 25000,
                    "rated_power_w": 6400000,
                    "traction_efficiency": 0.88,
                    "regenerative_efficiency": 0.75
                },
                "running": {
                    "initial_speed_mps": 10.0,
                    "dwell_time_s": 0.0,
                    "stop_positions_m": []
                },
                "track": {
                    "segments": [
                        {"length_m": 3000, "grade": 0.0, "curve_radius_m": "straight", "speed_limit_mps": 22.2},
                        {"length_m": 4000, "grade": 0.015, "curve_radius_m": 800, "speed_limit_mps": 16.7},
                        {"length_m": 3000, "grade": -0.01, "curve_radius_m": 1200, "speed_limit_mps": 19.4}
                    ]
                }
            }
        }

    def _deep_update(self, base_dict: Dict, update_dict: Dict):
        """Deep update dictionary"""
        for key, value in update_dict.items():
            if key in base_dict and isinstance(base_dict[key], dict) and isinstance(value, dict):
                self._deep_update(base_dict[key], value)
            else:
                base_dict[key] = value

    def generate_config_summary(self, config: ScenarioDefinition) -> Dict:
        """
        Generate configuration summary

        Args:
            config: Scenario configuration

        Returns:
            Configuration summary dictionary
        """
        track = config.track
        return {
            'scenario_name': config.scenario_name,
            'description': config.description,
            'train': {
                'mass_t': config.train.mass_kg / 1000.0,
                'max_speed_kmh': config.train.max_speed_mps * 3.6,
                'starting_force_kn': config.train.traction_curve[0].force_n / 1000.0,
                'braking_deceleration_mps2': config.train.braking_deceleration_mps2
            },
            'electrical': {
                'supply_voltage_v': config.electrical.supply_voltage_v,
                'rated_power_kw': config.electrical.rated_power_w / 1000.0,
                'regenerative_braking': config.electrical.regenerative_braking
            },
            'track': {
                'length_km': track.total_length_m / 1000.0,
                'segment_count': len(track.segments),
                'max_grade': max(s.grade for s in track.segments),
                'min_grade': min(s.grade for s in track.segments),
                'min_curve_radius_m': min(
                    (s.curve_radius_m for s in track.segments if not s.is_straight), default=None)
            },
            'running': {
                'stop_count': len(config.running.stop_positions_m),
                'dwell_time_s': config.running.dwell_time_s,
                'initial_speed_mps': config.running.initial_speed_mps
            },
            'simulation_settings': {
                'time_step_s': config.settings.time_step_s
            }
        }

    def validate_run_feasibility(self, config: ScenarioDefinition) -> Dict:
        """
        Check a scenario for runs that are bound to fail or look unrealistic

        Args:
            config: Scenario configuration

        Returns:
            Feasibility analysis and recommendations
        """
        issues = []
        warnings = []
        recommendations = []

        train, electrical, running = config.train, config.electrical, config.running

        # Check that the train can start on every segment
        starting_force = tractive_effort(0.0, train, electrical)
        for i, segment in enumerate(config.track.segments):
            total_resistance = sum(resistance(segment, train))
            if starting_force <= total_resistance:
                issues.append(f"Segment {i}: starting force {starting_force / 1000:.1f} kN does not "
                              f"overcome resistance {total_resistance / 1000:.1f} kN")
                recommendations.append("Increase the starting tractive effort or reduce the grade")

        # Check that the first stop can be reached from the initial speed
        if running.stop_positions_m:
            first_stop = running.stop_positions_m[0]
            needed = braking_distance(running.initial_speed_mps, 0.0, train.braking_deceleration_mps2)
            if needed > first_stop:
                issues.append(f"Braking distance {needed:.1f} m from the initial speed exceeds "
                              f"the distance to the first stop ({first_stop:.1f} m)")

        if running.stop_positions_m and running.dwell_time_s == 0:
            warnings.append("Dwell time is zero - stops are served without waiting")

        # Check the time step against the distance covered per step
        step_distance = train.max_speed_mps * config.settings.time_step_s
        if step_distance > 5.0:
            warnings.append(f"Train may cover {step_distance:.1f} m per step at max speed")
            recommendations.append("Use a smaller time step for accurate stopping positions")

        if not electrical.regenerative_braking:
            recommendations.append("Enable regenerative braking to estimate recoverable energy")

        return {
            "feasible": len(issues) == 0,
            "issues": issues,
            "warnings": warnings,
            "recommendations": recommendations
        }
