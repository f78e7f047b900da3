"""
Configuration Module

This module provides the validated parameter groups, the thread-safe
parameter store and scenario file handling.
"""

from .parameters import ParameterSnapshot, SimulationSettings
from .parameter_store import ParameterStore
from .scenario_config import ScenarioConfig, ScenarioDefinition

__all__ = ["ParameterSnapshot", "SimulationSettings", "ParameterStore", "ScenarioConfig", "ScenarioDefinition"]
