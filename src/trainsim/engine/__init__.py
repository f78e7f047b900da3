"""
Engine Module

This module provides the run simulator, the result store and the
orchestrator that owns the simulation lifecycle.
"""

from .orchestrator import RunState, SimulationOrchestrator
from .result_store import ResultStore, Sample, SimulationResult

__all__ = ["RunState", "SimulationOrchestrator", "ResultStore", "Sample", "SimulationResult"]
