"""
Train Run Simulation Engine
===========================

Computes the physical behavior of a train traversing a track and exposes
the simulation lifecycle (start, poll status, fetch results, export) as a
backend service.

Main Components:
- Validated parameter groups (train, electrical, running, track)
- Train dynamics and driving control
- Background run orchestration with cancellation
- Deterministic CSV export
- REST API and command line interface

Usage:
    >>> from trainsim.main import TrainSimulationModel
    >>> model = TrainSimulationModel('config/default_scenario.json')
    >>> result = model.run_simulation()
    >>> model.get_summary()
"""

__version__ = "1.0.0"
