"""
API Module
==========

This module provides the REST API server through which the frontend and
other clients drive the simulation engine.

Key Features:
- Parameter group get/set with field-level validation errors
- Simulation start, status, cancel and reset
- Incremental results retrieval
- CSV export

Routes:
    /api/parameters - Parameter management
    /api/scenarios - Scenario templates
    /api/simulation - Simulation control and results
    /api/export - Data export functionality
"""
