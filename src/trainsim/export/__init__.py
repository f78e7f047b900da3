"""
Export Module

This module renders simulation results to CSV and summary files.
"""

from .data_export import DataExporter

__all__ = ["DataExporter"]
