"""
Train Run Simulator - Main Interface

This module provides the main interface for the train run simulation system.
It wires the parameter store, the simulation orchestrator, the result store and
the exporter together and provides a high-level API for running scenarios.

Usage:
    from trainsim.main import TrainSimulationModel

    model = TrainSimulationModel()
    model.load_scenario('config/default_scenario.json')
    result = model.run_simulation()
    model.export_results('results/')
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from . import __version__
from .config.parameter_store import ParameterStore
from .config.parameters import parse_settings
from .config.scenario_config import ScenarioConfig, ScenarioDefinition
from .engine.orchestrator import RunState, SimulationOrchestrator
from .engine.result_store import ResultStore, SimulationResult
from .errors import ConflictError, TrainSimError
from .export.data_export import DataExporter

logger = logging.getLogger(__name__)


class TrainSimulationModel:
    """
    Main interface for train run simulation.

    This class provides a high-level API over the simulation engine, from
    scenario configuration to result export. The HTTP API and the command
    line both drive the engine through one instance of this class.

    Features:
    - Scenario files and built-in templates
    - Background simulation with status polling
    - CSV and JSON summary export
    - Feasibility checks before running
    """

    def __init__(self, config: Optional[Union[str, Path, ScenarioDefinition]] = None,
                 export_dir: Optional[Union[str, Path]] = None):
        """
        Initialize train simulation model

        Args:
            config: Scenario definition or path to a scenario file
            export_dir: Default directory for exported files
        """
        self.config: Optional[ScenarioDefinition] = None
        self.scenario_manager = ScenarioConfig()

        self.parameter_store = ParameterStore()
        self.result_store = ResultStore()
        self.exporter = DataExporter(export_dir)
        self.orchestrator = SimulationOrchestrator(
            parameter_store=self.parameter_store,
            result_store=self.result_store,
            exporter=self.exporter,
        )

        if isinstance(config, ScenarioDefinition):
            self.apply_scenario(config)
        elif config is not None:
            self.load_scenario(config)

    def load_scenario(self, filepath: Union[str, Path]) -> bool:
        """
        Load simulation scenario from file

        Args:
            filepath: Path to configuration file

        Returns:
            True if successful
        """
        try:
            logger.info(f"Loading scenario from {filepath}")
            self.apply_scenario(self.scenario_manager.load_config(filepath))
            logger.info("Scenario loaded successfully")
            return True

        except (OSError, ValueError, TrainSimError) as e:
            logger.error(f"Failed to load scenario: {e}")
            return False

    def create_scenario_from_template(self, template_name: str, **kwargs) -> bool:
        """
        Create scenario from predefined template

        Args:
            template_name: Name of template
            **kwargs: Configuration overrides

        Returns:
            True if successful
        """
        try:
            logger.info(f"Creating scenario from template: {template_name}")
            self.apply_scenario(self.scenario_manager.create_from_template(template_name, **kwargs))
            logger.info("Scenario created successfully")
            return True

        except (ValueError, TrainSimError) as e:
            logger.error(f"Failed to create scenario: {e}")
            return False

    def apply_scenario(self, config: ScenarioDefinition):
        """Load a scenario into the parameter store and adopt its settings"""
        self.parameter_store.load_snapshot(config.to_snapshot())
        self.orchestrator.settings = config.settings
        self.config = config

    def set_time_step(self, time_step_s: float):
        """Override the integration time step of subsequent runs"""
        self.orchestrator.settings = parse_settings({"time_step_s": time_step_s})

    def run_simulation(self, timeout: Optional[float] = None) -> SimulationResult:
        """
        Run a simulation to its end

        Args:
            timeout: Maximum wall-clock seconds to wait for the run

        Returns:
            Result series of the run (final only when it completed)
        """
        logger.info("Starting simulation...")
        start_time = datetime.now()

        self.orchestrator.start()
        if not self.orchestrator.wait(timeout):
            logger.warning("Simulation still running after timeout, cancelling")
            try:
                self.orchestrator.cancel()
            except ConflictError:
                logger.info("Simulation finished before it could be cancelled")
            self.orchestrator.wait()

        elapsed = (datetime.now() - start_time).total_seconds()
        status = self.orchestrator.status()
        logger.info(f"Simulation {status.state.value} in {elapsed:.2f} seconds")
        return self.orchestrator.results()

    def export_results(self, output_dir: Union[str, Path]) -> Dict[str, str]:
        """
        Export the latest results

        Args:
            output_dir: Output directory path

        Returns:
            Dictionary with paths to generated files
        """
        result = self.orchestrator.results()
        logger.info(f"Exporting results to {output_dir}...")

        files = self.exporter.write_run_files(result.samples, result.run_id, output_dir)

        if self.config:
            config_path = Path(output_dir) / f"{self.config.scenario_name}_config.json"
            self.scenario_manager.save_config(self.config, config_path)
            files['config'] = str(config_path.absolute())

        logger.info(f"Results exported to {output_dir}")
        return files

    def get_summary(self) -> Dict[str, Any]:
        """
        Get simulation summary

        Returns:
            Summary dictionary
        """
        status = self.orchestrator.status()
        result = self.result_store.latest()
        if result is None or not result.samples:
            return {"status": "No simulation completed"}

        summary = {
            'run': status.to_dict(),
            'performance': self.exporter.summarize(result.samples),
        }
        if self.config:
            summary['scenario'] = {
                'name': self.config.scenario_name,
                'description': self.config.description,
                'track_length_m': self.config.track.total_length_m
            }
        return summary

    def validate_configuration(self) -> Dict[str, Any]:
        """
        Validate current configuration

        Returns:
            Validation results
        """
        if not self.config:
            return {"feasible": False, "issues": ["No configuration loaded"],
                    "warnings": [], "recommendations": []}

        return self.scenario_manager.validate_run_feasibility(self.config)

    def list_available_templates(self) -> List[str]:
        """
        List available scenario templates

        Returns:
            List of template names
        """
        return self.scenario_manager.list_templates()

    def get_configuration_info(self) -> Dict[str, Any]:
        """
        Get current configuration information

        Returns:
            Configuration summary
        """
        if not self.config:
            return {"status": "No configuration loaded"}

        return self.scenario_manager.generate_config_summary(self.config)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Train Run Simulator")
    parser.add_argument("config", nargs="?", help="Configuration file path")
    parser.add_argument("--output", "-o", help="Output directory", default="results")
    parser.add_argument("--template", help="Create scenario from template")
    parser.add_argument("--time-step", type=float, help="Integration time step in seconds")
    parser.add_argument("--list-templates", action="store_true", help="List available templates")
    parser.add_argument("--headless", action="store_true", help="Run the REST API server")
    parser.add_argument("--host", default="127.0.0.1", help="Server host (headless mode)")
    parser.add_argument("--port", type=int, default=8080, help="Server port (headless mode)")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging level")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Command line interface for the train run simulator"""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    model = TrainSimulationModel()

    # List templates
    if args.list_templates:
        print("Available templates:")
        for template in model.list_available_templates():
            print(f"  - {template}")
        return 0

    # Create from template or load configuration
    success = True
    if args.template:
        success = model.create_scenario_from_template(args.template)
    elif args.config:
        success = model.load_scenario(args.config)

    if not success:
        print("Failed to load configuration")
        return 1

    if args.time_step is not None:
        try:
            model.set_time_step(args.time_step)
        except TrainSimError as e:
            print(f"Invalid time step: {e}")
            return 1

    if args.headless:
        from .api.server import run_server
        run_server(host=args.host, port=args.port, model=model)
        return 0

    if model.config is None:
        parser.error("a configuration file or --template is required unless --headless is given")

    # Validate configuration
    validation = model.validate_configuration()
    for warning in validation['warnings']:
        logger.warning(warning)
    if not validation['feasible']:
        print("Configuration validation failed:")
        for issue in validation['issues']:
            print(f"  - {issue}")
        return 1

    # Run simulation
    print("Running simulation...")
    model.run_simulation()
    status = model.orchestrator.status()
    if status.state is not RunState.COMPLETED:
        print(f"Simulation {status.state.value}: {status.diagnostic}")
        return 1

    # Export results
    print("Exporting results...")
    files = model.export_results(args.output)

    # Print summary
    performance = model.get_summary()['performance']
    print("\nSimulation Summary:")
    print(f"  Travel Time: {performance['travel_time_s']:.1f} s")
    print(f"  Distance: {performance['distance_m']:.1f} m")
    print(f"  Max Speed: {performance['max_speed_mps'] * 3.6:.1f} km/h")
    print(f"  Consumed Energy: {performance['consumed_energy_kwh']:.2f} kWh")
    print(f"  Regenerated Energy: {performance['regenerated_energy_kwh']:.2f} kWh")
    print(f"  Specific Energy: {performance['specific_energy_kwh_per_km']:.3f} kWh/km")
    print(f"  Results: {files['csv']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
