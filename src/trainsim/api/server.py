"""
API Server
==========

Flask-based REST API server for the train run simulator.

Provides endpoints for parameter management, simulation control and
results retrieval. Every route delegates to one ``TrainSimulationModel``;
the app holds no other state.

Routes:
    GET  /status - Server status
    GET  /api/health - Health check
    GET  /api/parameters/<group> - Get train, electrical, running or track parameters
    POST /api/parameters/<group> - Update a parameter group
    GET  /api/scenarios - Get available scenario templates
    POST /api/scenarios/<name> - Load a template into the parameter store
    POST /api/simulation/start - Start simulation
    GET  /api/simulation/status - Get simulation status
    GET  /api/simulation/results - Get simulation results
    POST /api/simulation/cancel - Cancel the running simulation
    POST /api/simulation/reset - Return to idle after a finished run
    POST /api/export/results - Export results to CSV
"""

import io
import logging
from datetime import datetime
from typing import Optional

from flask import Flask, jsonify, request, send_file
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from .. import __version__
from ..config.parameters import PARAMETER_GROUPS, parse_settings
from ..errors import (
    ConflictError,
    NoResultsError,
    NotAvailableError,
    NotConfiguredError,
    TrainSimError,
    ValidationError,
)
from ..main import TrainSimulationModel

logger = logging.getLogger(__name__)

STATUS_CODES = {
    ValidationError: 400,
    NotConfiguredError: 404,
    NotAvailableError: 404,
    NoResultsError: 404,
    ConflictError: 409,
}


def _error_status(error: TrainSimError) -> int:
    for error_type, code in STATUS_CODES.items():
        if isinstance(error, error_type):
            return code
    return 500


def create_app(model: Optional[TrainSimulationModel] = None) -> Flask:
    """
    Create and configure Flask app

    Args:
        model: Simulation model served by the app (a fresh one when omitted)

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)
    CORS(app)  # Enable CORS for frontend

    model = model or TrainSimulationModel()
    app.config['MODEL'] = model
    orchestrator = model.orchestrator

    @app.errorhandler(TrainSimError)
    def handle_simulation_error(error: TrainSimError):
        body = {'success': False, 'error': str(error)}
        if isinstance(error, ValidationError):
            body['errors'] = error.to_dict()
        return jsonify(body), _error_status(error)

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        return jsonify({'success': False, 'error': error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.path}")
        return jsonify({'success': False, 'error': str(error)}), 500

    @app.route('/status', methods=['GET'])
    def server_status():
        """Server status"""
        return jsonify({
            'success': True,
            'server': 'running',
            'version': __version__,
            'simulation': orchestrator.status().to_dict()
        })

    @app.route('/api/health', methods=['GET'])
    def health_check():
        """Health check endpoint"""
        return jsonify({
            'status': 'healthy',
            'timestamp': datetime.now().isoformat(),
            'version': __version__,
            'parameters': {
                group: model.parameter_store.is_configured(group) for group in PARAMETER_GROUPS
            }
        })

    @app.route('/api/parameters/<group>', methods=['GET'])
    def get_parameters(group: str):
        """Get a parameter group"""
        value = model.parameter_store.get_group(group)
        return jsonify({
            'success': True,
            'group': group,
            'parameters': value.to_dict()
        })

    @app.route('/api/parameters/<group>', methods=['POST'])
    def set_parameters(group: str):
        """Validate and store a parameter group"""
        data = request.get_json(silent=True)
        if data is None:
            return jsonify({
                'success': False,
                'error': 'No data provided'
            }), 400

        value = model.parameter_store.set_group(group, data)
        return jsonify({
            'success': True,
            'group': group,
            'parameters': value.to_dict()
        })

    @app.route('/api/scenarios', methods=['GET'])
    def get_scenarios():
        """Get all available scenario templates"""
        manager = model.scenario_manager
        scenarios_data = []
        for name in manager.list_templates():
            template = manager.templates[name]
            scenarios_data.append({
                'id': name,
                'name': name,
                'description': template.get('description'),
                'type': 'preset'
            })

        return jsonify({
            'success': True,
            'scenarios': scenarios_data
        })

    @app.route('/api/scenarios/<scenario_name>', methods=['POST'])
    def load_scenario(scenario_name: str):
        """Load a scenario template, with optional overrides, into the parameter store"""
        if scenario_name not in model.scenario_manager.templates:
            return jsonify({
                'success': False,
                'error': f'Scenario not found: {scenario_name}'
            }), 404

        overrides = request.get_json(silent=True) or {}
        if not isinstance(overrides, dict):
            return jsonify({
                'success': False,
                'error': 'Overrides must be an object'
            }), 400

        config = model.scenario_manager.create_from_template(scenario_name, **overrides)
        model.apply_scenario(config)

        return jsonify({
            'success': True,
            'scenario': model.get_configuration_info(),
            'feasibility': model.validate_configuration()
        })

    @app.route('/api/simulation/start', methods=['POST'])
    def start_simulation():
        """Start a new simulation from the stored parameters"""
        data = request.get_json(silent=True) or {}
        settings = parse_settings(data['settings']) if 'settings' in data else None

        run_id = orchestrator.start(settings=settings)

        return jsonify({
            'success': True,
            'run_id': run_id,
            'status': orchestrator.status().to_dict()
        })

    @app.route('/api/simulation/status', methods=['GET'])
    def get_simulation_status():
        """Get status of the current simulation"""
        return jsonify({
            'success': True,
            **orchestrator.status().to_dict()
        })

    @app.route('/api/simulation/results', methods=['GET'])
    def get_simulation_results():
        """Get the latest result series, from an optional sample offset"""
        offset = request.args.get('offset', default=0, type=int)
        result = orchestrator.results()

        response = {
            'success': True,
            'results': result.to_dict(offset=max(offset, 0))
        }
        if result.samples:
            response['summary'] = model.exporter.summarize(result.samples)
        return jsonify(response)

    @app.route('/api/simulation/cancel', methods=['POST'])
    def cancel_simulation():
        """Cancel the running simulation"""
        orchestrator.cancel()
        return jsonify({
            'success': True,
            'status': orchestrator.status().to_dict()
        })

    @app.route('/api/simulation/reset', methods=['POST'])
    def reset_simulation():
        """Return to idle after a finished, failed or cancelled run"""
        orchestrator.reset()
        return jsonify({
            'success': True,
            'status': orchestrator.status().to_dict()
        })

    @app.route('/api/export/results', methods=['POST'])
    def export_results():
        """Export the latest results as a CSV attachment"""
        content = orchestrator.export_csv()
        run_id = model.result_store.latest().run_id

        return send_file(
            io.BytesIO(content),
            mimetype='text/csv',
            as_attachment=True,
            download_name=f'simulation_results_{run_id[:8]}.csv'
        )

    return app


def run_server(host: str = '127.0.0.1', port: int = 8080, debug: bool = False,
               model: Optional[TrainSimulationModel] = None):
    """Run the API server"""
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO,
                            format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    app = create_app(model)
    logger.info(f"Train simulation server starting on {host}:{port}")
    for rule in sorted(app.url_map.iter_rules(), key=lambda r: r.rule):
        if rule.endpoint != 'static':
            methods = ",".join(sorted(rule.methods - {'HEAD', 'OPTIONS'}))
            logger.info(f"  {methods:<5} {rule.rule}")
    app.run(host=host, port=port, debug=debug, threaded=True)


if __name__ == '__main__':
    run_server(debug=True)
