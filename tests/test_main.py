"""
Main interface and command line tests.
"""

import json

import pytest

from trainsim.engine.orchestrator import RunState
from trainsim.main import TrainSimulationModel, main


class TestTrainSimulationModel:
    """Test the high-level model"""

    def test_template_run(self, tmp_path):
        """Test a complete run from a template with file export"""
        model = TrainSimulationModel()
        assert model.create_scenario_from_template("Flat_Demo")

        result = model.run_simulation(timeout=60)
        files = model.export_results(tmp_path)

        assert result.final
        assert model.orchestrator.state is RunState.COMPLETED
        assert set(files) == {"csv", "summary", "config"}
        assert model.get_summary()["performance"]["distance_m"] == pytest.approx(1000.0)

    def test_failed_load(self, tmp_path):
        """Test that a missing file is reported, not raised"""
        model = TrainSimulationModel()

        assert not model.load_scenario(tmp_path / "missing.json")
        assert model.config is None

    def test_unknown_template(self):
        assert not TrainSimulationModel().create_scenario_from_template("Maglev")

    def test_summary_without_run(self):
        assert TrainSimulationModel().get_summary() == {"status": "No simulation completed"}

    def test_time_step_override(self):
        model = TrainSimulationModel()
        model.create_scenario_from_template("Flat_Demo")
        model.set_time_step(0.25)

        result = model.run_simulation(timeout=60)

        assert result.samples[1].time_s == 0.25

    def test_run_finishing_at_timeout(self, monkeypatch):
        """Test a run that completes between the timeout and the cancel request"""
        model = TrainSimulationModel()
        model.create_scenario_from_template("Flat_Demo")
        join = model.orchestrator.wait
        calls = []

        def late_wait(timeout=None):
            calls.append(timeout)
            # Let the run finish, but report the first wait as timed out
            return join(60) and len(calls) > 1

        monkeypatch.setattr(model.orchestrator, "wait", late_wait)
        result = model.run_simulation(timeout=0.001)

        assert result.final
        assert model.orchestrator.state is RunState.COMPLETED


class TestCommandLine:
    """Test the command line entry point"""

    def test_list_templates(self, capsys):
        assert main(["--list-templates"]) == 0
        assert "Commuter_Line" in capsys.readouterr().out

    def test_run_template(self, tmp_path, capsys):
        """Test a template run writing results"""
        assert main(["--template", "Flat_Demo", "--output", str(tmp_path), "--log-level", "WARNING"]) == 0

        assert list(tmp_path.glob("run_*.csv"))
        assert "Simulation Summary" in capsys.readouterr().out

    def test_yaml_scenario_with_stop(self, tmp_path):
        """Test a YAML scenario that brakes into a stop and restarts"""
        config = tmp_path / "overspeed.yaml"
        config.write_text(
            "scenario_name: Overspeed\n"
            "train:\n"
            "  mass_kg: 200000\n"
            "  length_m: 80\n"
            "  max_speed_mps: 25\n"
            "  traction_curve: [[0, 50000], [20, 50000]]\n"
            "  braking_deceleration_mps2: 1.0\n"
            "electrical:\n"
            "  supply_voltage_v: 1500\n"
            "  rated_power_w: 2000000\n"
            "  traction_efficiency: 0.85\n"
            "  regenerative_efficiency: 0.7\n"
            "running:\n"
            "  initial_speed_mps: 20\n"
            "  stop_positions_m: [500]\n"
            "track:\n"
            "  segments:\n"
            "    - {length_m: 1000, speed_limit_mps: 25}\n"
        )

        assert main([str(config), "--output", str(tmp_path / "out")]) == 0
        assert list((tmp_path / "out").glob("run_*.csv"))

    def test_infeasible_scenario_exit_code(self, tmp_path, capsys):
        """Test a non-zero exit when the first stop cannot be reached"""
        assert main(["--template", "Flat_Demo", "--output", str(tmp_path)]) == 0
        config = next(tmp_path.glob("*_config.json"))
        data = json.loads(config.read_text())
        data["running"].update(initial_speed_mps=20.0, stop_positions_m=[50.0])
        config.write_text(json.dumps(data))

        assert main([str(config)]) == 1
        assert "Braking distance" in capsys.readouterr().out

    def test_missing_config(self):
        with pytest.raises(SystemExit):
            main([])

    def test_invalid_time_step(self):
        assert main(["--template", "Flat_Demo", "--time-step", "5"]) == 1
