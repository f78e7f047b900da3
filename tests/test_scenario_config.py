"""
Scenario configuration tests.
"""

import json

import pytest

from trainsim.config.scenario_config import ScenarioConfig, ScenarioDefinition
from trainsim.errors import ValidationError


@pytest.fixture
def manager():
    return ScenarioConfig()


class TestTemplates:
    """Test built-in templates"""

    def test_list_templates(self, manager):
        """Test that the shipped templates are listed"""
        assert set(manager.list_templates()) == {"Flat_Demo", "Commuter_Line", "Mountain_Freight"}

    @pytest.mark.parametrize("name", ["Flat_Demo", "Commuter_Line", "Mountain_Freight"])
    def test_templates_are_valid_and_feasible(self, manager, name):
        """Test that every template validates and passes the feasibility check"""
        config = manager.create_from_template(name)

        assert isinstance(config, ScenarioDefinition)
        assert manager.validate_run_feasibility(config)["feasible"]

    def test_override(self, manager):
        """Test nested overrides merged into a template"""
        config = manager.create_from_template(
            "Flat_Demo", train={"mass_kg": 150000}, settings={"time_step_s": 0.05})

        assert config.train.mass_kg == 150000
        assert config.train.length_m == 80
        assert config.settings.time_step_s == 0.05

    def test_override_does_not_leak(self, manager):
        """Test that overrides never modify the stored template"""
        manager.create_from_template("Flat_Demo", train={"mass_kg": 150000})

        assert manager.templates["Flat_Demo"]["train"]["mass_kg"] == 200000

    def test_unknown_template(self, manager):
        """Test a missing template name"""
        with pytest.raises(ValueError, match="Template not found"):
            manager.create_from_template("Maglev")

    def test_invalid_override(self, manager):
        """Test that overrides are validated like any scenario"""
        with pytest.raises(ValidationError) as exc_info:
            manager.create_from_template("Flat_Demo", running={"stop_positions_m": [2000]})

        assert exc_info.value.fields == ["running.stop_positions_m.0"]


class TestConfigFiles:
    """Test JSON and YAML scenario files"""

    @pytest.mark.parametrize("suffix,fmt", [(".json", "json"), (".yaml", "yaml")])
    def test_save_and_load(self, manager, tmp_path, suffix, fmt):
        """Test that a saved scenario loads back unchanged"""
        config = manager.create_from_template("Commuter_Line")
        path = tmp_path / f"commuter{suffix}"

        manager.save_config(config, path, format=fmt)
        loaded = manager.load_config(path)

        assert loaded == config
        assert manager.config is loaded

    def test_missing_file(self, manager, tmp_path):
        """Test a path that does not exist"""
        with pytest.raises(FileNotFoundError):
            manager.load_config(tmp_path / "missing.json")

    def test_unparsable_file(self, manager, tmp_path):
        """Test malformed JSON"""
        path = tmp_path / "broken.json"
        path.write_text("{ not json")

        with pytest.raises(ValueError, match="Error loading configuration"):
            manager.load_config(path)

    def test_invalid_scenario_fields(self, manager, tmp_path):
        """Test field errors with their group path"""
        data = dict(manager.templates["Flat_Demo"])
        data["train"] = {**data["train"], "mass_kg": -1}
        path = tmp_path / "invalid.json"
        path.write_text(json.dumps(data))

        with pytest.raises(ValidationError) as exc_info:
            manager.load_config(path)

        assert "train.mass_kg" in exc_info.value.fields


class TestAnalysis:
    """Test summaries and feasibility analysis"""

    def test_config_summary(self, manager):
        """Test the scenario summary figures"""
        summary = manager.generate_config_summary(manager.create_from_template("Commuter_Line"))

        assert summary["track"]["length_km"] == pytest.approx(5.0)
        assert summary["track"]["segment_count"] == 4
        assert summary["track"]["min_curve_radius_m"] == 600
        assert summary["running"]["stop_count"] == 2

    def test_infeasible_start_on_grade(self, manager):
        """Test that a train too weak for a grade is reported"""
        config = manager.create_from_template(
            "Flat_Demo", track={"segments": [{"length_m": 1000, "grade": 0.03, "speed_limit_mps": 25}]})

        analysis = manager.validate_run_feasibility(config)

        assert not analysis["feasible"]
        assert "Segment 0" in analysis["issues"][0]

    def test_schema(self, manager):
        """Test that a JSON schema is available"""
        schema = manager.get_config_schema()

        assert "train" in schema["properties"]
