"""
Result store and CSV export tests.
"""

import json

import pytest

from trainsim.engine.result_store import ResultStore, Sample
from trainsim.engine.simulator import RunSimulator
from trainsim.errors import NoResultsError
from trainsim.export.data_export import COLUMNS, DataExporter


def make_sample(t, position, speed, energy=0.0, regenerated=0.0, power=0.0):
    return Sample(
        time_s=t,
        position_m=position,
        speed_mps=speed,
        acceleration_mps2=0.0,
        tractive_force_n=0.0,
        power_w=power,
        line_current_a=power / 1500,
        energy_j=energy,
        regenerated_energy_j=regenerated,
    )


class TestResultStore:
    """Test result retention"""

    def test_empty_store(self):
        """Test a store that never saw a run"""
        store = ResultStore()

        assert store.latest() is None
        assert store.last_completed() is None
        assert store.snapshot() == ()

    def test_snapshot_is_a_copy(self):
        """Test that later appends do not change an earlier snapshot"""
        store = ResultStore()
        store.begin_run("run-1")
        store.append_sample(make_sample(0.0, 0.0, 0.0))
        snapshot = store.snapshot()
        store.append_sample(make_sample(0.1, 0.1, 1.0))

        assert len(snapshot) == 1
        assert len(store.snapshot()) == 2

    def test_retention(self):
        """Test latest run plus last completed result"""
        store = ResultStore()
        store.begin_run("run-1")
        store.append_sample(make_sample(0.0, 0.0, 0.0))
        store.finish_run(final=True)

        store.begin_run("run-2")
        store.append_sample(make_sample(0.0, 0.0, 0.0))
        store.finish_run(final=False)

        assert store.latest().run_id == "run-2"
        assert not store.latest().final
        assert store.last_completed().run_id == "run-1"
        assert store.last_completed().final

    def test_result_records(self):
        """Test that results encode to plain records"""
        store = ResultStore()
        store.begin_run("run-1")
        store.append_sample(make_sample(0.0, 0.0, 0.0))
        store.append_sample(make_sample(0.1, 0.2, 2.0))

        record = store.latest().to_dict(offset=1)
        assert record["sample_count"] == 2
        assert record["samples"] == [make_sample(0.1, 0.2, 2.0).to_dict()]


class TestCsvExport:
    """Test deterministic CSV rendering"""

    def test_empty_export_fails(self):
        """Test that there is nothing to export without samples"""
        with pytest.raises(NoResultsError):
            DataExporter().export_csv([])

    def test_header_and_format(self):
        """Test fixed header, column order and precision"""
        content = DataExporter().export_csv([make_sample(0.1, 1.23456789, 2.0)])
        lines = content.decode("utf-8").split("\n")

        assert lines[0] == ",".join(COLUMNS.values())
        assert lines[1].startswith("0.100000,1.234568,2.000000,")
        assert lines[-1] == ""
        assert b"\r" not in content

    def test_round_trip(self, flat_snapshot):
        """Test that re-parsed CSV reproduces the series within precision"""
        samples = list(RunSimulator(flat_snapshot).samples())
        exporter = DataExporter()

        df = exporter.read_csv(exporter.export_csv(samples))

        assert len(df) == len(samples)
        for field, column in COLUMNS.items():
            expected = [getattr(s, field) for s in samples]
            assert df[column].tolist() == pytest.approx(expected, abs=1e-6)

    def test_identical_runs_identical_bytes(self, flat_snapshot):
        """Test byte-identical export of two runs"""
        exporter = DataExporter()
        first = exporter.export_csv(list(RunSimulator(flat_snapshot).samples()))
        second = exporter.export_csv(list(RunSimulator(flat_snapshot).samples()))

        assert first == second


class TestSummary:
    """Test run metrics and file output"""

    def test_summarize(self):
        """Test travel time, distance and energy figures"""
        samples = [
            make_sample(0.0, 0.0, 0.0),
            make_sample(50.0, 500.0, 20.0, energy=7.2e6, power=1e6),
            make_sample(100.0, 1000.0, 10.0, energy=7.2e6, regenerated=3.6e6, power=-5e5),
        ]

        summary = DataExporter().summarize(samples)

        assert summary["travel_time_s"] == 100.0
        assert summary["distance_m"] == 1000.0
        assert summary["max_speed_mps"] == 20.0
        assert summary["average_speed_mps"] == pytest.approx(10.0)
        assert summary["consumed_energy_kwh"] == pytest.approx(2.0)
        assert summary["regenerated_energy_kwh"] == pytest.approx(1.0)
        assert summary["net_energy_kwh"] == pytest.approx(1.0)
        assert summary["specific_energy_kwh_per_km"] == pytest.approx(1.0)
        assert summary["max_power_w"] == 1e6
        assert summary["sample_count"] == 3

    def test_write_run_files(self, tmp_path, flat_snapshot):
        """Test CSV and JSON summary files"""
        samples = list(RunSimulator(flat_snapshot).samples())

        files = DataExporter().write_run_files(samples, "0123456789abcdef", tmp_path / "out")

        assert files["csv"].endswith("run_01234567.csv")
        with open(files["summary"]) as f:
            document = json.load(f)
        assert document["metadata"]["run_id"] == "0123456789abcdef"
        assert document["summary"]["distance_m"] == pytest.approx(1000.0)
