"""
Simulation orchestrator tests: lifecycle, exclusivity and cancellation.
"""

import time

import pytest

from trainsim.config.parameter_store import ParameterStore
from trainsim.engine.orchestrator import RunState, SimulationOrchestrator
from trainsim.errors import ConflictError, NoResultsError, NotAvailableError, ValidationError

from conftest import make_snapshot

TIMEOUT = 60


@pytest.fixture
def orchestrator():
    orchestrator = SimulationOrchestrator()
    yield orchestrator
    # Never leave a worker running into the next test
    if orchestrator.state is RunState.RUNNING:
        orchestrator.cancel()
    orchestrator.wait(TIMEOUT)


class TestRunLifecycle:
    """Test the run state machine"""

    def test_initial_state(self, orchestrator):
        """Test that a new orchestrator is idle"""
        status = orchestrator.status()

        assert status.state is RunState.IDLE
        assert status.progress == 0.0
        assert status.run_id is None

    def test_flat_run_completes(self, orchestrator, flat_snapshot):
        """Flat 1 km track from rest: completed at 1000 m"""
        run_id = orchestrator.start(flat_snapshot)
        assert orchestrator.wait(TIMEOUT)

        status = orchestrator.status()
        assert status.state is RunState.COMPLETED
        assert status.run_id == run_id
        assert status.progress == 1.0
        assert status.diagnostic is None
        assert status.ended_at is not None

        result = orchestrator.results()
        assert result.final
        assert result.run_id == run_id
        assert result.samples[-1].position_m == 1000.0
        assert orchestrator.result_store.last_completed() == result

    def test_start_uses_parameter_store(self, flat_snapshot):
        """Test that start takes its snapshot from the parameter store"""
        store = ParameterStore()
        store.load_snapshot(flat_snapshot)
        orchestrator = SimulationOrchestrator(parameter_store=store)

        orchestrator.start()
        assert orchestrator.wait(TIMEOUT)
        assert orchestrator.state is RunState.COMPLETED

    def test_start_without_parameters(self, orchestrator):
        """Test that start needs all four groups"""
        with pytest.raises(ValidationError):
            orchestrator.start()

        assert orchestrator.state is RunState.IDLE

    def test_stop_beyond_track_rejected(self, orchestrator):
        """Stop beyond the track length: start rejected"""
        snapshot = make_snapshot(running={"stop_positions_m": [1500.0]})

        with pytest.raises(ValidationError) as exc_info:
            orchestrator.start(snapshot)

        assert exc_info.value.fields == ["running.stop_positions_m.0"]
        assert orchestrator.state is RunState.IDLE

    def test_braking_violation_fails_run(self, orchestrator, overspeed_snapshot):
        """Braking limit exceeded approaching a stop: run failed with diagnostic"""
        orchestrator.start(overspeed_snapshot)
        assert orchestrator.wait(TIMEOUT)

        status = orchestrator.status()
        assert status.state is RunState.FAILED
        assert "braking" in status.diagnostic

        result = orchestrator.results()
        assert not result.final

    def test_restart_after_failure(self, orchestrator, overspeed_snapshot, flat_snapshot):
        """Test that a failed run leaves the engine able to run again"""
        orchestrator.start(overspeed_snapshot)
        orchestrator.wait(TIMEOUT)

        orchestrator.reset()
        assert orchestrator.state is RunState.IDLE

        orchestrator.start(flat_snapshot)
        assert orchestrator.wait(TIMEOUT)
        assert orchestrator.state is RunState.COMPLETED

    def test_start_from_terminal_state(self, orchestrator, flat_snapshot):
        """Test that a new run may start without reset"""
        first = orchestrator.start(flat_snapshot)
        orchestrator.wait(TIMEOUT)
        second = orchestrator.start(flat_snapshot)
        orchestrator.wait(TIMEOUT)

        assert first != second
        assert orchestrator.results().run_id == second

    def test_reset_keeps_results(self, orchestrator, flat_snapshot):
        """Test that reset leaves stored results in place"""
        run_id = orchestrator.start(flat_snapshot)
        orchestrator.wait(TIMEOUT)
        orchestrator.reset()

        assert orchestrator.results().run_id == run_id
        assert orchestrator.export_csv()

    def test_reset_requires_terminal_state(self, orchestrator, long_snapshot):
        """Test that reset is rejected while idle or running"""
        with pytest.raises(ConflictError):
            orchestrator.reset()

        orchestrator.start(long_snapshot)
        with pytest.raises(ConflictError):
            orchestrator.reset()


class TestPreconditions:
    """Test errors raised before any run"""

    def test_export_before_start(self, orchestrator):
        """Export before any start: no results"""
        with pytest.raises(NoResultsError):
            orchestrator.export_csv()

    def test_results_before_start(self, orchestrator):
        """Test that results are not available before a run"""
        with pytest.raises(NotAvailableError):
            orchestrator.results()

    def test_cancel_when_idle(self, orchestrator):
        """Test that cancel is only allowed while running"""
        with pytest.raises(ConflictError):
            orchestrator.cancel()


class TestConcurrency:
    """Test exclusivity, cancellation and concurrent reads"""

    def test_second_start_conflicts(self, orchestrator, long_snapshot, flat_snapshot):
        """Test that a running run rejects another start and is unaffected"""
        run_id = orchestrator.start(long_snapshot)

        with pytest.raises(ConflictError):
            orchestrator.start(flat_snapshot)

        status = orchestrator.status()
        assert status.state is RunState.RUNNING
        assert status.run_id == run_id

    def test_cancel_stops_appending(self, orchestrator, long_snapshot):
        """Test that no sample is appended after cancellation is observed"""
        orchestrator.start(long_snapshot)
        time.sleep(0.05)

        orchestrator.cancel()
        assert orchestrator.wait(TIMEOUT)

        status = orchestrator.status()
        assert status.state is RunState.CANCELLED
        assert status.cancel_requested
        assert status.progress < 1.0

        count = len(orchestrator.results())
        time.sleep(0.05)
        assert len(orchestrator.results()) == count
        assert not orchestrator.results().final

    def test_reads_while_running(self, orchestrator, long_snapshot):
        """Test that reads return consistent, growing prefixes"""
        orchestrator.start(long_snapshot)

        previous = 0
        for _ in range(5):
            result = orchestrator.results()
            samples = result.samples
            assert len(samples) >= previous
            assert all(b.time_s > a.time_s for a, b in zip(samples, samples[1:]))
            previous = len(samples)
            time.sleep(0.01)

        assert 0.0 <= orchestrator.status().progress < 1.0

    def test_partial_export_while_running(self, orchestrator, long_snapshot):
        """Test that the live series can be exported"""
        orchestrator.start(long_snapshot)
        time.sleep(0.05)

        content = orchestrator.export_csv()
        assert content.startswith(b"Time_s,Position_m")
