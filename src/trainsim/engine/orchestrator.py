"""
Simulation Orchestrator
=======================

Owns the run lifecycle state machine and the single run slot.

    IDLE --start--> RUNNING --(end of track)--> COMPLETED
                       |------(failure)-------> FAILED
                       '------(cancel)--------> CANCELLED

Terminal states accept ``start`` (a new run) and ``reset`` (back to IDLE).
The integration loop runs on a daemon worker thread; ``start`` returns as
soon as the worker is launched. Cancellation is cooperative: the worker
checks the run's cancel event before appending each sample.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from ..config.parameter_store import ParameterStore
from ..config.parameters import ParameterSnapshot, SimulationSettings, validate_snapshot
from ..errors import (
    ConflictError,
    ConstraintViolationError,
    DivergenceError,
    NotAvailableError,
)
from ..export.data_export import DataExporter
from .result_store import ResultStore, SimulationResult
from .simulator import RunSimulator

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    """Lifecycle state of the simulation"""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.COMPLETED, RunState.FAILED, RunState.CANCELLED)


@dataclass
class SimulationRun:
    """Live handle of one run, owned by the orchestrator"""
    run_id: str
    snapshot: ParameterSnapshot
    settings: SimulationSettings
    state: RunState = RunState.RUNNING
    started_at: datetime = field(default_factory=datetime.now)
    ended_at: Optional[datetime] = None
    diagnostic: Optional[str] = None
    progress: float = 0.0
    cancel_event: threading.Event = field(default_factory=threading.Event)
    thread: Optional[threading.Thread] = None


@dataclass(frozen=True)
class StatusReport:
    """Point-in-time view of the orchestrator"""
    state: RunState
    run_id: Optional[str] = None
    progress: float = 0.0
    diagnostic: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    sample_count: int = 0
    cancel_requested: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "run_id": self.run_id,
            "progress": self.progress,
            "diagnostic": self.diagnostic,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "sample_count": self.sample_count,
            "cancel_requested": self.cancel_requested,
        }


class SimulationOrchestrator:
    """
    Run lifecycle manager for the simulation engine.

    Features:
    - Exactly one running simulation at a time
    - Non-blocking start with a background worker
    - Cooperative cancellation at step boundaries
    - Failures recorded as the run's diagnostic, never raised to the caller
    """

    def __init__(self, parameter_store: Optional[ParameterStore] = None,
                 result_store: Optional[ResultStore] = None,
                 settings: Optional[SimulationSettings] = None,
                 exporter: Optional[DataExporter] = None):
        """
        Initialize the orchestrator

        Args:
            parameter_store: Source of the parameter snapshot when start() gets none
            result_store: Sample storage shared with readers
            settings: Default numerical settings
            exporter: CSV renderer for export_csv()
        """
        self.parameter_store = parameter_store or ParameterStore()
        self.result_store = result_store or ResultStore()
        self.settings = settings or SimulationSettings()
        self.exporter = exporter or DataExporter()

        self._lock = threading.Lock()
        self._run: Optional[SimulationRun] = None

    @property
    def state(self) -> RunState:
        with self._lock:
            return self._run.state if self._run else RunState.IDLE

    def start(self, snapshot: Optional[ParameterSnapshot] = None,
              settings: Optional[SimulationSettings] = None) -> str:
        """
        Start a new simulation run

        Args:
            snapshot: Parameters of the run (taken from the parameter store when omitted)
            settings: Numerical settings (orchestrator default when omitted)

        Returns:
            Identifier of the new run

        Raises:
            ConflictError: if a run is already running
            ValidationError: if parameters are missing or inconsistent
        """
        with self._lock:
            if self._run is not None and self._run.state is RunState.RUNNING:
                raise ConflictError(f"Simulation {self._run.run_id} is already running")

            if snapshot is None:
                snapshot = self.parameter_store.snapshot()
            validate_snapshot(snapshot)

            run = SimulationRun(
                run_id=str(uuid.uuid4()),
                snapshot=snapshot,
                settings=settings or self.settings,
            )
            self.result_store.begin_run(run.run_id)
            run.thread = threading.Thread(
                target=self._worker, args=(run,), name=f"simulation-{run.run_id[:8]}", daemon=True)
            self._run = run
            run.thread.start()

        logger.info(f"Started simulation {run.run_id} "
                    f"(track {snapshot.track.total_length_m:.1f} m, dt={run.settings.time_step_s} s)")
        return run.run_id

    def _worker(self, run: SimulationRun):
        """Integration loop executed on the worker thread"""
        simulator = RunSimulator(run.snapshot, run.settings)
        total = simulator.total_length_m
        state, diagnostic = RunState.COMPLETED, None

        try:
            for sample in simulator.samples():
                if run.cancel_event.is_set():
                    state = RunState.CANCELLED
                    break
                self.result_store.append_sample(sample)
                run.progress = min(sample.position_m / total, 1.0)
        except (DivergenceError, ConstraintViolationError) as e:
            state, diagnostic = RunState.FAILED, str(e)
            logger.warning(f"Simulation {run.run_id} failed: {e}")
        except Exception as e:
            state, diagnostic = RunState.FAILED, f"Unexpected error: {e}"
            logger.exception(f"Simulation {run.run_id} crashed")

        self.result_store.finish_run(final=state is RunState.COMPLETED)
        with self._lock:
            run.diagnostic = diagnostic
            run.ended_at = datetime.now()
            run.state = state

        logger.info(f"Simulation {run.run_id} {state.value} "
                    f"({len(self.result_store)} samples, progress {run.progress:.1%})")

    def status(self) -> StatusReport:
        """Current state, progress and diagnostic; never waits for the run"""
        with self._lock:
            run = self._run
            if run is None:
                return StatusReport(state=RunState.IDLE)
            return StatusReport(
                state=run.state,
                run_id=run.run_id,
                progress=run.progress,
                diagnostic=run.diagnostic,
                started_at=run.started_at,
                ended_at=run.ended_at,
                sample_count=len(self.result_store),
                cancel_requested=run.cancel_event.is_set(),
            )

    def results(self) -> SimulationResult:
        """
        Latest result series, partial while running

        Raises:
            NotAvailableError: if no run has ever started
        """
        result = self.result_store.latest()
        if result is None:
            raise NotAvailableError("No simulation has been started")
        return result

    def export_csv(self) -> bytes:
        """
        CSV rendering of the latest result series

        Raises:
            NoResultsError: if no samples exist
        """
        return self.exporter.export_csv(self.result_store.snapshot())

    def cancel(self):
        """
        Request cancellation of the running simulation

        Raises:
            ConflictError: if no simulation is running
        """
        with self._lock:
            if self._run is None or self._run.state is not RunState.RUNNING:
                raise ConflictError("No simulation is running")
            self._run.cancel_event.set()
            run_id = self._run.run_id
        logger.info(f"Cancellation requested for simulation {run_id}")

    def reset(self):
        """
        Return to IDLE from a terminal state; stored results are kept

        Raises:
            ConflictError: if the current state is not terminal
        """
        with self._lock:
            if self._run is None or not self._run.state.is_terminal:
                current = self._run.state.value if self._run else RunState.IDLE.value
                raise ConflictError(f"Cannot reset while simulation is {current}")
            self._run = None
        logger.info("Simulation state reset")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the current run leaves RUNNING

        Returns:
            True if no run is running on return
        """
        with self._lock:
            run = self._run
        if run is None or run.thread is None:
            return True
        run.thread.join(timeout)
        return not run.thread.is_alive()
