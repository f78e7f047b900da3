"""
Result Store
============

Holds the sample series of the latest run and the last completed result.

The orchestrator's worker thread is the only writer. Readers take a tuple
copy under the store lock, so they always see a consistent prefix of the
series and never a partially appended sample.
"""

import threading
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Sample:
    """One point of the simulated result series"""
    time_s: float
    position_m: float
    speed_mps: float
    acceleration_mps2: float
    tractive_force_n: float
    power_w: float
    line_current_a: float
    energy_j: float
    regenerated_energy_j: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class SimulationResult:
    """Ordered samples of a run; final only when the run completed"""
    run_id: str
    samples: Tuple[Sample, ...]
    final: bool

    def __len__(self) -> int:
        return len(self.samples)

    def to_dict(self, offset: int = 0) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "final": self.final,
            "sample_count": len(self.samples),
            "samples": [s.to_dict() for s in self.samples[offset:]],
        }


class ResultStore:
    """
    Result storage for the simulation engine.

    Retention policy: one live series (the latest run, complete or partial)
    plus the last completed result. A new run replaces the live series; the
    completed result is only superseded by the next completed run.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._run_id: Optional[str] = None
        self._samples: List[Sample] = []
        self._final = False
        self._completed: Optional[SimulationResult] = None

    def begin_run(self, run_id: str):
        with self._lock:
            self._run_id = run_id
            self._samples = []
            self._final = False

    def append_sample(self, sample: Sample):
        with self._lock:
            self._samples.append(sample)

    def finish_run(self, final: bool):
        """Seal the live series; completed runs become the retained result"""
        with self._lock:
            self._final = final
            if final:
                self._completed = SimulationResult(self._run_id, tuple(self._samples), True)

    def snapshot(self) -> Tuple[Sample, ...]:
        with self._lock:
            return tuple(self._samples)

    def latest(self) -> Optional[SimulationResult]:
        with self._lock:
            if self._run_id is None:
                return None
            return SimulationResult(self._run_id, tuple(self._samples), self._final)

    def last_completed(self) -> Optional[SimulationResult]:
        with self._lock:
            return self._completed

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)
