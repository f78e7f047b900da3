"""
Error Taxonomy
==============

Exceptions raised by the simulation engine and its collaborators.

Recoverable caller errors (``ValidationError``, ``ConflictError``,
``NotConfiguredError``, ``NotAvailableError``, ``NoResultsError``) are raised
synchronously at the offending call. Loop failures (``DivergenceError``,
``ConstraintViolationError``) never reach the caller of ``start``; they are
recorded as the terminal diagnostic of the run.
"""

from dataclasses import dataclass, asdict
from typing import Dict, Iterable, List


class TrainSimError(Exception):
    """Base class for all simulation errors"""


@dataclass(frozen=True)
class FieldError:
    """A single violated field"""
    field: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


class ValidationError(TrainSimError):
    """Malformed or out-of-range parameters; lists every violated field"""

    def __init__(self, errors: Iterable[FieldError]):
        self.errors: List[FieldError] = list(errors)
        summary = "; ".join(f"{e.field}: {e.message}" for e in self.errors)
        super().__init__(f"Invalid parameters: {summary}")

    @property
    def fields(self) -> List[str]:
        return [e.field for e in self.errors]

    def to_dict(self) -> List[Dict[str, str]]:
        return [e.to_dict() for e in self.errors]


class ConflictError(TrainSimError):
    """Operation not allowed in the current run state"""


class DivergenceError(TrainSimError):
    """Numerical integration produced a non-physical state"""


class ConstraintViolationError(TrainSimError):
    """The train cannot satisfy a physical constraint of the run"""


class NotConfiguredError(TrainSimError):
    """A parameter group was read before it was ever set"""


class NotAvailableError(TrainSimError):
    """No simulation run has been started yet"""


class NoResultsError(TrainSimError):
    """There are no samples to export"""
