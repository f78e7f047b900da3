"""
Parameter Store
===============

Thread-safe holder for the four validated parameter groups.

A set either replaces the stored group with a fully validated, immutable
record or raises ``ValidationError`` and leaves the previous value in place.
Readers always get a complete record because groups are swapped by reference
under the store lock.
"""

import logging
import threading
from typing import Any, Dict, List, Optional

from .parameters import (
    PARAMETER_GROUPS,
    ElectricalParameters,
    ParameterModel,
    ParameterSnapshot,
    RunningParameters,
    TrackParameters,
    TrainParameters,
    cross_check,
    parse_group,
)
from ..errors import FieldError, NotConfiguredError, ValidationError

logger = logging.getLogger(__name__)


class ParameterStore:
    """
    In-memory store for train, electrical, running and track parameters.

    Features:
    - Field-level validation with every violation reported at once
    - Cross-group range checks against the groups already stored
    - Atomic replacement of whole groups
    - Complete snapshot for starting a run
    """

    def __init__(self):
        """Initialize an empty parameter store"""
        self._lock = threading.Lock()
        self._groups: Dict[str, ParameterModel] = {}

    # Generic access by group name (used by the HTTP layer)

    def set_group(self, group: str, data: Any) -> ParameterModel:
        """
        Validate and store a parameter group

        Args:
            group: Group name ("train", "electrical", "running" or "track")
            data: Model instance or mapping of field values

        Returns:
            The stored, validated record

        Raises:
            ValidationError: if any field or cross-group check fails
        """
        value = parse_group(group, data)

        with self._lock:
            candidate = dict(self._groups)
            candidate[group] = value
            errors = cross_check(candidate.get("train"), candidate.get("running"),
                                 candidate.get("track"))
            if errors:
                raise ValidationError(errors)
            self._groups[group] = value

        logger.info(f"Stored {group} parameters")
        return value

    def get_group(self, group: str) -> ParameterModel:
        """
        Get a stored parameter group

        Raises:
            NotConfiguredError: if the group was never set
        """
        if group not in PARAMETER_GROUPS:
            raise ValidationError([FieldError(group, f"unknown parameter group '{group}'")])
        with self._lock:
            value = self._groups.get(group)
        if value is None:
            raise NotConfiguredError(f"{group} parameters have not been configured")
        return value

    def is_configured(self, group: str) -> bool:
        with self._lock:
            return group in self._groups

    def missing_groups(self) -> List[str]:
        with self._lock:
            return [g for g in PARAMETER_GROUPS if g not in self._groups]

    def snapshot(self) -> ParameterSnapshot:
        """
        Take an immutable snapshot of all four groups

        Raises:
            ValidationError: naming every group that is not configured
        """
        with self._lock:
            groups = dict(self._groups)

        missing = [g for g in PARAMETER_GROUPS if g not in groups]
        if missing:
            raise ValidationError(
                [FieldError(g, f"{g} parameters have not been configured") for g in missing])

        return ParameterSnapshot(**groups)

    def load_snapshot(self, snapshot: ParameterSnapshot):
        """Replace all four groups at once from a validated snapshot"""
        errors = cross_check(snapshot.train, snapshot.running, snapshot.track)
        if errors:
            raise ValidationError(errors)
        with self._lock:
            self._groups = {
                "train": snapshot.train,
                "electrical": snapshot.electrical,
                "running": snapshot.running,
                "track": snapshot.track,
            }
        logger.info("Loaded complete parameter set")

    # Typed accessors

    def set_train_parameters(self, params: Any) -> TrainParameters:
        return self.set_group("train", params)

    def get_train_parameters(self) -> TrainParameters:
        return self.get_group("train")

    def set_electrical_parameters(self, params: Any) -> ElectricalParameters:
        return self.set_group("electrical", params)

    def get_electrical_parameters(self) -> ElectricalParameters:
        return self.get_group("electrical")

    def set_running_parameters(self, params: Any) -> RunningParameters:
        return self.set_group("running", params)

    def get_running_parameters(self) -> RunningParameters:
        return self.get_group("running")

    def set_track_parameters(self, params: Any) -> TrackParameters:
        return self.set_group("track", params)

    def get_track_parameters(self) -> TrackParameters:
        return self.get_group("track")

    def to_dict(self) -> Dict[str, Optional[Dict[str, Any]]]:
        """Plain-record view of every group (None when not configured)"""
        with self._lock:
            groups = dict(self._groups)
        return {g: (groups[g].to_dict() if g in groups else None) for g in PARAMETER_GROUPS}
