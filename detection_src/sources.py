"""Record store views for the pipeline.

Adapters that produce a point-in-time RecordSnapshot for one facility.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from .models import RecordSnapshot

logger = logging.getLogger(__name__)


class SnapshotSource(ABC):
    """Abstract base class for record store views."""

    @abstractmethod
    def get_snapshot(self, facility_id: str) -> RecordSnapshot:
        """Read a point-in-time snapshot of a facility's records."""
        pass


def extract_facility_data(data: dict, facility_id: str) -> dict:
    """Find one facility's record collections inside an export.

    Accepts either a single facility store (``{"residents": ..., "abts": ...}``)
    or the unified database shape (``{"data": {"facilityData": {id: store}}}``).
    """
    facility_data = (data.get("data") or {}).get("facilityData")
    if isinstance(facility_data, dict):
        if facility_id not in facility_data:
            raise KeyError(f"Facility {facility_id} not found in export")
        return facility_data[facility_id]
    return data


class InMemorySnapshotSource(SnapshotSource):
    """Snapshot source over an already-loaded export dict."""

    def __init__(self, data: dict):
        self.data = data

    def get_snapshot(self, facility_id: str) -> RecordSnapshot:
        return RecordSnapshot.from_dict(extract_facility_data(self.data, facility_id), facility_id)


class JSONFileSnapshotSource(SnapshotSource):
    """Snapshot source reading a facility JSON export from disk on every call."""

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def is_available(self) -> bool:
        return self.path.exists()

    def get_snapshot(self, facility_id: str) -> RecordSnapshot:
        with open(self.path) as f:
            data = json.load(f)
        snapshot = RecordSnapshot.from_dict(extract_facility_data(data, facility_id), facility_id)
        logger.debug(
            f"Loaded snapshot for {facility_id} from {self.path}: "
            f"{len(snapshot.residents)} residents, {len(snapshot.antibiotic_courses)} ABT, "
            f"{len(snapshot.infections)} IP, {len(snapshot.vaccinations)} VAX, "
            f"{len(snapshot.notes)} notes"
        )
        return snapshot
