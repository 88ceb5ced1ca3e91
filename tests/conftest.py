"""Shared fixtures: a fixed run time, record builders and a temporary store."""

from datetime import datetime, timedelta, timezone

import pytest

from common.notification_store import NotificationStore
from detection_src.keywords import KeywordTables
from detection_src.models import RecordSnapshot

# Inside the 2024-25 influenza season
NOW = datetime(2024, 10, 2, 12, 0, tzinfo=timezone.utc)


def _iso(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _ref(mrn):
    if mrn is None:
        return None
    return {"kind": "mrn", "id": mrn}


class RecordFactory:
    """Builds facility export records (camelCase dicts) relative to a run time."""

    def __init__(self, now: datetime):
        self.now = now
        self.long_ago = now - timedelta(days=60)
        self.recently = now - timedelta(hours=1)

    def resident(self, mrn="MRN1", name="Jane Doe", unit="A", room="101",
                 status="Active", admitted=None, created=None, updated=None):
        return {
            "mrn": mrn,
            "displayName": name,
            "status": status,
            "currentUnit": unit,
            "currentRoom": room,
            "admissionDate": _iso(admitted or self.long_ago),
            "createdAt": _iso(created or self.long_ago),
            "updatedAt": _iso(updated),
        }

    def quarantined(self, temp_id="Q:1234", name="New Arrival", unit="B", room="201"):
        return {
            "tempId": temp_id,
            "displayName": name,
            "unitSnapshot": unit,
            "roomSnapshot": room,
            "createdAt": _iso(self.recently),
        }

    def abt(self, id="abt1", mrn="MRN1", indication="Pneumonia", status="active",
            medication="Ceftriaxone", start=None, end=None, created=None,
            updated=None, syndrome_category=None, ref=None):
        return {
            "id": id,
            "residentRef": ref if ref is not None else _ref(mrn),
            "status": status,
            "medication": medication,
            "indication": indication,
            "syndromeCategory": syndrome_category,
            "startDate": _iso(start or self.recently),
            "endDate": _iso(end),
            "createdAt": _iso(created or self.recently),
            "updatedAt": _iso(updated),
        }

    def infection(self, id="ip1", mrn="MRN1", category="UTI", status="active",
                  notes=None, created=None, updated=None):
        return {
            "id": id,
            "residentRef": _ref(mrn),
            "status": status,
            "infectionCategory": category,
            "notes": notes,
            "createdAt": _iso(created or self.recently),
            "updatedAt": _iso(updated),
        }

    def vaccination(self, id="vax1", mrn="MRN1", vaccine="Influenza", status="given",
                    given=None, due=None, created=None):
        return {
            "id": id,
            "residentRef": _ref(mrn),
            "vaccine": vaccine,
            "status": status,
            "dateGiven": _iso(given),
            "dueDate": _iso(due),
            "createdAt": _iso(created or self.long_ago),
        }

    def note(self, id="note1", mrn="MRN1", body="", note_type="Progress Note",
             created=None, updated=None, ref=None):
        return {
            "id": id,
            "residentRef": ref if ref is not None else _ref(mrn),
            "noteType": note_type,
            "body": body,
            "createdAt": _iso(created or self.recently),
            "updatedAt": _iso(updated),
        }

    def export(self, residents=(), abts=(), infections=(), vaccinations=(),
               notes=(), quarantine=()) -> dict:
        return {
            "residents": list(residents),
            "quarantine": list(quarantine),
            "abts": list(abts),
            "infections": list(infections),
            "vaxEvents": list(vaccinations),
            "notes": list(notes),
        }

    def snapshot(self, facility_id="F1", **collections) -> RecordSnapshot:
        return RecordSnapshot.from_dict(self.export(**collections), facility_id)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def records(now):
    return RecordFactory(now)


@pytest.fixture
def tables():
    return KeywordTables()


@pytest.fixture
def store(tmp_path):
    return NotificationStore(db_path=str(tmp_path / "notifications.db"))
