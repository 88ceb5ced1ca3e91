"""Detection & Notification Pipeline.

Scans a point-in-time snapshot of a long-term-care facility's records and
produces notifications:
- Antibiotic syndrome / duration review and UTI-device linkage
- Long-running infection events
- Vaccines due and influenza season gaps
- Missing admission screening notes
- Symptom keywords and hashtags in notes
- Outbreak suggestions from unit-level syndrome clusters

Runs are incremental (watermark + change gate) and idempotent
(deterministic, day-bucketed notification ids).
"""

from .cluster import ClusterAggregator, ClusterSeverity, SyndromeCluster
from .config import Config, config
from .gate import GateDecision, evaluate_gate
from .identity import assign_identities, make_notification_id
from .keywords import KeywordTables, load_keyword_tables
from .models import (
    AlertCandidate,
    AntibioticCourse,
    InfectionEvent,
    QuarantineResident,
    RecordSnapshot,
    Resident,
    ResidentNote,
    ResidentRef,
    ResidentRefKind,
    VaccinationEvent,
)
from .monitor import DetectionMonitor
from .pipeline import PipelineResult, run_detection_pipeline
from .rules import BaseRule, EvaluationContext, get_default_rules
from .sources import InMemorySnapshotSource, JSONFileSnapshotSource, SnapshotSource

__all__ = [
    # Config
    "Config",
    "config",
    "KeywordTables",
    "load_keyword_tables",
    # Models
    "AlertCandidate",
    "AntibioticCourse",
    "InfectionEvent",
    "QuarantineResident",
    "RecordSnapshot",
    "Resident",
    "ResidentNote",
    "ResidentRef",
    "ResidentRefKind",
    "VaccinationEvent",
    # Pipeline
    "GateDecision",
    "evaluate_gate",
    "assign_identities",
    "make_notification_id",
    "BaseRule",
    "EvaluationContext",
    "get_default_rules",
    "ClusterAggregator",
    "ClusterSeverity",
    "SyndromeCluster",
    "PipelineResult",
    "run_detection_pipeline",
    "DetectionMonitor",
    # Sources
    "SnapshotSource",
    "InMemorySnapshotSource",
    "JSONFileSnapshotSource",
]
