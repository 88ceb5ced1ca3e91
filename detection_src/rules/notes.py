"""Note rules.

- symptom_watch_rule: recent notes mentioning symptom keywords
- note_hashtag_rule: changed notes carrying symptom hashtags
"""

from datetime import timedelta

from common.notification_store import NotificationCategory

from ..config import config
from ..keywords import GI, RESPIRATORY, find_hashtags, match_keywords
from ..models import AlertCandidate, RecordSnapshot
from .antibiotic import ADD_TO_LINE_LIST, line_list_payload
from .base import BaseRule, EvaluationContext, resident_name

SNIPPET_LENGTH = 200


class SymptomWatchRule(BaseRule):
    """Changed notes created within the symptom window that mention symptom keywords."""

    def __init__(self, window_hours: int | None = None):
        if window_hours is None:
            window_hours = config.SYMPTOM_WINDOW_HOURS
        self.window = timedelta(hours=window_hours)

    @property
    def rule_id(self) -> str:
        return "symptom_watch_rule"

    def evaluate(self, snapshot: RecordSnapshot, context: EvaluationContext) -> list[AlertCandidate]:
        cutoff = context.now - self.window
        candidates = []
        for note in snapshot.notes.values():
            if not context.is_newer(note) or note.resident_ref is None:
                continue
            if note.created_at is None or note.created_at <= cutoff:
                continue

            found = match_keywords(note.body, context.tables.symptom_watch)
            if not found:
                continue

            info = snapshot.resolve_resident(note.resident_ref)
            candidates.append(AlertCandidate(
                rule_id=self.rule_id,
                category=NotificationCategory.SYMPTOM_WATCH,
                message=f"Recent note for {resident_name(info)} mentions: {', '.join(k.rstrip('*') for k in found)}.",
                ref_id=note.id,
                resident_id=info.resident_id,
                unit=info.unit,
                room=info.room,
                refs={"noteId": note.id},
            ))
        return candidates


class NoteHashtagRule(BaseRule):
    """Any changed note containing trigger hashtags, regardless of age."""

    @property
    def rule_id(self) -> str:
        return "note_hashtag_rule"

    def evaluate(self, snapshot: RecordSnapshot, context: EvaluationContext) -> list[AlertCandidate]:
        tables = context.tables
        candidates = []
        for note in snapshot.notes.values():
            if not context.is_newer(note) or note.resident_ref is None:
                continue

            tags = find_hashtags(note.body, tables.trigger_tags)
            if not tags:
                continue

            syndromes = [tables.syndrome_for_signal(t) for t in tags]
            syndrome = GI if GI in syndromes and RESPIRATORY not in syndromes else RESPIRATORY
            info = snapshot.resolve_resident(note.resident_ref)
            candidates.append(AlertCandidate(
                rule_id=self.rule_id,
                category=NotificationCategory.LINE_LIST_REVIEW,
                message=f"Symptom signal detected: {', '.join(tags)}",
                ref_id=note.id,
                resident_id=info.resident_id,
                unit=info.unit,
                room=info.room,
                refs={"noteId": note.id},
                action=ADD_TO_LINE_LIST,
                payload=line_list_payload(
                    info.resident_id, syndrome, context.now, note.id,
                    notes_snippet=note.body[:SNIPPET_LENGTH],
                ),
            ))
        return candidates
