"""Vaccination rules.

- vax_due_rule: due/overdue vaccination whose due date has arrived
- vax_gap_flu_rule: active resident without an influenza dose this season
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime

from common.notification_store import NotificationCategory

from ..config import config
from ..keywords import match_keywords
from ..models import AlertCandidate, RecordSnapshot, ResidentRefKind
from .base import BaseRule, EvaluationContext, resident_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FluSeason:
    """Influenza season window, both end days inclusive."""
    start_year: int
    start: date
    end: date

    def contains(self, value: datetime | date) -> bool:
        day = value.date() if isinstance(value, datetime) else value
        return self.start <= day <= self.end


def flu_season_for(now: datetime) -> FluSeason:
    """The season `now` belongs to (whether or not `now` is inside it).

    The season year is the current year from September on, otherwise the
    previous year; the window is Oct 1 of that year through May 15 of the next.
    """
    start_year = now.year
    if now.month < config.FLU_SEASON_ROLLOVER_MONTH:
        start_year -= 1
    start_month, start_day = config.FLU_SEASON_START
    end_month, end_day = config.FLU_SEASON_END
    return FluSeason(
        start_year=start_year,
        start=date(start_year, start_month, start_day),
        end=date(start_year + 1, end_month, end_day),
    )


class VaccineDueRule(BaseRule):
    """Vaccination marked due/overdue whose due date has arrived."""

    @property
    def rule_id(self) -> str:
        return "vax_due_rule"

    def evaluate(self, snapshot: RecordSnapshot, context: EvaluationContext) -> list[AlertCandidate]:
        candidates = []
        for vax in snapshot.vaccinations.values():
            if not vax.is_due or vax.resident_ref is None or vax.due_date is None:
                continue
            if vax.due_date > context.now:
                continue

            info = snapshot.resolve_resident(vax.resident_ref)
            candidates.append(AlertCandidate(
                rule_id=self.rule_id,
                category=NotificationCategory.VAX_GAP,
                message=f"{resident_name(info)} is due for {vax.vaccine or 'a'} vaccine.",
                ref_id=vax.id,
                resident_id=info.resident_id,
                unit=info.unit,
                room=info.room,
                refs={"vaxId": vax.id},
            ))
        return candidates


class FluSeasonGapRule(BaseRule):
    """Active residents with no influenza vaccination given this season."""

    @property
    def rule_id(self) -> str:
        return "vax_gap_flu_rule"

    def vaccinated_residents(self, snapshot: RecordSnapshot, season: FluSeason, context: EvaluationContext) -> set[str]:
        """MRNs with a given influenza dose dated inside the season."""
        vaccinated = set()
        for vax in snapshot.vaccinations.values():
            if vax.status != "given" or vax.date_given is None or vax.resident_ref is None:
                continue
            if not match_keywords(vax.vaccine, context.tables.influenza_vaccines):
                continue
            if vax.resident_ref.kind == ResidentRefKind.MRN and season.contains(vax.date_given):
                vaccinated.add(vax.resident_ref.id)
        return vaccinated

    def evaluate(self, snapshot: RecordSnapshot, context: EvaluationContext) -> list[AlertCandidate]:
        season = flu_season_for(context.now)
        if not season.contains(context.now):
            return []

        vaccinated = self.vaccinated_residents(snapshot, season, context)
        candidates = []
        for resident in snapshot.residents.values():
            if not resident.is_active or resident.mrn in vaccinated:
                continue
            candidates.append(AlertCandidate(
                rule_id=self.rule_id,
                category=NotificationCategory.VAX_GAP,
                message=(
                    f"Influenza vaccine missing for current season for "
                    f"{resident.display_name or 'resident'}; offer/re-offer per protocol."
                ),
                ref_id=str(season.start_year),
                resident_id=resident.mrn,
                unit=resident.current_unit,
                room=resident.current_room,
            ))
        logger.debug(
            f"Flu season {season.start_year}: {len(vaccinated)} vaccinated, "
            f"{len(candidates)} gap(s)"
        )
        return candidates
