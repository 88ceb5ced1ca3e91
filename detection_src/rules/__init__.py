"""Notification rule evaluators."""

from .admission import AdmissionScreeningRule
from .antibiotic import AntibioticReviewRule, AntibioticSyndromeRule, UTIDeviceLinkRule
from .base import BaseRule, EvaluationContext
from .infection import InfectionReviewRule
from .notes import NoteHashtagRule, SymptomWatchRule
from .vaccine import FluSeason, FluSeasonGapRule, VaccineDueRule, flu_season_for


def get_default_rules() -> list[BaseRule]:
    """The fixed rule set, in evaluation order.

    The cluster aggregator is not included; the pipeline always runs it last.
    """
    return [
        AntibioticSyndromeRule(),
        UTIDeviceLinkRule(),
        AntibioticReviewRule(),
        InfectionReviewRule(),
        VaccineDueRule(),
        AdmissionScreeningRule(),
        NoteHashtagRule(),
        SymptomWatchRule(),
        FluSeasonGapRule(),
    ]


__all__ = [
    "BaseRule",
    "EvaluationContext",
    "AntibioticSyndromeRule",
    "AntibioticReviewRule",
    "UTIDeviceLinkRule",
    "InfectionReviewRule",
    "VaccineDueRule",
    "FluSeasonGapRule",
    "FluSeason",
    "flu_season_for",
    "AdmissionScreeningRule",
    "SymptomWatchRule",
    "NoteHashtagRule",
    "get_default_rules",
]
