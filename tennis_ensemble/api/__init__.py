"""
Contrato de datos del ensemble
==============================

Modelos Pydantic de entrada (historial del jugador, contexto del partido) y de
salida (resultado de cada modelo y predicción completa).

Uso:
    from tennis_ensemble.api import MatchContext, PlayerRecentStats, PredictionResult
"""

from .models import (
    MatchStatus,
    PlayerColumn,
    PclassSource,
    ModuleSide,
    StateDecisionReasonTag,
    MetricValue,
    TechStatRow,
    HistoricalMatchTechStats,
    RecentMatchRef,
    HistoryScanFiltered,
    HistoryScanStats,
    FeatureRow,
    PlayerRecentFormSummary,
    PlayerStateFeature,
    WindowSeries,
    PlayerStateSeries,
    PlayerRecentStats,
    MatchOdds,
    PclassSnapshot,
    MatchContext,
    ModelResult,
    StateDecisionSummary,
    ModuleResult,
    EnsembleMeta,
    DirtSummary,
    PlayerPair,
    ModelSummary,
    StatsCoverage,
    PredictionResult,
)

__all__ = [
    "MatchStatus",
    "PlayerColumn",
    "PclassSource",
    "ModuleSide",
    "StateDecisionReasonTag",
    "MetricValue",
    "TechStatRow",
    "HistoricalMatchTechStats",
    "RecentMatchRef",
    "HistoryScanFiltered",
    "HistoryScanStats",
    "FeatureRow",
    "PlayerRecentFormSummary",
    "PlayerStateFeature",
    "WindowSeries",
    "PlayerStateSeries",
    "PlayerRecentStats",
    "MatchOdds",
    "PclassSnapshot",
    "MatchContext",
    "ModelResult",
    "StateDecisionSummary",
    "ModuleResult",
    "EnsembleMeta",
    "DirtSummary",
    "PlayerPair",
    "ModelSummary",
    "StatsCoverage",
    "PredictionResult",
]
