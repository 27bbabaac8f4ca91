"""
Módulo de features
==================

Extracción de las métricas stable14, forma reciente e índices de estado del jugador.
"""

from .metric_normalization import metric_quality, metric_value_to_number
from .required_metrics import (
    REQUIRED_METRIC_KEYS,
    canonical_metric_key,
    collect_feature_rows,
    extract_feature_pair,
    extract_feature_row,
    extract_feature_row_diagnostics,
)
from .player_form import build_player_recent_form_summary
from .player_state_indices import (
    apply_pair_state_contrast,
    build_player_state_feature,
    build_player_state_series,
    compute_per_player_indices,
    compute_player_window_aggregates,
    compute_window_plan,
    infer_tournament_tier_score,
    parse_score_momentum_features,
)

__all__ = [
    "metric_quality",
    "metric_value_to_number",
    "REQUIRED_METRIC_KEYS",
    "canonical_metric_key",
    "collect_feature_rows",
    "extract_feature_pair",
    "extract_feature_row",
    "extract_feature_row_diagnostics",
    "build_player_recent_form_summary",
    "apply_pair_state_contrast",
    "build_player_state_feature",
    "build_player_state_series",
    "compute_per_player_indices",
    "compute_player_window_aggregates",
    "compute_window_plan",
    "infer_tournament_tier_score",
    "parse_score_momentum_features",
]
