"""
Módulo de predicción
====================

Modelos del núcleo por parejas, modelos sombra, decisión de estado y el
predictor que los combina.

Uso:
    from tennis_ensemble.prediction import MatchPredictor
"""

from .errors import PredictionError
from .tie_break import pick_by_odds_or_seed, stable_hash, winner_from_probability
from .calibration import BASE_MODEL_WEIGHTS, CORE_MODELS, calibrate_model_weights, weighted_probability
from .pair_models import aggregate_index_pairs, build_index_pairs, compute_pair_model_output, history_pca_probability
from .nova_edge import compute_nova_edge
from .form_stats_hybrid import compute_form_stats_hybrid
from .mahal_edge import compute_mahal_edge
from .matchup_cross import compute_matchup_cross
from .market_residual import compute_market_residual
from .state_decision import compute_state_decision, compute_state_decision_v2, compute_state_decision_v3
from .confidence import compute_confidence_score, model_dispersion
from .ensemble import build_ensemble_from_probability, probability_to_module, vote_ensemble
from .predictor import MatchPredictor

__all__ = [
    "PredictionError",
    "pick_by_odds_or_seed",
    "stable_hash",
    "winner_from_probability",
    "BASE_MODEL_WEIGHTS",
    "CORE_MODELS",
    "calibrate_model_weights",
    "weighted_probability",
    "aggregate_index_pairs",
    "build_index_pairs",
    "compute_pair_model_output",
    "history_pca_probability",
    "compute_nova_edge",
    "compute_form_stats_hybrid",
    "compute_mahal_edge",
    "compute_matchup_cross",
    "compute_market_residual",
    "compute_state_decision",
    "compute_state_decision_v2",
    "compute_state_decision_v3",
    "compute_confidence_score",
    "model_dispersion",
    "build_ensemble_from_probability",
    "probability_to_module",
    "vote_ensemble",
    "MatchPredictor",
]
