"""
Modelo sombra Mahalanobis Edge
==============================

Para cada métrica stable14 compara las medias ponderadas por recencia de ambos
jugadores en unidades de una varianza conjunta encogida hacia un prior
(z-score acotado a ±3). La suma ponderada de los z, mezclada con un ancla de
métricas de control, da la probabilidad bruta; la fiabilidad la acerca a 50.
"""

import logging
import math
from typing import Dict, List, Optional, Sequence

import numpy as np

from tennis_ensemble.api.models import FeatureRow, ModelResult, PlayerRecentStats
from tennis_ensemble.features.required_metrics import REQUIRED_METRIC_KEYS, collect_feature_rows
from tennis_ensemble.prediction.tie_break import pick_by_odds_or_seed
from tennis_ensemble.utils.common import clamp, round1, round3, sign

logger = logging.getLogger(__name__)

SOURCE = "stable14_mahal_edge_v2"
RECENCY_WEIGHTS = (0.28, 0.24, 0.2, 0.16, 0.12)
SHRINK_LAMBDA = 0.55
PERCENT_PRIOR_VAR = 64
COUNT_PRIOR_VAR = 4
PERCENT_VAR_FLOOR = 9
COUNT_VAR_FLOOR = 0.25
Z_CLIP = 3

COUNT_METRICS = frozenset({"double_faults"})
INVERT_METRICS = frozenset({"double_faults"})

METRIC_WEIGHTS = {
    "first_serve": 0.01,
    "first_serve_points_won": 0.06,
    "second_serve_points_won": 0.07,
    "break_points_saved": 0.05,
    "double_faults": 0.01,
    "first_serve_return_points_won": 0.04,
    "second_serve_return_points_won": 0.04,
    "break_points_converted": 0.06,
    "total_service_points_won": 0.06,
    "return_points_won": 0.13,
    "total_points_won": 0.19,
    "service_games_won": 0.08,
    "return_games_won": 0.07,
    "total_games_won": 0.13,
}

CORE_ANCHOR_WEIGHTS = {
    "total_points_won": 0.4,
    "total_games_won": 0.25,
    "return_points_won": 0.2,
    "total_service_points_won": 0.15,
}

_NEUTRAL_COMPONENTS = {
    "raw_p1": 50.0,
    "score_s": 0.0,
    "distance_d": 0.0,
    "reliability": 0.22,
    "stats_coverage": 0.0,
    "variance_stability": 0.0,
    "sign_consensus": 0.0,
    "distance_confidence": 0.0,
}


def _metric_matrix(rows: Sequence[FeatureRow]) -> np.ndarray:
    return np.array([[row.value(key) for key in REQUIRED_METRIC_KEYS] for row in rows], dtype=float)


def build_metric_computations(
    rows_a: Sequence[FeatureRow], rows_b: Sequence[FeatureRow]
) -> Optional[List[Dict]]:
    """
    z-score por métrica con varianza conjunta encogida

    Returns:
        Lista de {key, weight, pooled_var, prior_var, z} o None sin filas comunes
    """
    n = min(len(rows_a), len(rows_b), len(RECENCY_WEIGHTS))
    if n <= 0:
        return None
    weights = np.array(RECENCY_WEIGHTS[:n])
    matrix_a = _metric_matrix(rows_a[:n])
    matrix_b = _metric_matrix(rows_b[:n])

    mean_a = np.average(matrix_a, axis=0, weights=weights)
    mean_b = np.average(matrix_b, axis=0, weights=weights)
    var_a = np.average((matrix_a - mean_a) ** 2, axis=0, weights=weights)
    var_b = np.average((matrix_b - mean_b) ** 2, axis=0, weights=weights)

    out = []
    for idx, key in enumerate(REQUIRED_METRIC_KEYS):
        pooled_var = 0.5 * (var_a[idx] + var_b[idx])
        is_count = key in COUNT_METRICS
        prior_var = COUNT_PRIOR_VAR if is_count else PERCENT_PRIOR_VAR
        min_var = COUNT_VAR_FLOOR if is_count else PERCENT_VAR_FLOOR
        shrunk_var = max(SHRINK_LAMBDA * pooled_var + (1 - SHRINK_LAMBDA) * prior_var, min_var)
        direction = -1 if key in INVERT_METRICS else 1
        delta = (mean_a[idx] - mean_b[idx]) * direction
        out.append(
            {
                "key": key,
                "weight": METRIC_WEIGHTS[key],
                "pooled_var": float(pooled_var),
                "prior_var": prior_var,
                "z": clamp(float(delta / math.sqrt(shrunk_var)), -Z_CLIP, Z_CLIP),
            }
        )
    return out


def _neutral_result(
    player_a_name: str,
    player_b_name: str,
    home_odd: Optional[float],
    away_odd: Optional[float],
    seed: str,
    warnings: List[str],
) -> ModelResult:
    tie_break = pick_by_odds_or_seed(player_a_name, player_b_name, home_odd, away_odd, f"{seed}|mahal")
    return ModelResult(
        p1=50.0,
        p2=50.0,
        winner=tie_break["winner"],
        source=SOURCE,
        warnings=list(warnings),
        components=dict(_NEUTRAL_COMPONENTS),
    )


def compute_mahal_edge(
    player_a_stats: PlayerRecentStats,
    player_b_stats: PlayerRecentStats,
    player_a_name: str,
    player_b_name: str,
    requested_per_player: int,
    home_odd: Optional[float] = None,
    away_odd: Optional[float] = None,
    seed: str = "",
) -> ModelResult:
    """
    Mahalanobis Edge

    Args:
        player_a_stats: Historial de A
        player_b_stats: Historial de B
        player_a_name: Nombre de A
        player_b_name: Nombre de B
        requested_per_player: Partidos solicitados por jugador
        home_odd: Cuota de A (desempate)
        away_odd: Cuota de B (desempate)
        seed: Semilla base del desempate (se añade "|mahal")

    Returns:
        ModelResult con p1 = 50 + (raw - 50) * fiabilidad, redondeado a 1 decimal
    """
    warnings = []
    rows_a = collect_feature_rows(player_a_stats)
    rows_b = collect_feature_rows(player_b_stats)
    valid_a = min(len(rows_a), 5)
    valid_b = min(len(rows_b), 5)

    if min(valid_a, valid_b) < max(1, requested_per_player):
        warnings.append("mahal_low_pair_coverage")

    metrics = build_metric_computations(rows_a, rows_b)
    if not metrics:
        warnings.append("mahal_stats_unavailable")
        return _neutral_result(player_a_name, player_b_name, home_odd, away_odd, seed, warnings)

    score_s = 0.0
    core_numerator = 0.0
    core_weight_sum = 0.0
    sq = 0.0
    sign_weighted = 0.0
    weight_sum = 0.0
    variance_stability_sum = 0.0
    for metric in metrics:
        z = metric["z"]
        weight = metric["weight"]
        score_s += weight * z
        core_weight = CORE_ANCHOR_WEIGHTS.get(metric["key"], 0)
        if core_weight > 0:
            core_numerator += core_weight * z
            core_weight_sum += core_weight
        sq += weight * z * z
        sign_weighted += weight * sign(z)
        weight_sum += weight
        variance_stability_sum += metric["prior_var"] / (metric["prior_var"] + metric["pooled_var"])

    if weight_sum <= 0:
        warnings.append("mahal_stats_unavailable")
        return _neutral_result(player_a_name, player_b_name, home_odd, away_odd, seed, warnings)

    core_score = core_numerator / core_weight_sum if core_weight_sum > 0 else score_s
    effective_score = 0.7 * score_s + 0.3 * core_score
    core_agreement = clamp(1 - abs(score_s - core_score) / 1.75, 0, 1)
    distance_d = math.sqrt(max(0.0, sq))
    raw_p1 = clamp(50 + 50 * math.tanh(0.5 * effective_score), 1, 99)
    stats_coverage = clamp(
        min(valid_a, valid_b) / max(1, min(5, requested_per_player or 5)),
        0,
        1,
    )
    variance_stability = clamp(variance_stability_sum / len(metrics), 0, 1)
    sign_consensus = clamp(abs(sign_weighted) / weight_sum, 0, 1)
    distance_confidence = clamp(distance_d / 1.5, 0, 1)
    reliability = clamp(
        0.22
        + 0.23 * stats_coverage
        + 0.25 * variance_stability
        + 0.12 * sign_consensus
        + 0.1 * distance_confidence
        + 0.08 * core_agreement,
        0.22,
        0.78,
    )

    if distance_confidence < 0.2 and variance_stability < 0.5:
        warnings.append("mahal_high_dispersion")

    p1_raw = clamp(50 + (raw_p1 - 50) * reliability, 0, 100)
    if p1_raw > 50:
        winner = player_a_name
    elif p1_raw < 50:
        winner = player_b_name
    else:
        warnings.append("mahal_neutral_tiebreak")
        winner = pick_by_odds_or_seed(player_a_name, player_b_name, home_odd, away_odd, f"{seed}|mahal")["winner"]

    return ModelResult(
        p1=round1(p1_raw),
        p2=round1(100 - p1_raw),
        winner=winner,
        source=SOURCE,
        warnings=warnings,
        components={
            "raw_p1": round3(raw_p1),
            "score_s": round3(effective_score),
            "distance_d": round3(distance_d),
            "reliability": round3(reliability),
            "stats_coverage": round3(stats_coverage),
            "variance_stability": round3(variance_stability),
            "sign_consensus": round3(sign_consensus),
            "distance_confidence": round3(distance_confidence),
        },
    )
