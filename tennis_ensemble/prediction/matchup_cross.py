"""
Modelo sombra Matchup Cross
===========================

Cruza componentes de estilo de ambos jugadores: saque de A contra resto de B,
resto de A contra saque de B, presión ofensiva contra defensiva, control,
disciplina y estabilidad, más tres interacciones acotadas a ±0.35.
"""

import math
from typing import Dict, List, Optional, Sequence

import numpy as np

from tennis_ensemble.api.models import FeatureRow, ModelResult, PlayerRecentStats
from tennis_ensemble.features.required_metrics import collect_feature_rows
from tennis_ensemble.prediction.tie_break import pick_by_odds_or_seed
from tennis_ensemble.utils.common import clamp, round1, round3

SOURCE = "stable14_matchup_cross_v1"
RECENCY_WEIGHTS = (0.3, 0.25, 0.2, 0.15, 0.1)
INTERACTION_CLIP = 0.35

COMPONENT_KEYS = (
    "service_off",
    "return_off",
    "pressure_attack",
    "pressure_defense",
    "control",
    "discipline",
)


def _pct01(value: float) -> float:
    return clamp(value / 100, 0, 1)


def _row_to_component_point(row: FeatureRow) -> List[float]:
    first_serve = _pct01(row.first_serve)
    return_games_won = _pct01(row.return_games_won)
    service_games_won = _pct01(row.service_games_won)
    second_serve_return_won = _pct01(row.second_serve_return_points_won)
    df_inv = 1 / (1 + max(0.0, row.double_faults))
    return [
        0.22 * _pct01(row.first_serve_points_won)
        + 0.24 * _pct01(row.second_serve_points_won)
        + 0.24 * _pct01(row.total_service_points_won)
        + 0.2 * service_games_won
        + 0.1 * first_serve,
        0.24 * _pct01(row.first_serve_return_points_won)
        + 0.24 * second_serve_return_won
        + 0.28 * _pct01(row.return_points_won)
        + 0.24 * return_games_won,
        0.55 * _pct01(row.break_points_converted) + 0.25 * return_games_won + 0.2 * second_serve_return_won,
        0.5 * _pct01(row.break_points_saved) + 0.25 * service_games_won + 0.25 * df_inv,
        0.6 * _pct01(row.total_points_won) + 0.4 * _pct01(row.total_games_won),
        0.65 * df_inv + 0.35 * first_serve,
    ]


def build_player_component_summary(rows: Sequence[FeatureRow]) -> Optional[Dict]:
    """
    Medias y estabilidad de los 6 componentes en los últimos 5 partidos

    Returns:
        Dict con means (componente -> media), component_dispersion y stability
    """
    n = min(len(rows), len(RECENCY_WEIGHTS))
    if n <= 0:
        return None
    weights = np.array(RECENCY_WEIGHTS[:n])
    points = np.array([_row_to_component_point(row) for row in rows[:n]], dtype=float)
    if not np.all(np.isfinite(points)):
        return None

    means = np.average(points, axis=0, weights=weights)
    variances = np.average((points - means) ** 2, axis=0, weights=weights)
    dispersion = float(variances.mean())
    return {
        "means": dict(zip(COMPONENT_KEYS, means.tolist())),
        "component_dispersion": dispersion,
        "stability": clamp(math.exp(-4 * dispersion), 0, 1),
    }


def _clip_interaction(value: float) -> float:
    return clamp(value, -INTERACTION_CLIP, INTERACTION_CLIP)


def _neutral_result(
    player_a_name: str,
    player_b_name: str,
    home_odd: Optional[float],
    away_odd: Optional[float],
    seed: str,
    warnings: List[str],
    stats_coverage: float,
) -> ModelResult:
    tie_break = pick_by_odds_or_seed(player_a_name, player_b_name, home_odd, away_odd, f"{seed}|matchup")
    components = {
        "raw_p1": 50.0,
        "score_s": 0.0,
        "reliability": 0.22,
        "stats_coverage": round3(stats_coverage),
    }
    for key in (
        "component_agreement",
        "stability_confidence",
        "edge_magnitude",
        "serve_match",
        "return_match",
        "pressure_match",
        "control_match",
    ):
        components[key] = 0.0
    return ModelResult(
        p1=50.0,
        p2=50.0,
        winner=tie_break["winner"],
        source=SOURCE,
        warnings=warnings + ["matchup_neutral_tiebreak"],
        components=components,
    )


def compute_matchup_cross(
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
    Matchup Cross

    Returns:
        ModelResult; 50/50 con "matchup_low_pair_coverage" si algún jugador
        tiene menos filas que las solicitadas
    """
    warnings = []
    rows_a = collect_feature_rows(player_a_stats)
    rows_b = collect_feature_rows(player_b_stats)
    valid_a = min(len(rows_a), 5)
    valid_b = min(len(rows_b), 5)
    need = max(1, min(5, requested_per_player or 5))
    stats_coverage = clamp(min(valid_a, valid_b) / 5, 0, 1)

    if min(valid_a, valid_b) < need:
        warnings.append("matchup_low_pair_coverage")
        return _neutral_result(player_a_name, player_b_name, home_odd, away_odd, seed, warnings, stats_coverage)

    summary_a = build_player_component_summary(rows_a)
    summary_b = build_player_component_summary(rows_b)
    if summary_a is None or summary_b is None:
        warnings.append("matchup_stats_unavailable")
        return _neutral_result(player_a_name, player_b_name, home_odd, away_odd, seed, warnings, 0.0)

    a = summary_a["means"]
    b = summary_b["means"]
    serve_match = a["service_off"] - b["return_off"]
    return_match = a["return_off"] - b["service_off"]
    pressure_match = 0.5 * (a["pressure_attack"] - b["pressure_defense"]) + 0.5 * (
        a["pressure_defense"] - b["pressure_attack"]
    )
    control_match = a["control"] - b["control"]
    discipline_match = a["discipline"] - b["discipline"]
    stability_match = summary_a["stability"] - summary_b["stability"]

    cross_synergy = _clip_interaction(serve_match * return_match)
    pressure_control_sync = _clip_interaction(pressure_match * control_match)
    attack_defense_tension = _clip_interaction(
        0.5 * serve_match * pressure_match + 0.5 * return_match * pressure_match
    )

    score_s = (
        0.24 * serve_match
        + 0.24 * return_match
        + 0.17 * pressure_match
        + 0.15 * control_match
        + 0.06 * discipline_match
        + 0.04 * stability_match
        + 0.06 * cross_synergy
        + 0.03 * pressure_control_sync
        + 0.01 * attack_defense_tension
    )

    raw_p1 = clamp(50 + 50 * math.tanh(1.45 * score_s), 1, 99)
    component_agreement = clamp(
        1 - (abs(serve_match - return_match) + abs(control_match - pressure_match)) / 1.2,
        0,
        1,
    )
    if component_agreement < 0.35:
        warnings.append("matchup_high_component_conflict")
    stability_confidence = clamp((summary_a["stability"] + summary_b["stability"]) / 2, 0, 1)
    edge_magnitude = clamp(abs(score_s) / 0.55, 0, 1)
    reliability = clamp(
        0.22
        + 0.28 * stats_coverage
        + 0.2 * component_agreement
        + 0.18 * stability_confidence
        + 0.12 * edge_magnitude,
        0.22,
        0.8,
    )

    p1_raw = clamp(50 + (raw_p1 - 50) * reliability, 0, 100)
    if p1_raw > 50:
        winner = player_a_name
    elif p1_raw < 50:
        winner = player_b_name
    else:
        warnings.append("matchup_neutral_tiebreak")
        winner = pick_by_odds_or_seed(player_a_name, player_b_name, home_odd, away_odd, f"{seed}|matchup")["winner"]

    return ModelResult(
        p1=round1(p1_raw),
        p2=round1(100 - p1_raw),
        winner=winner,
        source=SOURCE,
        warnings=warnings,
        components={
            "raw_p1": round3(raw_p1),
            "score_s": round3(score_s),
            "reliability": round3(reliability),
            "stats_coverage": round3(stats_coverage),
            "component_agreement": round3(component_agreement),
            "stability_confidence": round3(stability_confidence),
            "edge_magnitude": round3(edge_magnitude),
            "serve_match": round3(serve_match),
            "return_match": round3(return_match),
            "pressure_match": round3(pressure_match),
            "control_match": round3(control_match),
        },
    )
