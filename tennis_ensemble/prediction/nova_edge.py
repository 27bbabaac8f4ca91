"""
Modelo sombra Nova Edge
=======================

Resume los 5 partidos más recientes de cada jugador en un vector de 4
dimensiones (saque, resto, presión, control) y combina potencia, tendencia,
estabilidad y equilibrio en una puntuación. No interviene en la probabilidad
final.
"""

import math
from typing import List, Optional, Sequence

import numpy as np

from tennis_ensemble.api.models import FeatureRow, ModelResult
from tennis_ensemble.prediction.tie_break import pick_by_odds_or_seed, winner_from_probability
from tennis_ensemble.utils.common import clamp

SOURCE = "stable14_nova_v1"
NOVA_ROWS = 5

# orden de las componentes: saque, resto, presión, control
FRESHNESS_WEIGHTS = np.array([5, 4, 3, 2, 1]) / 15
POWER_WEIGHTS = np.array([0.34, 0.28, 0.22, 0.16])
TREND_WEIGHTS = np.array([0.4, 0.3, 0.2, 0.1])


def _norm(value: float) -> float:
    return clamp(value / 100, 0, 1)


def _inv_count(value: float) -> float:
    return 1 / (1 + max(value, 0))


def _to_vector(row: FeatureRow) -> Optional[np.ndarray]:
    serve = (
        0.16 * _norm(row.first_serve)
        + 0.24 * _norm(row.first_serve_points_won)
        + 0.2 * _norm(row.second_serve_points_won)
        + 0.22 * _norm(row.total_service_points_won)
        + 0.18 * _norm(row.service_games_won)
    )
    ret = (
        0.28 * _norm(row.first_serve_return_points_won)
        + 0.28 * _norm(row.second_serve_return_points_won)
        + 0.24 * _norm(row.return_points_won)
        + 0.2 * _norm(row.return_games_won)
    )
    pressure = (
        0.4 * _norm(row.break_points_saved)
        + 0.35 * _norm(row.break_points_converted)
        + 0.25 * _inv_count(row.double_faults)
    )
    control = 0.55 * _norm(row.total_points_won) + 0.45 * _norm(row.total_games_won)
    vector = np.array([serve, ret, pressure, control], dtype=float)
    if not np.all(np.isfinite(vector)):
        return None
    return vector


def _rows_to_vectors(rows: Sequence[FeatureRow]) -> Optional[np.ndarray]:
    if len(rows) < NOVA_ROWS:
        return None
    vectors: List[np.ndarray] = []
    for row in rows[:NOVA_ROWS]:
        vector = _to_vector(row)
        if vector is None:
            return None
        vectors.append(vector)
    return np.vstack(vectors)


def _raw_score(vectors: np.ndarray) -> float:
    mu = FRESHNESS_WEIGHTS @ vectors
    trend = vectors[:2].mean(axis=0) - vectors[2:5].mean(axis=0)
    dispersion = float(np.mean(np.abs(vectors - mu).mean(axis=1)))
    stability = clamp(math.exp(-3 * dispersion), 0, 1)
    balance = clamp(1 - float(np.std(mu)) / 0.25, 0, 1)
    power = float(mu @ POWER_WEIGHTS)
    trend_score = float(trend @ TREND_WEIGHTS)
    return power + 0.3 * trend_score + 0.15 * (stability - 0.5) + 0.1 * (balance - 0.5)


def compute_nova_edge(
    player_a_rows: Sequence[FeatureRow],
    player_b_rows: Sequence[FeatureRow],
    player_a_name: str,
    player_b_name: str,
    home_odd: Optional[float] = None,
    away_odd: Optional[float] = None,
    seed: str = "",
) -> ModelResult:
    """
    Nova Edge sobre los 5 partidos más recientes de cada jugador

    Args:
        player_a_rows: Filas stable14 de A (más reciente primero)
        player_b_rows: Filas stable14 de B
        player_a_name: Nombre de A
        player_b_name: Nombre de B
        home_odd: Cuota de A (desempate)
        away_odd: Cuota de B (desempate)
        seed: Semilla del desempate

    Returns:
        ModelResult; 50/50 con "nova_edge_unavailable" si algún jugador tiene menos de 5 filas
    """
    vectors_a = _rows_to_vectors(player_a_rows)
    vectors_b = _rows_to_vectors(player_b_rows)
    score_a = _raw_score(vectors_a) if vectors_a is not None else None
    score_b = _raw_score(vectors_b) if vectors_b is not None else None

    if score_a is None or score_b is None or not math.isfinite(score_a) or not math.isfinite(score_b):
        tie_break = pick_by_odds_or_seed(player_a_name, player_b_name, home_odd, away_odd, seed)
        return ModelResult(
            p1=50.0,
            p2=50.0,
            winner=tie_break["winner"],
            source=SOURCE,
            warnings=["nova_edge_unavailable"],
        )

    p1 = clamp(50 + 50 * math.tanh(3.2 * (score_a - score_b)), 1, 99)
    return ModelResult(
        p1=p1,
        p2=100 - p1,
        winner=winner_from_probability(p1, player_a_name, player_b_name, home_odd, away_odd, seed),
        source=SOURCE,
        components={"score_a": score_a, "score_b": score_b},
    )
