"""
Modelo sombra Hybrid Form+Stats
===============================

Mezcla 80% de un delta de 12 métricas técnicas con 20% de la forma reciente
(victorias/derrotas ponderadas) y encoge el resultado hacia 50 según su
fiabilidad. No interviene en la probabilidad final.
"""

import logging
from typing import Dict, Optional, Sequence

from tennis_ensemble.api.models import FeatureRow, ModelResult, PlayerRecentStats
from tennis_ensemble.features.player_form import default_form_window
from tennis_ensemble.features.required_metrics import collect_feature_rows
from tennis_ensemble.prediction.tie_break import winner_from_probability
from tennis_ensemble.utils.common import clamp, clamp01, is_finite_number, round1, round3

logger = logging.getLogger(__name__)

SOURCE = "form_stats_hybrid_v2"
STATS_WEIGHT = 0.8
FORM_WEIGHT = 0.2
MAX_HYBRID_RELIABILITY = 0.8

# (métrica, peso, escala, invertida)
HYBRID_STATS_METRICS = (
    ("total_points_won", 0.2, 15, False),
    ("return_points_won", 0.12, 15, False),
    ("total_games_won", 0.12, 15, False),
    ("service_games_won", 0.08, 15, False),
    ("return_games_won", 0.08, 15, False),
    ("break_points_converted", 0.08, 10, False),
    ("break_points_saved", 0.06, 10, False),
    ("first_serve_points_won", 0.07, 10, False),
    ("second_serve_points_won", 0.07, 10, False),
    ("first_serve_return_points_won", 0.05, 10, False),
    ("second_serve_return_points_won", 0.05, 10, False),
    ("double_faults", 0.02, 2, True),
)


def _average_metrics(rows: Sequence[FeatureRow]) -> Dict[str, float]:
    out = {}
    for key, _, _, _ in HYBRID_STATS_METRICS:
        values = [row.value(key) for row in rows if is_finite_number(row.value(key))]
        if values:
            out[key] = sum(values) / len(values)
    return out


def compute_stats_component(
    player_a_rows: Sequence[FeatureRow], player_b_rows: Sequence[FeatureRow]
) -> Optional[float]:
    """Componente técnico 50 ± 35 (None si algún jugador no tiene filas)"""
    if not player_a_rows or not player_b_rows:
        return None
    mean_a = _average_metrics(player_a_rows)
    mean_b = _average_metrics(player_b_rows)

    weighted = 0.0
    total_weight = 0.0
    for key, weight, scale, invert in HYBRID_STATS_METRICS:
        if key not in mean_a or key not in mean_b:
            continue
        delta = mean_a[key] - mean_b[key]
        if invert:
            delta *= -1
        weighted += clamp(delta / scale, -1, 1) * weight
        total_weight += weight

    if total_weight <= 0:
        return None
    return clamp(50 + 35 * (weighted / total_weight), 0, 100)


def compute_form_component(form_score_a: Optional[float], form_score_b: Optional[float]) -> Optional[float]:
    """Componente de forma 50 + 25 * (forma A - forma B)"""
    if not is_finite_number(form_score_a) or not is_finite_number(form_score_b):
        return None
    return clamp(50 + 25 * (form_score_a - form_score_b), 0, 100)


def compute_form_stats_hybrid(
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
    Hybrid Form+Stats

    Args:
        player_a_stats: Historial de A (filas técnicas y forma reciente)
        player_b_stats: Historial de B
        player_a_name: Nombre de A
        player_b_name: Nombre de B
        requested_per_player: Partidos técnicos solicitados por jugador
        home_odd: Cuota de A (desempate)
        away_odd: Cuota de B (desempate)
        seed: Semilla base del desempate (se añade "|hybrid")

    Returns:
        ModelResult con p1/p2 redondeados a 1 decimal
    """
    warnings = []

    rows_a = collect_feature_rows(player_a_stats)
    rows_b = collect_feature_rows(player_b_stats)
    stats_p1 = compute_stats_component(rows_a, rows_b)

    form_a = player_a_stats.recent_form
    form_b = player_b_stats.recent_form
    form_p1 = compute_form_component(
        form_a.weighted_score if form_a else None,
        form_b.weighted_score if form_b else None,
    )

    if form_a is None or form_a.usable_matches <= 0:
        warnings.append("hybrid_form_unavailable_a")
    if form_b is None or form_b.usable_matches <= 0:
        warnings.append("hybrid_form_unavailable_b")
    if stats_p1 is None:
        warnings.append("hybrid_stats_unavailable")

    form_window = default_form_window()
    usable_form_min = min(form_a.usable_matches if form_a else 0, form_b.usable_matches if form_b else 0)
    if usable_form_min < form_window:
        warnings.append("hybrid_form_low_coverage")

    stats_reliability = clamp01(
        min(len(rows_a), len(rows_b)) / requested_per_player if requested_per_player > 0 else 0.0
    )
    form_reliability = clamp01(usable_form_min / form_window)
    stats_used = stats_p1 if stats_p1 is not None else 50.0
    form_used = form_p1 if form_p1 is not None else 50.0
    agreement = clamp01(1 - abs(stats_used - form_used) / 40)
    reliability = clamp01(
        min(MAX_HYBRID_RELIABILITY, 0.45 * stats_reliability + 0.15 * form_reliability + 0.2 * agreement)
    )
    raw_p1 = clamp(STATS_WEIGHT * stats_used + FORM_WEIGHT * form_used, 0, 100)
    hybrid_p1 = clamp(50 + (raw_p1 - 50) * reliability, 0, 100)

    components = {}
    if stats_p1 is not None:
        components["stats_p1"] = round1(stats_p1)
    if form_p1 is not None:
        components["form_p1"] = round1(form_p1)
    components.update(
        {
            "hybrid_raw_p1": round1(raw_p1),
            "stats_weight": STATS_WEIGHT,
            "form_weight": FORM_WEIGHT,
            "stats_reliability": round3(stats_reliability),
            "form_reliability": round3(form_reliability),
            "hybrid_reliability": round3(reliability),
        }
    )

    logger.debug(f"Hybrid: stats={stats_p1}, forma={form_p1}, fiabilidad={reliability:.3f}")

    return ModelResult(
        p1=round1(hybrid_p1),
        p2=round1(100 - hybrid_p1),
        winner=winner_from_probability(
            hybrid_p1, player_a_name, player_b_name, home_odd, away_odd, f"{seed}|hybrid"
        ),
        source=SOURCE,
        warnings=warnings,
        components=components,
    )
