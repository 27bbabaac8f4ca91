"""
Modelo sombra Market-Residual
=============================

Parte de la probabilidad implícita del mercado (cuotas decimales) y la corrige
con un residuo de dominancia ajustado por rival: en cada uno de los últimos 5
partidos se compara al jugador con su propio rival (saque, resto, control,
presión, disciplina) y se pondera por recencia y calidad del rival.

El peso del residuo (gate) baja cuando el mercado es muy claro o cuando
mercado y estadísticas discrepan mucho. Sin cuotas válidas se usa solo el
residuo; sin estadísticas, solo el mercado (o 50).
"""

import logging
import math
from typing import Dict, List, Optional, Sequence

import numpy as np

from tennis_ensemble.api.models import FeatureRow, HistoricalMatchTechStats, ModelResult, PlayerRecentStats
from tennis_ensemble.features.required_metrics import extract_feature_pair
from tennis_ensemble.prediction.tie_break import pick_by_odds_or_seed
from tennis_ensemble.utils.common import clamp, logit, normalize_weights, round1, round3, stable_sigmoid

logger = logging.getLogger(__name__)

SOURCE = "market_residual_oppadj_v1"
RECENCY_WEIGHTS = (0.34, 0.26, 0.18, 0.13, 0.09)
NEUTRAL_EPS = 1e-9
MIN_VALID_ODD = 1.01

DOMINANCE_KEYS = ("serve_dom", "return_dom", "control_dom", "pressure_balance", "discipline_dom")


# ==================== MERCADO ====================


def build_market_prior(home_odd: Optional[float], away_odd: Optional[float]) -> Dict:
    """
    Probabilidad implícita del mercado sin margen

    Returns:
        Dict con available, market_p1, market_logit y market_rel (0.35-1 según el overround)
    """
    unavailable = {"available": False, "market_p1": 50.0, "market_logit": 0.0, "market_rel": 0.0}
    valid = [odd for odd in (home_odd, away_odd) if odd is not None and math.isfinite(odd) and odd > MIN_VALID_ODD]
    if len(valid) != 2:
        return unavailable

    inv_home = 1 / home_odd
    inv_away = 1 / away_odd
    total = inv_home + inv_away
    if not math.isfinite(total) or total <= 0:
        return unavailable

    market_p1 = clamp(100 * inv_home / total, 0, 100)
    return {
        "available": True,
        "market_p1": market_p1,
        "market_logit": logit(clamp(market_p1 / 100, 0.02, 0.98)),
        "market_rel": clamp(1 - abs(total - 1.06) / 0.18, 0.35, 1),
    }


# ==================== PERFIL DE DOMINANCIA ====================


def _pair_to_dominance_point(player: FeatureRow, opponent: FeatureRow) -> Dict[str, float]:
    def delta(key: str) -> float:
        value = player.value(key) - opponent.value(key)
        return -value if key == "double_faults" else value

    opp_q = (
        0.35 * opponent.total_points_won
        + 0.2 * opponent.return_points_won
        + 0.2 * opponent.total_games_won
        + 0.15 * opponent.service_games_won
        + 0.1 * opponent.return_games_won
    )
    return {
        "serve_dom": 0.2 * delta("first_serve_points_won")
        + 0.22 * delta("second_serve_points_won")
        + 0.24 * delta("total_service_points_won")
        + 0.22 * delta("service_games_won")
        + 0.12 * delta("break_points_saved"),
        "return_dom": 0.2 * delta("first_serve_return_points_won")
        + 0.22 * delta("second_serve_return_points_won")
        + 0.28 * delta("return_points_won")
        + 0.2 * delta("return_games_won")
        + 0.1 * delta("break_points_converted"),
        "control_dom": 0.6 * delta("total_points_won") + 0.4 * delta("total_games_won"),
        "pressure_balance": 0.5 * delta("break_points_converted")
        + 0.35 * delta("break_points_saved")
        + 0.15 * delta("return_games_won"),
        "discipline_dom": 0.75 * delta("double_faults") + 0.25 * delta("first_serve"),
        "opp_q01": clamp((opp_q - 35) / 30, 0, 1),
    }


def build_dominance_profile(matches: Sequence[HistoricalMatchTechStats]) -> Optional[Dict]:
    """
    Perfil de dominancia sobre los 5 partidos más recientes

    Solo cuentan los partidos con las 14 métricas completas para jugador y rival.

    Returns:
        Dict con valid_count, mean, variance, mean_opp_q, var_opp_q y
        profile_stability; None si ningún partido es usable
    """
    points: List[Dict[str, float]] = []
    for match in matches[:5]:
        pair = extract_feature_pair(match)
        if pair is None:
            continue
        points.append(_pair_to_dominance_point(*pair))
    if not points:
        return None

    raw_weights = [
        RECENCY_WEIGHTS[index] * (0.85 + 0.3 * clamp(point["opp_q01"], 0, 1)) for index, point in enumerate(points)
    ]
    weights = normalize_weights(raw_weights)
    if len(weights) != len(points):
        return None
    w = np.array(weights)

    columns = DOMINANCE_KEYS + ("opp_q01",)
    matrix = np.array([[point[key] for key in columns] for point in points], dtype=float)
    means = w @ matrix
    variances = w @ (matrix - means) ** 2

    mean = dict(zip(DOMINANCE_KEYS, means[:5].tolist()))
    variance = dict(zip(DOMINANCE_KEYS, variances[:5].tolist()))
    dispersion = (
        variance["serve_dom"]
        + variance["return_dom"]
        + variance["control_dom"]
        + variance["pressure_balance"]
        + variance["discipline_dom"] / 2
    ) / 5
    return {
        "valid_count": len(points),
        "mean": mean,
        "variance": variance,
        "mean_opp_q": float(means[5]),
        "var_opp_q": float(variances[5]),
        "profile_stability": clamp(math.exp(-dispersion / 18), 0, 1),
    }


def _normalize_percent_edge(value: float) -> float:
    return clamp(value / 12, -1.5, 1.5)


# ==================== MODELO ====================


def _tiebreak_winner(
    player_a_name: str, player_b_name: str, home_odd: Optional[float], away_odd: Optional[float], seed: str
) -> str:
    return pick_by_odds_or_seed(player_a_name, player_b_name, home_odd, away_odd, f"{seed}|mroa")["winner"]


def _neutral_or_market_result(
    player_a_name: str,
    player_b_name: str,
    home_odd: Optional[float],
    away_odd: Optional[float],
    seed: str,
    warnings: List[str],
    market: Dict,
    stats_coverage: float,
) -> ModelResult:
    warnings = list(warnings)
    p1_raw = market["market_p1"] if market["available"] else 50.0
    if abs(p1_raw - 50) <= NEUTRAL_EPS:
        warnings.append("mroa_neutral_tiebreak")
        winner = _tiebreak_winner(player_a_name, player_b_name, home_odd, away_odd, seed)
    else:
        winner = player_a_name if p1_raw > 50 else player_b_name

    components = {}
    if market["available"]:
        components["market_p1"] = round3(market["market_p1"])
    components.update(
        {
            "market_rel": round3(market["market_rel"]),
            "residual_score_r": 0.0,
            "residual_adj_raw": 0.0,
            "gate": 0.0,
            "resid_rel": 0.0,
            "stats_coverage": round3(stats_coverage),
            "stability_conf": 0.0,
            "edge_coherence": 0.0,
        }
    )
    if market["available"]:
        components["market_strength"] = round3(clamp(abs(market["market_p1"] - 50) / 30, 0, 1))
    for key in ("serve_edge", "return_edge", "control_edge", "pressure_edge", "opp_quality_edge"):
        components[key] = 0.0

    return ModelResult(
        p1=round1(p1_raw),
        p2=round1(100 - p1_raw),
        winner=winner,
        source=SOURCE,
        warnings=warnings,
        components=components,
    )


def compute_market_residual(
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
    Market-Residual ajustado por rival

    Args:
        player_a_stats: Historial de A
        player_b_stats: Historial de B
        player_a_name: Nombre de A
        player_b_name: Nombre de B
        requested_per_player: Partidos solicitados por jugador
        home_odd: Cuota decimal de A (válida si > 1.01)
        away_odd: Cuota decimal de B
        seed: Semilla base del desempate (se añade "|mroa")

    Returns:
        ModelResult con p1/p2 redondeados a 1 decimal
    """
    warnings = []
    need = max(1, requested_per_player or 1)
    profile_a = build_dominance_profile(player_a_stats.parsed_matches)
    profile_b = build_dominance_profile(player_b_stats.parsed_matches)

    valid_a = profile_a["valid_count"] if profile_a else 0
    valid_b = profile_b["valid_count"] if profile_b else 0
    stats_coverage = clamp(min(valid_a, valid_b) / need, 0, 1)
    if min(valid_a, valid_b) < need:
        warnings.append("mroa_low_pair_coverage")

    market = build_market_prior(home_odd, away_odd)
    if not market["available"]:
        warnings.append("mroa_market_unavailable")

    if profile_a is None or profile_b is None:
        warnings.append("mroa_stats_unavailable")
        return _neutral_or_market_result(
            player_a_name, player_b_name, home_odd, away_odd, seed, warnings, market, stats_coverage
        )

    mean_a = profile_a["mean"]
    mean_b = profile_b["mean"]
    serve_edge = mean_a["serve_dom"] - mean_b["serve_dom"]
    return_edge = mean_a["return_dom"] - mean_b["return_dom"]
    control_edge = mean_a["control_dom"] - mean_b["control_dom"]
    pressure_edge = mean_a["pressure_balance"] - mean_b["pressure_balance"]
    discipline_edge = mean_a["discipline_dom"] - mean_b["discipline_dom"]
    stability_edge = clamp(profile_a["profile_stability"] - profile_b["profile_stability"], -1, 1)
    opp_quality_edge = profile_a["mean_opp_q"] - profile_b["mean_opp_q"]

    serve_n = _normalize_percent_edge(serve_edge)
    return_n = _normalize_percent_edge(return_edge)
    control_n = _normalize_percent_edge(control_edge)
    pressure_n = _normalize_percent_edge(pressure_edge)
    discipline_n = clamp(discipline_edge / 2.5, -1.5, 1.5)
    opp_quality_n = clamp(opp_quality_edge / 0.25, -1.5, 1.5)

    r_stats = (
        0.24 * serve_n
        + 0.24 * return_n
        + 0.2 * control_n
        + 0.12 * pressure_n
        + 0.06 * discipline_n
        + 0.07 * opp_quality_n
        + 0.07 * stability_edge
    )
    consistency_synergy = clamp(control_n * stability_edge, -0.35, 0.35)
    two_way_edge = clamp((serve_n + return_n) / 2, -1, 1)
    residual_score = r_stats + 0.05 * consistency_synergy + 0.05 * two_way_edge
    residual_adj_raw = 1.15 * math.tanh(0.95 * residual_score)

    stability_conf = clamp((profile_a["profile_stability"] + profile_b["profile_stability"]) / 2, 0, 1)
    edge_coherence = clamp(1 - (abs(serve_n - return_n) + abs(control_n - pressure_n)) / 2.4, 0, 1)
    opp_quality_conf = clamp(1 - abs(profile_a["var_opp_q"] - profile_b["var_opp_q"]) / 0.12, 0, 1)
    resid_rel = clamp(
        0.2 + 0.3 * stats_coverage + 0.2 * stability_conf + 0.2 * edge_coherence + 0.1 * opp_quality_conf,
        0.2,
        0.82,
    )

    gate = resid_rel
    market_strength = None
    disagreement = None
    if market["available"]:
        market_strength = clamp(abs(market["market_p1"] - 50) / 30, 0, 1)
        stats_posterior = stable_sigmoid(market["market_logit"] + residual_adj_raw) * 100
        disagreement = clamp(abs(stats_posterior - market["market_p1"]) / 35, 0, 1)
        gate = clamp(
            0.25 + 0.45 * resid_rel + 0.2 * (1 - market_strength) + 0.1 * (1 - disagreement),
            0.2,
            0.9,
        )
        posterior_logit = market["market_logit"] + gate * residual_adj_raw
        if disagreement > 0.75:
            warnings.append("mroa_high_market_stats_conflict")
    else:
        posterior_logit = residual_adj_raw * resid_rel

    p1_raw = clamp(stable_sigmoid(posterior_logit) * 100, 0, 100)
    if p1_raw > 50 + NEUTRAL_EPS:
        winner = player_a_name
    elif p1_raw < 50 - NEUTRAL_EPS:
        winner = player_b_name
    else:
        warnings.append("mroa_neutral_tiebreak")
        winner = _tiebreak_winner(player_a_name, player_b_name, home_odd, away_odd, seed)

    components = {}
    if market["available"]:
        components["market_p1"] = round3(market["market_p1"])
    components.update(
        {
            "market_rel": round3(market["market_rel"]),
            "residual_score_r": round3(residual_score),
            "residual_adj_raw": round3(residual_adj_raw),
            "gate": round3(gate),
            "resid_rel": round3(resid_rel),
            "stats_coverage": round3(stats_coverage),
            "stability_conf": round3(stability_conf),
            "edge_coherence": round3(edge_coherence),
        }
    )
    if market_strength is not None:
        components["market_strength"] = round3(market_strength)
    if disagreement is not None:
        components["market_stats_disagreement"] = round3(disagreement)
    components.update(
        {
            "serve_edge": round3(serve_edge),
            "return_edge": round3(return_edge),
            "control_edge": round3(control_edge),
            "pressure_edge": round3(pressure_edge),
            "opp_quality_edge": round3(opp_quality_edge),
        }
    )

    logger.debug(f"Market-Residual: mercado={market['market_p1']:.1f}, gate={gate:.3f}, P1={p1_raw:.2f}")

    return ModelResult(
        p1=round1(p1_raw),
        p2=round1(100 - p1_raw),
        winner=winner,
        source=SOURCE,
        warnings=warnings,
        components=components,
    )
