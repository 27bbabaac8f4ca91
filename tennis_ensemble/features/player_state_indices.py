"""
Índices de estado del jugador por ventanas
==========================================

Construye, a partir del historial técnico, las features por partido (núcleos
de saque, resto, control, disciplina y puntos totales, más la fuerza del rival
y la categoría del torneo) y las agrega en ventanas de 10, 5 y 3 partidos para
obtener cuatro índices 0-100:

- strength: nivel técnico ajustado por rival
- stability: baja volatilidad y tendencias coherentes
- form_tech: pendiente reciente de control, resto y puntos totales
- form_plus: form_tech combinada con la tendencia del marcador

Cada ventana se marca como disponible o degradada (menos partidos que el
objetivo). Estos índices alimentan la decisión de estado (state_decision).
"""

import logging
import math
import re
from typing import Dict, List, Optional, Sequence

import numpy as np

from tennis_ensemble.api.models import (
    HistoricalMatchTechStats,
    PlayerStateFeature,
    PlayerStateSeries,
    WindowSeries,
)
from tennis_ensemble.features.required_metrics import extract_feature_pair
from tennis_ensemble.utils.common import (
    clamp,
    clamp01,
    is_finite_number,
    mean,
    round3,
    sample_sd,
    sign,
)

logger = logging.getLogger(__name__)

STATE_METRICS = ("stability", "form_tech", "form_plus", "strength")
STATE_WINDOWS = ("w10", "w5", "w3")

# ventana -> (objetivo, mínimo para habilitarla)
WINDOW_TARGETS = {
    "w10": (10, 6),
    "w5": (5, 4),
    "w3": (3, 2),
}

DEFAULT_CONTRAST_GAIN = {"w10": 0.45, "w5": 0.38, "w3": 0.3}
DEFAULT_CAP_SHIFT = 5.5
DEFAULT_FULL_COVERAGE_GAP_TARGET = 4.0
DEFAULT_NEAR_ZERO_DIFF = 0.35

_GRAND_SLAM = re.compile(r"(australian open|roland garros|wimbledon|us open|grand slam)", re.IGNORECASE)
_MASTERS = re.compile(r"(atp finals|wta finals|masters\s*1000|\bmasters\b|\b1000\b)", re.IGNORECASE)
_TIER_500 = re.compile(r"(\batp\s*500\b|\bwta\s*500\b)", re.IGNORECASE)
_TIER_250 = re.compile(r"(\batp\s*250\b|\bwta\s*250\b)", re.IGNORECASE)
_CHALLENGER = re.compile(r"(challenger|atp challenger|\bwta\s*125\b)", re.IGNORECASE)
_ITF = re.compile(r"(\bitf\b|\bm15\b|\bm25\b|\bw15\b|\bw25\b|futures)", re.IGNORECASE)
_QUALIFYING = re.compile(r"\bqualif(?:ying|ication)?\b|\bqualification\b")

_RESULT_MARKER = re.compile(r"(?:^|\s)([WLВП])(?:\s|$)")
_LEADING_SCORE = re.compile(r"^(\d+)\s*[-:]\s*(\d+)")
_SCORE_PAIRS = re.compile(r"(\d+)\s*[-:]\s*(\d+)")


# ==================== TORNEO Y RIVAL ====================


def infer_tournament_tier_score(tournament: Optional[str]) -> Dict:
    """
    Categoría del torneo a partir de su nombre

    Returns:
        Dict con tier_score (0.35 ITF ... 1.0 Grand Slam), qualifying y unknown
    """
    raw = str(tournament or "").strip()
    text = raw.lower()
    qualifying = bool(_QUALIFYING.search(text))

    def tier(score: float, unknown: bool = False) -> Dict:
        return {"tier_score": score, "qualifying": qualifying, "unknown": unknown}

    if not text:
        return tier(0.5, unknown=True)
    if _GRAND_SLAM.search(raw):
        return tier(1.0)
    if _MASTERS.search(raw):
        return tier(0.9)
    if _TIER_500.search(raw):
        return tier(0.8)
    if _TIER_250.search(raw):
        return tier(0.7)
    if _CHALLENGER.search(raw):
        return tier(0.55)
    if _ITF.search(raw):
        return tier(0.35)
    return tier(0.5, unknown=True)


def compute_opponent_stats_quality01(
    total_points_won: Optional[float],
    return_points_won: Optional[float],
    total_games_won: Optional[float],
    service_games_won: Optional[float],
    return_games_won: Optional[float],
) -> Optional[float]:
    """Calidad del rival en [0, 1] a partir de sus propias estadísticas del partido"""
    values = [total_points_won, return_points_won, total_games_won, service_games_won, return_games_won]
    if not all(is_finite_number(v) for v in values):
        return None
    score = (
        0.3 * total_points_won
        + 0.2 * return_points_won
        + 0.2 * total_games_won
        + 0.15 * service_games_won
        + 0.15 * return_games_won
    )
    return round3(clamp((score - 35) / 30, 0, 1))


def combine_opponent_strength_proxy(opp_stats_q01: Optional[float], tier_score: float) -> Optional[float]:
    if not is_finite_number(opp_stats_q01):
        return None
    return round3(clamp(0.65 * opp_stats_q01 + 0.35 * tier_score, 0, 1))


# ==================== MARCADOR ====================


def _parse_result_marker_sign(result_text: Optional[str]) -> Optional[int]:
    raw = str(result_text or "").strip()
    if not raw:
        return None
    match = _RESULT_MARKER.search(raw)
    if not match:
        return None
    token = match.group(1).upper()
    if token in ("W", "В"):
        return 1
    if token in ("L", "П"):
        return -1
    return None


def _parse_set_margin_norm(score_text: Optional[str]) -> Optional[float]:
    text = str(score_text or "").strip()
    if not text:
        return None
    match = _LEADING_SCORE.match(text)
    if not match:
        return None
    left = int(match.group(1))
    right = int(match.group(2))
    if left <= 5 and right <= 5:
        return clamp((left - right) / 2, -1, 1)
    return None


def _parse_game_margin_norm(score_text: Optional[str]) -> Optional[float]:
    text = str(score_text or "").strip()
    if not text:
        return None
    pairs = [(int(a), int(b)) for a, b in _SCORE_PAIRS.findall(text)]
    game_pairs = [(a, b) for a, b in pairs if a > 3 or b > 3]
    if not game_pairs:
        return None
    margin = sum(a - b for a, b in game_pairs)
    return clamp(margin / 12, -1, 1)


def parse_score_momentum_features(result_text: Optional[str] = None, score_text: Optional[str] = None) -> Dict:
    """
    Momentum de un partido a partir del resultado y el marcador

    Returns:
        Dict con score_parsed, match_won_sign, set_margin_norm, game_margin_norm
        y score_momentum en [-1, 1] (None si no se pudo leer nada)
    """
    match_won_sign = _parse_result_marker_sign(result_text)
    set_margin_norm = _parse_set_margin_norm(score_text)
    game_margin_norm = _parse_game_margin_norm(score_text)
    score_parsed = match_won_sign is not None or set_margin_norm is not None or game_margin_norm is not None

    score_momentum = None
    if score_parsed:
        score_momentum = round3(
            clamp(
                0.65 * (match_won_sign or 0) + 0.2 * (set_margin_norm or 0) + 0.15 * (game_margin_norm or 0),
                -1,
                1,
            )
        )
    return {
        "score_parsed": score_parsed,
        "match_won_sign": match_won_sign,
        "set_margin_norm": set_margin_norm,
        "game_margin_norm": game_margin_norm,
        "score_momentum": score_momentum,
    }


# ==================== FEATURE POR PARTIDO ====================


def _normalize_percent(value: Optional[float]) -> float:
    if not is_finite_number(value):
        return 0.0
    return clamp(value / 100, 0, 1.2)


def build_player_state_feature(
    parsed: HistoricalMatchTechStats,
    candidate_index: int,
    tournament: Optional[str] = None,
    result_text: Optional[str] = None,
    score_text: Optional[str] = None,
) -> Optional[PlayerStateFeature]:
    """
    Feature de estado de un partido histórico

    Args:
        parsed: Estadísticas técnicas del partido
        candidate_index: Posición en el historial (0 = más reciente)
        tournament: Nombre del torneo (para la categoría)
        result_text: Marcador de resultado (W/L)
        score_text: Marcador de sets/juegos

    Returns:
        PlayerStateFeature o None si jugador o rival no tienen las 14 métricas
    """
    pair = extract_feature_pair(parsed)
    if pair is None:
        return None
    player, opponent = pair

    tier = infer_tournament_tier_score(tournament)
    opp_stats_q01 = compute_opponent_stats_quality01(
        opponent.total_points_won,
        opponent.return_points_won,
        opponent.total_games_won,
        opponent.service_games_won,
        opponent.return_games_won,
    )

    n = _normalize_percent
    serve_core = (
        0.18 * n(player.first_serve_points_won)
        + 0.22 * n(player.second_serve_points_won)
        + 0.24 * n(player.total_service_points_won)
        + 0.22 * n(player.service_games_won)
        + 0.14 * n(player.break_points_saved)
    )
    return_core = (
        0.18 * n(player.first_serve_return_points_won)
        + 0.2 * n(player.second_serve_return_points_won)
        + 0.26 * n(player.return_points_won)
        + 0.2 * n(player.return_games_won)
        + 0.16 * n(player.break_points_converted)
    )
    control_core = 0.6 * n(player.total_points_won) + 0.4 * n(player.total_games_won)
    df_inv = 1 / (1 + max(0.0, player.double_faults))
    discipline_core = 0.75 * df_inv + 0.25 * n(player.first_serve)

    return PlayerStateFeature(
        match_url=parsed.match_url,
        candidate_index=max(0, int(candidate_index)),
        tournament=tournament,
        result_text=result_text,
        score_text=score_text,
        serve_core=round3(serve_core),
        return_core=round3(return_core),
        control_core=round3(control_core),
        discipline_core=round3(discipline_core),
        tpw_core=round3(n(player.total_points_won)),
        opp_stats_q01=opp_stats_q01,
        opp_strength_composite=combine_opponent_strength_proxy(opp_stats_q01, tier["tier_score"]),
        tier_score=tier["tier_score"],
        qualifying=tier["qualifying"],
    )


# ==================== VENTANAS ====================


def _plan_for(n_available: int, target: int, min_enable: int) -> Dict:
    if not is_finite_number(n_available) or n_available < min_enable:
        return {"enabled": False, "target": target, "used": 0, "reliability": 0.0, "degraded": False}
    used = min(target, max(0, int(math.floor(n_available))))
    return {
        "enabled": True,
        "target": target,
        "used": used,
        "reliability": round3(clamp(used / target, 0, 1)),
        "degraded": used < target,
    }


def compute_window_plan(n_available: int) -> Dict[str, Dict]:
    """Plan de ventanas: w10 (>= 6 partidos), w5 (>= 4), w3 (>= 2)"""
    return {name: _plan_for(n_available, target, min_enable) for name, (target, min_enable) in WINDOW_TARGETS.items()}


def _recency_weight(window_name: str, index: int, count: int) -> float:
    if window_name == "w3":
        fixed = (1.0, 0.8, 0.65)
        return fixed[index] if index < len(fixed) else max(0.4, 1 - index * 0.2)
    low = 0.55 if window_name == "w10" else 0.6
    if count <= 1:
        return 1.0
    t = index / (count - 1)
    return 1.0 + (low - 1.0) * t


def _weighted_mean(values: Sequence[float], weights: Sequence[float]) -> float:
    if not values or sum(weights) <= 0:
        return 0.0
    return float(np.average(np.asarray(values, dtype=float), weights=np.asarray(weights, dtype=float)))


def _weighted_variance(values: Sequence[float], weights: Sequence[float]) -> float:
    if len(values) <= 1 or sum(weights) <= 0:
        return 0.0
    arr = np.asarray(values, dtype=float)
    w = np.asarray(weights, dtype=float)
    mu = np.average(arr, weights=w)
    return float(np.sum(w * (arr - mu) ** 2) / np.sum(w))


def weighted_slope_from_recent(values: Sequence[Optional[float]]) -> Optional[float]:
    """
    Pendiente por mínimos cuadrados ponderados

    Los valores llegan del más reciente al más antiguo; se invierten para que
    una pendiente positiva signifique mejora. Los puntos recientes pesan más.
    """
    if len(values) < 2:
        return None
    chronological = list(reversed(values))
    n = len(chronological)

    points = 0
    sum_w = sum_wx = sum_wy = sum_wxx = sum_wxy = 0.0
    for i, y in enumerate(chronological):
        if not is_finite_number(y):
            continue
        points += 1
        w = 1.0 if n <= 1 else 0.75 + 0.35 * (i / (n - 1))
        sum_w += w
        sum_wx += w * i
        sum_wy += w * y
        sum_wxx += w * i * i
        sum_wxy += w * i * y

    if points < 2 or sum_w <= 0:
        return None

    den = sum_w * sum_wxx - sum_wx * sum_wx
    if abs(den) < 1e-9:
        return 0.0
    return round3((sum_w * sum_wxy - sum_wx * sum_wy) / den)


def _trend_coherence(values: Sequence[Optional[float]]) -> Optional[float]:
    signs = [s for s in (sign(v, eps=1e-9) for v in values) if s != 0]
    if not signs:
        return None
    pos = len([s for s in signs if s > 0])
    neg = len(signs) - pos
    return round3(max(pos, neg) / len(signs))


def window_aggregate(records: Sequence[PlayerStateFeature], window_name: str, window_plan: Dict) -> Optional[Dict]:
    """
    Agregado ponderado de una ventana

    Los pesos combinan recencia y fuerza del rival (0.85 + 0.3 * rival).

    Returns:
        Medias de cada núcleo, volatilidad, pendientes y momentum del marcador;
        None si la ventana no está habilitada
    """
    if not window_plan["enabled"] or window_plan["used"] <= 0:
        return None
    subset = list(records[: window_plan["used"]])
    if not subset:
        return None

    def opp(record: PlayerStateFeature) -> float:
        value = record.opp_strength_composite
        return value if is_finite_number(value) else 0.5

    raw_weights = [_recency_weight(window_name, i, len(subset)) * (0.85 + 0.3 * opp(r)) for i, r in enumerate(subset)]
    total = sum(raw_weights) or 1.0
    weights = [w / total for w in raw_weights]

    serve = [r.serve_core for r in subset]
    ret = [r.return_core for r in subset]
    ctl = [r.control_core for r in subset]
    dis = [r.discipline_core for r in subset]
    tpw = [r.tpw_core for r in subset]
    opp_strength = [opp(r) for r in subset]
    tier = [r.tier_score for r in subset]
    qual = [1.0 if r.qualifying else 0.0 for r in subset]

    score_series: List[Optional[float]] = []
    score_values: List[float] = []
    score_weights: List[float] = []
    for idx, record in enumerate(subset):
        momentum = parse_score_momentum_features(record.result_text, record.score_text)["score_momentum"]
        score_series.append(momentum)
        if is_finite_number(momentum):
            score_values.append(momentum)
            score_weights.append(weights[idx])

    volatility = mean([_weighted_variance(serve, weights), _weighted_variance(ret, weights), _weighted_variance(ctl, weights)])

    return {
        "n": len(subset),
        "reliability": window_plan["reliability"],
        "mean_serve_core": round3(_weighted_mean(serve, weights)),
        "mean_return_core": round3(_weighted_mean(ret, weights)),
        "mean_control_core": round3(_weighted_mean(ctl, weights)),
        "mean_discipline_core": round3(_weighted_mean(dis, weights)),
        "mean_tpw_core": round3(_weighted_mean(tpw, weights)),
        "volatility_core": round3(volatility),
        "mean_opp_strength": round3(_weighted_mean(opp_strength, weights)),
        "qualifying_share": round3(_weighted_mean(qual, weights)),
        "tier_mean": round3(_weighted_mean(tier, weights)),
        "control_trend_slope": weighted_slope_from_recent(ctl),
        "return_trend_slope": weighted_slope_from_recent(ret),
        "tpw_trend_slope": weighted_slope_from_recent(tpw),
        "score_trend_slope": weighted_slope_from_recent(score_series),
        "score_momentum": round3(_weighted_mean(score_values, score_weights)) if score_values else None,
        "score_coverage": round3(len(score_values) / len(subset)),
    }


def compute_player_window_aggregates(records: Sequence[PlayerStateFeature]) -> Dict:
    """Agregados de las tres ventanas más cobertura y penalizaciones"""
    plan = compute_window_plan(len(records))
    windows = {name: window_aggregate(records, name, plan[name]) for name in STATE_WINDOWS}
    coverage = [plan["w10"]["reliability"], plan["w5"]["reliability"], plan["w3"]["reliability"]]
    with_opp = [r for r in records if is_finite_number(r.opp_strength_composite)]
    return {
        "n_available": len(records),
        "windows": windows,
        "plan": plan,
        "tech_trend_coverage_score": round3(0.4 * coverage[0] + 0.35 * coverage[1] + 0.25 * coverage[2]),
        "tech_trend_coverage_min": round3(min(coverage)),
        "trend_window_fallback": any(plan[name]["degraded"] for name in STATE_WINDOWS),
        "opp_proxy_coverage": round3(len(with_opp) / len(records)) if records else 0.0,
    }


# ==================== ÍNDICES LOCALES POR VENTANA ====================


def _window_degraded_penalty(window_plan: Dict) -> float:
    if not window_plan["enabled"] or not window_plan["degraded"]:
        return 0.0
    missing = clamp(1 - window_plan["reliability"], 0, 1)
    return round3(clamp(0.06 + 0.18 * missing, 0, 0.24))


def _normalize_slope(value: Optional[float], scale: float) -> float:
    if not is_finite_number(value) or scale <= 0:
        return 0.0
    return clamp(value / scale, -1, 1)


def _window_strength_index(window: Dict, window_plan: Dict) -> Dict:
    raw = (
        0.24 * window["mean_serve_core"]
        + 0.26 * window["mean_return_core"]
        + 0.26 * window["mean_control_core"]
        + 0.1 * window["mean_discipline_core"]
        + 0.14 * window["mean_tpw_core"]
    )
    opp_adj = (
        0.88
        + 0.26 * (window["mean_opp_strength"] - 0.5)
        + 0.06 * (window["tier_mean"] - 0.5)
        - 0.05 * window["qualifying_share"]
    )
    raw01 = clamp(raw * opp_adj, 0, 1)
    centered = (raw01 - 0.52) / 0.075
    base = clamp(50 + 34 * math.tanh(centered), 0, 100)
    rel = clamp(
        0.38 + 0.5 * window_plan["reliability"] + 0.12 * clamp(window["mean_opp_strength"], 0, 1) - _window_degraded_penalty(window_plan),
        0.22,
        1.0,
    )
    return {"value": round3(clamp(50 + (base - 50) * rel, 0, 100)), "rel": round3(rel)}


def _window_stability_index(window: Dict, window_plan: Dict) -> Dict:
    vol_score = clamp(1 - window["volatility_core"] / 0.16, 0, 1)
    core_spread = sample_sd(
        [window["mean_serve_core"], window["mean_return_core"], window["mean_control_core"], window["mean_tpw_core"]]
    )
    balance_score = clamp(1 - core_spread / 0.14, 0, 1)
    coherence = _trend_coherence(
        [window["control_trend_slope"], window["return_trend_slope"], window["tpw_trend_slope"]]
    )
    coherence01 = clamp(coherence if coherence is not None else 0.5, 0, 1)
    base01 = clamp(0.5 * vol_score + 0.2 * balance_score + 0.3 * coherence01, 0, 1)
    base = clamp(50 + 32 * math.tanh((base01 - 0.6) / 0.2), 0, 100)
    rel = clamp(0.36 + 0.58 * window_plan["reliability"] - _window_degraded_penalty(window_plan), 0.22, 1.0)
    return {"value": round3(clamp(50 + (base - 50) * rel, 0, 100)), "rel": round3(rel)}


def _window_form_tech_index(window: Dict, window_plan: Dict) -> Dict:
    n_control = _normalize_slope(window["control_trend_slope"], 0.07)
    n_return = _normalize_slope(window["return_trend_slope"], 0.07)
    n_tpw = _normalize_slope(window["tpw_trend_slope"], 0.065)
    coherence = _trend_coherence(
        [window["control_trend_slope"], window["return_trend_slope"], window["tpw_trend_slope"]]
    )
    if coherence is None:
        coherence = 0.5
    coh_centered = clamp(2 * coherence - 1, -1, 1)
    centered = clamp(0.34 * n_control + 0.28 * n_return + 0.22 * n_tpw + 0.16 * coh_centered, -1, 1)
    trend_pulse = clamp((abs(n_control) + abs(n_return) + abs(n_tpw)) / 3, 0, 1)
    base = clamp(50 + 36 * centered, 0, 100)
    rel = clamp(
        0.3
        + 0.45 * window_plan["reliability"]
        + 0.15 * trend_pulse
        + 0.1 * clamp(coherence, 0, 1)
        - _window_degraded_penalty(window_plan),
        0.22,
        1.0,
    )
    return {
        "value": round3(clamp(50 + (base - 50) * rel, 0, 100)),
        "rel": round3(rel),
        "centered": round3(centered),
    }


def _window_form_plus_index(window: Dict, window_plan: Dict, tech: Dict) -> Dict:
    score_centered = _normalize_slope(window["score_trend_slope"], 0.35)
    score_coverage = clamp(window["score_coverage"], 0, 1)
    score_weight = 0.08 + 0.22 * score_coverage
    combined = clamp((1 - score_weight) * tech["centered"] + score_weight * score_centered, -1, 1)
    base = clamp(50 + 36 * combined, 0, 100)
    rel = clamp(0.78 * tech["rel"] + 0.22 * score_coverage - _window_degraded_penalty(window_plan), 0.22, 1.0)
    return {
        "value": round3(clamp(50 + (base - 50) * rel, 0, 100)),
        "rel": round3(rel),
        "score_coverage": round3(score_coverage),
    }


def compute_window_local_indices(window: Optional[Dict], window_plan: Dict) -> Dict:
    """Los cuatro índices de una ventana (vacío si la ventana no existe)"""
    if window is None or not window_plan["enabled"]:
        return {}
    strength = _window_strength_index(window, window_plan)
    stability = _window_stability_index(window, window_plan)
    form_tech = _window_form_tech_index(window, window_plan)
    form_plus = _window_form_plus_index(window, window_plan, form_tech)
    return {
        "strength": strength["value"],
        "stability": stability["value"],
        "form_tech": form_tech["value"],
        "form_plus": form_plus["value"],
        "rel_strength": strength["rel"],
        "rel_stability": stability["rel"],
        "rel_form_tech": form_tech["rel"],
        "rel_form_plus": form_plus["rel"],
        "score_coverage": form_plus["score_coverage"],
    }


# ==================== ÍNDICES POR JUGADOR (MEZCLA DE VENTANAS) ====================


def _fallback_penalty(plan: Dict) -> float:
    penalty = 0.0
    for name, amount in (("w10", 0.08), ("w5", 0.06), ("w3", 0.04)):
        if plan[name]["enabled"] and plan[name]["degraded"]:
            penalty += amount
    return round3(clamp(penalty, 0, 0.24))


def _normalize_window_mix(parts: Sequence[tuple]) -> Optional[float]:
    usable = [(value, weight) for value, weight in parts if is_finite_number(value) and weight > 0]
    if not usable:
        return None
    total = sum(weight for _, weight in usable) or 1.0
    return round3(sum(value * weight for value, weight in usable) / total)


def _window_value(window: Optional[Dict], key: str) -> Optional[float]:
    return window[key] if window is not None else None


def compute_per_player_indices(agg: Dict) -> Dict:
    """
    Índices del jugador mezclando las tres ventanas

    Args:
        agg: Resultado de compute_player_window_aggregates

    Returns:
        Dict con strength, stability, form_tech, form_plus, sus fiabilidades
        y score_coverage (claves ausentes si no hay datos)
    """
    plan = agg["plan"]
    fp = _fallback_penalty(plan)
    w10 = agg["windows"]["w10"]
    w5 = agg["windows"]["w5"]
    w3 = agg["windows"]["w3"]
    out: Dict = {}

    # Fuerza
    def strength_w(window: Optional[Dict]) -> Optional[float]:
        if window is None:
            return None
        raw = (
            0.22 * window["mean_serve_core"]
            + 0.24 * window["mean_return_core"]
            + 0.28 * window["mean_control_core"]
            + 0.1 * window["mean_discipline_core"]
            + 0.16 * window["mean_tpw_core"]
        )
        return clamp(raw * (0.85 + 0.3 * (window["mean_opp_strength"] - 0.5)), 0, 1.25)

    base = _normalize_window_mix([(strength_w(w10), 0.45), (strength_w(w5), 0.35), (strength_w(w3), 0.2)])
    if base is not None:
        rel = clamp(agg["tech_trend_coverage_score"] - fp + 0.1 * agg["opp_proxy_coverage"], 0.35, 1.0)
        out["strength"] = round3(clamp(50 + (clamp(100 * base, 0, 100) - 50) * rel, 0, 100))
        out["rel_strength"] = round3(rel)

    # Estabilidad
    def vol_score(window: Optional[Dict]) -> Optional[float]:
        if window is None:
            return None
        return clamp01(1 - window["volatility_core"] / 0.18)

    def consistency(a: Optional[float], b: Optional[float]) -> Optional[float]:
        if not is_finite_number(a) or not is_finite_number(b):
            return None
        return clamp01(1 - abs(a - b) / 0.12)

    consistency_score = _normalize_window_mix(
        [
            (consistency(_window_value(w3, key), _window_value(w5, key)), 1 / 3)
            for key in ("mean_control_core", "mean_return_core", "mean_tpw_core")
        ]
    )
    base01 = _normalize_window_mix(
        [(vol_score(w10), 0.45), (vol_score(w5), 0.25), (vol_score(w3), 0.1), (consistency_score, 0.2)]
    )
    if base01 is not None:
        rel = clamp(agg["tech_trend_coverage_score"] - fp, 0.3, 1.0)
        out["stability"] = round3(clamp(50 + (clamp(100 * base01, 0, 100) - 50) * rel, 0, 100))
        out["rel_stability"] = round3(rel)

    # Forma técnica
    def delta(a: Optional[Dict], b: Optional[Dict], key: str) -> Optional[float]:
        va, vb = _window_value(a, key), _window_value(b, key)
        if not is_finite_number(va) or not is_finite_number(vb):
            return None
        return va - vb

    control_trend = delta(w3, w5, "mean_control_core")
    return_trend = delta(w3, w5, "mean_return_core")
    tpw_trend = delta(w3, w5, "mean_tpw_core")
    mid_trend = delta(w5, w10, "mean_control_core") or 0.0
    acceleration = control_trend - mid_trend if control_trend is not None else None
    coherence = _trend_coherence([control_trend, return_trend, tpw_trend])

    def scaled(value: Optional[float], scale: float) -> float:
        return clamp(value / scale, -1, 1) if is_finite_number(value) else 0.0

    coh_centered = clamp(2 * coherence - 1, -1, 1) if coherence is not None else 0.0
    centered = clamp(
        0.32 * scaled(control_trend, 0.1)
        + 0.28 * scaled(return_trend, 0.1)
        + 0.2 * scaled(tpw_trend, 0.1)
        + 0.1 * scaled(acceleration, 0.12)
        + 0.1 * coh_centered,
        -1,
        1,
    )
    rel_form = clamp(
        0.2
        + 0.5 * plan["w3"]["reliability"]
        + 0.2 * plan["w5"]["reliability"]
        + 0.1 * plan["w10"]["reliability"]
        - fp,
        0.2,
        1.0,
    )
    out["form_tech"] = round3(clamp(50 + (clamp(50 + 35 * centered, 0, 100) - 50) * rel_form, 0, 100))
    out["rel_form_tech"] = round3(rel_form)
    form_tech_centered = round3(centered)

    # Forma técnica + marcador
    trend_3v5 = delta(w3, w5, "score_momentum")
    trend_5v10 = delta(w5, w10, "score_momentum")
    n_score_trend = scaled(trend_3v5, 0.8)
    n_score_accel = clamp((trend_3v5 - (trend_5v10 or 0.0)) / 1.0, -1, 1) if trend_3v5 is not None else 0.0
    score_centered = clamp(0.7 * n_score_trend + 0.3 * n_score_accel, -1, 1)
    plus_centered = clamp(0.8 * form_tech_centered + 0.2 * score_centered, -1, 1)
    score_coverage = _normalize_window_mix(
        [
            (_window_value(w10, "score_coverage"), 0.45),
            (_window_value(w5, "score_coverage"), 0.35),
            (_window_value(w3, "score_coverage"), 0.2),
        ]
    )
    if score_coverage is None:
        score_coverage = 0.0
    rel_plus = clamp(0.8 * out["rel_form_tech"] + 0.2 * clamp(score_coverage, 0, 1), 0.2, 1.0)
    plus_base = clamp(50 + 35 * plus_centered, 0, 100)
    out["form_plus"] = round3(clamp(50 + (plus_base - 50) * rel_plus, 0, 100))
    out["rel_form_plus"] = round3(rel_plus)
    out["score_coverage"] = round3(score_coverage)
    return out


# ==================== SERIES POR JUGADOR ====================


def build_player_state_series(features: Sequence[PlayerStateFeature]) -> PlayerStateSeries:
    """
    Índices locales de las ventanas w10/w5/w3 de un jugador

    Args:
        features: Features de estado (se ordenan por candidate_index)

    Returns:
        PlayerStateSeries con disponibilidad, degradación y las cuatro series
    """
    ordered = sorted(features, key=lambda f: f.candidate_index)
    n_tech = len(ordered)

    flags: Dict[str, bool] = {}
    series: Dict[str, Dict[str, Optional[float]]] = {metric: {} for metric in STATE_METRICS}
    for window_name, (target, min_enable) in WINDOW_TARGETS.items():
        window_plan = _plan_for(n_tech, target, min_enable)
        indices = compute_window_local_indices(window_aggregate(ordered, window_name, window_plan), window_plan)
        flags[f"has_{window_name}"] = window_plan["enabled"]
        flags[f"degraded_{window_name}"] = window_plan["degraded"]
        for metric in STATE_METRICS:
            series[metric][window_name] = indices.get(metric)

    logger.debug(f"Series de estado: n_tech={n_tech}, ventanas={flags}")

    return PlayerStateSeries(
        n_tech=n_tech,
        **flags,
        stability=WindowSeries(**series["stability"]),
        form_tech=WindowSeries(**series["form_tech"]),
        form_plus=WindowSeries(**series["form_plus"]),
        strength=WindowSeries(**series["strength"]),
    )


def apply_pair_state_contrast(
    player_a: PlayerStateSeries,
    player_b: PlayerStateSeries,
    gain: Optional[Dict[str, float]] = None,
    cap_shift: float = DEFAULT_CAP_SHIFT,
    full_coverage_gap_target: float = DEFAULT_FULL_COVERAGE_GAP_TARGET,
    near_zero_diff: float = DEFAULT_NEAR_ZERO_DIFF,
) -> tuple:
    """
    Amplía la diferencia entre los índices de los dos jugadores

    Cada par de valores se separa en diff * gain (acotado a cap_shift). Con
    cobertura completa (>= 10 partidos ambos) los índices distintos de
    stability mantienen una separación mínima full_coverage_gap_target.

    Returns:
        (serie A, serie B) nuevas; las de entrada no se modifican
    """
    resolved_gain = dict(DEFAULT_CONTRAST_GAIN)
    resolved_gain.update(gain or {})

    out_a = player_a.model_copy(deep=True)
    out_b = player_b.model_copy(deep=True)
    full_coverage = out_a.n_tech >= 10 and out_b.n_tech >= 10

    for metric in STATE_METRICS:
        series_a = getattr(out_a, metric)
        series_b = getattr(out_b, metric)
        for window_name in STATE_WINDOWS:
            a_val = getattr(series_a, window_name)
            b_val = getattr(series_b, window_name)
            if not is_finite_number(a_val) or not is_finite_number(b_val):
                continue
            window_gain = clamp(resolved_gain.get(window_name, 0.0), 0, 1.5)
            raw_diff = a_val - b_val
            shift = clamp(raw_diff * window_gain, -cap_shift, cap_shift)
            next_a = clamp(a_val + shift, 0, 100)
            next_b = clamp(b_val - shift, 0, 100)

            if (
                metric != "stability"
                and full_coverage
                and abs(raw_diff) > near_zero_diff
                and full_coverage_gap_target > 0
            ):
                gap = abs(next_a - next_b)
                if gap < full_coverage_gap_target:
                    extra = (full_coverage_gap_target - gap) / 2
                    direction = 1 if raw_diff >= 0 else -1
                    next_a = clamp(next_a + direction * extra, 0, 100)
                    next_b = clamp(next_b - direction * extra, 0, 100)

            setattr(series_a, window_name, round3(next_a))
            setattr(series_b, window_name, round3(next_b))

    return out_a, out_b
