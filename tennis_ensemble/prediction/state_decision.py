"""
Decisión por estado del jugador
===============================

Compara los índices de estado (stability, form_tech, form_plus, strength) de
ambos jugadores en sus ventanas de 10, 5 y 3 partidos y decide un ganador o se
abstiene cuando la cobertura o la ventaja no son suficientes.

Variantes:
- v2 (player_state_decision_v2): mezcla de ventanas + bonus de tendencia,
  consenso de índices y abstención por baja cobertura o empate exacto
- v3 (player_state_decision_v3): ancla (ventanas largas) frente a reciente,
  índice de conflicto ancla/forma y política de abstención agresiva
"""

import logging
import math
from typing import Dict, List, Optional

from tennis_ensemble.api.models import (
    PlayerStateSeries,
    StateDecisionReasonTag,
    StateDecisionSummary,
    WindowSeries,
)
from tennis_ensemble.utils.common import clamp, is_finite_number, round3, sign

logger = logging.getLogger(__name__)

SOURCE_V2 = "player_state_decision_v2"
SOURCE_V3 = "player_state_decision_v3"
STATE_DECISION_VARIANTS = ("v2", "v3")

METRIC_KEYS = ("stability", "form_tech", "form_plus", "strength")
VOTE_EDGE = 2.0

RELIABILITY_WINDOW_WEIGHTS = {"w10": 0.25, "w5": 0.35, "w3": 0.4}

# v2
V2_WINDOW_WEIGHTS = {"w10": 0.25, "w5": 0.35, "w3": 0.4}
V2_METRIC_WEIGHTS = {"stability": 0.3, "form_tech": 0.25, "form_plus": 0.3, "strength": 0.15}
V2_LOW_COVERAGE = 0.45

# v3
V3_ANCHOR_WEIGHTS = {"w10": 0.5, "w5": 0.35, "w3": 0.15}
V3_RECENT_WEIGHTS = {"w10": 0.2, "w5": 0.35, "w3": 0.45}
V3_METRIC_WEIGHTS = {"stability": 0.18, "form_tech": 0.27, "form_plus": 0.3, "strength": 0.25}
AGGRESSIVE_POLICY = {
    "low_coverage_threshold": 0.48,
    "low_edge_threshold": 1.8,
    "hard_low_edge_threshold": 0.9,
    "mixed_conflict_threshold": 0.72,
    "min_winner_votes": 1,
}

_METRIC_TAGS = {
    "form_plus": StateDecisionReasonTag.FORM_PLUS,
    "form_tech": StateDecisionReasonTag.FORM_TECH,
    "stability": StateDecisionReasonTag.STABILITY,
    "strength": StateDecisionReasonTag.STRENGTH,
}


# ==================== UTILIDADES ====================


def _availability_weight(has_window: bool, degraded: bool) -> float:
    if not has_window:
        return 0.0
    return 0.75 if degraded else 1.0


def _availability(side: PlayerStateSeries) -> Dict[str, float]:
    return {
        "w10": _availability_weight(side.has_w10, side.degraded_w10),
        "w5": _availability_weight(side.has_w5, side.degraded_w5),
        "w3": _availability_weight(side.has_w3, side.degraded_w3),
    }


def _side_reliability(side: PlayerStateSeries, availability: Dict[str, float]) -> float:
    window_rel = sum(RELIABILITY_WINDOW_WEIGHTS[w] * availability[w] for w in availability) / sum(
        RELIABILITY_WINDOW_WEIGHTS.values()
    )
    return clamp(0.5 * window_rel + 0.5 * clamp(side.n_tech / 10, 0, 1), 0, 1)


def _weighted_window_mean(
    series: WindowSeries, availability: Dict[str, float], weights: Dict[str, float]
) -> Optional[float]:
    total = 0.0
    total_weight = 0.0
    for window in ("w10", "w5", "w3"):
        value = getattr(series, window)
        weight = weights[window] * availability[window]
        if not is_finite_number(value) or weight <= 0:
            continue
        total += value * weight
        total_weight += weight
    return total / total_weight if total_weight > 0 else None


def _trend_bonus(series: WindowSeries) -> float:
    bonus = 0.0
    if is_finite_number(series.w3) and is_finite_number(series.w10):
        bonus += clamp((series.w3 - series.w10) / 28, -1, 1) * 2
    if is_finite_number(series.w3) and is_finite_number(series.w5):
        bonus += clamp((series.w3 - series.w5) / 18, -1, 1) * 2
    return bonus


def _weighted_side_score(metric_scores: Dict[str, Optional[float]], weights: Dict[str, float]) -> Optional[float]:
    total = 0.0
    total_weight = 0.0
    for metric in METRIC_KEYS:
        value = metric_scores.get(metric)
        if not is_finite_number(value):
            continue
        total += value * weights[metric]
        total_weight += weights[metric]
    return total / total_weight if total_weight > 0 else None


def _metric_edges(scores_a: Dict[str, Optional[float]], scores_b: Dict[str, Optional[float]]):
    votes = {"player_a": 0, "player_b": 0}
    edges = []
    for metric in METRIC_KEYS:
        a = scores_a.get(metric)
        b = scores_b.get(metric)
        if not is_finite_number(a) or not is_finite_number(b):
            continue
        edge = a - b
        if abs(edge) >= VOTE_EDGE:
            votes["player_a" if edge > 0 else "player_b"] += 1
        edges.append({"metric": metric, "edge": edge})
    return votes, edges


def _push_unique(tags: List[StateDecisionReasonTag], tag: StateDecisionReasonTag) -> None:
    if tag not in tags:
        tags.append(tag)


def _winner_reason_tags(
    winner_side: Optional[str],
    edges: List[Dict],
    winner_form_plus: Optional[WindowSeries],
    winner_votes: int,
) -> List[StateDecisionReasonTag]:
    """Dos mayores ventajas del ganador, momentum y consenso de votos"""
    tags: List[StateDecisionReasonTag] = []
    if winner_side:
        winner_edges = [e for e in edges if (e["edge"] > 0 if winner_side == "A" else e["edge"] < 0)]
        winner_edges.sort(key=lambda e: abs(e["edge"]), reverse=True)
        for entry in winner_edges[:2]:
            _push_unique(tags, _METRIC_TAGS[entry["metric"]])

        if winner_form_plus is not None and is_finite_number(winner_form_plus.w3) and is_finite_number(
            winner_form_plus.w10
        ):
            delta = winner_form_plus.w3 - winner_form_plus.w10
            if delta >= 8:
                _push_unique(tags, StateDecisionReasonTag.MOMENTUM_UP)
            elif delta <= -8:
                _push_unique(tags, StateDecisionReasonTag.MOMENTUM_DOWN)

    if winner_votes >= 3:
        _push_unique(tags, StateDecisionReasonTag.CONSENSUS)
    elif winner_votes == 2:
        _push_unique(tags, StateDecisionReasonTag.MIXED)
    if not tags:
        _push_unique(tags, StateDecisionReasonTag.MIXED)
    return tags[:3]


def _opt3(value: Optional[float]) -> Optional[float]:
    return round3(value) if is_finite_number(value) else None


def _winner_side(p1: Optional[float]) -> Optional[str]:
    if not is_finite_number(p1):
        return None
    if p1 > 50:
        return "A"
    if p1 < 50:
        return "B"
    return None


# ==================== V2 ====================


def _v2_side(side: PlayerStateSeries) -> Dict:
    availability = _availability(side)
    metric_scores = {}
    for metric in METRIC_KEYS:
        series = getattr(side, metric)
        blended = _weighted_window_mean(series, availability, V2_WINDOW_WEIGHTS)
        metric_scores[metric] = clamp(blended + _trend_bonus(series), 0, 100) if blended is not None else None
    return {
        "score": _weighted_side_score(metric_scores, V2_METRIC_WEIGHTS),
        "reliability": _side_reliability(side, availability),
        "metric_scores": metric_scores,
    }


def compute_state_decision_v2(
    player_a_name: str, player_b_name: str, player_a: PlayerStateSeries, player_b: PlayerStateSeries
) -> StateDecisionSummary:
    """
    Decisión de estado v2

    Args:
        player_a_name: Nombre de A
        player_b_name: Nombre de B
        player_a: Series de estado de A
        player_b: Series de estado de B

    Returns:
        StateDecisionSummary; abstained=True y winner=None con LOW_COVERAGE
        si min(fiabilidad A, fiabilidad B) < 0.45, o con LOW_EDGE si P1 es
        exactamente 50
    """
    side_a = _v2_side(player_a)
    side_b = _v2_side(player_b)
    votes, edges = _metric_edges(side_a["metric_scores"], side_b["metric_scores"])
    min_rel = clamp(min(side_a["reliability"], side_b["reliability"]), 0, 1)

    score_a = side_a["score"]
    score_b = side_b["score"]
    raw_diff = score_a - score_b if score_a is not None and score_b is not None else None

    if raw_diff is None or min_rel < V2_LOW_COVERAGE:
        return StateDecisionSummary(
            source=SOURCE_V2,
            reliability=round3(min_rel),
            raw_diff=_opt3(raw_diff),
            score_a=_opt3(score_a),
            score_b=_opt3(score_b),
            abstained=True,
            reason_tags=[StateDecisionReasonTag.LOW_COVERAGE],
            votes=votes,
        )

    direction = sign(raw_diff)
    agreeing = len([e for e in edges if abs(e["edge"]) >= VOTE_EDGE and sign(e["edge"]) == direction])
    consensus = agreeing / len(METRIC_KEYS) if direction != 0 else 0.0
    effective_diff = raw_diff * (0.75 + 0.25 * consensus)
    raw_p1 = 50 + 23 * math.tanh(effective_diff / 13)
    p1 = clamp(50 + (raw_p1 - 50) * (0.4 + 0.6 * min_rel), 0, 100)

    winner_side = _winner_side(p1)
    if winner_side is None:
        # Empate exacto de estado: sin ventaja no hay ganador
        return StateDecisionSummary(
            source=SOURCE_V2,
            reliability=round3(min_rel),
            raw_diff=round3(raw_diff),
            score_a=round3(score_a),
            score_b=round3(score_b),
            consensus=round3(consensus),
            effective_diff=round3(effective_diff),
            abstained=True,
            reason_tags=[StateDecisionReasonTag.LOW_EDGE],
            votes=votes,
        )

    winner_votes = votes["player_a"] if winner_side == "A" else votes["player_b"]
    winner_form_plus = player_a.form_plus if winner_side == "A" else player_b.form_plus

    return StateDecisionSummary(
        source=SOURCE_V2,
        winner=player_a_name if winner_side == "A" else player_b_name,
        p1=round3(p1),
        p2=round3(100 - p1),
        reliability=round3(min_rel),
        raw_diff=round3(raw_diff),
        score_a=round3(score_a),
        score_b=round3(score_b),
        consensus=round3(consensus),
        effective_diff=round3(effective_diff),
        abstained=False,
        reason_tags=_winner_reason_tags(winner_side, edges, winner_form_plus, winner_votes),
        votes=votes,
    )


# ==================== V3 ====================


def _v3_side(side: PlayerStateSeries) -> Dict:
    availability = _availability(side)
    metric_scores = {}
    metric_anchors = {}
    for metric in METRIC_KEYS:
        series = getattr(side, metric)
        anchor = _weighted_window_mean(series, availability, V3_ANCHOR_WEIGHTS)
        recent = _weighted_window_mean(series, availability, V3_RECENT_WEIGHTS)
        if anchor is None or recent is None:
            metric_scores[metric] = None
            metric_anchors[metric] = None
            continue
        metric_scores[metric] = clamp(0.75 * anchor + 0.25 * recent + _trend_bonus(series), 0, 100)
        metric_anchors[metric] = anchor
    return {
        "score": _weighted_side_score(metric_scores, V3_METRIC_WEIGHTS),
        "reliability": _side_reliability(side, availability),
        "metric_scores": metric_scores,
        "metric_anchors": metric_anchors,
    }


def _bundle(values: Dict[str, Optional[float]], first: str, second: str) -> Optional[float]:
    a = values.get(first)
    b = values.get(second)
    if not is_finite_number(a) or not is_finite_number(b):
        return None
    return 0.55 * a + 0.45 * b


def _diff(a: Optional[float], b: Optional[float]) -> Optional[float]:
    return a - b if is_finite_number(a) and is_finite_number(b) else None


def compute_state_decision_v3(
    player_a_name: str, player_b_name: str, player_a: PlayerStateSeries, player_b: PlayerStateSeries
) -> StateDecisionSummary:
    """
    Decisión de estado v3 (política agresiva de abstención)

    Se abstiene si la fiabilidad mínima es < 0.48, o si la ventaja efectiva es
    < 1.8 y además hay conflicto ancla/forma, el ganador no tiene votos o la
    ventaja es < 0.9.
    """
    side_a = _v3_side(player_a)
    side_b = _v3_side(player_b)
    votes, edges = _metric_edges(side_a["metric_scores"], side_b["metric_scores"])
    min_rel = clamp(min(side_a["reliability"], side_b["reliability"]), 0, 1)

    anchor_diff = _diff(
        _bundle(side_a["metric_anchors"], "strength", "stability"),
        _bundle(side_b["metric_anchors"], "strength", "stability"),
    )
    form_diff = _diff(
        _bundle(side_a["metric_scores"], "form_plus", "form_tech"),
        _bundle(side_b["metric_scores"], "form_plus", "form_tech"),
    )
    raw_diff = _diff(side_a["score"], side_b["score"])

    sign_conflict = sign(anchor_diff) != 0 and sign(form_diff) != 0 and sign(anchor_diff) != sign(form_diff)
    conflict_index = clamp(min(abs(anchor_diff), abs(form_diff)) / 18, 0, 1) if sign_conflict else 0.0

    effective_diff = raw_diff * (1 - 0.35 * conflict_index) if raw_diff is not None else None
    p1 = None
    if effective_diff is not None:
        raw_p1 = clamp(50 + 22 * math.tanh(effective_diff / 12), 0, 100)
        p1 = clamp(50 + (raw_p1 - 50) * (0.4 + 0.6 * min_rel), 0, 100)

    winner_side = _winner_side(p1)
    winner_votes = votes["player_a"] if winner_side == "A" else votes["player_b"] if winner_side == "B" else 0

    policy = AGGRESSIVE_POLICY
    low_coverage = side_a["score"] is None or side_b["score"] is None or min_rel < policy["low_coverage_threshold"]
    low_edge = effective_diff is None or abs(effective_diff) < policy["low_edge_threshold"]
    mixed = conflict_index >= policy["mixed_conflict_threshold"] or winner_votes < policy["min_winner_votes"]
    hard_low_edge = effective_diff is not None and abs(effective_diff) < policy["hard_low_edge_threshold"]

    priority: List[StateDecisionReasonTag] = []
    if low_coverage:
        priority.append(StateDecisionReasonTag.LOW_COVERAGE)
    if low_edge:
        priority.append(StateDecisionReasonTag.LOW_EDGE)
    if mixed:
        priority.append(StateDecisionReasonTag.MIXED)

    common = {
        "source": SOURCE_V3,
        "reliability": round3(min_rel),
        "raw_diff": _opt3(raw_diff),
        "score_a": _opt3(side_a["score"]),
        "score_b": _opt3(side_b["score"]),
        "conflict_index": round3(conflict_index),
        "anchor_diff": _opt3(anchor_diff),
        "form_diff": _opt3(form_diff),
        "effective_diff": _opt3(effective_diff),
        "votes": votes,
    }

    if low_coverage or (low_edge and (mixed or hard_low_edge)):
        return StateDecisionSummary(abstained=True, reason_tags=priority[:2], **common)

    winner_form_plus = player_a.form_plus if winner_side == "A" else player_b.form_plus if winner_side == "B" else None
    return StateDecisionSummary(
        winner=player_a_name if winner_side == "A" else player_b_name if winner_side == "B" else None,
        p1=round3(p1),
        p2=round3(clamp(100 - p1, 0, 100)),
        abstained=False,
        reason_tags=_winner_reason_tags(winner_side, edges, winner_form_plus, winner_votes),
        **common,
    )


# ==================== ENTRADA ====================


def compute_state_decision(
    player_a_name: str,
    player_b_name: str,
    player_a: PlayerStateSeries,
    player_b: PlayerStateSeries,
    variant: str = "v2",
) -> StateDecisionSummary:
    """
    Decisión de estado con la variante indicada

    Raises:
        ValueError: Si la variante no es v2 ni v3
    """
    if variant == "v2":
        return compute_state_decision_v2(player_a_name, player_b_name, player_a, player_b)
    if variant == "v3":
        return compute_state_decision_v3(player_a_name, player_b_name, player_a, player_b)
    raise ValueError(f"Variante de decisión de estado desconocida: {variant} (válidas: {STATE_DECISION_VARIANTS})")
