"""
Tests de los modelos sombra (Nova Edge, Hybrid, Mahalanobis, Matchup, Market-Residual)
"""

import logging

from tennis_ensemble.api.models import PlayerRecentStats
from tennis_ensemble.config.settings import Config
from tennis_ensemble.features.required_metrics import collect_feature_rows
from tennis_ensemble.prediction.form_stats_hybrid import (
    compute_form_component,
    compute_form_stats_hybrid,
    compute_stats_component,
)
from tennis_ensemble.prediction.mahal_edge import compute_mahal_edge
from tennis_ensemble.prediction.market_residual import build_market_prior, compute_market_residual
from tennis_ensemble.prediction.matchup_cross import compute_matchup_cross
from tennis_ensemble.prediction.nova_edge import compute_nova_edge

from factories import base_metrics, ladder_history, make_player_stats

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SEED = "https://example.com/match/abc123|A|B"


def _strong_and_weak(count: int = 5, results: bool = False):
    strong = make_player_stats("A", ladder_history(62, count), results=["W"] * 8 if results else None)
    weak = make_player_stats("B", ladder_history(50, count), results=["L"] * 8 if results else None)
    return strong, weak


def _mirror(count: int = 5):
    return (
        make_player_stats("A", ladder_history(55, count)),
        make_player_stats("B", ladder_history(55, count)),
    )


def _assert_sums_to_hundred(result):
    assert abs(result.p1 + result.p2 - 100) <= 0.2, f"❌ p1 + p2 = {result.p1 + result.p2}"


# ==================== NOVA EDGE ====================


def test_nova_edge_needs_five_rows():
    a, b = _strong_and_weak(count=4)
    result = compute_nova_edge(collect_feature_rows(a), collect_feature_rows(b), "A", "B", seed=SEED)

    assert result.p1 == 50 and result.p2 == 50
    assert "nova_edge_unavailable" in result.warnings
    assert result.winner in ("A", "B")
    assert result.source == "stable14_nova_v1"


def test_nova_edge_favours_stronger_player():
    a, b = _strong_and_weak()
    result = compute_nova_edge(collect_feature_rows(a), collect_feature_rows(b), "A", "B", seed=SEED)

    assert 50 < result.p1 <= 99
    assert result.winner == "A"
    assert result.components["score_a"] > result.components["score_b"]
    _assert_sums_to_hundred(result)


# ==================== HYBRID ====================


def test_hybrid_components():
    assert compute_stats_component([], []) is None
    assert compute_form_component(None, 0.5) is None
    assert compute_form_component(1.0, -1.0) == 100
    assert compute_form_component(0.2, 0.2) == 50


def test_hybrid_with_form_and_stats():
    a, b = _strong_and_weak(results=True)
    result = compute_form_stats_hybrid(a, b, "A", "B", 5, seed=SEED)

    assert result.source == "form_stats_hybrid_v2"
    assert result.p1 > 50 and result.winner == "A"
    assert result.warnings == [], f"❌ Warnings inesperados: {result.warnings}"
    assert result.components["stats_reliability"] == 1
    assert result.components["form_p1"] == 100
    assert result.components["hybrid_reliability"] <= 0.8
    _assert_sums_to_hundred(result)
    logger.info(f"✅ Hybrid: P1={result.p1}")


def test_hybrid_without_form_warns():
    a, b = _strong_and_weak()
    result = compute_form_stats_hybrid(a, b, "A", "B", 5, seed=SEED)

    for warning in ("hybrid_form_unavailable_a", "hybrid_form_unavailable_b", "hybrid_form_low_coverage"):
        assert warning in result.warnings, f"❌ Falta warning {warning}"
    assert "form_p1" not in result.components


def test_hybrid_form_window_follows_config(monkeypatch):
    a = make_player_stats("A", ladder_history(62), results=["W"] * 5)
    b = make_player_stats("B", ladder_history(50), results=["L"] * 5)

    monkeypatch.setattr(Config, "FORM_WINDOW", 8)
    default = compute_form_stats_hybrid(a, b, "A", "B", 5, seed=SEED)
    assert "hybrid_form_low_coverage" in default.warnings, "❌ 5 partidos de forma no cubren una ventana de 8"

    monkeypatch.setattr(Config, "FORM_WINDOW", 5)
    short = compute_form_stats_hybrid(a, b, "A", "B", 5, seed=SEED)
    assert "hybrid_form_low_coverage" not in short.warnings
    assert short.components["hybrid_reliability"] > default.components["hybrid_reliability"]


def test_hybrid_neutral_uses_odds_tiebreak():
    a, b = _mirror()
    result = compute_form_stats_hybrid(a, b, "A", "B", 5, home_odd=2.6, away_odd=1.4, seed=SEED)

    assert result.p1 == 50
    assert result.winner == "B", "❌ En empate gana la cuota más baja"


# ==================== MAHALANOBIS ====================


def test_mahal_edge_directional():
    a, b = _strong_and_weak()
    result = compute_mahal_edge(a, b, "A", "B", 5, seed=SEED)

    assert result.source == "stable14_mahal_edge_v2"
    assert result.p1 > 50 and result.winner == "A"
    assert 0.22 <= result.components["reliability"] <= 0.78
    _assert_sums_to_hundred(result)


def test_mahal_double_faults_inversion():
    a = make_player_stats("A", [base_metrics(55, double_faults=1)] * 5)
    b = make_player_stats("B", [base_metrics(55, double_faults=8)] * 5)
    result = compute_mahal_edge(a, b, "A", "B", 5, seed=SEED)

    assert result.p1 > 50 and result.winner == "A"


def test_mahal_symmetric_is_neutral():
    a, b = _mirror()
    first = compute_mahal_edge(a, b, "A", "B", 5, seed=SEED)
    second = compute_mahal_edge(a, b, "A", "B", 5, seed=SEED)

    assert first.p1 == 50 and first.p2 == 50
    assert "mahal_neutral_tiebreak" in first.warnings
    assert first.winner == second.winner, "❌ El desempate debe ser determinista"


def test_mahal_low_coverage_and_no_stats():
    a, b = _strong_and_weak(count=3)
    result = compute_mahal_edge(a, b, "A", "B", 5, seed=SEED)
    assert "mahal_low_pair_coverage" in result.warnings

    empty = compute_mahal_edge(PlayerRecentStats(player_name="A"), b, "A", "B", 5, seed=SEED)
    assert empty.p1 == 50
    assert "mahal_stats_unavailable" in empty.warnings
    assert empty.components["reliability"] == 0.22


# ==================== MATCHUP CROSS ====================


def test_matchup_cross_directional():
    a, b = _strong_and_weak()
    result = compute_matchup_cross(a, b, "A", "B", 5, seed=SEED)

    assert result.source == "stable14_matchup_cross_v1"
    assert result.p1 > 50 and result.winner == "A"
    assert 0.22 <= result.components["reliability"] <= 0.8
    _assert_sums_to_hundred(result)


def test_matchup_cross_neutral_cases():
    a, b = _mirror()
    symmetric = compute_matchup_cross(a, b, "A", "B", 5, seed=SEED)
    assert symmetric.p1 == 50
    assert "matchup_neutral_tiebreak" in symmetric.warnings

    a, b = _strong_and_weak(count=3)
    low = compute_matchup_cross(a, b, "A", "B", 5, seed=SEED)
    assert low.p1 == 50
    assert low.warnings == ["matchup_low_pair_coverage", "matchup_neutral_tiebreak"]


# ==================== MARKET-RESIDUAL ====================


def test_build_market_prior():
    prior = build_market_prior(1.5, 2.5)
    assert prior["available"]
    assert abs(prior["market_p1"] - 62.5) < 1e-9

    assert not build_market_prior(1.0, 2.5)["available"], "❌ Cuotas <= 1.01 no son válidas"
    assert not build_market_prior(None, 2.5)["available"]


def test_market_residual_without_market():
    a, b = _mirror()
    result = compute_market_residual(a, b, "A", "B", 5, seed=SEED)

    assert result.source == "market_residual_oppadj_v1"
    assert result.p1 == 50
    assert "mroa_market_unavailable" in result.warnings
    assert "mroa_neutral_tiebreak" in result.warnings


def test_market_residual_follows_market_on_equal_stats():
    a, b = _mirror()
    result = compute_market_residual(a, b, "A", "B", 5, home_odd=1.5, away_odd=2.5, seed=SEED)

    assert abs(result.p1 - 62.5) <= 0.05
    assert result.winner == "A"
    _assert_sums_to_hundred(result)


def test_market_residual_double_faults_inversion():
    a = make_player_stats("A", [base_metrics(55, double_faults=1)] * 5)
    b = make_player_stats("B", [base_metrics(55, double_faults=8)] * 5)
    result = compute_market_residual(a, b, "A", "B", 5, seed=SEED)

    assert result.p1 > 50 and result.winner == "A"


def test_market_residual_without_history():
    a = PlayerRecentStats(player_name="A")
    b = PlayerRecentStats(player_name="B")
    result = compute_market_residual(a, b, "A", "B", 5, home_odd=1.5, away_odd=2.5, seed=SEED)

    assert "mroa_stats_unavailable" in result.warnings
    assert "mroa_low_pair_coverage" in result.warnings
    assert result.p1 == 62.5, "❌ Sin historial se usa la probabilidad del mercado"
