"""
Tests de extracción de métricas, forma reciente e índices de estado
"""

import logging

from tennis_ensemble.api.models import HistoricalMatchTechStats, MetricValue, RecentMatchRef, TechStatRow
from tennis_ensemble.config.settings import Config
from tennis_ensemble.features import (
    REQUIRED_METRIC_KEYS,
    apply_pair_state_contrast,
    build_player_recent_form_summary,
    build_player_state_feature,
    build_player_state_series,
    canonical_metric_key,
    collect_feature_rows,
    compute_window_plan,
    extract_feature_pair,
    extract_feature_row,
    extract_feature_row_diagnostics,
    infer_tournament_tier_score,
    metric_quality,
    metric_value_to_number,
    parse_score_momentum_features,
)

from factories import base_metrics, ladder_history, make_match, make_player_stats, make_state_features

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# ==================== NORMALIZACIÓN ====================


def test_metric_value_to_number():
    """Ratios suavizados, porcentajes 0-1 y 0-100, conteos"""
    ratio_value = MetricValue(raw="8/10 (80%)", made=8, total=10, percent=80)
    assert abs(metric_value_to_number(ratio_value) - 75.0) < 1e-9, "❌ Suavizado de Laplace incorrecto"
    assert abs(metric_value_to_number(ratio_value, smooth_ratio=False) - 80.0) < 1e-9, "❌ Ratio sin suavizar"

    assert abs(metric_value_to_number(MetricValue(percent=0.62)) - 62.0) < 1e-9, "❌ Porcentaje 0-1 no escalado"
    assert metric_value_to_number(MetricValue(percent=62)) == 62, "❌ Porcentaje 0-100 alterado"
    assert metric_value_to_number(MetricValue(percent=4), is_count_metric=True) == 4, "❌ Conteo alterado"
    assert metric_value_to_number(MetricValue(raw="-")) is None, "❌ Valor vacío debe ser None"
    logger.info("✅ Normalización de métricas correcta")


def test_metric_quality_prefers_ratios():
    assert metric_quality(MetricValue(made=3, total=5)) == 1005
    assert metric_quality(MetricValue(percent=60)) == 100
    assert metric_quality(MetricValue(raw="?")) == 0


# ==================== MÉTRICAS STABLE14 ====================


def test_required_metrics_are_stable14():
    assert len(REQUIRED_METRIC_KEYS) == 14, "❌ Deben ser 14 métricas"
    assert REQUIRED_METRIC_KEYS[0] == "first_serve"
    assert REQUIRED_METRIC_KEYS[-1] == "total_games_won"


def test_canonical_metric_key_aliases():
    """Alias habituales de las etiquetas de estadísticas"""
    assert canonical_metric_key("1st serve %") == "first_serve"
    assert canonical_metric_key("Double Fault") == "double_faults"
    assert canonical_metric_key("service_points_won") == "total_service_points_won"
    assert canonical_metric_key("total_return_points_won") == "return_points_won"
    assert canonical_metric_key("break_points_conversions") == "break_points_converted"
    assert canonical_metric_key("2nd return points won") == "second_serve_return_points_won"
    assert canonical_metric_key("", "Total Games Won") == "total_games_won", "❌ Debe usar la etiqueta"
    assert canonical_metric_key("aces") is None, "❌ Métrica no stable14 debe ser None"
    logger.info("✅ Alias de métricas resueltos")


def test_extract_feature_row_complete_and_incomplete():
    match = make_match("https://h/1", base_metrics(60))
    row = extract_feature_row(match)
    assert row is not None, "❌ Partido completo debe producir fila"
    assert row.total_points_won == 60
    assert row.double_faults == 3

    partial = base_metrics(60)
    del partial["return_games_won"]
    incomplete = make_match("https://h/2", partial)
    assert extract_feature_row(incomplete) is None, "❌ Partido incompleto debe descartarse"
    _, missing = extract_feature_row_diagnostics(incomplete)
    assert missing == ["return_games_won"], f"❌ Claves faltantes incorrectas: {missing}"


def test_duplicate_metric_keeps_highest_quality():
    """Con la métrica repetida gana la ocurrencia de mayor calidad"""
    match = make_match("https://h/1", base_metrics(60))
    duplicate = TechStatRow(
        metric_label="Total points won",
        metric_key="total_points_won",
        player_value=MetricValue(raw="48/98", made=48, total=98),
        opponent_value=MetricValue(raw="50/98", made=50, total=98),
    )
    match = HistoricalMatchTechStats(
        match_url=match.match_url,
        player_name=match.player_name,
        rows=[duplicate] + list(match.rows),
    )
    row = extract_feature_row(match)
    assert abs(row.total_points_won - 49 / 100 * 100) < 1e-9, "❌ Debe ganar el ratio made/total"


def test_extract_feature_pair_and_collect_rows():
    match = make_match("https://h/1", base_metrics(60), base_metrics(45))
    pair = extract_feature_pair(match)
    assert pair is not None, "❌ Pareja completa esperada"
    player, opponent = pair
    assert player.total_points_won == 60 and opponent.total_points_won == 45

    history = ladder_history(55, count=3)
    incomplete = dict(history[1])
    del incomplete["first_serve"]
    history[1] = incomplete
    stats = make_player_stats("Player A", history)
    rows = collect_feature_rows(stats)
    assert len(rows) == 2, "❌ El partido incompleto no debe contar"
    assert rows[0].first_serve == 55 and rows[1].first_serve == 57, "❌ Debe mantenerse el orden"


# ==================== FORMA RECIENTE ====================


def test_recent_form_summary():
    matches = [
        RecentMatchRef(result_text="W", score_text="2-0 6-4 6-3"),
        RecentMatchRef(result_text="L", score_text="1-2 6-4 3-6 4-6"),
        RecentMatchRef(result_text="", score_text="2-0"),
        RecentMatchRef(result_text="W", score_text="walkover"),
    ]
    summary = build_player_recent_form_summary(matches)

    assert summary.window_requested == 8
    assert summary.wins == 2 and summary.losses == 1
    assert summary.usable_matches == 3
    assert summary.unparsed_score_rows == 1, "❌ 'walkover' no es un marcador legible"
    assert -1 <= summary.weighted_score <= 1
    assert summary.weighted_score > 0, "❌ Dos victorias recientes deben dar forma positiva"
    assert summary.source == "profile_results_flashscore_v1"

    all_wins = build_player_recent_form_summary([RecentMatchRef(result_text="W", score_text="2-0")] * 10, window=5)
    assert all_wins.window_used == 5
    assert abs(all_wins.weighted_score - 1.0) < 1e-9

    capped = build_player_recent_form_summary([], window=50)
    assert capped.window_requested == 20, "❌ Ventana máxima 20"
    logger.info("✅ Forma reciente correcta")


def test_recent_form_window_follows_config(monkeypatch):
    matches = [RecentMatchRef(result_text="W", score_text="2-0")] * 10

    monkeypatch.setattr(Config, "FORM_WINDOW", 5)
    summary = build_player_recent_form_summary(matches)
    assert summary.window_requested == 5, "❌ La ventana por defecto debe salir de Config.FORM_WINDOW"
    assert summary.usable_matches == 5
    assert build_player_recent_form_summary(matches, window=3).window_requested == 3

    monkeypatch.setattr(Config, "FORM_WINDOW", 50)
    assert build_player_recent_form_summary(matches).window_requested == 8, "❌ Ventana fuera de rango: 8"


# ==================== ÍNDICES DE ESTADO ====================


def test_infer_tournament_tier_score():
    assert infer_tournament_tier_score("Wimbledon")["tier_score"] == 1.0
    assert infer_tournament_tier_score("ATP Masters 1000 Madrid")["tier_score"] == 0.9
    assert infer_tournament_tier_score("ATP 500 Basel")["tier_score"] == 0.8
    assert infer_tournament_tier_score("ATP 250 Gstaad")["tier_score"] == 0.7
    assert infer_tournament_tier_score("Challenger Bergamo")["tier_score"] == 0.55
    assert infer_tournament_tier_score("ITF M25 Antalya")["tier_score"] == 0.35

    unknown = infer_tournament_tier_score(None)
    assert unknown["tier_score"] == 0.5 and unknown["unknown"]
    assert infer_tournament_tier_score("Roland Garros - Qualification")["qualifying"]


def test_parse_score_momentum_features():
    empty = parse_score_momentum_features(None, None)
    assert not empty["score_parsed"] and empty["score_momentum"] is None

    win = parse_score_momentum_features("W", "2-0 6-4 6-3")
    assert win["match_won_sign"] == 1
    assert win["set_margin_norm"] == 1
    assert win["score_momentum"] > 0.9

    loss = parse_score_momentum_features("L", "0-2 3-6 4-6")
    assert loss["score_momentum"] < -0.9


def test_compute_window_plan():
    plan = compute_window_plan(5)
    assert not plan["w10"]["enabled"], "❌ w10 necesita al menos 6 partidos"
    assert plan["w5"]["enabled"] and not plan["w5"]["degraded"]
    assert plan["w3"]["used"] == 3

    plan = compute_window_plan(7)
    assert plan["w10"]["enabled"] and plan["w10"]["degraded"]
    assert plan["w10"]["used"] == 7


def test_build_player_state_feature():
    feature = make_state_features(60, 1)[0]
    assert feature is not None
    assert abs(feature.tpw_core - 0.6) < 1e-9
    assert feature.tier_score == 0.8
    assert feature.opp_strength_composite is not None

    partial = base_metrics(60)
    del partial["first_serve"]
    assert build_player_state_feature(make_match("https://h/x", partial), 0) is None


def test_build_player_state_series():
    series = build_player_state_series(make_state_features(62, 10))
    assert series.n_tech == 10
    assert series.has_w10 and series.has_w5 and series.has_w3
    assert not series.degraded_w10
    for metric in ("stability", "form_tech", "form_plus", "strength"):
        value = getattr(series, metric).w5
        assert value is not None and 0 <= value <= 100, f"❌ Índice {metric} fuera de rango: {value}"

    empty = build_player_state_series([])
    assert empty.n_tech == 0 and not empty.has_w3
    assert empty.strength.w3 is None
    logger.info("✅ Series de estado construidas")


def test_apply_pair_state_contrast_widens_gap():
    strong = build_player_state_series(make_state_features(64, 10))
    weak = build_player_state_series(make_state_features(52, 10))
    new_a, new_b = apply_pair_state_contrast(strong, weak)

    before = strong.strength.w5 - weak.strength.w5
    after = new_a.strength.w5 - new_b.strength.w5
    assert abs(after) >= abs(before), "❌ El contraste debe ampliar la diferencia"
    assert strong.strength.w5 == build_player_state_series(make_state_features(64, 10)).strength.w5, (
        "❌ Las series de entrada no deben modificarse"
    )

    same_a, same_b = apply_pair_state_contrast(strong, strong)
    assert same_a.strength.w5 == same_b.strength.w5, "❌ Jugadores idénticos deben seguir iguales"

