"""
Tests del predictor completo: desempate, confianza, módulos y end-to-end
"""

import logging

import pandas as pd
import pytest

from tennis_ensemble.api.models import ModuleResult, ModuleSide, PlayerRecentStats, StateDecisionReasonTag
from tennis_ensemble.config.settings import Config
from tennis_ensemble.prediction import MatchPredictor
from tennis_ensemble.prediction.confidence import compute_confidence_score, model_dispersion
from tennis_ensemble.prediction.ensemble import (
    build_ensemble_from_probability,
    build_modules,
    probability_to_module,
    vote_ensemble,
)
from tennis_ensemble.prediction.tie_break import pick_by_odds_or_seed, stable_hash, winner_from_probability
from tennis_ensemble.utils.common import setup_logging

from factories import ladder_history, make_context, make_player_stats, with_state_features

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SEED = "https://example.com/match/abc123|Player A|Player B"


def _strong_and_weak():
    return (
        make_player_stats("Player A", ladder_history(60)),
        make_player_stats("Player B", ladder_history(50)),
    )


def _mirror():
    return (
        make_player_stats("Player A", ladder_history(55)),
        make_player_stats("Player B", ladder_history(55)),
    )


# ==================== DESEMPATE ====================


def test_stable_hash_fnv1a():
    assert stable_hash("") == 2166136261, "❌ Hash vacío debe ser el offset basis"
    assert stable_hash("a") == 0xE40C292C
    assert stable_hash(SEED) == stable_hash(SEED), "❌ El hash debe ser determinista"


def test_pick_by_odds_or_seed():
    by_odds = pick_by_odds_or_seed("A", "B", 2.1, 1.7, SEED)
    assert by_odds == {"winner": "B", "reason": "odds"}, "❌ Gana la cuota más baja"

    same_odds = pick_by_odds_or_seed("A", "B", 1.9, 1.9, SEED)
    assert same_odds["reason"] == "seed"
    expected = "A" if stable_hash(SEED) % 2 == 0 else "B"
    assert same_odds["winner"] == expected

    no_seed = pick_by_odds_or_seed("A", "B", None, None, "")
    assert no_seed["winner"] == ("A" if stable_hash("A|B") % 2 == 0 else "B"), "❌ Semilla por defecto A|B"


def test_winner_from_probability():
    assert winner_from_probability(51, "A", "B", None, None, SEED) == "A"
    assert winner_from_probability(49, "A", "B", None, None, SEED) == "B"
    assert winner_from_probability(50, "A", "B", 1.5, 2.5, SEED) == "A"


# ==================== CONFIANZA ====================


def test_confidence_neutral_is_minimum():
    probs = {"log_reg": 50.0, "markov": 50.0, "bradley": 50.0, "pca": 50.0}
    assert compute_confidence_score(50, 0, 5, 5, 5, 5, probs) == 0.5


def test_confidence_penalizes_dispersion():
    agree = {"log_reg": 65.0, "markov": 65.0, "bradley": 65.0, "pca": 65.0}
    disagree = {"log_reg": 55.0, "markov": 75.0, "bradley": 50.0, "pca": 80.0}

    assert model_dispersion(agree) == 0
    assert model_dispersion({"log_reg": 60.0, "markov": None}) == 0, "❌ Con un solo modelo no hay dispersión"

    high = compute_confidence_score(65, 4, 5, 5, 5, 5, agree)
    low = compute_confidence_score(65, 4, 5, 5, 5, 5, disagree)
    assert high > low, f"❌ La dispersión debe bajar la confianza: {high} vs {low}"
    assert abs(high - (0.5 + 0.3 * 0.8)) < 1e-9


def test_confidence_is_clamped():
    probs = {"log_reg": 99.0, "markov": 99.0, "bradley": 99.0, "pca": 99.0}
    assert compute_confidence_score(99, 4, 5, 5, 5, 5, probs) == 0.92
    assert compute_confidence_score(1, 4, 5, 5, 5, 5, probs) == 0.92


# ==================== MÓDULOS ====================


def test_probability_to_module():
    module = probability_to_module("LOGREG", 65)
    assert module.side == ModuleSide.HOME
    assert abs(module.strength - 3.0) < 1e-9
    assert module.explain == ["P1=65.0 P2=35.0"]

    unavailable = probability_to_module("PCA", None)
    assert unavailable.side == ModuleSide.NEUTRAL
    assert unavailable.strength == 0
    assert unavailable.flags == ["unavailable"]

    assert probability_to_module("MARKOV", 40).side == ModuleSide.AWAY
    assert probability_to_module("MARKOV", 50).side == ModuleSide.NEUTRAL


def test_build_ensemble_from_probability():
    modules = build_modules({"log_reg": 62.0, "markov": 45.0, "bradley": 50.0, "pca": None})
    assert [m.name for m in modules] == ["LOGREG", "MARKOV", "BRADLEY", "PCA"]

    meta = build_ensemble_from_probability(modules, 56)
    assert meta.final_side == ModuleSide.HOME
    assert meta.active == 2, "❌ Los módulos neutrales no cuentan"
    assert meta.votes_home == 1 and meta.votes_away == 1
    assert meta.strong_home == 1 and meta.strong_away == 0
    assert abs(meta.score - 6 / 50 * 12) < 1e-9


def test_vote_ensemble_thresholds():
    def module(side, strength):
        return ModuleResult(name="X", side=side, strength=strength)

    strong = vote_ensemble([module(ModuleSide.HOME, 2.5), module(ModuleSide.HOME, 2.0)])
    assert strong.final_side == ModuleSide.HOME
    assert strong.strong_home == 2

    weak = vote_ensemble([module(ModuleSide.AWAY, 1.0), module(ModuleSide.AWAY, 1.0), module(ModuleSide.AWAY, 1.0)])
    assert weak.final_side == ModuleSide.AWAY, "❌ Tres votos con puntuación -3 deben ganar"

    short = vote_ensemble([module(ModuleSide.HOME, 2.0), module(ModuleSide.AWAY, 1.0)])
    assert short.final_side == ModuleSide.NEUTRAL

    single = vote_ensemble([module(ModuleSide.HOME, 5.0)])
    assert single.final_side == ModuleSide.NEUTRAL, "❌ Se necesitan al menos 2 módulos activos"


# ==================== PREDICTOR ====================


def test_predict_end_to_end():
    a, b = _strong_and_weak()
    result = MatchPredictor().predict(make_context(), a, b)
    summary = result.model_summary

    assert result.predicted_winner == "Player A"
    assert result.final_p1 > 50
    assert 0.5 <= result.confidence <= 0.92
    assert summary.dirt.valid_pairs == 5
    assert result.stats_coverage.player_a_collected == 5
    assert len(summary.modules) == 4

    for name in ("nova_edge", "hybrid_shadow", "mahal_shadow", "matchup_shadow", "market_residual_shadow"):
        shadow = getattr(summary, name)
        assert abs(shadow.p1 + shadow.p2 - 100) <= 0.2, f"❌ {name}: p1 + p2 = {shadow.p1 + shadow.p2}"

    for name in ("log_reg", "markov", "bradley", "pca"):
        assert summary.core[name].available
        assert summary.core[name].winner == "Player A", f"❌ {name} debe favorecer a A"

    assert "pclass_missing_dv_data" in result.warnings
    assert summary.dirt.pclass.source.value == "missing"

    state = summary.state_decision
    assert state.abstained and state.winner is None
    assert StateDecisionReasonTag.LOW_COVERAGE in state.reason_tags

    assert result.data_status.startswith("metrics_policy=stable14")
    assert "valid_pairs=5/5" in result.data_status
    logger.info(f"✅ End-to-end: P1={result.final_p1:.2f}, confianza={result.confidence:.3f}")


def test_predict_is_deterministic():
    a, b = _strong_and_weak()
    predictor = MatchPredictor()
    first = predictor.predict(make_context(), a, b)
    second = predictor.predict(make_context(), a, b)

    assert first.final_p1 == second.final_p1
    assert first.confidence == second.confidence
    assert first.warnings == second.warnings


def test_predict_neutral_uses_tiebreaks():
    a, b = _mirror()
    predictor = MatchPredictor()

    seeded = predictor.predict(make_context(), a, b)
    assert seeded.final_p1 == pytest.approx(50)
    assert "neutral_model_seed_tiebreak" in seeded.warnings
    expected = "Player A" if stable_hash(SEED) % 2 == 0 else "Player B"
    assert seeded.predicted_winner == expected
    assert seeded.confidence == 0.5

    by_odds = predictor.predict(make_context(home=1.5, away=2.5), a, b)
    assert by_odds.predicted_winner == "Player A"
    assert "neutral_model_odds_tiebreak" in by_odds.warnings


def test_predict_symmetric_players_end_to_end():
    """Jugadores idénticos: todos los modelos en 50 y ganador por la semilla"""
    a, b = _mirror()
    first = MatchPredictor().predict(make_context(), a, b)
    second = MatchPredictor().predict(make_context(), a, b)
    summary = first.model_summary

    for name in ("log_reg", "markov", "bradley", "pca"):
        assert abs(summary.core[name].p1 - 50) < 1e-9, f"❌ {name}: {summary.core[name].p1}"
    for name in ("nova_edge", "hybrid_shadow", "mahal_shadow", "matchup_shadow", "market_residual_shadow"):
        shadow = getattr(summary, name)
        assert abs(shadow.p1 - 50) < 1e-9, f"❌ {name}: {shadow.p1}"
        assert shadow.winner in ("Player A", "Player B")

    expected = "Player A" if stable_hash(SEED) % 2 == 0 else "Player B"
    assert first.predicted_winner == expected
    assert second.predicted_winner == first.predicted_winner, "❌ El desempate debe repetirse"
    assert summary.core["log_reg"].winner == second.model_summary.core["log_reg"].winner


def test_predict_with_state_features():
    a, b = _strong_and_weak()
    a = with_state_features(a, 64)
    b = with_state_features(b, 52)

    result = MatchPredictor().predict(make_context(), a, b)
    state = result.model_summary.state_decision
    assert state.source == "player_state_decision_v2"
    assert not state.abstained, f"❌ Con 10 partidos de estado no debe abstenerse: {state.reason_tags}"
    assert state.winner == "Player A"
    assert state.p1 > 50 and state.reliability == 1
    assert result.predicted_winner == "Player A"

    v3 = MatchPredictor(state_variant="v3").predict(make_context(), a, b).model_summary.state_decision
    assert v3.source == "player_state_decision_v3"
    assert not v3.abstained and v3.winner == "Player A"

    contrasted = MatchPredictor(apply_contrast=True).predict(make_context(), a, b).model_summary.state_decision
    assert contrasted.winner == "Player A"

    df = MatchPredictor().predict_batch([(make_context(), a, b)])
    assert df.iloc[0]["state_winner"] == "Player A"


def test_predict_with_pclass_and_player_errors():
    a, b = _strong_and_weak()
    a = a.model_copy(update={"errors": ["perfil no encontrado"]})
    context = make_context(pclass={"ev": 3, "dep": 2, "source": "match_dv_data"})
    result = MatchPredictor().predict(context, a, b)

    assert "pclass_missing_dv_data" not in result.warnings
    assert result.model_summary.dirt.pclass.ev == 3
    assert result.warnings[0] == "Player A: perfil no encontrado", "❌ Errores prefijados con el jugador"


def test_predict_low_coverage():
    a = make_player_stats("Player A", ladder_history(60, count=3))
    b = make_player_stats("Player B", ladder_history(50))
    result = MatchPredictor().predict(make_context(), a, b)

    assert result.model_summary.dirt.valid_pairs == 3
    assert result.warnings.count("valid_pairs=3/5") == 1, "❌ El aviso de parejas no debe repetirse"
    assert "nova_edge_unavailable" in result.warnings

    empty = MatchPredictor().predict(make_context(), PlayerRecentStats(player_name="Player A"), b)
    assert empty.final_p1 == 50
    assert not empty.model_summary.core["log_reg"].available
    assert "log_reg_unavailable" in empty.model_summary.core["log_reg"].warnings


def test_predictor_rejects_invalid_settings():
    with pytest.raises(ValueError):
        MatchPredictor(state_variant="v9")
    with pytest.raises(ValueError):
        MatchPredictor(requested_pairs=0)

    assert MatchPredictor(state_variant="V3").state_variant == "v3"


def test_predict_batch():
    a, b = _strong_and_weak()
    m1, m2 = _mirror()
    batch = [
        (make_context(), a, b),
        (make_context(match_url="https://example.com/match/def456"), m1, m2),
    ]
    df = MatchPredictor().predict_batch(batch)

    assert isinstance(df, pd.DataFrame)
    assert len(df) == 2, "❌ Una fila por partido"
    for column in ("match_url", "predicted_winner", "final_p1", "confidence", "nova_p1", "state_winner", "error"):
        assert column in df.columns, f"❌ Falta columna '{column}'"
    assert df.iloc[0]["predicted_winner"] == "Player A"
    assert df["error"].isna().all()


def test_predict_batch_keeps_going_after_error(caplog):
    a, b = _strong_and_weak()
    bad_url = "https://example.com/match/broken"
    batch = [
        (make_context(), a, b),
        (make_context(match_url=bad_url), None, b),
        (make_context(match_url="https://example.com/match/def456"), a, b),
    ]

    with caplog.at_level(logging.ERROR, logger="tennis_ensemble.prediction.predictor"):
        df = MatchPredictor().predict_batch(batch)

    assert len(df) == 3, "❌ El partido fallido también debe tener fila"
    assert df.iloc[1]["match_url"] == bad_url
    assert df.iloc[1]["error"].startswith(f"{bad_url}: "), f"❌ Error mal envuelto: {df.iloc[1]['error']}"
    assert pd.isna(df.iloc[1]["predicted_winner"])

    for i in (0, 2):
        assert pd.isna(df.iloc[i]["error"])
        assert df.iloc[i]["predicted_winner"] == "Player A", "❌ Los demás partidos deben predecirse"

    assert any("❌" in record.getMessage() and bad_url in record.getMessage() for record in caplog.records)


# ==================== CONFIGURACIÓN ====================


def test_config_validate():
    is_valid, errors, warnings = Config.validate()
    assert isinstance(errors, list) and isinstance(warnings, list)
    assert is_valid == (len(errors) == 0)
    assert Config.NEUTRAL_EPSILON == 1e-9


def test_setup_logging_creates_log_dir(tmp_path):
    log_dir = tmp_path / "logs"
    setup_logging("DEBUG", log_dir=log_dir)
    assert log_dir.is_dir(), "❌ Debe crearse el directorio de logs"
