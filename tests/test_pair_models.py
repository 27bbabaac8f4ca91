"""
Tests del núcleo por parejas: LogReg, Markov, Bradley, PCA y calibración de pesos
"""

import logging

from tennis_ensemble.api.models import FeatureRow
from tennis_ensemble.prediction.calibration import (
    BASE_MODEL_WEIGHTS,
    CORE_MODELS,
    calibrate_model_weights,
    weighted_probability,
)
from tennis_ensemble.prediction.pair_models import (
    aggregate_index_pairs,
    build_index_pairs,
    compute_pair_model_output,
    history_pca_probability,
    model_stability,
)
from tennis_ensemble.utils.common import mean, population_sd, sample_sd

from factories import base_metrics, make_feature_row

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _ladder_rows(prefix: str, start: float, count: int = 5, double_faults: float = 3.0):
    return [
        FeatureRow(match_url=f"https://{prefix}/{i}", **base_metrics(start - i, double_faults)) for i in range(count)
    ]


# ==================== PAREJAS ====================


def test_build_index_pairs_by_index():
    """La pareja i une el partido i de A con el partido i de B"""
    home = _ladder_rows("home", 65)
    away = _ladder_rows("away", 52)
    pairs = build_index_pairs(home, away, 5)

    assert len(pairs) == 5, "❌ Deben formarse 5 parejas"
    assert pairs[0]["home"].match_url == "https://home/0"
    assert pairs[0]["away"].match_url == "https://away/0"
    assert pairs[4]["home"].match_url == "https://home/4"
    assert pairs[4]["away"].match_url == "https://away/4"

    assert len(build_index_pairs(home[:3], away, 5)) == 3, "❌ Limitado por el jugador con menos filas"


def test_golden_double_faults_case():
    """Filas idénticas salvo double_faults (2 contra 4)"""
    pair = {
        "index": 0,
        "home": make_feature_row("https://h/1", double_faults=2),
        "away": make_feature_row("https://a/1", double_faults=4),
    }
    output = compute_pair_model_output(pair)

    assert abs(output["log_reg_p1"] - 51.19025128376735) < 1e-9, f"❌ LogReg: {output['log_reg_p1']}"
    assert abs(output["markov_p1"] - 50.714285714285715) < 1e-9, f"❌ Markov: {output['markov_p1']}"
    assert abs(output["bradley_p1"] - 53.57142857142857) < 1e-9, f"❌ Bradley: {output['bradley_p1']}"
    logger.info("✅ Caso dorado de double_faults correcto")


def test_worse_double_faults_lowers_probability():
    home = [make_feature_row(f"https://h/{i}", double_faults=6) for i in range(5)]
    away = [make_feature_row(f"https://a/{i}", double_faults=2) for i in range(5)]
    result = aggregate_index_pairs(home, away, 5)
    probs = result["model_probabilities"]

    for name in ("log_reg", "markov", "bradley"):
        assert probs[name] < 50, f"❌ Más dobles faltas debe bajar {name}: {probs[name]}"


def test_zero_metric_values_are_kept():
    home = [make_feature_row(f"https://h/{i}", first_serve_return_points_won=0) for i in range(5)]
    away = [make_feature_row(f"https://a/{i}", first_serve_return_points_won=0) for i in range(5)]
    result = aggregate_index_pairs(home, away, 5)
    assert result["model_probabilities"]["log_reg"] == 50


# ==================== AGREGACIÓN ====================


def test_aggregate_averages_pairs_and_weights_sum_to_one():
    home = _ladder_rows("home", 67)
    away = _ladder_rows("away", 51)
    result = aggregate_index_pairs(home, away, 5)

    individual = [compute_pair_model_output(p) for p in build_index_pairs(home, away, 5)]
    avg_log_reg = sum(o["log_reg_p1"] for o in individual) / len(individual)

    assert result["valid_pairs"] == 5
    assert abs(result["model_probabilities"]["log_reg"] - avg_log_reg) < 1e-9, "❌ LogReg debe ser la media"
    assert result["model_probabilities"]["final"] > 50

    weights = result["weights"]
    assert abs(sum(weights.values()) - 1) < 1e-9, f"❌ Los pesos deben sumar 1: {weights}"
    assert all(0 <= w <= 1 for w in weights.values())
    assert result["warnings"] == []


def test_symmetric_inputs_give_fifty():
    home = _ladder_rows("home", 58)
    away = _ladder_rows("away", 58)
    result = aggregate_index_pairs(home, away, 5)
    probs = result["model_probabilities"]

    for name in CORE_MODELS:
        assert abs(probs[name] - 50) < 1e-9, f"❌ {name} debe ser 50 con entradas simétricas: {probs[name]}"
    assert abs(probs["final"] - 50) < 1e-9
    assert result["valid_pair_outputs"]["pca"] == 5


def test_missing_pairs_reported():
    home = _ladder_rows("home", 60, count=3)
    away = _ladder_rows("away", 55)
    result = aggregate_index_pairs(home, away, 5)

    assert result["valid_pairs"] == 3
    assert "valid_pairs=3/5" in result["warnings"]


def test_no_rows_means_all_models_unavailable():
    result = aggregate_index_pairs([], [], 5)
    probs = result["model_probabilities"]

    assert all(probs[name] is None for name in CORE_MODELS)
    assert probs["final"] == 50
    assert result["weights"] == {name: 0.25 for name in CORE_MODELS}, "❌ Sin modelos: pesos uniformes"
    assert "all_models_unavailable" in result["warnings"]


# ==================== PCA ====================


def test_pca_is_soft_capped():
    home = _ladder_rows("home", 90, double_faults=0)
    away = _ladder_rows("away", 20, double_faults=12)
    pca = history_pca_probability(home, away)

    assert 3 <= pca["probability"] <= 97, f"❌ PCA fuera de [3, 97]: {pca['probability']}"
    assert pca["probability"] > 50
    assert 0.25 <= pca["stability"] <= 1

    reverse = history_pca_probability(away, home)
    assert 3 <= reverse["probability"] < 50
    assert history_pca_probability([], away) == {}


# ==================== FIABILIDAD Y PESOS ====================


def test_reliability_decreases_with_dispersion():
    """Misma media, mayor desviación => menor estabilidad"""
    tight = model_stability([55, 55, 55, 55, 55])
    medium = model_stability([53, 54, 55, 56, 57])
    wide = model_stability([45, 50, 55, 60, 65])

    assert tight == 1
    assert tight > medium > wide, f"❌ Estabilidad no monótona: {tight}, {medium}, {wide}"
    assert model_stability([10, 90, 10, 90]) == 0.25, "❌ Estabilidad mínima 0.25"
    assert model_stability([]) is None


def test_statistics_helpers():
    values = [1.0, 2.0, 3.0, 4.0]
    assert mean(values) == 2.5
    assert abs(sample_sd(values) - 1.2909944487358056) < 1e-12
    assert abs(population_sd(values) - 1.118033988749895) < 1e-12

    assert mean([]) == 0, "❌ Media vacía debe ser 0"
    assert population_sd([]) == 0
    assert sample_sd([5.0]) == 0
    assert sample_sd([5.0], empty_value=1.0) == 1.0, "❌ Con una observación se usa empty_value"


def test_calibrate_model_weights():
    probabilities = {"log_reg": 60.0, "markov": 58.0, "bradley": None, "pca": 70.0}
    reliabilities = {"log_reg": 1.0, "markov": 0.5, "bradley": 0.0, "pca": 0.0}
    weights = calibrate_model_weights(BASE_MODEL_WEIGHTS, reliabilities, probabilities)

    assert abs(sum(weights.values()) - 1) < 1e-9
    assert weights["bradley"] == 0, "❌ Modelo sin probabilidad debe pesar 0"
    assert weights["pca"] > 0, "❌ La fiabilidad se acota a 0.05, nunca anula un modelo disponible"
    assert weights["log_reg"] > weights["markov"]

    final = weighted_probability(probabilities, weights)
    assert 58 < final < 70

    uniform = calibrate_model_weights(BASE_MODEL_WEIGHTS, reliabilities, {name: None for name in CORE_MODELS})
    assert uniform == {name: 0.25 for name in CORE_MODELS}


def test_volatile_pairs_lower_model_reliability():
    def rows(prefix, levels):
        return [
            FeatureRow(match_url=f"https://{prefix}/{i}", **base_metrics(level, max(0, 100 - level)))
            for i, level in enumerate(levels)
        ]

    stable = aggregate_index_pairs(rows("stable/home", [62] * 5), rows("stable/away", [52] * 5), 5)
    volatile = aggregate_index_pairs(
        rows("volatile/home", [90, 35, 88, 33, 87]), rows("volatile/away", [40, 80, 42, 82, 43]), 5
    )

    for name in ("log_reg", "markov", "bradley"):
        assert stable["reliabilities"][name] > volatile["reliabilities"][name], f"❌ Fiabilidad de {name}"
