"""
Modelos del núcleo por parejas
==============================

Empareja el partido i del jugador A con el partido i del jugador B (nunca el
producto cruzado) y calcula, por pareja:

- LogReg: diferencia de medias normalizadas de las 14 métricas
- Markov: cadena de 4 estados de saque/resto mezclada con el marcador de métricas
- Bradley-Terry: proporción de métricas ganadas

Además un modelo PCA de estilo sobre las filas de ambos jugadores. Las series
se promedian, se calcula la fiabilidad de cada modelo y la probabilidad final
ponderada.
"""

import logging
import math
from typing import Dict, List, Optional, Sequence

import numpy as np

from tennis_ensemble.api.models import FeatureRow
from tennis_ensemble.features.required_metrics import REQUIRED_METRIC_KEYS
from tennis_ensemble.prediction.calibration import (
    BASE_MODEL_WEIGHTS,
    calibrate_model_weights,
    weighted_probability,
)
from tennis_ensemble.utils.common import clamp, is_finite_number, mean, ratio, sample_sd, sigmoid

logger = logging.getLogger(__name__)

COMPARISON_METRICS = REQUIRED_METRIC_KEYS
PCA_FEATURES = REQUIRED_METRIC_KEYS
INVERTED_METRICS = frozenset({"double_faults"})

DEFAULT_REQUESTED_PAIRS = 5

PCA_SHRINKAGE_LAMBDA = 0.18
PCA_SOFT_CAP_MIN = 3
PCA_SOFT_CAP_MAX = 97
PCA_POWER_ITERATIONS = 30
MARKOV_STEPS = 20


# ==================== PAREJAS ====================


def build_index_pairs(
    home_rows: Sequence[FeatureRow], away_rows: Sequence[FeatureRow], requested_pairs: int = DEFAULT_REQUESTED_PAIRS
) -> List[Dict]:
    """
    Parejas por índice

    Returns:
        Lista de {index, home, away}; como mucho min(requested, |A|, |B|)
    """
    count = min(requested_pairs, len(home_rows), len(away_rows))
    return [{"index": i, "home": home_rows[i], "away": away_rows[i]} for i in range(max(0, count))]


def _comparison_score(home: FeatureRow, away: FeatureRow) -> Dict[str, float]:
    wins_a = 0.0
    wins_b = 0.0
    compared = 0
    for key in COMPARISON_METRICS:
        h = home.value(key)
        a = away.value(key)
        if not is_finite_number(h) or not is_finite_number(a):
            continue
        compared += 1
        if key in INVERTED_METRICS:
            h, a = -h, -a
        if h > a:
            wins_a += 1
        elif a > h:
            wins_b += 1
        else:
            wins_a += 0.5
            wins_b += 0.5
    return {"wins_a": wins_a, "wins_b": wins_b, "compared": compared}


def _logistic_probability(home: FeatureRow, away: FeatureRow) -> Optional[float]:
    sum_home = 0.0
    sum_away = 0.0
    count = 0
    for key in COMPARISON_METRICS:
        h = home.value(key)
        a = away.value(key)
        if not is_finite_number(h) or not is_finite_number(a) or h < 0 or a < 0:
            continue
        if key in INVERTED_METRICS:
            sum_home += 1 / (1 + max(h, 0))
            sum_away += 1 / (1 + max(a, 0))
        else:
            sum_home += clamp(h, 0, 100) / 100
            sum_away += clamp(a, 0, 100) / 100
        count += 1

    if count == 0:
        return None
    return clamp(sigmoid((sum_home / count - sum_away / count) * 5) * 100, 0, 100)


def _normalize_probability(value: float, fallback: float) -> float:
    if not is_finite_number(value) or value <= 0:
        return fallback
    normalized = value / 100 if value > 1 else value
    return clamp(normalized, 0, 1)


def _markov_probability(home: FeatureRow, away: FeatureRow, comparison: Dict[str, float]) -> Optional[float]:
    serve1 = _normalize_probability(home.first_serve_points_won, 0.6)
    serve2 = _normalize_probability(away.first_serve_points_won, 0.6)
    ret1 = _normalize_probability(home.first_serve_return_points_won, 0.4)
    ret2 = _normalize_probability(away.first_serve_return_points_won, 0.4)

    matrix = [
        [0, 0, ret2, 1 - ret2],
        [0, 0, ret2, 1 - ret2],
        [ret1, 1 - ret1, 0, 0],
        [ret1, 1 - ret1, 0, 0],
    ]
    state = [0.5 * serve1, 0.5 * (1 - serve1), 0.5 * serve2, 0.5 * (1 - serve2)]
    for _ in range(MARKOV_STEPS):
        nxt = [0.0, 0.0, 0.0, 0.0]
        for i in range(4):
            for j in range(4):
                nxt[i] += state[j] * matrix[j][i]
        state = nxt

    raw_home = state[0] + state[3]
    raw_away = state[1] + state[2]
    markov_p1 = raw_home / (raw_home + raw_away) * 100 if raw_home + raw_away > 0 else 50.0

    wins = comparison["wins_a"] + comparison["wins_b"]
    score_p1 = comparison["wins_a"] / wins * 100 if wins > 0 else 50.0
    return clamp(markov_p1 * 0.8 + score_p1 * 0.2, 0, 100)


def _bradley_probability(comparison: Dict[str, float]) -> Optional[float]:
    den = comparison["wins_a"] + comparison["wins_b"]
    if den <= 0:
        return None
    return clamp(comparison["wins_a"] / den * 100, 0, 100)


def compute_pair_model_output(pair: Dict) -> Dict:
    """
    Probabilidades LogReg, Markov y Bradley de una pareja

    Returns:
        Dict con index, match_a_url, match_b_url, log_reg_p1, markov_p1, bradley_p1
    """
    home = pair["home"]
    away = pair["away"]
    comparison = _comparison_score(home, away)
    return {
        "index": pair["index"],
        "match_a_url": home.match_url,
        "match_b_url": away.match_url,
        "log_reg_p1": _logistic_probability(home, away),
        "markov_p1": _markov_probability(home, away, comparison),
        "bradley_p1": _bradley_probability(comparison),
    }


# ==================== PCA ====================


def history_pca_probability(home_rows: Sequence[FeatureRow], away_rows: Sequence[FeatureRow]) -> Dict:
    """
    Modelo PCA de estilo

    Z-score de las 14 métricas sobre las filas de ambos jugadores, covarianza
    con shrinkage hacia la identidad, primer componente por iteración de
    potencia y proyección de la media de cada jugador.

    Returns:
        Dict con probability, stability y tau; vacío si no es calculable
    """
    if not home_rows or not away_rows:
        return {}

    samples = list(home_rows) + list(away_rows)
    n = len(samples)
    m = len(PCA_FEATURES)
    if n < 2:
        return {}

    x = np.array([[sample.value(key) for key in PCA_FEATURES] for sample in samples], dtype=float)
    if not np.all(np.isfinite(x)):
        return {}

    means = x.mean(axis=0)
    sds = x.std(axis=0, ddof=1)
    sds = np.where(np.isfinite(sds) & (sds > 0), sds, 1.0)
    z = (x - means) / sds

    cov = z.T @ z / max(1, n - 1)
    lam = clamp(PCA_SHRINKAGE_LAMBDA, 0, 1)
    cov = (1 - lam) * cov + lam * np.eye(m)

    vector = np.full(m, 1 / math.sqrt(m))
    for _ in range(PCA_POWER_ITERATIONS):
        nxt = cov @ vector
        norm = float(np.linalg.norm(nxt))
        if not math.isfinite(norm) or norm <= 0:
            return {}
        vector = nxt / norm
    if vector[0] < 0:
        vector = -vector

    s1 = float(vector @ z[: len(home_rows)].mean(axis=0))
    s2 = float(vector @ z[len(home_rows):].mean(axis=0))
    tau = clamp(math.sqrt(n / 20), 0.45, 1)
    raw_probability = sigmoid((s1 - s2) * 1.5 * tau) * 100
    return {
        "probability": clamp(raw_probability, PCA_SOFT_CAP_MIN, PCA_SOFT_CAP_MAX),
        "stability": clamp(tau * (1 - PCA_SHRINKAGE_LAMBDA / 2), 0.25, 1),
        "tau": tau,
    }


# ==================== AGREGACIÓN ====================


def model_stability(values: Sequence[float]) -> Optional[float]:
    """clamp(1 - sd/20, 0.25, 1); sd = 1 con menos de 2 valores"""
    if not values:
        return None
    return clamp(1 - sample_sd(values, empty_value=1.0) / 20, 0.25, 1)


def _safe_average(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return mean(values)


def aggregate_index_pairs(
    home_rows: Sequence[FeatureRow], away_rows: Sequence[FeatureRow], requested_pairs: int = DEFAULT_REQUESTED_PAIRS
) -> Dict:
    """
    Ensemble del núcleo sobre las parejas por índice

    Args:
        home_rows: Filas stable14 del jugador A (más reciente primero)
        away_rows: Filas stable14 del jugador B
        requested_pairs: Parejas solicitadas

    Returns:
        Dict con requested_pairs, valid_pairs, pair_outputs, model_probabilities
        (log_reg, markov, bradley, pca, final), valid_pair_outputs,
        reliabilities, stability, weights y warnings
    """
    warnings: List[str] = []
    pairs = build_index_pairs(home_rows, away_rows, requested_pairs)
    pair_outputs = [compute_pair_model_output(pair) for pair in pairs]

    series = {
        name: [out[f"{name}_p1"] for out in pair_outputs if is_finite_number(out[f"{name}_p1"])]
        for name in ("log_reg", "markov", "bradley")
    }
    pca = history_pca_probability(home_rows[: len(pairs)], away_rows[: len(pairs)])
    pca_p1 = pca.get("probability")

    probabilities: Dict[str, Optional[float]] = {name: _safe_average(values) for name, values in series.items()}
    probabilities["pca"] = pca_p1

    valid_pair_outputs = {name: len(values) for name, values in series.items()}
    valid_pair_outputs["pca"] = requested_pairs if is_finite_number(pca_p1) else 0

    stability: Dict[str, Optional[float]] = {name: model_stability(values) for name, values in series.items()}
    stability["pca"] = pca.get("stability") if is_finite_number(pca_p1) else None

    reliabilities = {
        name: ratio(valid_pair_outputs[name], requested_pairs) * (stability[name] or 0.0)
        for name in ("log_reg", "markov", "bradley", "pca")
    }

    weights = calibrate_model_weights(BASE_MODEL_WEIGHTS, reliabilities, probabilities)
    final_p1 = weighted_probability(probabilities, weights)

    if not any(is_finite_number(p) for p in probabilities.values()):
        warnings.append("all_models_unavailable")
    if len(pairs) < requested_pairs:
        warnings.append(f"valid_pairs={len(pairs)}/{requested_pairs}")

    model_probabilities = dict(probabilities)
    model_probabilities["final"] = final_p1

    logger.debug(f"Parejas válidas {len(pairs)}/{requested_pairs}, P1 final={final_p1:.2f}")

    return {
        "requested_pairs": requested_pairs,
        "valid_pairs": len(pairs),
        "pair_outputs": pair_outputs,
        "model_probabilities": model_probabilities,
        "valid_pair_outputs": valid_pair_outputs,
        "reliabilities": reliabilities,
        "stability": stability,
        "weights": weights,
        "warnings": warnings,
    }
