"""
Calibración de pesos del núcleo
===============================

Pesos base de los cuatro modelos del núcleo, ajustados por la fiabilidad de
cada modelo y renormalizados. La probabilidad final es la media ponderada de
los modelos disponibles.
"""

from typing import Dict, Optional

from tennis_ensemble.utils.common import clamp, is_finite_number

CORE_MODELS = ("log_reg", "markov", "bradley", "pca")

BASE_MODEL_WEIGHTS = {
    "log_reg": 0.32,
    "markov": 0.28,
    "bradley": 0.2,
    "pca": 0.2,
}

MIN_SLOT_RELIABILITY = 0.05


def _weighted_slot(base_weight: float, reliability: float, probability: Optional[float]) -> float:
    if not is_finite_number(probability):
        return 0.0
    return base_weight * clamp(reliability, MIN_SLOT_RELIABILITY, 1.0)


def calibrate_model_weights(
    base: Dict[str, float],
    reliabilities: Dict[str, float],
    probabilities: Dict[str, Optional[float]],
) -> Dict[str, float]:
    """
    Pesos calibrados que suman 1

    Un modelo sin probabilidad recibe peso 0. Si ninguno está disponible se
    devuelve el reparto uniforme 0.25.

    Args:
        base: Pesos base por modelo
        reliabilities: Fiabilidad por modelo (se acota a [0.05, 1])
        probabilities: Probabilidad P1 por modelo (None = no disponible)

    Returns:
        Dict modelo -> peso
    """
    raw = {
        name: _weighted_slot(base[name], reliabilities.get(name, 0.0), probabilities.get(name))
        for name in CORE_MODELS
    }
    total = sum(raw.values())
    if total <= 0:
        return {name: 0.25 for name in CORE_MODELS}
    return {name: raw[name] / total for name in CORE_MODELS}


def weighted_probability(probabilities: Dict[str, Optional[float]], weights: Dict[str, float]) -> float:
    """Media ponderada de las probabilidades disponibles (50 si no hay ninguna)"""
    total_sum = 0.0
    total_weight = 0.0
    for name in CORE_MODELS:
        p = probabilities.get(name)
        w = weights.get(name, 0.0)
        if not is_finite_number(p) or w <= 0:
            continue
        total_sum += p * w
        total_weight += w
    if total_weight <= 0:
        return 50.0
    return clamp(total_sum / total_weight, 0, 100)
