"""
Confianza de la predicción
==========================

La confianza crece con la distancia de la probabilidad final a 50 y con la
calidad de los datos (modelos activos, parejas válidas, cobertura), y se
penaliza cuando los modelos del núcleo discrepan entre sí. Siempre en [0.5, 0.92].
"""

from typing import Dict, Optional

from tennis_ensemble.utils.common import clamp, finite_values, population_sd, ratio

MIN_CONFIDENCE = 0.5
MAX_CONFIDENCE = 0.92
MAX_DISPERSION_PENALTY = 0.12
NEUTRAL_EPSILON = 1e-9


def model_dispersion(probabilities: Dict[str, Optional[float]]) -> float:
    """Desviación típica poblacional de los modelos disponibles (0 con menos de 2)"""
    values = finite_values(probabilities.values())
    if len(values) < 2:
        return 0.0
    return population_sd(values)


def compute_confidence_score(
    final_p1: float,
    active_models: int,
    valid_pairs: int,
    requested_pairs: int,
    coverage_a: int,
    coverage_b: int,
    core_probabilities: Dict[str, Optional[float]],
) -> float:
    """
    Confianza de la predicción en [0.5, 0.92]

    Args:
        final_p1: Probabilidad final de A (0-100)
        active_models: Modelos del núcleo con lado definido
        valid_pairs: Parejas válidas
        requested_pairs: Parejas solicitadas
        coverage_a: Partidos técnicos recogidos de A
        coverage_b: Partidos técnicos recogidos de B
        core_probabilities: P1 de log_reg, markov, bradley y pca (sin "final")

    Returns:
        float con la confianza
    """
    coverage_ratio = ratio(coverage_a + coverage_b, requested_pairs * 2)
    pair_ratio = ratio(valid_pairs, requested_pairs)
    model_ratio = ratio(active_models, 4)

    distance = abs(final_p1 - 50)
    edge = 0.0 if distance <= NEUTRAL_EPSILON else distance / 50

    quality = 0.45 * model_ratio + 0.35 * pair_ratio + 0.2 * coverage_ratio
    base = 0.5 + edge * (0.45 + 0.35 * quality)
    penalty = clamp(model_dispersion(core_probabilities) / 40, 0, MAX_DISPERSION_PENALTY)
    return clamp(base - penalty, MIN_CONFIDENCE, MAX_CONFIDENCE)
