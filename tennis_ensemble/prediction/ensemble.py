"""
Resumen del ensemble como módulos votantes
==========================================

Cada modelo del núcleo se presenta como un módulo con lado (home/away/neutral)
y fuerza. El meta del ensemble se deriva de la probabilidad final; la votación
por umbrales (`vote_ensemble`) se conserva como estrategia alternativa.
"""

from typing import Dict, List, Optional, Sequence

from tennis_ensemble.api.models import EnsembleMeta, ModuleResult, ModuleSide
from tennis_ensemble.utils.common import is_finite_number

# Nombre visible de cada modelo del núcleo
MODULE_NAMES = {
    "log_reg": "LOGREG",
    "markov": "MARKOV",
    "bradley": "BRADLEY",
    "pca": "PCA",
}

STRONG_MODULE_STRENGTH = 2
ENSEMBLE_SCORE_SCALE = 12
VOTE_SCORE_THRESHOLD = 3


def _side_from_delta(delta: float) -> ModuleSide:
    if delta > 0:
        return ModuleSide.HOME
    if delta < 0:
        return ModuleSide.AWAY
    return ModuleSide.NEUTRAL


def probability_to_module(name: str, p1: Optional[float]) -> ModuleResult:
    """
    Convierte la P1 de un modelo en un módulo votante

    Args:
        name: Nombre visible (LOGREG, MARKOV, BRADLEY, PCA)
        p1: Probabilidad de A (None si el modelo no está disponible)

    Returns:
        ModuleResult con fuerza |P1 - P2| / 10
    """
    if not is_finite_number(p1):
        return ModuleResult(
            name=name,
            side=ModuleSide.NEUTRAL,
            strength=0,
            explain=[],
            flags=["unavailable"],
        )

    p2 = 100 - p1
    delta = p1 - p2
    return ModuleResult(
        name=name,
        side=_side_from_delta(delta),
        strength=abs(delta) / 10,
        explain=[f"P1={p1:.1f} P2={p2:.1f}"],
        flags=[],
    )


def build_modules(probabilities: Dict[str, Optional[float]]) -> List[ModuleResult]:
    """Módulos LOGREG, MARKOV, BRADLEY y PCA en ese orden"""
    return [probability_to_module(label, probabilities.get(key)) for key, label in MODULE_NAMES.items()]


def build_ensemble_from_probability(modules: Sequence[ModuleResult], final_p1: float) -> EnsembleMeta:
    """
    Meta del ensemble a partir de la probabilidad final

    Los módulos neutrales no cuentan como activos. El lado final lo decide
    final_p1 y la puntuación es (final_p1 - 50) / 50 * 12.
    """
    votes_home = votes_away = strong_home = strong_away = active = 0
    for module in modules:
        if module.side == ModuleSide.NEUTRAL:
            continue
        active += 1
        strong = module.strength >= STRONG_MODULE_STRENGTH
        if module.side == ModuleSide.HOME:
            votes_home += 1
            strong_home += int(strong)
        else:
            votes_away += 1
            strong_away += int(strong)

    return EnsembleMeta(
        final_side=_side_from_delta(final_p1 - 50),
        score=(final_p1 - 50) / 50 * ENSEMBLE_SCORE_SCALE,
        votes_home=votes_home,
        votes_away=votes_away,
        strong_home=strong_home,
        strong_away=strong_away,
        active=active,
    )


def vote_ensemble(modules: Sequence[ModuleResult]) -> EnsembleMeta:
    """
    Votación por umbrales (estrategia alternativa)

    Gana un lado si la puntuación acumulada llega a ±3, hay al menos 2 votos
    fuertes o 3 votos de ese lado, y al menos 2 módulos activos.

    Args:
        modules: Módulos votantes

    Returns:
        EnsembleMeta; final_side neutral si no se cumple ningún umbral
    """
    score = 0.0
    votes_home = votes_away = strong_home = strong_away = active = 0
    for module in modules:
        if module.side == ModuleSide.NEUTRAL or module.strength <= 0:
            continue
        active += 1
        strong = module.strength >= STRONG_MODULE_STRENGTH
        if module.side == ModuleSide.HOME:
            score += module.strength
            votes_home += 1
            strong_home += int(strong)
        else:
            score -= module.strength
            votes_away += 1
            strong_away += int(strong)

    final_side = ModuleSide.NEUTRAL
    if score >= VOTE_SCORE_THRESHOLD and (strong_home >= 2 or votes_home >= 3) and active >= 2:
        final_side = ModuleSide.HOME
    elif score <= -VOTE_SCORE_THRESHOLD and (strong_away >= 2 or votes_away >= 3) and active >= 2:
        final_side = ModuleSide.AWAY

    return EnsembleMeta(
        final_side=final_side,
        score=score,
        votes_home=votes_home,
        votes_away=votes_away,
        strong_home=strong_home,
        strong_away=strong_away,
        active=active,
    )
