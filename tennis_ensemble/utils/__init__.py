"""
Módulo de Utilidades
====================

Funciones numéricas compartidas para evitar duplicación entre modelos.
"""

from .common import (
    is_finite_number,
    clamp,
    clamp01,
    ratio,
    round_half_up,
    round1,
    round3,
    sigmoid,
    stable_sigmoid,
    logit,
    sign,
    mean,
    sample_sd,
    population_sd,
    finite_values,
    normalize_weights,
    setup_logging,
    format_probability,
    print_header,
)

__all__ = [
    "is_finite_number",
    "clamp",
    "clamp01",
    "ratio",
    "round_half_up",
    "round1",
    "round3",
    "sigmoid",
    "stable_sigmoid",
    "logit",
    "sign",
    "mean",
    "sample_sd",
    "population_sd",
    "finite_values",
    "normalize_weights",
    "setup_logging",
    "format_probability",
    "print_header",
]
