"""
Utilidades Compartidas
=====================

Funciones numéricas y de presentación comunes a todos los modelos del ensemble.

Todas las funciones son puras: no guardan estado ni dependen del orden de llamada.
"""

import logging
import math
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence

import numpy as np

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


# ==================== NÚMEROS ====================


def is_finite_number(value: Any) -> bool:
    """True si value es un número real finito (bool no cuenta)"""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def clamp(value: float, min_value: float, max_value: float) -> float:
    """Limita value al rango [min_value, max_value]"""
    return max(min_value, min(max_value, value))


def clamp01(value: float) -> float:
    """Limita al rango [0, 1]; valores no finitos cuentan como 0"""
    return clamp(value if is_finite_number(value) else 0.0, 0.0, 1.0)


def ratio(value: float, base: float) -> float:
    """
    Cociente acotado a [0, 1]

    Args:
        value: Numerador
        base: Denominador (si es <= 0 devuelve 0)

    Returns:
        clamp(value / base, 0, 1)
    """
    if base <= 0:
        return 0.0
    return clamp(value / base, 0.0, 1.0)


def round_half_up(value: float, decimals: int = 0) -> float:
    """
    Redondeo "half up" (0.5 siempre hacia arriba)

    round() de Python usa redondeo bancario; los campos versionados del
    resultado se redondean siempre hacia +inf en el punto medio.
    """
    factor = 10 ** decimals
    return math.floor(value * factor + 0.5) / factor


def round1(value: float) -> float:
    return round_half_up(value, 1)


def round3(value: float) -> float:
    return round_half_up(value, 3)


def sigmoid(value: float) -> float:
    """Función logística 1 / (1 + e^-x)"""
    return 1.0 / (1.0 + math.exp(-value))


def stable_sigmoid(value: float) -> float:
    """Logística sin overflow para valores muy negativos"""
    if value >= 0:
        z = math.exp(-value)
        return 1.0 / (1.0 + z)
    z = math.exp(value)
    return z / (1.0 + z)


def logit(probability01: float) -> float:
    p = clamp(probability01, 1e-9, 1 - 1e-9)
    return math.log(p / (1 - p))


def sign(value: Optional[float], eps: float = 0.0) -> int:
    """Signo -1/0/1; None, no finitos y |x| <= eps cuentan como 0"""
    if not is_finite_number(value) or abs(value) <= eps:
        return 0
    return 1 if value > 0 else -1


# ==================== ESTADÍSTICOS ====================


def mean(values: Sequence[float]) -> float:
    """Media aritmética (0 para secuencias vacías)"""
    if not values:
        return 0.0
    return float(np.mean(values))


def sample_sd(values: Sequence[float], empty_value: float = 0.0) -> float:
    """
    Desviación típica muestral (n - 1)

    Args:
        values: Serie de valores
        empty_value: Valor devuelto con menos de 2 observaciones

    Returns:
        Desviación típica muestral
    """
    if len(values) < 2:
        return empty_value
    return float(np.std(values, ddof=1))


def population_sd(values: Sequence[float]) -> float:
    """Desviación típica poblacional (n); 0 para secuencias vacías"""
    if not values:
        return 0.0
    return float(np.std(values))


def finite_values(values: Iterable[Optional[float]]) -> List[float]:
    """Filtra None y valores no finitos manteniendo el orden"""
    return [value for value in values if is_finite_number(value)]


def normalize_weights(weights: Sequence[float]) -> List[float]:
    """
    Normaliza pesos para que sumen 1

    Los pesos no finitos o negativos cuentan como 0. Devuelve lista vacía si
    ningún peso es positivo.
    """
    clean = [w if is_finite_number(w) and w > 0 else 0.0 for w in weights]
    total = sum(clean)
    if total <= 0:
        return []
    return [w / total for w in clean]


# ==================== LOGGING / PRESENTACIÓN ====================


def setup_logging(level: str = "INFO", log_dir: Optional[Path] = None) -> None:
    """
    Configura logging básico del proyecto

    Args:
        level: Nivel de logging (DEBUG, INFO, WARNING...)
        log_dir: Si se indica, también escribe en log_dir/tennis_ensemble.log
    """
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_dir / "tennis_ensemble.log", encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )


def format_probability(value: Optional[float], decimals: int = 1) -> str:
    """
    Formatea una probabilidad 0-100 o "-" si no está disponible

    Args:
        value: Probabilidad en escala 0-100
        decimals: Decimales a mostrar

    Returns:
        String formateado (ej: "61.4")
    """
    if not is_finite_number(value):
        return "-"
    return f"{value:.{decimals}f}"


def print_header(title: str, emoji: str = "📊", width: int = 60):
    """Imprime header consistente"""
    print("\n" + "=" * width)
    print(f"{emoji} {title}")
    print("=" * width)
