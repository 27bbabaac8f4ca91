"""
Normalización de métricas técnicas
==================================

Convierte un MetricValue (porcentaje, ratio made/total o ambos) a un número en
escala 0-100, o al conteo bruto para métricas de conteo (double_faults).
"""

from typing import Optional

from tennis_ensemble.api.models import MetricValue
from tennis_ensemble.utils.common import is_finite_number


def metric_value_to_number(
    value: MetricValue, is_count_metric: bool = False, smooth_ratio: bool = True
) -> Optional[float]:
    """
    Convierte un valor de métrica a número

    Los ratios usan suavizado de Laplace (made + 1) / (total + 2) salvo que
    smooth_ratio sea False.

    Args:
        value: Valor crudo de la métrica
        is_count_metric: True para métricas de conteo (se devuelve made tal cual)
        smooth_ratio: Aplicar suavizado de Laplace a los ratios

    Returns:
        Valor en escala 0-100 (o conteo), None si no hay representación usable
    """
    made = value.made
    total = value.total
    if is_finite_number(made) and is_finite_number(total) and total > 0:
        if is_count_metric:
            return made
        if smooth_ratio:
            return ((made + 1) / (total + 2)) * 100
        return (made / total) * 100

    percent = value.percent
    if is_finite_number(percent):
        if is_count_metric:
            return percent
        return percent * 100 if percent <= 1 else percent

    return None


def metric_quality(value: MetricValue) -> float:
    """
    Calidad de una ocurrencia de métrica

    Returns:
        1000 + total para ratios, 100 para solo porcentaje, 0 en otro caso
    """
    if is_finite_number(value.total) and value.total > 0:
        return 1000 + value.total
    if is_finite_number(value.percent):
        return 100
    return 0
