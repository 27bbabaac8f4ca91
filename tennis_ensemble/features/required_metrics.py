"""
Métricas stable14
=================

Extrae las 14 métricas obligatorias de las estadísticas técnicas de un partido.

Una fila solo es usable si las 14 métricas están presentes; si falta alguna,
el partido completo se descarta (nunca se pasan filas parciales a los modelos).
"""

import logging
import re
from typing import Dict, List, Optional, Tuple

from tennis_ensemble.api.models import (
    FeatureRow,
    HistoricalMatchTechStats,
    MetricValue,
    PlayerRecentStats,
)
from tennis_ensemble.features.metric_normalization import metric_quality, metric_value_to_number
from tennis_ensemble.utils.common import is_finite_number

logger = logging.getLogger(__name__)

REQUIRED_METRIC_KEYS = (
    "first_serve",
    "first_serve_points_won",
    "second_serve_points_won",
    "break_points_saved",
    "double_faults",
    "first_serve_return_points_won",
    "second_serve_return_points_won",
    "break_points_converted",
    "total_service_points_won",
    "return_points_won",
    "total_points_won",
    "service_games_won",
    "return_games_won",
    "total_games_won",
)

COUNT_METRICS = frozenset({"double_faults"})

KEY_ALIASES = {
    "first_serve": "first_serve",
    "1st_serve": "first_serve",
    "1st_serve_percentage": "first_serve",
    "first_serve_percentage": "first_serve",
    "first_serve_points_won": "first_serve_points_won",
    "1st_serve_points_won": "first_serve_points_won",
    "second_serve_points_won": "second_serve_points_won",
    "2nd_serve_points_won": "second_serve_points_won",
    "break_points_saved": "break_points_saved",
    "double_fault": "double_faults",
    "double_faults": "double_faults",
    "first_serve_return_points_won": "first_serve_return_points_won",
    "1st_serve_return_points_won": "first_serve_return_points_won",
    "1st_return_points_won": "first_serve_return_points_won",
    "second_serve_return_points_won": "second_serve_return_points_won",
    "2nd_serve_return_points_won": "second_serve_return_points_won",
    "2nd_return_points_won": "second_serve_return_points_won",
    "break_points_converted": "break_points_converted",
    "break_points_conversion": "break_points_converted",
    "break_points_conversions": "break_points_converted",
    "service_games_won": "service_games_won",
    "service_points_won": "total_service_points_won",
    "total_service_points_won": "total_service_points_won",
    "return_games_won": "return_games_won",
    "return_points_won": "return_points_won",
    "total_return_points_won": "return_points_won",
    "total_points_won": "total_points_won",
    "total_games_won": "total_games_won",
}

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def _to_alias_key(raw: Optional[str]) -> Optional[str]:
    key = " ".join((raw or "").split()).lower()
    key = _NON_ALNUM.sub("_", key).strip("_")
    if not key:
        return None
    return KEY_ALIASES.get(key)


def canonical_metric_key(metric_key: str, metric_label: Optional[str] = None) -> Optional[str]:
    """
    Resuelve la clave stable14 de una fila técnica

    Args:
        metric_key: Clave de la fila (se intenta primero)
        metric_label: Etiqueta visible (respaldo)

    Returns:
        Clave canónica o None si la métrica no es stable14
    """
    direct = _to_alias_key(metric_key)
    if direct:
        return direct
    return _to_alias_key(metric_label)


def _metric_to_number(value: MetricValue, key: str) -> Optional[float]:
    return metric_value_to_number(value, is_count_metric=key in COUNT_METRICS, smooth_ratio=True)


def _best_values(match: HistoricalMatchTechStats, side: str) -> Dict[str, float]:
    """Mejor valor por clave (mayor calidad estricta) de un lado de la tabla"""
    out: Dict[str, float] = {}
    quality_by_key: Dict[str, float] = {}
    for row in match.rows:
        key = canonical_metric_key(row.metric_key, row.metric_label)
        if not key:
            continue
        value = row.player_value if side == "player" else row.opponent_value
        numeric = _metric_to_number(value, key)
        if not is_finite_number(numeric):
            continue
        quality = metric_quality(value)
        if quality <= quality_by_key.get(key, -1):
            continue
        out[key] = numeric
        quality_by_key[key] = quality
    return out


def extract_feature_row_diagnostics(match: HistoricalMatchTechStats) -> Tuple[Dict[str, float], List[str]]:
    """
    Extrae las métricas del jugador con diagnóstico

    Returns:
        (valores parciales por clave, claves que faltan)
    """
    values = _best_values(match, "player")
    missing = [key for key in REQUIRED_METRIC_KEYS if key not in values]
    return values, missing


def extract_feature_row(match: HistoricalMatchTechStats) -> Optional[FeatureRow]:
    """Fila stable14 del jugador o None si falta alguna métrica"""
    values, missing = extract_feature_row_diagnostics(match)
    if missing:
        logger.debug(f"Partido descartado {match.match_url}: faltan {missing}")
        return None
    return FeatureRow(match_url=match.match_url, **values)


def extract_feature_pair(match: HistoricalMatchTechStats) -> Optional[Tuple[FeatureRow, FeatureRow]]:
    """
    Filas stable14 del jugador y de su rival en un mismo partido

    Returns:
        (fila jugador, fila rival) o None si cualquiera de los dos lados está incompleto
    """
    player = _best_values(match, "player")
    opponent = _best_values(match, "opponent")
    for key in REQUIRED_METRIC_KEYS:
        if key not in player or key not in opponent:
            return None
    return (
        FeatureRow(match_url=match.match_url, **player),
        FeatureRow(match_url=match.match_url, **opponent),
    )


def collect_feature_rows(stats: PlayerRecentStats) -> List[FeatureRow]:
    """Filas usables del historial, en orden (más reciente primero)"""
    rows = []
    for match in stats.parsed_matches:
        row = extract_feature_row(match)
        if row is not None:
            rows.append(row)
    return rows
