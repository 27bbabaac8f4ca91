"""
Forma reciente del jugador
==========================

Resume los últimos resultados del perfil (victoria/derrota y margen de sets)
en una puntuación ponderada por recencia en [-1, 1]. La usa el modelo sombra
Hybrid Form+Stats.
"""

import re
from typing import List, Optional, Sequence

from tennis_ensemble.api.models import PlayerRecentFormSummary, RecentMatchRef
from tennis_ensemble.config.settings import Config
from tennis_ensemble.utils.common import clamp, is_finite_number

DEFAULT_FORM_WINDOW = 8
MAX_FORM_WINDOW = 20
FORM_SOURCE = "profile_results_flashscore_v1"

# W/L y equivalentes cirílicos (В = victoria, П = derrota)
_RESULT_MARKER = re.compile(r"(?:^|\s)([WLVПВ])(?:\s|$)", re.IGNORECASE)
_LEADING_SCORE = re.compile(r"^(\d+)\s*-\s*(\d+)")


def _normalize_whitespace(text: Optional[str]) -> str:
    return " ".join((text or "").split())


def default_form_window() -> int:
    """Ventana de Config.FORM_WINDOW; 8 si está fuera de [1, 20]"""
    window = Config.FORM_WINDOW
    if not is_finite_number(window) or window <= 0 or window > MAX_FORM_WINDOW:
        return DEFAULT_FORM_WINDOW
    return int(window)


def normalize_window(value: Optional[int]) -> int:
    """Ventana solicitada acotada a [1, 20]; la de configuración si no es válida"""
    if not is_finite_number(value):
        return default_form_window()
    n = int(value)
    if n <= 0:
        return default_form_window()
    return min(n, MAX_FORM_WINDOW)


def recency_weights(count: int) -> List[float]:
    """Pesos lineales de 1.0 (más reciente) a 0.44, redondeados a 4 decimales"""
    if count <= 0:
        return []
    if count == 1:
        return [1.0]
    start, end = 1.0, 0.44
    step = (start - end) / (count - 1)
    return [float(f"{start - step * i:.4f}") for i in range(count)]


def extract_result_marker_sign(result_text: Optional[str]) -> Optional[int]:
    """1 para victoria, -1 para derrota, None si no hay marcador"""
    text = _normalize_whitespace(result_text)
    if not text:
        return None
    match = _RESULT_MARKER.search(text)
    if not match:
        return None
    marker = match.group(1).upper()
    if marker in ("W", "В"):
        return 1
    if marker in ("L", "П"):
        return -1
    return None


def parse_set_margin_norm(score_text: Optional[str], win_sign: int) -> Optional[float]:
    """Margen de sets normalizado (|a - b| / 2) con el signo del resultado"""
    text = _normalize_whitespace(score_text)
    if not text:
        return None
    score = _LEADING_SCORE.match(text)
    if not score:
        return None
    left = int(score.group(1))
    right = int(score.group(2))
    return win_sign * clamp(abs(left - right) / 2, 0, 1)


def build_player_recent_form_summary(
    matches: Sequence[RecentMatchRef], window: Optional[int] = None
) -> PlayerRecentFormSummary:
    """
    Construye el resumen de forma reciente

    Args:
        matches: Partidos del perfil, del más reciente al más antiguo
        window: Partidos a considerar (por defecto Config.FORM_WINDOW, máximo 20)

    Returns:
        PlayerRecentFormSummary con weighted_score en [-1, 1]
    """
    window_requested = normalize_window(window)
    weights = recency_weights(window_requested)

    wins = 0
    losses = 0
    usable_matches = 0
    unparsed_score_rows = 0
    weighted_sum = 0.0
    weighted_den = 0.0

    for index, match in enumerate(matches[:window_requested]):
        win_sign = extract_result_marker_sign(match.result_text)
        if not win_sign:
            continue

        weight = weights[index] if index < len(weights) else weights[-1]
        set_margin = parse_set_margin_norm(match.score_text, win_sign)
        if _normalize_whitespace(match.score_text) and set_margin is None:
            unparsed_score_rows += 1

        match_form = clamp(0.8 * win_sign + 0.2 * (set_margin or 0.0), -1, 1)
        weighted_sum += match_form * weight
        weighted_den += weight
        usable_matches += 1
        if win_sign > 0:
            wins += 1
        else:
            losses += 1

    weighted_score = clamp(weighted_sum / weighted_den, -1, 1) if weighted_den > 0 else 0.0

    return PlayerRecentFormSummary(
        window_requested=window_requested,
        window_used=usable_matches,
        wins=wins,
        losses=losses,
        weighted_score=weighted_score,
        usable_matches=usable_matches,
        unparsed_score_rows=unparsed_score_rows,
        source=FORM_SOURCE,
    )
