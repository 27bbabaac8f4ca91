"""
Desempate determinista
======================

Cuando un modelo queda exactamente en 50/50 el ganador se decide por la cuota
más baja y, si no hay cuotas válidas distintas, por un hash FNV-1a de 32 bits
de la semilla. Nunca se usa hash() de Python ni aleatoriedad: el mismo partido
produce siempre el mismo ganador.
"""

from typing import Dict, Optional

from tennis_ensemble.utils.common import is_finite_number

FNV_OFFSET_BASIS = 2166136261
FNV_PRIME = 16777619
_UINT32_MASK = 0xFFFFFFFF


def _is_valid_odd(value: Optional[float]) -> bool:
    return is_finite_number(value) and value > 0


def _utf16_code_units(text: str):
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        yield data[i] | (data[i + 1] << 8)


def stable_hash(text: str) -> int:
    """FNV-1a de 32 bits sobre las unidades UTF-16 del texto"""
    value = FNV_OFFSET_BASIS
    for code_unit in _utf16_code_units(text):
        value ^= code_unit
        value = (value * FNV_PRIME) & _UINT32_MASK
    return value


def pick_by_odds_or_seed(
    player_a: str,
    player_b: str,
    home_odd: Optional[float],
    away_odd: Optional[float],
    seed: str,
) -> Dict[str, str]:
    """
    Elige ganador en un empate exacto

    Args:
        player_a: Nombre del jugador A (local)
        player_b: Nombre del jugador B (visitante)
        home_odd: Cuota decimal de A
        away_odd: Cuota decimal de B
        seed: Semilla del hash ("A|B" si está vacía)

    Returns:
        Dict con winner y reason ("odds" o "seed")
    """
    if _is_valid_odd(home_odd) and _is_valid_odd(away_odd) and home_odd != away_odd:
        return {
            "winner": player_a if home_odd < away_odd else player_b,
            "reason": "odds",
        }

    key = seed or f"{player_a}|{player_b}"
    pick_a = stable_hash(key) % 2 == 0
    return {
        "winner": player_a if pick_a else player_b,
        "reason": "seed",
    }


def winner_from_probability(
    p1: float,
    player_a: str,
    player_b: str,
    home_odd: Optional[float],
    away_odd: Optional[float],
    seed: str,
) -> str:
    """Ganador según P1; en 50 exacto se aplica el desempate"""
    if p1 > 50:
        return player_a
    if p1 < 50:
        return player_b
    return pick_by_odds_or_seed(player_a, player_b, home_odd, away_odd, seed)["winner"]
