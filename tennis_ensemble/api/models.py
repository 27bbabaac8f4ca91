"""
Modelos Pydantic del contrato de entrada/salida del ensemble
============================================================

Estos modelos representan los datos que el ensemble recibe del recolector de
historial (estadísticas técnicas por partido, forma reciente, features de
estado) y el resultado que entrega a los consumidores (notificadores,
auditoría, backtesting).

Estructura:
- Entrada: MetricValue, TechStatRow, HistoricalMatchTechStats, PlayerRecentStats,
  MatchContext, MatchOdds, PclassSnapshot
- Features: FeatureRow, PlayerRecentFormSummary, PlayerStateFeature, PlayerStateSeries
- Salida: ModelResult, StateDecisionSummary, ModuleResult, EnsembleMeta,
  DirtSummary, ModelSummary, PredictionResult

Los nombres de campo y las etiquetas `source` de la salida son un contrato
versionado: un cambio de fórmula implica una etiqueta nueva.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field


# ============================================================
# ENUMS
# ============================================================

class MatchStatus(str, Enum):
    """Estado del partido"""
    UPCOMING = "upcoming"
    LIVE = "live"
    FINISHED = "finished"
    UNKNOWN = "unknown"


class PlayerColumn(str, Enum):
    """Columna del jugador en la tabla de estadísticas"""
    LEFT = "left"
    RIGHT = "right"
    UNKNOWN = "unknown"


class PclassSource(str, Enum):
    MATCH_DV_DATA = "match_dv_data"
    MISSING = "missing"


class ModuleSide(str, Enum):
    """Lado favorecido por un módulo"""
    HOME = "home"
    AWAY = "away"
    NEUTRAL = "neutral"


class StateDecisionReasonTag(str, Enum):
    """Etiquetas que explican la decisión de estado"""
    FORM_PLUS = "FORM_PLUS"
    FORM_TECH = "FORM_TECH"
    STABILITY = "STABILITY"
    STRENGTH = "STRENGTH"
    LOW_COVERAGE = "LOW_COVERAGE"
    LOW_EDGE = "LOW_EDGE"
    MIXED = "MIXED"
    CONSENSUS = "CONSENSUS"
    MOMENTUM_UP = "MOMENTUM_UP"
    MOMENTUM_DOWN = "MOMENTUM_DOWN"


# ============================================================
# ESTADÍSTICAS TÉCNICAS (ENTRADA)
# ============================================================

class MetricValue(BaseModel):
    """Valor crudo de una métrica: porcentaje, ratio made/total o ambos"""
    raw: str = Field("", description="Texto original de la celda")
    percent: Optional[float] = Field(None, description="Porcentaje (0-1 o 0-100)")
    made: Optional[float] = Field(None, description="Numerador del ratio")
    total: Optional[float] = Field(None, description="Denominador del ratio")


class TechStatRow(BaseModel):
    """Fila de la tabla de estadísticas técnicas de un partido"""
    section: str = ""
    metric_label: str = Field(..., description="Etiqueta visible de la métrica")
    metric_key: str = Field("", description="Clave normalizada de la métrica")
    player_value: MetricValue
    opponent_value: MetricValue


class HistoricalMatchTechStats(BaseModel):
    """Estadísticas técnicas de un partido histórico de un jugador"""
    match_url: str
    match_title: Optional[str] = None
    player_name: str
    source_player_side: PlayerColumn = PlayerColumn.UNKNOWN
    rows: List[TechStatRow] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class RecentMatchRef(BaseModel):
    """Referencia a un partido reciente del perfil del jugador"""
    url: str = ""
    opponent_name: Optional[str] = None
    date_text: Optional[str] = None
    tournament: Optional[str] = None
    result_text: Optional[str] = Field(None, description="Marcador de resultado (W/L)")
    score_text: Optional[str] = Field(None, description="Marcador (ej: '2-0 6-4 6-3')")
    match_id: Optional[str] = None


class HistoryScanFiltered(BaseModel):
    """Contadores de partidos descartados durante el escaneo de historial"""
    same_as_target_match: int = 0
    non_singles: int = 0
    non_singles_history: int = 0
    not_finished: int = 0
    future: int = 0
    invalid: int = 0
    tech_missing: int = 0
    metrics_incomplete: int = 0
    parse_error: int = 0


class HistoryScanStats(BaseModel):
    candidate_pool: int = 0
    scanned: int = 0
    accepted: int = 0
    filtered: HistoryScanFiltered = Field(default_factory=HistoryScanFiltered)


# ============================================================
# FEATURES
# ============================================================

class FeatureRow(BaseModel):
    """
    Fila stable14: las 14 métricas de un partido

    Porcentajes en escala 0-100 salvo double_faults, que es un conteo.
    Una fila solo existe si las 14 métricas están presentes.
    """
    match_url: str = ""
    first_serve: float
    first_serve_points_won: float
    second_serve_points_won: float
    break_points_saved: float
    double_faults: float
    first_serve_return_points_won: float
    second_serve_return_points_won: float
    break_points_converted: float
    total_service_points_won: float
    return_points_won: float
    total_points_won: float
    service_games_won: float
    return_games_won: float
    total_games_won: float

    def value(self, key: str) -> float:
        """Valor de una métrica por nombre"""
        return getattr(self, key)


class PlayerRecentFormSummary(BaseModel):
    """Resumen de forma reciente (victorias/derrotas ponderadas por recencia)"""
    window_requested: int
    window_used: int
    wins: int
    losses: int
    weighted_score: float = Field(..., description="Puntuación de forma en [-1, 1]")
    usable_matches: int
    unparsed_score_rows: int = 0
    source: str = "profile_results_flashscore_v1"


class PlayerStateFeature(BaseModel):
    """Feature por partido para el modelo de estado del jugador"""
    match_url: str
    candidate_index: int = Field(..., ge=0, description="Posición en el historial (0 = más reciente)")
    tournament: Optional[str] = None
    result_text: Optional[str] = None
    score_text: Optional[str] = None
    serve_core: float
    return_core: float
    control_core: float
    discipline_core: float
    tpw_core: float
    opp_stats_q01: Optional[float] = None
    opp_strength_composite: Optional[float] = None
    tier_score: float = 0.5
    qualifying: bool = False


class WindowSeries(BaseModel):
    """Valores de un índice en las ventanas de 10, 5 y 3 partidos"""
    w10: Optional[float] = None
    w5: Optional[float] = None
    w3: Optional[float] = None


class PlayerStateSeries(BaseModel):
    """Índices de estado por ventana de un jugador"""
    n_tech: int = 0
    has_w10: bool = False
    has_w5: bool = False
    has_w3: bool = False
    degraded_w10: bool = False
    degraded_w5: bool = False
    degraded_w3: bool = False
    stability: WindowSeries = Field(default_factory=WindowSeries)
    form_tech: WindowSeries = Field(default_factory=WindowSeries)
    form_plus: WindowSeries = Field(default_factory=WindowSeries)
    strength: WindowSeries = Field(default_factory=WindowSeries)


class PlayerRecentStats(BaseModel):
    """
    Historial reciente de un jugador tal como lo entrega el recolector

    parsed_matches está ordenado del más reciente al más antiguo.
    """
    player_name: str
    profile_url: Optional[str] = None
    parsed_matches: List[HistoricalMatchTechStats] = Field(default_factory=list)
    missing_stats_count: int = 0
    history_scan_stats: Optional[HistoryScanStats] = None
    errors: List[str] = Field(default_factory=list)
    recent_form: Optional[PlayerRecentFormSummary] = None
    state_features: List[PlayerStateFeature] = Field(default_factory=list)


# ============================================================
# CONTEXTO DEL PARTIDO
# ============================================================

class MatchOdds(BaseModel):
    """Cuotas decimales de mercado"""
    home: Optional[float] = Field(None, description="Cuota jugador A")
    away: Optional[float] = Field(None, description="Cuota jugador B")
    bookmaker: Optional[str] = None
    stage: Optional[str] = None


class PclassSnapshot(BaseModel):
    ev: Optional[int] = None
    dep: Optional[int] = None
    source: PclassSource = PclassSource.MISSING


class MatchContext(BaseModel):
    """Identidad del partido a predecir (inmutable)"""
    match_url: str
    match_label: str = ""
    tournament: Optional[str] = None
    status: MatchStatus = MatchStatus.UNKNOWN
    scheduled_start_text: Optional[str] = None
    player_a_name: str
    player_b_name: str
    market_odds: Optional[MatchOdds] = None
    pclass: Optional[PclassSnapshot] = None

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "match_url": "https://example.com/match/abc123",
                "match_label": "C. Alcaraz vs J. Sinner",
                "tournament": "ATP Masters 1000 Madrid",
                "status": "upcoming",
                "player_a_name": "C. Alcaraz",
                "player_b_name": "J. Sinner",
                "market_odds": {"home": 1.85, "away": 1.95},
            }
        }

    @property
    def home_odd(self) -> Optional[float]:
        return self.market_odds.home if self.market_odds else None

    @property
    def away_odd(self) -> Optional[float]:
        return self.market_odds.away if self.market_odds else None


# ============================================================
# RESULTADOS DE MODELOS
# ============================================================

class ModelResult(BaseModel):
    """
    Resultado uniforme de cualquier modelo (núcleo o sombra)

    p1 es la probabilidad (0-100) de que gane el jugador A y p1 + p2 = 100.
    p1 es None solo cuando un modelo del núcleo no está disponible.
    """
    p1: Optional[float] = None
    p2: Optional[float] = None
    winner: Optional[str] = None
    source: str
    warnings: List[str] = Field(default_factory=list)
    components: Dict[str, float] = Field(default_factory=dict)

    class Config:
        frozen = True

    @property
    def available(self) -> bool:
        return self.p1 is not None


class StateDecisionSummary(ModelResult):
    """Decisión del modelo de estado; winner es None cuando se abstiene"""
    reliability: float = 0.0
    raw_diff: Optional[float] = None
    score_a: Optional[float] = None
    score_b: Optional[float] = None
    consensus: Optional[float] = None
    conflict_index: Optional[float] = None
    anchor_diff: Optional[float] = None
    form_diff: Optional[float] = None
    effective_diff: Optional[float] = None
    abstained: bool = False
    reason_tags: List[StateDecisionReasonTag] = Field(default_factory=list)
    votes: Dict[str, int] = Field(default_factory=lambda: {"player_a": 0, "player_b": 0})


class ModuleResult(BaseModel):
    """Resumen de un modelo del núcleo como módulo votante"""
    name: str
    side: ModuleSide
    strength: float
    explain: List[str] = Field(default_factory=list)
    flags: List[str] = Field(default_factory=list)


class EnsembleMeta(BaseModel):
    final_side: ModuleSide
    score: float
    votes_home: int = 0
    votes_away: int = 0
    strong_home: int = 0
    strong_away: int = 0
    active: int = 0


class DirtSummary(BaseModel):
    """Detalle del ensemble por parejas (probabilidades, pesos, estabilidad)"""
    valid_pairs: int
    requested_pairs: int
    model_probabilities: Dict[str, Optional[float]]
    weights: Dict[str, float]
    reliabilities: Dict[str, float]
    stability: Dict[str, Optional[float]]
    pclass: PclassSnapshot

    class Config:
        protected_namespaces = ()


class PlayerPair(BaseModel):
    """Valor numérico por jugador"""
    player_a: Optional[float] = None
    player_b: Optional[float] = None


class ModelSummary(BaseModel):
    modules: List[ModuleResult]
    ensemble: EnsembleMeta
    rating5: PlayerPair
    reliability: PlayerPair
    dirt: DirtSummary
    core: Dict[str, ModelResult]
    nova_edge: ModelResult
    hybrid_shadow: ModelResult
    mahal_shadow: ModelResult
    matchup_shadow: ModelResult
    market_residual_shadow: ModelResult
    state_decision: StateDecisionSummary


class StatsCoverage(BaseModel):
    requested_per_player: int
    player_a_collected: int
    player_b_collected: int


class PredictionResult(BaseModel):
    """Resultado completo de una predicción (inmutable)"""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    match_url: str
    match_label: str = ""
    tournament: Optional[str] = None
    match_status: Optional[MatchStatus] = None
    scheduled_start_text: Optional[str] = None
    player_a_name: str
    player_b_name: str
    market_odds: Optional[MatchOdds] = None
    predicted_winner: str
    confidence: float = Field(..., ge=0.5, le=0.92)
    reason: str
    stats_coverage: StatsCoverage
    data_status: str = ""
    model_summary: ModelSummary
    warnings: List[str] = Field(default_factory=list)

    class Config:
        frozen = True
        protected_namespaces = ()

    @property
    def final_p1(self) -> float:
        return self.model_summary.dirt.model_probabilities["final"]
