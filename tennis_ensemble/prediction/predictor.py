"""
Predictor del ensemble
======================

Orquesta todos los modelos para un partido:

1. Extrae las filas stable14 de cada jugador
2. Ensemble del núcleo por parejas (LogReg, Markov, Bradley, PCA)
3. Modelos sombra (Nova Edge, Hybrid, Mahalanobis, Matchup, Market-Residual)
4. Decisión de estado del jugador (v2 / v3)
5. Ganador, confianza, warnings y data_status

Uso:
    from tennis_ensemble.prediction import MatchPredictor

    predictor = MatchPredictor()
    resultado = predictor.predict(context, stats_a, stats_b)
"""

import logging
from typing import Dict, Iterable, Optional, Tuple

import pandas as pd

from tennis_ensemble.api.models import (
    DirtSummary,
    MatchContext,
    ModelResult,
    ModelSummary,
    PclassSnapshot,
    PclassSource,
    PlayerPair,
    PlayerRecentStats,
    PredictionResult,
    StateDecisionSummary,
    StatsCoverage,
)
from tennis_ensemble.config.settings import Config
from tennis_ensemble.features.player_state_indices import apply_pair_state_contrast, build_player_state_series
from tennis_ensemble.features.required_metrics import collect_feature_rows
from tennis_ensemble.prediction.calibration import CORE_MODELS
from tennis_ensemble.prediction.confidence import compute_confidence_score
from tennis_ensemble.prediction.ensemble import build_ensemble_from_probability, build_modules
from tennis_ensemble.prediction.errors import PredictionError
from tennis_ensemble.prediction.form_stats_hybrid import compute_form_stats_hybrid
from tennis_ensemble.prediction.mahal_edge import compute_mahal_edge
from tennis_ensemble.prediction.market_residual import compute_market_residual
from tennis_ensemble.prediction.matchup_cross import compute_matchup_cross
from tennis_ensemble.prediction.nova_edge import compute_nova_edge
from tennis_ensemble.prediction.pair_models import aggregate_index_pairs
from tennis_ensemble.prediction.state_decision import STATE_DECISION_VARIANTS, compute_state_decision
from tennis_ensemble.prediction.tie_break import pick_by_odds_or_seed
from tennis_ensemble.utils.common import format_probability, ratio, round_half_up

logger = logging.getLogger(__name__)

METRICS_POLICY = "stable14"
CORE_SOURCE = "stable14_pair_core_v1"
PREDICTION_REASON = "Fórmulas stable14 (parejas por índice, 5 historiales técnicos completos)"


# ==================== HELPERS ====================


def build_tie_break_seed(context: MatchContext) -> str:
    """Semilla del desempate: url|A|B"""
    return f"{context.match_url}|{context.player_a_name}|{context.player_b_name}"


def resolve_winner(
    final_p1: float,
    player_a_name: str,
    player_b_name: str,
    home_odd: Optional[float],
    away_odd: Optional[float],
    seed: str,
) -> Tuple[str, Optional[str]]:
    """
    Ganador principal a partir de la probabilidad final

    Returns:
        (ganador, warning) donde warning indica el tipo de desempate o es None
    """
    if final_p1 > 50 + Config.NEUTRAL_EPSILON:
        return player_a_name, None
    if final_p1 < 50 - Config.NEUTRAL_EPSILON:
        return player_b_name, None

    tie_break = pick_by_odds_or_seed(player_a_name, player_b_name, home_odd, away_odd, seed)
    warning = "neutral_model_odds_tiebreak" if tie_break["reason"] == "odds" else "neutral_model_seed_tiebreak"
    return tie_break["winner"], warning


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def resolve_context_pclass(pclass: Optional[PclassSnapshot]) -> PclassSnapshot:
    """Snapshot pclass válido (ev y dep enteros positivos) o uno con source=missing"""
    if (
        pclass is not None
        and pclass.source == PclassSource.MATCH_DV_DATA
        and _is_positive_int(pclass.ev)
        and _is_positive_int(pclass.dep)
    ):
        return PclassSnapshot(ev=pclass.ev, dep=pclass.dep, source=PclassSource.MATCH_DV_DATA)
    return PclassSnapshot(source=PclassSource.MISSING)


def _percent(weight: float) -> str:
    return f"{round_half_up(weight * 100):.0f}%"


def build_data_status(
    requested_per_player: int,
    coverage_a: int,
    coverage_b: int,
    pair_result: Dict,
    player_a_stats: PlayerRecentStats,
    player_b_stats: PlayerRecentStats,
) -> str:
    """Línea de diagnóstico con cobertura, escaneo de historial, pesos y probabilidades"""
    scan_a = player_a_stats.history_scan_stats
    scan_b = player_b_stats.history_scan_stats
    filtered_a = scan_a.filtered if scan_a else None
    filtered_b = scan_b.filtered if scan_b else None

    def scan(stats, field):
        return getattr(stats, field) if stats is not None else 0

    weights = pair_result["weights"]
    probs = pair_result["model_probabilities"]

    return (
        f"metrics_policy={METRICS_POLICY}, "
        f"coverage A {coverage_a}/{requested_per_player}, B {coverage_b}/{requested_per_player}, "
        f"valid_pairs={pair_result['valid_pairs']}/{pair_result['requested_pairs']}, "
        f"scan_count: A {scan(scan_a, 'scanned')}/{scan(scan_a, 'candidate_pool')} "
        f"accepted={scan(scan_a, 'accepted')}, "
        f"B {scan(scan_b, 'scanned')}/{scan(scan_b, 'candidate_pool')} accepted={scan(scan_b, 'accepted')}, "
        f"rejected_incomplete_metrics: A={scan(filtered_a, 'metrics_incomplete')} "
        f"B={scan(filtered_b, 'metrics_incomplete')}, "
        f"non_singles_history: A={scan(filtered_a, 'non_singles_history')} "
        f"B={scan(filtered_b, 'non_singles_history')}, "
        f"tech_missing: A={player_a_stats.missing_stats_count} B={player_b_stats.missing_stats_count}, "
        f"weights: logreg={_percent(weights['log_reg'])} markov={_percent(weights['markov'])} "
        f"bradley={_percent(weights['bradley'])} pca={_percent(weights['pca'])}, "
        f"model_probs: logreg={format_probability(probs['log_reg'])} markov={format_probability(probs['markov'])} "
        f"bradley={format_probability(probs['bradley'])} pca={format_probability(probs['pca'])} "
        f"final={format_probability(probs['final'])}"
    )


def _core_model_results(
    pair_result: Dict,
    player_a_name: str,
    player_b_name: str,
    home_odd: Optional[float],
    away_odd: Optional[float],
    seed: str,
) -> Dict[str, ModelResult]:
    out = {}
    probs = pair_result["model_probabilities"]
    for name in CORE_MODELS:
        p1 = probs.get(name)
        components = {
            "weight": pair_result["weights"][name],
            "reliability": pair_result["reliabilities"][name],
            "valid_pair_outputs": float(pair_result["valid_pair_outputs"][name]),
        }
        if pair_result["stability"].get(name) is not None:
            components["stability"] = pair_result["stability"][name]

        if p1 is None:
            out[name] = ModelResult(source=CORE_SOURCE, warnings=[f"{name}_unavailable"], components=components)
            continue

        winner, _ = resolve_winner(p1, player_a_name, player_b_name, home_odd, away_odd, seed)
        out[name] = ModelResult(p1=p1, p2=100 - p1, winner=winner, source=CORE_SOURCE, components=components)
    return out


# ==================== PREDICTOR ====================


class MatchPredictor:
    """
    Predictor de partidos con el ensemble completo

    Sin estado mutable entre predicciones: la misma entrada produce siempre
    el mismo resultado (salvo created_at).
    """

    def __init__(
        self,
        requested_pairs: Optional[int] = None,
        state_variant: Optional[str] = None,
        apply_contrast: Optional[bool] = None,
    ):
        """
        Args:
            requested_pairs: Partidos por jugador (default: Config.REQUESTED_PAIRS)
            state_variant: Variante de decisión de estado, v2 o v3 (default: Config)
            apply_contrast: Aplicar contraste por pareja a las series de estado

        Raises:
            ValueError: Si requested_pairs no es positivo o la variante no existe
        """
        self.requested_pairs = Config.REQUESTED_PAIRS if requested_pairs is None else requested_pairs
        self.state_variant = (state_variant or Config.STATE_DECISION_VARIANT).lower()
        self.apply_contrast = Config.APPLY_PAIR_STATE_CONTRAST if apply_contrast is None else apply_contrast

        if self.requested_pairs <= 0:
            raise ValueError(f"requested_pairs debe ser positivo (actual: {self.requested_pairs})")
        if self.state_variant not in STATE_DECISION_VARIANTS:
            raise ValueError(f"Variante de decisión de estado desconocida: {self.state_variant}")

        logger.debug(
            f"MatchPredictor: parejas={self.requested_pairs}, variante={self.state_variant}, "
            f"contraste={self.apply_contrast}"
        )

    def _state_decision(
        self, context: MatchContext, player_a_stats: PlayerRecentStats, player_b_stats: PlayerRecentStats
    ) -> StateDecisionSummary:
        series_a = build_player_state_series(player_a_stats.state_features)
        series_b = build_player_state_series(player_b_stats.state_features)
        if self.apply_contrast:
            series_a, series_b = apply_pair_state_contrast(series_a, series_b)
        return compute_state_decision(
            context.player_a_name, context.player_b_name, series_a, series_b, variant=self.state_variant
        )

    def predict(
        self, context: MatchContext, player_a_stats: PlayerRecentStats, player_b_stats: PlayerRecentStats
    ) -> PredictionResult:
        """
        Predicción completa de un partido

        Args:
            context: Contexto del partido (jugadores, cuotas, pclass)
            player_a_stats: Historial reciente del jugador A (local)
            player_b_stats: Historial reciente del jugador B (visitante)

        Returns:
            PredictionResult con el resultado de todos los modelos
        """
        requested = self.requested_pairs
        name_a = context.player_a_name
        name_b = context.player_b_name
        home_odd = context.home_odd
        away_odd = context.away_odd
        seed = build_tie_break_seed(context)

        rows_a = collect_feature_rows(player_a_stats)
        rows_b = collect_feature_rows(player_b_stats)
        pair_result = aggregate_index_pairs(rows_a, rows_b, requested)
        probabilities = pair_result["model_probabilities"]
        final_p1 = probabilities["final"]

        # Modelos sombra: nunca intervienen en final_p1
        nova_edge = compute_nova_edge(rows_a, rows_b, name_a, name_b, home_odd, away_odd, seed)
        shadow_args = (player_a_stats, player_b_stats, name_a, name_b, requested, home_odd, away_odd, seed)
        hybrid_shadow = compute_form_stats_hybrid(*shadow_args)
        mahal_shadow = compute_mahal_edge(*shadow_args)
        matchup_shadow = compute_matchup_cross(*shadow_args)
        market_residual_shadow = compute_market_residual(*shadow_args)
        state_decision = self._state_decision(context, player_a_stats, player_b_stats)

        modules = build_modules(probabilities)
        ensemble = build_ensemble_from_probability(modules, final_p1)

        warnings = [f"{name_a}: {error}" for error in player_a_stats.errors]
        warnings.extend(f"{name_b}: {error}" for error in player_b_stats.errors)
        warnings.extend(pair_result["warnings"])
        warnings.extend(nova_edge.warnings)
        pairs_warning = f"valid_pairs={pair_result['valid_pairs']}/{pair_result['requested_pairs']}"
        if pair_result["valid_pairs"] != pair_result["requested_pairs"] and pairs_warning not in warnings:
            warnings.append(pairs_warning)

        winner, tie_warning = resolve_winner(final_p1, name_a, name_b, home_odd, away_odd, seed)
        if tie_warning:
            warnings.append(tie_warning)

        coverage_a = len(rows_a)
        coverage_b = len(rows_b)
        core_probabilities = {name: probabilities.get(name) for name in CORE_MODELS}
        confidence = compute_confidence_score(
            final_p1,
            ensemble.active,
            pair_result["valid_pairs"],
            requested,
            coverage_a,
            coverage_b,
            core_probabilities,
        )

        pclass = resolve_context_pclass(context.pclass)
        if pclass.source == PclassSource.MISSING:
            warnings.append("pclass_missing_dv_data")

        if pair_result["valid_pairs"] < requested:
            logger.warning(
                f"⚠️  {context.match_url}: cobertura baja ({pair_result['valid_pairs']}/{requested} parejas)"
            )
        logger.info(
            f"✅ {name_a} vs {name_b}: ganador={winner}, P1={final_p1:.1f}, confianza={confidence:.3f}"
        )

        model_summary = ModelSummary(
            modules=modules,
            ensemble=ensemble,
            rating5=PlayerPair(player_a=final_p1, player_b=100 - final_p1),
            reliability=PlayerPair(player_a=ratio(coverage_a, requested), player_b=ratio(coverage_b, requested)),
            dirt=DirtSummary(
                valid_pairs=pair_result["valid_pairs"],
                requested_pairs=pair_result["requested_pairs"],
                model_probabilities=probabilities,
                weights=pair_result["weights"],
                reliabilities=pair_result["reliabilities"],
                stability=pair_result["stability"],
                pclass=pclass,
            ),
            core=_core_model_results(pair_result, name_a, name_b, home_odd, away_odd, seed),
            nova_edge=nova_edge,
            hybrid_shadow=hybrid_shadow,
            mahal_shadow=mahal_shadow,
            matchup_shadow=matchup_shadow,
            market_residual_shadow=market_residual_shadow,
            state_decision=state_decision,
        )

        return PredictionResult(
            match_url=context.match_url,
            match_label=context.match_label,
            tournament=context.tournament,
            match_status=context.status,
            scheduled_start_text=context.scheduled_start_text,
            player_a_name=name_a,
            player_b_name=name_b,
            market_odds=context.market_odds,
            predicted_winner=winner,
            confidence=confidence,
            reason=PREDICTION_REASON,
            stats_coverage=StatsCoverage(
                requested_per_player=requested,
                player_a_collected=coverage_a,
                player_b_collected=coverage_b,
            ),
            data_status=build_data_status(
                requested, coverage_a, coverage_b, pair_result, player_a_stats, player_b_stats
            ),
            model_summary=model_summary,
            warnings=warnings,
        )

    def predict_batch(
        self, matches: Iterable[Tuple[MatchContext, PlayerRecentStats, PlayerRecentStats]]
    ) -> pd.DataFrame:
        """
        Predice una lista de partidos

        Un fallo en un partido no detiene el lote: se registra con ❌ y la fila
        queda con la columna error rellena.

        Args:
            matches: Iterable de (context, stats_a, stats_b)

        Returns:
            DataFrame con una fila resumen por partido
        """
        resultados = []

        for context, player_a_stats, player_b_stats in matches:
            try:
                result = self.predict(context, player_a_stats, player_b_stats)
            except Exception as e:
                error = PredictionError(context.match_url, str(e))
                logger.error(f"❌ Error prediciendo {error}")
                resultados.append(
                    {
                        "match_url": context.match_url,
                        "player_a": context.player_a_name,
                        "player_b": context.player_b_name,
                        "error": str(error),
                    }
                )
                continue

            summary = result.model_summary
            resultados.append(
                {
                    "match_url": result.match_url,
                    "player_a": result.player_a_name,
                    "player_b": result.player_b_name,
                    "predicted_winner": result.predicted_winner,
                    "final_p1": result.final_p1,
                    "confidence": result.confidence,
                    "valid_pairs": summary.dirt.valid_pairs,
                    "nova_p1": summary.nova_edge.p1,
                    "hybrid_p1": summary.hybrid_shadow.p1,
                    "mahal_p1": summary.mahal_shadow.p1,
                    "matchup_p1": summary.matchup_shadow.p1,
                    "market_residual_p1": summary.market_residual_shadow.p1,
                    "state_winner": summary.state_decision.winner,
                    "n_warnings": len(result.warnings),
                    "error": None,
                }
            )

        df = pd.DataFrame(resultados)
        logger.info(f"📊 Lote completado: {len(df)} partidos")
        return df
