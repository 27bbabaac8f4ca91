"""
Tennis Ensemble Predictor
=========================

Ensemble determinista de modelos para predecir partidos de tenis a partir de
las estadísticas técnicas (stable14) de los últimos partidos de cada jugador.
"""

__version__ = "0.1.0"
