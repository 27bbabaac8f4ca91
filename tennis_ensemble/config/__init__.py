"""
Módulo de Configuración Centralizada
====================================

Este módulo proporciona acceso centralizado a toda la configuración del ensemble.

Uso:
    from tennis_ensemble.config import Config

    # Acceder a configuración
    requested = Config.REQUESTED_PAIRS
    variant = Config.STATE_DECISION_VARIANT
"""

from .settings import Config, ENV_TEMPLATE

__all__ = ['Config', 'ENV_TEMPLATE']
