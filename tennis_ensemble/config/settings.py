"""
Configuración Centralizada - Tennis Ensemble Predictor
======================================================

Módulo de configuración unificado del ensemble de predicción.

Uso:
    from tennis_ensemble.config.settings import Config

    # Acceder a configuración
    requested = Config.REQUESTED_PAIRS

    # Validar configuración
    Config.validate()
"""

import os
from pathlib import Path
from dotenv import load_dotenv

from tennis_ensemble.utils.common import print_header, setup_logging

# Cargar .env
env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(env_path)


class Config:
    """
    Configuración centralizada del ensemble

    Todas las configuraciones se cargan desde variables de entorno (.env)
    con valores por defecto razonables.
    """

    # ==================== PAREJAS ====================
    # Número de partidos recientes por jugador que se emparejan por índice
    REQUESTED_PAIRS = int(os.getenv("PREDICTION_REQUESTED_PAIRS", "5"))

    # ==================== DECISIÓN DE ESTADO ====================
    STATE_DECISION_VARIANT = os.getenv("STATE_DECISION_VARIANT", "v2").lower()
    APPLY_PAIR_STATE_CONTRAST = os.getenv("APPLY_PAIR_STATE_CONTRAST", "false").lower() == "true"

    # ==================== FORMA RECIENTE ====================
    FORM_WINDOW = int(os.getenv("FORM_WINDOW", "8"))

    # Probabilidades a menos de este margen de 50 se consideran empate
    NEUTRAL_EPSILON = 1e-9

    # ==================== LOGGING ====================
    LOG_DIR = Path(os.getenv("LOG_DIR", "logs"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    STATE_DECISION_VARIANTS = ("v2", "v3")

    @classmethod
    def validate(cls, strict=False):
        """
        Valida que las configuraciones críticas sean coherentes

        Args:
            strict: Si True, los avisos también invalidan la configuración

        Returns:
            tuple: (is_valid, errors_list, warnings_list)
        """
        errors = []
        warnings = []

        if cls.REQUESTED_PAIRS <= 0:
            errors.append(f"PREDICTION_REQUESTED_PAIRS debe ser positivo (actual: {cls.REQUESTED_PAIRS})")
        elif cls.REQUESTED_PAIRS != 5:
            warnings.append(
                f"PREDICTION_REQUESTED_PAIRS={cls.REQUESTED_PAIRS} (Nova Edge necesita 5 partidos por jugador)"
            )

        if cls.STATE_DECISION_VARIANT not in cls.STATE_DECISION_VARIANTS:
            errors.append(f"STATE_DECISION_VARIANT desconocida: {cls.STATE_DECISION_VARIANT}")

        if cls.FORM_WINDOW <= 0 or cls.FORM_WINDOW > 20:
            warnings.append(f"FORM_WINDOW={cls.FORM_WINDOW} fuera de rango (se usará 8)")

        if strict:
            errors.extend(warnings)
            warnings = []

        is_valid = len(errors) == 0

        return is_valid, errors, warnings

    @classmethod
    def create_directories(cls):
        """Crea directorios necesarios si no existen"""
        cls.LOG_DIR.mkdir(parents=True, exist_ok=True)

    @classmethod
    def print_config(cls):
        """Muestra la configuración actual"""
        print_header("CONFIGURACIÓN DEL ENSEMBLE", emoji="⚙️ ")

        print(f"\n🎾 Parejas:")
        print(f"   Parejas solicitadas: {cls.REQUESTED_PAIRS}")

        print(f"\n🧭 Decisión de estado:")
        print(f"   Variante: {cls.STATE_DECISION_VARIANT}")
        print(f"   Contraste por pareja: {'✅ Sí' if cls.APPLY_PAIR_STATE_CONTRAST else '❌ No'}")

        print(f"\n📈 Forma reciente:")
        print(f"   Ventana: {cls.FORM_WINDOW}")

        print(f"\n📝 Logging:")
        print(f"   Directorio: {cls.LOG_DIR}")
        print(f"   Nivel: {cls.LOG_LEVEL}")

        is_valid, errors, warnings = cls.validate(strict=False)

        print("\n" + "=" * 60)
        if is_valid:
            print("✅ CONFIGURACIÓN VÁLIDA")
        else:
            print("❌ ERRORES EN CONFIGURACIÓN:")
            for error in errors:
                print(f"   - {error}")

        if warnings:
            print("\n⚠️  ADVERTENCIAS:")
            for warning in warnings:
                print(f"   - {warning}")

        print("=" * 60)

        return is_valid


# Template para .env
ENV_TEMPLATE = """# ===========================================
# Tennis Ensemble Predictor - Configuración
# ===========================================

# Parejas por índice (partidos recientes por jugador)
PREDICTION_REQUESTED_PAIRS=5

# Decisión de estado del jugador: v2 (base) | v3 (abstención agresiva)
STATE_DECISION_VARIANT=v2
APPLY_PAIR_STATE_CONTRAST=false

# Forma reciente (partidos)
FORM_WINDOW=8

# Logging
LOG_DIR=logs
LOG_LEVEL=INFO
"""


if __name__ == "__main__":
    setup_logging(Config.LOG_LEVEL)
    print("🎾 Tennis Ensemble Predictor - Configuración Centralizada\n")

    is_valid = Config.print_config()

    if not is_valid:
        print("\n💡 Tip: Copia .env.template a .env y configura tus valores")
