"""
Errores del módulo de predicción
"""


class PredictionError(Exception):
    """
    Fallo inesperado al predecir un partido

    Los modelos nunca lanzan por datos incompletos (degradan a 50/50 con
    warnings); esta excepción solo envuelve errores no previstos en el
    procesamiento por lotes.
    """

    def __init__(self, match_url: str, message: str):
        self.match_url = match_url
        super().__init__(f"{match_url}: {message}")
