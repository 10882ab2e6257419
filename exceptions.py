"""
=============================================================================
EXCEPTIONS.PY — Errores de dominio
=============================================================================
Tres familias de error, cada una con su código HTTP:

  ValidationError → 400  falta un dato identificativo (usuario, email...)
  NotFoundError   → 404  el usuario o la recompensa no existen
  UpstreamError   → 503  la BD o el proveedor de email no responden

main.py registra un exception_handler para HydrationError que usa
status_code para construir la respuesta JSON.
"""


class HydrationError(Exception):
    """Base de todos los errores de la aplicación"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(HydrationError):
    status_code = 400


class NotFoundError(HydrationError):
    status_code = 404


class UpstreamError(HydrationError):
    status_code = 503
