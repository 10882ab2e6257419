"""
=============================================================================
CLIENT.PY — Sesión de cliente para la API
=============================================================================
Sustituye al "store" global del frontend original.

HydrationSession guarda:
  - la identidad del usuario (id, email, nombre, email de avisos)
  - la última foto del estado que devolvió el servidor

Regla: el cliente NUNCA calcula rachas ni estadísticas. Después de cada
acción (add_glass, claim_reward) llama a sync(), que vuelve a pedirlo todo
al servidor.

Uso:
  with httpx.Client(base_url="https://api.hydrationlove.com") as http:
      session = HydrationSession(http, user_id="user_1", email="ana@example.com")
      session.sync()
      session.add_glass()
      print(session.snapshot.streak)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

logger = logging.getLogger("hydration.client")


class ClientError(Exception):
    """La API respondió con error o no respondió"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class Snapshot:
    """Último estado conocido. Solo se rellena con respuestas del servidor."""
    hydration: dict = field(default_factory=dict)
    streak: int = 0
    best_streak: int = 0
    stats: dict = field(default_factory=dict)
    weekly_data: list = field(default_factory=list)
    achievements: list = field(default_factory=list)
    rewards: list = field(default_factory=list)


class HydrationSession:

    def __init__(
        self,
        http: httpx.Client,
        user_id: str,
        email: str,
        user_name: Optional[str] = None,
        notification_email: Optional[str] = None,
    ):
        self.http = http
        self.user_id = user_id
        self.email = email
        self.user_name = user_name
        self.notification_email = notification_email or email
        self.snapshot = Snapshot()

    # ─────────────────────────────────────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────────────────────────────────────

    def _request(self, method: str, url: str, **kwargs) -> dict[str, Any]:
        try:
            response = self.http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise ClientError(f"No se pudo contactar con la API: {e}") from e

        if response.is_error:
            try:
                detail = response.json().get("detail", response.text)
            except ValueError:
                detail = response.text
            raise ClientError(str(detail), status_code=response.status_code)
        return response.json()

    def _identity(self) -> dict[str, str]:
        return {"user_id": self.user_id, "email": self.email}

    # ─────────────────────────────────────────────────────────────────────────
    # SINCRONIZACIÓN
    # ─────────────────────────────────────────────────────────────────────────

    def sync(self) -> Snapshot:
        """Pide al servidor hoy, progreso y recompensas y reemplaza la foto"""
        params = {"email": self.email}
        hydration = self._request("GET", "/hydration", params=params)
        progress = self._request("GET", "/progress", params=params)
        rewards = self._request("GET", "/rewards", params=params)

        self.snapshot = Snapshot(
            hydration=hydration["hydration"],
            streak=hydration["streak"],
            best_streak=progress["best_streak"],
            stats=hydration["stats"],
            weekly_data=progress["weekly_data"],
            achievements=progress["achievements"],
            rewards=rewards["rewards"],
        )
        return self.snapshot

    # ─────────────────────────────────────────────────────────────────────────
    # ACCIONES
    # ─────────────────────────────────────────────────────────────────────────

    def add_glass(self) -> dict[str, Any]:
        """Añade un vaso y vuelve a sincronizar. Retorna la respuesta del POST."""
        body = {
            **self._identity(),
            "notification_email": self.notification_email,
            "user_name": self.user_name,
        }
        result = self._request("POST", "/hydration", json=body)
        if result.get("new_achievements"):
            logger.info(f"🏆 Nuevos logros: {', '.join(result['new_achievements'])}")
        self.sync()
        return result

    def claim_reward(self, reward_id: str) -> dict[str, Any]:
        result = self._request(
            "POST", "/rewards/claim", json={**self._identity(), "reward_id": reward_id}
        )
        self.sync()
        return result["reward"]
