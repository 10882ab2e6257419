"""
=============================================================================
NOTIFICATIONS.PY — Avisos por email
=============================================================================
Cada 2 vasos (2, 4, 6...) se envía un email de ánimo, como mucho UNA vez
por cada número de vasos y usuario. Para saberlo se mira email_logs:
si ya hay un envío correcto para ese número, no se repite.

El envío usa la API HTTP de Resend (https://resend.com) con httpx.

Un fallo al enviar NUNCA rompe la petición principal:
  - el vaso ya está guardado
  - el fallo queda registrado en email_logs (sent=False, error=...)
  - no se reintenta automáticamente
"""

import logging
import os
from html import escape
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from exceptions import UpstreamError
from models import EmailLog, User

logger = logging.getLogger("hydration.notifications")

# ─────────────────────────────────────────────────────────────────────────────
# CONFIGURACIÓN
# ─────────────────────────────────────────────────────────────────────────────

RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
RESEND_API_URL = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
NOTIFICATION_FROM = os.getenv("NOTIFICATION_FROM", "Hydration Love <noreply@hydrationlove.com>")
EMAIL_TIMEOUT_SECONDS = float(os.getenv("EMAIL_TIMEOUT_SECONDS", "10"))

NOTIFY_EVERY = 2
# NOTIFY_EVERY → se avisa en los múltiplos de este número de vasos


# =============================================================================
# ===================== POLÍTICA DE ENVÍO =====================================
# =============================================================================

def should_send_notification(db: Session, user_id: str, glasses: int) -> bool:
    """¿Toca avisar con este número de vasos?"""
    if glasses <= 0 or glasses % NOTIFY_EVERY != 0:
        return False

    already_sent = db.query(EmailLog).filter(
        EmailLog.user_id == user_id,
        EmailLog.glasses_count == glasses,
        EmailLog.sent == True,  # noqa: E712
    ).first()
    return already_sent is None


# =============================================================================
# ===================== PLANTILLA =============================================
# =============================================================================

EMAIL_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Hydration Love Notification</title>
</head>
<body style="font-family: -apple-system, 'Segoe UI', sans-serif; background: #FDF9F5; color: #2D2D2D; padding: 20px;">
  <div style="max-width: 600px; margin: 0 auto; background: #FEFEFE; border-radius: 20px; padding: 40px; border: 2px solid #E8B4B8;">
    <div style="text-align: center; font-family: Georgia, serif; font-size: 2rem; color: #E8B4B8;">💕 Hydration Love</div>
    <p style="text-align: center; font-size: 1.1rem;">Hi {user_name}!</p>
    <p style="text-align: center; font-size: 1.3rem; font-weight: 600;">{message}</p>
    <div style="width: 100%; height: 20px; background: #F8E8E8; border-radius: 10px; overflow: hidden;">
      <div style="height: 100%; width: {progress}%; background: #E8B4B8;"></div>
    </div>
    <table style="width: 100%; margin: 30px 0; text-align: center;">
      <tr>
        <td><strong>{glasses}</strong><br>Glasses Today</td>
        <td><strong>{streak}</strong><br>Day Streak 🔥</td>
        <td><strong>{remaining}</strong><br>Glasses Left</td>
      </tr>
    </table>
    <p style="font-style: italic; border-left: 4px solid #E8B4B8; padding-left: 15px;">{motivation}</p>
    <p style="text-align: center; color: #A8A8A8;">With all my love, forever 💕<br>Your Hydration Companion</p>
  </div>
</body>
</html>
"""


def notification_subject(glasses: int) -> str:
    return f"💕 Hydration Milestone: {glasses} Glasses Down!"


def _messages(glasses: int, streak: int, target: int) -> tuple[str, str]:
    remaining = max(target - glasses, 0)
    if glasses >= target:
        return (
            "🎉 Amazing! You've completed your daily hydration goal!",
            f"You're absolutely incredible! {streak} days of dedication shows how much you care about yourself.",
        )
    if glasses >= target - 1:
        return (
            f"💪 So close! Just {remaining} more glass(es) to go!",
            "You're doing fantastic! The finish line is in sight and you're glowing with dedication!",
        )
    if glasses >= target / 2:
        return (
            "🌟 Halfway there! You're on fire!",
            "You're absolutely crushing it! Every sip is a love letter to yourself.",
        )
    return (
        "💧 Great progress! Keep it up!",
        "You're building such a wonderful habit! Your body is thanking you with every glass.",
    )


def render_notification(user_name: Optional[str], glasses: int, streak: int, target: int) -> tuple[str, str]:
    """Devuelve (asunto, html) del email"""
    message, motivation = _messages(glasses, streak, target)
    progress = min(round(glasses / target * 100), 100) if target > 0 else 100
    html = EMAIL_TEMPLATE.format(
        user_name=escape(user_name or "Beautiful"),
        message=message,
        motivation=motivation,
        progress=progress,
        glasses=glasses,
        streak=streak,
        remaining=max(target - glasses, 0),
    )
    return notification_subject(glasses), html


# =============================================================================
# ===================== ENVÍO =================================================
# =============================================================================

class EmailSender:
    """
    Cliente mínimo de la API de Resend.

    transport → solo para tests (httpx.MockTransport)
    """

    def __init__(
        self,
        api_key: str = RESEND_API_KEY,
        api_url: str = RESEND_API_URL,
        sender: str = NOTIFICATION_FROM,
        timeout: float = EMAIL_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.sender = sender
        self.timeout = timeout
        self.transport = transport

    def send(self, to: str, subject: str, html: str) -> dict:
        """Envía el email. Lanza UpstreamError si no se pudo."""
        if not self.api_key:
            raise UpstreamError("RESEND_API_KEY no configurada")

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(
                    self.api_url,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={"from": self.sender, "to": [to], "subject": subject, "html": html},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise UpstreamError(f"Resend respondió {e.response.status_code}: {e.response.text}") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"No se pudo contactar con Resend: {e}") from e

        # 2xx = enviado, aunque el cuerpo no sea JSON
        try:
            return response.json()
        except ValueError:
            logger.warning(f"⚠️ Resend respondió {response.status_code} sin JSON: {response.text[:100]}")
            return {}


def send_hydration_notification(
    db: Session,
    sender: EmailSender,
    email: str,
    glasses: int,
    streak: int,
    target: int,
    user: Optional[User] = None,
) -> bool:
    """
    Envía el aviso y lo apunta en email_logs (haya ido bien o mal).
    Retorna True si se envió.
    """
    subject, html = render_notification(user.name if user else None, glasses, streak, target)
    log = EmailLog(
        user_id=user.id if user else None,
        email=email,
        subject=subject,
        glasses_count=glasses,
    )

    try:
        sender.send(email, subject, html)
        log.sent = True
        logger.info(f"📧 Aviso de {glasses} vasos enviado a {email}")
    except UpstreamError as e:
        log.sent = False
        log.error = e.message
        logger.warning(f"⚠️ No se pudo enviar el aviso a {email}: {e.message}")
    except Exception as e:
        log.sent = False
        log.error = str(e) or type(e).__name__
        logger.error(f"❌ Error inesperado enviando el aviso a {email}: {e}")

    db.add(log)
    db.commit()
    return log.sent
