"""
=============================================================================
MAIN.PY — La API de Hydration Love
=============================================================================
Endpoints de la API REST.

Organización por secciones:
  1. HYDRATION     → añadir un vaso, estado de hoy
  2. PROGRESS      → semana, rachas, estadísticas, logros
  3. REWARDS       → listar y reclamar recompensas
  4. NOTIFICATIONS → email de prueba

Todas las respuestas recalculan rachas y estadísticas en cada llamada:
no hay caché, la BD es la única fuente de verdad.
"""

import os
import logging
import traceback
from datetime import date
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from database import get_db, init_db, SessionLocal
from exceptions import HydrationError, NotFoundError, UpstreamError, ValidationError
from models import *
from schemas import *
from gamification import (
    seed_achievements, seed_rewards, refresh_unlocks, claim_reward,
    list_user_rewards, list_unlocked_achievements
)
from notifications import EmailSender, should_send_notification, send_hydration_notification
from stats import current_streak, best_streak, aggregates, weekly_series
import store

# ─────────────────────────────────────────────────────────────────────────────
# LOGGING
# ─────────────────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s"
)
logger = logging.getLogger("hydration.api")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]


# ─────────────────────────────────────────────────────────────────────────────
# LIFESPAN (Arranque y apagado)
# ─────────────────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Arranque:
      1. Crear tablas si no existen
      2. Insertar catálogos (logros y recompensas)
    """
    logger.info("🚀 Arrancando Hydration Love...")

    init_db()
    db = SessionLocal()
    try:
        seed_achievements(db)
        seed_rewards(db)
    finally:
        db.close()

    logger.info("🎉 Hydration Love operativo")
    yield
    logger.info("👋 Apagado completo")


# ─────────────────────────────────────────────────────────────────────────────
# APLICACIÓN FASTAPI
# ─────────────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="Hydration Love API",
    description="Seguimiento diario de agua con rachas, logros y recompensas",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─────────────────────────────────────────────────────────────────────────────
# MANEJO DE ERRORES
# ─────────────────────────────────────────────────────────────────────────────

@app.exception_handler(HydrationError)
async def hydration_error_handler(request: Request, exc: HydrationError):
    """ValidationError → 400, NotFoundError → 404, UpstreamError → 503"""
    if isinstance(exc, UpstreamError):
        logger.error(f"❌ Servicio externo no disponible en {request.url}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "type": type(exc).__name__}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Captura errores no manejados y devuelve detalles útiles"""
    error_trace = traceback.format_exc()
    logger.error(f"❌ Error no manejado en {request.url}: {exc}\n{error_trace}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": str(exc),
            "type": type(exc).__name__,
            "path": str(request.url)
        }
    )


# ─────────────────────────────────────────────────────────────────────────────
# DEPENDENCIAS
# ─────────────────────────────────────────────────────────────────────────────
# Se pueden sustituir en los tests con app.dependency_overrides

def get_today() -> date:
    return store.today_utc()


def get_email_sender() -> EmailSender:
    return EmailSender()


# ─────────────────────────────────────────────────────────────────────────────
# HELPERS
# ─────────────────────────────────────────────────────────────────────────────

def _find_user(db: Session, user_id: Optional[str], email: Optional[str]) -> User:
    """Busca por email (si viene) o por id. Sin ninguno de los dos → 400."""
    if not user_id and not email:
        raise ValidationError("User ID or email is required")

    try:
        if email:
            user = db.query(User).filter(User.email == email).first()
        else:
            user = db.query(User).filter(User.id == user_id).first()
    except SQLAlchemyError as e:
        db.rollback()
        raise UpstreamError("No se pudo consultar el usuario") from e

    if user is None:
        raise NotFoundError("User not found")
    return user


def _get_or_create_user(db: Session, data: AddGlassRequest) -> User:
    try:
        user = db.query(User).filter(User.email == data.email).first()
    except SQLAlchemyError as e:
        db.rollback()
        raise UpstreamError("No se pudo consultar el usuario") from e
    if user:
        return user

    user = User(
        id=data.user_id,
        email=data.email,
        name=data.user_name,
        notification_email=data.notification_email or data.email,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Dos primeras peticiones a la vez: la otra ya lo creó
        db.rollback()
        user = db.query(User).filter(User.email == data.email).first()
        if user is None:
            raise ValidationError("User ID already registered with another email")
        return user
    except SQLAlchemyError as e:
        db.rollback()
        raise UpstreamError("No se pudo crear el usuario") from e

    db.refresh(user)
    logger.info(f"👤 Nuevo usuario: {user.email}")
    return user


def _stats_response(records, today: date) -> StatsResponse:
    return StatsResponse.model_validate(aggregates(records, today))


# =============================================================================
# ===================== HEALTH CHECK ==========================================
# =============================================================================

@app.get("/", tags=["Health"])
def health_check(today: date = Depends(get_today)):
    """Verifica que la API está viva"""
    return {
        "status": "ok",
        "app": "Hydration Love",
        "version": "1.0.0",
        "today": today.isoformat()
    }


# =============================================================================
# ===================== SECCIÓN 1: HYDRATION ==================================
# =============================================================================

@app.post("/hydration", response_model=AddGlassResponse, tags=["Hydration"])
def add_glass(
    data: AddGlassRequest,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
    sender: EmailSender = Depends(get_email_sender),
):
    """
    Añade UN vaso al día de hoy.

    Flujo:
      1. Validar identidad (user_id y email obligatorios)
      2. Buscar o crear el usuario
      3. Sumar el vaso (una sola sentencia atómica, con commit)
      4. Evaluar logros y recompensas con el estado ya guardado
      5. Enviar aviso por email si toca

    Los pasos 4 y 5 son "extra": si fallan se registra en el log, pero el
    vaso ya está guardado y la respuesta es 200.
    """
    if not data.user_id or not data.email:
        raise ValidationError("User ID and email are required")

    user = _get_or_create_user(db, data)
    record = store.upsert_record(db, user.id, today, glass_delta=1)
    # fuera de la sesión: un rollback posterior no debe expirar el registro ya guardado
    db.expunge(record)

    new_achievements, new_rewards = [], []
    try:
        achievements, rewards = refresh_unlocks(db, user, today)
        new_achievements = [a.code for a in achievements]
        new_rewards = [r.code for r in rewards]
    except (SQLAlchemyError, HydrationError) as e:
        db.rollback()
        logger.error(f"❌ Error evaluando logros de {user.email}: {e}")

    try:
        records = store.list_records(db, user.id, descending=True)
    except HydrationError as e:
        # el vaso ya está guardado: se responde solo con el registro de hoy
        logger.error(f"❌ Error leyendo el historial de {user.email}: {e}")
        records = [record]
    streak = current_streak(records, today, pending_today=True)

    notification_sent = False
    try:
        if should_send_notification(db, user.id, record.glasses):
            notification_sent = send_hydration_notification(
                db, sender,
                email=user.notification_email or user.email,
                glasses=record.glasses,
                streak=streak,
                target=record.target,
                user=user,
            )
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error registrando el aviso de {user.email}: {e}")

    return AddGlassResponse(
        hydration=HydrationState(
            glasses=record.glasses,
            target=record.target,
            completed=record.completed,
            streak=streak,
        ),
        stats=_stats_response(records, today),
        new_achievements=new_achievements,
        new_rewards=new_rewards,
        notification_sent=notification_sent,
    )


@app.get("/hydration", response_model=HydrationResponse, tags=["Hydration"])
def get_hydration(
    user_id: Optional[str] = None,
    email: Optional[str] = None,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    """Estado de hoy (el registro se crea con 0 vasos si aún no existe)"""
    user = _find_user(db, user_id, email)
    record = store.get_or_create_record(db, user.id, today)

    records = store.list_records(db, user.id, descending=True)
    streak = current_streak(records, today, pending_today=True)

    return HydrationResponse(
        user=UserResponse.model_validate(user),
        hydration=HydrationState(
            glasses=record.glasses,
            target=record.target,
            completed=record.completed,
            streak=streak,
        ),
        streak=streak,
        stats=_stats_response(records, today),
    )


# =============================================================================
# ===================== SECCIÓN 2: PROGRESS ===================================
# =============================================================================

@app.get("/progress", response_model=ProgressResponse, tags=["Progress"])
def get_progress(
    user_id: Optional[str] = None,
    email: Optional[str] = None,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    """Últimos 7 días, racha actual, mejor racha, estadísticas y logros"""
    user = _find_user(db, user_id, email)
    records = store.list_records(db, user.id, descending=True)

    return ProgressResponse(
        weekly_data=[DayResponse.model_validate(d) for d in weekly_series(records, today)],
        streak=current_streak(records, today, pending_today=True),
        best_streak=best_streak(reversed(records)),
        stats=_stats_response(records, today),
        achievements=[MilestoneResponse(**a) for a in list_unlocked_achievements(db, user)],
    )


# =============================================================================
# ===================== SECCIÓN 3: REWARDS ====================================
# =============================================================================

@app.get("/rewards", response_model=RewardsResponse, tags=["Rewards"])
def get_rewards(
    user_id: Optional[str] = None,
    email: Optional[str] = None,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    """Catálogo de recompensas con el estado del usuario"""
    user = _find_user(db, user_id, email)
    refresh_unlocks(db, user, today)

    records = store.list_records(db, user.id, descending=True)
    return RewardsResponse(
        rewards=[RewardResponse(**r) for r in list_user_rewards(db, user)],
        streak=current_streak(records, today, pending_today=True),
        total_glasses=sum(r.glasses for r in records),
    )


@app.post("/rewards/claim", response_model=ClaimRewardResponse, tags=["Rewards"])
def claim(
    data: ClaimRewardRequest,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    """Reclama una recompensa desbloqueada"""
    if not data.reward_id:
        raise ValidationError("Reward ID is required")
    user = _find_user(db, data.user_id, data.email)

    reward, user_reward = claim_reward(db, user, data.reward_id, today)
    return ClaimRewardResponse(reward=RewardResponse(
        id=reward.code,
        name=reward.name,
        description=reward.description,
        icon=reward.icon,
        requirement=reward.requirement,
        type=reward.kind,
        unlocked=user_reward.unlocked,
        unlocked_at=user_reward.unlocked_at,
        claimed=user_reward.claimed,
        claimed_at=user_reward.claimed_at,
    ))


# =============================================================================
# ===================== SECCIÓN 4: NOTIFICATIONS ==============================
# =============================================================================

@app.post("/notifications/test", tags=["Notifications"])
def send_test_email(
    data: EmailTestRequest,
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    """Envía un email de ejemplo para comprobar la configuración"""
    if not data.email:
        raise ValidationError("Email is required")

    milestone = data.test_type == "milestone"
    sent = send_hydration_notification(
        db, sender,
        email=data.email,
        glasses=4 if milestone else 2,
        streak=3 if milestone else 1,
        target=DEFAULT_TARGET,
    )
    if not sent:
        raise UpstreamError("Failed to send test email")
    return {"success": True, "message": "Test email sent successfully!"}


@app.get("/notifications/test", tags=["Notifications"])
def test_email_instructions():
    return {
        "message": "Email test endpoint. Send a POST request with email to test.",
        "setup": {
            "step1": "Get a Resend API key from https://resend.com",
            "step2": "Set RESEND_API_KEY in the environment",
            "step3": "Optionally set NOTIFICATION_FROM to your sender address",
            "step4": "POST {\"email\": \"you@example.com\"} to /notifications/test",
        }
    }
