"""
=============================================================================
GAMIFICATION.PY — Logros y Recompensas
=============================================================================
Gestiona:
  - Catálogo de logros (se desbloquean solos)
  - Catálogo de recompensas (se desbloquean solas, pero hay que reclamarlas)
  - Evaluación de requisitos: vasos de hoy, racha, vasos totales

Orden importante:
  La evaluación se hace SIEMPRE después de guardar el vaso (commit hecho),
  con los números ya actualizados. Un logro desbloqueado no se vuelve a
  desbloquear: la clave (usuario, logro) es única en la BD.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from exceptions import NotFoundError, ValidationError
from models import (
    User, Achievement, UserAchievement, Reward, UserReward, MilestoneKind
)
from stats import current_streak
import store

logger = logging.getLogger("hydration.gamification")


# =============================================================================
# ===================== CATÁLOGOS =============================================
# =============================================================================

ACHIEVEMENTS_DEFINITIONS = [
    {"code": "first-sip", "name": "First Sip", "description": "Started your hydration journey", "icon": "💧", "requirement": 1, "kind": MilestoneKind.total},
    {"code": "hydration-hero", "name": "Hydration Hero", "description": "8 glasses in one day", "icon": "🦸", "requirement": 8, "kind": MilestoneKind.daily},
    {"code": "3-day-streak", "name": "3-Day Streak", "description": "3 days of perfect hydration", "icon": "🔥", "requirement": 3, "kind": MilestoneKind.streak},
    {"code": "week-warrior", "name": "Week Warrior", "description": "7 days of perfect hydration", "icon": "🏆", "requirement": 7, "kind": MilestoneKind.streak},
    {"code": "monthly-master", "name": "Monthly Master", "description": "30 days of perfect hydration", "icon": "👑", "requirement": 30, "kind": MilestoneKind.streak},
    {"code": "100-glasses-club", "name": "100 Glasses Club", "description": "100 total glasses consumed", "icon": "💎", "requirement": 100, "kind": MilestoneKind.total},
]

REWARDS_DEFINITIONS = [
    {"code": "3-day-dedication", "name": "3-Day Dedication", "description": "You've shown amazing consistency! This special video message is just for you.", "icon": "🎁", "requirement": 3, "kind": MilestoneKind.streak},
    {"code": "weekly-wonder", "name": "Weekly Wonder", "description": "Complete a full week of perfect hydration to unlock a romantic dinner surprise!", "icon": "🌸", "requirement": 7, "kind": MilestoneKind.streak},
    {"code": "monthly-marvel", "name": "Monthly Marvel", "description": "Achieve a month of consistent hydration and unlock a special weekend getaway plan!", "icon": "💎", "requirement": 30, "kind": MilestoneKind.streak},
    {"code": "hydration-queen", "name": "Hydration Queen", "description": "Become the ultimate hydration champion and unlock a surprise jewelry gift!", "icon": "👑", "requirement": 100, "kind": MilestoneKind.total},
    {"code": "starlight-achievement", "name": "Starlight Achievement", "description": "Reach 50 days of perfect hydration for the most special surprise of all!", "icon": "⭐", "requirement": 50, "kind": MilestoneKind.streak},
    {"code": "eternal-love", "name": "Eternal Love", "description": "The ultimate reward for the most dedicated person I know - a promise of forever love!", "icon": "🏆", "requirement": 100, "kind": MilestoneKind.streak},
]


def _seed(db: Session, model, definitions: list[dict]):
    for definition in definitions:
        existing = db.query(model).filter(model.code == definition["code"]).first()
        if not existing:
            db.add(model(
                code=definition["code"],
                name=definition["name"],
                description=definition["description"],
                icon=definition["icon"],
                requirement=definition["requirement"],
                kind=definition["kind"].value,
            ))
    db.commit()


def seed_achievements(db: Session):
    """Inserta los logros que falten. Se ejecuta al arrancar."""
    _seed(db, Achievement, ACHIEVEMENTS_DEFINITIONS)
    logger.info(f"✅ {len(ACHIEVEMENTS_DEFINITIONS)} logros verificados en BD")


def seed_rewards(db: Session):
    """Inserta las recompensas que falten. Se ejecuta al arrancar."""
    _seed(db, Reward, REWARDS_DEFINITIONS)
    logger.info(f"✅ {len(REWARDS_DEFINITIONS)} recompensas verificadas en BD")


# =============================================================================
# ===================== EVALUACIÓN ============================================
# =============================================================================

@dataclass(frozen=True)
class Progress:
    """Los tres números contra los que se comparan los requisitos"""
    daily_glasses: int
    streak: int
    total_glasses: int


def qualifies(kind: str, requirement: int, progress: Progress) -> bool:
    if kind == MilestoneKind.daily:
        return progress.daily_glasses >= requirement
    if kind == MilestoneKind.streak:
        return progress.streak >= requirement
    if kind == MilestoneKind.total:
        return progress.total_glasses >= requirement
    logger.warning(f"⚠️ Tipo de requisito desconocido: {kind}")
    return False


def evaluate(
    user_id: str,
    daily_glasses: int,
    streak: int,
    total_glasses: int,
    catalog: Iterable,
    already_unlocked: set[str],
) -> set[str]:
    """
    Devuelve los códigos del catálogo que se desbloquean AHORA.

    Los que ya están en already_unlocked se ignoran, así que evaluar dos
    veces con los mismos datos no desbloquea nada la segunda vez.
    No escribe nada: guardar el desbloqueo es cosa de record_unlocks().
    """
    progress = Progress(daily_glasses, streak, total_glasses)
    return {
        entry.code for entry in catalog
        if entry.code not in already_unlocked
        and qualifies(entry.kind, entry.requirement, progress)
    }


def get_progress(db: Session, user: User, today: date) -> Progress:
    """Lee de la BD (ya con el último vaso guardado) los números actuales"""
    records = store.list_records(db, user.id, descending=True)
    todays = next((r for r in records if r.date == today), None)
    return Progress(
        daily_glasses=todays.glasses if todays else 0,
        streak=current_streak(records, today, pending_today=True),
        total_glasses=sum(r.glasses for r in records),
    )


def _unlock_all(db: Session, user: User, catalog_model, link_model, link_field: str, progress: Progress) -> list:
    catalog = db.query(catalog_model).all()
    links = db.query(link_model).filter(link_model.user_id == user.id).all()
    by_id = {c.id: c for c in catalog}
    unlocked_codes = {by_id[getattr(l, link_field)].code for l in links if getattr(l, link_field) in by_id}

    new_codes = evaluate(
        user.id, progress.daily_glasses, progress.streak, progress.total_glasses,
        catalog, unlocked_codes,
    )

    newly_unlocked = []
    for entry in catalog:
        if entry.code not in new_codes:
            continue
        db.add(link_model(user_id=user.id, unlocked=True, unlocked_at=datetime.utcnow(), **{link_field: entry.id}))
        try:
            db.commit()
        except IntegrityError:
            # Otra petición lo desbloqueó a la vez: ya está, no es nuevo
            db.rollback()
            continue
        logger.info(f"🏆 {user.email} desbloqueó: {entry.name}")
        newly_unlocked.append(entry)
    return newly_unlocked


def refresh_unlocks(db: Session, user: User, today: Optional[date] = None) -> tuple[list[Achievement], list[Reward]]:
    """
    Evalúa logros y recompensas con el estado actual y guarda los nuevos.
    Retorna (logros_nuevos, recompensas_nuevas).
    """
    today = today or store.today_utc()
    progress = get_progress(db, user, today)
    achievements = _unlock_all(db, user, Achievement, UserAchievement, "achievement_id", progress)
    rewards = _unlock_all(db, user, Reward, UserReward, "reward_id", progress)
    return achievements, rewards


# =============================================================================
# ===================== RECOMPENSAS ===========================================
# =============================================================================

def list_user_rewards(db: Session, user: User) -> list[dict]:
    """Catálogo de recompensas con el estado del usuario (desbloqueada, reclamada)"""
    rewards = db.query(Reward).order_by(Reward.id).all()
    user_rewards = {
        ur.reward_id: ur
        for ur in db.query(UserReward).filter(UserReward.user_id == user.id).all()
    }

    result = []
    for reward in rewards:
        ur = user_rewards.get(reward.id)
        result.append({
            "id": reward.code,
            "name": reward.name,
            "description": reward.description,
            "icon": reward.icon,
            "requirement": reward.requirement,
            "type": reward.kind,
            "unlocked": bool(ur and ur.unlocked),
            "unlocked_at": ur.unlocked_at if ur else None,
            "claimed": bool(ur and ur.claimed),
            "claimed_at": ur.claimed_at if ur else None,
        })
    return result


def claim_reward(db: Session, user: User, code: str, today: Optional[date] = None) -> tuple[Reward, UserReward]:
    """
    Reclama una recompensa.

      - No existe en el catálogo        → NotFoundError
      - No está desbloqueada            → ValidationError
      - Ya reclamada                    → se devuelve tal cual (sin cambiar la fecha)
    """
    reward = db.query(Reward).filter(Reward.code == code).first()
    if not reward:
        raise NotFoundError(f"Recompensa '{code}' no encontrada")

    refresh_unlocks(db, user, today)

    user_reward = db.query(UserReward).filter(
        UserReward.user_id == user.id, UserReward.reward_id == reward.id
    ).first()
    if not user_reward or not user_reward.unlocked:
        raise ValidationError("Todavía no cumples los requisitos de esta recompensa")

    if not user_reward.claimed:
        user_reward.claimed = True
        user_reward.claimed_at = datetime.utcnow()
        db.commit()
        db.refresh(user_reward)
        logger.info(f"🎁 {user.email} reclamó: {reward.name}")

    return reward, user_reward


def list_unlocked_achievements(db: Session, user: User) -> list[dict]:
    """Logros desbloqueados, del más reciente al más antiguo"""
    rows = db.query(UserAchievement).filter(
        UserAchievement.user_id == user.id
    ).order_by(UserAchievement.unlocked_at.desc(), UserAchievement.id.desc()).all()

    return [
        {
            "id": ua.achievement.code,
            "name": ua.achievement.name,
            "description": ua.achievement.description,
            "icon": ua.achievement.icon,
            "requirement": ua.achievement.requirement,
            "type": ua.achievement.kind,
            "unlocked": ua.unlocked,
            "unlocked_at": ua.unlocked_at,
        }
        for ua in rows if ua.achievement
    ]
