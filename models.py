"""
=============================================================================
MODELS.PY — Modelos (Tablas) de la Base de Datos
=============================================================================
Cada clase aquí = una tabla en la base de datos.

RELACIONES:
  USER
  ├── water_logs[]          (un registro por día, fecha UTC)
  ├── user_achievements[]   (logros desbloqueados)
  ├── user_rewards[]        (recompensas desbloqueadas / reclamadas)
  └── email_logs[]          (historial de notificaciones)

  Achievement y Reward son CATÁLOGOS: los define el sistema, no el usuario.
"""

from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, Text, ForeignKey,
    UniqueConstraint
)
from sqlalchemy.orm import relationship
from database import Base
import enum


DEFAULT_TARGET = 8
# DEFAULT_TARGET → objetivo de vasos por día si el usuario no tiene otro


# =============================================================================
# ===================== ENUMS =================================================
# =============================================================================

class MilestoneKind(str, enum.Enum):
    """Qué número se compara con el requisito de un logro o recompensa"""
    daily = "daily"      # vasos de HOY
    streak = "streak"    # días seguidos cumpliendo el objetivo
    total = "total"      # vasos acumulados desde siempre


# =============================================================================
# ===================== TABLA 1: USERS ========================================
# =============================================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    # id → lo genera el cliente ("user_1718000000000"), no es autoincremental
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=True)
    notification_email = Column(String(255), nullable=True)
    # notification_email → a dónde enviar los avisos (si null, usa email)

    created_at = Column(DateTime, default=datetime.utcnow)

    water_logs = relationship("WaterLog", back_populates="user", cascade="all, delete-orphan")
    user_achievements = relationship("UserAchievement", back_populates="user", cascade="all, delete-orphan")
    user_rewards = relationship("UserReward", back_populates="user", cascade="all, delete-orphan")
    email_logs = relationship("EmailLog", back_populates="user", cascade="all, delete-orphan")


# =============================================================================
# ===================== TABLA 2: WATER_LOGS ===================================
# =============================================================================
# Registro diario de agua. Un registro por usuario por día (UTC).
# glasses y completed se escriben SIEMPRE en la misma sentencia
# (ver store.upsert_record), nunca uno detrás del otro.

class WaterLog(Base):
    __tablename__ = "water_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False)

    date = Column(Date, nullable=False)
    glasses = Column(Integer, nullable=False, default=0)
    # glasses → vasos bebidos ese día (solo crece)
    target = Column(Integer, nullable=False, default=DEFAULT_TARGET)
    completed = Column(Boolean, nullable=False, default=False)
    # completed → glasses >= target

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'date', name='uq_water_date'),
    )

    user = relationship("User", back_populates="water_logs")


# =============================================================================
# ===================== TABLA 3: ACHIEVEMENTS =================================
# =============================================================================
# Catálogo de logros DISPONIBLES

class Achievement(Base):
    __tablename__ = "achievements"

    id = Column(Integer, primary_key=True, autoincrement=True)

    code = Column(String(50), unique=True, nullable=False)
    # code → "first-sip", "hydration-hero", "week-warrior"...
    name = Column(String(100), nullable=False)
    description = Column(String(300), nullable=False)
    icon = Column(String(10), default="🏆")
    requirement = Column(Integer, nullable=False)
    kind = Column(String(20), nullable=False)
    # kind → MilestoneKind (daily, streak, total)


# =============================================================================
# ===================== TABLA 4: USER_ACHIEVEMENTS ============================
# =============================================================================
# Logros desbloqueados por cada usuario. Se crean una vez y no cambian.

class UserAchievement(Base):
    __tablename__ = "user_achievements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    achievement_id = Column(Integer, ForeignKey("achievements.id"), nullable=False)

    unlocked = Column(Boolean, default=True)
    unlocked_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'achievement_id', name='uq_user_achievement'),
    )

    user = relationship("User", back_populates="user_achievements")
    achievement = relationship("Achievement")


# =============================================================================
# ===================== TABLA 5: REWARDS ======================================
# =============================================================================
# Catálogo de recompensas. Igual que un logro, pero además hay que RECLAMARLA.

class Reward(Base):
    __tablename__ = "rewards"

    id = Column(Integer, primary_key=True, autoincrement=True)

    code = Column(String(50), unique=True, nullable=False)
    # code → "3-day-dedication", "weekly-wonder"...
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    icon = Column(String(10), default="🎁")
    requirement = Column(Integer, nullable=False)
    kind = Column(String(20), nullable=False)


# =============================================================================
# ===================== TABLA 6: USER_REWARDS =================================
# =============================================================================
# unlocked → automático (se cumple el requisito)
# claimed  → acción del usuario, solo si unlocked == True

class UserReward(Base):
    __tablename__ = "user_rewards"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    reward_id = Column(Integer, ForeignKey("rewards.id"), nullable=False)

    unlocked = Column(Boolean, default=True)
    unlocked_at = Column(DateTime, default=datetime.utcnow)
    claimed = Column(Boolean, default=False)
    claimed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint('user_id', 'reward_id', name='uq_user_reward'),
    )

    user = relationship("User", back_populates="user_rewards")
    reward = relationship("Reward")


# =============================================================================
# ===================== TABLA 7: EMAIL_LOGS ===================================
# =============================================================================
# Un registro por cada intento de notificación (enviado o fallido).
# Sirve para no repetir el aviso de un mismo número de vasos.

class EmailLog(Base):
    __tablename__ = "email_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=True)
    # nullable → los emails de prueba no pertenecen a ningún usuario

    email = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=False)
    glasses_count = Column(Integer, nullable=True)
    sent = Column(Boolean, default=False)
    error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="email_logs")
