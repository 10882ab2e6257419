"""
=============================================================================
SCHEMAS.PY — Esquemas de Validación (Pydantic)
=============================================================================
  - Models (SQLAlchemy) → definen las TABLAS de la BD
  - Schemas (Pydantic)  → definen qué DATOS acepta/devuelve la API

Convención de nombres:
  XxxRequest  → cuerpo de un POST
  XxxResponse → lo que devuelve la API

Los campos de identidad (user_id, email) son opcionales en los esquemas:
la regla "hace falta uno u otro" la aplica main.py con ValidationError (400),
igual para todos los endpoints.
"""

from pydantic import BaseModel, Field, EmailStr
from datetime import date, datetime
from typing import Optional


# =============================================================================
# ===================== HYDRATION =============================================
# =============================================================================

class AddGlassRequest(BaseModel):
    """Añadir un vaso. Si el usuario no existe, se crea."""
    user_id: Optional[str] = Field(default=None, max_length=64)
    email: Optional[EmailStr] = None
    notification_email: Optional[EmailStr] = None
    user_name: Optional[str] = Field(default=None, max_length=100)

class HydrationState(BaseModel):
    glasses: int
    target: int
    completed: bool
    streak: Optional[int] = None

class StatsResponse(BaseModel):
    total_glasses: int
    completed_days: int
    weekly_average: float
    model_config = {"from_attributes": True}

class MilestoneResponse(BaseModel):
    """Un logro o recompensa tal y como lo ve el usuario"""
    id: str
    name: str
    description: str
    icon: str
    requirement: int
    type: str
    unlocked: bool = False
    unlocked_at: Optional[datetime] = None

class RewardResponse(MilestoneResponse):
    claimed: bool = False
    claimed_at: Optional[datetime] = None

class AddGlassResponse(BaseModel):
    success: bool = True
    hydration: HydrationState
    stats: StatsResponse
    new_achievements: list[str] = []
    new_rewards: list[str] = []
    notification_sent: bool = False

class UserResponse(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    notification_email: Optional[str] = None
    model_config = {"from_attributes": True}

class HydrationResponse(BaseModel):
    success: bool = True
    user: UserResponse
    hydration: HydrationState
    streak: int
    stats: StatsResponse


# =============================================================================
# ===================== PROGRESS ==============================================
# =============================================================================

class DayResponse(BaseModel):
    date: date
    day_name: str
    glasses: int
    target: int
    completed: bool
    model_config = {"from_attributes": True}

class ProgressResponse(BaseModel):
    success: bool = True
    weekly_data: list[DayResponse]
    streak: int
    best_streak: int
    stats: StatsResponse
    achievements: list[MilestoneResponse]


# =============================================================================
# ===================== REWARDS ===============================================
# =============================================================================

class RewardsResponse(BaseModel):
    success: bool = True
    rewards: list[RewardResponse]
    streak: int
    total_glasses: int

class ClaimRewardRequest(BaseModel):
    user_id: Optional[str] = None
    email: Optional[EmailStr] = None
    reward_id: Optional[str] = None

class ClaimRewardResponse(BaseModel):
    success: bool = True
    reward: RewardResponse


# =============================================================================
# ===================== NOTIFICATIONS =========================================
# =============================================================================

class EmailTestRequest(BaseModel):
    email: Optional[EmailStr] = None
    test_type: Optional[str] = None
    # test_type → "milestone" envía el ejemplo de 4 vasos y racha 3
