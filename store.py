"""
=============================================================================
STORE.PY — Registros diarios de agua
=============================================================================
Todo acceso a la tabla water_logs pasa por aquí.

La operación importante es upsert_record():
  Una sola sentencia SQL "INSERT ... ON CONFLICT DO UPDATE" que
    1. crea el registro del día si no existe
    2. suma los vasos al valor ACTUAL de la fila (no al que leyó Python)
    3. recalcula completed en la misma sentencia

  Así dos peticiones simultáneas de "añadir vaso" no pierden un incremento
  ni crean dos filas para el mismo (usuario, día).
"""

import logging
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from exceptions import UpstreamError, ValidationError
from models import WaterLog, DEFAULT_TARGET

logger = logging.getLogger("hydration.store")


def today_utc() -> date:
    """El día de hoy, SIEMPRE con la medianoche UTC como referencia"""
    return datetime.now(timezone.utc).date()


def _insert_for(db: Session):
    """INSERT con soporte de ON CONFLICT según el motor de BD"""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise UpstreamError(f"Motor de base de datos no soportado: {dialect}")


# =============================================================================
# ===================== LECTURA ===============================================
# =============================================================================

def find_record(db: Session, user_id: str, day: date) -> Optional[WaterLog]:
    try:
        return db.query(WaterLog).filter(
            WaterLog.user_id == user_id, WaterLog.date == day
        ).first()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"❌ Error leyendo registro de {user_id} ({day}): {e}")
        raise UpstreamError("No se pudo leer el registro diario") from e


def list_records(
    db: Session,
    user_id: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    descending: bool = False,
) -> list[WaterLog]:
    """Registros del usuario ordenados por fecha (rango opcional, inclusivo)"""
    query = db.query(WaterLog).filter(WaterLog.user_id == user_id)
    if start is not None:
        query = query.filter(WaterLog.date >= start)
    if end is not None:
        query = query.filter(WaterLog.date <= end)
    order = WaterLog.date.desc() if descending else WaterLog.date.asc()

    try:
        return query.order_by(order).all()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"❌ Error listando registros de {user_id}: {e}")
        raise UpstreamError("No se pudieron leer los registros") from e


# =============================================================================
# ===================== ESCRITURA =============================================
# =============================================================================

def upsert_record(db: Session, user_id: str, day: date, glass_delta: int = 1) -> WaterLog:
    """
    Suma glass_delta vasos al registro (user_id, day) de forma atómica.

    Devuelve el registro tal y como quedó tras el commit.
    Si la BD falla, no queda nada a medias: rollback y UpstreamError.
    """
    if glass_delta < 0:
        raise ValidationError("No se pueden restar vasos")

    insert = _insert_for(db)
    table = WaterLog.__table__

    stmt = insert(table).values(
        user_id=user_id,
        date=day,
        glasses=glass_delta,
        target=DEFAULT_TARGET,
        completed=glass_delta >= DEFAULT_TARGET,
        updated_at=datetime.utcnow(),
    )
    new_glasses = table.c.glasses + stmt.excluded.glasses
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.user_id, table.c.date],
        set_={
            "glasses": new_glasses,
            "completed": new_glasses >= table.c.target,
            "updated_at": stmt.excluded.updated_at,
        },
    ).returning(table.c.id)

    try:
        record_id = db.execute(stmt).scalar_one()
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"❌ Error guardando vasos de {user_id} ({day}): {e}")
        raise UpstreamError("No se pudo guardar el registro diario") from e

    # populate_existing → la identity map puede tener una copia vieja de la fila
    record = db.execute(
        select(WaterLog).where(WaterLog.id == record_id).execution_options(populate_existing=True)
    ).scalar_one()
    logger.info(f"💧 {user_id} {day}: {record.glasses}/{record.target} vasos")
    return record


def get_or_create_record(db: Session, user_id: str, day: date) -> WaterLog:
    """Registro del día; si no existe se crea con 0 vasos (upsert de +0)"""
    record = find_record(db, user_id, day)
    if record:
        return record
    return upsert_record(db, user_id, day, glass_delta=0)
