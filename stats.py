"""
=============================================================================
STATS.PY — Rachas y estadísticas
=============================================================================
Funciones PURAS sobre la lista de registros diarios de un usuario.
No tocan la base de datos: reciben los registros ya leídos y devuelven números.

Un "registro" es cualquier objeto con .date, .glasses, .target y .completed
(un WaterLog de SQLAlchemy o un DaySlot sirven igual).

  current_streak → días seguidos cumpliendo el objetivo hasta HOY
  best_streak    → mejor racha histórica
  aggregates     → total de vasos, días completados, media semanal
  weekly_series  → los últimos 7 días, rellenando los que faltan
"""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Sequence

from models import DEFAULT_TARGET


WEEK_WINDOW_DAYS = 7


@dataclass(frozen=True)
class Stats:
    total_glasses: int
    completed_days: int
    weekly_average: float


@dataclass(frozen=True)
class DaySlot:
    date: date
    day_name: str
    glasses: int
    target: int
    completed: bool


# =============================================================================
# ===================== RACHAS ================================================
# =============================================================================

def current_streak(records: Sequence, today: date, pending_today: bool = False) -> int:
    """
    Racha actual. `records` debe venir ordenado por fecha DESCENDENTE y sin
    fechas repetidas (la tabla lo garantiza con uq_water_date).

    Lógica:
      - La posición i espera la fecha today - i y completed == True
      - En el primer fallo (fecha distinta o día sin completar) se para
      - Un día sin registro corta la racha igual que un día sin completar

    pending_today=True → si hoy aún no se ha completado (o no hay registro),
    la racha se cuenta desde ayer: el día no ha terminado todavía.
    """
    anchor = today
    if pending_today:
        if records and records[0].date == today and not records[0].completed:
            records = records[1:]
            anchor = today - timedelta(days=1)
        elif not records or records[0].date != today:
            anchor = today - timedelta(days=1)

    streak = 0
    for i, record in enumerate(records):
        expected = anchor - timedelta(days=i)
        if record.date == expected and record.completed:
            streak += 1
        else:
            break
    return streak


def best_streak(records: Iterable) -> int:
    """
    Mejor racha histórica. `records` en orden ASCENDENTE.

    Ojo: aquí NO se mira si las fechas son consecutivas, solo si cada
    registro está completado. Dos días completados con un hueco en medio
    cuentan como racha de 2 (current_streak sí cortaría).
    """
    best = 0
    current = 0
    for record in records:
        if record.completed:
            current += 1
            best = max(best, current)
        else:
            current = 0
    return best


# =============================================================================
# ===================== ESTADÍSTICAS ==========================================
# =============================================================================

def round_half_up(value: float, digits: int = 1) -> float:
    """round() de Python redondea al par (2.25 → 2.2). Aquí 2.25 → 2.3."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def aggregates(records: Iterable, today: date) -> Stats:
    """
    Total de vasos, días completados y media de vasos de la última semana.

    La ventana semanal incluye today - 7 días (son 8 fechas de calendario).
    """
    records = list(records)
    window_start = today - timedelta(days=WEEK_WINDOW_DAYS)

    total = sum(r.glasses for r in records)
    completed = sum(1 for r in records if r.completed)

    weekly = [r.glasses for r in records if r.date >= window_start]
    average = round_half_up(sum(weekly) / len(weekly), 1) if weekly else 0.0

    return Stats(total_glasses=total, completed_days=completed, weekly_average=average)


def weekly_series(records: Iterable, today: date) -> list[DaySlot]:
    """Los 7 días de today-6 a today, del más antiguo al más reciente"""
    by_date = {r.date: r for r in records}

    series = []
    for offset in range(WEEK_WINDOW_DAYS - 1, -1, -1):
        day = today - timedelta(days=offset)
        record = by_date.get(day)
        series.append(DaySlot(
            date=day,
            day_name=day.strftime("%a"),
            glasses=record.glasses if record else 0,
            target=record.target if record else DEFAULT_TARGET,
            completed=bool(record.completed) if record else False,
        ))
    return series
