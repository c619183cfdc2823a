"""
Cálculos puros de progreso: tiempos de estudio, rachas, porcentajes y logros.

No acceden a la base de datos; los servicios los usan sobre los documentos
ya leídos.
"""

import math
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .models import ACHIEVEMENTS

DateLike = Union[str, date, datetime]

def minutes_to_hours(minutes) -> float:
    """Minutos a horas redondeadas a un decimal (mitades hacia arriba)."""
    if not minutes:
        return 0
    return math.floor(minutes / 60 * 10 + 0.5) / 10

def format_study_time(minutes) -> str:
    if not minutes:
        return "0.0h"
    return f"{minutes_to_hours(minutes)}h"

def avg_hours_per(total_minutes, units: int) -> float:
    """Promedio en horas por día o por sesión."""
    if not units:
        return 0
    return minutes_to_hours(total_minutes / units)

def study_time_breakdown(total_minutes) -> Dict:
    hours = minutes_to_hours(total_minutes)
    days = int(hours // 24)
    remaining_hours = math.floor((hours % 24) * 10 + 0.5) / 10
    return {
        "total_minutes": total_minutes or 0,
        "total_hours": hours,
        "total_days": days,
        "remaining_hours": remaining_hours,
        "formatted": format_study_time(total_minutes),
        "formatted_with_days": f"{days}d {remaining_hours}h" if days > 0 else format_study_time(total_minutes)
    }

def clamp_percentage(value) -> float:
    """Limita un porcentaje al rango [0, 100]."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(value):
        return 0
    return max(0.0, min(100.0, value))

def lessons_percentage(lessons_completed: int, total_lessons: int) -> float:
    if not total_lessons:
        return 0
    return round(clamp_percentage(lessons_completed / total_lessons * 100), 1)

def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(value[:10], "%Y-%m-%d").date()

def update_streak(current: int, longest: int, last_study_date: Optional[DateLike],
                  study_date: DateLike) -> Tuple[int, int]:
    """
    Actualiza la racha de días al registrar estudio en `study_date`.

    Primer día de estudio: 1. Mismo día: sin cambios. Día siguiente: +1.
    Hueco mayor a un día: vuelve a 1. La racha más larga es el máximo visto.
    Un registro anterior al último día de estudio no altera la racha.
    """
    today = _as_date(study_date)
    if last_study_date is None:
        current = 1
    else:
        gap = (today - _as_date(last_study_date)).days
        if gap == 1:
            current = (current or 0) + 1
        elif gap > 1:
            current = 1
        else:
            current = max(current or 0, 1)
    return current, max(longest or 0, current)

def compute_streaks(dates: Iterable[DateLike], today: DateLike) -> Tuple[int, int]:
    """
    Calcula (racha actual, racha más larga) recorriendo fechas de estudio.

    La racha actual solo cuenta si el último día de estudio es hoy o ayer.
    """
    days = sorted({_as_date(d) for d in dates if d})
    if not days:
        return 0, 0

    longest = run = 1
    for previous, current in zip(days, days[1:]):
        run = run + 1 if (current - previous).days == 1 else 1
        longest = max(longest, run)

    current_streak = run if (_as_date(today) - days[-1]).days <= 1 else 0
    return current_streak, longest

def add_to_calendar(calendar: List[Dict], day: str, minutes) -> List[Dict]:
    """Suma minutos a la entrada del día en el calendario (la crea si no existe)."""
    calendar = [dict(entry) for entry in (calendar or [])]
    for entry in calendar:
        if entry.get("date") == day:
            entry["minutes"] = entry.get("minutes", 0) + minutes
            break
    else:
        calendar.append({"date": day, "minutes": minutes})
    return sorted(calendar, key=lambda e: e["date"])

def merge_calendars(calendars: Iterable[List[Dict]]) -> Dict[str, float]:
    """Minutos por día sumando los calendarios de varios cursos."""
    totals: Dict[str, float] = {}
    for calendar in calendars:
        for entry in calendar or []:
            totals[entry["date"]] = totals.get(entry["date"], 0) + entry.get("minutes", 0)
    return totals

def daily_series(totals: Dict[str, float], end: date, days: int) -> List[Dict]:
    """Serie diaria de `days` días terminando en `end`, con ceros en los huecos."""
    start = end - timedelta(days=days - 1)
    series = []
    for offset in range(days):
        key = (start + timedelta(days=offset)).strftime("%Y-%m-%d")
        series.append({"date": key, "minutes": totals.get(key, 0)})
    return series

def evaluate_achievements(stats: Dict) -> List[str]:
    """Claves de los logros alcanzados con las estadísticas dadas."""
    return [
        achievement["key"] for achievement in ACHIEVEMENTS
        if (stats.get(achievement["metric"]) or 0) >= achievement["threshold"]
    ]

def progress_stats(progress: Dict) -> Dict:
    """Estadísticas de un documento de progreso en el formato de evaluate_achievements."""
    return {
        "lessons_completed": progress.get("lessons_completed", 0),
        "longest_streak": progress.get("longest_streak", 0),
        "quizzes_passed": progress.get("quizzes_passed", 0),
        "best_progress": progress.get("overall_progress", 0),
        "total_study_minutes": progress.get("total_study_minutes", 0)
    }
