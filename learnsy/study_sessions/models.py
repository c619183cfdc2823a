"""
Sesiones de estudio y cálculo de su duración.

Todas las marcas de tiempo provienen del reloj del servidor. Mientras la
sesión está abierta su duración crece con el tiempo; al cerrarse queda fija.
"""

import math
from datetime import datetime, timedelta
from typing import Dict, Optional

from learnsy.shared.constants import DEFAULT_SESSION_ACTIVITY
from learnsy.shared.utils import utcnow

DEFAULT_IDLE_TIMEOUT_MINUTES = 5

class StudySession:
    def __init__(self, student_id, course_id=None, enrollment_id=None,
                 activity: str = DEFAULT_SESSION_ACTIVITY, device_info: Optional[Dict] = None,
                 start_time: Optional[datetime] = None):
        self.student_id = student_id
        self.course_id = course_id
        self.enrollment_id = enrollment_id
        self.activity = activity or DEFAULT_SESSION_ACTIVITY
        self.device_info = device_info or {}
        self.start_time = start_time or utcnow()

    def to_dict(self) -> Dict:
        return {
            "student_id": self.student_id,
            "course_id": self.course_id,
            "enrollment_id": self.enrollment_id,
            "activity": self.activity,
            "activities": [{"activity": self.activity, "timestamp": self.start_time}],
            "start_time": self.start_time,
            "last_activity_time": self.start_time,
            "end_time": None,
            "duration": 0,
            "idle_time": 0,
            "total_active_time": 0,
            "focus_percentage": 0,
            "lessons_completed": 0,
            "materials_viewed": [],
            "quiz_results": [],
            "device_info": self.device_info,
            "is_active": True,
            "auto_closed": False,
            "created_at": self.start_time,
            "updated_at": self.start_time
        }


def elapsed_minutes(start: datetime, end: datetime) -> int:
    """Minutos completos transcurridos entre dos instantes (nunca negativo)."""
    if not start or not end or end <= start:
        return 0
    return math.floor((end - start).total_seconds() / 60)

def current_duration(session: Dict, now: datetime) -> int:
    """Duración de la sesión: creciente si está abierta, fija si ya terminó."""
    if not session.get("is_active"):
        return session.get("duration", 0)
    return max(session.get("duration", 0), elapsed_minutes(session["start_time"], now))

def is_stale(session: Dict, now: datetime, idle_timeout_minutes: float = DEFAULT_IDLE_TIMEOUT_MINUTES) -> bool:
    """Una sesión abierta sin actividad durante más del umbral de inactividad."""
    if not session.get("is_active"):
        return False
    last_seen = session.get("last_activity_time") or session["start_time"]
    return now - last_seen > timedelta(minutes=idle_timeout_minutes)

def finalize(session: Dict, end_time: datetime, auto_closed: bool = False) -> Dict:
    """
    Campos con los que se cierra una sesión.

    duration = minutos completos entre inicio y fin; el tiempo activo descuenta
    el tiempo inactivo acumulado.
    """
    if end_time < session["start_time"]:
        end_time = session["start_time"]
    duration = elapsed_minutes(session["start_time"], end_time)
    idle_time = min(session.get("idle_time", 0) or 0, duration)
    active_time = max(0, duration - idle_time)
    return {
        "end_time": end_time,
        "duration": duration,
        "idle_time": idle_time,
        "total_active_time": active_time,
        "focus_percentage": round(active_time / duration * 100) if duration else 0,
        "is_active": False,
        "auto_closed": auto_closed,
        "updated_at": utcnow()
    }
