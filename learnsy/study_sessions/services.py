import logging
from datetime import timedelta
from typing import Dict, Optional

from flask import current_app, has_app_context
from pymongo import ReturnDocument

from learnsy.shared.standardization import VerificationBaseService, ErrorCodes
from learnsy.shared.constants import SESSION_ACTIVITIES
from learnsy.shared.exceptions import AppException
from learnsy.shared.utils import to_object_id, utcnow, start_of_day
from learnsy.progress.calculations import compute_streaks, minutes_to_hours
from learnsy.progress.services import ProgressService
from .models import (
    DEFAULT_IDLE_TIMEOUT_MINUTES, StudySession, current_duration, finalize, is_stale
)

logger = logging.getLogger(__name__)

class StudySessionService(VerificationBaseService):
    def __init__(self, db=None, progress_service: Optional[ProgressService] = None):
        super().__init__(collection_name="study_sessions", db=db)
        self._progress_service = progress_service

    @property
    def progress_service(self) -> ProgressService:
        if self._progress_service is None:
            self._progress_service = ProgressService(db=self._db)
        return self._progress_service

    @staticmethod
    def idle_timeout() -> float:
        if has_app_context():
            return float(current_app.config.get("SESSION_IDLE_TIMEOUT_MINUTES", DEFAULT_IDLE_TIMEOUT_MINUTES))
        return DEFAULT_IDLE_TIMEOUT_MINUTES

    def session_view(self, session: Dict, now=None) -> Dict:
        view = dict(session)
        view["id"] = str(session["_id"])
        view["duration"] = current_duration(session, now or utcnow())
        return view

    def _get_owned_session(self, session_id: str, student_id: str) -> Dict:
        session = self.get_by_id(session_id)
        if not session:
            raise AppException("Sesión no encontrada", AppException.NOT_FOUND)
        if str(session.get("student_id")) != str(student_id):
            raise AppException("La sesión no pertenece al estudiante", AppException.FORBIDDEN)
        return session

    def _close(self, session: Dict, end_time, auto_closed: bool = False) -> Dict:
        """
        Cierra una sesión abierta y registra su tiempo activo en el progreso.

        Si otra petición ya la cerró devuelve la versión almacenada.
        """
        fields = finalize(session, end_time, auto_closed)
        closed = self.collection.find_one_and_update(
            {"_id": session["_id"], "is_active": True},
            {"$set": fields},
            return_document=ReturnDocument.AFTER
        )
        if closed is None:
            return self.collection.find_one({"_id": session["_id"]})

        if closed.get("course_id"):
            self.progress_service.record_study_time(
                str(closed["student_id"]), closed["course_id"], closed["total_active_time"], closed["end_time"]
            )
            self.db.enrollments.update_one(
                {"_id": closed.get("enrollment_id")} if closed.get("enrollment_id") else
                {"student_id": closed["student_id"], "course_id": closed["course_id"]},
                {"$set": {"progress.last_accessed_at": closed["end_time"]}}
            )
        logger.info(f"Sesión {closed['_id']} cerrada ({closed['duration']} min, auto={auto_closed})")
        return closed

    def _close_if_stale(self, session: Optional[Dict], now) -> Optional[Dict]:
        """Cierra la sesión en su última actividad si superó el umbral de inactividad."""
        if session and is_stale(session, now, self.idle_timeout()):
            last_seen = session.get("last_activity_time") or session["start_time"]
            return self._close(session, last_seen, auto_closed=True)
        return None

    def _find_open(self, student_id: str) -> Optional[Dict]:
        return self.collection.find_one({"student_id": to_object_id(student_id), "is_active": True},
                                        sort=[("start_time", -1)])

    def start(self, student_id: str, data: Dict) -> Dict:
        """
        Abre una sesión de estudio.

        Raises:
            AppException: 409 si el estudiante ya tiene una sesión abierta y activa
        """
        now = utcnow()
        open_session = self._find_open(student_id)
        if open_session and not self._close_if_stale(open_session, now):
            raise AppException("Ya tienes una sesión de estudio activa", AppException.CONFLICT,
                               {"session_id": str(open_session["_id"]),
                                "error_code": ErrorCodes.SESSION_ALREADY_ACTIVE})

        activity = data.get("activity") or "browsing"
        if activity not in SESSION_ACTIVITIES:
            raise AppException(f"Actividad inválida: {activity}", AppException.BAD_REQUEST)

        course_oid = enrollment_id = None
        if data.get("course_id"):
            course = self.get_course_or_404(data["course_id"])
            course_oid = course["_id"]
            enrollment = self.get_active_enrollment(student_id, course_oid)
            enrollment_id = enrollment["_id"] if enrollment else None

        session = StudySession(
            student_id=to_object_id(student_id),
            course_id=course_oid,
            enrollment_id=enrollment_id,
            activity=activity,
            device_info=data.get("device_info"),
            start_time=now
        ).to_dict()
        session["_id"] = self.collection.insert_one(session).inserted_id
        logger.info(f"Sesión {session['_id']} iniciada por {student_id}")
        return self.session_view(session, now)

    def update(self, session_id: str, student_id: str, data: Dict) -> Dict:
        """
        Registra actividad en una sesión abierta (ping periódico del cliente).

        Raises:
            AppException: 409 si la sesión ya terminó o se cerró por inactividad
        """
        session = self._get_owned_session(session_id, student_id)
        if not session.get("is_active"):
            raise AppException("La sesión ya finalizó", AppException.CONFLICT,
                               {"error_code": ErrorCodes.SESSION_ENDED})

        now = utcnow()
        closed = self._close_if_stale(session, now)
        if closed:
            raise AppException("La sesión se cerró por inactividad", AppException.CONFLICT,
                               {"auto_closed": True, "session": self.session_view(closed, now)})

        updates = {"last_activity_time": now, "updated_at": now}
        pushes = {}
        increments = {}

        activity = data.get("activity")
        if activity:
            if activity not in SESSION_ACTIVITIES:
                raise AppException(f"Actividad inválida: {activity}", AppException.BAD_REQUEST)
            updates["activity"] = activity
            if activity != session.get("activity"):
                pushes["activities"] = {"activity": activity, "timestamp": now}

        idle_minutes = data.get("idle_minutes") or 0
        if idle_minutes > 0:
            increments["idle_time"] = idle_minutes

        extra = data.get("additional_data") or {}
        if extra.get("lesson_completed"):
            increments["lessons_completed"] = 1
        if extra.get("quiz_result"):
            pushes["quiz_results"] = {**extra["quiz_result"], "timestamp": now}

        operation = {"$set": updates}
        if pushes:
            operation["$push"] = pushes
        if increments:
            operation["$inc"] = increments
        material_oid = to_object_id(extra.get("material_id")) if extra.get("material_id") else None
        if material_oid:
            operation["$addToSet"] = {"materials_viewed": material_oid}

        updated = self.collection.find_one_and_update(
            {"_id": session["_id"], "is_active": True}, operation, return_document=ReturnDocument.AFTER
        )
        if updated is None:
            raise AppException("La sesión ya finalizó", AppException.CONFLICT,
                               {"error_code": ErrorCodes.SESSION_ENDED})
        return self.session_view(updated, now)

    def end(self, session_id: str, student_id: str) -> Dict:
        """Cierra la sesión; si ya estaba cerrada la devuelve sin cambios."""
        session = self._get_owned_session(session_id, student_id)
        if not session.get("is_active"):
            return self.session_view(session)

        now = utcnow()
        closed = self._close_if_stale(session, now) or self._close(session, now)
        return self.session_view(closed, now)

    def get_active(self, student_id: str) -> Optional[Dict]:
        now = utcnow()
        session = self._find_open(student_id)
        if not session or self._close_if_stale(session, now):
            return None
        return self.session_view(session, now)

    def history(self, student_id: str, limit: int, page: int, skip: int,
                course_id: Optional[str] = None) -> Dict:
        query = {"student_id": to_object_id(student_id), "is_active": False}
        if course_id:
            course_oid = to_object_id(course_id)
            if course_oid is None:
                raise AppException(f"ID de curso inválido: {course_id}", AppException.BAD_REQUEST)
            query["course_id"] = course_oid

        total = self.collection.count_documents(query)
        sessions = self.collection.find(query).sort("start_time", -1).skip(skip).limit(limit)
        return {
            "sessions": [self.session_view(s) for s in sessions],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit
            }
        }

    def stats(self, student_id: str) -> Dict:
        now = utcnow()
        today = start_of_day(now)
        week_start = today - timedelta(days=6)
        student_oid = to_object_id(student_id)

        def summarize(since):
            sessions = list(self.collection.find({
                "student_id": student_oid, "is_active": False, "start_time": {"$gte": since}
            }, {"duration": 1, "total_active_time": 1, "focus_percentage": 1}))
            minutes = sum(s.get("duration", 0) for s in sessions)
            active = sum(s.get("total_active_time", 0) for s in sessions)
            return {
                "sessions": len(sessions),
                "total_minutes": minutes,
                "active_minutes": active,
                "total_hours": minutes_to_hours(minutes),
                "avg_focus": round(sum(s.get("focus_percentage", 0) for s in sessions) / len(sessions))
                if sessions else 0
            }

        study_dates = [
            s["end_time"] for s in self.collection.find(
                {"student_id": student_oid, "is_active": False, "duration": {"$gt": 0}}, {"end_time": 1}
            ) if s.get("end_time")
        ]
        current_streak, longest_streak = compute_streaks(study_dates, now)

        return {
            "today_stats": summarize(today),
            "weekly_stats": summarize(week_start),
            "current_streak": current_streak,
            "longest_streak": longest_streak
        }
