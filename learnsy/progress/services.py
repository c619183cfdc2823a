import logging
from datetime import timedelta
from typing import Dict, List, Optional

from pymongo import ReturnDocument

from learnsy.shared.standardization import VerificationBaseService
from learnsy.shared.exceptions import AppException
from learnsy.shared.utils import to_object_id, utcnow, day_key, start_of_week
from learnsy.courses.models import total_lessons
from .models import ACHIEVEMENTS, CourseProgress
from .calculations import (
    add_to_calendar, avg_hours_per, clamp_percentage, compute_streaks, daily_series,
    evaluate_achievements, format_study_time, lessons_percentage, merge_calendars,
    minutes_to_hours, progress_stats, study_time_breakdown, update_streak
)

logger = logging.getLogger(__name__)

TIMEFRAME_DAYS = {"week": 7, "month": 30, "year": 365}

class ProgressService(VerificationBaseService):
    def __init__(self, db=None):
        super().__init__(collection_name="progress", db=db)

    def get_or_create(self, student_id: str, course_id, course: Optional[Dict] = None) -> Dict:
        """Obtiene el progreso del estudiante en el curso, creándolo si no existe."""
        student_oid = to_object_id(student_id)
        course_oid = to_object_id(course_id)
        existing = self.collection.find_one({"student_id": student_oid, "course_id": course_oid})
        if existing:
            return existing

        if course is None:
            course = self.get_course_or_404(str(course_oid))
        initial = CourseProgress(student_oid, course_oid, total_lessons(course)).to_dict()
        return self.collection.find_one_and_update(
            {"student_id": student_oid, "course_id": course_oid},
            {"$setOnInsert": initial},
            upsert=True,
            return_document=ReturnDocument.AFTER
        )

    def _require_enrollment(self, student_id: str, course: Dict) -> None:
        if not self.is_enrolled(student_id, course["_id"]):
            raise AppException("No estás inscrito en este curso", AppException.FORBIDDEN)

    def sync_enrollment(self, student_id: str, course_id, percentage: float,
                        lessons_completed: Optional[int] = None) -> None:
        """Refleja el porcentaje en la inscripción; al llegar a 100 la completa."""
        percentage = clamp_percentage(percentage)
        now = utcnow()
        updates = {
            "progress.percentage": percentage,
            "progress.last_accessed_at": now,
            "updated_at": now
        }
        if lessons_completed is not None:
            updates["progress.lessons_completed"] = lessons_completed

        query = {
            "student_id": to_object_id(student_id),
            "course_id": to_object_id(course_id),
            "status": {"$in": ["active", "completed"]}
        }
        if percentage >= 100:
            updates["status"] = "completed"
            self.db.enrollments.update_one(
                {**query, "completed_at": None},
                {"$set": {"completed_at": now}}
            )
        self.db.enrollments.update_one(query, {"$set": updates})

    def set_percentage(self, student_id: str, course_id, percentage: float) -> Dict:
        """Fija el porcentaje de progreso (usado al completar materiales)."""
        progress = self.get_or_create(student_id, course_id)
        percentage = round(clamp_percentage(percentage), 1)
        self.collection.update_one(
            {"_id": progress["_id"]},
            {"$set": {"overall_progress": percentage, "updated_at": utcnow()}}
        )
        progress["overall_progress"] = percentage
        self._award_achievements(progress)
        self.sync_enrollment(student_id, course_id, percentage)
        return progress

    def _award_achievements(self, progress: Dict) -> List[str]:
        earned = {a["key"] for a in progress.get("achievements") or []}
        new_keys = [key for key in evaluate_achievements(progress_stats(progress)) if key not in earned]
        if not new_keys:
            return []

        titles = {a["key"]: a["title"] for a in ACHIEVEMENTS}
        now = utcnow()
        entries = [{"key": key, "title": titles[key], "earned_at": now} for key in new_keys]
        self.collection.update_one({"_id": progress["_id"]}, {"$push": {"achievements": {"$each": entries}}})
        progress.setdefault("achievements", []).extend(entries)
        logger.info(f"Logros obtenidos por {progress['student_id']}: {', '.join(new_keys)}")
        return new_keys

    def _apply_study_time(self, progress: Dict, minutes: float, when) -> Dict:
        """Calcula los campos de calendario, racha y promedio tras sumar minutos."""
        day = day_key(when)
        calendar = add_to_calendar(progress.get("study_calendar"), day, minutes)
        current, longest = update_streak(
            progress.get("current_streak", 0),
            progress.get("longest_streak", 0),
            progress.get("last_study_date"),
            day
        )
        last_study_date = max(filter(None, [progress.get("last_study_date"), day]))
        total = progress.get("total_study_minutes", 0) + minutes
        study_days = len([entry for entry in calendar if entry.get("minutes", 0) > 0])
        return {
            "study_calendar": calendar,
            "current_streak": current,
            "longest_streak": longest,
            "last_study_date": last_study_date,
            "total_study_minutes": total,
            "avg_study_time": round(total / study_days, 1) if study_days else 0
        }

    def update_course_progress(self, student_id: str, course_id: str, data: Dict) -> Dict:
        """
        Actualiza el progreso de un curso.

        Args:
            data: lessons_completed (se conserva el máximo), study_time_minutes
                (se suman al día actual) y quiz_result {score, passed}
        """
        course = self.get_course_or_404(course_id)
        self._require_enrollment(student_id, course)
        progress = self.get_or_create(student_id, course["_id"], course)
        now = utcnow()
        updates = {"updated_at": now}

        lessons_total = total_lessons(course)
        updates["total_lessons"] = lessons_total

        if data.get("lessons_completed") is not None:
            lessons = max(progress.get("lessons_completed", 0), int(data["lessons_completed"]))
            if lessons_total:
                lessons = min(lessons, lessons_total)
            updates["lessons_completed"] = lessons
            updates["overall_progress"] = max(
                progress.get("overall_progress", 0),
                lessons_percentage(lessons, lessons_total)
            )

        minutes = data.get("study_time_minutes") or 0
        if minutes > 0:
            updates.update(self._apply_study_time(progress, minutes, now))

        quiz_result = data.get("quiz_result")
        increments = {}
        if isinstance(quiz_result, dict):
            increments["quizzes_taken"] = 1
            if quiz_result.get("passed"):
                increments["quizzes_passed"] = 1

        operation = {"$set": updates}
        if increments:
            operation["$inc"] = increments
        progress = self.collection.find_one_and_update(
            {"_id": progress["_id"]}, operation, return_document=ReturnDocument.AFTER
        )

        self._award_achievements(progress)
        self.sync_enrollment(student_id, course["_id"], progress.get("overall_progress", 0),
                             progress.get("lessons_completed"))
        return progress

    def record_study_time(self, student_id: str, course_id, minutes: float, when) -> Optional[Dict]:
        """
        Registra minutos de estudio de una sesión finalizada.

        Devuelve None si el curso ya no existe (eliminado con la sesión abierta).
        """
        if not course_id or minutes <= 0:
            return None
        course = self.db.courses.find_one({"_id": to_object_id(course_id)})
        if course is None:
            logger.info(f"Tiempo de estudio descartado: el curso {course_id} ya no existe")
            return None
        progress = self.get_or_create(student_id, course["_id"], course)
        updates = self._apply_study_time(progress, minutes, when)
        updates["updated_at"] = utcnow()
        progress = self.collection.find_one_and_update(
            {"_id": progress["_id"]}, {"$set": updates}, return_document=ReturnDocument.AFTER
        )
        self._award_achievements(progress)
        return progress

    def get_course_progress(self, student_id: str, course_id: str) -> Dict:
        course = self.get_course_or_404(course_id)
        self._require_enrollment(student_id, course)
        progress = self.get_or_create(student_id, course["_id"], course)
        progress["total_study_hours"] = minutes_to_hours(progress.get("total_study_minutes", 0))
        progress["formatted_study_time"] = format_study_time(progress.get("total_study_minutes", 0))
        return progress

    def student_overview(self, student_id: str) -> Dict:
        student_oid = to_object_id(student_id)
        enrollments = list(self.db.enrollments.find({
            "student_id": student_oid,
            "status": {"$in": ["active", "completed"]}
        }))
        progresses = list(self.collection.find({"student_id": student_oid}))

        percentages = [e.get("progress", {}).get("percentage", 0) for e in enrollments]
        avg_progress = round(sum(percentages) / len(percentages), 1) if percentages else 0

        now = utcnow()
        totals = merge_calendars(p.get("study_calendar") for p in progresses)
        study_days = [day for day, minutes in totals.items() if minutes > 0]
        total_minutes = sum(p.get("total_study_minutes", 0) for p in progresses)
        current_streak, longest_streak = compute_streaks(study_days, now)

        today = day_key(now)
        week_start = day_key(start_of_week(now))
        month_start = now.strftime("%Y-%m-01")

        return {
            "enrolled_courses": len(enrollments),
            "completed_courses": len([e for e in enrollments if e.get("status") == "completed"]),
            "avg_progress": avg_progress,
            "total_study_minutes": total_minutes,
            "total_study_hours": minutes_to_hours(total_minutes),
            "formatted_study_time": format_study_time(total_minutes),
            "study_time_breakdown": {
                **study_time_breakdown(total_minutes),
                "today_minutes": totals.get(today, 0),
                "week_minutes": sum(m for d, m in totals.items() if d >= week_start),
                "month_minutes": sum(m for d, m in totals.items() if d >= month_start)
            },
            "avg_study_hours_per_day": avg_hours_per(total_minutes, len(study_days)),
            "current_streak": current_streak,
            "longest_streak": max([longest_streak] + [p.get("longest_streak", 0) for p in progresses]),
            "recent_activity": daily_series(totals, now.date(), 7),
            "total_study_days": len(study_days),
            "quizzes_taken": sum(p.get("quizzes_taken", 0) for p in progresses),
            "quizzes_passed": sum(p.get("quizzes_passed", 0) for p in progresses)
        }

    def analytics(self, student_id: str, timeframe: str = "week") -> Dict:
        if timeframe not in TIMEFRAME_DAYS:
            raise AppException("timeframe debe ser week, month o year", AppException.BAD_REQUEST)

        days = TIMEFRAME_DAYS[timeframe]
        now = utcnow()
        since = day_key(now - timedelta(days=days - 1))
        progresses = list(self.collection.find({"student_id": to_object_id(student_id)}))

        series = daily_series(merge_calendars(p.get("study_calendar") for p in progresses), now.date(), days)
        total_minutes = sum(point["minutes"] for point in series)
        active_days = len([point for point in series if point["minutes"] > 0])

        by_course = []
        for progress in progresses:
            minutes = sum(e.get("minutes", 0) for e in progress.get("study_calendar") or [] if e["date"] >= since)
            by_course.append({
                "course_id": progress["course_id"],
                "minutes": minutes,
                "overall_progress": progress.get("overall_progress", 0)
            })

        return {
            "timeframe": timeframe,
            "daily": series,
            "total_minutes": total_minutes,
            "total_hours": minutes_to_hours(total_minutes),
            "active_days": active_days,
            "avg_minutes_per_active_day": round(total_minutes / active_days, 1) if active_days else 0,
            "by_course": by_course
        }

    def achievements(self, student_id: str) -> Dict:
        progresses = list(self.collection.find({"student_id": to_object_id(student_id)}))
        stats = {
            "lessons_completed": sum(p.get("lessons_completed", 0) for p in progresses),
            "longest_streak": max([p.get("longest_streak", 0) for p in progresses] or [0]),
            "quizzes_passed": sum(p.get("quizzes_passed", 0) for p in progresses),
            "best_progress": max([p.get("overall_progress", 0) for p in progresses] or [0]),
            "total_study_minutes": sum(p.get("total_study_minutes", 0) for p in progresses)
        }
        earned_at = {}
        for progress in progresses:
            for entry in progress.get("achievements") or []:
                if entry["key"] not in earned_at or entry["earned_at"] < earned_at[entry["key"]]:
                    earned_at[entry["key"]] = entry["earned_at"]

        earned_keys = set(evaluate_achievements(stats))
        items = [
            {
                "key": a["key"],
                "title": a["title"],
                "description": a["description"],
                "earned": a["key"] in earned_keys,
                "earned_at": earned_at.get(a["key"]),
                "progress": min(stats[a["metric"]], a["threshold"]),
                "target": a["threshold"]
            }
            for a in ACHIEVEMENTS
        ]
        return {"achievements": items, "earned_count": len(earned_keys), "stats": stats}
