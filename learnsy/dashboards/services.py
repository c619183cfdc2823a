"""
Paneles de estudiantes y docentes.

Agrega inscripciones, progreso, sesiones y materiales. Los porcentajes de
progreso salen de la inscripción (progress.percentage).
"""

from datetime import timedelta
from typing import Dict, Iterable, List

from learnsy.shared.standardization import VerificationBaseService
from learnsy.shared.utils import to_object_id, utcnow
from learnsy.progress.calculations import (
    avg_hours_per, clamp_percentage, merge_calendars, study_time_breakdown
)


DISTRIBUTION_BUCKETS = ("0-25%", "26-50%", "51-75%", "76-100%")
RECENT_ACTIVITY_LIMIT = 5
FACULTY_RECENT_SESSIONS = 10
ACTIVE_STATUSES = ["active", "completed"]

def progress_distribution(percentages: Iterable[float]) -> Dict[str, int]:
    """Cuenta los porcentajes por tramo; los límites superiores son inclusivos."""
    distribution = {bucket: 0 for bucket in DISTRIBUTION_BUCKETS}
    for value in percentages:
        value = clamp_percentage(value)
        if value <= 25:
            distribution["0-25%"] += 1
        elif value <= 50:
            distribution["26-50%"] += 1
        elif value <= 75:
            distribution["51-75%"] += 1
        else:
            distribution["76-100%"] += 1
    return distribution

def average(values: List[float]) -> float:
    return round(sum(values) / len(values), 1) if values else 0


class DashboardService(VerificationBaseService):
    def __init__(self, db=None):
        super().__init__(collection_name="courses", db=db)

    def _course_titles(self, course_ids) -> Dict:
        ids = [c for c in set(course_ids) if c]
        if not ids:
            return {}
        return {c["_id"]: c.get("title") for c in self.db.courses.find({"_id": {"$in": ids}}, {"title": 1})}

    def _ended_minutes(self, query: Dict) -> int:
        result = list(self.db.study_sessions.aggregate([
            {"$match": {**query, "is_active": False}},
            {"$group": {"_id": None, "total": {"$sum": "$duration"}}}
        ]))
        return result[0]["total"] if result else 0

    def student_dashboard(self, student_id: str) -> Dict:
        student_oid = to_object_id(student_id)
        enrollments = list(self.db.enrollments.find({"student_id": student_oid, "status": {"$in": ACTIVE_STATUSES}}))
        course_ids = [e["course_id"] for e in enrollments]
        titles = self._course_titles(course_ids)

        progresses = list(self.db.progress.find({"student_id": student_oid}))
        study_days = [d for d, m in merge_calendars(p.get("study_calendar") for p in progresses).items() if m > 0]
        total_minutes = self._ended_minutes({"student_id": student_oid})

        recent = list(self.db.study_sessions.find({"student_id": student_oid})
                      .sort("start_time", -1).limit(RECENT_ACTIVITY_LIMIT))
        recent_titles = self._course_titles(s.get("course_id") for s in recent)

        return {
            "enrolled_courses": len(enrollments),
            "avg_progress": average([e.get("progress", {}).get("percentage", 0) for e in enrollments]),
            "total_study_time": total_minutes,
            "study_time_breakdown": study_time_breakdown(total_minutes),
            "avg_study_hours_per_day": avg_hours_per(total_minutes, len(study_days)),
            "total_materials": self.db.materials.count_documents(
                {"course_id": {"$in": course_ids}, "is_published": True}
            ) if course_ids else 0,
            "completed_materials": self.db.material_completions.count_documents({"student_id": student_oid}),
            "completed_lessons": sum(p.get("lessons_completed", 0) for p in progresses),
            "courses": [
                {
                    "id": str(e["course_id"]),
                    "title": titles.get(e["course_id"]),
                    "status": e.get("status"),
                    "progress": e.get("progress", {}).get("percentage", 0)
                }
                for e in enrollments
            ],
            "recent_activities": [
                {
                    "id": str(s["_id"]),
                    "type": "study",
                    "activity": s.get("activity"),
                    "content": f"Studied {recent_titles.get(s.get('course_id')) or 'general content'}",
                    "duration": s.get("duration", 0),
                    "time": s.get("start_time")
                }
                for s in recent
            ]
        }

    def _faculty_courses(self, faculty_id: str) -> List[Dict]:
        return list(self.collection.find({"faculty_id": to_object_id(faculty_id)}).sort("created_at", -1))

    def faculty_overview(self, faculty_id: str) -> Dict:
        courses = self._faculty_courses(faculty_id)
        course_ids = [c["_id"] for c in courses]
        titles = {c["_id"]: c.get("title") for c in courses}

        enrollments = list(self.db.enrollments.find(
            {"course_id": {"$in": course_ids}}, {"student_id": 1, "status": 1, "progress": 1}
        )) if course_ids else []
        active = [e for e in enrollments if e.get("status") in ACTIVE_STATUSES]

        since = utcnow() - timedelta(days=7)
        sessions = list(self.db.study_sessions.find(
            {"course_id": {"$in": course_ids}, "start_time": {"$gte": since}}
        ).sort("start_time", -1).limit(FACULTY_RECENT_SESSIONS)) if course_ids else []
        students = {
            u["_id"]: u.get("name") for u in self.db.users.find(
                {"_id": {"$in": list({s["student_id"] for s in sessions})}}, {"name": 1}
            )
        } if sessions else {}

        return {
            "total_courses": len(courses),
            "published_courses": len([c for c in courses if c.get("is_published")]),
            "total_students": len({e["student_id"] for e in active}),
            "total_enrollments": len(enrollments),
            "total_materials": self.db.materials.count_documents(
                {"course_id": {"$in": course_ids}}
            ) if course_ids else 0,
            "avg_progress": average([e.get("progress", {}).get("percentage", 0) for e in active]),
            "total_study_time": self._ended_minutes({"course_id": {"$in": course_ids}}) if course_ids else 0,
            "recent_activities": [
                {
                    "id": str(s["_id"]),
                    "student_name": students.get(s["student_id"]) or "Unknown Student",
                    "course_name": titles.get(s.get("course_id")),
                    "activity": s.get("activity"),
                    "duration": s.get("duration", 0),
                    "start_time": s.get("start_time")
                }
                for s in sessions
            ]
        }

    def faculty_courses(self, faculty_id: str) -> List[Dict]:
        result = []
        for course in self._faculty_courses(faculty_id):
            enrollments = list(self.db.enrollments.find({"course_id": course["_id"]}, {"status": 1, "progress": 1}))
            active = [e for e in enrollments if e.get("status") in ACTIVE_STATUSES]
            view = dict(course)
            view.pop("enrolled_students", None)
            view.update({
                "id": str(course["_id"]),
                "enrollment_count": len(active),
                "completed_count": len([e for e in enrollments if e.get("status") == "completed"]),
                "dropped_count": len([e for e in enrollments if e.get("status") == "dropped"]),
                "material_count": self.db.materials.count_documents({"course_id": course["_id"]}),
                "avg_progress": average([e.get("progress", {}).get("percentage", 0) for e in active])
            })
            result.append(view)
        return result

    def course_analytics(self, course_id: str, faculty_id: str) -> Dict:
        course = self.get_course_or_404(course_id)
        self.ensure_course_owner(course, faculty_id)

        enrollments = list(self.db.enrollments.find({"course_id": course["_id"]}))
        active = [e for e in enrollments if e.get("status") in ACTIVE_STATUSES]
        percentages = [e.get("progress", {}).get("percentage", 0) for e in active]
        by_status = {status: 0 for status in ("active", "completed", "dropped")}
        for enrollment in enrollments:
            status = enrollment.get("status", "active")
            by_status[status] = by_status.get(status, 0) + 1

        materials = list(self.db.materials.find({"course_id": course["_id"]}, {"title": 1, "type": 1, "views": 1}))
        return {
            "course": {
                "id": str(course["_id"]),
                "title": course.get("title"),
                "is_published": course.get("is_published", False),
                "created_at": course.get("created_at")
            },
            "stats": {
                "total_enrollments": len(enrollments),
                "enrollments_by_status": by_status,
                "total_materials": len(materials),
                "total_study_time": self._ended_minutes({"course_id": course["_id"]}),
                "avg_progress": average(percentages),
                "progress_distribution": progress_distribution(percentages)
            },
            "materials": [
                {"id": str(m["_id"]), "title": m.get("title"), "type": m.get("type"), "views": m.get("views", 0)}
                for m in materials
            ]
        }
