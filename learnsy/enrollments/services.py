import logging
from typing import Dict, List, Optional

from pymongo.errors import DuplicateKeyError

from learnsy.shared.standardization import VerificationBaseService
from learnsy.shared.exceptions import AppException
from learnsy.shared.utils import to_object_id, utcnow
from learnsy.courses.models import total_lessons
from learnsy.progress.calculations import clamp_percentage
from learnsy.progress.services import ProgressService
from .models import Enrollment, default_progress

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ["active", "completed"]

class EnrollmentService(VerificationBaseService):
    def __init__(self, db=None, progress_service: Optional[ProgressService] = None):
        super().__init__(collection_name="enrollments", db=db)
        self._progress_service = progress_service

    @property
    def progress_service(self) -> ProgressService:
        if self._progress_service is None:
            self._progress_service = ProgressService(db=self._db)
        return self._progress_service

    def _course_summary(self, course: Optional[Dict]) -> Optional[Dict]:
        if not course:
            return None
        return {
            "id": str(course["_id"]),
            "title": course.get("title"),
            "description": course.get("description"),
            "category": course.get("category"),
            "level": course.get("level"),
            "thumbnail": course.get("thumbnail"),
            "duration": course.get("duration"),
            "faculty_id": course.get("faculty_id"),
            "total_lessons": total_lessons(course),
            "is_published": course.get("is_published", False)
        }

    def enrollment_view(self, enrollment: Dict, course: Optional[Dict] = None) -> Dict:
        view = dict(enrollment)
        view["id"] = str(enrollment["_id"])
        view["progress"] = {**default_progress(), **(enrollment.get("progress") or {})}
        if course is not None:
            view["course"] = self._course_summary(course)
        return view

    def _get_enrollment_or_404(self, enrollment_id: str) -> Dict:
        enrollment = self.get_by_id(enrollment_id)
        if not enrollment:
            raise AppException("Inscripción no encontrada", AppException.NOT_FOUND)
        return enrollment

    def _ensure_student_owner(self, enrollment: Dict, student_id: str) -> None:
        if str(enrollment.get("student_id")) != str(student_id):
            raise AppException("La inscripción no pertenece al estudiante", AppException.FORBIDDEN)

    def enroll(self, student_id: str, course_id: str) -> Dict:
        """
        Inscribe a un estudiante en un curso publicado.

        Una segunda solicitud con la inscripción activa se rechaza (409) sin
        crear otro registro; tras abandonar el curso la misma inscripción se
        reactiva.
        """
        course = self.get_course_or_404(course_id)
        if not course.get("is_published"):
            raise AppException("El curso no está publicado", AppException.BAD_REQUEST)

        student_oid = to_object_id(student_id)
        now = utcnow()
        existing = self.collection.find_one({"student_id": student_oid, "course_id": course["_id"]})

        if existing and existing.get("status") in ACTIVE_STATUSES:
            raise AppException("Ya estás inscrito en este curso", AppException.CONFLICT,
                               {"enrollment_id": str(existing["_id"])})

        if existing:
            result = self.collection.update_one(
                {"_id": existing["_id"], "status": "dropped"},
                {"$set": {"status": "active", "enrolled_at": now, "dropped_at": None,
                          "completed_at": None, "updated_at": now}}
            )
            if result.modified_count == 0:
                raise AppException("Ya estás inscrito en este curso", AppException.CONFLICT)
            enrollment = self.collection.find_one({"_id": existing["_id"]})
        else:
            enrollment = Enrollment(student_oid, course["_id"]).to_dict()
            try:
                enrollment["_id"] = self.collection.insert_one(enrollment).inserted_id
            except DuplicateKeyError:
                raise AppException("Ya estás inscrito en este curso", AppException.CONFLICT)

        self.db.courses.update_one(
            {"_id": course["_id"]},
            {"$inc": {"enrollment_count": 1}, "$addToSet": {"enrolled_students": student_oid}}
        )
        self.progress_service.get_or_create(student_id, course["_id"], course)
        logger.info(f"Estudiante {student_id} inscrito en curso {course['_id']}")
        return self.enrollment_view(enrollment, course)

    def get_student_enrollments(self, student_id: str, status: Optional[str] = None) -> List[Dict]:
        """Inscripciones del estudiante con su curso y el progreso (0 % por defecto)."""
        query = {"student_id": to_object_id(student_id)}
        query["status"] = status if status else {"$in": ACTIVE_STATUSES}
        enrollments = list(self.collection.find(query).sort("enrolled_at", -1))
        if not enrollments:
            return []

        courses = {
            c["_id"]: c for c in self.db.courses.find({"_id": {"$in": [e["course_id"] for e in enrollments]}})
        }
        progress_by_course = {
            p["course_id"]: p for p in self.db.progress.find({
                "student_id": to_object_id(student_id),
                "course_id": {"$in": list(courses.keys())}
            })
        }

        views = []
        for enrollment in enrollments:
            view = self.enrollment_view(enrollment, courses.get(enrollment["course_id"]))
            progress = progress_by_course.get(enrollment["course_id"])
            view["course_progress"] = {
                "overall_progress": progress.get("overall_progress", 0) if progress else 0,
                "lessons_completed": progress.get("lessons_completed", 0) if progress else 0,
                "total_study_minutes": progress.get("total_study_minutes", 0) if progress else 0,
                "current_streak": progress.get("current_streak", 0) if progress else 0
            }
            views.append(view)
        return views

    def get_enrollment(self, enrollment_id: str, user_id: str, role: str) -> Dict:
        enrollment = self._get_enrollment_or_404(enrollment_id)
        course = self.db.courses.find_one({"_id": enrollment["course_id"]})

        if role == "student":
            self._ensure_student_owner(enrollment, user_id)
        elif not course or str(course.get("faculty_id")) != str(user_id):
            raise AppException("No tiene acceso a esta inscripción", AppException.FORBIDDEN)

        return self.enrollment_view(enrollment, course)

    def update_progress(self, enrollment_id: str, student_id: str, data: Dict) -> Dict:
        """Actualiza el progreso de la inscripción; el porcentaje se limita a [0, 100]."""
        enrollment = self._get_enrollment_or_404(enrollment_id)
        self._ensure_student_owner(enrollment, student_id)
        if enrollment.get("status") == "dropped":
            raise AppException("La inscripción fue abandonada", AppException.BAD_REQUEST)

        current = {**default_progress(), **(enrollment.get("progress") or {})}
        percentage = current["percentage"]
        if data.get("percentage") is not None:
            percentage = round(clamp_percentage(data["percentage"]), 1)
        lessons = current["lessons_completed"]
        if data.get("lessons_completed") is not None:
            lessons = max(lessons, int(data["lessons_completed"]))

        self.progress_service.collection.update_one(
            {"student_id": enrollment["student_id"], "course_id": enrollment["course_id"]},
            {"$set": {"overall_progress": percentage, "updated_at": utcnow()},
             "$max": {"lessons_completed": lessons}}
        )
        self.progress_service.sync_enrollment(student_id, enrollment["course_id"], percentage, lessons)
        return self.enrollment_view(self.collection.find_one({"_id": enrollment["_id"]}))

    def drop(self, enrollment_id: str, student_id: str) -> Dict:
        enrollment = self._get_enrollment_or_404(enrollment_id)
        self._ensure_student_owner(enrollment, student_id)
        if enrollment.get("status") == "dropped":
            raise AppException("La inscripción ya fue abandonada", AppException.BAD_REQUEST)

        now = utcnow()
        self.collection.update_one(
            {"_id": enrollment["_id"]},
            {"$set": {"status": "dropped", "dropped_at": now, "updated_at": now}}
        )
        self.db.courses.update_one(
            {"_id": enrollment["course_id"], "enrollment_count": {"$gt": 0}},
            {"$inc": {"enrollment_count": -1}}
        )
        self.db.courses.update_one(
            {"_id": enrollment["course_id"]},
            {"$pull": {"enrolled_students": enrollment["student_id"]}}
        )
        enrollment.update({"status": "dropped", "dropped_at": now})
        return self.enrollment_view(enrollment)

    def get_course_enrollments(self, course_id: str, faculty_id: str) -> Dict:
        """Lista de estudiantes inscritos en un curso (solo el docente propietario)."""
        course = self.get_course_or_404(course_id)
        self.ensure_course_owner(course, faculty_id)

        enrollments = list(self.collection.find({"course_id": course["_id"]}).sort("enrolled_at", -1))
        students = {
            u["_id"]: u for u in self.db.users.find(
                {"_id": {"$in": [e["student_id"] for e in enrollments]}},
                {"name": 1, "email": 1, "student_id": 1, "department": 1}
            )
        } if enrollments else {}

        views = []
        for enrollment in enrollments:
            view = self.enrollment_view(enrollment)
            student = students.get(enrollment["student_id"])
            view["student"] = {
                "id": str(student["_id"]),
                "name": student.get("name"),
                "email": student.get("email"),
                "student_id": student.get("student_id"),
                "department": student.get("department")
            } if student else None
            views.append(view)

        return {
            "course": self._course_summary(course),
            "enrollments": views,
            "total": len(views),
            "active": len([v for v in views if v["status"] == "active"])
        }
