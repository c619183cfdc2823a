import re
import logging
from typing import Dict, List, Optional

from learnsy.shared.standardization import VerificationBaseService
from learnsy.shared.exceptions import AppException
from learnsy.shared.storage import delete_stored_file
from learnsy.shared.utils import to_object_id, parse_bool, utcnow
from .models import Course, build_modules, total_lessons

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "title", "description", "category", "level", "duration", "price",
    "thumbnail", "tags", "prerequisites", "learning_outcomes"
)

class CourseService(VerificationBaseService):
    def __init__(self, db=None):
        super().__init__(collection_name="courses", db=db)

    def course_view(self, course: Dict, owner_view: bool = False) -> Dict:
        """Representación del curso para el cliente."""
        view = dict(course)
        view["id"] = str(course["_id"])
        view["total_lessons"] = total_lessons(course)
        view["enrollment_count"] = course.get("enrollment_count", 0)
        if not owner_view:
            view.pop("enrolled_students", None)
        return view

    def _attach_faculty(self, views: List[Dict]) -> None:
        faculty_ids = list({v["faculty_id"] for v in views if v.get("faculty_id")})
        if not faculty_ids:
            return
        faculty = {
            u["_id"]: {"id": str(u["_id"]), "name": u.get("name"), "email": u.get("email")}
            for u in self.db.users.find({"_id": {"$in": faculty_ids}}, {"name": 1, "email": 1})
        }
        for view in views:
            view["faculty"] = faculty.get(view.get("faculty_id"))

    def list_courses(self, user_id: str, role: str, filters: Dict) -> List[Dict]:
        """
        Lista cursos aplicando filtros de publicación, categoría, nivel y búsqueda.

        Los estudiantes solo ven cursos publicados y reciben el indicador
        `is_enrolled` por curso.
        """
        query = {}
        if role == "student":
            query["is_published"] = True
        else:
            is_published = parse_bool(filters.get("is_published"))
            if is_published is not None:
                query["is_published"] = is_published

        if filters.get("category"):
            query["category"] = filters["category"]
        if filters.get("level"):
            query["level"] = filters["level"]
        if filters.get("search"):
            pattern = {"$regex": re.escape(filters["search"]), "$options": "i"}
            query["$or"] = [{"title": pattern}, {"description": pattern}, {"category": pattern}]

        courses = list(self.collection.find(query).sort("created_at", -1))
        views = [self.course_view(c) for c in courses]
        self._attach_faculty(views)

        if role == "student" and views:
            enrolled = {
                e["course_id"] for e in self.db.enrollments.find({
                    "student_id": to_object_id(user_id),
                    "course_id": {"$in": [c["_id"] for c in courses]},
                    "status": {"$in": ["active", "completed"]}
                }, {"course_id": 1})
            }
            for course, view in zip(courses, views):
                view["is_enrolled"] = course["_id"] in enrolled

        return views

    def get_faculty_courses(self, faculty_id: str) -> List[Dict]:
        courses = self.collection.find({"faculty_id": to_object_id(faculty_id)}).sort("created_at", -1)
        return [self.course_view(c, owner_view=True) for c in courses]

    def get_course(self, course_id: str, user_id: str, role: str) -> Dict:
        course = self.get_course_or_404(course_id)
        is_owner = str(course.get("faculty_id")) == str(user_id)

        if role == "student" and not course.get("is_published"):
            raise AppException("Curso no encontrado", AppException.NOT_FOUND)

        view = self.course_view(course, owner_view=is_owner)
        self._attach_faculty([view])

        if role == "student":
            enrollment = self.get_active_enrollment(user_id, course["_id"])
            view["is_enrolled"] = enrollment is not None
            view["enrollment"] = {
                "id": str(enrollment["_id"]),
                "status": enrollment.get("status"),
                "progress": enrollment.get("progress", {}),
                "enrolled_at": enrollment.get("enrolled_at")
            } if enrollment else None

        return view

    def create_course(self, data: Dict, faculty_id: str) -> Dict:
        try:
            course = Course(
                title=data["title"],
                description=data["description"],
                faculty_id=to_object_id(faculty_id),
                category=data.get("category"),
                level=data.get("level") or "Beginner",
                duration=data.get("duration", ""),
                price=data.get("price", 0),
                thumbnail=data.get("thumbnail", ""),
                modules=data.get("modules"),
                tags=data.get("tags"),
                prerequisites=data.get("prerequisites"),
                learning_outcomes=data.get("learning_outcomes"),
                is_published=bool(data.get("is_published", False))
            )
        except ValueError as e:
            raise AppException(str(e), AppException.BAD_REQUEST)

        doc = course.to_dict()
        result = self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        logger.info(f"Curso creado {doc['_id']} por docente {faculty_id}")
        return self.course_view(doc, owner_view=True)

    def update_course(self, course_id: str, faculty_id: str, data: Dict) -> Dict:
        course = self.get_course_or_404(course_id)
        self.ensure_course_owner(course, faculty_id)

        updates = {field: data[field] for field in EDITABLE_FIELDS if field in data}
        if "modules" in data:
            try:
                updates["modules"] = build_modules(data["modules"])
            except ValueError as e:
                raise AppException(str(e), AppException.BAD_REQUEST)
        if "is_published" in data:
            updates["is_published"] = bool(data["is_published"])

        if updates:
            self.update(str(course["_id"]), updates)
        return self.course_view(self.collection.find_one({"_id": course["_id"]}), owner_view=True)

    def delete_course(self, course_id: str, faculty_id: str) -> None:
        """Elimina el curso junto con sus materiales, inscripciones y progreso."""
        course = self.get_course_or_404(course_id)
        self.ensure_course_owner(course, faculty_id)

        course_oid = course["_id"]
        for material in self.db.materials.find({"course_id": course_oid}, {"file_path": 1}):
            delete_stored_file(material.get("file_path"))
        self.db.materials.delete_many({"course_id": course_oid})
        self.db.material_completions.delete_many({"course_id": course_oid})
        self.db.enrollments.delete_many({"course_id": course_oid})
        self.db.progress.delete_many({"course_id": course_oid})
        self.collection.delete_one({"_id": course_oid})
        logger.info(f"Curso {course_id} eliminado por docente {faculty_id}")

    def set_published(self, course_id: str, faculty_id: str, target: Optional[bool] = None) -> Dict:
        """
        Publica o despublica un curso.

        Con un estado objetivo explícito la operación es idempotente; sin él
        alterna el estado actual.
        """
        course = self.get_course_or_404(course_id)
        self.ensure_course_owner(course, faculty_id)

        new_state = (not course.get("is_published", False)) if target is None else bool(target)
        if new_state != course.get("is_published", False):
            self.collection.update_one(
                {"_id": course["_id"]},
                {"$set": {"is_published": new_state, "updated_at": utcnow()}}
            )
        course["is_published"] = new_state
        return self.course_view(course, owner_view=True)
