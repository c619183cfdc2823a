import logging
from typing import Dict, List, Optional

from pymongo.errors import DuplicateKeyError
from werkzeug.datastructures import FileStorage

from learnsy.shared.standardization import VerificationBaseService
from learnsy.shared.constants import (
    DOCUMENT_MATERIAL_TYPES, MATERIAL_ALLOWED_EXTENSIONS, MATERIAL_MAX_FILE_SIZE, MATERIAL_TYPES
)
from learnsy.shared.exceptions import AppException
from learnsy.shared.storage import save_upload, delete_stored_file
from learnsy.shared.utils import to_object_id, parse_bool, utcnow
from learnsy.progress.services import ProgressService
from learnsy.subscriptions.access import annotate_access, can_access_document, can_access_video
from learnsy.subscriptions.services import SubscriptionService
from .models import Material, MATERIALS_SUBFOLDER, material_file_url, sanitize_content

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "description", "content", "external_url", "duration")

class MaterialService(VerificationBaseService):
    def __init__(self, db=None, progress_service: Optional[ProgressService] = None,
                 subscription_service: Optional[SubscriptionService] = None):
        super().__init__(collection_name="materials", db=db)
        self._progress_service = progress_service
        self._subscription_service = subscription_service

    @property
    def progress_service(self) -> ProgressService:
        if self._progress_service is None:
            self._progress_service = ProgressService(db=self._db)
        return self._progress_service

    @property
    def subscription_service(self) -> SubscriptionService:
        if self._subscription_service is None:
            self._subscription_service = SubscriptionService(db=self._db)
        return self._subscription_service

    def material_view(self, material: Dict, completed_ids=None) -> Dict:
        view = dict(material)
        view.pop("file_path", None)
        view["id"] = str(material["_id"])
        view["file_url"] = material_file_url(material)
        if completed_ids is not None:
            view["is_completed"] = material["_id"] in completed_ids
        return view

    def _get_material_or_404(self, material_id: str) -> Dict:
        material = self.get_by_id(material_id)
        if not material:
            raise AppException("Material no encontrado", AppException.NOT_FOUND)
        return material

    def _published_materials(self, course_oid) -> List[Dict]:
        return list(self.collection.find({"course_id": course_oid, "is_published": True}).sort("order", 1))

    def _completed_ids(self, student_id: str, course_oid) -> set:
        return {
            c["material_id"] for c in self.db.material_completions.find(
                {"student_id": to_object_id(student_id), "course_id": course_oid}, {"material_id": 1}
            )
        }

    def create_material(self, faculty_id: str, data: Dict, file: Optional[FileStorage] = None) -> Dict:
        """
        Crea un material en un curso del docente, con archivo opcional.

        Raises:
            AppException: tipo inválido, archivo no permitido o contenido faltante
        """
        if not data.get("title"):
            raise AppException("El título es obligatorio", AppException.BAD_REQUEST)
        material_type = data.get("type")
        if material_type not in MATERIAL_TYPES:
            raise AppException(f"Tipo de material inválido: {material_type}", AppException.BAD_REQUEST,
                               {"valid_types": MATERIAL_TYPES})

        course = self.get_course_or_404(data.get("course_id"))
        self.ensure_course_owner(course, faculty_id)

        has_file = file is not None and bool(file.filename)
        if not has_file and material_type == "link" and not data.get("external_url"):
            raise AppException("Los enlaces requieren external_url", AppException.BAD_REQUEST)
        if not has_file and material_type in ("video", "pdf", "image") and not data.get("external_url"):
            raise AppException("Se requiere un archivo o una URL externa", AppException.BAD_REQUEST)

        file_info = save_upload(file, MATERIALS_SUBFOLDER, MATERIAL_ALLOWED_EXTENSIONS,
                                MATERIAL_MAX_FILE_SIZE) if has_file else None

        order = data.get("order")
        if order in (None, ""):
            order = self.count({"course_id": course["_id"]})
        try:
            order = int(order)
        except (TypeError, ValueError):
            raise AppException("order debe ser un número entero", AppException.BAD_REQUEST)

        is_published = parse_bool(data.get("is_published"))
        material = Material(
            title=data["title"],
            material_type=material_type,
            course_id=course["_id"],
            faculty_id=to_object_id(faculty_id),
            description=data.get("description", ""),
            content=sanitize_content(data.get("content", "")),
            external_url=data.get("external_url", ""),
            order=order,
            duration=data.get("duration"),
            is_published=True if is_published is None else is_published,
            file_info=file_info
        ).to_dict()
        material["_id"] = self.collection.insert_one(material).inserted_id
        logger.info(f"Material {material['_id']} ({material_type}) creado en curso {course['_id']}")
        return self.material_view(material)

    def course_materials(self, course_id: str, user_id: str, role: str) -> Dict:
        """
        Materiales publicados de un curso ordenados por `order`.

        Para estudiantes incluye is_completed, is_locked (según su nivel de
        suscripción), el progreso y si está inscrito.
        """
        course = self.get_course_or_404(course_id)
        if role == "faculty":
            self.ensure_course_owner(course, user_id)
        elif not course.get("is_published"):
            raise AppException("Curso no encontrado", AppException.NOT_FOUND)

        materials = self._published_materials(course["_id"])
        result = {
            "course": {
                "id": str(course["_id"]),
                "title": course.get("title"),
                "description": course.get("description"),
                "faculty_id": course.get("faculty_id")
            },
            "total": len(materials)
        }

        if role != "student":
            result["materials"] = [self.material_view(m) for m in materials]
            return result

        is_enrolled = self.is_enrolled(user_id, course["_id"])
        completed_ids = self._completed_ids(user_id, course["_id"]) if is_enrolled else set()
        views = annotate_access([self.material_view(m, completed_ids) for m in materials],
                                self.subscription_service.get_tier(user_id))
        if not is_enrolled:
            for view in views:
                view["is_locked"] = True
                view["file_url"] = None
                view["content"] = ""

        progress = self.db.progress.find_one({"student_id": to_object_id(user_id), "course_id": course["_id"]})
        result.update({
            "materials": views,
            "is_enrolled": is_enrolled,
            "completed_count": len(completed_ids),
            "progress": progress.get("overall_progress", 0) if progress else 0
        })
        return result

    def faculty_course_materials(self, course_id: str, faculty_id: str) -> Dict:
        course = self.get_course_or_404(course_id)
        self.ensure_course_owner(course, faculty_id)
        materials = self.collection.find({"course_id": course["_id"]}).sort("order", 1)
        views = [self.material_view(m) for m in materials]
        return {
            "course": {"id": str(course["_id"]), "title": course.get("title")},
            "materials": views,
            "total": len(views),
            "published": len([v for v in views if v.get("is_published")])
        }

    def _material_access_index(self, material: Dict) -> int:
        """Posición del material entre los publicados de su mismo tipo."""
        kinds = ["video"] if material["type"] == "video" else DOCUMENT_MATERIAL_TYPES
        siblings = self._published_materials(material["course_id"])
        same_kind = [m["_id"] for m in siblings if m.get("type") in kinds]
        return same_kind.index(material["_id"]) if material["_id"] in same_kind else len(same_kind)

    def get_material(self, material_id: str, user_id: str, role: str) -> Dict:
        material = self._get_material_or_404(material_id)

        if role == "faculty":
            course = self.get_course_or_404(str(material["course_id"]))
            self.ensure_course_owner(course, user_id)
            return self.material_view(material)

        if not material.get("is_published"):
            raise AppException("Material no encontrado", AppException.NOT_FOUND)
        if not self.is_enrolled(user_id, material["course_id"]):
            raise AppException("Debes inscribirte en el curso para ver este material", AppException.FORBIDDEN)

        if material["type"] == "video" or material["type"] in DOCUMENT_MATERIAL_TYPES:
            index = self._material_access_index(material)
            tier = self.subscription_service.get_tier(user_id)
            check = can_access_video if material["type"] == "video" else can_access_document
            if not check(index, tier):
                raise AppException("Este material requiere una suscripción", AppException.FORBIDDEN,
                                   {"upgrade_required": True})

        self.collection.update_one({"_id": material["_id"]}, {"$inc": {"views": 1}})
        material["views"] = material.get("views", 0) + 1
        completed_ids = self._completed_ids(user_id, material["course_id"])
        return self.material_view(material, completed_ids)

    def update_material(self, material_id: str, faculty_id: str, data: Dict,
                        file: Optional[FileStorage] = None) -> Dict:
        material = self._get_material_or_404(material_id)
        course = self.get_course_or_404(str(material["course_id"]))
        self.ensure_course_owner(course, faculty_id)

        updates = {field: data[field] for field in EDITABLE_FIELDS if field in data}
        if "content" in updates:
            updates["content"] = sanitize_content(updates["content"])
        if "type" in data:
            if data["type"] not in MATERIAL_TYPES:
                raise AppException(f"Tipo de material inválido: {data['type']}", AppException.BAD_REQUEST)
            updates["type"] = data["type"]
        if "order" in data:
            try:
                updates["order"] = int(data["order"])
            except (TypeError, ValueError):
                raise AppException("order debe ser un número entero", AppException.BAD_REQUEST)
        if "is_published" in data:
            is_published = parse_bool(data["is_published"])
            if is_published is None:
                raise AppException("is_published debe ser booleano", AppException.BAD_REQUEST)
            updates["is_published"] = is_published

        if file is not None and file.filename:
            file_info = save_upload(file, MATERIALS_SUBFOLDER, MATERIAL_ALLOWED_EXTENSIONS, MATERIAL_MAX_FILE_SIZE)
            delete_stored_file(material.get("file_path"))
            updates.update(file_info)

        if updates:
            updates["updated_at"] = utcnow()
            self.collection.update_one({"_id": material["_id"]}, {"$set": updates})
            material.update(updates)
        return self.material_view(material)

    def delete_material(self, material_id: str, faculty_id: str) -> None:
        material = self._get_material_or_404(material_id)
        course = self.get_course_or_404(str(material["course_id"]))
        self.ensure_course_owner(course, faculty_id)

        delete_stored_file(material.get("file_path"))
        self.db.material_completions.delete_many({"material_id": material["_id"]})
        self.collection.delete_one({"_id": material["_id"]})
        logger.info(f"Material {material_id} eliminado")

    def set_completion(self, material_id: str, student_id: str, completed: bool) -> Dict:
        """
        Marca o desmarca un material como completado y recalcula el progreso
        del curso: completados / publicados * 100, con tope en 100.
        """
        material = self._get_material_or_404(material_id)
        if not material.get("is_published"):
            raise AppException("Material no encontrado", AppException.NOT_FOUND)
        if not self.is_enrolled(student_id, material["course_id"]):
            raise AppException("Debes inscribirte en el curso", AppException.FORBIDDEN)

        student_oid = to_object_id(student_id)
        key = {"student_id": student_oid, "material_id": material["_id"]}
        if completed:
            try:
                self.db.material_completions.update_one(
                    key,
                    {"$setOnInsert": {**key, "course_id": material["course_id"], "completed_at": utcnow()}},
                    upsert=True
                )
            except DuplicateKeyError:
                logger.debug(f"Completado concurrente de {material_id} por {student_id}")
        else:
            self.db.material_completions.delete_one(key)

        published_ids = [m["_id"] for m in self._published_materials(material["course_id"])]
        completed_count = self.db.material_completions.count_documents({
            "student_id": student_oid,
            "material_id": {"$in": published_ids}
        })
        percentage = min(100, completed_count / len(published_ids) * 100) if published_ids else 0
        self.progress_service.set_percentage(student_id, material["course_id"], percentage)

        return {
            "material_id": str(material["_id"]),
            "is_completed": bool(completed),
            "completed_count": completed_count,
            "total_materials": len(published_ids),
            "progress": round(percentage, 1)
        }

    def completed_materials(self, course_id: str, student_id: str) -> Dict:
        course = self.get_course_or_404(course_id)
        completed = sorted(str(mid) for mid in self._completed_ids(student_id, course["_id"]))
        return {"course_id": str(course["_id"]), "completed_material_ids": completed, "total": len(completed)}
