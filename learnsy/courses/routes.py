from flask import request

from .services import CourseService
from learnsy.shared.standardization import APIBlueprint, APIRoute
from learnsy.shared.decorators import get_auth_user_id, get_auth_user_role
from learnsy.shared.exceptions import AppException
from learnsy.shared.utils import parse_bool
from learnsy.shared.validators import course_schema

courses_bp = APIBlueprint('courses', __name__)
course_service = CourseService()

@courses_bp.route('/', methods=['GET'])
@APIRoute.standard(auth_required_flag=True)
def list_courses():
    """
    Lista cursos. Filtros opcionales: is_published, category, level, search.
    """
    courses = course_service.list_courses(get_auth_user_id(), get_auth_user_role(), request.args)
    return APIRoute.success(data={"courses": courses, "total": len(courses)})

@courses_bp.route('/my-courses', methods=['GET'])
@APIRoute.standard(auth_required_flag=True, roles=['faculty'])
def my_courses():
    courses = course_service.get_faculty_courses(get_auth_user_id())
    return APIRoute.success(data={"courses": courses, "total": len(courses)})

@courses_bp.route('/<course_id>', methods=['GET'])
@APIRoute.standard(auth_required_flag=True)
def get_course(course_id):
    course = course_service.get_course(course_id, get_auth_user_id(), get_auth_user_role())
    return APIRoute.success(data=course)

@courses_bp.route('/', methods=['POST'])
@APIRoute.standard(auth_required_flag=True, roles=['faculty'], schema=course_schema)
def create_course():
    """Crea un curso; `modules` puede ser una lista o un número de módulos."""
    course = course_service.create_course(request.get_json(), get_auth_user_id())
    return APIRoute.success(data=course, message="Curso creado exitosamente", status_code=201)

@courses_bp.route('/<course_id>', methods=['PUT'])
@APIRoute.standard(auth_required_flag=True, roles=['faculty'],
                   schema={k: {**v, "required": False} for k, v in course_schema.items()})
def update_course(course_id):
    course = course_service.update_course(course_id, get_auth_user_id(), request.get_json(silent=True) or {})
    return APIRoute.success(data=course, message="Curso actualizado")

@courses_bp.route('/<course_id>', methods=['DELETE'])
@APIRoute.standard(auth_required_flag=True, roles=['faculty'])
def delete_course(course_id):
    course_service.delete_course(course_id, get_auth_user_id())
    return APIRoute.success(message="Curso eliminado")

@courses_bp.route('/<course_id>/publish', methods=['POST'])
@APIRoute.standard(auth_required_flag=True, roles=['faculty'])
def publish_course(course_id):
    """
    Publica o despublica un curso. Si el cuerpo trae `is_published` se fija
    ese estado; si no, se alterna.
    """
    data = request.get_json(silent=True) or {}
    target = None
    if "is_published" in data:
        target = parse_bool(data["is_published"])
        if target is None:
            raise AppException("is_published debe ser booleano", AppException.BAD_REQUEST)

    course = course_service.set_published(course_id, get_auth_user_id(), target)
    message = "Curso publicado" if course["is_published"] else "Curso despublicado"
    return APIRoute.success(data=course, message=message)
