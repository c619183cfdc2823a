import os

from flask import request, send_from_directory

from .services import MaterialService
from .models import MATERIALS_SUBFOLDER
from learnsy.shared.standardization import APIBlueprint, APIRoute
from learnsy.shared.decorators import get_auth_user_id, get_auth_user_role
from learnsy.shared.exceptions import AppException
from learnsy.shared.storage import upload_root
from learnsy.shared.utils import parse_bool

materials_bp = APIBlueprint('materials', __name__)
uploads_bp = APIBlueprint('uploads', __name__)
material_service = MaterialService()

def _request_payload():
    """Datos del material desde multipart (con archivo) o desde JSON."""
    if request.files or request.form:
        return request.form.to_dict(), request.files.get('file')
    return request.get_json(silent=True) or {}, None

@materials_bp.route('/', methods=['POST'])
@APIRoute.standard(auth_required_flag=True, roles=['faculty'])
def create_material():
    """
    Crea un material. Acepta multipart/form-data con el campo `file`
    (máximo 50 MB) o JSON para enlaces, textos y cuestionarios.
    """
    data, file = _request_payload()
    material = material_service.create_material(get_auth_user_id(), data, file)
    return APIRoute.success(data=material, message="Material creado exitosamente", status_code=201)

@materials_bp.route('/course/<course_id>', methods=['GET'])
@APIRoute.standard(auth_required_flag=True)
def course_materials(course_id):
    return APIRoute.success(
        data=material_service.course_materials(course_id, get_auth_user_id(), get_auth_user_role())
    )

@materials_bp.route('/faculty/course/<course_id>', methods=['GET'])
@APIRoute.standard(auth_required_flag=True, roles=['faculty'])
def faculty_course_materials(course_id):
    """Todos los materiales del curso, incluidos los no publicados."""
    return APIRoute.success(data=material_service.faculty_course_materials(course_id, get_auth_user_id()))

@materials_bp.route('/course/<course_id>/completed', methods=['GET'])
@APIRoute.standard(auth_required_flag=True, roles=['student'])
def completed_materials(course_id):
    return APIRoute.success(data=material_service.completed_materials(course_id, get_auth_user_id()))

@materials_bp.route('/<material_id>', methods=['GET'])
@APIRoute.standard(auth_required_flag=True)
def get_material(material_id):
    material = material_service.get_material(material_id, get_auth_user_id(), get_auth_user_role())
    return APIRoute.success(data=material)

@materials_bp.route('/<material_id>', methods=['PUT'])
@APIRoute.standard(auth_required_flag=True, roles=['faculty'])
def update_material(material_id):
    data, file = _request_payload()
    material = material_service.update_material(material_id, get_auth_user_id(), data, file)
    return APIRoute.success(data=material, message="Material actualizado")

@materials_bp.route('/<material_id>', methods=['DELETE'])
@APIRoute.standard(auth_required_flag=True, roles=['faculty'])
def delete_material(material_id):
    material_service.delete_material(material_id, get_auth_user_id())
    return APIRoute.success(message="Material eliminado")

@materials_bp.route('/<material_id>/complete', methods=['POST'])
@APIRoute.standard(auth_required_flag=True, roles=['student'])
def complete_material(material_id):
    data = request.get_json(silent=True) or {}
    completed = parse_bool(data.get('completed', True))
    if completed is None:
        raise AppException("completed debe ser booleano", AppException.BAD_REQUEST)
    result = material_service.set_completion(material_id, get_auth_user_id(), completed)
    return APIRoute.success(data=result, message="Progreso del material actualizado")

@uploads_bp.route(f'/{MATERIALS_SUBFOLDER}/<path:file_name>', methods=['GET'])
def serve_material_file(file_name):
    return send_from_directory(os.path.join(upload_root(), MATERIALS_SUBFOLDER), file_name)
