from flask import request

from .services import ProgressService
from learnsy.shared.standardization import APIBlueprint, APIRoute
from learnsy.shared.decorators import get_auth_user_id
from learnsy.shared.validators import progress_update_schema

progress_bp = APIBlueprint('progress', __name__)
progress_service = ProgressService()

@progress_bp.route('/student-overview', methods=['GET'])
@APIRoute.standard(auth_required_flag=True, roles=['student'])
def student_overview():
    """Resumen del estudiante: cursos, progreso medio, tiempo de estudio y rachas."""
    return APIRoute.success(data=progress_service.student_overview(get_auth_user_id()))

@progress_bp.route('/course/<course_id>', methods=['GET'])
@APIRoute.standard(auth_required_flag=True, roles=['student'])
def get_course_progress(course_id):
    return APIRoute.success(data=progress_service.get_course_progress(get_auth_user_id(), course_id))

@progress_bp.route('/course/<course_id>', methods=['PUT'])
@APIRoute.standard(auth_required_flag=True, roles=['student'], schema=progress_update_schema)
def update_course_progress(course_id):
    progress = progress_service.update_course_progress(get_auth_user_id(), course_id, request.get_json(silent=True) or {})
    return APIRoute.success(data=progress, message="Progreso actualizado")

@progress_bp.route('/analytics', methods=['GET'])
@APIRoute.standard(auth_required_flag=True, roles=['student'])
def analytics():
    timeframe = request.args.get('timeframe', 'week')
    return APIRoute.success(data=progress_service.analytics(get_auth_user_id(), timeframe))

@progress_bp.route('/achievements', methods=['GET'])
@APIRoute.standard(auth_required_flag=True, roles=['student'])
def achievements():
    return APIRoute.success(data=progress_service.achievements(get_auth_user_id()))
