from flask import request

from .services import StudySessionService
from learnsy.shared.standardization import APIBlueprint, APIRoute
from learnsy.shared.decorators import get_auth_user_id
from learnsy.shared.validators import session_start_schema, session_update_schema
from learnsy.shared.utils import paginate_params

study_sessions_bp = APIBlueprint('study_sessions', __name__)
study_session_service = StudySessionService()

@study_sessions_bp.route('/start', methods=['POST'])
@APIRoute.standard(auth_required_flag=True, roles=['student'], schema=session_start_schema)
def start_session():
    """
    Abre una sesión de estudio. Si el estudiante tiene otra sesión abierta
    y activa responde 409; si la anterior quedó inactiva se cierra sola.
    """
    session = study_session_service.start(get_auth_user_id(), request.get_json(silent=True) or {})
    return APIRoute.success(data=session, message="Sesión de estudio iniciada", status_code=201)

@study_sessions_bp.route('/<session_id>/update', methods=['PUT', 'POST'])
@APIRoute.standard(auth_required_flag=True, roles=['student'], schema=session_update_schema)
def update_session(session_id):
    session = study_session_service.update(session_id, get_auth_user_id(), request.get_json(silent=True) or {})
    return APIRoute.success(data=session)

@study_sessions_bp.route('/<session_id>/end', methods=['PUT', 'POST'])
@APIRoute.standard(auth_required_flag=True, roles=['student'])
def end_session(session_id):
    session = study_session_service.end(session_id, get_auth_user_id())
    return APIRoute.success(data=session, message="Sesión de estudio finalizada")

@study_sessions_bp.route('/active', methods=['GET'])
@APIRoute.standard(auth_required_flag=True, roles=['student'])
def active_session():
    """Sesión abierta del estudiante o null."""
    return APIRoute.success(data=study_session_service.get_active(get_auth_user_id()))

@study_sessions_bp.route('/history', methods=['GET'])
@APIRoute.standard(auth_required_flag=True, roles=['student'])
def session_history():
    limit, page, skip = paginate_params(request.args, default_limit=20)
    result = study_session_service.history(get_auth_user_id(), limit, page, skip, request.args.get('course_id'))
    return APIRoute.success(data=result)

@study_sessions_bp.route('/stats', methods=['GET'])
@APIRoute.standard(auth_required_flag=True, roles=['student'])
def session_stats():
    return APIRoute.success(data=study_session_service.stats(get_auth_user_id()))
