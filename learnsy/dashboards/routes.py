from .services import DashboardService
from learnsy.shared.standardization import APIBlueprint, APIRoute
from learnsy.shared.decorators import get_auth_user_id

dashboard_bp = APIBlueprint('dashboard', __name__)
dashboard_service = DashboardService()

@dashboard_bp.route('/student', methods=['GET'])
@APIRoute.standard(auth_required_flag=True, roles=['student'])
def student_dashboard():
    return APIRoute.success(data=dashboard_service.student_dashboard(get_auth_user_id()))

@dashboard_bp.route('/faculty/overview', methods=['GET'])
@APIRoute.standard(auth_required_flag=True, roles=['faculty'])
def faculty_overview():
    """Totales de cursos, estudiantes e inscripciones y sesiones de los últimos 7 días."""
    return APIRoute.success(data=dashboard_service.faculty_overview(get_auth_user_id()))

@dashboard_bp.route('/faculty/courses', methods=['GET'])
@APIRoute.standard(auth_required_flag=True, roles=['faculty'])
def faculty_courses():
    return APIRoute.success(data={"courses": dashboard_service.faculty_courses(get_auth_user_id())})

@dashboard_bp.route('/faculty/course/<course_id>/analytics', methods=['GET'])
@APIRoute.standard(auth_required_flag=True, roles=['faculty'])
def course_analytics(course_id):
    return APIRoute.success(data=dashboard_service.course_analytics(course_id, get_auth_user_id()))
