from flask import request

from .services import EnrollmentService
from learnsy.shared.standardization import APIBlueprint, APIRoute
from learnsy.shared.decorators import get_auth_user_id, get_auth_user_role

enrollments_bp = APIBlueprint('enrollments', __name__)
enrollment_service = EnrollmentService()

@enrollments_bp.route('/my-enrollments', methods=['GET'])
@APIRoute.standard(auth_required_flag=True, roles=['student'])
def my_enrollments():
    enrollments = enrollment_service.get_student_enrollments(get_auth_user_id(), request.args.get('status'))
    return APIRoute.success(data={"enrollments": enrollments, "total": len(enrollments)})

@enrollments_bp.route('/', methods=['POST'])
@APIRoute.standard(auth_required_flag=True, roles=['student'], required_fields=['course_id'])
def enroll():
    enrollment = enrollment_service.enroll(get_auth_user_id(), request.get_json()['course_id'])
    return APIRoute.success(data=enrollment, message="Inscripción realizada", status_code=201)

@enrollments_bp.route('/enroll/<course_id>', methods=['POST'])
@APIRoute.standard(auth_required_flag=True, roles=['student'])
def enroll_in_course(course_id):
    enrollment = enrollment_service.enroll(get_auth_user_id(), course_id)
    return APIRoute.success(data=enrollment, message="Inscripción realizada", status_code=201)

@enrollments_bp.route('/course/<course_id>', methods=['GET'])
@APIRoute.standard(auth_required_flag=True, roles=['faculty'])
def course_enrollments(course_id):
    """Estudiantes inscritos en un curso del docente."""
    return APIRoute.success(data=enrollment_service.get_course_enrollments(course_id, get_auth_user_id()))

@enrollments_bp.route('/<enrollment_id>', methods=['GET'])
@APIRoute.standard(auth_required_flag=True)
def get_enrollment(enrollment_id):
    enrollment = enrollment_service.get_enrollment(enrollment_id, get_auth_user_id(), get_auth_user_role())
    return APIRoute.success(data=enrollment)

@enrollments_bp.route('/<enrollment_id>/progress', methods=['PUT'])
@APIRoute.standard(auth_required_flag=True, roles=['student'], schema={
    "percentage": {"type": "number"},
    "lessons_completed": {"type": "integer", "minimum": 0}
})
def update_progress(enrollment_id):
    enrollment = enrollment_service.update_progress(enrollment_id, get_auth_user_id(), request.get_json(silent=True) or {})
    return APIRoute.success(data=enrollment, message="Progreso actualizado")

@enrollments_bp.route('/<enrollment_id>', methods=['DELETE'])
@APIRoute.standard(auth_required_flag=True, roles=['student'])
def drop_enrollment(enrollment_id):
    enrollment = enrollment_service.drop(enrollment_id, get_auth_user_id())
    return APIRoute.success(data=enrollment, message="Has abandonado el curso")
