from flask import request, jsonify
from flask_jwt_extended import create_access_token

from .services import UserService
from learnsy.shared.standardization import APIBlueprint, APIRoute, ErrorCodes
from learnsy.shared.decorators import get_auth_user_id, get_auth_user_role
from learnsy.shared.limiter import limiter, LOGIN_LIMIT, REGISTER_LIMIT
from learnsy.shared.logging import log_info
from learnsy.shared.utils import utcnow
from learnsy.shared.validators import student_register_schema, faculty_register_schema, login_schema

signup_bp = APIBlueprint('signup', __name__)
auth_bp = APIBlueprint('auth', __name__)
user_service = UserService()

def _issue_token(user_info):
    claims = {"email": user_info["email"], "role": user_info["role"]}
    return create_access_token(identity=user_info["id"], additional_claims=claims)

def _register(role: str):
    data = request.get_json()
    if user_service.verify_user_exists(data['email']):
        return APIRoute.error(ErrorCodes.EMAIL_IN_USE, "El correo electrónico ya está registrado.",
                              status_code=409)

    user_info = user_service.register_user(data, role)
    return APIRoute.success(
        data={"token": _issue_token(user_info), "user": user_info},
        message="Usuario registrado exitosamente.",
        status_code=201
    )

def _login(role: str):
    data = request.get_json()
    user_info = user_service.login_user(data['email'], data['password'], role)
    log_info(f"Inicio de sesión de {role}: {user_info['email']}", "users.routes")
    return APIRoute.success(
        data={"token": _issue_token(user_info), "user": user_info},
        message="Inicio de sesión exitoso"
    )

@signup_bp.route('/student/register', methods=['POST'])
@limiter.limit(REGISTER_LIMIT)
@APIRoute.standard(schema=student_register_schema)
def register_student():
    """Registro de un estudiante (nombre, email, contraseña y matrícula)."""
    return _register("student")

@signup_bp.route('/faculty/register', methods=['POST'])
@limiter.limit(REGISTER_LIMIT)
@APIRoute.standard(schema=faculty_register_schema)
def register_faculty():
    """Registro de un docente (requiere institución)."""
    return _register("faculty")

@signup_bp.route('/student/login', methods=['POST'])
@auth_bp.route('/student/login', methods=['POST'])
@limiter.limit(LOGIN_LIMIT)
@APIRoute.standard(schema=login_schema)
def login_student():
    return _login("student")

@signup_bp.route('/faculty/login', methods=['POST'])
@auth_bp.route('/faculty/login', methods=['POST'])
@limiter.limit(LOGIN_LIMIT)
@APIRoute.standard(schema=login_schema)
def login_faculty():
    return _login("faculty")

@signup_bp.route('/profile', methods=['GET'])
@auth_bp.route('/profile', methods=['GET'])
@APIRoute.standard(auth_required_flag=True)
def get_profile():
    """Perfil del usuario autenticado."""
    return APIRoute.success(data=user_service.get_profile(get_auth_user_id()))

@signup_bp.route('/profile', methods=['PUT'])
@APIRoute.standard(auth_required_flag=True, schema={
    "name": {"type": "string", "minLength": 2, "maxLength": 100},
    "department": {"type": "string", "maxLength": 100},
    "institution": {"type": "string"},
    "student_id": {"type": "string"}
})
def update_profile():
    profile = user_service.update_profile(get_auth_user_id(), get_auth_user_role(), request.get_json(silent=True) or {})
    return APIRoute.success(data=profile, message="Perfil actualizado")

@signup_bp.route('/stats', methods=['GET'])
@APIRoute.standard(auth_required_flag=True, roles=['faculty'])
def get_stats():
    """Totales de usuarios registrados (solo docentes)."""
    return APIRoute.success(data=user_service.get_stats())

@signup_bp.route('/health', methods=['GET'])
def signup_health():
    return jsonify({
        "success": True,
        "message": "Signup service is running",
        "timestamp": utcnow().isoformat()
    })
