from functools import wraps
from flask import request, jsonify, current_app
from flask_jwt_extended import verify_jwt_in_request, get_jwt_identity, get_jwt
from flask_jwt_extended.exceptions import JWTExtendedException
from werkzeug.exceptions import HTTPException
from jwt.exceptions import PyJWTError
from learnsy.shared.database import get_db
from learnsy.shared.constants import normalize_role
from learnsy.shared.exceptions import AppException
from learnsy.shared.utils import to_object_id
import logging

logger = logging.getLogger(__name__)

def handle_errors(f):
    """Decorador para manejar excepciones en las rutas"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except AppException as e:
            response = {
                "success": False,
                "error": e.__class__.__name__,
                "message": str(e.message)
            }
            if e.details:
                response["details"] = e.details
            return jsonify(response), e.code
        except HTTPException:
            raise
        except Exception as e:
            current_app.logger.exception(f"Error inesperado: {str(e)}")
            return jsonify({
                "success": False,
                "error": "ERROR_SERVIDOR",
                "message": "Error interno del servidor"
            }), 500
    return decorated_function

def _auth_error(message: str, status_code: int = 401):
    return jsonify({
        "success": False,
        "error": "ERROR_AUTENTICACION",
        "message": message
    }), status_code

def auth_required(f):
    """
    Decorador para requerir autenticación mediante JWT.

    Deja en el request `user_id`, `user_role` y `user` (documento sin contraseña).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            verify_jwt_in_request()
            user_id = get_jwt_identity()
        except (JWTExtendedException, PyJWTError) as e:
            logger.warning(f"Auth_required: token inválido: {str(e)}")
            return _auth_error("Token inválido o ausente")

        user_oid = to_object_id(user_id)
        if user_oid is None:
            return _auth_error("Token inválido o ausente")

        user = get_db().users.find_one({"_id": user_oid}, {"password": 0})
        if not user:
            logger.warning(f"Auth_required: Usuario con ID {user_id} no encontrado en la base de datos")
            return _auth_error("Usuario no encontrado")
        if user.get("is_active") is False:
            return _auth_error("La cuenta está desactivada")

        request.user_id = str(user["_id"])
        request.user_role = normalize_role(user.get("role")) or normalize_role(get_jwt().get("role"))
        request.user = user
        logger.debug(f"Auth_required: Usuario autenticado {request.user_id} ({request.user_role})")

        return f(*args, **kwargs)
    return decorated_function

def role_required(required_roles):
    """
    Decorador para verificar que el usuario tiene uno de los roles requeridos.
    Debe usarse después de auth_required.

    Args:
        required_roles: Rol o lista de roles ('student', 'faculty')
    """
    if isinstance(required_roles, str):
        required_roles = [required_roles]
    allowed = {normalize_role(role) for role in required_roles}

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(request, 'user_id'):
                return _auth_error("Se requiere autenticación")

            if getattr(request, 'user_role', None) not in allowed:
                return jsonify({
                    "success": False,
                    "error": "ERROR_PERMISO",
                    "message": "No tiene los permisos necesarios"
                }), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator

def validate_json(required_fields=None, schema=None):
    """Decorador para validar JSON en las solicitudes"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            data = request.get_json(silent=True)
            # Sin cuerpo: los campos requeridos y el esquema deciden
            if data is None and not request.get_data():
                data = {}
            if not isinstance(data, dict):
                return jsonify({
                    "success": False,
                    "error": "ERROR_FORMATO",
                    "message": "Se esperaba contenido JSON"
                }), 400

            if required_fields:
                missing_fields = [field for field in required_fields
                                  if data.get(field) in (None, "")]
                if missing_fields:
                    return jsonify({
                        "success": False,
                        "error": "CAMPOS_FALTANTES",
                        "message": f"Faltan campos requeridos: {', '.join(missing_fields)}"
                    }), 400

            if schema:
                from learnsy.shared.validators import validate_schema
                is_valid, errors = validate_schema(data, schema)
                if not is_valid:
                    return jsonify({
                        "success": False,
                        "error": "DATOS_INVALIDOS",
                        "message": "Datos inválidos",
                        "details": errors
                    }), 400

            return f(*args, **kwargs)
        return decorated_function
    return decorator

def get_auth_user_id():
    """Obtiene el ID del usuario autenticado"""
    return getattr(request, 'user_id', None)

def get_auth_user_role():
    """Obtiene el rol del usuario autenticado"""
    return getattr(request, 'user_role', None)
