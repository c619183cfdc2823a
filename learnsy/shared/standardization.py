"""
Estandarización para la API de Learnsy

Punto único de importación para:
1. Rutas estandarizadas (APIBlueprint, APIRoute)
2. Servicios base (BaseService, VerificationBaseService)
3. Códigos de error (ErrorCodes)
"""

from flask import jsonify, Blueprint
from learnsy.shared.decorators import handle_errors, auth_required, role_required, validate_json
from learnsy.shared.exceptions import AppException
from learnsy.shared.utils import ensure_json_serializable, to_object_id, utcnow
from typing import List, Dict, Any, Optional
from learnsy.shared.database import get_db

#-------------------------------------------------------
# ESTANDARIZACIÓN DE RUTAS
#-------------------------------------------------------

class APIBlueprint(Blueprint):
    """Blueprint de Flask usado por todos los módulos de la API."""

    def __init__(self, name, import_name, **kwargs):
        super().__init__(name, import_name, **kwargs)


class APIRoute:
    """
    Clase de utilidad para estandarizar rutas y respuestas.
    """

    @staticmethod
    def standard(auth_required_flag: bool = False,
                 roles: List[str] = None,
                 required_fields: List[str] = None,
                 schema: Dict = None):
        """
        Decorador compuesto que aplica los decoradores estándar de la aplicación.

        El orden de ejecución es: manejo de errores, autenticación, roles y
        validación del cuerpo JSON.

        Args:
            auth_required_flag: Si es True, requiere autenticación JWT
            roles: Lista de roles permitidos para acceder a la ruta
            required_fields: Lista de campos requeridos en el cuerpo JSON
            schema: Esquema de validación para el cuerpo JSON
        """
        decorators = [handle_errors]

        if auth_required_flag:
            decorators.append(auth_required)
            if roles:
                decorators.append(role_required(roles))

        if required_fields or schema:
            decorators.append(validate_json(required_fields, schema))

        def decorator(f):
            for decorator in reversed(decorators):
                f = decorator(f)
            return f

        return decorator

    @staticmethod
    def success(data: Any = None, message: str = None, status_code: int = 200) -> tuple:
        """
        Crea una respuesta exitosa estandarizada.

        Returns:
            Tupla (response, status_code) para retornar desde una ruta Flask
        """
        response = {"success": True}

        if data is not None:
            response["data"] = ensure_json_serializable(data)

        if message:
            response["message"] = message

        return jsonify(response), status_code

    @staticmethod
    def error(error_code: str, message: str, details: Dict = None, status_code: int = 400) -> tuple:
        """
        Crea una respuesta de error estandarizada.

        Args:
            error_code: Código de error único (ej. "CURSO_NO_ENCONTRADO")
            message: Mensaje descriptivo del error
            details: Detalles adicionales del error (opcional)
            status_code: Código de estado HTTP (por defecto 400)
        """
        response = {
            "success": False,
            "error": error_code,
            "message": message
        }

        if details:
            response["details"] = details

        return jsonify(response), status_code

#-------------------------------------------------------
# ESTANDARIZACIÓN DE SERVICIOS
#-------------------------------------------------------

class BaseService:
    """
    Clase base para servicios con operaciones CRUD sobre una colección.

    La base de datos se resuelve de forma perezosa, de modo que los servicios
    pueden instanciarse al importar las rutas sin conexión activa.
    """

    def __init__(self, collection_name: str, db=None):
        """
        Args:
            collection_name: Nombre de la colección de MongoDB del servicio
            db: Base de datos a usar; por defecto la conexión global
        """
        self._db = db
        self.collection_name = collection_name

    @property
    def db(self):
        if self._db is None:
            self._db = get_db()
        return self._db

    @property
    def collection(self):
        return self.db[self.collection_name]

    def get_by_id(self, id: str) -> Optional[Dict]:
        """
        Obtiene un documento por su ID.

        Raises:
            AppException: Si el ID no es válido
        """
        object_id = to_object_id(id)
        if object_id is None:
            raise AppException(f"ID inválido: {id}", AppException.BAD_REQUEST)
        return self.collection.find_one({"_id": object_id})

    def update(self, id: str, data: Dict) -> bool:
        """
        Actualiza los campos indicados de un documento.

        Returns:
            True si se encontró el documento
        """
        object_id = to_object_id(id)
        if object_id is None:
            raise AppException(f"ID inválido: {id}", AppException.BAD_REQUEST)
        data = dict(data)
        data.pop("_id", None)
        data["updated_at"] = utcnow()
        result = self.collection.update_one({"_id": object_id}, {"$set": data})
        return result.matched_count > 0

    def count(self, filter: Dict = None) -> int:
        return self.collection.count_documents(filter or {})

#-------------------------------------------------------
# CÓDIGOS DE ERROR ESTANDARIZADOS
#-------------------------------------------------------

class ErrorCodes:
    """
    Códigos de error estandarizados para toda la aplicación.
    """

    # Errores de recursos
    RESOURCE_NOT_FOUND = "RECURSO_NO_ENCONTRADO"    # 404
    RESOURCE_ALREADY_EXISTS = "RECURSO_YA_EXISTE"   # 409

    # Errores de validación
    INVALID_DATA = "DATOS_INVALIDOS"                # 400
    MISSING_FIELDS = "CAMPOS_FALTANTES"             # 400
    INVALID_FILE = "ARCHIVO_INVALIDO"               # 400
    FILE_TOO_LARGE = "ARCHIVO_DEMASIADO_GRANDE"     # 413

    # Errores de autenticación y autorización
    AUTHENTICATION_ERROR = "ERROR_AUTENTICACION"    # 401
    INVALID_CREDENTIALS = "CREDENCIALES_INVALIDAS"  # 401
    PERMISSION_DENIED = "PERMISO_DENEGADO"          # 403

    # Errores de dominio específico
    USER_NOT_FOUND = "USUARIO_NO_ENCONTRADO"        # 404
    COURSE_NOT_FOUND = "CURSO_NO_ENCONTRADO"        # 404
    EMAIL_IN_USE = "EMAIL_EN_USO"                   # 409
    STUDENT_ID_IN_USE = "MATRICULA_EN_USO"          # 409
    ALREADY_ENROLLED = "YA_INSCRITO"                # 409
    SESSION_ALREADY_ACTIVE = "SESION_YA_ACTIVA"     # 409
    SESSION_ENDED = "SESION_FINALIZADA"             # 409
    RATE_LIMITED = "DEMASIADAS_SOLICITUDES"         # 429

    # Errores de servidor
    SERVER_ERROR = "ERROR_SERVIDOR"                 # 500

#-------------------------------------------------------
# SERVICIOS DE VERIFICACIÓN ESTANDARIZADOS
#-------------------------------------------------------

class VerificationBaseService(BaseService):
    """
    Extiende BaseService con verificaciones reutilizables sobre usuarios,
    cursos e inscripciones.
    """

    def get_course_or_404(self, course_id: str) -> Dict:
        """
        Obtiene un curso o lanza 404.

        Raises:
            AppException: Si el ID es inválido (400) o el curso no existe (404)
        """
        course_oid = to_object_id(course_id)
        if course_oid is None:
            raise AppException(f"ID de curso inválido: {course_id}", AppException.BAD_REQUEST)
        course = self.db.courses.find_one({"_id": course_oid})
        if not course:
            raise AppException("Curso no encontrado", AppException.NOT_FOUND)
        return course

    def ensure_course_owner(self, course: Dict, faculty_id: str) -> None:
        if str(course.get("faculty_id")) != str(faculty_id):
            raise AppException("Solo el docente propietario puede realizar esta acción",
                               AppException.FORBIDDEN)

    def get_active_enrollment(self, student_id: str, course_id) -> Optional[Dict]:
        return self.db.enrollments.find_one({
            "student_id": to_object_id(student_id),
            "course_id": to_object_id(course_id),
            "status": {"$in": ["active", "completed"]}
        })

    def is_enrolled(self, student_id: str, course_id) -> bool:
        return self.get_active_enrollment(student_id, course_id) is not None
