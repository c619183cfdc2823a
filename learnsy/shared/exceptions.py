"""
Excepciones de la aplicación.

Los servicios lanzan AppException para los errores esperados; el decorador
handle_errors (decorators.py) la convierte en una respuesta JSON con el
código HTTP indicado.

    raise AppException("Curso no encontrado", AppException.NOT_FOUND)
    raise AppException("Validación fallida", 400, {"email": "Formato inválido"})
"""

class AppException(Exception):
    """
    Excepción base para errores de la aplicación.
    
    Permite especificar un código HTTP y detalles adicionales.
    """
    
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    CONFLICT = 409
    PAYLOAD_TOO_LARGE = 413
    INTERNAL_ERROR = 500
    
    def __init__(self, message: str, code: int = BAD_REQUEST, details: dict = None):
        """
        Args:
            message: Mensaje descriptivo del error
            code: Código HTTP de estado (por defecto 400)
            details: Diccionario con detalles adicionales del error
        """
        self.message = message
        self.code = code
        self.details = details
        super().__init__(self.message)
