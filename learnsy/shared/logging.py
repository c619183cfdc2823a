import logging
from flask import current_app, has_app_context

def get_logger(name: str = None) -> logging.Logger:
    """
    Obtiene el logger a usar para un módulo.
    Dentro de un contexto de Flask se usa el logger de la aplicación.
    
    Args:
        name: Nombre del módulo o servicio que solicita el logger
    """
    if has_app_context():
        return current_app.logger
    return logging.getLogger(name)

def log_info(message: str, module: str = None):
    get_logger(module).info(message)

def log_warning(message: str, module: str = None):
    get_logger(module).warning(message)
