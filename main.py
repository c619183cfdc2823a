from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from werkzeug.exceptions import HTTPException
from learnsy.shared.database import get_db, setup_database_indexes
from learnsy.shared.exceptions import AppException
from learnsy.shared.limiter import limiter
from config import active_config, validate_env_vars
import logging
import os
import sys
from learnsy.shared.constants import APP_PREFIX, APP_NAME, APP_VERSION
from learnsy.shared.utils import utcnow

logging.basicConfig(
    level=logging.DEBUG if active_config.DEBUG else logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
logger = logging.getLogger(APP_NAME)

if not validate_env_vars():
    logger.critical("Configuración incompleta: revise MONGO_DB_URI, DB_NAME y JWT_SECRET en .env")
    if os.getenv('ENFORCE_ENV_VALIDATION', '0') == '1':
        sys.exit(1)
    logger.warning("Learnsy arranca con configuración incompleta")

from learnsy.users.routes import signup_bp, auth_bp
from learnsy.courses.routes import courses_bp
from learnsy.enrollments.routes import enrollments_bp
from learnsy.materials.routes import materials_bp, uploads_bp
from learnsy.progress.routes import progress_bp
from learnsy.study_sessions.routes import study_sessions_bp
from learnsy.subscriptions.routes import subscriptions_bp, payment_verification_bp
from learnsy.ai_tools.routes import ai_tools_bp
from learnsy.dashboards.routes import dashboard_bp

# (blueprint, prefijo relativo a /api)
BLUEPRINTS = [
    (signup_bp, '/signup'),
    (auth_bp, '/auth'),
    (courses_bp, '/courses'),
    (enrollments_bp, '/enrollments'),
    (materials_bp, '/materials'),
    (progress_bp, '/progress'),
    (study_sessions_bp, '/study-sessions'),
    (subscriptions_bp, '/subscriptions'),
    (payment_verification_bp, '/payment-verification'),
    (ai_tools_bp, '/ai-tools'),
    (dashboard_bp, '/dashboard'),
]

SENSITIVE_FIELDS = {'password', 'confirm_password', 'token'}

def _mask(data):
    if isinstance(data, dict):
        return {k: ('***' if k in SENSITIVE_FIELDS else _mask(v)) for k, v in data.items()}
    return data

def _error_response(code, error, message, details=None):
    body = {"success": False, "error": error, "message": message}
    if details:
        body["details"] = details
    return jsonify(body), code

def _register_request_logging(app):
    mode = app.config.get('API_LOGGING', 'basic')
    if mode == 'none':
        return

    @app.after_request
    def log_response(response):
        line = f"{request.method} {request.path} -> {response.status_code}"
        if mode != 'detailed':
            logger.info(line)
            return response

        payload = None
        if request.is_json:
            payload = _mask(request.get_json(silent=True))
        elif request.form:
            payload = _mask(request.form.to_dict())
        elif request.args:
            payload = dict(request.args)
        logger.info(f"{line} | payload={payload}" if payload else line)
        return response

def _check_database(app):
    """Comprueba MongoDB al arrancar y crea los índices si está habilitado."""
    if not app.config.get('CHECK_DB_ON_STARTUP', True):
        return
    try:
        get_db()
    except Exception as e:
        logger.error(f"MongoDB no disponible: {e}")
        logger.warning("Learnsy sigue en marcha sin base de datos; las peticiones fallarán")
        return

    logger.info("MongoDB conectado")
    if app.config.get('SETUP_INDEXES', True) and not setup_database_indexes():
        logger.warning("Algunos índices no se pudieron crear")

def _register_error_handlers(app):
    @app.errorhandler(404)
    def handle_not_found(error):
        return _error_response(404, "NOT_FOUND", "Ruta no encontrada")

    @app.errorhandler(413)
    def handle_payload_too_large(error):
        return _error_response(413, "ARCHIVO_DEMASIADO_GRANDE",
                               "El archivo supera el tamaño máximo permitido")

    @app.errorhandler(429)
    def handle_rate_limited(error):
        return _error_response(429, "DEMASIADAS_SOLICITUDES",
                               "Demasiadas solicitudes. Inténtelo de nuevo más tarde.")

    @app.errorhandler(Exception)
    def handle_unhandled_exception(error):
        if isinstance(error, AppException):
            return _error_response(error.code, error.__class__.__name__,
                                   str(error.message), error.details)

        # Los errores HTTP (405, 400...) conservan su código
        if isinstance(error, HTTPException):
            return _error_response(error.code, error.name.upper().replace(' ', '_'),
                                   error.description)

        logger.exception(f"Error no controlado: {error}")
        return _error_response(500, "ERROR_SERVIDOR", "Error interno del servidor")

def create_app(config_object=active_config):
    """
    Construye la aplicación Learnsy: CORS para /api, JWT, límites de
    peticiones, logging de peticiones, manejadores de error y blueprints.
    """
    app = Flask(APP_NAME)
    app.config.from_object(config_object)
    app.url_map.strict_slashes = False

    CORS(app, resources={
        rf"{APP_PREFIX}/*": {
            "origins": app.config["CORS_ORIGINS"],
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
            "supports_credentials": True
        }
    })
    JWTManager(app)
    limiter.init_app(app)

    _register_request_logging(app)
    _check_database(app)
    _register_error_handlers(app)

    for blueprint, prefix in BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=f'{APP_PREFIX}{prefix}')
    app.register_blueprint(uploads_bp, url_prefix='/uploads')

    @app.route(f'{APP_PREFIX}/health')
    def api_health():
        return jsonify({
            "status": "OK",
            "message": "Learnsy API is running",
            "timestamp": utcnow().isoformat()
        })

    @app.route('/')
    def health_check():
        return jsonify({
            "status": "healthy",
            "version": APP_VERSION,
            "env": os.getenv('FLASK_ENV', 'development')
        })

    return app

# Instancia para servidores WSGI (gunicorn main:app)
app = create_app()

if __name__ == '__main__':
    logger.info(f"Learnsy escuchando en el puerto {app.config['PORT']}")
    app.run(host='0.0.0.0', port=app.config['PORT'], debug=app.config['DEBUG'])
