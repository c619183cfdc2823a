import os
import sys
import logging
import tempfile
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# Variables de entorno requeridas en producción
REQUIRED_ENV_VARS = ['MONGO_DB_URI', 'DB_NAME', 'JWT_SECRET']

def _flag(name: str, default: str = '0') -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes')

def validate_env_vars():
    """
    Comprueba REQUIRED_ENV_VARS; fuera de producción siempre es válido.
    """
    if os.getenv('FLASK_ENV') != 'production':
        return True

    missing = ', '.join(var for var in REQUIRED_ENV_VARS if not os.getenv(var))
    if missing:
        logger.error(f"Variables de entorno sin definir: {missing}")
        return False
    return True

class Config:
    """Valores comunes a todos los entornos, leídos de .env"""
    # Base de datos
    MONGO_DB_URI = os.getenv('MONGO_DB_URI')
    DB_NAME = os.getenv('DB_NAME', 'learnsy')
    SETUP_INDEXES = _flag('SETUP_INDEXES', '1')
    CHECK_DB_ON_STARTUP = _flag('CHECK_DB_ON_STARTUP', '1')

    # Tokens
    JWT_SECRET_KEY = os.getenv('JWT_SECRET', 'develop-secret-key')
    JWT_TOKEN_LOCATION = ["headers"]
    JWT_HEADER_NAME = "Authorization"
    JWT_HEADER_TYPE = "Bearer"
    JWT_ACCESS_TOKEN_EXPIRES = int(os.getenv('JWT_EXPIRATION_HOURS', 168)) * 3600  # En segundos (7 días)
    BCRYPT_ROUNDS = int(os.getenv('BCRYPT_ROUNDS', 12))

    # Servidor
    DEBUG = os.getenv('FLASK_DEBUG', '0') == '1'
    PORT = int(os.getenv('PORT', 5000))

    # CORS
    # Lista separada por comas
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', 'http://localhost:5173,http://localhost:3000').split(',')

    # Logging
    # Valores posibles: 'none', 'basic', 'detailed'
    API_LOGGING = os.getenv('API_LOGGING', 'basic')

    # Archivos subidos
    UPLOAD_FOLDER = os.getenv('UPLOAD_FOLDER', os.path.join(os.path.dirname(os.path.abspath(__file__)), 'uploads'))
    MAX_CONTENT_LENGTH = 100 * 1024 * 1024

    # Límite de peticiones (flask-limiter)
    RATELIMIT_ENABLED = _flag('RATELIMIT_ENABLED', '1')

    # Sesiones de estudio y pagos
    SESSION_IDLE_TIMEOUT_MINUTES = float(os.getenv('SESSION_IDLE_TIMEOUT_MINUTES', 5))
    UPI_ID = os.getenv('UPI_ID', 'learnsy@upi')

    @classmethod
    def validate(cls):
        """Avisa de valores por defecto inseguros"""
        if cls.MONGO_DB_URI is None:
            logger.warning("MONGO_DB_URI vacío: get_db() fallará")
        if cls.JWT_SECRET_KEY == 'develop-secret-key':
            logger.warning("JWT_SECRET usa el valor de desarrollo")


class DevelopmentConfig(Config):
    """Desarrollo local"""
    DEBUG = True


class ProductionConfig(Config):
    """Producción: exige las variables críticas"""
    DEBUG = False

    @classmethod
    def validate(cls):
        super().validate()
        if not validate_env_vars():
            logger.critical("Producción sin variables críticas")
            if os.getenv('ENFORCE_ENV_VALIDATION', '0') == '1':
                sys.exit(1)


class TestingConfig(Config):
    """Configuración para pruebas: sin base de datos real ni límites de peticiones"""
    TESTING = True
    DEBUG = True
    DB_NAME = os.getenv('TEST_DB_NAME', 'learnsy_test')
    JWT_SECRET_KEY = 'testing-secret-key'
    SETUP_INDEXES = False
    CHECK_DB_ON_STARTUP = False
    RATELIMIT_ENABLED = False
    API_LOGGING = 'none'
    BCRYPT_ROUNDS = 4
    UPLOAD_FOLDER = os.path.join(tempfile.gettempdir(), 'learnsy-test-uploads')


config_by_name = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig
}

env = os.getenv('FLASK_ENV', 'development')
active_config = config_by_name.get(env, DevelopmentConfig)

active_config.validate()
