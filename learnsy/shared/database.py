from pymongo import MongoClient, ASCENDING, DESCENDING
from typing import Optional
import dotenv
from datetime import datetime
import os
import logging
import threading

dotenv.load_dotenv()

logger = logging.getLogger(__name__)

def get_config_value(key, default=None):
    """Lee una variable de entorno, avisando si falta."""
    value = os.getenv(key, default)
    if value is None:
        logger.warning(f"Variable de entorno '{key}' no encontrada")
    return value

class DatabaseConnection:
    _instance: Optional[MongoClient] = None
    _db = None
    _lock = threading.Lock()
    _indexes_setup_complete = False

    @classmethod
    def get_instance(cls) -> MongoClient:
        """Cliente MongoDB compartido por todo el proceso."""
        if cls._instance is None:
            mongo_uri = get_config_value('MONGO_DB_URI')
            if not mongo_uri:
                logger.error("MONGO_DB_URI sin definir")
                raise ValueError("MONGO_DB_URI no está configurado")

            logger.info("Abriendo cliente MongoDB")
            client = MongoClient(
                mongo_uri,
                maxPoolSize=50,
                connectTimeoutMS=20000,
                serverSelectionTimeoutMS=20000,
                socketTimeoutMS=20000
            )

            try:
                client.admin.command('ping')
                logger.info("MongoDB responde al ping")
            except Exception as e:
                logger.error(f"Ping a MongoDB fallido: {e}")
                client.close()
                raise
            cls._instance = client

        return cls._instance

    @classmethod
    def get_db(cls):
        """Base de datos DB_NAME del cliente compartido."""
        if cls._db is None:
            with cls._lock:
                if cls._db is None:
                    db_name = get_config_value('DB_NAME', 'learnsy')
                    cls._db = cls.get_instance()[db_name]
        return cls._db

def get_db():
    """Atajo a DatabaseConnection.get_db()."""
    return DatabaseConnection.get_db()

def _ensure_index(collection, keys, name=None, **kwargs):
    """Crea un índice si no existe uno con el mismo nombre o las mismas claves."""
    try:
        existing_indexes = collection.index_information()
        if name and name in existing_indexes:
            logger.debug(f"Índice '{name}' ya existe en {collection.name}")
            return name

        keys_tuple = tuple(keys)
        for existing_name, info in existing_indexes.items():
            if tuple(info.get('key', [])) == keys_tuple:
                logger.debug(f"Índice '{existing_name}' en {collection.name} ya cubre las claves {keys_tuple}")
                return existing_name

        start_time = datetime.now()
        created_name = collection.create_index(keys, name=name, **kwargs)
        duration = (datetime.now() - start_time).total_seconds()
        logger.info(f"Índice '{created_name}' creado en {collection.name} ({duration:.3f}s)")
        return created_name
    except Exception as e:
        logger.error(f"Error creando índice {name or keys} en {collection.name}: {str(e)}")
        return None

# (colección, claves, nombre, opciones)
INDEXES = [
    ("users", [("email", ASCENDING)], "idx_users_email", {"unique": True}),
    ("users", [("student_id", ASCENDING)], "idx_users_student_id",
     {"unique": True, "partialFilterExpression": {"student_id": {"$type": "string"}}}),
    ("users", [("role", ASCENDING)], "idx_users_role", {}),
    ("courses", [("faculty_id", ASCENDING)], "idx_courses_faculty", {}),
    ("courses", [("is_published", ASCENDING), ("created_at", DESCENDING)], "idx_courses_published", {}),
    ("materials", [("course_id", ASCENDING), ("order", ASCENDING)], "idx_materials_course_order", {}),
    ("material_completions", [("student_id", ASCENDING), ("material_id", ASCENDING)],
     "idx_material_completions_unique", {"unique": True}),
    ("enrollments", [("student_id", ASCENDING), ("course_id", ASCENDING)],
     "idx_enrollments_unique", {"unique": True}),
    ("enrollments", [("course_id", ASCENDING)], "idx_enrollments_course", {}),
    ("progress", [("student_id", ASCENDING), ("course_id", ASCENDING)], "idx_progress_unique", {"unique": True}),
    ("study_sessions", [("student_id", ASCENDING), ("is_active", ASCENDING)], "idx_study_sessions_active", {}),
    ("study_sessions", [("student_id", ASCENDING), ("start_time", DESCENDING)], "idx_study_sessions_history", {}),
    ("subscriptions", [("user_id", ASCENDING), ("status", ASCENDING)], "idx_subscriptions_user", {}),
    ("payment_transactions", [("transaction_id", ASCENDING)], "idx_payment_transactions_id", {"unique": True}),
    ("ai_summaries", [("user_id", ASCENDING), ("created_at", DESCENDING)], "idx_ai_summaries_user", {}),
]

def setup_database_indexes(db=None):
    """
    Crea los índices de INDEXES. Idempotente: tras una ejecución
    completa las siguientes llamadas no hacen nada.
    """
    with DatabaseConnection._lock:
        if DatabaseConnection._indexes_setup_complete:
            return True

        try:
            if db is None:
                db = DatabaseConnection.get_instance()[get_config_value('DB_NAME', 'learnsy')]
            failed = [name for collection, keys, name, options in INDEXES
                      if _ensure_index(db[collection], keys, name=name, **options) is None]
        except Exception as e:
            logger.error(f"No se pudieron crear los índices: {e}")
            return False

        if failed:
            logger.warning(f"Índices pendientes: {', '.join(failed)}")
            return False

        DatabaseConnection._indexes_setup_complete = True
        logger.info(f"{len(INDEXES)} índices verificados")
        return True
