# Configuración de la aplicación
APP_NAME = "learnsy-backend"
APP_PREFIX = "/api"
APP_VERSION = "1.0.0"

# Roles de usuario
ROLES = {
    "STUDENT": "student",
    "FACULTY": "faculty"
}

# Niveles de los cursos
COURSE_LEVELS = ["Beginner", "Intermediate", "Advanced"]
DEFAULT_COURSE_CATEGORY = "General"

# Estados de inscripción
ENROLLMENT_STATUS = {
    "ACTIVE": "active",
    "COMPLETED": "completed",
    "DROPPED": "dropped"
}

# Tipos de material
MATERIAL_TYPES = ["video", "text", "pdf", "image", "link", "quiz", "assignment"]
DOCUMENT_MATERIAL_TYPES = ["pdf", "text"]

# Extensiones permitidas para materiales (50 MB máximo)
MATERIAL_ALLOWED_EXTENSIONS = {
    "jpeg", "jpg", "png", "gif", "pdf", "doc", "docx",
    "ppt", "pptx", "mp4", "avi", "mov", "txt", "zip"
}
MATERIAL_MAX_FILE_SIZE = 50 * 1024 * 1024

# Actividades de una sesión de estudio
SESSION_ACTIVITIES = ["browsing", "reading", "watching", "quiz", "idle", "assignment", "discussion"]
DEFAULT_SESSION_ACTIVITY = "browsing"

# Estados de suscripción
SUBSCRIPTION_STATUS = {
    "ACTIVE": "active",
    "CANCELLED": "cancelled",
    "EXPIRED": "expired"
}

PAYMENT_METHODS = ["bhim", "paytm", "googlepay", "phonepe", "upi"]

# Herramientas de IA
AI_FILE_TYPES = {
    "video": {"mp4", "avi", "mov", "wmv", "mkv", "webm"},
    "pdf": {"pdf"},
    "ppt": {"ppt", "pptx", "ppsx"}
}
AI_MAX_FILE_SIZE = 100 * 1024 * 1024
AI_PROCESSING_STATUS = {
    "PROCESSING": "processing",
    "COMPLETED": "completed",
    "FAILED": "failed"
}


def normalize_role(role: str) -> str:
    """Normaliza un rol a minúsculas; devuelve None si no es un rol conocido."""
    if not role:
        return None
    role = role.strip().lower()
    return role if role in ROLES.values() else None
