"""
Utilidades generales para toda la aplicación.

Los decoradores (handle_errors, auth_required, ...) viven en
learnsy.shared.decorators, no aquí.
"""

from datetime import datetime, timezone, timedelta
from typing import Any, Optional
from bson import ObjectId
from bson.errors import InvalidId

__all__ = ['utcnow', 'day_key', 'start_of_day', 'start_of_week', 'to_object_id',
           'ensure_json_serializable', 'parse_bool', 'paginate_params']

def utcnow() -> datetime:
    """Fecha actual en UTC sin zona horaria (igual que las fechas que devuelve pymongo)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

def day_key(moment: datetime) -> str:
    """Clave de día (YYYY-MM-DD) usada en los calendarios de estudio."""
    return moment.strftime("%Y-%m-%d")

def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)

def start_of_week(moment: datetime) -> datetime:
    """Lunes de la semana de `moment` a las 00:00."""
    return start_of_day(moment) - timedelta(days=moment.weekday())

def to_object_id(value: Any) -> Optional[ObjectId]:
    """Convierte un string a ObjectId; devuelve None si no es válido."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None

def parse_bool(value: Any) -> Optional[bool]:
    """Interpreta valores booleanos recibidos en query strings o formularios."""
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no"):
        return False
    return None

def paginate_params(args, default_limit: int = 10, max_limit: int = 100):
    """Obtiene (limit, page, skip) a partir de los argumentos de la petición."""
    try:
        limit = int(args.get("limit", default_limit))
    except (TypeError, ValueError):
        limit = default_limit
    try:
        page = int(args.get("page", 1))
    except (TypeError, ValueError):
        page = 1
    limit = min(max(limit, 1), max_limit)
    page = max(page, 1)
    return limit, page, (page - 1) * limit

def ensure_json_serializable(data):
    """Convierte ObjectId a string y fechas a ISO 8601 de forma recursiva"""
    if isinstance(data, list):
        return [ensure_json_serializable(item) for item in data]
    elif isinstance(data, dict):
        return {key: ensure_json_serializable(value) for key, value in data.items()}
    elif isinstance(data, ObjectId):
        return str(data)
    elif isinstance(data, datetime):
        return data.isoformat()
    else:
        return data
