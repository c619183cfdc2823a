"""
Funciones de validación para datos de la aplicación.

Ejemplos de uso:
    schema = {
        'name': {'type': 'string', 'required': True, 'minLength': 2},
        'level': {'type': 'string', 'enum': COURSE_LEVELS}
    }
    is_valid, errors = validate_schema(data, schema)
"""

import re
from learnsy.shared.constants import (
    COURSE_LEVELS, MATERIAL_TYPES, SESSION_ACTIVITIES, PAYMENT_METHODS
)

EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'

def validate_schema(data, schema):
    """
    Valida un objeto de datos contra un esquema

    Args:
        data (dict): Los datos a validar
        schema (dict): El esquema con las reglas de validación

    Returns:
        tuple: (is_valid, errors) donde errors es un dict campo -> mensaje
    """
    errors = {}

    for field, rules in schema.items():
        if rules.get('required', False) and data.get(field) in (None, ""):
            errors[field] = "Campo requerido"
            continue

        if data.get(field) is None:
            continue

        value = data[field]

        if 'type' in rules:
            expected_type = rules['type']
            if expected_type == 'string' and not isinstance(value, str):
                errors[field] = "Debe ser una cadena de texto"
                continue
            # bool es subclase de int: se excluye explícitamente
            elif expected_type == 'number' and (isinstance(value, bool) or not isinstance(value, (int, float))):
                errors[field] = "Debe ser un número"
                continue
            elif expected_type == 'integer' and (isinstance(value, bool) or not isinstance(value, int)):
                errors[field] = "Debe ser un número entero"
                continue
            elif expected_type == 'boolean' and not isinstance(value, bool):
                errors[field] = "Debe ser un valor booleano"
                continue
            elif expected_type == 'array' and not isinstance(value, list):
                errors[field] = "Debe ser una lista"
                continue
            elif expected_type == 'object' and not isinstance(value, dict):
                errors[field] = "Debe ser un objeto"
                continue

        if 'minLength' in rules and isinstance(value, (str, list)):
            if len(value) < rules['minLength']:
                errors[field] = f"Debe tener al menos {rules['minLength']} caracteres"

        if 'maxLength' in rules and isinstance(value, (str, list)):
            if len(value) > rules['maxLength']:
                errors[field] = f"Debe tener como máximo {rules['maxLength']} caracteres"

        if 'minimum' in rules and isinstance(value, (int, float)):
            if value < rules['minimum']:
                errors[field] = f"Debe ser mayor o igual a {rules['minimum']}"

        if 'maximum' in rules and isinstance(value, (int, float)):
            if value > rules['maximum']:
                errors[field] = f"Debe ser menor o igual a {rules['maximum']}"

        if 'pattern' in rules and isinstance(value, str):
            if not re.match(rules['pattern'], value):
                errors[field] = "No cumple con el formato requerido"

        if 'enum' in rules and value not in rules['enum']:
            errors[field] = f"Valor no permitido. Opciones válidas: {', '.join(map(str, rules['enum']))}"

    return len(errors) == 0, errors

# Esquemas de validación compartidos por las rutas

student_register_schema = {
    "name": {"type": "string", "required": True, "minLength": 2, "maxLength": 100},
    "email": {"type": "string", "required": True, "pattern": EMAIL_PATTERN},
    "password": {"type": "string", "required": True, "minLength": 6},
    "student_id": {"type": "string", "required": True, "minLength": 1},
    "department": {"type": "string", "maxLength": 100}
}

faculty_register_schema = {
    "name": {"type": "string", "required": True, "minLength": 2, "maxLength": 100},
    "email": {"type": "string", "required": True, "pattern": EMAIL_PATTERN},
    "password": {"type": "string", "required": True, "minLength": 6},
    "institution": {"type": "string", "required": True, "minLength": 2},
    "department": {"type": "string", "maxLength": 100}
}

course_schema = {
    "title": {"type": "string", "required": True, "minLength": 1, "maxLength": 200},
    "description": {"type": "string", "required": True, "maxLength": 5000},
    "category": {"type": "string"},
    "level": {"type": "string", "enum": COURSE_LEVELS},
    "price": {"type": "number", "minimum": 0},
    "tags": {"type": "array"},
    "prerequisites": {"type": "array"},
    "learning_outcomes": {"type": "array"}
}

material_schema = {
    "title": {"type": "string", "required": True, "minLength": 1, "maxLength": 200},
    "type": {"type": "string", "required": True, "enum": MATERIAL_TYPES},
    "course_id": {"type": "string", "required": True},
    "description": {"type": "string"},
    "order": {"type": "integer", "minimum": 0}
}

login_schema = {
    "email": {"type": "string", "required": True, "minLength": 3},
    "password": {"type": "string", "required": True, "minLength": 1}
}

session_start_schema = {
    "course_id": {"type": "string"},
    "activity": {"type": "string", "enum": SESSION_ACTIVITIES},
    "device_info": {"type": "object"}
}

session_update_schema = {
    "activity": {"type": "string", "enum": SESSION_ACTIVITIES},
    "idle_minutes": {"type": "number", "minimum": 0},
    "additional_data": {"type": "object"}
}

progress_update_schema = {
    "lessons_completed": {"type": "integer", "minimum": 0},
    "study_time_minutes": {"type": "number", "minimum": 0},
    "quiz_result": {"type": "object"}
}

payment_schema = {
    "plan": {"type": "string", "required": True},
    "payment_method": {"type": "string", "enum": PAYMENT_METHODS}
}
