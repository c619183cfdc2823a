from typing import Dict, List, Optional, Union
from learnsy.shared.constants import DEFAULT_COURSE_CATEGORY
from learnsy.shared.utils import utcnow

def build_modules(modules: Union[int, List[Dict], None]) -> List[Dict]:
    """
    Normaliza los módulos de un curso.

    Un entero N genera N módulos genéricos ("Module 1", ...); una lista de
    diccionarios se normaliza conservando su orden.
    """
    if modules is None:
        return []

    if isinstance(modules, bool):
        raise ValueError("modules debe ser un número o una lista")

    if isinstance(modules, int) or (isinstance(modules, str) and modules.isdigit()):
        count = int(modules)
        if count < 0:
            raise ValueError("modules no puede ser negativo")
        return [
            {
                "title": f"Module {i}",
                "description": f"Description for Module {i}",
                "duration": "1 hour",
                "order": i,
                "lessons": []
            }
            for i in range(1, count + 1)
        ]

    if not isinstance(modules, list):
        raise ValueError("modules debe ser un número o una lista")

    normalized = []
    for position, module in enumerate(modules, start=1):
        if not isinstance(module, dict) or not module.get("title"):
            raise ValueError(f"El módulo {position} debe tener título")
        lessons = module.get("lessons")
        if lessons is None:
            lessons = []
        elif not isinstance(lessons, list):
            raise ValueError(f"Las lecciones del módulo {position} deben ser una lista")
        normalized.append({
            "title": module["title"],
            "description": module.get("description", ""),
            "duration": module.get("duration", ""),
            "order": module.get("order", position),
            "lessons": lessons
        })
    return sorted(normalized, key=lambda m: m["order"])

def _lesson_count(module) -> int:
    lessons = module.get("lessons") if isinstance(module, dict) else None
    return len(lessons) if isinstance(lessons, list) else 0

def total_lessons(course: Dict) -> int:
    """Número de lecciones del curso; un módulo sin lecciones válidas cuenta como una."""
    modules = course.get("modules")
    if not isinstance(modules, list):
        return 0
    return sum(max(_lesson_count(module), 1) for module in modules)


class Course:
    """
    Modelo de curso creado por un docente.
    """
    def __init__(self,
                 title: str,
                 description: str,
                 faculty_id,
                 category: Optional[str] = None,
                 level: str = "Beginner",
                 duration: str = "",
                 price: float = 0,
                 thumbnail: str = "",
                 modules=None,
                 tags: Optional[List[str]] = None,
                 prerequisites: Optional[List[str]] = None,
                 learning_outcomes: Optional[List[str]] = None,
                 is_published: bool = False):
        self.title = title.strip()
        self.description = description
        self.faculty_id = faculty_id
        self.category = category or DEFAULT_COURSE_CATEGORY
        self.level = level or "Beginner"
        self.duration = duration
        self.price = price or 0
        self.thumbnail = thumbnail
        self.modules = build_modules(modules)
        self.tags = tags or []
        self.prerequisites = prerequisites or []
        self.learning_outcomes = learning_outcomes or []
        self.is_published = is_published
        self.created_at = utcnow()
        self.updated_at = utcnow()

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "level": self.level,
            "duration": self.duration,
            "price": self.price,
            "thumbnail": self.thumbnail,
            "modules": self.modules,
            "faculty_id": self.faculty_id,
            "enrolled_students": [],
            "enrollment_count": 0,
            "rating": 0,
            "tags": self.tags,
            "prerequisites": self.prerequisites,
            "learning_outcomes": self.learning_outcomes,
            "is_published": self.is_published,
            "created_at": self.created_at,
            "updated_at": self.updated_at
        }
