from typing import Dict
from learnsy.shared.utils import utcnow

class Enrollment:
    """
    Inscripción de un estudiante en un curso.
    """
    def __init__(self, student_id, course_id, status: str = "active"):
        self.student_id = student_id
        self.course_id = course_id
        self.status = status
        self.enrolled_at = utcnow()

    def to_dict(self) -> Dict:
        return {
            "student_id": self.student_id,
            "course_id": self.course_id,
            "status": self.status,
            "progress": default_progress(),
            "enrolled_at": self.enrolled_at,
            "completed_at": None,
            "dropped_at": None,
            "created_at": self.enrolled_at,
            "updated_at": self.enrolled_at
        }


def default_progress() -> Dict:
    return {"percentage": 0, "lessons_completed": 0, "last_accessed_at": None}
