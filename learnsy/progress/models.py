from typing import Dict
from learnsy.shared.utils import utcnow

# Logros disponibles; cada uno se evalúa sobre las estadísticas acumuladas
ACHIEVEMENTS = [
    {
        "key": "first_lesson",
        "title": "First Steps",
        "description": "Complete your first lesson",
        "metric": "lessons_completed",
        "threshold": 1
    },
    {
        "key": "week_warrior",
        "title": "Week Warrior",
        "description": "Study 7 days in a row",
        "metric": "longest_streak",
        "threshold": 7
    },
    {
        "key": "quiz_master",
        "title": "Quiz Master",
        "description": "Pass 5 quizzes",
        "metric": "quizzes_passed",
        "threshold": 5
    },
    {
        "key": "course_completer",
        "title": "Course Completer",
        "description": "Complete a course",
        "metric": "best_progress",
        "threshold": 100
    },
    {
        "key": "study_marathon",
        "title": "Study Marathon",
        "description": "Study for 100 hours",
        "metric": "total_study_minutes",
        "threshold": 6000
    },
]


class CourseProgress:
    """
    Progreso de un estudiante en un curso.
    """
    def __init__(self, student_id, course_id, total_lessons: int = 0):
        self.student_id = student_id
        self.course_id = course_id
        self.total_lessons = total_lessons
        self.created_at = utcnow()

    def to_dict(self) -> Dict:
        return {
            "student_id": self.student_id,
            "course_id": self.course_id,
            "overall_progress": 0,
            "lessons_completed": 0,
            "total_lessons": self.total_lessons,
            "quizzes_taken": 0,
            "quizzes_passed": 0,
            "total_study_minutes": 0,
            "study_calendar": [],
            "current_streak": 0,
            "longest_streak": 0,
            "last_study_date": None,
            "avg_study_time": 0,
            "achievements": [],
            "created_at": self.created_at,
            "updated_at": self.created_at
        }
