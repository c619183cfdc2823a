import unittest
from unittest.mock import MagicMock, patch
from datetime import datetime, timedelta
from bson import ObjectId
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from learnsy.shared.exceptions import AppException
from learnsy.study_sessions.models import current_duration, finalize, is_stale, elapsed_minutes
from learnsy.study_sessions.services import StudySessionService
from learnsy.progress.services import ProgressService

NOW = datetime(2024, 3, 10, 12, 0, 0)

def mock_db():
    db = MagicMock()
    db.__getitem__.side_effect = lambda name: getattr(db, name)
    return db

def open_session(student_id, minutes_ago=20, last_activity_ago=0, course_id=None, idle_time=0):
    return {
        "_id": ObjectId(),
        "student_id": ObjectId(student_id),
        "course_id": course_id,
        "activity": "reading",
        "start_time": NOW - timedelta(minutes=minutes_ago),
        "last_activity_time": NOW - timedelta(minutes=last_activity_ago),
        "duration": 0,
        "idle_time": idle_time,
        "is_active": True
    }

def apply_set(query, operation, return_document=None, stored=None):
    return {**stored, **operation.get("$set", {})}

class TestSessionDuration(unittest.TestCase):
    """Duración y cierre de sesiones"""

    def test_elapsed_minutes_floors_and_never_negative(self):
        self.assertEqual(elapsed_minutes(NOW, NOW + timedelta(seconds=119)), 1)
        self.assertEqual(elapsed_minutes(NOW, NOW - timedelta(minutes=3)), 0)

    def test_open_session_duration_grows(self):
        session = open_session(str(ObjectId()), minutes_ago=0)
        first = current_duration(session, NOW + timedelta(minutes=2))
        second = current_duration(session, NOW + timedelta(minutes=7))
        self.assertEqual((first, second), (2, 7))

    def test_ended_session_duration_frozen(self):
        session = open_session(str(ObjectId()), minutes_ago=30)
        session.update(finalize(session, NOW))
        self.assertEqual(session["duration"], 30)
        self.assertEqual(current_duration(session, NOW + timedelta(hours=5)), 30)

    def test_finalize_discounts_idle_time(self):
        session = open_session(str(ObjectId()), minutes_ago=40, idle_time=10)
        fields = finalize(session, NOW)
        self.assertEqual(fields["duration"], 40)
        self.assertEqual(fields["total_active_time"], 30)
        self.assertEqual(fields["focus_percentage"], 75)
        self.assertFalse(fields["is_active"])

    def test_finalize_clamps_end_before_start(self):
        session = open_session(str(ObjectId()), minutes_ago=0)
        fields = finalize(session, NOW - timedelta(minutes=5))
        self.assertEqual(fields["end_time"], session["start_time"])
        self.assertEqual(fields["duration"], 0)

    def test_is_stale(self):
        session = open_session(str(ObjectId()), minutes_ago=30, last_activity_ago=6)
        self.assertTrue(is_stale(session, NOW))
        self.assertFalse(is_stale(session, NOW, idle_timeout_minutes=10))
        session["is_active"] = False
        self.assertFalse(is_stale(session, NOW))


@patch('learnsy.study_sessions.services.utcnow', return_value=NOW)
class TestStudySessionService(unittest.TestCase):

    def setUp(self):
        self.db = mock_db()
        self.progress = MagicMock()
        self.service = StudySessionService(db=self.db, progress_service=self.progress)
        self.student_id = str(ObjectId())
        self.db.study_sessions.insert_one.return_value = MagicMock(inserted_id=ObjectId())

    def test_start_without_open_session(self, _now):
        self.db.study_sessions.find_one.return_value = None
        session = self.service.start(self.student_id, {"activity": "reading"})
        self.assertTrue(session["is_active"])
        self.assertEqual(session["activity"], "reading")
        self.assertEqual(session["duration"], 0)
        self.assertEqual(session["start_time"], NOW)

    def test_start_rejects_overlapping_session(self, _now):
        """Test una sesión abierta y reciente impide iniciar otra"""
        existing = open_session(self.student_id, last_activity_ago=1)
        self.db.study_sessions.find_one.return_value = existing

        with self.assertRaises(AppException) as ctx:
            self.service.start(self.student_id, {})
        self.assertEqual(ctx.exception.code, 409)
        self.assertEqual(ctx.exception.details["session_id"], str(existing["_id"]))
        self.db.study_sessions.insert_one.assert_not_called()

    def test_start_closes_stale_session_first(self, _now):
        course_id = ObjectId()
        stale = open_session(self.student_id, minutes_ago=20, last_activity_ago=10, course_id=course_id)
        self.db.study_sessions.find_one.return_value = stale
        self.db.study_sessions.find_one_and_update.side_effect = \
            lambda q, op, return_document=None: apply_set(q, op, stored=stale)

        session = self.service.start(self.student_id, {"activity": "browsing"})

        closing = self.db.study_sessions.find_one_and_update.call_args[0][1]["$set"]
        self.assertEqual(closing["end_time"], stale["last_activity_time"])
        self.assertEqual(closing["duration"], 10)
        self.assertTrue(closing["auto_closed"])
        self.progress.record_study_time.assert_called_once_with(
            self.student_id, course_id, 10, stale["last_activity_time"]
        )
        self.assertTrue(session["is_active"])

    def test_start_rejects_unknown_activity(self, _now):
        self.db.study_sessions.find_one.return_value = None
        with self.assertRaises(AppException) as ctx:
            self.service.start(self.student_id, {"activity": "sleeping"})
        self.assertEqual(ctx.exception.code, 400)

    def test_update_ended_session_conflicts(self, _now):
        ended = open_session(self.student_id)
        ended["is_active"] = False
        self.db.study_sessions.find_one.return_value = ended

        with self.assertRaises(AppException) as ctx:
            self.service.update(str(ended["_id"]), self.student_id, {"activity": "reading"})
        self.assertEqual(ctx.exception.code, 409)

    def test_update_stale_session_auto_closes(self, _now):
        stale = open_session(self.student_id, minutes_ago=30, last_activity_ago=8)
        self.db.study_sessions.find_one.return_value = stale
        self.db.study_sessions.find_one_and_update.side_effect = \
            lambda q, op, return_document=None: apply_set(q, op, stored=stale)

        with self.assertRaises(AppException) as ctx:
            self.service.update(str(stale["_id"]), self.student_id, {"activity": "reading"})
        self.assertEqual(ctx.exception.code, 409)
        self.assertTrue(ctx.exception.details["auto_closed"])
        self.assertEqual(ctx.exception.details["session"]["duration"], 22)

    def test_update_records_activity_and_extras(self, _now):
        session = open_session(self.student_id, last_activity_ago=1)
        self.db.study_sessions.find_one.return_value = session
        self.db.study_sessions.find_one_and_update.side_effect = \
            lambda q, op, return_document=None: apply_set(q, op, stored=session)
        material_id = str(ObjectId())

        self.service.update(str(session["_id"]), self.student_id, {
            "activity": "watching",
            "idle_minutes": 2,
            "additional_data": {"lesson_completed": True, "material_id": material_id,
                                "quiz_result": {"score": 80}}
        })

        operation = self.db.study_sessions.find_one_and_update.call_args[0][1]
        self.assertEqual(operation["$set"]["last_activity_time"], NOW)
        self.assertEqual(operation["$push"]["activities"]["activity"], "watching")
        self.assertEqual(operation["$push"]["quiz_results"]["score"], 80)
        self.assertEqual(operation["$inc"], {"idle_time": 2, "lessons_completed": 1})
        self.assertEqual(operation["$addToSet"]["materials_viewed"], ObjectId(material_id))

    def test_update_other_student_forbidden(self, _now):
        self.db.study_sessions.find_one.return_value = open_session(str(ObjectId()))
        with self.assertRaises(AppException) as ctx:
            self.service.update(str(ObjectId()), self.student_id, {})
        self.assertEqual(ctx.exception.code, 403)

    def test_end_records_study_time(self, _now):
        course_id = ObjectId()
        session = open_session(self.student_id, minutes_ago=45, last_activity_ago=1,
                               course_id=course_id, idle_time=5)
        self.db.study_sessions.find_one.return_value = session
        self.db.study_sessions.find_one_and_update.side_effect = \
            lambda q, op, return_document=None: apply_set(q, op, stored=session)

        ended = self.service.end(str(session["_id"]), self.student_id)

        self.assertFalse(ended["is_active"])
        self.assertEqual(ended["duration"], 45)
        self.progress.record_study_time.assert_called_once_with(self.student_id, course_id, 40, NOW)
        self.db.enrollments.update_one.assert_called_once()

    def test_end_is_idempotent(self, _now):
        session = open_session(self.student_id)
        session.update({"is_active": False, "duration": 12, "end_time": NOW})
        self.db.study_sessions.find_one.return_value = session

        ended = self.service.end(str(session["_id"]), self.student_id)

        self.assertEqual(ended["duration"], 12)
        self.db.study_sessions.find_one_and_update.assert_not_called()
        self.progress.record_study_time.assert_not_called()

    def test_concurrent_close_returns_stored_session(self, _now):
        session = open_session(self.student_id, last_activity_ago=1)
        stored = dict(session, is_active=False, duration=19, end_time=NOW)
        self.db.study_sessions.find_one.side_effect = [session, stored]
        self.db.study_sessions.find_one_and_update.return_value = None

        ended = self.service.end(str(session["_id"]), self.student_id)

        self.assertEqual(ended["duration"], 19)
        self.progress.record_study_time.assert_not_called()

    def test_active_session_none_when_stale(self, _now):
        stale = open_session(self.student_id, minutes_ago=30, last_activity_ago=9)
        self.db.study_sessions.find_one.return_value = stale
        self.db.study_sessions.find_one_and_update.side_effect = \
            lambda q, op, return_document=None: apply_set(q, op, stored=stale)
        self.assertIsNone(self.service.get_active(self.student_id))


@patch('learnsy.study_sessions.services.utcnow', return_value=NOW)
class TestSessionOnDeletedCourse(unittest.TestCase):
    """Sesiones abiertas de un curso que el docente eliminó"""

    def setUp(self):
        self.db = mock_db()
        self.db.courses.find_one.return_value = None
        self.db.progress.find_one.return_value = None
        self.service = StudySessionService(db=self.db, progress_service=ProgressService(db=self.db))
        self.student_id = str(ObjectId())

    def test_end_closes_without_recording_progress(self, _now):
        session = open_session(self.student_id, minutes_ago=30, last_activity_ago=1, course_id=ObjectId())
        self.db.study_sessions.find_one.return_value = session
        self.db.study_sessions.find_one_and_update.side_effect = \
            lambda q, op, return_document=None: apply_set(q, op, stored=session)

        ended = self.service.end(str(session["_id"]), self.student_id)

        self.assertFalse(ended["is_active"])
        self.assertEqual(ended["duration"], 30)
        self.db.progress.find_one_and_update.assert_not_called()
        self.db.enrollments.update_one.assert_called_once()

    def test_stale_session_does_not_block_start(self, _now):
        stale = open_session(self.student_id, minutes_ago=20, last_activity_ago=10, course_id=ObjectId())
        self.db.study_sessions.find_one.return_value = stale
        self.db.study_sessions.find_one_and_update.side_effect = \
            lambda q, op, return_document=None: apply_set(q, op, stored=stale)
        self.db.study_sessions.insert_one.return_value = MagicMock(inserted_id=ObjectId())

        session = self.service.start(self.student_id, {})

        self.assertTrue(session["is_active"])
        self.db.progress.find_one_and_update.assert_not_called()

    def test_record_study_time_skips_missing_course(self, _now):
        progress_service = ProgressService(db=self.db)
        self.assertIsNone(progress_service.record_study_time(self.student_id, ObjectId(), 15, NOW))


if __name__ == '__main__':
    unittest.main()
